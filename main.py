from src.dependencies.firebase import initialize_firebase

initialize_firebase()

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.payments.routes import payments_router
from src.database.schema_guard import SchemaStatus
from src.middleware.error import http_exception_handler
from src.middleware.timing import add_process_time_header
from src.shared.error_handler import ServiceError
from src.shared.utils import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="MPGS Payments API",
    description="Mastercard hosted checkout sessions and payment confirmation for orders.",
    version="1.0.0",
)

# Shared by every request; see src/dependencies/payments.py
app.state.schema_status = SchemaStatus()

app.include_router(payments_router)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(ServiceError, http_exception_handler)
app.add_exception_handler(Exception, http_exception_handler)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="MPGS Payments API",
        version="1.0.0",
        description="Mastercard hosted checkout sessions and payment confirmation for orders.",
        routes=app.routes,
    )
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


app.middleware("http")(add_process_time_header)


@app.get("/", tags=["App"])
async def read_root():
    return {"service": "mpgs-payments", "status": "ok"}
