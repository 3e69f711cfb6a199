from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from src.shared.error_handler import ServiceError
from src.shared.utils import get_logger

logger = get_logger(__name__)


async def http_exception_handler(request: Request, exc: Exception):
    """Global exception handler for HTTP errors."""
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    if isinstance(exc, ServiceError):
        logger.error(f"Service error on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500, content={"success": False, "error": "Internal server error"}
    )
