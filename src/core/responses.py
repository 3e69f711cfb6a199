from typing import Any

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success_response(data: Any, message: str = "Success", status_code: int = status.HTTP_200_OK):
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "message": message,
            "data": jsonable_encoder(data),
        }
    )


def failure_response(error: str, details: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
    """Structured failure body for JSON/mobile payment clients."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "details": details},
    )
