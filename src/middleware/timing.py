import time

from fastapi import Request

from src.shared.utils import get_logger

logger = get_logger(__name__)

# Gateway calls time out well below this; anything slower is worth a warning
SLOW_REQUEST_SECONDS = 5.0


async def add_process_time_header(request: Request, call_next):
    """
    Adds X-Process-Time and logs one line per request.

    Only the path is logged: payment query strings carry result indicators.
    """
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"

    message = (
        f"{request.method} {request.url.path} - Status: {response.status_code} "
        f"- Process Time: {elapsed:.4f}s"
    )
    if response.status_code >= 500 or elapsed > SLOW_REQUEST_SECONDS:
        logger.warning(message)
    else:
        logger.info(message)
    return response
