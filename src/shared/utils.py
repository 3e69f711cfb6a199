import logging
import os
from typing import Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),  # Output to console
    ],
)


def get_logger(name: str):
    return logging.getLogger(name)


def normalize_gateway_url(raw: Optional[str], default: str) -> str:
    """Strip trailing slashes and a trailing /api so paths can be appended consistently."""
    gateway = (raw or default).strip().rstrip("/")
    if gateway.lower().endswith("/api"):
        gateway = gateway[: -len("/api")]
    return gateway
