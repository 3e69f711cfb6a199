import os

from dotenv import load_dotenv

from src.shared.utils import get_logger, normalize_gateway_url

logger = get_logger(__name__)


load_dotenv()


class Settings:
    """Application configuration settings."""

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", None)
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))
    DB_COMMAND_TIMEOUT = int(os.getenv("DB_COMMAND_TIMEOUT", "60"))

    # Mastercard MPGS
    MPGS_GATEWAY_URL = normalize_gateway_url(
        os.getenv("MPGS_GATEWAY_URL") or os.getenv("MPGS_GATEWAY"),
        "https://mtf.gateway.mastercard.com",
    )
    MPGS_API_VERSION = os.getenv("MPGS_API_VERSION", "73")
    MPGS_MERCHANT_ID = os.getenv("MPGS_MERCHANT_ID", "TESTMERCHANT")
    MPGS_API_USERNAME = os.getenv("MPGS_API_USERNAME", None)
    # Never defaulted: the gateway client refuses to run without it
    MPGS_API_PASSWORD = os.getenv("MPGS_API_PASSWORD", None)
    MPGS_DEFAULT_CURRENCY = os.getenv("MPGS_DEFAULT_CURRENCY", "JOD")
    MPGS_MERCHANT_NAME = os.getenv("MPGS_MERCHANT_NAME", "FECS Store")
    MPGS_RETURN_BASE_URL = os.getenv(
        "MPGS_RETURN_BASE_URL", "http://localhost:3015"
    ).rstrip("/")
    MPGS_CANCEL_URL = os.getenv("MPGS_CANCEL_URL", None)
    MPGS_TIMEOUT_SECONDS = float(os.getenv("MPGS_TIMEOUT_SECONDS", "10"))
    MPGS_APP_SCHEME = os.getenv("MPGS_APP_SCHEME", "fecs")

    # Frontends
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
    CLIENT_BASE_URL = os.getenv("CLIENT_BASE_URL", "http://localhost:3000").rstrip(
        "/"
    )


settings = Settings()
