from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config.settings import settings
from src.shared.utils import LOG_LEVEL

DATABASE_URL = settings.DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set in environment variables.")


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": LOG_LEVEL == "DEBUG"}
    if make_url(url).get_backend_name() == "sqlite":
        # SQLite pools do not accept sizing arguments
        return options

    options.update(
        pool_size=settings.DB_POOL_SIZE,  # Number of permanent connections
        max_overflow=settings.DB_MAX_OVERFLOW,  # Additional connections that can be created
        pool_timeout=settings.DB_POOL_TIMEOUT,  # Seconds to wait for connection from pool
        pool_recycle=settings.DB_POOL_RECYCLE,  # Recycle connections after N seconds
        pool_pre_ping=True,  # Validate connections before using them
    )
    if make_url(url).get_driver_name() == "asyncpg":
        options["connect_args"] = {
            "command_timeout": settings.DB_COMMAND_TIMEOUT,  # Query timeout in seconds
            "server_settings": {
                "jit": "off",
                "application_name": "mpgs_payments_api",  # For monitoring
            },
        }
    return options


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine, expire_on_commit=False, class_=AsyncSession
)
