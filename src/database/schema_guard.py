"""
Lazy schema guard for the payment correlation columns on ``orders``.

Older deployments created the orders table before the MPGS fields existed.
Instead of a separate migration step the guard checks, once per process,
that the columns and indexes are present and adds whichever are missing.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.shared.error_handler import ErrorHandler

ORDERS_TABLE = "orders"

# column name -> DDL type
REQUIRED_COLUMNS: Dict[str, str] = {
    "currency": "VARCHAR(3)",
    "payment_success_indicator": "VARCHAR(255)",
    "payment_transaction_id": "VARCHAR(255)",
}

# index name -> indexed column
REQUIRED_INDEXES: Dict[str, str] = {
    "idx_orders_payment_session": "payment_session_id",
    "idx_orders_payment_success_indicator": "payment_success_indicator",
}


@dataclass
class SchemaStatus:
    """Process-lifetime state of the guard. Owned by the dependency root."""

    verified: bool = False
    in_flight: Optional["asyncio.Task[bool]"] = None
    columns: FrozenSet[str] = field(default_factory=frozenset)

    def reset(self) -> None:
        self.verified = False
        self.in_flight = None
        self.columns = frozenset()


class PaymentSchemaGuard:
    """Ensures the orders table can hold MPGS correlation state."""

    def __init__(self, engine: AsyncEngine, status: SchemaStatus):
        self._error_handler = ErrorHandler(__name__)
        self.engine = engine
        self.status = status

    def has_column(self, name: str) -> bool:
        return name in self.status.columns

    async def ensure_schema(self) -> bool:
        """
        Returns True once the schema is verified. Concurrent callers share a
        single in-flight check. Errors are logged and reported as False; the
        next call retries.
        """
        if self.status.verified:
            return True

        if self.status.in_flight is None:
            self.status.in_flight = asyncio.ensure_future(self._check())

        # Shielded so one cancelled request does not abort the shared check
        return await asyncio.shield(self.status.in_flight)

    async def _check(self) -> bool:
        try:
            async with self.engine.begin() as conn:
                columns, indexes = await conn.run_sync(self._inspect)
                self.status.columns = frozenset(columns)

                for column, ddl_type in REQUIRED_COLUMNS.items():
                    if column in columns:
                        continue
                    self._error_handler.logger.info(
                        f"[SCHEMA] Adding {ORDERS_TABLE}.{column} column"
                    )
                    await conn.execute(
                        text(f"ALTER TABLE {ORDERS_TABLE} ADD COLUMN {column} {ddl_type}")
                    )
                    columns.append(column)

                for index, column in REQUIRED_INDEXES.items():
                    if index in indexes:
                        continue
                    self._error_handler.logger.info(f"[SCHEMA] Creating {index}")
                    await conn.execute(
                        text(f"CREATE INDEX {index} ON {ORDERS_TABLE} ({column})")
                    )

            self.status.columns = frozenset(columns)
            self.status.verified = True
            self._error_handler.logger.info("[SCHEMA] Payment schema verified")
            return True
        except Exception as e:
            self._error_handler.logger.error(
                f"[SCHEMA] Payment schema ensure failed: {e}"
            )
            return False
        finally:
            self.status.in_flight = None

    @staticmethod
    def _inspect(sync_conn) -> Tuple[List[str], List[str]]:
        inspector = inspect(sync_conn)
        columns = [c["name"] for c in inspector.get_columns(ORDERS_TABLE)]
        indexes = [i["name"] for i in inspector.get_indexes(ORDERS_TABLE)]
        return columns, indexes
