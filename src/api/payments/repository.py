from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.payments.models import OrderPaymentSchema
from src.config.constants import PaymentProvider, PaymentStatus
from src.database.models.order import Order, OrderStatusHistory
from src.database.schema_guard import PaymentSchemaGuard
from src.shared.error_handler import ErrorHandler, handle_service_errors

# Columns a legacy orders table may lack until the schema guard has run
OPTIONAL_COLUMNS = ("currency", "payment_transaction_id")


class OrderPaymentRepository:
    """
    Reads and writes the payment fields of orders and the status history.

    Every status write is a single conditional UPDATE so concurrent
    confirmations for the same order cannot both count as the first
    transition into ``paid``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        schema_guard: PaymentSchemaGuard,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.session_factory = session_factory
        self.schema_guard = schema_guard

    async def _available_optional_columns(self) -> List[str]:
        if not await self.schema_guard.ensure_schema():
            self._error_handler.logger.warning(
                "Payment schema not verified, reading orders without optional columns"
            )
        return [c for c in OPTIONAL_COLUMNS if self.schema_guard.has_column(c)]

    @handle_service_errors("loading order payment fields")
    async def get_order(self, order_id: int) -> Optional[OrderPaymentSchema]:
        optional = await self._available_optional_columns()
        columns = [
            Order.id,
            Order.order_number,
            Order.total_amount,
            Order.order_status,
            Order.payment_status,
            Order.payment_method,
            Order.payment_provider,
            Order.payment_session_id,
            Order.payment_success_indicator,
        ] + [getattr(Order, name) for name in optional]

        async with self.session_factory() as session:
            result = await session.execute(
                select(*columns).where(Order.id == order_id).limit(1)
            )
            row = result.first()
            if row is None:
                return None
            return OrderPaymentSchema.model_validate(dict(row._mapping))

    @handle_service_errors("storing checkout session")
    async def store_checkout_session(
        self,
        order_id: int,
        session_id: str,
        success_indicator: Optional[str],
        currency: Optional[str] = None,
    ) -> bool:
        """Overwrite the correlation fields. Invalidates any earlier attempt's indicator."""
        values: Dict[str, Any] = {
            "payment_session_id": session_id,
            "payment_provider": PaymentProvider.MPGS.value,
            "payment_success_indicator": success_indicator,
        }
        optional = await self._available_optional_columns()
        if currency and "currency" in optional:
            values["currency"] = currency
        if "payment_transaction_id" in optional:
            values["payment_transaction_id"] = None

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                changed = result.rowcount > 0
        return changed

    @handle_service_errors("applying payment status transition")
    async def apply_transition(
        self,
        order_id: int,
        new_status: PaymentStatus,
        values: Optional[Dict[str, Any]] = None,
        expected_indicator: Optional[str] = None,
        history_status: Optional[str] = None,
        history_note: Optional[str] = None,
    ) -> bool:
        """
        Move ``payment_status`` to ``new_status`` unless the order is already
        paid. When ``expected_indicator`` is given the stored indicator must
        still equal it at write time. A history entry is inserted in the same
        transaction when the update reaches ``paid``.

        Returns whether a row changed.
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.payment_status != PaymentStatus.PAID.value,
            )
            .values(payment_status=new_status.value, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if expected_indicator is not None:
            stmt = stmt.where(Order.payment_success_indicator == expected_indicator)

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                changed = result.rowcount == 1

                if changed and new_status == PaymentStatus.PAID and history_note:
                    await session.execute(
                        insert(OrderStatusHistory).values(
                            order_id=order_id,
                            status=history_status,
                            note=history_note,
                            changed_by=None,
                        )
                    )
        return changed

    @handle_service_errors("resetting payment status")
    async def reset_to_pending(self, order_id: int) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(payment_status=PaymentStatus.PENDING.value)
                    .execution_options(synchronize_session=False)
                )
                changed = result.rowcount > 0
        return changed

    @handle_service_errors("loading payment status")
    async def get_payment_status(self, order_id: int) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order.payment_status).where(Order.id == order_id)
            )
            return result.scalar_one_or_none()

    @handle_service_errors("loading order status history")
    async def list_history(self, order_id: int) -> List[OrderStatusHistory]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.id)
            )
            return list(result.scalars().all())
