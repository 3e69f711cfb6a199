"""
Payment confirmation state machine.

    pending --(return, indicator matches)----> paid
    pending --(return, indicator differs)----> failed
    pending --(success callback)-------------> paid
    failed  --(return / callback)------------> paid | failed
    paid    --(anything)---------------------> paid (no-op)
    *       --(cancel)-----------------------> pending

The return path is the trusted one: the gateway echoes ``resultIndicator``
and only the gateway response at session creation (stored server side)
could have produced the matching value.
"""

import secrets
from typing import Any, Optional

from src.api.payments.models import OrderPaymentSchema, ReconciliationResult
from src.api.payments.repository import OrderPaymentRepository
from src.config.constants import (
    DEFAULT_CALLBACK_INDICATOR,
    HISTORY_NOTE_TEMPLATE,
    PAYMENT_METHOD_CARD,
    ConfirmationSource,
    PaymentStatus,
)
from src.shared.error_handler import ErrorHandler
from src.shared.exceptions import BadRequestException, ResourceNotFoundException


def parse_order_id(raw: Any) -> int:
    """Validate an order id coming from a query string or JSON body."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise BadRequestException("orderId parameter required")
    if isinstance(raw, bool):
        raise BadRequestException("orderId must be an integer")
    try:
        order_id = int(str(raw).strip())
    except ValueError:
        raise BadRequestException("orderId must be an integer")
    if order_id <= 0:
        raise BadRequestException("orderId must be positive")
    return order_id


def indicators_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Exact comparison. A missing value on either side never matches."""
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


class ReconciliationEngine:
    def __init__(self, repository: OrderPaymentRepository):
        self._error_handler = ErrorHandler(__name__)
        self.repository = repository

    async def _load(self, order_id: Any) -> OrderPaymentSchema:
        parsed = parse_order_id(order_id)
        order = await self.repository.get_order(parsed)
        if order is None:
            raise ResourceNotFoundException("Order not found")
        return order

    async def _result(
        self,
        order: OrderPaymentSchema,
        source: ConfirmationSource,
        target: PaymentStatus,
        changed: bool,
        matched: Optional[bool] = None,
    ) -> ReconciliationResult:
        if changed:
            status = target.value
        else:
            # Already paid, or superseded by a newer session between read and write
            status = await self.repository.get_payment_status(order.id) or order.payment_status
        return ReconciliationResult(
            order_id=order.id,
            payment_status=status,
            source=source.value,
            matched=matched,
            transitioned=changed,
        )

    async def confirm_return(
        self, order_id: Any, result_indicator: Optional[str]
    ) -> ReconciliationResult:
        """Authoritative gateway return: compare against the stored success indicator."""
        order = await self._load(order_id)
        expected = order.payment_success_indicator
        matched = indicators_match(result_indicator, expected)

        self._error_handler.logger.info(
            f"MPGS return for order {order.id}: indicator match={matched} "
            f"(current payment_status={order.payment_status})"
        )

        if matched:
            target = PaymentStatus.PAID
            changed = await self.repository.apply_transition(
                order.id,
                target,
                values={"payment_method": PAYMENT_METHOD_CARD},
                expected_indicator=expected,
                history_status=order.order_status,
                history_note=HISTORY_NOTE_TEMPLATE.format(
                    source=ConfirmationSource.RETURN.value
                ),
            )
        else:
            target = PaymentStatus.FAILED
            changed = await self.repository.apply_transition(
                order.id, target, values={"payment_method": PAYMENT_METHOD_CARD}
            )

        result = await self._result(
            order, ConfirmationSource.RETURN, target, changed, matched=matched
        )
        self._error_handler.logger.info(
            f"Order {order.order_number or order.id} payment status is {result.payment_status}"
        )
        return result

    async def confirm_success_callback(
        self, order_id: Any, result_indicator: Optional[str] = None
    ) -> ReconciliationResult:
        """
        Client-initiated "payment finished" signal. Marks the order paid
        without comparing indicators; the return path is the verified one.
        """
        order = await self._load(order_id)
        indicator = result_indicator or DEFAULT_CALLBACK_INDICATOR

        if result_indicator and not indicators_match(
            result_indicator, order.payment_success_indicator
        ):
            self._error_handler.logger.warning(
                f"Unverified success callback for order {order.id}: "
                "resultIndicator does not match the stored success indicator"
            )

        changed = await self.repository.apply_transition(
            order.id,
            PaymentStatus.PAID,
            values={"payment_success_indicator": indicator},
            history_status=order.order_status,
            history_note=HISTORY_NOTE_TEMPLATE.format(
                source=ConfirmationSource.CALLBACK.value
            ),
        )
        return await self._result(
            order, ConfirmationSource.CALLBACK, PaymentStatus.PAID, changed
        )

    async def cancel(self, order_id: Any) -> ReconciliationResult:
        """User abandoned the hosted page. The order can be paid again with a new session."""
        order = await self._load(order_id)
        await self.repository.reset_to_pending(order.id)
        self._error_handler.logger.info(f"Payment for order {order.id} cancelled by user")
        return ReconciliationResult(
            order_id=order.id,
            payment_status=PaymentStatus.PENDING.value,
            source=ConfirmationSource.CANCEL.value,
            transitioned=order.payment_status != PaymentStatus.PENDING.value,
        )

    async def status(self, order_id: Any) -> OrderPaymentSchema:
        return await self._load(order_id)
