"""
Checkout session negotiation.

Merchant profiles on the gateway accept different session payload shapes:
some require sourceOfFunds and some reject it, some want order amount and
currency on the session and some reject them. The negotiator walks an
ordered chain of shapes and only moves on when the gateway rejected the
previous one for its shape.
"""

import re
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from src.config.constants import RETRYABLE_SHAPE_PATTERN, MPGSOperation
from src.config.settings import settings
from src.integrations.mpgs.client import MPGSClient, format_amount
from src.integrations.mpgs.exceptions import MPGSGatewayRejected
from src.integrations.mpgs.models import NegotiatedSession, normalize_session_response
from src.shared.error_handler import ErrorHandler

ShapeClassifier = Callable[[str], bool]

AMOUNT_FIELD_PATTERN = re.compile(r"order\.(amount|currency)", re.IGNORECASE)
SOURCE_OF_FUNDS_PATTERN = re.compile(r"sourceOfFunds", re.IGNORECASE)


def make_shape_classifier(pattern: str = RETRYABLE_SHAPE_PATTERN) -> ShapeClassifier:
    """Build a predicate telling whether a rejection explanation is about payload shape."""
    compiled = re.compile(pattern, re.IGNORECASE)

    def is_retryable(explanation: str) -> bool:
        return bool(explanation) and compiled.search(str(explanation)) is not None

    return is_retryable


default_shape_classifier = make_shape_classifier()


class _Attempts:
    """Runs labelled session-creation attempts and records them in order."""

    def __init__(self, client: MPGSClient, logger):
        self.client = client
        self.logger = logger
        self.labels: List[str] = []

    async def post(self, label: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.labels.append(label)
        self.logger.info(f"[MPGS] Attempt {label} payload: {payload}")
        try:
            data = await self.client.create_session(payload)
        except MPGSGatewayRejected as e:
            self.logger.warning(f"[MPGS] Attempt {label} failed: {e.explanation}")
            raise
        self.logger.info(f"[MPGS] Attempt {label} succeeded")
        return data

    def result(self, label: str, data: Dict[str, Any]) -> NegotiatedSession:
        return NegotiatedSession(
            session=normalize_session_response(data),
            attempts=list(self.labels),
            accepted_label=label,
        )


class SessionNegotiator:
    """
    Creates checkout sessions, falling back across payload shapes.

    Only MPGSGatewayRejected errors whose explanation satisfies
    ``is_retryable`` move the chain forward. Configuration, transport and
    protocol errors always propagate untouched.
    """

    def __init__(
        self,
        client: MPGSClient,
        is_retryable: ShapeClassifier = default_shape_classifier,
        merchant_name: Optional[str] = None,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.client = client
        self.is_retryable = is_retryable
        self.merchant_name = merchant_name or settings.MPGS_MERCHANT_NAME

    @staticmethod
    def _order(order_id, amount=None, currency=None) -> Dict[str, Any]:
        order: Dict[str, Any] = {"id": str(order_id)}
        if amount is not None:
            order["amount"] = format_amount(amount)
            order["currency"] = currency
        return order

    def _interaction(
        self,
        return_url: str,
        cancel_url: Optional[str],
        with_merchant: bool = False,
        locale: Optional[str] = None,
    ) -> Dict[str, Any]:
        interaction: Dict[str, Any] = {
            "operation": "PURCHASE",
            "returnUrl": return_url,
            "cancelUrl": cancel_url or return_url,
        }
        if with_merchant:
            interaction["merchant"] = {"name": self.merchant_name}
        if locale:
            interaction["locale"] = locale
        return interaction

    async def create_checkout_session(
        self,
        order_id: Union[str, int],
        amount: Union[Decimal, float, str],
        currency: str,
        return_url: str,
        cancel_url: Optional[str] = None,
    ) -> NegotiatedSession:
        """
        Walk the fallback chain:

        1. CREATE_CHECKOUT_SESSION with the order id only
        2. CREATE_CHECKOUT_SESSION with order amount/currency, skipped when
           the gateway named those fields in its rejection
        3. INITIATE_CHECKOUT with interaction and sourceOfFunds
        4. INITIATE_CHECKOUT without sourceOfFunds, only when step 3 was
           rejected because of sourceOfFunds

        Raises the last MPGSGatewayRejected when the chain is exhausted, or
        the first rejection that is not about payload shape.
        """
        if not return_url:
            raise ValueError("return_url is required for an MPGS checkout session")

        attempts = _Attempts(self.client, self._error_handler.logger)
        create_op = MPGSOperation.CREATE_CHECKOUT_SESSION.value
        initiate_op = MPGSOperation.INITIATE_CHECKOUT.value

        label = "CREATE_CHECKOUT_SESSION(minimal)"
        try:
            data = await attempts.post(
                label, {"apiOperation": create_op, "order": self._order(order_id)}
            )
            return attempts.result(label, data)
        except MPGSGatewayRejected as e:
            if not self.is_retryable(e.explanation):
                raise
            last_error = e

        if not AMOUNT_FIELD_PATTERN.search(last_error.explanation):
            label = "CREATE_CHECKOUT_SESSION(withAmount)"
            try:
                data = await attempts.post(
                    label,
                    {
                        "apiOperation": create_op,
                        "order": self._order(order_id, amount, currency),
                    },
                )
                return attempts.result(label, data)
            except MPGSGatewayRejected as e:
                if not self.is_retryable(e.explanation):
                    raise
                last_error = e

        enhanced = {
            "apiOperation": initiate_op,
            "order": self._order(order_id, amount, currency),
            "interaction": self._interaction(return_url, cancel_url),
            "sourceOfFunds": {"type": "CARD"},
        }
        label = "INITIATE_CHECKOUT"
        try:
            data = await attempts.post(label, enhanced)
            return attempts.result(label, data)
        except MPGSGatewayRejected as e:
            # Step 4 only drops sourceOfFunds
            if not SOURCE_OF_FUNDS_PATTERN.search(e.explanation):
                raise
            last_error = e

        without_funds = {k: v for k, v in enhanced.items() if k != "sourceOfFunds"}
        label = "INITIATE_CHECKOUT(no sourceOfFunds)"
        try:
            data = await attempts.post(label, without_funds)
            return attempts.result(label, data)
        except MPGSGatewayRejected as e:
            self._error_handler.logger.error(
                f"[MPGS] Session negotiation exhausted for order {order_id} "
                f"after {attempts.labels}; previous rejection: {last_error.explanation}"
            )
            raise e

    async def create_hosted_checkout(
        self,
        order_id: Union[str, int],
        amount: Union[Decimal, float, str],
        currency: str,
        return_url: str,
        cancel_url: Optional[str] = None,
    ) -> NegotiatedSession:
        """Hosted checkout session that persists returnUrl and merchant name on the session."""
        if not return_url:
            raise ValueError("return_url is required for a hosted checkout session")

        attempts = _Attempts(self.client, self._error_handler.logger)
        body = {
            "order": self._order(order_id, amount, currency),
            "interaction": self._interaction(return_url, cancel_url, with_merchant=True),
        }

        label = "CREATE_CHECKOUT_SESSION(hostedCheckout)"
        try:
            data = await attempts.post(
                label,
                {"apiOperation": MPGSOperation.CREATE_CHECKOUT_SESSION.value, **body},
            )
            return attempts.result(label, data)
        except MPGSGatewayRejected as e:
            if not self.is_retryable(e.explanation):
                raise

        label = "INITIATE_CHECKOUT(hostedCheckout fallback)"
        data = await attempts.post(
            label, {"apiOperation": MPGSOperation.INITIATE_CHECKOUT.value, **body}
        )
        return attempts.result(label, data)

    async def create_hosted_session(
        self,
        order_id: Union[str, int],
        amount: Union[Decimal, float, str],
        currency: str,
        return_url: str,
        cancel_url: Optional[str] = None,
        locale: Optional[str] = None,
        description: Optional[str] = None,
    ) -> NegotiatedSession:
        """Single INITIATE_CHECKOUT carrying the return and cancel URLs."""
        if not return_url:
            raise ValueError("return_url is required for a hosted session")

        attempts = _Attempts(self.client, self._error_handler.logger)
        order = self._order(order_id, amount, currency)
        if description:
            order["description"] = description

        label = "INITIATE_CHECKOUT(hosted)"
        data = await attempts.post(
            label,
            {
                "apiOperation": MPGSOperation.INITIATE_CHECKOUT.value,
                "order": order,
                "interaction": self._interaction(
                    return_url, cancel_url, with_merchant=True, locale=locale
                ),
            },
        )
        return attempts.result(label, data)
