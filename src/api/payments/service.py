import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from src.api.payments.models import (
    CheckoutSessionRequest,
    LegacySessionRequest,
    MobileSessionRequest,
    OrderPaymentSchema,
    PaymentSessionResult,
)
from src.api.payments.reconciliation import parse_order_id
from src.api.payments.repository import OrderPaymentRepository
from src.config.constants import PaymentStatus
from src.config.settings import settings
from src.integrations.mpgs.client import MPGSClient
from src.integrations.mpgs.exceptions import (
    MPGSGatewayRejected,
    MPGSGatewayUnreachable,
    MPGSProtocolError,
)
from src.integrations.mpgs.models import NegotiatedSession
from src.integrations.mpgs.negotiation import SessionNegotiator
from src.shared.error_handler import ErrorHandler
from src.shared.exceptions import BadRequestException, ResourceNotFoundException

PAYMENTS_PATH = "/api/payments/mpgs"


class PaymentService:
    """
    MPGS checkout session orchestration.

    Resolves the order, negotiates a session with the gateway and stores the
    correlation fields on the order before any URL is handed to the client.
    """

    def __init__(
        self,
        repository: OrderPaymentRepository,
        client: MPGSClient,
        negotiator: Optional[SessionNegotiator] = None,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.repository = repository
        self.client = client
        self.negotiator = negotiator or SessionNegotiator(client)

    # URLs

    @staticmethod
    def _service_url(path: str, **params: Any) -> str:
        query = urlencode({k: v for k, v in params.items() if v is not None})
        url = f"{settings.MPGS_RETURN_BASE_URL}{PAYMENTS_PATH}{path}"
        return f"{url}?{query}" if query else url

    def view_url(self, order_id: int) -> str:
        return self._service_url("/payment/view", orderId=order_id)

    def success_url(self, order_id: int, mobile: bool = False) -> str:
        return self._service_url(
            "/payment/success", orderId=order_id, mobile="true" if mobile else None
        )

    def cancel_url(self, order_id: int, mobile: bool = False) -> str:
        return self._service_url(
            "/payment/cancel", orderId=order_id, mobile="true" if mobile else None
        )

    def return_url(self, order_id: int) -> str:
        # The gateway appends resultIndicator to this URL
        return self._service_url("/return", orderId=order_id)

    # Helpers

    async def _require_order(self, raw_order_id: Any) -> OrderPaymentSchema:
        order_id = parse_order_id(raw_order_id)
        order = await self.repository.get_order(order_id)
        if order is None:
            raise ResourceNotFoundException("Order not found")
        return order

    @staticmethod
    def _resolve_currency(order: OrderPaymentSchema, requested: Optional[str]) -> str:
        currency = requested or order.currency or settings.MPGS_DEFAULT_CURRENCY
        currency = currency.strip().upper()
        if not re.fullmatch(r"[A-Z]{3}", currency):
            raise BadRequestException("currency must be a 3-letter ISO code")
        return currency

    @staticmethod
    def _resolve_amount(order: OrderPaymentSchema, requested: Optional[Any]) -> Decimal:
        raw = requested if requested not in (None, "") else order.total_amount
        try:
            amount = Decimal(str(raw))
        except (InvalidOperation, ValueError):
            raise BadRequestException("A positive amount is required to initiate payment")
        if not amount.is_finite() or amount <= 0:
            raise BadRequestException("A positive amount is required to initiate payment")
        return amount.quantize(Decimal("0.01"))

    async def _ensure_gateway_order(self, order_id: int, amount: Decimal, currency: str):
        """Some merchant profiles need the order to exist before a hosted session."""
        try:
            await self.client.put_order(order_id, amount, currency)
        except (MPGSGatewayRejected, MPGSGatewayUnreachable, MPGSProtocolError) as e:
            self._error_handler.logger.warning(f"[MPGS] ensureOrder skipped: {e}")

    async def _persist(
        self,
        order: OrderPaymentSchema,
        negotiated: NegotiatedSession,
        amount: Decimal,
        currency: str,
        return_url: str,
        cancel_url: str,
    ) -> PaymentSessionResult:
        session = negotiated.session
        await self.repository.store_checkout_session(
            order.id, session.session_id, session.success_indicator, currency
        )
        self._error_handler.logger.info(
            f"Stored MPGS session {session.session_id} for order {order.id} "
            f"via {negotiated.accepted_label}"
        )
        return PaymentSessionResult(
            order_id=order.id,
            session_id=session.session_id,
            success_indicator=session.success_indicator,
            amount=amount,
            currency=currency,
            payment_url=self.client.payment_url(session.session_id),
            checkout_url=self.client.checkout_url(session.session_id),
            checkout_script=session.checkout_js or self.client.checkout_script_url(),
            return_url=return_url,
            cancel_url=cancel_url,
            attempts=negotiated.attempts,
        )

    # Session creation

    async def start_payment_view(
        self, raw_order_id: Any, lang: str = "en", mobile: bool = False
    ) -> PaymentSessionResult:
        """Hosted checkout for the redirect page (browser) or its JSON twin (mobile)."""
        self.client.ensure_configured()
        order = await self._require_order(raw_order_id)
        amount = self._resolve_amount(order, None)
        currency = self._resolve_currency(order, None)
        return_url = self.success_url(order.id, mobile)
        cancel_url = self.cancel_url(order.id, mobile)

        negotiated = await self.negotiator.create_hosted_session(
            order.id,
            amount,
            currency,
            return_url,
            cancel_url,
            locale="ar_JO" if lang == "ar" else "en_US",
            description=f"Order #{order.id}",
        )
        return await self._persist(order, negotiated, amount, currency, return_url, cancel_url)

    async def create_session(self, request: LegacySessionRequest) -> PaymentSessionResult:
        """Admin dashboard session. Negotiates the payload shape with the gateway."""
        self.client.ensure_configured()
        raw_order_id = request.resolved_order_id
        if raw_order_id is None:
            raise BadRequestException("orderId, orders_id, or order_id is required")
        order = await self._require_order(raw_order_id)
        amount = self._resolve_amount(order, request.amount)
        currency = self._resolve_currency(order, request.currency)
        return_url = self.return_url(order.id)
        cancel_url = self.cancel_url(order.id)

        negotiated = await self.negotiator.create_checkout_session(
            order.id, amount, currency, return_url, cancel_url
        )
        return await self._persist(order, negotiated, amount, currency, return_url, cancel_url)

    async def create_mobile_session(
        self, request: MobileSessionRequest
    ) -> PaymentSessionResult:
        self.client.ensure_configured()
        if request.orderId in (None, ""):
            raise BadRequestException("orderId is required")
        order = await self._require_order(request.orderId)
        amount = self._resolve_amount(order, request.amount)
        currency = self._resolve_currency(order, request.currency)
        return_url = self.success_url(order.id, mobile=True)
        cancel_url = self.cancel_url(order.id, mobile=True)

        await self._ensure_gateway_order(order.id, amount, currency)
        negotiated = await self.negotiator.create_hosted_session(
            order.id, amount, currency, return_url, cancel_url
        )
        return await self._persist(order, negotiated, amount, currency, return_url, cancel_url)

    async def create_checkout_session(
        self, request: CheckoutSessionRequest
    ) -> PaymentSessionResult:
        """Authenticated hosted checkout. Confirmation arrives on the return handler."""
        self.client.ensure_configured()
        if request.orderId in (None, ""):
            raise BadRequestException("orderId is required")
        if request.amount is None:
            raise BadRequestException("amount is required")
        order = await self._require_order(request.orderId)
        if order.payment_status == PaymentStatus.PAID.value:
            raise BadRequestException("Order is already paid")

        amount = self._resolve_amount(order, request.amount)
        currency = self._resolve_currency(order, request.currency)
        return_url = self.return_url(order.id)
        cancel_url = settings.MPGS_CANCEL_URL or self.cancel_url(order.id)

        self._error_handler.logger.info(
            f"Creating Hosted Checkout session for order {order.id}"
        )
        negotiated = await self.negotiator.create_hosted_checkout(
            order.id, amount, currency, return_url, cancel_url
        )
        return await self._persist(order, negotiated, amount, currency, return_url, cancel_url)

    # Lookups

    async def get_order_payment(self, raw_order_id: Any) -> OrderPaymentSchema:
        order = await self._require_order(raw_order_id)
        if not order.currency:
            order.currency = settings.MPGS_DEFAULT_CURRENCY
        return order

    async def debug_gateway_order(self, raw_order_id: Any) -> Dict[str, Any]:
        """Gateway-side order state for operators. Does not touch local status."""
        order_id = parse_order_id(raw_order_id)
        data = await self.client.get_order(order_id)
        response = data.get("response")
        return {
            "orderId": order_id,
            "mpgsOrderData": data,
            "debugInfo": {
                "result": data.get("result"),
                "status": data.get("status"),
                "gatewayCode": (
                    response.get("gatewayCode") if isinstance(response, dict) else None
                ),
                "transactions": data.get("transaction"),
                "authentication": data.get("authentication"),
            },
        }
