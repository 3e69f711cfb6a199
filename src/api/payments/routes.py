from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from src.api.auth.models import DecodedToken
from src.api.payments.models import (
    CheckoutSessionRequest,
    LegacySessionRequest,
    MobileSessionRequest,
    PaymentStatusResponse,
)
from src.api.payments.pages import (
    mobile_cancel_page,
    mobile_success_page,
    payment_redirect_page,
)
from src.api.payments.reconciliation import ReconciliationEngine
from src.api.payments.service import PaymentService
from src.config.constants import PaymentStatus
from src.config.settings import settings
from src.core.responses import failure_response, success_response
from src.dependencies.auth import get_current_user
from src.dependencies.payments import get_payment_service, get_reconciliation_engine
from src.integrations.mpgs.exceptions import MPGSConfigurationError, MPGSError
from src.shared.error_handler import ServiceError
from src.shared.exceptions import BadRequestException
from src.shared.utils import get_logger

logger = get_logger(__name__)

payments_router = APIRouter(prefix="/api/payments", tags=["Payments"])

PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
ReconciliationDep = Annotated[ReconciliationEngine, Depends(get_reconciliation_engine)]


def _frontend_redirect(base: str, path: str, **params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(
        f"{base}{path}?{query}", status_code=status.HTTP_302_FOUND
    )


def _payment_failed_redirect(**params) -> RedirectResponse:
    return _frontend_redirect(settings.FRONTEND_URL, "/payment-failed", **params)


def _session_failure(error: str, exc: Exception) -> JSONResponse:
    """Generic body for clients; the gateway explanation stays in the logs."""
    logger.error(f"{error}: {exc}")
    if isinstance(exc, MPGSConfigurationError):
        return failure_response(error, "Payment gateway is not configured")
    if isinstance(exc, MPGSError):
        return failure_response(
            error, "Payment gateway did not accept the request", status.HTTP_502_BAD_GATEWAY
        )
    return failure_response(error, "Unexpected error while preparing payment")


def _order_id_param(order_id: Optional[str], orders_id: Optional[str]) -> Optional[str]:
    return orders_id or order_id


@payments_router.get(
    "/mpgs/payment/view",
    summary="Start hosted checkout for an order",
)
async def payment_view(
    service: PaymentServiceDep,
    orderId: Optional[str] = Query(None),
    orders_id: Optional[str] = Query(None),
    lang: str = Query("en"),
    mobile: bool = Query(False),
):
    """
    Creates a hosted checkout session and either redirects the browser to the
    gateway payment page or, for mobile, returns the session as JSON.
    """
    raw_order_id = _order_id_param(orderId, orders_id)
    try:
        result = await service.start_payment_view(raw_order_id, lang, mobile)
    except (MPGSError, ServiceError) as e:
        if mobile:
            return _session_failure("Payment initialization failed", e)
        logger.error(f"Payment view error for order {raw_order_id}: {e}")
        return _payment_failed_redirect(orderId=raw_order_id)

    if mobile:
        return JSONResponse(
            {
                "success": True,
                "sessionId": result.session_id,
                "paymentUrl": result.payment_url,
                "orderId": result.order_id,
                "amount": float(result.amount),
                "currency": result.currency,
            }
        )

    return HTMLResponse(
        payment_redirect_page(
            result.order_id,
            f"{result.amount:.2f}",
            result.currency,
            result.payment_url,
            lang,
        )
    )


@payments_router.get(
    "/mpgs/payment/status",
    response_model=PaymentStatusResponse,
    summary="Poll payment status of an order",
)
async def payment_status(
    engine: ReconciliationDep,
    orderId: Optional[str] = Query(None),
    orders_id: Optional[str] = Query(None),
):
    order = await engine.status(_order_id_param(orderId, orders_id))
    return PaymentStatusResponse(
        success=order.payment_status == PaymentStatus.PAID.value,
        orderId=order.id,
        paymentStatus=order.payment_status,
        transactionId=order.payment_transaction_id or order.payment_session_id,
        resultIndicator=order.payment_success_indicator,
    )


@payments_router.get(
    "/mpgs/payment/success",
    summary="Client success callback (unverified)",
)
async def payment_success(
    engine: ReconciliationDep,
    orderId: Optional[str] = Query(None),
    orders_id: Optional[str] = Query(None),
    resultIndicator: Optional[str] = Query(None),
    mobile: bool = Query(False),
):
    """
    Convenience callback used by the hosted page return and the mobile app.
    Marks the order paid without verifying the indicator; the authoritative
    confirmation is the /mpgs/return handler.
    """
    raw_order_id = _order_id_param(orderId, orders_id)
    try:
        result = await engine.confirm_success_callback(raw_order_id, resultIndicator)
    except ServiceError as e:
        if mobile:
            return _session_failure("Payment completion failed", e)
        logger.error(f"Payment success callback failed for order {raw_order_id}: {e}")
        return _payment_failed_redirect(orderId=raw_order_id)

    if mobile:
        return HTMLResponse(mobile_success_page(result.order_id))
    return _frontend_redirect(
        settings.CLIENT_BASE_URL, "/home", thanks=1, order_id=result.order_id
    )


@payments_router.get(
    "/mpgs/payment/cancel",
    summary="User cancelled the hosted checkout",
)
async def payment_cancel(
    engine: ReconciliationDep,
    orderId: Optional[str] = Query(None),
    orders_id: Optional[str] = Query(None),
    mobile: bool = Query(False),
):
    raw_order_id = _order_id_param(orderId, orders_id)
    try:
        result = await engine.cancel(raw_order_id)
    except ServiceError as e:
        if mobile:
            return _session_failure("Payment cancellation handling failed", e)
        logger.error(f"Payment cancel failed for order {raw_order_id}: {e}")
        return _payment_failed_redirect(orderId=raw_order_id)

    if mobile:
        return HTMLResponse(mobile_cancel_page(result.order_id))
    return _frontend_redirect(
        settings.CLIENT_BASE_URL, "/payment-cancelled", orderId=result.order_id
    )


@payments_router.post(
    "/mpgs/session",
    summary="Create a checkout session (admin dashboard)",
)
async def create_session(body: LegacySessionRequest, service: PaymentServiceDep):
    try:
        result = await service.create_session(body)
    except (MPGSError, ServiceError) as e:
        return _session_failure("Session creation failed", e)

    view_url = service.view_url(result.order_id)
    return JSONResponse(
        {
            "success": True,
            "sessionId": result.session_id,
            "session": {"id": result.session_id},
            "orderId": result.order_id,
            "order": {
                "id": result.order_id,
                "amount": float(result.amount),
                "currency": result.currency,
            },
            "amount": float(result.amount),
            "currency": result.currency,
            "successIndicator": result.success_indicator,
            "checkoutScript": result.checkout_script,
            "checkoutUrl": view_url,
            "redirectUrl": view_url,
            "paymentUrl": result.payment_url,
        }
    )


@payments_router.post(
    "/mpgs/mobile/session",
    summary="Create a checkout session for the mobile app",
)
async def create_mobile_session(body: MobileSessionRequest, service: PaymentServiceDep):
    try:
        result = await service.create_mobile_session(body)
    except (MPGSError, ServiceError) as e:
        return _session_failure("Failed to prepare mobile payment session", e)

    return JSONResponse(
        {
            "success": True,
            "orderId": result.order_id,
            "amount": float(result.amount),
            "currency": result.currency,
            "sessionId": result.session_id,
            "paymentUrl": result.payment_url,
            "checkoutUrl": result.checkout_url,
            "checkoutScript": result.checkout_script,
            "returnUrl": result.return_url,
            "cancelUrl": result.cancel_url,
            "successIndicator": result.success_indicator,
        }
    )


@payments_router.post(
    "/mpgs/checkout-session",
    summary="Create a hosted checkout session",
)
async def create_checkout_session(
    body: CheckoutSessionRequest,
    service: PaymentServiceDep,
    current_user: Annotated[DecodedToken, Depends(get_current_user)],
):
    logger.info(f"Hosted checkout requested by {current_user.uid} for order {body.orderId}")
    try:
        result = await service.create_checkout_session(body)
    except (MPGSError, ServiceError) as e:
        return _session_failure("Failed to create checkout session", e)

    return JSONResponse(
        {
            "success": True,
            "mode": "hostedCheckout",
            "sessionId": result.session_id,
            "orderId": result.order_id,
            "checkoutUrl": result.checkout_url,
            "checkoutScript": result.checkout_script,
            "merchantId": service.client.merchant_id,
            "successIndicator": result.success_indicator,
        }
    )


@payments_router.get(
    "/mpgs/return",
    summary="Gateway return handler",
)
async def payment_return(
    engine: ReconciliationDep,
    resultIndicator: Optional[str] = Query(None),
    orderId: Optional[str] = Query(None),
):
    """
    Where the gateway sends the shopper after payment. The echoed
    resultIndicator is compared with the success indicator stored when the
    session was created; only a match marks the order paid.
    """
    if not resultIndicator or not orderId:
        raise BadRequestException("Missing required parameters")

    try:
        result = await engine.confirm_return(orderId, resultIndicator)
    except ServiceError as e:
        logger.error(f"MPGS return processing error for order {orderId}: {e}")
        return _payment_failed_redirect(error="processing_error")

    if result.payment_status == PaymentStatus.PAID.value:
        return _frontend_redirect(
            settings.FRONTEND_URL, "/payment-success", orderId=result.order_id
        )
    return _payment_failed_redirect(orderId=result.order_id)


@payments_router.get(
    "/mpgs/order/{order_id}",
    summary="Payment fields of an order",
)
async def get_order(order_id: str, service: PaymentServiceDep):
    order = await service.get_order_payment(order_id)
    return success_response({"order": order})


@payments_router.get(
    "/mpgs/debug-order/{order_id}",
    summary="Gateway view of an order",
)
async def debug_order(order_id: str, service: PaymentServiceDep):
    try:
        result = await service.debug_gateway_order(order_id)
    except MPGSError as e:
        return _session_failure("Failed to retrieve gateway order", e)
    return success_response(result)
