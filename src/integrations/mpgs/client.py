"""
Mastercard MPGS REST client.

Thin authenticated wrapper over the gateway's merchant REST surface.
Holds no state beyond configuration.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Union

import httpx

from src.config.constants import MPGSOperation
from src.config.settings import settings
from src.integrations.mpgs.exceptions import (
    MPGSConfigurationError,
    MPGSGatewayRejected,
    MPGSGatewayUnreachable,
    MPGSProtocolError,
)
from src.shared.error_handler import ErrorHandler


def format_amount(amount: Union[Decimal, float, int, str]) -> str:
    """Gateway amounts are strings with exactly two decimals."""
    return "{:.2f}".format(
        Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    )


def _error_explanation(error: Any, status_code: int) -> str:
    """Gateways and proxies in front of them send error as an object, a string or null."""
    if isinstance(error, dict):
        explanation = error.get("explanation") or error.get("cause")
    elif isinstance(error, str):
        explanation = error.strip()
    else:
        explanation = None
    return str(explanation) if explanation else f"HTTP {status_code}"


class MPGSClient:
    """
    Mastercard MPGS REST client.

    Every call raises:
    - MPGSConfigurationError before any I/O when the API password is missing
    - MPGSGatewayUnreachable on transport errors and timeouts
    - MPGSGatewayRejected when the gateway answers with an error body
    - MPGSProtocolError when the body cannot be parsed
    """

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        api_username: Optional[str] = None,
        api_password: Optional[str] = None,
        gateway_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.merchant_id = merchant_id or settings.MPGS_MERCHANT_ID
        self.api_username = (
            api_username or settings.MPGS_API_USERNAME or f"merchant.{self.merchant_id}"
        )
        self.api_password = (
            api_password if api_password is not None else settings.MPGS_API_PASSWORD
        )
        self.gateway_url = gateway_url or settings.MPGS_GATEWAY_URL
        self.api_version = api_version or settings.MPGS_API_VERSION
        self.timeout = timeout or settings.MPGS_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def base_url(self) -> str:
        return (
            f"{self.gateway_url}/api/rest/version/{self.api_version}"
            f"/merchant/{self.merchant_id}"
        )

    def payment_url(self, session_id: str) -> str:
        return f"{self.gateway_url}/checkout/pay/{session_id}"

    def checkout_url(self, session_id: str) -> str:
        return (
            f"{self.gateway_url}/checkout/version/{self.api_version}"
            f"/merchant/{self.merchant_id}/session/{session_id}"
        )

    def checkout_script_url(self) -> str:
        return f"{self.gateway_url}/checkout/version/{self.api_version}/checkout.js"

    def ensure_configured(self) -> None:
        """Raise MPGSConfigurationError when the client cannot authenticate."""
        if not self.api_password:
            raise MPGSConfigurationError(
                "MPGS_API_PASSWORD environment variable is not configured"
            )
        if not self.merchant_id:
            raise MPGSConfigurationError(
                "MPGS_MERCHANT_ID environment variable is not configured"
            )

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        self.ensure_configured()
        auth = (str(self.api_username), str(self.api_password))
        url = f"{self.base_url}{path}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, url, json=payload, auth=auth)
        except httpx.TransportError as e:
            self._error_handler.logger.error(
                f"MPGS {method} {path} unreachable: {type(e).__name__}: {e}"
            )
            raise MPGSGatewayUnreachable(f"MPGS gateway unreachable ({method} {path})", e)

        try:
            data = response.json()
        except ValueError as e:
            self._error_handler.logger.error(
                f"MPGS {method} {path} returned non-JSON body "
                f"({response.status_code}): {response.text[:500]}"
            )
            raise MPGSProtocolError(
                f"Unparseable gateway response (HTTP {response.status_code})", e
            )

        if not isinstance(data, dict):
            raise MPGSProtocolError(
                f"Unexpected gateway response type {type(data).__name__}"
            )

        if response.status_code >= 400 or data.get("result") == "ERROR":
            explanation = _error_explanation(data.get("error"), response.status_code)
            self._error_handler.logger.warning(
                f"MPGS {method} {path} rejected ({response.status_code}): {explanation}"
            )
            raise MPGSGatewayRejected(explanation, response.status_code, data)

        return data

    async def create_session(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/session", payload)

    async def update_session(
        self, session_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("PUT", f"/session/{session_id}", payload)

    async def get_order(self, order_id: Union[str, int]) -> Dict[str, Any]:
        """Gateway view of an order. For debugging only, never a trust decision."""
        data = await self._request("GET", f"/order/{order_id}")
        self._error_handler.logger.info(
            f"MPGS order {order_id}: result={data.get('result')} status={data.get('status')}"
        )
        return data

    async def put_order(
        self,
        order_id: Union[str, int],
        amount: Union[Decimal, float, str],
        currency: str,
    ) -> Dict[str, Any]:
        """Create or update the order on the gateway. Idempotent."""
        payload = {"order": {"amount": format_amount(amount), "currency": currency}}
        self._error_handler.logger.info(f"Ensuring MPGS order {order_id}: {payload}")
        return await self._request("PUT", f"/order/{order_id}", payload)

    async def run_transaction(
        self,
        order_id: Union[str, int],
        operation: Union[MPGSOperation, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body = dict(payload or {})
        body["apiOperation"] = (
            operation.value if isinstance(operation, MPGSOperation) else operation
        )
        return await self._request("POST", f"/order/{order_id}/transaction", body)

    async def _amount_transaction(
        self, operation: MPGSOperation, order_id, transaction_ref, amount, currency
    ) -> Dict[str, Any]:
        return await self.run_transaction(
            order_id,
            operation,
            {
                "transaction": {"reference": transaction_ref},
                "order": {"amount": format_amount(amount), "currency": currency},
            },
        )

    async def authorize(self, order_id, transaction_ref, amount, currency):
        return await self._amount_transaction(
            MPGSOperation.AUTHORIZE, order_id, transaction_ref, amount, currency
        )

    async def capture(self, order_id, transaction_ref, amount, currency):
        return await self._amount_transaction(
            MPGSOperation.CAPTURE, order_id, transaction_ref, amount, currency
        )

    async def refund(self, order_id, transaction_ref, amount, currency):
        return await self._amount_transaction(
            MPGSOperation.REFUND, order_id, transaction_ref, amount, currency
        )

    async def pay(self, order_id, session_id: str, transaction_ref: str):
        return await self.run_transaction(
            order_id,
            MPGSOperation.PAY,
            {
                "order": {"id": str(order_id)},
                "session": {"id": session_id},
                "transaction": {"reference": transaction_ref},
            },
        )
