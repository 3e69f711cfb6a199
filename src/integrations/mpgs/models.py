"""
MPGS Integration Models

Typed views over the gateway session responses.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.integrations.mpgs.exceptions import MPGSProtocolError


class CheckoutSession(BaseModel):
    """Checkout session as returned by the gateway. Never persisted as such."""

    session_id: str = Field(..., description="Gateway session identifier")
    success_indicator: Optional[str] = Field(
        None, description="Token echoed back as resultIndicator on success"
    )
    checkout_js: Optional[str] = Field(None, description="Checkout script URL")
    raw: Dict[str, Any] = Field(default_factory=dict)


class NegotiatedSession(BaseModel):
    """Result of the shape negotiation: the session plus the attempts made."""

    session: CheckoutSession
    attempts: List[str] = Field(default_factory=list)
    accepted_label: str


def _dig(data: Dict[str, Any], *path: str) -> Optional[Any]:
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


SESSION_ID_PATHS = (("session", "id"), ("sessionId",))
SUCCESS_INDICATOR_PATHS = (("successIndicator",), ("session", "successIndicator"))
CHECKOUT_JS_PATHS = (("checkoutJs",), ("session", "checkoutJs"))


def _first(data: Dict[str, Any], paths) -> Optional[str]:
    for path in paths:
        value = _dig(data, *path)
        if isinstance(value, (str, int)) and str(value):
            return str(value)
    return None


def normalize_session_response(raw: Any) -> CheckoutSession:
    """
    Normalize the different session response shapes the gateway produces.

    Raises:
        MPGSProtocolError: if no known field path carries a session id
    """
    if not isinstance(raw, dict):
        raise MPGSProtocolError("unrecognized gateway response shape: not an object")

    session_id = _first(raw, SESSION_ID_PATHS)
    if not session_id:
        raise MPGSProtocolError(
            f"unrecognized gateway response shape: keys={sorted(raw.keys())}"
        )

    return CheckoutSession(
        session_id=session_id,
        success_indicator=_first(raw, SUCCESS_INDICATOR_PATHS),
        checkout_js=_first(raw, CHECKOUT_JS_PATHS),
        raw=raw,
    )
