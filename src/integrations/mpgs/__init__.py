"""
Mastercard Payment Gateway Services (MPGS) Integration Module

Provides the gateway REST client, checkout session negotiation and
response normalization. Import the client and negotiator from their
modules; this package only re-exports the error types and models.
"""

from src.integrations.mpgs.exceptions import (
    MPGSConfigurationError,
    MPGSError,
    MPGSGatewayRejected,
    MPGSGatewayUnreachable,
    MPGSProtocolError,
)
from src.integrations.mpgs.models import (
    CheckoutSession,
    NegotiatedSession,
    normalize_session_response,
)

__all__ = [
    # Exceptions
    "MPGSError",
    "MPGSConfigurationError",
    "MPGSGatewayRejected",
    "MPGSGatewayUnreachable",
    "MPGSProtocolError",
    # Models
    "CheckoutSession",
    "NegotiatedSession",
    "normalize_session_response",
]
