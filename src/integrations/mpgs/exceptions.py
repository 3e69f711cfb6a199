"""
MPGS Integration Exceptions

Gateway errors are split so callers can tell a rejected payload shape
(retryable with another shape) from an unreachable gateway (not retried).
"""

from typing import Any, Dict, Optional


class MPGSError(Exception):
    """Base class for Mastercard gateway errors"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self):
        if self.original_error:
            return f"{self.message} | Original error: {str(self.original_error)}"
        return self.message


class MPGSConfigurationError(MPGSError):
    """Raised when a required gateway setting (e.g. API password) is missing"""


class MPGSGatewayUnreachable(MPGSError):
    """Raised on transport failures: timeout, DNS, TLS, connection reset"""


class MPGSProtocolError(MPGSError):
    """Raised when the gateway answers with a body we cannot interpret"""


class MPGSGatewayRejected(MPGSError):
    """Raised when the gateway returns a structured error response"""

    def __init__(
        self,
        explanation: str,
        status_code: Optional[int] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        self.explanation = explanation
        self.status_code = status_code
        self.body = body or {}
        super().__init__(f"Gateway rejected request ({status_code}): {explanation}")

    def _error_detail(self, key: str) -> Optional[str]:
        error = self.body.get("error")
        if not isinstance(error, dict):
            return None
        return error.get(key)

    @property
    def cause(self) -> Optional[str]:
        return self._error_detail("cause")

    @property
    def field(self) -> Optional[str]:
        return self._error_detail("field")
