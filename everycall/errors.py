"""
Error taxonomy shared by the EveryCall services.

Ingress code raises these; the HTTP layer maps them to JSON responses using
``status_code`` and ``code``. Provider degradation has no error type:
completion and synthesis failures are absorbed into fallbacks and never cross
a service boundary as errors.
"""

from typing import Any, Dict, List, Optional


class EveryCallError(Exception):
    """Base class for request rejections with a stable error code."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "", *, code: Optional[str] = None, details: Optional[List[Any]] = None):
        super().__init__(message or self.code)
        if code:
            self.code = code
        self.details = details or []

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code}
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationFailure(EveryCallError):
    """Bad, missing or stale webhook signature."""

    status_code = 401
    code = "invalid_signature"


class PayloadError(EveryCallError):
    """Unparsable or malformed provider envelope."""

    status_code = 400
    code = "invalid_payload"


class RoutingMiss(EveryCallError):
    """No active tenant owns the dialed number. Expected, not an alarm."""

    status_code = 404
    code = "tenant_not_found_for_number"


class ValidationFailure(EveryCallError):
    """Required fields missing or schema mismatch."""

    status_code = 422
    code = "missing_required_fields"
