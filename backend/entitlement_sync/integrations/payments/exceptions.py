"""
Payment provider exceptions.

All inherit from PaymentProviderError so the reconciliation engine treats
them as structural failures of the event being processed.
"""

from typing import Any, Dict, Optional

from entitlement_sync.entitlements.errors import PaymentProviderError


class PaymentProviderAuthenticationError(PaymentProviderError):
    """Raised when API authentication fails (401/403)."""
    error_code = "payment_provider_auth_error"

    def __init__(
        self,
        message: str = "Authentication failed - API key may be invalid",
        status_code: int = 401,
    ):
        super().__init__(message, status_code=status_code)


class PaymentProviderNotFoundError(PaymentProviderError):
    """Raised when a requested resource is not found (404)."""
    error_code = "payment_provider_not_found"

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message, status_code=404, resource=resource)


class PaymentProviderRateLimitError(PaymentProviderError):
    """Raised when API rate limit is exceeded (429)."""
    error_code = "payment_provider_rate_limited"

    def __init__(self, retry_after: Optional[int] = None):
        super().__init__("Rate limit exceeded", status_code=429, retry_after=retry_after)
        self.retry_after = retry_after


class PaymentProviderConnectionError(PaymentProviderError):
    """Raised when network/connection errors occur."""
    error_code = "payment_provider_connection_error"

    def __init__(self, message: str = "Connection error - unable to reach payment provider"):
        super().__init__(message)


class PaymentProviderAPIError(PaymentProviderError):
    """Any other non-2xx response."""

    def __init__(self, message: str, status_code: int, response: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=status_code)
        self.response = response or {}
