"""
Structured error classes for entitlement resolution and reconciliation.

Every error carries an ErrorKind so callers can decide what to do without
matching on class names:

- STRUCTURAL: malformed or inconsistent provider payload. Surfaced to the
  caller so the provider redelivers the event.
- EXPECTED_MISS: lookup misses used as control flow (tier/user not found).
- DOWNSTREAM_DEGRADED: a gateway or cache call failed. Logged, replayable.
- INVALID_REQUEST / CONFLICT: caller errors (bad or already-used codes).
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorKind(str, Enum):
    """Closed set of error categories."""
    STRUCTURAL = "structural"
    EXPECTED_MISS = "expected_miss"
    DOWNSTREAM_DEGRADED = "downstream_degraded"
    INVALID_REQUEST = "invalid_request"
    CONFLICT = "conflict"


class EntitlementSyncError(Exception):
    """Base exception for all entitlement sync errors."""

    kind: ErrorKind = ErrorKind.STRUCTURAL
    error_code: str = "entitlement_sync_error"
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **context: Any):
        """
        Initialize error.

        Args:
            message: Human-readable description
            **context: Structured fields (user_uuid, tier_id, invoice_id, ...)
        """
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    @property
    def is_fatal(self) -> bool:
        """Whether the triggering event must be surfaced for redelivery."""
        return self.kind == ErrorKind.STRUCTURAL

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON responses and log payloads."""
        return {
            "error": self.error_code,
            "kind": self.kind.value,
            "message": self.message,
            "context": dict(self.context),
        }


# ---------------------------------------------------------------------------
# Expected misses
# ---------------------------------------------------------------------------

class TierNotFoundError(EntitlementSyncError):
    kind = ErrorKind.EXPECTED_MISS
    error_code = "tier_not_found"
    http_status = status.HTTP_404_NOT_FOUND


class UserNotFoundError(EntitlementSyncError):
    kind = ErrorKind.EXPECTED_MISS
    error_code = "user_not_found"
    http_status = status.HTTP_404_NOT_FOUND


# ---------------------------------------------------------------------------
# Structural (fatal to the event)
# ---------------------------------------------------------------------------

class InvoiceNotPaidError(EntitlementSyncError):
    error_code = "invoice_not_paid"


class CustomerNotResolvedError(EntitlementSyncError):
    error_code = "customer_not_resolved"


class MissingPriceError(EntitlementSyncError):
    error_code = "missing_price"


class InvalidMetadataError(EntitlementSyncError):
    """Raised when price/product metadata is missing a required key."""
    error_code = "invalid_metadata"


class PaymentProviderError(EntitlementSyncError):
    """Error communicating with the payment provider."""
    error_code = "payment_provider_error"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any):
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Downstream degraded
# ---------------------------------------------------------------------------

class GatewayError(EntitlementSyncError):
    """A feature gateway RPC failed."""
    kind = ErrorKind.DOWNSTREAM_DEGRADED
    error_code = "gateway_error"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        gateway: str,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message, gateway=gateway, status_code=status_code, **context)
        self.gateway = gateway
        self.status_code = status_code


class CacheError(EntitlementSyncError):
    kind = ErrorKind.DOWNSTREAM_DEGRADED
    error_code = "cache_error"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


# ---------------------------------------------------------------------------
# License codes
# ---------------------------------------------------------------------------

class InvalidLicenseCodeError(EntitlementSyncError):
    kind = ErrorKind.INVALID_REQUEST
    error_code = "invalid_license_code"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, provider: Optional[str] = None):
        super().__init__("Invalid code provided", code=code, provider=provider)


class LicenseCodeAlreadyAppliedError(EntitlementSyncError):
    kind = ErrorKind.CONFLICT
    error_code = "license_code_already_applied"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, code: str, provider: Optional[str] = None):
        super().__init__("Code already applied", code=code, provider=provider)


class FreeTierMissingError(EntitlementSyncError):
    """The catalog has no tier for the configured free product."""
    error_code = "free_tier_missing"
