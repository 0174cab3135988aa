"""Error taxonomy for the batch and billing engine.

Every error is user-facing: the API maps each class to its own status code
and machine-readable code, and keeps ``payload`` in the response body.
"""

from typing import Any, Dict, Optional

from fastapi import status


class BillingEngineError(Exception):
    """Base exception for all batch/billing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BILLING_ENGINE_ERROR"

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload: Dict[str, Any] = payload or {}


class ValidationError(BillingEngineError):
    """Bad or missing input: empty file, no IBAN column, record limit out of bounds."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class ConflictError(BillingEngineError):
    """Requested lifecycle transition is not allowed from the current state."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class NotFoundError(BillingEngineError):
    """Unknown batch/debtor/attempt, or an artifact that does not exist yet."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class DuplicateDispatchError(BillingEngineError):
    """A billing run for this batch is already in flight."""

    status_code = status.HTTP_409_CONFLICT
    code = "DUPLICATE_DISPATCH"

    def __init__(self, message: str = "Billing already in progress"):
        super().__init__(message, {"duplicate": True})


class VerificationRequiredError(BillingEngineError):
    """At least one billing candidate has no payee verification record."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VERIFICATION_REQUIRED"

    def __init__(self, vop_verified: int, vop_pending: int):
        super().__init__(
            f"Payee verification required for {vop_pending} debtor(s) before billing",
            {"vop_required": True, "vop_verified": vop_verified, "vop_pending": vop_pending},
        )
        self.vop_verified = vop_verified
        self.vop_pending = vop_pending
