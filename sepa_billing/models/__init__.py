"""Models Package - Export all models for easy imports"""

from sepa_billing.models.base import BaseModel, BatchScopedMixin, SoftDeleteMixin
from sepa_billing.models.enums import *
from sepa_billing.models.batch import Batch
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.verification import VerificationRecord
from sepa_billing.models.billing import BillingAttempt


__all__ = [
    # Base classes
    "BaseModel",
    "BatchScopedMixin",
    "SoftDeleteMixin",

    # Enums
    "BatchStatus",
    "DebtorStatus",
    "ValidationStatus",
    "BillingAttemptStatus",
    "BLOCKING_ATTEMPT_STATUSES",

    # Batches
    "Batch",
    "Debtor",

    # Verification
    "VerificationRecord",

    # Billing
    "BillingAttempt",
]
