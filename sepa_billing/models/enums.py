"""Centralized Enum Definitions"""

import enum


# Batches
class BatchStatus(str, enum.Enum):
    """Batch lifecycle state"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Debtors
class DebtorStatus(str, enum.Enum):
    """Billing state of a debtor"""
    PENDING = "pending"
    BILLED = "billed"


class ValidationStatus(str, enum.Enum):
    """Outcome of payee data validation"""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


# Billing
class BillingAttemptStatus(str, enum.Enum):
    """Status of a single charge attempt"""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    CHARGEBACKED = "chargebacked"


# Attempts in these states block a new attempt for the same debtor
BLOCKING_ATTEMPT_STATUSES = (
    BillingAttemptStatus.PENDING,
    BillingAttemptStatus.APPROVED,
    BillingAttemptStatus.CHARGEBACKED,
)
