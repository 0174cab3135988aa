from typing import Optional, Any, Dict
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from sepa_billing.models.enums import BillingAttemptStatus


class SyncResponse(BaseModel):
    batch_id: UUID
    eligible: int
    queued: bool


class ChargebackReconcileResponse(BaseModel):
    batch_id: UUID
    removed: int


class VerificationRecordCreate(BaseModel):
    """Posted by the payee-verification collaborator once a check has run."""
    result: Optional[str] = Field(None, max_length=32)
    name_match: Optional[str] = Field(None, max_length=16)
    score: Optional[int] = Field(None, ge=0, le=100)
    meta: Optional[Dict[str, Any]] = None


class VerificationRecordResponse(BaseModel):
    id: UUID
    batch_id: UUID
    debtor_id: UUID
    result: Optional[str] = None
    name_match: Optional[str] = None
    score: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingAttemptUpdate(BaseModel):
    status: BillingAttemptStatus
    transaction_id: Optional[str] = Field(None, max_length=64)


class BillingAttemptResponse(BaseModel):
    id: UUID
    batch_id: UUID
    debtor_id: UUID
    status: BillingAttemptStatus
    amount: Decimal
    currency: str
    attempt_number: int
    transaction_id: Optional[str] = None
    reference: str
    processed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BillingStatsResponse(BaseModel):
    batch_id: UUID
    is_processing: bool
    total_attempts: int
    pending: int
    pending_amount: Decimal
    approved: int
    approved_amount: Decimal
    declined: int
    declined_amount: Decimal
    chargebacked: int
    chargebacked_amount: Decimal
