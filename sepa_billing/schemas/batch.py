from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from sepa_billing.models.enums import DebtorStatus, ValidationStatus


class ColumnMappingResponse(BaseModel):
    """Detected layout; indices are zero-based, None when the field is absent."""
    delimiter: str
    has_header: bool
    iban: int
    first_name: Optional[int] = None
    last_name: Optional[int] = None
    bic: Optional[int] = None
    amount: Optional[int] = None


class PreviewRow(BaseModel):
    iban: str
    first_name: str = ""
    last_name: str = ""
    bic: str = ""


class BatchUploadResponse(BaseModel):
    batch_id: UUID
    filename: str
    total_records: int
    column_mapping: ColumnMappingResponse
    preview: List[PreviewRow]


class BatchStartRequest(BaseModel):
    # Bounds against total_records are checked by the lifecycle rules
    record_limit: Optional[int] = Field(None, description="Process only the first N records")


class BatchStartResponse(BaseModel):
    batch_id: UUID
    status: str
    record_limit: int
    message: str


class BatchProgress(BaseModel):
    status: str
    total: int
    record_limit: Optional[int] = None
    effective_limit: int
    processed: int
    success: int = 0
    failed: int = 0
    credits_used: int = 0
    percentage: float
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class BatchSummary(BaseModel):
    id: UUID
    filename: str
    status: str
    total_records: int
    record_limit: Optional[int] = None
    processed_records: int
    success_count: int
    failed_count: int
    credits_used: int
    progress: BatchProgress
    created_at: datetime


class BatchDetail(BatchSummary):
    column_mapping: ColumnMappingResponse
    has_results: bool = False


class DebtorResponse(BaseModel):
    id: UUID
    batch_id: UUID
    row_number: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    iban: str
    bic: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    status: DebtorStatus
    validation_status: ValidationStatus
    iban_valid: bool
    validation_errors: Optional[List[str]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
