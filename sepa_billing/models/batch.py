"""Batches: one uploaded CSV file submitted for billing"""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import UUID, ENUM, JSONB
from sqlalchemy.orm import relationship

from sepa_billing.models.base import BaseModel
from sepa_billing.models.enums import BatchStatus


class Batch(BaseModel):
    """
    Uploaded debtor file and its processing counters.

    Counters are owned by the background job while the batch is processing.
    Batches are kept for audit and never deleted.
    """
    __tablename__ = "batches"

    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)
    results_path = Column(String(512), nullable=True)
    status = Column(
        ENUM(BatchStatus, name="batch_status", values_callable=lambda e: [m.value for m in e]),
        default=BatchStatus.PENDING,
        nullable=False,
        index=True,
    )

    total_records = Column(Integer, default=0, nullable=False)
    record_limit = Column(Integer, nullable=True)
    processed_records = Column(Integer, default=0, nullable=False)
    success_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    credits_used = Column(Integer, default=0, nullable=False)

    # {"delimiter", "has_header", "iban", "first_name", "last_name", "bic", "amount"}
    column_mapping = Column(JSONB, nullable=False)
    meta = Column(JSONB, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    debtors = relationship("Debtor", back_populates="batch", lazy="noload")

    def __repr__(self) -> str:
        return f"<Batch {self.original_filename} - {self.status}>"
