"""Payee verification (VOP) evidence"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship

from sepa_billing.models.base import BaseModel, BatchScopedMixin


class VerificationRecord(BaseModel, BatchScopedMixin):
    """
    Proof that a debtor's account ownership was checked by the external
    payee-verification service. Existence alone satisfies the billing gate;
    the outcome fields are kept for reporting.
    """
    __tablename__ = "verification_records"
    __table_args__ = (
        UniqueConstraint("batch_id", "debtor_id", name="uq_verification_records_batch_debtor"),
    )

    debtor_id = Column(
        UUID(as_uuid=True),
        ForeignKey("debtors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    result = Column(String(32), nullable=True)
    name_match = Column(String(16), nullable=True)
    score = Column(Integer, nullable=True)
    meta = Column(JSONB, nullable=True)

    # Relationships
    debtor = relationship("Debtor", back_populates="verification_records")

    def __repr__(self) -> str:
        return f"<VerificationRecord debtor={self.debtor_id} {self.result}>"
