"""Billing attempts: one charge try for a debtor within a batch"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID, ENUM, JSONB
from sqlalchemy.orm import relationship

from sepa_billing.models.base import BaseModel, BatchScopedMixin
from sepa_billing.models.enums import BillingAttemptStatus


class BillingAttempt(BaseModel, BatchScopedMixin):
    """
    Charge attempt against a debtor.
    Pending/approved attempts block new attempts; chargebacks exclude the debtor for good.
    """
    __tablename__ = "billing_attempts"

    debtor_id = Column(
        UUID(as_uuid=True),
        ForeignKey("debtors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status = Column(
        ENUM(BillingAttemptStatus, name="billing_attempt_status", values_callable=lambda e: [m.value for m in e]),
        default=BillingAttemptStatus.PENDING,
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    attempt_number = Column(Integer, nullable=False, default=1)
    transaction_id = Column(String(64), nullable=True, index=True)
    reference = Column(String(128), nullable=False, unique=True)
    meta = Column(JSONB, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    # Relationships
    debtor = relationship("Debtor", back_populates="billing_attempts")

    def __repr__(self) -> str:
        return f"<BillingAttempt {self.amount} {self.currency} - {self.status}>"
