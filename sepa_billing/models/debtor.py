"""Debtors: one payee record per data row of a batch"""

from sqlalchemy import Boolean, Column, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import ENUM, JSONB
from sqlalchemy.orm import relationship

from sepa_billing.models.base import BaseModel, BatchScopedMixin, SoftDeleteMixin
from sepa_billing.models.enums import DebtorStatus, ValidationStatus


class Debtor(BaseModel, BatchScopedMixin, SoftDeleteMixin):
    """
    Payee targeted for billing.

    Soft-deleted debtors (chargeback reconciliation) keep their billing
    history but drop out of eligibility and listings.
    """
    __tablename__ = "debtors"

    row_number = Column(Integer, nullable=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    iban = Column(String(34), nullable=False, index=True)
    bic = Column(String(11), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="EUR")

    status = Column(
        ENUM(DebtorStatus, name="debtor_status", values_callable=lambda e: [m.value for m in e]),
        default=DebtorStatus.PENDING,
        nullable=False,
        index=True,
    )
    validation_status = Column(
        ENUM(ValidationStatus, name="validation_status", values_callable=lambda e: [m.value for m in e]),
        default=ValidationStatus.PENDING,
        nullable=False,
        index=True,
    )
    iban_valid = Column(Boolean, default=False, nullable=False)
    validation_errors = Column(JSONB, nullable=True)
    raw_data = Column(JSONB, nullable=True)

    # Relationships
    batch = relationship("Batch", back_populates="debtors")
    billing_attempts = relationship("BillingAttempt", back_populates="debtor", lazy="noload")
    verification_records = relationship("VerificationRecord", back_populates="debtor", lazy="noload")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<Debtor row={self.row_number} {self.validation_status}>"
