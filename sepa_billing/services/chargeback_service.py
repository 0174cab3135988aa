"""Chargeback reconciliation: drop charged-back debtors from a batch."""

from uuid import UUID

from sqlalchemy import select, exists
from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.core.logging import get_logger
from sepa_billing.models.billing import BillingAttempt
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import BillingAttemptStatus
from sepa_billing.services.batch_service import BatchService

logger = get_logger(__name__)


class ChargebackService:
    @staticmethod
    async def reconcile(db: AsyncSession, batch_id: UUID) -> dict:
        """
        Soft-delete every active debtor of the batch with a chargebacked
        attempt in that same batch. Re-running reports removed=0.
        """
        await BatchService.get_batch(db, batch_id)
        charged_back = exists().where(
            BillingAttempt.debtor_id == Debtor.id,
            BillingAttempt.batch_id == batch_id,
            BillingAttempt.status == BillingAttemptStatus.CHARGEBACKED,
        )
        result = await db.execute(
            select(Debtor).where(
                Debtor.batch_id == batch_id,
                Debtor.deleted_at.is_(None),
                charged_back,
            )
        )
        debtors = result.scalars().all()
        for debtor in debtors:
            debtor.soft_delete()
        await db.commit()

        logger.info(
            "Chargebacks reconciled",
            extra={"batch_id": str(batch_id), "removed": len(debtors)},
        )
        return {"batch_id": batch_id, "removed": len(debtors)}
