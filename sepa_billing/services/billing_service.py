"""Billing Service - attempts and payee verification records"""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.config import settings
from sepa_billing.core.exceptions import ConflictError, NotFoundError
from sepa_billing.core.logging import get_logger
from sepa_billing.models.billing import BillingAttempt
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import BillingAttemptStatus, DebtorStatus
from sepa_billing.models.verification import VerificationRecord
from sepa_billing.services.eligibility import EligibilityService
from sepa_billing.utils.time import get_utc_now

logger = get_logger(__name__)

ATTEMPT_TRANSITIONS = {
    BillingAttemptStatus.PENDING: {BillingAttemptStatus.APPROVED, BillingAttemptStatus.DECLINED},
    BillingAttemptStatus.APPROVED: {BillingAttemptStatus.CHARGEBACKED},
    BillingAttemptStatus.DECLINED: set(),
    BillingAttemptStatus.CHARGEBACKED: set(),
}


def attempt_reference(batch_id: UUID, debtor_id: UUID, attempt_number: int) -> str:
    return f"{batch_id}:{debtor_id}:{attempt_number}"


class BillingService:
    @staticmethod
    async def create_attempts(
        db: AsyncSession,
        batch_id: UUID,
        debtor_ids: List[UUID],
    ) -> List[BillingAttempt]:
        """
        Record one pending attempt per debtor and mark the debtor billed.

        Debtors that picked up a blocking attempt or were removed since the
        sync snapshot are skipped.
        """
        if not debtor_ids:
            return []
        blocked = await EligibilityService.blocked_debtor_ids(db, batch_id)
        result = await db.execute(
            select(Debtor).where(
                Debtor.batch_id == batch_id,
                Debtor.id.in_(debtor_ids),
                Debtor.deleted_at.is_(None),
            ).order_by(Debtor.row_number)
        )
        debtors = [d for d in result.scalars().all() if d.id not in blocked]

        counts_result = await db.execute(
            select(BillingAttempt.debtor_id, func.count(BillingAttempt.id))
            .where(BillingAttempt.batch_id == batch_id, BillingAttempt.debtor_id.in_(debtor_ids))
            .group_by(BillingAttempt.debtor_id)
        )
        previous = dict(counts_result.all())

        attempts = []
        for debtor in debtors:
            number = previous.get(debtor.id, 0) + 1
            attempt = BillingAttempt(
                batch_id=batch_id,
                debtor_id=debtor.id,
                status=BillingAttemptStatus.PENDING,
                amount=debtor.amount or settings.DEFAULT_BILLING_AMOUNT,
                currency=debtor.currency or settings.DEFAULT_CURRENCY,
                attempt_number=number,
                reference=attempt_reference(batch_id, debtor.id, number),
            )
            db.add(attempt)
            debtor.status = DebtorStatus.BILLED
            attempts.append(attempt)
        await db.commit()

        logger.info(
            "Billing attempts created",
            extra={
                "batch_id": str(batch_id),
                "requested": len(debtor_ids),
                "created": len(attempts),
            },
        )
        return attempts

    @staticmethod
    async def get_attempt(db: AsyncSession, attempt_id: UUID) -> BillingAttempt:
        result = await db.execute(select(BillingAttempt).where(BillingAttempt.id == attempt_id))
        attempt = result.scalar_one_or_none()
        if attempt is None:
            raise NotFoundError(f"Billing attempt {attempt_id} not found")
        return attempt

    @staticmethod
    async def update_attempt_status(
        db: AsyncSession,
        attempt_id: UUID,
        new_status: BillingAttemptStatus,
        transaction_id: Optional[str] = None,
    ) -> BillingAttempt:
        """Apply a gateway outcome; repeating the current status is a no-op."""
        attempt = await BillingService.get_attempt(db, attempt_id)
        current = BillingAttemptStatus(attempt.status)
        if current == new_status:
            return attempt
        if new_status not in ATTEMPT_TRANSITIONS[current]:
            raise ConflictError(
                f"Billing attempt cannot move from {current.value} to {new_status.value}",
                {"status": current.value, "requested": new_status.value},
            )

        attempt.status = new_status
        if transaction_id:
            attempt.transaction_id = transaction_id
        attempt.processed_at = get_utc_now()
        await db.commit()
        await db.refresh(attempt)

        logger.info(
            "Billing attempt updated",
            extra={"attempt_id": str(attempt.id), "from": current.value, "to": new_status.value},
        )
        return attempt

    @staticmethod
    async def record_verification(
        db: AsyncSession,
        batch_id: UUID,
        debtor_id: UUID,
        result: Optional[str] = None,
        name_match: Optional[str] = None,
        score: Optional[int] = None,
        meta: Optional[dict] = None,
    ) -> VerificationRecord:
        """Store payee verification evidence; a second call returns the existing record."""
        debtor_result = await db.execute(
            select(Debtor).where(Debtor.id == debtor_id, Debtor.batch_id == batch_id)
        )
        if debtor_result.scalar_one_or_none() is None:
            raise NotFoundError(f"Debtor {debtor_id} not found in batch {batch_id}")

        existing = await db.execute(
            select(VerificationRecord).where(
                VerificationRecord.batch_id == batch_id,
                VerificationRecord.debtor_id == debtor_id,
            )
        )
        record = existing.scalar_one_or_none()
        if record is not None:
            return record

        record = VerificationRecord(
            batch_id=batch_id,
            debtor_id=debtor_id,
            result=result,
            name_match=name_match,
            score=score,
            meta=meta,
        )
        db.add(record)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent intake of the same verification
            await db.rollback()
            existing = await db.execute(
                select(VerificationRecord).where(
                    VerificationRecord.batch_id == batch_id,
                    VerificationRecord.debtor_id == debtor_id,
                )
            )
            return existing.scalar_one()
        await db.refresh(record)

        logger.info(
            "Verification recorded",
            extra={"batch_id": str(batch_id), "debtor_id": str(debtor_id), "result": result},
        )
        return record

    @staticmethod
    async def attempt_stats(db: AsyncSession, batch_id: UUID) -> dict:
        """Attempt count and summed amount per status for one batch."""
        result = await db.execute(
            select(BillingAttempt.status, func.count(BillingAttempt.id), func.sum(BillingAttempt.amount))
            .where(BillingAttempt.batch_id == batch_id)
            .group_by(BillingAttempt.status)
        )
        rows = {BillingAttemptStatus(status): (count, amount) for status, count, amount in result.all()}

        stats = {"batch_id": batch_id, "total_attempts": 0}
        for status in BillingAttemptStatus:
            count, amount = rows.get(status, (0, None))
            stats[status.value] = count
            stats[f"{status.value}_amount"] = amount or Decimal("0.00")
            stats["total_attempts"] += count
        return stats
