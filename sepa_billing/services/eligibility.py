"""
Billing eligibility for a batch.

A debtor is a candidate when its payee data is valid, its IBAN passed the
checksum, it is not soft-deleted and it has no blocking billing attempt
(pending, approved or chargebacked) in the batch. Every candidate must have
a verification record; a single unverified candidate blocks the whole run.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.core.exceptions import VerificationRequiredError
from sepa_billing.core.logging import get_logger
from sepa_billing.models.billing import BillingAttempt
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import BLOCKING_ATTEMPT_STATUSES, ValidationStatus
from sepa_billing.models.verification import VerificationRecord

logger = get_logger(__name__)


@dataclass
class EligibilityVerdict:
    eligible_ids: List[UUID] = field(default_factory=list)
    vop_verified_count: int = 0
    vop_pending_count: int = 0

    @property
    def eligible_count(self) -> int:
        return len(self.eligible_ids)

    @property
    def vop_required(self) -> bool:
        return self.vop_pending_count > 0


def is_candidate(debtor: Debtor, blocked_ids: Set[UUID]) -> bool:
    if debtor.deleted_at is not None:
        return False
    if debtor.validation_status != ValidationStatus.VALID or debtor.iban_valid is not True:
        return False
    return debtor.id not in blocked_ids


def evaluate_candidates(
    debtors: Iterable[Debtor],
    blocked_ids: Set[UUID],
    verified_ids: Set[UUID],
) -> EligibilityVerdict:
    """
    Apply the eligibility rules to an in-memory snapshot.

    Raises:
        VerificationRequiredError: at least one candidate is unverified
    """
    verdict = EligibilityVerdict()
    for debtor in debtors:
        if not is_candidate(debtor, blocked_ids):
            continue
        verdict.eligible_ids.append(debtor.id)
        if debtor.id in verified_ids:
            verdict.vop_verified_count += 1
        else:
            verdict.vop_pending_count += 1

    if verdict.vop_required:
        raise VerificationRequiredError(verdict.vop_verified_count, verdict.vop_pending_count)
    return verdict


class EligibilityService:
    @staticmethod
    async def blocked_debtor_ids(db: AsyncSession, batch_id: UUID) -> Set[UUID]:
        result = await db.execute(
            select(BillingAttempt.debtor_id).where(
                BillingAttempt.batch_id == batch_id,
                BillingAttempt.status.in_(BLOCKING_ATTEMPT_STATUSES),
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def verified_debtor_ids(db: AsyncSession, batch_id: UUID) -> Set[UUID]:
        result = await db.execute(
            select(VerificationRecord.debtor_id).where(VerificationRecord.batch_id == batch_id)
        )
        return set(result.scalars().all())

    @staticmethod
    async def evaluate(db: AsyncSession, batch_id: UUID) -> EligibilityVerdict:
        """Snapshot the batch and compute the eligible set."""
        result = await db.execute(
            select(Debtor).where(
                Debtor.batch_id == batch_id,
                Debtor.deleted_at.is_(None),
            ).order_by(Debtor.row_number)
        )
        debtors = result.scalars().all()
        blocked = await EligibilityService.blocked_debtor_ids(db, batch_id)
        verified = await EligibilityService.verified_debtor_ids(db, batch_id)

        try:
            verdict = evaluate_candidates(debtors, blocked, verified)
        except VerificationRequiredError as e:
            logger.info(
                "Billing blocked by payee verification",
                extra={"batch_id": str(batch_id), "vop_verified": e.vop_verified, "vop_pending": e.vop_pending},
            )
            raise

        logger.info(
            "Eligibility evaluated",
            extra={"batch_id": str(batch_id), "debtors": len(debtors), "eligible": verdict.eligible_count},
        )
        return verdict
