"""
Billing Dispatch - at most one in-flight billing run per batch.

Order matters: the lock is taken before eligibility is computed, so a
duplicate request is rejected without touching the database. Every
synchronous exit releases the lock; only a successful enqueue hands it
over to the billing job, which releases it when it finishes. The TTL covers
workers that die without releasing.
"""

from typing import Any, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.config import settings
from sepa_billing.core.exceptions import DuplicateDispatchError
from sepa_billing.core.logging import get_logger
from sepa_billing.services.batch_service import BatchService
from sepa_billing.services.dispatch_lock import RedisDispatchLock, dispatch_lock_key, new_lock_token
from sepa_billing.services.eligibility import EligibilityService

logger = get_logger(__name__)

# enqueue(batch_id, debtor_ids, lock_token)
BillingEnqueue = Callable[[UUID, List[UUID], str], Any]


class BillingDispatchService:
    def __init__(self, lock: RedisDispatchLock, enqueue: BillingEnqueue, ttl_seconds: Optional[int] = None):
        self.lock = lock
        self.enqueue = enqueue
        self.ttl_seconds = ttl_seconds or settings.DISPATCH_LOCK_TTL_SECONDS

    async def sync(self, db: AsyncSession, batch_id: UUID) -> dict:
        """
        Evaluate and dispatch billing for a batch.

        Returns:
            {"batch_id", "eligible", "queued"}

        Raises:
            NotFoundError: unknown batch
            DuplicateDispatchError: a run for this batch is in flight
            VerificationRequiredError: some candidate lacks payee verification
        """
        await BatchService.get_batch(db, batch_id)
        key = dispatch_lock_key(batch_id)
        token = new_lock_token()

        if not await self.lock.try_acquire(key, self.ttl_seconds, token):
            logger.warning("Duplicate billing dispatch rejected", extra={"batch_id": str(batch_id)})
            raise DuplicateDispatchError()

        try:
            verdict = await EligibilityService.evaluate(db, batch_id)
        except Exception:
            await self.lock.release(key, token)
            raise

        if verdict.eligible_count == 0:
            await self.lock.release(key, token)
            logger.info("No eligible debtors, nothing dispatched", extra={"batch_id": str(batch_id)})
            return {"batch_id": batch_id, "eligible": 0, "queued": False}

        try:
            self.enqueue(batch_id, list(verdict.eligible_ids), token)
        except Exception as e:
            await self.lock.release(key, token)
            logger.error(
                "Failed to enqueue billing job",
                extra={"batch_id": str(batch_id), "error": str(e)},
            )
            raise

        logger.info(
            "Billing job queued",
            extra={"batch_id": str(batch_id), "eligible": verdict.eligible_count},
        )
        return {"batch_id": batch_id, "eligible": verdict.eligible_count, "queued": True}

    async def in_progress(self, batch_id: UUID) -> bool:
        """True while a dispatched billing run for the batch holds the lock."""
        return await self.lock.is_held(dispatch_lock_key(batch_id))
