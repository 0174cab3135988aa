"""Background execution of a dispatched billing run"""

import asyncio
from typing import List
from uuid import UUID

from sepa_billing.core.logging import get_logger
from sepa_billing.core.redis_client import create_redis_client
from sepa_billing.database import worker_session
from sepa_billing.services.billing_service import BillingService
from sepa_billing.services.dispatch_lock import RedisDispatchLock, dispatch_lock_key
from sepa_billing.worker import app

logger = get_logger(__name__)


async def _process_billing(batch_id: UUID, debtor_ids: List[UUID], lock_token: str) -> int:
    # The loop is per task, so the Redis client is too
    client = create_redis_client()
    lock = RedisDispatchLock(client)
    try:
        async with worker_session() as db:
            attempts = await BillingService.create_attempts(db, batch_id, debtor_ids)
        return len(attempts)
    finally:
        # Released on success and failure alike, but only while this run still owns it
        await lock.release(dispatch_lock_key(batch_id), lock_token)
        await client.aclose()


@app.task(name="sepa_billing.process_billing")
def process_billing(batch_id: str, debtor_ids: List[str], lock_token: str) -> int:
    logger.info("Billing run started", extra={"batch_id": batch_id, "debtors": len(debtor_ids)})
    try:
        created = asyncio.run(
            _process_billing(UUID(batch_id), [UUID(d) for d in debtor_ids], lock_token)
        )
    except Exception as e:
        logger.error("Billing run failed", extra={"batch_id": batch_id, "error": str(e)})
        raise
    logger.info("Billing run finished", extra={"batch_id": batch_id, "attempts": created})
    return created


def enqueue_billing(batch_id: UUID, debtor_ids: List[UUID], lock_token: str) -> None:
    process_billing.delay(str(batch_id), [str(d) for d in debtor_ids], lock_token)
