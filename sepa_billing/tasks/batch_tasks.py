"""Background processing of uploaded batches"""

import asyncio
from uuid import UUID

from sepa_billing.core.logging import get_logger
from sepa_billing.database import worker_session
from sepa_billing.services.batch_service import BatchService
from sepa_billing.worker import app

logger = get_logger(__name__)


async def _process_batch(batch_id: UUID) -> None:
    async with worker_session() as db:
        await BatchService.process_batch(db, batch_id)


@app.task(name="sepa_billing.process_batch")
def process_batch(batch_id: str, record_limit: int) -> None:
    """
    Turn a processing batch's rows into debtors.

    ``record_limit`` is also persisted on the batch; it is passed along so
    the job parameters are visible in the broker and in task logs.
    """
    logger.info("Processing batch", extra={"batch_id": batch_id, "record_limit": record_limit})
    asyncio.run(_process_batch(UUID(batch_id)))


def enqueue_batch_processing(batch_id: UUID, record_limit: int) -> None:
    process_batch.delay(str(batch_id), record_limit)
