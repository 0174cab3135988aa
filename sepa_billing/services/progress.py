"""Batch progress accounting.

Progress is measured against the effective limit: the record limit chosen at
start time, or the full record count when no limit was set.
"""

from typing import Any, Optional

from sepa_billing.schemas.batch import BatchProgress
from sepa_billing.utils.time import to_iso8601


def effective_limit(total_records: int, record_limit: Optional[int]) -> int:
    if record_limit is not None and record_limit > 0:
        return record_limit
    return total_records


def percentage(processed: int, limit: int) -> float:
    """processed/limit as a percentage, one decimal, clamped to [0, 100]."""
    if limit <= 0:
        return 0.0
    value = round(processed / limit * 100, 1)
    return min(max(value, 0.0), 100.0)


def calculate_progress(batch: Any) -> BatchProgress:
    """Build the progress view from a batch's counters."""
    limit = effective_limit(batch.total_records or 0, batch.record_limit)
    processed = batch.processed_records or 0
    status = batch.status.value if hasattr(batch.status, "value") else str(batch.status)
    return BatchProgress(
        status=status,
        total=batch.total_records or 0,
        record_limit=batch.record_limit if batch.record_limit else None,
        effective_limit=limit,
        processed=processed,
        success=batch.success_count or 0,
        failed=batch.failed_count or 0,
        credits_used=batch.credits_used or 0,
        percentage=percentage(processed, limit),
        started_at=to_iso8601(batch.started_at),
        completed_at=to_iso8601(batch.completed_at),
    )
