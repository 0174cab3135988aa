"""Batch state machine.

    pending -> processing -> completed
                          -> failed

Every status change goes through ``transition``; anything outside the table
is a ConflictError.
"""

from typing import Dict, FrozenSet, Optional

from sepa_billing.core.exceptions import ConflictError, ValidationError
from sepa_billing.models.enums import BatchStatus

ALLOWED_TRANSITIONS: Dict[BatchStatus, FrozenSet[BatchStatus]] = {
    BatchStatus.PENDING: frozenset({BatchStatus.PROCESSING}),
    BatchStatus.PROCESSING: frozenset({BatchStatus.COMPLETED, BatchStatus.FAILED}),
    BatchStatus.COMPLETED: frozenset(),
    BatchStatus.FAILED: frozenset(),
}


def can_transition(current: BatchStatus, target: BatchStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(BatchStatus(current), frozenset())


def transition(current: BatchStatus, target: BatchStatus) -> BatchStatus:
    """Return ``target`` if the move is allowed, raise ConflictError otherwise."""
    current = BatchStatus(current)
    target = BatchStatus(target)
    if not can_transition(current, target):
        raise ConflictError(
            f"Batch is already {current.value}",
            {"status": current.value, "requested": target.value},
        )
    return target


def resolve_record_limit(requested: Optional[int], total_records: int) -> int:
    """
    Record limit for a start request: ``1 <= limit <= total_records``,
    defaulting to ``total_records`` when omitted.
    """
    if requested is None:
        return total_records
    if requested < 1 or requested > total_records:
        raise ValidationError(
            f"record_limit must be between 1 and {total_records}",
            {"record_limit": requested, "total_records": total_records},
        )
    return requested
