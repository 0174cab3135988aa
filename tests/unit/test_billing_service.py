"""Unit tests for BillingService."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sepa_billing.core.exceptions import ConflictError, NotFoundError
from sepa_billing.models.billing import BillingAttempt
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import BillingAttemptStatus, DebtorStatus
from sepa_billing.models.verification import VerificationRecord
from sepa_billing.services.billing_service import BillingService, attempt_reference

BLOCKED_IDS = "sepa_billing.services.billing_service.EligibilityService.blocked_debtor_ids"


def _scalars(values):
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


def _one(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


@pytest.mark.asyncio
async def test_create_attempts_skips_blocked_and_numbers_attempts():
    db = AsyncMock(spec=AsyncSession)
    batch_id = uuid4()
    first = Debtor(id=uuid4(), batch_id=batch_id, amount=None, currency="EUR", status=DebtorStatus.PENDING)
    retried = Debtor(id=uuid4(), batch_id=batch_id, amount=Decimal("12.50"), currency="EUR",
                     status=DebtorStatus.PENDING)
    blocked = Debtor(id=uuid4(), batch_id=batch_id, amount=None, currency="EUR", status=DebtorStatus.PENDING)
    counts = MagicMock()
    counts.all.return_value = [(retried.id, 1)]
    db.execute.side_effect = [_scalars([first, retried, blocked]), counts]

    with patch(BLOCKED_IDS, new_callable=AsyncMock) as mock_blocked:
        mock_blocked.return_value = {blocked.id}
        attempts = await BillingService.create_attempts(db, batch_id, [first.id, retried.id, blocked.id])

    assert [a.debtor_id for a in attempts] == [first.id, retried.id]
    assert attempts[0].status == BillingAttemptStatus.PENDING
    assert attempts[0].amount == Decimal("1.99")
    assert attempts[1].amount == Decimal("12.50")
    assert attempts[1].attempt_number == 2
    assert attempts[1].reference == f"{batch_id}:{retried.id}:2"
    assert first.status == DebtorStatus.BILLED
    assert blocked.status == DebtorStatus.PENDING
    assert db.commit.called


@pytest.mark.asyncio
async def test_create_attempts_with_no_debtors():
    db = AsyncMock(spec=AsyncSession)
    assert await BillingService.create_attempts(db, uuid4(), []) == []
    assert not db.execute.called


def test_attempt_reference():
    batch_id, debtor_id = uuid4(), uuid4()
    assert attempt_reference(batch_id, debtor_id, 1) == f"{batch_id}:{debtor_id}:1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "current,new",
    [
        (BillingAttemptStatus.PENDING, BillingAttemptStatus.APPROVED),
        (BillingAttemptStatus.PENDING, BillingAttemptStatus.DECLINED),
        (BillingAttemptStatus.APPROVED, BillingAttemptStatus.CHARGEBACKED),
    ],
)
async def test_update_attempt_status_allowed(current, new):
    db = AsyncMock(spec=AsyncSession)
    attempt = BillingAttempt(id=uuid4(), status=current)

    with patch.object(BillingService, "get_attempt", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = attempt
        result = await BillingService.update_attempt_status(db, attempt.id, new, transaction_id="tx-1")

    assert result.status == new
    assert result.transaction_id == "tx-1"
    assert result.processed_at is not None
    assert db.commit.called


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "current,new",
    [
        (BillingAttemptStatus.DECLINED, BillingAttemptStatus.APPROVED),
        (BillingAttemptStatus.CHARGEBACKED, BillingAttemptStatus.APPROVED),
        (BillingAttemptStatus.PENDING, BillingAttemptStatus.CHARGEBACKED),
    ],
)
async def test_update_attempt_status_rejected(current, new):
    db = AsyncMock(spec=AsyncSession)
    attempt = BillingAttempt(id=uuid4(), status=current)

    with patch.object(BillingService, "get_attempt", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = attempt
        with pytest.raises(ConflictError):
            await BillingService.update_attempt_status(db, attempt.id, new)

    assert attempt.status == current
    assert not db.commit.called


@pytest.mark.asyncio
async def test_update_attempt_same_status_is_noop():
    db = AsyncMock(spec=AsyncSession)
    attempt = BillingAttempt(id=uuid4(), status=BillingAttemptStatus.APPROVED)

    with patch.object(BillingService, "get_attempt", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = attempt
        await BillingService.update_attempt_status(db, attempt.id, BillingAttemptStatus.APPROVED)

    assert not db.commit.called


@pytest.mark.asyncio
async def test_get_attempt_not_found():
    db = AsyncMock(spec=AsyncSession)
    db.execute.return_value = _one(None)
    with pytest.raises(NotFoundError):
        await BillingService.get_attempt(db, uuid4())


@pytest.mark.asyncio
async def test_record_verification_creates_record():
    db = AsyncMock(spec=AsyncSession)
    batch_id, debtor_id = uuid4(), uuid4()
    db.execute.side_effect = [_one(Debtor(id=debtor_id)), _one(None)]

    record = await BillingService.record_verification(db, batch_id, debtor_id, result="match", score=97)

    db.add.assert_called_once_with(record)
    assert (record.batch_id, record.debtor_id, record.result, record.score) == (batch_id, debtor_id, "match", 97)
    assert db.commit.called


@pytest.mark.asyncio
async def test_record_verification_is_idempotent():
    db = AsyncMock(spec=AsyncSession)
    existing = VerificationRecord(id=uuid4())
    db.execute.side_effect = [_one(Debtor(id=uuid4())), _one(existing)]

    record = await BillingService.record_verification(db, uuid4(), uuid4(), result="match")

    assert record is existing
    assert not db.add.called


@pytest.mark.asyncio
async def test_record_verification_concurrent_insert_returns_winner():
    db = AsyncMock(spec=AsyncSession)
    winner = VerificationRecord(id=uuid4())
    db.execute.side_effect = [_one(Debtor(id=uuid4())), _one(None), _one(winner)]
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

    record = await BillingService.record_verification(db, uuid4(), uuid4())

    assert record is winner
    assert db.rollback.called


@pytest.mark.asyncio
async def test_record_verification_unknown_debtor():
    db = AsyncMock(spec=AsyncSession)
    db.execute.return_value = _one(None)
    with pytest.raises(NotFoundError):
        await BillingService.record_verification(db, uuid4(), uuid4())


@pytest.mark.asyncio
async def test_attempt_stats_fills_missing_statuses():
    db = AsyncMock(spec=AsyncSession)
    batch_id = uuid4()
    rows = MagicMock()
    rows.all.return_value = [
        ("approved", 2, Decimal("14.49")),
        ("chargebacked", 1, Decimal("1.99")),
    ]
    db.execute.return_value = rows

    stats = await BillingService.attempt_stats(db, batch_id)

    assert stats == {
        "batch_id": batch_id,
        "total_attempts": 3,
        "pending": 0,
        "pending_amount": Decimal("0.00"),
        "approved": 2,
        "approved_amount": Decimal("14.49"),
        "declined": 0,
        "declined_amount": Decimal("0.00"),
        "chargebacked": 1,
        "chargebacked_amount": Decimal("1.99"),
    }
