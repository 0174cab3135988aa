"""
End-to-end batch flow against a real database.

Object storage is replaced by an in-memory dict and the dispatch lock by
FakeRedis; queued jobs are captured and run inline.
"""

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import httpx
import pytest
from httpx import ASGITransport

from sepa_billing.api import deps
from sepa_billing.config import settings
from sepa_billing.database import AsyncSessionLocal, init_db
from sepa_billing.main import app
from sepa_billing.models.batch import Batch
from sepa_billing.models.billing import BillingAttempt
from sepa_billing.models.debtor import Debtor
from sepa_billing.models.enums import (
    BatchStatus,
    BillingAttemptStatus,
    DebtorStatus,
    ValidationStatus,
)
from sepa_billing.services.batch_service import BatchService
from sepa_billing.services.billing_dispatch import BillingDispatchService
from sepa_billing.services.billing_service import BillingService
from sepa_billing.services.dispatch_lock import RedisDispatchLock, dispatch_lock_key
from tests.conftest import requires_db
from tests.mocks.fake_redis import FakeRedis

pytestmark = requires_db

BASE_URL = f"http://test{settings.API_V1_PREFIX}"

CSV_TEXT = (
    "first_name;last_name;iban;amount\n"
    "John;Doe;DE89370400440532013000;12,50\n"
    "Jane;Roe;GB82WEST12345698765432;\n"
    "Max;Muster;DE00370400440532013000;3.00\n"
)


async def _seed_charged_back_batch(user_id):
    """A second batch of the same owner whose only debtor was charged back."""
    async with AsyncSessionLocal() as session:
        batch = Batch(
            user_id=user_id,
            original_filename="other.csv",
            file_path=f"batches/{user_id}/other.csv",
            status=BatchStatus.COMPLETED,
            column_mapping={"iban": 0},
            total_records=1,
        )
        session.add(batch)
        await session.flush()
        debtor = Debtor(
            batch_id=batch.id,
            row_number=1,
            iban="DE89370400440532013000",
            amount=Decimal("1.99"),
            status=DebtorStatus.BILLED,
            validation_status=ValidationStatus.VALID,
            iban_valid=True,
        )
        session.add(debtor)
        await session.flush()
        session.add(BillingAttempt(
            debtor_id=debtor.id,
            batch_id=batch.id,
            status=BillingAttemptStatus.CHARGEBACKED,
            amount=Decimal("1.99"),
            reference=f"other-{uuid4().hex}",
        ))
        await session.commit()
        return debtor.id


@pytest.mark.asyncio
async def test_full_batch_flow(auth_headers, owner_id):
    """
    Upload, process, verify, bill, record a chargeback and reconcile:
    1. Upload and start with the full record count
    2. Run the processing job and download results
    3. Sync is blocked until both valid debtors are verified
    4. Sync queues billing once; attempts are created
    5. A chargeback removes its debtor on reconcile; another batch's
       charged-back debtor is left alone
    """
    await init_db()

    objects = {}

    async def fake_upload(key_prefix, filename, content, content_type=None, *, unique=True):
        key = f"{key_prefix}/{filename}"
        objects[key] = content
        return key

    async def fake_download(key):
        return objects[key]

    batch_jobs, billing_jobs = [], []
    fake_redis = FakeRedis()
    dispatcher = BillingDispatchService(
        RedisDispatchLock(fake_redis),
        lambda batch_id, debtor_ids, token: billing_jobs.append((batch_id, debtor_ids, token)),
    )
    app.dependency_overrides[deps.get_batch_enqueue] = lambda: (
        lambda batch_id, limit: batch_jobs.append((batch_id, limit))
    )
    app.dependency_overrides[deps.get_dispatch_service] = lambda: dispatcher

    transport = ASGITransport(app=app)
    try:
        with patch("sepa_billing.services.storage_service.upload", fake_upload), \
                patch("sepa_billing.services.storage_service.download", fake_download):
            async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
                # 1. Upload and start
                response = await client.post(
                    "/batches",
                    headers=auth_headers,
                    files={"file": ("debtors.csv", CSV_TEXT.encode(), "text/csv")},
                )
                assert response.status_code == 201, response.text
                upload = response.json()["data"]
                batch_id = upload["batch_id"]
                assert upload["total_records"] == 3
                assert upload["column_mapping"]["delimiter"] == ";"
                assert upload["column_mapping"]["amount"] == 3

                response = await client.post(f"/batches/{batch_id}/start", headers=auth_headers)
                assert response.status_code == 200, response.text
                assert len(batch_jobs) == 1

                response = await client.post(f"/batches/{batch_id}/start", headers=auth_headers)
                assert response.status_code == 409

                # 2. Processing job
                job_batch_id, _ = batch_jobs[0]
                async with AsyncSessionLocal() as session:
                    await BatchService.process_batch(session, job_batch_id)

                response = await client.get(f"/batches/{batch_id}/status", headers=auth_headers)
                progress = response.json()["data"]
                assert progress["status"] == "completed"
                assert progress["processed"] == 3
                assert progress["success"] == 2
                assert progress["failed"] == 1
                assert progress["percentage"] == 100.0

                response = await client.get(f"/batches/{batch_id}/download", headers=auth_headers)
                assert response.status_code == 200
                lines = response.text.splitlines()
                assert lines[0].endswith("validation_status;iban_valid;validation_errors")
                assert lines[3].startswith("Max;Muster;DE00370400440532013000")
                assert "invalid;false;IBAN checksum is invalid" in lines[3]

                response = await client.get(
                    f"/batches/{batch_id}/debtors",
                    headers=auth_headers,
                    params={"validation_status": "valid"},
                )
                valid = response.json()["data"]
                assert [d["first_name"] for d in valid] == ["John", "Jane"]

                # 3. Verification gate
                response = await client.post(f"/batches/{batch_id}/sync", headers=auth_headers)
                assert response.status_code == 422
                assert response.json()["data"]["vop_pending"] == 2
                assert not await fake_redis.exists(dispatch_lock_key(batch_id))

                for debtor in valid:
                    response = await client.post(
                        f"/batches/{batch_id}/debtors/{debtor['id']}/verification",
                        headers=auth_headers,
                        json={"result": "match", "name_match": "full", "score": 100},
                    )
                    assert response.status_code == 200, response.text

                # 4. Dispatch
                response = await client.post(f"/batches/{batch_id}/sync", headers=auth_headers)
                assert response.status_code == 202, response.text
                assert response.json()["data"]["eligible"] == 2

                response = await client.post(f"/batches/{batch_id}/sync", headers=auth_headers)
                assert response.status_code == 409
                assert len(billing_jobs) == 1

                job_batch_id, debtor_ids, token = billing_jobs[0]
                async with AsyncSessionLocal() as session:
                    attempts = await BillingService.create_attempts(session, job_batch_id, debtor_ids)
                assert await dispatcher.lock.release(dispatch_lock_key(job_batch_id), token)
                assert len(attempts) == 2
                assert attempts[1].amount == settings.DEFAULT_BILLING_AMOUNT

                # 5. Chargeback and reconcile
                first = attempts[0]
                for outcome in ("approved", "chargebacked"):
                    response = await client.patch(
                        f"/billing-attempts/{first.id}",
                        headers=auth_headers,
                        json={"status": outcome},
                    )
                    assert response.status_code == 200, response.text
                assert response.json()["data"]["status"] == BillingAttemptStatus.CHARGEBACKED.value

                other_debtor_id = await _seed_charged_back_batch(owner_id)

                response = await client.post(f"/batches/{batch_id}/chargebacks/reconcile", headers=auth_headers)
                assert response.json()["data"]["removed"] == 1
                response = await client.post(f"/batches/{batch_id}/chargebacks/reconcile", headers=auth_headers)
                assert response.json()["data"]["removed"] == 0

                response = await client.get(f"/batches/{batch_id}/debtors", headers=auth_headers)
                assert response.json()["meta"]["total"] == 2

                async with AsyncSessionLocal() as session:
                    other = await session.get(Debtor, other_debtor_id)
                assert other.deleted_at is None
    finally:
        app.dependency_overrides.clear()
