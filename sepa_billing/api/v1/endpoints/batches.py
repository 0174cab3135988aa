"""Batch endpoints - upload, processing, results and billing dispatch"""

import math
from typing import Any, Optional
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from sepa_billing.api import deps
from sepa_billing.models.batch import Batch
from sepa_billing.models.enums import ValidationStatus
from sepa_billing.schemas.batch import (
    BatchDetail,
    BatchStartRequest,
    BatchStartResponse,
    BatchSummary,
    BatchUploadResponse,
    DebtorResponse,
)
from sepa_billing.schemas.billing import (
    BillingStatsResponse,
    ChargebackReconcileResponse,
    SyncResponse,
    VerificationRecordCreate,
    VerificationRecordResponse,
)
from sepa_billing.schemas.responses import PaginatedResponse, SuccessResponse
from sepa_billing.services.batch_service import BatchEnqueue, BatchService
from sepa_billing.services.billing_dispatch import BillingDispatchService
from sepa_billing.services.billing_service import BillingService
from sepa_billing.services.chargeback_service import ChargebackService
from sepa_billing.services.progress import calculate_progress

router = APIRouter()


def _summary(batch: Batch) -> dict:
    progress = calculate_progress(batch)
    return dict(
        id=batch.id,
        filename=batch.original_filename,
        status=progress.status,
        total_records=batch.total_records,
        record_limit=batch.record_limit,
        processed_records=batch.processed_records,
        success_count=batch.success_count,
        failed_count=batch.failed_count,
        credits_used=batch.credits_used,
        progress=progress,
        created_at=batch.created_at,
    )


@router.post("", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def upload_batch(
    file: UploadFile = File(...),
    current_user: deps.CurrentUser = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Upload a debtor CSV. Delimiter, header and column positions are detected;
    the response carries the mapping and a short preview for confirmation.
    """
    content = await file.read()
    try:
        batch, detection = await BatchService.create_batch(
            db, current_user.id, file.filename or "", content
        )
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return SuccessResponse(
        data=BatchUploadResponse(
            batch_id=batch.id,
            filename=batch.original_filename,
            total_records=detection.total_records,
            column_mapping=detection.mapping.to_dict(),
            preview=detection.preview,
        ),
        message="File uploaded and columns detected",
    )


@router.get("", response_model=SuccessResponse)
async def list_batches(
    current_user: deps.CurrentUser = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Latest 50 batches of the caller, newest first."""
    batches = await BatchService.list_batches(db, user_id=current_user.id, limit=50)
    return SuccessResponse(data=[BatchSummary(**_summary(b)) for b in batches])


@router.get("/{batch_id}", response_model=SuccessResponse)
async def get_batch(batch: Batch = Depends(deps.get_owned_batch)) -> Any:
    return SuccessResponse(
        data=BatchDetail(
            **_summary(batch),
            column_mapping=batch.column_mapping,
            has_results=bool(batch.results_path),
        )
    )


@router.post("/{batch_id}/start", response_model=SuccessResponse)
async def start_batch(
    body: Optional[BatchStartRequest] = None,
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
    enqueue: BatchEnqueue = Depends(deps.get_batch_enqueue),
) -> Any:
    """Start processing, optionally limited to the first ``record_limit`` rows."""
    record_limit = body.record_limit if body else None
    batch = await BatchService.start_batch(db, batch.id, record_limit, enqueue)
    return SuccessResponse(
        data=BatchStartResponse(
            batch_id=batch.id,
            status=calculate_progress(batch).status,
            record_limit=batch.record_limit,
            message=f"Processing {batch.record_limit} of {batch.total_records} records",
        ),
        message="Batch processing started",
    )


@router.get("/{batch_id}/status", response_model=SuccessResponse)
async def get_batch_status(batch: Batch = Depends(deps.get_owned_batch)) -> Any:
    return SuccessResponse(data=calculate_progress(batch))


@router.get("/{batch_id}/download")
async def download_results(
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
) -> Response:
    """Results CSV of a completed batch; 404 for any other status."""
    filename, content = await BatchService.get_results(db, batch.id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{batch_id}/debtors", response_model=PaginatedResponse[DebtorResponse])
async def list_debtors(
    validation_status: Optional[ValidationStatus] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
) -> PaginatedResponse[DebtorResponse]:
    debtors, total = await BatchService.list_debtors(
        db, batch.id, validation_status=validation_status, page=page, page_size=page_size
    )
    return PaginatedResponse(
        data=[DebtorResponse.model_validate(d) for d in debtors],
        meta={
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
        },
    )


@router.post("/{batch_id}/sync", response_model=SuccessResponse)
async def sync_billing(
    response: Response,
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
    dispatcher: BillingDispatchService = Depends(deps.get_dispatch_service),
) -> Any:
    """
    Dispatch billing for every eligible debtor.

    202 when a job was queued, 200 when nothing was eligible. A run already
    in flight is a 409; unverified candidates are a 422.
    """
    result = await dispatcher.sync(db, batch.id)
    if result["queued"]:
        response.status_code = status.HTTP_202_ACCEPTED
        message = f"Billing queued for {result['eligible']} debtor(s)"
    else:
        message = "No eligible debtors to bill"
    return SuccessResponse(data=SyncResponse(**result), message=message)


@router.get("/{batch_id}/billing/stats", response_model=SuccessResponse)
async def billing_stats(
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
    dispatcher: BillingDispatchService = Depends(deps.get_dispatch_service),
) -> Any:
    """Attempt counts and amounts per status; is_processing while a run holds the lock."""
    stats = await BillingService.attempt_stats(db, batch.id)
    return SuccessResponse(
        data=BillingStatsResponse(**stats, is_processing=await dispatcher.in_progress(batch.id))
    )


@router.post("/{batch_id}/chargebacks/reconcile", response_model=SuccessResponse)
async def reconcile_chargebacks(
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    result = await ChargebackService.reconcile(db, batch.id)
    return SuccessResponse(
        data=ChargebackReconcileResponse(**result),
        message=f"Removed {result['removed']} charged-back debtor(s)",
    )


@router.post("/{batch_id}/debtors/{debtor_id}/verification", response_model=SuccessResponse)
async def record_verification(
    debtor_id: UUID,
    body: VerificationRecordCreate,
    batch: Batch = Depends(deps.get_owned_batch),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Intake of a payee verification result; repeated calls are idempotent."""
    record = await BillingService.record_verification(
        db,
        batch.id,
        debtor_id,
        result=body.result,
        name_match=body.name_match,
        score=body.score,
        meta=body.meta,
    )
    return SuccessResponse(
        data=VerificationRecordResponse.model_validate(record),
        message="Verification recorded",
    )
