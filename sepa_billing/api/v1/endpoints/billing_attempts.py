"""Billing attempt endpoints - outcome updates from the payment gateway"""

from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from sepa_billing.api import deps
from sepa_billing.schemas.billing import BillingAttemptResponse, BillingAttemptUpdate
from sepa_billing.schemas.responses import SuccessResponse
from sepa_billing.services.batch_service import BatchService
from sepa_billing.services.billing_service import BillingService

router = APIRouter()


@router.patch("/{attempt_id}", response_model=SuccessResponse)
async def update_billing_attempt(
    attempt_id: UUID,
    body: BillingAttemptUpdate,
    current_user: deps.CurrentUser = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Record approved / declined / chargebacked for an attempt."""
    attempt = await BillingService.get_attempt(db, attempt_id)
    await BatchService.get_batch(db, attempt.batch_id, user_id=current_user.id)
    attempt = await BillingService.update_attempt_status(
        db, attempt_id, body.status, transaction_id=body.transaction_id
    )
    return SuccessResponse(
        data=BillingAttemptResponse.model_validate(attempt),
        message="Billing attempt updated",
    )
