"""API Dependencies"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from sepa_billing.database import get_db
from sepa_billing.core.redis_client import get_redis_client
from sepa_billing.core.security import decode_token
from sepa_billing.models.batch import Batch
from sepa_billing.services.batch_service import BatchEnqueue, BatchService
from sepa_billing.services.billing_dispatch import BillingDispatchService
from sepa_billing.services.dispatch_lock import RedisDispatchLock
from sepa_billing.tasks.batch_tasks import enqueue_batch_processing
from sepa_billing.tasks.billing_tasks import enqueue_billing

# Security scheme for bearer token
security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Owner reference taken from the token; accounts live in the identity service."""
    id: UUID


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """
    Get current caller from the JWT bearer token.

    Raises:
        HTTPException: If token is invalid, not an access token, or has no usable subject
    """
    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id_str: Optional[str] = payload.get("sub")
    try:
        user_id = UUID(user_id_str)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=user_id)


async def get_owned_batch(
    batch_id: UUID,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Batch:
    """Batch from the path, restricted to the caller's own batches."""
    return await BatchService.get_batch(db, batch_id, user_id=current_user.id)


def get_batch_enqueue() -> BatchEnqueue:
    return enqueue_batch_processing


def get_dispatch_service() -> BillingDispatchService:
    return BillingDispatchService(
        lock=RedisDispatchLock(get_redis_client()),
        enqueue=enqueue_billing,
    )
