"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from sepa_billing.api.v1.endpoints import batches, billing_attempts

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(billing_attempts.router, prefix="/billing-attempts", tags=["Billing Attempts"])
