"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from ridepool.api.v1 import bookings, otp, rides

router = APIRouter()

# =============================================================================
# Verification
# =============================================================================

router.include_router(otp.router, prefix="/otp", tags=["otp"])

# =============================================================================
# Core Resource Routers
# =============================================================================

router.include_router(rides.router, prefix="/rides", tags=["rides"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
