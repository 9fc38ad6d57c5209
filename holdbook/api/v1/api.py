from fastapi import APIRouter, Depends

from holdbook.security import require_api_key
from holdbook.api.v1.endpoints import availability, bookings, reservations


# Create main API router; every partner endpoint needs an API key
api_v1_router = APIRouter(dependencies=[Depends(require_api_key)])

# Include availability endpoints
api_v1_router.include_router(
    availability.router,
    prefix="/availability",
    tags=["availability"]
)

# Include reservation endpoints
api_v1_router.include_router(
    reservations.router,
    prefix="/reservations",
    tags=["reservations"]
)

# Include booking endpoints
api_v1_router.include_router(
    bookings.router,
    prefix="/bookings",
    tags=["bookings"]
)
