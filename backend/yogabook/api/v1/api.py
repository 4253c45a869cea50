from fastapi import APIRouter
from yogabook.api.v1.endpoints import (
    bookings,
    memberships,
)

api_router = APIRouter()
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(memberships.router, prefix="/memberships", tags=["memberships"])
