from fastapi import APIRouter
from app.api.v1.endpoints import services, time_slots, bookings

api_router = APIRouter()
api_router.include_router(services.router, prefix="/services", tags=["services"])
api_router.include_router(time_slots.router, prefix="/time-slots", tags=["time-slots"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
