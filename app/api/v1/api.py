from fastapi import APIRouter
from app.api.v1.routes.bookings import router as bookings_router
from app.api.v1.routes.admin import router as admin_router
from app.api.v1.routes.blacklist import router as blacklist_router
from app.api.v1.routes.aggregator import router as aggregator_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings_router)
api_router.include_router(admin_router)
api_router.include_router(blacklist_router)
api_router.include_router(aggregator_router)
