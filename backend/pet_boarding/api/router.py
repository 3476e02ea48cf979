"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from pet_boarding.api.routes import availability, orders

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(orders.router)
api_router.include_router(availability.router)
