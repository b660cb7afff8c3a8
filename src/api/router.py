"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from src.api.billing import router as billing_router
from src.api.leads import router as leads_router
from src.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(billing_router)
api_router.include_router(leads_router)
api_router.include_router(health_router)
