"""
Health check and status endpoints
"""
from fastapi import APIRouter

from brandbuddy import __version__
from brandbuddy.config import get_settings
from brandbuddy.connectors import ProductsConnector, SalesHistoryConnector, ShipmentsConnector
from brandbuddy.services.llm_service import LLMService
from brandbuddy.utils.helpers import iso_timestamp

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": iso_timestamp(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Which integrations are configured (never their secrets)"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "tenant_brand": settings.tenant_brand,
        "integrations": {
            "products_feed": ProductsConnector().get_status(),
            "shipments_feed": ShipmentsConnector().get_status(),
            "sales_history": SalesHistoryConnector().get_status(),
            "llm": {
                "configured": LLMService().enabled,
                "fast_model": settings.ai_model_fast,
                "advanced_model": settings.ai_model_advanced
            }
        },
        "timestamp": iso_timestamp()
    }
