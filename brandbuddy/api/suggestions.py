"""
Per-item explainer endpoints (POST)
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from brandbuddy.api.responses import error_response, invalid_request_response, success_response
from brandbuddy.services.suggestion_service import SuggestionService
from brandbuddy.utils.logger import log

router = APIRouter(tags=["suggestions"])


class ItemRequest(BaseModel):
    """Body carrying one inventory or replenishment row"""
    itemData: Optional[Dict[str, Any]] = None


class OrderRequest(BaseModel):
    """Body carrying one order row"""
    orderData: Optional[Dict[str, Any]] = None


@router.post("/inventory-suggestion")
async def inventory_suggestion(request: ItemRequest):
    """AI explanation and priority for one inventory item"""
    if not request.itemData or not request.itemData.get("sku"):
        log.warning("Inventory suggestion request without SKU")
        return invalid_request_response("Inventory item data with SKU is required")

    try:
        suggestion = await SuggestionService().inventory_suggestion(request.itemData)
        return success_response(suggestion)
    except Exception as e:
        log.exception(f"Inventory suggestion failed for {request.itemData.get('sku')}: {str(e)}")
        return error_response("Failed to generate inventory suggestion", str(e))


@router.post("/replenishment-suggestion")
async def replenishment_suggestion(request: ItemRequest):
    """AI explanation and priority for one replenishment item"""
    item = request.itemData or {}
    if not (item.get("sku") or item.get("product_sku")):
        log.warning("Replenishment suggestion request without SKU")
        return invalid_request_response("Replenishment item data with SKU is required")

    try:
        suggestion = await SuggestionService().replenishment_suggestion(item)
        return success_response(suggestion)
    except Exception as e:
        log.exception(f"Replenishment suggestion failed: {str(e)}")
        return error_response("Failed to generate replenishment suggestion", str(e))


@router.post("/order-suggestion")
async def order_suggestion(request: OrderRequest):
    """AI explanation and priority for one order"""
    if not request.orderData or not request.orderData.get("order_id"):
        log.warning("Order suggestion request without order_id")
        return invalid_request_response("Order data with order_id is required")

    try:
        suggestion = await SuggestionService().order_suggestion(request.orderData)
        return success_response(suggestion)
    except Exception as e:
        log.exception(f"Order suggestion failed for {request.orderData.get('order_id')}: {str(e)}")
        return error_response("Failed to generate order suggestion", str(e))


@router.post("/historical-sku-analysis")
async def historical_sku_analysis(request: ItemRequest):
    """Sales-trend analysis for one SKU"""
    if not request.itemData or not request.itemData.get("sku"):
        log.warning("Historical analysis request without SKU")
        return invalid_request_response("Inventory item data with SKU is required")

    try:
        analysis = await SuggestionService().historical_analysis(request.itemData)
        return success_response(analysis)
    except Exception as e:
        log.exception(f"Historical analysis failed for {request.itemData.get('sku')}: {str(e)}")
        return error_response("Failed to generate historical analysis", str(e))
