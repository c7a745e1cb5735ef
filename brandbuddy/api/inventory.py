"""
Inventory and replenishment endpoints
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from brandbuddy.api.responses import run_page
from brandbuddy.config import get_settings
from brandbuddy.services.insight_service import InsightService
from brandbuddy.services.inventory_metrics import build_inventory_bundle
from brandbuddy.services.replenishment_metrics import build_replenishment_bundle

settings = get_settings()

router = APIRouter(tags=["inventory"])


def inventory_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_inventory_bundle(products, now=now)


async def inventory_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    return {"insights": await InsightService().inventory_insights(products, data, now=now)}


def inventory_message(products: List[Dict], shipments: List[Dict]) -> str:
    if not products:
        return "No inventory data available"
    return f"Inventory data retrieved for {len(products)} products"


def replenishment_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_replenishment_bundle(products, shipments, now=now)


async def replenishment_insights(products: List[Dict], shipments: List[Dict], data: Dict,
                                 now: datetime) -> Dict:
    return {
        "insights": await InsightService().replenishment_insights(products, shipments, data["kpis"], now=now)
    }


@router.get("/inventory-data")
async def get_inventory_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """Inventory KPIs, enhanced items, brand performance and supplier analysis"""
    return await run_page(
        "inventory", mode, inventory_data, inventory_insights,
        limit=settings.page_feed_limit,
        message=inventory_message
    )


@router.get("/replenishment-data")
async def get_replenishment_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """Critical items, supplier performance and reorder suggestions"""
    return await run_page(
        "replenishment", mode, replenishment_data, replenishment_insights,
        limit=settings.page_feed_limit
    )
