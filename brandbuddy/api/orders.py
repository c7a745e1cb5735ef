"""
Orders and inbound endpoints

Both pages read the shipments feed: /orders-data reinterprets shipments as
orders, /inbound-data plans arrivals and receiving.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from brandbuddy.api.responses import run_page
from brandbuddy.config import get_settings
from brandbuddy.services.insight_service import InsightService
from brandbuddy.services.kpi_intelligence import generate_kpi_context
from brandbuddy.services.order_metrics import build_inbound_bundle, build_orders_bundle

settings = get_settings()

router = APIRouter(tags=["orders"])


def orders_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_orders_bundle(shipments, now=now)


async def orders_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    service = InsightService()
    return {
        "insights": await service.orders_insights(data, now=now),
        "kpiContext": await generate_kpi_context(
            data["inboundIntelligence"]["recentShipments"],
            data["kpis"],
            executive_role="Chief Fulfillment Officer",
            domain_focus="order fulfillment",
            llm=service.llm,
            today=now.date()
        ),
    }


def inbound_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_inbound_bundle(shipments, now=now)


async def inbound_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    return {"insights": await InsightService().inbound_insights(shipments, data, now=now)}


@router.get("/orders-data")
async def get_orders_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """Orders, order KPIs, inbound intelligence and insights"""
    return await run_page("orders", mode, orders_data, orders_insights, limit=settings.page_feed_limit)


@router.get("/inbound-data")
async def get_inbound_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """Inbound KPIs, today's arrivals, supplier scorecard and insights"""
    return await run_page("inbound", mode, inbound_data, inbound_insights, limit=settings.page_feed_limit)
