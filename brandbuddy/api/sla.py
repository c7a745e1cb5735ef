"""
SLA and analytics endpoints
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from brandbuddy.api.responses import run_page
from brandbuddy.config import get_settings
from brandbuddy.services.analytics_metrics import build_analytics_bundle
from brandbuddy.services.insight_service import InsightService
from brandbuddy.services.sla_metrics import build_sla_bundle

settings = get_settings()

router = APIRouter(tags=["sla"])


def sla_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_sla_bundle(products, shipments, now=now)


async def sla_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    # SLA insights are rule-based and already part of the bundle
    return {"insights": data["insights"]}


def analytics_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    return build_analytics_bundle(products, shipments, now=now)


async def analytics_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    return {"insights": await InsightService().analytics_insights(data, now=now)}


@router.get("/sla-data")
async def get_sla_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """SLA KPIs, trends, supplier scorecard, financial impact and recommendations"""
    return await run_page("sla", mode, sla_data, sla_insights, limit=settings.page_feed_limit)


@router.get("/analytics-data")
async def get_analytics_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """Growth and performance metrics, brand rankings and operational breakdown"""
    return await run_page("analytics", mode, analytics_data, analytics_insights, limit=settings.page_feed_limit)
