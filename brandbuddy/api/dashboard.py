"""
Dashboard endpoints

/dashboard-data returns the full bundle, /dashboard-data-fast the same
bundle without LLM work, and /dashboard-insights only the insight fields
(insights, daily brief and KPI card context).
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from brandbuddy.api.responses import run_page
from brandbuddy.config import get_settings
from brandbuddy.services.dashboard_metrics import build_dashboard_bundle
from brandbuddy.services.insight_service import InsightService
from brandbuddy.services.kpi_intelligence import generate_kpi_context

settings = get_settings()

router = APIRouter(tags=["dashboard"])


def dashboard_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
    data = build_dashboard_bundle(products, shipments, today=now.date())
    data["dailyBrief"] = ""
    return data


async def dashboard_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    service = InsightService()
    return {
        "insights": await service.dashboard_insights(products, shipments, data, now=now),
        "dailyBrief": await service.daily_brief(products, shipments),
    }


async def dashboard_insights_with_context(products: List[Dict], shipments: List[Dict], data: Dict,
                                          now: datetime) -> Dict:
    service = InsightService()
    return {
        "insights": await service.dashboard_insights(products, shipments, data, now=now),
        "dailyBrief": await service.daily_brief(products, shipments),
        "kpiContext": await generate_kpi_context(
            shipments,
            data["kpis"],
            executive_role="Chief Operating Officer",
            domain_focus="operational",
            llm=service.llm,
            today=now.date()
        ),
    }


@router.get("/dashboard-data")
async def get_dashboard_data(
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full bundle")
):
    """
    Core dashboard bundle: KPIs, quick overview, warehouse inventory,
    anomalies, margin risks, cost variances and insights
    """
    if mode == "insights":
        return await run_page(
            "dashboard", mode, dashboard_data, dashboard_insights_with_context,
            limit=settings.insights_feed_limit
        )
    return await run_page(
        "dashboard", mode, dashboard_data, dashboard_insights,
        limit=settings.dashboard_feed_limit
    )


@router.get("/dashboard-data-fast")
async def get_dashboard_data_fast():
    """Dashboard bundle without insights, for the first paint"""
    return await run_page(
        "dashboard", "fast", dashboard_data, dashboard_insights,
        limit=settings.dashboard_feed_limit
    )


@router.get("/dashboard-insights")
async def get_dashboard_insights():
    """Insights, daily brief and KPI context only"""
    return await run_page(
        "dashboard", "insights", dashboard_data, dashboard_insights_with_context,
        limit=settings.insights_feed_limit
    )
