"""
Report builder endpoint
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Query

from brandbuddy.api.responses import error_response, run_page
from brandbuddy.config import get_settings
from brandbuddy.services.insight_service import InsightService
from brandbuddy.services.report_metrics import (
    build_report_bundle,
    build_report_catalog,
    build_report_filters,
    find_template,
)
from brandbuddy.utils.logger import log

settings = get_settings()

router = APIRouter(tags=["reports"])


async def no_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
    return {"insights": []}


@router.get("/reports-data")
async def get_reports_data(
    template: Optional[str] = Query(None, description="Report template id; omit for the template catalog"),
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive; used with endDate"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD, inclusive; used with startDate"),
    brands: Optional[str] = Query(None, description="Comma-separated brand names"),
    warehouses: Optional[str] = Query(None, description="Comma-separated warehouse ids"),
    mode: Optional[str] = Query(None, description="fast | insights; omit for the full report")
):
    """Report templates and filter options, or one report for a template"""
    if not template:
        return await run_page(
            "reports", mode,
            lambda products, shipments, now: build_report_catalog(products, shipments),
            no_insights,
            limit=settings.page_feed_limit,
            message=lambda products, shipments: "Available report templates and filter options"
        )

    selected = find_template(template)
    if selected is None:
        log.warning(f"Unknown report template: {template}")
        return error_response("Invalid template specified", f"No report template named {template}", status_code=400)
    if not selected["available"]:
        return error_response("Template not yet available", selected["description"], status_code=400)

    filters = build_report_filters(template, startDate, endDate, brands, warehouses)

    def report_data(products: List[Dict], shipments: List[Dict], now: datetime) -> Dict:
        return build_report_bundle(products, shipments, selected, filters)

    async def report_insights(products: List[Dict], shipments: List[Dict], data: Dict, now: datetime) -> Dict:
        return {"insights": await InsightService().report_insights(data, now=now)}

    return await run_page(
        "reports", mode, report_data, report_insights,
        limit=settings.page_feed_limit,
        message=lambda products, shipments: f"{selected['name']} report generated"
    )
