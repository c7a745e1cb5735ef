"""
Reports page: template catalog, report filters, report KPIs and the brand
and warehouse options offered as filter choices.

Without a template the page is a catalog (templates plus filter options).
With one, the feeds are narrowed by date range, brands and warehouses and
summarized for that template.
"""
from typing import Dict, List, Optional

from brandbuddy.services import records as r
from brandbuddy.utils.helpers import date_key, round_half_up

COMPLETED_STATUSES = ("completed", "receiving")

LOW_SLA_COMPLIANCE = 90
LOW_FULFILLMENT_RATE = 80
HIGH_INACTIVE_SHARE = 20

REPORT_TEMPLATES = [
    {
        "id": "inventory-health",
        "name": "Inventory Health",
        "description": "Stock levels, brands, suppliers",
        "estimatedReadTime": "3 min read",
        "metrics": ["Inventory", "Insights"],
        "available": True,
        "icon": "package",
    },
    {
        "id": "fulfillment-performance",
        "name": "Fulfillment Performance",
        "description": "SLA compliance, delivery metrics",
        "estimatedReadTime": "4 min read",
        "metrics": ["Orders", "SLA", "Insights"],
        "available": True,
        "icon": "truck",
    },
    {
        "id": "supplier-analysis",
        "name": "Supplier Analysis",
        "description": "Delivery performance, cost trends",
        "estimatedReadTime": "3 min read",
        "metrics": ["Suppliers", "SLA", "Insights"],
        "available": True,
        "icon": "factory",
    },
    {
        "id": "warehouse-efficiency",
        "name": "Warehouse Efficiency",
        "description": "Throughput, cost per shipment",
        "estimatedReadTime": "4 min read",
        "metrics": ["Warehouses", "Costs", "Insights"],
        "available": True,
        "icon": "building",
    },
    {
        "id": "brand-performance",
        "name": "Brand Performance",
        "description": "Inventory investment, supplier relationships",
        "estimatedReadTime": "3 min read",
        "metrics": ["Brands", "Inventory", "Insights"],
        "available": True,
        "icon": "tag",
    },
    {
        "id": "returns-analysis",
        "name": "Returns Analysis",
        "description": "Feature coming soon - Advanced returns processing analytics",
        "estimatedReadTime": "3 min read",
        "metrics": ["Returns", "Insights"],
        "available": False,
        "icon": "undo",
    },
    {
        "id": "employee-productivity",
        "name": "Employee Productivity",
        "description": "Feature coming soon - Workforce performance tracking",
        "estimatedReadTime": "4 min read",
        "metrics": ["Labor", "Productivity", "Insights"],
        "available": False,
        "icon": "users",
    },
    {
        "id": "labor-forecast",
        "name": "Labor Forecast",
        "description": "Feature coming soon - Workforce planning and optimization",
        "estimatedReadTime": "5 min read",
        "metrics": ["Labor", "Forecasting", "Insights"],
        "available": False,
        "icon": "chart",
    },
]


def get_report_templates() -> List[Dict]:
    return [dict(template) for template in REPORT_TEMPLATES]


def find_template(template_id: Optional[str]) -> Optional[Dict]:
    for template in REPORT_TEMPLATES:
        if template["id"] == template_id:
            return dict(template)
    return None


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    """Comma-separated query value to a list; None when empty"""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def build_report_filters(
    template: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    brands: Optional[str] = None,
    warehouses: Optional[str] = None
) -> Dict:
    return {
        "template": template,
        "startDate": start_date or None,
        "endDate": end_date or None,
        "brands": _split_list(brands),
        "warehouses": _split_list(warehouses),
    }


def filter_by_date_range(records: List[Dict], start_date: Optional[str], end_date: Optional[str]) -> List[Dict]:
    """
    Keep records created between start_date and end_date, both inclusive,
    compared by calendar date. Applied only when both ends are given;
    records without a created_date are dropped.
    """
    start, end = date_key(start_date), date_key(end_date)
    if not start or not end:
        return list(records)
    kept = []
    for record in records:
        created = date_key(record.get("created_date"))
        if created and start <= created <= end:
            kept.append(record)
    return kept


def apply_report_filters(products: List[Dict], shipments: List[Dict], filters: Dict):
    """(products, shipments) narrowed by date range, brands and warehouses"""
    products = filter_by_date_range(products, filters.get("startDate"), filters.get("endDate"))
    shipments = filter_by_date_range(shipments, filters.get("startDate"), filters.get("endDate"))

    brands = filters.get("brands")
    if brands:
        products = [p for p in products if p.get("brand_name") in brands]
        shipments = [s for s in shipments if s.get("brand_name") in brands]

    warehouses = filters.get("warehouses")
    if warehouses:
        shipments = [s for s in shipments if s.get("warehouse_id") in warehouses]

    return products, shipments


def report_period(filters: Dict) -> str:
    if filters.get("startDate") and filters.get("endDate"):
        return f"{filters['startDate']} to {filters['endDate']}"
    return "All available data"


def calculate_report_kpis(products: List[Dict], shipments: List[Dict]) -> Dict:
    total_shipments = len(shipments)
    completed = sum(1 for s in shipments if r.status_of(s) in COMPLETED_STATUSES)
    delayed = sum(1 for s in shipments if r.arrived_late(s))

    return {
        "totalProducts": len(products),
        "totalShipments": total_shipments,
        "activeProducts": sum(1 for p in products if r.is_active(p)),
        "totalInventoryValue": round_half_up(sum(r.inventory_value(p) for p in products)),
        "completedShipments": completed,
        "delayedShipments": delayed,
        "slaCompliance": (
            round_half_up(100 * (total_shipments - delayed) / total_shipments) if total_shipments else None
        ),
        "fulfillmentRate": round_half_up(100 * completed / total_shipments) if total_shipments else None,
    }


def calculate_available_brands(products: List[Dict]) -> List[Dict]:
    """Brand filter options, highest inventory value first"""
    brands: Dict[str, Dict] = {}
    for p in products:
        brand = brands.setdefault(p.get("brand_name") or "Unknown Brand", {"skus": 0, "value": 0, "quantity": 0})
        brand["skus"] += 1
        brand["value"] += r.inventory_value(p)
        brand["quantity"] += r.on_hand(p)

    portfolio_value = sum(brand["value"] for brand in brands.values())
    options = [
        {
            "brand_name": name,
            "sku_count": brand["skus"],
            "total_value": round_half_up(brand["value"]),
            "total_quantity": brand["quantity"],
            "avg_value_per_sku": round_half_up(brand["value"] / brand["skus"]),
            "portfolio_percentage": (
                round_half_up(100 * brand["value"] / portfolio_value) if portfolio_value > 0 else 0
            ),
            "efficiency_score": round_half_up(
                (brand["value"] / brand["skus"]) * (brand["quantity"] / brand["skus"])
            ),
        }
        for name, brand in brands.items()
    ]
    return sorted(options, key=lambda option: -option["total_value"])


def calculate_available_warehouses(shipments: List[Dict]) -> List[Dict]:
    """Warehouse filter options, highest shipment cost first"""
    warehouses: Dict[str, Dict] = {}
    for s in shipments:
        warehouse_id = s.get("warehouse_id")
        if not warehouse_id:
            continue
        warehouse = warehouses.setdefault(warehouse_id, {"shipments": 0, "completed": 0, "cost": 0, "quantity": 0})
        warehouse["shipments"] += 1
        warehouse["cost"] += (r.unit_cost(s) or 0) * r.expected_qty(s)
        warehouse["quantity"] += r.expected_qty(s)
        if r.status_of(s) in COMPLETED_STATUSES:
            warehouse["completed"] += 1

    options = [
        {
            "warehouse_id": warehouse_id,
            "warehouse_name": warehouse_id,
            "total_shipments": warehouse["shipments"],
            "completed_shipments": warehouse["completed"],
            "total_cost": round_half_up(warehouse["cost"]),
            "total_quantity": warehouse["quantity"],
            "efficiency_rate": round_half_up(100 * warehouse["completed"] / warehouse["shipments"]),
            "avg_cost_per_shipment": round_half_up(warehouse["cost"] / warehouse["shipments"]),
        }
        for warehouse_id, warehouse in warehouses.items()
    ]
    return sorted(options, key=lambda option: -option["total_cost"])


def build_report_catalog(products: List[Dict], shipments: List[Dict]) -> Dict:
    return {
        "templates": get_report_templates(),
        "availableBrands": calculate_available_brands(products),
        "availableWarehouses": calculate_available_warehouses(shipments),
    }


def build_report_bundle(products: List[Dict], shipments: List[Dict], template: Dict, filters: Dict) -> Dict:
    """
    One report. Filter options are computed from the unfiltered feeds so the
    page can offer every brand and warehouse regardless of the current filter.
    """
    report_products, report_shipments = apply_report_filters(products, shipments, filters)
    return {
        "template": template,
        "filters": filters,
        "products": report_products,
        "shipments": report_shipments,
        "kpis": calculate_report_kpis(report_products, report_shipments),
        "availableBrands": calculate_available_brands(products),
        "availableWarehouses": calculate_available_warehouses(shipments),
        "reportPeriod": report_period(filters),
    }


def generate_report_rule_insights(kpis: Dict, template_id: str) -> List[Dict]:
    """Threshold insights over the report KPIs, used when the LLM is unavailable"""
    insights = []

    sla = kpis["slaCompliance"]
    if sla is not None and sla < LOW_SLA_COMPLIANCE:
        insights.append({
            "title": "SLA Compliance Below Target",
            "description": (
                f"{kpis['delayedShipments']} of {kpis['totalShipments']} shipments arrived late, "
                f"leaving SLA compliance at {sla:g}% against a {LOW_SLA_COMPLIANCE}% target."
            ),
            "severity": "critical" if sla < 75 else "warning",
            "dollarImpact": 5000,
            "suggestedActions": [
                "Review late shipments with their suppliers",
                "Set up automated alerts for shipments nearing their expected date",
            ],
        })

    fulfillment = kpis["fulfillmentRate"]
    if fulfillment is not None and fulfillment < LOW_FULFILLMENT_RATE:
        open_shipments = kpis["totalShipments"] - kpis["completedShipments"]
        insights.append({
            "title": "Open Shipments Backlog",
            "description": (
                f"Only {fulfillment:g}% of shipments are received or completed; "
                f"{open_shipments} shipments remain open in this report period."
            ),
            "severity": "warning",
            "dollarImpact": 2500,
            "suggestedActions": [
                "Prioritize receiving for the oldest open shipments",
                "Confirm delivery dates for open purchase orders",
            ],
        })

    total_products = kpis["totalProducts"]
    inactive = total_products - kpis["activeProducts"]
    if total_products and 100 * inactive / total_products > HIGH_INACTIVE_SHARE:
        insights.append({
            "title": "Inactive SKUs In Catalog",
            "description": (
                f"{inactive} of {total_products} SKUs are inactive "
                f"({round_half_up(100 * inactive / total_products):g}% of the catalog)."
            ),
            "severity": "info",
            "dollarImpact": 2500,
            "suggestedActions": [
                "Review inactive SKUs for reactivation or liquidation",
                "Archive SKUs with no planned demand",
            ],
        })

    template = find_template(template_id)
    insights.append({
        "title": f"{template['name'] if template else 'Report'} Summary",
        "description": (
            f"Report covers {total_products} products worth ${kpis['totalInventoryValue']:,} "
            f"and {kpis['totalShipments']} shipments ({kpis['completedShipments']} completed)."
        ),
        "severity": "info",
        "dollarImpact": 0,
        "suggestedActions": [
            "Set up automated performance reports for stakeholders",
            "Implement dashboard alerts for KPI thresholds",
        ],
    })
    return insights
