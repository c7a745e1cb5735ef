"""
Insight orchestration for every page.

Each page has a persona prompt built from its kernel output and a rule
path built from thresholds. The LLM path is tried first when enabled; a
missing, failed or unparseable reply falls through to the rules. Whatever
path produced them, insights are normalized before they leave here: ids
unique per response, severities from the closed set, integer non-negative
dollar impacts, 2-4 suggested actions, at most five insights.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from brandbuddy.config import get_settings
from brandbuddy.services import records as r
from brandbuddy.services.analytics_metrics import (
    calculate_analytics_kpis,
    calculate_brand_rankings,
    generate_analytics_rule_insights,
)
from brandbuddy.services.dashboard_metrics import calculate_financial_impacts, top_suppliers_by_volume
from brandbuddy.services.inventory_metrics import is_low_stock
from brandbuddy.services.kpi_intelligence import (
    analyze_supplier_impact,
    classify_operational_issues,
    describe_issues,
)
from brandbuddy.services.llm_service import LLMService
from brandbuddy.services.order_metrics import inbound_prompt_data, order_prompt_figures
from brandbuddy.services.replenishment_metrics import (
    generate_replenishment_rule_insights,
    replenishment_prompt_data,
)
from brandbuddy.services.report_metrics import generate_report_rule_insights
from brandbuddy.utils.helpers import iso_timestamp, round_half_up, to_number, utc_now
from brandbuddy.utils.logger import log

settings = get_settings()

MAX_INSIGHTS = 5
MAX_TITLE_LENGTH = 80
MIN_ACTIONS = 2
MAX_ACTIONS = 4

SEVERITY_ALIASES = {
    "critical": "critical",
    "high": "critical",
    "warning": "warning",
    "medium": "warning",
    "info": "info",
    "low": "info",
}

PERSONAS = {
    "dashboard": "a Senior Operations Director with 15+ years of experience in supply chain management "
                 "and business intelligence",
    "orders": "a Chief Fulfillment Officer with 18+ years of experience in order management and "
              "logistics optimization",
    "inbound": "a Senior Procurement and Inbound Operations Manager with 17+ years of experience in "
               "supplier relationship management and receiving operations",
    "inventory": "a Chief Inventory Officer with 20+ years of experience in inventory management and "
                 "working capital reduction",
    "replenishment": "a Supply Chain Planning Director with 21+ years of experience in demand planning "
                     "and supplier management",
    "analytics": "a 3PL analytics specialist",
    "reports": "a Chief Data Officer with 14+ years of experience in business analytics, predictive modeling "
               "and performance optimization",
}

SOURCES = {
    "dashboard": "dashboard_agent",
    "orders": "orders_agent",
    "inbound": "inbound_operations_agent",
    "inventory": "inventory_agent",
    "replenishment": "replenishment_agent",
    "analytics": "analytics_agent",
    "reports": "reports_agent",
}

OUTPUT_FORMAT = """[
  {
    "title": "Issue title based on the data above",
    "description": "Analysis citing specific suppliers, SKUs, shipment ids and dollar amounts",
    "severity": "critical|warning|info",
    "dollarImpact": 0,
    "suggestedActions": ["Specific action 1", "Specific action 2", "Specific action 3"]
  }
]"""


# ────────────────────────────────────────────
# NORMALIZATION
# ────────────────────────────────────────────


def normalize_severity(value: Any) -> str:
    return SEVERITY_ALIASES.get(str(value or "").strip().lower(), "info")


def default_actions(title: str) -> List[str]:
    return [f"Address {title.lower()}", "Implement corrective measures"]


def normalize_insights(raw: Any, page: str, now: Optional[datetime] = None) -> List[Dict]:
    """Coerce LLM or rule output into the insight contract"""
    if not isinstance(raw, list):
        return []

    created_at = iso_timestamp(now)
    insights = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        title = title[:MAX_TITLE_LENGTH]

        actions = [
            str(action).strip() for action in (item.get("suggestedActions") or [])
            if isinstance(action, (str, int, float)) and str(action).strip()
        ][:MAX_ACTIONS]
        for fallback in default_actions(title):
            if len(actions) >= MIN_ACTIONS:
                break
            if fallback not in actions:
                actions.append(fallback)

        insights.append({
            "id": f"{page}-insight-{len(insights) + 1}",
            "title": title,
            "description": str(item.get("description") or item.get("content") or title),
            "severity": normalize_severity(item.get("severity")),
            "dollarImpact": max(0, round_half_up(to_number(item.get("dollarImpact")))),
            "suggestedActions": actions,
            "createdAt": created_at,
            "source": SOURCES.get(page, f"{page}_agent"),
        })
        if len(insights) >= MAX_INSIGHTS:
            break
    return insights


def information_not_available_insight(page: str, now: Optional[datetime] = None) -> Dict:
    """The single insight shown when the feeds could not be read"""
    return {
        "id": f"{page}-insight-1",
        "title": "Information Not Available",
        "description": "Operational data could not be retrieved from the upstream feeds. "
                       "Figures will refresh once the data service is reachable again.",
        "severity": "info",
        "dollarImpact": 0,
        "suggestedActions": ["Check data feed connectivity", "Retry in a few minutes"],
        "createdAt": iso_timestamp(now),
        "source": SOURCES.get(page, f"{page}_agent"),
    }


# ────────────────────────────────────────────
# PROMPTS
# ────────────────────────────────────────────


def _section(title: str, lines: List[str]) -> str:
    body = "\n".join(f"- {line}" for line in lines) if lines else "- None"
    return f"{title}:\n{body}"


def build_insight_prompt(page: str, sections: List[str], focus: str) -> str:
    data = "\n\n".join(sections)
    return f"""You are {PERSONAS[page]}.

SPECIFIC DATA FOR ACTIONABLE RECOMMENDATIONS:

{data}

Identify the 3-5 most critical issues. {focus}
Every description and suggested action must reference concrete data from above
(supplier names, SKUs, shipment ids, dollar amounts or percentages).
Each insight needs 2-4 specific suggestedActions.

Respond with a JSON array only, in this format:
{OUTPUT_FORMAT}"""


def _issue_lines(records: List[Dict]) -> List[str]:
    suppliers = analyze_supplier_impact(records)
    issues = classify_operational_issues(records)
    lines = [
        f"Quantity discrepancies: {issues['quantityDiscrepancies']}",
        f"Delayed items: {issues['delayedItems']}",
        f"Cancelled items: {issues['cancelledItems']}",
        f"Total affected suppliers: {suppliers['totalAffectedSuppliers']}",
    ]
    if suppliers["topAffectedSuppliers"]:
        lines.append(f"Top affected suppliers: {', '.join(suppliers['topAffectedSuppliers'])}")
    return lines


def dashboard_prompt(products: List[Dict], shipments: List[Dict], bundle: Dict) -> str:
    financial = calculate_financial_impacts(products, shipments)
    kpis = bundle["kpis"]

    at_risk = sorted(
        (s for s in shipments if r.has_discrepancy(s)), key=lambda s: -r.discrepancy_value(s)
    )[:5]
    inactive = sorted(
        (p for p in products if not r.is_active(p) and r.unit_cost(p)), key=lambda p: -r.inventory_value(p)
    )[:4]

    sections = [
        _section("HEADLINE KPIS", [f"{name}: {value if value is not None else 'no data'}" for name, value in kpis.items()]),
        _section("ISSUE BREAKDOWN", _issue_lines(shipments)),
        _section("TOP AT-RISK SHIPMENTS", [
            f"Shipment {s.get('shipment_id')} from {r.supplier_of(s, 'Unknown')}: "
            f"variance {r.expected_qty(s) - r.received_qty(s)} units, impact ${round_half_up(r.discrepancy_value(s)):,}"
            for s in at_risk
        ]),
        _section("INACTIVE PRODUCTS", [
            f"SKU {p.get('product_sku') or p.get('product_id')} ({p.get('product_name')}) from "
            f"{p.get('supplier_name') or 'Unknown'}"
            for p in inactive
        ]),
        _section("FINANCIAL EXPOSURE", [
            f"Discrepancy impact: ${financial['quantityDiscrepancyImpact']:,}",
            f"Cancelled shipment losses: ${financial['cancelledShipmentsImpact']:,}",
            f"Inactive product opportunity cost: ${financial['inactiveProductsValue']:,}",
            f"Total financial risk: ${financial['totalFinancialRisk']:,}",
        ]),
        _section("COST VARIANCES", [
            f"{v['supplier']} ({v['type']}): {v['variance']}% variance, ${v['financialImpact']:,} impact"
            for v in bundle.get("costVariances", [])[:5]
        ]),
    ]
    return build_insight_prompt(
        "dashboard", sections,
        "Focus on shipment discrepancies, cost overruns and performance bottlenecks."
    )


def orders_prompt(orders_bundle: Dict, now: Optional[datetime] = None) -> str:
    kpis = orders_bundle["kpis"]
    intelligence = orders_bundle["inboundIntelligence"]
    figures = order_prompt_figures(intelligence["recentShipments"], kpis, intelligence, now=now)
    geo = intelligence["geopoliticalRisks"]

    sections = [
        _section("ORDER KPIS", [f"{name}: {value}" for name, value in kpis.items()]),
        _section("ORDER VALUE", [
            f"Total order portfolio value: ${figures['totalOrderValue']:,}",
            f"Average order value: ${figures['avgOrderValue']:,}",
            f"Cancellation rate: {figures['cancellationRate']}%",
            f"Orders older than 6 months: {figures['agedOrders']}",
        ]),
        _section("SUPPLIERS", [
            f"Active suppliers: {figures['supplierCount']}",
            f"Top volume supplier: {figures['topSupplier'] or 'N/A'} ({figures['topSupplierOrders']} orders, "
            f"{figures['topSupplierShare']}% of volume)",
        ]),
        _section("INBOUND", [
            f"Delayed shipments: {intelligence['delayedShipments']['count']} "
            f"({intelligence['delayedShipments']['percentage']:.1f}%)",
            f"Average delay: {intelligence['avgDelayDays']} days",
            f"Value at risk: ${intelligence['valueAtRisk']:,}",
            f"Geopolitical exposure: {', '.join(geo['riskCountries'])}" if geo else "Geopolitical exposure: none",
        ]),
    ]
    return build_insight_prompt(
        "orders", sections,
        "Focus on order value, supplier performance and fulfillment timing."
    )


def inbound_prompt(shipments: List[Dict], inbound_bundle: Dict, now: Optional[datetime] = None) -> str:
    data = inbound_prompt_data(shipments, now=now)
    sections = [
        _section("INBOUND KPIS", [f"{name}: {value}" for name, value in inbound_bundle["kpis"].items()]),
        _section("CRITICAL ARRIVALS TODAY", [
            f"Shipment {a['shipmentId']} from {a['supplier']}: {a['expectedQuantity']} units, ${a['totalValue']:,}"
            for a in data["criticalArrivals"]
        ]),
        _section("DELAYED SHIPMENTS", [
            f"Shipment {d['shipmentId']} from {d['supplier']}: {d['daysOverdue']} days overdue, "
            f"${d['delayImpact']:,} impact"
            for d in data["delayedShipments"]
        ]),
        _section("RECEIVING DISCREPANCIES", [
            f"Shipment {d['shipmentId']} from {d['supplier']}: expected {d['expectedQuantity']}, "
            f"received {d['receivedQuantity']} ({d['varianceType']} ${d['varianceValue']:,})"
            for d in data["receivingDiscrepancies"]
        ]),
    ]
    return build_insight_prompt(
        "inbound", sections,
        "Focus on receiving efficiency, arrival planning and supplier delivery performance."
    )


def inventory_prompt(products: List[Dict], inventory_bundle: Dict) -> str:
    kpis = inventory_bundle["kpis"]
    low_stock = sorted(
        (p for p in products if is_low_stock(p)), key=lambda p: -r.inventory_value(p)
    )[:5]
    overstocked = sorted(
        (p for p in products if r.is_active(p) and r.on_hand(p) > 100), key=lambda p: -r.inventory_value(p)
    )[:4]

    sections = [
        _section("INVENTORY KPIS", [f"{name}: {value}" for name, value in kpis.items() if value is not None]),
        _section("CRITICAL LOW STOCK", [
            f"SKU {p.get('product_sku') or p.get('product_id')} from {p.get('supplier_name') or 'Unknown'}: "
            f"{r.on_hand(p)} units at ${r.unit_cost(p) or 0:,.2f}"
            for p in low_stock
        ]),
        _section("OVERSTOCKED", [
            f"SKU {p.get('product_sku') or p.get('product_id')}: {r.on_hand(p)} units, "
            f"${round_half_up(r.inventory_value(p)):,} tied up"
            for p in overstocked
        ]),
        _section("SUPPLIER CONCENTRATION", [
            f"{s['supplier_name']}: {s['sku_count']} SKUs, ${s['total_value']:,} ({s['concentration_risk']}% of value)"
            for s in inventory_bundle["supplierAnalysis"][:3]
        ]),
    ]
    return build_insight_prompt(
        "inventory", sections,
        "Focus on stockout risk, excess inventory and working capital."
    )


def replenishment_prompt(products: List[Dict], shipments: List[Dict], kpis: Dict) -> str:
    data = replenishment_prompt_data(products, shipments)
    sections = [
        _section("REPLENISHMENT KPIS", [f"{name}: {value}" for name, value in kpis.items()]),
        _section("CRITICAL REPLENISHMENT ITEMS", [
            f"SKU {i['sku']} ({i['name']}) from {i['supplier']}: {i['currentStock']} units, ${i['totalValue']:,}"
            for i in data["criticalItems"]
        ]),
        _section("STOCKOUT RISKS", [
            f"SKU {i['sku']} ({i['name']}) from {i['supplier']}: out of stock, "
            f"${i['lostSalesRisk']:,}/month lost sales risk"
            for i in data["stockoutRisks"]
        ]),
        _section("SUPPLIER PERFORMANCE ISSUES", [
            f"{s['supplier']}: {s['discrepancies']} delivery discrepancies, ${s['totalImpact']:,} impact"
            for s in data["supplierIssues"]
        ]),
    ]
    return build_insight_prompt(
        "replenishment", sections,
        "Focus on reorder urgency, stockout prevention and supplier reliability."
    )


def analytics_prompt(bundle: Dict) -> str:
    kpis = bundle["kpis"]
    brands = bundle["brandPerformance"]
    sections = [
        _section("ANALYTICS KPIS", [f"{name}: {value}%" for name, value in kpis.items()]),
        _section("PERFORMANCE", [
            f"Total orders analyzed: {bundle['performanceMetrics']['orderVolumeTrend']['totalOrdersAnalyzed']}",
            f"Fulfilled orders: {bundle['performanceMetrics']['fulfillmentPerformance']['onTimeOrders']}",
        ]),
        _section("BRANDS", [
            f"Total brands: {brands['totalBrands']}",
            f"Top brand: {brands['topBrand']['name']} ({brands['topBrand']['skuCount']} SKUs)",
        ]),
    ]
    return build_insight_prompt(
        "analytics", sections,
        "Focus on performance trends, efficiency improvements and brand performance."
    )


REPORT_FOCUS = {
    "inventory-health": "Focus on inventory optimization across brands and active SKUs.",
    "fulfillment-performance": "Focus on SLA compliance, delayed deliveries and operational efficiency.",
    "supplier-analysis": "Focus on supplier delivery patterns and relationship optimization.",
    "warehouse-efficiency": "Focus on warehouse throughput and cost per shipment.",
    "brand-performance": "Focus on inventory investment and portfolio concentration by brand.",
}


def report_prompt(bundle: Dict) -> str:
    kpis = bundle["kpis"]
    products = bundle["products"]
    avg_cost = sum(r.unit_cost(p) or 0 for p in products) / len(products) if products else 0
    sections = [
        _section(f"{bundle['template']['name'].upper()} REPORT ({bundle['reportPeriod']})", [
            f"Products: {kpis['totalProducts']} ({kpis['activeProducts']} active)",
            f"Inventory value: ${kpis['totalInventoryValue']:,}",
            f"Shipments: {kpis['totalShipments']} ({kpis['completedShipments']} completed, "
            f"{kpis['delayedShipments']} delayed)",
            f"SLA compliance: {kpis['slaCompliance']}%",
            f"Fulfillment rate: {kpis['fulfillmentRate']}%",
            f"Average unit cost: ${avg_cost:.2f}",
        ]),
        _section("TOP BRANDS", [
            f"{b['brand_name']}: {b['sku_count']} SKUs, ${b['total_value']:,} "
            f"({b['portfolio_percentage']}% of portfolio)"
            for b in bundle["availableBrands"][:5]
        ]),
        _section("WAREHOUSES", [
            f"{w['warehouse_name']}: {w['total_shipments']} shipments, {w['efficiency_rate']}% completed, "
            f"${w['avg_cost_per_shipment']:,} per shipment"
            for w in bundle["availableWarehouses"][:5]
        ]),
    ]
    focus = REPORT_FOCUS.get(bundle["template"]["id"], "Focus on strategic business recommendations.")
    return build_insight_prompt("reports", sections, focus)


# ────────────────────────────────────────────
# RULE PATHS
# ────────────────────────────────────────────


def dashboard_rule_insights(products: List[Dict], shipments: List[Dict], bundle: Dict,
                            now: Optional[datetime] = None) -> List[Dict]:
    now = now or utc_now()
    insights = list(generate_analytics_rule_insights(
        calculate_analytics_kpis(products, shipments, now=now),
        calculate_brand_rankings(products),
        now=now,
        shipment_count=len(shipments),
    ))
    financial = calculate_financial_impacts(products, shipments)
    suppliers = analyze_supplier_impact(shipments, r.has_discrepancy)

    if financial["quantityDiscrepancyImpact"] > 0:
        impact = financial["quantityDiscrepancyImpact"]
        worst = max((s for s in shipments if r.has_discrepancy(s)), key=r.discrepancy_value)
        insights.append({
            "title": "Quantity Discrepancies Driving Losses",
            "description": (
                f"Receiving discrepancies account for ${impact:,} in exposure, led by "
                f"{', '.join(suppliers['topAffectedSuppliers']) or 'unattributed shipments'}."
            ),
            "severity": "critical" if impact > 10_000 else "warning",
            "dollarImpact": impact,
            "suggestedActions": [
                f"Review shipment {worst.get('shipment_id')} with {r.supplier_of(worst, 'the supplier')}",
                "Reconcile receiving counts against purchase orders",
                "Set discrepancy tolerance alerts per supplier",
            ],
        })

    if financial["cancelledShipmentsImpact"] > 0:
        cancelled = sum(1 for s in shipments if r.is_cancelled(s))
        insights.append({
            "title": "Cancelled Shipment Losses",
            "description": (
                f"{cancelled} cancelled shipments represent ${financial['cancelledShipmentsImpact']:,} "
                "in expected inventory that never arrived."
            ),
            "severity": "warning",
            "dollarImpact": financial["cancelledShipmentsImpact"],
            "suggestedActions": [
                "Confirm replacement orders for cancelled purchase orders",
                "Review cancellation causes with affected suppliers",
            ],
        })

    variances = bundle.get("costVariances") or []
    if variances:
        top = variances[0]
        insights.append({
            "title": "Supplier Cost Variance Detected",
            "description": (
                f"{len(variances)} cost variance anomalies detected; {top['supplier']} shows "
                f"{top['variance']}% variance worth ${top['financialImpact']:,}."
            ),
            "severity": "warning",
            "dollarImpact": sum(v["financialImpact"] for v in variances),
            "suggestedActions": [
                f"Audit recent invoices from {top['supplier']}",
                "Lock unit costs in supplier agreements",
            ],
        })

    if financial["inactiveProductsValue"] > 0:
        inactive = sum(1 for p in products if not r.is_active(p))
        insights.append({
            "title": "Inactive Product Opportunity",
            "description": (
                f"{inactive} inactive SKUs hold ${financial['inactiveProductsValue']:,} in near-term "
                "sellable inventory."
            ),
            "severity": "info",
            "dollarImpact": financial["inactiveProductsValue"],
            "suggestedActions": [
                "Review inactive SKUs for reactivation",
                "Liquidate SKUs with no reactivation plan",
            ],
        })
    return insights


def inventory_rule_insights(products: List[Dict], inventory_bundle: Dict) -> List[Dict]:
    kpis = inventory_bundle["kpis"]
    insights = []

    if kpis["lowStockAlerts"] > 0:
        reorder_value = sum(
            max(0, 20 - r.on_hand(p)) * (r.unit_cost(p) or 0) for p in products if is_low_stock(p)
        )
        insights.append({
            "title": "Low Stock Replenishment Needed",
            "description": (
                f"{kpis['lowStockAlerts']} active SKUs are below 10 units; restoring them costs "
                f"${round_half_up(reorder_value):,}."
            ),
            "severity": "warning",
            "dollarImpact": reorder_value,
            "suggestedActions": [
                "Raise purchase orders for SKUs under 10 units",
                "Set reorder points for fast-moving SKUs",
            ],
        })

    if kpis["inactiveSKUs"] > 0:
        inactive_value = sum(r.inventory_value(p) for p in products if not r.is_active(p))
        insights.append({
            "title": "Inactive Inventory Review",
            "description": (
                f"{kpis['inactiveSKUs']} inactive SKUs tie up ${round_half_up(inactive_value):,} "
                "of inventory value."
            ),
            "severity": "info",
            "dollarImpact": inactive_value if inactive_value > 0 else 2500,
            "suggestedActions": [
                "Reactivate inactive SKUs with remaining demand",
                "Plan clearance for obsolete stock",
            ],
        })

    concentrated = [s for s in inventory_bundle["supplierAnalysis"] if s["concentration_risk"] > 40]
    if concentrated:
        top = concentrated[0]
        insights.append({
            "title": "Supplier Concentration Risk",
            "description": (
                f"{top['supplier_name']} supplies {top['concentration_risk']}% of inventory value "
                f"across {top['sku_count']} SKUs."
            ),
            "severity": "warning",
            "dollarImpact": 5000,
            "suggestedActions": [
                f"Qualify an alternate supplier for {top['supplier_name']} SKUs",
                "Review contract terms for concentrated suppliers",
            ],
        })
    return insights


def orders_rule_insights(orders_bundle: Dict) -> List[Dict]:
    kpis = orders_bundle["kpis"]
    intelligence = orders_bundle["inboundIntelligence"]
    insights = []

    delayed = intelligence["delayedShipments"]
    if delayed["count"] > 0:
        insights.append({
            "title": "Inbound Delays Affecting Orders",
            "description": (
                f"{delayed['count']} orders ({delayed['percentage']:.1f}%) are delayed by an average of "
                f"{intelligence['avgDelayDays']} days, putting ${intelligence['valueAtRisk']:,} at risk."
            ),
            "severity": "critical" if delayed["percentage"] > 25 else "warning",
            "dollarImpact": intelligence["valueAtRisk"],
            "suggestedActions": [
                "Escalate the longest-delayed orders with their suppliers",
                "Notify affected customers of revised dates",
            ],
        })

    if kpis["atRiskOrders"] > 0:
        insights.append({
            "title": "At-Risk Orders Need Attention",
            "description": (
                f"{kpis['atRiskOrders']} orders show SLA risk or quantity discrepancies across "
                f"{kpis['openPOs']} open purchase orders."
            ),
            "severity": "warning",
            "dollarImpact": 5000,
            "suggestedActions": [
                "Review at-risk orders daily until resolved",
                "Confirm received quantities against purchase orders",
            ],
        })

    geo = intelligence["geopoliticalRisks"]
    if geo:
        insights.append({
            "title": "Geopolitical Sourcing Exposure",
            "description": (
                f"{geo['affectedShipments']} shipments originate from {', '.join(geo['riskCountries'])}."
            ),
            "severity": "info",
            "dollarImpact": 2500,
            "suggestedActions": [
                "Map alternate origins for exposed SKUs",
                "Add buffer stock for exposed supply lanes",
            ],
        })
    return insights


def inbound_rule_insights(inbound_bundle: Dict) -> List[Dict]:
    kpis = inbound_bundle["kpis"]
    insights = []

    if kpis["delayedShipments"] > 0:
        insights.append({
            "title": "Delayed Inbound Shipments",
            "description": (
                f"{kpis['delayedShipments']} shipments arrived after their expected date; on-time delivery "
                f"is {kpis['onTimeDeliveryRate']}%."
            ),
            "severity": "critical" if kpis["onTimeDeliveryRate"] < 80 else "warning",
            "dollarImpact": 5000,
            "suggestedActions": [
                "Escalate late suppliers with delivery improvement plans",
                "Adjust receiving schedules for known late lanes",
            ],
        })

    if kpis["receivingAccuracy"] < 95:
        insights.append({
            "title": "Receiving Accuracy Below Target",
            "description": f"Receiving accuracy is {kpis['receivingAccuracy']}% against a 95% target.",
            "severity": "warning",
            "dollarImpact": 5000,
            "suggestedActions": [
                "Audit receiving counts for mismatched shipments",
                "Require advance ship notices from suppliers",
            ],
        })

    if kpis["todayArrivals"] > 0:
        insights.append({
            "title": "Today's Receiving Schedule",
            "description": (
                f"{kpis['todayArrivals']} shipments arrive today and {kpis['thisWeekExpected']} are "
                "expected this week."
            ),
            "severity": "info",
            "dollarImpact": 2500,
            "suggestedActions": [
                "Staff receiving docks for today's arrivals",
                "Pre-stage putaway locations",
            ],
        })
    return insights


# ────────────────────────────────────────────
# DAILY BRIEF
# ────────────────────────────────────────────


def daily_brief_prompt(products: List[Dict], shipments: List[Dict], financial: Dict) -> str:
    active = sum(1 for p in products if r.is_active(p))
    issues = classify_operational_issues(shipments)
    top = top_suppliers_by_volume(shipments)
    concentration = sum(s["share"] for s in top)
    return f"""You are a senior operations assistant for the {settings.tenant_brand} brand. Analyze today's operational data and provide an executive briefing. Be direct, specific and actionable.

OPERATIONAL STATUS:
- Portfolio: {len(products)} total products ({active} active, {len(products) - active} inactive)
- Shipments: {len(shipments)} processed ({issues['quantityDiscrepancies']} with discrepancies, {issues['cancelledItems']} cancelled)
- Financial exposure: ${financial['totalFinancialRisk']:,} at risk from operational issues
- Supplier concentration: {concentration}% with top 3 suppliers
- Key suppliers: {', '.join(s['supplier'] for s in top) or 'None'}

Write a 4-6 sentence executive brief that identifies today's highest-priority risks, quantifies the dollar impact and names the immediate actions needed.
Do NOT include greetings or source attributions. Start directly with the operational analysis."""


def fallback_daily_brief(products: List[Dict], shipments: List[Dict], financial: Dict) -> str:
    issues = classify_operational_issues(shipments)
    inactive = sum(1 for p in products if not r.is_active(p))
    top = top_suppliers_by_volume(shipments)
    issue_phrase = describe_issues(issues)

    sentences = [
        f"Today's operations cover {len(shipments)} shipments and {len(products)} products "
        f"with ${financial['totalFinancialRisk']:,} in total financial exposure."
    ]
    if issue_phrase:
        sentences.append(
            f"The main risks are {issue_phrase}, with ${financial['quantityDiscrepancyImpact']:,} tied to "
            "quantity discrepancies."
        )
    else:
        sentences.append("No receiving discrepancies or cancellations were recorded.")
    if inactive:
        sentences.append(
            f"{inactive} inactive SKUs hold ${financial['inactiveProductsValue']:,} that could be reactivated."
        )
    if top:
        sentences.append(
            f"{top[0]['supplier']} carries {top[0]['share']}% of shipment volume and should be reviewed first."
        )
    sentences.append("Prioritize resolving open discrepancies before the next receiving cycle.")
    return " ".join(sentences)


# ────────────────────────────────────────────
# ORCHESTRATOR
# ────────────────────────────────────────────


class InsightService:
    """Runs the LLM path with the rule path as fallback for each page"""

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or LLMService()

    async def generate(
        self,
        page: str,
        prompt_builder: Callable[[], str],
        rule_builder: Callable[[], List[Dict]],
        model: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[Dict]:
        if self.llm.enabled:
            parsed = await self.llm.complete_json(
                prompt_builder(),
                model=model or settings.ai_model_fast,
                max_tokens=1500,
                temperature=0.2
            )
            insights = normalize_insights(parsed, page, now=now)
            if insights:
                log.info(f"Generated {len(insights)} {page} insights via LLM")
                return insights
            log.warning(f"LLM returned no usable {page} insights, using rule-based fallback")

        insights = normalize_insights(rule_builder(), page, now=now)
        log.info(f"Generated {len(insights)} {page} insights from rules")
        return insights

    async def dashboard_insights(self, products: List[Dict], shipments: List[Dict], bundle: Dict,
                                 now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "dashboard",
            lambda: dashboard_prompt(products, shipments, bundle),
            lambda: dashboard_rule_insights(products, shipments, bundle, now=now),
            model=settings.ai_model_advanced,
            now=now,
        )

    async def orders_insights(self, orders_bundle: Dict, now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "orders",
            lambda: orders_prompt(orders_bundle, now=now),
            lambda: orders_rule_insights(orders_bundle),
            model=settings.ai_model_advanced,
            now=now,
        )

    async def inbound_insights(self, shipments: List[Dict], inbound_bundle: Dict,
                               now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "inbound",
            lambda: inbound_prompt(shipments, inbound_bundle, now=now),
            lambda: inbound_rule_insights(inbound_bundle),
            model=settings.ai_model_advanced,
            now=now,
        )

    async def inventory_insights(self, products: List[Dict], inventory_bundle: Dict,
                                 now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "inventory",
            lambda: inventory_prompt(products, inventory_bundle),
            lambda: inventory_rule_insights(products, inventory_bundle),
            now=now,
        )

    async def replenishment_insights(self, products: List[Dict], shipments: List[Dict], kpis: Dict,
                                     now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "replenishment",
            lambda: replenishment_prompt(products, shipments, kpis),
            lambda: generate_replenishment_rule_insights(products, shipments, kpis, now=now),
            now=now,
        )

    async def analytics_insights(self, bundle: Dict, now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "analytics",
            lambda: analytics_prompt(bundle),
            lambda: generate_analytics_rule_insights(
                bundle["kpis"], bundle["brandPerformance"], now=now,
                shipment_count=bundle["performanceMetrics"]["orderVolumeTrend"]["totalOrdersAnalyzed"],
            ),
            model=settings.ai_model_advanced,
            now=now,
        )

    async def report_insights(self, bundle: Dict, now: Optional[datetime] = None) -> List[Dict]:
        return await self.generate(
            "reports",
            lambda: report_prompt(bundle),
            lambda: generate_report_rule_insights(bundle["kpis"], bundle["template"]["id"]),
            now=now,
        )

    async def daily_brief(self, products: List[Dict], shipments: List[Dict]) -> str:
        """4-6 sentence executive brief; deterministic when the LLM is unavailable"""
        financial = calculate_financial_impacts(products, shipments)
        if self.llm.enabled:
            content = await self.llm.complete(
                daily_brief_prompt(products, shipments, financial),
                model=settings.ai_model_advanced,
                max_tokens=100,
                temperature=0.2
            )
            if content and content.strip():
                return content.strip().replace('"', "")
            log.warning("LLM daily brief unavailable, using fallback brief")
        return fallback_daily_brief(products, shipments, financial)
