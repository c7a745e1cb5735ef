"""
Replenishment analytics: critical stock, reorder suggestions and supplier
alerts for the replenishment page.
"""
from datetime import datetime
from typing import Dict, List, Optional

from brandbuddy.services import records as r
from brandbuddy.services.risk_engine import build_supplier_scorecard
from brandbuddy.utils.helpers import iso_timestamp, round_half_up, utc_now

CRITICAL_STOCK_THRESHOLD = 5
LOW_STOCK_THRESHOLD = 10
REORDER_TARGET = 20
RECENT_WINDOW_DAYS = 30

# Rule-insight constants
URGENT_REORDER_TARGET = 30
URGENT_CRITICAL_COUNT = 15
STOCKOUT_LOSS_PER_SKU = 500
SUPPLIER_ISSUE_WARNING_COUNT = 10
MAX_RULE_INSIGHTS = 4


def _recent_shipments(shipments: List[Dict], now: datetime) -> List[Dict]:
    recent = []
    for s in shipments:
        age = r.created_days_ago(s, now)
        if age is not None and age <= RECENT_WINDOW_DAYS:
            recent.append(s)
    return recent


def is_critical(product: Dict) -> bool:
    return r.is_active(product) and 0 < r.on_hand(product) < CRITICAL_STOCK_THRESHOLD


def needs_reorder(product: Dict) -> bool:
    return r.is_active(product) and r.on_hand(product) < LOW_STOCK_THRESHOLD


def reorder_quantity(product: Dict, target: int = REORDER_TARGET) -> float:
    return max(target - r.on_hand(product), 0)


def calculate_replenishment_kpis(
    products: List[Dict],
    shipments: List[Dict],
    now: Optional[datetime] = None
) -> Dict:
    now = now or utc_now()
    critical = sum(1 for p in products if is_critical(p))
    out_of_stock = sum(1 for p in products if r.is_active_out_of_stock(p))
    replenishment_value = sum(
        reorder_quantity(p) * (r.unit_cost(p) or 0) for p in products if needs_reorder(p)
    )
    alerting_suppliers = {
        r.supplier_of(s) for s in _recent_shipments(shipments, now)
        if r.supplier_of(s) and (r.has_discrepancy(s) or r.status_of(s) == "delayed")
    }

    return {
        "criticalSKUs": critical,
        "replenishmentValue": round_half_up(replenishment_value),
        "supplierAlerts": len(alerting_suppliers),
        "reorderRecommendations": critical + out_of_stock,
    }


def build_critical_items(products: List[Dict]) -> List[Dict]:
    """Active SKUs under 10 units, lowest stock first"""
    items = []
    for p in products:
        quantity = r.on_hand(p)
        if not (r.is_active(p) and 0 < quantity < LOW_STOCK_THRESHOLD):
            continue
        cost = r.unit_cost(p) or 0
        to_order = reorder_quantity(p)
        items.append({
            "sku": p.get("product_sku") or p.get("product_id"),
            "product_name": p.get("product_name"),
            "supplier": p.get("supplier_name"),
            "current_stock": quantity,
            "reorder_quantity": to_order,
            "unit_cost": cost,
            "reorder_cost": round_half_up(to_order * cost),
            "urgency": "high" if quantity < CRITICAL_STOCK_THRESHOLD else "medium",
        })
    items.sort(key=lambda item: item["current_stock"])
    return items


def build_reorder_suggestions(products: List[Dict]) -> List[Dict]:
    """One suggestion per critical or out-of-stock active SKU"""
    suggestions = []
    for p in products:
        if not (is_critical(p) or r.is_active_out_of_stock(p)):
            continue
        quantity = r.on_hand(p)
        cost = r.unit_cost(p) or 0
        suggested = max(URGENT_REORDER_TARGET, quantity * 3)
        suggestions.append({
            "sku": p.get("product_sku") or p.get("product_id"),
            "product_name": p.get("product_name"),
            "supplier": p.get("supplier_name"),
            "current_stock": quantity,
            "suggested_quantity": suggested,
            "estimated_cost": round_half_up(suggested * cost),
            "urgency": "immediate" if quantity == 0 else "high",
        })
    suggestions.sort(key=lambda s: (s["current_stock"], -s["estimated_cost"]))
    return suggestions


def build_supplier_performance(shipments: List[Dict], now: Optional[datetime] = None) -> List[Dict]:
    """Supplier scorecard over the last 30 days of shipments"""
    now = now or utc_now()
    return build_supplier_scorecard(_recent_shipments(shipments, now), now=now)


def _insight(index: int, title: str, description: str, severity: str,
             dollar_impact: float, actions: List[str], now: datetime) -> Dict:
    return {
        "id": f"replenishment-insight-{index}",
        "title": title,
        "description": description,
        "severity": severity,
        "dollarImpact": round_half_up(dollar_impact),
        "suggestedActions": actions,
        "createdAt": iso_timestamp(now),
        "source": "replenishment_agent",
    }


def generate_replenishment_rule_insights(
    products: List[Dict],
    shipments: List[Dict],
    kpis: Dict,
    now: Optional[datetime] = None
) -> List[Dict]:
    now = now or utc_now()
    insights = []

    urgent = [p for p in products if r.is_active(p) and 0 <= r.on_hand(p) < LOW_STOCK_THRESHOLD]
    if urgent:
        urgent_value = sum(
            reorder_quantity(p, URGENT_REORDER_TARGET) * (r.unit_cost(p) or 0) for p in urgent
        )
        insights.append(_insight(
            len(insights) + 1,
            "Critical Stock Replenishment Required",
            f"{len(urgent)} SKUs below critical threshold (<10 units) requiring immediate "
            f"replenishment worth ${round_half_up(urgent_value):,}.",
            "critical" if len(urgent) > URGENT_CRITICAL_COUNT else "warning",
            urgent_value,
            [
                "Generate emergency purchase orders for critical SKUs",
                "Implement expedited supplier delivery agreements",
                "Set up automated reorder triggers at 10-unit threshold",
                "Review safety stock levels for frequent stockouts",
            ],
            now,
        ))

    out_of_stock = [p for p in products if r.is_active_out_of_stock(p)]
    if out_of_stock:
        insights.append(_insight(
            len(insights) + 1,
            "Stockout Prevention Priority",
            f"{len(out_of_stock)} active SKUs are completely out of stock, creating immediate "
            "revenue risk and customer satisfaction impact.",
            "critical",
            len(out_of_stock) * STOCKOUT_LOSS_PER_SKU,
            [
                "Expedite supplier orders for out-of-stock items",
                "Implement stock substitution recommendations",
                "Review demand forecasting accuracy",
                "Set up backorder customer communication",
            ],
            now,
        ))

    problem_shipments = [s for s in _recent_shipments(shipments, now) if r.has_discrepancy(s)]
    if problem_shipments:
        impact = sum(r.discrepancy_value(s) for s in problem_shipments)
        insights.append(_insight(
            len(insights) + 1,
            "Supplier Delivery Performance Issues",
            f"{len(problem_shipments)} recent shipments had quantity discrepancies worth "
            f"${round_half_up(impact):,}, affecting replenishment accuracy.",
            "warning" if len(problem_shipments) > SUPPLIER_ISSUE_WARNING_COUNT else "info",
            impact,
            [
                "Review supplier quality agreements",
                "Implement pre-shipment verification process",
                "Negotiate performance penalties for discrepancies",
                "Diversify supplier base for critical SKUs",
            ],
            now,
        ))

    insights.append(_insight(
        len(insights) + 1,
        "Replenishment Portfolio Summary",
        f"Portfolio requires ${kpis['replenishmentValue']:,} in replenishment orders across "
        f"{kpis['reorderRecommendations']} SKUs to maintain optimal stock levels.",
        "info",
        kpis["replenishmentValue"],
        [
            "Schedule weekly replenishment planning sessions",
            "Implement vendor-managed inventory for key suppliers",
            "Review seasonal demand patterns for planning",
            "Optimize order quantities using EOQ calculations",
        ],
        now,
    ))
    return insights[:MAX_RULE_INSIGHTS]


def build_replenishment_kpi_context(products: List[Dict], shipments: List[Dict], kpis: Dict) -> Dict:
    active = sum(1 for p in products if r.is_active(p))
    suppliers = {r.supplier_of(s) for s in shipments if r.supplier_of(s)}
    portfolio = sum(r.inventory_value(p) for p in products)

    def share(numerator: float, denominator: float, digits: int = 1) -> Optional[str]:
        return f"{100 * numerator / denominator:.{digits}f}%" if denominator > 0 else None

    critical_share = share(kpis["criticalSKUs"], active)
    value_share = share(kpis["replenishmentValue"], portfolio)
    supplier_share = share(kpis["supplierAlerts"], len(suppliers))
    coverage = share(kpis["reorderRecommendations"], kpis["criticalSKUs"], digits=0)

    return {
        "criticalSKUs": {
            "percentage": critical_share,
            "context": f"{kpis['criticalSKUs']} urgent items from {active} active products",
            "description": (
                f"Products requiring urgent replenishment ({critical_share} of active portfolio)"
                if critical_share else "Products requiring urgent replenishment"
            ),
        },
        "replenishmentValue": {
            "percentage": value_share,
            "context": (
                f"${kpis['replenishmentValue']:,} investment needed from "
                f"${round_half_up(portfolio):,} portfolio"
            ),
            "description": (
                f"Capital needed for optimal inventory levels ({value_share} of portfolio value)"
                if value_share else "Capital needed for optimal inventory levels"
            ),
        },
        "supplierAlerts": {
            "percentage": supplier_share,
            "context": f"{kpis['supplierAlerts']} problematic suppliers from {len(suppliers)} total",
            "description": (
                f"Suppliers with delivery or quality issues ({supplier_share} of supplier base)"
                if supplier_share else "Suppliers with delivery or quality issues"
            ),
        },
        "reorderRecommendations": {
            "percentage": coverage,
            "context": (
                f"{kpis['reorderRecommendations']} purchase orders from {kpis['criticalSKUs']} critical items"
            ),
            "description": (
                f"Purchase orders requiring immediate action ({coverage} coverage of critical items)"
                if coverage else "Purchase orders requiring immediate action"
            ),
        },
    }


def replenishment_prompt_data(products: List[Dict], shipments: List[Dict]) -> Dict[str, List[Dict]]:
    """Short, id-referenced lists handed to the insight prompt"""
    active = [p for p in products if r.is_active(p)]

    critical = sorted(
        (p for p in active if 0 < r.on_hand(p) <= LOW_STOCK_THRESHOLD), key=r.on_hand
    )[:8]
    stockouts = sorted(
        (p for p in active if r.on_hand(p) == 0), key=lambda p: -(r.unit_cost(p) or 0)
    )[:6]

    by_supplier: Dict[str, Dict[str, float]] = {}
    for s in shipments:
        if not r.has_discrepancy(s):
            continue
        data = by_supplier.setdefault(r.supplier_of(s, "Unknown"), {"discrepancies": 0, "impact": 0.0})
        data["discrepancies"] += 1
        data["impact"] += r.discrepancy_value(s)
    supplier_issues = sorted(by_supplier.items(), key=lambda item: -item[1]["impact"])[:5]

    return {
        "criticalItems": [
            {
                "sku": p.get("product_sku"),
                "name": p.get("product_name"),
                "supplier": p.get("supplier_name"),
                "currentStock": r.on_hand(p),
                "totalValue": round_half_up(r.inventory_value(p)),
            }
            for p in critical
        ],
        "stockoutRisks": [
            {
                "sku": p.get("product_sku"),
                "name": p.get("product_name"),
                "supplier": p.get("supplier_name"),
                "lostSalesRisk": round_half_up((r.unit_cost(p) or 0) * 30),
            }
            for p in stockouts
        ],
        "supplierIssues": [
            {
                "supplier": supplier,
                "discrepancies": data["discrepancies"],
                "totalImpact": round_half_up(data["impact"]),
            }
            for supplier, data in supplier_issues
        ],
    }


def build_replenishment_bundle(
    products: List[Dict],
    shipments: List[Dict],
    now: Optional[datetime] = None
) -> Dict:
    now = now or utc_now()
    kpis = calculate_replenishment_kpis(products, shipments, now=now)
    return {
        "kpis": kpis,
        "kpiContext": build_replenishment_kpi_context(products, shipments, kpis),
        "criticalItems": build_critical_items(products),
        "supplierPerformance": build_supplier_performance(shipments, now=now),
        "reorderSuggestions": build_reorder_suggestions(products),
    }
