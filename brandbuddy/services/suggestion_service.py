"""
Per-item explainers.

One SKU or one order at a time: the item payload (plus a one-line sales
history summary when the sales view is configured) goes to the LLM with a
strict JSON contract of ``{"analysis": str, "actions": [str]}``. Any reply
that does not meet the contract, including no reply at all, is replaced
by a template built from the item's own fields, so the endpoints never
fail because the LLM is unavailable.
"""
from typing import Any, Dict, List, Optional
import math

from brandbuddy.config import get_settings
from brandbuddy.connectors.base_connector import FeedError
from brandbuddy.connectors.sales_history_connector import SalesHistoryConnector
from brandbuddy.services import records as r
from brandbuddy.services.llm_service import LLMService
from brandbuddy.utils.helpers import date_key, format_currency, round_half_up, to_number
from brandbuddy.utils.logger import log

settings = get_settings()

HIGH_VALUE_THRESHOLD = 5000
MEDIUM_VALUE_THRESHOLD = 1000
MEDIUM_IMPACT_SHARE = 0.3
LOW_IMPACT_SHARE = 0.1

SALES_RECORDS_ANALYZED = 12
EXPLAINER_SALES_MONTHS = 6
TREND_COMPARISON_INDEX = 5
MAX_EXPLAINER_ACTIONS = 3

JSON_CONTRACT = """RESPONSE FORMAT (JSON only, no prose outside the object):
{
  "analysis": "3-4 sentences on the business impact, operational risk and financial exposure",
  "actions": ["Specific action with WHO to contact", "Specific action with exact quantities or deadlines"]
}"""

HISTORICAL_CONTRACT = """RESPONSE FORMAT (JSON only, no prose outside the object):
{
  "analysis": "Interpretation of the historical sales pattern",
  "salesTrend": "Direction and intensity of demand",
  "demandForecast": "Expected demand based on the history",
  "riskAssessment": "Inventory risk given the trend and current stock",
  "recommendations": ["Action 1", "Action 2", "Action 3"]
}"""

ORDER_UNAVAILABLE_MESSAGE = (
    "Analysis Unavailable - Unable to connect to AI service. Please try again or contact support."
)


# ────────────────────────────────────────────
# PRIORITY AND IMPACT
# ────────────────────────────────────────────


def item_value(item: Dict) -> float:
    """Inventory value of an item payload: total_value, else on hand x unit cost"""
    if item.get("total_value") not in (None, ""):
        return to_number(item.get("total_value"))
    return item_on_hand(item) * to_number(item.get("unit_cost"))


def item_on_hand(item: Dict) -> float:
    for field in ("on_hand", "current_stock", "unit_quantity"):
        if item.get(field) not in (None, ""):
            return to_number(item.get(field))
    return 0


def _is_inactive(item: Dict) -> bool:
    # Payloads without an active flag (e.g. replenishment rows) are not inactive
    return "active" in item and not r.is_active(item)


def inventory_priority(item: Dict, low_stock_markers=("Low Stock",)) -> str:
    status = str(item.get("status") or "")
    value = item_value(item)
    out_of_stock = "Out of Stock" in status
    low_stock = any(marker in status for marker in low_stock_markers)

    if out_of_stock or (low_stock and value > HIGH_VALUE_THRESHOLD):
        return "high"
    if low_stock or _is_inactive(item) or value > MEDIUM_VALUE_THRESHOLD:
        return "medium"
    return "low"


def replenishment_priority(item: Dict) -> str:
    return inventory_priority(item, low_stock_markers=("Low Stock", "Critical"))


def order_value(order: Dict) -> float:
    return to_number(order.get("unit_cost")) * to_number(order.get("expected_quantity"))


def order_shortfall(order: Dict) -> float:
    return max(0, to_number(order.get("expected_quantity")) - to_number(order.get("received_quantity")))


def order_priority(order: Dict) -> str:
    status = str(order.get("status") or "").lower()
    delayed = "delayed" in status or "breach" in str(order.get("sla_status") or "").lower()
    value = order_value(order)

    if "cancelled" in status or (delayed and value > HIGH_VALUE_THRESHOLD):
        return "high"
    if delayed or value > MEDIUM_VALUE_THRESHOLD:
        return "medium"
    return "low"


def estimated_impact(priority: str, value: float, high_label: str = "inventory value at risk",
                     low_label: str = "improvement opportunity") -> str:
    """Dollar impact string: the full value for high, 30% for medium, 10% for low"""
    if priority == "high":
        return f"{format_currency(round_half_up(value))} {high_label}"
    if priority == "medium":
        return f"{format_currency(round_half_up(value * MEDIUM_IMPACT_SHARE))} optimization potential"
    return f"{format_currency(round_half_up(value * LOW_IMPACT_SHARE))} {low_label}"


# ────────────────────────────────────────────
# SALES HISTORY CONTEXT
# ────────────────────────────────────────────


def _month_index(value: Any) -> Optional[int]:
    """year * 12 + month for a YYYY-MM[-DD] value, or None"""
    key = date_key(value)
    if not key or len(key) < 7:
        return None
    try:
        return int(key[:4]) * 12 + int(key[5:7]) - 1
    except ValueError:
        return None


def summarize_sales_history(sales: List[Dict], months: Optional[int] = None) -> str:
    """
    One-line summary of recent sales rows.

    With ``months`` the window is that many calendar months ending at the
    latest row's month; otherwise it is the 12 most recent rows. The trend
    compares the latest row with the sixth most recent one in the window
    (or the oldest when there are fewer than six).
    """
    if not sales:
        return "No recent sales history found for this SKU"

    ordered = sorted(sales, key=lambda row: str(row.get("month") or ""), reverse=True)
    if months:
        latest_month = _month_index(ordered[0].get("month"))
        if latest_month is None:
            return "No recent sales history found for this SKU"
        recent = [
            row for row in ordered
            if (_month_index(row.get("month")) or -1) > latest_month - months
        ]
        label = f"last {months} months, {len(recent)} records"
    else:
        recent = ordered[:SALES_RECORDS_ANALYZED]
        label = f"recent {len(recent)} records"

    total_units = sum(to_number(row.get("units_sold")) for row in recent)
    total_revenue = sum(to_number(row.get("revenue")) for row in recent)
    avg_units = total_units / len(recent)
    revenue_per_unit = total_revenue / total_units if total_units > 0 else 0

    latest = to_number(recent[0].get("units_sold"))
    older = to_number(recent[min(len(recent) - 1, TREND_COMPARISON_INDEX)].get("units_sold"))
    if latest > older:
        trend = "increasing"
    elif latest < older:
        trend = "decreasing"
    else:
        trend = "stable"

    return (
        f"Sales Performance ({label}): {trend} demand trend, "
        f"averaging {avg_units:.1f} units per period, ${revenue_per_unit:.2f} revenue per unit, "
        f"total period: {total_units:g} units sold, "
        f"most recent sale: {date_key(recent[0].get('month')) or 'unknown'}"
    )


def format_actions(actions: List[str]) -> str:
    return "\n".join(f"{index}. {action}" for index, action in enumerate(actions, 1))


def parse_explanation(parsed: Any) -> Optional[Dict]:
    """Accept only {"analysis": non-empty str, "actions": [str, ...]}"""
    if not isinstance(parsed, dict):
        return None
    analysis = parsed.get("analysis")
    actions = parsed.get("actions")
    if not isinstance(analysis, str) or not analysis.strip():
        return None
    if not isinstance(actions, list):
        return None
    actions = [str(action).strip() for action in actions if str(action).strip()]
    if not actions:
        return None
    return {"analysis": analysis.strip(), "actions": actions[:MAX_EXPLAINER_ACTIONS]}


class SuggestionService:
    """Builds per-SKU and per-order explanations"""

    def __init__(self, llm: Optional[LLMService] = None,
                 sales_history: Optional[SalesHistoryConnector] = None):
        self.llm = llm or LLMService()
        self.sales_history = sales_history or SalesHistoryConnector()

    async def sales_context(self, sku: str, months: Optional[int] = None) -> Optional[str]:
        """Sales summary for a SKU, or None when the sales view is not configured"""
        if not self.sales_history.is_configured:
            return None
        try:
            sales = await self.sales_history.fetch_records(
                sku=sku,
                brand_name=settings.tenant_brand,
                limit=settings.sales_history_limit
            )
        except FeedError as e:
            log.warning(f"Sales history unavailable for {sku}: {str(e)}")
            return "Sales history temporarily unavailable"
        return summarize_sales_history(sales, months=months)

    async def explain(self, system: str, prompt: str, max_tokens: int = 300) -> Optional[Dict]:
        if not self.llm.enabled:
            return None
        parsed = await self.llm.complete_json(
            prompt,
            system=system,
            model=settings.ai_model_fast,
            max_tokens=max_tokens,
            temperature=0.1
        )
        explanation = parse_explanation(parsed)
        if explanation is None:
            log.warning("LLM explanation did not match the JSON contract, using template")
        return explanation

    # ────────────────────────────────────────────
    # INVENTORY
    # ────────────────────────────────────────────

    async def inventory_suggestion(self, item: Dict) -> Dict:
        sku = item["sku"]
        supplier = item.get("supplier") or "Unknown supplier"
        status = item.get("status") or "unknown"
        on_hand = item_on_hand(item)
        committed = to_number(item.get("committed"))
        available = to_number(item.get("available"))
        unit_cost = to_number(item.get("unit_cost"))
        value = round_half_up(item_value(item))
        days_in_system = to_number(item.get("days_since_created"))
        turnover = round_half_up(365 / days_in_system, 1) if days_in_system > 0 else 0

        lines = [
            "Analyze this inventory item and provide expert recommendations:",
            "",
            "INVENTORY ITEM ANALYSIS:",
            f"- SKU: {sku}",
            f"- Product: {item.get('product_name') or 'Unknown Product'}",
            f"- Brand: {item.get('brand_name') or 'Unknown Brand'}",
            f"- Current Status: {status}",
            f"- Supplier: {supplier}",
            f"- On Hand Quantity: {on_hand:g} units",
            f"- Committed Quantity: {committed:g} units",
            f"- Available for Sale: {available:g} units",
            f"- Unit Cost: ${unit_cost:.2f}",
            f"- Total Inventory Value: {format_currency(value)}",
            f"- Days in System: {days_in_system:g} days",
            f"- Estimated Annual Turnover: {turnover}x",
            f"- Active Status: {'Inactive' if _is_inactive(item) else 'Active'}",
        ]
        context = await self.sales_context(sku, months=EXPLAINER_SALES_MONTHS)
        if context:
            lines += ["", "SALES HISTORY:", context]
        lines += ["", "Give 2-3 actions with WHO to contact and WHAT to do TODAY."]

        system = (
            "You are a Senior Inventory Operations Manager with 15+ years of experience managing $50M+ "
            "inventory portfolios. Use the actual SKU, supplier, quantities and dollar amounts.\n\n"
            + JSON_CONTRACT
        )
        explanation = await self.explain(system, "\n".join(lines))
        if explanation is None:
            explanation = {
                "analysis": (
                    f"{sku} is {status} with {available:g} units available and {committed:g} committed, "
                    f"holding {format_currency(value)} of inventory from {supplier}."
                ),
                "actions": [
                    f"Contact {supplier} directly to optimize {sku} stock levels immediately",
                    f"Escalate to procurement team for emergency reorder of {max(20, on_hand):g} units by end of week",
                ],
            }

        priority = inventory_priority(item)
        impact = estimated_impact(priority, value)
        log.info(f"Inventory suggestion for {sku}: priority={priority}")
        return {
            "sku": sku,
            "suggestion": (
                f"{explanation['analysis']}\n\n**Recommended Actions:**\n{format_actions(explanation['actions'])}"
                f"\n\n**Financial Impact:** {impact}"
            ),
            "priority": priority,
            "actionable": True,
            "estimatedImpact": impact,
        }

    # ────────────────────────────────────────────
    # REPLENISHMENT
    # ────────────────────────────────────────────

    async def replenishment_suggestion(self, item: Dict) -> Dict:
        sku = item.get("sku") or item.get("product_sku")
        supplier = item.get("supplier") or item.get("supplier_name") or "Unknown supplier"
        status = item.get("status") or "unknown"
        on_hand = item_on_hand(item)
        committed = to_number(item.get("committed")) if item.get("committed") is not None else math.floor(on_hand * 0.1)
        available = to_number(item.get("available")) if item.get("available") is not None else max(0, on_hand - committed)
        unit_cost = to_number(item.get("unit_cost"))
        value = round_half_up(item_value(item))

        lines = [
            "Analyze this product's replenishment needs and provide expert supply chain recommendations:",
            "",
            "REPLENISHMENT ITEM ANALYSIS:",
            f"- SKU: {sku}",
            f"- Product: {item.get('product_name') or 'Unknown Product'}",
            f"- Brand: {item.get('brand_name') or 'Unknown Brand'}",
            f"- Current Status: {status}",
            f"- Supplier: {supplier}",
            f"- Stock Levels: {on_hand:g} on hand, {committed:g} committed, {available:g} available",
            f"- Financial: ${unit_cost:.2f} unit cost, {format_currency(value)} total inventory value",
        ]
        context = await self.sales_context(sku, months=EXPLAINER_SALES_MONTHS)
        if context:
            lines += ["", "SALES HISTORY:", context]
        lines += ["", "What are the immediate supply risks and what should we do today?"]

        system = (
            "You are a Senior Supply Chain Planning Manager with 15+ years of experience in demand "
            "forecasting, reorder optimization and supplier management. Use only the data provided.\n\n"
            + JSON_CONTRACT
        )
        explanation = await self.explain(system, "\n".join(lines))
        if explanation is None:
            explanation = {
                "analysis": (
                    f"{sku} is {status} with {available:g} units available against {committed:g} committed; "
                    f"{format_currency(value)} of stock from {supplier} needs a replenishment decision."
                ),
                "actions": [
                    f"Contact {supplier} to review {sku} replenishment schedule ({available:g} available units)",
                    f"Place a reorder of {max(20, on_hand * 3):g} units for {sku} this week",
                ],
            }

        priority = replenishment_priority(item)
        impact = estimated_impact(priority, value, high_label="stockout risk", low_label="efficiency improvement")
        log.info(f"Replenishment suggestion for {sku}: priority={priority}")
        return {
            "sku": sku,
            "suggestion": (
                f"{explanation['analysis']}\n\nRecommended Actions:\n{format_actions(explanation['actions'])}"
                f"\n\nFinancial Impact: {impact}"
            ),
            "priority": priority,
            "actionable": True,
            "estimatedImpact": impact,
        }

    # ────────────────────────────────────────────
    # ORDERS
    # ────────────────────────────────────────────

    async def order_suggestion(self, order: Dict) -> Dict:
        order_id = order["order_id"]
        status = str(order.get("status") or "unknown")
        sku = order.get("product_sku") or "Unknown SKU"
        unit_cost = to_number(order.get("unit_cost"))
        shortfall = order_shortfall(order)
        shortfall_value = round_half_up(unit_cost * shortfall)

        lines = [
            "Analyze this specific order:",
            "",
            "ORDER DETAILS:",
            f"- PO Number: {order_id}",
            f"- Status: {status}",
            f"- SKU: {sku}",
            f"- Supplier: {order.get('supplier') or 'Unknown supplier'}",
            f"- Expected: {to_number(order.get('expected_quantity')):g} units",
            f"- Received: {to_number(order.get('received_quantity')):g} units",
            f"- Unit Cost: ${unit_cost:.2f}",
            f"- Order Value: {format_currency(round_half_up(order_value(order)))}",
        ]
        if shortfall > 0:
            lines.append(f"- Shortfall: {shortfall:g} units ({format_currency(shortfall_value)} impact)")

        system = (
            "You are an Order Analysis Specialist. Keep the analysis to 2-3 sentences and give 1-2 "
            "actions referencing the PO number, SKU, supplier and dollar amounts.\n\n" + JSON_CONTRACT
        )
        explanation = await self.explain(system, "\n".join(lines), max_tokens=200)

        priority = order_priority(order)
        impact = format_currency(shortfall_value) if shortfall_value > 0 else None
        if explanation is None:
            return {
                "orderId": order_id,
                "sku": sku,
                "suggestion": ORDER_UNAVAILABLE_MESSAGE,
                "priority": priority,
                "actionable": False,
                "estimatedImpact": impact,
            }

        lowered = status.lower()
        has_issues = shortfall > 0 or "delayed" in lowered or "cancelled" in lowered
        return {
            "orderId": order_id,
            "sku": sku,
            "suggestion": f"{explanation['analysis']}\n\n{format_actions(explanation['actions'])}",
            "priority": priority,
            "actionable": has_issues,
            "estimatedImpact": impact,
        }

    # ────────────────────────────────────────────
    # HISTORICAL SKU ANALYSIS
    # ────────────────────────────────────────────

    async def historical_analysis(self, item: Dict) -> Dict:
        sku = item["sku"]
        context = await self.sales_context(sku)
        if context is None:
            context = "Sales history unavailable - endpoint not configured"

        prompt = "\n".join([
            "Perform historical analysis for this inventory item:",
            "",
            "CURRENT INVENTORY POSITION:",
            f"- SKU: {sku}",
            f"- Product: {item.get('product_name') or 'Unknown Product'}",
            f"- Current Stock: {item_on_hand(item):g} on hand, {to_number(item.get('available')):g} available",
            f"- Financial Position: ${to_number(item.get('unit_cost')):.2f} unit cost, "
            f"{format_currency(round_half_up(item_value(item)))} total value",
            f"- Supplier: {item.get('supplier') or 'Unknown supplier'}",
            "",
            "HISTORICAL SALES CONTEXT:",
            context,
        ])
        system = (
            "You are a Senior Demand Planning Analyst who interprets sales history to forecast demand "
            "and size inventory.\n\n" + HISTORICAL_CONTRACT
        )

        parsed = None
        if self.llm.enabled:
            parsed = await self.llm.complete_json(
                prompt,
                system=system,
                model=settings.ai_model_fast,
                max_tokens=500,
                temperature=0.2
            )
        if not isinstance(parsed, dict) or not parsed.get("analysis"):
            log.warning(f"Historical analysis for {sku} using template")
            parsed = {}

        recommendations = parsed.get("recommendations")
        if not isinstance(recommendations, list) or not recommendations:
            recommendations = [
                "Review historical sales data with supplier to optimize ordering",
                "Monitor demand trends closely for inventory planning adjustments",
            ]

        return {
            "sku": sku,
            "analysis": parsed.get("analysis") or f"Historical analysis for {sku}: {context}",
            "salesTrend": parsed.get("salesTrend") or context,
            "demandForecast": parsed.get("demandForecast") or "Demand patterns require further analysis",
            "riskAssessment": parsed.get("riskAssessment") or "Risk assessment requires AI analysis",
            "recommendations": [str(rec) for rec in recommendations],
            "salesContext": context,
        }
