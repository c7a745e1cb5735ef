"""
Per-item explainer tests: priority rules, impact strings, sales history
summaries and the template fallback when the LLM is unusable.
"""
import pytest

from brandbuddy.connectors.base_connector import FeedError
from brandbuddy.services.suggestion_service import (
    ORDER_UNAVAILABLE_MESSAGE,
    SuggestionService,
    estimated_impact,
    inventory_priority,
    order_priority,
    parse_explanation,
    replenishment_priority,
    summarize_sales_history,
)

SALES_ROWS = [
    {"month": "2024-01", "units_sold": 10, "revenue": 100},
    {"month": "2024-03", "units_sold": 30, "revenue": 300},
    {"month": "2024-02", "units_sold": 20, "revenue": 200},
]


class FakeSalesHistory:
    """Sales-history connector double"""

    def __init__(self, rows=None, configured=True, error=None):
        self.is_configured = configured
        self.rows = rows or []
        self.error = error
        self.calls = []

    async def fetch_records(self, session=None, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.rows


@pytest.fixture
def low_stock_item():
    return {
        "sku": "SKU-1",
        "product_name": "Widget",
        "supplier": "Acme",
        "status": "Low Stock",
        "on_hand": 5,
        "committed": 0,
        "available": 5,
        "unit_cost": 10,
        "active": True,
    }


# ────────────────────────────────────────────
# PRIORITY AND IMPACT
# ────────────────────────────────────────────


class TestPriority:

    def test_inventory_priority(self):
        assert inventory_priority({"status": "Out of Stock"}) == "high"
        assert inventory_priority({"status": "Low Stock", "total_value": 6000}) == "high"
        assert inventory_priority({"status": "Low Stock", "total_value": 100}) == "medium"
        assert inventory_priority({"status": "Inactive", "active": False}) == "medium"
        assert inventory_priority({"status": "In Stock", "on_hand": 200, "unit_cost": 10}) == "medium"
        assert inventory_priority({"status": "In Stock", "total_value": 500, "active": True}) == "low"
        assert inventory_priority({"status": "In Stock"}) == "low"

    def test_replenishment_treats_critical_as_low_stock(self):
        assert replenishment_priority({"status": "Critical", "current_stock": 3, "unit_cost": 10}) == "medium"
        assert inventory_priority({"status": "Critical", "current_stock": 3, "unit_cost": 10}) == "low"

    def test_order_priority(self):
        assert order_priority({"status": "cancelled"}) == "high"
        assert order_priority({"status": "delayed", "unit_cost": 100, "expected_quantity": 60}) == "high"
        assert order_priority({"status": "pending", "sla_status": "breach", "unit_cost": 1}) == "medium"
        assert order_priority({"status": "completed", "unit_cost": 100, "expected_quantity": 20}) == "medium"
        assert order_priority({"status": "completed", "unit_cost": 10, "expected_quantity": 20}) == "low"

    def test_estimated_impact(self):
        assert estimated_impact("high", 6000) == "$6,000 inventory value at risk"
        assert estimated_impact("medium", 1000) == "$300 optimization potential"
        assert estimated_impact("low", 1000) == "$100 improvement opportunity"
        assert estimated_impact("high", 50, high_label="stockout risk") == "$50 stockout risk"


# ────────────────────────────────────────────
# SALES HISTORY AND PARSING
# ────────────────────────────────────────────


class TestSalesHistory:

    def test_empty_history(self):
        assert summarize_sales_history([]) == "No recent sales history found for this SKU"

    def test_summary_line(self):
        assert summarize_sales_history(SALES_ROWS) == (
            "Sales Performance (recent 3 records): increasing demand trend, averaging 20.0 units per "
            "period, $10.00 revenue per unit, total period: 60 units sold, most recent sale: 2024-03"
        )

    def test_trend_compares_sixth_most_recent(self):
        rows = [{"month": f"2024-0{m}", "units_sold": 50 if m in (2, 9) else 10} for m in range(1, 10)]
        # latest 2024-09 (50) against 2024-04 (10)
        assert "increasing demand trend" in summarize_sales_history(rows)
        rows[3]["units_sold"] = 50
        assert "stable demand trend" in summarize_sales_history(rows)

    def test_explainer_window_is_six_months(self):
        rows = [{"month": f"2023-{m:02d}", "units_sold": 100, "revenue": 1000} for m in range(1, 7)]
        rows += [{"month": f"2023-{m:02d}", "units_sold": 10, "revenue": 100} for m in range(7, 13)]

        assert summarize_sales_history(rows, months=6) == (
            "Sales Performance (last 6 months, 6 records): stable demand trend, averaging 10.0 units per "
            "period, $10.00 revenue per unit, total period: 60 units sold, most recent sale: 2023-12"
        )
        assert "averaging 55.0 units per period" in summarize_sales_history(rows)

    def test_month_window_spans_year_end(self):
        rows = [
            {"month": "2024-03", "units_sold": 5},
            {"month": "2023-10", "units_sold": 5},
            {"month": "2023-09", "units_sold": 500},
        ]
        assert "total period: 10 units sold" in summarize_sales_history(rows, months=6)


class TestParseExplanation:

    def test_valid_reply_is_capped(self):
        parsed = parse_explanation({"analysis": " Reorder. ", "actions": ["a", "", "b", "c", "d"]})
        assert parsed == {"analysis": "Reorder.", "actions": ["a", "b", "c"]}

    @pytest.mark.parametrize("reply", [
        None,
        "text",
        {"actions": ["a"]},
        {"analysis": "  ", "actions": ["a"]},
        {"analysis": "ok", "actions": []},
        {"analysis": "ok", "actions": "a"},
    ])
    def test_contract_violations(self, reply):
        assert parse_explanation(reply) is None


# ────────────────────────────────────────────
# EXPLAINERS
# ────────────────────────────────────────────


class TestInventorySuggestion:

    async def test_template_when_llm_disabled(self, stub_llm, low_stock_item):
        service = SuggestionService(stub_llm(enabled=False), FakeSalesHistory(configured=False))
        result = await service.inventory_suggestion(low_stock_item)

        assert result["sku"] == "SKU-1"
        assert result["priority"] == "medium"
        assert result["actionable"] is True
        assert result["estimatedImpact"] == "$15 optimization potential"
        assert "1. Contact Acme directly to optimize SKU-1 stock levels immediately" in result["suggestion"]
        assert "2. Escalate to procurement team for emergency reorder of 20 units by end of week" in result["suggestion"]
        assert result["suggestion"].endswith("**Financial Impact:** $15 optimization potential")

    async def test_llm_reply_with_sales_context(self, stub_llm, low_stock_item):
        llm = stub_llm(json_reply={"analysis": "Stock is thin.", "actions": ["Call Acme", "Order 40 units"]})
        sales = FakeSalesHistory(rows=SALES_ROWS)
        result = await SuggestionService(llm, sales).inventory_suggestion(low_stock_item)

        assert result["suggestion"].startswith("Stock is thin.\n\n**Recommended Actions:**\n1. Call Acme\n2. Order 40 units")
        assert sales.calls[0]["sku"] == "SKU-1"
        assert "SALES HISTORY:" in llm.prompts[0]
        assert "increasing demand trend" in llm.prompts[0]
        assert "Sales Performance (last 6 months, 3 records)" in llm.prompts[0]

    async def test_sales_feed_failure_is_reported_in_prompt(self, stub_llm, low_stock_item):
        llm = stub_llm(json_reply=None)
        sales = FakeSalesHistory(error=FeedError("HTTP 502: Bad Gateway", status=502))
        result = await SuggestionService(llm, sales).inventory_suggestion(low_stock_item)

        assert "Sales history temporarily unavailable" in llm.prompts[0]
        assert "Contact Acme directly" in result["suggestion"]


class TestReplenishmentSuggestion:

    async def test_template_accepts_product_sku(self, stub_llm):
        item = {"product_sku": "SKU-9", "supplier_name": "Beta", "status": "Critical",
                "current_stock": 3, "unit_cost": 10}
        service = SuggestionService(stub_llm(enabled=False), FakeSalesHistory(configured=False))
        result = await service.replenishment_suggestion(item)

        assert result["sku"] == "SKU-9"
        assert result["priority"] == "medium"
        assert "Recommended Actions:\n1. Contact Beta" in result["suggestion"]
        assert "Place a reorder of 20 units for SKU-9 this week" in result["suggestion"]
        assert result["suggestion"].endswith("Financial Impact: $9 optimization potential")


class TestOrderSuggestion:

    def _order(self, **overrides):
        order = {"order_id": "PO-7", "status": "completed", "product_sku": "SKU-1", "supplier": "Acme",
                 "expected_quantity": 20, "received_quantity": 15, "unit_cost": 10}
        order.update(overrides)
        return order

    async def test_unavailable_message_without_llm(self, stub_llm):
        service = SuggestionService(stub_llm(enabled=False), FakeSalesHistory(configured=False))
        result = await service.order_suggestion(self._order())

        assert result["orderId"] == "PO-7"
        assert result["suggestion"] == ORDER_UNAVAILABLE_MESSAGE
        assert result["actionable"] is False
        assert result["estimatedImpact"] == "$50"

    async def test_llm_reply(self, stub_llm):
        llm = stub_llm(json_reply={"analysis": "PO-7 is short.", "actions": ["Claim credit from Acme"]})
        sales = FakeSalesHistory()
        result = await SuggestionService(llm, sales).order_suggestion(self._order())

        assert result["suggestion"] == "PO-7 is short.\n\n1. Claim credit from Acme"
        assert result["actionable"] is True
        assert "Shortfall: 5 units ($50 impact)" in llm.prompts[0]
        assert sales.calls == []

    async def test_clean_order_is_not_actionable(self, stub_llm):
        llm = stub_llm(json_reply={"analysis": "All good.", "actions": ["Nothing to do"]})
        result = await SuggestionService(llm, FakeSalesHistory()).order_suggestion(
            self._order(received_quantity=20)
        )

        assert result["actionable"] is False
        assert result["estimatedImpact"] is None


class TestHistoricalAnalysis:

    async def test_template_without_sales_view(self, stub_llm, low_stock_item):
        service = SuggestionService(stub_llm(enabled=False), FakeSalesHistory(configured=False))
        result = await service.historical_analysis(low_stock_item)

        assert result["salesContext"] == "Sales history unavailable - endpoint not configured"
        assert result["analysis"].startswith("Historical analysis for SKU-1")
        assert result["salesTrend"] == result["salesContext"]
        assert len(result["recommendations"]) == 2

    async def test_llm_fields_are_used(self, stub_llm, low_stock_item):
        reply = {
            "analysis": "Demand is climbing.",
            "salesTrend": "Up",
            "demandForecast": "40 units next month",
            "riskAssessment": "Stockout likely",
            "recommendations": ["Reorder 40 units"],
        }
        service = SuggestionService(stub_llm(json_reply=reply), FakeSalesHistory(rows=SALES_ROWS))
        result = await service.historical_analysis(low_stock_item)

        assert result["analysis"] == "Demand is climbing."
        assert result["demandForecast"] == "40 units next month"
        assert result["recommendations"] == ["Reorder 40 units"]
        assert result["salesContext"].startswith("Sales Performance (recent 3 records)")
