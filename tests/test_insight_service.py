"""
Insight service tests: normalization of LLM/rule output, the rule
fallback per page and the daily brief.
"""
from brandbuddy.services.dashboard_metrics import build_dashboard_bundle
from brandbuddy.services.insight_service import (
    InsightService,
    information_not_available_insight,
    inventory_rule_insights,
    normalize_insights,
    orders_rule_insights,
)
from brandbuddy.services.inventory_metrics import build_inventory_bundle
from brandbuddy.services.order_metrics import build_orders_bundle


# ────────────────────────────────────────────
# NORMALIZATION
# ────────────────────────────────────────────


class TestNormalizeInsights:

    def test_contract_is_enforced(self, now):
        raw = [
            {"title": "x" * 100, "severity": "HIGH", "dollarImpact": -50, "suggestedActions": ["a"]},
            "junk",
            {"title": ""},
            {
                "title": "Second",
                "severity": "medium",
                "dollarImpact": "1234.5",
                "suggestedActions": ["1", "2", "3", "4", "5"],
            },
        ]
        insights = normalize_insights(raw, "dashboard", now=now)

        assert [i["id"] for i in insights] == ["dashboard-insight-1", "dashboard-insight-2"]
        first, second = insights
        assert len(first["title"]) == 80
        assert first["severity"] == "critical"
        assert first["dollarImpact"] == 0
        assert len(first["suggestedActions"]) == 2
        assert first["suggestedActions"][0] == "a"
        assert second["severity"] == "warning"
        assert second["dollarImpact"] == 1235
        assert second["suggestedActions"] == ["1", "2", "3", "4"]
        assert second["source"] == "dashboard_agent"
        assert second["createdAt"] == "2024-03-15T12:00:00.000Z"

    def test_at_most_five(self, now):
        raw = [{"title": f"Insight {i}", "severity": "bogus"} for i in range(7)]
        insights = normalize_insights(raw, "orders", now=now)

        assert len(insights) == 5
        assert {i["severity"] for i in insights} == {"info"}
        assert insights[0]["suggestedActions"] == ["Address insight 0", "Implement corrective measures"]

    def test_non_list_is_empty(self):
        assert normalize_insights({"title": "x"}, "orders") == []
        assert normalize_insights(None, "orders") == []

    def test_information_not_available(self, now):
        insight = information_not_available_insight("inbound", now=now)
        assert insight["id"] == "inbound-insight-1"
        assert insight["title"] == "Information Not Available"
        assert insight["source"] == "inbound_operations_agent"
        assert insight["dollarImpact"] == 0


# ────────────────────────────────────────────
# LLM AND RULE PATHS
# ────────────────────────────────────────────


class TestDashboardInsights:

    async def test_rules_when_llm_returns_nothing(self, happy_path, stub_llm, now):
        products, shipments = happy_path
        shipments[0]["received_quantity"] = 15
        shipments[1]["received_quantity"] = 15
        bundle = build_dashboard_bundle(products, shipments, today=now.date())

        llm = stub_llm(json_reply=None)
        insights = await InsightService(llm).dashboard_insights(products, shipments, bundle, now=now)

        assert len(llm.prompts) == 1
        titles = [i["title"] for i in insights]
        assert titles == ["Low Fulfillment Efficiency", "Quantity Discrepancies Driving Losses"]
        assert insights[0]["severity"] == "critical"
        assert insights[0]["dollarImpact"] == 10000
        assert insights[1]["dollarImpact"] == 100

    async def test_llm_reply_is_normalized(self, happy_path, stub_llm, now):
        products, shipments = happy_path
        bundle = build_dashboard_bundle(products, shipments, today=now.date())
        llm = stub_llm(json_reply=[{"title": "From the model", "severity": "low", "dollarImpact": 10}])

        insights = await InsightService(llm).dashboard_insights(products, shipments, bundle, now=now)

        assert len(insights) == 1
        assert insights[0]["title"] == "From the model"
        assert insights[0]["severity"] == "info"
        assert "Senior Operations Director" in llm.prompts[0]

    async def test_disabled_llm_is_skipped(self, happy_path, stub_llm, now):
        products, shipments = happy_path
        bundle = build_dashboard_bundle(products, shipments, today=now.date())
        llm = stub_llm(json_reply=[{"title": "ignored"}], enabled=False)

        insights = await InsightService(llm).dashboard_insights(products, shipments, bundle, now=now)

        assert llm.prompts == []
        assert insights == []


class TestPageRules:

    def test_inventory_rules(self, make_product, now):
        products = [make_product(unit_quantity=5), make_product(unit_quantity=10, active=False)]
        bundle = build_inventory_bundle(products, now=now)
        titles = [i["title"] for i in inventory_rule_insights(products, bundle)]

        assert titles == [
            "Low Stock Replenishment Needed",
            "Inactive Inventory Review",
            "Supplier Concentration Risk",
        ]

    def test_orders_rules(self, make_shipment, now):
        shipments = [
            make_shipment(status="delayed", ship_from_country="China"),
            make_shipment(),
        ]
        insights = orders_rule_insights(build_orders_bundle(shipments, now=now))

        assert [i["title"] for i in insights] == [
            "Inbound Delays Affecting Orders",
            "At-Risk Orders Need Attention",
            "Geopolitical Sourcing Exposure",
        ]
        assert insights[0]["severity"] == "critical"
        assert insights[0]["dollarImpact"] == 200


# ────────────────────────────────────────────
# DAILY BRIEF
# ────────────────────────────────────────────


class TestDailyBrief:

    async def test_fallback_brief(self, happy_path, stub_llm):
        products, shipments = happy_path
        brief = await InsightService(stub_llm(enabled=False)).daily_brief(products, shipments)

        assert brief.startswith("Today's operations cover 5 shipments and 10 products")
        assert "No receiving discrepancies or cancellations were recorded." in brief
        assert "Acme carries 100% of shipment volume" in brief

    async def test_llm_brief_is_cleaned(self, happy_path, stub_llm):
        products, shipments = happy_path
        brief = await InsightService(stub_llm(text_reply=' "Receiving is on track." \n')).daily_brief(
            products, shipments
        )
        assert brief == "Receiving is on track."

    async def test_empty_llm_brief_falls_back(self, happy_path, stub_llm):
        products, shipments = happy_path
        brief = await InsightService(stub_llm(text_reply="   ")).daily_brief(products, shipments)
        assert brief.startswith("Today's operations cover")
