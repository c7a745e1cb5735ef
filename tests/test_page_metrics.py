"""
Page bundle tests for inventory, replenishment, orders, inbound and
analytics.
"""
from brandbuddy.services.analytics_metrics import (
    build_analytics_bundle,
    calculate_analytics_kpis,
    calculate_brand_rankings,
    generate_analytics_rule_insights,
    order_volume_growth,
    performance_tier,
)
from brandbuddy.services.insight_service import dashboard_rule_insights
from brandbuddy.services.inventory_metrics import (
    build_inventory_bundle,
    calculate_inventory_kpis,
    enhance_inventory_items,
)
from brandbuddy.services.order_metrics import (
    build_orders_bundle,
    calculate_inbound_kpis,
    calculate_sla_status,
    map_order_status,
)
from brandbuddy.services.replenishment_metrics import (
    build_critical_items,
    build_reorder_suggestions,
    calculate_replenishment_kpis,
    generate_replenishment_rule_insights,
)


# ────────────────────────────────────────────
# INVENTORY
# ────────────────────────────────────────────


class TestInventory:

    def _catalog(self, make_product):
        return [
            make_product(unit_quantity=50),
            make_product(unit_quantity=5),
            make_product(unit_quantity=0),
            make_product(unit_quantity=200, active=False),
        ]

    def test_kpis(self, make_product):
        kpis = calculate_inventory_kpis(self._catalog(make_product))

        assert kpis["totalActiveSKUs"] == 3
        assert kpis["totalInventoryValue"] == 2550
        assert kpis["lowStockAlerts"] == 1
        assert kpis["inactiveSKUs"] == 1
        assert kpis["totalSKUs"] == 4
        assert kpis["inStockCount"] == 3
        assert kpis["unfulfillableCount"] == 1
        assert kpis["overstockedCount"] == 1

    def test_enhanced_item_fields(self, make_product, now):
        item = enhance_inventory_items([make_product(unit_quantity=55, product_sku="ABC")], now=now)[0]

        assert item["sku"] == "ABC"
        assert item["committed"] == 5
        assert item["available"] == 50
        assert item["total_value"] == 550
        assert item["status"] == "In Stock"
        assert item["days_since_created"] == 74
        assert item["warehouse_id"] is None

    def test_items_sorted_and_capped(self, make_product, now):
        products = [make_product(unit_quantity=i) for i in range(501)]
        items = enhance_inventory_items(products, now=now)

        assert len(items) == 500
        assert items[0]["on_hand"] == 500
        assert items[-1]["on_hand"] == 1

    def test_status_labels(self, make_product, now):
        products = [
            make_product(unit_quantity=0),
            make_product(unit_quantity=9),
            make_product(unit_quantity=101),
            make_product(unit_quantity=30, active=False),
        ]
        statuses = sorted(item["status"] for item in enhance_inventory_items(products, now=now))
        assert statuses == ["Inactive", "Low Stock", "Out of Stock", "Overstocked"]

    def test_bundle_sections(self, make_product, now):
        bundle = build_inventory_bundle(self._catalog(make_product), now=now)

        assert bundle["brandPerformance"][0]["sku_count"] == 4
        assert bundle["supplierAnalysis"][0]["concentration_risk"] == 100
        assert bundle["kpiContext"]["totalActiveSKUs"]["percentage"] == "75.0%"
        assert bundle["skuPerformance"]["totalPortfolioValue"] == 2550

    def test_empty_catalog(self, now):
        bundle = build_inventory_bundle([], now=now)
        assert bundle["inventory"] == []
        assert bundle["kpiContext"]["totalActiveSKUs"]["percentage"] is None


# ────────────────────────────────────────────
# REPLENISHMENT
# ────────────────────────────────────────────


class TestReplenishment:

    def _catalog(self, make_product):
        return [
            make_product(unit_quantity=3),
            make_product(unit_quantity=0),
            make_product(unit_quantity=7),
            make_product(unit_quantity=50),
            make_product(unit_quantity=2, active=False),
        ]

    def test_kpis(self, make_product, make_shipment, now):
        shipments = [
            make_shipment(supplier="Acme", received_quantity=15),
            make_shipment(supplier="Old", received_quantity=15, created_date="2024-01-01"),
            make_shipment(supplier="Fine"),
        ]
        kpis = calculate_replenishment_kpis(self._catalog(make_product), shipments, now=now)

        assert kpis["criticalSKUs"] == 1
        assert kpis["replenishmentValue"] == 500
        assert kpis["reorderRecommendations"] == 2
        assert kpis["supplierAlerts"] == 1

    def test_critical_items_lowest_first(self, make_product):
        items = build_critical_items(self._catalog(make_product))

        assert [item["current_stock"] for item in items] == [3, 7]
        assert [item["urgency"] for item in items] == ["high", "medium"]
        assert items[0]["reorder_cost"] == 170

    def test_reorder_suggestions(self, make_product):
        suggestions = build_reorder_suggestions(self._catalog(make_product))

        assert [s["current_stock"] for s in suggestions] == [0, 3]
        assert suggestions[0]["urgency"] == "immediate"
        assert suggestions[0]["suggested_quantity"] == 30
        assert suggestions[0]["estimated_cost"] == 300
        assert suggestions[1]["urgency"] == "high"

    def test_rule_insights(self, make_product, now):
        products = self._catalog(make_product)
        kpis = calculate_replenishment_kpis(products, [], now=now)
        insights = generate_replenishment_rule_insights(products, [], kpis, now=now)

        assert [i["title"] for i in insights] == [
            "Critical Stock Replenishment Required",
            "Stockout Prevention Priority",
            "Replenishment Portfolio Summary",
        ]
        assert insights[0]["dollarImpact"] == 800
        assert insights[0]["severity"] == "warning"
        assert insights[1]["dollarImpact"] == 500
        assert insights[-1]["dollarImpact"] == 500

    def test_rule_insights_capped_at_four(self, make_product, make_shipment, now):
        products = self._catalog(make_product)
        shipments = [make_shipment(received_quantity=10)]
        kpis = calculate_replenishment_kpis(products, shipments, now=now)
        insights = generate_replenishment_rule_insights(products, shipments, kpis, now=now)

        assert len(insights) == 4
        assert insights[2]["title"] == "Supplier Delivery Performance Issues"
        assert insights[2]["severity"] == "info"
        assert insights[-1]["title"] == "Replenishment Portfolio Summary"


# ────────────────────────────────────────────
# ORDERS AND INBOUND
# ────────────────────────────────────────────


class TestOrders:

    def test_status_mapping(self):
        assert map_order_status("Delivered") == "completed"
        assert map_order_status("In Transit") == "shipped"
        assert map_order_status("Receiving") == "processing"
        assert map_order_status("open") == "pending"
        assert map_order_status("cancelled") == "cancelled"
        assert map_order_status("running late") == "delayed"
        assert map_order_status("weird") == "weird"
        assert map_order_status(None) == ""

    def test_sla_status(self, make_shipment, now):
        def status(**overrides):
            return calculate_sla_status(make_shipment(**overrides), now)

        assert status(expected_arrival_date=None) == "unknown"
        assert status(status="pending", expected_arrival_date="2024-03-10", arrival_date=None) == "breach"
        assert status(status="pending", expected_arrival_date="2024-03-14", arrival_date=None) == "at_risk"
        assert status(status="pending", expected_arrival_date="2024-03-20", arrival_date=None) == "on_time"
        assert status(arrival_date="2024-03-12") == "late"
        assert status(arrival_date="2024-03-09") == "on_time"
        assert status(arrival_date=None) == "unknown"

    def test_kpis_and_intelligence(self, make_shipment, now):
        shipments = [
            make_shipment(created_date="2024-03-15"),
            make_shipment(purchase_order_number="PO-X", status="pending",
                          expected_arrival_date="2024-03-10", arrival_date=None, received_quantity=0),
            make_shipment(status="cancelled"),
            make_shipment(status="receiving", received_quantity=0),
        ]
        bundle = build_orders_bundle(shipments, now=now)
        kpis = bundle["kpis"]

        assert kpis["ordersToday"] == 1
        assert kpis["atRiskOrders"] == 2
        assert kpis["openPOs"] == 2
        assert kpis["unfulfillableSKUs"] == 1

        intelligence = bundle["inboundIntelligence"]
        assert intelligence["totalInbound"] == 4
        assert intelligence["delayedShipments"]["count"] == 1
        assert intelligence["delayedShipments"]["percentage"] == 25
        assert intelligence["valueAtRisk"] == 200
        assert intelligence["geopoliticalRisks"] is None
        assert bundle["orders"][1]["order_id"] == "PO-X"

    def test_geopolitical_risk(self, make_shipment, now):
        shipments = [make_shipment(ship_from_country="China"), make_shipment(ship_from_country="China")]
        risks = build_orders_bundle(shipments, now=now)["inboundIntelligence"]["geopoliticalRisks"]
        assert risks == {"riskCountries": ["China"], "affectedShipments": 2, "avgDelayIncrease": 0}


class TestInbound:

    def test_kpis(self, make_shipment, now):
        shipments = [
            make_shipment(expected_arrival_date="2024-03-16", arrival_date=None),
            make_shipment(expected_arrival_date="2024-03-17", arrival_date=None),
            make_shipment(),
            make_shipment(expected_arrival_date="2024-03-09", arrival_date="2024-03-15"),
        ]
        kpis = calculate_inbound_kpis(shipments, now=now)

        # 2024-03-15 is a Friday; the week runs 03-10 through 03-16
        assert kpis["thisWeekExpected"] == 2
        assert kpis["todayArrivals"] == 1
        assert kpis["averageLeadTime"] == 11.5
        assert kpis["delayedShipments"] == 1
        assert kpis["onTimeDeliveryRate"] == 50
        assert kpis["receivingAccuracy"] == 100

    def test_empty_defaults(self, now):
        kpis = calculate_inbound_kpis([], now=now)
        assert kpis["receivingAccuracy"] == 100
        assert kpis["onTimeDeliveryRate"] == 100
        assert kpis["averageLeadTime"] == 0


# ────────────────────────────────────────────
# ANALYTICS
# ────────────────────────────────────────────


class TestAnalytics:

    def test_growth_windows(self, make_shipment, now):
        recent = [make_shipment(created_date="2024-03-01") for _ in range(3)]
        older = [make_shipment(created_date="2024-02-01") for _ in range(2)]

        assert order_volume_growth(recent + older, now) == 50.0
        assert order_volume_growth(recent, now) == 0
        assert order_volume_growth(recent[:1] + older * 2, now) == -75.0

    def test_brand_tiers(self):
        tiers = [performance_tier(index, 10) for index in range(10)]
        assert tiers[0] == "Leading Brand"
        assert tiers[1:3] == ["Top Performer", "Top Performer"]
        assert tiers[3] == "Strong Performer"
        assert tiers[4:8] == ["Average Performer"] * 4
        assert tiers[8:] == ["Developing Brand"] * 2

    def test_brand_rankings(self, make_product):
        products = [make_product(brand_name="A") for _ in range(3)] + [make_product(brand_name="B")]
        rankings = calculate_brand_rankings(products)

        assert rankings["totalBrands"] == 2
        assert rankings["topBrand"] == {"name": "A", "skuCount": 3}
        assert rankings["brandRankings"][0]["inventoryPercentage"] == 75.0
        assert rankings["brandRankings"][1]["rank"] == 2

    def test_no_brands(self):
        assert calculate_brand_rankings([])["topBrand"] == {"name": "No Data", "skuCount": 0}

    def test_rule_insights(self, now):
        kpis = {"orderVolumeGrowth": -20, "fulfillmentEfficiency": 70}
        brands = {"totalBrands": 6, "topBrand": {"name": "A", "skuCount": 9}}
        insights = generate_analytics_rule_insights(kpis, brands, now=now)

        assert [i["id"] for i in insights] == ["analytics-insight-1", "analytics-insight-2", "analytics-insight-3"]
        assert [i["dollarImpact"] for i in insights] == [5000, 10000, 2500]
        assert insights[1]["severity"] == "critical"
        assert "70.0%" in insights[1]["description"]

    def test_no_shipments_is_not_low_efficiency(self, now):
        kpis = calculate_analytics_kpis([], [], now=now)
        brands = calculate_brand_rankings([])

        assert kpis["fulfillmentEfficiency"] == 0
        assert generate_analytics_rule_insights(kpis, brands, now=now, shipment_count=0) == []
        assert dashboard_rule_insights([], [], {}, now=now) == []

    def test_bundle(self, happy_path, now):
        products, shipments = happy_path
        bundle = build_analytics_bundle(products, shipments, now=now)

        assert bundle["kpis"]["fulfillmentEfficiency"] == 100
        assert bundle["kpis"]["inventoryHealthScore"] == 100
        assert bundle["dataInsights"]["totalDataPoints"] == 15
        assert bundle["operationalBreakdown"]["inventoryAnalysis"]["avgInventoryLevel"] == 50
