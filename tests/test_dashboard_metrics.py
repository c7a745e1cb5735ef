"""
Dashboard kernel tests.

Covers the headline KPIs with their null-vs-zero rule, the quick overview
dollar impact, the warehouse rollup and the financial-impact figures.
Pure functions only; no network.
"""
import json

from brandbuddy.services.analytics_metrics import calculate_analytics_kpis
from brandbuddy.services.dashboard_metrics import (
    build_dashboard_bundle,
    calculate_dashboard_kpis,
    calculate_financial_impacts,
    calculate_quick_overview,
    calculate_warehouse_inventory,
    detect_operational_anomalies,
    top_suppliers_by_volume,
)
from brandbuddy.services.inventory_metrics import calculate_inventory_kpis
from brandbuddy.services.sla_metrics import calculate_sla_kpis


# ────────────────────────────────────────────
# END-TO-END FIXTURES
# ────────────────────────────────────────────


class TestHappyPath:
    """Ten clean products and five clean shipments."""

    def test_dashboard_fields(self, happy_path, now):
        products, shipments = happy_path
        bundle = build_dashboard_bundle(products, shipments, today=now.date())

        assert bundle["kpis"]["atRiskOrders"] is None
        assert bundle["quickOverview"]["dollarImpact"] == 0
        assert bundle["marginRisks"] == []
        assert bundle["costVariances"] == []

    def test_sla_compliance_is_full(self, happy_path, now):
        _, shipments = happy_path
        assert calculate_sla_kpis(shipments, now=now)["overallSLACompliance"] == 100

    def test_inventory_value(self, happy_path):
        products, _ = happy_path
        assert calculate_inventory_kpis(products)["totalInventoryValue"] == 5000


class TestQuantityDiscrepancy:
    """Same fixture with one short-received shipment."""

    def test_discrepancy_drives_impact(self, happy_path, now):
        products, shipments = happy_path
        shipments[0]["received_quantity"] = 15

        kpis = calculate_dashboard_kpis(products, shipments, today=now.date())
        overview = calculate_quick_overview(shipments)
        analytics = calculate_analytics_kpis(products, shipments, now=now)

        assert kpis["atRiskOrders"] == 1
        assert overview["dollarImpact"] == 50
        assert analytics["fulfillmentEfficiency"] == 80


# ────────────────────────────────────────────
# KPIS
# ────────────────────────────────────────────


class TestDashboardKpis:

    def test_zero_counts_are_null(self, now):
        kpis = calculate_dashboard_kpis([], [], today=now.date())
        assert kpis["totalOrdersToday"] is None
        assert kpis["atRiskOrders"] is None
        assert kpis["openPOs"] is None
        assert kpis["unfulfillableSKUs"] == 0

    def test_orders_today_compares_calendar_date(self, make_shipment, now):
        shipments = [
            make_shipment(created_date="2024-03-15T08:30:00Z"),
            make_shipment(created_date="2024-03-15"),
            make_shipment(created_date="2024-03-14T23:59:59Z"),
        ]
        kpis = calculate_dashboard_kpis([], shipments, today=now.date())
        assert kpis["totalOrdersToday"] == 2

    def test_open_pos_are_distinct_and_exclude_closed(self, make_shipment, now):
        shipments = [
            make_shipment(purchase_order_number="PO-A", status="receiving"),
            make_shipment(purchase_order_number="PO-A", status="pending"),
            make_shipment(purchase_order_number="PO-B", status="completed"),
            make_shipment(purchase_order_number="PO-C", status="cancelled"),
            make_shipment(purchase_order_number="", status="pending"),
        ]
        kpis = calculate_dashboard_kpis([], shipments, today=now.date())
        assert kpis["openPOs"] == 1

    def test_cancelled_shipments_are_at_risk(self, make_shipment, now):
        shipments = [make_shipment(status="cancelled"), make_shipment()]
        kpis = calculate_dashboard_kpis([], shipments, today=now.date())
        assert kpis["atRiskOrders"] == 1

    def test_unfulfillable_counts_inactive_products(self, make_product, now):
        products = [make_product(active=False), make_product(active="false"), make_product()]
        kpis = calculate_dashboard_kpis(products, [], today=now.date())
        assert kpis["unfulfillableSKUs"] == 2


# ────────────────────────────────────────────
# QUICK OVERVIEW AND WAREHOUSES
# ────────────────────────────────────────────


class TestQuickOverview:

    def test_dollar_impact_sums_discrepancy_value(self, make_shipment):
        shipments = [
            make_shipment(expected_quantity=20, received_quantity=15, unit_cost=10),
            make_shipment(expected_quantity=10, received_quantity=13, unit_cost=2.5),
            make_shipment(expected_quantity=10, received_quantity=5, unit_cost=None),
        ]
        overview = calculate_quick_overview(shipments)
        # 5 * 10 + 3 * 2.5 + unpriced 0 = 57.5 -> 58
        assert overview["dollarImpact"] == 58
        assert overview["topIssues"] == 3
        assert overview["whatsWorking"] == 0

    def test_completed_workflows_count_distinct_pos(self, make_shipment):
        shipments = [
            make_shipment(purchase_order_number="PO-1", status="receiving"),
            make_shipment(purchase_order_number="PO-1", status="completed"),
            make_shipment(purchase_order_number="PO-2", status="pending"),
        ]
        assert calculate_quick_overview(shipments)["completedWorkflows"] == 1


class TestWarehouseInventory:

    def test_one_row_per_warehouse(self, make_product, make_shipment):
        products = [make_product(inventory_item_id="INV-X")]
        shipments = [
            make_shipment(warehouse_id="WH-1", inventory_item_id="INV-X", received_quantity=20, unit_cost=10),
            make_shipment(warehouse_id="WH-2", received_quantity=5, unit_cost=None),
            make_shipment(warehouse_id="WH-1", received_quantity=10, unit_cost=20),
            make_shipment(warehouse_id=None),
        ]
        rows = calculate_warehouse_inventory(products, shipments)

        assert [row["warehouseId"] for row in rows] == ["WH-1", "WH-2"]
        wh1 = rows[0]
        assert wh1["totalInventory"] == 30
        assert wh1["productCount"] == 1
        assert wh1["averageCost"] == 15
        assert rows[1]["averageCost"] == 0


# ────────────────────────────────────────────
# ANOMALIES AND FINANCIAL IMPACT
# ────────────────────────────────────────────


class TestAnomaliesAndFinancials:

    def test_low_volume_and_unfulfillable_alerts(self):
        anomalies = detect_operational_anomalies({"totalOrdersToday": None, "unfulfillableSKUs": 101})
        titles = [a["title"] for a in anomalies]
        assert titles == ["High Unfulfillable SKUs", "Low Order Volume"]
        assert anomalies[0]["severity"] == "critical"

    def test_no_alerts_on_a_normal_day(self):
        assert detect_operational_anomalies({"totalOrdersToday": 4, "unfulfillableSKUs": 100}) == []

    def test_financial_impacts(self, make_product, make_shipment):
        products = [make_product(active=False, unit_quantity=50, unit_cost=10), make_product()]
        shipments = [
            make_shipment(status="cancelled", expected_quantity=20, received_quantity=20, unit_cost=10),
            make_shipment(expected_quantity=20, received_quantity=15, unit_cost=10),
        ]
        impact = calculate_financial_impacts(products, shipments)

        assert impact["quantityDiscrepancyImpact"] == 50
        assert impact["cancelledShipmentsImpact"] == 200
        assert impact["inactiveProductsValue"] == 100
        assert impact["atRiskInventoryValue"] == 250
        assert impact["totalFinancialRisk"] == 350

    def test_top_suppliers_share(self, make_shipment):
        shipments = [make_shipment(supplier="A"), make_shipment(supplier="A"), make_shipment(supplier="B")]
        top = top_suppliers_by_volume(shipments)
        assert top[0] == {"supplier": "A", "shipments": 2, "share": 67}
        assert top[1]["supplier"] == "B"


# ────────────────────────────────────────────
# INVARIANTS
# ────────────────────────────────────────────


class TestBundleInvariants:

    def test_same_input_gives_identical_output(self, happy_path, now):
        products, shipments = happy_path
        first = build_dashboard_bundle(products, shipments, today=now.date())
        second = build_dashboard_bundle(products, shipments, today=now.date())
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)

    def test_json_round_trip_is_stable(self, happy_path, now):
        products, shipments = happy_path
        shipments[0]["received_quantity"] = 15
        bundle = build_dashboard_bundle(products, shipments, today=now.date())
        restored = json.loads(json.dumps(bundle))
        assert calculate_quick_overview(restored["shipments"]) == bundle["quickOverview"]

    def test_empty_feeds_do_not_divide_by_zero(self, now):
        bundle = build_dashboard_bundle([], [], today=now.date())
        assert bundle["quickOverview"]["dollarImpact"] == 0
        assert bundle["warehouseInventory"] == []
