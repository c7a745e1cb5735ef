"""
Dashboard metrics: headline KPIs, quick overview, warehouse rollup and
the financial-impact figures behind the daily brief.

All functions are pure. "Today" is injected by the caller.
"""
from datetime import date
from typing import Dict, List, Optional

from brandbuddy.services import records as r
from brandbuddy.services.risk_engine import calculate_margin_risks, detect_cost_variances
from brandbuddy.utils.helpers import mean, round_half_up, utc_now

# Completed workflows are POs that reached the dock
COMPLETED_WORKFLOW_STATUSES = ("receiving", "completed")
CLOSED_PO_STATUSES = ("completed", "cancelled")

UNFULFILLABLE_ALERT_THRESHOLD = 100


def _null_if_zero(value: int) -> Optional[int]:
    return value if value > 0 else None


def calculate_dashboard_kpis(products: List[Dict], shipments: List[Dict], today: Optional[date] = None) -> Dict:
    """
    Top-bar KPIs. Counts that come out as zero are reported as None so the
    client renders a dash ("no data") instead of 0; unfulfillableSKUs is
    always numeric.
    """
    today_key = (today or utc_now().date()).isoformat()

    total_orders_today = sum(1 for s in shipments if r.created_on(s, today_key))
    at_risk_orders = sum(1 for s in shipments if r.has_discrepancy(s) or r.is_cancelled(s))
    open_pos = {
        r.po_number(s) for s in shipments
        if r.po_number(s) and r.status_of(s) not in CLOSED_PO_STATUSES
    }

    return {
        "totalOrdersToday": _null_if_zero(total_orders_today),
        "atRiskOrders": _null_if_zero(at_risk_orders),
        "openPOs": _null_if_zero(len(open_pos)),
        "unfulfillableSKUs": sum(1 for p in products if not r.is_active(p)),
    }


def calculate_quick_overview(shipments: List[Dict]) -> Dict:
    at_risk = sum(1 for s in shipments if r.has_discrepancy(s) or r.is_cancelled(s))
    working = sum(1 for s in shipments if r.is_accurate(s) and not r.is_cancelled(s))
    dollar_impact = sum(r.discrepancy_value(s) for s in shipments if r.has_discrepancy(s))
    completed = {
        r.po_number(s) for s in shipments
        if r.po_number(s) and r.status_of(s) in COMPLETED_WORKFLOW_STATUSES
    }
    return {
        "topIssues": at_risk,
        "whatsWorking": working,
        "dollarImpact": round_half_up(dollar_impact),
        "completedWorkflows": len(completed),
    }


def calculate_warehouse_inventory(products: List[Dict], shipments: List[Dict]) -> List[Dict]:
    """One row per distinct warehouse_id, in first-seen order"""
    warehouses: Dict[str, Dict] = {}
    for s in shipments:
        warehouse_id = s.get("warehouse_id")
        if not warehouse_id:
            continue
        if warehouse_id not in warehouses:
            warehouses[warehouse_id] = {"name": s.get("supplier"), "shipments": []}
        warehouses[warehouse_id]["shipments"].append(s)

    rows = []
    for warehouse_id, data in warehouses.items():
        wh_shipments = data["shipments"]
        item_ids = {s.get("inventory_item_id") for s in wh_shipments if s.get("inventory_item_id")}
        product_count = sum(1 for p in products if p.get("inventory_item_id") in item_ids)
        priced = [r.unit_cost(s) for s in wh_shipments if r.unit_cost(s) is not None]
        average_cost = mean(priced)

        rows.append({
            "warehouseId": warehouse_id,
            "name": data["name"],
            "totalInventory": sum(r.received_qty(s) for s in wh_shipments),
            "productCount": product_count,
            "averageCost": round_half_up(average_cost) if average_cost is not None else 0,
        })
    return rows


def detect_operational_anomalies(kpis: Dict) -> List[Dict]:
    """Simple threshold alerts shown above the dashboard tables"""
    anomalies = []
    if kpis.get("unfulfillableSKUs", 0) > UNFULFILLABLE_ALERT_THRESHOLD:
        anomalies.append({
            "id": "anomaly-unfulfillable",
            "type": "unfulfillable_skus",
            "title": "High Unfulfillable SKUs",
            "description": f"{kpis['unfulfillableSKUs']} SKUs are inactive and cannot be fulfilled",
            "severity": "critical",
            "value": kpis["unfulfillableSKUs"],
        })
    if not kpis.get("totalOrdersToday"):
        anomalies.append({
            "id": "anomaly-low-volume",
            "type": "low_order_volume",
            "title": "Low Order Volume",
            "description": "No orders have been created today",
            "severity": "info",
            "value": 0,
        })
    return anomalies


def calculate_financial_impacts(products: List[Dict], shipments: List[Dict]) -> Dict:
    """Dollar exposure figures used by the daily brief and insight prompts"""
    discrepancy_impact = sum(r.discrepancy_value(s) for s in shipments if r.has_discrepancy(s))
    cancelled_impact = sum(
        r.expected_qty(s) * (r.unit_cost(s) or 0) for s in shipments if r.is_cancelled(s)
    )
    inactive_value = sum(
        (r.unit_cost(p) or 0) * min(r.on_hand(p), 10) for p in products if not r.is_active(p)
    )
    at_risk_value = discrepancy_impact + cancelled_impact

    return {
        "quantityDiscrepancyImpact": round_half_up(discrepancy_impact),
        "cancelledShipmentsImpact": round_half_up(cancelled_impact),
        "inactiveProductsValue": round_half_up(inactive_value),
        "atRiskInventoryValue": round_half_up(at_risk_value),
        "totalFinancialRisk": round_half_up(at_risk_value + inactive_value),
    }


def top_suppliers_by_volume(shipments: List[Dict], limit: int = 3) -> List[Dict]:
    """Suppliers ranked by shipment count, with their share of all shipments"""
    counts: Dict[str, int] = {}
    for s in shipments:
        supplier = r.supplier_of(s, "Unknown")
        counts[supplier] = counts.get(supplier, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: -item[1])[:limit]
    total = len(shipments)
    return [
        {"supplier": name, "shipments": count, "share": round_half_up(100 * count / total) if total else 0}
        for name, count in ranked
    ]


def build_dashboard_bundle(products: List[Dict], shipments: List[Dict], today: Optional[date] = None) -> Dict:
    """Everything on the dashboard that does not need the LLM"""
    kpis = calculate_dashboard_kpis(products, shipments, today=today)
    return {
        "products": products,
        "shipments": shipments,
        "kpis": kpis,
        "quickOverview": calculate_quick_overview(shipments),
        "warehouseInventory": calculate_warehouse_inventory(products, shipments),
        "anomalies": detect_operational_anomalies(kpis),
        "marginRisks": calculate_margin_risks(products, shipments),
        "costVariances": detect_cost_variances(shipments),
    }
