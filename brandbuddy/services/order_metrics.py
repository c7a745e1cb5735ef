"""
Order and inbound analytics.

The orders page has no order feed of its own: each shipment is read as
an order (PO number as the order id) with a normalized status and an SLA
status derived from its dates. The inbound page reuses the same shipments
for arrival planning and receiving KPIs.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import math

from brandbuddy.services import records as r
from brandbuddy.services.risk_engine import build_supplier_scorecard
from brandbuddy.utils.helpers import date_key, days_between, parse_datetime, round_half_up, utc_now

ORDER_LIMIT = 500
SLA_GRACE_DAYS = 2
MAX_LEAD_TIME_DAYS = 365

GEOPOLITICAL_RISK_COUNTRIES = ("China", "Russia", "Iran", "North Korea", "Myanmar")

# Checked in order; first match wins
ORDER_STATUS_RULES = (
    (("completed", "delivered"), "completed"),
    (("shipped", "transit"), "shipped"),
    (("receiving", "processing"), "processing"),
    (("pending", "open"), "pending"),
    (("cancelled",), "cancelled"),
    (("delayed", "late"), "delayed"),
)


# ────────────────────────────────────────────
# ORDERS
# ────────────────────────────────────────────


def map_order_status(status: Optional[str]) -> str:
    """Normalize a shipment status to order vocabulary, keeping unknown statuses as-is"""
    lowered = (status or "").lower()
    for markers, mapped in ORDER_STATUS_RULES:
        if any(marker in lowered for marker in markers):
            return mapped
    return status or ""


def calculate_sla_status(shipment: Dict, now: datetime) -> str:
    """
    on_time / late for finished shipments, on_time / at_risk / breach for
    ones still in progress (breach after a 2-day grace), unknown without an
    expected date.
    """
    expected = r.expected_arrival(shipment)
    if expected is None:
        return "unknown"

    status = r.status_of(shipment)
    if "pending" in status or "processing" in status:
        overdue_days = days_between(expected, now)
        if overdue_days > SLA_GRACE_DAYS:
            return "breach"
        if overdue_days > 0:
            return "at_risk"
        return "on_time"

    actual = r.arrival(shipment)
    if actual is None:
        return "unknown"
    return "on_time" if actual <= expected else "late"


def transform_shipments_to_orders(shipments: List[Dict], now: Optional[datetime] = None) -> List[Dict]:
    now = now or utc_now()
    orders = []
    for s in shipments:
        orders.append({
            "order_id": r.po_number(s) or s.get("shipment_id"),
            "created_date": s.get("created_date"),
            "brand_name": s.get("brand_name"),
            "status": map_order_status(s.get("status")),
            "sla_status": calculate_sla_status(s, now),
            "expected_date": s.get("expected_arrival_date"),
            "arrival_date": s.get("arrival_date"),
            "supplier": s.get("supplier"),
            "warehouse_id": s.get("warehouse_id"),
            "product_sku": s.get("sku"),
            "expected_quantity": r.expected_qty(s),
            "received_quantity": r.received_qty(s),
            "unit_cost": r.unit_cost(s),
            "ship_from_country": s.get("ship_from_country"),
            "notes": s.get("notes"),
            "shipment_id": s.get("shipment_id"),
            "inventory_item_id": s.get("inventory_item_id"),
        })
    return orders


def is_order_at_risk(order: Dict) -> bool:
    return (
        "delayed" in order["status"]
        or order["sla_status"] in ("at_risk", "breach")
        or order["expected_quantity"] != order["received_quantity"]
    )


def is_order_delayed(order: Dict) -> bool:
    return "delayed" in order["status"] or order["sla_status"] in ("breach", "late")


def calculate_order_kpis(orders: List[Dict], now: Optional[datetime] = None) -> Dict:
    today_key = (now or utc_now()).date().isoformat()
    open_pos = {
        order["order_id"] for order in orders
        if order["order_id"]
        and "completed" not in order["status"]
        and "cancelled" not in order["status"]
    }
    return {
        "ordersToday": sum(1 for order in orders if date_key(order["created_date"]) == today_key),
        "atRiskOrders": sum(1 for order in orders if is_order_at_risk(order)),
        "openPOs": len(open_pos),
        "unfulfillableSKUs": sum(
            1 for order in orders if order["received_quantity"] == 0 and order["status"] != "pending"
        ),
    }


def calculate_inbound_intelligence(orders: List[Dict]) -> Dict:
    total = len(orders)
    delayed = [order for order in orders if is_order_delayed(order)]

    delay_days = 0.0
    for order in delayed:
        expected = parse_datetime(order["expected_date"])
        actual = parse_datetime(order["arrival_date"])
        if expected and actual:
            delay_days += max(0.0, days_between(expected, actual))
    avg_delay = delay_days / len(delayed) if delayed else 0

    value_at_risk = sum(order["expected_quantity"] * (order["unit_cost"] or 0) for order in delayed)

    risk_orders = [order for order in orders if order["ship_from_country"] in GEOPOLITICAL_RISK_COUNTRIES]
    geopolitical = None
    if risk_orders:
        countries = []
        for order in risk_orders:
            if order["ship_from_country"] not in countries:
                countries.append(order["ship_from_country"])
        geopolitical = {
            "riskCountries": countries,
            "affectedShipments": len(risk_orders),
            "avgDelayIncrease": 0,
        }

    return {
        "totalInbound": total,
        "delayedShipments": {
            "count": len(delayed),
            "percentage": 100 * len(delayed) / total if total else 0,
        },
        "avgDelayDays": round_half_up(avg_delay, 1),
        "valueAtRisk": round_half_up(value_at_risk),
        "geopoliticalRisks": geopolitical,
        "recentShipments": orders,
        "delayedShipmentsList": delayed,
    }


def order_prompt_figures(orders: List[Dict], kpis: Dict, intelligence: Dict, now: Optional[datetime] = None) -> Dict:
    """Derived figures quoted in the orders insight prompt"""
    now = now or utc_now()
    total_value = sum((order["unit_cost"] or 0) * order["expected_quantity"] for order in orders)

    by_supplier: Dict[str, int] = {}
    for order in orders:
        supplier = order["supplier"] or "Unknown"
        by_supplier[supplier] = by_supplier.get(supplier, 0) + 1
    top_supplier = max(by_supplier.items(), key=lambda item: item[1]) if by_supplier else None

    cancelled = sum(1 for order in orders if "cancelled" in order["status"])
    six_months_ago = now - timedelta(days=180)
    aged = 0
    for order in orders:
        created = parse_datetime(order["created_date"])
        if created and created < six_months_ago:
            aged += 1

    total = len(orders)
    return {
        "totalOrderValue": round_half_up(total_value),
        "avgOrderValue": round_half_up(total_value / total, 2) if total else 0,
        "supplierCount": len(by_supplier),
        "topSupplier": top_supplier[0] if top_supplier else None,
        "topSupplierOrders": top_supplier[1] if top_supplier else 0,
        "topSupplierShare": round_half_up(100 * top_supplier[1] / total, 1) if top_supplier else 0,
        "cancellationRate": round_half_up(100 * cancelled / total, 1) if total else 0,
        "agedOrders": aged,
        "onTrackRate": round_half_up(100 * (total - kpis["atRiskOrders"]) / total, 1) if total else 100,
        "perfectOrderRate": (
            round_half_up(100 * (total - intelligence["delayedShipments"]["count"]) / total, 1) if total else 100
        ),
    }


def build_orders_bundle(shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    orders = transform_shipments_to_orders(shipments, now=now)
    kpis = calculate_order_kpis(orders, now=now)
    intelligence = calculate_inbound_intelligence(orders)
    return {
        "orders": orders[:ORDER_LIMIT],
        "kpis": kpis,
        "inboundIntelligence": intelligence,
    }


# ────────────────────────────────────────────
# INBOUND
# ────────────────────────────────────────────


def arrives_today(shipment: Dict, today_key: str) -> bool:
    return (
        date_key(shipment.get("arrival_date")) == today_key
        or date_key(shipment.get("expected_arrival_date")) == today_key
    )


def calculate_inbound_kpis(shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    today = now.date()
    today_key = today.isoformat()

    # Sunday through Saturday of the current week
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    week_end = week_start + timedelta(days=6)
    this_week = 0
    for s in shipments:
        expected = r.expected_arrival(s)
        if expected and week_start <= expected.date() <= week_end:
            this_week += 1

    lead_times = []
    for s in shipments:
        created = parse_datetime(s.get("created_date"))
        actual = r.arrival(s)
        if created and actual:
            lead_time = days_between(created, actual)
            if 0 <= lead_time <= MAX_LEAD_TIME_DAYS:
                lead_times.append(lead_time)

    with_quantities = [s for s in shipments if r.expected_qty(s) > 0 and r.received_qty(s) >= 0]
    accurate = sum(1 for s in with_quantities if r.is_accurate(s))
    with_dates = [s for s in shipments if r.delivery_delta_days(s) is not None]

    return {
        "todayArrivals": sum(1 for s in shipments if arrives_today(s, today_key)),
        "thisWeekExpected": this_week,
        "averageLeadTime": round_half_up(sum(lead_times) / len(lead_times), 1) if lead_times else 0,
        "delayedShipments": sum(1 for s in shipments if r.arrived_late(s)),
        "receivingAccuracy": round_half_up(100 * accurate / len(with_quantities)) if with_quantities else 100,
        "onTimeDeliveryRate": (
            round_half_up(100 * sum(1 for s in with_dates if r.arrived_on_time(s)) / len(with_dates))
            if with_dates else 100
        ),
    }


def inbound_prompt_data(shipments: List[Dict], now: Optional[datetime] = None) -> Dict[str, List[Dict]]:
    """Shipment-id-referenced lists handed to the inbound insight prompt"""
    now = now or utc_now()
    today_key = now.date().isoformat()

    arrivals = sorted(
        (s for s in shipments if arrives_today(s, today_key) and r.expected_qty(s) > 0),
        key=lambda s: -r.expected_qty(s) * (r.unit_cost(s) or 0)
    )[:8]

    delayed = []
    for s in shipments:
        if not r.arrived_late(s):
            continue
        overdue = math.ceil(r.delivery_delta_days(s))
        delayed.append({
            "shipmentId": s.get("shipment_id"),
            "supplier": r.supplier_of(s, "Unknown"),
            "daysOverdue": overdue,
            "delayImpact": round_half_up(overdue * r.expected_qty(s) * (r.unit_cost(s) or 0) * 0.1),
        })
    delayed.sort(key=lambda d: -d["delayImpact"])

    discrepancies = [
        {
            "shipmentId": s.get("shipment_id"),
            "supplier": r.supplier_of(s, "Unknown"),
            "expectedQuantity": r.expected_qty(s),
            "receivedQuantity": r.received_qty(s),
            "varianceValue": round_half_up(r.discrepancy_value(s)),
            "varianceType": "SHORTAGE" if r.expected_qty(s) > r.received_qty(s) else "OVERAGE",
        }
        for s in shipments
        if r.expected_qty(s) and r.received_qty(s) and r.has_discrepancy(s)
    ]
    discrepancies.sort(key=lambda d: -d["varianceValue"])

    return {
        "criticalArrivals": [
            {
                "shipmentId": s.get("shipment_id"),
                "supplier": r.supplier_of(s, "Unknown"),
                "expectedQuantity": r.expected_qty(s),
                "totalValue": round_half_up(r.expected_qty(s) * (r.unit_cost(s) or 0)),
            }
            for s in arrivals
        ],
        "delayedShipments": delayed[:6],
        "receivingDiscrepancies": discrepancies[:8],
    }


def build_inbound_bundle(shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    today_key = now.date().isoformat()
    return {
        "kpis": calculate_inbound_kpis(shipments, now=now),
        "todayArrivals": [s for s in shipments if arrives_today(s, today_key)],
        "supplierPerformance": build_supplier_scorecard(shipments, now=now),
    }
