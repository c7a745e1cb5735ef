"""
Field accessors and predicates over raw feed records.

Feed rows arrive as loosely typed dicts (nullable costs, string dates,
occasionally stringly booleans). Every metric reads them through these
helpers so null handling is decided in one place.
"""
from datetime import datetime
from typing import Dict, Optional

from brandbuddy.utils.helpers import date_key, days_between, parse_datetime, to_number, to_optional_number

# Cost assumed for unpriced shipments in SLA cost estimates
DEFAULT_SLA_UNIT_COST = 50

# Statuses that count as "still moving" for at-risk detection
IN_TRANSIT_MARKERS = ("transit", "processing", "pending")


# ────────────────────────────────────────────
# SHIPMENTS
# ────────────────────────────────────────────


def expected_qty(shipment: Dict) -> float:
    return to_number(shipment.get("expected_quantity"))


def received_qty(shipment: Dict) -> float:
    return to_number(shipment.get("received_quantity"))


def unit_cost(record: Dict) -> Optional[float]:
    """Unit cost, or None when the feed has no price"""
    return to_optional_number(record.get("unit_cost"))


def status_of(record: Dict) -> str:
    return str(record.get("status") or "").strip().lower()


def has_discrepancy(shipment: Dict) -> bool:
    return expected_qty(shipment) != received_qty(shipment)


def is_accurate(shipment: Dict) -> bool:
    return not has_discrepancy(shipment)


def is_cancelled(shipment: Dict) -> bool:
    return status_of(shipment) == "cancelled"


def discrepancy_value(shipment: Dict) -> float:
    """|expected - received| priced at unit cost (unpriced = 0)"""
    return abs(expected_qty(shipment) - received_qty(shipment)) * (unit_cost(shipment) or 0)


def expected_arrival(shipment: Dict) -> Optional[datetime]:
    return parse_datetime(shipment.get("expected_arrival_date"))


def arrival(shipment: Dict) -> Optional[datetime]:
    return parse_datetime(shipment.get("arrival_date"))


def delivery_delta_days(shipment: Dict) -> Optional[float]:
    """arrival - expected in days; positive means late. None without both dates."""
    expected, actual = expected_arrival(shipment), arrival(shipment)
    if expected is None or actual is None:
        return None
    return days_between(expected, actual)


def arrived_on_time(shipment: Dict) -> bool:
    delta = delivery_delta_days(shipment)
    return delta is not None and delta <= 0


def arrived_late(shipment: Dict) -> bool:
    delta = delivery_delta_days(shipment)
    return delta is not None and delta > 0


def met_sla(shipment: Dict) -> bool:
    """On time and the full expected quantity received"""
    return arrived_on_time(shipment) and is_accurate(shipment)


def is_sla_breach(shipment: Dict) -> bool:
    """Late or short/over-received. Both dates are required to judge a breach."""
    if delivery_delta_days(shipment) is None:
        return False
    return arrived_late(shipment) or has_discrepancy(shipment)


def sla_shipment_value(shipment: Dict) -> float:
    """
    Expected quantity priced at unit cost, defaulting unpriced rows.

    A unit cost of 0 is treated like a missing one and priced at the
    default.
    """
    cost = unit_cost(shipment)
    return (cost if cost else DEFAULT_SLA_UNIT_COST) * expected_qty(shipment)


def is_in_transit(shipment: Dict) -> bool:
    status = status_of(shipment)
    return any(marker in status for marker in IN_TRANSIT_MARKERS)


def supplier_of(shipment: Dict, default: Optional[str] = None) -> Optional[str]:
    return shipment.get("supplier") or shipment.get("supplier_name") or default


def po_number(shipment: Dict) -> Optional[str]:
    value = shipment.get("purchase_order_number")
    return value if value else None


def created_days_ago(record: Dict, now: datetime) -> Optional[float]:
    created = parse_datetime(record.get("created_date"))
    if created is None:
        return None
    return days_between(created, now)


def created_on(record: Dict, day: str) -> bool:
    return date_key(record.get("created_date")) == day


# ────────────────────────────────────────────
# PRODUCTS
# ────────────────────────────────────────────


def is_active(product: Dict) -> bool:
    value = product.get("active")
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def on_hand(product: Dict) -> float:
    return to_number(product.get("unit_quantity"))


def inventory_value(product: Dict) -> float:
    return on_hand(product) * (unit_cost(product) or 0)


def product_status(product: Dict) -> str:
    """Table-view status of a product"""
    if not is_active(product):
        return "Inactive"
    quantity = on_hand(product)
    if quantity == 0:
        return "Out of Stock"
    if quantity < 10:
        return "Low Stock"
    if quantity > 100:
        return "Overstocked"
    return "In Stock"


def is_active_out_of_stock(product: Dict) -> bool:
    return is_active(product) and on_hand(product) == 0
