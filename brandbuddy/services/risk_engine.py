"""
Anomaly & risk engines.

Deterministic scorers layered on the metric kernel:
  - margin-risk scoring per brand
  - cost-variance detection (supplier cost spikes, warehouse discrepancy rates)
  - supplier scorecard (on-time, accuracy, trend, risk profile)
  - ABC / velocity classification of inventory items

All sorts are stable, so ties keep feed order.
"""
from datetime import datetime
from typing import Dict, List, Optional

from brandbuddy.services import records as r
from brandbuddy.utils.helpers import mean, round_half_up, safe_divide, utc_now

# Margin risk
MARGIN_RISK_MIN_SKUS = 5
MARGIN_RISK_LIMIT = 5
INACTIVE_ANNUAL_MONTHS = 12

# Cost variance
MIN_BASELINE_SHIPMENTS = 3
COST_SPIKE_VARIANCE = 0.40
COST_SPIKE_HIGH_VARIANCE = 0.80
COST_SPIKE_MIN_IMPACT = 1000
WAREHOUSE_DISCREPANCY_RATE = 0.30
WAREHOUSE_HIGH_DISCREPANCY_RATE = 0.50
WAREHOUSE_MIN_IMPACT = 2000
WAREHOUSE_MIN_SHIPMENTS = 5
EXPECTED_DISCREPANCY_RATE = 0.05
COST_VARIANCE_LIMIT = 8

# Supplier scorecard
TREND_WINDOW_DAYS = 30
TREND_BAND = 5

# ABC
ABC_A_CUTOFF = 80
ABC_B_CUTOFF = 95


def risk_level(score: int) -> str:
    if score >= 60:
        return "High"
    if score >= 30:
        return "Medium"
    return "Low"


# ────────────────────────────────────────────
# MARGIN RISK
# ────────────────────────────────────────────


def score_margin_risk(sku_count: int, avg_unit_cost: float, inactive_pct: float, shipment_impact: float):
    """Additive risk score (capped at 100) and the drivers that contributed"""
    score = 0
    drivers = []

    if sku_count > 50:
        score += 25
        drivers.append("High SKU complexity")
    elif sku_count > 20:
        score += 15
        drivers.append("Moderate SKU complexity")

    if avg_unit_cost > 50:
        score += 30
        drivers.append("High unit costs")
    elif avg_unit_cost > 20:
        score += 15
        drivers.append("Elevated unit costs")

    if inactive_pct > 30:
        score += 25
        drivers.append("High inactive inventory")
    elif inactive_pct > 15:
        score += 10
        drivers.append("Growing inactive inventory")

    if shipment_impact > 5000:
        score += 20
        drivers.append("Shipment discrepancies")

    return min(score, 100), drivers


def calculate_margin_risks(products: List[Dict], shipments: List[Dict]) -> List[Dict]:
    """
    Score each brand present in the product feed.

    Only brands with a positive score and more than five SKUs are kept;
    the top five by score are returned.
    """
    groups: Dict[str, Dict[str, List[Dict]]] = {}
    for p in products:
        brand = p.get("brand_name")
        if not brand:
            continue
        groups.setdefault(brand, {"products": [], "shipments": []})["products"].append(p)
    for s in shipments:
        brand = s.get("brand_name")
        if brand in groups:
            groups[brand]["shipments"].append(s)

    alerts = []
    for brand, data in groups.items():
        brand_products = data["products"]
        sku_count = len(brand_products)
        avg_unit_cost = mean(r.unit_cost(p) for p in brand_products if r.unit_cost(p) is not None) or 0
        inactive_count = sum(1 for p in brand_products if not r.is_active(p))
        inactive_pct = 100 * inactive_count / sku_count
        shipment_impact = sum(
            r.discrepancy_value(s) for s in data["shipments"]
            if r.has_discrepancy(s) and r.unit_cost(s) is not None
        )

        score, drivers = score_margin_risk(sku_count, avg_unit_cost, inactive_pct, shipment_impact)
        if score <= 0 or sku_count <= MARGIN_RISK_MIN_SKUS:
            continue

        alerts.append({
            "brandName": brand,
            "currentMargin": round_half_up(max(0, 100 - avg_unit_cost)),
            "riskLevel": risk_level(score),
            "riskScore": score,
            "primaryDrivers": drivers,
            "financialImpact": round_half_up(
                shipment_impact + inactive_count * avg_unit_cost * INACTIVE_ANNUAL_MONTHS
            ),
            "skuCount": sku_count,
            "avgUnitCost": round_half_up(avg_unit_cost),
            "inactivePercentage": round_half_up(inactive_pct),
        })

    alerts.sort(key=lambda a: -a["riskScore"])
    return alerts[:MARGIN_RISK_LIMIT]


# ────────────────────────────────────────────
# COST VARIANCE
# ────────────────────────────────────────────


def _impact_factor(impact: float, high_threshold: float) -> str:
    return "High financial impact" if impact > high_threshold else "Material financial impact"


def detect_cost_spikes(shipments: List[Dict]) -> List[Dict]:
    """
    Flag shipments priced far from their supplier's baseline.

    The baseline for a shipment is the mean unit cost of that supplier's
    earlier priced shipments (feed order), so a spike never dilutes its
    own baseline. A supplier needs three earlier priced shipments before
    any of its shipments can be flagged.
    """
    running: Dict[str, Dict[str, float]] = {}
    anomalies = []

    for s in shipments:
        cost = r.unit_cost(s)
        supplier = s.get("supplier")
        if not cost or not supplier:
            continue

        history = running.setdefault(supplier, {"total": 0.0, "count": 0})
        if history["count"] >= MIN_BASELINE_SHIPMENTS:
            baseline = history["total"] / history["count"]
            deviation = abs(cost - baseline)
            variance = deviation / baseline
            impact = deviation * r.received_qty(s)

            if variance > COST_SPIKE_VARIANCE and impact > COST_SPIKE_MIN_IMPACT:
                direction = "above" if cost > baseline else "below"
                anomalies.append({
                    "type": "Cost Spike",
                    "title": f"{supplier} Cost Anomaly",
                    "description": (
                        f"Unit cost of ${cost:,.2f} is {round_half_up(variance * 100)}% {direction} "
                        f"expected ${round_half_up(baseline)} baseline"
                    ),
                    "severity": "High" if variance > COST_SPIKE_HIGH_VARIANCE else "Medium",
                    "warehouseId": s.get("warehouse_id"),
                    "supplier": supplier,
                    "currentValue": cost,
                    "expectedValue": round_half_up(baseline),
                    "variance": round_half_up(variance * 100),
                    "riskFactors": [
                        "Extreme cost deviation" if variance > COST_SPIKE_HIGH_VARIANCE else "Significant cost increase",
                        _impact_factor(impact, 5000),
                    ],
                    "financialImpact": round_half_up(impact),
                })

        history["total"] += cost
        history["count"] += 1

    return anomalies


def detect_warehouse_discrepancies(shipments: List[Dict]) -> List[Dict]:
    """Flag warehouses where a large share of receipts don't match the ASN"""
    warehouses: Dict[str, Dict[str, float]] = {}
    for s in shipments:
        warehouse_id = s.get("warehouse_id")
        if not warehouse_id:
            continue
        data = warehouses.setdefault(warehouse_id, {"discrepancies": 0, "total": 0, "impact": 0.0})
        data["total"] += 1
        if r.has_discrepancy(s):
            data["discrepancies"] += 1
            data["impact"] += r.discrepancy_value(s)

    anomalies = []
    for warehouse_id, data in warehouses.items():
        rate = data["discrepancies"] / data["total"]
        if not (rate > WAREHOUSE_DISCREPANCY_RATE and data["impact"] > WAREHOUSE_MIN_IMPACT
                and data["total"] > WAREHOUSE_MIN_SHIPMENTS):
            continue
        anomalies.append({
            "type": "Quantity Discrepancy",
            "title": f"Warehouse {warehouse_id} Processing Issues",
            "description": (
                f"{round_half_up(rate * 100)}% of shipments have quantity discrepancies "
                f"with ${round_half_up(data['impact']):,} financial impact"
            ),
            "severity": "High" if rate > WAREHOUSE_HIGH_DISCREPANCY_RATE else "Medium",
            "warehouseId": warehouse_id,
            "supplier": None,
            "currentValue": round_half_up(rate * 100),
            "expectedValue": round_half_up(EXPECTED_DISCREPANCY_RATE * 100),
            "variance": round_half_up((rate - EXPECTED_DISCREPANCY_RATE) * 100),
            "riskFactors": [
                "Critical processing accuracy" if rate > WAREHOUSE_HIGH_DISCREPANCY_RATE else "Poor processing accuracy",
                _impact_factor(data["impact"], 10000),
            ],
            "financialImpact": round_half_up(data["impact"]),
        })
    return anomalies


def detect_cost_variances(shipments: List[Dict]) -> List[Dict]:
    """Cost spikes and warehouse discrepancies, most expensive first, at most eight"""
    anomalies = detect_cost_spikes(shipments) + detect_warehouse_discrepancies(shipments)
    anomalies.sort(key=lambda a: -a["financialImpact"])
    return anomalies[:COST_VARIANCE_LIMIT]


# ────────────────────────────────────────────
# SUPPLIER SCORECARD
# ────────────────────────────────────────────


def _is_recent(shipment: Dict, now: datetime) -> bool:
    age = r.created_days_ago(shipment, now)
    return age is not None and age <= TREND_WINDOW_DAYS


def supplier_trend(recent_on_time_rate: float, overall_on_time_rate: float) -> str:
    if recent_on_time_rate > overall_on_time_rate + TREND_BAND:
        return "improving"
    if recent_on_time_rate < overall_on_time_rate - TREND_BAND:
        return "declining"
    return "stable"


def supplier_risk_profile(performance_score: int, total_value: float) -> str:
    # The "or" on medium is deliberate: small accounts never rank high-risk
    if performance_score >= 90 and total_value < 50_000:
        return "low"
    if performance_score >= 75 or total_value < 100_000:
        return "medium"
    return "high"


def build_supplier_scorecard(shipments: List[Dict], now: Optional[datetime] = None) -> List[Dict]:
    """One row per supplier, best performance score first"""
    now = now or utc_now()
    groups: Dict[str, List[Dict]] = {}
    for s in shipments:
        groups.setdefault(r.supplier_of(s, "Unknown Supplier"), []).append(s)

    rows = []
    for supplier, supplier_shipments in groups.items():
        total = len(supplier_shipments)
        on_time_rate = round_half_up(100 * sum(1 for s in supplier_shipments if r.arrived_on_time(s)) / total)
        accuracy = round_half_up(100 * sum(1 for s in supplier_shipments if r.is_accurate(s)) / total)
        score = round_half_up(0.6 * on_time_rate + 0.4 * accuracy)
        total_value = sum(
            (r.unit_cost(s) or r.DEFAULT_SLA_UNIT_COST) * r.received_qty(s) for s in supplier_shipments
        )

        recent = [s for s in supplier_shipments if _is_recent(s, now)]
        recent_rate = (
            100 * sum(1 for s in recent if r.arrived_on_time(s)) / len(recent) if recent else on_time_rate
        )

        rows.append({
            "supplier": supplier,
            "totalShipments": total,
            "totalValue": round_half_up(total_value),
            "onTimeRate": on_time_rate,
            "slaCompliance": on_time_rate,
            "quantityAccuracy": accuracy,
            "performanceScore": score,
            "trend": supplier_trend(recent_rate, on_time_rate),
            "riskProfile": supplier_risk_profile(score, total_value),
        })

    rows.sort(key=lambda row: -row["performanceScore"])
    return rows


# ────────────────────────────────────────────
# ABC / VELOCITY
# ────────────────────────────────────────────


def classify_velocity(total_value: float, quantity: float) -> str:
    if total_value > 1000 and quantity > 20:
        return "fast"
    if total_value > 500 or quantity > 10:
        return "medium"
    return "slow"


def classify_abc(items: List[Dict], value_key: str = "total_value") -> List[Dict]:
    """
    Pareto classification by value.

    Items are walked in descending value; an item whose cumulative share is
    at most 80% is A, at most 95% is B, anything after that is C. Returns
    copies in descending-value order with ``abcCategory`` set.
    """
    ordered = sorted(items, key=lambda item: -(item.get(value_key) or 0))
    portfolio = sum(item.get(value_key) or 0 for item in ordered)

    classified = []
    cumulative = 0.0
    for item in ordered:
        cumulative += item.get(value_key) or 0
        share = 100 * cumulative / portfolio if portfolio > 0 else None
        if share is not None and share <= ABC_A_CUTOFF:
            category = "A"
        elif share is not None and share <= ABC_B_CUTOFF:
            category = "B"
        else:
            category = "C"
        classified.append({**item, "abcCategory": category})
    return classified


def build_sku_performance(items: List[Dict]) -> Dict:
    """ABC + velocity summary over enhanced inventory items"""
    if not items:
        return {
            "topPerformers": [],
            "bottomPerformers": [],
            "velocityBreakdown": {"fast": 0, "medium": 0, "slow": 0},
            "abcBreakdown": {"A": 0, "B": 0, "C": 0},
            "totalPortfolioValue": 0,
            "avgMargin": 0,
        }

    portfolio = sum(item.get("total_value") or 0 for item in items)
    metrics = []
    for item in items:
        value = item.get("total_value") or 0
        cost = item.get("unit_cost") or 0
        # Selling price assumed at a 40% markup over cost
        margin = safe_divide(cost * 1.4 - cost, cost * 1.4) * 100 if cost > 0 else 0
        metrics.append({
            "sku": item.get("sku"),
            "product_name": item.get("product_name"),
            "total_value": value,
            "quantity": item.get("on_hand") or 0,
            "unitCost": cost,
            "velocity": classify_velocity(value, item.get("on_hand") or 0),
            "revenueContribution": round_half_up(safe_divide(value, portfolio) * 100, 2),
            "profitMargin": round_half_up(margin, 1),
            "daysInInventory": item.get("days_since_created") or 0,
            "status": item.get("status"),
        })

    classified = classify_abc(metrics)
    velocity = {"fast": 0, "medium": 0, "slow": 0}
    abc = {"A": 0, "B": 0, "C": 0}
    for sku in classified:
        velocity[sku["velocity"]] += 1
        abc[sku["abcCategory"]] += 1

    bottom = sorted((sku for sku in classified if sku["total_value"] > 0), key=lambda sku: sku["total_value"])

    return {
        "topPerformers": classified[:5],
        "bottomPerformers": bottom[:5],
        "velocityBreakdown": velocity,
        "abcBreakdown": abc,
        "totalPortfolioValue": round_half_up(portfolio),
        "avgMargin": round_half_up(mean(sku["profitMargin"] for sku in classified) or 0, 1),
    }
