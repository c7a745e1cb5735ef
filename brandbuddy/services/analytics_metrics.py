"""
Analytics page metrics: growth, fulfillment and inventory health, plus
brand rankings and the rule insights used when the LLM is unavailable.
"""
from datetime import datetime
from typing import Dict, List, Optional
import math

from brandbuddy.services import records as r
from brandbuddy.utils.helpers import iso_timestamp, round_half_up, utc_now

RECENT_WINDOW_DAYS = 30
OLDER_WINDOW_DAYS = 60

DECLINING_GROWTH_THRESHOLD = -10
LOW_EFFICIENCY_THRESHOLD = 80
DIVERSIFIED_BRAND_COUNT = 5


def _pct(numerator: float, denominator: float, ndigits: int = 1) -> float:
    if denominator <= 0:
        return 0
    return round_half_up(100 * numerator / denominator, ndigits)


def is_fulfilled(shipment: Dict) -> bool:
    return r.is_accurate(shipment) and not r.is_cancelled(shipment)


def split_growth_windows(shipments: List[Dict], now: datetime):
    """(recent, older): created within 30 days, and 30 to 60 days ago"""
    recent, older = [], []
    for s in shipments:
        age = r.created_days_ago(s, now)
        if age is None:
            continue
        if age <= RECENT_WINDOW_DAYS:
            recent.append(s)
        elif age <= OLDER_WINDOW_DAYS:
            older.append(s)
    return recent, older


def order_volume_growth(shipments: List[Dict], now: datetime) -> float:
    recent, older = split_growth_windows(shipments, now)
    if not older:
        return 0
    return round_half_up(100 * (len(recent) - len(older)) / len(older), 1)


def calculate_analytics_kpis(products: List[Dict], shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    total = len(shipments)
    return {
        "orderVolumeGrowth": order_volume_growth(shipments, now),
        "returnRate": _pct(sum(1 for s in shipments if r.has_discrepancy(s)), total),
        "fulfillmentEfficiency": _pct(sum(1 for s in shipments if is_fulfilled(s)), total),
        "inventoryHealthScore": _pct(sum(1 for p in products if r.is_active(p)), len(products)),
    }


def calculate_performance_metrics(shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    fulfilled = sum(1 for s in shipments if is_fulfilled(s))
    return {
        "orderVolumeTrend": {
            "growthRate": order_volume_growth(shipments, now),
            "totalOrdersAnalyzed": len(shipments),
        },
        "fulfillmentPerformance": {
            "efficiencyRate": _pct(fulfilled, len(shipments)),
            "onTimeOrders": fulfilled,
        },
    }


def calculate_data_insights(products: List[Dict], shipments: List[Dict]) -> Dict:
    active = sum(1 for p in products if r.is_active(p))
    fulfilled = sum(1 for s in shipments if is_fulfilled(s))
    return {
        "totalDataPoints": len(products) + len(shipments),
        "activeWarehouses": {
            "count": len({s.get("warehouse_id") for s in shipments if s.get("warehouse_id")}),
            "avgSLA": _pct(fulfilled, len(shipments), 0),
        },
        "uniqueBrands": len({p.get("brand_name") for p in products}),
        "inventoryHealth": {
            "percentage": _pct(active, len(products), 0),
            "skusInStock": active,
        },
    }


def calculate_operational_breakdown(products: List[Dict], shipments: List[Dict]) -> Dict:
    fulfilled = sum(1 for s in shipments if is_fulfilled(s))
    quantities = [r.on_hand(p) for p in products]
    return {
        "orderAnalysis": {
            "totalOrders": len(shipments),
            "onTimeOrders": fulfilled,
            "delayedOrders": len(shipments) - fulfilled,
            "onTimeRate": _pct(fulfilled, len(shipments)),
        },
        "inventoryAnalysis": {
            "totalSKUs": len(products),
            "inStock": sum(1 for p in products if r.is_active(p) and r.on_hand(p) > 0),
            "lowStock": sum(1 for p in products if r.is_active(p) and 0 < r.on_hand(p) < 10),
            "outOfStock": sum(1 for p in products if not r.is_active(p) or r.on_hand(p) == 0),
            "avgInventoryLevel": round_half_up(sum(quantities) / len(quantities)) if quantities else 0,
        },
    }


def performance_tier(index: int, total_brands: int) -> str:
    """Tier by zero-based rank position"""
    if index == 0:
        return "Leading Brand"
    if index <= 2:
        return "Top Performer"
    if index <= math.ceil(total_brands * 0.3):
        return "Strong Performer"
    if index <= math.ceil(total_brands * 0.7):
        return "Average Performer"
    return "Developing Brand"


def calculate_brand_rankings(products: List[Dict]) -> Dict:
    counts: Dict[str, int] = {}
    for p in products:
        brand = p.get("brand_name") or "Unknown Brand"
        counts[brand] = counts.get(brand, 0) + 1

    ranked = sorted(counts.items(), key=lambda item: -item[1])
    rankings = [
        {
            "rank": index + 1,
            "brandName": brand,
            "skuCount": sku_count,
            "inventoryPercentage": _pct(sku_count, len(products), 2),
            "performanceLevel": performance_tier(index, len(counts)),
        }
        for index, (brand, sku_count) in enumerate(ranked)
    ]
    top = rankings[0] if rankings else {"brandName": "No Data", "skuCount": 0}
    return {
        "totalBrands": len(counts),
        "topBrand": {"name": top["brandName"], "skuCount": top["skuCount"]},
        "brandRankings": rankings,
    }


def generate_analytics_rule_insights(kpis: Dict, brand_performance: Dict, now: Optional[datetime] = None,
                                     shipment_count: Optional[int] = None) -> List[Dict]:
    """
    Threshold insights for the analytics KPIs.

    With shipment_count == 0 there is no fulfillment to judge, so the
    efficiency rule is skipped rather than reporting 0%.
    """
    created_at = iso_timestamp(now)
    raw = []

    if kpis["orderVolumeGrowth"] < DECLINING_GROWTH_THRESHOLD:
        raw.append((
            "Declining Order Volume",
            f"Order volume has decreased by {abs(kpis['orderVolumeGrowth']):.1f}% compared to previous "
            "period. This trend requires immediate attention to maintain business growth.",
            "warning",
            5000,
        ))
    if shipment_count != 0 and kpis["fulfillmentEfficiency"] < LOW_EFFICIENCY_THRESHOLD:
        raw.append((
            "Low Fulfillment Efficiency",
            f"Fulfillment efficiency at {kpis['fulfillmentEfficiency']:.1f}% is below optimal levels. "
            "Focus on process improvements to reach 90%+ efficiency.",
            "critical",
            10000,
        ))
    if brand_performance["totalBrands"] > DIVERSIFIED_BRAND_COUNT:
        top = brand_performance["topBrand"]
        raw.append((
            "Brand Portfolio Diversification",
            f"Portfolio includes {brand_performance['totalBrands']} brands with {top['name']} leading "
            f"with {top['skuCount']} SKUs. Consider brand consolidation strategies.",
            "info",
            2500,
        ))

    return [
        {
            "id": f"analytics-insight-{index}",
            "title": title,
            "description": description,
            "severity": severity,
            "dollarImpact": impact,
            "suggestedActions": [f"Review {title.lower()}", "Implement optimization strategy"],
            "createdAt": created_at,
            "source": "analytics_agent",
        }
        for index, (title, description, severity, impact) in enumerate(raw, 1)
    ]


def build_analytics_bundle(products: List[Dict], shipments: List[Dict], now: Optional[datetime] = None) -> Dict:
    now = now or utc_now()
    return {
        "kpis": calculate_analytics_kpis(products, shipments, now=now),
        "performanceMetrics": calculate_performance_metrics(shipments, now=now),
        "dataInsights": calculate_data_insights(products, shipments),
        "operationalBreakdown": calculate_operational_breakdown(products, shipments),
        "brandPerformance": calculate_brand_rankings(products),
    }
