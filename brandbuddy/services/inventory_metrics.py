"""
Inventory analytics over the products feed.

Builds the inventory page: KPIs, enhanced item table, brand and
supplier rollups, ABC/velocity summary and KPI card context.
"""
from datetime import datetime
from typing import Dict, List, Optional
import math

from brandbuddy.services import records as r
from brandbuddy.services.kpi_intelligence import calculate_smart_percentage
from brandbuddy.services.risk_engine import build_sku_performance
from brandbuddy.utils.helpers import days_between, parse_datetime, round_half_up, safe_divide, utc_now

LOW_STOCK_THRESHOLD = 10
OVERSTOCK_THRESHOLD = 100
COMMITTED_SHARE = 0.1
INVENTORY_ITEM_LIMIT = 500
SUPPLIER_ANALYSIS_LIMIT = 15


def is_low_stock(product: Dict) -> bool:
    return r.is_active(product) and 0 < r.on_hand(product) < LOW_STOCK_THRESHOLD


def calculate_inventory_kpis(products: List[Dict]) -> Dict:
    return {
        "totalActiveSKUs": sum(1 for p in products if r.is_active(p)),
        "totalInventoryValue": round_half_up(sum(r.inventory_value(p) for p in products)),
        "lowStockAlerts": sum(1 for p in products if is_low_stock(p)),
        "inactiveSKUs": sum(1 for p in products if not r.is_active(p)),
        # Legacy counts kept for older KPI cards
        "totalSKUs": len(products),
        "inStockCount": sum(1 for p in products if r.on_hand(p) > 0),
        "unfulfillableCount": sum(1 for p in products if r.on_hand(p) == 0),
        "overstockedCount": sum(1 for p in products if r.on_hand(p) > OVERSTOCK_THRESHOLD),
        "avgDaysOnHand": None,
    }


def empty_inventory_kpis() -> Dict:
    return calculate_inventory_kpis([])


def enhance_inventory_item(product: Dict, now: datetime) -> Dict:
    quantity = r.on_hand(product)
    committed = math.floor(quantity * COMMITTED_SHARE)
    created = parse_datetime(product.get("created_date"))
    return {
        "sku": product.get("product_sku") or product.get("product_id"),
        "product_name": product.get("product_name"),
        "brand_name": product.get("brand_name"),
        "on_hand": quantity,
        "committed": committed,
        "available": max(0, quantity - committed),
        "unit_cost": r.unit_cost(product) or 0,
        "total_value": round_half_up(r.inventory_value(product)),
        "supplier": product.get("supplier_name"),
        "country_of_origin": product.get("country_of_origin") or "Unknown",
        "status": r.product_status(product),
        "active": r.is_active(product),
        "days_since_created": math.floor(days_between(created, now)) if created else None,
        "warehouse_id": None,
        "last_updated": product.get("updated_date"),
    }


def enhance_inventory_items(products: List[Dict], now: Optional[datetime] = None) -> List[Dict]:
    """Table rows, most valuable first, capped at 500"""
    now = now or utc_now()
    items = [enhance_inventory_item(p, now) for p in products]
    items.sort(key=lambda item: -item["total_value"])
    return items[:INVENTORY_ITEM_LIMIT]


def calculate_brand_performance(products: List[Dict]) -> List[Dict]:
    brands: Dict[str, Dict[str, float]] = {}
    for p in products:
        data = brands.setdefault(p.get("brand_name") or "Unknown", {"skus": 0, "value": 0.0, "quantity": 0})
        data["skus"] += 1
        data["value"] += r.inventory_value(p)
        data["quantity"] += r.on_hand(p)

    portfolio = sum(data["value"] for data in brands.values())
    rows = [
        {
            "brand_name": brand,
            "sku_count": data["skus"],
            "total_value": round_half_up(data["value"]),
            "total_quantity": data["quantity"],
            "avg_value_per_sku": round_half_up(data["value"] / data["skus"]),
            "portfolio_percentage": round_half_up(100 * data["value"] / portfolio) if portfolio > 0 else 0,
            "efficiency_score": round_half_up((data["value"] / data["skus"]) * (data["quantity"] / data["skus"])),
        }
        for brand, data in brands.items()
    ]
    rows.sort(key=lambda row: -row["total_value"])
    return rows


def calculate_supplier_analysis(products: List[Dict]) -> List[Dict]:
    suppliers: Dict[str, Dict] = {}
    for p in products:
        data = suppliers.setdefault(
            p.get("supplier_name") or "Unknown Supplier",
            {"skus": 0, "value": 0.0, "countries": []}
        )
        data["skus"] += 1
        data["value"] += r.inventory_value(p)
        country = p.get("country_of_origin")
        if country and country not in data["countries"]:
            data["countries"].append(country)

    portfolio = sum(r.inventory_value(p) for p in products)
    rows = [
        {
            "supplier_name": supplier,
            "sku_count": data["skus"],
            "total_value": round_half_up(data["value"]),
            "countries": data["countries"],
            "concentration_risk": round_half_up(100 * safe_divide(data["value"], portfolio)),
        }
        for supplier, data in suppliers.items()
    ]
    rows.sort(key=lambda row: -row["total_value"])
    return rows[:SUPPLIER_ANALYSIS_LIMIT]


def build_inventory_kpi_context(products: List[Dict], kpis: Dict) -> Dict:
    """Percentage / context / description strings for the four KPI cards"""
    total = len(products)
    active = kpis["totalActiveSKUs"]
    avg_value = safe_divide(kpis["totalInventoryValue"], active)
    reorder_value = sum(
        max(0, 20 - r.on_hand(p)) * (r.unit_cost(p) or 0) for p in products if is_low_stock(p)
    )

    def pct(numerator: int, denominator: int) -> Optional[str]:
        return f"{100 * numerator / denominator:.1f}%" if denominator > 0 else None

    return {
        "totalActiveSKUs": {
            "percentage": pct(active, total),
            "context": f"{active} active from {total} total catalog",
            "description": (
                f"Products available for sale ({pct(active, total)} activation rate)" if total
                else "Products available for sale"
            ),
        },
        "totalInventoryValue": {
            "percentage": f"${round_half_up(avg_value):,}" if avg_value > 0 else None,
            "context": f"${kpis['totalInventoryValue']:,} total portfolio across {active} active SKUs",
            "description": (
                f"Total portfolio investment (${round_half_up(avg_value):,} avg per SKU)" if avg_value > 0
                else "Total portfolio investment"
            ),
        },
        "lowStockAlerts": {
            "percentage": pct(kpis["lowStockAlerts"], active),
            "context": f"{kpis['lowStockAlerts']} items need reorder - ${round_half_up(reorder_value):,} reorder value",
            "description": (
                f"SKUs requiring replenishment ({calculate_smart_percentage(kpis['lowStockAlerts'], active, 'products')})"
                if active else "SKUs requiring replenishment"
            ),
        },
        "inactiveSKUs": {
            "percentage": pct(kpis["inactiveSKUs"], total),
            "context": f"{kpis['inactiveSKUs']} inactive items from {total} total catalog",
            "description": (
                f"Products requiring review ({calculate_smart_percentage(kpis['inactiveSKUs'], total, 'catalog')})"
                if total else "Products requiring review"
            ),
        },
    }


def build_inventory_bundle(products: List[Dict], now: Optional[datetime] = None) -> Dict:
    kpis = calculate_inventory_kpis(products)
    inventory = enhance_inventory_items(products, now=now)
    return {
        "kpis": kpis,
        "kpiContext": build_inventory_kpi_context(products, kpis),
        "inventory": inventory,
        "brandPerformance": calculate_brand_performance(products),
        "supplierAnalysis": calculate_supplier_analysis(products),
        "skuPerformance": build_sku_performance(inventory),
    }
