"""
Sales history connector.

Optional feed of monthly sales rows per SKU (``month``, ``units_sold``,
``revenue``) used only by the per-item explainers.
"""
from typing import Any, Dict, Optional

from brandbuddy.connectors.base_connector import FeedConnector
from brandbuddy.config import get_settings

settings = get_settings()


class SalesHistoryConnector(FeedConnector):
    """Connector for the orders/sales-history view (ORDERS_* configuration set)"""

    ENV_NAMES = ("ORDERS_BASE_URL", "ORDERS_TOKEN")

    def __init__(self):
        super().__init__(
            "sales_history",
            settings.orders_base_url,
            settings.orders_token,
            cache_seconds=settings.feed_cache_seconds
        )

    def build_params(
        self,
        sku: str = "",
        brand_name: Optional[str] = None,
        limit: int = 20,
        **kwargs
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"sku": sku, "limit": limit}
        if brand_name:
            params["brand_name"] = brand_name
        return params
