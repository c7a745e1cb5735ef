"""
Inbound shipments feed connector
"""
from typing import Any, Dict, Optional

from brandbuddy.connectors.base_connector import FeedConnector
from brandbuddy.config import get_settings

settings = get_settings()


class ShipmentsConnector(FeedConnector):
    """Connector for the warehouse shipments feed (WAREHOUSE_* configuration set)"""

    ENV_NAMES = ("WAREHOUSE_BASE_URL", "WAREHOUSE_TOKEN")

    def __init__(self):
        super().__init__(
            "shipments",
            settings.warehouse_base_url,
            settings.warehouse_token,
            cache_seconds=settings.feed_cache_seconds
        )

    def build_params(self, limit: int = 1000, brand_name: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": limit}
        if brand_name:
            params["brand_name"] = brand_name
        return params
