"""
Products feed connector (catalog + on-hand inventory)
"""
from typing import Any, Dict, Optional

from brandbuddy.connectors.base_connector import FeedConnector
from brandbuddy.config import get_settings

settings = get_settings()


class ProductsConnector(FeedConnector):
    """Connector for the products feed (TINYBIRD_* configuration set)"""

    ENV_NAMES = ("TINYBIRD_BASE_URL", "TINYBIRD_TOKEN")

    def __init__(self):
        super().__init__(
            "products",
            settings.tinybird_base_url,
            settings.tinybird_token,
            cache_seconds=settings.feed_cache_seconds
        )

    def build_params(self, limit: int = 1000, brand_name: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": limit}
        if brand_name:
            params["brand_name"] = brand_name
        return params
