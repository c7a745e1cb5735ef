"""
Feed service: parallel fetch of both feeds plus the tenant brand filter
"""
from typing import Dict, List, Optional, Tuple
import asyncio

import aiohttp

from brandbuddy.config import get_settings
from brandbuddy.connectors import ProductsConnector, ShipmentsConnector, ConfigurationError
from brandbuddy.utils.logger import log

settings = get_settings()


def filter_by_brand(records: List[Dict], brand: str) -> List[Dict]:
    """
    Keep only records whose brand_name equals the tenant brand.

    Upstream filtering by query parameter is best-effort, so this runs on
    every fetch. It is idempotent.
    """
    return [record for record in records if record.get("brand_name") == brand]


async def fetch_feeds(
    limit: Optional[int] = None,
    brand: Optional[str] = None
) -> Tuple[List[Dict], List[Dict]]:
    """
    Fetch products and shipments in parallel and apply the brand filter.

    Returns:
        (products, shipments), both filtered to the tenant brand

    Raises:
        ConfigurationError: either feed is missing its URL or token
        FeedError: either feed failed
    """
    brand = brand or settings.tenant_brand
    limit = limit or settings.page_feed_limit

    products_connector = ProductsConnector()
    shipments_connector = ShipmentsConnector()

    # Both configurations are checked before any request goes out
    products_connector.require_configuration()
    shipments_connector.require_configuration()

    async with aiohttp.ClientSession() as session:
        results = await asyncio.gather(
            products_connector.fetch_records(session, limit=limit, brand_name=brand),
            shipments_connector.fetch_records(session, limit=limit, brand_name=brand),
            return_exceptions=True
        )

    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        config_errors = [e for e in errors if isinstance(e, ConfigurationError)]
        raise config_errors[0] if config_errors else errors[0]

    all_products, all_shipments = results
    products = filter_by_brand(all_products, brand)
    shipments = filter_by_brand(all_shipments, brand)

    log.info(
        f"Data filtered for {brand}: {len(products)}/{len(all_products)} products, "
        f"{len(shipments)}/{len(all_shipments)} shipments"
    )
    return products, shipments
