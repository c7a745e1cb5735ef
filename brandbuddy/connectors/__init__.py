"""Upstream feed connectors for BrandBuddy"""

from brandbuddy.connectors.base_connector import ConfigurationError, FeedConnector, FeedError
from brandbuddy.connectors.products_connector import ProductsConnector
from brandbuddy.connectors.shipments_connector import ShipmentsConnector
from brandbuddy.connectors.sales_history_connector import SalesHistoryConnector

__all__ = [
    "ConfigurationError",
    "FeedConnector",
    "FeedError",
    "ProductsConnector",
    "ShipmentsConnector",
    "SalesHistoryConnector"
]
