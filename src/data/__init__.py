"""
Price data adapters for the PriceFeed port.

No dependency from order_core back to data.
"""

from data.price_feed import CsvPriceFeed, StaticPriceFeed

__all__ = [
    "CsvPriceFeed",
    "StaticPriceFeed",
]
