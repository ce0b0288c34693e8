"""
PURPOSE: Market data adapters and the live price feed.
"""

from tvscanner.market.provider import MarketDataProvider, YahooMarketData
from tvscanner.market.price_feed import MovingAverageCache, PriceFeed

__all__ = ["MarketDataProvider", "MovingAverageCache", "PriceFeed", "YahooMarketData"]
