"""
PURPOSE: Live price and intraday MA20 feed for the alert table.

Every tick, for each ticker currently in the alert table:
    - Price, DayMid (session low/high midpoint) and WeeklyMid (52-week
      low/high midpoint) from the provider's quote summary
    - MA20 of the 5m, 15m and 60m closes, each cached for its own TTL
The whole mapping is broadcast as priceUpdate. A tick with no tickers
broadcasts nothing.

CALLED BY:
    - tvscanner/pivots/scheduler.py (TickScheduler, every PRICE_FEED_INTERVAL_MS)
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

from tvscanner.config.constants import EventType
from tvscanner.events.bus import EventBus
from tvscanner.market.provider import MarketDataProvider
from tvscanner.pivots.levels import latest_sma, prior_day_midpoint
from tvscanner.utils.logger import get_logger
from tvscanner.utils.time_utils import now_ms

logger = get_logger(__name__)

# Interval -> how long a computed MA20 stays fresh (ms)
MA20_TTL_MS = {
    "5m": 60 * 1000,
    "15m": 2 * 60 * 1000,
    "60m": 5 * 60 * 1000,
}

# Interval -> priceUpdate field
MA20_FIELDS = {
    "5m": "MA20_5m",
    "15m": "MA20_15m",
    "60m": "MA20_1h",
}


class MovingAverageCache:
    """
    Per (ticker, interval) MA20 values with a per-interval TTL.

    A cached None is a valid entry: too few bars is remembered as well.
    """

    def __init__(self, ttl_ms: Optional[Dict[str, int]] = None, clock: Callable[[], int] = now_ms) -> None:
        self.ttl_ms = dict(ttl_ms or MA20_TTL_MS)
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[Optional[float], int]] = {}

    def get(self, ticker: str, interval: str) -> Tuple[bool, Optional[float]]:
        """Return (fresh, value) for the cached entry."""
        entry = self._entries.get((ticker, interval))
        if entry is None:
            return False, None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_ms.get(interval, 0):
            return False, None
        return True, value

    def put(self, ticker: str, interval: str, value: Optional[float]) -> None:
        self._entries[(ticker, interval)] = (value, self._clock())

    def __len__(self) -> int:
        return len(self._entries)


class PriceFeed:
    """
    PURPOSE: Build and broadcast the priceUpdate mapping.

    Attributes:
        provider: Market data source.
        cache: MA20 cache shared across ticks.
        _bus: EventBus for the priceUpdate broadcast.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        bus: EventBus,
        cache: Optional[MovingAverageCache] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache or MovingAverageCache()
        self._bus = bus

    async def tick(self, tickers: List[str]) -> Dict[str, dict]:
        """
        PURPOSE: Fetch every ticker's prices and broadcast them.

        Never raises; a failure is logged and nothing is broadcast.

        CALLED BY: TickScheduler

        Returns:
            dict: {ticker: {Price, DayMid, WeeklyMid, MA20_5m, MA20_15m, MA20_1h}}
        """
        unique = list(dict.fromkeys(t for t in tickers if t))
        if not unique:
            return {}
        try:
            entries = await asyncio.gather(*(self.ticker_data(t) for t in unique))
            updates = dict(zip(unique, entries))
            await self._bus.publish(EventType.PRICE_UPDATE.value, updates, source="price_feed")
            logger.debug("price_feed_tick_complete", tickers=len(updates))
            return updates
        except Exception as e:
            logger.error(
                "price_feed_tick_failed",
                error=str(e),
                exception_type=type(e).__name__,
            )
            return {}

    async def ticker_data(self, ticker: str) -> dict:
        """Return one ticker's priceUpdate entry; missing values are None."""
        summary, *averages = await asyncio.gather(
            self._fetch_summary(ticker),
            *(self.moving_average(ticker, interval) for interval in MA20_FIELDS),
        )
        entry = {
            "Price": summary.get("price"),
            "DayMid": prior_day_midpoint(summary.get("day_high"), summary.get("day_low")),
            "WeeklyMid": prior_day_midpoint(summary.get("year_high"), summary.get("year_low")),
        }
        entry.update(zip(MA20_FIELDS.values(), averages))
        return entry

    async def moving_average(self, ticker: str, interval: str) -> Optional[float]:
        """
        PURPOSE: MA20 of the interval's closes, rounded to 2 decimals.

        Served from the cache while fresh. Provider failures return None and
        are not cached, so the next tick retries.
        """
        fresh, value = self.cache.get(ticker, interval)
        if fresh:
            return value
        try:
            closes = await self.provider.get_intraday_closes(ticker, interval)
        except Exception as e:
            logger.warning("price_feed_ma20_failed", ticker=ticker, interval=interval, error=str(e))
            return None
        average = latest_sma(closes if isinstance(closes, list) else [], 20)
        value = round(average, 2) if average is not None else None
        self.cache.put(ticker, interval, value)
        return value

    async def _fetch_summary(self, ticker: str) -> dict:
        try:
            summary = await self.provider.get_quote_summary(ticker)
        except Exception as e:
            logger.warning("price_feed_summary_failed", ticker=ticker, error=str(e))
            return {}
        return summary if isinstance(summary, dict) else {}
