"""
Market Data Provider

PURPOSE: Supply daily bars, live quotes and intraday closes to the pivot
engine and the live price feed.

The engine only depends on the MarketDataProvider protocol. YahooMarketData
is the production implementation on top of yfinance; its blocking calls run
in a worker thread so they never stall the event loop.

CALLED BY:
    - tvscanner/pivots/engine.py
    - tvscanner/market/price_feed.py
"""

import asyncio
import math
from datetime import timedelta
from typing import Dict, List, Optional, Protocol

import pandas as pd
import yfinance as yf

from tvscanner.core.errors import ProviderError
from tvscanner.utils.logger import get_logger

logger = get_logger("market.provider")

# Daily lookback, enough to always cover the previous session
DAILY_LOOKBACK = "1mo"

# Intraday lookback per interval so at least 20 bars are available
INTRADAY_LOOKBACK = {
    "5m": timedelta(days=5),
    "15m": timedelta(days=30),
    "60m": timedelta(days=90),
}


class MarketDataProvider(Protocol):
    """Interface the pivot engine and price feed need from a market data source."""

    async def get_daily_bars(self, ticker: str) -> List[Dict[str, float]]:
        """Return daily bars oldest-first as [{high, low, close}, ...]."""
        ...

    async def get_live_quote(self, ticker: str) -> Dict[str, Optional[float]]:
        """Return {price, open} for the current session."""
        ...

    async def get_intraday_closes(self, ticker: str, interval: str = "5m") -> List[float]:
        """Return intraday closes oldest-first."""
        ...

    async def get_quote_summary(self, ticker: str) -> Dict[str, Optional[float]]:
        """Return {price, day_low, day_high, year_low, year_high}."""
        ...


def _finite_or_none(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _round2(value) -> Optional[float]:
    number = _finite_or_none(value)
    return round(number, 2) if number is not None else None


class YahooMarketData:
    """
    PURPOSE: yfinance-backed MarketDataProvider.

    Every failure is re-raised as ProviderError so the engine can isolate it
    to the ticker concerned.
    """

    async def get_daily_bars(self, ticker: str) -> List[Dict[str, float]]:
        """
        PURPOSE: Fetch roughly one month of daily OHLC bars.

        The last bar may be the in-progress session.

        Raises:
            ProviderError: yfinance failed or returned an unusable frame.
        """
        try:
            frame = await asyncio.to_thread(self._history, ticker)
        except Exception as e:
            raise ProviderError(ticker, "daily_bars", e) from e
        return self._frame_to_bars(frame)

    async def get_live_quote(self, ticker: str) -> Dict[str, Optional[float]]:
        """
        PURPOSE: Fetch the last traded price and session open, rounded to 2 decimals.

        Raises:
            ProviderError: yfinance failed.
        """
        try:
            info = await asyncio.to_thread(lambda: yf.Ticker(ticker).fast_info)
            price = info.last_price
            open_price = info.open
        except Exception as e:
            raise ProviderError(ticker, "live_quote", e) from e
        return {"price": _round2(price), "open": _round2(open_price)}

    async def get_quote_summary(self, ticker: str) -> Dict[str, Optional[float]]:
        """
        PURPOSE: Fetch the last price with the session and 52-week ranges.

        Raises:
            ProviderError: yfinance failed.
        """
        try:
            info = await asyncio.to_thread(lambda: yf.Ticker(ticker).fast_info)
            summary = {
                "price": info.last_price,
                "day_low": info.day_low,
                "day_high": info.day_high,
                "year_low": info.year_low,
                "year_high": info.year_high,
            }
        except Exception as e:
            raise ProviderError(ticker, "quote_summary", e) from e
        return {key: _round2(value) for key, value in summary.items()}

    async def get_intraday_closes(self, ticker: str, interval: str = "5m") -> List[float]:
        """
        PURPOSE: Fetch intraday closes for moving-average inputs.

        Raises:
            ProviderError: yfinance failed or interval is unsupported.
        """
        lookback = INTRADAY_LOOKBACK.get(interval)
        if lookback is None:
            raise ProviderError(ticker, "intraday_closes", ValueError(f"unsupported interval {interval}"))
        try:
            frame = await asyncio.to_thread(
                lambda: yf.Ticker(ticker).history(
                    period=f"{lookback.days}d", interval=interval, prepost=False
                )
            )
        except Exception as e:
            raise ProviderError(ticker, "intraday_closes", e) from e
        if frame is None or frame.empty or "Close" not in frame:
            return []
        return [float(c) for c in frame["Close"].dropna().tolist()]

    @staticmethod
    def _history(ticker: str) -> pd.DataFrame:
        return yf.Ticker(ticker).history(period=DAILY_LOOKBACK, interval="1d", auto_adjust=False)

    @staticmethod
    def _frame_to_bars(frame: Optional[pd.DataFrame]) -> List[Dict[str, float]]:
        if frame is None or frame.empty:
            return []
        missing = {"High", "Low", "Close"} - set(frame.columns)
        if missing:
            logger.warning("daily_frame_missing_columns", missing=sorted(missing))
            return []
        return [
            {"high": float(high), "low": float(low), "close": float(close)}
            for high, low, close in frame[["High", "Low", "Close"]].itertuples(index=False)
        ]
