"""
PURPOSE: Pivot/CPR snapshot engine for TV Scanner.

On every tick, for each tracked ticker:
    1. Fetch daily bars and the live quote concurrently.
    2. Compute P/BC/TC from the previous session (second-to-last daily bar)
       and the session before it (third-to-last bar).
    3. Classify price vs. pivot and trend, compare today's CPR with the
       previous one, compute the prior-day midpoint.
    4. Assemble a PivotSnapshot.
The full snapshot array is broadcast as pivotUpdate.

A failing fetch or malformed provider payload only blanks the fields of the
ticker concerned; a failing tick is logged and the schedule carries on.

CALLED BY:
    - tvscanner/pivots/scheduler.py
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tvscanner.config.constants import DEVELOPING, UNKNOWN, EventType
from tvscanner.events.bus import EventBus
from tvscanner.market.provider import MarketDataProvider
from tvscanner.pivots.levels import (
    CPR_TOLERANCE,
    RELATIONSHIP_TOLERANCE,
    TREND_TOLERANCE,
    CprWidthHistory,
    build_level_suite,
    classify_relationship,
    classify_trend,
    classify_trend_by_rules,
    compute_pivot_levels,
    cpr_relationship,
    format_level_text,
    is_number,
    latest_sma,
    prior_day_midpoint,
)
from tvscanner.utils.logger import get_logger
from tvscanner.utils.time_utils import utc_now_iso

logger = get_logger(__name__)

Session = Tuple[Any, Any, Any]


class PivotSnapshot(BaseModel):
    """
    One ticker's pivot analytics for a single tick (never persisted).

    Serialized with camelCase keys for the dashboard.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: str
    ticker: str
    relationship: str
    trend: str
    mid_point: Optional[float] = None
    open_price: Optional[float] = None
    current_price: Optional[float] = None
    levels: Optional[Dict[str, float]] = None
    pivot_levels_text: str = ""
    cpr_relationship: str = UNKNOWN
    cpr_trend: str = DEVELOPING
    cpr_width: Optional[float] = None
    cpr_class: str = "normal"

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class PivotEngine:
    """
    PURPOSE: Compute and broadcast pivot snapshots for a ticker set.

    Attributes:
        provider: Market data source.
        rel_tol: Band around P reported as "Near Pivot".
        trend_tol: Band around MA20 reported as "At MA20", and around BC / TC
            in the two-day CPR trend rules.
        cpr_tol: Band within which two CPR levels count as equal.
        use_ma20: Fetch 5-minute closes and classify trend against MA20.
            Off by default, in which case trend compares price against P.
        _bus: EventBus for the pivotUpdate broadcast.
        _widths: CPR width history per ticker.
        _latest: Snapshot array from the most recent completed tick.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        bus: EventBus,
        rel_tol: float = RELATIONSHIP_TOLERANCE,
        trend_tol: float = TREND_TOLERANCE,
        cpr_tol: float = CPR_TOLERANCE,
        use_ma20: bool = False,
    ) -> None:
        self.provider = provider
        self.rel_tol = rel_tol
        self.trend_tol = trend_tol
        self.cpr_tol = cpr_tol
        self.use_ma20 = use_ma20
        self._bus = bus
        self._widths = CprWidthHistory()
        self._latest: List[dict] = []
        self._tick_count = 0

    def latest(self) -> List[dict]:
        """Return the snapshot array of the last completed tick."""
        return list(self._latest)

    async def tick(self, tickers: List[str]) -> List[dict]:
        """
        PURPOSE: Run one full pivot update and broadcast it.

        Never raises; a failure is logged and the previous snapshots are kept.

        CALLED BY: TickScheduler

        Returns:
            list[dict]: Snapshots broadcast in this tick ([] on failure).
        """
        self._tick_count += 1
        tick_id = self._tick_count
        try:
            snapshots = await self.build_snapshots(tickers)
            rows = [s.to_wire() for s in snapshots]
            self._latest = rows
            await self._bus.publish(EventType.PIVOT_UPDATE.value, rows, source="pivot_engine")
            logger.info("pivot_tick_complete", tick=tick_id, tickers=len(rows))
            return rows
        except Exception as e:
            logger.error(
                "pivot_tick_failed",
                tick=tick_id,
                error=str(e),
                exception_type=type(e).__name__,
            )
            return []

    async def build_snapshots(self, tickers: List[str]) -> List[PivotSnapshot]:
        """
        PURPOSE: Build one snapshot per ticker, processing tickers concurrently.

        A ticker whose snapshot cannot be built gets an all-Unknown snapshot;
        its siblings are unaffected.

        Returns:
            list[PivotSnapshot]: In the same order as tickers.
        """
        timestamp = utc_now_iso()
        results = await asyncio.gather(
            *(self.build_snapshot(t, timestamp) for t in tickers),
            return_exceptions=True,
        )

        snapshots = []
        for ticker, result in zip(tickers, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(
                    "pivot_snapshot_failed",
                    ticker=ticker,
                    error=str(result),
                    exception_type=type(result).__name__,
                )
                result = PivotSnapshot(
                    timestamp=timestamp, ticker=ticker, relationship=UNKNOWN, trend=UNKNOWN
                )
            snapshots.append(result)
        return snapshots

    async def build_snapshot(self, ticker: str, timestamp: Optional[str] = None) -> PivotSnapshot:
        """
        PURPOSE: Fetch market data for one ticker and classify it.

        Args:
            ticker: Symbol to process.
            timestamp: Shared tick timestamp (defaults to now).
        """
        sessions, quote, ma20 = await asyncio.gather(
            self._fetch_sessions(ticker),
            self._fetch_quote(ticker),
            self._fetch_ma20(ticker),
        )

        previous, before_previous = sessions
        high, low, close = previous or (None, None, None)
        price = quote["price"]
        levels = compute_pivot_levels(high, low, close)
        prior_levels = compute_pivot_levels(*before_previous) if before_previous else None
        pivot = levels.P if levels else None

        cpr_width = None
        cpr_class = "normal"
        if levels is not None:
            cpr_width = round(levels.width, 2)
            history = self._widths.record(ticker, (high, low, close), cpr_width)
            cpr_class = self._widths.classify(history, cpr_width)

        suite = build_level_suite(high, low, close)
        versus_previous = cpr_relationship(levels, prior_levels, self.cpr_tol)

        return PivotSnapshot(
            timestamp=timestamp or utc_now_iso(),
            ticker=ticker,
            relationship=classify_relationship(price, pivot, self.rel_tol),
            trend=classify_trend(price, pivot, ma20, self.trend_tol),
            mid_point=prior_day_midpoint(high, low),
            open_price=quote["open"],
            current_price=price,
            levels=suite,
            pivot_levels_text=format_level_text(suite),
            cpr_relationship=versus_previous,
            cpr_trend=classify_trend_by_rules(versus_previous, price, levels, self.trend_tol),
            cpr_width=cpr_width,
            cpr_class=cpr_class,
        )

    # ════════════════════════════════════════════════════════════════
    # Provider calls (failures isolated per ticker)
    # ════════════════════════════════════════════════════════════════

    async def _fetch_sessions(self, ticker: str) -> Tuple[Optional[Session], Optional[Session]]:
        """Return (previous session, the session before it) as H/L/C tuples."""
        try:
            bars = await self.provider.get_daily_bars(ticker)
        except Exception as e:
            logger.warning("pivot_daily_bars_failed", ticker=ticker, error=str(e))
            return None, None
        if not isinstance(bars, list) or len(bars) < 2:
            logger.debug("pivot_daily_bars_insufficient", ticker=ticker)
            return None, None
        before_previous = _session(bars[-3]) if len(bars) >= 3 else None
        return _session(bars[-2]), before_previous

    async def _fetch_quote(self, ticker: str) -> Dict[str, Any]:
        try:
            quote = await self.provider.get_live_quote(ticker)
        except Exception as e:
            logger.warning("pivot_live_quote_failed", ticker=ticker, error=str(e))
            return {"price": None, "open": None}
        if not isinstance(quote, dict):
            logger.warning("pivot_live_quote_malformed", ticker=ticker, type=type(quote).__name__)
            quote = {}
        return {
            "price": quote.get("price") if is_number(quote.get("price")) else None,
            "open": quote.get("open") if is_number(quote.get("open")) else None,
        }

    async def _fetch_ma20(self, ticker: str) -> Optional[float]:
        if not self.use_ma20:
            return None
        try:
            closes = await self.provider.get_intraday_closes(ticker, "5m")
        except Exception as e:
            logger.warning("pivot_ma20_failed", ticker=ticker, error=str(e))
            return None
        return latest_sma(closes or [], 20)


def _session(bar: Any) -> Optional[Session]:
    """H/L/C of a daily bar, None when the bar is not a mapping."""
    if not isinstance(bar, dict):
        return None
    return bar.get("high"), bar.get("low"), bar.get("close")
