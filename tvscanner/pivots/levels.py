"""
PURPOSE: Floor-pivot / CPR math and price classification.

    P  = (H + L + C) / 3
    BC = (H + L) / 2
    TC = 2P - BC

All inputs come from the previous trading session. Every function returns
None or "Unknown" instead of raising when an input is missing or not a finite
number.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from tvscanner.config.constants import (
    ABOVE_PIVOT,
    AT_MA20,
    BEARISH_CONTINUATION,
    BEARISH_REVERSAL,
    BELOW_PIVOT,
    BULLISH_CONTINUATION,
    BULLISH_REVERSAL,
    CPR_HIGHER,
    CPR_INNER,
    CPR_LOWER,
    CPR_NO_CHANGE,
    CPR_OUTSIDE,
    CPR_OVERLAP_HIGHER,
    CPR_OVERLAP_LOWER,
    DEVELOPING,
    DOWN_MA20,
    DOWN_PIVOT,
    NEAR_PIVOT,
    UNKNOWN,
    UP_MA20,
    UP_PIVOT,
)

RELATIONSHIP_TOLERANCE = 0.5
TREND_TOLERANCE = 0.05
CPR_TOLERANCE = 0.05
CAMARILLA_FACTOR = 1.1


def is_number(value) -> bool:
    """True for finite int/float values (bools excluded)."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class PivotLevels:
    """Central pivot range for one session."""

    P: float
    BC: float
    TC: float

    @property
    def width(self) -> float:
        """Absolute distance between the central levels."""
        return abs(self.TC - self.BC)


def compute_pivot_levels(high, low, close) -> Optional[PivotLevels]:
    """
    PURPOSE: Compute P/BC/TC from the previous session's high, low and close.

    Returns:
        PivotLevels or None when any input is missing or not finite.

    Examples:
        (150, 100, 110) → P=120, BC=125, TC=115
    """
    if not all(is_number(v) for v in (high, low, close)):
        return None
    pivot = (high + low + close) / 3
    bottom = (high + low) / 2
    top = 2 * pivot - bottom
    return PivotLevels(P=pivot, BC=bottom, TC=top)


def classify_relationship(price, pivot, tolerance: float = RELATIONSHIP_TOLERANCE) -> str:
    """
    PURPOSE: Place the live price relative to P.

    The tolerance band is inclusive: a price exactly tolerance away from P is
    still "Near Pivot".
    """
    if not is_number(price) or not is_number(pivot):
        return UNKNOWN
    diff = price - pivot
    if abs(diff) <= tolerance:
        return NEAR_PIVOT
    return ABOVE_PIVOT if diff > 0 else BELOW_PIVOT


def classify_trend(price, pivot=None, ma20=None, tolerance: float = TREND_TOLERANCE) -> str:
    """
    PURPOSE: Classify trend from the 5-minute MA20, falling back to P.

    Args:
        price: Live price.
        pivot: Session pivot P, used when ma20 is unavailable.
        ma20: 20-period moving average of 5-minute closes, optional.
        tolerance: Band around ma20 reported as "At MA20".
    """
    if not is_number(price):
        return UNKNOWN
    if is_number(ma20):
        diff = price - ma20
        if abs(diff) <= tolerance:
            return AT_MA20
        return UP_MA20 if diff > 0 else DOWN_MA20
    if is_number(pivot):
        return UP_PIVOT if price >= pivot else DOWN_PIVOT
    return UNKNOWN


def prior_day_midpoint(high, low) -> Optional[float]:
    """(H + L) / 2 rounded to 2 decimals, None if either input is missing."""
    if not is_number(high) or not is_number(low):
        return None
    return round((high + low) / 2, 2)


def sma(series: pd.Series, period: int) -> pd.Series:
    """
    PURPOSE: Calculate Simple Moving Average (SMA).

    Args:
        series: Input price series
        period: Number of periods for the moving average

    Returns:
        pd.Series: SMA values (NaN for initial period-1 rows)
    """
    if period < 1:
        raise ValueError("Period must be >= 1")
    return series.rolling(window=period).mean()


def latest_sma(closes: Sequence[float], period: int = 20) -> Optional[float]:
    """Most recent SMA value of closes, None when fewer than period closes are usable."""
    series = pd.Series([v for v in closes if is_number(v)], dtype="float64")
    if len(series) < period:
        return None
    value = sma(series, period).iloc[-1]
    return float(value) if is_number(float(value)) else None


def compute_camarilla(high, low, close, factor: float = CAMARILLA_FACTOR) -> Optional[Dict[str, float]]:
    """Camarilla R3-R5 / S3-S5 levels, None when any input is missing."""
    if not all(is_number(v) for v in (high, low, close)):
        return None
    k = factor * (high - low)
    return {
        "R3": close + k / 4,
        "R4": close + k / 2,
        "R5": close + k,
        "S3": close - k / 4,
        "S4": close - k / 2,
        "S5": close - k,
    }


def build_level_suite(high, low, close) -> Optional[Dict[str, float]]:
    """
    PURPOSE: Rounded CPR, Camarilla and previous high/low levels for display.

    Returns:
        dict with P, BC, TC, R3-R5, S3-S5, prevHigh, prevLow, or None.
    """
    cpr = compute_pivot_levels(high, low, close)
    cam = compute_camarilla(high, low, close)
    if cpr is None or cam is None:
        return None
    suite = {"P": cpr.P, "BC": cpr.BC, "TC": cpr.TC, **cam, "prevHigh": high, "prevLow": low}
    return {name: round(value, 2) for name, value in suite.items()}


LEVEL_TEXT_ORDER = (
    ("R5", "R5"), ("R4", "R4"), ("R3", "R3"),
    ("PrevHigh", "prevHigh"),
    ("TC", "TC"), ("P", "P"), ("BC", "BC"),
    ("PrevLow", "prevLow"),
    ("S3", "S3"), ("S4", "S4"), ("S5", "S5"),
)


def format_level_text(suite: Optional[Dict[str, float]]) -> str:
    """
    One-line level ladder, highest first, e.g. "R5 122.0 | R4 111.0 | ... | S5 78.0".

    Returns "" when there are no levels.
    """
    if not suite:
        return ""
    return " | ".join(f"{label} {suite[key]}" for label, key in LEVEL_TEXT_ORDER)


def cpr_relationship(
    today: Optional[PivotLevels],
    previous: Optional[PivotLevels],
    tolerance: float = CPR_TOLERANCE,
) -> str:
    """
    PURPOSE: Compare today's CPR with the previous session's CPR.

    Today's CPR comes from yesterday's bar, the previous CPR from the bar
    before it. Levels within tolerance of each other count as equal.

    Returns:
        str: Higher Value, Lower Value, Overlapping Higher Value, Overlapping
        Lower Value, Inner Value, Outside Value, No change, or Unknown.
    """
    if today is None or previous is None:
        return UNKNOWN

    def same(a: float, b: float) -> bool:
        return abs(a - b) <= tolerance

    if same(today.P, previous.P) and same(today.BC, previous.BC) and same(today.TC, previous.TC):
        return CPR_NO_CHANGE

    if today.BC > previous.TC + tolerance:
        return CPR_HIGHER
    if today.TC < previous.BC - tolerance:
        return CPR_LOWER

    if today.TC <= previous.TC - tolerance and today.BC >= previous.BC + tolerance:
        return CPR_INNER
    if today.TC >= previous.TC + tolerance and today.BC <= previous.BC - tolerance:
        return CPR_OUTSIDE

    if today.P > previous.P + tolerance:
        return CPR_OVERLAP_HIGHER
    if today.P < previous.P - tolerance:
        return CPR_OVERLAP_LOWER
    return CPR_NO_CHANGE


def classify_trend_by_rules(
    relationship: str,
    price,
    today: Optional[PivotLevels],
    tolerance: float = TREND_TOLERANCE,
) -> str:
    """
    PURPOSE: Two-day CPR trend rules.

    A higher-value CPR with price holding on or above BC is a bullish
    continuation; price falling below BC instead is a bearish reversal. The
    lower-value cases mirror that around TC. Anything else is Developing.
    """
    if today is None or not is_number(price):
        return DEVELOPING

    higher = relationship in (CPR_HIGHER, CPR_OVERLAP_HIGHER)
    lower = relationship in (CPR_LOWER, CPR_OVERLAP_LOWER)

    if higher and price >= today.BC - tolerance:
        return BULLISH_CONTINUATION
    if lower and price <= today.TC + tolerance:
        return BEARISH_CONTINUATION
    if higher:
        return BEARISH_REVERSAL
    if lower:
        return BULLISH_REVERSAL
    return DEVELOPING


class CprWidthHistory:
    """
    PURPOSE: Rank today's CPR width against recent sessions per ticker.

    A width is recorded once per distinct previous session, identified by
    its (H, L, C), so a minute-by-minute tick loop does not flood the history
    with the same session.

    Attributes:
        size: Number of sessions kept per ticker.
        min_history: Sessions needed before narrow/wide is reported.
    """

    def __init__(self, size: int = 10, min_history: int = 6) -> None:
        self.size = size
        self.min_history = min_history
        self._widths: Dict[str, List[Tuple[Tuple[float, float, float], float]]] = {}

    def record(self, ticker: str, session: Tuple[float, float, float], width: float) -> List[float]:
        """Record width for session (once) and return the ticker's width history."""
        history = self._widths.setdefault(ticker, [])
        if not history or history[-1][0] != session:
            history.append((session, width))
            del history[:-self.size]
        return [w for _, w in history]

    def classify(self, widths: Sequence[float], width: float) -> str:
        """
        Classify width as narrow (lowest ~30%), wide (highest ~30%) or normal.
        """
        ordered = sorted(widths)
        if width not in ordered or len(ordered) < self.min_history:
            return "normal"
        rank = ordered.index(width) + 1
        cut = math.floor(len(ordered) * 0.3)
        if rank <= max(2, cut):
            return "narrow"
        if rank >= len(ordered) - max(1, cut) + 1:
            return "wide"
        return "normal"
