"""
PURPOSE: Constants shared by the alert pipeline and the pivot engine.
"""

from enum import Enum


class Direction(str, Enum):
    """Alert direction. Anything that is not a sell is a buy."""

    BUY = "Buy"
    SELL = "Sell"


class Zone(str, Enum):
    """Display colour of a ticker row."""

    GREEN = "green"
    RED = "red"


class EventType(str, Enum):
    """Broadcast event names consumed by the dashboard."""

    ALERTS_UPDATE = "alertsUpdate"
    PIVOT_UPDATE = "pivotUpdate"
    PRICE_UPDATE = "priceUpdate"


# Recognized signal timeframes. AI_5m is authoritative for time and zone.
TF_5M = "AI_5m"
TF_15M = "AI_15m"
TF_1H = "AI_1h"

# Case-insensitive aliases accepted from TradingView alert messages
TIMEFRAME_ALIASES = {
    "AI_5M": TF_5M,
    "AI_15M": TF_15M,
    "AI_1H": TF_1H,
    "AI_60M": TF_1H,
}

ZONE_BY_DIRECTION = {
    Direction.BUY: Zone.GREEN,
    Direction.SELL: Zone.RED,
}

# Pivot relationship labels
NEAR_PIVOT = "Near Pivot"
ABOVE_PIVOT = "Above Pivot"
BELOW_PIVOT = "Below Pivot"
UNKNOWN = "Unknown"

# Trend labels
AT_MA20 = "At MA20"
UP_MA20 = "Up (Above MA20)"
DOWN_MA20 = "Down (Below MA20)"
UP_PIVOT = "Up (>= Pivot)"
DOWN_PIVOT = "Down (< Pivot)"

# Today's CPR compared with the previous session's CPR
CPR_HIGHER = "Higher Value"
CPR_LOWER = "Lower Value"
CPR_OVERLAP_HIGHER = "Overlapping Higher Value"
CPR_OVERLAP_LOWER = "Overlapping Lower Value"
CPR_INNER = "Inner Value"
CPR_OUTSIDE = "Outside Value"
CPR_NO_CHANGE = "No change"

# Two-day CPR trend rules
BULLISH_CONTINUATION = "Bullish Continuation"
BEARISH_CONTINUATION = "Bearish Continuation"
BULLISH_REVERSAL = "Bullish Trend Reversal"
BEARISH_REVERSAL = "Bearish Trend Reversal"
DEVELOPING = "Developing"
