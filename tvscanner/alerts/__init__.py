"""
PURPOSE: Alert consolidation of per-ticker rows merged from TradingView signals.
"""

from tvscanner.alerts.models import AlertEvent, TickerRow
from tvscanner.alerts.store import AlertStore
from tvscanner.alerts.timeframe_log import TimeframeLog

__all__ = ["AlertEvent", "TickerRow", "AlertStore", "TimeframeLog"]
