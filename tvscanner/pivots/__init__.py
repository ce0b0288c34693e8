"""
PURPOSE: Pivot/CPR analytics: level math, engine, ticker resolution and scheduling.
"""

from tvscanner.pivots.engine import PivotEngine, PivotSnapshot
from tvscanner.pivots.levels import PivotLevels, compute_pivot_levels
from tvscanner.pivots.resolver import resolve_tickers
from tvscanner.pivots.scheduler import TickScheduler

__all__ = [
    "PivotEngine",
    "PivotSnapshot",
    "PivotLevels",
    "TickScheduler",
    "compute_pivot_levels",
    "resolve_tickers",
]
