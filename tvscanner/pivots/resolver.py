"""
PURPOSE: Decide which tickers the pivot engine tracks.

Sources, highest priority first; the first non-empty one wins:
    1. explicit list passed by the caller
    2. PIVOT_TICKERS / TICKERS comma-separated env setting
    3. newline-delimited file at PIVOT_TICKERS_FILE
    4. tickers seen in the per-timeframe alert collections
"""

from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from tvscanner.alerts.timeframe_log import TimeframeLog
from tvscanner.config.settings import Settings
from tvscanner.utils.logger import get_logger

logger = get_logger(__name__)


def _clean(symbols: Iterable[str]) -> List[str]:
    """Uppercase, trim, drop blanks and duplicates (first occurrence kept)."""
    seen = {}
    for symbol in symbols:
        value = str(symbol or "").strip().upper()
        if value:
            seen.setdefault(value, None)
    return list(seen)


def read_ticker_file(path: str) -> List[str]:
    """
    Read one ticker per line, ignoring blank lines and # comments.

    A missing or unreadable file yields [] (logged).
    """
    if not path:
        return []
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("ticker_file_unreadable", path=path, error=str(e))
        return []
    return _clean(
        line.split("#", 1)[0] for line in text.splitlines()
    )


def resolve_tickers(
    settings: Settings,
    explicit: Optional[Iterable[str]] = None,
    timeframe_log: Optional[TimeframeLog] = None,
) -> Tuple[List[str], str]:
    """
    PURPOSE: Resolve the pivot ticker set once at scheduler start.

    Args:
        settings: Application settings (env list and file path).
        explicit: Caller-supplied tickers, highest priority.
        timeframe_log: Alert collections used as the last-resort source.

    Returns:
        (tickers, source) where source is one of
        "explicit", "env", "file", "alerts" or "none".
    """
    candidates = (
        ("explicit", lambda: _clean(explicit or [])),
        ("env", settings.env_tickers),
        ("file", lambda: read_ticker_file(settings.PIVOT_TICKERS_FILE)),
        ("alerts", lambda: _clean(timeframe_log.known_tickers()) if timeframe_log else []),
    )

    for source, load in candidates:
        tickers = _clean(load())
        if tickers:
            logger.info("pivot_tickers_resolved", source=source, count=len(tickers), tickers=tickers)
            return tickers, source

    logger.warning("pivot_tickers_empty", message="No tickers resolved; pivot engine idle.")
    return [], "none"
