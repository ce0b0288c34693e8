"""
PURPOSE: Per-timeframe alert logs.

Alongside the consolidated store, each accepted webhook alert is upserted by
ticker into a collection for its timeframe:

    alerts_5m.json, alerts_15m.json, alerts_1h.json, alerts_other.json

Each entry keeps the raw signal and when it was received. The union of the
tickers in the three recognized collections is the last-resort ticker source
for the pivot engine.

CALLED BY:
    - tvscanner/webhook/processor.py
    - tvscanner/pivots/resolver.py
"""

import asyncio
from pathlib import Path
from typing import Dict, List

from tvscanner.alerts.models import AlertEvent
from tvscanner.alerts.store import read_json_array, write_json_document
from tvscanner.config.constants import TF_1H, TF_5M, TF_15M
from tvscanner.core.errors import PersistenceError
from tvscanner.utils.logger import get_logger
from tvscanner.utils.time_utils import utc_now_iso

logger = get_logger(__name__)

TIMEFRAME_FILES: Dict[str, str] = {
    TF_5M: "alerts_5m.json",
    TF_15M: "alerts_15m.json",
    TF_1H: "alerts_1h.json",
}
OTHER_FILE = "alerts_other.json"


class TimeframeLog:
    """
    PURPOSE: Upsert-by-ticker alert collections, one JSON document per timeframe.

    Attributes:
        data_dir: Directory holding the collection documents.
        max_rows: Cap per collection (oldest entries dropped).
        _cache: Loaded collections keyed by filename.
    """

    def __init__(self, data_dir: Path, max_rows: int = 500) -> None:
        self.data_dir = Path(data_dir)
        self.max_rows = max_rows
        self._cache: Dict[str, List[dict]] = {}
        self._write_lock = asyncio.Lock()

    def path_for(self, timeframe: str) -> Path:
        """Return the document path for a timeframe tag."""
        return self.data_dir / TIMEFRAME_FILES.get(timeframe, OTHER_FILE)

    def entries(self, timeframe: str) -> List[dict]:
        """Return the collection for timeframe, newest first."""
        return list(self._load(self.path_for(timeframe)))

    async def record(self, event: AlertEvent) -> dict:
        """
        PURPOSE: Upsert the event into its timeframe collection and persist it.

        An existing entry for the ticker is replaced in place; a new ticker is
        added at the head. Write failures are logged, not raised.

        Returns:
            dict: The stored entry.
        """
        path = self.path_for(event.timeframe)
        collection = self._load(path)
        entry = {
            "Time": event.time,
            "Ticker": event.ticker,
            "Alert": event.direction.value,
            "Zone": event.zone,
            "Timeframe": event.timeframe,
            "ReceivedAt": utc_now_iso(),
        }

        for idx, existing in enumerate(collection):
            if existing.get("Ticker") == event.ticker:
                collection[idx] = entry
                break
        else:
            collection.insert(0, entry)
            del collection[self.max_rows:]

        async with self._write_lock:
            try:
                await asyncio.to_thread(write_json_document, path, list(collection))
            except PersistenceError as e:
                logger.error("timeframe_log_persist_failed", path=e.path, error=str(e.cause))
        return entry

    def known_tickers(self) -> List[str]:
        """
        PURPOSE: Union of tickers across the 5m, 15m and 1h collections.

        Returns:
            list[str]: Uppercased tickers, deduplicated, in first-seen order.
        """
        seen: Dict[str, None] = {}
        for timeframe in TIMEFRAME_FILES:
            for entry in self._load(self.path_for(timeframe)):
                ticker = str(entry.get("Ticker") or "").strip().upper()
                if ticker:
                    seen.setdefault(ticker, None)
        return list(seen)

    def _load(self, path: Path) -> List[dict]:
        key = path.name
        if key not in self._cache:
            self._cache[key] = [e for e in read_json_array(path) if isinstance(e, dict)]
        return self._cache[key]
