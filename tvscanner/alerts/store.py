"""
PURPOSE: Alert consolidation store for TV Scanner.

Holds one TickerRow per ticker, most-recently-mutated first, capped at
MAX_ALERT_ROWS. Every accepted alert is merged in memory, written through to
<DATA_DIR>/alerts.json and broadcast to dashboard clients as alertsUpdate.

Merge policy:
    - AI_5m alerts own the row: signal, time and zone are always overwritten.
    - Other timeframes only set their own signal column, and only colour the
      row when it has no zone yet.

CALLED BY:
    - tvscanner/webhook/processor.py (WebhookProcessor.handle)
    - tvscanner/api/routes_webhook.py (GET /api/alerts)
"""

import asyncio
import json
import os
from pathlib import Path
from typing import List, Optional

from tvscanner.alerts.models import AlertEvent, TickerRow
from tvscanner.config.constants import EventType
from tvscanner.core.errors import PersistenceError
from tvscanner.events.bus import EventBus
from tvscanner.utils.logger import get_logger

logger = get_logger(__name__)

ALERTS_FILENAME = "alerts.json"
DEFAULT_MAX_ROWS = 500


def write_json_document(path: Path, document) -> None:
    """
    PURPOSE: Atomically replace path with the JSON encoding of document.

    Writes to a sibling temp file and renames it over the target so readers
    never observe a half-written document.

    Raises:
        PersistenceError: On any filesystem error.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, path)
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(str(path), e) from e


def read_json_array(path: Path) -> list:
    """
    PURPOSE: Read a JSON array document, tolerating absence and corruption.

    Returns:
        list: Parsed array, or [] when the file is missing, empty, unreadable
        or does not hold an array.
    """
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("alert_document_unreadable", path=str(path), error=str(e))
        return []

    if not raw:
        return []

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("alert_document_corrupt", path=str(path), error=str(e))
        return []

    if not isinstance(data, list):
        logger.warning("alert_document_not_array", path=str(path), type=type(data).__name__)
        return []
    return data


class AlertStore:
    """
    PURPOSE: Bounded, ordered, write-through store of per-ticker alert rows.

    The store is owned by a single WebhookProcessor. All mutation happens in
    synchronous code between awaits, so concurrent requests on the event loop
    never interleave inside a merge.

    Attributes:
        path: Location of the persisted alerts.json document.
        max_rows: Upper bound on the number of rows kept.
        _rows: Ordered rows (head = most recent); None until first access.
        _bus: EventBus used for the alertsUpdate broadcast.
        _write_lock: Serializes document writes so the newest state always lands last.
    """

    def __init__(
        self,
        data_dir: Path,
        bus: EventBus,
        max_rows: int = DEFAULT_MAX_ROWS,
    ) -> None:
        self.path: Path = Path(data_dir) / ALERTS_FILENAME
        self.max_rows: int = max_rows
        self._rows: Optional[List[TickerRow]] = None
        self._bus = bus
        self._write_lock = asyncio.Lock()

    # ════════════════════════════════════════════════════════════════
    # Read API
    # ════════════════════════════════════════════════════════════════

    def rows(self) -> List[TickerRow]:
        """Return a shallow copy of the ordered rows, loading from disk on first use."""
        return list(self._ensure_loaded())

    def snapshot(self) -> List[dict]:
        """Return the ordered rows in wire format (dashboard column names)."""
        return [row.to_wire() for row in self._ensure_loaded()]

    def get(self, ticker: str) -> Optional[TickerRow]:
        """Return the row for ticker, or None."""
        return self._find(ticker.upper())

    def __len__(self) -> int:
        return len(self._ensure_loaded())

    # ════════════════════════════════════════════════════════════════
    # Mutation API
    # ════════════════════════════════════════════════════════════════

    async def merge(self, event: AlertEvent) -> TickerRow:
        """
        PURPOSE: Merge a TradingView alert into its ticker row, persist and broadcast.

        CALLED BY: WebhookProcessor.handle()

        Args:
            event: Normalized, non-deduplicated alert.

        Returns:
            TickerRow: The row after the merge (now at the head).
        """
        row = self._apply_webhook_policy(event)
        self._promote(row)
        await self._commit(event)
        return row

    async def merge_manual(self, event: AlertEvent) -> TickerRow:
        """
        PURPOSE: Merge an alert with the manual /sendAlert policy.

        Every alert sets its own signal column and the row's zone; time is
        taken from any alert that carries one.

        CALLED BY: WebhookProcessor.handle_manual()
        """
        row = self._find(event.ticker) or TickerRow(ticker=event.ticker, zone=event.zone)
        row.set_signal(event.timeframe, event.direction.value)
        if event.time:
            row.time = event.time
        row.zone = event.zone
        self._promote(row)
        await self._commit(event)
        return row

    async def persist(self) -> bool:
        """
        PURPOSE: Write the current ordered rows to alerts.json.

        Failures are logged and swallowed; the in-memory store stays authoritative.

        Returns:
            bool: True when the document was written.
        """
        async with self._write_lock:
            document = self.snapshot()
            try:
                await asyncio.to_thread(write_json_document, self.path, document)
                return True
            except PersistenceError as e:
                logger.error(
                    "alert_store_persist_failed",
                    path=e.path,
                    error=str(e.cause),
                    rows=len(document),
                )
                return False

    async def broadcast(self) -> None:
        """Publish the full ordered store as alertsUpdate."""
        await self._bus.publish(
            EventType.ALERTS_UPDATE.value,
            self.snapshot(),
            source="alert_store",
        )

    # ════════════════════════════════════════════════════════════════
    # Internal Helpers
    # ════════════════════════════════════════════════════════════════

    def _ensure_loaded(self) -> List[TickerRow]:
        if self._rows is None:
            self._rows = self._load()
        return self._rows

    def _load(self) -> List[TickerRow]:
        rows: List[TickerRow] = []
        seen = set()
        for item in read_json_array(self.path):
            if not isinstance(item, dict):
                continue
            try:
                row = TickerRow.model_validate(item)
            except ValueError as e:
                logger.warning("alert_row_skipped", error=str(e))
                continue
            row.ticker = row.ticker.upper()
            # Earlier rows are more recent; keep the first row per ticker
            if not row.ticker or row.ticker in seen:
                continue
            seen.add(row.ticker)
            rows.append(row)

        del rows[self.max_rows:]
        logger.info("alert_store_loaded", path=str(self.path), rows=len(rows))
        return rows

    def _find(self, ticker: str) -> Optional[TickerRow]:
        for row in self._ensure_loaded():
            if row.ticker == ticker:
                return row
        return None

    def _apply_webhook_policy(self, event: AlertEvent) -> TickerRow:
        row = self._find(event.ticker)
        if row is None:
            return TickerRow.from_event(event)

        row.set_signal(event.timeframe, event.direction.value)
        if event.is_authoritative:
            row.time = event.time
            row.zone = event.zone
        elif not row.zone:
            row.zone = event.zone
        return row

    def _promote(self, row: TickerRow) -> None:
        """Move row to the head and trim the tail to max_rows."""
        rows = self._ensure_loaded()
        rows[:] = [r for r in rows if r.ticker != row.ticker]
        rows.insert(0, row)
        if len(rows) > self.max_rows:
            dropped = [r.ticker for r in rows[self.max_rows:]]
            del rows[self.max_rows:]
            logger.info("alert_store_trimmed", dropped=dropped)

    async def _commit(self, event: AlertEvent) -> None:
        await self.persist()
        await self.broadcast()
        logger.info(
            "alert_merged",
            ticker=event.ticker,
            timeframe=event.timeframe,
            direction=event.direction.value,
            rows=len(self._ensure_loaded()),
        )
