"""
PURPOSE: TradingView webhook alert processor for TV Scanner.

Runs an inbound alert through the ingestion pipeline:

    access check → normalize → replay suppression → store merge
    (persist + alertsUpdate broadcast) → per-timeframe log

The processor owns the AlertStore, the TimeframeLog and the ReplaySuppressor;
one instance lives on app.state for the lifetime of the application.

CALLED BY:
    - tvscanner/api/routes_webhook.py (POST /tv-webhook, POST /sendAlert)
"""

from pathlib import Path
from typing import Any, Dict, Optional

from tvscanner.alerts.store import AlertStore
from tvscanner.alerts.timeframe_log import TimeframeLog
from tvscanner.config.settings import Settings
from tvscanner.core.errors import AuthorizationError
from tvscanner.events.bus import EventBus
from tvscanner.utils.logger import get_logger
from tvscanner.utils.time_utils import utc_now_iso
from tvscanner.webhook.dedupe import ReplaySuppressor
from tvscanner.webhook.normalizer import normalize_alert

logger = get_logger(__name__)


class WebhookProcessor:
    """
    PURPOSE: Validate, de-duplicate and consolidate TradingView alerts.

    Attributes:
        store: Consolidated per-ticker rows.
        timeframe_log: Per-timeframe upsert collections.
        suppressor: Replay suppression window.
        _secret: Shared secret expected in ?key= ("" accepts everyone).
        _total_received: Alerts accepted since start.
        _total_deduped: Alerts suppressed as replays since start.
        _last_alert_time: ISO-8601 timestamp of the most recent accepted alert.
    """

    def __init__(
        self,
        store: AlertStore,
        timeframe_log: TimeframeLog,
        suppressor: ReplaySuppressor,
        secret: str = "",
    ) -> None:
        self.store = store
        self.timeframe_log = timeframe_log
        self.suppressor = suppressor
        self._secret = secret
        self._total_received: int = 0
        self._total_deduped: int = 0
        self._last_alert_time: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings, bus: EventBus) -> "WebhookProcessor":
        """
        PURPOSE: Build a processor and its collaborators from application settings.

        CALLED BY: main.on_startup()
        """
        data_dir = Path(settings.DATA_DIR)
        return cls(
            store=AlertStore(data_dir, bus, max_rows=settings.MAX_ALERT_ROWS),
            timeframe_log=TimeframeLog(data_dir, max_rows=settings.MAX_ALERT_ROWS),
            suppressor=ReplaySuppressor(window_ms=settings.DEDUPE_WINDOW_MS),
            secret=settings.TV_SECRET,
        )

    # ════════════════════════════════════════════════════════════════
    # Public API
    # ════════════════════════════════════════════════════════════════

    def authorize(self, key: Optional[str]) -> None:
        """
        PURPOSE: Enforce the shared secret before anything else is read.

        Raises:
            AuthorizationError: A secret is configured and key does not match it.
        """
        if self._secret and (key or "") != self._secret:
            logger.warning("webhook_auth_failed", has_key=bool(key))
            raise AuthorizationError()

    async def handle(self, raw: Any) -> Dict[str, Any]:
        """
        PURPOSE: Process a TradingView webhook body.

        CALLED BY: POST /tv-webhook

        Args:
            raw: Request body (dict, text or bytes).

        Returns:
            dict: {"ok": True, "accepted": 1} or {"ok": True, "deduped": True}.

        Raises:
            AlertValidationError: A required field is empty after normalization.
        """
        event = normalize_alert(raw)

        if not self.suppressor.check_and_mark(event.dedupe_key):
            self._total_deduped += 1
            logger.info("webhook_alert_deduped", key=event.dedupe_key)
            return {"ok": True, "deduped": True}

        await self.store.merge(event)
        await self.timeframe_log.record(event)
        self._mark_received()

        logger.info(
            "webhook_alert_accepted",
            ticker=event.ticker,
            timeframe=event.timeframe,
            direction=event.direction.value,
            time=event.time,
        )
        return {"ok": True, "accepted": 1}

    async def handle_manual(self, raw: Any) -> Dict[str, Any]:
        """
        PURPOSE: Process a manual /sendAlert body (no secret, no replay window).

        CALLED BY: POST /sendAlert

        Returns:
            dict: {"success": True, "row": <row in wire format>}
        """
        event = normalize_alert(raw)
        row = await self.store.merge_manual(event)
        self._mark_received()
        logger.info("manual_alert_accepted", ticker=event.ticker, timeframe=event.timeframe)
        return {"success": True, "row": row.to_wire()}

    def get_status(self) -> Dict[str, Any]:
        """
        PURPOSE: Return processor counters for the dashboard.

        CALLED BY: GET /api/webhook/status
        """
        return {
            "secured": bool(self._secret),
            "total_received": self._total_received,
            "total_deduped": self._total_deduped,
            "last_alert_time": self._last_alert_time,
            "rows": len(self.store),
            "dedupe_entries": len(self.suppressor),
        }

    def _mark_received(self) -> None:
        self._total_received += 1
        self._last_alert_time = utc_now_iso()
