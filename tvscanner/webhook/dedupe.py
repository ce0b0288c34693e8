"""
PURPOSE: Short-window replay suppression for webhook alerts.

TradingView can fire the same alert several times within a bar. Identical
(ticker, timeframe, direction) alerts accepted less than the window apart are
acknowledged but not applied.
"""

from collections import OrderedDict
from typing import Callable, Optional

from tvscanner.utils.time_utils import now_ms

DEFAULT_WINDOW_MS = 5000


class ReplaySuppressor:
    """
    PURPOSE: Track last-accepted timestamps per alert key within a fixed window.

    Entries are kept in acceptance order, so everything older than the window
    is evicted from the front on each check and the map never holds more than
    the keys accepted during the last window.

    Attributes:
        window_ms: Suppression window in milliseconds.
        _clock: Callable returning epoch milliseconds (injectable for tests).
        _accepted: key -> last accepted epoch millis, oldest first.
    """

    def __init__(
        self,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.window_ms = window_ms
        self._clock = clock or now_ms
        self._accepted: "OrderedDict[str, int]" = OrderedDict()

    def check_and_mark(self, key: str) -> bool:
        """
        PURPOSE: Decide whether an alert is a replay, recording it if not.

        Args:
            key: Composite key ticker|timeframe|direction.

        Returns:
            bool: True when the alert should proceed; False when it is a
            replay inside the window (nothing is recorded in that case).
        """
        now = self._clock()
        self._evict(now)

        last = self._accepted.get(key)
        if last is not None and now - last < self.window_ms:
            return False

        self._accepted[key] = now
        self._accepted.move_to_end(key)
        return True

    def __len__(self) -> int:
        return len(self._accepted)

    def _evict(self, now: int) -> None:
        while self._accepted:
            key, ts = next(iter(self._accepted.items()))
            if now - ts < self.window_ms:
                break
            self._accepted.popitem(last=False)
