"""
PURPOSE: Drive a tick runner (pivot engine, price feed) on a fixed interval.

The first tick fires immediately on start, then one every interval until
stop(). Each tick runs as its own task, so a slow tick never delays the next
one; overlapping ticks may both broadcast and the later broadcast wins.

CALLED BY:
    - tvscanner/main.py (on_startup / on_shutdown)
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set

from tvscanner.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0


class TickRunner(Protocol):
    """Anything with an async tick(tickers), e.g. PivotEngine or PriceFeed."""

    def tick(self, tickers: List[str]) -> Awaitable[Any]:
        ...


class TickScheduler:
    """
    PURPOSE: Periodic runner for TickRunner.tick().

    Attributes:
        runner: Object ticked every interval.
        interval: Seconds between tick starts.
        name: Label used in log events.
        refresh_tickers: Resolve the ticker set before every tick instead of
            once on start().
        tickers: Current ticker set.
        _resolve: Callable returning the ticker set.
        _stop_event: Set by stop() to end the timer loop.
        _loop_task: Timer loop task.
        _ticks: Tick tasks still running.
    """

    def __init__(
        self,
        runner: TickRunner,
        resolve_tickers: Callable[[], List[str]],
        interval: float = DEFAULT_INTERVAL_SECONDS,
        name: str = "pivot",
        refresh_tickers: bool = False,
    ) -> None:
        self.runner = runner
        self.interval = interval
        self.name = name
        self.refresh_tickers = refresh_tickers
        self.tickers: List[str] = []
        self._resolve = resolve_tickers
        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """
        PURPOSE: Resolve the ticker set and start the timer loop.

        Calling start() on a running scheduler is a no-op.
        """
        if self.running:
            return
        self.tickers = list(self._resolve())
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(), name=f"{self.name}-scheduler")
        logger.info(
            "scheduler_started",
            scheduler=self.name,
            interval_seconds=self.interval,
            tickers=len(self.tickers),
        )

    async def stop(self) -> None:
        """Stop the timer loop and cancel ticks still in flight."""
        self._stop_event.set()
        tasks = [t for t in (self._loop_task, *self._ticks) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._ticks.clear()
        logger.info("scheduler_stopped", scheduler=self.name)

    async def _run(self) -> None:
        first = True
        while not self._stop_event.is_set():
            if self.refresh_tickers and not first:
                self._refresh()
            first = False
            self._spawn_tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                # Timeout means it is time for the next tick
                pass

    def _refresh(self) -> None:
        try:
            self.tickers = list(self._resolve())
        except Exception:
            logger.exception("scheduler_resolve_error", scheduler=self.name)

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self._tick(list(self.tickers)))
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _tick(self, tickers: List[str]) -> None:
        try:
            await self.runner.tick(tickers)
        except Exception:
            logger.exception("scheduler_tick_error", scheduler=self.name)
