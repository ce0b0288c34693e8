"""
PURPOSE: Pytest fixtures for TV Scanner tests.

Provides shared test objects including:
- Settings pointing at a temporary data directory
- A recording EventBus that captures every published event
- A scripted market data provider with per-ticker failures
- A FastAPI TestClient wired to those fakes
"""

from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from tvscanner.alerts.store import AlertStore
from tvscanner.alerts.timeframe_log import TimeframeLog
from tvscanner.config.settings import Settings
from tvscanner.core.errors import ProviderError
from tvscanner.core.rate_limit import limiter
from tvscanner.events.bus import EventBus
from tvscanner.webhook.dedupe import ReplaySuppressor
from tvscanner.webhook.processor import WebhookProcessor


class RecordingBus(EventBus):
    """EventBus that keeps every published payload for assertions."""

    def __init__(self) -> None:
        super().__init__("")
        self.published = []

    async def publish(self, event_type, data, source="unknown"):
        payload = await super().publish(event_type, data, source)
        self.published.append(payload)
        return payload

    def of_type(self, event_type: str) -> list:
        return [p for p in self.published if p.event_type == event_type]


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeMarketData:
    """
    Scripted MarketDataProvider.

    bars, quotes and summaries are keyed by ticker; closes by ticker or by
    (ticker, interval). Tickers listed in a fail_* set raise ProviderError.
    """

    def __init__(self) -> None:
        self.bars: Dict[str, List[dict]] = {}
        self.quotes: Dict[str, dict] = {}
        self.closes: Dict = {}
        self.summaries: Dict[str, dict] = {}
        self.fail_bars: set = set()
        self.fail_quotes: set = set()
        self.fail_closes: set = set()
        self.fail_summaries: set = set()
        self.calls: List[tuple] = []

    def set_previous_day(self, ticker: str, high, low, close, price=None, open_price=None) -> None:
        self.bars[ticker] = [
            {"high": high, "low": low, "close": close},
            {"high": high + 1, "low": low - 1, "close": close},
        ]
        self.quotes[ticker] = {"price": price, "open": open_price}

    def set_sessions(self, ticker: str, *sessions, price=None, open_price=None) -> None:
        """Daily bars from (high, low, close) tuples, oldest first, plus today's bar."""
        self.bars[ticker] = [{"high": hi, "low": lo, "close": cl} for hi, lo, cl in sessions]
        self.bars[ticker].append({"high": price, "low": price, "close": price})
        self.quotes[ticker] = {"price": price, "open": open_price}

    async def get_daily_bars(self, ticker: str) -> List[dict]:
        self.calls.append(("bars", ticker))
        if ticker in self.fail_bars:
            raise ProviderError(ticker, "daily_bars", RuntimeError("boom"))
        return self.bars.get(ticker, [])

    async def get_live_quote(self, ticker: str) -> dict:
        self.calls.append(("quote", ticker))
        if ticker in self.fail_quotes:
            raise ProviderError(ticker, "live_quote", RuntimeError("boom"))
        return self.quotes.get(ticker, {"price": None, "open": None})

    async def get_intraday_closes(self, ticker: str, interval: str = "5m") -> List[float]:
        self.calls.append(("closes", ticker, interval))
        if ticker in self.fail_closes:
            raise ProviderError(ticker, "intraday_closes", RuntimeError("boom"))
        return self.closes.get((ticker, interval), self.closes.get(ticker, []))

    async def get_quote_summary(self, ticker: str) -> dict:
        self.calls.append(("summary", ticker))
        if ticker in self.fail_summaries:
            raise ProviderError(ticker, "quote_summary", RuntimeError("boom"))
        return self.summaries.get(ticker, {})


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Rate limit counters are process-wide; start every test from zero."""
    limiter.reset()
    yield


@pytest.fixture
def test_settings(tmp_path):
    """
    PURPOSE: Settings override with test values.

    Returns:
        Settings: Data directory under tmp_path, webhook secret "s3cret",
        no env ticker sources.
    """
    return Settings(
        _env_file=None,
        TV_SECRET="s3cret",
        DATA_DIR=str(tmp_path / "data"),
        PIVOT_TICKERS="",
        TICKERS="",
        PIVOT_TICKERS_FILE="",
        PIVOT_INTERVAL_MS=60_000,
        LOG_LEVEL="WARNING",
        REDIS_URL="",
    )


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def market():
    return FakeMarketData()


@pytest.fixture
def store(tmp_path, bus):
    return AlertStore(tmp_path / "data", bus)


@pytest.fixture
def processor(tmp_path, bus, clock):
    data_dir = tmp_path / "data"
    return WebhookProcessor(
        store=AlertStore(data_dir, bus),
        timeframe_log=TimeframeLog(data_dir),
        suppressor=ReplaySuppressor(clock=clock),
        secret="s3cret",
    )


@pytest.fixture
def make_client(test_settings, market):
    """
    PURPOSE: Factory for TestClients bound to a fresh application.

    Usage:
        with make_client() as client: ...
        with make_client(TV_SECRET="") as client: ...
    """
    from tvscanner.main import create_app

    def _make(tickers: Optional[list] = None, **overrides) -> TestClient:
        config = test_settings.model_copy(update=overrides) if overrides else test_settings
        app = create_app(config, provider=market, tickers=tickers if tickers is not None else [])
        return TestClient(app)

    return _make
