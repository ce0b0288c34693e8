"""
PURPOSE: Tests for the per-timeframe alert collections.
"""

import json

import pytest

from tvscanner.alerts.models import AlertEvent
from tvscanner.alerts.timeframe_log import TimeframeLog
from tvscanner.config.constants import Direction


def make_event(ticker="NVDA", timeframe="AI_5m", direction=Direction.BUY, time="09:31") -> AlertEvent:
    return AlertEvent(ticker=ticker, timeframe=timeframe, direction=direction, time=time)


class TestRecord:
    """Test upsert-by-ticker behaviour."""

    @pytest.mark.asyncio
    async def test_entry_written_to_timeframe_file(self, tmp_path):
        log = TimeframeLog(tmp_path)
        entry = await log.record(make_event())

        assert entry["Ticker"] == "NVDA"
        assert entry["Alert"] == "Buy"
        assert entry["Zone"] == "green"
        assert entry["Timeframe"] == "AI_5m"
        assert entry["ReceivedAt"]
        document = json.loads((tmp_path / "alerts_5m.json").read_text())
        assert [e["Ticker"] for e in document] == ["NVDA"]

    @pytest.mark.asyncio
    async def test_each_timeframe_has_its_own_file(self, tmp_path):
        log = TimeframeLog(tmp_path)
        await log.record(make_event(timeframe="AI_15m"))
        await log.record(make_event(timeframe="AI_1h"))
        await log.record(make_event(timeframe="4H"))

        assert log.path_for("AI_15m").name == "alerts_15m.json"
        assert (tmp_path / "alerts_15m.json").exists()
        assert (tmp_path / "alerts_1h.json").exists()
        assert (tmp_path / "alerts_other.json").exists()
        assert not (tmp_path / "alerts_5m.json").exists()

    @pytest.mark.asyncio
    async def test_existing_ticker_replaced_in_place(self, tmp_path):
        log = TimeframeLog(tmp_path)
        await log.record(make_event(ticker="AMD"))
        await log.record(make_event(ticker="NVDA"))
        await log.record(make_event(ticker="AMD", direction=Direction.SELL, time="10:00"))

        entries = log.entries("AI_5m")
        assert [e["Ticker"] for e in entries] == ["NVDA", "AMD"]
        assert entries[1]["Alert"] == "Sell"
        assert entries[1]["Time"] == "10:00"

    @pytest.mark.asyncio
    async def test_collection_capped(self, tmp_path):
        log = TimeframeLog(tmp_path, max_rows=3)
        for i in range(5):
            await log.record(make_event(ticker=f"T{i}"))
        assert [e["Ticker"] for e in log.entries("AI_5m")] == ["T4", "T3", "T2"]


class TestKnownTickers:
    """Test the alert-derived ticker source."""

    def test_union_of_recognized_timeframes(self, tmp_path):
        (tmp_path / "alerts_5m.json").write_text(json.dumps([{"Ticker": "nvda"}, {"Ticker": "AMD"}]))
        (tmp_path / "alerts_15m.json").write_text(json.dumps([{"Ticker": "AMD"}, {"Ticker": "MU"}]))
        (tmp_path / "alerts_other.json").write_text(json.dumps([{"Ticker": "SPY"}]))

        assert TimeframeLog(tmp_path).known_tickers() == ["NVDA", "AMD", "MU"]

    def test_missing_and_corrupt_files_are_empty(self, tmp_path):
        (tmp_path / "alerts_1h.json").write_text("oops")
        assert TimeframeLog(tmp_path).known_tickers() == []
