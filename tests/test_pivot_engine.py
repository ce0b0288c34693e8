"""
PURPOSE: Tests for pivot snapshot assembly and the pivotUpdate broadcast.

Covers:
- Snapshot fields and camelCase wire format
- Per-ticker isolation of provider failures
- Tick-level failure handling
- The optional MA20 trend branch
- CPR-vs-previous-session fields and the level text
- Configured relationship tolerance
"""

import pytest

from tvscanner.pivots.engine import PivotEngine


@pytest.fixture
def engine(market, bus):
    return PivotEngine(market, bus)


class TestBuildSnapshot:
    """Test one ticker's snapshot."""

    @pytest.mark.asyncio
    async def test_near_pivot_snapshot(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.5, open_price=99.0)
        snapshot = await engine.build_snapshot("NVDA", "2024-05-01T14:00:00+00:00")
        wire = snapshot.to_wire()

        assert wire["ticker"] == "NVDA"
        assert wire["timestamp"] == "2024-05-01T14:00:00+00:00"
        assert wire["relationship"] == "Near Pivot"
        assert wire["trend"] == "Up (>= Pivot)"
        assert wire["midPoint"] == 100
        assert wire["openPrice"] == 99.0
        assert wire["currentPrice"] == 100.5
        assert wire["levels"]["P"] == 100
        assert wire["cprWidth"] == 0
        assert wire["cprClass"] == "normal"

    @pytest.mark.asyncio
    async def test_previous_session_is_second_to_last_bar(self, engine, market):
        market.bars["AMD"] = [
            {"high": 1, "low": 1, "close": 1},
            {"high": 150, "low": 100, "close": 110},
            {"high": 500, "low": 400, "close": 450},
        ]
        market.quotes["AMD"] = {"price": 119.0, "open": 118.0}
        snapshot = await engine.build_snapshot("AMD")

        assert snapshot.levels["P"] == 120
        assert snapshot.levels["BC"] == 125
        assert snapshot.levels["TC"] == 115
        assert snapshot.relationship == "Below Pivot"
        assert snapshot.trend == "Down (< Pivot)"

    @pytest.mark.asyncio
    async def test_single_bar_leaves_levels_empty(self, engine, market):
        market.bars["NEW"] = [{"high": 10, "low": 9, "close": 9.5}]
        market.quotes["NEW"] = {"price": 9.8, "open": 9.6}
        snapshot = await engine.build_snapshot("NEW")

        assert snapshot.levels is None
        assert snapshot.mid_point is None
        assert snapshot.relationship == "Unknown"
        assert snapshot.trend == "Unknown"
        assert snapshot.current_price == 9.8

    @pytest.mark.asyncio
    async def test_quote_failure_keeps_levels(self, engine, market):
        market.set_previous_day("MU", 110, 90, 100)
        market.fail_quotes.add("MU")
        snapshot = await engine.build_snapshot("MU")

        assert snapshot.current_price is None
        assert snapshot.open_price is None
        assert snapshot.relationship == "Unknown"
        assert snapshot.levels["P"] == 100

    @pytest.mark.asyncio
    async def test_ma20_not_fetched_by_default(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=101)
        await engine.build_snapshot("NVDA")
        assert not [call for call in market.calls if call[0] == "closes"]

    @pytest.mark.asyncio
    async def test_ma20_branch_when_enabled(self, market, bus):
        engine = PivotEngine(market, bus, use_ma20=True)
        market.set_previous_day("NVDA", 110, 90, 100, price=105.0)
        market.closes["NVDA"] = [110.0] * 20
        snapshot = await engine.build_snapshot("NVDA")
        assert snapshot.trend == "Down (Below MA20)"


class TestTick:
    """Test full ticks and the broadcast."""

    @pytest.mark.asyncio
    async def test_failure_isolated_to_one_ticker(self, engine, market, bus):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.2)
        market.set_previous_day("AMD", 150, 100, 110, price=130)
        market.fail_bars.add("AMD")

        rows = await engine.tick(["NVDA", "AMD"])

        assert [r["ticker"] for r in rows] == ["NVDA", "AMD"]
        assert rows[0]["relationship"] == "Near Pivot"
        assert rows[1]["levels"] is None
        assert rows[1]["currentPrice"] == 130

        updates = bus.of_type("pivotUpdate")
        assert len(updates) == 1
        assert updates[0].data == rows
        assert rows[0]["timestamp"] == rows[1]["timestamp"]

    @pytest.mark.asyncio
    async def test_latest_holds_last_tick(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=100)
        assert engine.latest() == []
        rows = await engine.tick(["NVDA"])
        assert engine.latest() == rows

    @pytest.mark.asyncio
    async def test_empty_ticker_set_broadcasts_empty_array(self, engine, bus):
        assert await engine.tick([]) == []
        assert bus.of_type("pivotUpdate")[0].data == []

    @pytest.mark.asyncio
    async def test_tick_failure_is_swallowed(self, engine, market, bus, monkeypatch):
        market.set_previous_day("NVDA", 110, 90, 100, price=100)
        await engine.tick(["NVDA"])
        previous = engine.latest()

        async def broken(tickers):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine, "build_snapshots", broken)
        assert await engine.tick(["NVDA"]) == []
        assert engine.latest() == previous
        assert len(bus.of_type("pivotUpdate")) == 1

    @pytest.mark.asyncio
    async def test_cpr_width_recorded_once_per_session(self, engine, market):
        market.set_previous_day("NVDA", 150, 100, 110, price=120)
        for _ in range(3):
            await engine.tick(["NVDA"])
        assert engine._widths.record("NVDA", (150, 100, 110), 10.0) == [10.0]

    @pytest.mark.asyncio
    async def test_malformed_provider_output_isolated(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.2)
        market.bars["BAD"] = [None, None]
        market.quotes["BAD"] = []
        market.bars["ODD"] = "not bars"
        market.quotes["ODD"] = {"price": "101", "open": None}

        rows = await engine.tick(["NVDA", "BAD", "ODD"])

        assert [r["ticker"] for r in rows] == ["NVDA", "BAD", "ODD"]
        assert rows[0]["relationship"] == "Near Pivot"
        for row in rows[1:]:
            assert row["relationship"] == "Unknown"
            assert row["trend"] == "Unknown"
            assert row["levels"] is None
            assert row["currentPrice"] is None

    @pytest.mark.asyncio
    async def test_snapshot_error_becomes_unknown_row(self, engine, market, bus, monkeypatch):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.2)
        market.set_previous_day("AMD", 150, 100, 110, price=130)
        original = engine.build_snapshot

        async def flaky(ticker, timestamp=None):
            if ticker == "AMD":
                raise TypeError("unexpected payload")
            return await original(ticker, timestamp)

        monkeypatch.setattr(engine, "build_snapshot", flaky)
        rows = await engine.tick(["NVDA", "AMD"])

        assert rows[0]["relationship"] == "Near Pivot"
        assert rows[1]["ticker"] == "AMD"
        assert rows[1]["relationship"] == "Unknown"
        assert rows[1]["trend"] == "Unknown"
        assert rows[1]["cprRelationship"] == "Unknown"
        assert rows[1]["timestamp"] == rows[0]["timestamp"]
        assert bus.of_type("pivotUpdate")[0].data == rows


class TestRelationshipTolerance:
    """Test the Near Pivot band through the engine."""

    @pytest.mark.asyncio
    async def test_default_band_is_inclusive(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.5)
        assert (await engine.build_snapshot("NVDA")).relationship == "Near Pivot"
        market.quotes["NVDA"]["price"] = 99.5
        assert (await engine.build_snapshot("NVDA")).relationship == "Near Pivot"
        market.quotes["NVDA"]["price"] = 100.75
        assert (await engine.build_snapshot("NVDA")).relationship == "Above Pivot"

    @pytest.mark.asyncio
    async def test_configured_band(self, market, bus):
        engine = PivotEngine(market, bus, rel_tol=0.25)
        market.set_previous_day("NVDA", 110, 90, 100, price=100.25)
        assert (await engine.build_snapshot("NVDA")).relationship == "Near Pivot"
        market.quotes["NVDA"]["price"] = 100.3
        assert (await engine.build_snapshot("NVDA")).relationship == "Above Pivot"
        market.quotes["NVDA"]["price"] = 99.7
        assert (await engine.build_snapshot("NVDA")).relationship == "Below Pivot"


class TestCprComparison:
    """Test the fields comparing today's CPR with the previous session's."""

    @pytest.mark.asyncio
    async def test_higher_value_continuation(self, engine, market):
        market.set_sessions("NVDA", (110, 90, 100), (150, 100, 140), price=131.0)
        wire = (await engine.build_snapshot("NVDA")).to_wire()

        assert wire["levels"]["P"] == 130
        assert wire["cprRelationship"] == "Higher Value"
        assert wire["cprTrend"] == "Bullish Continuation"
        assert wire["relationship"] == "Above Pivot"
        assert wire["trend"] == "Up (>= Pivot)"

    @pytest.mark.asyncio
    async def test_lower_value_reversal(self, engine, market):
        market.set_sessions("AMD", (150, 100, 140), (110, 90, 100), price=108.0)
        snapshot = await engine.build_snapshot("AMD")

        assert snapshot.cpr_relationship == "Lower Value"
        assert snapshot.cpr_trend == "Bullish Trend Reversal"

    @pytest.mark.asyncio
    async def test_configured_cpr_tolerance(self, market, bus):
        market.set_sessions("MU", (110, 90, 100), (110.3, 90.3, 100.3), price=100)
        default = await PivotEngine(market, bus).build_snapshot("MU")
        loose = await PivotEngine(market, bus, cpr_tol=0.5).build_snapshot("MU")

        assert default.cpr_relationship == "Higher Value"
        assert loose.cpr_relationship == "No change"
        assert loose.cpr_trend == "Developing"

    @pytest.mark.asyncio
    async def test_two_bars_leave_comparison_unknown(self, engine, market):
        market.set_previous_day("NVDA", 110, 90, 100, price=100.2)
        snapshot = await engine.build_snapshot("NVDA")

        assert snapshot.cpr_relationship == "Unknown"
        assert snapshot.cpr_trend == "Developing"

    @pytest.mark.asyncio
    async def test_level_text(self, engine, market):
        market.set_previous_day("NVDA", 110.0, 90.0, 100.0, price=100.2)
        snapshot = await engine.build_snapshot("NVDA")

        assert snapshot.pivot_levels_text.startswith("R5 122.0 | R4 111.0 | R3 105.5 | PrevHigh 110.0")
        assert snapshot.pivot_levels_text.endswith("PrevLow 90.0 | S3 94.5 | S4 89.0 | S5 78.0")
        assert snapshot.to_wire()["pivotLevelsText"] == snapshot.pivot_levels_text

    @pytest.mark.asyncio
    async def test_level_text_empty_without_levels(self, engine, market):
        market.quotes["NEW"] = {"price": 9.8, "open": 9.6}
        assert (await engine.build_snapshot("NEW")).pivot_levels_text == ""
