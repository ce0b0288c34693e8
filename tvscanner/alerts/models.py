"""
Alert pipeline models.

AlertEvent is the normalized form of one webhook call; TickerRow is the
persisted, per-ticker consolidation of every event seen for that ticker.
TickerRow serializes with the dashboard's column names (Ticker, Time, AI_5m,
AI_15m, AI_1h, Zone).
"""

from pydantic import BaseModel, ConfigDict, Field

from tvscanner.config.constants import TF_1H, TF_5M, TF_15M, ZONE_BY_DIRECTION, Direction

# Timeframe tag -> TickerRow attribute holding that timeframe's last direction
SIGNAL_FIELDS = {
    TF_5M: "ai_5m",
    TF_15M: "ai_15m",
    TF_1H: "ai_1h",
}


class AlertEvent(BaseModel):
    """
    Normalized TradingView alert.

    Attributes:
        ticker: Uppercased symbol.
        timeframe: Timeframe tag (AI_5m, AI_15m, AI_1h or any other string).
        direction: Buy or Sell.
        time: Server-local HH:MM, or the raw value when it could not be parsed.
        zone: "green" for Buy, "red" for Sell.
    """

    ticker: str
    timeframe: str
    direction: Direction
    time: str
    zone: str = ""

    def model_post_init(self, __context) -> None:
        if not self.zone:
            self.zone = ZONE_BY_DIRECTION[self.direction].value

    @property
    def dedupe_key(self) -> str:
        """Composite replay-suppression key: ticker|timeframe|direction."""
        return f"{self.ticker}|{self.timeframe}|{self.direction.value}"

    @property
    def is_authoritative(self) -> bool:
        """True for 5-minute alerts, which own the row's time and zone."""
        return self.timeframe == TF_5M


class TickerRow(BaseModel):
    """One consolidated dashboard row per ticker."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ticker: str = Field(alias="Ticker")
    time: str = Field(default="", alias="Time")
    ai_5m: str = Field(default="", alias="AI_5m")
    ai_15m: str = Field(default="", alias="AI_15m")
    ai_1h: str = Field(default="", alias="AI_1h")
    zone: str = Field(default="", alias="Zone")

    @classmethod
    def from_event(cls, event: AlertEvent) -> "TickerRow":
        """
        PURPOSE: Build a fresh row holding only the event's timeframe signal.

        time is only taken from 5-minute events.
        """
        row = cls(
            ticker=event.ticker,
            time=event.time if event.is_authoritative else "",
            zone=event.zone,
        )
        row.set_signal(event.timeframe, event.direction.value)
        return row

    def set_signal(self, timeframe: str, direction: str) -> bool:
        """
        Store direction in the field for timeframe.

        Returns:
            bool: False when the timeframe has no column on the row.
        """
        field = SIGNAL_FIELDS.get(timeframe)
        if field is None:
            return False
        setattr(self, field, direction)
        return True

    def to_wire(self) -> dict:
        """Serialize with dashboard column names."""
        return self.model_dump(by_alias=True)
