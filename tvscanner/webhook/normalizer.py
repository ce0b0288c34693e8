"""
PURPOSE: Normalize raw TradingView webhook payloads into AlertEvent objects.

TradingView posts exactly what the user typed into the alert "Message" box,
so the body may arrive as a JSON object, as text holding JSON, as JSON that
was encoded twice, or wrapped as {"message": "<json>"}. Field names are
accepted in both capitalized and lower-case form.

CALLED BY:
    - tvscanner/webhook/processor.py
"""

import json
from typing import Any, Dict, Optional

from tvscanner.alerts.models import AlertEvent
from tvscanner.config.constants import TIMEFRAME_ALIASES, Direction
from tvscanner.core.errors import AlertValidationError
from tvscanner.utils.time_utils import now_ms, to_hhmm

MAX_DECODE_ATTEMPTS = 2

REQUIRED_FIELDS = ("ticker", "timeframe", "direction", "time")


def decode_payload(raw: Any) -> Dict[str, Any]:
    """
    PURPOSE: Unwrap a webhook body into a dict of alert fields.

    Performs at most two decode steps (JSON text, or a "message" field holding
    JSON text). When a decode step fails, the last successfully decoded value
    is kept.

    Args:
        raw: Request body as dict, str or bytes.

    Returns:
        dict: Decoded fields; {} when the result is not an object.

    Examples:
        '{"Ticker": "NVDA"}'                  → {"Ticker": "NVDA"}
        '"{\\"Ticker\\": \\"NVDA\\"}"'        → {"Ticker": "NVDA"}
        {"message": '{"Ticker": "NVDA"}'}     → {"Ticker": "NVDA"}
    """
    value = raw
    for _ in range(MAX_DECODE_ATTEMPTS):
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8", errors="replace")

        if isinstance(value, str):
            encoded = value
        elif isinstance(value, dict) and _is_message_wrapper(value):
            encoded = value["message"]
        else:
            break

        try:
            value = json.loads(encoded)
        except ValueError:
            break

    return value if isinstance(value, dict) else {}


def _is_message_wrapper(value: Dict[str, Any]) -> bool:
    return isinstance(value.get("message"), str) and not _first(value, "Ticker", "ticker")


def _first(body: Dict[str, Any], *keys: str) -> Optional[Any]:
    """Return the first truthy value among keys, else None."""
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_ticker(value: Any) -> str:
    """
    Uppercase a symbol and strip any exchange prefix.

    Examples:
        "nvda"         → "NVDA"
        "NASDAQ:NVDA"  → "NVDA"
    """
    if value is None:
        return ""
    return str(value).strip().upper().split(":")[-1].strip()


def normalize_timeframe(value: Any) -> str:
    """
    Canonicalize known timeframe tags; pass anything else through trimmed.

    Examples:
        "ai_5M"   → "AI_5m"
        "AI_60M"  → "AI_1h"
        "1H"      → "1H"
    """
    if value is None:
        return ""
    text = str(value).strip()
    return TIMEFRAME_ALIASES.get(text.upper(), text)


def classify_direction(value: Any) -> Direction:
    """
    Sell when the alert text mentions "sell" anywhere (case-insensitive),
    otherwise Buy. Missing or malformed values default to Buy.
    """
    if value is None:
        return Direction.BUY
    return Direction.SELL if "sell" in str(value).lower() else Direction.BUY


def normalize_alert(raw: Any) -> AlertEvent:
    """
    PURPOSE: Build an AlertEvent from a raw webhook payload.

    CALLED BY: WebhookProcessor.handle(), WebhookProcessor.handle_manual()

    Args:
        raw: Request body in any accepted shape.

    Returns:
        AlertEvent: Normalized alert.

    Raises:
        AlertValidationError: ticker, timeframe, direction or time is empty.
    """
    body = decode_payload(raw)

    fields = {
        "ticker": normalize_ticker(_first(body, "Ticker", "ticker")),
        "timeframe": normalize_timeframe(_first(body, "Timeframe", "timeframe")),
        "direction": classify_direction(_first(body, "Alert", "alert")),
        "time": to_hhmm(_first(body, "Time", "time", "timenow") or now_ms()),
    }

    missing = [name for name in REQUIRED_FIELDS if not fields[name]]
    if missing:
        raise AlertValidationError(missing)

    return AlertEvent(**fields)
