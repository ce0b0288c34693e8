"""
PURPOSE: TradingView webhook and alert API routes for TV Scanner.

    POST /tv-webhook?key=<secret>   TradingView alert webhook (shared secret)
    POST /sendAlert                 manual / test alert entry point
    GET  /api/alerts                consolidated ticker rows
    GET  /api/webhook/status        processor counters

TradingView cannot attach headers or JWTs to outbound webhooks, so the
webhook endpoint is protected by a shared secret passed in the query string.
The body is read raw because TradingView posts the alert message verbatim,
usually as text/plain. Only the read endpoints are rate limited; every
inbound alert is accepted.

CALLED BY:
    - TradingView alert webhooks (POST, public)
    - Dashboard / test scripts
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from tvscanner.core.errors import InternalError, ScannerError
from tvscanner.core.rate_limit import READ_LIMIT, limiter
from tvscanner.utils.logger import get_logger
from tvscanner.webhook.processor import WebhookProcessor

logger = get_logger(__name__)

router = APIRouter(tags=["webhook"])


# ════════════════════════════════════════════════════════════════
# Dependencies
# ════════════════════════════════════════════════════════════════


def get_webhook_processor(request: Request) -> WebhookProcessor:
    """
    PURPOSE: Return the WebhookProcessor owned by the running application.

    CALLED BY: FastAPI dependency injection
    """
    return request.app.state.processor


async def _read_body(request: Request) -> str:
    body = await request.body()
    return body.decode("utf-8", errors="replace") if body else ""


def _raise_webhook_route_error(action: str, error: Exception) -> None:
    """
    PURPOSE: Log an unexpected route failure and raise a generic InternalError.

    Raises:
        InternalError: Always; mapped to HTTP 500 by the app exception handler.
    """
    logger.error(
        "webhook_route_failed",
        action=action,
        error=str(error),
        exception_type=type(error).__name__,
    )
    raise InternalError(action, error) from error


# ════════════════════════════════════════════════════════════════
# Public Inbound Endpoints
# ════════════════════════════════════════════════════════════════


@router.post("/tv-webhook")
async def tradingview_webhook(
    request: Request,
    key: Optional[str] = Query(None),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    PURPOSE: Receive a TradingView alert and merge it into the alert store.

    The shared secret is checked before the body is read, so a rejected call
    has no side effects.

    Returns:
        dict: {"ok": true, "accepted": 1} or {"ok": true, "deduped": true}

    Raises:
        HTTP 403: Invalid or missing key (when a secret is configured).
        HTTP 400: Required alert field missing after normalization.
        HTTP 500: Internal processing failure.
    """
    processor.authorize(key)

    try:
        raw = await _read_body(request)
        logger.debug("webhook_raw_body", body=raw[:1000])
        return await processor.handle(raw)
    except ScannerError:
        raise
    except Exception as e:
        _raise_webhook_route_error("process TradingView alert", e)


@router.post("/sendAlert")
async def send_alert(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    PURPOSE: Manual alert entry point used by test senders and the dashboard.

    Unlike /tv-webhook there is no secret and no replay window, and the newest
    alert of any timeframe recolours the row.

    Returns:
        dict: {"success": true, "row": {...}}
    """
    try:
        raw = await _read_body(request)
        return await processor.handle_manual(raw)
    except ScannerError:
        raise
    except Exception as e:
        _raise_webhook_route_error("process manual alert", e)


# ════════════════════════════════════════════════════════════════
# Read Endpoints
# ════════════════════════════════════════════════════════════════


@router.get("/api/alerts")
@limiter.limit(READ_LIMIT)
async def get_alerts(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    PURPOSE: Return the consolidated alert rows, most recent first.

    Returns:
        dict: {alerts: [...], count: int}
    """
    alerts = processor.store.snapshot()
    return {"alerts": alerts, "count": len(alerts)}


@router.get("/api/webhook/status")
@limiter.limit(READ_LIMIT)
async def get_webhook_status(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    """
    PURPOSE: Return webhook processor counters and the URL hint for TradingView.
    """
    status_data = processor.get_status()
    status_data["webhook_url_hint"] = "/tv-webhook?key=<TV_SECRET>"
    return status_data
