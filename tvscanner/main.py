"""
PURPOSE: FastAPI application factory and lifecycle management for TV Scanner.

Initializes the FastAPI application with:
- Webhook, alert, pivot and health routes plus the /ws/live WebSocket
- The owned service objects on app.state (processor, pivot engine, price feed
  and their schedulers)
- Exception handlers mapping the error taxonomy to HTTP responses
- Startup (event bus, WebSocket fan-out, schedulers) and shutdown
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Iterable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from tvscanner import __version__
from tvscanner.api import api_router
from tvscanner.api.routes_ws import ConnectionManager, router as ws_router, setup_ws_event_handlers
from tvscanner.config.settings import Settings, settings as default_settings
from tvscanner.core.errors import AlertValidationError, InternalError, ScannerError
from tvscanner.core.rate_limit import limiter
from tvscanner.events.bus import EventBus, set_event_bus
from tvscanner.market.price_feed import PriceFeed
from tvscanner.market.provider import MarketDataProvider, YahooMarketData
from tvscanner.pivots.engine import PivotEngine
from tvscanner.pivots.resolver import resolve_tickers
from tvscanner.pivots.scheduler import TickScheduler
from tvscanner.utils.logger import get_logger, setup_logging
from tvscanner.webhook.processor import WebhookProcessor

logger = get_logger(__name__)


# ════════════════════════════════════════════════════════════════
# Lifecycle Events
# ════════════════════════════════════════════════════════════════


async def on_startup(app: FastAPI) -> None:
    """
    PURPOSE: Connect the event bus, wire the WebSocket fan-out and start the schedulers.

    CALLED BY: FastAPI lifespan startup
    """
    config: Settings = app.state.settings
    try:
        if not config.is_webhook_secured():
            logger.warning(
                "webhook_unsecured",
                message="TV_SECRET is not set. /tv-webhook accepts every caller.",
            )

        event_bus: EventBus = app.state.event_bus
        await event_bus.connect()
        set_event_bus(event_bus)

        await setup_ws_event_handlers(event_bus, app.state.ws_manager)
        logger.info("ws_event_handlers_registered")

        app.state.pivot_scheduler.start()
        app.state.price_scheduler.start()

        logger.info(
            "application_startup_complete",
            data_dir=config.DATA_DIR,
            pivot_tickers=app.state.pivot_scheduler.tickers,
        )

    except Exception as e:
        logger.critical("application_startup_failed", error=str(e))
        raise


async def on_shutdown(app: FastAPI) -> None:
    """
    PURPOSE: Stop the schedulers and close the event bus.

    CALLED BY: FastAPI lifespan shutdown
    """
    try:
        logger.info("application_shutdown_starting")
        await app.state.pivot_scheduler.stop()
        await app.state.price_scheduler.stop()
        await app.state.event_bus.disconnect()
        set_event_bus(None)
        logger.info("application_shutdown_complete")
    except Exception as e:
        logger.error("application_shutdown_error", error=str(e))
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    PURPOSE: Manage application lifespan with startup and shutdown events.
    """
    await on_startup(app)
    yield
    await on_shutdown(app)


# ════════════════════════════════════════════════════════════════
# Exception Handlers
# ════════════════════════════════════════════════════════════════


async def scanner_exception_handler(request: Request, exc: ScannerError) -> JSONResponse:
    """
    PURPOSE: Map the error taxonomy to HTTP responses.

    Only the public message goes back to the caller.
    """
    content = {"ok": False, "error": exc.public_message}
    if isinstance(exc, AlertValidationError):
        content["missing"] = exc.missing
        logger.warning("alert_rejected", path=request.url.path, missing=exc.missing)
    elif isinstance(exc, InternalError):
        logger.error("request_failed", path=request.url.path, action=exc.action)

    return JSONResponse(status_code=exc.status_code, content=content)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    PURPOSE: Handle unexpected exceptions with logging and a safe error response.
    """
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exception_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "Internal error"},
    )


# ════════════════════════════════════════════════════════════════
# FastAPI Application Factory
# ════════════════════════════════════════════════════════════════


def create_app(
    config: Optional[Settings] = None,
    provider: Optional[MarketDataProvider] = None,
    tickers: Optional[Iterable[str]] = None,
) -> FastAPI:
    """
    PURPOSE: Create and configure the FastAPI application.

    Args:
        config: Settings to use (defaults to the environment-loaded settings).
        provider: Market data provider (defaults to YahooMarketData).
        tickers: Explicit pivot ticker list, overriding every other source.

    Returns:
        FastAPI: Configured application ready to run.
    """
    config = config or default_settings
    setup_logging(config.LOG_LEVEL)
    Path(config.DATA_DIR).mkdir(parents=True, exist_ok=True)

    app = FastAPI(
        title="TV Scanner",
        description="TradingView alert scanner with pivot/CPR dashboard feed",
        version=__version__,
        lifespan=lifespan,
    )

    # ────────────────────────────────────────────────────────────
    # Owned service objects
    # ────────────────────────────────────────────────────────────

    event_bus = EventBus(config.REDIS_URL)
    processor = WebhookProcessor.from_settings(config, event_bus)
    engine = PivotEngine(
        provider or YahooMarketData(),
        event_bus,
        rel_tol=config.PIVOT_REL_TOL,
        trend_tol=config.TREND_TOL,
        cpr_tol=config.CPR_TOL,
    )
    explicit = list(tickers) if tickers is not None else None
    scheduler = TickScheduler(
        engine,
        lambda: resolve_tickers(config, explicit, processor.timeframe_log)[0],
        interval=config.pivot_interval_seconds,
    )
    price_feed = PriceFeed(engine.provider, event_bus)
    price_scheduler = TickScheduler(
        price_feed,
        lambda: [row.ticker for row in processor.store.rows()],
        interval=config.price_feed_interval_seconds,
        name="price_feed",
        refresh_tickers=True,
    )

    app.state.settings = config
    app.state.event_bus = event_bus
    app.state.processor = processor
    app.state.pivot_engine = engine
    app.state.pivot_scheduler = scheduler
    app.state.price_feed = price_feed
    app.state.price_scheduler = price_scheduler
    app.state.ws_manager = ConnectionManager()

    # ────────────────────────────────────────────────────────────
    # Middleware
    # ────────────────────────────────────────────────────────────

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins(),
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    # ────────────────────────────────────────────────────────────
    # Routes & Exception Handlers
    # ────────────────────────────────────────────────────────────

    app.include_router(api_router)
    app.include_router(ws_router)

    app.add_exception_handler(ScannerError, scanner_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info(
        "fastapi_application_created",
        version=__version__,
        data_dir=config.DATA_DIR,
        webhook_secured=config.is_webhook_secured(),
    )

    return app


if __name__ == "__main__":
    """
    PURPOSE: Run the application with Uvicorn.

    Usage:
        python -m tvscanner.main
        OR
        uvicorn tvscanner.main:create_app --factory --host 0.0.0.0 --port 2709
    """
    import uvicorn

    uvicorn.run(
        "tvscanner.main:create_app",
        factory=True,
        host=default_settings.HOST,
        port=default_settings.PORT,
        log_level=default_settings.LOG_LEVEL.lower(),
    )
