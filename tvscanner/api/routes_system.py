"""
PURPOSE: Health and pivot snapshot routes for TV Scanner.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request

from tvscanner.core.rate_limit import READ_LIMIT, limiter
from tvscanner.utils.time_utils import utc_now_iso

router = APIRouter(tags=["system"])


@router.get("/health")
async def health() -> Dict[str, Any]:
    """Liveness check."""
    return {"ok": True, "time": utc_now_iso()}


@router.get("/api/pivots")
@limiter.limit(READ_LIMIT)
async def get_pivots(request: Request) -> Dict[str, Any]:
    """
    PURPOSE: Return the pivot snapshots of the last completed tick.

    Returns:
        dict: {pivots: [...], tickers: [...], count: int}
    """
    state = request.app.state
    pivots = state.pivot_engine.latest()
    return {
        "pivots": pivots,
        "tickers": list(state.pivot_scheduler.tickers),
        "count": len(pivots),
    }
