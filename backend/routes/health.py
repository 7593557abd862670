"""Health, readiness and status routes."""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from config import settings
from routes.deps import get_optimizer
from services.api_optimizer import APIOptimizer

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.monotonic()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "liirat-api", "commit": settings.git_sha}


@router.get("/api/ping")
async def ping() -> dict:
    return {"message": "ping"}


@router.get("/api/status")
async def status(optimizer: APIOptimizer = Depends(get_optimizer)) -> dict:
    """Process status plus cache and rate-limiter occupancy."""
    missing = settings.validate()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - _started_at, 1),
        "commit": settings.git_sha,
        "optimizer": optimizer.get_stats(),
        "upstreams": {
            "eodhd": "missing_key" if "EODHD_API_KEY" in missing else "configured",
            "openai": "missing_key" if "OPENAI_API_KEY" in missing else "configured",
        },
    }
