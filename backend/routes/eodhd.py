"""EODHD proxy routes — prices, calendar, news, symbol search.

Every route goes through the optimizer: cache first, then the caller's
rate-limit budget for the category, then upstream.

    GET /api/eodhd/search    → search    (1h cache, 30/min)
    GET /api/eodhd/price     → prices    (30s cache, 60/min)
    GET /api/eodhd/calendar  → calendar  (10m cache, 6/min)
    GET /api/eodhd/news      → news      (5m cache, 12/min)
    GET /api/eodhd/ping      → uncached connectivity check
"""

import logging

from fastapi import APIRouter, Depends, Query

from errors import MissingParameterError, ServiceNotConfiguredError
from routes.deps import client_id, get_optimizer
from services import eodhd
from services.api_optimizer import APIOptimizer

logger = logging.getLogger(__name__)


def require_eodhd() -> None:
    """Refuse before any budget is spent when the upstream key is missing."""
    if not eodhd.is_configured():
        raise ServiceNotConfiguredError(eodhd.SERVICE, "EODHD_API_KEY")


router = APIRouter(prefix="/api/eodhd", dependencies=[Depends(require_eodhd)])


def _split_symbols(symbols: str | None) -> list[str]:
    return [s.strip().upper() for s in (symbols or "").split(",") if s.strip()]


@router.get("/search")
async def search(
    q: str | None = Query(None),
    limit: int = Query(15, ge=1, le=100),
    type: str = Query("all"),
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
) -> dict:
    """Symbol lookup for the alert and ticker pickers."""
    if not q or not q.strip():
        raise MissingParameterError("MISSING_Q")
    q = q.strip()

    items = await optimizer.fetch_through(
        "search",
        {"q": q.lower(), "limit": limit, "type": type},
        client,
        lambda: eodhd.search(q, limit=limit, type_=type),
    )
    return {"ok": True, "items": items}


@router.get("/price")
async def price(
    symbols: str | None = Query(None),
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
) -> dict:
    """Latest quotes for a comma-separated symbol list."""
    symbol_list = _split_symbols(symbols)
    if not symbol_list:
        raise MissingParameterError("MISSING_SYMBOLS")

    items = await optimizer.fetch_through(
        "prices",
        {"symbols": ",".join(symbol_list)},
        client,
        lambda: eodhd.get_prices(symbol_list),
    )
    return {"ok": True, "items": items}


@router.get("/calendar")
async def calendar(
    start: str | None = Query(None, alias="from"),
    end: str | None = Query(None, alias="to"),
    country: str | None = Query(None),
    type: str | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
) -> dict:
    """Economic calendar events for a date range."""
    if not start or not end:
        raise MissingParameterError("MISSING_RANGE")

    items = await optimizer.fetch_through(
        "calendar",
        {"from": start, "to": end, "country": country or None, "type": type or None, "limit": limit},
        client,
        lambda: eodhd.get_calendar(start, end, country=country, type_=type, limit=limit),
    )
    return {"ok": True, "items": items}


@router.get("/news")
async def news(
    s: str | None = Query(None),
    t: str | None = Query(None),
    start: str | None = Query(None, alias="from"),
    end: str | None = Query(None, alias="to"),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
) -> dict:
    """News by symbols (`s`) or tags (`t`); one of the two is required."""
    if not s and not t:
        raise MissingParameterError("MISSING_S_OR_T")

    items = await optimizer.fetch_through(
        "news",
        {"s": s or None, "t": t or None, "from": start, "to": end, "limit": limit, "offset": offset},
        client,
        lambda: eodhd.get_news(s or None, t or None, start=start, end=end, limit=limit, offset=offset),
    )
    return {"ok": True, "items": items}


@router.get("/ping")
async def ping() -> dict:
    """Connectivity check against a known quote. Never cached."""
    reachable = await eodhd.ping()
    return {
        "ok": True,
        "status": "EODHD API connection successful",
        "test": "API key valid" if reachable else "API key test failed",
    }
