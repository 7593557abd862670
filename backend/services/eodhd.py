"""EODHD market-data client.

Thin async wrapper over https://eodhd.com/api. Keys stay server-side; every
call appends `api_token` and `fmt=json`. Responses are reshaped into the
compact dicts the front-end widgets consume.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from config import settings
from errors import ServiceNotConfiguredError, UpstreamError

logger = logging.getLogger(__name__)

SERVICE = "EODHD"
PING_SYMBOL = "AAPL.US"


def is_configured() -> bool:
    return bool(settings.eodhd_api_key)


async def _get(path: str, params: dict[str, Any] | None = None) -> Any:
    if not is_configured():
        raise ServiceNotConfiguredError(SERVICE, "EODHD_API_KEY")

    query = {k: str(v) for k, v in (params or {}).items() if v not in (None, "")}
    query["api_token"] = settings.eodhd_api_key
    query["fmt"] = "json"

    try:
        async with httpx.AsyncClient(
            base_url=settings.eodhd_base_url,
            timeout=settings.eodhd_timeout_seconds,
            headers={"Accept": "application/json; charset=utf-8"},
        ) as client:
            resp = await client.get(path, params=query)
    except httpx.HTTPError as e:
        logger.warning("EODHD request to %s failed: %s", path, e)
        raise UpstreamError(SERVICE, detail=str(e) or type(e).__name__) from e

    if resp.is_error:
        logger.warning("EODHD %s returned %d", path, resp.status_code)
        raise UpstreamError(SERVICE, resp.status_code, detail=resp.text[:500])

    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamError(SERVICE, resp.status_code, detail="Invalid JSON from upstream") from e


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(record: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return default


def normalize_quote(raw: dict) -> dict:
    return {
        "symbol": _first(raw, "code", "symbol"),
        "price": _to_float(_first(raw, "close", "price")),
        "change": _to_float(raw.get("change")) or 0.0,
        "changePct": _to_float(_first(raw, "change_p", "change_percent")) or 0.0,
        "ts": int(_to_float(_first(raw, "timestamp", "ts", default=0)) or 0),
    }


def normalize_event(raw: dict) -> dict:
    return {
        "datetimeUtc": _first(raw, "date", "datetime"),
        "country": raw.get("country"),
        "event": raw.get("event"),
        "category": _first(raw, "category", "type"),
        "importance": str(raw.get("importance") or "").lower(),
        "previous": _first(raw, "previous", default=""),
        "forecast": _first(raw, "estimate", "forecast", default=""),
        "actual": _first(raw, "actual", default=""),
    }


def normalize_article(raw: dict) -> dict:
    return {
        "datetime": raw.get("date"),
        "title": raw.get("title"),
        "source": str(raw.get("source") or ""),
        "symbols": raw.get("symbols") or [],
        "url": raw.get("link") or raw.get("url") or "",
    }


def _as_list(data: Any) -> list:
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


async def search(query: str, limit: int = 15, type_: str = "all") -> list[dict]:
    """Symbol search, upstream results passed through."""
    data = await _get(f"/search/{quote(query, safe='')}", {"limit": limit, "type": type_})
    return _as_list(data)


async def get_prices(symbols: list[str]) -> list[dict]:
    """Real-time quotes. The first symbol goes in the path, the rest in `s`."""
    base, *rest = [s.upper() for s in symbols]
    data = await _get(f"/real-time/{quote(base, safe='')}", {"s": ",".join(rest) or None})
    return [normalize_quote(q) for q in _as_list(data) if isinstance(q, dict)]


async def get_calendar(
    start: str,
    end: str,
    country: str | None = None,
    type_: str | None = None,
    limit: int = 200,
) -> list[dict]:
    """Economic events between two dates (YYYY-MM-DD)."""
    data = await _get(
        "/economic-events",
        {"from": start, "to": end, "country": country, "type": type_, "limit": limit},
    )
    return [normalize_event(e) for e in _as_list(data) if isinstance(e, dict)]


async def get_news(
    symbols: str | None = None,
    tags: str | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    """Financial news filtered by symbols (`s`) or topic tags (`t`)."""
    data = await _get(
        "/news",
        {"s": symbols, "t": tags, "from": start, "to": end, "limit": limit, "offset": offset},
    )
    return [normalize_article(n) for n in _as_list(data) if isinstance(n, dict)]


async def ping() -> bool:
    """Fetch one known quote to confirm the key works."""
    data = await _get(f"/real-time/{PING_SYMBOL}")
    return bool(data)
