"""Price-alert route — single-symbol quote polled by the alert widgets.

Shares the `prices` cache and budget with /api/eodhd/price, so an alert
poll and a ticker refresh for the same symbol cost one upstream call.
"""

from fastapi import APIRouter, Depends, Query

from errors import MarketFeedError, MissingParameterError
from routes.deps import client_id, get_optimizer
from routes.eodhd import require_eodhd
from services import eodhd
from services.api_optimizer import APIOptimizer

router = APIRouter(prefix="/api")


@router.get("/price-alert", dependencies=[Depends(require_eodhd)])
async def price_alert(
    symbol: str | None = Query(None),
    optimizer: APIOptimizer = Depends(get_optimizer),
    client: str = Depends(client_id),
) -> dict:
    """Latest price for one symbol, or 404 when upstream has none."""
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise MissingParameterError("MISSING_SYMBOL", "Symbol parameter required")

    quotes = await optimizer.fetch_through(
        "prices",
        {"symbols": symbol},
        client,
        lambda: eodhd.get_prices([symbol]),
    )
    quote = next((q for q in quotes if q.get("price") is not None), None)
    if quote is None:
        raise MarketFeedError(f"Price not found for symbol {symbol}", status_code=404, code="PRICE_NOT_FOUND")

    return {
        "symbol": symbol,
        "price": quote["price"],
        "change": quote["change"],
        "changePct": quote["changePct"],
        "timestamp": quote["ts"],
        "source": "eodhd",
    }
