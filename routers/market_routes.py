# routers/market_routes.py
"""
Read-through proxies for symbol search and spot prices. Upstream failures are
forwarded as 502 with the provider's message.
"""
from fastapi import APIRouter, HTTPException, Query

from services.market_data.market_service import (
    MarketDataError,
    get_price,
    search_crypto,
    search_stocks,
)

router = APIRouter()


@router.get("/search/stocks")
async def search_stock_symbols(
    q: str = Query("", description="Name or ticker fragment"),
    sort: str = Query("", description="'cap' to rank the top matches by market cap"),
):
    query = q.strip()
    if not query:
        return {"items": []}
    items = await search_stocks(query, sort_by_cap=sort.lower() == "cap")
    return {"items": items}


@router.get("/search/crypto")
async def search_crypto_symbols(q: str = Query("", description="Coin name or symbol")):
    query = q.strip()
    if not query:
        return {"items": []}
    try:
        items = await search_crypto(query)
    except MarketDataError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"items": items}


@router.get("/price")
async def get_spot_price(
    asset: str = Query("", description="stock | crypto"),
    symbol: str = Query(""),
):
    asset = asset.strip().lower()
    symbol = symbol.strip().upper()
    if not asset or not symbol:
        raise HTTPException(status_code=400, detail="Missing asset or symbol")
    if asset not in ("stock", "crypto"):
        raise HTTPException(status_code=400, detail="Unsupported asset")

    try:
        return await get_price(asset, symbol)
    except MarketDataError as e:
        raise HTTPException(status_code=502, detail=str(e))
