"""Quote lookups straight from the upstream providers (no snapshot involved)."""
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_services
from app.core.errors import NotFoundError
from app.services.container import Services

router = APIRouter()


@router.get("/{ticker}")
def get_quote(ticker: str, exchange: str | None = None, services: Services = Depends(get_services)):
    return services.fetcher.fetch_price(ticker, exchange).to_dict()


@router.get("/{ticker}/historical")
def get_historical(
    ticker: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    exchange: str | None = None,
    services: Services = Depends(get_services),
):
    """Daily close for one past trading day; 404 when the provider has no bar for it."""
    bar = services.fetcher.fetch_daily_close(ticker, date, exchange)
    if bar is None:
        raise NotFoundError(f"No daily price for {ticker.upper()} on {date}")
    return bar.to_dict()
