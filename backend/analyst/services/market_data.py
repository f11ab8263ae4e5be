from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Protocol

import httpx

from analyst.config import Settings
from analyst.errors import MarketDataError

logger = logging.getLogger(__name__)

_SYMBOL_RE = re.compile(r"[A-Z][A-Z0-9.\-]{0,9}")


def normalize_ticker(raw: Any) -> str:
    token = str(raw or "").upper().strip()
    token = token.split(":")[-1].strip().lstrip("$")
    token = re.sub(r"\s+", "", token)
    if not _SYMBOL_RE.fullmatch(token):
        raise ValueError(f"Invalid ticker symbol: {raw!r}")
    return token


def _safe_float(value: Any) -> float | None:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


class MarketDataProvider(Protocol):
    async def get_realtime_snapshot(self, ticker: str) -> Dict[str, Any] | None: ...

    async def get_historical_prices(self, ticker: str, days: int = 30) -> List[Dict[str, Any]]: ...

    async def get_ticker_details(self, ticker: str) -> Dict[str, Any] | None: ...


class _HttpMarketClient:
    provider_label = "Market data"
    key_param = "apikey"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        *,
        timeout_seconds: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def _get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise MarketDataError(f"{self.provider_label} API key is not configured")

        query = dict(params or {})
        query[self.key_param] = self.api_key
        url = f"{self.base_url}/{path.lstrip('/')}"

        if self._client is not None:
            resp = await self._client.get(url, params=query)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                resp = await client.get(url, params=query)

        if resp.status_code == 429:
            raise MarketDataError("RATE_LIMIT", status_code=429)
        if resp.status_code >= 400:
            raise MarketDataError(f"{self.provider_label} API Error: {resp.status_code}", status_code=resp.status_code)
        return resp.json()


class FMPClient(_HttpMarketClient):
    provider_label = "FMP"
    key_param = "apikey"

    async def get_realtime_snapshot(self, ticker: str) -> Dict[str, Any] | None:
        data = await self._get("quote", {"symbol": ticker})
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
        return None

    async def get_historical_prices(self, ticker: str, days: int = 30) -> List[Dict[str, Any]]:
        try:
            data = await self._get("historical-price-eod/full", {"symbol": ticker, "timeseries": days})
        except (MarketDataError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Historical data fetch failed for %s: %s", ticker, exc)
            return []
        # The endpoint answers either with a bare list or with {"historical": [...]}.
        rows = data.get("historical") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            return []
        # Some plans ignore `timeseries`, so the window is enforced here too.
        return [row for row in rows if isinstance(row, dict)][: max(0, days)]

    async def get_ticker_details(self, ticker: str) -> Dict[str, Any] | None:
        data = await self._get("profile", {"symbol": ticker})
        if isinstance(data, list) and data and isinstance(data[0], dict):
            return data[0]
        return None


def _polygon_date(value: Any) -> str | None:
    millis = _safe_float(value)
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc).date().isoformat()


class PolygonClient(_HttpMarketClient):
    """Polygon.io backend; payloads are reshaped to the FMP field names."""

    provider_label = "Polygon"
    key_param = "apiKey"

    async def get_realtime_snapshot(self, ticker: str) -> Dict[str, Any] | None:
        try:
            data = await self._get(f"/v2/snapshot/locale/us/markets/stocks/tickers/{ticker}")
        except MarketDataError as exc:
            # The snapshot endpoint needs a paid plan; previous close works on the free tier.
            if exc.status_code == 429:
                raise
            logger.warning("Snapshot failed for %s (%s), falling back to previous close", ticker, exc)
            return await self.get_previous_close(ticker)

        snapshot = data.get("ticker") if isinstance(data, dict) else None
        if not isinstance(snapshot, dict):
            return None
        day = snapshot.get("day") if isinstance(snapshot.get("day"), dict) else {}
        last_trade = snapshot.get("lastTrade") if isinstance(snapshot.get("lastTrade"), dict) else {}
        return {
            "symbol": ticker,
            "price": _safe_float(last_trade.get("p")) or _safe_float(day.get("c")),
            "changesPercentage": _safe_float(snapshot.get("todaysChangePerc")),
            "change": _safe_float(snapshot.get("todaysChange")),
            "dayLow": _safe_float(day.get("l")),
            "dayHigh": _safe_float(day.get("h")),
            "volume": _safe_float(day.get("v")),
        }

    async def get_previous_close(self, ticker: str) -> Dict[str, Any] | None:
        data = await self._get(f"/v2/aggs/ticker/{ticker}/prev")
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return None
        bar = results[0]
        return {
            "symbol": ticker,
            "price": _safe_float(bar.get("c")),
            "dayLow": _safe_float(bar.get("l")),
            "dayHigh": _safe_float(bar.get("h")),
            "volume": _safe_float(bar.get("v")),
        }

    async def get_historical_prices(self, ticker: str, days: int = 30) -> List[Dict[str, Any]]:
        to_date = datetime.now(timezone.utc).date()
        from_date = to_date - timedelta(days=days)
        data = await self._get(
            f"/v2/aggs/ticker/{ticker}/range/1/day/{from_date.isoformat()}/{to_date.isoformat()}",
            {"sort": "asc", "limit": 365},
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []
        rows = [
            {
                "date": _polygon_date(bar.get("t")),
                "open": _safe_float(bar.get("o")),
                "high": _safe_float(bar.get("h")),
                "low": _safe_float(bar.get("l")),
                "close": _safe_float(bar.get("c")),
                "volume": _safe_float(bar.get("v")),
            }
            for bar in results
            if isinstance(bar, dict)
        ]
        rows.reverse()
        return rows[: max(0, days)]

    async def get_ticker_details(self, ticker: str) -> Dict[str, Any] | None:
        data = await self._get(f"/v3/reference/tickers/{ticker}")
        details = data.get("results") if isinstance(data, dict) else None
        if not isinstance(details, dict):
            return None
        return {
            "symbol": ticker,
            "companyName": details.get("name"),
            "marketCap": _safe_float(details.get("market_cap")),
            "sector": None,
            "industry": details.get("sic_description"),
            "description": details.get("description"),
            "exchange": details.get("primary_exchange"),
            "website": details.get("homepage_url"),
            "ceo": None,
        }


def build_market_data_client(settings: Settings, client: httpx.AsyncClient | None = None) -> MarketDataProvider:
    timeout = float(settings.market_data_timeout_seconds)
    if settings.market_data_provider == "polygon":
        return PolygonClient(settings.polygon_api_key, settings.polygon_api_url, timeout_seconds=timeout, client=client)
    return FMPClient(settings.fmp_api_key, settings.fmp_api_url, timeout_seconds=timeout, client=client)
