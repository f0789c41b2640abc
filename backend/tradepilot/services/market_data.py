"""
Market Data Gateway - Latest quotes for an agent's symbol universe.

Providers:
- Alpaca data API (stocks and crypto snapshots)
- Synthetic quotes around a fixed base-price table, used as a fallback for
  symbols the live feed could not price and when no credentials are set

Synthetic quotes are always marked with ``synthetic=True``.
"""

import asyncio
import logging
import random
import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Optional

import aiohttp

from ..core.config import Settings, get_settings
from ..core.errors import MarketDataError
from ..models.market import Quote

logger = logging.getLogger(__name__)


STOCK_SYMBOLS = ["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "NVDA", "META"]
CRYPTO_SYMBOLS = ["BTCUSD", "ETHUSD"]
MIXED_SYMBOLS = ["AAPL", "MSFT", "GOOGL", "TSLA", "NVDA", "BTCUSD", "ETHUSD"]

# Reference prices for synthetic quotes
BASE_PRICES: dict[str, float] = {
    "AAPL": 178,
    "MSFT": 380,
    "GOOGL": 140,
    "AMZN": 155,
    "TSLA": 245,
    "NVDA": 495,
    "META": 320,
    "NFLX": 445,
    "AMD": 115,
    "INTC": 45,
    "BTCUSD": 43500,
    "ETHUSD": 2300,
}

SYNTHETIC_VOLATILITY = 0.02
SYNTHETIC_SPREAD = 0.001


def get_symbols_for_market_type(market_type: str) -> list[str]:
    """Symbol universe polled for an agent's market scope"""
    if market_type == "stocks":
        return list(STOCK_SYMBOLS)
    if market_type == "crypto":
        return list(CRYPTO_SYMBOLS)
    if market_type == "both":
        return list(MIXED_SYMBOLS)
    return ["AAPL", "MSFT", "GOOGL"]


def is_crypto_symbol(symbol: str) -> bool:
    compact = symbol.strip().upper().replace("/", "").replace("-", "")
    return compact.endswith("USD") and len(compact) >= 6


def to_alpaca_crypto_symbol(symbol: str) -> str:
    """BTCUSD -> BTC/USD"""
    compact = symbol.strip().upper().replace("/", "").replace("-", "")
    return f"{compact[:-3]}/USD"


class MarketDataGateway(ABC):
    """Source of latest quotes"""

    @abstractmethod
    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """
        Fetch latest quotes.

        Returns a mapping keyed by symbol. An empty mapping means no data
        is available for this tick.
        """
        pass


class NullMarketDataGateway(MarketDataGateway):
    """No provider configured. Always returns no data."""

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        return {}


class SyntheticMarketDataGateway(MarketDataGateway):
    """
    Synthetic quotes: base price with +/-1% noise, 0.1% spread.

    Pass a ``seed`` for reproducible output.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        return {symbol: self.quote(symbol) for symbol in symbols}

    def quote(self, symbol: str) -> Quote:
        base_price = BASE_PRICES.get(symbol)
        if base_price is None:
            base_price = self._rng.random() * 200 + 50
        change = (self._rng.random() - 0.5) * base_price * SYNTHETIC_VOLATILITY
        price = base_price + change
        spread = price * SYNTHETIC_SPREAD

        return Quote(
            symbol=symbol,
            price=round(price, 2),
            bid=round(price - spread / 2, 2),
            ask=round(price + spread / 2, 2),
            volume=float(self._rng.randint(0, 10_000_000)),
            change=round(change, 2),
            change_percent=round(change / base_price * 100, 2),
            high=round(price * 1.02, 2),
            low=round(price * 0.98, 2),
            open=base_price,
            close=price,
            timestamp=datetime.now(UTC),
            synthetic=True,
        )


class AlpacaMarketDataGateway(MarketDataGateway):
    """
    Alpaca data API.

    Stocks: latest quote, latest trade and snapshot per symbol.
    Crypto: one batched snapshot request.
    Symbols the feed could not price are filled from ``fallback``.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = "https://data.alpaca.markets",
        timeout: int = 15,
        fallback: Optional[MarketDataGateway] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fallback = fallback
        self._headers = {
            "APCA-API-KEY-ID": api_key,
            "APCA-API-SECRET-KEY": api_secret,
        }

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        stocks = [s for s in symbols if not is_crypto_symbol(s)]
        crypto = [s for s in symbols if is_crypto_symbol(s)]
        quotes: dict[str, Quote] = {}

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(headers=self._headers, timeout=timeout) as session:
            results = await asyncio.gather(
                *(self._fetch_stock(session, symbol) for symbol in stocks),
                return_exceptions=True,
            )
            for symbol, result in zip(stocks, results):
                if isinstance(result, Exception):
                    logger.warning(f"Quote fetch failed for {symbol}: {result}")
                elif result is not None:
                    quotes[symbol] = result

            if crypto:
                try:
                    quotes.update(await self._fetch_crypto(session, crypto))
                except MarketDataError as e:
                    logger.warning(f"Crypto snapshot fetch failed: {e}")

        missing = [s for s in symbols if s not in quotes]
        if missing and self.fallback is not None:
            logger.info(f"Filling {len(missing)} symbols with fallback quotes: {missing}")
            quotes.update(await self.fallback.get_quotes(missing))
        return quotes

    async def _get_json(
        self,
        session: aiohttp.ClientSession,
        path: str,
        params: Optional[dict[str, str]] = None,
    ) -> Optional[dict[str, Any]]:
        try:
            async with session.get(f"{self.base_url}{path}", params=params) as response:
                if response.status == 200:
                    return await response.json()
                if response.status == 404:
                    return None
                detail = (await response.text())[:200]
                raise MarketDataError(
                    f"Alpaca data error {response.status} for {path}: {detail}"
                )
        except aiohttp.ClientError as e:
            raise MarketDataError(f"Alpaca data request failed for {path}: {e}") from e
        except asyncio.TimeoutError as e:
            raise MarketDataError(f"Alpaca data request timed out for {path}") from e

    async def _fetch_stock(
        self, session: aiohttp.ClientSession, symbol: str
    ) -> Optional[Quote]:
        quote_data, trade_data, snapshot = await asyncio.gather(
            self._get_json(session, f"/v2/stocks/{symbol}/quotes/latest"),
            self._get_json(session, f"/v2/stocks/{symbol}/trades/latest"),
            self._get_json(session, f"/v2/stocks/{symbol}/snapshot"),
        )
        if not quote_data or not quote_data.get("quote"):
            return None
        return build_quote(
            symbol,
            quote_data["quote"],
            (trade_data or {}).get("trade"),
            snapshot,
        )

    async def _fetch_crypto(
        self, session: aiohttp.ClientSession, symbols: list[str]
    ) -> dict[str, Quote]:
        by_pair = {to_alpaca_crypto_symbol(s): s for s in symbols}
        payload = await self._get_json(
            session,
            "/v1beta3/crypto/us/snapshots",
            params={"symbols": ",".join(by_pair)},
        )
        snapshots = (payload or {}).get("snapshots") or {}
        quotes: dict[str, Quote] = {}
        for pair, snapshot in snapshots.items():
            symbol = by_pair.get(pair)
            if symbol is None or not snapshot or not snapshot.get("latestQuote"):
                continue
            quote = build_quote(
                symbol,
                snapshot["latestQuote"],
                snapshot.get("latestTrade"),
                snapshot,
            )
            if quote is not None:
                quotes[symbol] = quote
        return quotes


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an RFC 3339 timestamp; Alpaca sends nanosecond precision."""
    if not value:
        return datetime.now(UTC)
    text = value.replace("Z", "+00:00")
    match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})(\.\d+)?(.*)$", text)
    if match:
        fraction = (match.group(2) or "")[:7]
        text = f"{match.group(1)}{fraction}{match.group(3)}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return datetime.now(UTC)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def build_quote(
    symbol: str,
    quote: dict[str, Any],
    trade: Optional[dict[str, Any]],
    snapshot: Optional[dict[str, Any]],
) -> Optional[Quote]:
    """
    Merge Alpaca latest quote, latest trade and snapshot payloads.

    Price is the last trade, else the ask, else the bid. Change is measured
    against the previous daily close. Returns None when no price is usable.
    """
    trade = trade or {}
    snapshot = snapshot or {}
    daily = snapshot.get("dailyBar") or {}
    prev = snapshot.get("prevDailyBar") or {}

    price = trade.get("p") or quote.get("ap") or quote.get("bp") or 0
    if not price or price <= 0:
        return None

    prev_close = prev.get("c") or price
    change = price - prev_close
    change_percent = change / prev_close * 100 if prev_close > 0 else 0.0

    timestamp = parse_timestamp(trade.get("t") or quote.get("t"))
    return Quote(
        symbol=symbol,
        price=float(price),
        bid=float(quote.get("bp") or 0),
        ask=float(quote.get("ap") or 0),
        volume=float(trade.get("s") or quote.get("as") or 0),
        change=float(change),
        change_percent=float(change_percent),
        high=float(daily.get("h") or prev.get("h") or 0),
        low=float(daily.get("l") or prev.get("l") or 0),
        open=float(daily.get("o") or prev.get("o") or 0),
        close=float(daily.get("c") or prev.get("c") or 0),
        timestamp=timestamp,
        synthetic=False,
    )


def create_market_data_gateway(settings: Optional[Settings] = None) -> MarketDataGateway:
    """
    Build the configured gateway.

    With broker credentials: Alpaca, optionally backed by synthetic quotes.
    Without: synthetic quotes if enabled, otherwise no data.
    """
    settings = settings or get_settings()
    synthetic = SyntheticMarketDataGateway() if settings.synthetic_market_data else None

    if settings.has_broker_credentials:
        return AlpacaMarketDataGateway(
            api_key=settings.alpaca_api_key,
            api_secret=settings.alpaca_api_secret,
            base_url=settings.alpaca_data_url,
            timeout=settings.broker_timeout,
            fallback=synthetic,
        )
    if synthetic is not None:
        logger.warning("Alpaca credentials not configured, using synthetic market data")
        return synthetic
    logger.warning("No market data provider configured")
    return NullMarketDataGateway()
