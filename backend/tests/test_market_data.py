"""
Tests for market data and news gateways.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from tradepilot.core.errors import MarketDataError
from tradepilot.models.market import Quote
from tradepilot.services.market_data import (
    BASE_PRICES,
    AlpacaMarketDataGateway,
    NullMarketDataGateway,
    SyntheticMarketDataGateway,
    build_quote,
    create_market_data_gateway,
    get_symbols_for_market_type,
    is_crypto_symbol,
    parse_timestamp,
    to_alpaca_crypto_symbol,
)
from tradepilot.services.news import (
    NewsAPIGateway,
    NullNewsGateway,
    build_news_query,
    create_news_gateway,
)


# ============================================================================
# Symbols
# ============================================================================


class TestSymbols:

    @pytest.mark.parametrize(
        "market_type, expected",
        [
            ("stocks", ["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "NVDA", "META"]),
            ("crypto", ["BTCUSD", "ETHUSD"]),
            ("both", ["AAPL", "MSFT", "GOOGL", "TSLA", "NVDA", "BTCUSD", "ETHUSD"]),
            ("forex", ["AAPL", "MSFT", "GOOGL"]),
        ],
    )
    def test_symbols_for_market_type(self, market_type, expected):
        assert get_symbols_for_market_type(market_type) == expected

    def test_symbols_are_copies(self):
        symbols = get_symbols_for_market_type("crypto")
        symbols.append("DOGEUSD")

        assert get_symbols_for_market_type("crypto") == ["BTCUSD", "ETHUSD"]

    @pytest.mark.parametrize(
        "symbol, expected",
        [("BTCUSD", True), ("eth/usd", True), ("SOL-USD", True), ("AAPL", False), ("USD", False)],
    )
    def test_is_crypto_symbol(self, symbol, expected):
        assert is_crypto_symbol(symbol) is expected

    def test_to_alpaca_crypto_symbol(self):
        assert to_alpaca_crypto_symbol("BTCUSD") == "BTC/USD"
        assert to_alpaca_crypto_symbol("eth-usd") == "ETH/USD"


# ============================================================================
# Synthetic quotes
# ============================================================================


class TestSyntheticMarketData:

    @pytest.mark.asyncio
    async def test_quotes_near_base_price(self):
        gateway = SyntheticMarketDataGateway(seed=42)

        quotes = await gateway.get_quotes(["AAPL", "BTCUSD"])

        for symbol, quote in quotes.items():
            base = BASE_PRICES[symbol]
            assert quote.synthetic is True
            assert abs(quote.price - base) <= base * 0.01 + 0.01
            assert quote.bid <= quote.price <= quote.ask

    @pytest.mark.asyncio
    async def test_seed_is_reproducible(self):
        first = await SyntheticMarketDataGateway(seed=7).get_quotes(["MSFT"])
        second = await SyntheticMarketDataGateway(seed=7).get_quotes(["MSFT"])

        assert first["MSFT"].price == second["MSFT"].price

    @pytest.mark.asyncio
    async def test_unknown_symbol_gets_price(self):
        quotes = await SyntheticMarketDataGateway(seed=1).get_quotes(["ZZZZ"])

        assert 45 <= quotes["ZZZZ"].price <= 255

    @pytest.mark.asyncio
    async def test_null_gateway_returns_nothing(self):
        assert await NullMarketDataGateway().get_quotes(["AAPL"]) == {}


# ============================================================================
# Alpaca payload handling
# ============================================================================


class TestBuildQuote:

    def test_prefers_last_trade_price(self):
        quote = build_quote(
            "AAPL",
            {"ap": 180.5, "bp": 180.0, "as": 3, "t": "2024-01-02T15:30:00.123456789Z"},
            {"p": 180.2, "s": 100, "t": "2024-01-02T15:30:01.5Z"},
            {"dailyBar": {"o": 178, "h": 181, "l": 177, "c": 180.2}, "prevDailyBar": {"c": 176.0}},
        )

        assert quote.price == 180.2
        assert quote.bid == 180.0
        assert quote.ask == 180.5
        assert quote.high == 181
        assert quote.change == pytest.approx(4.2)
        assert quote.change_percent == pytest.approx(4.2 / 176 * 100)
        assert quote.synthetic is False

    def test_falls_back_to_ask_then_bid(self):
        assert build_quote("AAPL", {"ap": 10.0, "bp": 9.5}, None, None).price == 10.0
        assert build_quote("AAPL", {"ap": 0, "bp": 9.5}, None, None).price == 9.5

    def test_no_price_returns_none(self):
        assert build_quote("AAPL", {"ap": 0, "bp": 0}, {}, {}) is None

    def test_parse_timestamp_truncates_nanoseconds(self):
        parsed = parse_timestamp("2024-01-02T15:30:00.123456789Z")

        assert parsed == datetime(2024, 1, 2, 15, 30, 0, 123456, tzinfo=UTC)

    def test_parse_timestamp_invalid(self):
        assert parse_timestamp("not-a-time").tzinfo is not None


class TestAlpacaMarketData:

    @pytest.mark.asyncio
    async def test_fills_missing_symbols_from_fallback(self):
        fallback = SyntheticMarketDataGateway(seed=3)
        gateway = AlpacaMarketDataGateway("key", "secret", fallback=fallback)
        gateway._fetch_stock = AsyncMock(
            side_effect=[Quote(symbol="AAPL", price=181.0), MarketDataError("boom")]
        )
        gateway._fetch_crypto = AsyncMock(return_value={})

        quotes = await gateway.get_quotes(["AAPL", "MSFT", "BTCUSD"])

        assert quotes["AAPL"].price == 181.0
        assert quotes["AAPL"].synthetic is False
        assert quotes["MSFT"].synthetic is True
        assert quotes["BTCUSD"].synthetic is True

    @pytest.mark.asyncio
    async def test_without_fallback_returns_partial(self):
        gateway = AlpacaMarketDataGateway("key", "secret")
        gateway._fetch_stock = AsyncMock(return_value=None)

        assert await gateway.get_quotes(["AAPL"]) == {}


class TestGatewayFactory:

    def test_alpaca_when_credentials(self, settings):
        settings.alpaca_api_key = "key"
        settings.alpaca_api_secret = "secret"
        settings.synthetic_market_data = True

        gateway = create_market_data_gateway(settings)

        assert isinstance(gateway, AlpacaMarketDataGateway)
        assert isinstance(gateway.fallback, SyntheticMarketDataGateway)

    def test_synthetic_without_credentials(self, settings):
        settings.synthetic_market_data = True

        assert isinstance(create_market_data_gateway(settings), SyntheticMarketDataGateway)

    def test_null_without_any_provider(self, settings):
        assert isinstance(create_market_data_gateway(settings), NullMarketDataGateway)


# ============================================================================
# News
# ============================================================================


class TestNews:

    def test_query_prefers_keywords(self):
        assert build_news_query(["AAPL"], "earnings season") == "earnings season"

    def test_query_joins_symbols(self):
        assert build_news_query(["AAPL", "MSFT"]) == "AAPL OR MSFT"

    def test_query_default(self):
        assert build_news_query() == "stock market"

    @pytest.mark.asyncio
    async def test_null_gateway(self):
        assert await NullNewsGateway().get_news(["AAPL"]) == []

    def test_factory(self, settings):
        assert isinstance(create_news_gateway(settings), NullNewsGateway)

        settings.news_api_key = "news-key"
        gateway = create_news_gateway(settings)

        assert isinstance(gateway, NewsAPIGateway)
        assert gateway.api_key == "news-key"
