"""
oracles/prices.py - Token USD price source.

Live sources per symbol:
- Chainlink aggregator (latestRoundData over RPC), when a feed is configured
- CoinGecko simple/price over HTTP, when an id is configured

price_usd() takes the median of whichever live sources answer (use_median),
or the first answer in the order above. The static price from tokens.yaml is
the fallback when no live source answers. detect_anomaly() compares the live
sources against their average and flags outliers.

Answers are cached for cache_seconds (default 60). A symbol nobody can price
returns None; callers treat that as "price unavailable", not zero.
"""

import asyncio
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable

import httpx

from core.constants import DEFAULT_ANOMALY_THRESHOLD_PCT, DEFAULT_PRICE_CACHE_SECONDS
from core.exceptions import ErrorCode, InfraError, QuoteError
from core.logging import get_logger
from core.math import HUNDRED, mean, median
from chains.providers import RPCProvider
from dex.abi import (
    SELECTOR_DECIMALS,
    SELECTOR_LATEST_ROUND_DATA,
    decode_signed,
    decode_words,
)

logger = get_logger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"

# A feed older than this is ignored
DEFAULT_MAX_FEED_AGE_SECONDS = 3600


@dataclass(frozen=True)
class PriceSourceConfig:
    """Per-symbol lookup configuration."""
    chainlink_feeds: dict[str, str]
    coingecko_ids: dict[str, str]
    static_prices: dict[str, Decimal]
    cache_seconds: int = DEFAULT_PRICE_CACHE_SECONDS
    max_feed_age_seconds: int = DEFAULT_MAX_FEED_AGE_SECONDS
    use_median: bool = False


@dataclass(frozen=True)
class PriceAnomaly:
    """Cross-source comparison for one symbol."""
    symbol: str
    prices: dict[str, Decimal] = field(default_factory=dict)
    average: Decimal | None = None
    deviation_pct: Decimal = Decimal("0")
    outliers: dict[str, Decimal] = field(default_factory=dict)

    @property
    def detected(self) -> bool:
        return bool(self.outliers)

    def to_price_data(self) -> dict:
        """Shape read by CircuitBreaker.check_market_conditions."""
        return {
            "token": self.symbol,
            "deviation_pct": self.deviation_pct,
            "average_usd": str(self.average) if self.average is not None else None,
            "prices": {source: str(price) for source, price in self.prices.items()},
            "outliers": sorted(self.outliers),
        }


@dataclass
class _CachedPrice:
    price: Decimal
    source: str
    fetched_at: float


class TokenPriceSource:
    """
    USD prices for configured tokens.

    Usage:
        source = TokenPriceSource(provider, config)
        price = await source.price_usd("WETH")
    """

    def __init__(
        self,
        provider: RPCProvider | None,
        config: PriceSourceConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        timeout_seconds: float = 5,
    ):
        self.provider = provider
        self.config = config
        self._clock = clock
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout_seconds = timeout_seconds
        self._cache: dict[str, _CachedPrice] = {}
        self._feed_decimals: dict[str, int] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout_seconds))
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _cached(self, symbol: str) -> Decimal | None:
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at > self.config.cache_seconds:
            del self._cache[symbol]
            return None
        return entry.price

    async def price_usd(self, symbol: str) -> Decimal | None:
        """USD price of one token, or None when no source can price it."""
        symbol = symbol.upper()
        cached = self._cached(symbol)
        if cached is not None:
            return cached

        if self.config.use_median:
            prices = await self.source_prices(symbol)
            price, source = (median(prices.values()), "median") if prices else (None, None)
        else:
            price, source = await self._first_price(symbol)

        if price is None:
            price = await self._from_static(symbol)
            source = "static"

        if price is None or price <= 0:
            logger.warning(
                f"No USD price for {symbol}",
                extra={"context": {"symbol": symbol}},
            )
            return None

        self._cache[symbol] = _CachedPrice(price, source, self._clock())
        logger.debug(
            f"Price {symbol} = {price} USD",
            extra={"context": {"symbol": symbol, "source": source}},
        )
        return price

    async def median_price_usd(self, symbol: str) -> Decimal | None:
        """Median across live sources, the static price when none answers. Uncached."""
        symbol = symbol.upper()
        prices = await self.source_prices(symbol)
        if prices:
            return median(prices.values())
        return await self._from_static(symbol)

    async def source_prices(self, symbol: str) -> dict[str, Decimal]:
        """Every live source's answer; failing or silent sources are left out."""
        symbol = symbol.upper()
        names = list(self._live_sources)
        results = await asyncio.gather(
            *(self._fetch(name, self._live_sources[name], symbol) for name in names)
        )
        return {name: price for name, price in zip(names, results) if price is not None}

    async def detect_anomaly(
        self,
        symbol: str,
        threshold_pct: Decimal = DEFAULT_ANOMALY_THRESHOLD_PCT,
    ) -> PriceAnomaly:
        """
        Flag live sources more than threshold_pct away from their average.

        Fewer than two answering sources is never an anomaly.
        """
        symbol = symbol.upper()
        prices = await self.source_prices(symbol)
        if len(prices) < 2:
            return PriceAnomaly(symbol, prices)

        average = mean(prices.values())
        deviations = {source: abs(price - average) / average * HUNDRED for source, price in prices.items()}
        outliers = {source: prices[source] for source, dev in deviations.items() if dev > threshold_pct}
        anomaly = PriceAnomaly(symbol, prices, average, max(deviations.values()), outliers)

        if anomaly.detected:
            logger.warning(
                f"Price sources disagree on {symbol}",
                extra={"context": anomaly.to_price_data()},
            )
        return anomaly

    @property
    def _live_sources(self) -> dict[str, Callable[[str], Awaitable[Decimal | None]]]:
        return {"chainlink": self._from_chainlink, "coingecko": self._from_coingecko}

    async def _first_price(self, symbol: str) -> tuple[Decimal | None, str | None]:
        for source, fetch in self._live_sources.items():
            price = await self._fetch(source, fetch, symbol)
            if price is not None:
                return price, source
        return None, None

    async def _fetch(
        self,
        source: str,
        fetch: Callable[[str], Awaitable[Decimal | None]],
        symbol: str,
    ) -> Decimal | None:
        try:
            price = await fetch(symbol)
        except (InfraError, QuoteError) as e:
            logger.debug(f"Price source {source} failed for {symbol}: {e}")
            return None
        if price is None or price <= 0:
            return None
        return price

    async def prices_usd(self, symbols: list[str]) -> dict[str, Decimal | None]:
        results = await asyncio.gather(*(self.price_usd(s) for s in symbols))
        return dict(zip((s.upper() for s in symbols), results))

    async def _from_chainlink(self, symbol: str) -> Decimal | None:
        feed = self.config.chainlink_feeds.get(symbol)
        if not feed or self.provider is None:
            return None

        decimals = self._feed_decimals.get(feed)
        if decimals is None:
            response = await self.provider.eth_call(to=feed, data=SELECTOR_DECIMALS)
            (decimals,) = decode_words(response.result, 1)
            self._feed_decimals[feed] = decimals

        response = await self.provider.eth_call(to=feed, data=SELECTOR_LATEST_ROUND_DATA)
        _, answer_word, _, updated_at, _ = decode_words(response.result, 5)
        answer = decode_signed(answer_word)

        if answer <= 0:
            return None
        if self._clock() - updated_at > self.config.max_feed_age_seconds:
            logger.debug(f"Chainlink feed for {symbol} is stale (updated_at={updated_at})")
            return None

        return Decimal(answer) / Decimal(10**decimals)

    async def _from_coingecko(self, symbol: str) -> Decimal | None:
        coin_id = self.config.coingecko_ids.get(symbol)
        if not coin_id:
            return None

        client = await self._get_client()
        try:
            resp = await client.get(COINGECKO_URL, params={"ids": coin_id, "vs_currencies": "usd"})
            resp.raise_for_status()
            data = resp.json(parse_float=Decimal)
        except httpx.HTTPError as e:
            raise InfraError(
                f"CoinGecko request failed: {e}",
                code=ErrorCode.INFRA_HTTP_ERROR,
                details={"symbol": symbol, "coin_id": coin_id},
            )
        except ValueError as e:
            raise QuoteError(
                f"CoinGecko response is not JSON: {e}",
                code=ErrorCode.QUOTE_MALFORMED,
                details={"symbol": symbol},
            )

        value = data.get(coin_id, {}).get("usd")
        if value is None:
            return None
        return Decimal(value)

    async def _from_static(self, symbol: str) -> Decimal | None:
        return self.config.static_prices.get(symbol)
