"""
Pytest configuration and fixtures for Flashgate tests.

Fakes here stand in for the network: venue adapters answer from fixed rates
and reserves, the price and gas sources from fixed values.
"""

import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import VenueKind  # noqa: E402
from core.exceptions import InfraError  # noqa: E402
from core.models import FeeEstimate, Reserves, Token, Venue  # noqa: E402
from dex.adapters.base import VenueAdapter  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


# =============================================================================
# FAKES
# =============================================================================

class FakeVenueAdapter(VenueAdapter):
    """
    Venue answering from fixed raw rates and reserves.

    rates: {(in_symbol, out_symbol): raw out-per-in Decimal}
    reserves: {(in_symbol, out_symbol): Reserves}
    """

    kind = VenueKind.CONSTANT_PRODUCT

    def __init__(
        self,
        name: str,
        rates: Optional[dict] = None,
        reserves: Optional[dict] = None,
        uses_reserve_formula: bool = False,
    ):
        super().__init__(Venue(name=name, kind=VenueKind.CONSTANT_PRODUCT, pool="0x" + "1" * 40), None)
        self.rates = rates or {}
        self.reserves = reserves or {}
        self.uses_reserve_formula = uses_reserve_formula
        self.quote_calls = 0

    async def _quote_tier(self, token_in, token_out, amount_in, fee_tier):
        self.quote_calls += 1
        rate = self.rates.get((token_in.symbol, token_out.symbol))
        if rate is None:
            raise InfraError(f"{self.name} has no route")
        return int(Decimal(amount_in) * rate)

    async def _fetch_reserves(self, token_in, token_out):
        return self.reserves.get((token_in.symbol, token_out.symbol))


class FakePriceSource:
    def __init__(self, prices: dict):
        self.prices = {k: Decimal(v) for k, v in prices.items()}

    async def price_usd(self, symbol: str):
        return self.prices.get(symbol.upper())

    async def close(self):
        pass


class FakeGasSource:
    def __init__(self, gas_price_gwei: int = 20, error: Optional[Exception] = None):
        self.gas_price_wei = gas_price_gwei * 10**9
        self.error = error

    async def current_fee_estimate(self) -> FeeEstimate:
        if self.error is not None:
            raise self.error
        return FeeEstimate(gas_price_wei=self.gas_price_wei)


class FakeClock:
    """Manually advanced clock, starting at local noon on 2026-01-15."""

    def __init__(self, start: Optional[float] = None):
        from datetime import datetime
        self.now = start if start is not None else datetime(2026, 1, 15, 12, 0).timestamp()

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def weth() -> Token:
    return Token("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18)


@pytest.fixture
def usdc() -> Token:
    return Token("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6)


@pytest.fixture
def usdt() -> Token:
    return Token("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6)


@pytest.fixture
def dai() -> Token:
    return Token("DAI", "0x6B175474E89094C44Da98b954EedeAC495271d0F", 18)


@pytest.fixture
def link() -> Token:
    return Token("LINK", "0x514910771AF9Ca656af840dff83E8264EcF986CA", 18)


@pytest.fixture
def fake_adapter():
    return FakeVenueAdapter


@pytest.fixture
def fake_prices():
    return FakePriceSource


@pytest.fixture
def fake_gas():
    return FakeGasSource


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def weth_usdc_reserves():
    """Deep WETH/USDC book at the given USD price: 10,000 WETH per side."""

    def build(price_usd: int, fee: Decimal = Decimal("0")) -> dict:
        usdc_reserve = 10_000 * price_usd * 10**6
        weth_reserve = 10_000 * 10**18
        return {
            ("WETH", "USDC"): Reserves(weth_reserve, usdc_reserve, fee=fee),
            ("USDC", "WETH"): Reserves(usdc_reserve, weth_reserve, fee=fee),
        }

    return build
