"""
tests/unit/test_orchestrator.py - Validation pipeline ordering and verdicts.

Venues are FakeVenueAdapter instances on a deep WETH/USDC book at $2000;
the happy path itself is covered in tests/integration.
"""

from decimal import Decimal

import pytest

from core.constants import CheckName, RejectReason, TradeSide, VerdictCategory
from core.exceptions import InfraError
from core.models import OpportunityCandidate, Reserves
from risk.circuit_breaker import CircuitBreaker
from strategy.config import CircuitBreakerConfig
from strategy.orchestrator import ValidationOrchestrator

BUY_RATE = Decimal("2E-9")
SELL_RATE = Decimal("501500000")


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(CircuitBreakerConfig(), clock=clock)


@pytest.fixture
def venues(fake_adapter, weth_usdc_reserves):
    buy = fake_adapter(
        "uniswap_v2",
        rates={("WETH", "USDC"): BUY_RATE},
        reserves=weth_usdc_reserves(2000),
    )
    sell = fake_adapter(
        "sushiswap",
        rates={("WETH", "USDC"): BUY_RATE, ("USDC", "WETH"): SELL_RATE},
        reserves=weth_usdc_reserves(2000),
    )
    return buy, sell


@pytest.fixture
def build(venues, breaker, fake_gas, fake_prices):
    def make(gas=None, adapters=None):
        buy, sell = venues
        return ValidationOrchestrator(
            adapters=adapters if adapters is not None else {buy.name: buy, sell.name: sell},
            breaker=breaker,
            gas_source=gas or fake_gas(),
            prices=fake_prices({"WETH": "2000", "USDC": "1"}),
        )

    return make


@pytest.fixture
def candidate(weth, usdc):
    return OpportunityCandidate(weth, usdc, 19 * 10**18, "uniswap_v2", "sushiswap")


class TestGates:
    @pytest.mark.asyncio
    async def test_breaker_checked_first(self, build, breaker, venues, candidate):
        breaker.trip("manual")
        verdict = await build().validate_opportunity(candidate)

        assert not verdict.is_valid
        assert verdict.is_breaker_tripped
        assert verdict.code == RejectReason.CIRCUIT_BREAKER_ACTIVE
        assert verdict.check == CheckName.CIRCUIT_BREAKER
        assert all(v.quote_calls == 0 for v in venues)

    @pytest.mark.asyncio
    async def test_gas_unavailable(self, build, fake_gas, venues, candidate):
        orchestrator = build(gas=fake_gas(error=InfraError("rpc down")))
        verdict = await orchestrator.validate_opportunity(candidate)

        assert verdict.category == VerdictCategory.UNAVAILABLE
        assert verdict.code == RejectReason.GAS_PRICE_UNAVAILABLE
        assert "rpc down" in verdict.reason
        assert all(v.quote_calls == 0 for v in venues)

    @pytest.mark.asyncio
    async def test_gas_too_high(self, build, fake_gas, candidate):
        verdict = await build(gas=fake_gas(150)).validate_opportunity(candidate)

        assert verdict.category == VerdictCategory.REJECTED
        assert verdict.code == RejectReason.GAS_PRICE_TOO_HIGH
        assert verdict.check == CheckName.GAS_PRICE


class TestQuotes:
    @pytest.mark.asyncio
    async def test_neither_venue_quotes(self, build, fake_adapter, weth, usdc):
        adapters = {"a": fake_adapter("a"), "b": fake_adapter("b")}
        candidate = OpportunityCandidate(weth, usdc, 10**18, "a", "b")
        verdict = await build(adapters=adapters).validate_opportunity(candidate)

        assert verdict.category == VerdictCategory.UNAVAILABLE
        assert verdict.code == RejectReason.NO_COMPARABLE_QUOTES
        assert verdict.side is None

    @pytest.mark.asyncio
    async def test_one_venue_missing(self, build, fake_adapter, venues, weth, usdc):
        buy, _ = venues
        adapters = {buy.name: buy, "dead": fake_adapter("dead")}
        candidate = OpportunityCandidate(weth, usdc, 10**18, buy.name, "dead")
        verdict = await build(adapters=adapters).validate_opportunity(candidate)

        assert verdict.code == RejectReason.VENUE_UNAVAILABLE
        assert verdict.category == VerdictCategory.UNAVAILABLE
        assert verdict.side == TradeSide.SELL
        assert "dead" in verdict.reason

    @pytest.mark.asyncio
    async def test_unknown_venue_is_error_verdict(self, build, weth, usdc):
        candidate = OpportunityCandidate(weth, usdc, 10**18, "uniswap_v2", "curve")
        verdict = await build().validate_opportunity(candidate)

        assert verdict.category == VerdictCategory.ERROR
        assert verdict.code == RejectReason.VALIDATION_ERROR
        assert verdict.reason.startswith("validation error:")
        assert "curve" in verdict.reason


class TestDepth:
    @pytest.mark.asyncio
    async def test_buy_leg_liquidity_unavailable(self, build, fake_adapter, venues, candidate):
        _, sell = venues
        shallow = fake_adapter("uniswap_v2", rates={("WETH", "USDC"): BUY_RATE})
        adapters = {shallow.name: shallow, sell.name: sell}
        verdict = await build(adapters=adapters).validate_opportunity(candidate)

        assert verdict.code == RejectReason.LIQUIDITY_UNAVAILABLE
        assert verdict.category == VerdictCategory.UNAVAILABLE
        assert verdict.side == TradeSide.BUY
        assert verdict.reason.startswith("buy leg:")

    @pytest.mark.asyncio
    async def test_sell_leg_too_large(self, build, fake_adapter, venues, candidate):
        buy, _ = venues
        # 38,000 USDC into a 100,000 USDC reserve
        thin = fake_adapter(
            "sushiswap",
            rates={("WETH", "USDC"): BUY_RATE, ("USDC", "WETH"): SELL_RATE},
            reserves={("USDC", "WETH"): Reserves(100_000 * 10**6, 50 * 10**18)},
        )
        adapters = {buy.name: buy, thin.name: thin}
        verdict = await build(adapters=adapters).validate_opportunity(candidate)

        assert verdict.code == RejectReason.RESERVE_RATIO_TOO_HIGH
        assert verdict.category == VerdictCategory.REJECTED
        assert verdict.check == CheckName.LIQUIDITY
        assert verdict.side == TradeSide.SELL
        assert Decimal(verdict.details["depth"]["reserve_ratio_pct"]) == Decimal("38")

    @pytest.mark.asyncio
    async def test_above_safe_size_warns(self, build, fake_adapter, venues, candidate):
        _, sell = venues
        # 19 WETH against 900 WETH of reserves is 2.1%, over the 2% safe size
        smaller = fake_adapter(
            "uniswap_v2",
            rates={("WETH", "USDC"): BUY_RATE},
            reserves={("WETH", "USDC"): Reserves(900 * 10**18, 1_800_000 * 10**6)},
        )
        adapters = {smaller.name: smaller, sell.name: sell}
        verdict = await build(adapters=adapters).validate_opportunity(candidate)

        assert verdict.is_valid, verdict.reason
        assert verdict.warnings == [
            f"buy leg amount {19 * 10**18} exceeds safe size {18 * 10**18} "
            "(2% of uniswap_v2 reserves)"
        ]


class TestMarketConditions:
    def test_high_volatility(self, build):
        orchestrator = build()
        config = orchestrator.set_market_conditions("high")
        assert config.profit_multiplier == Decimal("3.0")
        assert orchestrator.config is config

    def test_derived_from_base(self, build):
        orchestrator = build()
        orchestrator.set_market_conditions("high", "high")
        config = orchestrator.set_market_conditions("normal", "medium")
        assert config.spread.major_pct == Decimal("0.5")
        assert config.depth.max_reserve_ratio_pct == Decimal("5")
        assert config.profit.min_profit_usd == Decimal("50")

    @pytest.mark.asyncio
    async def test_high_volatility_raises_bar(self, build, candidate):
        orchestrator = build()
        assert (await orchestrator.validate_opportunity(candidate)).is_valid

        orchestrator.set_market_conditions("high")
        verdict = await orchestrator.validate_opportunity(candidate)
        assert not verdict.is_valid
        assert verdict.check == CheckName.PROFITABILITY