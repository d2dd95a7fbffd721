"""
tests/unit/test_liquidity.py - Liquidity depth validator tests.
"""

from decimal import Decimal

import pytest

from core.constants import RejectReason
from core.models import Reserves
from strategy.config import DepthLimits
from strategy.liquidity import DepthOptions, LiquidityDepthValidator, min_output_for_tolerance

RESERVE_WETH = 1_000 * 10**18
RESERVE_USDC = 2_000_000 * 10**6


@pytest.fixture
def pool(fake_adapter):
    return fake_adapter(
        "uniswap_v2",
        reserves={
            ("WETH", "USDC"): Reserves(RESERVE_WETH, RESERVE_USDC, fee=Decimal("0.003")),
            ("USDC", "WETH"): Reserves(RESERVE_USDC, RESERVE_WETH, fee=Decimal("0.003")),
        },
        uses_reserve_formula=True,
    )


@pytest.fixture
def validator():
    return LiquidityDepthValidator(DepthLimits())


class TestDepthChecks:
    @pytest.mark.asyncio
    async def test_small_trade_passes(self, validator, pool, weth, usdc):
        result = await validator.check_depth(pool, weth, usdc, 10**18)
        assert result.is_valid
        assert result.reason == "depth ok"
        assert result.reserve_ratio == Decimal("0.1")
        assert result.expected_output > 0

    @pytest.mark.asyncio
    async def test_reserve_ratio_ceiling(self, validator, pool, weth, usdc):
        # 60 WETH is 6% of the pool
        result = await validator.check_depth(pool, weth, usdc, 60 * 10**18)
        assert not result.is_valid
        assert result.code == RejectReason.RESERVE_RATIO_TOO_HIGH
        assert "6.00%" in result.reason

    @pytest.mark.asyncio
    async def test_price_impact_ceiling(self, pool, weth, usdc):
        # Loose ratio ceiling so the impact check decides
        validator = LiquidityDepthValidator(DepthLimits(max_reserve_ratio_pct=Decimal("50")))
        result = await validator.check_depth(pool, weth, usdc, 40 * 10**18)
        assert not result.is_valid
        assert result.code == RejectReason.PRICE_IMPACT_TOO_HIGH
        assert result.price_impact > Decimal("3")

    @pytest.mark.asyncio
    async def test_explicit_min_output(self, validator, pool, weth, usdc):
        result = await validator.check_depth(
            pool, weth, usdc, 10**18, DepthOptions(min_amount_out=2_000 * 10**6)
        )
        assert not result.is_valid
        assert result.code == RejectReason.SLIPPAGE_TOO_HIGH

    @pytest.mark.asyncio
    async def test_slippage_tolerance(self, validator, pool, weth, usdc):
        # 1 WETH is 0.1% of the pool, so curve slippage is about 0.1% after the fee
        tight = await validator.check_depth(
            pool, weth, usdc, 10**18, DepthOptions(slippage_tolerance_pct=Decimal("0.05"))
        )
        assert tight.code == RejectReason.SLIPPAGE_TOO_HIGH

        loose = await validator.check_depth(
            pool, weth, usdc, 10**18, DepthOptions(slippage_tolerance_pct=Decimal("1"))
        )
        assert loose.is_valid
        assert loose.min_amount_out == min_output_for_tolerance(
            10**18, loose.spot_price, Decimal("1"), Decimal("0.003")
        )

    @pytest.mark.asyncio
    async def test_fee_is_not_counted_as_slippage(self, validator, fake_adapter, weth, usdc):
        # 1 USDC into a 1bn USDC / 10,000 WETH pool with a 1% fee
        deep = fake_adapter(
            "one_pct",
            reserves={("USDC", "WETH"): Reserves(10**15, 10**22, fee=Decimal("0.01"))},
            uses_reserve_formula=True,
        )
        result = await validator.check_depth(
            deep, usdc, weth, 10**6, DepthOptions(slippage_tolerance_pct=Decimal("1"))
        )
        assert result.is_valid, result.reason
        assert result.min_amount_out == 9_801 * 10**9
        assert result.expected_output > result.min_amount_out

    def test_tolerance_floor_after_fee(self):
        assert min_output_for_tolerance(1_000, Decimal("2"), Decimal("1")) == 1_980
        assert min_output_for_tolerance(1_000, Decimal("2"), Decimal("1"), Decimal("0.01")) == 1_960

    @pytest.mark.asyncio
    async def test_unavailable_reserves(self, validator, fake_adapter, weth, usdc):
        result = await validator.check_depth(fake_adapter("empty"), weth, usdc, 10**18)
        assert not result.is_valid
        assert result.unavailable
        assert result.code == RejectReason.LIQUIDITY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_quoted_venue_unavailable_quote(self, validator, fake_adapter, weth, usdc):
        adapter = fake_adapter(
            "quoted",
            reserves={("WETH", "USDC"): Reserves(RESERVE_WETH, RESERVE_USDC)},
        )
        result = await validator.check_depth(adapter, weth, usdc, 10**18)
        assert result.unavailable
        assert result.code == RejectReason.LIQUIDITY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_per_call_limits_override(self, validator, pool, weth, usdc):
        strict = DepthLimits(max_reserve_ratio_pct=Decimal("0.05"))
        result = await validator.check_depth(pool, weth, usdc, 10**18, limits=strict)
        assert result.code == RejectReason.RESERVE_RATIO_TOO_HIGH


class TestDepthMonotonicity:
    @pytest.mark.asyncio
    async def test_larger_trades_never_look_better(self, validator, pool, weth, usdc):
        sizes = [10**17, 10**18, 5 * 10**18, 20 * 10**18, 45 * 10**18]
        results = [await validator.check_depth(pool, weth, usdc, size) for size in sizes]

        ratios = [r.reserve_ratio for r in results]
        impacts = [r.price_impact for r in results]
        assert ratios == sorted(ratios)
        assert impacts == sorted(impacts)

    @pytest.mark.asyncio
    async def test_once_rejected_stays_rejected(self, validator, pool, weth, usdc):
        verdicts = []
        for size in range(1, 80, 5):
            result = await validator.check_depth(pool, weth, usdc, size * 10**18)
            verdicts.append(result.is_valid)
        first_reject = verdicts.index(False)
        assert not any(verdicts[first_reject:])


class TestMaxTradeSize:
    @pytest.mark.asyncio
    async def test_safe_size(self, validator, pool, weth, usdc):
        # 2% of 1,000 WETH
        assert await validator.max_trade_size(pool, weth, usdc) == 20 * 10**18

    @pytest.mark.asyncio
    async def test_unavailable(self, validator, fake_adapter, weth, usdc):
        assert await validator.max_trade_size(fake_adapter("empty"), weth, usdc) is None
