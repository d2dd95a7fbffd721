"""
tests/unit/test_adapters.py - Venue adapter unit tests.

The RPC provider is mocked; eth_call answers by target and selector.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from chains.providers import RPCResponse
from core.constants import Q96, VenueKind
from core.exceptions import ConfigError, ErrorCode, InfraError, QuoteError
from core.math import constant_product_amount_out
from core.models import Venue
from dex.abi import (
    SELECTOR_BALANCES,
    SELECTOR_GET_DY,
    SELECTOR_GET_PAIR,
    SELECTOR_GET_POOL,
    SELECTOR_GET_RESERVES,
    SELECTOR_LIQUIDITY,
    SELECTOR_QUOTE_EXACT_INPUT_SINGLE,
    SELECTOR_SLOT0,
    SELECTOR_TOKEN0,
    decode_signed,
    decode_words,
    word_to_address,
)
from dex.adapters import build_adapter, build_adapters
from dex.adapters.concentrated import (
    ConcentratedLiquidityAdapter,
    encode_quote_exact_input_single,
    virtual_reserves,
)
from dex.adapters.constant_product import ConstantProductAdapter
from dex.adapters.stable_swap import StableSwapAdapter

FACTORY = "0x" + "f" * 40
PAIR = "0x" + "b" * 40
QUOTER = "0x" + "c" * 40
POOL_500 = "0x" + "5" * 40
POOL_3000 = "0x" + "3" * 40
CURVE_POOL = "0x" + "d" * 40


def word(value: int) -> str:
    return hex(value)[2:].zfill(64)


def response(*values: int) -> RPCResponse:
    return RPCResponse(result="0x" + "".join(word(v) for v in values), latency_ms=1, endpoint_used="test")


def arg_word(data: str, index: int) -> int:
    """index-th argument word of call data."""
    start = 10 + index * 64
    return int(data[start:start + 64], 16)


def mock_provider(handler) -> MagicMock:
    provider = MagicMock()
    provider.eth_call = AsyncMock(side_effect=handler)
    return provider


class TestAbi:
    def test_empty_response_is_revert(self):
        with pytest.raises(QuoteError) as exc_info:
            decode_words("0x", 1)
        assert exc_info.value.code == ErrorCode.QUOTE_REVERT

    def test_short_response_is_malformed(self):
        with pytest.raises(QuoteError) as exc_info:
            decode_words("0x" + "00" * 60, 2)
        assert exc_info.value.code == ErrorCode.QUOTE_MALFORMED

    def test_non_hex_is_malformed(self):
        with pytest.raises(QuoteError) as exc_info:
            decode_words("0x" + "zz" * 32, 1)
        assert exc_info.value.code == ErrorCode.QUOTE_MALFORMED

    def test_decode_signed(self):
        assert decode_signed(2**256 - 1) == -1
        assert decode_signed(5) == 5

    def test_word_to_address(self):
        assert word_to_address(int(PAIR, 16)) == PAIR

    def test_encode_quote_exact_input_single(self, weth, usdc):
        data = encode_quote_exact_input_single(weth.address, usdc.address, 10**18, 500)
        assert data.startswith(SELECTOR_QUOTE_EXACT_INPUT_SINGLE)
        # selector + 5 static words
        assert len(data) == 10 + 5 * 64
        assert arg_word(data, 2) == 10**18
        assert arg_word(data, 3) == 500


class TestConstantProductAdapter:
    RESERVE_USDC = 20_000_000 * 10**6
    RESERVE_WETH = 10_000 * 10**18

    @pytest.fixture
    def venue(self):
        return Venue(name="uniswap_v2", kind=VenueKind.CONSTANT_PRODUCT, factory=FACTORY, fee_bps=30)

    def make_adapter(self, venue, usdc, pair=PAIR):
        async def handler(to, data, block="latest"):
            if data.startswith(SELECTOR_GET_PAIR):
                return response(int(pair, 16))
            if data == SELECTOR_GET_RESERVES:
                # token0 is USDC (lower address)
                return response(self.RESERVE_USDC, self.RESERVE_WETH, 0)
            if data == SELECTOR_TOKEN0:
                return response(int(usdc.address, 16))
            raise AssertionError(f"unexpected call {data[:10]}")

        return ConstantProductAdapter(venue, mock_provider(handler))

    @pytest.mark.asyncio
    async def test_reserves_oriented_by_token0(self, venue, weth, usdc):
        adapter = self.make_adapter(venue, usdc)
        reserves = await adapter.get_reserves(weth, usdc)
        assert reserves.reserve_in == self.RESERVE_WETH
        assert reserves.reserve_out == self.RESERVE_USDC
        assert reserves.fee == Decimal("0.003")

        reverse = await adapter.get_reserves(usdc, weth)
        assert reverse.reserve_in == self.RESERVE_USDC

    @pytest.mark.asyncio
    async def test_quote_uses_formula(self, venue, weth, usdc):
        adapter = self.make_adapter(venue, usdc)
        quote = await adapter.quote(weth, usdc, 10**18)
        expected = constant_product_amount_out(
            10**18, self.RESERVE_WETH, self.RESERVE_USDC, Decimal("0.003")
        )
        assert quote.amount_out == expected
        assert quote.fee_tier_used is None
        assert adapter.uses_reserve_formula

    @pytest.mark.asyncio
    async def test_missing_pair_is_unavailable(self, venue, weth, usdc):
        adapter = self.make_adapter(venue, usdc, pair="0x" + "0" * 40)
        assert await adapter.get_reserves(weth, usdc) is None
        assert await adapter.quote(weth, usdc, 10**18) is None

    @pytest.mark.asyncio
    async def test_rpc_failure_is_unavailable(self, venue, weth, usdc):
        provider = MagicMock()
        provider.eth_call = AsyncMock(side_effect=InfraError("all endpoints failed"))
        adapter = ConstantProductAdapter(venue, provider)
        assert await adapter.quote(weth, usdc, 10**18) is None
        assert await adapter.get_reserves(weth, usdc) is None

    @pytest.mark.asyncio
    async def test_zero_amount_not_quoted(self, venue, weth, usdc):
        adapter = self.make_adapter(venue, usdc)
        assert await adapter.quote(weth, usdc, 0) is None


class TestConcentratedLiquidityAdapter:
    @pytest.fixture
    def venue(self):
        return Venue(
            name="uniswap_v3",
            kind=VenueKind.CONCENTRATED_LIQUIDITY,
            quoter=QUOTER,
            factory=FACTORY,
            fee_tiers=(500, 3000),
        )

    @pytest.mark.asyncio
    async def test_best_tier_wins(self, venue, weth, usdc):
        outputs = {500: 1_999 * 10**6, 3000: 1_990 * 10**6}

        async def handler(to, data, block="latest"):
            assert to == QUOTER
            return response(outputs[arg_word(data, 3)], Q96, 1, 100_000)

        adapter = ConcentratedLiquidityAdapter(venue, mock_provider(handler))
        quote = await adapter.quote(weth, usdc, 10**18)
        assert quote.amount_out == 1_999 * 10**6
        assert quote.fee_tier_used == 500

    @pytest.mark.asyncio
    async def test_reverting_tier_skipped(self, venue, weth, usdc):
        async def handler(to, data, block="latest"):
            if arg_word(data, 3) == 500:
                raise QuoteError("execution reverted")
            return response(1_990 * 10**6, Q96, 1, 100_000)

        adapter = ConcentratedLiquidityAdapter(venue, mock_provider(handler))
        quote = await adapter.quote(weth, usdc, 10**18)
        assert quote.fee_tier_used == 3000

    @pytest.mark.asyncio
    async def test_all_tiers_revert(self, venue, weth, usdc):
        provider = MagicMock()
        provider.eth_call = AsyncMock(side_effect=QuoteError("execution reverted"))
        adapter = ConcentratedLiquidityAdapter(venue, provider)
        assert await adapter.quote(weth, usdc, 10**18) is None

    def test_virtual_reserves(self):
        assert virtual_reserves(10**18, Q96) == (10**18, 10**18)
        assert virtual_reserves(0, Q96) == (0, 0)

    @pytest.mark.asyncio
    async def test_reserves_from_most_liquid_tier(self, venue, weth, usdc):
        pools = {500: POOL_500, 3000: POOL_3000}
        liquidity = {POOL_500: 10**18, POOL_3000: 5 * 10**18}

        async def handler(to, data, block="latest"):
            if data.startswith(SELECTOR_GET_POOL):
                return response(int(pools[arg_word(data, 2)], 16))
            if data == SELECTOR_LIQUIDITY:
                return response(liquidity[to])
            if data == SELECTOR_SLOT0:
                return response(Q96, 0)
            raise AssertionError(f"unexpected call {data[:10]}")

        adapter = ConcentratedLiquidityAdapter(venue, mock_provider(handler))
        reserves = await adapter.get_reserves(weth, usdc)
        assert reserves.fee_tier == 3000
        assert reserves.fee == Decimal("0.003")
        assert reserves.reserve_in == 5 * 10**18


class TestStableSwapAdapter:
    @pytest.fixture
    def venue(self, dai, usdc, usdt):
        return Venue(
            name="curve_3pool",
            kind=VenueKind.STABLE_SWAP,
            pool=CURVE_POOL,
            fee_bps=4,
            coins=((dai.address, 0), (usdc.address, 1), (usdt.address, 2)),
        )

    @pytest.fixture
    def adapter(self, venue):
        balances = {0: 100_000_000 * 10**18, 1: 90_000_000 * 10**6, 2: 80_000_000 * 10**6}

        async def handler(to, data, block="latest"):
            assert to == CURVE_POOL
            if data.startswith(SELECTOR_BALANCES):
                return response(balances[arg_word(data, 0)])
            if data.startswith(SELECTOR_GET_DY):
                # USDC <-> USDT only, 4 bps fee
                return response(arg_word(data, 2) * 9996 // 10000)
            raise AssertionError(f"unexpected call {data[:10]}")

        return StableSwapAdapter(venue, mock_provider(handler))

    @pytest.mark.asyncio
    async def test_quote(self, adapter, usdc, usdt):
        quote = await adapter.quote(usdc, usdt, 1_000 * 10**6)
        assert quote.amount_out == 999_600_000

    @pytest.mark.asyncio
    async def test_reserves_carry_probe_spot(self, adapter, usdc, usdt):
        reserves = await adapter.get_reserves(usdc, usdt)
        assert reserves.reserve_in == 90_000_000 * 10**6
        assert reserves.reserve_out == 80_000_000 * 10**6
        assert reserves.spot == Decimal("0.9996")
        assert reserves.fee == Decimal("0.0004")

    @pytest.mark.asyncio
    async def test_token_not_in_pool(self, adapter, weth, usdc):
        assert await adapter.quote(weth, usdc, 10**18) is None
        assert await adapter.get_reserves(weth, usdc) is None


class TestAdapterRegistry:
    def test_build_by_kind(self, dai, usdc):
        provider = MagicMock()
        venues = {
            "v2": Venue(name="v2", kind=VenueKind.CONSTANT_PRODUCT, factory=FACTORY),
            "v3": Venue(name="v3", kind=VenueKind.CONCENTRATED_LIQUIDITY, quoter=QUOTER, fee_tiers=(500,)),
            "curve": Venue(name="curve", kind=VenueKind.STABLE_SWAP, pool=CURVE_POOL,
                           coins=((dai.address, 0), (usdc.address, 1))),
        }
        adapters = build_adapters(venues, provider)
        assert isinstance(adapters["v2"], ConstantProductAdapter)
        assert isinstance(adapters["v3"], ConcentratedLiquidityAdapter)
        assert isinstance(adapters["curve"], StableSwapAdapter)
        assert adapters["v3"].name == "v3"

    def test_unknown_kind(self):
        with pytest.raises(ConfigError):
            build_adapter(Venue(name="odd", kind="ORDER_BOOK"), MagicMock())
