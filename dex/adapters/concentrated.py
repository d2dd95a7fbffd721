"""
dex/adapters/concentrated.py - Concentrated-liquidity (Uniswap V3 style) adapter.

Implements quoting via the QuoterV2 contract:
- Single-hop quotes (quoteExactInputSingle), one per fee tier
- Depth approximated from the pool's active liquidity and sqrtPriceX96

The depth figure is a heuristic. Active liquidity L at price sqrtP behaves
like a constant-product pool with virtual reserves
    reserve0 = L * 2^96 / sqrtP
    reserve1 = L * sqrtP / 2^96
which is only exact while the trade stays inside the current tick range.
Good enough for a reserve-ratio ceiling, not for exact output.
"""

import asyncio

from core.constants import Q96, VenueKind, ZERO_ADDRESS
from core.exceptions import InfraError, QuoteError
from core.logging import get_logger
from core.math import fee_tier_to_decimal
from core.models import Reserves, Token
from dex.abi import (
    SELECTOR_GET_POOL,
    SELECTOR_LIQUIDITY,
    SELECTOR_QUOTE_EXACT_INPUT_SINGLE,
    SELECTOR_SLOT0,
    decode_words,
    encode_address,
    encode_call,
    encode_uint,
    word_to_address,
)
from dex.adapters.base import VenueAdapter

logger = get_logger(__name__)


def encode_quote_exact_input_single(
    token_in: str,
    token_out: str,
    amount_in: int,
    fee: int,
    sqrt_price_limit_x96: int = 0,
) -> str:
    """
    Encode quoteExactInputSingle call data for QuoterV2.

    QuoterV2 takes a static struct:
    struct QuoteExactInputSingleParams {
        address tokenIn;
        address tokenOut;
        uint256 amountIn;
        uint24 fee;
        uint160 sqrtPriceLimitX96;
    }
    A tuple of static types encodes inline: selector + fields, no offset.
    """
    return encode_call(
        SELECTOR_QUOTE_EXACT_INPUT_SINGLE,
        encode_address(token_in),
        encode_address(token_out),
        encode_uint(amount_in),
        encode_uint(fee),
        encode_uint(sqrt_price_limit_x96),
    )


def decode_quote_response(hex_result: str | None) -> tuple[int, int, int, int]:
    """
    Decode quoteExactInputSingle response.

    Returns:
        (amountOut, sqrtPriceX96After, initializedTicksCrossed, gasEstimate)
    """
    amount_out, sqrt_price_after, ticks_crossed, gas_estimate = decode_words(hex_result, 4)
    return amount_out, sqrt_price_after, ticks_crossed, gas_estimate


def virtual_reserves(liquidity: int, sqrt_price_x96: int) -> tuple[int, int]:
    """(reserve0, reserve1) implied by active liquidity at the current price."""
    if liquidity <= 0 or sqrt_price_x96 <= 0:
        return 0, 0
    reserve0 = liquidity * Q96 // sqrt_price_x96
    reserve1 = liquidity * sqrt_price_x96 // Q96
    return reserve0, reserve1


class ConcentratedLiquidityAdapter(VenueAdapter):
    """
    Adapter for QuoterV2 venues.

    Usage:
        adapter = ConcentratedLiquidityAdapter(venue, provider)
        quote = await adapter.quote(weth, usdc, amount_in)
    """

    kind = VenueKind.CONCENTRATED_LIQUIDITY

    async def _quote_tier(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        fee_tier: int | None,
    ) -> int | None:
        if not self.venue.quoter or fee_tier is None:
            return None

        call_data = encode_quote_exact_input_single(
            token_in=token_in.address,
            token_out=token_out.address,
            amount_in=amount_in,
            fee=fee_tier,
        )
        response = await self.provider.eth_call(to=self.venue.quoter, data=call_data)
        amount_out, _, ticks, _ = decode_quote_response(response.result)

        logger.debug(
            f"Quote: {token_in.symbol}->{token_out.symbol} "
            f"{amount_in} -> {amount_out} (fee={fee_tier}, ticks={ticks})"
        )
        return amount_out

    async def _pool_state(
        self,
        token_in: Token,
        token_out: Token,
        fee_tier: int,
    ) -> tuple[int, int, int] | None:
        """(fee_tier, liquidity, sqrtPriceX96) for one tier, or None."""
        try:
            response = await self.provider.eth_call(
                to=self.venue.factory,
                data=encode_call(
                    SELECTOR_GET_POOL,
                    encode_address(token_in.address),
                    encode_address(token_out.address),
                    encode_uint(fee_tier),
                ),
            )
            (pool_word,) = decode_words(response.result, 1)
            pool = word_to_address(pool_word)
            if pool == ZERO_ADDRESS:
                return None

            liquidity_resp, slot0_resp = await asyncio.gather(
                self.provider.eth_call(to=pool, data=SELECTOR_LIQUIDITY),
                self.provider.eth_call(to=pool, data=SELECTOR_SLOT0),
            )
            (liquidity,) = decode_words(liquidity_resp.result, 1)
            sqrt_price_x96 = decode_words(slot0_resp.result, 1)[0]
        except (QuoteError, InfraError) as e:
            logger.debug(f"{self.name}: pool state unavailable for tier {fee_tier}: {e}")
            return None

        if liquidity == 0 or sqrt_price_x96 == 0:
            return None
        return fee_tier, liquidity, sqrt_price_x96

    async def _fetch_reserves(self, token_in: Token, token_out: Token) -> Reserves | None:
        if not self.venue.factory:
            return None

        tiers = [t for t in self.fee_tiers() if t is not None]
        states = await asyncio.gather(
            *(self._pool_state(token_in, token_out, tier) for tier in tiers)
        )
        states = [s for s in states if s is not None]
        if not states:
            return None

        # Most liquid tier stands in for the venue
        fee_tier, liquidity, sqrt_price_x96 = max(states, key=lambda s: s[1])
        reserve0, reserve1 = virtual_reserves(liquidity, sqrt_price_x96)
        if reserve0 == 0 or reserve1 == 0:
            return None

        if token_in.sorts_before(token_out):
            reserve_in, reserve_out = reserve0, reserve1
        else:
            reserve_in, reserve_out = reserve1, reserve0

        return Reserves(
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            fee=fee_tier_to_decimal(fee_tier),
            fee_tier=fee_tier,
        )
