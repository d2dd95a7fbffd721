"""
dex/adapters/constant_product.py - x*y=k pair adapter.

Reads the pair through the factory (getPair) unless a pool address is
configured, then quotes with the constant-product formula and the venue fee.
"""

from core.constants import VenueKind, ZERO_ADDRESS
from core.logging import get_logger
from core.math import bps_to_decimal, constant_product_amount_out
from core.models import Reserves, Token
from dex.abi import (
    SELECTOR_GET_PAIR,
    SELECTOR_GET_RESERVES,
    SELECTOR_TOKEN0,
    decode_words,
    encode_address,
    encode_call,
    word_to_address,
)
from dex.adapters.base import VenueAdapter

logger = get_logger(__name__)


class ConstantProductAdapter(VenueAdapter):
    """Uniswap V2 style pairs (one fee, no tiers)."""

    kind = VenueKind.CONSTANT_PRODUCT
    uses_reserve_formula = True

    def fee_tiers(self) -> list[int | None]:
        return [None]

    async def pair_address(self, token_a: Token, token_b: Token) -> str | None:
        if self.venue.pool:
            return self.venue.pool
        if not self.venue.factory:
            return None

        response = await self.provider.eth_call(
            to=self.venue.factory,
            data=encode_call(
                SELECTOR_GET_PAIR,
                encode_address(token_a.address),
                encode_address(token_b.address),
            ),
        )
        (word,) = decode_words(response.result, 1)
        address = word_to_address(word)
        if address == ZERO_ADDRESS:
            return None
        return address

    async def _fetch_reserves(self, token_in: Token, token_out: Token) -> Reserves | None:
        pair = await self.pair_address(token_in, token_out)
        if pair is None:
            logger.debug(f"{self.name}: no pair for {token_in.symbol}/{token_out.symbol}")
            return None

        reserves_resp = await self.provider.eth_call(to=pair, data=SELECTOR_GET_RESERVES)
        reserve0, reserve1, _ = decode_words(reserves_resp.result, 3)

        token0_resp = await self.provider.eth_call(to=pair, data=SELECTOR_TOKEN0)
        (token0_word,) = decode_words(token0_resp.result, 1)
        token0 = word_to_address(token0_word)

        if token0 == token_in.address.lower():
            reserve_in, reserve_out = reserve0, reserve1
        else:
            reserve_in, reserve_out = reserve1, reserve0

        if reserve_in == 0 or reserve_out == 0:
            return None

        return Reserves(
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            fee=bps_to_decimal(self.venue.fee_bps),
        )

    async def _quote_tier(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        fee_tier: int | None,
    ) -> int | None:
        reserves = await self._fetch_reserves(token_in, token_out)
        if reserves is None:
            return None
        return constant_product_amount_out(
            amount_in, reserves.reserve_in, reserves.reserve_out, reserves.fee
        )
