"""
dex/adapters/stable_swap.py - Curve style stable-swap pool adapter.

The curve is flat near balance, so the reserve ratio says little about price.
Spot price comes from a one-token probe through get_dy instead.
"""

from decimal import Decimal

from core.constants import VenueKind
from core.logging import get_logger
from core.math import bps_to_decimal
from core.models import Reserves, Token
from dex.abi import (
    SELECTOR_BALANCES,
    SELECTOR_GET_DY,
    decode_words,
    encode_call,
    encode_uint,
)
from dex.adapters.base import VenueAdapter

logger = get_logger(__name__)


class StableSwapAdapter(VenueAdapter):
    kind = VenueKind.STABLE_SWAP

    def fee_tiers(self) -> list[int | None]:
        return [None]

    def _indices(self, token_in: Token, token_out: Token) -> tuple[int, int] | None:
        i = self.venue.coin_index(token_in)
        j = self.venue.coin_index(token_out)
        if i is None or j is None or i == j:
            logger.debug(f"{self.name}: {token_in.symbol}/{token_out.symbol} not in pool")
            return None
        return i, j

    async def get_dy(self, i: int, j: int, dx: int) -> int:
        response = await self.provider.eth_call(
            to=self.venue.pool,
            data=encode_call(SELECTOR_GET_DY, encode_uint(i), encode_uint(j), encode_uint(dx)),
        )
        (dy,) = decode_words(response.result, 1)
        return dy

    async def _balance(self, index: int) -> int:
        response = await self.provider.eth_call(
            to=self.venue.pool,
            data=encode_call(SELECTOR_BALANCES, encode_uint(index)),
        )
        (balance,) = decode_words(response.result, 1)
        return balance

    async def _quote_tier(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        fee_tier: int | None,
    ) -> int | None:
        indices = self._indices(token_in, token_out)
        if indices is None or not self.venue.pool:
            return None
        return await self.get_dy(indices[0], indices[1], amount_in)

    async def _fetch_reserves(self, token_in: Token, token_out: Token) -> Reserves | None:
        indices = self._indices(token_in, token_out)
        if indices is None or not self.venue.pool:
            return None
        i, j = indices

        balance_in = await self._balance(i)
        balance_out = await self._balance(j)
        if balance_in == 0 or balance_out == 0:
            return None

        unit = 10**token_in.decimals
        probe_out = await self.get_dy(i, j, unit)
        if probe_out == 0:
            return None

        return Reserves(
            reserve_in=balance_in,
            reserve_out=balance_out,
            fee=bps_to_decimal(self.venue.fee_bps),
            spot_price=Decimal(probe_out) / Decimal(unit),
        )
