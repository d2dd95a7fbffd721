"""
dex/adapters/base.py - Shared adapter behaviour.

Every venue answers two questions for a direction (token_in -> token_out):
how much comes out for a given input, and how deep is the venue.
"Unavailable" is None, never an exception: reverts, missing pools, malformed
responses and RPC failures are logged at DEBUG and swallowed here.
No retries; a failed probe is simply unavailable for this pass.
"""

import asyncio
from abc import ABC, abstractmethod

from core.constants import VenueKind
from core.exceptions import InfraError, QuoteError
from core.logging import get_logger
from core.models import Quote, Reserves, Token, Venue
from chains.providers import RPCProvider

logger = get_logger(__name__)


class VenueAdapter(ABC):
    """
    Base class for venue adapters.

    Subclasses implement _quote_tier and _fetch_reserves and may raise
    QuoteError/InfraError freely; the public methods convert them to None.
    """

    kind: VenueKind

    # Constant-product venues compute expected output from reserves;
    # everything else uses the venue's own quote.
    uses_reserve_formula: bool = False

    def __init__(self, venue: Venue, provider: RPCProvider):
        self.venue = venue
        self.provider = provider

    @property
    def name(self) -> str:
        return self.venue.name

    def fee_tiers(self) -> list[int | None]:
        """Tiers probed per quote. A venue without tiers is probed once."""
        return list(self.venue.fee_tiers) or [None]

    async def quote(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
    ) -> Quote | None:
        """
        Best quote across all configured tiers, or None when no tier answers.

        Tiers are probed concurrently; the highest amount_out wins.
        """
        if amount_in <= 0:
            return None

        tiers = self.fee_tiers()
        results = await asyncio.gather(
            *(self._safe_quote_tier(token_in, token_out, amount_in, tier) for tier in tiers)
        )

        best_tier: int | None = None
        best_out = 0
        for tier, amount_out in zip(tiers, results):
            if amount_out is None or amount_out <= 0:
                continue
            if amount_out > best_out:
                best_tier, best_out = tier, amount_out

        if best_out == 0:
            logger.debug(
                f"{self.name}: no quote for {token_in.symbol}->{token_out.symbol}",
                extra={"context": {"venue": self.name, "tiers": tiers, "amount_in": amount_in}},
            )
            return None

        return Quote(
            venue=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=best_out,
            fee_tier_used=best_tier,
        )

    async def get_reserves(self, token_in: Token, token_out: Token) -> Reserves | None:
        """Depth for the direction, or None when unavailable."""
        try:
            return await self._fetch_reserves(token_in, token_out)
        except (QuoteError, InfraError) as e:
            logger.debug(
                f"{self.name}: reserves unavailable for {token_in.symbol}->{token_out.symbol}: {e}",
                extra={"context": {"venue": self.name, "error_code": e.code.value}},
            )
            return None

    async def _safe_quote_tier(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        fee_tier: int | None,
    ) -> int | None:
        try:
            return await self._quote_tier(token_in, token_out, amount_in, fee_tier)
        except (QuoteError, InfraError) as e:
            logger.debug(
                f"{self.name}: tier {fee_tier} unavailable: {e}",
                extra={"context": {"venue": self.name, "fee_tier": fee_tier, "error_code": e.code.value}},
            )
            return None

    @abstractmethod
    async def _quote_tier(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        fee_tier: int | None,
    ) -> int | None:
        """Raw amount_out for one tier."""

    @abstractmethod
    async def _fetch_reserves(self, token_in: Token, token_out: Token) -> Reserves | None:
        """Raw reserves oriented as (in, out)."""
