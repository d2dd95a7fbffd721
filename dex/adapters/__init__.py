"""
dex/adapters/ - Venue quoting adapters.

Adapters:
- constant_product: x*y=k pairs (getPair / getReserves)
- concentrated: QuoterV2 venues with fee tiers
- stable_swap: Curve style pools (get_dy / balances)

The adapter for a venue is picked once at startup by build_adapter().
"""

from core.constants import VenueKind
from core.exceptions import ConfigError, ErrorCode
from core.models import Venue
from chains.providers import RPCProvider
from dex.adapters.base import VenueAdapter
from dex.adapters.concentrated import ConcentratedLiquidityAdapter
from dex.adapters.constant_product import ConstantProductAdapter
from dex.adapters.stable_swap import StableSwapAdapter

ADAPTERS: dict[VenueKind, type[VenueAdapter]] = {
    VenueKind.CONSTANT_PRODUCT: ConstantProductAdapter,
    VenueKind.CONCENTRATED_LIQUIDITY: ConcentratedLiquidityAdapter,
    VenueKind.STABLE_SWAP: StableSwapAdapter,
}


def build_adapter(venue: Venue, provider: RPCProvider) -> VenueAdapter:
    adapter_cls = ADAPTERS.get(venue.kind)
    if adapter_cls is None:
        raise ConfigError(
            f"No adapter for venue kind {venue.kind}",
            code=ErrorCode.CONFIG_INVALID,
            details={"venue": venue.name},
        )
    return adapter_cls(venue, provider)


def build_adapters(venues: dict[str, Venue], provider: RPCProvider) -> dict[str, VenueAdapter]:
    return {name: build_adapter(venue, provider) for name, venue in venues.items()}


__all__ = [
    "ADAPTERS",
    "ConcentratedLiquidityAdapter",
    "ConstantProductAdapter",
    "StableSwapAdapter",
    "VenueAdapter",
    "build_adapter",
    "build_adapters",
]
