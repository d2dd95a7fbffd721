"""
oracles/ - Reference price sources.
"""

from oracles.prices import PriceSourceConfig, TokenPriceSource

__all__ = ["PriceSourceConfig", "TokenPriceSource"]
