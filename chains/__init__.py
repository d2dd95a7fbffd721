"""
chains/ - Blockchain interaction layer.

Modules:
- providers: RPC provider management with failover
- gas: current network fee estimate
"""

from chains.providers import (
    RPCProvider,
    RPCResponse,
    RPCStats,
    resolve_env_placeholders,
)
from chains.gas import GasPriceSource

__all__ = [
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    "resolve_env_placeholders",
    "GasPriceSource",
]
