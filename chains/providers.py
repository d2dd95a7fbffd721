"""
chains/providers.py - RPC provider management with failover.

Provides reliable RPC access with:
- Multiple endpoint failover
- Request timeout handling
- Connection pooling
- Latency tracking

The provider itself never interprets a failure as "no liquidity"; it raises
InfraError and lets adapters decide what a failed call means.
"""

import os
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx
from dotenv import load_dotenv

from core.logging import get_logger
from core.exceptions import ErrorCode, InfraError, QuoteError

logger = get_logger(__name__)

# Load environment variables
load_dotenv()

_ENV_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


def resolve_env_placeholders(url: str) -> str | None:
    """
    Replace ${VAR} placeholders from the environment.

    Returns None when a placeholder has no value, so keyed endpoints
    without a key are skipped instead of called.
    """
    missing = False

    def _sub(match: re.Match) -> str:
        nonlocal missing
        value = os.getenv(match.group(1), "")
        if not value:
            missing = True
        return value

    resolved = _ENV_PLACEHOLDER.sub(_sub, url)
    return None if missing else resolved


class RPCProvider:
    """
    RPC provider with failover support.

    Tries multiple endpoints in order until one succeeds.
    Tracks statistics per endpoint for monitoring.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: float = 10,
    ):
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

        self.rpc_urls = [
            resolved for resolved in (resolve_env_placeholders(u) for u in rpc_urls)
            if resolved
        ]

        self.stats: dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover.

        Raises:
            QuoteError: the node answered with an execution revert
            InfraError: all endpoints failed
        """
        if not self.rpc_urls:
            raise InfraError(
                "No RPC endpoints configured",
                details={"chain_id": self.chain_id},
            )

        client = await self._get_client()
        last_error: Exception | None = None

        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1

            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }

            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms
                resp.raise_for_status()
                result = resp.json()

                if "error" in result:
                    error = result["error"]
                    error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    stats.failed_requests += 1
                    stats.last_error = error_msg

                    # A revert is an answer, not an endpoint failure
                    if "revert" in error_msg.lower() or "execution" in error_msg.lower():
                        raise QuoteError(
                            f"Call reverted: {error_msg}",
                            code=ErrorCode.QUOTE_REVERT,
                            details={"url": url, "method": method},
                        )

                    last_error = InfraError(
                        f"RPC error: {error_msg}",
                        details={"url": url, "method": method},
                    )
                    logger.debug(f"RPC error from {url}: {error_msg}")
                    continue

                stats.successful_requests += 1
                stats.total_latency_ms += latency_ms
                stats.last_success_ts = int(time.time() * 1000)

                return RPCResponse(
                    result=result.get("result"),
                    latency_ms=latency_ms,
                    endpoint_used=url,
                )

            except httpx.TimeoutException as e:
                latency_ms = int(time.time() * 1000) - start_ms
                stats.failed_requests += 1
                stats.last_error = f"Timeout after {latency_ms}ms"
                last_error = e
                logger.debug(f"RPC timeout for {url}: {latency_ms}ms")
                continue

            except httpx.HTTPError as e:
                stats.failed_requests += 1
                stats.last_error = str(e)
                last_error = e
                logger.debug(f"RPC failed for {url}: {e}")
                continue

        raise InfraError(
            f"All RPC endpoints failed for chain {self.chain_id}",
            code=ErrorCode.INFRA_TIMEOUT if isinstance(last_error, httpx.TimeoutException)
            else ErrorCode.INFRA_RPC_ERROR,
            details={
                "chain_id": self.chain_id,
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
        )

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
    ) -> RPCResponse:
        """Make eth_call against a contract."""
        return await self.call(
            "eth_call",
            [{"to": to, "data": data}, block],
        )

    async def get_gas_price(self) -> int:
        """Current gas price in wei."""
        response = await self.call("eth_gasPrice")
        return int(response.result, 16)

    async def get_max_priority_fee(self) -> int:
        """Suggested priority fee in wei (EIP-1559 nodes)."""
        response = await self.call("eth_maxPriorityFeePerGas")
        return int(response.result, 16)

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }
