"""
core/models.py - Core data models.

All on-chain amounts are int smallest units, all USD values are Decimal.
NO FLOATS.

Lifetimes:
- Token, Venue: reference data, loaded once from config, frozen.
- Quote, Reserves: produced fresh per validation pass, never cached.
- OpportunityCandidate: produced upstream, consumed once.
- ValidationVerdict: returned synchronously, not persisted.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import (
    CheckName,
    RejectReason,
    TradeSide,
    VenueKind,
    VerdictCategory,
)
from core.exceptions import ErrorCode, ValidationError
from core.math import wei_to_gwei


def _jsonable(value: Any) -> Any:
    """Decimals and enums to strings for log/JSON output."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ============================================================================
# REFERENCE DATA
# ============================================================================

@dataclass(frozen=True)
class Token:
    """ERC-20 token reference data."""
    symbol: str
    address: str
    decimals: int

    def __post_init__(self):
        if not self.address.startswith("0x") or len(self.address) != 42:
            raise ValidationError(
                f"Invalid token address for {self.symbol}: {self.address}",
                details={"symbol": self.symbol},
            )
        if not 0 <= self.decimals <= 36:
            raise ValidationError(
                f"Invalid decimals for {self.symbol}: {self.decimals}",
                details={"symbol": self.symbol},
            )

    def sorts_before(self, other: "Token") -> bool:
        """Pool token0 ordering: lower address first."""
        return int(self.address, 16) < int(other.address, 16)

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "address": self.address, "decimals": self.decimals}


@dataclass(frozen=True)
class Venue:
    """
    A configured liquidity source.

    Connection parameters per kind:
    - CONSTANT_PRODUCT: factory (getPair) or pool, fee_bps
    - CONCENTRATED_LIQUIDITY: quoter (QuoterV2), factory (getPool), fee_tiers
    - STABLE_SWAP: pool, coins (token address -> coin index), fee_bps
    """
    name: str
    kind: VenueKind
    router: Optional[str] = None
    quoter: Optional[str] = None
    factory: Optional[str] = None
    pool: Optional[str] = None
    fee_tiers: tuple[int, ...] = ()
    fee_bps: int = 30
    coins: tuple[tuple[str, int], ...] = ()

    def coin_index(self, token: Token) -> Optional[int]:
        address = token.address.lower()
        for coin_address, index in self.coins:
            if coin_address.lower() == address:
                return index
        return None


# ============================================================================
# PER-PASS MARKET DATA
# ============================================================================

@dataclass(frozen=True)
class Quote:
    """A single venue quote. Fresh per validation pass."""
    venue: str
    token_in: Token
    token_out: Token
    amount_in: int
    amount_out: int
    fee_tier_used: Optional[int] = None

    @property
    def pair(self) -> str:
        return f"{self.token_in.symbol}/{self.token_out.symbol}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "token_in": self.token_in.symbol,
            "token_out": self.token_out.symbol,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "fee_tier_used": self.fee_tier_used,
        }


@dataclass(frozen=True)
class Reserves:
    """
    Venue depth for one direction, in raw smallest units.

    spot_price overrides reserve_out / reserve_in for venues whose marginal
    price is not the reserve ratio (stable-swap curves).
    """
    reserve_in: int
    reserve_out: int
    fee: Decimal = Decimal("0")
    spot_price: Optional[Decimal] = None
    fee_tier: Optional[int] = None

    @property
    def spot(self) -> Decimal:
        if self.spot_price is not None:
            return self.spot_price
        if self.reserve_in <= 0:
            return Decimal("0")
        return Decimal(self.reserve_out) / Decimal(self.reserve_in)


@dataclass(frozen=True)
class FeeEstimate:
    """Current network fee level."""
    gas_price_wei: int
    priority_fee_wei: int = 0

    @property
    def gas_price_gwei(self) -> Decimal:
        return wei_to_gwei(self.gas_price_wei)


# ============================================================================
# CANDIDATE
# ============================================================================

@dataclass(frozen=True)
class OpportunityCandidate:
    """
    Upstream-discovered arbitrage candidate.

    Borrow amount_in of token_a, swap to token_b on buy_venue, swap back to
    token_a on sell_venue. hops counts swaps along the route.
    """
    token_a: Token
    token_b: Token
    amount_in: int
    buy_venue: str
    sell_venue: str
    raw_profit_estimate_usd: Decimal = Decimal("0")
    hops: int = 2
    discovered_at_ms: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.amount_in, bool) or not isinstance(self.amount_in, int):
            raise ValidationError(
                "amount_in must be an int in smallest units",
                details={"amount_in": repr(self.amount_in)},
            )
        if self.amount_in <= 0:
            raise ValidationError(
                f"amount_in must be positive: {self.amount_in}",
                details={"amount_in": self.amount_in},
            )
        if self.token_a.address.lower() == self.token_b.address.lower():
            raise ValidationError(
                f"Candidate tokens must differ: {self.token_a.symbol}",
                details={"token": self.token_a.symbol},
            )
        if self.hops < 2:
            raise ValidationError(
                f"A round trip needs at least 2 hops, got {self.hops}",
                code=ErrorCode.CANDIDATE_INVALID,
            )

    @property
    def pair(self) -> str:
        return f"{self.token_a.symbol}/{self.token_b.symbol}"

    @property
    def venue_pair(self) -> str:
        return f"{self.buy_venue}->{self.sell_venue}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pair": self.pair,
            "amount_in": self.amount_in,
            "buy_venue": self.buy_venue,
            "sell_venue": self.sell_venue,
            "raw_profit_estimate_usd": str(self.raw_profit_estimate_usd),
            "hops": self.hops,
            "discovered_at_ms": self.discovered_at_ms,
        }


# ============================================================================
# STEP RESULTS
# ============================================================================

@dataclass
class DepthCheckResult:
    """Liquidity depth result for one leg."""
    is_valid: bool
    expected_output: int = 0
    reserve_ratio: Decimal = Decimal("0")
    price_impact: Decimal = Decimal("0")
    reason: str = ""
    code: Optional[RejectReason] = None
    unavailable: bool = False
    fee: Decimal = Decimal("0")
    spot_price: Decimal = Decimal("0")
    min_amount_out: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable({
            "is_valid": self.is_valid,
            "expected_output": self.expected_output,
            "reserve_ratio_pct": self.reserve_ratio,
            "price_impact_pct": self.price_impact,
            "reason": self.reason,
            "code": self.code,
            "unavailable": self.unavailable,
            "min_amount_out": self.min_amount_out,
        })


@dataclass
class SpreadCheckResult:
    """Price plausibility result."""
    is_valid: bool
    reason: str
    deviation: Decimal
    threshold: Decimal
    token_class: str
    code: Optional[RejectReason] = None
    warning: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable({
            "is_valid": self.is_valid,
            "reason": self.reason,
            "spread_pct": self.deviation,
            "threshold_pct": self.threshold,
            "token_class": self.token_class,
            "code": self.code,
            "warning": self.warning,
            **self.details,
        })


@dataclass
class ProfitabilityResult:
    """Cost and profit breakdown in USD."""
    is_valid: bool
    reason: str
    profit_usd: Decimal = Decimal("0")
    gas_cost_usd: Decimal = Decimal("0")
    flash_loan_fee_usd: Decimal = Decimal("0")
    dex_fee_usd: Decimal = Decimal("0")
    slippage_usd: Decimal = Decimal("0")
    net_profit_usd: Decimal = Decimal("0")
    profit_to_gas_ratio: Decimal = Decimal("0")
    required_multiplier: Decimal = Decimal("0")
    min_profit_usd: Decimal = Decimal("0")
    code: Optional[RejectReason] = None
    shortfall: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable({
            "is_valid": self.is_valid,
            "reason": self.reason,
            "profit_usd": self.profit_usd,
            "gas_cost_usd": self.gas_cost_usd,
            "flash_loan_fee_usd": self.flash_loan_fee_usd,
            "dex_fee_usd": self.dex_fee_usd,
            "slippage_usd": self.slippage_usd,
            "net_profit_usd": self.net_profit_usd,
            "profit_to_gas_ratio": self.profit_to_gas_ratio,
            "required_multiplier": self.required_multiplier,
            "min_profit_usd": self.min_profit_usd,
            "code": self.code,
            "shortfall": self.shortfall,
        })


# ============================================================================
# VERDICT
# ============================================================================

@dataclass
class ValidationVerdict:
    """
    Single structured verdict returned to the execution layer.

    Every rejection carries the failed check, the side (for depth checks),
    the code and the numbers that drove the decision.
    """
    is_valid: bool
    reason: str
    category: VerdictCategory
    code: Optional[RejectReason] = None
    check: Optional[CheckName] = None
    side: Optional[TradeSide] = None
    breakdown: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_breaker_tripped(self) -> bool:
        return self.category == VerdictCategory.BREAKER_TRIPPED

    @property
    def net_profit_usd(self) -> Optional[Decimal]:
        return self.breakdown.get("net_profit_usd")

    @classmethod
    def passed(
        cls,
        breakdown: Dict[str, Any],
        warnings: List[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> "ValidationVerdict":
        return cls(
            is_valid=True,
            reason="all checks passed",
            category=VerdictCategory.PASSED,
            breakdown=breakdown,
            warnings=list(warnings),
            details=details or {},
        )

    @classmethod
    def rejected(
        cls,
        reason: str,
        code: RejectReason,
        check: CheckName,
        category: VerdictCategory = VerdictCategory.REJECTED,
        side: Optional[TradeSide] = None,
        details: Optional[Dict[str, Any]] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ValidationVerdict":
        return cls(
            is_valid=False,
            reason=reason,
            category=category,
            code=code,
            check=check,
            side=side,
            warnings=list(warnings or []),
            details=details or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable({
            "is_valid": self.is_valid,
            "reason": self.reason,
            "category": self.category,
            "code": self.code,
            "check": self.check,
            "side": self.side,
            "breakdown": self.breakdown,
            "warnings": self.warnings,
            "details": self.details,
        })


# ============================================================================
# EXECUTION
# ============================================================================

@dataclass(frozen=True)
class ExecutionOutcome:
    """What the settlement executor reports back. USD amounts."""
    success: bool
    profit_usd: Decimal
    gas_cost_usd: Decimal
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "profit_usd": str(self.profit_usd),
            "gas_cost_usd": str(self.gas_cost_usd),
            "error": self.error,
        }
