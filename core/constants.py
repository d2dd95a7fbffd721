"""
core/constants.py - Enums, defaults, and constants.

Only truly constant values here. Tunable thresholds go to config/strategy.yaml
and are parsed by strategy/config.py.
"""

from decimal import Decimal
from enum import Enum
from typing import Final


# =============================================================================
# CHAIN / VENUE CONSTANTS
# =============================================================================

# Concentrated-liquidity fee tiers (in hundredths of a bip)
V3_FEE_TIERS: Final[tuple[int, ...]] = (100, 500, 3000, 10000)

# Denominator for V3 fee tiers: 3000 / 1_000_000 = 0.3%
V3_FEE_DENOMINATOR: Final[int] = 1_000_000

BPS_DENOMINATOR: Final[Decimal] = Decimal("10000")

WEI_PER_GWEI: Final[int] = 10**9
NATIVE_DECIMALS: Final[int] = 18

ZERO_ADDRESS: Final[str] = "0x" + "0" * 40

# Fixed-point base of sqrtPriceX96
Q96: Final[int] = 2**96


# =============================================================================
# DEFAULTS (used when strategy.yaml omits a value)
# =============================================================================

DEFAULT_MAX_RESERVE_RATIO_PCT: Final[Decimal] = Decimal("5")
DEFAULT_MAX_PRICE_IMPACT_PCT: Final[Decimal] = Decimal("3")
DEFAULT_SLIPPAGE_TOLERANCE_PCT: Final[Decimal] = Decimal("1")
DEFAULT_SAFE_TRADE_PCT: Final[Decimal] = Decimal("2")

DEFAULT_STABLE_SPREAD_PCT: Final[Decimal] = Decimal("0.2")
DEFAULT_MAJOR_SPREAD_PCT: Final[Decimal] = Decimal("0.5")
DEFAULT_SPREAD_PCT: Final[Decimal] = Decimal("1.0")
DEFAULT_MAX_STD_DEVS: Final[Decimal] = Decimal("3")
DEFAULT_REFERENCE_TOLERANCE_PCT: Final[Decimal] = Decimal("2")
DEFAULT_SUSPICIOUS_SPREAD_PCT: Final[Decimal] = Decimal("5")
DEFAULT_SUSPICIOUS_TRADE_SIZE_USD: Final[Decimal] = Decimal("10000")
DEFAULT_HISTORY_WINDOW: Final[int] = 50
DEFAULT_MIN_HISTORY_SAMPLES: Final[int] = 5

DEFAULT_STABLECOINS: Final[frozenset[str]] = frozenset(
    {"USDC", "USDT", "DAI", "BUSD", "TUSD", "FRAX", "USDC.E"}
)
DEFAULT_MAJORS: Final[frozenset[str]] = frozenset({"WETH", "WBTC", "WBNB", "WMATIC"})

DEFAULT_MIN_PROFIT_USD: Final[Decimal] = Decimal("50")
DEFAULT_MAX_GAS_PRICE_GWEI: Final[Decimal] = Decimal("100")
DEFAULT_MIN_PROFIT_MULTIPLIER: Final[Decimal] = Decimal("2.0")
DEFAULT_LOW_VOL_PROFIT_MULTIPLIER: Final[Decimal] = Decimal("1.5")
DEFAULT_HIGH_VOL_PROFIT_MULTIPLIER: Final[Decimal] = Decimal("3.0")
DEFAULT_FLASH_LOAN_FEE_RATE: Final[Decimal] = Decimal("0.0009")  # Aave: 0.09%
DEFAULT_SINGLE_HOP_GAS_UNITS: Final[int] = 500_000
DEFAULT_MULTI_HOP_GAS_UNITS: Final[int] = 1_000_000

DEFAULT_MAX_CONSECUTIVE_FAILURES: Final[int] = 3
DEFAULT_MAX_DAILY_LOSS: Final[Decimal] = Decimal("100")
DEFAULT_COOLDOWN_MINUTES: Final[int] = 30
DEFAULT_BREAKER_PRICE_DEVIATION_PCT: Final[Decimal] = Decimal("10")
DEFAULT_BREAKER_LIQUIDITY_PCT: Final[Decimal] = Decimal("50")

# Bounded breaker history sizes
EXECUTION_HISTORY_LIMIT: Final[int] = 1000
BREACH_HISTORY_LIMIT: Final[int] = 100
BREACHES_KEPT_ON_DAILY_RESET: Final[int] = 10

DEFAULT_PRICE_CACHE_SECONDS: Final[int] = 60
# Live sources further than this from their average are outliers
DEFAULT_ANOMALY_THRESHOLD_PCT: Final[Decimal] = Decimal("5")
DEFAULT_SCAN_INTERVAL_SECONDS: Final[int] = 5


# =============================================================================
# ENUMS
# =============================================================================

class VenueKind(str, Enum):
    """Liquidity venue kinds supported by the adapters."""
    CONSTANT_PRODUCT = "CONSTANT_PRODUCT"
    CONCENTRATED_LIQUIDITY = "CONCENTRATED_LIQUIDITY"
    STABLE_SWAP = "STABLE_SWAP"


class TokenClass(str, Enum):
    """Pair classification used for spread thresholds."""
    STABLE = "STABLE"
    MAJOR = "MAJOR"
    DEFAULT = "DEFAULT"


class Volatility(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class VerdictCategory(str, Enum):
    """
    Top-level verdict taxonomy.

    BREAKER_TRIPPED lets callers back off entirely instead of retrying on the
    next scan; UNAVAILABLE marks venues that could not be compared.
    """
    PASSED = "PASSED"
    REJECTED = "REJECTED"
    UNAVAILABLE = "UNAVAILABLE"
    BREAKER_TRIPPED = "BREAKER_TRIPPED"
    ERROR = "ERROR"


class CheckName(str, Enum):
    """Pipeline step names carried in verdicts."""
    CIRCUIT_BREAKER = "circuit_breaker"
    GAS_PRICE = "gas_price"
    QUOTES = "quotes"
    LIQUIDITY = "liquidity"
    PRICE = "price"
    PROFITABILITY = "profitability"
    VALIDATION = "validation"


class RejectReason(str, Enum):
    """Machine-readable rejection codes."""
    # Gate
    CIRCUIT_BREAKER_ACTIVE = "CIRCUIT_BREAKER_ACTIVE"
    GAS_PRICE_TOO_HIGH = "GAS_PRICE_TOO_HIGH"
    GAS_PRICE_UNAVAILABLE = "GAS_PRICE_UNAVAILABLE"

    # Quotes
    NO_COMPARABLE_QUOTES = "NO_COMPARABLE_QUOTES"
    VENUE_UNAVAILABLE = "VENUE_UNAVAILABLE"

    # Liquidity depth
    LIQUIDITY_UNAVAILABLE = "LIQUIDITY_UNAVAILABLE"
    RESERVE_RATIO_TOO_HIGH = "RESERVE_RATIO_TOO_HIGH"
    PRICE_IMPACT_TOO_HIGH = "PRICE_IMPACT_TOO_HIGH"
    SLIPPAGE_TOO_HIGH = "SLIPPAGE_TOO_HIGH"

    # Price plausibility
    SPREAD_OUTLIER = "SPREAD_OUTLIER"
    SPREAD_UNCORROBORATED = "SPREAD_UNCORROBORATED"
    REFERENCE_PRICE_MISMATCH = "REFERENCE_PRICE_MISMATCH"
    SUSPICIOUS_SPREAD_PATTERN = "SUSPICIOUS_SPREAD_PATTERN"

    # Profitability
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    NOT_PROFITABLE = "NOT_PROFITABLE"
    PROFIT_BELOW_MINIMUM = "PROFIT_BELOW_MINIMUM"
    PROFIT_TO_GAS_RATIO_TOO_LOW = "PROFIT_TO_GAS_RATIO_TOO_LOW"

    # Other
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN = "UNKNOWN"
