"""
core - Core utilities and models for Flashgate.

This package contains:
- constants.py: Enums, defaults, reject codes
- exceptions.py: Typed exceptions with error codes
- math.py: Integer/Decimal money math (no float)
- models.py: Data models (Token, Venue, Quote, Candidate, Verdict)
- time.py: Wall-clock stamps and midnight helpers
- logging.py: Structured JSON logging
"""

from core.constants import (
    CheckName,
    RejectReason,
    RiskLevel,
    TokenClass,
    TradeSide,
    VenueKind,
    VerdictCategory,
    Volatility,
    V3_FEE_TIERS,
)
from core.exceptions import (
    ConfigError,
    ErrorCode,
    FlashgateError,
    InfraError,
    QuoteError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    DepthCheckResult,
    ExecutionOutcome,
    FeeEstimate,
    OpportunityCandidate,
    ProfitabilityResult,
    Quote,
    Reserves,
    SpreadCheckResult,
    Token,
    ValidationVerdict,
    Venue,
)

__all__ = [
    # Constants
    "CheckName",
    "RejectReason",
    "RiskLevel",
    "TokenClass",
    "TradeSide",
    "VenueKind",
    "VerdictCategory",
    "Volatility",
    "V3_FEE_TIERS",
    # Exceptions
    "ConfigError",
    "ErrorCode",
    "FlashgateError",
    "InfraError",
    "QuoteError",
    "ValidationError",
    # Models
    "DepthCheckResult",
    "ExecutionOutcome",
    "FeeEstimate",
    "OpportunityCandidate",
    "ProfitabilityResult",
    "Quote",
    "Reserves",
    "SpreadCheckResult",
    "Token",
    "ValidationVerdict",
    "Venue",
    # Logging
    "get_logger",
    "setup_logging",
]
