"""
core/exceptions.py - Typed exceptions with error codes.

Exceptions are reserved for exceptional conditions: infrastructure failures,
malformed venue responses, bad configuration, malformed candidates.
Expected business outcomes (a venue without liquidity, a failed threshold)
are returned as values, never raised.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error codes for raised exceptions."""
    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_HTTP_ERROR = "INFRA_HTTP_ERROR"

    # Venue calls
    QUOTE_REVERT = "QUOTE_REVERT"
    QUOTE_MALFORMED = "QUOTE_MALFORMED"
    POOL_NOT_FOUND = "POOL_NOT_FOUND"

    # Config / input
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"
    CANDIDATE_INVALID = "CANDIDATE_INVALID"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"

    UNKNOWN = "UNKNOWN"


class FlashgateError(Exception):
    """Base exception for Flashgate."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class InfraError(FlashgateError):
    """Infrastructure-related errors (RPC, timeouts, HTTP)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INFRA_RPC_ERROR,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class QuoteError(FlashgateError):
    """A venue call reverted or returned something undecodable."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.QUOTE_REVERT,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class ConfigError(FlashgateError):
    """Missing or invalid configuration. Fatal at startup."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class ValidationError(FlashgateError):
    """Malformed input or a violated programming invariant."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CANDIDATE_INVALID,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)
