"""
core/math.py - Mathematical utilities.

CRITICAL: No float allowed in quoting/price/PnL.
On-chain amounts are int (smallest units), USD values are Decimal.
The only crossing between the two is wei_to_usd().
"""

from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Iterable

from core.constants import (
    BPS_DENOMINATOR,
    NATIVE_DECIMALS,
    V3_FEE_DENOMINATOR,
    WEI_PER_GWEI,
)
from core.exceptions import ErrorCode, ValidationError

HUNDRED = Decimal("100")
ZERO = Decimal("0")


# =============================================================================
# BASIS POINTS / PERCENT
# =============================================================================

def bps_to_decimal(bps: int | Decimal) -> Decimal:
    """
    Convert basis points to decimal multiplier.

    Example: 30 bps -> 0.003
    """
    return Decimal(bps) / BPS_DENOMINATOR


def fee_tier_to_decimal(fee_tier: int) -> Decimal:
    """
    Convert a concentrated-liquidity fee tier to a decimal fraction.

    Example: 3000 -> 0.003
    """
    return Decimal(fee_tier) / Decimal(V3_FEE_DENOMINATOR)


def ratio_pct(part: int | Decimal, whole: int | Decimal) -> Decimal:
    """part / whole as a percentage. Zero whole gives zero."""
    if whole == 0:
        return ZERO
    return Decimal(part) / Decimal(whole) * HUNDRED


# =============================================================================
# WEI CONVERSIONS
# =============================================================================

def wei_to_gwei(wei: int) -> Decimal:
    """Convert wei to gwei as Decimal."""
    return Decimal(wei) / Decimal(WEI_PER_GWEI)


def gwei_to_wei(gwei: Decimal | str | int) -> int:
    """Convert gwei to wei as int."""
    return int(safe_decimal(gwei) * WEI_PER_GWEI)


def wei_to_human(wei: int, decimals: int) -> Decimal:
    """
    Convert smallest-unit amount to human-readable Decimal.

    Example: wei_to_human(1000000, 6) -> Decimal('1')  # 1 USDC
    """
    if decimals < 0 or decimals > 36:
        raise ValidationError(f"Invalid decimals: {decimals}")
    return Decimal(wei) / Decimal(10**decimals)


def human_to_wei(amount: Decimal | str | int, decimals: int) -> int:
    """
    Convert human-readable amount to smallest units (truncating).

    Example: human_to_wei('1.5', 6) -> 1500000
    """
    if decimals < 0 or decimals > 36:
        raise ValidationError(f"Invalid decimals: {decimals}")
    scaled = safe_decimal(amount) * Decimal(10**decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def wei_to_usd(amount: int, decimals: int, price_usd: Decimal) -> Decimal:
    """
    Convert an on-chain amount to USD.

    This is the single boundary between integer amounts and Decimal USD.
    """
    return wei_to_human(amount, decimals) * price_usd


def gas_cost_wei(gas_price_wei: int, gas_units: int) -> int:
    """Total gas cost in native wei."""
    return gas_price_wei * gas_units


def gas_cost_usd(gas_price_wei: int, gas_units: int, native_price_usd: Decimal) -> Decimal:
    """Gas cost converted with the native token USD price."""
    return wei_to_usd(gas_cost_wei(gas_price_wei, gas_units), NATIVE_DECIMALS, native_price_usd)


# =============================================================================
# SAFE CONVERSIONS (NO FLOAT)
# =============================================================================

def safe_decimal(value: int | str | Decimal) -> Decimal:
    """
    Safely convert value to Decimal.

    Raises ValidationError if float is passed or conversion fails.
    """
    if isinstance(value, float):
        raise ValidationError(
            "Float values are not allowed. Use int, str, or Decimal.",
            details={"value": value, "type": type(value).__name__},
        )

    try:
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(
            f"Cannot convert to Decimal: {value}",
            details={"value": value, "type": type(value).__name__, "error": str(e)},
        )


def safe_int(value: int | str | Decimal) -> int:
    """
    Safely convert value to int (smallest units).

    Raises ValidationError if float is passed or conversion fails.
    """
    if isinstance(value, float):
        raise ValidationError(
            "Float values are not allowed. Use int, str, or Decimal.",
            details={"value": value, "type": type(value).__name__},
        )

    try:
        if isinstance(value, Decimal):
            return int(value.to_integral_value(rounding=ROUND_DOWN))
        return int(value)
    except (ValueError, TypeError) as e:
        raise ValidationError(
            f"Cannot convert to int: {value}",
            details={"value": value, "type": type(value).__name__, "error": str(e)},
        )


# =============================================================================
# CONSTANT PRODUCT / PRICE IMPACT
# =============================================================================

def constant_product_amount_out(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee: Decimal,
) -> int:
    """
    x*y=k output with the venue fee taken from the input.

    amount_in_with_fee = amount_in * (1 - fee)
    out = amount_in_with_fee * reserve_out / (reserve_in + amount_in_with_fee)

    Rounds down like the on-chain pair does.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = Decimal(amount_in) * (Decimal(1) - fee)
    out = amount_in_with_fee * Decimal(reserve_out) / (Decimal(reserve_in) + amount_in_with_fee)
    return int(out.to_integral_value(rounding=ROUND_DOWN))


def price_impact_pct(spot_price: Decimal, amount_in: int, amount_out: int) -> Decimal:
    """
    (spot - execution) / spot, as a percentage.

    Both prices are raw smallest-unit ratios (out per in).
    """
    if spot_price <= 0 or amount_in <= 0:
        return ZERO
    execution_price = Decimal(amount_out) / Decimal(amount_in)
    return (spot_price - execution_price) / spot_price * HUNDRED


def round_trip_spread_pct(amount_in: int, amount_back: int) -> Decimal:
    """
    Spread realized by swapping A -> B -> A, as a percentage of amount_in.

    Positive when the round trip returns more than it started with.
    """
    if amount_in <= 0:
        return ZERO
    return (Decimal(amount_back) - Decimal(amount_in)) / Decimal(amount_in) * HUNDRED


def normalize_rate(
    amount_in: int,
    amount_out: int,
    decimals_in: int,
    decimals_out: int,
) -> Decimal:
    """
    Human rate (amount_out per 1 amount_in) adjusted for decimals.

    Used for comparison only, not for PnL calculation.
    """
    if amount_in == 0:
        return ZERO
    return wei_to_human(amount_out, decimals_out) / wei_to_human(amount_in, decimals_in)


# =============================================================================
# STATISTICS
# =============================================================================

def mean(values: Iterable[Decimal]) -> Decimal:
    items = list(values)
    if not items:
        return ZERO
    return sum(items, ZERO) / Decimal(len(items))


def median(values: Iterable[Decimal]) -> Decimal:
    items = sorted(values)
    if not items:
        return ZERO
    middle = len(items) // 2
    if len(items) % 2:
        return items[middle]
    return (items[middle - 1] + items[middle]) / Decimal(2)


def pstdev(values: Iterable[Decimal]) -> Decimal:
    """Population standard deviation in Decimal."""
    items = list(values)
    if not items:
        return ZERO
    avg = mean(items)
    variance = sum(((v - avg) ** 2 for v in items), ZERO) / Decimal(len(items))
    return variance.sqrt()


# =============================================================================
# VALIDATION
# =============================================================================

def validate_no_float(*values: object) -> None:
    """
    Validate that none of the values are floats.

    Raises ValidationError if any float is found.
    """
    for i, value in enumerate(values):
        if isinstance(value, float):
            raise ValidationError(
                f"Float value at position {i} is not allowed",
                code=ErrorCode.INVARIANT_VIOLATION,
                details={"position": i, "value": value},
            )
