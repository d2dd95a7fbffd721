"""
strategy/liquidity.py - Liquidity depth validator.

Decides whether a trade is small enough relative to venue depth:
- reserve ratio: amount_in / reserve_in
- price impact: (spot - execution) / spot
- optional minimum output (explicit, or derived from a slippage tolerance)

All values are percentages; all thresholds come from DepthLimits.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

from core.constants import RejectReason
from core.logging import get_logger
from core.math import HUNDRED, constant_product_amount_out, price_impact_pct, ratio_pct
from core.models import DepthCheckResult, Token
from dex.adapters.base import VenueAdapter
from strategy.config import DepthLimits

logger = get_logger(__name__)


@dataclass(frozen=True)
class DepthOptions:
    """Per-call output floor. min_amount_out wins over the tolerance."""
    min_amount_out: int | None = None
    slippage_tolerance_pct: Decimal | None = None


def min_output_for_tolerance(
    amount_in: int,
    spot_price: Decimal,
    tolerance_pct: Decimal,
    fee: Decimal = Decimal("0"),
) -> int:
    """amount_in * spot * (1 - fee) * (1 - tol), rounded down.

    The venue fee is charged regardless of depth, so the tolerance only
    covers curve slippage on top of it.
    """
    floor = (
        Decimal(amount_in) * spot_price
        * (Decimal(1) - fee)
        * (Decimal(1) - tolerance_pct / HUNDRED)
    )
    return int(floor.to_integral_value(rounding=ROUND_DOWN))


class LiquidityDepthValidator:
    """
    Depth gate for one leg of a trade.

    Usage:
        validator = LiquidityDepthValidator(limits)
        result = await validator.check_depth(adapter, weth, usdc, amount_in)
    """

    def __init__(self, limits: DepthLimits | None = None):
        self.limits = limits or DepthLimits()

    async def check_depth(
        self,
        adapter: VenueAdapter,
        token_in: Token,
        token_out: Token,
        amount_in: int,
        options: DepthOptions | None = None,
        limits: DepthLimits | None = None,
    ) -> DepthCheckResult:
        limits = limits or self.limits
        options = options or DepthOptions()
        direction = f"{token_in.symbol}->{token_out.symbol}"

        reserves = await adapter.get_reserves(token_in, token_out)
        if reserves is None:
            return DepthCheckResult(
                is_valid=False,
                reason=f"liquidity unavailable on {adapter.name} for {direction}",
                code=RejectReason.LIQUIDITY_UNAVAILABLE,
                unavailable=True,
            )

        reserve_ratio = ratio_pct(amount_in, reserves.reserve_in)
        spot = reserves.spot

        if reserve_ratio > limits.max_reserve_ratio_pct:
            return DepthCheckResult(
                is_valid=False,
                reserve_ratio=reserve_ratio,
                reason=(
                    f"trade is {reserve_ratio:.2f}% of {adapter.name} reserves, "
                    f"max {limits.max_reserve_ratio_pct}%"
                ),
                code=RejectReason.RESERVE_RATIO_TOO_HIGH,
                fee=reserves.fee,
                spot_price=spot,
            )

        if adapter.uses_reserve_formula:
            expected_output = constant_product_amount_out(
                amount_in, reserves.reserve_in, reserves.reserve_out, reserves.fee
            )
        else:
            quote = await adapter.quote(token_in, token_out, amount_in)
            if quote is None:
                return DepthCheckResult(
                    is_valid=False,
                    reserve_ratio=reserve_ratio,
                    reason=f"quote unavailable on {adapter.name} for {direction}",
                    code=RejectReason.LIQUIDITY_UNAVAILABLE,
                    unavailable=True,
                    fee=reserves.fee,
                    spot_price=spot,
                )
            expected_output = quote.amount_out

        price_impact = price_impact_pct(spot, amount_in, expected_output)

        result = DepthCheckResult(
            is_valid=True,
            expected_output=expected_output,
            reserve_ratio=reserve_ratio,
            price_impact=price_impact,
            fee=reserves.fee,
            spot_price=spot,
        )

        if price_impact > limits.max_price_impact_pct:
            result.is_valid = False
            result.code = RejectReason.PRICE_IMPACT_TOO_HIGH
            result.reason = (
                f"price impact {price_impact:.2f}% on {adapter.name} exceeds "
                f"max {limits.max_price_impact_pct}%"
            )
            return result

        min_amount_out = options.min_amount_out
        if min_amount_out is None and options.slippage_tolerance_pct is not None:
            min_amount_out = min_output_for_tolerance(
                amount_in, spot, options.slippage_tolerance_pct, reserves.fee
            )
        result.min_amount_out = min_amount_out

        if min_amount_out is not None and expected_output < min_amount_out:
            result.is_valid = False
            result.code = RejectReason.SLIPPAGE_TOO_HIGH
            result.reason = (
                f"expected output {expected_output} below minimum {min_amount_out} "
                f"on {adapter.name}"
            )
            return result

        result.reason = "depth ok"
        logger.debug(
            f"Depth ok: {adapter.name} {direction}",
            extra={"context": {
                "venue": adapter.name,
                "reserve_ratio_pct": str(reserve_ratio),
                "price_impact_pct": str(price_impact),
            }},
        )
        return result

    async def max_trade_size(
        self,
        adapter: VenueAdapter,
        token_in: Token,
        token_out: Token,
        safe_pct: Decimal | None = None,
    ) -> int | None:
        """Largest input that keeps the reserve ratio at safe_pct, or None."""
        safe_pct = safe_pct if safe_pct is not None else self.limits.safe_trade_pct
        reserves = await adapter.get_reserves(token_in, token_out)
        if reserves is None:
            return None
        size = Decimal(reserves.reserve_in) * safe_pct / HUNDRED
        return int(size.to_integral_value(rounding=ROUND_DOWN))
