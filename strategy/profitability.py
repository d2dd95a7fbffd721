"""
strategy/profitability.py - Cost & profitability analyzer.

Cost model (USD, Decimal):
    gas_cost       = gas_price * gas_units(hops) * native price
    flash_loan_fee = amount_in * flash_loan_fee_rate * price(token_a)
    net_profit     = gross_profit - gas_cost - flash_loan_fee

DEX fees and slippage are already inside the realized swap outputs, so they
are reported in the breakdown but not subtracted a second time.

Two gates, both required:
    net_profit > min_profit_usd
    net_profit / gas_cost >= required multiplier
"""

from decimal import Decimal
from typing import NamedTuple

from core.constants import RejectReason
from core.logging import get_logger
from core.math import ZERO, gas_cost_usd, wei_to_usd
from core.models import FeeEstimate, OpportunityCandidate, ProfitabilityResult
from oracles.prices import TokenPriceSource
from strategy.config import ProfitLimits

logger = get_logger(__name__)


class GasGateResult(NamedTuple):
    """Result of the gas-price ceiling check."""
    passed: bool
    reason: str
    details: dict


class CostProfitabilityAnalyzer:
    """
    Usage:
        analyzer = CostProfitabilityAnalyzer(price_source, limits)
        gate = analyzer.check_gas_price(fee_estimate)
        result = await analyzer.analyze(candidate, fee_estimate.gas_price_wei, gross_profit_wei=...)
    """

    def __init__(self, prices: TokenPriceSource, limits: ProfitLimits | None = None):
        self.prices = prices
        self.limits = limits or ProfitLimits()

    def check_gas_price(
        self,
        fee_estimate: FeeEstimate,
        limits: ProfitLimits | None = None,
    ) -> GasGateResult:
        limits = limits or self.limits
        gas_gwei = fee_estimate.gas_price_gwei
        details = {
            "gas_price_gwei": str(gas_gwei),
            "max_gas_price_gwei": str(limits.max_gas_price_gwei),
            "priority_fee_wei": fee_estimate.priority_fee_wei,
        }
        if gas_gwei > limits.max_gas_price_gwei:
            return GasGateResult(
                False,
                f"gas price {gas_gwei:.2f} gwei exceeds ceiling {limits.max_gas_price_gwei} gwei",
                details,
            )
        return GasGateResult(True, "gas price ok", details)

    async def analyze(
        self,
        candidate: OpportunityCandidate,
        gas_price_wei: int,
        *,
        gross_profit_wei: int | None = None,
        dex_fee_wei: int = 0,
        slippage_wei: int = 0,
        limits: ProfitLimits | None = None,
        required_multiplier: Decimal | None = None,
    ) -> ProfitabilityResult:
        """
        Args:
            candidate: the opportunity
            gas_price_wei: current gas price
            gross_profit_wei: realized round-trip gain in token_a units; falls
                back to candidate.raw_profit_estimate_usd when None
            dex_fee_wei / slippage_wei: token_a units, reported only
            required_multiplier: regime multiplier (default: limits.min_profit_multiplier)
        """
        limits = limits or self.limits
        multiplier = required_multiplier if required_multiplier is not None else limits.min_profit_multiplier
        token_a = candidate.token_a

        native_price = await self.prices.price_usd(limits.native_token_symbol)
        token_price = await self.prices.price_usd(token_a.symbol)

        missing = [
            symbol for symbol, price in (
                (limits.native_token_symbol, native_price),
                (token_a.symbol, token_price),
            ) if price is None
        ]
        if missing:
            return ProfitabilityResult(
                is_valid=False,
                reason=f"price unavailable for {', '.join(missing)}; cannot assess profitability",
                code=RejectReason.PRICE_UNAVAILABLE,
                required_multiplier=multiplier,
                min_profit_usd=limits.min_profit_usd,
            )

        gas_units = limits.gas_units_for(candidate.hops)
        gas_usd = gas_cost_usd(gas_price_wei, gas_units, native_price)
        borrowed_usd = wei_to_usd(candidate.amount_in, token_a.decimals, token_price)
        flash_fee_usd = borrowed_usd * limits.flash_loan_fee_rate

        if gross_profit_wei is not None:
            gross_usd = wei_to_usd(gross_profit_wei, token_a.decimals, token_price)
        else:
            gross_usd = Decimal(candidate.raw_profit_estimate_usd)

        net_usd = gross_usd - gas_usd - flash_fee_usd
        ratio = net_usd / gas_usd if gas_usd > 0 else Decimal("Infinity")

        result = ProfitabilityResult(
            is_valid=True,
            reason="",
            profit_usd=gross_usd,
            gas_cost_usd=gas_usd,
            flash_loan_fee_usd=flash_fee_usd,
            dex_fee_usd=wei_to_usd(dex_fee_wei, token_a.decimals, token_price),
            slippage_usd=wei_to_usd(slippage_wei, token_a.decimals, token_price),
            net_profit_usd=net_usd,
            profit_to_gas_ratio=ratio,
            required_multiplier=multiplier,
            min_profit_usd=limits.min_profit_usd,
        )

        failures: list[tuple[RejectReason, str, Decimal]] = []

        if net_usd <= ZERO:
            shortfall = limits.min_profit_usd - net_usd
            failures.append((
                RejectReason.NOT_PROFITABLE,
                f"net profit ${net_usd:.2f} is not positive (short ${shortfall:.2f} of ${limits.min_profit_usd} floor)",
                shortfall,
            ))
        elif net_usd <= limits.min_profit_usd:
            shortfall = limits.min_profit_usd - net_usd
            failures.append((
                RejectReason.PROFIT_BELOW_MINIMUM,
                f"net profit ${net_usd:.2f} below minimum ${limits.min_profit_usd} (short ${shortfall:.2f})",
                shortfall,
            ))

        if ratio < multiplier:
            shortfall = multiplier * gas_usd - net_usd
            failures.append((
                RejectReason.PROFIT_TO_GAS_RATIO_TOO_LOW,
                f"profit/gas ratio {ratio:.2f} below required {multiplier} (short ${shortfall:.2f})",
                shortfall,
            ))

        if failures:
            result.is_valid = False
            result.code, _, result.shortfall = failures[0]
            result.reason = "; ".join(reason for _, reason, _ in failures)
        else:
            result.reason = (
                f"net profit ${net_usd:.2f} at {ratio:.2f}x gas "
                f"(min ${limits.min_profit_usd}, {multiplier}x)"
            )

        logger.debug(
            f"Profitability {candidate.pair}: {result.reason}",
            extra={"context": {
                "pair": candidate.pair,
                "net_profit_usd": str(net_usd),
                "gas_cost_usd": str(gas_usd),
                "flash_loan_fee_usd": str(flash_fee_usd),
            }},
        )
        return result
