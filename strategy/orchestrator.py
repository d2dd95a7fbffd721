"""
strategy/orchestrator.py - Validation pipeline.

validate_opportunity(candidate) runs a fixed, short-circuiting sequence:

    1. circuit breaker        (O(1), BREAKER_TRIPPED)
    2. gas-price ceiling      (one RPC call)
    3. comparison quotes      (both venues, concurrently)
    4. buy-leg depth          (side=buy, warns above the safe trade size)
    5. sell-leg depth         (side=sell, buy output as input, slippage floor)
    6. price plausibility     (realized round-trip spread)
    7. profitability          (realized gross profit)
    8. valid verdict with the full breakdown and accumulated warnings

The first failing step decides the verdict. Nothing is retried; the next scan
cycle re-evaluates with fresh quotes. Unexpected exceptions become an ERROR
verdict, never a crash of the scan loop.
"""

import asyncio
from decimal import Decimal, ROUND_DOWN

from core.constants import (
    CheckName,
    RejectReason,
    RiskLevel,
    TradeSide,
    VerdictCategory,
    Volatility,
)
from core.exceptions import ErrorCode, FlashgateError, ValidationError
from core.logging import get_logger, log_error, log_verdict
from core.math import normalize_rate, ratio_pct, round_trip_spread_pct, wei_to_usd
from core.models import DepthCheckResult, OpportunityCandidate, ValidationVerdict
from chains.gas import GasPriceSource
from dex.adapters.base import VenueAdapter
from oracles.prices import TokenPriceSource
from risk.circuit_breaker import CircuitBreaker
from strategy.config import ValidationConfig, derive_market_config
from strategy.liquidity import DepthOptions, LiquidityDepthValidator
from strategy.plausibility import PricePlausibilityValidator, SpreadHistory
from strategy.profitability import CostProfitabilityAnalyzer

logger = get_logger(__name__)

# Share of a depth ceiling above which a passing leg gets a warning
_DEPTH_WARNING_SHARE = Decimal("0.5")


class ValidationOrchestrator:
    """
    Usage:
        orchestrator = ValidationOrchestrator(
            adapters=adapters, breaker=breaker, gas_source=gas,
            prices=prices, config=settings.strategy.validation,
        )
        verdict = await orchestrator.validate_opportunity(candidate)
    """

    def __init__(
        self,
        *,
        adapters: dict[str, VenueAdapter],
        breaker: CircuitBreaker,
        gas_source: GasPriceSource,
        prices: TokenPriceSource,
        config: ValidationConfig | None = None,
        history: SpreadHistory | None = None,
    ):
        self.adapters = adapters
        self.breaker = breaker
        self.gas_source = gas_source
        self.prices = prices

        self._base_config = config or ValidationConfig()
        self._config = self._base_config

        self.depth_validator = LiquidityDepthValidator(self._base_config.depth)
        self.plausibility_validator = PricePlausibilityValidator(self._base_config.spread, history)
        self.profitability_analyzer = CostProfitabilityAnalyzer(prices, self._base_config.profit)

    @property
    def config(self) -> ValidationConfig:
        return self._config

    @property
    def history(self) -> SpreadHistory:
        return self.plausibility_validator.history

    def set_market_conditions(
        self,
        volatility: Volatility | str,
        risk: RiskLevel | str = RiskLevel.MEDIUM,
    ) -> ValidationConfig:
        """Swap in a config derived from the base config for this regime."""
        config = derive_market_config(self._base_config, Volatility(volatility), RiskLevel(risk))
        self._config = config
        logger.info(
            f"Market conditions set: volatility={config.volatility.value}, risk={config.risk.value}",
            extra={"context": {
                "profit_multiplier": str(config.profit_multiplier),
                "min_profit_usd": str(config.profit.min_profit_usd),
                "max_reserve_ratio_pct": str(config.depth.max_reserve_ratio_pct),
                "major_spread_pct": str(config.spread.major_pct),
            }},
        )
        return config

    async def validate_opportunity(self, candidate: OpportunityCandidate) -> ValidationVerdict:
        config = self._config

        try:
            verdict = await self._run(candidate, config)
        except Exception as e:
            code = e.code.value if isinstance(e, FlashgateError) else ErrorCode.UNKNOWN.value
            message = e.message if isinstance(e, FlashgateError) else str(e)
            log_error(
                logger,
                code,
                f"Validation failed for {candidate.pair}: {message}",
                pair=candidate.pair,
                venue_pair=candidate.venue_pair,
                error_type=type(e).__name__,
            )
            verdict = ValidationVerdict.rejected(
                f"validation error: {message}",
                RejectReason.VALIDATION_ERROR,
                CheckName.VALIDATION,
                category=VerdictCategory.ERROR,
                details={"error_type": type(e).__name__, "error_code": code},
            )

        log_verdict(
            logger,
            candidate.pair,
            verdict.category.value,
            verdict.reason,
            check=verdict.check.value if verdict.check else None,
            venue_pair=candidate.venue_pair,
            side=verdict.side.value if verdict.side else None,
            code=verdict.code.value if verdict.code else None,
        )
        return verdict

    def _adapter(self, name: str) -> VenueAdapter:
        adapter = self.adapters.get(name)
        if adapter is None:
            raise ValidationError(
                f"unknown venue {name}",
                code=ErrorCode.CANDIDATE_INVALID,
                details={"venue": name},
            )
        return adapter

    async def _run(
        self,
        candidate: OpportunityCandidate,
        config: ValidationConfig,
    ) -> ValidationVerdict:
        token_a, token_b = candidate.token_a, candidate.token_b
        amount_in = candidate.amount_in
        warnings: list[str] = []

        # 1. Circuit breaker
        if self.breaker.is_tripped():
            return ValidationVerdict.rejected(
                "circuit breaker active",
                RejectReason.CIRCUIT_BREAKER_ACTIVE,
                CheckName.CIRCUIT_BREAKER,
                category=VerdictCategory.BREAKER_TRIPPED,
                details={"breaker": self.breaker.get_status()},
            )

        # 2. Gas price
        try:
            fee_estimate = await self.gas_source.current_fee_estimate()
        except FlashgateError as e:
            return ValidationVerdict.rejected(
                f"gas price unavailable: {e.message}",
                RejectReason.GAS_PRICE_UNAVAILABLE,
                CheckName.GAS_PRICE,
                category=VerdictCategory.UNAVAILABLE,
                details={"error_code": e.code.value},
            )

        gas_gate = self.profitability_analyzer.check_gas_price(fee_estimate, config.profit)
        if not gas_gate.passed:
            return ValidationVerdict.rejected(
                gas_gate.reason,
                RejectReason.GAS_PRICE_TOO_HIGH,
                CheckName.GAS_PRICE,
                details=gas_gate.details,
            )

        # 3. Comparison quotes
        buy_adapter = self._adapter(candidate.buy_venue)
        sell_adapter = self._adapter(candidate.sell_venue)

        buy_quote, sell_quote = await asyncio.gather(
            buy_adapter.quote(token_a, token_b, amount_in),
            sell_adapter.quote(token_a, token_b, amount_in),
        )
        if buy_quote is None and sell_quote is None:
            return ValidationVerdict.rejected(
                f"no comparable quotes: neither {candidate.buy_venue} nor "
                f"{candidate.sell_venue} quoted {candidate.pair}",
                RejectReason.NO_COMPARABLE_QUOTES,
                CheckName.QUOTES,
                category=VerdictCategory.UNAVAILABLE,
                details={"venues": [candidate.buy_venue, candidate.sell_venue]},
            )
        if buy_quote is None or sell_quote is None:
            side = TradeSide.BUY if buy_quote is None else TradeSide.SELL
            venue = candidate.buy_venue if buy_quote is None else candidate.sell_venue
            return ValidationVerdict.rejected(
                f"venue unavailable: {venue} returned no quote for {candidate.pair}",
                RejectReason.VENUE_UNAVAILABLE,
                CheckName.QUOTES,
                category=VerdictCategory.UNAVAILABLE,
                side=side,
                details={"venue": venue},
            )

        quote_details = {
            "buy_venue_quote": buy_quote.to_dict(),
            "sell_venue_quote": sell_quote.to_dict(),
            "venue_spread_pct": ratio_pct(buy_quote.amount_out - sell_quote.amount_out, sell_quote.amount_out),
        }

        # 4. Buy leg depth
        buy_depth = await self.depth_validator.check_depth(
            buy_adapter, token_a, token_b, amount_in, limits=config.depth
        )
        if not buy_depth.is_valid:
            return self._depth_rejection(buy_depth, TradeSide.BUY, quote_details)
        warnings.extend(self._depth_warnings(buy_depth, TradeSide.BUY, config))
        safe_size = await self.depth_validator.max_trade_size(
            buy_adapter, token_a, token_b, config.depth.safe_trade_pct
        )
        if safe_size is not None and amount_in > safe_size:
            warnings.append(
                f"buy leg amount {amount_in} exceeds safe size {safe_size} "
                f"({config.depth.safe_trade_pct}% of {buy_adapter.name} reserves)"
            )

        # 5. Sell leg depth
        sell_depth = await self.depth_validator.check_depth(
            sell_adapter,
            token_b,
            token_a,
            buy_depth.expected_output,
            DepthOptions(slippage_tolerance_pct=config.depth.slippage_tolerance_pct),
            limits=config.depth,
        )
        if not sell_depth.is_valid:
            return self._depth_rejection(sell_depth, TradeSide.SELL, quote_details)
        warnings.extend(self._depth_warnings(sell_depth, TradeSide.SELL, config))

        buy_output = buy_depth.expected_output
        sell_output = sell_depth.expected_output

        # 6. Price plausibility
        spread_pct = round_trip_spread_pct(amount_in, sell_output)
        price_a, price_b = await asyncio.gather(
            self.prices.price_usd(token_a.symbol),
            self.prices.price_usd(token_b.symbol),
        )
        trade_size_usd = wei_to_usd(amount_in, token_a.decimals, price_a) if price_a else None

        spread = self.plausibility_validator.check_spread(
            token_a,
            token_b,
            spread_pct,
            venue_pair=candidate.venue_pair,
            buy_rate=normalize_rate(amount_in, buy_output, token_a.decimals, token_b.decimals),
            sell_rate=normalize_rate(sell_output, buy_output, token_a.decimals, token_b.decimals),
            reference_prices=(price_a, price_b),
            trade_size_usd=trade_size_usd,
            limits=config.spread,
        )
        if not spread.is_valid:
            return ValidationVerdict.rejected(
                spread.reason,
                spread.code or RejectReason.UNKNOWN,
                CheckName.PRICE,
                details={"spread": spread.to_dict(), **quote_details},
                warnings=warnings,
            )
        if spread.warning:
            warnings.append(spread.warning)

        # 7. Profitability
        dex_fee_wei, slippage_wei = self._leg_costs(amount_in, sell_output, buy_depth, sell_depth)
        profit = await self.profitability_analyzer.analyze(
            candidate,
            fee_estimate.gas_price_wei,
            gross_profit_wei=sell_output - amount_in,
            dex_fee_wei=dex_fee_wei,
            slippage_wei=slippage_wei,
            limits=config.profit,
            required_multiplier=config.profit_multiplier,
        )
        if not profit.is_valid:
            return ValidationVerdict.rejected(
                profit.reason,
                profit.code or RejectReason.UNKNOWN,
                CheckName.PROFITABILITY,
                details={"profitability": profit.to_dict(), "spread_pct": spread_pct},
                warnings=warnings,
            )

        # 8. Pass
        breakdown = {
            "amount_in": amount_in,
            "buy_output": buy_output,
            "sell_output": sell_output,
            "spread_pct": spread_pct,
            "gas_price_gwei": fee_estimate.gas_price_gwei,
            "gross_profit_usd": profit.profit_usd,
            "gas_cost_usd": profit.gas_cost_usd,
            "flash_loan_fee_usd": profit.flash_loan_fee_usd,
            "dex_fee_usd": profit.dex_fee_usd,
            "slippage_usd": profit.slippage_usd,
            "net_profit_usd": profit.net_profit_usd,
            "profit_to_gas_ratio": profit.profit_to_gas_ratio,
            "required_multiplier": profit.required_multiplier,
            "buy_reserve_ratio_pct": buy_depth.reserve_ratio,
            "buy_price_impact_pct": buy_depth.price_impact,
            "sell_reserve_ratio_pct": sell_depth.reserve_ratio,
            "sell_price_impact_pct": sell_depth.price_impact,
            "min_amount_out": sell_depth.min_amount_out,
        }
        return ValidationVerdict.passed(
            breakdown,
            warnings,
            details={"spread": spread.to_dict(), **quote_details},
        )

    @staticmethod
    def _depth_rejection(
        result: DepthCheckResult,
        side: TradeSide,
        quote_details: dict,
    ) -> ValidationVerdict:
        return ValidationVerdict.rejected(
            f"{side.value} leg: {result.reason}",
            result.code or RejectReason.UNKNOWN,
            CheckName.LIQUIDITY,
            category=VerdictCategory.UNAVAILABLE if result.unavailable else VerdictCategory.REJECTED,
            side=side,
            details={"depth": result.to_dict(), **quote_details},
        )

    @staticmethod
    def _depth_warnings(
        result: DepthCheckResult,
        side: TradeSide,
        config: ValidationConfig,
    ) -> list[str]:
        warnings = []
        if result.reserve_ratio > config.depth.max_reserve_ratio_pct * _DEPTH_WARNING_SHARE:
            warnings.append(
                f"{side.value} leg uses {result.reserve_ratio:.2f}% of reserves "
                f"(max {config.depth.max_reserve_ratio_pct}%)"
            )
        if result.price_impact > config.depth.max_price_impact_pct * _DEPTH_WARNING_SHARE:
            warnings.append(
                f"{side.value} leg price impact {result.price_impact:.2f}% "
                f"(max {config.depth.max_price_impact_pct}%)"
            )
        return warnings

    @staticmethod
    def _leg_costs(
        amount_in: int,
        sell_output: int,
        buy_depth: DepthCheckResult,
        sell_depth: DepthCheckResult,
    ) -> tuple[int, int]:
        """
        (dex_fee, slippage) in token_a units, for reporting.

        Slippage is the shortfall of the realized round trip against the same
        round trip at spot prices after fees.
        """
        amount = Decimal(amount_in)
        dex_fee = amount * (buy_depth.fee + sell_depth.fee)
        ideal = (
            amount
            * buy_depth.spot_price * (Decimal(1) - buy_depth.fee)
            * sell_depth.spot_price * (Decimal(1) - sell_depth.fee)
        )
        slippage = max(ideal - Decimal(sell_output), Decimal(0))
        return (
            int(dex_fee.to_integral_value(rounding=ROUND_DOWN)),
            int(slippage.to_integral_value(rounding=ROUND_DOWN)),
        )
