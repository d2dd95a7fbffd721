"""
strategy/config.py - Validation and risk configuration.

Typed, frozen configuration parsed once from config/strategy.yaml:
- DepthLimits: liquidity depth ceilings
- SpreadLimits: per-class spread thresholds and plausibility checks
- ProfitLimits: profit floors, gas ceiling, cost model
- CircuitBreakerConfig: breaker limits
- PriceCheckConfig: oracle aggregation and cross-source anomaly threshold
- ValidationConfig: the three validator configs plus current market regime

Nothing here is mutated after load. A market-condition change derives a new
ValidationConfig from the base one and the caller swaps it in wholesale.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from core.constants import (
    DEFAULT_ANOMALY_THRESHOLD_PCT,
    DEFAULT_BREAKER_LIQUIDITY_PCT,
    DEFAULT_BREAKER_PRICE_DEVIATION_PCT,
    DEFAULT_COOLDOWN_MINUTES,
    DEFAULT_FLASH_LOAN_FEE_RATE,
    DEFAULT_HIGH_VOL_PROFIT_MULTIPLIER,
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_LOW_VOL_PROFIT_MULTIPLIER,
    DEFAULT_MAJOR_SPREAD_PCT,
    DEFAULT_MAJORS,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_MAX_DAILY_LOSS,
    DEFAULT_MAX_GAS_PRICE_GWEI,
    DEFAULT_MAX_PRICE_IMPACT_PCT,
    DEFAULT_MAX_RESERVE_RATIO_PCT,
    DEFAULT_MAX_STD_DEVS,
    DEFAULT_MIN_HISTORY_SAMPLES,
    DEFAULT_MIN_PROFIT_MULTIPLIER,
    DEFAULT_MIN_PROFIT_USD,
    DEFAULT_MULTI_HOP_GAS_UNITS,
    DEFAULT_REFERENCE_TOLERANCE_PCT,
    DEFAULT_SAFE_TRADE_PCT,
    DEFAULT_SCAN_INTERVAL_SECONDS,
    DEFAULT_SINGLE_HOP_GAS_UNITS,
    DEFAULT_SLIPPAGE_TOLERANCE_PCT,
    DEFAULT_SPREAD_PCT,
    DEFAULT_STABLE_SPREAD_PCT,
    DEFAULT_STABLECOINS,
    DEFAULT_SUSPICIOUS_SPREAD_PCT,
    DEFAULT_SUSPICIOUS_TRADE_SIZE_USD,
    RiskLevel,
    TokenClass,
    Volatility,
)
from core.exceptions import ConfigError, ErrorCode
from config import load_yaml_file, CONFIG_DIR


# =============================================================================
# CONFIG TYPES
# =============================================================================

@dataclass(frozen=True)
class DepthLimits:
    """Liquidity depth thresholds (percent)."""
    max_reserve_ratio_pct: Decimal = DEFAULT_MAX_RESERVE_RATIO_PCT
    max_price_impact_pct: Decimal = DEFAULT_MAX_PRICE_IMPACT_PCT
    slippage_tolerance_pct: Decimal = DEFAULT_SLIPPAGE_TOLERANCE_PCT
    safe_trade_pct: Decimal = DEFAULT_SAFE_TRADE_PCT


@dataclass(frozen=True)
class SpreadLimits:
    """Spread plausibility thresholds."""
    stable_pct: Decimal = DEFAULT_STABLE_SPREAD_PCT
    major_pct: Decimal = DEFAULT_MAJOR_SPREAD_PCT
    default_pct: Decimal = DEFAULT_SPREAD_PCT
    stablecoins: frozenset[str] = DEFAULT_STABLECOINS
    majors: frozenset[str] = DEFAULT_MAJORS

    # Rolling window
    history_window: int = DEFAULT_HISTORY_WINDOW
    min_history_samples: int = DEFAULT_MIN_HISTORY_SAMPLES
    max_std_devs: Decimal = DEFAULT_MAX_STD_DEVS
    require_history_for_elevated_spread: bool = True

    # Reference price
    reference_tolerance_pct: Decimal = DEFAULT_REFERENCE_TOLERANCE_PCT

    # Attack pattern
    suspicious_spread_pct: Decimal = DEFAULT_SUSPICIOUS_SPREAD_PCT
    suspicious_trade_size_usd: Decimal = DEFAULT_SUSPICIOUS_TRADE_SIZE_USD

    def threshold_for(self, token_class: TokenClass) -> Decimal:
        if token_class == TokenClass.STABLE:
            return self.stable_pct
        if token_class == TokenClass.MAJOR:
            return self.major_pct
        return self.default_pct


@dataclass(frozen=True)
class ProfitLimits:
    """Profit floors and cost model."""
    min_profit_usd: Decimal = DEFAULT_MIN_PROFIT_USD
    max_gas_price_gwei: Decimal = DEFAULT_MAX_GAS_PRICE_GWEI
    min_profit_multiplier: Decimal = DEFAULT_MIN_PROFIT_MULTIPLIER
    low_volatility_multiplier: Decimal = DEFAULT_LOW_VOL_PROFIT_MULTIPLIER
    high_volatility_multiplier: Decimal = DEFAULT_HIGH_VOL_PROFIT_MULTIPLIER
    flash_loan_fee_rate: Decimal = DEFAULT_FLASH_LOAN_FEE_RATE
    single_hop_gas_units: int = DEFAULT_SINGLE_HOP_GAS_UNITS
    multi_hop_gas_units: int = DEFAULT_MULTI_HOP_GAS_UNITS
    native_token_symbol: str = "WETH"

    def gas_units_for(self, hops: int) -> int:
        """Round trips of two swaps are single-hop legs; anything longer is multi-hop."""
        if hops <= 2:
            return self.single_hop_gas_units
        return self.multi_hop_gas_units


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Breaker limits. max_daily_loss is USD."""
    enabled: bool = True
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    max_daily_loss: Decimal = DEFAULT_MAX_DAILY_LOSS
    cooldown_period_minutes: int = DEFAULT_COOLDOWN_MINUTES
    max_price_deviation_pct: Decimal = DEFAULT_BREAKER_PRICE_DEVIATION_PCT
    min_liquidity_pct: Decimal = DEFAULT_BREAKER_LIQUIDITY_PCT

    @property
    def cooldown_seconds(self) -> int:
        return self.cooldown_period_minutes * 60


@dataclass(frozen=True)
class PriceCheckConfig:
    """use_median prices tokens from the median of live sources instead of the first answer."""
    use_median: bool = True
    anomaly_threshold_pct: Decimal = DEFAULT_ANOMALY_THRESHOLD_PCT


@dataclass(frozen=True)
class ValidationConfig:
    """Everything one validation pass reads. Snapshotted per call."""
    depth: DepthLimits = field(default_factory=DepthLimits)
    spread: SpreadLimits = field(default_factory=SpreadLimits)
    profit: ProfitLimits = field(default_factory=ProfitLimits)
    volatility: Volatility = Volatility.NORMAL
    risk: RiskLevel = RiskLevel.MEDIUM

    @property
    def profit_multiplier(self) -> Decimal:
        """Required net-profit / gas ratio for the current volatility regime."""
        if self.volatility == Volatility.LOW:
            return self.profit.low_volatility_multiplier
        if self.volatility == Volatility.HIGH:
            return self.profit.high_volatility_multiplier
        return self.profit.min_profit_multiplier


# =============================================================================
# MARKET CONDITIONS
# =============================================================================

# (liquidity, spread, min_profit) scale factors
_VOLATILITY_FACTORS: dict[Volatility, tuple[Decimal, Decimal, Decimal]] = {
    Volatility.LOW: (Decimal("0.8"), Decimal("1.2"), Decimal("0.9")),
    Volatility.NORMAL: (Decimal("1"), Decimal("1"), Decimal("1")),
    Volatility.HIGH: (Decimal("1.5"), Decimal("0.7"), Decimal("1.3")),
}
_RISK_FACTORS: dict[RiskLevel, tuple[Decimal, Decimal, Decimal]] = {
    RiskLevel.LOW: (Decimal("1.3"), Decimal("0.8"), Decimal("1.2")),
    RiskLevel.MEDIUM: (Decimal("1"), Decimal("1"), Decimal("1")),
    RiskLevel.HIGH: (Decimal("0.8"), Decimal("1.3"), Decimal("0.8")),
}


def market_factors(volatility: Volatility, risk: RiskLevel) -> dict[str, Decimal]:
    vol_liq, vol_spread, vol_profit = _VOLATILITY_FACTORS[volatility]
    risk_liq, risk_spread, risk_profit = _RISK_FACTORS[risk]
    return {
        "liquidity": vol_liq * risk_liq,
        "spread": vol_spread * risk_spread,
        "min_profit": vol_profit * risk_profit,
    }


def derive_market_config(
    base: ValidationConfig,
    volatility: Volatility,
    risk: RiskLevel,
) -> ValidationConfig:
    """
    Config for a market regime, always derived from the base config.

    A higher liquidity factor demands more depth, so depth ceilings are
    divided by it. The spread factor scales every class threshold. The
    profit multiplier follows volatility via ValidationConfig.profit_multiplier.
    """
    factors = market_factors(volatility, risk)

    depth = replace(
        base.depth,
        max_reserve_ratio_pct=base.depth.max_reserve_ratio_pct / factors["liquidity"],
        max_price_impact_pct=base.depth.max_price_impact_pct / factors["liquidity"],
    )
    spread = replace(
        base.spread,
        stable_pct=base.spread.stable_pct * factors["spread"],
        major_pct=base.spread.major_pct * factors["spread"],
        default_pct=base.spread.default_pct * factors["spread"],
    )
    profit = replace(
        base.profit,
        min_profit_usd=base.profit.min_profit_usd * factors["min_profit"],
    )
    return ValidationConfig(
        depth=depth,
        spread=spread,
        profit=profit,
        volatility=volatility,
        risk=risk,
    )


# =============================================================================
# PARSING
# =============================================================================

def _decimal(section: dict[str, Any], key: str, default: Decimal) -> Decimal:
    raw = section.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be a number, got {raw!r}", details={"key": key})
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ConfigError(f"{key} must be a number, got {raw!r}", details={"key": key})
    if value < 0:
        raise ConfigError(f"{key} must not be negative: {value}", details={"key": key})
    return value


def _int(section: dict[str, Any], key: str, default: int, minimum: int = 0) -> int:
    raw = section.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigError(f"{key} must be an integer, got {raw!r}", details={"key": key})
    if raw < minimum:
        raise ConfigError(f"{key} must be >= {minimum}: {raw}", details={"key": key})
    return raw


def _symbols(section: dict[str, Any], key: str, default: frozenset[str]) -> frozenset[str]:
    raw = section.get(key)
    if raw is None:
        return default
    if not isinstance(raw, list):
        raise ConfigError(f"{key} must be a list of symbols", details={"key": key})
    return frozenset(str(s).upper() for s in raw)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{key}' must be a mapping", details={"section": key})
    return value


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_depth_limits(data: dict[str, Any]) -> DepthLimits:
    limits = DepthLimits(
        max_reserve_ratio_pct=_decimal(data, "max_reserve_ratio_pct", DEFAULT_MAX_RESERVE_RATIO_PCT),
        max_price_impact_pct=_decimal(data, "max_price_impact_pct", DEFAULT_MAX_PRICE_IMPACT_PCT),
        slippage_tolerance_pct=_decimal(data, "slippage_tolerance_pct", DEFAULT_SLIPPAGE_TOLERANCE_PCT),
        safe_trade_pct=_decimal(data, "safe_trade_pct", DEFAULT_SAFE_TRADE_PCT),
    )
    if limits.max_reserve_ratio_pct == 0 or limits.max_reserve_ratio_pct > 100:
        raise ConfigError(
            f"max_reserve_ratio_pct out of range: {limits.max_reserve_ratio_pct}",
            details={"key": "max_reserve_ratio_pct"},
        )
    return limits


def parse_spread_limits(data: dict[str, Any]) -> SpreadLimits:
    thresholds = _section(data, "thresholds_pct")
    history = _section(data, "history")

    require_history = history.get("require_for_elevated_spread", True)
    if not isinstance(require_history, bool):
        raise ConfigError(
            "history.require_for_elevated_spread must be true or false",
            details={"key": "require_for_elevated_spread"},
        )

    return SpreadLimits(
        stable_pct=_decimal(thresholds, "stable", DEFAULT_STABLE_SPREAD_PCT),
        major_pct=_decimal(thresholds, "major", DEFAULT_MAJOR_SPREAD_PCT),
        default_pct=_decimal(thresholds, "default", DEFAULT_SPREAD_PCT),
        stablecoins=_symbols(data, "stablecoins", DEFAULT_STABLECOINS),
        majors=_symbols(data, "majors", DEFAULT_MAJORS),
        history_window=_int(history, "window", DEFAULT_HISTORY_WINDOW, minimum=1),
        min_history_samples=_int(history, "min_samples", DEFAULT_MIN_HISTORY_SAMPLES, minimum=1),
        max_std_devs=_decimal(history, "max_std_devs", DEFAULT_MAX_STD_DEVS),
        require_history_for_elevated_spread=require_history,
        reference_tolerance_pct=_decimal(data, "reference_tolerance_pct", DEFAULT_REFERENCE_TOLERANCE_PCT),
        suspicious_spread_pct=_decimal(data, "suspicious_spread_pct", DEFAULT_SUSPICIOUS_SPREAD_PCT),
        suspicious_trade_size_usd=_decimal(
            data, "suspicious_trade_size_usd", DEFAULT_SUSPICIOUS_TRADE_SIZE_USD
        ),
    )


def parse_profit_limits(data: dict[str, Any]) -> ProfitLimits:
    gas_units = _section(data, "gas_units")
    return ProfitLimits(
        min_profit_usd=_decimal(data, "min_profit_usd", DEFAULT_MIN_PROFIT_USD),
        max_gas_price_gwei=_decimal(data, "max_gas_price_gwei", DEFAULT_MAX_GAS_PRICE_GWEI),
        min_profit_multiplier=_decimal(data, "min_profit_multiplier", DEFAULT_MIN_PROFIT_MULTIPLIER),
        low_volatility_multiplier=_decimal(
            data, "low_volatility_multiplier", DEFAULT_LOW_VOL_PROFIT_MULTIPLIER
        ),
        high_volatility_multiplier=_decimal(
            data, "high_volatility_multiplier", DEFAULT_HIGH_VOL_PROFIT_MULTIPLIER
        ),
        flash_loan_fee_rate=_decimal(data, "flash_loan_fee_rate", DEFAULT_FLASH_LOAN_FEE_RATE),
        single_hop_gas_units=_int(gas_units, "single_hop", DEFAULT_SINGLE_HOP_GAS_UNITS, minimum=1),
        multi_hop_gas_units=_int(gas_units, "multi_hop", DEFAULT_MULTI_HOP_GAS_UNITS, minimum=1),
        native_token_symbol=str(data.get("native_token", "WETH")).upper(),
    )


def parse_breaker_config(data: dict[str, Any]) -> CircuitBreakerConfig:
    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError("circuit_breaker.enabled must be true or false", details={"key": "enabled"})
    return CircuitBreakerConfig(
        enabled=enabled,
        max_consecutive_failures=_int(
            data, "max_consecutive_failures", DEFAULT_MAX_CONSECUTIVE_FAILURES, minimum=1
        ),
        max_daily_loss=_decimal(data, "max_daily_loss", DEFAULT_MAX_DAILY_LOSS),
        cooldown_period_minutes=_int(data, "cooldown_period_minutes", DEFAULT_COOLDOWN_MINUTES),
        max_price_deviation_pct=_decimal(
            data, "max_price_deviation_pct", DEFAULT_BREAKER_PRICE_DEVIATION_PCT
        ),
        min_liquidity_pct=_decimal(data, "min_liquidity_pct", DEFAULT_BREAKER_LIQUIDITY_PCT),
    )


def parse_price_check_config(data: dict[str, Any]) -> PriceCheckConfig:
    use_median = data.get("use_median", True)
    if not isinstance(use_median, bool):
        raise ConfigError("prices.use_median must be true or false", details={"key": "use_median"})
    return PriceCheckConfig(
        use_median=use_median,
        anomaly_threshold_pct=_decimal(data, "anomaly_threshold_pct", DEFAULT_ANOMALY_THRESHOLD_PCT),
    )


def parse_validation_config(data: dict[str, Any]) -> ValidationConfig:
    return ValidationConfig(
        depth=parse_depth_limits(_section(data, "depth")),
        spread=parse_spread_limits(_section(data, "spread")),
        profit=parse_profit_limits(_section(data, "profit")),
    )


@dataclass(frozen=True)
class StrategyConfig:
    """Parsed strategy.yaml."""
    validation: ValidationConfig
    breaker: CircuitBreakerConfig
    prices: PriceCheckConfig = field(default_factory=PriceCheckConfig)
    scan_interval_seconds: int = DEFAULT_SCAN_INTERVAL_SECONDS
    spread_history_path: str | None = None


def load_strategy_config(
    config_path: Path | None = None,
    chain: str | None = None,
) -> StrategyConfig:
    """
    Load strategy configuration from YAML file.

    Args:
        config_path: Path to strategy.yaml (default: config/strategy.yaml)
        chain: Apply the `chains.<chain>` override block when present

    Raises:
        ConfigError: invalid values
    """
    if config_path is None:
        config_path = CONFIG_DIR / "strategy.yaml"

    data = load_yaml_file(config_path)

    if chain:
        overrides = _section(_section(data, "chains"), chain)
        data = _deep_merge(data, overrides)

    scan = _section(data, "scan")
    history_path = scan.get("spread_history_path")

    return StrategyConfig(
        validation=parse_validation_config(_section(data, "validation")),
        breaker=parse_breaker_config(_section(data, "circuit_breaker")),
        prices=parse_price_check_config(_section(data, "prices")),
        scan_interval_seconds=_int(scan, "interval_seconds", DEFAULT_SCAN_INTERVAL_SECONDS, minimum=1),
        spread_history_path=str(history_path) if history_path else None,
    )


def require(value: Any, message: str) -> Any:
    """Fail startup on a missing required value."""
    if value is None or value == "" or value == {}:
        raise ConfigError(message, code=ErrorCode.CONFIG_MISSING)
    return value
