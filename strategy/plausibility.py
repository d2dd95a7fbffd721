"""
strategy/plausibility.py - Price plausibility validator.

Is an observed spread believable for this kind of pair?

1. Classify the pair (STABLE > MAJOR > DEFAULT) and look up its threshold.
2. A spread within the threshold is valid.
3. An elevated spread must additionally pass every secondary check:
   - rolling window: not more than N std devs above the recent mean for the
     same (pair, venue pair) key
   - reference price: venue rates agree with the oracle-implied rate
   - attack pattern: not a very large spread on a very large trade
   Passing all of them gives a valid result carrying a warning.

SpreadHistory holds real observed spreads only. It starts empty; with too few
samples an elevated spread is treated as uncorroborated.
"""

import json
import os
from collections import deque
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from core.constants import DEFAULT_HISTORY_WINDOW, RejectReason, TokenClass
from core.logging import get_logger
from core.math import HUNDRED, mean, pstdev
from core.models import SpreadCheckResult, Token
from strategy.config import SpreadLimits

logger = get_logger(__name__)


# =============================================================================
# SPREAD HISTORY
# =============================================================================

class SpreadHistory:
    """
    Bounded per-key window of observed spreads (percent).

    Key: "<A>/<B>|<buy venue>-><sell venue>".
    """

    def __init__(self, window: int = DEFAULT_HISTORY_WINDOW, path: Path | None = None):
        self.window = window
        self.path = Path(path) if path else None
        self._spreads: dict[str, deque[Decimal]] = {}

    @staticmethod
    def key(pair: str, venue_pair: str) -> str:
        return f"{pair}|{venue_pair}"

    def record(self, pair: str, venue_pair: str, spread_pct: Decimal) -> None:
        key = self.key(pair, venue_pair)
        if key not in self._spreads:
            self._spreads[key] = deque(maxlen=self.window)
        self._spreads[key].append(Decimal(spread_pct))

    def samples(self, pair: str, venue_pair: str) -> list[Decimal]:
        return list(self._spreads.get(self.key(pair, venue_pair), ()))

    def __len__(self) -> int:
        return sum(len(v) for v in self._spreads.values())

    def to_dict(self) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "window": self.window,
            "spreads": {k: [str(s) for s in v] for k, v in self._spreads.items()},
        }

    def save(self, path: Path | None = None) -> None:
        """
        Persist to JSON (Decimals as strings).

        Written to a sibling temp file and renamed over the target, so an
        interrupted save leaves the previous file intact.
        """
        target = Path(path) if path else self.path
        if target is None:
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)

    @classmethod
    def load(cls, path: Path, window: int = DEFAULT_HISTORY_WINDOW) -> "SpreadHistory":
        """Load persisted history. A missing or unreadable file yields an empty history."""
        history = cls(window=window, path=path)
        path = Path(path)
        if not path.exists():
            return history

        try:
            with open(path) as f:
                data = json.load(f)
            for key, values in data.get("spreads", {}).items():
                history._spreads[key] = deque(
                    (Decimal(v) for v in values), maxlen=window
                )
            logger.info(f"Loaded spread history: {len(history._spreads)} keys, {len(history)} samples")
        except Exception as e:
            logger.warning(
                f"Failed to load spread history from {path}, starting empty: {e}",
                extra={"context": {"path": str(path), "error_type": type(e).__name__}},
            )
            history._spreads.clear()

        return history


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_pair(token_a: Token, token_b: Token, limits: SpreadLimits) -> TokenClass:
    """
    Mutually exclusive classes, in priority order.

    Both stable -> STABLE. Both liquid (major or stable, at least one
    major) -> MAJOR. Anything else -> DEFAULT.
    """
    a, b = token_a.symbol.upper(), token_b.symbol.upper()
    if a in limits.stablecoins and b in limits.stablecoins:
        return TokenClass.STABLE
    liquid = limits.majors | limits.stablecoins
    if a in liquid and b in liquid:
        return TokenClass.MAJOR
    return TokenClass.DEFAULT


def rate_deviation_pct(rate: Decimal, reference: Decimal) -> Decimal:
    if reference <= 0:
        return Decimal("0")
    return abs(rate - reference) / reference * HUNDRED


# =============================================================================
# VALIDATOR
# =============================================================================

class PricePlausibilityValidator:
    """
    Usage:
        validator = PricePlausibilityValidator(limits, history)
        result = validator.check_spread(weth, usdc, Decimal("0.3"), venue_pair="a->b")
    """

    def __init__(self, limits: SpreadLimits | None = None, history: SpreadHistory | None = None):
        self.limits = limits or SpreadLimits()
        self.history = history if history is not None else SpreadHistory(window=self.limits.history_window)

    def threshold_for(self, token_a: Token, token_b: Token, limits: SpreadLimits | None = None) -> Decimal:
        limits = limits or self.limits
        return limits.threshold_for(classify_pair(token_a, token_b, limits))

    def check_spread(
        self,
        token_a: Token,
        token_b: Token,
        spread_pct: Decimal,
        *,
        venue_pair: str = "",
        buy_rate: Decimal | None = None,
        sell_rate: Decimal | None = None,
        reference_prices: tuple[Decimal | None, Decimal | None] | None = None,
        trade_size_usd: Decimal | None = None,
        limits: SpreadLimits | None = None,
    ) -> SpreadCheckResult:
        """
        Args:
            spread_pct: observed spread in percent
            venue_pair: "<buy>-><sell>", keys the rolling window
            buy_rate / sell_rate: each venue's rate as B per A (human units)
            reference_prices: (USD price of A, USD price of B)
            trade_size_usd: trade size for the attack-pattern heuristic
        """
        limits = limits or self.limits
        spread_pct = Decimal(spread_pct)
        pair = f"{token_a.symbol}/{token_b.symbol}"
        token_class = classify_pair(token_a, token_b, limits)
        threshold = limits.threshold_for(token_class)

        def result(is_valid: bool, reason: str, **kwargs) -> SpreadCheckResult:
            return SpreadCheckResult(
                is_valid=is_valid,
                reason=reason,
                deviation=spread_pct,
                threshold=threshold,
                token_class=token_class.value,
                **kwargs,
            )

        if spread_pct <= threshold:
            self.history.record(pair, venue_pair, spread_pct)
            return result(
                True,
                f"spread {spread_pct:.4f}% within {token_class.value} threshold {threshold}%",
            )

        exceeded = f"spread {spread_pct:.4f}% exceeds {token_class.value} threshold {threshold}%"
        details: dict = {}

        # Rolling window
        samples = self.history.samples(pair, venue_pair)
        details["history_samples"] = len(samples)
        if len(samples) < limits.min_history_samples:
            if limits.require_history_for_elevated_spread:
                return result(
                    False,
                    f"{exceeded} and cannot be corroborated: "
                    f"{len(samples)} of {limits.min_history_samples} history samples",
                    code=RejectReason.SPREAD_UNCORROBORATED,
                    details=details,
                )
        else:
            avg = mean(samples)
            std = pstdev(samples)
            ceiling = avg + limits.max_std_devs * std
            details.update({"history_mean": avg, "history_std": std, "history_ceiling": ceiling})
            if spread_pct > ceiling:
                sigmas = (spread_pct - avg) / std if std > 0 else None
                sigma_text = f"{sigmas:.1f} std devs" if sigmas is not None else "above a flat history"
                return result(
                    False,
                    f"{exceeded} and is an outlier: {sigma_text} over mean {avg:.4f}%",
                    code=RejectReason.SPREAD_OUTLIER,
                    details=details,
                )

        # Reference price
        price_a, price_b = reference_prices or (None, None)
        if price_a and price_b:
            reference_rate = price_a / price_b
            details["reference_rate"] = reference_rate
            rates = {"buy": buy_rate, "sell": sell_rate}
            venue_rates = {side: r for side, r in rates.items() if r is not None}

            if venue_rates:
                for side, rate in venue_rates.items():
                    deviation = rate_deviation_pct(rate, reference_rate)
                    details[f"{side}_rate"] = rate
                    details[f"{side}_reference_deviation_pct"] = deviation
                    if deviation > limits.reference_tolerance_pct:
                        return result(
                            False,
                            f"{exceeded} and {side} venue rate deviates {deviation:.2f}% "
                            f"from reference (max {limits.reference_tolerance_pct}%)",
                            code=RejectReason.REFERENCE_PRICE_MISMATCH,
                            details=details,
                        )
            elif spread_pct > limits.reference_tolerance_pct:
                return result(
                    False,
                    f"{exceeded} and exceeds reference tolerance {limits.reference_tolerance_pct}%",
                    code=RejectReason.REFERENCE_PRICE_MISMATCH,
                    details=details,
                )
        else:
            details["reference_rate"] = None

        # Attack pattern
        if (
            trade_size_usd is not None
            and spread_pct > limits.suspicious_spread_pct
            and trade_size_usd > limits.suspicious_trade_size_usd
        ):
            details["trade_size_usd"] = trade_size_usd
            return result(
                False,
                f"suspicious pattern: spread {spread_pct:.2f}% with trade size ${trade_size_usd:.0f}",
                code=RejectReason.SUSPICIOUS_SPREAD_PATTERN,
                details=details,
            )

        self.history.record(pair, venue_pair, spread_pct)
        warning = (
            f"spread {spread_pct:.2f}% exceeds normal {token_class.value} threshold "
            f"({threshold}%) - proceed with caution"
        )
        logger.warning(
            f"Elevated spread accepted: {pair}",
            extra={"context": {"pair": pair, "venue_pair": venue_pair, "spread_pct": str(spread_pct)}},
        )
        return result(
            True,
            f"elevated spread {spread_pct:.2f}% validated against history and reference",
            warning=warning,
            details=details,
        )
