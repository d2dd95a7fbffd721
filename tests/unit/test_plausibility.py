"""
tests/unit/test_plausibility.py - Price plausibility validator tests.
"""

import json
from decimal import Decimal

import pytest

from core.constants import RejectReason, TokenClass
from core.models import Token
from strategy.config import SpreadLimits
from strategy.plausibility import (
    PricePlausibilityValidator,
    SpreadHistory,
    classify_pair,
    rate_deviation_pct,
)

VENUE_PAIR = "uniswap_v2->sushiswap"
HISTORY = ["1.8", "2.1", "1.9", "2.2", "2.0"]


def seeded_history(values=HISTORY, pair="WETH/USDC", venue_pair=VENUE_PAIR) -> SpreadHistory:
    history = SpreadHistory(window=50)
    for value in values:
        history.record(pair, venue_pair, Decimal(value))
    return history


class TestClassification:
    def test_stable_pair(self, usdc, usdt):
        assert classify_pair(usdc, usdt, SpreadLimits()) == TokenClass.STABLE

    def test_major_with_stable_is_major(self, weth, usdc):
        assert classify_pair(weth, usdc, SpreadLimits()) == TokenClass.MAJOR

    def test_unknown_token_is_default(self, weth, link):
        assert classify_pair(weth, link, SpreadLimits()) == TokenClass.DEFAULT

    def test_stable_with_major_has_no_tier_of_its_own(self, weth, usdc):
        wbtc = Token("WBTC", "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8)
        validator = PricePlausibilityValidator()
        assert validator.threshold_for(weth, usdc) == validator.threshold_for(weth, wbtc)
        result = validator.check_spread(weth, usdc, Decimal("0.6"), venue_pair=VENUE_PAIR)
        assert result.code == RejectReason.SPREAD_UNCORROBORATED
        assert "exceeds MAJOR threshold 0.5%" in result.reason

    def test_stablecoin_threshold_is_tightest(self, usdc, usdt, weth, link):
        validator = PricePlausibilityValidator()
        stable = validator.threshold_for(usdc, usdt)
        assert stable < validator.threshold_for(weth, usdc)
        assert stable < validator.threshold_for(weth, link)


class TestWithinThreshold:
    def test_at_threshold_is_valid(self, weth, usdc):
        validator = PricePlausibilityValidator()
        result = validator.check_spread(weth, usdc, Decimal("0.5"), venue_pair=VENUE_PAIR)
        assert result.is_valid
        assert result.warning is None
        assert result.token_class == "MAJOR"

    def test_accepted_spread_recorded(self, weth, usdc):
        validator = PricePlausibilityValidator()
        validator.check_spread(weth, usdc, Decimal("0.3"), venue_pair=VENUE_PAIR)
        assert validator.history.samples("WETH/USDC", VENUE_PAIR) == [Decimal("0.3")]

    def test_stable_pair_rejects_small_spread(self, usdc, usdt):
        validator = PricePlausibilityValidator()
        result = validator.check_spread(usdc, usdt, Decimal("0.3"), venue_pair=VENUE_PAIR)
        assert not result.is_valid
        assert "exceeds STABLE threshold 0.2%" in result.reason

    def test_major_threshold_rejected_for_stables(self, usdc, usdt, weth):
        validator = PricePlausibilityValidator()
        assert not validator.check_spread(usdc, usdt, Decimal("0.5"), venue_pair=VENUE_PAIR).is_valid
        assert validator.check_spread(weth, usdc, Decimal("0.5"), venue_pair=VENUE_PAIR).is_valid


class TestElevatedSpread:
    def test_uncorroborated_without_history(self, weth, usdc):
        validator = PricePlausibilityValidator()
        result = validator.check_spread(weth, usdc, Decimal("2"), venue_pair=VENUE_PAIR)
        assert not result.is_valid
        assert result.code == RejectReason.SPREAD_UNCORROBORATED
        assert "exceeds MAJOR threshold 0.5%" in result.reason
        assert "0 of 5 history samples" in result.reason
        # Rejected spreads are not learned
        assert validator.history.samples("WETH/USDC", VENUE_PAIR) == []

    def test_history_not_required(self, weth, usdc):
        limits = SpreadLimits(require_history_for_elevated_spread=False)
        validator = PricePlausibilityValidator(limits)
        result = validator.check_spread(weth, usdc, Decimal("1"), venue_pair=VENUE_PAIR)
        assert result.is_valid
        assert result.warning

    def test_corroborated_by_history_and_reference(self, weth, usdc):
        validator = PricePlausibilityValidator(history=seeded_history())
        result = validator.check_spread(
            weth,
            usdc,
            Decimal("2"),
            venue_pair=VENUE_PAIR,
            buy_rate=Decimal("3000"),
            sell_rate=Decimal("30000") / Decimal("10.2"),
            reference_prices=(Decimal("3000"), Decimal("1")),
            trade_size_usd=Decimal("30000"),
        )
        assert result.is_valid
        assert "proceed with caution" in result.warning
        assert len(validator.history.samples("WETH/USDC", VENUE_PAIR)) == 6

    def test_outlier_rejected(self, weth, usdc):
        validator = PricePlausibilityValidator(history=seeded_history())
        result = validator.check_spread(weth, usdc, Decimal("3"), venue_pair=VENUE_PAIR)
        assert not result.is_valid
        assert result.code == RejectReason.SPREAD_OUTLIER
        assert "std devs" in result.reason

    def test_history_is_per_venue_pair(self, weth, usdc):
        validator = PricePlausibilityValidator(history=seeded_history(venue_pair="a->b"))
        result = validator.check_spread(weth, usdc, Decimal("2"), venue_pair=VENUE_PAIR)
        assert result.code == RejectReason.SPREAD_UNCORROBORATED

    def test_reference_mismatch(self, weth, usdc):
        validator = PricePlausibilityValidator(history=seeded_history())
        result = validator.check_spread(
            weth,
            usdc,
            Decimal("2"),
            venue_pair=VENUE_PAIR,
            buy_rate=Decimal("3300"),
            sell_rate=Decimal("3000"),
            reference_prices=(Decimal("3000"), Decimal("1")),
        )
        assert not result.is_valid
        assert result.code == RejectReason.REFERENCE_PRICE_MISMATCH
        assert "buy venue rate deviates" in result.reason

    def test_suspicious_pattern(self, weth, usdc):
        history = seeded_history(["5.5", "6.0", "6.5", "5.8", "6.2"])
        validator = PricePlausibilityValidator(history=history)
        result = validator.check_spread(
            weth, usdc, Decimal("6"), venue_pair=VENUE_PAIR, trade_size_usd=Decimal("50000")
        )
        assert not result.is_valid
        assert result.code == RejectReason.SUSPICIOUS_SPREAD_PATTERN

    def test_rate_deviation(self):
        assert rate_deviation_pct(Decimal("102"), Decimal("100")) == Decimal("2")
        assert rate_deviation_pct(Decimal("1"), Decimal("0")) == Decimal("0")


class TestSpreadHistory:
    def test_window_bounded(self):
        history = SpreadHistory(window=3)
        for i in range(5):
            history.record("WETH/USDC", VENUE_PAIR, Decimal(i))
        assert history.samples("WETH/USDC", VENUE_PAIR) == [Decimal(2), Decimal(3), Decimal(4)]

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "history.json"
        history = seeded_history()
        history.save(path)

        data = json.loads(path.read_text())
        assert data["spreads"][f"WETH/USDC|{VENUE_PAIR}"] == HISTORY

        loaded = SpreadHistory.load(path)
        assert loaded.samples("WETH/USDC", VENUE_PAIR) == [Decimal(v) for v in HISTORY]

    def test_interrupted_save_keeps_previous_file(self, tmp_path, monkeypatch):
        path = tmp_path / "history.json"
        seeded_history().save(path)

        def crash(data, f, **kwargs):
            f.write('{"spreads": {"WETH/USDC|')
            raise OSError("disk full")

        monkeypatch.setattr(json, "dump", crash)
        history = seeded_history(["9.9"])
        with pytest.raises(OSError):
            history.save(path)
        monkeypatch.undo()

        loaded = SpreadHistory.load(path)
        assert loaded.samples("WETH/USDC", VENUE_PAIR) == [Decimal(v) for v in HISTORY]
        assert json.loads(path.read_text())["window"] == 50

    def test_missing_file_is_empty(self, tmp_path):
        assert len(SpreadHistory.load(tmp_path / "none.json")) == 0

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{not json")
        assert len(SpreadHistory.load(path)) == 0

    def test_save_without_path_is_noop(self):
        SpreadHistory().save()
