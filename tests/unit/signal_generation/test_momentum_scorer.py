"""
Unit tests for the RSI momentum scorer.
"""

import pytest

from evidence_fusion.signal_generation.components.momentum_scorer import MomentumScorer
from evidence_fusion.signal_generation.core import Bias, ComponentName, IndicatorKind, Timeframe, TrendDirection

pytestmark = pytest.mark.unit

SYMBOL = "EURUSD"


@pytest.fixture
def scorer(indicator_cache, market_data, clock):
    return MomentumScorer(SYMBOL, indicator_cache, market_data, clock=clock)


@pytest.fixture
def rsi(indicator_provider):
    """Set RSI history newest first, padding older lags with the last value."""
    def _apply(*newest_first):
        indicator_provider.fill(SYMBOL, Timeframe.H1, IndicatorKind.RSI, newest_first[-1])
        indicator_provider.set_series(SYMBOL, Timeframe.H1, IndicatorKind.RSI, list(newest_first))
    return _apply


class TestMomentumScorer:
    """Test RSI lean, score and confidence."""

    def test_steady_bullish_rsi(self, scorer, rsi):
        rsi(65.0)
        signal = scorer.score()

        assert signal.component is ComponentName.RSI
        assert signal.bias is Bias.BULLISH
        assert signal.score == pytest.approx(30.0)
        # 30 base + 15 distance + full persistence
        assert signal.confidence == pytest.approx(65.0)
        assert signal.degraded is False
        assert signal.metadata["rsi"] == 65.0
        assert signal.metadata["persistence"] == 1.0

    def test_slope_adds_to_lean(self, scorer, rsi):
        rsi(60.0, 59.0, 58.0, 57.0, 56.0, 55.0)
        signal = scorer.score()

        assert signal.metadata["slope"] == pytest.approx(1.0)
        assert signal.score == pytest.approx(24.0)

    def test_bearish_rsi(self, scorer, rsi):
        rsi(38.0)
        signal = scorer.score()
        assert signal.bias is Bias.BEARISH
        assert signal.score == pytest.approx(24.0)

    def test_near_midpoint_is_neutral_with_halved_confidence(self, scorer, rsi):
        rsi(51.0)
        signal = scorer.score()

        assert signal.bias is Bias.NEUTRAL
        assert signal.confidence == pytest.approx(15.5)

    def test_overbought_boost(self, scorer, rsi):
        rsi(75.0)
        signal = scorer.score()

        assert signal.confidence == pytest.approx(90.0)
        assert signal.metadata["extreme"] is True
        assert "overbought" in signal.detail

    def test_failure_swing_boost(self, scorer, rsi):
        rsi(58.0, 48.0, 52.0, 45.0, 29.0, 50.0)
        signal = scorer.score()

        assert signal.bias is Bias.BULLISH
        assert signal.metadata["failure_swing"] is True
        # 30 + 8 distance + 0.2 persistence + failure swing
        assert signal.confidence == pytest.approx(52.0)

    def test_defaulted_rsi_is_inactive(self, scorer):
        signal = scorer.score()

        assert signal.bias is Bias.NEUTRAL
        assert signal.score == 0.0
        assert signal.confidence == 0.0
        assert signal.degraded is True
        assert "defaulted" in signal.detail
        assert not signal.is_active

    def test_defaulted_history_is_ignored(self, scorer, indicator_provider):
        indicator_provider.set(SYMBOL, Timeframe.H1, IndicatorKind.RSI, 65.0)
        signal = scorer.score()

        assert signal.degraded is False
        assert signal.metadata["slope"] == 0.0
        assert signal.metadata["persistence"] == 1.0

    def test_results_are_cached_per_lag(self, scorer, rsi, clock):
        rsi(65.0)
        scorer.score()
        scorer.score()
        assert scorer.evaluations == 1

        scorer.score(lag=1)
        assert scorer.evaluations == 2

        clock.advance(31)
        scorer.score()
        assert scorer.evaluations == 3

    def test_rsi_trend(self, scorer, indicator_provider):
        indicator_provider.set(SYMBOL, Timeframe.H1, IndicatorKind.RSI, 60.0)
        indicator_provider.set(SYMBOL, Timeframe.H1, IndicatorKind.RSI, 50.0, lag=5)
        assert scorer.rsi_trend() is TrendDirection.UP


class TestFailureSwing:
    """Test Wilder failure swing detection."""

    def test_bullish(self, scorer):
        assert scorer.has_failure_swing([50, 50, 29, 45, 52, 48, 58], bullish=True)

    def test_pullback_into_oversold_is_not_a_swing(self, scorer):
        assert not scorer.has_failure_swing([50, 29, 45, 28.5, 50], bullish=True)

    def test_no_oversold_dip(self, scorer):
        assert not scorer.has_failure_swing([50, 35, 45, 40, 50], bullish=True)

    def test_bearish_mirror(self, scorer):
        assert scorer.has_failure_swing([50, 75, 60, 65, 55], bullish=False)

    def test_too_short(self, scorer):
        assert not scorer.has_failure_swing([25, 40, 50], bullish=True)
