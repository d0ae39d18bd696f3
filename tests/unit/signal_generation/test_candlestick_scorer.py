"""
Unit tests for the candlestick pattern scorer.
"""

import pytest

from evidence_fusion.signal_generation.components.candlestick_scorer import CandlestickScorer
from evidence_fusion.signal_generation.core import Bias, ComponentName, IndicatorKind, Timeframe

pytestmark = pytest.mark.unit

SYMBOL = "EURUSD"
H1 = Timeframe.H1

# Gently falling bars that form no pattern on their own
QUIET_DECLINE = [1.1040, 1.1035, 1.1030, 1.1025, 1.1020, 1.1015, 1.1010]


@pytest.fixture
def scorer(indicator_cache, market_data, clock):
    return CandlestickScorer(SYMBOL, indicator_cache, market_data, clock=clock)


@pytest.fixture
def engulfing(market_data, bars_factory, bar_factory):
    bars = bars_factory(QUIET_DECLINE) + [
        bar_factory(1.1000, open_=1.1010),
        bar_factory(1.1015, open_=1.0998),
    ]
    market_data.set_bars(SYMBOL, H1, bars)
    return bars


class TestCandlestickScorer:
    """Test pattern selection and confirmation."""

    def test_best_pattern_wins(self, scorer, engulfing):
        best = scorer.find_best_pattern(0)
        assert best.pattern.value == "bullish_engulfing"
        assert best.end_index == 0

    def test_confirmed_pattern_is_actionable(self, scorer, engulfing, indicator_provider):
        indicator_provider.set(SYMBOL, H1, IndicatorKind.MACD_MAIN, 0.0003)
        indicator_provider.set(SYMBOL, H1, IndicatorKind.MACD_SIGNAL, 0.0001)
        indicator_provider.set(SYMBOL, H1, IndicatorKind.RSI, 40.0)
        indicator_provider.set(SYMBOL, H1, IndicatorKind.ATR, 0.0010)

        signal = scorer.score()

        assert signal.component is ComponentName.PATTERN
        assert signal.bias is Bias.BULLISH
        assert signal.confidence == pytest.approx(86.25)
        assert signal.metadata["confirmation_count"] == 2
        assert signal.metadata["confirmations"]["macd"] is True
        assert signal.metadata["confirmations"]["rsi"] is True
        assert signal.metadata["actionable"] is True
        assert signal.metadata["stop_price"] == pytest.approx(1.1000)
        assert signal.metadata["target_price"] == pytest.approx(1.1015 + 0.003 * 1.3625)
        assert "actionable" in signal.detail

    def test_unconfirmed_pattern_keeps_base_confidence(self, scorer, engulfing):
        signal = scorer.score()

        assert signal.confidence == pytest.approx(75.0)
        assert signal.metadata["actionable"] is False
        assert signal.metadata["confirmation_count"] == 0

    def test_defaulted_indicators_are_not_confirmations(self, scorer, engulfing, indicator_provider):
        indicator_provider.set(SYMBOL, H1, IndicatorKind.RSI, 40.0)

        assert scorer.confirmations(0, Bias.BULLISH) == {"rsi": True}

    def test_older_pattern_within_window(self, scorer, market_data, bars_factory, bar_factory, engulfing):
        market_data.append_bar(SYMBOL, H1, bar_factory(1.1016, open_=1.1015, high=1.1020, low=1.1012))
        best = scorer.find_best_pattern(0)
        assert best.pattern.value == "bullish_engulfing"
        assert best.end_index == 1

    def test_doji_is_neutral_with_halved_score(self, scorer, market_data, bars_factory, bar_factory):
        bars = bars_factory(QUIET_DECLINE) + [
            bar_factory(1.1007, open_=1.1010, high=1.1013, low=1.1004),
            bar_factory(1.1007, high=1.1009, low=1.0999),
        ]
        market_data.set_bars(SYMBOL, H1, bars)

        signal = scorer.score()
        assert signal.bias is Bias.NEUTRAL
        assert signal.confidence == pytest.approx(45.0)
        assert signal.score == pytest.approx(22.5)
        assert signal.metadata["confirmations"] == {}
        assert signal.detail.startswith("Standard doji")

    def test_no_pattern(self, scorer, market_data, bars_factory):
        market_data.set_bars(SYMBOL, H1, bars_factory(QUIET_DECLINE + [1.1005, 1.1000]))
        signal = scorer.score()

        assert signal.bias is Bias.NEUTRAL
        assert signal.score == 0.0
        assert signal.degraded is False

    def test_short_history_degrades(self, scorer, market_data, bars_factory):
        market_data.set_bars(SYMBOL, H1, bars_factory(QUIET_DECLINE[:3]))
        assert scorer.score().degraded is True
