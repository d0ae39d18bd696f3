"""
Unit tests for the volume scorer.
"""

import numpy as np
import pytest

from evidence_fusion.signal_generation.components.volume_scorer import (
    VolumeScorer,
    VolumeStatus,
    conviction_from_ratio,
)
from evidence_fusion.signal_generation.core import Bias, ComponentName, Timeframe

pytestmark = pytest.mark.unit

SYMBOL = "EURUSD"


@pytest.fixture
def scorer(indicator_cache, market_data, clock):
    return VolumeScorer(SYMBOL, indicator_cache, market_data, clock=clock)


@pytest.fixture
def rising_closes():
    return [1.1000 + 0.0002 * i for i in range(21)]


class TestConviction:
    @pytest.mark.parametrize("ratio,expected", [
        (0.4, 10.0),
        (0.5, 30.0),
        (1.0, 50.0),
        (1.3, 70.0),
        (1.8, 85.0),
        (2.0, 100.0),
        (6.0, 100.0),
    ])
    def test_piecewise_scale(self, ratio, expected):
        assert conviction_from_ratio(ratio) == expected


class TestVolumeHelpers:
    """Test the analysis building blocks."""

    def test_momentum_confirmation(self):
        rising = np.array([1.0, 2.0, 3.0])
        volumes = np.array([100.0, 200.0, 300.0])
        assert VolumeScorer.momentum_confirmation(rising, volumes) == 1.0
        assert VolumeScorer.momentum_confirmation(rising[::-1], volumes) == -1.0
        assert VolumeScorer.momentum_confirmation(rising, volumes[::-1]) == 0.0

    def test_divergence(self, scorer):
        closes = np.linspace(1.10, 1.11, 6)
        assert scorer.has_divergence(closes, np.linspace(2000, 1000, 6))
        assert not scorer.has_divergence(closes, np.linspace(1000, 2000, 6))

    def test_climax(self, scorer):
        assert scorer.is_climax(np.array([1000.0, 1200.0, 1800.0]))
        assert not scorer.is_climax(np.array([1000.0, 1200.0, 1500.0]))


class TestVolumeScorer:
    """Test volume scoring end to end."""

    def test_climax_on_up_move(self, scorer, market_data, bars_factory, rising_closes):
        volumes = [1000.0] * 20 + [2500.0]
        market_data.set_bars(SYMBOL, Timeframe.H1, bars_factory(rising_closes, volumes=volumes))

        signal = scorer.score()

        assert signal.component is ComponentName.VOLUME
        assert signal.bias is Bias.BULLISH
        # conviction 100 less the climax penalty
        assert signal.score == pytest.approx(85.0)
        assert signal.metadata["status"] == VolumeStatus.CLIMAX.value
        assert signal.metadata["spike"] is True
        assert signal.metadata["bullish_score"] == pytest.approx(63.0)
        assert signal.metadata["bearish_score"] == pytest.approx(47.5)
        assert signal.confidence == pytest.approx(15.5 / 110.5 * 100)
        assert scorer.is_confirming(Bias.BULLISH)
        assert not scorer.is_confirming(Bias.BEARISH)

    def test_fading_volume_on_rally_is_divergence(self, scorer, market_data, bars_factory, rising_closes):
        volumes = [1000.0] * 15 + [1500.0, 1400.0, 1300.0, 1200.0, 1100.0, 1000.0]
        market_data.set_bars(SYMBOL, Timeframe.H1, bars_factory(rising_closes, volumes=volumes))

        signal = scorer.score()

        assert signal.metadata["divergence"] is True
        assert signal.metadata["volume_ratio"] == pytest.approx(1000.0 / 1075.0)
        assert signal.score == pytest.approx(40.0)
        assert "divergence" in signal.detail

    def test_flat_volume_is_normal(self, scorer, market_data, bars_factory, rising_closes):
        market_data.set_bars(SYMBOL, Timeframe.H1, bars_factory(rising_closes))
        signal = scorer.score()

        assert signal.score == pytest.approx(50.0)
        assert signal.metadata["status"] == VolumeStatus.NORMAL.value
        assert scorer.last_analysis.momentum == 0.0

    def test_short_history_degrades(self, scorer, market_data, bars_factory):
        market_data.set_bars(SYMBOL, Timeframe.H1, bars_factory([1.1, 1.1001, 1.1002]))
        signal = scorer.score()

        assert signal.bias is Bias.NEUTRAL
        assert signal.degraded is True
        assert "need 21" in signal.detail

    def test_zero_volume_degrades(self, scorer, market_data, bars_factory, rising_closes):
        market_data.set_bars(SYMBOL, Timeframe.H1, bars_factory(rising_closes, volumes=[0.0] * 21))
        signal = scorer.score()

        assert signal.degraded is True
        assert signal.detail == "no volume reported"
