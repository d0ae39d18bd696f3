"""
Unit tests for the FusionAggregator component.
"""

import random

import pytest

from evidence_fusion.signal_generation.components.fusion_aggregator import FusionAggregator, normalize_weights
from evidence_fusion.signal_generation.core import (
    Bias,
    ComponentName,
    ComponentSignal,
    ConsensusResult,
)

pytestmark = pytest.mark.unit

BULL, BEAR, NEUTRAL = Bias.BULLISH, Bias.BEARISH, Bias.NEUTRAL


def _signal(component: ComponentName, bias: Bias, score: float, confidence: float = 60.0) -> ComponentSignal:
    return ComponentSignal(component, bias, score, confidence)


@pytest.fixture
def aggregator():
    return FusionAggregator({"weights": {"mtf": 40, "volume": 30, "rsi": 30}})


@pytest.fixture
def equal_aggregator():
    return FusionAggregator({"weights": {"mtf": 1, "volume": 1, "rsi": 1}})


class TestNormalizeWeights:
    """Test weight normalization."""

    def test_sums_to_100_and_keeps_ratios(self):
        weights = normalize_weights({"mtf": 2, "zone": 1, "rsi": 1})

        assert sum(weights.values()) == pytest.approx(100.0)
        assert weights[ComponentName.MTF] == pytest.approx(50.0)
        assert weights[ComponentName.ZONE] == pytest.approx(25.0)
        assert weights[ComponentName.MACD] == 0.0
        assert set(weights) == set(ComponentName)

    def test_invalid_entries_are_dropped(self):
        weights = normalize_weights({"mtf": 10, "rsi": -5, "macd": float("nan"), "sentiment": 50, "volume": "x"})
        assert weights[ComponentName.MTF] == pytest.approx(100.0)
        assert weights[ComponentName.RSI] == 0.0

    def test_all_zero_falls_back_to_equal(self):
        weights = normalize_weights({"mtf": 0})
        for value in weights.values():
            assert value == pytest.approx(100.0 / len(ComponentName))

    def test_accepts_enum_keys(self):
        weights = normalize_weights({ComponentName.PATTERN: 3.0, ComponentName.ZONE: 1.0})
        assert weights[ComponentName.PATTERN] == pytest.approx(75.0)


class TestFusionAggregator:
    """Test fusion of component signals."""

    def test_inactive_components_are_excluded_from_average(self, aggregator):
        decision = aggregator.aggregate([
            _signal(ComponentName.MTF, BULL, 80.0),
            _signal(ComponentName.VOLUME, BULL, 70.0),
            _signal(ComponentName.RSI, NEUTRAL, 0.0),
        ], instrument="EURUSD")

        trace = aggregator.last_trace
        assert trace.raw_weighted_score == pytest.approx(5300.0 / 70.0)
        assert trace.bonus_multiplier == pytest.approx(1.05)
        assert decision.weighted_score == pytest.approx(5300.0 / 70.0 * 1.05)
        assert decision.active_components == (ComponentName.MTF, ComponentName.VOLUME)
        assert decision.dominant_direction is BULL
        assert decision.bullish_share == pytest.approx(100.0)
        # strong dominance boost
        assert decision.overall_confidence == pytest.approx(5300.0 / 70.0 * 1.05 * 1.2)
        assert decision.is_valid
        assert decision.trade_decision == 1

    def test_bonus_diminishes(self, aggregator):
        assert aggregator.bonus_multiplier(0) == 1.0
        assert aggregator.bonus_multiplier(1) == 1.0
        assert aggregator.bonus_multiplier(3) == pytest.approx(1.075)
        assert aggregator.bonus_multiplier(6) == pytest.approx(1.096875)

    def test_mixed_and_conflicting_signals(self, equal_aggregator):
        decision = equal_aggregator.aggregate([
            _signal(ComponentName.MTF, BULL, 80.0),
            _signal(ComponentName.VOLUME, BEAR, 60.0),
            _signal(ComponentName.RSI, BULL, 50.0),
        ])

        expected_score = 190.0 / 3 * 1.075 * 0.85
        assert decision.weighted_score == pytest.approx(expected_score)
        assert decision.conflict is True
        assert decision.overall_confidence == pytest.approx(expected_score * 0.7)
        assert decision.is_valid is False
        assert decision.validation_message.startswith("Confidence")
        assert decision.position_size_multiplier == 0.0

    def test_no_active_components(self, aggregator):
        decision = aggregator.aggregate([
            ComponentSignal.neutral(ComponentName.MTF, "no data"),
            _signal(ComponentName.RSI, BULL, 0.0),
        ])

        assert decision.is_valid is False
        assert decision.validation_message == "No active components"
        assert decision.weighted_score == 0.0
        assert decision.overall_confidence == 0.0
        assert decision.neutral_share == 100.0

    def test_neutral_evidence_has_no_direction(self, aggregator):
        decision = aggregator.aggregate([_signal(ComponentName.MTF, NEUTRAL, 90.0)])
        assert decision.dominant_direction is NEUTRAL
        assert decision.validation_message == "No dominant direction"

    def test_zero_weight_component_is_inactive(self):
        aggregator = FusionAggregator({"weights": {"mtf": 100}})
        decision = aggregator.aggregate([
            _signal(ComponentName.MTF, BULL, 80.0),
            _signal(ComponentName.VOLUME, BEAR, 90.0),
        ])
        assert decision.active_components == (ComponentName.MTF,)
        assert decision.conflict is False

    def test_multi_timeframe_disagreement_penalty(self, aggregator):
        signals = [_signal(ComponentName.MTF, BULL, 80.0), _signal(ComponentName.VOLUME, BULL, 70.0)]
        baseline = aggregator.aggregate(signals).overall_confidence
        bearish_vote = ConsensusResult(20.0, 80.0, 0.0, BEAR, False)

        penalized = aggregator.aggregate(signals, consensus=bearish_vote).overall_confidence
        assert penalized == pytest.approx(baseline * 0.9)

    def test_duplicate_component_keeps_last(self, aggregator):
        decision = aggregator.aggregate([
            _signal(ComponentName.MTF, BEAR, 30.0),
            _signal(ComponentName.MTF, BULL, 80.0),
        ])
        assert len(decision.signals) == 1
        assert decision.signal_for(ComponentName.MTF).bias is BULL

    def test_configure_weights(self, aggregator):
        weights = aggregator.configure_weights({"zone": 1, "pattern": 3})
        assert weights[ComponentName.PATTERN] == pytest.approx(75.0)
        assert weights[ComponentName.MTF] == 0.0
        assert aggregator.weights == weights

    def test_statistics(self, aggregator):
        assert aggregator.get_aggregation_statistics() == {"total_decisions": 0}
        aggregator.aggregate([_signal(ComponentName.MTF, BULL, 80.0)])
        aggregator.aggregate([])

        stats = aggregator.get_aggregation_statistics()
        assert stats["total_decisions"] == 2
        assert stats["valid_decisions"] == 1
        assert stats["direction_distribution"]["bullish"] == 1

    def test_history_is_bounded(self):
        aggregator = FusionAggregator({"max_history_size": 3})
        for _ in range(5):
            aggregator.aggregate([])
        assert len(aggregator.decision_history) == 3


class TestClampInvariant:
    """Every intermediate and final value stays inside [0, 100]."""

    def test_random_inputs(self):
        rng = random.Random(42)
        components = list(ComponentName)
        biases = list(Bias)

        for _ in range(300):
            weights = {c.value: rng.choice([0.0, rng.uniform(0, 100), rng.uniform(0, 1e6)]) for c in components}
            aggregator = FusionAggregator({"weights": weights})
            signals = [
                ComponentSignal(
                    component,
                    rng.choice(biases),
                    score=rng.choice([0.0, rng.uniform(-50, 150), 100.0, float("nan")]),
                    confidence=rng.uniform(-50, 150),
                )
                for component in rng.sample(components, rng.randint(0, len(components)))
            ]
            consensus = ConsensusResult(0.0, 0.0, 100.0, rng.choice(biases), False)

            decision = aggregator.aggregate(signals, consensus=consensus)

            for value in aggregator.last_trace.values():
                assert 0.0 <= value <= 100.0
            assert 0.0 <= decision.overall_confidence <= 100.0
            assert 0.0 <= decision.weighted_score <= 100.0
            shares = decision.bullish_share + decision.bearish_share + decision.neutral_share
            assert shares == pytest.approx(100.0)
            assert sum(decision.weights.values()) == pytest.approx(100.0)
            assert 0.0 <= decision.position_size_multiplier <= 1.5
