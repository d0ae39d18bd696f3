"""
Fusion Aggregator component for the evidence fusion engine.

This component combines the per-component signals into one weighted,
confidence-scored decision. Only active components (score above zero) take
part in the weighted average, corroboration earns a diminishing bonus, and
direction shares are counted per active component. Every intermediate value
is clamped to [0, 100] as soon as it is produced.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Union

import numpy as np

from evidence_fusion.exceptions import ConfigurationError
from ..core import (
    Bias,
    ComponentName,
    ComponentSignal,
    ConsensusResult,
    FusionDecision,
    clamp_score,
    dominant_bias,
    is_conflicted,
    normalize_shares,
)

logger = logging.getLogger(__name__)

WeightMap = Mapping[Union[str, ComponentName], float]

DEFAULT_WEIGHTS: Dict[str, float] = {
    "mtf": 25.0,
    "zone": 15.0,
    "rsi": 15.0,
    "macd": 20.0,
    "volume": 10.0,
    "pattern": 15.0,
}


def _validated_weight(key: Union[str, ComponentName], raw: object) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = float("nan")
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"Invalid weight {raw!r} for {key}; using 0", component="aggregator")
    return value


def normalize_weights(weight_map: WeightMap) -> Dict[ComponentName, float]:
    """
    Normalize arbitrary weights so they sum to 100.

    Negative, non-finite and unknown entries are dropped with a warning.
    Components missing from the map get weight 0. When nothing positive
    remains, every component gets an equal share.

    Args:
        weight_map: Component name (or member) to raw weight.

    Returns:
        Dict[ComponentName, float]: a weight for every component, summing to 100.
    """
    cleaned: Dict[ComponentName, float] = {name: 0.0 for name in ComponentName}
    for key, raw in weight_map.items():
        try:
            name = ComponentName.parse(key)
        except ValueError:
            logger.warning(f"Ignoring weight for unknown component {key!r}")
            continue
        try:
            cleaned[name] = _validated_weight(name.value, raw)
        except ConfigurationError as e:
            logger.warning(e.message)
            cleaned[name] = 0.0

    total = sum(cleaned.values())
    if total <= 0:
        logger.warning("All component weights are zero; falling back to equal weights")
        equal = 100.0 / len(cleaned)
        return {name: equal for name in cleaned}

    return {name: value / total * 100.0 for name, value in cleaned.items()}


@dataclass
class AggregationTrace:
    """Every intermediate value of one aggregation, for audit and tests."""
    raw_weighted_score: float = 0.0
    bonus_multiplier: float = 1.0
    after_bonus: float = 0.0
    after_mixed_penalty: float = 0.0
    confidence_steps: List[float] = field(default_factory=list)

    def values(self) -> List[float]:
        return [self.raw_weighted_score, self.after_bonus, self.after_mixed_penalty, *self.confidence_steps]


class FusionAggregator:
    """
    Combines component signals into a FusionDecision.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize the fusion aggregator.

        Args:
            config: Configuration dictionary with aggregation parameters
        """
        config = config or {}
        self.config = config

        self.weights: Dict[ComponentName, float] = normalize_weights(config.get("weights", DEFAULT_WEIGHTS))
        self.min_confidence = config.get("min_confidence", 60.0)

        # Corroboration bonus: the k-th extra active component adds base * decay^(k-1)
        self.active_bonus_base = config.get("active_bonus_base", 0.05)
        self.active_bonus_decay = config.get("active_bonus_decay", 0.5)

        self.mixed_signal_penalty = config.get("mixed_signal_penalty", 0.85)
        self.strong_dominance_share = config.get("strong_dominance_share", 75.0)
        self.strong_dominance_boost = config.get("strong_dominance_boost", 0.20)
        self.clear_dominance_boost = config.get("clear_dominance_boost", 0.10)
        self.conflict_penalty = config.get("conflict_penalty", 0.7)
        self.mtf_disagreement_penalty = config.get("mtf_disagreement_penalty", 0.9)
        self.conflict_threshold = config.get("conflict_threshold", 30.0)

        self.max_history_size = config.get("max_history_size", 500)
        self.decision_history: List[FusionDecision] = []
        self.last_trace: Optional[AggregationTrace] = None

    def configure_weights(self, weight_map: WeightMap) -> Dict[ComponentName, float]:
        """
        Replace the component weights.

        Args:
            weight_map: Arbitrary non-negative weights; always normalized.

        Returns:
            Dict[ComponentName, float]: the normalized weights now in use.
        """
        self.weights = normalize_weights(weight_map)
        logger.info(
            "Component weights set: "
            + ", ".join(f"{name.value}={w:.1f}" for name, w in self.weights.items())
        )
        return dict(self.weights)

    def bonus_multiplier(self, active_count: int) -> float:
        """Diminishing reward for each active component beyond the first."""
        extra = max(0, active_count - 1)
        bonus = sum(self.active_bonus_base * self.active_bonus_decay ** k for k in range(extra))
        return 1.0 + bonus

    def aggregate(
        self,
        signals: Iterable[ComponentSignal],
        consensus: Optional[ConsensusResult] = None,
        instrument: str = "",
        lag: int = 0,
        timestamp: Optional[datetime] = None,
    ) -> FusionDecision:
        """
        Fuse component signals into one decision.

        Args:
            signals: One signal per component; later duplicates replace earlier ones.
            consensus: Multi-timeframe vote, used to penalize disagreement.
            instrument: Symbol recorded on the decision.
            lag: Evaluation lag recorded on the decision.
            timestamp: Decision time; defaults to now.

        Returns:
            FusionDecision: immutable result.
        """
        by_component: Dict[ComponentName, ComponentSignal] = {}
        for signal in signals:
            by_component[signal.component] = signal
        ordered = [by_component[name] for name in ComponentName if name in by_component]

        trace = AggregationTrace()
        active = [s for s in ordered if s.is_active and self.weights.get(s.component, 0.0) > 0]

        # 1. Weighted average over active components only
        active_weight = sum(self.weights[s.component] for s in active)
        if active_weight > 0:
            raw = sum(s.score * self.weights[s.component] for s in active) / active_weight
        else:
            raw = 0.0
        trace.raw_weighted_score = clamp_score(raw)

        # 2. Corroboration bonus
        trace.bonus_multiplier = self.bonus_multiplier(len(active))
        trace.after_bonus = clamp_score(trace.raw_weighted_score * trace.bonus_multiplier)

        # 3. Direction shares counted per active component
        counts = {Bias.BULLISH: 0, Bias.BEARISH: 0, Bias.NEUTRAL: 0}
        for s in active:
            counts[s.bias] += 1
        bull, bear, neutral = normalize_shares(counts[Bias.BULLISH], counts[Bias.BEARISH], counts[Bias.NEUTRAL])
        conflict = is_conflicted(bull, bear, self.conflict_threshold)
        dominant = dominant_bias(bull, bear, neutral)

        # 4. Mixed-signal penalty
        weighted_score = trace.after_bonus
        if counts[Bias.BULLISH] and counts[Bias.BEARISH]:
            weighted_score = clamp_score(weighted_score * self.mixed_signal_penalty)
        trace.after_mixed_penalty = weighted_score

        # 5. Overall confidence
        confidence = weighted_score
        trace.confidence_steps.append(confidence)
        if conflict:
            confidence = clamp_score(confidence * self.conflict_penalty)
        elif dominant is not Bias.NEUTRAL:
            dominant_share = bull if dominant is Bias.BULLISH else bear
            boost = (
                self.strong_dominance_boost
                if dominant_share >= self.strong_dominance_share
                else self.clear_dominance_boost
            )
            confidence = clamp_score(confidence * (1.0 + boost))
        trace.confidence_steps.append(confidence)

        if (
            consensus is not None
            and consensus.dominant_direction is not Bias.NEUTRAL
            and dominant is not Bias.NEUTRAL
            and consensus.dominant_direction is not dominant
        ):
            confidence = clamp_score(confidence * self.mtf_disagreement_penalty)
        trace.confidence_steps.append(confidence)

        # 6. Validation
        if not active:
            is_valid, message = False, "No active components"
        elif dominant is Bias.NEUTRAL:
            is_valid, message = False, "No dominant direction"
        elif confidence < self.min_confidence:
            is_valid, message = False, f"Confidence {confidence:.1f} below minimum {self.min_confidence:.1f}"
        else:
            is_valid = True
            message = f"{dominant.value.capitalize()} signal from {len(active)} active component(s)"
            if conflict:
                message += " despite conflicting evidence"

        self.last_trace = trace
        decision = FusionDecision(
            instrument=instrument,
            overall_confidence=confidence,
            weighted_score=weighted_score,
            dominant_direction=dominant,
            is_valid=is_valid,
            validation_message=message,
            weights=self.weights,
            bullish_share=bull,
            bearish_share=bear,
            neutral_share=neutral,
            conflict=conflict,
            active_components=tuple(s.component for s in active),
            signals=tuple(ordered),
            lag=lag,
            min_confidence=self.min_confidence,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self._record(decision)
        return decision

    def _record(self, decision: FusionDecision):
        self.decision_history.append(decision)
        if len(self.decision_history) > self.max_history_size:
            self.decision_history = self.decision_history[-self.max_history_size:]

    def get_aggregation_statistics(self) -> Dict[str, object]:
        """
        Summary of recent decisions.

        Returns:
            Dict: counts by direction, validity rate and confidence statistics.
        """
        history = self.decision_history
        if not history:
            return {"total_decisions": 0}

        confidences = [d.overall_confidence for d in history]
        directions = {bias.value: 0 for bias in Bias}
        for d in history:
            directions[d.dominant_direction.value] += 1

        return {
            "total_decisions": len(history),
            "valid_decisions": sum(1 for d in history if d.is_valid),
            "validity_rate": sum(1 for d in history if d.is_valid) / len(history),
            "conflict_rate": sum(1 for d in history if d.conflict) / len(history),
            "direction_distribution": directions,
            "average_confidence": float(np.mean(confidences)),
            "confidence_std": float(np.std(confidences)),
        }
