"""
Multi-timeframe trend consensus.

Each timeframe is classified from its moving-average ordering and the close
relative to those averages. The per-timeframe votes are combined into
weighted direction shares, an alignment score and a confidence.
"""

import logging
from typing import Dict, List, Optional, Tuple

from evidence_fusion.data.indicator_cache import IndicatorCache
from evidence_fusion.signal_generation.core import (
    Bias,
    ConsensusResult,
    IndicatorKind,
    Timeframe,
    TimeframeVote,
    TrendDirection,
    VoteSummary,
    clamp_score,
    dominant_bias,
    is_conflicted,
    normalize_shares,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME_WEIGHTS: Dict[str, float] = {
    "M1": 0.5,
    "M5": 0.8,
    "M15": 1.0,
    "M30": 0.9,
    "H1": 1.3,
    "H4": 1.5,
    "D1": 1.2,
}


class TimeframeConsensus:
    """
    Weighted trend vote across a fixed, ordered set of timeframes.
    """

    def __init__(self, instrument: str, indicator_cache: IndicatorCache, config: Optional[Dict] = None):
        """
        Initialize the consensus voter.

        Args:
            instrument: Symbol to vote on.
            indicator_cache: Source of moving averages and closes.
            config: Configuration dictionary with consensus parameters
        """
        config = config or {}
        self.instrument = instrument
        self.indicator_cache = indicator_cache

        weights = config.get("timeframe_weights", DEFAULT_TIMEFRAME_WEIGHTS)
        self.timeframe_weights: List[Tuple[Timeframe, float]] = sorted(
            ((Timeframe.parse(tf), float(w)) for tf, w in weights.items()),
            key=lambda item: item[0].minutes,
        )
        self.filter_timeframe = Timeframe.parse(config.get("filter_timeframe", "D1"))

        self.flat_separation_pct = config.get("flat_separation_pct", 0.05)
        self.strong_separation_pct = config.get("strong_separation_pct", 0.5)
        self.stack_amplifier = config.get("stack_amplifier", 1.5)
        self.filter_disagreement_factor = config.get("filter_disagreement_factor", 0.5)

        self.mixed_alignment_penalty = config.get("mixed_alignment_penalty", 0.3)
        self.unconflicted_boost = config.get("unconflicted_boost", 0.10)
        self.conflicted_penalty = config.get("conflicted_penalty", 0.20)
        self.filter_agree_boost = config.get("filter_agree_boost", 0.10)
        self.filter_agree_mixed_boost = config.get("filter_agree_mixed_boost", 0.05)
        self.filter_disagree_penalty = config.get("filter_disagree_penalty", 0.05)
        self.filter_disagree_mixed_penalty = config.get("filter_disagree_mixed_penalty", 0.10)
        self.conflict_threshold = config.get("conflict_threshold", 30.0)

        self.last_result: Optional[ConsensusResult] = None

    def long_horizon_filter(self, lag: int = 0) -> Optional[TrendDirection]:
        """Close against the long moving average on the filter timeframe."""
        close = self.indicator_cache.reference_price(self.instrument, self.filter_timeframe, lag)
        long_ma = self.indicator_cache.get(self.instrument, self.filter_timeframe, IndicatorKind.MA_LONG, lag)
        if close is None or not long_ma.is_available:
            return None
        if close > long_ma.value:
            return TrendDirection.UP
        if close < long_ma.value:
            return TrendDirection.DOWN
        return None

    def classify(
        self, timeframe: Timeframe, weight: float, lag: int = 0, long_filter: Optional[TrendDirection] = None
    ) -> TimeframeVote:
        """
        Classify one timeframe and compute its strength.

        Args:
            timeframe: Timeframe to classify.
            weight: Static weight carried into the vote.
            lag: Closed-bar lag.
            long_filter: Direction of the long-horizon filter, if known.

        Returns:
            TimeframeVote: UNCLEAR with zero strength when data is missing.
        """
        cache = self.indicator_cache
        close = cache.reference_price(self.instrument, timeframe, lag)
        fast = cache.get(self.instrument, timeframe, IndicatorKind.MA_FAST, lag)
        medium = cache.get(self.instrument, timeframe, IndicatorKind.MA_MEDIUM, lag)
        slow = cache.get(self.instrument, timeframe, IndicatorKind.MA_SLOW, lag)

        if close is None or not fast.is_available or not medium.is_available:
            return TimeframeVote(timeframe, TrendDirection.UNCLEAR, 0.0, weight, degraded=True)

        degraded = fast.degraded or medium.degraded or slow.degraded
        separation_pct = abs(fast.value - medium.value) / close * 100.0

        if separation_pct < self.flat_separation_pct:
            direction = TrendDirection.SIDEWAYS
        elif fast.value > medium.value and close > medium.value:
            direction = TrendDirection.UP
        elif fast.value < medium.value and close < medium.value:
            direction = TrendDirection.DOWN
        else:
            direction = TrendDirection.UNCLEAR

        strength = clamp_score(separation_pct / self.strong_separation_pct * 100.0)
        stacked = False
        if slow.is_available and direction is TrendDirection.UP:
            stacked = fast.value > medium.value > slow.value
        elif slow.is_available and direction is TrendDirection.DOWN:
            stacked = fast.value < medium.value < slow.value
        if stacked:
            strength = clamp_score(strength * self.stack_amplifier)

        if (
            long_filter is not None
            and direction in (TrendDirection.UP, TrendDirection.DOWN)
            and direction is not long_filter
        ):
            strength = clamp_score(strength * self.filter_disagreement_factor)

        return TimeframeVote(timeframe, direction, strength, weight, stacked=stacked, degraded=degraded)

    def evaluate(self, lag: int = 0) -> ConsensusResult:
        """
        Run the full vote.

        Args:
            lag: Closed-bar lag shared by every timeframe.

        Returns:
            ConsensusResult: direction shares, alignment, confidence and raw votes.
        """
        long_filter = self.long_horizon_filter(lag)
        votes = tuple(self.classify(tf, weight, lag, long_filter) for tf, weight in self.timeframe_weights)
        result = self.combine(votes, long_filter)
        self.last_result = result

        logger.debug(
            f"MTF consensus {self.instrument}: {result.dominant_direction.value} "
            f"alignment={result.alignment:.1f} confidence={result.confidence:.1f} "
            f"conflict={result.conflict}"
        )
        return result

    def combine(
        self, votes: Tuple[TimeframeVote, ...], long_filter: Optional[TrendDirection] = None
    ) -> ConsensusResult:
        """
        Aggregate classified votes into a ConsensusResult.
        """
        summary = self.summarize(votes)
        bull, bear, neutral = normalize_shares(
            summary.bullish_weight, summary.bearish_weight, summary.neutral_weight
        )
        conflict = is_conflicted(bull, bear, self.conflict_threshold)
        dominant = dominant_bias(bull, bear, neutral)

        total = summary.total_weight
        if total <= 0:
            alignment = 0.0
        else:
            dominant_weight = {
                Bias.BULLISH: summary.bullish_weight,
                Bias.BEARISH: summary.bearish_weight,
                Bias.NEUTRAL: summary.neutral_weight,
            }[dominant]
            alignment = clamp_score(dominant_weight / total * 100.0)
        if summary.is_mixed:
            alignment = clamp_score(alignment * (1.0 - self.mixed_alignment_penalty))

        confidence = alignment
        if summary.is_mixed:
            confidence = clamp_score(confidence * (1.0 - self.conflicted_penalty))
        elif dominant is not Bias.NEUTRAL:
            confidence = clamp_score(confidence * (1.0 + self.unconflicted_boost))

        if long_filter is not None and dominant is not Bias.NEUTRAL:
            agrees = long_filter.to_bias() is dominant
            if agrees and not summary.is_mixed:
                factor = 1.0 + self.filter_agree_boost
            elif agrees:
                factor = 1.0 + self.filter_agree_mixed_boost
            elif not summary.is_mixed:
                factor = 1.0 - self.filter_disagree_penalty
            else:
                factor = 1.0 - self.filter_disagree_mixed_penalty
            confidence = clamp_score(confidence * factor)

        return ConsensusResult(
            bullish_confidence=bull,
            bearish_confidence=bear,
            neutral_confidence=neutral,
            dominant_direction=dominant,
            conflict=conflict,
            alignment=alignment,
            confidence=confidence,
            long_filter=long_filter,
            votes=votes,
            summary=summary,
        )

    @staticmethod
    def summarize(votes: Tuple[TimeframeVote, ...]) -> VoteSummary:
        counts = {Bias.BULLISH: 0, Bias.BEARISH: 0, Bias.NEUTRAL: 0}
        weights = {Bias.BULLISH: 0.0, Bias.BEARISH: 0.0, Bias.NEUTRAL: 0.0}
        for vote in votes:
            bucket = vote.direction.to_bias()
            counts[bucket] += 1
            weights[bucket] += vote.weight
        return VoteSummary(
            bullish_count=counts[Bias.BULLISH],
            bearish_count=counts[Bias.BEARISH],
            neutral_count=counts[Bias.NEUTRAL],
            bullish_weight=weights[Bias.BULLISH],
            bearish_weight=weights[Bias.BEARISH],
            neutral_weight=weights[Bias.NEUTRAL],
        )

    def check_alignment(self, min_score: float, lag: int = 0) -> bool:
        """True when the current vote has a direction and enough alignment."""
        return self.evaluate(lag).check_alignment(min_score)

    def get_consensus_statistics(self) -> Dict[str, object]:
        result = self.last_result
        if result is None:
            return {"evaluated": False}
        dominant_tf = result.dominant_timeframe()
        return {
            "evaluated": True,
            "dominant_direction": result.dominant_direction.value,
            "alignment": result.alignment,
            "confidence": result.confidence,
            "conflict": result.conflict,
            "dominant_timeframe": dominant_tf.name if dominant_tf else None,
            "votes": {v.timeframe.name: v.direction.value for v in result.votes},
        }
