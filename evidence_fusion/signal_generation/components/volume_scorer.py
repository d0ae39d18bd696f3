"""
Volume scorer.

Volume is judged on three axes: whether it confirms price moves
(co-movement), how large the current bar's volume is relative to its recent
average (conviction), and whether it warns of exhaustion (divergence and
climax). The bullish and bearish bias scores built from these are
normalized into the component's confidence.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from evidence_fusion.exceptions import DataUnavailableError
from ..core import Bar, Bias, ComponentName, ComponentSignal, ConsensusResult, clamp_score
from .base_scorer import BaseComponentScorer

logger = logging.getLogger(__name__)

# (upper bound of volume ratio, conviction score)
CONVICTION_SCALE: List[Tuple[float, float]] = [
    (0.5, 10.0),
    (0.8, 30.0),
    (1.2, 50.0),
    (1.5, 70.0),
    (2.0, 85.0),
]
MAX_CONVICTION = 100.0


class VolumeStatus(Enum):
    """Coarse classification of the current bar's volume."""
    VERY_LOW = "very_low"
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    SPIKE = "spike"
    CLIMAX = "climax"


@dataclass
class VolumeAnalysis:
    """Intermediate results of a volume evaluation."""
    volume_ratio: float
    momentum: float
    conviction: float
    divergence: bool
    climax: bool
    spike: bool
    bullish_score: float
    bearish_score: float
    final_score: float
    status: VolumeStatus
    flags: Dict[str, bool] = field(default_factory=dict)


def conviction_from_ratio(ratio: float) -> float:
    """Piecewise map of current/average volume to a 0-100 conviction."""
    for upper, value in CONVICTION_SCALE:
        if ratio < upper:
            return value
    return MAX_CONVICTION


class VolumeScorer(BaseComponentScorer):
    """
    Scores volume evidence for one instrument.
    """

    component = ComponentName.VOLUME

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookback = self.config.get("lookback", 20)
        self.divergence_period = self.config.get("divergence_period", 5)
        self.spike_threshold = self.config.get("spike_threshold", 2.0)
        self.climax_multiple = self.config.get("climax_multiple", 1.5)
        self.divergence_penalty = self.config.get("divergence_penalty", 0.2)
        self.climax_penalty = self.config.get("climax_penalty", 0.15)
        self.spike_boost = self.config.get("spike_boost", 1.2)
        self.divergence_bias_penalty = self.config.get("divergence_bias_penalty", 0.7)
        self.bias_margin = self.config.get("bias_margin", 1.1)
        self.last_analysis: Optional[VolumeAnalysis] = None

    def _evaluate(self, lag: int, consensus: Optional[ConsensusResult]) -> ComponentSignal:
        bars = self._require_bars(lag, self.lookback + 1)
        if not any(b.volume > 0 for b in bars):
            raise DataUnavailableError("no volume reported", component=self.component.value)
        analysis = self.analyze(bars)
        self.last_analysis = analysis

        bull, bear = analysis.bullish_score, analysis.bearish_score
        total = bull + bear
        if total <= 0:
            bias, confidence = Bias.NEUTRAL, 0.0
        else:
            confidence = abs(bull - bear) / total * 100.0
            if bull > bear * self.bias_margin:
                bias = Bias.BULLISH
            elif bear > bull * self.bias_margin:
                bias = Bias.BEARISH
            else:
                bias = Bias.NEUTRAL

        detail = f"volume x{analysis.volume_ratio:.2f} of average ({analysis.status.value})"
        raised = [name for name, on in analysis.flags.items() if on]
        if raised:
            detail += ", " + ", ".join(raised)

        return ComponentSignal(
            component=self.component,
            bias=bias,
            score=analysis.final_score,
            confidence=clamp_score(confidence),
            detail=detail,
            metadata={
                "volume_ratio": analysis.volume_ratio,
                "momentum": analysis.momentum,
                "conviction": analysis.conviction,
                "bullish_score": bull,
                "bearish_score": bear,
                "status": analysis.status.value,
                **analysis.flags,
            },
        )

    def analyze(self, bars: List[Bar]) -> VolumeAnalysis:
        """
        Run the volume analysis over bars given newest first.

        Args:
            bars: At least two bars; the first is the bar being scored.

        Returns:
            VolumeAnalysis: all intermediate scores and flags.
        """
        ordered = list(reversed(bars))
        closes = np.array([b.close for b in ordered], dtype=float)
        volumes = np.array([b.volume for b in ordered], dtype=float)

        current_volume = volumes[-1]
        history = volumes[:-1]
        average = history.mean() if len(history) else 0.0
        ratio = current_volume / average if average > 0 else 0.0

        momentum = self.momentum_confirmation(closes, volumes)
        conviction = conviction_from_ratio(ratio)
        divergence = self.has_divergence(closes, volumes)
        climax = self.is_climax(volumes)
        spike = ratio >= self.spike_threshold

        final_score = conviction
        if divergence:
            final_score *= 1.0 - self.divergence_penalty
        if climax:
            final_score *= 1.0 - self.climax_penalty
        final_score = clamp_score(final_score)

        bull = conviction * (0.5 + 0.5 * momentum)
        bear = conviction * (0.5 - 0.5 * momentum)
        last_move = closes[-1] - closes[-2] if len(closes) > 1 else 0.0
        if spike and last_move > 0:
            bull *= self.spike_boost
        elif spike and last_move < 0:
            bear *= self.spike_boost

        if divergence:
            # Volume is not backing the recent price trend.
            trend = closes[-1] - closes[-1 - min(self.divergence_period, len(closes) - 1)]
            if trend > 0:
                bull *= self.divergence_bias_penalty
            elif trend < 0:
                bear *= self.divergence_bias_penalty

        if climax:
            status = VolumeStatus.CLIMAX
        elif spike:
            status = VolumeStatus.SPIKE
        elif ratio >= 1.5:
            status = VolumeStatus.HIGH
        elif ratio >= 0.8:
            status = VolumeStatus.NORMAL
        elif ratio >= 0.5:
            status = VolumeStatus.LOW
        else:
            status = VolumeStatus.VERY_LOW

        return VolumeAnalysis(
            volume_ratio=float(ratio),
            momentum=float(momentum),
            conviction=conviction,
            divergence=divergence,
            climax=climax,
            spike=spike,
            bullish_score=clamp_score(bull),
            bearish_score=clamp_score(bear),
            final_score=final_score,
            status=status,
            flags={"divergence": divergence, "climax": climax, "spike": spike},
        )

    @staticmethod
    def momentum_confirmation(closes: np.ndarray, volumes: np.ndarray) -> float:
        """
        Net share of bars where rising volume accompanied the price move.

        Returns a value in [-1, 1]: +1 when every bar closed up on rising volume,
        -1 when every bar closed down on rising volume.
        """
        if len(closes) < 2:
            return 0.0
        price_change = np.sign(np.diff(closes))
        volume_rising = np.diff(volumes) > 0
        return float(np.sum(price_change * volume_rising) / len(price_change))

    def has_divergence(self, closes: np.ndarray, volumes: np.ndarray) -> bool:
        """Price and volume trending in opposite directions over the period."""
        period = min(self.divergence_period, len(closes) - 1)
        if period < 2:
            return False
        price_slope = np.polyfit(np.arange(period + 1), closes[-(period + 1):], 1)[0]
        volume_slope = np.polyfit(np.arange(period + 1), volumes[-(period + 1):], 1)[0]
        return bool(price_slope * volume_slope < 0)

    def is_climax(self, volumes: np.ndarray) -> bool:
        """Current volume far above the recent maximum."""
        if len(volumes) < 2:
            return False
        recent_max = volumes[:-1].max()
        return bool(recent_max > 0 and volumes[-1] >= self.climax_multiple * recent_max)

    def is_confirming(self, bias: Bias, lag: int = 0) -> bool:
        """True when the volume evaluation supports ``bias``."""
        signal = self.score(lag)
        return bias is not Bias.NEUTRAL and signal.bias is bias and not signal.metadata.get("divergence", False)
