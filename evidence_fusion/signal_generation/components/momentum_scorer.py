"""
Momentum oscillator (RSI) scorer.

Bias comes from how far RSI sits from its midpoint together with its
short-window slope. Confidence grows with extremity, with persistence on the
same side of the midpoint and with a confirming failure swing.
"""

import logging
from typing import List, Optional

import numpy as np

from evidence_fusion.exceptions import DataUnavailableError
from ..core import Bias, ComponentName, ComponentSignal, ConsensusResult, IndicatorKind, TrendDirection, clamp_score
from ..mapping import bias_from_value
from .base_scorer import BaseComponentScorer

logger = logging.getLogger(__name__)

RSI_MIDPOINT = 50.0


class MomentumScorer(BaseComponentScorer):
    """
    Scores RSI momentum for one instrument.
    """

    component = ComponentName.RSI

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.slope_window = self.config.get("slope_window", 5)
        self.persistence_window = self.config.get("persistence_window", 10)
        self.neutral_band = self.config.get("neutral_band", 3.0)
        self.slope_weight = self.config.get("slope_weight", 2.0)
        self.overbought = self.config.get("overbought", 70.0)
        self.oversold = self.config.get("oversold", 30.0)
        self.extremity_boost = self.config.get("extremity_boost", 15.0)
        self.persistence_boost = self.config.get("persistence_boost", 20.0)
        self.failure_swing_lookback = self.config.get("failure_swing_lookback", 10)
        self.failure_swing_boost = self.config.get("failure_swing_boost", 10.0)

    def _rsi_history(self, lag: int, count: int) -> List[Optional[float]]:
        """RSI values newest first; missing and defaulted readings are None."""
        return [self._measured(IndicatorKind.RSI, lag + i) for i in range(count)]

    def _evaluate(self, lag: int, consensus: Optional[ConsensusResult]) -> ComponentSignal:
        reading = self.indicator_cache.get(self.instrument, self.timeframe, IndicatorKind.RSI, lag)
        if not reading.is_available:
            raise DataUnavailableError(f"rsi unavailable at lag {lag}", component=self.component.value)
        if not reading.is_measured:
            raise DataUnavailableError(f"rsi defaulted at lag {lag}", component=self.component.value)
        rsi = reading.value

        history = self._rsi_history(lag, max(self.slope_window, self.persistence_window, self.failure_swing_lookback) + 1)
        distance = rsi - RSI_MIDPOINT
        prior = history[self.slope_window] if len(history) > self.slope_window else None
        slope = (rsi - prior) / self.slope_window if prior is not None else 0.0

        lean = distance + slope * self.slope_weight
        bias = bias_from_value(lean, self.neutral_band)
        score = clamp_score(abs(lean) * 2.0)

        confidence = 30.0 + abs(distance)
        extreme = rsi >= self.overbought or rsi <= self.oversold
        if extreme:
            confidence += self.extremity_boost

        persistence = self._persistence(history[: self.persistence_window], bias)
        confidence += persistence * self.persistence_boost

        failure_swing = False
        if bias is not Bias.NEUTRAL:
            chronological = [v for v in reversed(history[: self.failure_swing_lookback]) if v is not None]
            failure_swing = self.has_failure_swing(chronological, bias is Bias.BULLISH)
            if failure_swing:
                confidence += self.failure_swing_boost
        else:
            confidence *= 0.5

        detail = f"RSI {rsi:.1f}, slope {slope:+.2f}/bar"
        if extreme:
            detail += ", overbought" if rsi >= self.overbought else ", oversold"
        if failure_swing:
            detail += ", failure swing"

        return ComponentSignal(
            component=self.component,
            bias=bias,
            score=score,
            confidence=clamp_score(confidence),
            detail=detail,
            degraded=reading.degraded,
            metadata={
                "rsi": rsi,
                "slope": slope,
                "persistence": persistence,
                "extreme": extreme,
                "failure_swing": failure_swing,
                "source": reading.source.value,
            },
        )

    @staticmethod
    def _persistence(values: List[Optional[float]], bias: Bias) -> float:
        """Share of readings on the bias side of the midpoint."""
        known = [v for v in values if v is not None]
        if not known or bias is Bias.NEUTRAL:
            return 0.0
        if bias is Bias.BULLISH:
            return sum(1 for v in known if v > RSI_MIDPOINT) / len(known)
        return sum(1 for v in known if v < RSI_MIDPOINT) / len(known)

    def has_failure_swing(self, rsi_values: List[float], bullish: bool) -> bool:
        """
        Detect a Wilder failure swing in a chronological RSI series.

        Bullish: RSI dips below the oversold level, bounces to a peak, pulls
        back without returning to oversold, then closes above that peak.
        Bearish is the mirror image around the overbought level.

        Args:
            rsi_values: RSI readings, oldest first, ending with the current one.
            bullish: Which variant to look for.

        Returns:
            bool: True when the swing completed on the latest reading.
        """
        if len(rsi_values) < 4:
            return False

        series = np.asarray(rsi_values, dtype=float)
        threshold = self.oversold
        if not bullish:
            series = 100.0 - series
            threshold = 100.0 - self.overbought
        current = series[-1]
        past = series[:-1]

        extreme_index = int(np.argmin(past))
        if past[extreme_index] >= threshold:
            return False

        after_extreme = past[extreme_index + 1:]
        if len(after_extreme) < 2:
            return False
        peak_index = extreme_index + 1 + int(np.argmax(after_extreme))
        after_peak = past[peak_index + 1:]
        if len(after_peak) == 0:
            return False

        pullback = after_peak.min()
        return bool(pullback > threshold and current > past[peak_index])

    def rsi_trend(self, bars: int = 5, lag: int = 0) -> TrendDirection:
        """Direction of RSI over the last ``bars`` readings."""
        now = self._optional(IndicatorKind.RSI, lag)
        then = self._optional(IndicatorKind.RSI, lag + bars)
        if now is None or then is None:
            return TrendDirection.UNCLEAR
        change = now - then
        if change > 2.0:
            return TrendDirection.UP
        if change < -2.0:
            return TrendDirection.DOWN
        return TrendDirection.SIDEWAYS
