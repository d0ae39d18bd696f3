"""
Candlestick pattern scorer.

Keeps the highest-confidence formation found over a short window of closed
bars, then corroborates it against up to six independent indicators. A
pattern is actionable only with high confidence and at least two
confirmations.
"""

import logging
from typing import Dict, Optional

from ..core import Bias, ComponentName, ComponentSignal, ConsensusResult, IndicatorKind, clamp_score
from .base_scorer import BaseComponentScorer
from .candlestick_patterns import PatternMatch, describe_doji, detect_patterns

logger = logging.getLogger(__name__)


class CandlestickScorer(BaseComponentScorer):
    """
    Scores candlestick formations for one instrument.
    """

    component = ComponentName.PATTERN

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.window = self.config.get("window", 3)
        self.confirmation_boost = self.config.get("confirmation_boost", 0.15)
        self.min_confirmations = self.config.get("min_confirmations", 2)
        self.actionable_confidence = self.config.get("actionable_confidence", 75.0)
        self.stop_atr_multiple = self.config.get("stop_atr_multiple", 1.5)
        self.target_atr_multiple = self.config.get("target_atr_multiple", 3.0)

    def find_best_pattern(self, lag: int) -> Optional[PatternMatch]:
        """
        Highest base-confidence match over the window; the most recent wins ties.

        The returned ``end_index`` counts bars back from ``lag``.
        """
        # Three-bar formations plus the prior-trend lookback
        history = self._require_bars(lag, self.window + 6)
        ordered = list(reversed(history))
        last = len(ordered) - 1

        best: Optional[PatternMatch] = None
        for offset in range(self.window):
            for match in detect_patterns(ordered, last - offset):
                if best is None or match.base_confidence > best.base_confidence:
                    best = PatternMatch(pattern=match.pattern, end_index=offset)
        return best

    def _evaluate(self, lag: int, consensus: Optional[ConsensusResult]) -> ComponentSignal:
        best = self.find_best_pattern(lag)
        if best is None:
            return ComponentSignal.neutral(self.component, "No candlestick pattern", degraded=False)

        direction = best.direction
        confirmations = self.confirmations(lag, direction)
        agreeing = sum(1 for ok in confirmations.values() if ok)

        confidence = best.base_confidence
        if direction is not Bias.NEUTRAL and agreeing >= self.min_confirmations:
            confidence *= 1.0 + self.confirmation_boost
        confidence = clamp_score(confidence)
        actionable = (
            direction is not Bias.NEUTRAL
            and confidence >= self.actionable_confidence
            and agreeing >= self.min_confirmations
        )

        metadata = {
            "pattern": best.pattern.value,
            "bars_ago": best.end_index,
            "confirmations": confirmations,
            "confirmation_count": agreeing,
            "actionable": actionable,
        }
        metadata.update(self.risk_reward(lag, direction, confidence))

        description = describe_doji(best.pattern) if best.pattern.value.startswith("doji") else best.pattern.value
        detail = f"{description} {best.end_index} bar(s) ago, {agreeing} confirmation(s)"
        if actionable:
            detail += ", actionable"

        return ComponentSignal(
            component=self.component,
            bias=direction,
            score=confidence if direction is not Bias.NEUTRAL else confidence * 0.5,
            confidence=confidence,
            detail=detail,
            metadata=metadata,
        )

    def confirmations(self, lag: int, direction: Bias) -> Dict[str, bool]:
        """
        Which of the six corroborating indicators agree with ``direction``.

        Indicators that are unavailable or defaulted are left out.
        """
        if direction is Bias.NEUTRAL:
            return {}
        sign = direction.sign
        checks: Dict[str, bool] = {}

        main = self._measured(IndicatorKind.MACD_MAIN, lag)
        signal = self._measured(IndicatorKind.MACD_SIGNAL, lag)
        if main is not None and signal is not None:
            checks["macd"] = (main - signal) * sign > 0

        rsi = self._measured(IndicatorKind.RSI, lag)
        if rsi is not None:
            checks["rsi"] = rsi < 45.0 if direction is Bias.BULLISH else rsi > 55.0

        adx = self._measured(IndicatorKind.ADX, lag)
        plus_di = self._measured(IndicatorKind.PLUS_DI, lag)
        minus_di = self._measured(IndicatorKind.MINUS_DI, lag)
        if adx is not None and plus_di is not None and minus_di is not None:
            checks["adx"] = adx >= 20.0 and (plus_di - minus_di) * sign > 0

        stoch = self._measured(IndicatorKind.STOCH_MAIN, lag)
        stoch_signal = self._measured(IndicatorKind.STOCH_SIGNAL, lag)
        if stoch is not None and stoch_signal is not None:
            room = stoch < 80.0 if direction is Bias.BULLISH else stoch > 20.0
            checks["stochastic"] = (stoch - stoch_signal) * sign > 0 and room

        position = self.indicator_cache.band_position(self.instrument, self.timeframe, lag)
        if position is not None:
            checks["bands"] = position < 0.5 if direction is Bias.BULLISH else position > 0.5

        fast = self._measured(IndicatorKind.MA_FAST, lag)
        medium = self._measured(IndicatorKind.MA_MEDIUM, lag)
        if fast is not None and medium is not None:
            checks["moving_average"] = (fast - medium) * sign > 0

        return checks

    def risk_reward(self, lag: int, direction: Bias, confidence: float) -> Dict[str, Optional[float]]:
        """ATR-based stop and target around the pattern's close."""
        atr = self._optional(IndicatorKind.ATR, lag)
        entry = self.indicator_cache.reference_price(self.instrument, self.timeframe, lag)
        if atr is None or atr <= 0 or entry is None or direction is Bias.NEUTRAL:
            return {"risk_reward": None, "stop_price": None, "target_price": None}

        stop_distance = atr * self.stop_atr_multiple
        target_distance = atr * self.target_atr_multiple * (0.5 + confidence / 100.0)
        return {
            "risk_reward": round(target_distance / stop_distance, 2),
            "stop_price": entry - direction.sign * stop_distance,
            "target_price": entry + direction.sign * target_distance,
        }
