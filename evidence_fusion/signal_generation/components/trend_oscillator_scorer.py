"""
Trend oscillator (MACD) scorer.

Plain trend classification comes from the main line against its signal line
and zero. Crossovers and zero-line crossings override it, and a divergence
between price extremes and oscillator extremes overrides everything with
maximal confidence.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from evidence_fusion.exceptions import DataUnavailableError
from ..core import (
    Bias,
    ComponentName,
    ComponentSignal,
    ConsensusResult,
    IndicatorKind,
    clamp,
    clamp_score,
)
from .base_scorer import BaseComponentScorer

logger = logging.getLogger(__name__)


class MacdEvent(Enum):
    """Discrete MACD events, highest priority last."""
    NONE = "none"
    BULLISH_CROSS = "bullish_cross"
    BEARISH_CROSS = "bearish_cross"
    ZERO_CROSS_UP = "zero_cross_up"
    ZERO_CROSS_DOWN = "zero_cross_down"
    BULLISH_DIVERGENCE = "bullish_divergence"
    BEARISH_DIVERGENCE = "bearish_divergence"


EVENT_BIAS = {
    MacdEvent.NONE: Bias.NEUTRAL,
    MacdEvent.BULLISH_CROSS: Bias.BULLISH,
    MacdEvent.BEARISH_CROSS: Bias.BEARISH,
    MacdEvent.ZERO_CROSS_UP: Bias.BULLISH,
    MacdEvent.ZERO_CROSS_DOWN: Bias.BEARISH,
    MacdEvent.BULLISH_DIVERGENCE: Bias.BULLISH,
    MacdEvent.BEARISH_DIVERGENCE: Bias.BEARISH,
}


@dataclass(frozen=True)
class MacdSnapshot:
    """MACD lines at two consecutive bars."""
    main: float
    signal: float
    prev_main: float
    prev_signal: float

    @property
    def histogram(self) -> float:
        return self.main - self.signal

    @property
    def prev_histogram(self) -> float:
        return self.prev_main - self.prev_signal


class TrendOscillatorScorer(BaseComponentScorer):
    """
    Scores MACD trend evidence for one instrument.
    """

    component = ComponentName.MACD

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.divergence_window = self.config.get("divergence_window", 10)
        self.slope_bars = self.config.get("slope_bars", 3)
        self.line_delta_atr_scale = self.config.get("line_delta_atr_scale", 0.2)
        self.zero_distance_atr_scale = self.config.get("zero_distance_atr_scale", 0.5)
        self.slope_atr_scale = self.config.get("slope_atr_scale", 0.05)
        self.signal_cross_bonus = self.config.get("signal_cross_bonus", 15.0)
        self.zero_cross_bonus = self.config.get("zero_cross_bonus", 20.0)
        self.strong_trend_adx = self.config.get("strong_trend_adx", 25.0)

    def _snapshot(self, lag: int) -> MacdSnapshot:
        return MacdSnapshot(
            main=self._require(IndicatorKind.MACD_MAIN, lag),
            signal=self._require(IndicatorKind.MACD_SIGNAL, lag),
            prev_main=self._require(IndicatorKind.MACD_MAIN, lag + 1),
            prev_signal=self._require(IndicatorKind.MACD_SIGNAL, lag + 1),
        )

    def _normalizer(self, lag: int) -> float:
        atr = self._optional(IndicatorKind.ATR, lag)
        if atr is not None and atr > 0:
            return atr
        price = self.indicator_cache.reference_price(self.instrument, self.timeframe, lag)
        if price is None or price <= 0:
            raise DataUnavailableError("no ATR or price to normalize MACD", component=self.component.value)
        return price * 0.001

    def _evaluate(self, lag: int, consensus: Optional[ConsensusResult]) -> ComponentSignal:
        snap = self._snapshot(lag)
        norm = self._normalizer(lag)

        trend_bias = self.classify_trend(snap)
        event = self.detect_event(snap)
        divergence = self.detect_divergence(lag)
        if divergence is not MacdEvent.NONE:
            event = divergence

        bias = EVENT_BIAS[event] if event is not MacdEvent.NONE else trend_bias

        # Four bounded contributions, each at most 25
        line_delta = min(25.0, abs(snap.histogram) / (norm * self.line_delta_atr_scale) * 25.0)
        zero_distance = min(25.0, abs(snap.main) / (norm * self.zero_distance_atr_scale) * 25.0)
        hist_slope = snap.histogram - snap.prev_histogram
        slope_part = min(25.0, abs(hist_slope) / (norm * self.slope_atr_scale) * 25.0)
        event_bonus = self._event_bonus(event)
        score = clamp_score(line_delta + zero_distance + slope_part + min(25.0, event_bonus))

        if event in (MacdEvent.BULLISH_DIVERGENCE, MacdEvent.BEARISH_DIVERGENCE):
            confidence = 100.0
        else:
            confidence = 0.4 * score + event_bonus
            confidence += self._slope_consistency(lag, bias) * 15.0
            if bias.sign != 0 and (snap.main > 0) == (bias is Bias.BULLISH) and snap.main != 0:
                confidence += 10.0
            confidence += self._cross_checks(lag, bias, consensus)
            if bias is Bias.NEUTRAL:
                confidence *= 0.5

        detail = f"MACD {snap.main:.5f} vs signal {snap.signal:.5f}"
        if event is not MacdEvent.NONE:
            detail += f", {event.value}"

        return ComponentSignal(
            component=self.component,
            bias=bias,
            score=score if bias is not Bias.NEUTRAL else score * 0.5,
            confidence=clamp_score(confidence),
            detail=detail,
            metadata={
                "main": snap.main,
                "signal": snap.signal,
                "histogram": snap.histogram,
                "event": event.value,
                "trend_bias": trend_bias.value,
                "contributions": {
                    "line_delta": line_delta,
                    "zero_distance": zero_distance,
                    "slope": slope_part,
                    "event": min(25.0, event_bonus),
                },
            },
        )

    @staticmethod
    def classify_trend(snap: MacdSnapshot) -> Bias:
        if snap.main > snap.signal:
            return Bias.BULLISH
        if snap.main < snap.signal:
            return Bias.BEARISH
        return Bias.NEUTRAL

    @staticmethod
    def detect_event(snap: MacdSnapshot) -> MacdEvent:
        """
        Signal-line and zero-line crossings on the latest bar.

        A zero-line crossing outranks a signal-line crossing.
        """
        if snap.prev_main <= 0 < snap.main:
            return MacdEvent.ZERO_CROSS_UP
        if snap.prev_main >= 0 > snap.main:
            return MacdEvent.ZERO_CROSS_DOWN
        if snap.prev_histogram <= 0 < snap.histogram:
            return MacdEvent.BULLISH_CROSS
        if snap.prev_histogram >= 0 > snap.histogram:
            return MacdEvent.BEARISH_CROSS
        return MacdEvent.NONE

    def detect_divergence(self, lag: int) -> MacdEvent:
        """
        Compare price and MACD extremes across two consecutive windows.

        Bullish divergence: a lower price low with a higher MACD low.
        Bearish divergence: a higher price high with a lower MACD high.
        """
        window = self.divergence_window
        bars = self.market_data.get_bars(self.instrument, self.timeframe, lag, 2 * window)
        if len(bars) < 2 * window:
            return MacdEvent.NONE

        macd: List[Optional[float]] = [self._optional(IndicatorKind.MACD_MAIN, lag + i) for i in range(2 * window)]
        if any(v is None for v in macd):
            return MacdEvent.NONE

        recent_bars, prior_bars = bars[:window], bars[window:]
        recent_macd, prior_macd = macd[:window], macd[window:]

        recent_low = min(b.low for b in recent_bars)
        prior_low = min(b.low for b in prior_bars)
        if recent_low < prior_low and min(recent_macd) > min(prior_macd) and min(recent_macd) < 0:
            return MacdEvent.BULLISH_DIVERGENCE

        recent_high = max(b.high for b in recent_bars)
        prior_high = max(b.high for b in prior_bars)
        if recent_high > prior_high and max(recent_macd) < max(prior_macd) and max(recent_macd) > 0:
            return MacdEvent.BEARISH_DIVERGENCE

        return MacdEvent.NONE

    def _event_bonus(self, event: MacdEvent) -> float:
        if event in (MacdEvent.ZERO_CROSS_UP, MacdEvent.ZERO_CROSS_DOWN):
            return self.zero_cross_bonus
        if event in (MacdEvent.BULLISH_CROSS, MacdEvent.BEARISH_CROSS):
            return self.signal_cross_bonus
        if event in (MacdEvent.BULLISH_DIVERGENCE, MacdEvent.BEARISH_DIVERGENCE):
            return 25.0
        return 0.0

    def _slope_consistency(self, lag: int, bias: Bias) -> float:
        """Share of recent histogram steps moving in the bias direction."""
        if bias is Bias.NEUTRAL:
            return 0.0
        histogram = []
        for i in range(self.slope_bars + 1):
            main = self._optional(IndicatorKind.MACD_MAIN, lag + i)
            signal = self._optional(IndicatorKind.MACD_SIGNAL, lag + i)
            if main is None or signal is None:
                return 0.0
            histogram.append(main - signal)
        steps = [histogram[i] - histogram[i + 1] for i in range(self.slope_bars)]
        agreeing = sum(1 for step in steps if step * bias.sign > 0)
        return agreeing / len(steps)

    def _cross_checks(self, lag: int, bias: Bias, consensus: Optional[ConsensusResult]) -> float:
        """Adjustment from RSI, ADX/DI and the multi-timeframe vote. Defaulted readings are skipped."""
        if bias is Bias.NEUTRAL:
            return 0.0
        adjustment = 0.0

        rsi = self._measured(IndicatorKind.RSI, lag)
        if rsi is not None:
            adjustment += 5.0 if (rsi - 50.0) * bias.sign > 0 else -5.0

        adx = self._measured(IndicatorKind.ADX, lag)
        plus_di = self._measured(IndicatorKind.PLUS_DI, lag)
        minus_di = self._measured(IndicatorKind.MINUS_DI, lag)
        if adx is not None and plus_di is not None and minus_di is not None and adx >= self.strong_trend_adx:
            adjustment += 5.0 if (plus_di - minus_di) * bias.sign > 0 else -5.0

        if consensus is not None and consensus.dominant_direction is not Bias.NEUTRAL:
            adjustment += 10.0 if consensus.dominant_direction is bias else -10.0

        return clamp(adjustment, -20.0, 20.0)
