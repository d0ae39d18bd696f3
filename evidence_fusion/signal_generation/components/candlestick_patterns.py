"""
Candlestick pattern recognition.

Pure functions over chronologically ordered bars. Each recognised formation
carries a base confidence and an implied direction; the scorer decides which
match wins and how much corroboration it gets.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..core import Bar, Bias, CandlePattern

PATTERN_BASE_CONFIDENCE: Dict[CandlePattern, float] = {
    CandlePattern.HAMMER: 65.0,
    CandlePattern.INVERTED_HAMMER: 60.0,
    CandlePattern.SHOOTING_STAR: 65.0,
    CandlePattern.HANGING_MAN: 60.0,
    CandlePattern.SPINNING_TOP: 40.0,
    CandlePattern.MARUBOZU_BULLISH: 70.0,
    CandlePattern.MARUBOZU_BEARISH: 70.0,
    CandlePattern.DOJI_STANDARD: 45.0,
    CandlePattern.DOJI_DRAGONFLY: 55.0,
    CandlePattern.DOJI_GRAVESTONE: 55.0,
    CandlePattern.DOJI_LONG_LEGGED: 40.0,
    CandlePattern.BULLISH_ENGULFING: 75.0,
    CandlePattern.BEARISH_ENGULFING: 75.0,
    CandlePattern.BULLISH_HARAMI: 60.0,
    CandlePattern.BEARISH_HARAMI: 60.0,
    CandlePattern.PIERCING_LINE: 65.0,
    CandlePattern.DARK_CLOUD_COVER: 65.0,
    CandlePattern.MORNING_STAR: 80.0,
    CandlePattern.EVENING_STAR: 80.0,
    CandlePattern.THREE_WHITE_SOLDIERS: 85.0,
    CandlePattern.THREE_BLACK_CROWS: 85.0,
}

PATTERN_DIRECTION: Dict[CandlePattern, Bias] = {
    CandlePattern.HAMMER: Bias.BULLISH,
    CandlePattern.INVERTED_HAMMER: Bias.BULLISH,
    CandlePattern.SHOOTING_STAR: Bias.BEARISH,
    CandlePattern.HANGING_MAN: Bias.BEARISH,
    CandlePattern.SPINNING_TOP: Bias.NEUTRAL,
    CandlePattern.MARUBOZU_BULLISH: Bias.BULLISH,
    CandlePattern.MARUBOZU_BEARISH: Bias.BEARISH,
    CandlePattern.DOJI_STANDARD: Bias.NEUTRAL,
    CandlePattern.DOJI_DRAGONFLY: Bias.BULLISH,
    CandlePattern.DOJI_GRAVESTONE: Bias.BEARISH,
    CandlePattern.DOJI_LONG_LEGGED: Bias.NEUTRAL,
    CandlePattern.BULLISH_ENGULFING: Bias.BULLISH,
    CandlePattern.BEARISH_ENGULFING: Bias.BEARISH,
    CandlePattern.BULLISH_HARAMI: Bias.BULLISH,
    CandlePattern.BEARISH_HARAMI: Bias.BEARISH,
    CandlePattern.PIERCING_LINE: Bias.BULLISH,
    CandlePattern.DARK_CLOUD_COVER: Bias.BEARISH,
    CandlePattern.MORNING_STAR: Bias.BULLISH,
    CandlePattern.EVENING_STAR: Bias.BEARISH,
    CandlePattern.THREE_WHITE_SOLDIERS: Bias.BULLISH,
    CandlePattern.THREE_BLACK_CROWS: Bias.BEARISH,
}

# Geometry thresholds, as fractions of the bar range
DOJI_BODY = 0.1
SMALL_SHADOW = 0.1
LONG_SHADOW = 0.6
SPINNING_TOP_BODY = 0.3
MARUBOZU_BODY = 0.9
TREND_LOOKBACK = 3


@dataclass(frozen=True)
class PatternMatch:
    """A recognised formation ending at ``end_index``."""
    pattern: CandlePattern
    end_index: int

    @property
    def direction(self) -> Bias:
        return PATTERN_DIRECTION[self.pattern]

    @property
    def base_confidence(self) -> float:
        return PATTERN_BASE_CONFIDENCE[self.pattern]

    @property
    def bars(self) -> int:
        if self.pattern in THREE_BAR_PATTERNS:
            return 3
        if self.pattern in TWO_BAR_PATTERNS:
            return 2
        return 1


TWO_BAR_PATTERNS = {
    CandlePattern.BULLISH_ENGULFING,
    CandlePattern.BEARISH_ENGULFING,
    CandlePattern.BULLISH_HARAMI,
    CandlePattern.BEARISH_HARAMI,
    CandlePattern.PIERCING_LINE,
    CandlePattern.DARK_CLOUD_COVER,
}

THREE_BAR_PATTERNS = {
    CandlePattern.MORNING_STAR,
    CandlePattern.EVENING_STAR,
    CandlePattern.THREE_WHITE_SOLDIERS,
    CandlePattern.THREE_BLACK_CROWS,
}


def prior_trend(bars: Sequence[Bar], index: int, lookback: int = TREND_LOOKBACK) -> int:
    """Sign of the close-to-close move over ``lookback`` bars before ``index``."""
    if index - 1 - lookback < 0:
        return 0
    move = bars[index - 1].close - bars[index - 1 - lookback].close
    return (move > 0) - (move < 0)


def classify_doji(bar: Bar) -> Optional[CandlePattern]:
    """Doji variant of a bar, or None if the body is too large."""
    if bar.range <= 0 or bar.body > DOJI_BODY * bar.range:
        return None
    upper, lower = bar.upper_shadow / bar.range, bar.lower_shadow / bar.range
    if upper <= SMALL_SHADOW and lower >= LONG_SHADOW:
        return CandlePattern.DOJI_DRAGONFLY
    if lower <= SMALL_SHADOW and upper >= LONG_SHADOW:
        return CandlePattern.DOJI_GRAVESTONE
    if upper >= 0.3 and lower >= 0.3:
        return CandlePattern.DOJI_LONG_LEGGED
    return CandlePattern.DOJI_STANDARD


def single_bar_pattern(bars: Sequence[Bar], index: int) -> Optional[CandlePattern]:
    bar = bars[index]
    if bar.range <= 0:
        return None

    doji = classify_doji(bar)
    if doji is not None:
        return doji

    if bar.body >= MARUBOZU_BODY * bar.range:
        return CandlePattern.MARUBOZU_BULLISH if bar.is_bullish else CandlePattern.MARUBOZU_BEARISH

    trend = prior_trend(bars, index)
    small_upper = bar.upper_shadow <= max(SMALL_SHADOW * bar.range, 0.5 * bar.body)
    small_lower = bar.lower_shadow <= max(SMALL_SHADOW * bar.range, 0.5 * bar.body)

    if bar.lower_shadow >= 2 * bar.body and small_upper:
        if trend < 0:
            return CandlePattern.HAMMER
        if trend > 0:
            return CandlePattern.HANGING_MAN
    if bar.upper_shadow >= 2 * bar.body and small_lower:
        if trend < 0:
            return CandlePattern.INVERTED_HAMMER
        if trend > 0:
            return CandlePattern.SHOOTING_STAR

    if (
        bar.body <= SPINNING_TOP_BODY * bar.range
        and bar.upper_shadow >= bar.body
        and bar.lower_shadow >= bar.body
    ):
        return CandlePattern.SPINNING_TOP
    return None


def two_bar_pattern(bars: Sequence[Bar], index: int) -> Optional[CandlePattern]:
    if index < 1:
        return None
    prev, cur = bars[index - 1], bars[index]

    if prev.is_bearish and cur.is_bullish:
        if cur.open <= prev.close and cur.close >= prev.open and cur.body > prev.body:
            return CandlePattern.BULLISH_ENGULFING
        if cur.open > prev.close and cur.close < prev.open and cur.body < 0.6 * prev.body:
            return CandlePattern.BULLISH_HARAMI
        if cur.open < prev.low and prev.midpoint < cur.close < prev.open:
            return CandlePattern.PIERCING_LINE

    if prev.is_bullish and cur.is_bearish:
        if cur.open >= prev.close and cur.close <= prev.open and cur.body > prev.body:
            return CandlePattern.BEARISH_ENGULFING
        if cur.open < prev.close and cur.close > prev.open and cur.body < 0.6 * prev.body:
            return CandlePattern.BEARISH_HARAMI
        if cur.open > prev.high and prev.open < cur.close < prev.midpoint:
            return CandlePattern.DARK_CLOUD_COVER

    return None


def three_bar_pattern(bars: Sequence[Bar], index: int) -> Optional[CandlePattern]:
    if index < 2:
        return None
    first, middle, last = bars[index - 2], bars[index - 1], bars[index]

    def strong(bar: Bar) -> bool:
        return bar.range > 0 and bar.body >= 0.5 * bar.range

    if strong(first) and middle.body <= 0.3 * first.body:
        if first.is_bearish and last.is_bullish and last.close > first.midpoint:
            return CandlePattern.MORNING_STAR
        if first.is_bullish and last.is_bearish and last.close < first.midpoint:
            return CandlePattern.EVENING_STAR

    trio = (first, middle, last)
    if all(b.is_bullish and strong(b) for b in trio):
        if (
            first.close < middle.close < last.close
            and first.open <= middle.open <= first.close
            and middle.open <= last.open <= middle.close
        ):
            return CandlePattern.THREE_WHITE_SOLDIERS
    if all(b.is_bearish and strong(b) for b in trio):
        if (
            first.close > middle.close > last.close
            and first.close <= middle.open <= first.open
            and middle.close <= last.open <= middle.open
        ):
            return CandlePattern.THREE_BLACK_CROWS

    return None


def detect_patterns(bars: Sequence[Bar], index: int) -> List[PatternMatch]:
    """
    Every formation ending at ``index`` in a chronological bar sequence.
    """
    matches = []
    for detector in (three_bar_pattern, two_bar_pattern, single_bar_pattern):
        pattern = detector(bars, index)
        if pattern is not None:
            matches.append(PatternMatch(pattern=pattern, end_index=index))
    return matches


def describe_doji(pattern: CandlePattern) -> str:
    return {
        CandlePattern.DOJI_STANDARD: "Standard doji: indecision",
        CandlePattern.DOJI_DRAGONFLY: "Dragonfly doji: rejection of lower prices",
        CandlePattern.DOJI_GRAVESTONE: "Gravestone doji: rejection of higher prices",
        CandlePattern.DOJI_LONG_LEGGED: "Long-legged doji: strong indecision",
    }.get(pattern, pattern.value)
