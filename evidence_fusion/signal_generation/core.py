"""
Core data structures for the evidence fusion engine.

This module defines the closed enumerations, the canonical signal DTO and the
immutable result types shared by every component, together with the clamp
helpers that keep scores, confidences and shares inside their intervals.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# Sentinel some indicator providers return instead of raising.
EMPTY_VALUE = 1.7976931348623157e308


class Bias(Enum):
    """Directional lean of a component or decision."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    @property
    def sign(self) -> int:
        if self is Bias.BULLISH:
            return 1
        if self is Bias.BEARISH:
            return -1
        return 0

    def opposite(self) -> "Bias":
        if self is Bias.BULLISH:
            return Bias.BEARISH
        if self is Bias.BEARISH:
            return Bias.BULLISH
        return Bias.NEUTRAL


class TrendDirection(Enum):
    """Per-timeframe trend classification."""
    UP = "up"
    DOWN = "down"
    SIDEWAYS = "sideways"
    UNCLEAR = "unclear"

    def to_bias(self) -> Bias:
        if self is TrendDirection.UP:
            return Bias.BULLISH
        if self is TrendDirection.DOWN:
            return Bias.BEARISH
        return Bias.NEUTRAL


class ZoneType(Enum):
    """Support or resistance."""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class ZoneBias(Enum):
    """Position of price relative to the nearest zone."""
    IN_ZONE_BUY = "in_zone_buy"
    IN_ZONE_SELL = "in_zone_sell"
    BUY_BIAS = "buy_bias"
    SELL_BIAS = "sell_bias"
    NONE = "none"


class ArchiveReason(Enum):
    """Why a zone left the active set."""
    FAILED_TESTS = "failed_tests"
    EXPIRED = "expired"
    DISTANCE = "distance"


class Timeframe(Enum):
    """Chart timeframes, valued by their length in minutes."""
    M1 = 1
    M5 = 5
    M15 = 15
    M30 = 30
    H1 = 60
    H4 = 240
    D1 = 1440

    @property
    def minutes(self) -> int:
        return self.value

    @classmethod
    def parse(cls, value: "str | Timeframe") -> "Timeframe":
        """Accept either a member or its name (case-insensitive)."""
        if isinstance(value, Timeframe):
            return value
        return cls[str(value).upper()]


class AssetClass(Enum):
    """Instrument families with distinct plausible indicator ranges."""
    FOREX = "forex"
    METAL = "metal"
    CRYPTO = "crypto"
    INDEX = "index"


class IndicatorKind(Enum):
    """Indicator readings requested from the indicator provider."""
    MA_FAST = "ma_fast"
    MA_MEDIUM = "ma_medium"
    MA_SLOW = "ma_slow"
    MA_LONG = "ma_long"
    RSI = "rsi"
    MACD_MAIN = "macd_main"
    MACD_SIGNAL = "macd_signal"
    ADX = "adx"
    PLUS_DI = "plus_di"
    MINUS_DI = "minus_di"
    STOCH_MAIN = "stoch_main"
    STOCH_SIGNAL = "stoch_signal"
    ATR = "atr"
    BB_UPPER = "bb_upper"
    BB_MIDDLE = "bb_middle"
    BB_LOWER = "bb_lower"
    VOLUME = "volume"

    @property
    def is_volatility(self) -> bool:
        return self in (
            IndicatorKind.ATR,
            IndicatorKind.BB_UPPER,
            IndicatorKind.BB_MIDDLE,
            IndicatorKind.BB_LOWER,
        )

    @property
    def is_price_level(self) -> bool:
        return self in (
            IndicatorKind.MA_FAST,
            IndicatorKind.MA_MEDIUM,
            IndicatorKind.MA_SLOW,
            IndicatorKind.MA_LONG,
            IndicatorKind.BB_UPPER,
            IndicatorKind.BB_MIDDLE,
            IndicatorKind.BB_LOWER,
        )


class ReadingSource(Enum):
    """Which step of the fallback chain produced a reading."""
    PRIMARY = "primary"
    CACHED = "cached"
    FALLBACK_TIMEFRAME = "fallback_timeframe"
    DEFAULT = "default"
    UNAVAILABLE = "unavailable"


class ComponentName(Enum):
    """Components that contribute to a fusion decision."""
    MTF = "mtf"
    ZONE = "zone"
    RSI = "rsi"
    MACD = "macd"
    VOLUME = "volume"
    PATTERN = "pattern"

    @classmethod
    def parse(cls, value: "str | ComponentName") -> "ComponentName":
        if isinstance(value, ComponentName):
            return value
        return cls(str(value).lower())


class CandlePattern(Enum):
    """Recognised candlestick formations."""
    HAMMER = "hammer"
    INVERTED_HAMMER = "inverted_hammer"
    SHOOTING_STAR = "shooting_star"
    HANGING_MAN = "hanging_man"
    SPINNING_TOP = "spinning_top"
    MARUBOZU_BULLISH = "marubozu_bullish"
    MARUBOZU_BEARISH = "marubozu_bearish"
    DOJI_STANDARD = "doji_standard"
    DOJI_DRAGONFLY = "doji_dragonfly"
    DOJI_GRAVESTONE = "doji_gravestone"
    DOJI_LONG_LEGGED = "doji_long_legged"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"
    BULLISH_HARAMI = "bullish_harami"
    BEARISH_HARAMI = "bearish_harami"
    PIERCING_LINE = "piercing_line"
    DARK_CLOUD_COVER = "dark_cloud_cover"
    MORNING_STAR = "morning_star"
    EVENING_STAR = "evening_star"
    THREE_WHITE_SOLDIERS = "three_white_soldiers"
    THREE_BLACK_CROWS = "three_black_crows"


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]; non-finite values collapse to ``low``."""
    if value is None or not math.isfinite(value):
        return low
    if value < low or value > high:
        logger.debug(f"Clamping out-of-range value {value} into [{low}, {high}]")
    return max(low, min(high, value))


def clamp_score(value: float) -> float:
    """Clamp a score or confidence to [0, 100]."""
    return clamp(value, 0.0, 100.0)


def clamp_unit(value: float) -> float:
    """Clamp a strength or relevance to [0, 1]."""
    return clamp(value, 0.0, 1.0)


def normalize_shares(bullish: float, bearish: float, neutral: float) -> Tuple[float, float, float]:
    """
    Scale three non-negative masses into percentages that sum to 100.

    An empty triple is reported as fully neutral.
    """
    masses = [max(0.0, v) if math.isfinite(v) else 0.0 for v in (bullish, bearish, neutral)]
    total = sum(masses)
    if total <= 0:
        return 0.0, 0.0, 100.0
    bull = masses[0] / total * 100.0
    bear = masses[1] / total * 100.0
    return bull, bear, 100.0 - bull - bear


def is_conflicted(bullish_share: float, bearish_share: float, threshold: float = 30.0) -> bool:
    """Both directions hold at least ``threshold`` percent."""
    return bullish_share >= threshold and bearish_share >= threshold


def dominant_bias(bullish_share: float, bearish_share: float, neutral_share: float) -> Bias:
    """Largest bucket wins; a bullish/bearish tie is neutral."""
    if bullish_share > bearish_share and bullish_share >= neutral_share:
        return Bias.BULLISH
    if bearish_share > bullish_share and bearish_share >= neutral_share:
        return Bias.BEARISH
    return Bias.NEUTRAL


@dataclass(frozen=True)
class Bar:
    """One OHLCV bar."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def midpoint(self) -> float:
        return (self.open + self.close) / 2.0


@dataclass(frozen=True)
class IndicatorReading:
    """A resolved indicator value and the provenance of that value."""
    instrument: str
    timeframe: Timeframe
    kind: IndicatorKind
    lag: int
    value: Optional[float]
    valid: bool
    timestamp: float
    source: ReadingSource = ReadingSource.PRIMARY
    degraded: bool = False

    @property
    def is_available(self) -> bool:
        return self.value is not None

    @property
    def is_measured(self) -> bool:
        """Available and not a hard-coded default."""
        return self.value is not None and self.source is not ReadingSource.DEFAULT


@dataclass
class Zone:
    """A support or resistance level tracked through its lifecycle."""
    zone_id: int
    price: float
    zone_type: ZoneType
    strength: float
    source_timeframe: Timeframe
    created_at: datetime
    relevance: float = 1.0
    touch_count: int = 1
    failed_tests: int = 0
    archived: bool = False
    archive_reason: Optional[ArchiveReason] = None
    last_touch_at: Optional[datetime] = None

    def __post_init__(self):
        self.strength = clamp_unit(self.strength)
        self.relevance = clamp_unit(self.relevance)

    def distance_to(self, price: float) -> float:
        return abs(price - self.price)

    def age_days(self, now: datetime) -> float:
        return max(0.0, (now - self.created_at).total_seconds() / 86400.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "price": self.price,
            "zone_type": self.zone_type.value,
            "strength": self.strength,
            "relevance": self.relevance,
            "touch_count": self.touch_count,
            "failed_tests": self.failed_tests,
            "source_timeframe": self.source_timeframe.name,
            "created_at": self.created_at.isoformat(),
            "archived": self.archived,
            "archive_reason": self.archive_reason.value if self.archive_reason else None,
        }


@dataclass(frozen=True)
class ZoneScore:
    """Proximity score of price against its nearest zone."""
    score: float
    zone_type: Optional[ZoneType]
    distance: Optional[float]


@dataclass(frozen=True)
class ComponentSignal:
    """
    Canonical per-component evidence.

    Every scorer, the zone tracker and the timeframe consensus are mapped into
    this one type before aggregation. Scores and confidences are clamped on
    construction.
    """
    component: ComponentName
    bias: Bias
    score: float
    confidence: float
    detail: str = ""
    degraded: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "score", clamp_score(self.score))
        object.__setattr__(self, "confidence", clamp_score(self.confidence))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def is_active(self) -> bool:
        return self.score > 0

    @classmethod
    def neutral(cls, component: ComponentName, detail: str, degraded: bool = True) -> "ComponentSignal":
        """Degraded placeholder used when a component has no usable data."""
        return cls(
            component=component,
            bias=Bias.NEUTRAL,
            score=0.0,
            confidence=0.0,
            detail=detail,
            degraded=degraded,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component.value,
            "bias": self.bias.value,
            "score": self.score,
            "confidence": self.confidence,
            "detail": self.detail,
            "degraded": self.degraded,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class TimeframeVote:
    """Trend classification of one timeframe."""
    timeframe: Timeframe
    direction: TrendDirection
    strength: float
    weight: float
    stacked: bool = False
    degraded: bool = False


@dataclass(frozen=True)
class VoteSummary:
    """Raw counts and weighted sums per direction bucket."""
    bullish_count: int
    bearish_count: int
    neutral_count: int
    bullish_weight: float
    bearish_weight: float
    neutral_weight: float

    @property
    def total_weight(self) -> float:
        return self.bullish_weight + self.bearish_weight + self.neutral_weight

    @property
    def is_mixed(self) -> bool:
        return self.bullish_count > 0 and self.bearish_count > 0


@dataclass(frozen=True)
class ConsensusResult:
    """Multi-timeframe trend vote."""
    bullish_confidence: float
    bearish_confidence: float
    neutral_confidence: float
    dominant_direction: Bias
    conflict: bool
    alignment: float = 0.0
    confidence: float = 0.0
    long_filter: Optional[TrendDirection] = None
    votes: Tuple[TimeframeVote, ...] = ()
    summary: Optional[VoteSummary] = None

    def dominant_timeframe(self) -> Optional[Timeframe]:
        """Timeframe with the strongest directional vote."""
        directional = [v for v in self.votes if v.direction in (TrendDirection.UP, TrendDirection.DOWN)]
        if not directional:
            return None
        return max(directional, key=lambda v: (v.strength * v.weight, v.timeframe.minutes)).timeframe

    def check_alignment(self, min_score: float) -> bool:
        return self.dominant_direction is not Bias.NEUTRAL and self.alignment >= min_score


@dataclass(frozen=True)
class FusionDecision:
    """Immutable result of one evaluation."""
    instrument: str
    overall_confidence: float
    weighted_score: float
    dominant_direction: Bias
    is_valid: bool
    validation_message: str
    weights: Mapping[ComponentName, float]
    bullish_share: float = 0.0
    bearish_share: float = 0.0
    neutral_share: float = 100.0
    conflict: bool = False
    active_components: Tuple[ComponentName, ...] = ()
    signals: Tuple[ComponentSignal, ...] = ()
    lag: int = 0
    min_confidence: float = 60.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "overall_confidence", clamp_score(self.overall_confidence))
        object.__setattr__(self, "weighted_score", clamp_score(self.weighted_score))
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    @property
    def trade_decision(self) -> int:
        """+1 to buy, -1 to sell, 0 to stand aside."""
        if not self.is_valid:
            return 0
        return self.dominant_direction.sign

    @property
    def position_size_multiplier(self) -> float:
        """0.5 at the confidence threshold rising linearly to 1.5 at 100."""
        if not self.is_valid:
            return 0.0
        span = max(100.0 - self.min_confidence, 1e-9)
        progress = clamp_unit((self.overall_confidence - self.min_confidence) / span)
        return round(0.5 + progress, 4)

    def signal_for(self, component: ComponentName) -> Optional[ComponentSignal]:
        for signal in self.signals:
            if signal.component is component:
                return signal
        return None

    def summary(self) -> str:
        """One-line description for logs."""
        state = "VALID" if self.is_valid else "INVALID"
        return (
            f"{self.instrument} {self.dominant_direction.value.upper()} {state} "
            f"conf={self.overall_confidence:.1f} score={self.weighted_score:.1f} "
            f"bull/bear/neutral={self.bullish_share:.0f}/{self.bearish_share:.0f}/{self.neutral_share:.0f}"
            f"{' CONFLICT' if self.conflict else ''} | {self.validation_message}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instrument": self.instrument,
            "lag": self.lag,
            "overall_confidence": self.overall_confidence,
            "weighted_score": self.weighted_score,
            "dominant_direction": self.dominant_direction.value,
            "is_valid": self.is_valid,
            "validation_message": self.validation_message,
            "weights": {k.value: v for k, v in self.weights.items()},
            "bullish_share": self.bullish_share,
            "bearish_share": self.bearish_share,
            "neutral_share": self.neutral_share,
            "conflict": self.conflict,
            "active_components": [c.value for c in self.active_components],
            "trade_decision": self.trade_decision,
            "position_size_multiplier": self.position_size_multiplier,
            "signals": [s.to_dict() for s in self.signals],
            "timestamp": self.timestamp.isoformat(),
        }
