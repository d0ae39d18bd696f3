"""
Validated, cached access to indicator readings.

The ``IndicatorCache`` sits between the components and the indicator
provider. It never raises when a reading is unavailable: it walks a fallback
chain and labels whatever it returns with the step that produced it.
"""
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from evidence_fusion.signal_generation.core import (
    AssetClass,
    IndicatorKind,
    IndicatorReading,
    ReadingSource,
    Timeframe,
)
from .cache import CacheConfig, CacheDataType, SimpleCacheManager
from .indicators_metadata import (
    default_value,
    detect_asset_class,
    is_numerically_sane,
    plausible_range,
)
from .providers.base_provider import IndicatorProvider, MarketDataProvider

logger = logging.getLogger(__name__)

ReadingKey = Tuple[str, Timeframe, IndicatorKind, int]

DEFAULT_FALLBACK_TIMEFRAMES: List[Timeframe] = [
    Timeframe.H1,
    Timeframe.H4,
    Timeframe.D1,
    Timeframe.M15,
]


class IndicatorCache:
    """
    Fetches, validates and caches indicator readings.

    Resolution order for ``get``:
        1. a fresh cached reading for the same key;
        2. the provider value, if it passes numeric sanity and the plausible
           range for the instrument's asset class and timeframe;
        3. the last good value for the key, flagged degraded;
        4. for volatility kinds, the same kind on a fallback timeframe;
        5. the asset-class default;
        6. an unavailable reading with ``value=None``.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        indicator_provider: IndicatorProvider,
        config: Optional[Dict] = None,
        cache_config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the indicator cache.

        Args:
            market_data: Source of reference prices for range checks.
            indicator_provider: Source of raw indicator values.
            config: Configuration dictionary (fallback timeframes, asset class overrides).
            cache_config: TTL settings.
            clock: Returns the current time in seconds.
        """
        config = config or {}
        self.market_data = market_data
        self.indicator_provider = indicator_provider
        self.cache_config = cache_config or CacheConfig()
        self._clock = clock

        self.fallback_timeframes: List[Timeframe] = [
            Timeframe.parse(tf) for tf in config.get("fallback_timeframes", DEFAULT_FALLBACK_TIMEFRAMES)
        ]
        self.asset_class_overrides: Dict[str, AssetClass] = {
            symbol: AssetClass(value) if not isinstance(value, AssetClass) else value
            for symbol, value in config.get("asset_classes", {}).items()
        }

        self._fresh = SimpleCacheManager("IndicatorCache.fresh", clock=clock)
        self._last_good = SimpleCacheManager("IndicatorCache.last_good", clock=clock)

        self._stats: Dict[str, int] = {
            "requests": 0,
            "cache_hits": 0,
            "provider_calls": 0,
            "provider_errors": 0,
            "rejected": 0,
            ReadingSource.PRIMARY.value: 0,
            ReadingSource.CACHED.value: 0,
            ReadingSource.FALLBACK_TIMEFRAME.value: 0,
            ReadingSource.DEFAULT.value: 0,
            ReadingSource.UNAVAILABLE.value: 0,
        }

    def asset_class(self, instrument: str) -> AssetClass:
        if instrument in self.asset_class_overrides:
            return self.asset_class_overrides[instrument]
        return detect_asset_class(instrument)

    def get(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int = 0
    ) -> IndicatorReading:
        """
        Resolve one reading through the fallback chain.

        Args:
            instrument: Symbol.
            timeframe: Requested timeframe.
            kind: Requested indicator line.
            lag: Closed-bar lag.

        Returns:
            IndicatorReading: never raises; check ``degraded`` and ``is_available``.
        """
        self._stats["requests"] += 1
        key: ReadingKey = (instrument, timeframe, kind, lag)

        cached = self._fresh.get(key)
        if cached is not None:
            self._stats["cache_hits"] += 1
            return cached

        asset_class = self.asset_class(instrument)
        price = self.reference_price(instrument, timeframe, lag)

        value = self._fetch(instrument, timeframe, kind, lag)
        if self._accept(value, kind, timeframe, asset_class, price):
            reading = self._make(key, value, ReadingSource.PRIMARY)
            self._last_good.set(
                key, reading, self.cache_config.get_ttl_seconds(CacheDataType.INDICATOR_LAST_GOOD)
            )
        else:
            if value is not None:
                self._stats["rejected"] += 1
                logger.debug(
                    f"Rejected implausible {kind.value} for {instrument} {timeframe.name} "
                    f"lag {lag}: {value}"
                )
            reading = self._fallback(key, asset_class, price)

        self._stats[reading.source.value] += 1
        self._fresh.set(key, reading, self.cache_config.get_ttl_seconds(CacheDataType.INDICATOR_FRESH))
        return reading

    def value(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int = 0
    ) -> Optional[float]:
        """Shortcut returning only the resolved value."""
        return self.get(instrument, timeframe, kind, lag).value

    def series(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, start_lag: int, count: int
    ) -> List[IndicatorReading]:
        """Readings for ``count`` consecutive lags, newest first."""
        return [self.get(instrument, timeframe, kind, start_lag + i) for i in range(count)]

    def reference_price(self, instrument: str, timeframe: Timeframe, lag: int = 0) -> Optional[float]:
        """Close of the bar at ``lag``, or the tick price when no bar exists."""
        key = ("price", instrument, timeframe, lag)
        cached = self._fresh.get(key)
        if cached is not None:
            return cached

        price: Optional[float] = None
        try:
            bar = self.market_data.get_bar(instrument, timeframe, lag)
            if bar is not None and is_numerically_sane(bar.close) and bar.close > 0:
                price = bar.close
            elif lag == 0:
                tick = self.market_data.get_tick_price(instrument)
                if is_numerically_sane(tick) and tick > 0:
                    price = tick
        except Exception as e:
            logger.debug(f"Reference price unavailable for {instrument} {timeframe.name}: {e}")

        if price is not None:
            self._fresh.set(key, price, self.cache_config.get_ttl_seconds(CacheDataType.INDICATOR_FRESH))
        return price

    def _fetch(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int
    ) -> Optional[float]:
        self._stats["provider_calls"] += 1
        try:
            value = self.indicator_provider.get_value(instrument, timeframe, kind, lag)
        except Exception as e:
            self._stats["provider_errors"] += 1
            logger.debug(f"Provider failed for {kind.value} {instrument} {timeframe.name} lag {lag}: {e}")
            return None

        if not is_numerically_sane(value):
            return None
        return float(value)

    def _accept(
        self,
        value: Optional[float],
        kind: IndicatorKind,
        timeframe: Timeframe,
        asset_class: AssetClass,
        price: Optional[float],
    ) -> bool:
        if value is None:
            return False
        bounds = plausible_range(kind, timeframe, asset_class, price)
        if bounds is None:
            return True
        return bounds[0] <= value <= bounds[1]

    def _fallback(
        self, key: ReadingKey, asset_class: AssetClass, price: Optional[float]
    ) -> IndicatorReading:
        instrument, timeframe, kind, lag = key

        last_good = self._last_good.get(key)
        if last_good is not None:
            logger.debug(f"Serving last good {kind.value} for {instrument} {timeframe.name}")
            return self._make(key, last_good.value, ReadingSource.CACHED)

        if kind.is_volatility:
            for substitute in self.fallback_timeframes:
                if substitute is timeframe:
                    continue
                value = self._fetch(instrument, substitute, kind, lag)
                if self._accept(value, kind, substitute, asset_class, price):
                    logger.info(
                        f"Substituted {kind.value} for {instrument} from {substitute.name} "
                        f"(requested {timeframe.name})"
                    )
                    return self._make(key, value, ReadingSource.FALLBACK_TIMEFRAME)

        value = default_value(kind, timeframe, asset_class, price)
        if value is not None:
            logger.warning(
                f"Using {asset_class.value} default for {kind.value} on {instrument} {timeframe.name}: {value}"
            )
            return self._make(key, value, ReadingSource.DEFAULT)

        logger.warning(f"No usable {kind.value} for {instrument} {timeframe.name} lag {lag}")
        return self._make(key, None, ReadingSource.UNAVAILABLE)

    def _make(self, key: ReadingKey, value: Optional[float], source: ReadingSource) -> IndicatorReading:
        instrument, timeframe, kind, lag = key
        return IndicatorReading(
            instrument=instrument,
            timeframe=timeframe,
            kind=kind,
            lag=lag,
            value=value,
            valid=source is ReadingSource.PRIMARY,
            timestamp=self._clock(),
            source=source,
            degraded=source is not ReadingSource.PRIMARY,
        )

    def is_overbought(self, instrument: str, timeframe: Timeframe, lag: int = 0, level: float = 70.0) -> bool:
        rsi = self.value(instrument, timeframe, IndicatorKind.RSI, lag)
        return rsi is not None and rsi >= level

    def is_oversold(self, instrument: str, timeframe: Timeframe, lag: int = 0, level: float = 30.0) -> bool:
        rsi = self.value(instrument, timeframe, IndicatorKind.RSI, lag)
        return rsi is not None and rsi <= level

    def is_strong_trend(self, instrument: str, timeframe: Timeframe, lag: int = 0, threshold: float = 25.0) -> bool:
        adx = self.get(instrument, timeframe, IndicatorKind.ADX, lag)
        return adx.is_available and not adx.degraded and adx.value >= threshold

    def macd_crossover(self, instrument: str, timeframe: Timeframe, lag: int = 0) -> int:
        """
        Detect a MACD signal-line crossover on the bar at ``lag``.

        Returns:
            int: 1 for a bullish cross, -1 for a bearish cross, 0 otherwise.
        """
        main_now = self.value(instrument, timeframe, IndicatorKind.MACD_MAIN, lag)
        signal_now = self.value(instrument, timeframe, IndicatorKind.MACD_SIGNAL, lag)
        main_prev = self.value(instrument, timeframe, IndicatorKind.MACD_MAIN, lag + 1)
        signal_prev = self.value(instrument, timeframe, IndicatorKind.MACD_SIGNAL, lag + 1)
        if None in (main_now, signal_now, main_prev, signal_prev):
            return 0
        if main_prev <= signal_prev and main_now > signal_now:
            return 1
        if main_prev >= signal_prev and main_now < signal_now:
            return -1
        return 0

    def band_position(self, instrument: str, timeframe: Timeframe, lag: int = 0) -> Optional[float]:
        """Position of the close inside the Bollinger band (0 = lower, 1 = upper)."""
        upper = self.value(instrument, timeframe, IndicatorKind.BB_UPPER, lag)
        lower = self.value(instrument, timeframe, IndicatorKind.BB_LOWER, lag)
        price = self.reference_price(instrument, timeframe, lag)
        if None in (upper, lower, price) or upper <= lower:
            return None
        return (price - lower) / (upper - lower)

    def cleanup_expired(self) -> int:
        return self._fresh.cleanup_expired() + self._last_good.cleanup_expired()

    def clear(self):
        self._fresh.clear()
        self._last_good.clear()

    def statistics(self) -> Dict[str, object]:
        return {
            **self._stats,
            "fresh_cache": self._fresh.get_stats(),
            "last_good_cache": self._last_good.get_stats(),
        }
