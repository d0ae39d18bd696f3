"""
Base class for component scorers.

A scorer turns indicator readings and price history into one
``ComponentSignal``. Results are cached briefly per (instrument, lag), and a
scorer that cannot obtain its inputs answers with a neutral degraded signal
instead of failing the evaluation.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from evidence_fusion.data.cache import CacheConfig, CacheDataType, SimpleCacheManager
from evidence_fusion.data.indicator_cache import IndicatorCache
from evidence_fusion.data.providers.base_provider import MarketDataProvider
from evidence_fusion.exceptions import DataUnavailableError
from ..core import Bar, ComponentName, ComponentSignal, ConsensusResult, IndicatorKind, Timeframe

logger = logging.getLogger(__name__)


class BaseComponentScorer(ABC):
    """
    Abstract base class for all component scorers.
    """

    component: ComponentName

    def __init__(
        self,
        instrument: str,
        indicator_cache: IndicatorCache,
        market_data: MarketDataProvider,
        config: Optional[Dict] = None,
        cache_config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initializes the scorer.

        Args:
            instrument: Symbol this scorer serves.
            indicator_cache: Validated indicator readings.
            market_data: Raw bar history.
            config: Component configuration dictionary.
            cache_config: TTL settings for the result cache.
            clock: Returns the current time in seconds.
        """
        self.config = config or {}
        self.instrument = instrument
        self.indicator_cache = indicator_cache
        self.market_data = market_data
        self.cache_config = cache_config or CacheConfig()
        self.timeframe = Timeframe.parse(self.config.get("timeframe", "H1"))
        self._cache = SimpleCacheManager(f"{type(self).__name__}.signals", clock=clock)
        self.evaluations = 0
        self.degraded_evaluations = 0

    def score(self, lag: int = 0, consensus: Optional[ConsensusResult] = None) -> ComponentSignal:
        """
        Produce this component's signal for the bar at ``lag``.

        Args:
            lag: Closed-bar lag to evaluate.
            consensus: Multi-timeframe vote, for scorers that cross-check it.

        Returns:
            ComponentSignal: cached for a short TTL per (instrument, lag).
        """
        key = (self.instrument, lag)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        self.evaluations += 1
        try:
            signal = self._evaluate(lag, consensus)
        except DataUnavailableError as e:
            self.degraded_evaluations += 1
            logger.warning(f"{self.component.value} scorer degraded for {self.instrument}: {e.message}")
            signal = ComponentSignal.neutral(self.component, e.message)

        self._cache.set(key, signal, self.cache_config.get_ttl_seconds(CacheDataType.COMPONENT_SIGNAL))
        return signal

    @abstractmethod
    def _evaluate(self, lag: int, consensus: Optional[ConsensusResult]) -> ComponentSignal:
        """
        Compute the signal. Raise ``DataUnavailableError`` when inputs are missing.
        """
        pass

    def _require(self, kind: IndicatorKind, lag: int, timeframe: Optional[Timeframe] = None) -> float:
        reading = self.indicator_cache.get(self.instrument, timeframe or self.timeframe, kind, lag)
        if not reading.is_available:
            raise DataUnavailableError(f"{kind.value} unavailable at lag {lag}", component=self.component.value)
        return reading.value

    def _optional(self, kind: IndicatorKind, lag: int, timeframe: Optional[Timeframe] = None) -> Optional[float]:
        return self.indicator_cache.value(self.instrument, timeframe or self.timeframe, kind, lag)

    def _measured(self, kind: IndicatorKind, lag: int, timeframe: Optional[Timeframe] = None) -> Optional[float]:
        reading = self.indicator_cache.get(self.instrument, timeframe or self.timeframe, kind, lag)
        return reading.value if reading.is_measured else None

    def _require_bars(self, start_lag: int, count: int) -> List[Bar]:
        bars = self.market_data.get_bars(self.instrument, self.timeframe, start_lag, count)
        if len(bars) < count:
            raise DataUnavailableError(
                f"need {count} {self.timeframe.name} bars, have {len(bars)}", component=self.component.value
            )
        return bars

    def clear_cache(self):
        self._cache.clear()

    def get_scorer_statistics(self) -> Dict[str, object]:
        return {
            "component": self.component.value,
            "evaluations": self.evaluations,
            "degraded_evaluations": self.degraded_evaluations,
            "cache": self._cache.get_stats(),
        }
