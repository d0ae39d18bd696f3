"""
Fusion Engine for the evidence fusion framework.

A FusionEngine is the caller-owned context for one instrument. It wires the
indicator cache, zone tracker, multi-timeframe consensus, component scorers
and aggregator together and exposes the public operations. A registry maps
instruments to engines for callers that address everything by symbol.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from evidence_fusion.config.fusion import FusionConfig
from evidence_fusion.data.cache import CacheDataType, SimpleCacheManager
from evidence_fusion.data.indicator_cache import IndicatorCache
from evidence_fusion.data.providers.base_provider import IndicatorProvider, MarketDataProvider
from evidence_fusion.analysis import TimeframeConsensus, ZoneTracker
from .core import Bias, ComponentName, ComponentSignal, ConsensusResult, FusionDecision, Timeframe, Zone
from .mapping import consensus_to_signal, zone_to_signal
from .components import (
    BaseComponentScorer,
    CandlestickScorer,
    FusionAggregator,
    MomentumScorer,
    TrendOscillatorScorer,
    VolumeScorer,
    normalize_weights,
)
from .components.fusion_aggregator import WeightMap

logger = logging.getLogger(__name__)


class FusionEngine:
    """
    Per-instrument evaluation context.

    All state (indicator readings, zones, cached signals and decisions) is
    owned by the engine; nothing is shared between instruments.
    """

    def __init__(
        self,
        instrument: str,
        market_data: MarketDataProvider,
        indicator_provider: IndicatorProvider,
        config: Optional[FusionConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the fusion engine.

        Args:
            instrument: Symbol this engine evaluates.
            market_data: Bar and tick source.
            indicator_provider: Raw indicator source.
            config: Engine configuration; defaults are read from the environment.
            clock: Returns the current time in seconds.
        """
        self.instrument = instrument
        self.config = config or FusionConfig()
        self.market_data = market_data
        self._clock = clock
        settings = self.config.to_dict()
        cache_config = self.config.cache

        self.primary_timeframe = Timeframe.parse(self.config.primary_timeframe)

        # Initialize components
        self.indicator_cache = IndicatorCache(
            market_data, indicator_provider, settings["indicators"], cache_config=cache_config, clock=clock
        )
        self.zone_tracker = ZoneTracker(instrument, market_data, self.indicator_cache, settings["zones"], clock=clock)
        self.consensus = TimeframeConsensus(instrument, self.indicator_cache, settings["consensus"])

        scorer_args = dict(
            instrument=instrument,
            indicator_cache=self.indicator_cache,
            market_data=market_data,
            cache_config=cache_config,
            clock=clock,
        )
        self.scorers: Dict[ComponentName, BaseComponentScorer] = {
            ComponentName.RSI: MomentumScorer(config=settings["momentum"], **scorer_args),
            ComponentName.MACD: TrendOscillatorScorer(config=settings["trend_oscillator"], **scorer_args),
            ComponentName.VOLUME: VolumeScorer(config=settings["volume"], **scorer_args),
            ComponentName.PATTERN: CandlestickScorer(config=settings["candlestick"], **scorer_args),
        }
        self.aggregator = FusionAggregator(settings["aggregator"])

        self.cache_config = cache_config
        self._decisions = SimpleCacheManager("FusionEngine.decisions", clock=clock)
        self._last_bar_time: Optional[datetime] = None

        # Performance tracking
        self.performance_metrics = {
            "total_evaluations": 0,
            "failed_evaluations": 0,
            "valid_decisions": 0,
            "avg_evaluation_time": 0.0,
        }

        # Zones are built up front; on_timer keeps them current
        self.zone_tracker.rebuild()

    # Public operations

    def evaluate(self, as_of_lag: int = 0) -> FusionDecision:
        """
        Fuse every component's evidence for the bar at ``as_of_lag``.

        Args:
            as_of_lag: Closed-bar lag to evaluate (0 is the latest bar).

        Returns:
            FusionDecision: the fused decision; invalid with the error text
            as its reason if the evaluation failed.
        """
        key = (self.instrument, as_of_lag)
        cached = self._decisions.get(key)
        if cached is not None:
            return cached

        start_time = time.time()
        try:
            # 1. Multi-timeframe vote first; scorers cross-check against it
            consensus = self.consensus.evaluate(as_of_lag)

            # 2. Collect one signal per component
            signals = [consensus_to_signal(consensus), self._zone_signal(as_of_lag)]
            for scorer in self.scorers.values():
                signals.append(scorer.score(as_of_lag, consensus))

            # 3. Fuse
            decision = self.aggregator.aggregate(
                signals,
                consensus=consensus,
                instrument=self.instrument,
                lag=as_of_lag,
                timestamp=self._now(),
            )
            logger.info(decision.summary())

        except Exception as e:
            logger.error(f"Evaluation failed for {self.instrument} at lag {as_of_lag}: {e}")
            self.performance_metrics["failed_evaluations"] += 1
            decision = FusionDecision(
                instrument=self.instrument,
                overall_confidence=0.0,
                weighted_score=0.0,
                dominant_direction=Bias.NEUTRAL,
                is_valid=False,
                validation_message=f"Error evaluating signal: {str(e)}",
                weights=self.aggregator.weights,
                lag=as_of_lag,
                min_confidence=self.aggregator.min_confidence,
                timestamp=self._now(),
            )
            self._update_performance_metrics(time.time() - start_time, decision)
            return decision

        self._decisions.set(key, decision, self.cache_config.get_ttl_seconds(CacheDataType.FUSION_DECISION))
        self._update_performance_metrics(time.time() - start_time, decision)
        return decision

    def get_component_signal(self, component_name: Union[str, ComponentName], as_of_lag: int = 0) -> ComponentSignal:
        """
        Evaluate a single component.

        Raises:
            ValueError: If the component name is unknown.
        """
        name = ComponentName.parse(component_name)
        if name is ComponentName.MTF:
            return consensus_to_signal(self.consensus.evaluate(as_of_lag))
        if name is ComponentName.ZONE:
            return self._zone_signal(as_of_lag)

        consensus: Optional[ConsensusResult] = None
        if name is ComponentName.MACD:
            consensus = self.consensus.evaluate(as_of_lag)
        return self.scorers[name].score(as_of_lag, consensus)

    def query_zones(self, max_count: int, reference_price: Optional[float] = None) -> List[Zone]:
        """Up to ``max_count`` active zones, nearest to ``reference_price`` first."""
        return self.zone_tracker.query(max_count, reference_price)

    def configure_weights(self, weight_map: WeightMap) -> Dict[ComponentName, float]:
        """
        Replace the component weights; they are always normalized to sum to 100.

        Cached decisions are dropped since they used the old weights.
        """
        weights = self.aggregator.configure_weights(weight_map)
        self._decisions.clear()
        return weights

    # Event hooks

    def on_tick(self, price: float) -> int:
        """
        Feed a live price: registers zone touches and, when a new bar has
        closed since the last tick, counts failed zone tests for it.

        Returns:
            int: number of new zone touches.
        """
        touches = self.zone_tracker.on_tick(price)

        bar = self.market_data.get_bar(self.instrument, self.primary_timeframe, 0)
        if bar is not None and bar.time != self._last_bar_time:
            if self._last_bar_time is not None:
                archived = self.zone_tracker.on_bar_close(bar)
                if archived:
                    self._decisions.clear()
            self._last_bar_time = bar.time
        return touches

    def on_timer(self):
        """Periodic maintenance: zone rebuild, relevance and expiry, cache aging."""
        price = self.indicator_cache.reference_price(self.instrument, self.primary_timeframe, 0)
        self.zone_tracker.on_timer(price)
        removed = self.indicator_cache.cleanup_expired() + self._decisions.cleanup_expired()
        if removed:
            logger.debug(f"Expired {removed} cache entries for {self.instrument}")

    # Helpers

    def _zone_signal(self, lag: int) -> ComponentSignal:
        price = self.indicator_cache.reference_price(self.instrument, self.primary_timeframe, lag)
        if price is None:
            return ComponentSignal.neutral(ComponentName.ZONE, "No reference price")
        return zone_to_signal(
            self.zone_tracker.score(price),
            self.zone_tracker.bias(price),
            self.zone_tracker.nearest_zone(price),
        )

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _update_performance_metrics(self, evaluation_time: float, decision: FusionDecision):
        """Update performance metrics."""
        self.performance_metrics["total_evaluations"] += 1
        if decision.is_valid:
            self.performance_metrics["valid_decisions"] += 1

        total = self.performance_metrics["total_evaluations"]
        current_avg = self.performance_metrics["avg_evaluation_time"]
        self.performance_metrics["avg_evaluation_time"] = (current_avg * (total - 1) + evaluation_time) / total

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Get current performance metrics."""
        metrics = self.performance_metrics.copy()

        if metrics["total_evaluations"] > 0:
            metrics["validity_rate"] = metrics["valid_decisions"] / metrics["total_evaluations"]
        else:
            metrics["validity_rate"] = 0.0

        # Add component statistics
        metrics.update({
            "indicator_stats": self.indicator_cache.statistics(),
            "zone_stats": self.zone_tracker.get_zone_statistics(),
            "consensus_stats": self.consensus.get_consensus_statistics(),
            "scorer_stats": {name.value: s.get_scorer_statistics() for name, s in self.scorers.items()},
            "aggregation_stats": self.aggregator.get_aggregation_statistics(),
            "decision_cache": self._decisions.get_stats(),
        })

        return metrics

    def reset_metrics(self):
        """Reset performance metrics."""
        self.performance_metrics = {
            "total_evaluations": 0,
            "failed_evaluations": 0,
            "valid_decisions": 0,
            "avg_evaluation_time": 0.0,
        }


class FusionEngineRegistry:
    """
    Instrument-addressed access to a set of engines owned by the caller.
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        indicator_provider: IndicatorProvider,
        config: Optional[FusionConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.market_data = market_data
        self.indicator_provider = indicator_provider
        self.config = config or FusionConfig()
        self._clock = clock
        self._engines: Dict[str, FusionEngine] = {}
        self._weights: Optional[WeightMap] = None

    def engine(self, instrument: str) -> FusionEngine:
        """The engine for ``instrument``, created on first use."""
        engine = self._engines.get(instrument)
        if engine is None:
            engine = FusionEngine(
                instrument, self.market_data, self.indicator_provider, config=self.config, clock=self._clock
            )
            if self._weights is not None:
                engine.configure_weights(self._weights)
            self._engines[instrument] = engine
            logger.info(f"Created fusion engine for {instrument}")
        return engine

    @property
    def instruments(self) -> List[str]:
        return list(self._engines)

    def evaluate(self, instrument: str, as_of_lag: int = 0) -> FusionDecision:
        return self.engine(instrument).evaluate(as_of_lag)

    def get_component_signal(
        self, instrument: str, component_name: Union[str, ComponentName], as_of_lag: int = 0
    ) -> ComponentSignal:
        return self.engine(instrument).get_component_signal(component_name, as_of_lag)

    def query_zones(self, instrument: str, max_count: int, reference_price: Optional[float] = None) -> List[Zone]:
        return self.engine(instrument).query_zones(max_count, reference_price)

    def configure_weights(self, weight_map: WeightMap) -> Dict[ComponentName, float]:
        """Apply the weights to every current and future engine."""
        self._weights = dict(weight_map)
        for engine in self._engines.values():
            engine.configure_weights(weight_map)
        return normalize_weights(weight_map)

    def on_timer(self):
        for engine in self._engines.values():
            engine.on_timer()
