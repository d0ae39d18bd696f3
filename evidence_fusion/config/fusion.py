"""
Configuration for the evidence fusion engine.

This module provides configuration classes for all components of the
fusion engine. Each component receives its section as a plain dictionary.
"""

from typing import Any, Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict

from evidence_fusion.data.cache.cache_config import CacheConfig


class IndicatorCacheConfig(BaseSettings):
    """Configuration for indicator fallback policy."""
    model_config = SettingsConfigDict(env_prefix='FUSION_INDICATORS_')

    fallback_timeframes: List[str] = ["H1", "H4", "D1", "M15"]
    # Instrument -> asset class ("forex", "metal", "crypto", "index")
    asset_classes: Dict[str, str] = {}


class ZoneTrackerConfig(BaseSettings):
    """Configuration for support/resistance zone tracking."""
    model_config = SettingsConfigDict(env_prefix='FUSION_ZONES_')

    source_timeframes: List[str] = ["H4", "D1"]
    timeframe_weights: Dict[str, float] = {"H1": 0.5, "H4": 0.6, "D1": 0.8}
    atr_timeframe: str = "H1"
    lookback_bars: int = 100
    swing_window: int = 5
    min_strength: float = 0.3
    min_touches: int = 1
    max_active_zones: int = 50

    merge_atr_multiple: float = 0.5
    merge_price_fraction: float = 0.002
    buffer_atr_multiple: float = 0.25
    touch_tolerance_atr_multiple: float = 0.1
    touch_strength_increment: float = 0.05
    max_failed_tests: int = 3

    relevance_age_days: float = 30.0
    relevance_distance_atr: float = 5.0
    relevance_weights: Dict[str, float] = {"age": 0.3, "distance": 0.4, "failed_tests": 0.3}
    archive_distance_atr: float = 10.0
    max_age_days: Dict[str, float] = {"H1": 7.0, "H4": 14.0, "D1": 30.0}
    default_max_age_days: float = 3.0

    rebuild_interval_seconds: float = 3600.0


class TimeframeConsensusConfig(BaseSettings):
    """Configuration for the multi-timeframe trend vote."""
    model_config = SettingsConfigDict(env_prefix='FUSION_MTF_')

    timeframe_weights: Dict[str, float] = {
        "M1": 0.5,
        "M5": 0.8,
        "M15": 1.0,
        "M30": 0.9,
        "H1": 1.3,
        "H4": 1.5,
        "D1": 1.2,
    }
    filter_timeframe: str = "D1"
    flat_separation_pct: float = 0.05
    strong_separation_pct: float = 0.5
    stack_amplifier: float = 1.5
    filter_disagreement_factor: float = 0.5
    mixed_alignment_penalty: float = 0.3
    unconflicted_boost: float = 0.10
    conflicted_penalty: float = 0.20
    filter_agree_boost: float = 0.10
    filter_agree_mixed_boost: float = 0.05
    filter_disagree_penalty: float = 0.05
    filter_disagree_mixed_penalty: float = 0.10
    conflict_threshold: float = 30.0


class MomentumScorerConfig(BaseSettings):
    """Configuration for the RSI momentum scorer."""
    model_config = SettingsConfigDict(env_prefix='FUSION_RSI_')

    timeframe: str = "H1"
    slope_window: int = 5
    persistence_window: int = 10
    neutral_band: float = 3.0
    slope_weight: float = 2.0
    overbought: float = 70.0
    oversold: float = 30.0
    extremity_boost: float = 15.0
    persistence_boost: float = 20.0
    failure_swing_lookback: int = 10
    failure_swing_boost: float = 10.0


class TrendOscillatorScorerConfig(BaseSettings):
    """Configuration for the MACD trend oscillator scorer."""
    model_config = SettingsConfigDict(env_prefix='FUSION_MACD_')

    timeframe: str = "H1"
    divergence_window: int = 10
    slope_bars: int = 3
    line_delta_atr_scale: float = 0.2
    zero_distance_atr_scale: float = 0.5
    slope_atr_scale: float = 0.05
    signal_cross_bonus: float = 15.0
    zero_cross_bonus: float = 20.0
    strong_trend_adx: float = 25.0


class VolumeScorerConfig(BaseSettings):
    """Configuration for the volume scorer."""
    model_config = SettingsConfigDict(env_prefix='FUSION_VOLUME_')

    timeframe: str = "H1"
    lookback: int = 20
    divergence_period: int = 5
    spike_threshold: float = 2.0
    climax_multiple: float = 1.5
    divergence_penalty: float = 0.2
    climax_penalty: float = 0.15
    spike_boost: float = 1.2
    divergence_bias_penalty: float = 0.7
    bias_margin: float = 1.1


class CandlestickScorerConfig(BaseSettings):
    """Configuration for the candlestick pattern scorer."""
    model_config = SettingsConfigDict(env_prefix='FUSION_PATTERN_')

    timeframe: str = "H1"
    window: int = 3
    confirmation_boost: float = 0.15
    min_confirmations: int = 2
    actionable_confidence: float = 75.0
    stop_atr_multiple: float = 1.5
    target_atr_multiple: float = 3.0


class FusionAggregatorConfig(BaseSettings):
    """Configuration for the weighted fusion of component signals."""
    model_config = SettingsConfigDict(env_prefix='FUSION_AGGREGATOR_')

    weights: Dict[str, float] = {
        "mtf": 25.0,
        "zone": 15.0,
        "rsi": 15.0,
        "macd": 20.0,
        "volume": 10.0,
        "pattern": 15.0,
    }
    min_confidence: float = 60.0
    active_bonus_base: float = 0.05
    active_bonus_decay: float = 0.5
    mixed_signal_penalty: float = 0.85
    strong_dominance_share: float = 75.0
    strong_dominance_boost: float = 0.20
    clear_dominance_boost: float = 0.10
    conflict_penalty: float = 0.7
    mtf_disagreement_penalty: float = 0.9
    conflict_threshold: float = 30.0
    max_history_size: int = 500


class FusionConfig(BaseSettings):
    """Main configuration for the fusion engine."""
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Component configurations
    cache: CacheConfig = CacheConfig()
    indicators: IndicatorCacheConfig = IndicatorCacheConfig()
    zones: ZoneTrackerConfig = ZoneTrackerConfig()
    consensus: TimeframeConsensusConfig = TimeframeConsensusConfig()
    momentum: MomentumScorerConfig = MomentumScorerConfig()
    trend_oscillator: TrendOscillatorScorerConfig = TrendOscillatorScorerConfig()
    volume: VolumeScorerConfig = VolumeScorerConfig()
    candlestick: CandlestickScorerConfig = CandlestickScorerConfig()
    aggregator: FusionAggregatorConfig = FusionAggregatorConfig()

    # Timeframe used for the close price in decisions and zone maintenance
    primary_timeframe: str = "H1"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "cache": self.cache.model_dump(),
            "indicators": self.indicators.model_dump(),
            "zones": self.zones.model_dump(),
            "consensus": self.consensus.model_dump(),
            "momentum": self.momentum.model_dump(),
            "trend_oscillator": self.trend_oscillator.model_dump(),
            "volume": self.volume.model_dump(),
            "candlestick": self.candlestick.model_dump(),
            "aggregator": self.aggregator.model_dump(),
            "primary_timeframe": self.primary_timeframe,
        }
