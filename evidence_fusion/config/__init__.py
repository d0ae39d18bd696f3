"""
Configuration for the evidence fusion engine.
"""
from .fusion import (
    CandlestickScorerConfig,
    FusionAggregatorConfig,
    FusionConfig,
    IndicatorCacheConfig,
    MomentumScorerConfig,
    TimeframeConsensusConfig,
    TrendOscillatorScorerConfig,
    VolumeScorerConfig,
    ZoneTrackerConfig,
)
from .settings import Settings, settings

__all__ = [
    "CandlestickScorerConfig",
    "FusionAggregatorConfig",
    "FusionConfig",
    "IndicatorCacheConfig",
    "MomentumScorerConfig",
    "TimeframeConsensusConfig",
    "TrendOscillatorScorerConfig",
    "VolumeScorerConfig",
    "ZoneTrackerConfig",
    "Settings",
    "settings",
]
