"""
Configuration for the in-memory TTL caches.

Each kind of cached value has its own time-to-live. Readings are kept fresh
only briefly, while the last good reading survives much longer so that a
transient provider failure can still be served.
"""
from enum import Enum
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheDataType(str, Enum):
    """Types of data that can be cached."""
    INDICATOR_FRESH = "indicator_fresh"
    INDICATOR_LAST_GOOD = "indicator_last_good"
    COMPONENT_SIGNAL = "component_signal"
    FUSION_DECISION = "fusion_decision"


class CacheConfig(BaseSettings):
    """TTL settings for every cache the engine owns."""
    model_config = SettingsConfigDict(env_prefix='FUSION_CACHE_')

    enabled: bool = True
    indicator_fresh_seconds: float = Field(
        default=5.0,
        ge=0,
        description="TTL for readings served without asking the provider again"
    )
    indicator_last_good_seconds: float = Field(
        default=300.0,
        ge=0,
        description="How long the last successful reading may stand in for a failed fetch"
    )
    component_signal_seconds: float = Field(
        default=30.0,
        ge=0,
        le=60.0,
        description="TTL for per-component signals keyed by instrument and lag"
    )
    fusion_decision_seconds: float = Field(
        default=30.0,
        ge=0,
        le=60.0,
        description="TTL for fused decisions keyed by instrument and lag"
    )

    def get_ttl_seconds(self, data_type: CacheDataType) -> float:
        """Return the TTL for a data type, or 0 when caching is disabled."""
        if not self.enabled:
            return 0.0
        ttl_map: Dict[CacheDataType, float] = {
            CacheDataType.INDICATOR_FRESH: self.indicator_fresh_seconds,
            CacheDataType.INDICATOR_LAST_GOOD: self.indicator_last_good_seconds,
            CacheDataType.COMPONENT_SIGNAL: self.component_signal_seconds,
            CacheDataType.FUSION_DECISION: self.fusion_decision_seconds,
        }
        return ttl_map[data_type]
