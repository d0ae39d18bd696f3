"""
TTL caching used by the indicator layer, the scorers and the engine.
"""
from .cache_config import CacheConfig, CacheDataType
from .cache_manager import SimpleCacheManager

__all__ = ["CacheConfig", "CacheDataType", "SimpleCacheManager"]
