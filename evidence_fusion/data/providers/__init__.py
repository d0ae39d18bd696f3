"""
Data provider interfaces and the pandas-backed reference implementations.
"""
from .base_provider import IndicatorProvider, MarketDataProvider
from .frame_provider import DataFrameIndicatorProvider, DataFrameMarketData

__all__ = [
    "IndicatorProvider",
    "MarketDataProvider",
    "DataFrameIndicatorProvider",
    "DataFrameMarketData",
]
