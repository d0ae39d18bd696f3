"""
Evidence Fusion Engine.

Fuses independent pieces of market evidence (multi-timeframe trend,
support/resistance zones, momentum, trend oscillator, volume and candlestick
patterns) into one weighted, confidence-scored trading decision per
instrument.
"""

from .signal_generation.engine import FusionEngine, FusionEngineRegistry
from .signal_generation.core import Bias, ComponentName, ComponentSignal, FusionDecision, Zone
from .config.fusion import FusionConfig
from .exceptions import ConfigurationError, DataUnavailableError, FusionError, ZoneComputationError

__all__ = [
    "FusionEngine",
    "FusionEngineRegistry",
    "FusionConfig",
    "Bias",
    "ComponentName",
    "ComponentSignal",
    "FusionDecision",
    "Zone",
    "FusionError",
    "DataUnavailableError",
    "ConfigurationError",
    "ZoneComputationError",
]

__version__ = "0.1.0"
