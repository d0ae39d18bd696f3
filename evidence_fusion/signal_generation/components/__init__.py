"""
Components for the evidence fusion engine.

Each scorer turns indicator readings and price history into one
ComponentSignal; the aggregator fuses those signals into a decision.
"""

from .base_scorer import BaseComponentScorer
from .momentum_scorer import MomentumScorer
from .trend_oscillator_scorer import TrendOscillatorScorer
from .volume_scorer import VolumeScorer
from .candlestick_scorer import CandlestickScorer
from .fusion_aggregator import FusionAggregator, normalize_weights

__all__ = [
    "BaseComponentScorer",
    "MomentumScorer",
    "TrendOscillatorScorer",
    "VolumeScorer",
    "CandlestickScorer",
    "FusionAggregator",
    "normalize_weights",
]
