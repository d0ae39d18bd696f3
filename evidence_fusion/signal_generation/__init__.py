"""
Evidence fusion signal generation.

Core types shared by every layer of the engine, plus the mapping functions
that translate each evidence producer into the canonical ComponentSignal.
The scorers live in ``components`` and the per-instrument engine in
``engine``; they are imported from there so that the data and analysis
layers can depend on the core types alone.
"""

from .core import (
    Bias,
    ComponentName,
    ComponentSignal,
    ConsensusResult,
    FusionDecision,
    IndicatorKind,
    Timeframe,
    Zone,
    ZoneType,
)

from .mapping import consensus_to_signal, zone_to_signal

__all__ = [
    # Core types
    "Bias",
    "ComponentName",
    "ComponentSignal",
    "ConsensusResult",
    "FusionDecision",
    "IndicatorKind",
    "Timeframe",
    "Zone",
    "ZoneType",
    # Mapping functions
    "consensus_to_signal",
    "zone_to_signal",
]
