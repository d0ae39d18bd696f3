"""
Market structure analysis: support/resistance zones and multi-timeframe consensus.
"""
from .timeframe_consensus import TimeframeConsensus
from .zones import ZoneTracker, find_swing_points

__all__ = ["TimeframeConsensus", "ZoneTracker", "find_swing_points"]
