"""
Mapping functions at component boundaries.

Every producer of evidence is translated into the canonical
``ComponentSignal`` here, so that the aggregator only ever sees one type.
"""

from typing import Dict, Optional

from .core import (
    Bias,
    ComponentName,
    ComponentSignal,
    ConsensusResult,
    TrendDirection,
    Zone,
    ZoneBias,
    ZoneScore,
    clamp_score,
    clamp_unit,
)

ZONE_BIAS_TO_BIAS: Dict[ZoneBias, Bias] = {
    ZoneBias.IN_ZONE_BUY: Bias.BULLISH,
    ZoneBias.BUY_BIAS: Bias.BULLISH,
    ZoneBias.IN_ZONE_SELL: Bias.BEARISH,
    ZoneBias.SELL_BIAS: Bias.BEARISH,
    ZoneBias.NONE: Bias.NEUTRAL,
}

TREND_TO_BIAS: Dict[TrendDirection, Bias] = {
    TrendDirection.UP: Bias.BULLISH,
    TrendDirection.DOWN: Bias.BEARISH,
    TrendDirection.SIDEWAYS: Bias.NEUTRAL,
    TrendDirection.UNCLEAR: Bias.NEUTRAL,
}


def bias_from_value(value: float, dead_band: float = 0.0) -> Bias:
    """Sign of ``value`` as a bias, neutral inside ``[-dead_band, dead_band]``."""
    if value > dead_band:
        return Bias.BULLISH
    if value < -dead_band:
        return Bias.BEARISH
    return Bias.NEUTRAL


def consensus_to_signal(result: Optional[ConsensusResult]) -> ComponentSignal:
    """
    Map a multi-timeframe vote to a component signal.

    The score is the alignment of the vote and the confidence is the
    consensus confidence. A vote built only from defaulted readings, or one
    with no dominant direction, carries no directional evidence and maps to
    an inactive signal.
    """
    if result is None or result.summary is None or result.summary.total_weight <= 0:
        return ComponentSignal.neutral(ComponentName.MTF, "No timeframe data")
    if result.votes and all(v.degraded for v in result.votes):
        return ComponentSignal.neutral(ComponentName.MTF, f"All {len(result.votes)} timeframe votes degraded")
    if result.dominant_direction is Bias.NEUTRAL:
        return ComponentSignal.neutral(
            ComponentName.MTF,
            f"No dominant trend, {result.summary.neutral_count} of {len(result.votes)} timeframes flat",
            degraded=False,
        )

    summary = result.summary
    detail = (
        f"{result.dominant_direction.value} "
        f"{summary.bullish_count}/{summary.bearish_count}/{summary.neutral_count} up/down/flat, "
        f"alignment {result.alignment:.1f}%"
    )
    if result.conflict:
        detail += ", conflicted"

    dominant_tf = result.dominant_timeframe()
    degraded_votes = sum(1 for v in result.votes if v.degraded)
    return ComponentSignal(
        component=ComponentName.MTF,
        bias=result.dominant_direction,
        score=clamp_score(result.alignment),
        confidence=clamp_score(result.confidence),
        detail=detail,
        degraded=degraded_votes * 2 > len(result.votes),
        metadata={
            "bullish_share": result.bullish_confidence,
            "bearish_share": result.bearish_confidence,
            "neutral_share": result.neutral_confidence,
            "conflict": result.conflict,
            "dominant_timeframe": dominant_tf.name if dominant_tf else None,
            "long_filter": result.long_filter.value if result.long_filter else None,
            "degraded_votes": degraded_votes,
        },
    )


def zone_to_signal(zone_score: ZoneScore, zone_bias: ZoneBias, zone: Optional[Zone] = None) -> ComponentSignal:
    """
    Map the zone proximity score and bias to a component signal.

    Confidence scales the score by the zone's relevance, from half weight for
    an irrelevant zone to full weight for a fully relevant one.
    """
    if zone is None or zone_score.zone_type is None:
        return ComponentSignal.neutral(ComponentName.ZONE, "No active zones", degraded=False)

    relevance = clamp_unit(zone.relevance)
    confidence = zone_score.score * (0.5 + 0.5 * relevance)
    return ComponentSignal(
        component=ComponentName.ZONE,
        bias=ZONE_BIAS_TO_BIAS[zone_bias],
        score=zone_score.score,
        confidence=confidence,
        detail=(
            f"{zone_bias.value} near {zone.zone_type.value} {zone.price:.5f} "
            f"(distance {zone_score.distance:.5f}, strength {zone.strength:.2f})"
        ),
        metadata={
            "zone_id": zone.zone_id,
            "zone_price": zone.price,
            "zone_type": zone.zone_type.value,
            "zone_bias": zone_bias.value,
            "distance": zone_score.distance,
            "strength": zone.strength,
            "relevance": relevance,
        },
    )
