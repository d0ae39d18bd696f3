"""
Support and resistance zone tracking.

Zones are built from swing highs and lows on higher timeframes, then
maintained as price interacts with them: touches strengthen a zone, bar
closes through it count as failed tests, and relevance decays with age,
distance and failures until the zone is archived. Archived zones are kept
for audit but never returned by queries.
"""

import copy
import heapq
import itertools
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set

from evidence_fusion.data.indicator_cache import IndicatorCache
from evidence_fusion.data.providers.base_provider import MarketDataProvider
from evidence_fusion.exceptions import ZoneComputationError
from evidence_fusion.signal_generation.core import (
    ArchiveReason,
    Bar,
    IndicatorKind,
    Timeframe,
    Zone,
    ZoneBias,
    ZoneScore,
    ZoneType,
    clamp_score,
    clamp_unit,
)

logger = logging.getLogger(__name__)


def find_swing_points(values: Sequence[float], window: int, find_highs: bool = True) -> List[int]:
    """
    Indices of local extrema in a chronological series.

    A point qualifies only if no neighbour within ``window`` bars on either
    side exceeds it (for highs) or undercuts it (for lows).
    """
    swings = []
    for i in range(window, len(values) - window):
        neighbourhood = values[i - window:i + window + 1]
        if find_highs and values[i] >= max(neighbourhood):
            swings.append(i)
        elif not find_highs and values[i] <= min(neighbourhood):
            swings.append(i)
    return swings


class ZoneTracker:
    """
    Detects, merges, scores, decays and archives price zones for one instrument.
    """

    def __init__(
        self,
        instrument: str,
        market_data: MarketDataProvider,
        indicator_cache: IndicatorCache,
        config: Optional[Dict] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the zone tracker.

        Args:
            instrument: Symbol the zones belong to.
            market_data: Source of swing-detection history.
            indicator_cache: Source of the ATR used for buffers and decay.
            config: Configuration dictionary with zone parameters.
            clock: Returns the current time in seconds.
        """
        config = config or {}
        self.instrument = instrument
        self.market_data = market_data
        self.indicator_cache = indicator_cache
        self._clock = clock

        self.source_timeframes = [Timeframe.parse(tf) for tf in config.get("source_timeframes", ["H4", "D1"])]
        self.timeframe_weights = {
            Timeframe.parse(tf): w
            for tf, w in config.get("timeframe_weights", {"H1": 0.5, "H4": 0.6, "D1": 0.8}).items()
        }
        self.atr_timeframe = Timeframe.parse(config.get("atr_timeframe", "H1"))
        self.lookback_bars = config.get("lookback_bars", 100)
        self.swing_window = config.get("swing_window", 5)
        self.min_strength = config.get("min_strength", 0.3)
        self.min_touches = config.get("min_touches", 1)
        self.max_active_zones = config.get("max_active_zones", 50)

        self.merge_atr_multiple = config.get("merge_atr_multiple", 0.5)
        self.merge_price_fraction = config.get("merge_price_fraction", 0.002)
        self.buffer_atr_multiple = config.get("buffer_atr_multiple", 0.25)
        self.touch_tolerance_atr_multiple = config.get("touch_tolerance_atr_multiple", 0.1)
        self.touch_strength_increment = config.get("touch_strength_increment", 0.05)
        self.max_failed_tests = config.get("max_failed_tests", 3)

        self.relevance_age_days = config.get("relevance_age_days", 30.0)
        self.relevance_distance_atr = config.get("relevance_distance_atr", 5.0)
        self.relevance_weights = config.get(
            "relevance_weights", {"age": 0.3, "distance": 0.4, "failed_tests": 0.3}
        )
        self.archive_distance_atr = config.get("archive_distance_atr", 10.0)
        self.max_age_days = {
            Timeframe.parse(tf): days
            for tf, days in config.get("max_age_days", {"H1": 7.0, "H4": 14.0, "D1": 30.0}).items()
        }
        self.default_max_age_days = config.get("default_max_age_days", 3.0)
        self.rebuild_interval_seconds = config.get("rebuild_interval_seconds", 3600.0)

        self.atr: Optional[float] = None
        self._zones: List[Zone] = []
        self._archived: List[Zone] = []
        self._touching: Set[int] = set()
        self._ids = itertools.count(1)
        self._last_rebuild: Optional[float] = None
        self._stats = {
            "rebuilds": 0, "touches": 0, "failed_tests": 0, "merged": 0, "discarded": 0, "suppressed": 0,
        }

    # Construction

    def rebuild(self) -> int:
        """
        Scan the source timeframes for swings and merge them into the active set.

        Returns:
            int: number of zones added.
        """
        self._last_rebuild = self._clock()
        self._stats["rebuilds"] += 1
        self.refresh_volatility()

        candidates: List[Zone] = []
        for timeframe in self.source_timeframes:
            try:
                candidates.extend(self._detect_candidates(timeframe))
            except ZoneComputationError as e:
                logger.warning(f"Zone detection skipped for {self.instrument} {timeframe.name}: {e.message}")

        added = 0
        for candidate in sorted(candidates, key=lambda z: z.strength, reverse=True):
            if self._admit(candidate):
                added += 1

        logger.info(
            f"Zone rebuild for {self.instrument}: {len(candidates)} candidates, "
            f"{added} added, {len(self._zones)} active, {len(self._archived)} archived"
        )
        return added

    def _detect_candidates(self, timeframe: Timeframe) -> List[Zone]:
        bars = self.market_data.get_bars(self.instrument, timeframe, 0, self.lookback_bars)
        if len(bars) < 2 * self.swing_window + 1:
            raise ZoneComputationError(
                f"need {2 * self.swing_window + 1} bars, have {len(bars)}", component="zones"
            )

        ordered = list(reversed(bars))
        highs = [b.high for b in ordered]
        lows = [b.low for b in ordered]
        reference = ordered[-1].close
        tolerance = self._touch_tolerance(reference)
        weight = self.timeframe_weights.get(timeframe, 0.5)
        now = self._now()

        candidates = []
        for zone_type, series, find_highs in (
            (ZoneType.RESISTANCE, highs, True),
            (ZoneType.SUPPORT, lows, False),
        ):
            for index in find_swing_points(series, self.swing_window, find_highs):
                level = series[index]
                touches = sum(1 for v in series if abs(v - level) <= tolerance)
                strength = weight * min(1.0, 0.5 + 0.25 * touches)
                candidates.append(
                    Zone(
                        zone_id=0,
                        price=level,
                        zone_type=zone_type,
                        strength=strength,
                        source_timeframe=timeframe,
                        created_at=now,
                        touch_count=max(1, touches),
                    )
                )
        return candidates

    def _admit(self, candidate: Zone) -> bool:
        if candidate.strength < self.min_strength or candidate.touch_count < self.min_touches:
            self._stats["discarded"] += 1
            return False

        merge_distance = self._merge_distance(candidate.price)
        now = self._now()
        for archived in self._archived:
            if archived.distance_to(candidate.price) <= merge_distance and not self._is_expired(archived, now):
                self._stats["suppressed"] += 1
                return False

        for index, existing in enumerate(self._zones):
            if existing.distance_to(candidate.price) > merge_distance:
                continue
            self._stats["merged"] += 1
            if candidate.strength > existing.strength:
                candidate.zone_id = existing.zone_id
                candidate.touch_count = max(candidate.touch_count, existing.touch_count)
                candidate.failed_tests = existing.failed_tests
                candidate.created_at = existing.created_at
                self._zones[index] = candidate
            return False

        if len(self._zones) >= self.max_active_zones:
            self._stats["discarded"] += 1
            return False

        candidate.zone_id = next(self._ids)
        self._zones.append(candidate)
        return True

    # Queries

    def nearest_zone(self, price: float) -> Optional[Zone]:
        """Closest active zone by absolute distance."""
        nearest = None
        for zone in self._zones:
            if nearest is None or zone.distance_to(price) < nearest.distance_to(price):
                nearest = zone
        return copy.copy(nearest) if nearest is not None else None

    def score(self, price: float) -> ZoneScore:
        """
        Proximity score against the nearest zone.

        Inside the buffer band the score is the zone's full strength on a 0-100
        scale. Beyond the band it decays linearly to zero over three buffer
        widths.
        """
        zone = self.nearest_zone(price)
        if zone is None:
            return ZoneScore(score=0.0, zone_type=None, distance=None)

        buffer = self.buffer_width(price)
        distance = zone.distance_to(price)
        full = zone.strength * 100.0
        if distance <= buffer:
            value = full
        else:
            value = full * max(0.0, 1.0 - (distance - buffer) / (3.0 * buffer))
        return ZoneScore(score=clamp_score(value), zone_type=zone.zone_type, distance=distance)

    def bias(self, price: float) -> ZoneBias:
        """Classify price against its nearest zone."""
        zone = self.nearest_zone(price)
        if zone is None:
            return ZoneBias.NONE

        if zone.distance_to(price) <= self.buffer_width(price):
            if zone.zone_type is ZoneType.SUPPORT:
                return ZoneBias.IN_ZONE_BUY
            return ZoneBias.IN_ZONE_SELL

        # Above a support, or above a resistance that has been broken.
        if price > zone.price:
            return ZoneBias.BUY_BIAS
        return ZoneBias.SELL_BIAS

    def is_inside_zone(self, price: float) -> bool:
        return self.bias(price) in (ZoneBias.IN_ZONE_BUY, ZoneBias.IN_ZONE_SELL)

    def query(self, max_count: int, reference_price: Optional[float] = None) -> List[Zone]:
        """
        Up to ``max_count`` active zones, nearest first.

        Without a reference price the strongest zones are returned instead.
        Results are copies; mutating them does not affect the tracker.
        """
        if max_count <= 0:
            return []
        if reference_price is None:
            chosen = heapq.nlargest(max_count, self._zones, key=lambda z: (z.strength, -z.zone_id))
        else:
            chosen = heapq.nsmallest(
                max_count, self._zones, key=lambda z: (z.distance_to(reference_price), z.zone_id)
            )
        return [copy.copy(z) for z in chosen]

    @property
    def zone_count(self) -> int:
        return len(self._zones)

    @property
    def last_rebuild(self) -> Optional[float]:
        return self._last_rebuild

    def archived_zones(self) -> List[Zone]:
        return [copy.copy(z) for z in self._archived]

    # Lifecycle

    def on_tick(self, price: float) -> int:
        """
        Register touches for the current price.

        A touch is counted when price enters a zone's touch tolerance from
        outside it; remaining inside does not count again.

        Returns:
            int: number of new touches.
        """
        tolerance = self._touch_tolerance(price)
        touches = 0
        for zone in self._zones:
            inside = zone.distance_to(price) <= tolerance
            if inside and zone.zone_id not in self._touching:
                self._touching.add(zone.zone_id)
                zone.touch_count += 1
                zone.strength = clamp_unit(zone.strength + self.touch_strength_increment)
                zone.last_touch_at = self._now()
                touches += 1
            elif not inside:
                self._touching.discard(zone.zone_id)
        self._stats["touches"] += touches
        return touches

    def on_bar_close(self, bar: Bar) -> List[Zone]:
        """
        Count failed tests for a closed bar and archive exhausted zones.

        A failed test is a bar whose range reached the zone's buffer band but
        which closed beyond the band on the far side.

        Returns:
            List[Zone]: zones archived by this bar.
        """
        buffer = self.buffer_width(bar.close)
        archived = []
        for zone in list(self._zones):
            reached = bar.low <= zone.price + buffer and bar.high >= zone.price - buffer
            if not reached:
                continue
            if zone.zone_type is ZoneType.SUPPORT:
                failed = bar.close < zone.price - buffer
            else:
                failed = bar.close > zone.price + buffer
            if not failed:
                continue

            zone.failed_tests += 1
            self._stats["failed_tests"] += 1
            logger.debug(f"Zone {zone.zone_id} at {zone.price} failed test {zone.failed_tests}")
            if zone.failed_tests >= self.max_failed_tests:
                self._archive(zone, ArchiveReason.FAILED_TESTS)
                archived.append(zone)
        return archived

    def recompute_relevance(self, price: float):
        """Blend age, distance and failed-test decay; archive distant zones."""
        now = self._now()
        volatility = self._volatility(price)
        weights = self.relevance_weights
        total_weight = sum(weights.values()) or 1.0

        for zone in list(self._zones):
            distance = zone.distance_to(price)
            if distance > self.archive_distance_atr * volatility:
                self._archive(zone, ArchiveReason.DISTANCE)
                continue

            age_decay = clamp_unit(1.0 - zone.age_days(now) / self.relevance_age_days)
            distance_decay = clamp_unit(1.0 - distance / (self.relevance_distance_atr * volatility))
            failed_decay = clamp_unit(1.0 - zone.failed_tests / self.max_failed_tests)
            blended = (
                weights.get("age", 0.0) * age_decay
                + weights.get("distance", 0.0) * distance_decay
                + weights.get("failed_tests", 0.0) * failed_decay
            ) / total_weight
            zone.relevance = clamp_unit(blended)

    def expire_zones(self) -> List[Zone]:
        """Archive zones older than their source timeframe allows."""
        now = self._now()
        expired = []
        for zone in list(self._zones):
            if self._is_expired(zone, now):
                self._archive(zone, ArchiveReason.EXPIRED)
                expired.append(zone)
        return expired

    def rebuild_due(self) -> bool:
        if self._last_rebuild is None:
            return True
        return self._clock() - self._last_rebuild >= self.rebuild_interval_seconds

    def on_timer(self, price: Optional[float]):
        """
        Periodic maintenance: rebuild when due, expire, recompute relevance.
        """
        self.refresh_volatility()
        if self.rebuild_due():
            self.rebuild()
        self.expire_zones()
        if price is not None:
            self.recompute_relevance(price)

    # Helpers

    def refresh_volatility(self) -> Optional[float]:
        reading = self.indicator_cache.get(self.instrument, self.atr_timeframe, IndicatorKind.ATR, 0)
        if reading.is_available and reading.value > 0:
            self.atr = reading.value
        return self.atr

    def _volatility(self, price: float) -> float:
        if self.atr is not None and self.atr > 0:
            return self.atr
        return abs(price) * self.merge_price_fraction or 1e-9

    def buffer_width(self, price: float) -> float:
        return self.buffer_atr_multiple * self._volatility(price)

    def _touch_tolerance(self, price: float) -> float:
        return self.touch_tolerance_atr_multiple * self._volatility(price)

    def _merge_distance(self, price: float) -> float:
        if self.atr is not None and self.atr > 0:
            return self.merge_atr_multiple * self.atr
        return abs(price) * self.merge_price_fraction

    def _is_expired(self, zone: Zone, now: datetime) -> bool:
        limit = self.max_age_days.get(zone.source_timeframe, self.default_max_age_days)
        return zone.age_days(now) > limit

    def _archive(self, zone: Zone, reason: ArchiveReason):
        zone.archived = True
        zone.archive_reason = reason
        self._zones.remove(zone)
        self._touching.discard(zone.zone_id)
        self._archived.append(zone)
        logger.info(f"Archived {zone.zone_type.value} zone {zone.zone_id} at {zone.price} ({reason.value})")

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def add_zone(
        self,
        price: float,
        zone_type: ZoneType,
        strength: float,
        source_timeframe: Timeframe = Timeframe.H4,
    ) -> Zone:
        """
        Register a zone directly, bypassing swing detection.

        Returns:
            Zone: a copy of the stored zone.
        """
        zone = Zone(
            zone_id=next(self._ids),
            price=price,
            zone_type=zone_type,
            strength=strength,
            source_timeframe=source_timeframe,
            created_at=self._now(),
        )
        self._zones.append(zone)
        return copy.copy(zone)

    def get_zone_statistics(self) -> Dict[str, object]:
        by_reason: Dict[str, int] = {}
        for zone in self._archived:
            key = zone.archive_reason.value if zone.archive_reason else "unknown"
            by_reason[key] = by_reason.get(key, 0) + 1
        return {
            **self._stats,
            "active": len(self._zones),
            "archived": len(self._archived),
            "archived_by_reason": by_reason,
            "atr": self.atr,
        }
