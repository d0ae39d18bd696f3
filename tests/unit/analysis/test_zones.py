"""
Unit tests for ZoneTracker.
"""

import math

import pytest

from evidence_fusion.analysis.zones import ZoneTracker, find_swing_points
from evidence_fusion.signal_generation.core import (
    ArchiveReason,
    IndicatorKind,
    Timeframe,
    ZoneBias,
    ZoneType,
)

pytestmark = pytest.mark.unit

DAY = 86400.0


@pytest.fixture
def tracker(market_data, indicator_cache, clock):
    return ZoneTracker("EURUSD", market_data, indicator_cache, clock=clock)


@pytest.fixture
def fixed_atr_tracker(tracker):
    """Tracker with ATR 0.0020: buffer 0.0005, touch tolerance 0.0002, merge 0.0010."""
    tracker.atr = 0.0020
    return tracker


class TestSwingPoints:
    def test_highs_and_lows(self):
        values = [1, 2, 3, 2, 1, 2, 5, 2, 1]
        assert find_swing_points(values, 2, find_highs=True) == [2, 6]
        assert find_swing_points(values, 2, find_highs=False) == [4]

    def test_short_series_has_no_swings(self):
        assert find_swing_points([1, 2, 1], 2) == []


class TestZoneConstruction:
    """Test building zones from swing points."""

    def test_rebuild_merges_repeated_swings(self, tracker, market_data, bars_factory, clock):
        closes = [1.1000 + 0.005 * math.sin(2 * math.pi * i / 20) for i in range(100)]
        market_data.set_bars("EURUSD", Timeframe.H4, bars_factory(closes))

        added = tracker.rebuild()

        assert added == 2
        assert tracker.zone_count == 2
        assert tracker.last_rebuild == clock.now
        zones = {z.zone_type: z for z in tracker.query(10)}
        assert zones[ZoneType.RESISTANCE].price == pytest.approx(1.1055, abs=1e-4)
        assert zones[ZoneType.SUPPORT].price == pytest.approx(1.0945, abs=1e-4)
        assert zones[ZoneType.RESISTANCE].source_timeframe is Timeframe.H4
        assert tracker.get_zone_statistics()["merged"] > 0

    def test_rebuild_without_history_keeps_existing_zones(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.7)
        assert fixed_atr_tracker.rebuild() == 0
        assert fixed_atr_tracker.zone_count == 1

    def test_weak_candidates_are_discarded(self, market_data, indicator_cache, bars_factory, clock):
        tracker = ZoneTracker("EURUSD", market_data, indicator_cache, {"min_strength": 0.95}, clock=clock)
        closes = [1.1000 + 0.005 * math.sin(2 * math.pi * i / 20) for i in range(100)]
        market_data.set_bars("EURUSD", Timeframe.H4, bars_factory(closes))

        assert tracker.rebuild() == 0
        assert tracker.get_zone_statistics()["discarded"] > 0

    def test_full_arena_drops_new_candidates(self, market_data, indicator_cache, bars_factory, clock):
        tracker = ZoneTracker("EURUSD", market_data, indicator_cache, {"max_active_zones": 1}, clock=clock)
        closes = [1.1000 + 0.005 * math.sin(2 * math.pi * i / 20) for i in range(100)]
        market_data.set_bars("EURUSD", Timeframe.H4, bars_factory(closes))

        tracker.rebuild()
        assert tracker.zone_count == 1


class TestZoneScoring:
    """Test proximity score and bias."""

    def test_no_zones(self, fixed_atr_tracker):
        result = fixed_atr_tracker.score(1.1)
        assert result.score == 0.0
        assert result.zone_type is None
        assert fixed_atr_tracker.bias(1.1) is ZoneBias.NONE

    def test_full_strength_inside_buffer(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        result = fixed_atr_tracker.score(1.1004)
        assert result.score == pytest.approx(80.0)
        assert result.zone_type is ZoneType.SUPPORT
        assert result.distance == pytest.approx(0.0004)

    def test_linear_decay_outside_buffer(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        assert fixed_atr_tracker.score(1.10125).score == pytest.approx(40.0)
        assert fixed_atr_tracker.score(1.1030).score == 0.0

    def test_bias_labels(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        assert fixed_atr_tracker.bias(1.1003) is ZoneBias.IN_ZONE_BUY
        assert fixed_atr_tracker.bias(1.1010) is ZoneBias.BUY_BIAS
        assert fixed_atr_tracker.bias(1.0990) is ZoneBias.SELL_BIAS
        assert fixed_atr_tracker.is_inside_zone(1.0997)

    def test_resistance_inside_buffer_is_sell(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.RESISTANCE, 0.6)
        assert fixed_atr_tracker.bias(1.0998) is ZoneBias.IN_ZONE_SELL

    def test_score_never_exceeds_100(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 5.0)
        assert fixed_atr_tracker.score(1.1).score == 100.0


class TestZoneQuery:
    """Test top-k selection."""

    def test_nearest_first(self, fixed_atr_tracker):
        for price in (1.1000, 1.1050, 1.0900, 1.1200):
            fixed_atr_tracker.add_zone(price, ZoneType.SUPPORT, 0.5)

        zones = fixed_atr_tracker.query(2, reference_price=1.1040)
        assert [z.price for z in zones] == [1.1050, 1.1000]

    def test_strongest_first_without_price(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.4)
        fixed_atr_tracker.add_zone(1.1100, ZoneType.RESISTANCE, 0.9)
        fixed_atr_tracker.add_zone(1.0900, ZoneType.SUPPORT, 0.6)

        zones = fixed_atr_tracker.query(2)
        assert [z.strength for z in zones] == [0.9, 0.6]

    def test_zero_count_and_copies(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.5)
        assert fixed_atr_tracker.query(0) == []

        zone = fixed_atr_tracker.query(1)[0]
        zone.strength = 0.01
        assert fixed_atr_tracker.query(1)[0].strength == 0.5


class TestZoneLifecycle:
    """Test touches, failed tests, relevance and expiry."""

    def test_touch_is_edge_triggered(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.5)

        assert fixed_atr_tracker.on_tick(1.1001) == 1
        assert fixed_atr_tracker.on_tick(1.1000) == 0
        assert fixed_atr_tracker.on_tick(1.1010) == 0
        assert fixed_atr_tracker.on_tick(1.0999) == 1

        zone = fixed_atr_tracker.query(1)[0]
        assert zone.touch_count == 3
        assert zone.strength == pytest.approx(0.6)
        assert zone.last_touch_at is not None

    def test_touch_strength_is_capped(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.98)
        fixed_atr_tracker.on_tick(1.1000)
        assert fixed_atr_tracker.query(1)[0].strength == 1.0

    def test_three_failed_tests_archive_zone(self, fixed_atr_tracker, bar_factory):
        zone = fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        breakdown = bar_factory(close=1.0990, open_=1.1002, high=1.1005, low=1.0988)

        assert fixed_atr_tracker.on_bar_close(breakdown) == []
        assert fixed_atr_tracker.on_bar_close(breakdown) == []
        archived = fixed_atr_tracker.on_bar_close(breakdown)

        assert [z.zone_id for z in archived] == [zone.zone_id]
        assert fixed_atr_tracker.query(10) == []
        assert fixed_atr_tracker.query(10, reference_price=1.1) == []
        record = fixed_atr_tracker.archived_zones()[0]
        assert record.archived is True
        assert record.archive_reason is ArchiveReason.FAILED_TESTS
        assert record.failed_tests == 3

    def test_close_inside_band_is_not_a_failed_test(self, fixed_atr_tracker, bar_factory):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        fixed_atr_tracker.on_bar_close(bar_factory(close=1.0998, open_=1.1003, low=1.0990))
        assert fixed_atr_tracker.query(1)[0].failed_tests == 0

    def test_bar_far_from_zone_is_ignored(self, fixed_atr_tracker, bar_factory):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.RESISTANCE, 0.8)
        fixed_atr_tracker.on_bar_close(bar_factory(close=1.1050, open_=1.1030, low=1.1025))
        assert fixed_atr_tracker.query(1)[0].failed_tests == 0

    def test_resistance_fails_on_close_above(self, fixed_atr_tracker, bar_factory):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.RESISTANCE, 0.8)
        fixed_atr_tracker.on_bar_close(bar_factory(close=1.1010, open_=1.0998, low=1.0995))
        assert fixed_atr_tracker.query(1)[0].failed_tests == 1

    def test_relevance_blend(self, fixed_atr_tracker, bar_factory, clock):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        fixed_atr_tracker.recompute_relevance(1.1000)
        assert fixed_atr_tracker.query(1)[0].relevance == pytest.approx(1.0)

        breakdown = bar_factory(close=1.0990, open_=1.1002, high=1.1005, low=1.0988)
        fixed_atr_tracker.on_bar_close(breakdown)
        fixed_atr_tracker.on_bar_close(breakdown)
        clock.advance(15 * DAY)
        fixed_atr_tracker.recompute_relevance(1.1050)

        # age 0.5, distance 0.5, failed tests 1/3
        assert fixed_atr_tracker.query(1)[0].relevance == pytest.approx(0.45)

    def test_distant_zone_is_archived(self, fixed_atr_tracker):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8)
        fixed_atr_tracker.recompute_relevance(1.1250)
        assert fixed_atr_tracker.zone_count == 0
        assert fixed_atr_tracker.archived_zones()[0].archive_reason is ArchiveReason.DISTANCE

    def test_expiry_depends_on_source_timeframe(self, fixed_atr_tracker, clock):
        fixed_atr_tracker.add_zone(1.1000, ZoneType.SUPPORT, 0.8, Timeframe.H1)
        fixed_atr_tracker.add_zone(1.1100, ZoneType.RESISTANCE, 0.8, Timeframe.H4)
        fixed_atr_tracker.add_zone(1.0900, ZoneType.SUPPORT, 0.8, Timeframe.M15)

        clock.advance(8 * DAY)
        expired = fixed_atr_tracker.expire_zones()

        assert sorted(z.source_timeframe.name for z in expired) == ["H1", "M15"]
        assert [z.source_timeframe for z in fixed_atr_tracker.query(10)] == [Timeframe.H4]
        reasons = fixed_atr_tracker.get_zone_statistics()["archived_by_reason"]
        assert reasons == {ArchiveReason.EXPIRED.value: 2}

    def test_on_timer_rebuilds_when_due(self, tracker, clock):
        assert tracker.rebuild_due()
        tracker.on_timer(None)
        assert tracker.last_rebuild == clock.now
        assert not tracker.rebuild_due()

        clock.advance(3600)
        assert tracker.rebuild_due()

    def test_volatility_comes_from_atr(self, tracker, market_data, indicator_provider, bar_factory):
        market_data.set_bars("EURUSD", Timeframe.H1, [bar_factory(1.1000)])
        indicator_provider.set("EURUSD", Timeframe.H1, IndicatorKind.ATR, 0.0030)

        assert tracker.refresh_volatility() == 0.0030
        assert tracker.buffer_width(1.1) == pytest.approx(0.00075)



class TestArchivedZones:
    """Test that archived levels are not rebuilt while still recent."""

    @pytest.fixture
    def broken_support(self, tracker, market_data, bars_factory, bar_factory):
        closes = [1.1000 + 0.005 * math.sin(2 * math.pi * i / 20) for i in range(100)]
        market_data.set_bars("EURUSD", Timeframe.H4, bars_factory(closes))
        tracker.on_timer(None)

        breakdown = bar_factory(close=1.0930, open_=1.0950, high=1.0952, low=1.0925)
        for _ in range(3):
            tracker.on_bar_close(breakdown)
        assert [z.zone_type for z in tracker.query(10)] == [ZoneType.RESISTANCE]
        return tracker.archived_zones()[0]

    def test_rebuild_does_not_restore_archived_zone(self, tracker, broken_support, clock):
        clock.advance(3600)
        tracker.on_timer(None)

        assert tracker.last_rebuild == clock.now
        assert [z.zone_type for z in tracker.query(10)] == [ZoneType.RESISTANCE]
        assert tracker.query(10, reference_price=broken_support.price)[0].zone_type is ZoneType.RESISTANCE
        assert tracker.get_zone_statistics()["suppressed"] > 0

    def test_level_returns_once_archive_has_aged_out(self, tracker, broken_support, clock):
        clock.advance(15 * DAY)
        tracker.on_timer(None)

        supports = [z for z in tracker.query(10) if z.zone_type is ZoneType.SUPPORT]
        assert len(supports) == 1
        assert supports[0].zone_id != broken_support.zone_id
        assert supports[0].failed_tests == 0
