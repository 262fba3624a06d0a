import pytest
import threading
import uuid
from datetime import datetime, timezone, timedelta

from coach_engine.activity_mapper import ActivityRecord
from coach_engine.errors import ActivityFeedError, ConfigurationError
from coach_engine.fatigue import FatigueProfile, current_fatigue
from coach_engine.models import FatigueEvent, FatigueLevel, FatigueSourceKind, MuscleGroup

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


def make_event(hours_ago, levels, name="Running", kind=FatigueSourceKind.EXTERNAL_TRACKER):
    return FatigueEvent(
        timestamp=NOW - timedelta(hours=hours_ago),
        source_kind=kind,
        source_name=name,
        muscle_levels=levels,
    )


# --- current_fatigue ---

def test_decay_scenario_high_halfway_through_window_is_medium():
    event = make_event(24, {MuscleGroup.QUADS: FatigueLevel.HIGH})
    result = current_fatigue([event], 48, NOW)
    assert result == {MuscleGroup.QUADS: FatigueLevel.MEDIUM}


def test_fresh_event_counts_fully():
    event = make_event(0, {MuscleGroup.CHEST: FatigueLevel.SEVERE})
    assert current_fatigue([event], 48, NOW)[MuscleGroup.CHEST] == FatigueLevel.SEVERE


def test_decay_is_monotonic_and_zero_at_window_edge():
    event = make_event(0, {MuscleGroup.BACK: FatigueLevel.HIGH})
    previous = FatigueLevel.SEVERE.rank + 1
    for hours in range(0, 60, 2):
        at = event.timestamp + timedelta(hours=hours)
        rank = current_fatigue([event], 48, at).get(MuscleGroup.BACK, FatigueLevel.NONE).rank
        assert rank <= previous
        previous = rank
        if hours >= 48:
            assert rank == 0


def test_rounding_is_half_up():
    # HIGH (3) at decay 0.5 rounds 1.5 up to 2; LOW (1) at decay 0.5 rounds 0.5 up to 1.
    events = [
        make_event(24, {MuscleGroup.QUADS: FatigueLevel.HIGH}, name="a"),
        make_event(24, {MuscleGroup.CORE: FatigueLevel.LOW}, name="b"),
    ]
    result = current_fatigue(events, 48, NOW)
    assert result[MuscleGroup.QUADS] == FatigueLevel.MEDIUM
    assert result[MuscleGroup.CORE] == FatigueLevel.LOW


def test_totals_clamp_at_severe():
    events = [make_event(i, {MuscleGroup.QUADS: FatigueLevel.HIGH}, name=f"run {i}") for i in range(5)]
    result = current_fatigue(events, 48, NOW)
    assert result[MuscleGroup.QUADS] == FatigueLevel.SEVERE
    assert all(level <= FatigueLevel.SEVERE for level in result.values())


def test_events_outside_window_and_future_are_ignored():
    events = [
        make_event(49, {MuscleGroup.CALVES: FatigueLevel.SEVERE}, name="old"),
        make_event(-2, {MuscleGroup.CALVES: FatigueLevel.SEVERE}, name="future"),
    ]
    assert current_fatigue(events, 48, NOW) == {}


def test_no_events_gives_empty_map():
    assert current_fatigue([], 48, NOW) == {}


def test_aggregation_is_order_independent_and_repeatable():
    events = [
        make_event(3, {MuscleGroup.QUADS: FatigueLevel.MEDIUM, MuscleGroup.CORE: FatigueLevel.LOW}, name="a"),
        make_event(10, {MuscleGroup.QUADS: FatigueLevel.LOW}, name="b"),
        make_event(30, {MuscleGroup.BACK: FatigueLevel.HIGH}, name="c"),
    ]
    first = current_fatigue(events, 48, NOW)
    assert current_fatigue(list(reversed(events)), 48, NOW) == first
    assert current_fatigue(events, 48, NOW) == first


@pytest.mark.parametrize("window", [0, -1, "abc", None])
def test_invalid_window_is_configuration_error(window):
    with pytest.raises(ConfigurationError):
        current_fatigue([], window, NOW)


def test_naive_query_time_is_treated_as_utc():
    event = make_event(24, {MuscleGroup.QUADS: FatigueLevel.HIGH})
    naive_now = NOW.replace(tzinfo=None)
    assert current_fatigue([event], 48, naive_now) == {MuscleGroup.QUADS: FatigueLevel.MEDIUM}


# --- FatigueProfile ---

class TestFatigueProfile:
    def test_rejects_invalid_window(self):
        with pytest.raises(ConfigurationError):
            FatigueProfile(rolling_window_hours=0)
        profile = FatigueProfile()
        with pytest.raises(ConfigurationError):
            profile.rolling_window_hours = -12
        assert profile.rolling_window_hours == 48

    def test_window_change_applies_retroactively(self):
        profile = FatigueProfile(events=[make_event(30, {MuscleGroup.BACK: FatigueLevel.HIGH})])
        assert profile.current_fatigue(NOW) == {MuscleGroup.BACK: FatigueLevel.LOW}
        profile.rolling_window_hours = 24
        assert profile.current_fatigue(NOW) == {}

    def test_add_events_is_idempotent(self):
        profile = FatigueProfile()
        event = make_event(1, {MuscleGroup.QUADS: FatigueLevel.HIGH})
        replay = FatigueEvent(
            timestamp=event.timestamp, source_kind=event.source_kind,
            source_name=event.source_name, muscle_levels={MuscleGroup.CORE: FatigueLevel.LOW},
        )
        assert profile.add_events([event]) == [event]
        assert profile.add_events([replay]) == []
        assert len(profile) == 1

    def test_add_events_dedups_within_batch(self):
        profile = FatigueProfile()
        event = make_event(1, {MuscleGroup.QUADS: FatigueLevel.HIGH})
        twin = FatigueEvent(event.timestamp, event.source_kind, event.source_name, dict(event.muscle_levels))
        appended = profile.add_events([event, twin])
        assert appended == [event]
        assert profile.events == (event,)

    def test_snapshot_is_immutable_tuple(self):
        profile = FatigueProfile(events=[make_event(1, {MuscleGroup.QUADS: FatigueLevel.LOW})])
        snapshot = profile.snapshot()
        profile.add_events([make_event(2, {MuscleGroup.CORE: FatigueLevel.LOW}, name="Yoga")])
        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1
        assert len(profile.events) == 2

    def test_remove_event(self):
        event = make_event(1, {MuscleGroup.QUADS: FatigueLevel.HIGH})
        profile = FatigueProfile(events=[event])
        assert profile.remove_event(uuid.uuid4()) is False
        assert profile.remove_event(event.id) is True
        assert profile.events == ()
        # The key is free again once the event is gone.
        assert profile.add_events([event]) == [event]

    def test_manual_override_adds_high_event(self):
        profile = FatigueProfile()
        event = profile.apply_manual_override(MuscleGroup.SHOULDERS, at=NOW)
        assert event is not None
        assert event.source_kind == FatigueSourceKind.EXTERNAL_SPORT
        assert event.source_name == "Manual Override: shoulders"
        assert event.muscle_levels == {MuscleGroup.SHOULDERS: FatigueLevel.HIGH}
        assert profile.current_fatigue(NOW)[MuscleGroup.SHOULDERS] == FatigueLevel.HIGH

    def test_manual_override_skipped_when_already_fatigued(self):
        profile = FatigueProfile(events=[make_event(1, {MuscleGroup.SHOULDERS: FatigueLevel.MEDIUM})])
        assert profile.apply_manual_override(MuscleGroup.SHOULDERS, at=NOW) is None
        assert len(profile) == 1

    def test_manual_override_check_and_append_are_atomic(self):
        class CompetingProfile(FatigueProfile):
            competitor = None

            def current_fatigue(self, at=None):
                # A second override with a later clock starts while the first is still checking.
                if self.competitor is None:
                    self.competitor = threading.Thread(
                        target=self.apply_manual_override,
                        args=(MuscleGroup.NECK, NOW + timedelta(seconds=1)),
                    )
                    self.competitor.start()
                    self.competitor.join(timeout=0.2)
                return super().current_fatigue(at)

        profile = CompetingProfile()
        first = profile.apply_manual_override(MuscleGroup.NECK, at=NOW)
        profile.competitor.join()
        assert first is not None
        assert profile.events == (first,)

    def test_future_override_does_not_block_current_query(self):
        profile = FatigueProfile()
        profile.apply_manual_override(MuscleGroup.CORE, at=NOW + timedelta(hours=1))
        assert profile.current_fatigue(NOW) == {}

    def test_sync_activity_feed_appends_translated_events(self):
        profile = FatigueProfile()
        records = [
            ActivityRecord('running', NOW - timedelta(hours=2), 3600),
            ActivityRecord('unknown_thing', NOW - timedelta(hours=3), 3600),
        ]
        appended = profile.sync_activity_feed(lambda: records)
        assert len(appended) == 1
        assert profile.sync_activity_feed(lambda: records) == []
        assert len(profile) == 1

    def test_sync_activity_feed_failure_leaves_profile_untouched(self):
        existing = make_event(1, {MuscleGroup.QUADS: FatigueLevel.LOW})
        profile = FatigueProfile(events=[existing])

        def broken_feed():
            raise ConnectionError("tracker offline")

        with pytest.raises(ActivityFeedError):
            profile.sync_activity_feed(broken_feed)
        assert profile.events == (existing,)

    def test_concurrent_writers_do_not_duplicate(self):
        profile = FatigueProfile()
        events = [make_event(i, {MuscleGroup.CORE: FatigueLevel.LOW}, name=f"e{i}") for i in range(50)]

        def writer():
            profile.add_events(events)

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(profile) == 50
