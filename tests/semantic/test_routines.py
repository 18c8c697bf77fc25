"""Tests for the Routine Pattern Learner."""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from vigil.config import RoutineConfig
from vigil.semantic.reasoning import NotificationReasoningEngine
from vigil.semantic.routines import ObservationWindow, RoutineLearner
from vigil.semantic.types import EntityLink, Frequency, LinkKind, Observation

# Monday 2026-09-07 through Friday 2026-10-02: four full weeks
FIRST_MONDAY = date(2026, 9, 7)
WEEKDAYS = [FIRST_MONDAY + timedelta(days=w * 7 + d) for w in range(4) for d in range(5)]
AFTER_LAST_FRIDAY = datetime(2026, 10, 3)


def at(day, hour, minute):
    return datetime(day.year, day.month, day.day, hour, minute)


def dog_walk(ts, camera_id="front_door"):
    return Observation(
        camera_id=camera_id,
        occurred_at=ts,
        detections=[
            {"type": "person", "description": "person walking dog"},
            {"type": "pet", "description": "dog on leash"},
        ],
        description="person walking a dog along the sidewalk",
    )


def dog_walks(days, start=(7, 15), end=(7, 40)):
    observations = []
    for day in days:
        observations.append(dog_walk(at(day, *start)))
        observations.append(dog_walk(at(day, *end)))
    return observations


def package_drop(ts):
    return Observation(
        camera_id="front_door",
        occurred_at=ts,
        detections=[{"type": "package", "description": "box"}],
    )


@pytest.fixture
def eighteen_of_twenty():
    """Dog walk on 18 of the 20 weekdays (one Tuesday and one Thursday missed)."""
    skipped = {date(2026, 9, 8), date(2026, 9, 24)}
    return dog_walks([d for d in WEEKDAYS if d not in skipped])


@pytest.fixture
def learner():
    return RoutineLearner(RoutineConfig())


class TestObservationWindow:
    def test_half_open(self):
        window = ObservationWindow(datetime(2026, 10, 1), datetime(2026, 10, 2))
        assert datetime(2026, 10, 1) in window
        assert datetime(2026, 10, 2) not in window

    def test_slot_must_fit_inside(self):
        window = ObservationWindow(datetime(2026, 10, 1, 8, 0), datetime(2026, 10, 3))
        assert not window.covers_slot(date(2026, 10, 1), 7, 7)
        assert window.covers_slot(date(2026, 10, 1), 8, 9)
        assert not window.covers_slot(date(2026, 10, 3), 0, 0)

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            ObservationWindow(datetime(2026, 10, 2), datetime(2026, 10, 1))


class TestDiscovery:
    def test_weekday_dog_walk_becomes_routine(self, learner, eighteen_of_twenty):
        result = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY)

        assert len(result.created) == 1
        routine = result.created[0]
        assert routine.frequency == Frequency.WEEKDAYS
        assert routine.confidence == pytest.approx(90.0)
        assert routine.occurrence_count == 18
        assert routine.time_pattern.days_of_week == frozenset({0, 1, 2, 3, 4})
        assert (routine.time_pattern.start_hour, routine.time_pattern.end_hour) == (7, 7)
        assert routine.signature.categories == frozenset({"person", "pet"})
        assert routine.typical_duration == timedelta(minutes=25)
        assert routine.auto_suppress is False
        assert routine.active

    def test_explicit_window_limits_occurrences(self, learner, eighteen_of_twenty):
        window = ObservationWindow(datetime(2026, 9, 21), AFTER_LAST_FRIDAY)
        result = learner.discover_patterns("front_door", eighteen_of_twenty, window)

        (routine,) = result.created
        assert routine.occurrence_count == 9
        assert routine.first_seen >= datetime(2026, 9, 21)

    def test_below_min_occurrences_not_created(self, learner):
        mondays = [d for d in WEEKDAYS if d.weekday() == 0]
        result = learner.learn("front_door", dog_walks(mondays), now=AFTER_LAST_FRIDAY)
        assert result.created == []

    def test_below_confidence_not_created(self, learner):
        # Every weekday seen in exactly half of the weeks: 10 occurrences, 50% confidence
        half = [d for d in WEEKDAYS if (d - FIRST_MONDAY).days // 7 in (0, 1)]
        result = learner.learn("front_door", dog_walks(half), now=AFTER_LAST_FRIDAY)
        assert result.created == []

    def test_contradictory_windows_stay_distinct(self, learner):
        early = [package_drop(at(d, 6, 5)) for d in WEEKDAYS if d.weekday() in (0, 2, 4)]
        late = [package_drop(at(d, 7, 50)) for d in WEEKDAYS if d.weekday() in (1, 3)]

        result = learner.learn("front_door", early + late, now=AFTER_LAST_FRIDAY)

        patterns = sorted(
            (r.time_pattern.start_hour, tuple(sorted(r.time_pattern.days_of_week))) for r in result.created
        )
        assert patterns == [(6, (0, 2, 4)), (7, (1, 3))]

    def test_outlier_days_are_not_occurrences(self, learner, eighteen_of_twenty):
        stray = dog_walk(at(date(2026, 9, 8), 6, 0))
        result = learner.learn("front_door", eighteen_of_twenty + [stray], now=AFTER_LAST_FRIDAY)

        assert result.outliers == 1
        assert result.created[0].occurrence_count == 18

    def test_malformed_records_skipped(self, learner, eighteen_of_twenty):
        records = [o.to_dict() for o in eighteen_of_twenty] + [
            {"camera_id": "front_door"},
            {"camera_id": "front_door", "occurred_at": "yesterday-ish"},
            dog_walk(at(WEEKDAYS[0], 7, 15), camera_id="garage").to_dict(),
            {"camera_id": "front_door", "occurred_at": at(WEEKDAYS[0], 9, 0).isoformat(), "detections": []},
        ]
        result = learner.learn("front_door", records, now=AFTER_LAST_FRIDAY)

        assert result.skipped == 4
        assert len(result.created) == 1

    def test_timezone_aware_record_in_naive_log_skipped(self, learner, eighteen_of_twenty):
        records = [o.to_dict() for o in eighteen_of_twenty]
        records.append(dog_walk(datetime(2026, 9, 9, 7, 20, tzinfo=timezone.utc)).to_dict())

        result = learner.learn("front_door", records, now=AFTER_LAST_FRIDAY)

        assert result.skipped == 1
        assert len(result.created) == 1
        assert result.created[0].occurrence_count == 18

    def test_disappeared_only_observation_has_no_categories(self, learner):
        gone = Observation(
            camera_id="front_door",
            occurred_at=at(WEEKDAYS[0], 8, 0),
            entity_links=[EntityLink("person_1", "person", LinkKind.DISAPPEARED)],
        )
        result = learner.learn("front_door", [gone], now=AFTER_LAST_FRIDAY)
        assert result.skipped == 1


class TestReinforcement:
    def test_reinforcement_never_lowers_confidence(self, learner, eighteen_of_twenty):
        first = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY)
        routine = first.created[0]

        # Following week only Monday and Tuesday are walked
        next_week = [date(2026, 10, 5), date(2026, 10, 6)]
        second = learner.learn(
            "front_door",
            eighteen_of_twenty + dog_walks(next_week),
            now=datetime(2026, 10, 10),
            existing=[routine],
        )

        assert second.created == []
        (updated,) = second.updated
        assert updated.routine_id == routine.routine_id
        assert updated.confidence >= routine.confidence
        assert updated.occurrence_count == 20
        assert updated.last_seen == at(date(2026, 10, 6), 7, 40)

    def test_same_data_twice_does_not_recount(self, learner, eighteen_of_twenty):
        routine = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY).created[0]
        again = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY, existing=[routine])

        assert again.created == []
        assert again.updated == []

    def test_stale_routine_deactivated(self, learner, eighteen_of_twenty):
        routine = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY).created[0]

        result = learner.learn("front_door", [], now=datetime(2026, 10, 20), existing=[routine])

        (stale,) = result.deactivated
        assert stale.routine_id == routine.routine_id
        assert stale.active is False
        assert routine.active is True


class TestLearnedRoutineSuppresses:
    def test_expected_walk_is_suppressed(self, learner, eighteen_of_twenty):
        routine = learner.learn("front_door", eighteen_of_twenty, now=AFTER_LAST_FRIDAY).created[0]
        routine = replace(routine, auto_suppress=True)

        walk = dog_walk(at(date(2026, 10, 5), 7, 20))
        walk.entity_links = [
            EntityLink("person_1", "person", LinkKind.APPEARED),
            EntityLink("pet_1", "pet", LinkKind.APPEARED),
        ]
        decision = NotificationReasoningEngine().decide(walk, [], None, [routine])

        assert decision.is_routine is True
        assert decision.should_notify is False
        assert decision.suppression_reason == "routine"
        assert decision.routine_id == routine.routine_id
