"""Tests for Observations, decisions and routine value types."""

from datetime import datetime, timedelta

import pytest

from vigil.perception.types import SceneContext, Weather, WeatherCondition, WeatherIntensity
from vigil.semantic.types import (
    DecisionAlreadyApplied,
    EntityLink,
    Frequency,
    LinkKind,
    NotificationDecision,
    NotificationPriority,
    Observation,
    TimePattern,
)

T = datetime(2026, 10, 5, 7, 20)


def make_observation():
    return Observation(
        camera_id="front_door",
        occurred_at=T,
        detections=[{"type": "package", "description": "box"}],
        scene=SceneContext(
            camera_id="front_door",
            timestamp=T,
            weather=Weather(WeatherCondition.RAINING, WeatherIntensity.LIGHT, since=T - timedelta(minutes=30)),
            description="porch with a box",
        ),
        description="porch with a box",
        entity_links=[
            EntityLink("package_1", "package", LinkKind.APPEARED),
            EntityLink("person_1", "person", LinkKind.DISAPPEARED),
        ],
    )


class TestObservation:
    def test_detected_categories_skip_departed_entities(self):
        assert make_observation().detected_categories() == frozenset({"package"})

    def test_decision_applied_once(self):
        obs = make_observation()
        decision = NotificationDecision(should_notify=True, priority=NotificationPriority.LOW, message="new package")

        obs.apply_decision(decision)
        assert obs.notification_priority == NotificationPriority.LOW
        assert obs.notification_message == "new package"

        with pytest.raises(DecisionAlreadyApplied):
            obs.apply_decision(decision)

    def test_mark_sent_once(self):
        obs = make_observation()
        assert obs.mark_sent() is True
        assert obs.mark_sent() is False
        assert obs.notification_sent is True

    def test_dict_round_trip_keeps_scene_and_links(self):
        obs = make_observation()
        restored = Observation.from_dict(obs.to_dict())

        assert restored.observation_id == obs.observation_id
        assert restored.entity_links == obs.entity_links
        assert restored.scene.weather.since == T - timedelta(minutes=30)
        assert restored.scene.description == "porch with a box"


class TestTimePattern:
    def test_matches(self):
        pattern = TimePattern(frozenset({0, 1, 2, 3, 4}), 7, 8)
        assert pattern.matches(T)
        assert not pattern.matches(T + timedelta(days=5))
        assert not pattern.matches(T.replace(hour=9))

    def test_invalid(self):
        with pytest.raises(ValueError):
            TimePattern(frozenset(), 7, 8)
        with pytest.raises(ValueError):
            TimePattern(frozenset({7}), 7, 8)
        with pytest.raises(ValueError):
            TimePattern(frozenset({0}), 9, 8)

    def test_widen_and_overlap(self):
        a = TimePattern(frozenset({0}), 7, 7)
        b = TimePattern(frozenset({0, 1}), 8, 9)
        assert not a.overlaps(b)
        assert a.widen(b) == TimePattern(frozenset({0, 1}), 7, 9)

    def test_describe(self):
        assert TimePattern(frozenset(range(5)), 7, 7).describe() == "weekdays 07:00-07:59"
        assert TimePattern(frozenset({5, 6}), 10, 11).describe() == "Sat, Sun 10:00-11:59"


class TestFrequencyAndPriority:
    @pytest.mark.parametrize(
        "days,frequency",
        [
            (range(7), Frequency.DAILY),
            (range(5), Frequency.WEEKDAYS),
            ({3}, Frequency.WEEKLY),
            ({0, 3}, Frequency.SPECIFIC_DAYS),
        ],
    )
    def test_frequency_for_days(self, days, frequency):
        assert Frequency.for_days(days) == frequency

    def test_outranks(self):
        assert NotificationPriority.HIGH.outranks(NotificationPriority.MEDIUM)
        assert not NotificationPriority.MEDIUM.outranks(NotificationPriority.MEDIUM)
