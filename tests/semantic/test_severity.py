"""Tests for severity scoring and priority cut points."""

from datetime import datetime, timedelta

import pytest

from vigil.config import ReasoningConfig
from vigil.perception.types import ObjectCategory, SceneContext, Weather, WeatherCondition, WeatherIntensity
from vigil.semantic.severity import SeverityScorer, describe_entity
from vigil.semantic.types import NotificationPriority, Observation
from vigil.tracking.types import TrackedEntity

T = datetime(2026, 10, 5, 15, 0)


def pet(present_for):
    return TrackedEntity(
        camera_id="yard",
        category=ObjectCategory.PET,
        identifier="pet_1",
        first_seen=T - present_for,
        last_seen=T,
    )


def weather_scene(intensity, since_minutes=None, change=0.0):
    since = T - timedelta(minutes=since_minutes) if since_minutes is not None else None
    return SceneContext(
        camera_id="yard",
        timestamp=T,
        weather=Weather(WeatherCondition.SNOWING, intensity, since=since),
        change_magnitude=change,
    )


@pytest.fixture
def scorer():
    return SeverityScorer(ReasoningConfig())


class TestPriorityTiers:
    @pytest.mark.parametrize(
        "score,priority",
        [
            (0.0, NotificationPriority.NONE),
            (14.9, NotificationPriority.NONE),
            (15.0, NotificationPriority.LOW),
            (35.0, NotificationPriority.MEDIUM),
            (60.0, NotificationPriority.HIGH),
            (85.0, NotificationPriority.URGENT),
        ],
    )
    def test_cut_points(self, scorer, score, priority):
        assert scorer.priority_for(score) == priority

    def test_custom_cut_points(self):
        config = ReasoningConfig(cut_points={"low": 5.0, "medium": 10.0, "high": 20.0, "urgent": 30.0})
        assert SeverityScorer(config).priority_for(12.0) == NotificationPriority.MEDIUM


class TestWeatherExposure:
    def test_heavy_weather_scales_up(self, scorer):
        obs = Observation(camera_id="yard", occurred_at=T)
        light = scorer.assess(obs, [pet(timedelta(minutes=20))], weather_scene(WeatherIntensity.LIGHT, 20))
        heavy = scorer.assess(obs, [pet(timedelta(minutes=20))], weather_scene(WeatherIntensity.HEAVY, 20))

        assert light.breakdown()["weather"] == pytest.approx(20.0)
        assert heavy.breakdown()["weather"] == pytest.approx(40.0)

    def test_short_exposure_ramps_in(self, scorer):
        obs = Observation(camera_id="yard", occurred_at=T)
        result = scorer.assess(obs, [pet(timedelta(minutes=5))], weather_scene(WeatherIntensity.MODERATE, 60))
        assert result.breakdown()["weather"] == pytest.approx(15.0)

    def test_unexposed_categories_ignored(self, scorer):
        person = TrackedEntity(
            camera_id="yard", category=ObjectCategory.PERSON, identifier="person_1",
            first_seen=T - timedelta(minutes=5), last_seen=T,
        )
        obs = Observation(camera_id="yard", occurred_at=T)
        result = scorer.assess(obs, [person], weather_scene(WeatherIntensity.HEAVY, 60))
        assert "weather" not in result.breakdown()


class TestOtherFactors:
    def test_score_is_capped(self, scorer):
        obs = Observation(camera_id="yard", occurred_at=T)
        result = scorer.assess(obs, [pet(timedelta(hours=5))], weather_scene(WeatherIntensity.HEAVY, 90, change=100.0))

        assert result.score == 100.0
        assert result.priority == NotificationPriority.URGENT

    def test_change_magnitude(self, scorer):
        obs = Observation(camera_id="yard", occurred_at=T)
        scene = SceneContext(camera_id="yard", timestamp=T, change_magnitude=50.0)
        result = scorer.assess(obs, [], scene)

        assert result.score == pytest.approx(10.0)
        assert result.message() == "scene change 50%"

    def test_describe_entity_without_position(self):
        assert describe_entity(pet(timedelta(minutes=1))) == "Pet"
