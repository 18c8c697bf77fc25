"""Tests for boundary validation of raw detection and scene payloads."""

from datetime import datetime

import pytest

from vigil.perception.types import (
    Lighting,
    ObjectCategory,
    PackageDetection,
    PetDetection,
    PositionArea,
    WeatherCondition,
    WeatherIntensity,
)
from vigil.perception.validation import (
    DetectionError,
    parse_detection,
    parse_detections,
    parse_scene,
    parse_timestamp,
)

T = datetime(2026, 10, 5, 9, 0)


class TestParseDetection:
    def test_package_variant(self):
        detection = parse_detection(
            {"type": "package", "description": "brown box", "position": "on porch", "confidence": 0.9,
             "carrier": "UPS"}
        )
        assert isinstance(detection, PackageDetection)
        assert detection.position.specifics == "on porch"
        assert detection.attributes() == {"carrier": "UPS", "size": None}
        assert detection.to_descriptor()["type"] == "package"

    def test_vision_label_aliases(self):
        detection = parse_detection({"category": "Dog", "confidence": 0.7, "attributes": {"species": "dog"}})
        assert isinstance(detection, PetDetection)
        assert detection.category == ObjectCategory.PET
        assert detection.species == "dog"

    def test_unknown_label_is_other(self):
        assert parse_detection({"category": "trash can", "confidence": 0.5}).category == ObjectCategory.OTHER

    def test_area_string_position(self):
        assert parse_detection({"type": "person", "position": "Left", "confidence": 0.5}).position.area == PositionArea.LEFT

    @pytest.mark.parametrize("hint", ["null", "new", "", None])
    def test_empty_hints_dropped(self, hint):
        detection = parse_detection({"type": "vehicle", "confidence": 0.8, "likely_same_as_tracked": hint})
        assert detection.suggested_match is None

    @pytest.mark.parametrize(
        "raw",
        [
            "package",
            {"type": "package"},
            {"type": "package", "confidence": 1.4},
            {"confidence": 0.5},
            {"type": "person", "confidence": 0.5, "position": {"x": 0.5}},
            {"type": "person", "confidence": 0.5, "position": {"x": 2.0, "y": 0.1}},
            {"type": "person", "confidence": 0.5, "description": 42},
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(DetectionError):
            parse_detection(raw)

    def test_batch_keeps_valid(self):
        detections, dropped = parse_detections([{"type": "pet", "confidence": 0.6}, {"type": "pet"}])
        assert len(detections) == 1
        assert len(dropped) == 1


class TestParseScene:
    def test_full_payload(self):
        scene = parse_scene(
            {
                "weather": {"condition": "raining", "intensity": "heavy", "since": "2026-10-05T08:15:00"},
                "lighting": "night",
                "change_magnitude": 35,
                "scene_description": "porch in the rain",
            },
            "cam1",
            T,
        )
        assert scene.weather.condition == WeatherCondition.RAINING
        assert scene.weather.intensity == WeatherIntensity.HEAVY
        assert scene.weather_duration_seconds() == 45 * 60
        assert scene.lighting == Lighting.NIGHT
        assert scene.is_adverse_weather()
        assert scene.description == "porch in the rain"

    def test_unknown_values_fall_back(self):
        scene = parse_scene({"weather": "hail", "lighting": "eclipse", "change_magnitude": "lots"}, "cam1", T)
        assert scene.weather.condition == WeatherCondition.CLEAR
        assert scene.lighting is None
        assert scene.change_magnitude == 0.0
        assert not scene.is_adverse_weather()

    def test_missing_payload(self):
        scene = parse_scene(None, "cam1", T)
        assert scene.camera_id == "cam1"
        assert scene.timestamp == T


class TestParseTimestamp:
    def test_iso_string(self):
        assert parse_timestamp("2026-10-05T09:00:00") == T

    @pytest.mark.parametrize("value", [None, "", "tomorrow", 12345])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)
