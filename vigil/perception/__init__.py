"""
Perception Boundary Package
===========================

Typed inputs handed in by the external vision collaborator and the
validation that turns raw payloads into them.

Modules:
    - types: ObjectCategory, Position, Detection variants, SceneContext
    - validation: raw payload → validated detections / scene context
"""

from .types import (
    ObjectCategory,
    PositionArea,
    Position,
    Detection,
    PersonDetection,
    VehicleDetection,
    PackageDetection,
    PetDetection,
    OtherDetection,
    WeatherCondition,
    WeatherIntensity,
    Lighting,
    Weather,
    SceneContext,
    tokenize,
)

from .validation import (
    DetectionError,
    parse_detection,
    parse_detections,
    parse_scene,
    parse_timestamp,
)

__all__ = [
    # Types
    "ObjectCategory",
    "PositionArea",
    "Position",
    "Detection",
    "PersonDetection",
    "VehicleDetection",
    "PackageDetection",
    "PetDetection",
    "OtherDetection",
    "WeatherCondition",
    "WeatherIntensity",
    "Lighting",
    "Weather",
    "SceneContext",
    "tokenize",
    # Validation
    "DetectionError",
    "parse_detection",
    "parse_detections",
    "parse_scene",
    "parse_timestamp",
]
