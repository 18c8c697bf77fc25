"""
Perception Data Types & Contracts
=================================

Typed structures handed in by the external vision collaborator, after
boundary validation:

    raw payload → Detection (one variant per category) + SceneContext

Each detection variant carries only the fields relevant to its category.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple

Vector2 = Tuple[float, float]


class ObjectCategory(str, Enum):
    """Object categories the vision collaborator reports."""
    PERSON = "person"
    VEHICLE = "vehicle"
    PACKAGE = "package"
    PET = "pet"
    OTHER = "other"


class PositionArea(str, Enum):
    """Coarse horizontal zones in frame"""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    BACKGROUND = "background"


# Nominal normalized coordinates for coarse areas
AREA_CENTROIDS: Dict[PositionArea, Vector2] = {
    PositionArea.LEFT: (0.2, 0.6),
    PositionArea.CENTER: (0.5, 0.6),
    PositionArea.RIGHT: (0.8, 0.6),
    PositionArea.BACKGROUND: (0.5, 0.2),
}

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset({"a", "an", "the", "on", "in", "at", "of", "to", "and", "near", "by", "with", "is"})


def tokenize(text: Optional[str]) -> FrozenSet[str]:
    """Lowercase content words of a free-text description."""
    if not text:
        return frozenset()
    return frozenset(t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS)


@dataclass(frozen=True)
class Position:
    """
    Coarse position of a detection.

    Any combination of fields may be present: a coarse ``area``, free-text
    ``specifics`` ("on porch", "near door") and normalized ``x``/``y``
    coordinates in [0, 1].
    """
    area: Optional[PositionArea] = None
    specifics: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def point(self) -> Optional[Vector2]:
        """Best available normalized point (explicit coordinates, else area centroid)."""
        if self.x is not None and self.y is not None:
            return (self.x, self.y)
        if self.area is not None:
            return AREA_CENTROIDS[self.area]
        return None

    @property
    def tokens(self) -> FrozenSet[str]:
        return tokenize(self.specifics)

    def label(self) -> str:
        parts = []
        if self.specifics:
            parts.append(self.specifics)
        if self.area is not None:
            parts.append(self.area.value)
        return ", ".join(parts) if parts else "unknown position"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "area": self.area.value if self.area else None,
            "specifics": self.specifics,
            "x": self.x,
            "y": self.y,
        }


def position_distance(a: Position, b: Position) -> Optional[float]:
    """Euclidean distance between two positions in normalized frame units.

    Returns None when either side lacks a point.
    """
    pa, pb = a.point, b.point
    if pa is None or pb is None:
        return None
    return math.hypot(pa[0] - pb[0], pa[1] - pb[1])


def specifics_overlap(a: Position, b: Position) -> Optional[float]:
    """Overlap coefficient of the free-text specifics; None when either is empty."""
    ta, tb = a.tokens, b.tokens
    if not ta or not tb:
        return None
    return len(ta & tb) / min(len(ta), len(tb))


@dataclass(frozen=True)
class Detection:
    """
    Single validated detection from one frame.

    Subclasses fix ``category`` and add category-specific attributes.
    """
    category: ClassVar[ObjectCategory] = ObjectCategory.OTHER

    description: str
    confidence: float
    position: Optional[Position] = None
    suggested_match: Optional[str] = None
    """Identifier the vision collaborator believes this is (hint only)."""

    def __post_init__(self):
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    def attributes(self) -> Dict[str, Any]:
        """Category-specific fields (empty for the base class)."""
        return {}

    def to_descriptor(self) -> Dict[str, Any]:
        """Plain mapping stored on the Observation's detected objects list."""
        return {
            "type": self.category.value,
            "description": self.description,
            "position": self.position.to_dict() if self.position else None,
            "confidence": self.confidence,
            "suggested_match": self.suggested_match,
            "attributes": self.attributes(),
        }


@dataclass(frozen=True)
class PersonDetection(Detection):
    category: ClassVar[ObjectCategory] = ObjectCategory.PERSON

    activity: Optional[str] = None
    """e.g. "walking dog", "delivering", "standing at door"."""

    def attributes(self) -> Dict[str, Any]:
        return {"activity": self.activity}


@dataclass(frozen=True)
class VehicleDetection(Detection):
    category: ClassVar[ObjectCategory] = ObjectCategory.VEHICLE

    vehicle_type: Optional[str] = None
    color: Optional[str] = None

    def attributes(self) -> Dict[str, Any]:
        return {"vehicle_type": self.vehicle_type, "color": self.color}


@dataclass(frozen=True)
class PackageDetection(Detection):
    category: ClassVar[ObjectCategory] = ObjectCategory.PACKAGE

    carrier: Optional[str] = None
    size: Optional[str] = None

    def attributes(self) -> Dict[str, Any]:
        return {"carrier": self.carrier, "size": self.size}


@dataclass(frozen=True)
class PetDetection(Detection):
    category: ClassVar[ObjectCategory] = ObjectCategory.PET

    species: Optional[str] = None

    def attributes(self) -> Dict[str, Any]:
        return {"species": self.species}


@dataclass(frozen=True)
class OtherDetection(Detection):
    category: ClassVar[ObjectCategory] = ObjectCategory.OTHER

    label: Optional[str] = None

    def attributes(self) -> Dict[str, Any]:
        return {"label": self.label}


DETECTION_TYPES: Dict[ObjectCategory, type] = {
    ObjectCategory.PERSON: PersonDetection,
    ObjectCategory.VEHICLE: VehicleDetection,
    ObjectCategory.PACKAGE: PackageDetection,
    ObjectCategory.PET: PetDetection,
    ObjectCategory.OTHER: OtherDetection,
}


class WeatherCondition(str, Enum):
    CLEAR = "clear"
    CLOUDY = "cloudy"
    RAINING = "raining"
    SNOWING = "snowing"
    FOGGY = "foggy"


class WeatherIntensity(str, Enum):
    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"


class Lighting(str, Enum):
    DAY = "day"
    NIGHT = "night"
    DAWN = "dawn"
    DUSK = "dusk"


ADVERSE_CONDITIONS = frozenset({WeatherCondition.RAINING, WeatherCondition.SNOWING})


@dataclass(frozen=True)
class Weather:
    condition: WeatherCondition = WeatherCondition.CLEAR
    intensity: WeatherIntensity = WeatherIntensity.NONE
    since: Optional[datetime] = None
    """When the current condition began, if the collaborator knows."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition.value,
            "intensity": self.intensity.value,
            "since": self.since.isoformat() if self.since else None,
        }


@dataclass(frozen=True)
class SceneContext:
    """Environmental snapshot for one frame. Immutable once created."""
    camera_id: str
    timestamp: datetime
    weather: Weather = field(default_factory=Weather)
    lighting: Optional[Lighting] = None
    change_magnitude: float = 0.0
    description: str = ""
    active_object_count: int = 0

    def __post_init__(self):
        if not (0.0 <= self.change_magnitude <= 100.0):
            raise ValueError(f"change_magnitude must be in [0, 100], got {self.change_magnitude}")

    def is_raining(self) -> bool:
        return self.weather.condition == WeatherCondition.RAINING

    def is_adverse_weather(self) -> bool:
        return (
            self.weather.condition in ADVERSE_CONDITIONS
            and self.weather.intensity != WeatherIntensity.NONE
        )

    def is_daytime(self) -> bool:
        return self.lighting in (Lighting.DAY, Lighting.DAWN, Lighting.DUSK)

    def weather_duration_seconds(self) -> Optional[float]:
        if self.weather.since is None:
            return None
        return max(0.0, (self.timestamp - self.weather.since).total_seconds())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "timestamp": self.timestamp.isoformat(),
            "weather": self.weather.to_dict(),
            "lighting": self.lighting.value if self.lighting else None,
            "change_magnitude": self.change_magnitude,
            "description": self.description,
            "active_object_count": self.active_object_count,
        }
