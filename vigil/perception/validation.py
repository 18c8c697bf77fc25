"""
Boundary validation for vision collaborator payloads.

Raw detections arrive as loosely-typed mappings (the shape a vision model
returns as JSON). They are validated here, one at a time, into the tagged
``Detection`` variants. A malformed detection raises ``DetectionError``;
``parse_detections`` drops it with a warning and keeps the rest of the frame.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .types import (
    DETECTION_TYPES,
    Detection,
    Lighting,
    ObjectCategory,
    Position,
    PositionArea,
    SceneContext,
    Weather,
    WeatherCondition,
    WeatherIntensity,
)

logger = logging.getLogger(__name__)


class DetectionError(ValueError):
    """Raised when a raw detection is missing required fields or is malformed."""


# Vision labels that map onto the coarse categories
CATEGORY_ALIASES: Dict[str, ObjectCategory] = {
    "people": ObjectCategory.PERSON,
    "human": ObjectCategory.PERSON,
    "car": ObjectCategory.VEHICLE,
    "truck": ObjectCategory.VEHICLE,
    "van": ObjectCategory.VEHICLE,
    "bus": ObjectCategory.VEHICLE,
    "motorcycle": ObjectCategory.VEHICLE,
    "bicycle": ObjectCategory.VEHICLE,
    "box": ObjectCategory.PACKAGE,
    "parcel": ObjectCategory.PACKAGE,
    "dog": ObjectCategory.PET,
    "cat": ObjectCategory.PET,
    "animal": ObjectCategory.PET,
}

# Which raw keys feed each variant's attributes
_ATTRIBUTE_KEYS: Dict[ObjectCategory, Tuple[str, ...]] = {
    ObjectCategory.PERSON: ("activity",),
    ObjectCategory.VEHICLE: ("vehicle_type", "color"),
    ObjectCategory.PACKAGE: ("carrier", "size"),
    ObjectCategory.PET: ("species",),
    ObjectCategory.OTHER: ("label",),
}


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime or an ISO-8601 string."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid ISO-8601 timestamp: {value!r}") from exc
    raise ValueError(f"Timestamp must be a datetime or ISO string, got {value!r}")


def is_aware(timestamp: datetime) -> bool:
    return timestamp.tzinfo is not None and timestamp.utcoffset() is not None


def parse_category(value: Any) -> ObjectCategory:
    if not isinstance(value, str) or not value.strip():
        raise DetectionError(f"Detection category missing or not a string: {value!r}")
    key = value.strip().lower()
    try:
        return ObjectCategory(key)
    except ValueError:
        pass
    if key in CATEGORY_ALIASES:
        return CATEGORY_ALIASES[key]
    logger.debug(f"Unmapped vision label '{key}' treated as 'other'")
    return ObjectCategory.OTHER


def parse_position(value: Any) -> Optional[Position]:
    """Position may be a bare string, a mapping, or absent."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return Position(area=PositionArea(text.lower()))
        except ValueError:
            return Position(specifics=text)
    if isinstance(value, Mapping):
        area = value.get("area")
        parsed_area = None
        if isinstance(area, str) and area.strip():
            try:
                parsed_area = PositionArea(area.strip().lower())
            except ValueError:
                logger.debug(f"Unknown position area '{area}' ignored")
        x, y = value.get("x"), value.get("y")
        if (x is None) != (y is None):
            raise DetectionError("Position coordinates require both x and y")
        if x is not None:
            try:
                x, y = float(x), float(y)
            except (TypeError, ValueError) as exc:
                raise DetectionError(f"Position coordinates must be numeric: {value!r}") from exc
            if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
                raise DetectionError(f"Position coordinates must be normalized to [0, 1], got ({x}, {y})")
        specifics = value.get("specifics")
        if specifics is not None and not isinstance(specifics, str):
            specifics = str(specifics)
        position = Position(area=parsed_area, specifics=specifics or None, x=x, y=y)
        if position.point is None and not position.specifics:
            return None
        return position
    raise DetectionError(f"Unsupported position payload: {value!r}")


def parse_detection(raw: Any) -> Detection:
    """Validate one raw detection into its category variant."""
    if not isinstance(raw, Mapping):
        raise DetectionError(f"Detection must be a mapping, got {type(raw).__name__}")

    category = parse_category(raw.get("category", raw.get("type")))

    description = raw.get("description")
    if description is None:
        description = ""
    if not isinstance(description, str):
        raise DetectionError(f"Detection description must be a string, got {description!r}")

    if "confidence" not in raw:
        raise DetectionError("Detection missing required field 'confidence'")
    try:
        confidence = float(raw["confidence"])
    except (TypeError, ValueError) as exc:
        raise DetectionError(f"Detection confidence not numeric: {raw['confidence']!r}") from exc
    if not (0.0 <= confidence <= 1.0):
        raise DetectionError(f"Detection confidence must be in [0, 1], got {confidence}")

    hint = raw.get("suggested_match", raw.get("likely_same_as_tracked"))
    if hint is not None:
        hint = str(hint).strip() or None
        if hint is not None and hint.lower() in {"null", "none", "new"}:
            hint = None

    attributes = raw.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        raise DetectionError("Detection attributes must be a mapping")
    extra = {}
    for key in _ATTRIBUTE_KEYS[category]:
        value = attributes.get(key, raw.get(key))
        extra[key] = str(value) if value is not None else None

    detection_cls = DETECTION_TYPES[category]
    return detection_cls(
        description=description.strip(),
        confidence=confidence,
        position=parse_position(raw.get("position")),
        suggested_match=hint,
        **extra,
    )


def parse_detections(raws: Sequence[Any]) -> Tuple[List[Detection], List[str]]:
    """Validate a frame's detections, dropping malformed ones individually.

    Returns:
        (valid detections, list of drop reasons)
    """
    detections: List[Detection] = []
    dropped: List[str] = []
    for index, raw in enumerate(raws or ()):
        try:
            detections.append(parse_detection(raw))
        except DetectionError as exc:
            logger.warning(f"Dropping malformed detection #{index}: {exc}")
            dropped.append(f"#{index}: {exc}")
    return detections, dropped


def _parse_enum(enum_cls, value: Any, default):
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown {enum_cls.__name__} '{value}', using {default}")
        return default


def parse_scene(raw: Optional[Mapping[str, Any]], camera_id: str, timestamp: datetime) -> SceneContext:
    """Build a SceneContext from the collaborator's scene payload.

    Scene data is advisory, so unknown values fall back to neutral defaults
    rather than failing the frame.
    """
    raw = raw or {}
    weather_raw = raw.get("weather") or {}
    if isinstance(weather_raw, str):
        weather_raw = {"condition": weather_raw}
    since = weather_raw.get("since")
    try:
        since_ts = parse_timestamp(since) if since else None
    except ValueError:
        logger.warning(f"Ignoring unparseable weather.since: {since!r}")
        since_ts = None
    weather = Weather(
        condition=_parse_enum(WeatherCondition, weather_raw.get("condition"), WeatherCondition.CLEAR),
        intensity=_parse_enum(WeatherIntensity, weather_raw.get("intensity"), WeatherIntensity.NONE),
        since=since_ts,
    )
    lighting = _parse_enum(Lighting, raw.get("lighting"), None)

    try:
        magnitude = float(raw.get("change_magnitude", 0.0) or 0.0)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric change_magnitude {raw.get('change_magnitude')!r}, using 0")
        magnitude = 0.0
    magnitude = min(100.0, max(0.0, magnitude))

    description = raw.get("scene_description", raw.get("description", "")) or ""
    try:
        active = int(raw.get("active_object_count", 0) or 0)
    except (TypeError, ValueError):
        active = 0

    return SceneContext(
        camera_id=str(camera_id),
        timestamp=timestamp,
        weather=weather,
        lighting=lighting,
        change_magnitude=magnitude,
        description=str(description),
        active_object_count=active,
    )
