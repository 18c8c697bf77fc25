"""
Semantic types: Observations, notification decisions and Routines.

An Observation is one analysed frame event: what was detected, which tracked
entities it touched and, once the reasoning engine has run, whether a human
should hear about it. A Routine is a learned recurring pattern that the
reasoning engine uses to keep quiet about expected activity.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from vigil.config import PRIORITY_LEVELS
from vigil.perception.types import SceneContext
from vigil.perception.validation import parse_scene, parse_timestamp

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
WORKWEEK = frozenset({0, 1, 2, 3, 4})
ALL_DAYS = frozenset(range(7))


class DecisionAlreadyApplied(RuntimeError):
    """Raised when a notification decision is applied to an Observation twice."""


class LinkKind(str, Enum):
    APPEARED = "appeared"
    PRESENT = "present"
    DISAPPEARED = "disappeared"
    MOVED = "moved"


@dataclass(frozen=True)
class EntityLink:
    """Relation between an Observation and a TrackedEntity."""
    identifier: str
    category: str
    kind: LinkKind

    def to_dict(self) -> Dict[str, str]:
        return {"identifier": self.identifier, "category": self.category, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntityLink":
        return cls(
            identifier=str(data["identifier"]),
            category=str(data["category"]),
            kind=LinkKind(data["kind"]),
        )


class NotificationPriority(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_LEVELS.index(self.value)

    def outranks(self, other: "NotificationPriority") -> bool:
        return self.rank > NotificationPriority(other).rank


@dataclass(frozen=True)
class NotificationDecision:
    """Outcome of the reasoning engine for one Observation."""
    should_notify: bool
    priority: NotificationPriority
    message: Optional[str] = None
    suppression_reason: Optional[str] = None
    is_routine: bool = False
    routine_id: Optional[str] = None
    severity_score: float = 0.0
    similarity_score: Optional[float] = None
    reasoning: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Observation:
    """One analysed frame event for one camera."""

    camera_id: str
    occurred_at: datetime
    detections: List[Dict[str, Any]] = field(default_factory=list)
    scene: Optional[SceneContext] = None
    description: str = ""
    entity_links: List[EntityLink] = field(default_factory=list)
    observation_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Filled in by the reasoning engine
    routine_id: Optional[str] = None
    is_routine: bool = False
    notification_sent: bool = False
    notification_priority: NotificationPriority = NotificationPriority.NONE
    notification_message: Optional[str] = None
    suppression_reason: Optional[str] = None
    similarity_score: Optional[float] = None
    severity_score: float = 0.0
    reasoning: Dict[str, Any] = field(default_factory=dict)
    decision_applied: bool = False

    def detected_categories(self) -> FrozenSet[str]:
        """Categories seen in this Observation (detections plus entities still in view)."""
        categories = {d["type"] for d in self.detections if d.get("type")}
        categories.update(
            link.category for link in self.entity_links if link.kind != LinkKind.DISAPPEARED
        )
        return frozenset(categories)

    def has_category(self, category: str) -> bool:
        return category in self.detected_categories()

    def links(self, *kinds: LinkKind) -> List[EntityLink]:
        if not kinds:
            return list(self.entity_links)
        return [link for link in self.entity_links if link.kind in kinds]

    def apply_decision(self, decision: NotificationDecision) -> None:
        """Copy the decision onto the notification fields. Allowed once."""
        if self.decision_applied:
            raise DecisionAlreadyApplied(
                f"Observation {self.observation_id} already carries a decision"
            )
        self.decision_applied = True
        self.notification_priority = decision.priority
        self.notification_message = decision.message
        self.suppression_reason = decision.suppression_reason
        self.is_routine = decision.is_routine
        self.routine_id = decision.routine_id
        self.severity_score = decision.severity_score
        self.similarity_score = decision.similarity_score
        self.reasoning = dict(decision.reasoning)

    def mark_sent(self) -> bool:
        """Flip notification_sent to True. Returns False if it already was."""
        if self.notification_sent:
            return False
        self.notification_sent = True
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "observation_id": self.observation_id,
            "camera_id": self.camera_id,
            "occurred_at": self.occurred_at.isoformat(),
            "description": self.description,
            "detections": [dict(d) for d in self.detections],
            "scene": self.scene.to_dict() if self.scene else None,
            "entity_links": [link.to_dict() for link in self.entity_links],
            "routine_id": self.routine_id,
            "is_routine": self.is_routine,
            "notification_sent": self.notification_sent,
            "notification_priority": self.notification_priority.value,
            "notification_message": self.notification_message,
            "suppression_reason": self.suppression_reason,
            "similarity_score": self.similarity_score,
            "severity_score": self.severity_score,
            "reasoning": dict(self.reasoning),
            "decision_applied": self.decision_applied,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Observation":
        """Rebuild an Observation from ``to_dict`` output.

        Raises:
            KeyError / ValueError: required fields missing or malformed
        """
        camera_id = str(data["camera_id"])
        occurred_at = parse_timestamp(data["occurred_at"])
        scene_raw = data.get("scene")
        scene = None
        if scene_raw:
            scene_ts = parse_timestamp(scene_raw.get("timestamp") or occurred_at)
            scene = parse_scene(scene_raw, camera_id, scene_ts)
        return cls(
            camera_id=camera_id,
            occurred_at=occurred_at,
            detections=[dict(d) for d in data.get("detections") or ()],
            scene=scene,
            description=data.get("description") or "",
            entity_links=[EntityLink.from_dict(link) for link in data.get("entity_links") or ()],
            observation_id=data.get("observation_id") or uuid.uuid4().hex,
            routine_id=data.get("routine_id"),
            is_routine=bool(data.get("is_routine", False)),
            notification_sent=bool(data.get("notification_sent", False)),
            notification_priority=NotificationPriority(data.get("notification_priority") or "none"),
            notification_message=data.get("notification_message"),
            suppression_reason=data.get("suppression_reason"),
            similarity_score=data.get("similarity_score"),
            severity_score=float(data.get("severity_score") or 0.0),
            reasoning=dict(data.get("reasoning") or {}),
            decision_applied=bool(data.get("decision_applied", False)),
        )


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKLY = "weekly"
    SPECIFIC_DAYS = "specific_days"

    @classmethod
    def for_days(cls, days: Iterable[int]) -> "Frequency":
        days = frozenset(days)
        if days == ALL_DAYS:
            return cls.DAILY
        if days == WORKWEEK:
            return cls.WEEKDAYS
        if len(days) == 1:
            return cls.WEEKLY
        return cls.SPECIFIC_DAYS


@dataclass(frozen=True)
class TimePattern:
    """Weekdays (Monday=0) plus an inclusive hour-of-day range."""
    days_of_week: FrozenSet[int]
    start_hour: int
    end_hour: int

    def __post_init__(self):
        if not self.days_of_week or not set(self.days_of_week) <= ALL_DAYS:
            raise ValueError(f"days_of_week must be a non-empty subset of 0..6, got {self.days_of_week}")
        if not (0 <= self.start_hour <= self.end_hour <= 23):
            raise ValueError(f"hour range must satisfy 0 <= start <= end <= 23, got {self.start_hour}-{self.end_hour}")
        object.__setattr__(self, "days_of_week", frozenset(self.days_of_week))

    def matches(self, timestamp: datetime) -> bool:
        return timestamp.weekday() in self.days_of_week and self.start_hour <= timestamp.hour <= self.end_hour

    def overlaps(self, other: "TimePattern") -> bool:
        shares_day = bool(self.days_of_week & other.days_of_week)
        return shares_day and self.start_hour <= other.end_hour and other.start_hour <= self.end_hour

    def widen(self, other: "TimePattern") -> "TimePattern":
        return TimePattern(
            days_of_week=self.days_of_week | other.days_of_week,
            start_hour=min(self.start_hour, other.start_hour),
            end_hour=max(self.end_hour, other.end_hour),
        )

    def describe(self) -> str:
        days = sorted(self.days_of_week)
        frequency = Frequency.for_days(days)
        if frequency == Frequency.DAILY:
            day_text = "daily"
        elif frequency == Frequency.WEEKDAYS:
            day_text = "weekdays"
        else:
            day_text = ", ".join(WEEKDAY_NAMES[d][:3] for d in days)
        return f"{day_text} {self.start_hour:02d}:00-{self.end_hour:02d}:59"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days_of_week": sorted(self.days_of_week),
            "hour_range": [self.start_hour, self.end_hour],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimePattern":
        start, end = data["hour_range"]
        return cls(frozenset(int(d) for d in data["days_of_week"]), int(start), int(end))


def category_jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    a, b = set(a), set(b)
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


@dataclass(frozen=True)
class RoutineSignature:
    """What a routine looks like: its object categories plus a coarse scene description."""
    categories: FrozenSet[str]
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "categories", frozenset(self.categories))

    def overlap(self, categories: Iterable[str]) -> float:
        return category_jaccard(self.categories, categories)


@dataclass(frozen=True)
class RoutineBaseline:
    """Typical scene conditions under which the routine was learned."""
    weather: Optional[str] = None
    lighting: Optional[str] = None


@dataclass(frozen=True)
class Routine:
    """A learned recurring pattern. Replaced (never mutated) on update."""

    camera_id: str
    routine_id: str
    name: str
    description: str
    signature: RoutineSignature
    time_pattern: TimePattern
    frequency: Frequency
    confidence: float
    occurrence_count: int
    first_seen: datetime
    last_seen: datetime
    active: bool = True
    auto_suppress: bool = False
    typical_duration: timedelta = timedelta(0)
    baseline: RoutineBaseline = field(default_factory=RoutineBaseline)

    def __post_init__(self):
        if not (0.0 <= self.confidence <= 100.0):
            raise ValueError(f"Routine confidence must be in [0, 100], got {self.confidence}")
        if self.occurrence_count < 0:
            raise ValueError("occurrence_count must be >= 0")

    def matches_time(self, timestamp: datetime) -> bool:
        return self.time_pattern.matches(timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "routine_id": self.routine_id,
            "name": self.name,
            "description": self.description,
            "signature": {
                "categories": sorted(self.signature.categories),
                "description": self.signature.description,
            },
            "time_pattern": self.time_pattern.to_dict(),
            "frequency": self.frequency.value,
            "confidence": round(self.confidence, 2),
            "occurrence_count": self.occurrence_count,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "active": self.active,
            "auto_suppress": self.auto_suppress,
            "typical_duration_minutes": int(self.typical_duration.total_seconds() // 60),
            "baseline": {"weather": self.baseline.weather, "lighting": self.baseline.lighting},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Routine":
        signature = data["signature"]
        baseline = data.get("baseline") or {}
        return cls(
            camera_id=str(data["camera_id"]),
            routine_id=str(data["routine_id"]),
            name=data.get("name", ""),
            description=data.get("description", ""),
            signature=RoutineSignature(frozenset(signature["categories"]), signature.get("description", "")),
            time_pattern=TimePattern.from_dict(data["time_pattern"]),
            frequency=Frequency(data["frequency"]),
            confidence=float(data["confidence"]),
            occurrence_count=int(data["occurrence_count"]),
            first_seen=parse_timestamp(data["first_seen"]),
            last_seen=parse_timestamp(data["last_seen"]),
            active=bool(data.get("active", True)),
            auto_suppress=bool(data.get("auto_suppress", False)),
            typical_duration=timedelta(minutes=int(data.get("typical_duration_minutes", 0))),
            baseline=RoutineBaseline(baseline.get("weather"), baseline.get("lighting")),
        )
