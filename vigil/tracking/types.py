"""
Tracked entity types.

A TrackedEntity is the persistent identity of one physical object inside one
camera's field of view. Only the Object Identity Resolver mutates entities,
and every mutation goes through the methods below so ``duration`` is always
recomputed with ``compute_duration``.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Deque, Dict, Optional

from vigil.perception.types import ObjectCategory, Position


class EntityStatus(str, Enum):
    PRESENT = "present"
    DISAPPEARED = "disappeared"
    UNCERTAIN = "uncertain"


def compute_duration(first_seen: datetime, last_seen: datetime) -> timedelta:
    """Presence duration; never negative."""
    return max(timedelta(0), last_seen - first_seen)


def duration_human(duration: timedelta) -> str:
    """Render a duration the way notifications show it ("Just appeared", "42m", "3h 0m")."""
    minutes = int(duration.total_seconds() // 60)
    if minutes < 1:
        return "Just appeared"
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


@dataclass
class PositionSample:
    position: Optional[Position]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict() if self.position else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TrackedEntity:
    """Persistent identity for one physical object instance on one camera."""

    camera_id: str
    category: ObjectCategory
    identifier: str
    first_seen: datetime
    last_seen: datetime
    status: EntityStatus = EntityStatus.PRESENT
    disappeared_at: Optional[datetime] = None
    duration: timedelta = timedelta(0)
    history_cap: int = 50
    positions: Deque[PositionSample] = field(default_factory=deque)
    description: str = ""
    confidence: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("TrackedEntity requires an identifier")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")
        self.positions = deque(self.positions, maxlen=self.history_cap)
        self.last_seen = max(self.last_seen, self.first_seen)
        self.duration = compute_duration(self.first_seen, self.last_seen)

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    @property
    def last_position(self) -> Optional[Position]:
        for sample in reversed(self.positions):
            if sample.position is not None:
                return sample.position
        return None

    def is_active(self) -> bool:
        """Present or uncertain: still subject to the grace-window sweep."""
        return self.status in (EntityStatus.PRESENT, EntityStatus.UNCERTAIN)

    def observe(
        self,
        timestamp: datetime,
        position: Optional[Position],
        description: str,
        confidence: float,
    ) -> None:
        """Record a sighting: extend last_seen, append a position sample, refresh descriptor."""
        self.last_seen = max(self.last_seen, timestamp)
        self.positions.append(PositionSample(position=position, timestamp=timestamp))
        if description:
            self.description = description
        self.confidence = confidence
        self.duration = compute_duration(self.first_seen, self.last_seen)

    def mark_disappeared(self, timestamp: datetime) -> bool:
        """Transition to disappeared. Returns False if already disappeared."""
        if self.status == EntityStatus.DISAPPEARED:
            return False
        self.status = EntityStatus.DISAPPEARED
        self.disappeared_at = timestamp
        self.duration = compute_duration(self.first_seen, self.last_seen)
        return True

    def duration_human(self) -> str:
        return duration_human(self.duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "category": self.category.value,
            "identifier": self.identifier,
            "status": self.status.value,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "disappeared_at": self.disappeared_at.isoformat() if self.disappeared_at else None,
            "duration_minutes": self.duration_minutes,
            "positions": [s.to_dict() for s in self.positions],
            "description": self.description,
            "confidence": self.confidence,
            "metadata": dict(self.metadata),
        }
