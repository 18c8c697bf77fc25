"""
In-memory stores and JSON Lines I/O.

- EntityStore: the TrackedEntity set of one camera. Only that camera's lane
  writes to it.
- ObservationLog: append-only log shared by all lanes; readers take tuple
  snapshots so the learner never sees a half-written list.
- RoutineStore: Routines per camera, replaced wholesale when the learner
  commits a pass.

Durable persistence is left to the embedding application; ``write_jsonl`` and
``read_jsonl`` cover export and replay.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from vigil.perception.types import ObjectCategory
from vigil.semantic.types import Observation, Routine
from vigil.tracking.types import EntityStatus, TrackedEntity

logger = logging.getLogger(__name__)


class EntityStore:
    """Tracked entities of one camera, keyed by identifier. Never hard-deletes."""

    def __init__(self, camera_id: str):
        self.camera_id = camera_id
        self._entities: Dict[str, TrackedEntity] = {}

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[TrackedEntity]:
        return iter(list(self._entities.values()))

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._entities

    def get(self, identifier: str) -> Optional[TrackedEntity]:
        return self._entities.get(identifier)

    def add(self, entity: TrackedEntity) -> None:
        if entity.camera_id != self.camera_id:
            raise ValueError(
                f"Entity {entity.identifier} belongs to camera '{entity.camera_id}', "
                f"not '{self.camera_id}'"
            )
        if entity.identifier in self._entities:
            raise ValueError(f"Entity {entity.identifier} already stored")
        self._entities[entity.identifier] = entity

    def candidates(self, category: ObjectCategory, now: datetime, window_seconds: float) -> List[TrackedEntity]:
        """Present entities of ``category`` whose last sighting is within the window."""
        limit = timedelta(seconds=window_seconds)
        return [
            e for e in self._entities.values()
            if e.category == category
            and e.status == EntityStatus.PRESENT
            and now - e.last_seen <= limit
        ]

    def active(self) -> List[TrackedEntity]:
        return [e for e in self._entities.values() if e.is_active()]

    def snapshot(self) -> Tuple[TrackedEntity, ...]:
        return tuple(self._entities.values())


class ObservationLog:
    """Append-only Observation log shared across camera lanes."""

    def __init__(self, observations: Iterable[Observation] = ()):
        self._items: List[Observation] = list(observations)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def append(self, observation: Observation) -> None:
        with self._lock:
            self._items.append(observation)

    def snapshot(self, camera_id: Optional[str] = None) -> Tuple[Observation, ...]:
        with self._lock:
            items = tuple(self._items)
        if camera_id is None:
            return items
        return tuple(o for o in items if o.camera_id == camera_id)

    def recent(self, camera_id: str, since: datetime) -> Tuple[Observation, ...]:
        """Observations of ``camera_id`` that occurred at or after ``since``."""
        return tuple(o for o in self.snapshot(camera_id) if o.occurred_at >= since)

    def cameras(self) -> List[str]:
        return sorted({o.camera_id for o in self.snapshot()})


class RoutineStore:
    """Routines by camera. The learner task is the single writer."""

    def __init__(self, routines: Iterable[Routine] = ()):
        self._routines: Dict[str, Dict[str, Routine]] = {}
        self._lock = threading.Lock()
        for routine in routines:
            self._routines.setdefault(routine.camera_id, {})[routine.routine_id] = routine

    def all(self, camera_id: str) -> Tuple[Routine, ...]:
        with self._lock:
            return tuple(self._routines.get(camera_id, {}).values())

    def active(self, camera_id: str) -> Tuple[Routine, ...]:
        return tuple(r for r in self.all(camera_id) if r.active)

    def get(self, camera_id: str, routine_id: str) -> Optional[Routine]:
        with self._lock:
            return self._routines.get(camera_id, {}).get(routine_id)

    def apply(self, camera_id: str, result: Any) -> int:
        """Commit a learner result (created, updated and deactivated routines) in one step."""
        changed = list(result.created) + list(result.updated) + list(result.deactivated)
        for routine in changed:
            if routine.camera_id != camera_id:
                raise ValueError(f"Routine {routine.routine_id} belongs to camera '{routine.camera_id}'")
        with self._lock:
            routines = dict(self._routines.get(camera_id, {}))
            for routine in changed:
                routines[routine.routine_id] = routine
            self._routines[camera_id] = routines
        if changed:
            logger.info(
                f"Camera {camera_id}: {len(result.created)} routines created, "
                f"{len(result.updated)} updated, {len(result.deactivated)} deactivated"
            )
        return len(changed)

    def set_auto_suppress(self, camera_id: str, routine_id: str, enabled: bool) -> Routine:
        with self._lock:
            routine = self._routines.get(camera_id, {}).get(routine_id)
            if routine is None:
                raise KeyError(f"No routine '{routine_id}' for camera '{camera_id}'")
            updated = replace(routine, auto_suppress=enabled)
            self._routines[camera_id] = {**self._routines[camera_id], routine_id: updated}
        return updated


def read_jsonl(path: Path) -> List[Dict[str, Any]]:
    """Load a JSON Lines file. Blank lines are ignored; undecodable lines are skipped with a warning."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"JSONL file not found: {path}")
    records: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning(f"{path}:{lineno}: skipping undecodable line ({exc})")
                continue
            if not isinstance(record, dict):
                logger.warning(f"{path}:{lineno}: skipping non-object record")
                continue
            records.append(record)
    return records


def write_jsonl(path: Path, records: Iterable[Dict[str, Any]]) -> int:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8") as fh:
        for record in records:
            fh.write(json.dumps(record, default=str) + "\n")
            count += 1
    logger.info(f"Wrote {count} records to {path}")
    return count
