"""
Routine Pattern Learner
=======================

Unsupervised discovery of recurring, time-based behaviour from the
Observation log of one camera.

Pipeline per pass:
1. Skip malformed records (no timestamp, wrong camera, nothing detected).
2. Key each Observation by (category set, weekday, coarse hour bucket) and
   assemble sibling weekdays with the same categories and bucket into one
   group, so days-of-week can be derived from it.
3. Collapse each group to one occurrence per calendar day (first and last
   sighting) and cluster occurrence start times with DBSCAN. Noise points are
   outliers; every dense cluster is a separate routine candidate.
4. Derive hour range, days of week, confidence and frequency per candidate.
5. Reinforce an overlapping active Routine or create a new one when the
   occurrence and confidence thresholds are met.
6. Deactivate active Routines gone stale.

The learner is pure with respect to its inputs: existing Routines are never
mutated, updated versions are returned for the store to commit.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import logging
import statistics
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import DBSCAN

from vigil.config import RoutineConfig
from vigil.perception.validation import is_aware
from vigil.semantic.types import (
    WEEKDAY_NAMES,
    Frequency,
    Observation,
    Routine,
    RoutineBaseline,
    RoutineSignature,
    TimePattern,
)

logger = logging.getLogger(__name__)

GroupKey = Tuple[FrozenSet[str], int]


@dataclass(frozen=True)
class ObservationWindow:
    """Half-open learning window [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"window end {self.end} must be after start {self.start}")

    @classmethod
    def ending_at(cls, end: datetime, days: int) -> "ObservationWindow":
        return cls(start=end - timedelta(days=days), end=end)

    def __contains__(self, timestamp: datetime) -> bool:
        return self.start <= timestamp < self.end

    def comparable(self, timestamp: datetime) -> bool:
        """Naive and aware datetimes cannot be ordered against each other."""
        return is_aware(timestamp) == is_aware(self.start)

    def dates(self) -> List[date]:
        days = (self.end.date() - self.start.date()).days
        return [self.start.date() + timedelta(days=i) for i in range(days + 1)]

    def covers_slot(self, day: date, start_hour: int, end_hour: int) -> bool:
        """True if hours start_hour..end_hour (inclusive) of ``day`` lie inside the window."""
        slot_start = datetime.combine(day, time(start_hour), tzinfo=self.start.tzinfo)
        slot_end = slot_start + timedelta(hours=end_hour - start_hour + 1)
        return slot_start >= self.start and slot_end <= self.end


@dataclass
class LearnResult:
    """Routine changes produced by one learner pass."""
    created: List[Routine] = field(default_factory=list)
    updated: List[Routine] = field(default_factory=list)
    deactivated: List[Routine] = field(default_factory=list)
    skipped: int = 0
    outliers: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deactivated)


@dataclass
class DayOccurrence:
    """One calendar day on which a pattern was seen."""
    day: date
    first: datetime
    last: datetime
    weather: Counter = field(default_factory=Counter)
    lighting: Counter = field(default_factory=Counter)
    descriptions: Counter = field(default_factory=Counter)

    @property
    def start_minute(self) -> int:
        return self.first.hour * 60 + self.first.minute

    @property
    def span(self) -> timedelta:
        return self.last - self.first

    def add(self, observation: Observation) -> None:
        self.first = min(self.first, observation.occurred_at)
        self.last = max(self.last, observation.occurred_at)
        scene = observation.scene
        if scene is not None:
            self.weather[scene.weather.condition.value] += 1
            if scene.lighting is not None:
                self.lighting[scene.lighting.value] += 1
        text = (observation.description or "").strip()
        if text:
            self.descriptions[text] += 1


@dataclass
class RoutineCandidate:
    categories: FrozenSet[str]
    occurrences: List[DayOccurrence]
    time_pattern: TimePattern
    confidence: float
    consistent_days: int
    eligible_days: int

    @property
    def first_seen(self) -> datetime:
        return min(o.first for o in self.occurrences)

    @property
    def last_seen(self) -> datetime:
        return max(o.last for o in self.occurrences)

    @property
    def typical_duration(self) -> timedelta:
        return timedelta(seconds=statistics.median(o.span.total_seconds() for o in self.occurrences))

    def baseline(self) -> RoutineBaseline:
        weather, lighting = Counter(), Counter()
        for occurrence in self.occurrences:
            weather.update(occurrence.weather)
            lighting.update(occurrence.lighting)
        return RoutineBaseline(
            weather=weather.most_common(1)[0][0] if weather else None,
            lighting=lighting.most_common(1)[0][0] if lighting else None,
        )

    def scene_description(self) -> str:
        descriptions = Counter()
        for occurrence in self.occurrences:
            descriptions.update(occurrence.descriptions)
        return descriptions.most_common(1)[0][0] if descriptions else ""


def _category_label(categories: Iterable[str]) -> str:
    names = sorted(categories)
    return " + ".join(names).capitalize()


class RoutineLearner:
    """
    Batch learner turning an Observation log into Routine records.

    Thread-safe in the sense that it holds no mutable state between passes;
    the runtime runs it in a worker thread over a log snapshot.
    """

    def __init__(self, config: Optional[RoutineConfig] = None):
        self.config = config or RoutineConfig()

    def learn(
        self,
        camera_id: str,
        observations: Iterable[Any],
        now: datetime,
        existing: Sequence[Routine] = (),
    ) -> LearnResult:
        """Convenience wrapper using the configured lookback window ending at ``now``."""
        window = ObservationWindow.ending_at(now, self.config.lookback_days)
        return self.discover_patterns(camera_id, observations, window, existing)

    def discover_patterns(
        self,
        camera_id: str,
        observations: Iterable[Any],
        window: ObservationWindow,
        existing: Sequence[Routine] = (),
    ) -> LearnResult:
        """
        Run one learning pass.

        Args:
            camera_id: camera whose routines are learned
            observations: Observations (or their ``to_dict`` mappings)
            window: time window to learn from
            existing: current Routines of the camera

        Returns:
            LearnResult with created, updated and deactivated Routines and the
            number of skipped records
        """
        result = LearnResult()
        usable = self._filter(camera_id, observations, window, result)

        groups = self._group(usable)
        logger.debug(f"Camera {camera_id}: {len(usable)} observations in {len(groups)} groups")

        candidates: List[RoutineCandidate] = []
        for (categories, bucket), days in groups.items():
            candidates.extend(self._cluster(categories, bucket, days, window, result))

        # Current version of every routine, keyed by id
        pool: Dict[str, Routine] = {r.routine_id: r for r in existing if r.camera_id == camera_id}
        reinforced: Dict[str, Routine] = {}
        created: Dict[str, Routine] = {}

        for candidate in candidates:
            # Candidates from one pass come from distinct clusters and stay distinct
            prior = [r for rid, r in pool.items() if rid not in created]
            match = self._find_overlap(candidate, prior)
            if match is not None:
                updated = self._reinforce(match, candidate)
                if updated != match:
                    pool[updated.routine_id] = updated
                    reinforced[updated.routine_id] = updated
                continue

            if (
                len(candidate.occurrences) >= self.config.min_occurrences
                and candidate.confidence >= self.config.confidence_threshold
            ):
                routine = self._create(camera_id, candidate)
                pool[routine.routine_id] = routine
                created[routine.routine_id] = routine
                logger.info(
                    f"Camera {camera_id}: new routine '{routine.name}' "
                    f"({routine.confidence:.0f}% over {routine.occurrence_count} days)"
                )
            else:
                logger.debug(
                    f"Candidate {_category_label(candidate.categories)} "
                    f"{candidate.time_pattern.describe()} below thresholds "
                    f"({len(candidate.occurrences)} days, {candidate.confidence:.0f}%)"
                )

        stale_before = window.end - timedelta(seconds=self.config.staleness_window_seconds)
        for routine_id, routine in list(pool.items()):
            if routine_id in created or not routine.active:
                continue
            if routine.last_seen < stale_before:
                deactivated = replace(routine, active=False)
                pool[routine_id] = deactivated
                reinforced.pop(routine_id, None)
                result.deactivated.append(deactivated)
                logger.info(
                    f"Camera {camera_id}: routine '{routine.name}' deactivated "
                    f"(last seen {routine.last_seen.isoformat()})"
                )

        result.created = list(created.values())
        result.updated = list(reinforced.values())
        return result

    def _filter(
        self,
        camera_id: str,
        observations: Iterable[Any],
        window: ObservationWindow,
        result: LearnResult,
    ) -> List[Observation]:
        usable: List[Observation] = []
        for record in observations:
            observation = record
            if not isinstance(record, Observation):
                try:
                    observation = Observation.from_dict(record)
                except (KeyError, TypeError, ValueError, AttributeError) as exc:
                    logger.warning(f"Skipping malformed observation record: {exc}")
                    result.skipped += 1
                    continue
            if not isinstance(observation.occurred_at, datetime):
                logger.warning(f"Skipping observation {observation.observation_id}: no timestamp")
                result.skipped += 1
                continue
            if observation.camera_id != camera_id:
                logger.warning(
                    f"Skipping observation {observation.observation_id}: camera "
                    f"'{observation.camera_id}' != '{camera_id}'"
                )
                result.skipped += 1
                continue
            if not observation.detected_categories():
                result.skipped += 1
                continue
            if not window.comparable(observation.occurred_at):
                logger.warning(
                    f"Skipping observation {observation.observation_id}: timestamp "
                    f"{observation.occurred_at.isoformat()} mixes naive and aware times"
                )
                result.skipped += 1
                continue
            if observation.occurred_at in window:
                usable.append(observation)
        if result.skipped:
            logger.warning(f"Camera {camera_id}: skipped {result.skipped} malformed records")
        return usable

    def _group(self, observations: List[Observation]) -> Dict[GroupKey, Dict[date, DayOccurrence]]:
        size = self.config.hour_bucket_size
        keyed: Dict[Tuple[FrozenSet[str], int, int], List[Observation]] = defaultdict(list)
        for observation in observations:
            ts = observation.occurred_at
            keyed[(observation.detected_categories(), ts.weekday(), ts.hour // size)].append(observation)

        # Assemble sibling weekdays sharing categories and bucket
        groups: Dict[GroupKey, Dict[date, DayOccurrence]] = defaultdict(dict)
        for (categories, _weekday, bucket), members in keyed.items():
            days = groups[(categories, bucket)]
            for observation in members:
                ts = observation.occurred_at
                occurrence = days.get(ts.date())
                if occurrence is None:
                    occurrence = DayOccurrence(ts.date(), ts, ts)
                    days[ts.date()] = occurrence
                occurrence.add(observation)
        return groups

    def _cluster(
        self,
        categories: FrozenSet[str],
        bucket: int,
        days: Dict[date, DayOccurrence],
        window: ObservationWindow,
        result: LearnResult,
    ) -> List[RoutineCandidate]:
        occurrences = sorted(days.values(), key=lambda o: o.day)
        if not occurrences:
            return []

        starts = np.array([[o.start_minute] for o in occurrences], dtype=float)
        min_samples = min(2, self.config.min_occurrences)
        labels = DBSCAN(
            eps=self.config.time_tolerance_minutes,
            min_samples=min_samples,
            metric="euclidean",
        ).fit_predict(starts)

        noise = int(np.sum(labels == -1))
        if noise:
            result.outliers += noise
            logger.debug(f"{_category_label(categories)} bucket {bucket}: {noise} outlier days")

        candidates = []
        for label in sorted(set(labels.tolist()) - {-1}):
            members = [o for o, lab in zip(occurrences, labels) if lab == label]
            candidate = self._assess(categories, members, window)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def _assess(
        self,
        categories: FrozenSet[str],
        members: List[DayOccurrence],
        window: ObservationWindow,
    ) -> Optional[RoutineCandidate]:
        start_hour = min(o.first.hour for o in members)
        end_hour = max(o.last.hour for o in members)
        if end_hour < start_hour:
            end_hour = start_hour

        eligible_by_weekday: Dict[int, List[date]] = defaultdict(list)
        for day in window.dates():
            if window.covers_slot(day, start_hour, end_hour):
                eligible_by_weekday[day.weekday()].append(day)

        seen_by_weekday = Counter(o.day.weekday() for o in members)
        days_of_week = frozenset(
            weekday for weekday, available in eligible_by_weekday.items()
            if available and seen_by_weekday[weekday] / len(available) >= self.config.day_presence_ratio
        )
        if not days_of_week:
            return None

        eligible = sum(len(eligible_by_weekday[d]) for d in days_of_week)
        eligible_dates = {day for d in days_of_week for day in eligible_by_weekday[d]}
        consistent = sum(1 for o in members if o.day in eligible_dates)
        confidence = min(100.0, 100.0 * consistent / eligible) if eligible else 0.0

        return RoutineCandidate(
            categories=categories,
            occurrences=members,
            time_pattern=TimePattern(days_of_week, start_hour, end_hour),
            confidence=confidence,
            consistent_days=consistent,
            eligible_days=eligible,
        )

    def _find_overlap(self, candidate: RoutineCandidate, routines: Iterable[Routine]) -> Optional[Routine]:
        best: Optional[Routine] = None
        best_overlap = 0.0
        for routine in routines:
            if not routine.active:
                continue
            overlap = routine.signature.overlap(candidate.categories)
            if overlap < self.config.signature_overlap:
                continue
            if not routine.time_pattern.overlaps(candidate.time_pattern):
                continue
            if overlap > best_overlap:
                best, best_overlap = routine, overlap
        return best

    def _reinforce(self, routine: Routine, candidate: RoutineCandidate) -> Routine:
        fresh = [o for o in candidate.occurrences if o.first > routine.last_seen]
        pattern = routine.time_pattern.widen(candidate.time_pattern)
        return replace(
            routine,
            occurrence_count=routine.occurrence_count + len(fresh),
            confidence=max(routine.confidence, candidate.confidence),
            last_seen=max(routine.last_seen, candidate.last_seen),
            time_pattern=pattern,
            frequency=Frequency.for_days(pattern.days_of_week),
            typical_duration=candidate.typical_duration if fresh else routine.typical_duration,
        )

    def _create(self, camera_id: str, candidate: RoutineCandidate) -> Routine:
        label = _category_label(candidate.categories)
        pattern = candidate.time_pattern
        frequency = Frequency.for_days(pattern.days_of_week)
        if frequency == Frequency.WEEKLY:
            (day,) = pattern.days_of_week
            cadence = f"every {WEEKDAY_NAMES[day]}"
        else:
            cadence = pattern.describe()
        return Routine(
            camera_id=camera_id,
            routine_id=f"routine_{uuid.uuid4().hex[:12]}",
            name=f"{label} {cadence}",
            description=(
                f"{label} seen {pattern.describe()} on {candidate.consistent_days} of "
                f"{candidate.eligible_days} expected days"
            ),
            signature=RoutineSignature(candidate.categories, candidate.scene_description()),
            time_pattern=pattern,
            frequency=frequency,
            confidence=round(candidate.confidence, 2),
            occurrence_count=len(candidate.occurrences),
            first_seen=candidate.first_seen,
            last_seen=candidate.last_seen,
            active=True,
            auto_suppress=self.config.auto_suppress_new,
            typical_duration=candidate.typical_duration,
            baseline=candidate.baseline(),
        )
