"""
Object Identity Resolver
========================

Re-identifies objects across frames of one camera without ground-truth IDs.

Per frame:
1. Detections are ordered by confidence so strong detections claim entities
   first; an entity can be claimed by at most one detection per frame.
2. Each detection is scored against its candidates (same camera and category,
   status present, last seen within the recency window) and a decision is
   staged: auto-match, tie-break, oracle-assisted match, or new entity.
3. Only once every decision is made (including any awaited oracle calls) are
   entities mutated, so a cancelled frame leaves the entity set untouched.
4. Entities not matched this frame are swept: past their grace window they
   transition to disappeared, exactly once.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

from vigil.config import OracleConfig, ResolverConfig
from vigil.perception.types import Detection, SceneContext
from vigil.perception.validation import DetectionError, parse_detection
from vigil.semantic.types import EntityLink, LinkKind, Observation
from vigil.tracking.identifiers import IdentifierExhausted, IdentifierRegistry
from vigil.tracking.oracle import DisambiguationOracle, OracleUnavailable, consult_oracle
from vigil.tracking.scoring import MatchScore, MatchScorer, WeightedMatchScorer
from vigil.tracking.types import EntityStatus, TrackedEntity

if TYPE_CHECKING:
    from vigil.storage import EntityStore

logger = logging.getLogger(__name__)

RawDetection = Union[Detection, Mapping[str, Any]]


@dataclass
class ResolveResult:
    """Entities touched by one frame plus the assembled Observation."""
    updated: List[TrackedEntity]
    created: List[TrackedEntity]
    disappeared: List[TrackedEntity]
    observation: Observation
    dropped: List[str] = field(default_factory=list)


@dataclass
class _Staged:
    """Decision for one detection, made before anything is mutated."""
    detection: Detection
    match: Optional[TrackedEntity] = None
    proximity: Optional[float] = None
    status: EntityStatus = EntityStatus.PRESENT
    via: str = "new"


class ObjectIdentityResolver:
    """Maintains the TrackedEntity set of one camera."""

    def __init__(
        self,
        store: EntityStore,
        registry: IdentifierRegistry,
        config: Optional[ResolverConfig] = None,
        oracle: Optional[DisambiguationOracle] = None,
        oracle_config: Optional[OracleConfig] = None,
        scorer: Optional[MatchScorer] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.registry = registry
        self.config = config or ResolverConfig()
        self.oracle = oracle
        self.oracle_config = oracle_config or OracleConfig()
        self.scorer = scorer or WeightedMatchScorer(self.config)
        self._sleep = sleep

    @property
    def camera_id(self) -> str:
        return self.store.camera_id

    async def resolve(
        self,
        detections: Sequence[RawDetection],
        camera_id: str,
        timestamp: datetime,
        scene_context: Optional[SceneContext] = None,
    ) -> ResolveResult:
        """
        Resolve one frame's detections against the tracked entities.

        Args:
            detections: validated Detection variants or raw payload mappings
            camera_id: must be this resolver's camera
            timestamp: frame time
            scene_context: environmental snapshot for the Observation

        Returns:
            ResolveResult with updated / created / disappeared entities and
            the Observation linking them
        """
        if camera_id != self.camera_id:
            raise ValueError(f"Resolver for camera '{self.camera_id}' got a frame for '{camera_id}'")

        valid, dropped = self._validate(detections)
        ordered = sorted(valid, key=lambda d: d.confidence, reverse=True)

        # Stage decisions; no entity is touched in this loop
        claimed: Set[str] = set()
        staged: List[_Staged] = []
        for detection in ordered:
            window = self.config.recency_window(detection.category.value)
            candidates = [
                e for e in self.store.candidates(detection.category, timestamp, window)
                if e.identifier not in claimed
            ]
            plan = await self._decide(detection, candidates, timestamp)
            if plan.match is not None:
                claimed.add(plan.match.identifier)
            staged.append(plan)

        return self._commit(staged, valid, dropped, timestamp, scene_context)

    def _validate(self, detections: Sequence[RawDetection]):
        valid: List[Detection] = []
        dropped: List[str] = []
        for index, raw in enumerate(detections or ()):
            if isinstance(raw, Detection):
                valid.append(raw)
                continue
            try:
                valid.append(parse_detection(raw))
            except DetectionError as exc:
                logger.warning(f"[{self.camera_id}] Dropping malformed detection #{index}: {exc}")
                dropped.append(f"#{index}: {exc}")
        return valid, dropped

    async def _decide(
        self,
        detection: Detection,
        candidates: List[TrackedEntity],
        timestamp: datetime,
    ) -> _Staged:
        if not candidates:
            return _Staged(detection)

        by_id = {c.identifier: c for c in candidates}
        scores: List[MatchScore] = sorted(
            (self.scorer.score(detection, c, timestamp) for c in candidates),
            key=lambda s: s.score,
            reverse=True,
        )
        for s in scores:
            logger.debug(
                f"[{self.camera_id}] {detection.category.value} vs {s.identifier}: "
                f"{s.score:.3f} {s.components}"
            )

        best = scores[0]
        high, low, eps = self.config.high_threshold, self.config.low_threshold, self.config.tie_epsilon

        if best.score >= high:
            tied = [s for s in scores if s.score >= high and best.score - s.score <= eps]
            if len(tied) == 1:
                return _Staged(detection, by_id[best.identifier], best.proximity, via="auto")
            winner = max(tied, key=lambda s: by_id[s.identifier].last_seen)
            logger.debug(
                f"[{self.camera_id}] {len(tied)} candidates tied near {best.score:.3f}; "
                f"most recent {winner.identifier} wins"
            )
            return _Staged(detection, by_id[winner.identifier], winner.proximity, via="tie_break")

        if best.score < low:
            return _Staged(detection)

        viable = [s for s in scores if s.score >= low]
        if len(viable) < 2 and not self.config.consult_oracle_single_candidate:
            return _Staged(detection)
        if self.oracle is None:
            logger.debug(f"[{self.camera_id}] Ambiguous match with no oracle configured; creating new entity")
            return _Staged(detection)

        try:
            answer = await consult_oracle(
                self.oracle,
                detection,
                [by_id[s.identifier] for s in viable],
                self.oracle_config,
                sleep=self._sleep,
            )
        except OracleUnavailable as exc:
            logger.warning(f"[{self.camera_id}] {exc}; creating uncertain entity")
            return _Staged(detection, status=EntityStatus.UNCERTAIN, via="oracle_unavailable")

        for s in viable:
            if s.identifier == answer:
                return _Staged(detection, by_id[s.identifier], s.proximity, via="oracle")
        if answer is not None:
            logger.warning(f"[{self.camera_id}] Oracle named unknown candidate '{answer}'; treating as no match")
        return _Staged(detection, via="oracle_no_match")

    def _commit(
        self,
        staged: List[_Staged],
        valid: List[Detection],
        dropped: List[str],
        timestamp: datetime,
        scene_context: Optional[SceneContext],
    ) -> ResolveResult:
        # Reserve identifiers first so a failure here leaves entities untouched
        new_ids: Dict[int, str] = {}
        try:
            for index, plan in enumerate(staged):
                if plan.match is None:
                    new_ids[index] = self.registry.issue(plan.detection.category.value)
        except IdentifierExhausted:
            for identifier in new_ids.values():
                self.registry.release(identifier)
            raise

        updated: List[TrackedEntity] = []
        created: List[TrackedEntity] = []
        disappeared: List[TrackedEntity] = []
        links: List[EntityLink] = []
        touched: Set[str] = set()

        for index, plan in enumerate(staged):
            detection = plan.detection
            if plan.match is not None:
                entity = plan.match
                entity.observe(timestamp, detection.position, detection.description, detection.confidence)
                moved = plan.proximity is not None and plan.proximity < self.config.moved_threshold
                kind = LinkKind.MOVED if moved else LinkKind.PRESENT
                updated.append(entity)
            else:
                entity = TrackedEntity(
                    camera_id=self.camera_id,
                    category=detection.category,
                    identifier=new_ids[index],
                    first_seen=timestamp,
                    last_seen=timestamp,
                    status=plan.status,
                    history_cap=self.config.position_history_cap,
                    description=detection.description,
                    confidence=detection.confidence,
                    metadata={"attributes": detection.attributes(), "created_via": plan.via},
                )
                entity.observe(timestamp, detection.position, detection.description, detection.confidence)
                self.store.add(entity)
                self.registry.commit(entity.identifier)
                kind = LinkKind.APPEARED
                created.append(entity)
                logger.info(
                    f"[{self.camera_id}] New {entity.category.value} {entity.identifier} "
                    f"({entity.status.value}, via {plan.via})"
                )
            touched.add(entity.identifier)
            links.append(EntityLink(entity.identifier, entity.category.value, kind))

        for entity in self.sweep(timestamp, exclude=touched):
            disappeared.append(entity)
            links.append(EntityLink(entity.identifier, entity.category.value, LinkKind.DISAPPEARED))

        scene = scene_context or SceneContext(camera_id=self.camera_id, timestamp=timestamp)
        observation = Observation(
            camera_id=self.camera_id,
            occurred_at=timestamp,
            detections=[d.to_descriptor() for d in valid],
            scene=scene,
            description=scene.description,
            entity_links=links,
        )
        return ResolveResult(updated, created, disappeared, observation, dropped)

    def sweep(self, timestamp: datetime, exclude: Set[str] = frozenset()) -> List[TrackedEntity]:
        """Transition unmatched entities past their grace window to disappeared."""
        gone: List[TrackedEntity] = []
        for entity in self.store.active():
            if entity.identifier in exclude:
                continue
            idle = (timestamp - entity.last_seen).total_seconds()
            if idle <= self.config.grace_window(entity.category.value):
                continue
            if entity.mark_disappeared(timestamp):
                logger.info(
                    f"[{self.camera_id}] {entity.identifier} disappeared after "
                    f"{entity.duration_human()} (unseen for {int(idle // 60)}m)"
                )
                gone.append(entity)
        return gone
