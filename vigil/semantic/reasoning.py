"""
Notification Reasoning Engine
=============================

Decides whether an Observation is worth a human's attention. The decision is
a pure function of its inputs, evaluated in ordered layers:

1. Duplicate suppression: a recent Observation with the same categories and a
   similar description already covered this.
2. Routine suppression: a confident, auto-suppressing Routine expects this at
   this time, and nothing about the entities or the scene deviates from it.
3. Contextual severity: duration, weather exposure, unexpected activity and
   scene change, mapped to a priority tier.

When both suppression layers fire the reason is ``routine``; the duplicate
match is still recorded in ``reasoning``. A suppression layer is overridden
when severity lands above the escalation floor. Internal failures never
propagate: they produce a silent decision with reason ``reasoning_error``.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from vigil.config import ReasoningConfig
from vigil.perception.types import SceneContext, tokenize
from vigil.semantic.severity import SeverityScorer
from vigil.semantic.types import (
    LinkKind,
    NotificationDecision,
    NotificationPriority,
    Observation,
    Routine,
)
from vigil.tracking.types import TrackedEntity

logger = logging.getLogger(__name__)


def observation_tokens(observation: Observation) -> FrozenSet[str]:
    """Words describing an Observation: scene description plus detection descriptions."""
    tokens = set(tokenize(observation.description))
    for detection in observation.detections:
        tokens.update(tokenize(detection.get("description")))
    return frozenset(tokens)


def description_similarity(a: Observation, b: Observation) -> float:
    ta, tb = observation_tokens(a), observation_tokens(b)
    if not ta and not tb:
        return 1.0
    return len(ta & tb) / len(ta | tb)


class NotificationReasoningEngine:
    """Multi-layer suppression and severity scoring for Observations."""

    def __init__(self, config: Optional[ReasoningConfig] = None, severity: Optional[SeverityScorer] = None):
        self.config = config or ReasoningConfig()
        self.severity = severity or SeverityScorer(self.config)
        self.escalation_floor = NotificationPriority(self.config.escalation_floor)

    def decide(
        self,
        observation: Observation,
        tracked_entities: Sequence[TrackedEntity],
        scene_context: Optional[SceneContext],
        active_routines: Sequence[Routine],
        recent_observations: Iterable[Observation] = (),
    ) -> NotificationDecision:
        """
        Produce the notification decision for one Observation.

        Args:
            observation: the Observation to judge
            tracked_entities: current entities of the camera
            scene_context: environmental snapshot (falls back to the Observation's)
            active_routines: Routines of the camera
            recent_observations: earlier Observations for duplicate detection

        Returns:
            NotificationDecision; never raises
        """
        if observation.notification_sent:
            return NotificationDecision(
                should_notify=False,
                priority=NotificationPriority.NONE,
                suppression_reason="already_sent",
                reasoning={"already_sent": True},
            )
        try:
            return self._decide(
                observation,
                tracked_entities,
                scene_context or observation.scene,
                active_routines,
                recent_observations,
            )
        except Exception as exc:
            logger.error(
                f"Reasoning failed for observation {observation.observation_id} "
                f"on camera {observation.camera_id}: {exc}",
                exc_info=True,
            )
            return NotificationDecision(
                should_notify=False,
                priority=NotificationPriority.NONE,
                suppression_reason="reasoning_error",
                reasoning={"error": f"{type(exc).__name__}: {exc}"},
            )

    def _decide(
        self,
        observation: Observation,
        tracked_entities: Sequence[TrackedEntity],
        scene: Optional[SceneContext],
        active_routines: Sequence[Routine],
        recent_observations: Iterable[Observation],
    ) -> NotificationDecision:
        reasoning: Dict[str, Any] = {}
        entities = self._linked_entities(observation, tracked_entities)
        categories = observation.detected_categories()

        # Layer 1: duplicates
        duplicate, similarity = self._find_duplicate(observation, categories, recent_observations)
        reasoning["duplicate"] = {
            "matched": duplicate is not None,
            "observation_id": duplicate.observation_id if duplicate else None,
            "similarity": similarity,
        }

        # Layer 2: routines
        covering = self._covering_routines(observation, categories, active_routines)
        suppressing, deviations = self._suppressing_routine(covering, entities, scene)
        reasoning["routine"] = {
            "covering": [r.routine_id for r in covering],
            "suppressing": suppressing.routine_id if suppressing else None,
            "deviations": deviations,
        }

        # Layer 3: severity
        assessment = self.severity.assess(observation, entities, scene, routine_covered=bool(covering))
        reasoning["severity"] = {
            "score": round(assessment.score, 2),
            "priority": assessment.priority.value,
            "factors": assessment.breakdown(),
        }

        priority = assessment.priority
        # Routine takes precedence over duplicate when both fire
        layer = None
        if suppressing is not None:
            layer = "routine"
        elif duplicate is not None:
            layer = "duplicate"

        reason: Optional[str] = None
        if layer is not None:
            if priority.outranks(self.escalation_floor):
                reason = f"escalated_over_{layer}"
            else:
                reason = layer
                priority = NotificationPriority.NONE
        elif priority == NotificationPriority.NONE:
            reason = "low_severity"

        routine = suppressing or (covering[0] if covering else None)
        decision = NotificationDecision(
            should_notify=priority != NotificationPriority.NONE,
            priority=priority,
            message=assessment.message(),
            suppression_reason=reason,
            is_routine=suppressing is not None,
            routine_id=routine.routine_id if routine else None,
            severity_score=assessment.score,
            similarity_score=similarity,
            reasoning=reasoning,
        )
        logger.debug(
            f"[{observation.camera_id}] decision {decision.priority.value} "
            f"(notify={decision.should_notify}, reason={decision.suppression_reason})"
        )
        return decision

    def _linked_entities(
        self,
        observation: Observation,
        tracked_entities: Sequence[TrackedEntity],
    ) -> List[TrackedEntity]:
        """Entities still in view that this Observation links to (all active ones if unlinked)."""
        in_view = {
            link.identifier for link in observation.entity_links
            if link.kind != LinkKind.DISAPPEARED
        }
        if not observation.entity_links:
            return [e for e in tracked_entities if e.is_active()]
        return [e for e in tracked_entities if e.identifier in in_view]

    def _find_duplicate(
        self,
        observation: Observation,
        categories: FrozenSet[str],
        recent_observations: Iterable[Observation],
    ) -> Tuple[Optional[Observation], Optional[float]]:
        window = timedelta(minutes=self.config.similarity_window_minutes)
        best: Optional[Observation] = None
        best_similarity: Optional[float] = None
        for prior in recent_observations:
            if prior.observation_id == observation.observation_id:
                continue
            if prior.camera_id != observation.camera_id:
                continue
            age = observation.occurred_at - prior.occurred_at
            if age < timedelta(0) or age > window:
                continue
            if prior.detected_categories() != categories:
                continue
            similarity = description_similarity(observation, prior)
            if best_similarity is None or similarity > best_similarity:
                best_similarity = similarity
                if similarity >= self.config.description_similarity:
                    best = prior
        return best, best_similarity

    def _covering_routines(
        self,
        observation: Observation,
        categories: FrozenSet[str],
        routines: Sequence[Routine],
    ) -> List[Routine]:
        """Active routines of this camera whose categories overlap and whose time pattern matches."""
        covering = [
            r for r in routines
            if r.active
            and r.camera_id == observation.camera_id
            and r.signature.categories & categories
            and r.matches_time(observation.occurred_at)
        ]
        return sorted(covering, key=lambda r: r.confidence, reverse=True)

    def _suppressing_routine(
        self,
        covering: List[Routine],
        entities: Sequence[TrackedEntity],
        scene: Optional[SceneContext],
    ) -> Tuple[Optional[Routine], List[str]]:
        deviations: List[str] = []
        for routine in covering:
            if not routine.auto_suppress or routine.confidence < self.config.routine_confidence_floor:
                continue
            found = self._deviations(routine, entities, scene)
            if not found:
                return routine, []
            deviations.extend(f"{routine.routine_id}: {d}" for d in found)
        return None, deviations

    def _deviations(
        self,
        routine: Routine,
        entities: Sequence[TrackedEntity],
        scene: Optional[SceneContext],
    ) -> List[str]:
        found: List[str] = []
        typical = routine.typical_duration.total_seconds()
        if typical > 0:
            limit = typical * self.config.routine_duration_factor
            for entity in entities:
                if entity.category.value in routine.signature.categories and entity.duration.total_seconds() > limit:
                    found.append(f"{entity.identifier} present for {entity.duration_human()}")
        if scene is not None:
            if scene.is_adverse_weather() and routine.baseline.weather != scene.weather.condition.value:
                found.append(f"{scene.weather.condition.value} not in baseline")
            if (
                scene.lighting is not None
                and routine.baseline.lighting is not None
                and scene.lighting.value != routine.baseline.lighting
            ):
                found.append(f"lighting {scene.lighting.value} differs from {routine.baseline.lighting}")
        return found
