"""
Contextual severity scoring.

Scores an Observation on a 0-100 scale from the factors that make it worth a
human's attention and maps the score onto a priority tier through the
configured cut points.

Factors:
- duration: an entity present longer than its category's concern threshold
- weather: adverse weather while an exposed entity (package, pet) is out
- unexpected: entities newly appeared with no routine covering them
- change: magnitude of the visual change in the scene
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from vigil.config import ReasoningConfig
from vigil.perception.types import Lighting, SceneContext, WeatherIntensity
from vigil.semantic.types import LinkKind, NotificationPriority, Observation
from vigil.tracking.types import TrackedEntity, duration_human

logger = logging.getLogger(__name__)

INTENSITY_SCALE: Dict[WeatherIntensity, float] = {
    WeatherIntensity.NONE: 0.0,
    WeatherIntensity.LIGHT: 2.0 / 3.0,
    WeatherIntensity.MODERATE: 1.0,
    WeatherIntensity.HEAVY: 4.0 / 3.0,
}

_TIERS = (
    NotificationPriority.URGENT,
    NotificationPriority.HIGH,
    NotificationPriority.MEDIUM,
    NotificationPriority.LOW,
)


@dataclass
class SeverityFactor:
    name: str
    points: float
    detail: str


@dataclass
class SeverityAssessment:
    score: float
    priority: NotificationPriority
    factors: List[SeverityFactor] = field(default_factory=list)

    def message(self) -> Optional[str]:
        parts = [f.detail for f in self.factors if f.points > 0 and f.detail]
        return "; ".join(parts) if parts else None

    def breakdown(self) -> Dict[str, float]:
        return {f.name: round(f.points, 2) for f in self.factors}


def describe_entity(entity: TrackedEntity) -> str:
    """'Package (on porch)' style label for messages."""
    label = entity.category.value.capitalize()
    position = entity.last_position
    if position is not None:
        where = position.specifics or (position.area.value if position.area else None)
        if where:
            return f"{label} ({where})"
    return label


class SeverityScorer:
    """Weighs the severity factors of one Observation."""

    def __init__(self, config: Optional[ReasoningConfig] = None):
        self.config = config or ReasoningConfig()

    def priority_for(self, score: float) -> NotificationPriority:
        for tier in _TIERS:
            if score >= self.config.cut_points[tier.value]:
                return tier
        return NotificationPriority.NONE

    def assess(
        self,
        observation: Observation,
        entities: Sequence[TrackedEntity],
        scene: Optional[SceneContext],
        routine_covered: bool = False,
    ) -> SeverityAssessment:
        factors: List[SeverityFactor] = []
        for factor in (
            self._duration(entities),
            self._weather(entities, scene),
            self._unexpected(observation, scene, routine_covered),
            self._change(scene),
        ):
            if factor is not None:
                factors.append(factor)

        score = min(100.0, sum(f.points for f in factors))
        priority = self.priority_for(score)
        logger.debug(f"Severity {score:.1f} ({priority.value}) from {[(f.name, round(f.points, 1)) for f in factors]}")
        return SeverityAssessment(score=score, priority=priority, factors=factors)

    def _duration(self, entities: Sequence[TrackedEntity]) -> Optional[SeverityFactor]:
        worst: Optional[SeverityFactor] = None
        for entity in entities:
            threshold = self.config.duration_threshold(entity.category.value)
            seconds = entity.duration.total_seconds()
            if seconds <= threshold:
                continue
            overage = (seconds - threshold) / threshold
            points = self.config.duration_points + min(
                self.config.duration_overage_points,
                self.config.duration_overage_points * overage,
            )
            if worst is None or points > worst.points:
                worst = SeverityFactor(
                    "duration",
                    points,
                    f"{describe_entity(entity)} present for {entity.duration_human()}",
                )
        return worst

    def _weather(
        self,
        entities: Sequence[TrackedEntity],
        scene: Optional[SceneContext],
    ) -> Optional[SeverityFactor]:
        if scene is None or not scene.is_adverse_weather():
            return None
        exposed = [e for e in entities if e.category.value in self.config.exposed_categories]
        if not exposed:
            return None

        weather_seconds = scene.weather_duration_seconds()
        exposure = max(e.duration.total_seconds() for e in exposed)
        if weather_seconds is not None:
            exposure = min(exposure, weather_seconds)
        exposure_minutes = exposure / 60.0

        scale = INTENSITY_SCALE[scene.weather.intensity]
        ramp = 1.0
        if self.config.min_exposure_minutes > 0:
            ramp = min(1.0, exposure_minutes / self.config.min_exposure_minutes)
        points = self.config.weather_points * scale * ramp

        condition = f"{scene.weather.condition.value} ({scene.weather.intensity.value})"
        if weather_seconds is not None:
            condition += f" for {duration_human(timedelta(seconds=weather_seconds))}"
        return SeverityFactor("weather", points, f"{condition} while exposed")

    def _unexpected(
        self,
        observation: Observation,
        scene: Optional[SceneContext],
        routine_covered: bool,
    ) -> Optional[SeverityFactor]:
        appeared = observation.links(LinkKind.APPEARED)
        if not appeared or routine_covered:
            return None
        points = self.config.unexpected_points
        categories = sorted({link.category for link in appeared})
        detail = f"new {', '.join(categories)} activity"
        if scene is not None and scene.lighting == Lighting.NIGHT:
            points *= self.config.night_multiplier
            detail += " at night"
        return SeverityFactor("unexpected", points, detail)

    def _change(self, scene: Optional[SceneContext]) -> Optional[SeverityFactor]:
        if scene is None or scene.change_magnitude <= 0:
            return None
        points = scene.change_magnitude / 100.0 * self.config.change_points
        return SeverityFactor("change", points, f"scene change {scene.change_magnitude:.0f}%")
