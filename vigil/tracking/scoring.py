"""
Match Scoring
=============

Scores how likely a new detection is the same physical object as an existing
TrackedEntity. Three signals are combined:

- position proximity: inverse of normalized distance between the detection's
  position and the entity's last known position (coordinates or coarse area),
  falling back to word overlap of free-text position specifics
- temporal recency: exponential decay of the time since last_seen, with a
  per-category half-life
- identity hint: whether the vision collaborator suggested this identifier

Signals that are unavailable for a pair are dropped and the remaining weights
renormalized, so a detection without a position is judged on recency and hint
alone. The combination is behind the ``MatchScorer`` protocol so a different
weighting function can be injected into the resolver.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Protocol

from vigil.config import ResolverConfig
from vigil.perception.types import Detection, Position, position_distance, specifics_overlap
from vigil.tracking.types import TrackedEntity


@dataclass
class MatchScore:
    """Combined score plus the per-signal values that produced it."""
    identifier: str
    score: float
    components: Dict[str, float] = field(default_factory=dict)
    proximity: Optional[float] = None


class MatchScorer(Protocol):
    """Minimal protocol all match scorers should satisfy."""

    def score(self, detection: Detection, entity: TrackedEntity, timestamp: datetime) -> MatchScore:
        ...


def position_proximity(a: Optional[Position], b: Optional[Position], scale: float) -> Optional[float]:
    """Proximity in [0, 1]; 1 means same spot. None when not comparable."""
    if a is None or b is None:
        return None
    overlap = specifics_overlap(a, b)
    distance = position_distance(a, b)
    if distance is not None:
        proximity = 1.0 / (1.0 + distance / scale)
        if overlap is not None:
            proximity = max(proximity, overlap)
        return proximity
    return overlap


def recency_decay(elapsed_seconds: float, half_life_seconds: float) -> float:
    """Exponential decay: 1.0 at zero elapsed, 0.5 at one half-life."""
    if elapsed_seconds <= 0:
        return 1.0
    return math.exp(-math.log(2.0) * elapsed_seconds / half_life_seconds)


class WeightedMatchScorer:
    """Weighted average of proximity, recency and hint signals."""

    def __init__(self, config: ResolverConfig):
        self.config = config

    def score(self, detection: Detection, entity: TrackedEntity, timestamp: datetime) -> MatchScore:
        category = detection.category.value
        signals: Dict[str, float] = {}
        weights: Dict[str, float] = {}

        proximity = position_proximity(detection.position, entity.last_position, self.config.position_scale)
        if proximity is not None:
            signals["position"] = proximity
            weights["position"] = self.config.weight_position

        elapsed = (timestamp - entity.last_seen).total_seconds()
        signals["recency"] = recency_decay(elapsed, self.config.half_life(category))
        weights["recency"] = self.config.weight_recency

        if detection.suggested_match is not None:
            signals["hint"] = 1.0 if detection.suggested_match == entity.identifier else 0.0
            weights["hint"] = self.config.weight_hint

        total_weight = sum(weights.values())
        if total_weight <= 0:
            combined = 0.0
        else:
            combined = sum(signals[name] * weights[name] for name in signals) / total_weight

        return MatchScore(
            identifier=entity.identifier,
            score=max(0.0, min(1.0, combined)),
            components=signals,
            proximity=proximity,
        )
