"""
Identity Tracking Package
=========================

Turns per-frame detections into durable, identity-tracked entities.

Modules:
    - types: TrackedEntity, EntityStatus, compute_duration
    - scoring: swappable match-score functions
    - identifiers: collision-checked identifier registry
    - oracle: Disambiguation Oracle protocol, retry wrapper, HTTP client
    - resolver: Object Identity Resolver
"""

from .types import (
    EntityStatus,
    PositionSample,
    TrackedEntity,
    compute_duration,
    duration_human,
)

from .scoring import (
    MatchScore,
    MatchScorer,
    WeightedMatchScorer,
    position_proximity,
    recency_decay,
)

from .identifiers import IdentifierExhausted, IdentifierRegistry

from .oracle import (
    DisambiguationOracle,
    HttpDisambiguationOracle,
    OracleUnavailable,
    consult_oracle,
)

from .resolver import ObjectIdentityResolver, ResolveResult

__all__ = [
    # Types
    "EntityStatus",
    "PositionSample",
    "TrackedEntity",
    "compute_duration",
    "duration_human",
    # Scoring
    "MatchScore",
    "MatchScorer",
    "WeightedMatchScorer",
    "position_proximity",
    "recency_decay",
    # Identifiers
    "IdentifierExhausted",
    "IdentifierRegistry",
    # Oracle
    "DisambiguationOracle",
    "HttpDisambiguationOracle",
    "OracleUnavailable",
    "consult_oracle",
    # Resolver
    "ObjectIdentityResolver",
    "ResolveResult",
]
