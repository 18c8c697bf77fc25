"""Vigil camera activity reasoning package."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vigil")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

# Configuration
from vigil.config import VigilConfig, load_config

# Perception boundary
from vigil.perception import (
    Detection,
    ObjectCategory,
    Position,
    SceneContext,
)

# Identity tracking
from vigil.tracking import (
    IdentifierRegistry,
    ObjectIdentityResolver,
    TrackedEntity,
)

# Semantic reasoning
from vigil.semantic import (
    NotificationDecision,
    NotificationPriority,
    NotificationReasoningEngine,
    Observation,
    Routine,
    RoutineLearner,
)

from vigil.runtime import Frame, VigilRuntime
from vigil.cli import main

__all__ = [
    "__version__",
    "VigilConfig",
    "load_config",
    "Detection",
    "ObjectCategory",
    "Position",
    "SceneContext",
    "IdentifierRegistry",
    "ObjectIdentityResolver",
    "TrackedEntity",
    "NotificationDecision",
    "NotificationPriority",
    "NotificationReasoningEngine",
    "Observation",
    "Routine",
    "RoutineLearner",
    "Frame",
    "VigilRuntime",
    "main",
]
