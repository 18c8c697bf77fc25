"""
Semantic Reasoning Package
==========================

Observations, learned Routines and the notification decisions built on them.

Modules:
    - types: Observation, NotificationDecision, Routine, TimePattern
    - routines: Routine Pattern Learner (DBSCAN over daily occurrences)
    - severity: contextual severity scoring and priority cut points
    - reasoning: Notification Reasoning Engine
"""

from .types import (
    DecisionAlreadyApplied,
    EntityLink,
    Frequency,
    LinkKind,
    NotificationDecision,
    NotificationPriority,
    Observation,
    Routine,
    RoutineBaseline,
    RoutineSignature,
    TimePattern,
)

from .routines import LearnResult, ObservationWindow, RoutineLearner
from .severity import SeverityAssessment, SeverityScorer
from .reasoning import NotificationReasoningEngine

__all__ = [
    # Types
    "DecisionAlreadyApplied",
    "EntityLink",
    "Frequency",
    "LinkKind",
    "NotificationDecision",
    "NotificationPriority",
    "Observation",
    "Routine",
    "RoutineBaseline",
    "RoutineSignature",
    "TimePattern",
    # Learning
    "LearnResult",
    "ObservationWindow",
    "RoutineLearner",
    # Reasoning
    "SeverityAssessment",
    "SeverityScorer",
    "NotificationReasoningEngine",
]
