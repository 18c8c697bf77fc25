"""
Vigil Configuration
===================

Immutable, validated configuration for the three core components:

    ResolverConfig  → Object Identity Resolver (matching + lifecycle windows)
    OracleConfig    → Disambiguation Oracle retry/timeout budget
    RoutineConfig   → Routine Pattern Learner
    ReasoningConfig → Notification Reasoning Engine

A ``VigilConfig`` is built once (from presets, a dict or a JSON file) and
passed explicitly into every component. Nothing reads global state.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

CATEGORIES: Tuple[str, ...] = ("person", "vehicle", "package", "pet", "other")
PRIORITY_LEVELS: Tuple[str, ...] = ("none", "low", "medium", "high", "urgent")

MINUTE = 60.0
HOUR = 60.0 * MINUTE
DAY = 24.0 * HOUR


def _freeze(instance: Any, *names: str) -> None:
    """Swap mapping fields for read-only views so a frozen config stays immutable."""
    for name in names:
        object.__setattr__(instance, name, MappingProxyType(dict(getattr(instance, name))))


def _thaw(value: Any) -> Any:
    return dict(value) if isinstance(value, Mapping) else value


def _check_per_category(name: str, values: Mapping[str, float]) -> None:
    missing = [c for c in CATEGORIES if c not in values]
    if missing:
        raise ValueError(f"{name} missing categories: {missing}")
    for category, value in values.items():
        if value <= 0:
            raise ValueError(f"{name}[{category}] must be > 0, got {value}")


@dataclass(frozen=True)
class ResolverConfig:
    """Identity matching thresholds and per-category lifecycle windows."""

    high_threshold: float = 0.70
    """Score at or above which a unique best candidate is auto-matched."""

    low_threshold: float = 0.40
    """Scores below this never match; [low, high) is the ambiguous band."""

    tie_epsilon: float = 0.05
    """Candidates scoring within epsilon of the best are considered tied."""

    weight_position: float = 0.45
    weight_recency: float = 0.35
    weight_hint: float = 0.20

    position_scale: float = 0.15
    """Normalized distance at which position proximity drops to 0.5."""

    moved_threshold: float = 0.5
    """Position proximity below this tags a matched entity as ``moved``."""

    position_history_cap: int = 50
    max_identifier_attempts: int = 5

    consult_oracle_single_candidate: bool = False
    """Also ask the oracle when only one candidate sits in the ambiguous band."""

    recency_window_seconds: Dict[str, float] = field(default_factory=lambda: {
        "person": 10 * MINUTE,
        "vehicle": 12 * HOUR,
        "package": 24 * HOUR,
        "pet": 10 * MINUTE,
        "other": 1 * HOUR,
    })
    """How old a present entity's last sighting may be to remain a candidate."""

    grace_window_seconds: Dict[str, float] = field(default_factory=lambda: {
        "person": 2 * MINUTE,
        "vehicle": 10 * MINUTE,
        "package": 30 * MINUTE,
        "pet": 2 * MINUTE,
        "other": 5 * MINUTE,
    })
    """How long an unmatched entity stays present before disappearing."""

    recency_half_life_seconds: Dict[str, float] = field(default_factory=lambda: {
        "person": 2 * MINUTE,
        "vehicle": 2 * HOUR,
        "package": 6 * HOUR,
        "pet": 2 * MINUTE,
        "other": 15 * MINUTE,
    })

    def __post_init__(self):
        _freeze(self, "recency_window_seconds", "grace_window_seconds", "recency_half_life_seconds")
        if not (0.0 <= self.low_threshold < self.high_threshold <= 1.0):
            raise ValueError(
                f"thresholds must satisfy 0 <= low < high <= 1, "
                f"got low={self.low_threshold}, high={self.high_threshold}"
            )
        if not (0.0 <= self.tie_epsilon < 1.0):
            raise ValueError(f"tie_epsilon must be in [0, 1), got {self.tie_epsilon}")
        weights = (self.weight_position, self.weight_recency, self.weight_hint)
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ValueError(f"match weights must be >= 0 with a positive sum, got {weights}")
        if self.position_scale <= 0:
            raise ValueError(f"position_scale must be > 0, got {self.position_scale}")
        if not (0.0 <= self.moved_threshold <= 1.0):
            raise ValueError(f"moved_threshold must be in [0, 1], got {self.moved_threshold}")
        if self.position_history_cap < 1:
            raise ValueError(f"position_history_cap must be >= 1, got {self.position_history_cap}")
        if self.max_identifier_attempts < 1:
            raise ValueError("max_identifier_attempts must be >= 1")
        _check_per_category("recency_window_seconds", self.recency_window_seconds)
        _check_per_category("grace_window_seconds", self.grace_window_seconds)
        _check_per_category("recency_half_life_seconds", self.recency_half_life_seconds)

        logger.debug(
            f"ResolverConfig validated: high={self.high_threshold}, low={self.low_threshold}, "
            f"history_cap={self.position_history_cap}"
        )

    def recency_window(self, category: str) -> float:
        return self.recency_window_seconds.get(category, self.recency_window_seconds["other"])

    def grace_window(self, category: str) -> float:
        return self.grace_window_seconds.get(category, self.grace_window_seconds["other"])

    def half_life(self, category: str) -> float:
        return self.recency_half_life_seconds.get(category, self.recency_half_life_seconds["other"])


@dataclass(frozen=True)
class OracleConfig:
    """Retry budget for Disambiguation Oracle calls."""

    timeout_seconds: float = 5.0
    max_retries: int = 2
    """Retries after the first attempt (total attempts = max_retries + 1)."""

    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 4.0

    endpoint: Optional[str] = None
    """URL of an HTTP oracle service. None disables the HTTP oracle."""

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff must satisfy 0 <= base <= max")

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.backoff_max_seconds, self.backoff_base_seconds * (2 ** (attempt - 1)))


@dataclass(frozen=True)
class RoutineConfig:
    """Routine discovery thresholds."""

    min_occurrences: int = 5
    confidence_threshold: float = 80.0
    staleness_window_seconds: float = 7 * DAY

    hour_bucket_size: int = 2
    """Width in hours of the coarse hour-of-day bucket in the clustering key."""

    time_tolerance_minutes: float = 30.0
    """DBSCAN eps over occurrence start times (minutes of day)."""

    day_presence_ratio: float = 0.5
    """Fraction of candidate weeks a weekday needs to join days_of_week."""

    signature_overlap: float = 0.5
    """Category Jaccard at which an existing routine counts as the same signature."""

    auto_suppress_new: bool = False
    learn_interval_seconds: float = 1 * HOUR
    lookback_days: int = 28

    def __post_init__(self):
        if self.min_occurrences < 1:
            raise ValueError(f"min_occurrences must be >= 1, got {self.min_occurrences}")
        if not (0.0 <= self.confidence_threshold <= 100.0):
            raise ValueError(f"confidence_threshold must be in [0, 100], got {self.confidence_threshold}")
        if self.staleness_window_seconds <= 0:
            raise ValueError("staleness_window_seconds must be > 0")
        if self.hour_bucket_size < 1 or 24 % self.hour_bucket_size != 0:
            raise ValueError(f"hour_bucket_size must divide 24, got {self.hour_bucket_size}")
        if self.time_tolerance_minutes <= 0:
            raise ValueError("time_tolerance_minutes must be > 0")
        if not (0.0 < self.day_presence_ratio <= 1.0):
            raise ValueError(f"day_presence_ratio must be in (0, 1], got {self.day_presence_ratio}")
        if not (0.0 < self.signature_overlap <= 1.0):
            raise ValueError(f"signature_overlap must be in (0, 1], got {self.signature_overlap}")
        if self.learn_interval_seconds <= 0:
            raise ValueError("learn_interval_seconds must be > 0")
        if self.lookback_days < 7:
            logger.warning(
                f"lookback_days={self.lookback_days} covers less than one week; "
                "days_of_week derivation will be noisy"
            )


@dataclass(frozen=True)
class ReasoningConfig:
    """Suppression layers and severity scoring for notifications."""

    similarity_window_minutes: float = 30.0
    description_similarity: float = 0.5
    routine_confidence_floor: float = 80.0
    routine_duration_factor: float = 3.0
    escalation_floor: str = "medium"
    """Priorities strictly above this override duplicate/routine suppression."""

    duration_thresholds_seconds: Dict[str, float] = field(default_factory=lambda: {
        "person": 15 * MINUTE,
        "vehicle": 4 * HOUR,
        "package": 2 * HOUR,
        "pet": 30 * MINUTE,
        "other": 1 * HOUR,
    })
    """Per-category presence duration beyond which an entity is a concern."""

    exposed_categories: Tuple[str, ...] = ("package", "pet")
    """Categories harmed by adverse weather."""

    cut_points: Dict[str, float] = field(default_factory=lambda: {
        "low": 15.0,
        "medium": 35.0,
        "high": 60.0,
        "urgent": 85.0,
    })
    """Minimum severity score for each priority tier."""

    # Severity component points (score is capped at 100)
    duration_points: float = 40.0
    duration_overage_points: float = 20.0
    weather_points: float = 30.0
    min_exposure_minutes: float = 10.0
    unexpected_points: float = 15.0
    night_multiplier: float = 1.5
    change_points: float = 20.0

    def __post_init__(self):
        _freeze(self, "duration_thresholds_seconds", "cut_points")
        if self.similarity_window_minutes <= 0:
            raise ValueError("similarity_window_minutes must be > 0")
        if not (0.0 <= self.description_similarity <= 1.0):
            raise ValueError("description_similarity must be in [0, 1]")
        if not (0.0 <= self.routine_confidence_floor <= 100.0):
            raise ValueError("routine_confidence_floor must be in [0, 100]")
        if self.routine_duration_factor < 1.0:
            raise ValueError("routine_duration_factor must be >= 1")
        if self.escalation_floor not in PRIORITY_LEVELS:
            raise ValueError(f"escalation_floor must be one of {PRIORITY_LEVELS}, got {self.escalation_floor}")
        _check_per_category("duration_thresholds_seconds", self.duration_thresholds_seconds)

        tiers = ("low", "medium", "high", "urgent")
        if set(self.cut_points) != set(tiers):
            raise ValueError(f"cut_points must define exactly {tiers}")
        ordered = [self.cut_points[t] for t in tiers]
        if ordered != sorted(ordered) or len(set(ordered)) != len(ordered) or ordered[0] <= 0:
            raise ValueError(f"cut_points must be positive and strictly increasing, got {self.cut_points}")

    def duration_threshold(self, category: str) -> float:
        return self.duration_thresholds_seconds.get(
            category, self.duration_thresholds_seconds["other"]
        )


@dataclass(frozen=True)
class VigilConfig:
    """Top-level configuration handed to the runtime and each component."""

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    routines: RoutineConfig = field(default_factory=RoutineConfig)
    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)

    _SECTIONS: ClassVar[Dict[str, type]] = {
        "resolver": ResolverConfig,
        "oracle": OracleConfig,
        "routines": RoutineConfig,
        "reasoning": ReasoningConfig,
    }

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: {f.name: _thaw(getattr(section, f.name)) for f in fields(section)}
            for name, section in ((n, getattr(self, n)) for n in self._SECTIONS)
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["VigilConfig"] = None) -> "VigilConfig":
        """Build a config by overlaying ``data`` on ``base`` (defaults if None).

        Unknown sections or keys raise ``ValueError`` so typos do not silently
        fall back to defaults. Per-category mappings are merged key by key.
        """
        base = base or cls()
        sections: Dict[str, Any] = {}
        for name, payload in data.items():
            section_cls = cls._SECTIONS.get(name)
            if section_cls is None:
                raise ValueError(f"Unknown config section '{name}'")
            if not isinstance(payload, Mapping):
                raise ValueError(f"Config section '{name}' must be a mapping")
            current = getattr(base, name)
            known = {f.name for f in fields(section_cls)}
            updates: Dict[str, Any] = {}
            for key, value in payload.items():
                if key not in known:
                    raise ValueError(f"Unknown option '{name}.{key}'")
                existing = getattr(current, key)
                if isinstance(existing, Mapping) and isinstance(value, Mapping):
                    value = {**existing, **value}
                elif isinstance(existing, tuple) and isinstance(value, list):
                    value = tuple(value)
                updates[key] = value
            sections[name] = replace(current, **updates)
        return replace(base, **sections)


def load_config(path: Path, base: Optional[VigilConfig] = None) -> VigilConfig:
    """Load a JSON config file into a ``VigilConfig``."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    config = VigilConfig.from_dict(raw, base=base)
    logger.info(f"Loaded configuration from {path}")
    return config


# Preset configurations
def get_default_config() -> VigilConfig:
    """Defaults as documented for every option."""
    return VigilConfig()


def get_sensitive_config() -> VigilConfig:
    """
    Sensitive mode: notify earlier

    Shorter duration concerns, lower cut points and a narrower duplicate window.
    """
    return VigilConfig(
        reasoning=ReasoningConfig(
            similarity_window_minutes=10.0,
            cut_points={"low": 10.0, "medium": 25.0, "high": 45.0, "urgent": 70.0},
            duration_thresholds_seconds={
                "person": 5 * MINUTE,
                "vehicle": 1 * HOUR,
                "package": 1 * HOUR,
                "pet": 15 * MINUTE,
                "other": 30 * MINUTE,
            },
        ),
    )


def get_quiet_config() -> VigilConfig:
    """
    Quiet mode: fewer notifications

    Routines are learned with fewer occurrences and suppress automatically.
    """
    return VigilConfig(
        routines=RoutineConfig(
            min_occurrences=4,
            confidence_threshold=70.0,
            auto_suppress_new=True,
        ),
        reasoning=ReasoningConfig(
            similarity_window_minutes=60.0,
            routine_confidence_floor=70.0,
            escalation_floor="high",
            cut_points={"low": 25.0, "medium": 45.0, "high": 70.0, "urgent": 90.0},
        ),
    )


PRESETS = {
    "default": get_default_config,
    "sensitive": get_sensitive_config,
    "quiet": get_quiet_config,
}


__all__ = [
    "CATEGORIES",
    "PRIORITY_LEVELS",
    "ResolverConfig",
    "OracleConfig",
    "RoutineConfig",
    "ReasoningConfig",
    "VigilConfig",
    "load_config",
    "get_default_config",
    "get_sensitive_config",
    "get_quiet_config",
    "PRESETS",
]
