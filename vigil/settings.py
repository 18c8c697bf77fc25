"""User-facing configuration management for Vigil."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Tuple

from vigil.config import PRESETS, VigilConfig

CURRENT_VERSION = 1
logger = logging.getLogger(__name__)


class SettingsError(RuntimeError):
    """Raised when configuration operations fail."""


def _parse_value(raw_value: str) -> Any:
    """CLI values are JSON when they parse as JSON, plain strings otherwise."""
    value = raw_value.strip()
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _nest(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """{'reasoning.cut_points.low': 10} -> {'reasoning': {'cut_points': {'low': 10}}}"""
    nested: Dict[str, Any] = {}
    for key, value in overrides.items():
        parts = key.split(".")
        node = nested
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return nested


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(_flatten(value, name))
        else:
            flat[name] = value
    return flat


@dataclass
class VigilSettings:
    """Persisted Vigil preferences loaded from ``config.json``.

    Holds a preset name plus dotted-key overrides such as
    ``reasoning.escalation_floor`` or ``resolver.grace_window_seconds.package``.
    """

    preset: str = "default"
    overrides: Dict[str, Any] = field(default_factory=dict)
    config_version: int = CURRENT_VERSION

    _SECTIONS: ClassVar[Tuple[str, ...]] = ("resolver", "oracle", "routines", "reasoning")

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    @classmethod
    def config_path(cls) -> Path:
        """Return the location of the user configuration file."""
        env_path = os.getenv("VIGIL_CONFIG_PATH")
        if env_path:
            path = Path(env_path).expanduser()
        else:
            base_dir = Path(
                os.getenv("VIGIL_CONFIG_DIR", Path.home() / ".vigil")
            ).expanduser()
            path = base_dir / "config.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @classmethod
    def load(cls) -> "VigilSettings":
        """Load settings from disk, returning defaults if no file exists yet."""
        path = cls.config_path()
        if not path.exists():
            return cls()

        try:
            raw: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise SettingsError(
                f"Configuration file at {path} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(raw, dict):
            raise SettingsError(f"Configuration file at {path} must contain a JSON object.")

        known_fields = {f.name for f in fields(cls)}
        data = {name: raw[name] for name in known_fields if name in raw}
        settings = cls(**data)
        settings.config_version = CURRENT_VERSION
        settings.validate()
        return settings

    def save(self, path: Path | None = None) -> Path:
        """Persist the current settings to disk."""
        self.validate()
        target = path or self.config_path()
        target.write_text(
            json.dumps(self.to_dict(), indent=2, sort_keys=True), encoding="utf-8"
        )
        logger.info(f"Saved settings to {target}")
        return target

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------
    def build_config(self) -> VigilConfig:
        """Preset plus overrides as an immutable ``VigilConfig``."""
        try:
            base = PRESETS[self.preset]()
            return VigilConfig.from_dict(_nest(self.overrides), base=base)
        except (KeyError, TypeError, ValueError) as exc:
            raise SettingsError(f"Invalid configuration: {exc}") from exc

    def iter_display_items(self) -> Iterable[Tuple[str, str, bool]]:
        """Yield (key, value, overridden) for every effective option."""
        flat = _flatten(self.build_config().to_dict())
        yield "preset", self.preset, self.preset != "default"
        for key in sorted(flat):
            value = flat[key]
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            yield key, str(value), key in self.overrides

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------
    def set_value(self, key: str, raw_value: str) -> None:
        """Update a configuration value using dotted CLI keys."""
        normalized = key.strip().lower().replace("-", "_")
        if normalized == "preset":
            value = raw_value.strip().lower()
            if value not in PRESETS:
                raise SettingsError(f"Preset must be one of {tuple(PRESETS)}.")
            self.preset = value
            return

        section = normalized.split(".", 1)[0]
        if section not in self._SECTIONS or "." not in normalized:
            raise SettingsError(f"Unknown configuration key '{key}'.")

        candidate = dict(self.overrides)
        candidate[normalized] = _parse_value(raw_value)
        previous = self.overrides
        self.overrides = candidate
        try:
            self.validate()
        except SettingsError:
            self.overrides = previous
            raise

    def reset(self) -> None:
        self.preset = "default"
        self.overrides = {}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self) -> None:
        if self.preset not in PRESETS:
            raise SettingsError(f"Preset must be one of {tuple(PRESETS)}.")
        if not isinstance(self.overrides, dict):
            raise SettingsError("Overrides must be a mapping of dotted keys to values.")
        self.build_config()
