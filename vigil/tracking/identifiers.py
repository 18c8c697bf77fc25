"""Globally unique, collision-checked identifiers for tracked entities."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Iterable, Optional, Set

logger = logging.getLogger(__name__)


class IdentifierExhausted(RuntimeError):
    """Raised when no unused identifier could be generated."""


def _default_token() -> str:
    return uuid.uuid4().hex[:8]


class IdentifierRegistry:
    """
    Issues identifiers like ``package_3f9a1c2e`` and remembers every one ever
    committed, across all cameras, so an identifier is never reused.

    ``issue`` only reserves an identifier. The resolver commits it once the
    entity is stored, or releases it when the frame is abandoned before any
    entity was created. Committed identifiers can never be released.

    Lanes run concurrently, so reservation is guarded by a lock.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        token_factory: Optional[Callable[[], str]] = None,
        existing: Iterable[str] = (),
    ):
        self.max_attempts = max(1, int(max_attempts))
        self._token_factory = token_factory or _default_token
        self._issued: Set[str] = set(existing)
        self._reserved: Set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._issued

    def __len__(self) -> int:
        with self._lock:
            return len(self._issued)

    def register(self, identifier: str) -> None:
        """Record an identifier that was issued elsewhere (e.g. loaded from storage)."""
        with self._lock:
            if identifier in self._issued:
                raise ValueError(f"Identifier already issued: {identifier}")
            self._issued.add(identifier)

    def issue(self, prefix: str) -> str:
        """Generate and reserve a fresh identifier, regenerating on collision."""
        for attempt in range(1, self.max_attempts + 1):
            candidate = f"{prefix}_{self._token_factory()}"
            with self._lock:
                if candidate not in self._issued:
                    self._issued.add(candidate)
                    self._reserved.add(candidate)
                    return candidate
            logger.warning(f"Identifier collision on '{candidate}' (attempt {attempt}/{self.max_attempts})")
        raise IdentifierExhausted(
            f"Could not generate a unique '{prefix}' identifier in {self.max_attempts} attempts"
        )

    def commit(self, identifier: str) -> None:
        """Make a reserved identifier permanent."""
        with self._lock:
            self._reserved.discard(identifier)

    def release(self, identifier: str) -> None:
        """Return a reserved, uncommitted identifier.

        Raises:
            ValueError: the identifier was committed or never reserved
        """
        with self._lock:
            if identifier not in self._reserved:
                raise ValueError(f"Identifier {identifier} is not an open reservation")
            self._reserved.discard(identifier)
            self._issued.discard(identifier)
