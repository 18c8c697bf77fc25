"""
Disambiguation Oracle
=====================

The oracle is an external capability that, given a detection and the
candidate identities it might belong to, names the best match or answers
"no match". It is the only place visual similarity is judged.

This module provides:
- ``DisambiguationOracle``: the one-method protocol the resolver consumes
- ``consult_oracle``: bounded timeout + retry with exponential backoff,
  raising ``OracleUnavailable`` once the budget is spent
- ``HttpDisambiguationOracle``: JSON-over-HTTP client using httpx

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence

import httpx

from vigil.config import OracleConfig
from vigil.perception.types import Detection
from vigil.tracking.types import TrackedEntity

logger = logging.getLogger(__name__)


class OracleUnavailable(RuntimeError):
    """Raised when the oracle failed on every attempt of its retry budget."""


class DisambiguationOracle(Protocol):
    """Minimal protocol all oracles should satisfy."""

    async def resolve_ambiguous(
        self,
        detection: Detection,
        candidates: Sequence[TrackedEntity],
    ) -> Optional[str]:
        """Return the identifier of the matching candidate, or None for no match."""
        ...


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


async def consult_oracle(
    oracle: DisambiguationOracle,
    detection: Detection,
    candidates: Sequence[TrackedEntity],
    config: OracleConfig,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Optional[str]:
    """
    Ask the oracle with a per-attempt timeout and exponential backoff.

    A ``CancelledError`` coming from the oracle call alone counts as a failed
    attempt. If the calling task itself is being cancelled the error
    propagates unchanged.

    Raises:
        OracleUnavailable: every attempt timed out or errored
    """
    attempts = config.max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(
                oracle.resolve_ambiguous(detection, candidates),
                timeout=config.timeout_seconds,
            )
        except asyncio.CancelledError as exc:
            if _current_task_cancelling():
                raise
            last_error = exc
            logger.warning(f"Oracle call cancelled (attempt {attempt}/{attempts})")
        except asyncio.TimeoutError as exc:
            last_error = exc
            logger.warning(
                f"Oracle timed out after {config.timeout_seconds}s (attempt {attempt}/{attempts})"
            )
        except Exception as exc:
            last_error = exc
            logger.warning(f"Oracle error (attempt {attempt}/{attempts}): {exc}")

        if attempt < attempts:
            await sleep(config.backoff(attempt))

    raise OracleUnavailable(
        f"Oracle unavailable after {attempts} attempts: {last_error!r}"
    ) from last_error


def _candidate_payload(entity: TrackedEntity) -> Dict[str, Any]:
    position = entity.last_position
    return {
        "identifier": entity.identifier,
        "category": entity.category.value,
        "description": entity.description,
        "last_position": position.to_dict() if position else None,
        "last_seen": entity.last_seen.isoformat(),
        "duration_minutes": entity.duration_minutes,
    }


class HttpDisambiguationOracle:
    """
    Oracle backed by an HTTP service.

    POSTs ``{"detection": {...}, "candidates": [...]}`` to the endpoint and
    expects ``{"identifier": "<id>" | null}`` back. Transport errors and
    non-2xx responses propagate so ``consult_oracle`` can retry them.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: OracleConfig) -> Optional["HttpDisambiguationOracle"]:
        if not config.endpoint:
            return None
        return cls(config.endpoint, timeout=config.timeout_seconds)

    async def resolve_ambiguous(
        self,
        detection: Detection,
        candidates: Sequence[TrackedEntity],
    ) -> Optional[str]:
        payload = {
            "detection": detection.to_descriptor(),
            "candidates": [_candidate_payload(c) for c in candidates],
        }
        logger.debug(f"Oracle request: {len(candidates)} candidates for '{detection.description}'")
        response = await self._client.post(self.endpoint, json=payload)
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Oracle response must be a JSON object, got {type(data).__name__}")
        identifier = data.get("identifier")
        if identifier is None:
            return None
        return str(identifier)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpDisambiguationOracle":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
