import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Add repository root to sys.path so 'vigil' can be imported in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from vigil.config import OracleConfig  # noqa: E402


class ScriptedOracle:
    """Fake oracle that replays scripted answers.

    Each entry of ``script`` is either an identifier / None (returned), an
    exception instance (raised) or a float (seconds to hang before answering
    None). The last entry repeats once the script runs out.
    """

    def __init__(self, script: Sequence[object] = (None,)):
        self.script = list(script) or [None]
        self.calls: List[List[str]] = []

    async def resolve_ambiguous(self, detection, candidates) -> Optional[str]:
        step = self.script[min(len(self.calls), len(self.script) - 1)]
        self.calls.append([c.identifier for c in candidates])
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, float):
            await asyncio.sleep(step)
            return None
        return step


class SleepRecorder:
    """Stand-in for asyncio.sleep that records backoff delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def base_time() -> datetime:
    # A Monday morning
    return datetime(2026, 10, 5, 9, 0)


@pytest.fixture
def fast_oracle_config() -> OracleConfig:
    return OracleConfig(timeout_seconds=0.05, max_retries=2, backoff_base_seconds=0.5, backoff_max_seconds=4.0)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def scripted_oracle():
    return ScriptedOracle
