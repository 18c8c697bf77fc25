"""
Vigil Runtime
=============

Wires the resolver, reasoning engine and learner into a running system.

Architecture:
- One ``CameraLane`` per camera: an asyncio queue plus a worker that processes
  frames strictly in arrival order. The lane is the only writer of its
  camera's entities, so lanes of different cameras run concurrently without
  sharing mutable state beyond the append-only Observation log and the
  identifier registry.
- A periodic learner task snapshots the Observation log, runs the Routine
  Pattern Learner in a worker thread and commits the result to the
  ``RoutineStore``.
- Decided Observations worth a notification go to a ``NotificationSink``.

No frame-level error halts a lane: it is logged with its cause and the lane
moves on to the next frame.

Author: Vigil Team
Date: October 2026
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from vigil.config import VigilConfig
from vigil.perception.types import SceneContext
from vigil.perception.validation import parse_scene, parse_timestamp
from vigil.semantic.reasoning import NotificationReasoningEngine
from vigil.semantic.routines import LearnResult, RoutineLearner
from vigil.semantic.types import NotificationDecision, Observation
from vigil.storage import EntityStore, ObservationLog, RoutineStore
from vigil.tracking.identifiers import IdentifierRegistry
from vigil.tracking.oracle import DisambiguationOracle, HttpDisambiguationOracle
from vigil.tracking.resolver import ObjectIdentityResolver, ResolveResult

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Minimal protocol all notification sinks should satisfy."""

    async def deliver(self, observation: Observation) -> None:
        ...


class LoggingSink:
    """Default sink: writes notifications to the log."""

    async def deliver(self, observation: Observation) -> None:
        logger.info(
            f"[{observation.camera_id}] NOTIFY {observation.notification_priority.value.upper()}: "
            f"{observation.notification_message or 'activity detected'}"
        )


class MemorySink:
    """Keeps delivered Observations in a list."""

    def __init__(self):
        self.delivered: List[Observation] = []

    async def deliver(self, observation: Observation) -> None:
        self.delivered.append(observation)


@dataclass
class Frame:
    """One camera frame's worth of detections."""
    camera_id: str
    timestamp: datetime
    detections: List[Any] = field(default_factory=list)
    scene: Optional[SceneContext] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Frame":
        """Build a Frame from a JSON Lines record.

        Raises:
            ValueError: camera_id or timestamp missing or malformed
        """
        camera_id = raw.get("camera_id")
        if camera_id is None or str(camera_id).strip() == "":
            raise ValueError("Frame missing 'camera_id'")
        camera_id = str(camera_id)
        timestamp = parse_timestamp(raw.get("timestamp"))
        detections = raw.get("detections") or []
        if not isinstance(detections, list):
            raise ValueError("Frame 'detections' must be a list")
        return cls(
            camera_id=camera_id,
            timestamp=timestamp,
            detections=list(detections),
            scene=parse_scene(raw.get("scene"), camera_id, timestamp),
        )


@dataclass
class FrameOutcome:
    result: ResolveResult
    decision: NotificationDecision
    delivered: bool = False


class CameraLane:
    """Ordered, single-writer processing loop for one camera."""

    def __init__(
        self,
        resolver: ObjectIdentityResolver,
        engine: NotificationReasoningEngine,
        observation_log: ObservationLog,
        routine_store: RoutineStore,
        sink: NotificationSink,
    ):
        self.resolver = resolver
        self.engine = engine
        self.observation_log = observation_log
        self.routine_store = routine_store
        self.sink = sink
        self.queue: asyncio.Queue[Optional[Frame]] = asyncio.Queue()
        self.processed = 0
        self.failed = 0
        self._worker: Optional[asyncio.Task] = None

    @property
    def camera_id(self) -> str:
        return self.resolver.camera_id

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run(), name=f"lane-{self.camera_id}")

    async def submit(self, frame: Frame) -> None:
        if frame.camera_id != self.camera_id:
            raise ValueError(f"Lane '{self.camera_id}' cannot take frames for '{frame.camera_id}'")
        await self.queue.put(frame)

    async def run(self) -> None:
        """Worker: process queued frames until a ``None`` sentinel arrives."""
        logger.info(f"Lane {self.camera_id} started")
        while True:
            frame = await self.queue.get()
            try:
                if frame is None:
                    logger.info(f"Lane {self.camera_id} received termination signal")
                    break
                await self.process(frame)
            except Exception as exc:
                self.failed += 1
                logger.error(
                    f"Lane {self.camera_id} failed on frame at "
                    f"{frame.timestamp.isoformat() if frame else '?'}: {exc}",
                    exc_info=True,
                )
            finally:
                self.queue.task_done()
        logger.info(f"Lane {self.camera_id} complete: {self.processed} frames, {self.failed} failed")

    async def process(self, frame: Frame) -> FrameOutcome:
        """Resolve, decide, record and (maybe) deliver one frame."""
        result = await self.resolver.resolve(
            frame.detections, frame.camera_id, frame.timestamp, frame.scene
        )
        observation = result.observation

        window = timedelta(minutes=self.engine.config.similarity_window_minutes)
        recent = self.observation_log.recent(self.camera_id, since=frame.timestamp - window)
        decision = self.engine.decide(
            observation,
            self.resolver.store.snapshot(),
            observation.scene,
            self.routine_store.active(self.camera_id),
            recent,
        )
        observation.apply_decision(decision)
        self.observation_log.append(observation)
        self.processed += 1

        delivered = False
        if decision.should_notify:
            await self.sink.deliver(observation)
            delivered = observation.mark_sent()
        return FrameOutcome(result=result, decision=decision, delivered=delivered)

    async def stop(self) -> None:
        if self._worker is None:
            return
        await self.queue.put(None)
        await self._worker
        self._worker = None


class VigilRuntime:
    """Owns camera lanes, shared stores and the periodic learner task."""

    def __init__(
        self,
        config: Optional[VigilConfig] = None,
        oracle: Optional[DisambiguationOracle] = None,
        sink: Optional[NotificationSink] = None,
        observation_log: Optional[ObservationLog] = None,
        routine_store: Optional[RoutineStore] = None,
        registry: Optional[IdentifierRegistry] = None,
        clock: Callable[[], datetime] = datetime.now,
        run_learner: bool = True,
    ):
        self.config = config or VigilConfig()
        self._owned_oracle: Optional[HttpDisambiguationOracle] = None
        if oracle is None:
            self._owned_oracle = HttpDisambiguationOracle.from_config(self.config.oracle)
            oracle = self._owned_oracle
        self.oracle = oracle
        self.sink = sink or LoggingSink()
        self.observation_log = observation_log if observation_log is not None else ObservationLog()
        self.routine_store = routine_store if routine_store is not None else RoutineStore()
        self.registry = registry or IdentifierRegistry(self.config.resolver.max_identifier_attempts)
        self.engine = NotificationReasoningEngine(self.config.reasoning)
        self.learner = RoutineLearner(self.config.routines)
        self.clock = clock
        self.run_learner = run_learner
        self.lanes: Dict[str, CameraLane] = {}
        self._learner_task: Optional[asyncio.Task] = None
        self._running = False

    def lane(self, camera_id: str) -> CameraLane:
        """Return the lane for ``camera_id``, creating it on first use."""
        lane = self.lanes.get(camera_id)
        if lane is None:
            resolver = ObjectIdentityResolver(
                store=EntityStore(camera_id),
                registry=self.registry,
                config=self.config.resolver,
                oracle=self.oracle,
                oracle_config=self.config.oracle,
            )
            lane = CameraLane(resolver, self.engine, self.observation_log, self.routine_store, self.sink)
            self.lanes[camera_id] = lane
            logger.info(f"Created lane for camera {camera_id}")
            if self._running:
                lane.start()
        return lane

    async def start(self) -> None:
        self._running = True
        for lane in self.lanes.values():
            lane.start()
        if self.run_learner and self._learner_task is None:
            self._learner_task = asyncio.create_task(self._learn_periodically(), name="routine-learner")

    async def submit(self, frame: Frame) -> None:
        """Queue a frame on its camera's lane."""
        if not self._running:
            raise RuntimeError("Runtime not started")
        await self.lane(frame.camera_id).submit(frame)

    async def drain(self) -> None:
        """Wait until every queued frame has been processed."""
        await asyncio.gather(*(lane.queue.join() for lane in self.lanes.values()))

    async def learn_once(self, now: Optional[datetime] = None) -> Dict[str, LearnResult]:
        """Run one learner pass per camera over a snapshot of the log."""
        now = now or self.clock()
        results: Dict[str, LearnResult] = {}
        for camera_id in self.observation_log.cameras():
            snapshot = self.observation_log.snapshot(camera_id)
            existing = self.routine_store.all(camera_id)
            result = await asyncio.to_thread(self.learner.learn, camera_id, snapshot, now, existing)
            self.routine_store.apply(camera_id, result)
            results[camera_id] = result
        return results

    async def _learn_periodically(self) -> None:
        interval = self.config.routines.learn_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.learn_once()
            except Exception as exc:
                logger.error(f"Routine learning pass failed: {exc}", exc_info=True)

    async def stop(self) -> None:
        self._running = False
        if self._learner_task is not None:
            self._learner_task.cancel()
            try:
                await self._learner_task
            except asyncio.CancelledError:
                pass
            self._learner_task = None
        for lane in self.lanes.values():
            await lane.stop()
        if self._owned_oracle is not None:
            await self._owned_oracle.aclose()

    async def __aenter__(self) -> "VigilRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
