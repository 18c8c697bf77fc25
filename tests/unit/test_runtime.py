"""Tests for camera lanes and the runtime wiring."""

import asyncio
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from vigil.runtime import Frame, MemorySink, VigilRuntime
from vigil.semantic.types import NotificationPriority, Observation
from vigil.storage import ObservationLog, RoutineStore

T = datetime(2026, 10, 5, 9, 0)


def package_frame(at, scene=None, camera_id="front_door"):
    return Frame.from_dict({
        "camera_id": camera_id,
        "timestamp": at.isoformat(),
        "detections": [{"category": "package", "position": "on porch", "confidence": 0.9}],
        "scene": scene,
    })


def empty_frame(camera_id, at):
    return Frame(camera_id=camera_id, timestamp=at)


class FailingOnceSink(MemorySink):
    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def deliver(self, observation):
        self.attempts += 1
        if self.attempts == 1:
            raise ConnectionError("push gateway unreachable")
        await super().deliver(observation)


def weekday_dog_walks():
    """Walks at 07:15 and 07:40 on 18 of the 20 weekdays from 2026-09-07."""
    skipped = {date(2026, 9, 8), date(2026, 9, 24)}
    days = [date(2026, 9, 7) + timedelta(days=w * 7 + d) for w in range(4) for d in range(5)]
    observations = []
    for day in days:
        if day in skipped:
            continue
        for hour, minute in ((7, 15), (7, 40)):
            observations.append(Observation(
                camera_id="front_door",
                occurred_at=datetime(day.year, day.month, day.day, hour, minute),
                detections=[{"type": "person"}, {"type": "pet"}],
            ))
    return observations


async def replay(runtime, frames):
    async with runtime:
        for frame in frames:
            await runtime.submit(frame)
        await runtime.drain()


class TestFrame:
    def test_from_dict(self):
        frame = package_frame(T, scene={"lighting": "day"})
        assert frame.camera_id == "front_door"
        assert frame.timestamp == T
        assert len(frame.detections) == 1
        assert frame.scene.camera_id == "front_door"

    @pytest.mark.parametrize(
        "raw",
        [
            {"timestamp": "2026-10-05T09:00:00"},
            {"camera_id": " ", "timestamp": "2026-10-05T09:00:00"},
            {"camera_id": "cam1", "timestamp": "soon"},
            {"camera_id": "cam1", "timestamp": "2026-10-05T09:00:00", "detections": {"category": "person"}},
        ],
    )
    def test_from_dict_rejects(self, raw):
        with pytest.raises(ValueError):
            Frame.from_dict(raw)


class TestVigilRuntime:
    def test_submit_requires_start(self):
        runtime = VigilRuntime(run_learner=False)
        with pytest.raises(RuntimeError):
            asyncio.run(runtime.submit(empty_frame("cam1", T)))

    def test_lanes_keep_arrival_order_per_camera(self):
        runtime = VigilRuntime(sink=MemorySink(), run_learner=False)
        frames = []
        for minute in range(4):
            frames.append(empty_frame("front_door", T + timedelta(minutes=minute)))
            frames.append(empty_frame("garage", T + timedelta(minutes=minute, seconds=30)))

        asyncio.run(replay(runtime, frames))

        assert set(runtime.lanes) == {"front_door", "garage"}
        for camera in ("front_door", "garage"):
            times = [o.occurred_at for o in runtime.observation_log.snapshot(camera)]
            assert times == sorted(times)
            assert len(times) == 4
            assert runtime.lanes[camera].processed == 4

    def test_lane_survives_failing_frame(self):
        sink = FailingOnceSink()
        runtime = VigilRuntime(sink=sink, run_learner=False)
        rain = {
            "weather": {"condition": "raining", "intensity": "moderate", "since": (T + timedelta(hours=2, minutes=15)).isoformat()},
            "lighting": "day",
        }
        frames = [package_frame(T, {"lighting": "day"}), package_frame(T + timedelta(hours=3), rain)]

        asyncio.run(replay(runtime, frames))

        lane = runtime.lanes["front_door"]
        assert lane.failed == 1
        assert lane.processed == 2
        assert len(runtime.observation_log) == 2
        assert [o.notification_priority for o in sink.delivered] == [NotificationPriority.HIGH]

    def test_package_left_in_rain_is_delivered_high(self):
        sink = MemorySink()
        runtime = VigilRuntime(sink=sink, run_learner=False)
        rain = {
            "weather": {"condition": "raining", "intensity": "moderate", "since": (T + timedelta(hours=2, minutes=15)).isoformat()},
            "lighting": "day",
        }
        frames = [package_frame(T, {"lighting": "day"}), package_frame(T + timedelta(hours=3), rain)]

        asyncio.run(replay(runtime, frames))

        (entity,) = runtime.lanes["front_door"].resolver.store.snapshot()
        assert entity.duration_minutes == 180
        latest = sink.delivered[-1]
        assert latest.notification_priority == NotificationPriority.HIGH
        assert latest.notification_sent is True
        assert "raining" in latest.notification_message

    def test_learn_once_commits_routines(self):
        runtime = VigilRuntime(observation_log=ObservationLog(weekday_dog_walks()), run_learner=False)
        results = asyncio.run(runtime.learn_once(now=datetime(2026, 10, 3)))

        assert len(results["front_door"].created) == 1
        (routine,) = runtime.routine_store.active("front_door")
        assert routine.occurrence_count == 18

    def test_learned_routine_suppresses_every_frame_of_the_walk(self):
        learner_runtime = VigilRuntime(observation_log=ObservationLog(weekday_dog_walks()), run_learner=False)
        asyncio.run(learner_runtime.learn_once(now=datetime(2026, 10, 3)))
        (routine,) = learner_runtime.routine_store.active("front_door")

        runtime = VigilRuntime(
            sink=MemorySink(),
            routine_store=RoutineStore([replace(routine, auto_suppress=True)]),
            run_learner=False,
        )
        walk = [
            {"category": "person", "description": "person walking dog", "position": {"x": 0.5, "y": 0.5}, "confidence": 0.9},
            {"category": "pet", "description": "dog on leash", "position": {"x": 0.55, "y": 0.55}, "confidence": 0.9},
        ]
        frames = [
            Frame.from_dict({"camera_id": "front_door", "timestamp": ts, "detections": walk})
            for ts in ("2026-10-05T07:15:00", "2026-10-05T07:20:00")
        ]

        asyncio.run(replay(runtime, frames))

        decided = runtime.observation_log.snapshot("front_door")
        assert [o.suppression_reason for o in decided] == ["routine", "routine"]
        assert all(o.is_routine and o.routine_id == routine.routine_id for o in decided)
        assert decided[1].reasoning["duplicate"]["matched"] is True
        assert runtime.sink.delivered == []
