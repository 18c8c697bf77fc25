"""Tests for the vigil command-line interface."""

import json
from datetime import datetime, timedelta

import pytest

from vigil.cli.main import create_parser, main
from vigil.settings import VigilSettings

T = datetime(2026, 10, 5, 9, 0)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    path = tmp_path / "settings" / "config.json"
    monkeypatch.setenv("VIGIL_CONFIG_PATH", str(path))
    return path


@pytest.fixture
def frames_file(tmp_path):
    rain_since = (T + timedelta(hours=2, minutes=15)).isoformat()
    records = [
        {
            "camera_id": "front_door",
            "timestamp": T.isoformat(),
            "detections": [{"category": "package", "position": "on porch", "confidence": 0.9}],
            "scene": {"lighting": "day"},
        },
        {"camera_id": "front_door", "timestamp": "not a time"},
        {
            "camera_id": "front_door",
            "timestamp": (T + timedelta(hours=3)).isoformat(),
            "detections": [{"category": "package", "position": "on porch", "confidence": 0.85}],
            "scene": {"weather": {"condition": "raining", "intensity": "moderate", "since": rain_since}},
        },
    ]
    path = tmp_path / "frames.jsonl"
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n")
    return path


class TestParser:
    def test_replay_options(self):
        args = create_parser().parse_args(["replay", "frames.jsonl", "--learn", "--preset", "quiet"])
        assert args.command == "replay"
        assert args.learn is True
        assert args.preset == "quiet"
        assert args.export is None

    def test_learn_requires_camera(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["learn", "obs.jsonl"])


class TestReplayCommand:
    def test_replay_exports_observations(self, frames_file, tmp_path):
        out = tmp_path / "out" / "observations.jsonl"

        main(["replay", str(frames_file), "--export", str(out), "--entities"])

        lines = [json.loads(line) for line in out.read_text().splitlines()]
        assert len(lines) == 2
        assert lines[-1]["notification_priority"] == "high"
        assert lines[-1]["notification_sent"] is True

    def test_replay_missing_file_exits_nonzero(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["replay", str(tmp_path / "absent.jsonl")])
        assert excinfo.value.code == 1


class TestLearnCommand:
    def test_learn_from_export(self, tmp_path, capsys):
        records = []
        start = datetime(2026, 9, 7)
        for offset in range(28):
            day = start + timedelta(days=offset)
            if day.weekday() >= 5:
                continue
            records.append({
                "camera_id": "front_door",
                "occurred_at": day.replace(hour=7, minute=20).isoformat(),
                "detections": [{"type": "person"}, {"type": "pet"}],
            })
        path = tmp_path / "observations.jsonl"
        path.write_text("\n".join(json.dumps(r) for r in records) + "\n")

        main(["learn", str(path), "--camera", "front_door"])

        assert "1 created" in capsys.readouterr().out

    def test_learn_skips_timezone_aware_stragglers(self, tmp_path, capsys):
        records = []
        start = datetime(2026, 9, 7)
        for offset in range(28):
            day = start + timedelta(days=offset)
            if day.weekday() >= 5:
                continue
            records.append({
                "camera_id": "front_door",
                "occurred_at": day.replace(hour=7, minute=20).isoformat(),
                "detections": [{"type": "person"}, {"type": "pet"}],
            })
        records.append({
            "camera_id": "front_door",
            "occurred_at": "2026-10-09T07:20:00+00:00",
            "detections": [{"type": "person"}, {"type": "pet"}],
        })
        path = tmp_path / "observations.jsonl"
        path.write_text("\n".join(json.dumps(r) for r in records) + "\n")

        main(["learn", str(path), "--camera", "front_door"])

        out = capsys.readouterr().out
        assert "1 created" in out
        assert "1 records skipped" in out


class TestConfigCommand:
    def test_set_persists(self, isolated_settings):
        main(["config", "set", "reasoning.escalation_floor", "high"])

        settings = VigilSettings.load()
        assert settings.overrides == {"reasoning.escalation_floor": "high"}
        assert settings.build_config().reasoning.escalation_floor == "high"

    def test_set_invalid_value(self, isolated_settings):
        with pytest.raises(SystemExit) as excinfo:
            main(["config", "set", "reasoning.escalation_floor", "extreme"])
        assert excinfo.value.code == 1
        assert not isolated_settings.exists()

    def test_reset_recovers_corrupt_file(self, isolated_settings):
        isolated_settings.parent.mkdir(parents=True, exist_ok=True)
        isolated_settings.write_text("{broken")

        with pytest.raises(SystemExit):
            main(["config", "show"])

        main(["config", "reset"])
        assert VigilSettings.load().overrides == {}
