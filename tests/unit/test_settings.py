"""Tests for persisted CLI settings."""

import json

import pytest

from vigil.settings import SettingsError, VigilSettings


@pytest.fixture
def settings_path(tmp_path, monkeypatch):
    path = tmp_path / "vigil" / "config.json"
    monkeypatch.setenv("VIGIL_CONFIG_PATH", str(path))
    return path


class TestVigilSettings:
    def test_defaults_when_missing(self, settings_path):
        settings = VigilSettings.load()
        assert settings.preset == "default"
        assert settings.overrides == {}
        assert settings_path.parent.exists()

    def test_set_save_load(self, settings_path):
        settings = VigilSettings.load()
        settings.set_value("reasoning.escalation_floor", "high")
        settings.set_value("resolver.grace_window_seconds.package", "600")
        settings.save()

        loaded = VigilSettings.load()
        config = loaded.build_config()
        assert config.reasoning.escalation_floor == "high"
        assert config.resolver.grace_window("package") == 600
        assert config.resolver.grace_window("person") == 120

    def test_preset_switch(self, settings_path):
        settings = VigilSettings()
        settings.set_value("preset", "Quiet")
        assert settings.build_config().routines.auto_suppress_new is True

        with pytest.raises(SettingsError):
            settings.set_value("preset", "loud")

    def test_invalid_value_rolled_back(self, settings_path):
        settings = VigilSettings()
        settings.set_value("routines.min_occurrences", "3")
        with pytest.raises(SettingsError):
            settings.set_value("routines.min_occurrences", "0")
        assert settings.overrides == {"routines.min_occurrences": 3}

    def test_unknown_key(self, settings_path):
        with pytest.raises(SettingsError):
            VigilSettings().set_value("alerts.volume", "11")
        with pytest.raises(SettingsError):
            VigilSettings().set_value("resolver", "1")

    def test_corrupt_file(self, settings_path):
        settings_path.parent.mkdir(parents=True, exist_ok=True)
        settings_path.write_text("{oops")
        with pytest.raises(SettingsError):
            VigilSettings.load()

    def test_display_marks_overrides(self, settings_path):
        settings = VigilSettings()
        settings.set_value("oracle.max_retries", "4")
        items = {key: (value, overridden) for key, value, overridden in settings.iter_display_items()}

        assert items["oracle.max_retries"] == ("4", True)
        assert items["oracle.timeout_seconds"] == ("5.0", False)
        assert items["reasoning.exposed_categories"] == ("package, pet", False)

    def test_reset(self, settings_path):
        settings = VigilSettings(preset="sensitive", overrides={"oracle.max_retries": 1})
        settings.reset()
        settings.save()
        assert json.loads(settings_path.read_text())["overrides"] == {}
