"""
Regression tests for ConfigService path handling and isolation.

Goal: ensure that the test environment does not pollute the real user
directories and that user values survive a save/reload.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml


@pytest.fixture(autouse=True)
def _reset_config_service():
    from services.config_service import ConfigService

    ConfigService.reset_instance()
    yield
    ConfigService.reset_instance()


def _sandbox_user_config_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    base = tmp_path / "user-config"
    # Set for Windows/Mac/Linux to avoid platform differences leaking to real user directories
    monkeypatch.setenv("APPDATA", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base))
    return base


def test_custom_config_path_save_and_reload_round_trip(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from services.config_service import ConfigService

    _sandbox_user_config_dir(monkeypatch, tmp_path)

    custom_path = tmp_path / "isolated.yaml"
    config = ConfigService(str(custom_path))
    config.set("playback.normalization.enabled", True)

    assert config.save() is True
    assert custom_path.exists()

    # Custom mode should not write to the default user directory
    assert ConfigService._get_user_config_path().exists() is False

    ConfigService.reset_instance()
    config2 = ConfigService(str(custom_path))
    assert config2.get("playback.normalization.enabled") is True


def test_user_file_is_merged_over_defaults(tmp_path: Path):
    from services.config_service import ConfigService

    custom_path = tmp_path / "partial.yaml"
    custom_path.write_text(
        yaml.safe_dump({"playback": {"normalization": {"max_gain": 2.0}}}),
        encoding="utf-8",
    )

    config = ConfigService(str(custom_path))

    assert config.get("playback.normalization.max_gain") == 2.0
    assert config.get("playback.normalization.min_gain") == 0.1
    assert config.get("playback.default_volume") == 0.7


def test_broken_yaml_falls_back_to_defaults(tmp_path: Path):
    from services.config_service import ConfigService

    custom_path = tmp_path / "broken.yaml"
    custom_path.write_text("playback: [unterminated", encoding="utf-8")

    config = ConfigService(str(custom_path))

    assert config.get("audio.backend") == "miniaudio"


def test_default_path_lives_in_user_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from services.config_service import ConfigService

    base = _sandbox_user_config_dir(monkeypatch, tmp_path)
    monkeypatch.setattr("sys.platform", "linux")

    assert ConfigService._get_user_config_path() == base / "musicqueue" / "config.yaml"


def test_singleton_until_reset(tmp_path: Path):
    from services.config_service import ConfigService

    first = ConfigService(str(tmp_path / "a.yaml"))
    second = ConfigService(str(tmp_path / "b.yaml"))

    assert first is second
    assert first.path == tmp_path / "a.yaml"


def test_get_missing_key_returns_default(tmp_path: Path):
    from services.config_service import ConfigService

    config = ConfigService(str(tmp_path / "c.yaml"))

    assert config.get("no.such.key", 42) == 42
    assert config.get("playback.default_volume.deeper") is None


def test_reset_restores_defaults(tmp_path: Path):
    from services.config_service import ConfigService

    config = ConfigService(str(tmp_path / "c.yaml"))
    config.set("playback.default_volume", 0.2)
    config.reset()

    assert config.get("playback.default_volume") == 0.7
    assert config.get_all()["playback"]["normalization"]["ramp_seconds"] == 0.5
