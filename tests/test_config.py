"""
Tests for configuration loading and logging setup.

Run with: pytest tests/test_config.py -v
"""

import logging

import pytest

from facelogin import config as config_module
from facelogin.config import (
    get_camera_config,
    get_config,
    get_matching_config,
    get_project_root,
    get_section,
    load_config,
    set_config,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_config():
    set_config(None)
    yield
    set_config(None)


class TestLoadConfig:
    """Tests for reading config.yaml."""

    def test_project_config(self):
        config = load_config()

        assert config["matching"]["threshold"] == 0.55
        assert config["camera"]["width"] == 300
        assert config["camera"]["height"] == 300
        assert config["live_detection"]["interval_ms"] == 200

    def test_project_root_holds_config(self):
        assert (get_project_root() / "config.yaml").exists()

    def test_custom_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("matching:\n  threshold: 0.4\n", encoding="utf-8")

        assert load_config(str(path)) == {"matching": {"threshold": 0.4}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))


class TestConfigSingleton:
    """Tests for get_config() / get_section()."""

    def test_singleton(self):
        assert get_config() is get_config()
        assert get_config(reload=True) is not None

    def test_set_config_overrides(self):
        set_config({"matching": {"threshold": 0.3}, "camera": {"width": 640}})

        assert get_matching_config() == {"threshold": 0.3}
        assert get_camera_config()["width"] == 640

    def test_missing_section(self):
        set_config({"matching": {}})
        with pytest.raises(KeyError):
            get_section("camera")

    def test_set_none_reloads_from_disk(self):
        set_config({"matching": {"threshold": 0.3}})
        set_config(None)

        assert get_matching_config()["threshold"] == 0.55
        assert config_module._config_instance is not None


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_applies_level(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        setup_logging({"level": "debug"})

        assert calls[0]["level"] == logging.DEBUG
        assert calls[0]["format"] == config_module.DEFAULT_LOG_FORMAT

    def test_reads_logging_section(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
        set_config({"logging": {"level": "WARNING", "format": "%(message)s"}})

        setup_logging()

        assert calls[0] == {"level": logging.WARNING, "format": "%(message)s"}
