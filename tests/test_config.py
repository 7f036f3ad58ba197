"""Tests for warren/config.py and warren/paths.py."""

import os
from pathlib import Path

import pytest
import yaml

from warren import paths
from warren.config import ConfigError, Settings, load_settings, read_secrets, set_value


class TestLoadSettings:
    def test_defaults_without_config(self, tmp_home):
        s = load_settings(tmp_home, env={})
        assert s.runtime == "docker"
        assert s.image == "warren-agent:latest"
        assert s.agent_timeout == 1800.0
        assert s.max_output_size == 10 * 1024 * 1024
        assert s.one_shot is False
        assert s.poll_interval == 0.5

    def test_reads_yaml(self, tmp_home):
        paths.config_path(tmp_home).write_text(yaml.dump({
            "runtime": "host",
            "agent_timeout": 60,
            "host_command": "python -m warren.runner",
            "project_root": "~/proj",
        }))
        s = load_settings(tmp_home, env={})
        assert s.runtime == "host"
        assert s.agent_timeout == 60
        assert s.host_command == ["python", "-m", "warren.runner"]
        assert s.project_root == Path("~/proj").expanduser()

    def test_env_overrides_file(self, tmp_home):
        paths.config_path(tmp_home).write_text(yaml.dump({"runtime": "docker"}))
        s = load_settings(tmp_home, env={
            "WARREN_RUNTIME": "host",
            "WARREN_IDLE_TIMEOUT": "5",
            "WARREN_AGENT_ONE_SHOT": "true",
            "LOG_LEVEL": "debug",
        })
        assert s.runtime == "host"
        assert s.idle_timeout == 5.0
        assert s.one_shot is True
        assert s.verbose

    def test_unknown_key_rejected(self, tmp_home):
        paths.config_path(tmp_home).write_text(yaml.dump({"colour": "blue"}))
        with pytest.raises(ConfigError, match="colour"):
            load_settings(tmp_home, env={})

    def test_bad_runtime_rejected(self, tmp_home):
        with pytest.raises(ConfigError, match="runtime"):
            load_settings(tmp_home, env={"WARREN_RUNTIME": "podman"})

    def test_bad_env_number_rejected(self, tmp_home):
        with pytest.raises(ConfigError, match="WARREN_MAX_OUTPUT_SIZE"):
            load_settings(tmp_home, env={"WARREN_MAX_OUTPUT_SIZE": "lots"})

    def test_non_mapping_rejected(self, tmp_home):
        paths.config_path(tmp_home).write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_settings(tmp_home, env={})


class TestSetValue:
    def test_persists(self, tmp_home):
        set_value(tmp_home, "image", "custom:1")
        assert load_settings(tmp_home, env={}).image == "custom:1"

    def test_unknown_key(self, tmp_home):
        with pytest.raises(ConfigError):
            set_value(tmp_home, "nope", 1)

    def test_invalid_value_not_written(self, tmp_home):
        with pytest.raises(ConfigError):
            set_value(tmp_home, "max_output_size", 0)
        assert not paths.config_path(tmp_home).exists()


class TestEffectiveTimeout:
    def test_never_shorter_than_idle_plus_grace(self):
        s = Settings(agent_timeout=1.0, idle_timeout=2.0, timeout_grace=30.0)
        assert s.effective_timeout() == 32.0

    def test_group_override(self):
        s = Settings(agent_timeout=1.0, idle_timeout=0.0, timeout_grace=0.0)
        assert s.effective_timeout(90.0) == 90.0


class TestReadSecrets:
    def test_only_allowed_keys(self, tmp_home):
        paths.env_file_path(tmp_home).write_text(
            "ANTHROPIC_API_KEY=sk-test-123\nOTHER=ignored\nCLAUDE_CODE_OAUTH_TOKEN=\n"
        )
        assert read_secrets(tmp_home) == {"ANTHROPIC_API_KEY": "sk-test-123"}

    def test_does_not_touch_environ(self, tmp_home):
        paths.env_file_path(tmp_home).write_text("ANTHROPIC_API_KEY=sk-never-in-env\n")
        read_secrets(tmp_home)
        assert os.environ.get("ANTHROPIC_API_KEY") != "sk-never-in-env"

    def test_missing_file(self, tmp_home):
        assert read_secrets(tmp_home) == {}


class TestPaths:
    def test_home_override_and_env(self, tmp_home, tmp_path):
        assert paths.home(tmp_path) == tmp_path
        assert paths.home() == tmp_home

    def test_layout(self, tmp_home):
        assert paths.group_dir(tmp_home, "g1") == tmp_home / "groups" / "g1"
        assert paths.global_dir(tmp_home) == tmp_home / "groups" / "global"
        assert paths.logs_dir(tmp_home, "g1") == tmp_home / "groups" / "g1" / "logs"
        ipc = paths.ipc_dir(tmp_home, "g1")
        assert ipc == tmp_home / "data" / "ipc" / "g1"
        assert paths.close_sentinel_path(ipc) == ipc / "input" / "_close"
        assert paths.sessions_dir(tmp_home, "g1") == tmp_home / "data" / "sessions" / "g1" / ".agent"
        assert paths.extra_dir(tmp_home, "g1") == tmp_home / "data" / "extra" / "g1"
