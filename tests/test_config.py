"""Tests for settings and the YAML settings loader."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from codebox.config import ExecutorSettings, SettingsLoader, load_settings
from codebox.errors import ConfigError

_SETTINGS_YAML = """\
memory_limit: 67108864
kill_grace: 2
warmup: false
languages:
  - id: python
    image: python:3.12-alpine
    run_command: [python, "{source}"]
    source_filename: main.py
    timeout_ms: 5000
  - id: lua
    image: ${LUA_IMAGE}
    run_command: [lua, "{source}"]
    source_filename: main.lua
    timeout_ms: 2000
"""


class TestExecutorSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DOCKER_HOST", raising=False)
        cfg = ExecutorSettings()
        assert cfg.docker_host == "unix:///var/run/docker.sock"
        assert cfg.memory_limit == 128 * 1024 * 1024
        assert cfg.cpu_quota == 50_000
        assert cfg.workdir == "/workspace"
        assert cfg.languages is None
        assert cfg.telemetry.enabled is False

    def test_docker_host_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCKER_HOST", "tcp://10.0.0.2:2375")
        assert ExecutorSettings().docker_host == "tcp://10.0.0.2:2375"

    def test_default_registry(self) -> None:
        assert "rust" in ExecutorSettings().build_registry()

    def test_relative_workdir_rejected(self) -> None:
        with pytest.raises(ValidationError, match="absolute"):
            ExecutorSettings(workdir="workspace")

    def test_empty_language_table_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least one"):
            ExecutorSettings(languages=[])


class TestSettingsLoader:
    def test_load_with_env_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LUA_IMAGE", "nickblah/lua:5.4")
        f = tmp_path / "codebox.yaml"
        f.write_text(_SETTINGS_YAML)

        cfg = SettingsLoader(f).load()

        assert cfg.memory_limit == 64 * 1024 * 1024
        assert cfg.kill_grace == 2.0
        assert cfg.warmup is False
        registry = cfg.build_registry()
        assert registry.languages() == ["python", "lua"]
        assert registry.resolve("lua").image == "nickblah/lua:5.4"
        assert registry.resolve("python").render_command() == ["python", "main.py"]

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        f = tmp_path / "empty.yaml"
        f.write_text("")
        assert SettingsLoader(f).load() == ExecutorSettings()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            SettingsLoader(tmp_path / "nope.yaml").load()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        f = tmp_path / "bad.yaml"
        f.write_text("languages: [unclosed\n")
        with pytest.raises(ConfigError, match="YAML parse error"):
            SettingsLoader(f).load()

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        f = tmp_path / "list.yaml"
        f.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            SettingsLoader(f).load()

    def test_bad_profile_rejected_at_load(self, tmp_path: Path) -> None:
        f = tmp_path / "bad-profile.yaml"
        f.write_text(
            "languages:\n"
            "  - id: sh\n"
            "    image: alpine\n"
            "    run_command: [sh, '{script}']\n"
            "    source_filename: run.sh\n"
            "    timeout_ms: 1000\n"
        )
        with pytest.raises(ConfigError, match="unknown placeholder"):
            SettingsLoader(f).load()

    def test_duplicate_profiles_rejected(self, tmp_path: Path) -> None:
        profile = "  - {id: sh, image: alpine, run_command: [sh, '{source}'], source_filename: a.sh, timeout_ms: 10}\n"
        f = tmp_path / "dupes.yaml"
        f.write_text("languages:\n" + profile + profile)
        with pytest.raises(ConfigError, match="duplicate"):
            SettingsLoader(f).load()

    def test_load_settings_without_path(self) -> None:
        assert isinstance(load_settings(None), ExecutorSettings)
