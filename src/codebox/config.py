"""Executor settings and the YAML settings loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from codebox.errors import ConfigError
from codebox.sandbox.docker_client import DEFAULT_API_VERSION, DEFAULT_DOCKER_HOST
from codebox.sandbox.languages import DEFAULT_PROFILES, LanguageProfile, LanguageRegistry


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    export_to_console: bool = False
    otlp_endpoint: str | None = None


class ExecutorSettings(BaseModel):
    """Configuration for :class:`~codebox.executor.CodeExecutor`."""

    docker_host: str = Field(
        default_factory=lambda: os.environ.get("DOCKER_HOST", DEFAULT_DOCKER_HOST),
        description="Docker daemon address (unix:// or tcp://).",
    )
    api_version: str = Field(default=DEFAULT_API_VERSION, description="Docker Engine API version prefix.")
    request_timeout: float = Field(default=30.0, gt=0, description="Timeout for short Docker API calls, seconds.")
    memory_limit: int = Field(default=128 * 1024 * 1024, gt=0, description="Memory ceiling in bytes (no swap).")
    cpu_quota: int | None = Field(default=50_000, description="CFS quota per period; None disables the cap.")
    cpu_period: int = Field(default=100_000, gt=0, description="CFS period in microseconds.")
    pids_limit: int | None = Field(default=128, description="Max processes in the container.")
    tmpfs_size: str = Field(default="100m", description="Size of the /tmp scratch mount.")
    workdir: str = Field(default="/workspace", description="Directory the source file is written to.")
    container_prefix: str = Field(default="codebox-exec", description="Name prefix for containers.")
    kill_grace: float = Field(default=5.0, gt=0, description="Bound on the kill call after a timeout, seconds.")
    drain_timeout: float = Field(default=5.0, gt=0, description="Bound on reading remaining output after exit, seconds.")
    warmup: bool = Field(default=True, description="Pre-pull language images in the background on startup.")
    languages: list[LanguageProfile] | None = Field(
        default=None,
        description="Language table; the built-in table is used when omitted.",
    )
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    @field_validator("workdir")
    @classmethod
    def _absolute_workdir(cls, value: str) -> str:
        if not value.startswith("/"):
            msg = "workdir must be an absolute path"
            raise ValueError(msg)
        return value

    @field_validator("languages")
    @classmethod
    def _unique_languages(cls, value: list[LanguageProfile] | None) -> list[LanguageProfile] | None:
        if value is None:
            return value
        if not value:
            msg = "languages must list at least one profile"
            raise ValueError(msg)
        seen: set[str] = set()
        for profile in value:
            if profile.id in seen:
                msg = f"duplicate language profile: {profile.id}"
                raise ValueError(msg)
            seen.add(profile.id)
        return value

    def build_registry(self) -> LanguageRegistry:
        """Return a registry over the configured (or default) language table."""
        return LanguageRegistry(self.languages if self.languages is not None else DEFAULT_PROFILES)


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`ExecutorSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> ExecutorSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.  An empty file
        yields the defaults.

        Raises:
            ConfigError: On read errors, YAML parse errors or validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Settings YAML must be a mapping")

        try:
            return ExecutorSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def load_settings(path: str | Path | None = None) -> ExecutorSettings:
    """Load settings from *path*, or return the defaults when *path* is ``None``."""
    if path is None:
        return ExecutorSettings()
    return SettingsLoader(Path(path)).load()
