"""Language registry — static per-language execution profiles.

Each :class:`LanguageProfile` names the base image, the argument templates
of the run command, the filename the source is written to, and the timeout.
The only placeholder a template may use is ``{source}``, which is replaced by
the profile's ``source_filename``.  Templates are checked when the profile is
built, so an invalid table fails at startup instead of on a request.
"""

from __future__ import annotations

from string import Formatter
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

from codebox.errors import UnsupportedLanguageError

if TYPE_CHECKING:
    from collections.abc import Iterable

_PLACEHOLDERS = frozenset({"source"})


class LanguageProfile(BaseModel):
    """Immutable execution profile for one language."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Language identifier.")
    image: str = Field(..., min_length=1, description="Base image reference.")
    run_command: tuple[str, ...] = Field(..., description="Argument templates of the run command.")
    source_filename: str = Field(..., description="Name of the injected source file.")
    timeout_ms: int = Field(..., gt=0, description="Wall-clock limit in milliseconds.")

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("run_command")
    @classmethod
    def _check_templates(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            msg = "run_command must not be empty"
            raise ValueError(msg)
        for arg in value:
            for _, field_name, _, _ in Formatter().parse(arg):
                if field_name is not None and field_name not in _PLACEHOLDERS:
                    msg = f"unknown placeholder {{{field_name}}} in {arg!r}"
                    raise ValueError(msg)
        return value

    @field_validator("source_filename")
    @classmethod
    def _check_filename(cls, value: str) -> str:
        if not value or "/" in value or "\\" in value or value in {".", ".."}:
            msg = f"source_filename must be a plain file name, got {value!r}"
            raise ValueError(msg)
        return value

    @property
    def timeout(self) -> float:
        """Timeout in seconds."""
        return self.timeout_ms / 1000

    def render_command(self) -> list[str]:
        """Return the run command with ``{source}`` substituted."""
        return [arg.format(source=self.source_filename) for arg in self.run_command]


DEFAULT_PROFILES: tuple[LanguageProfile, ...] = (
    LanguageProfile(
        id="javascript",
        image="node:18-alpine",
        run_command=("node", "{source}"),
        source_filename="code.js",
        timeout_ms=30_000,
    ),
    LanguageProfile(
        id="python",
        image="python:3.11-alpine",
        run_command=("python", "{source}"),
        source_filename="code.py",
        timeout_ms=30_000,
    ),
    LanguageProfile(
        id="java",
        image="eclipse-temurin:17-jdk-alpine",
        run_command=("sh", "-c", "javac {source} && java Main"),
        source_filename="Main.java",
        timeout_ms=45_000,
    ),
    LanguageProfile(
        id="cpp",
        image="gcc:13",
        run_command=("sh", "-c", "g++ -o main {source} && ./main"),
        source_filename="code.cpp",
        timeout_ms=45_000,
    ),
    LanguageProfile(
        id="go",
        image="golang:1.21-alpine",
        run_command=("go", "run", "{source}"),
        source_filename="main.go",
        timeout_ms=30_000,
    ),
    LanguageProfile(
        id="rust",
        image="rust:1.70-alpine",
        run_command=("sh", "-c", "rustc -o main {source} && ./main"),
        source_filename="main.rs",
        timeout_ms=60_000,
    ),
)

# File extension -> language id, used by the CLI when --language is omitted.
EXTENSIONS: dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".py": "python",
    ".java": "java",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".go": "go",
    ".rs": "rust",
}


class LanguageRegistry:
    """Read-only lookup table from language id to :class:`LanguageProfile`.

    Safe for unsynchronized concurrent reads; nothing mutates it after
    construction.
    """

    def __init__(self, profiles: Iterable[LanguageProfile] = DEFAULT_PROFILES) -> None:
        table: dict[str, LanguageProfile] = {}
        for profile in profiles:
            if profile.id in table:
                msg = f"duplicate language profile: {profile.id}"
                raise ValueError(msg)
            table[profile.id] = profile
        self._profiles = table

    def resolve(self, language_id: str) -> LanguageProfile:
        """Return the profile for *language_id* or raise :class:`UnsupportedLanguageError`."""
        profile = self._profiles.get(language_id.strip().lower())
        if profile is None:
            raise UnsupportedLanguageError(language_id, self.languages())
        return profile

    def languages(self) -> list[str]:
        return list(self._profiles)

    def profiles(self) -> list[LanguageProfile]:
        return list(self._profiles.values())

    def __contains__(self, language_id: object) -> bool:
        return isinstance(language_id, str) and language_id.strip().lower() in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
