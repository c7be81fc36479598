"""Shared error types for the execution orchestrator."""

from __future__ import annotations


class CodeboxError(Exception):
    """Base error for all codebox failures."""


class ConfigError(CodeboxError):
    """Settings file could not be read or failed validation."""


class UnsupportedLanguageError(CodeboxError):
    """The requested language has no registered profile."""

    def __init__(self, language: str, supported: list[str] | None = None) -> None:
        self.language = language
        self.supported = supported or []
        msg = f"Unsupported language: {language}"
        if self.supported:
            msg += f" (supported: {', '.join(self.supported)})"
        super().__init__(msg)


class SandboxError(CodeboxError):
    """A sandbox operation failed (creation, execution, or cleanup)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class BackendUnavailableError(SandboxError):
    """The Docker daemon could not be reached."""


class DockerAPIError(SandboxError):
    """The Docker daemon answered with an error status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Docker API error {status_code}" + (f": {message}" if message else ""))


class ProvisioningError(SandboxError):
    """An execution environment could not be created or prepared."""
