"""Data models for the sandbox subsystem."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ExecutionState(str, Enum):
    """Lifecycle state of one execution environment."""

    PROVISIONING = "provisioning"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DESTROYED = "destroyed"


class ExecutionRequest(BaseModel):
    """A request to run a piece of source code."""

    code: str = Field(..., description="Source code to execute.")
    language: str = Field(..., description="Language identifier, e.g. 'python'.")
    correlation_id: str = Field(default="", description="Opaque id used for logging (session id).")


class ExecutionResult(BaseModel):
    """Normalized result of one execution, returned to the caller."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool
    output: str | None = None
    error: str | None = None
    execution_time_ms: int = 0
    language: str = ""
    exit_code: int = -1

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys (``executionTimeMs``, ``exitCode``)."""
        return self.model_dump(by_alias=True)


@dataclass
class ExecutionOutcome:
    """Raw terminal outcome produced by the lifecycle supervisor."""

    state: ExecutionState
    elapsed_ms: int
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
