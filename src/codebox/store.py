"""Execution log persistence.

:class:`ExecutionStore` defines the async CRUD protocol the executor uses to
record each run.  :class:`InMemoryExecutionStore` provides a lightweight
dict-based implementation suitable for testing and single-process
deployments.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import uuid4

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from codebox.sandbox.models import ExecutionRequest, ExecutionResult


class ExecutionRecord(BaseModel):
    """One logged execution."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    session_id: str = ""
    language: str
    code: str
    output: str | None = None
    error: str | None = None
    execution_time_ms: int = 0
    exit_code: int = -1
    success: bool = False
    executed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(cls, request: ExecutionRequest, result: ExecutionResult) -> ExecutionRecord:
        return cls(
            session_id=request.correlation_id,
            language=result.language,
            code=request.code,
            output=result.output,
            error=result.error,
            execution_time_ms=result.execution_time_ms,
            exit_code=result.exit_code,
            success=result.success,
        )


@runtime_checkable
class ExecutionStore(Protocol):
    """Async persistence protocol for :class:`ExecutionRecord` instances."""

    async def add(self, record: ExecutionRecord) -> ExecutionRecord:
        """Persist *record* and return it."""
        ...

    async def get(self, record_id: str) -> ExecutionRecord | None:
        """Load a record by ID, or return ``None`` if it does not exist."""
        ...

    async def list_for_session(self, session_id: str, limit: int = 50) -> list[ExecutionRecord]:
        """Return a session's records, newest first."""
        ...

    async def delete_session(self, session_id: str) -> int:
        """Remove all records of a session and return how many were removed."""
        ...


class InMemoryExecutionStore:
    """Dict-backed :class:`ExecutionStore` implementation.

    Returns copies so callers never mutate stored records.
    """

    def __init__(self) -> None:
        self._records: dict[str, ExecutionRecord] = {}

    async def add(self, record: ExecutionRecord) -> ExecutionRecord:
        self._records[record.id] = record.model_copy()
        return record

    async def get(self, record_id: str) -> ExecutionRecord | None:
        record = self._records.get(record_id)
        return record.model_copy() if record is not None else None

    async def list_for_session(self, session_id: str, limit: int = 50) -> list[ExecutionRecord]:
        matching = [r for r in self._records.values() if r.session_id == session_id]
        matching.sort(key=lambda r: r.executed_at, reverse=True)
        return [r.model_copy() for r in matching[:limit]]

    async def delete_session(self, session_id: str) -> int:
        doomed = [rid for rid, r in self._records.items() if r.session_id == session_id]
        for rid in doomed:
            del self._records[rid]
        return len(doomed)
