"""codebox — sandboxed, concurrent source code execution in Docker containers."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from codebox.executor import CodeExecutor as CodeExecutor
    from codebox.sandbox.models import ExecutionResult as ExecutionResult

_LAZY_EXPORTS = {
    "CodeExecutor": "codebox.executor",
    "ExecutionResult": "codebox.sandbox.models",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'codebox' has no attribute {name!r}")
