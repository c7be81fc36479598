"""Sandbox subsystem — isolated, resource-bounded execution of source code."""

from codebox.sandbox.collector import FrameDemuxer, StreamCollector
from codebox.sandbox.docker_client import DockerClient
from codebox.sandbox.languages import DEFAULT_PROFILES, LanguageProfile, LanguageRegistry
from codebox.sandbox.models import ExecutionOutcome, ExecutionRequest, ExecutionResult, ExecutionState
from codebox.sandbox.normalizer import normalize
from codebox.sandbox.packager import pack_source
from codebox.sandbox.provisioner import EnvironmentHandle, Provisioner
from codebox.sandbox.supervisor import LifecycleSupervisor

__all__ = [
    "DEFAULT_PROFILES",
    "DockerClient",
    "EnvironmentHandle",
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionState",
    "FrameDemuxer",
    "LanguageProfile",
    "LanguageRegistry",
    "LifecycleSupervisor",
    "Provisioner",
    "StreamCollector",
    "normalize",
    "pack_source",
]
