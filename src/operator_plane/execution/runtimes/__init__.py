"""Execution runtimes: in-process components and the external runner."""

from operator_plane.execution.runtimes.direct import DirectRuntime
from operator_plane.execution.runtimes.external import (
    ExternalRuntime,
    RunnerFlavor,
    validate_runner_binary,
)

__all__ = ["DirectRuntime", "ExternalRuntime", "RunnerFlavor", "validate_runner_binary"]
