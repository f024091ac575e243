"""External runner runtime.

Shells out to a runner binary once per invocation.  Two CLI flavors are
supported; the flavor is fixed when the invoker is built::

    RUN_SUBCOMMAND   <bin> run --pack P --flow F --input JSON
                           --tenant T --team M --artifacts-dir D [--offline]
    RUNNER_CLI       <bin> --pack P --flow F --input JSON
                           --tenant T --team M --artifacts-dir D --offline

Result extraction:
    1. stdout parsed as JSON
    2. else the last non-null ``outputs`` record of
       ``<artifacts-dir>/transcript.jsonl``

On a non-zero exit the outcome carries stderr (or the exit status) as
``error`` and stdout as ``raw``.
"""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from operator_plane.core.errors import RunnerConfigError
from operator_plane.core.logging import get_logger
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.models import ExecutionKind, OperationOutcome
from operator_plane.execution.runtimes.artifacts import read_transcript_outputs, to_jsonable

logger = get_logger(__name__)


class RunnerFlavor(str, Enum):
    RUN_SUBCOMMAND = "run_subcommand"
    RUNNER_CLI = "runner_cli"

    @classmethod
    def detect(cls, binary: Path) -> RunnerFlavor:
        if "runner-cli" in binary.name:
            return cls.RUNNER_CLI
        return cls.RUN_SUBCOMMAND


def validate_runner_binary(binary: Path) -> Path:
    """Raise :class:`RunnerConfigError` unless ``binary`` is an executable file."""
    if not binary.exists():
        raise RunnerConfigError(str(binary), "does not exist")
    if not binary.is_file():
        raise RunnerConfigError(str(binary), "is not a regular file")
    if not os.access(binary, os.X_OK):
        raise RunnerConfigError(str(binary), "is not executable")
    return binary


@dataclass(frozen=True)
class RunRequest:
    pack_path: Path
    flow: str
    payload: Any
    ctx: OperatorContext
    artifacts_dir: Path


class ExternalRuntime:
    """Runs operations through an external runner process."""

    def __init__(
        self,
        binary: Path,
        flavor: RunnerFlavor,
        *,
        offline: bool = True,
        timeout_seconds: float | None = None,
    ):
        self.binary = binary
        self.flavor = flavor
        self.offline = offline
        self.timeout_seconds = timeout_seconds

    def build_command(self, request: RunRequest) -> list[str]:
        argv = [str(self.binary)]
        if self.flavor == RunnerFlavor.RUN_SUBCOMMAND:
            argv.append("run")
        argv += [
            "--pack", str(request.pack_path),
            "--flow", request.flow,
            "--input", json.dumps(to_jsonable(request.payload), separators=(",", ":")),
            "--tenant", request.ctx.tenant,
            "--team", request.ctx.team_or_default,
            "--artifacts-dir", str(request.artifacts_dir),
        ]
        if self.offline or self.flavor == RunnerFlavor.RUNNER_CLI:
            argv.append("--offline")
        return argv

    def run(self, request: RunRequest) -> tuple[OperationOutcome, int | None]:
        """Run the request; returns the outcome and the exit code (None if it never exited)."""
        argv = self.build_command(request)
        logger.debug("external.spawn", binary=str(self.binary), flavor=self.flavor.value, flow=request.flow)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return OperationOutcome.failed(
                ExecutionKind.EXTERNAL,
                f"runner timed out after {exc.timeout}s",
                raw=_text(exc.stdout) or None,
            ), None
        except OSError as exc:
            return OperationOutcome.failed(ExecutionKind.EXTERNAL, f"failed to spawn runner: {exc}"), None

        stdout = completed.stdout or ""
        stderr = (completed.stderr or "").strip()
        raw = stdout if stdout.strip() else None

        if completed.returncode != 0:
            error = stderr or f"runner exited with status {completed.returncode}"
            return OperationOutcome.failed(ExecutionKind.EXTERNAL, error, raw=raw), completed.returncode

        output = parse_stdout(stdout)
        if output is None:
            output = read_transcript_outputs(request.artifacts_dir)
        return OperationOutcome.ok(ExecutionKind.EXTERNAL, output=output, raw=raw), completed.returncode


def parse_stdout(stdout: str) -> Any | None:
    text = stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
