"""
Operation invoker.

One entry point for every provider operation the operator drives::

    invoker.invoke(Domain.MESSAGING, "slack", "send_payload", payload_bytes, ctx)

The execution mode is chosen once, at construction:

    ┌──────────────────────────────┬────────────────────────────────────┐
    │ runner_binary                │ mode                               │
    ├──────────────────────────────┼────────────────────────────────────┤
    │ None                         │ DirectMode (in-process component)  │
    │ executable regular file      │ ExternalMode(binary, flavor)       │
    │ anything else                │ RunnerConfigError at construction  │
    └──────────────────────────────┴────────────────────────────────────┘

``invoke`` never raises.  Unknown providers, undecodable payloads,
component exceptions and runner failures all come back as an
``OperationOutcome`` with ``success=False``.  It does not retry either;
retry belongs to the caller (egress pipeline, subscription scheduler,
plan executor).
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import cbor2

from operator_plane.core.config.paths import run_dir as build_run_dir
from operator_plane.core.errors import ProviderNotFoundError
from operator_plane.core.logging import get_logger
from operator_plane.core.secrets import SecretsLookup
from operator_plane.core.timestamps import to_rfc3339
from operator_plane.execution.catalog import ProviderCatalog
from operator_plane.execution.context import ExecutionContext, OperatorContext
from operator_plane.execution.models import Domain, ExecutionKind, OperationOutcome
from operator_plane.execution.runtimes.artifacts import (
    RunRecord,
    append_transcript,
    prepare_run_dir,
    write_run_record,
)
from operator_plane.execution.runtimes.direct import DirectRuntime
from operator_plane.execution.runtimes.external import (
    ExternalRuntime,
    RunnerFlavor,
    RunRequest,
    validate_runner_binary,
)

logger = get_logger(__name__)

PREVIEW_LIMIT = 512


class ProviderRunner(Protocol):
    """Anything that can invoke a provider operation (the invoker, or a test fake)."""

    def invoke(
        self,
        domain: Domain,
        provider: str,
        op: str,
        payload: bytes,
        ctx: OperatorContext,
    ) -> OperationOutcome: ...


@dataclass(frozen=True)
class DirectMode:
    kind = ExecutionKind.DIRECT


@dataclass(frozen=True)
class ExternalMode:
    binary: Path
    flavor: RunnerFlavor
    kind = ExecutionKind.EXTERNAL


ExecutionMode = DirectMode | ExternalMode


def select_mode(runner_binary: Path | None) -> ExecutionMode:
    if runner_binary is None:
        return DirectMode()
    binary = validate_runner_binary(Path(runner_binary))
    return ExternalMode(binary=binary, flavor=RunnerFlavor.detect(binary))


class OperationInvoker:
    """Resolves (domain, provider) through the catalog and runs one operation."""

    def __init__(
        self,
        catalog: ProviderCatalog,
        state_dir: Path,
        runner_binary: Path | None = None,
        *,
        secrets: SecretsLookup | None = None,
        offline: bool = True,
        timeout_seconds: float | None = None,
    ):
        self.catalog = catalog
        self.state_dir = Path(state_dir)
        self.secrets = secrets
        self.mode = select_mode(runner_binary)
        match self.mode:
            case ExternalMode(binary=binary, flavor=flavor):
                self._external = ExternalRuntime(
                    binary, flavor, offline=offline, timeout_seconds=timeout_seconds
                )
                self._direct = None
            case DirectMode():
                self._direct = DirectRuntime()
                self._external = None

    @classmethod
    def from_settings(cls, settings: Any, catalog: ProviderCatalog, **kwargs: Any) -> OperationInvoker:
        return cls(
            catalog,
            settings.resolved_state_dir,
            settings.runner_binary,
            offline=settings.runner_offline,
            **kwargs,
        )

    @property
    def kind(self) -> ExecutionKind:
        return self.mode.kind

    def invoke(
        self,
        domain: Domain,
        provider: str,
        op: str,
        payload: bytes,
        ctx: OperatorContext,
        *,
        attempt: int = 1,
    ) -> OperationOutcome:
        outcome = self._invoke(domain, provider, op, payload, ctx, attempt)
        logger.info(
            "invoker.invoke",
            domain=domain.value,
            provider=provider,
            op=op,
            mode=self.kind.value,
            success=outcome.success,
            **ctx.log_fields(),
        )
        if not outcome.success:
            logger.debug("invoker.failure", provider=provider, op=op, error=outcome.error)
        return outcome

    def _invoke(
        self,
        domain: Domain,
        provider: str,
        op: str,
        payload_bytes: bytes,
        ctx: OperatorContext,
        attempt: int,
    ) -> OperationOutcome:
        try:
            pack = self.catalog.resolve(domain, provider)
        except ProviderNotFoundError as exc:
            return OperationOutcome.failed(self.kind, str(exc))

        payload = decode_payload(payload_bytes)
        logger.debug("invoker.payload", provider=provider, op=op, preview=payload_preview(payload_bytes))

        run_dir = build_run_dir(self.state_dir, domain.value, pack.pack_id, op)
        record = RunRecord(
            domain=domain.value,
            pack_id=pack.pack_id,
            flow=op,
            tenant=ctx.tenant,
            team=ctx.team,
            correlation_id=ctx.correlation_id,
            mode=self.kind.value,
            started_at=to_rfc3339(),
        )
        try:
            prepare_run_dir(run_dir, payload)
        except (OSError, TypeError, ValueError) as exc:
            return OperationOutcome.failed(self.kind, f"failed to prepare run dir {run_dir}: {exc}")

        try:
            match self.mode:
                case ExternalMode():
                    outcome, record.exit_code = self._external.run(
                        RunRequest(pack.path, op, payload, ctx, run_dir)
                    )
                case DirectMode():
                    exec_ctx = ExecutionContext.for_call(
                        ctx, flow_id=op, node_id=f"{pack.pack_id}.{op}", attempt=attempt, secrets=self.secrets
                    )
                    outcome = self._direct.run(pack, op, payload, exec_ctx)
                    if outcome.success:
                        append_transcript(run_dir, outcome.output)
        except Exception as exc:
            logger.exception("invoker.unexpected_error", provider=provider, op=op)
            outcome = OperationOutcome.failed(self.kind, f"invocation failed: {exc}")

        record.success = outcome.success
        record.error = outcome.error
        try:
            write_run_record(run_dir, record)
        except OSError as exc:
            logger.warning("invoker.artifacts_failed", run_dir=str(run_dir), error=str(exc))
        return outcome


def encode_payload(value: Any) -> bytes:
    """JSON-encode a payload for ``invoke``."""
    return json.dumps(value, separators=(",", ":"), default=str).encode("utf-8")


def decode_payload(payload: bytes) -> Any:
    """Decode invocation bytes: JSON, then CBOR, else wrap as base64."""
    if not payload:
        return {}
    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        pass
    try:
        return cbor2.loads(payload)
    except (cbor2.CBORDecodeError, ValueError):
        return {"payload_b64": base64.b64encode(payload).decode("ascii")}


def payload_preview(payload: bytes) -> str:
    text = payload.decode("utf-8", errors="replace")
    if len(text) > PREVIEW_LIMIT:
        return text[:PREVIEW_LIMIT] + "..."
    return text
