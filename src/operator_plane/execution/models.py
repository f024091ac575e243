"""Invocation domain models.

Defines the data structures shared by the invoker and its callers:
- Domain: the provider families the operator drives
- ExecutionKind: which runtime produced an outcome
- OperationOutcome: the normalized result of one provider operation
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Domain(str, Enum):
    """Provider families, each discovered under ``providers/<domain>``."""

    MESSAGING = "messaging"
    EVENTS = "events"
    SECRETS = "secrets"

    @property
    def providers_dir(self) -> str:
        return f"providers/{self.value}"


class ExecutionKind(str, Enum):
    """Runtime that executed an operation."""

    DIRECT = "direct"
    EXTERNAL = "external"


@dataclass(frozen=True)
class OperationOutcome:
    """
    Normalized result of one provider operation.

    Produced exactly once per ``invoke`` call and never mutated.  Failures
    are values here, not exceptions: ``success`` is False and ``error``
    holds the component's (or runner's) message.
    """

    success: bool
    mode: ExecutionKind
    output: Any = None
    raw: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, mode: ExecutionKind, output: Any = None, raw: str | None = None) -> OperationOutcome:
        return cls(success=True, mode=mode, output=output, raw=raw)

    @classmethod
    def failed(
        cls,
        mode: ExecutionKind,
        error: str,
        *,
        output: Any = None,
        raw: str | None = None,
    ) -> OperationOutcome:
        return cls(success=False, mode=mode, output=output, raw=raw, error=error)

    def output_dict(self) -> dict[str, Any]:
        """``output`` when it is a mapping, else an empty dict."""
        return self.output if isinstance(self.output, dict) else {}
