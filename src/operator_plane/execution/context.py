"""Request-scoping types threaded through every provider invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from operator_plane.core.secrets import SecretsLookup


@dataclass(frozen=True)
class OperatorContext:
    """
    Tenant/team scope plus an optional correlation id.

    Immutable per call: every layer (invoker, egress, subscriptions,
    timers) receives the same instance and never mutates it.
    """

    tenant: str
    team: str | None = None
    correlation_id: str | None = None

    @property
    def team_or_default(self) -> str:
        return self.team or "default"

    def with_correlation(self, correlation_id: str | None) -> OperatorContext:
        return OperatorContext(self.tenant, self.team, correlation_id)

    def log_fields(self) -> dict[str, Any]:
        return {
            "tenant": self.tenant,
            "team": self.team_or_default,
            "corr": self.correlation_id or "none",
        }


@dataclass(frozen=True)
class ExecutionContext:
    """What an in-process component sees when one of its operations runs."""

    tenant: str
    team: str | None
    correlation_id: str | None
    attempt: int
    flow_id: str
    node_id: str
    secrets: SecretsLookup | None = field(default=None, repr=False, compare=False)

    @classmethod
    def for_call(
        cls,
        ctx: OperatorContext,
        flow_id: str,
        node_id: str,
        *,
        attempt: int = 1,
        secrets: SecretsLookup | None = None,
    ) -> ExecutionContext:
        return cls(
            tenant=ctx.tenant,
            team=ctx.team,
            correlation_id=ctx.correlation_id,
            attempt=attempt,
            flow_id=flow_id,
            node_id=node_id,
            secrets=secrets,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant": self.tenant,
            "team": self.team,
            "correlation_id": self.correlation_id,
            "attempt": self.attempt,
            "flow_id": self.flow_id,
            "node_id": self.node_id,
        }
