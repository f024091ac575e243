"""Routing of provider-emitted events to an application flow.

The timer scheduler (and anything else that produces events) only knows
the :class:`EventDispatcher` protocol.  :class:`FlowEventRouter` is the
stock implementation: it invokes one catalogued pack's default flow once
per event with::

    {"event": <envelope>, "events": [<envelope>], "tenant", "team", "correlation_id"}
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from operator_plane.core.errors import ProviderError
from operator_plane.core.logging import get_logger
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.invoker import ProviderRunner, encode_payload
from operator_plane.execution.models import Domain

logger = get_logger(__name__)


class EventSource(BaseModel):
    domain: str
    provider: str
    handler_id: str | None = None


class EventScope(BaseModel):
    tenant: str
    team: str | None = None


class EventEnvelope(BaseModel):
    """An event emitted by a provider operation (``events[]`` of its output)."""

    model_config = ConfigDict(extra="allow")

    event_id: str
    event_type: str
    occurred_at: str
    source: EventSource
    scope: EventScope
    correlation_id: str | None = None
    payload: Any = Field(default_factory=dict)
    http: Any = None
    raw: str | None = None


class EventDispatcher(Protocol):
    def dispatch(self, ctx: OperatorContext, events: Sequence[EventEnvelope]) -> int:
        """Deliver ``events``; returns how many were routed."""
        ...


def build_event_flow_input(event: EventEnvelope, ctx: OperatorContext) -> dict[str, Any]:
    body = event.model_dump(mode="json", exclude_none=True)
    return {
        "event": body,
        "events": [body],
        "tenant": ctx.tenant,
        "team": ctx.team,
        "correlation_id": event.correlation_id or ctx.correlation_id,
    }


class FlowEventRouter:
    """Delivers each event to ``flow_id`` of the pack ``(domain, pack_id)``."""

    def __init__(
        self,
        runner: ProviderRunner,
        pack_id: str,
        flow_id: str = "default",
        *,
        domain: Domain = Domain.EVENTS,
    ):
        self.runner = runner
        self.pack_id = pack_id
        self.flow_id = flow_id
        self.domain = domain

    def dispatch(self, ctx: OperatorContext, events: Sequence[EventEnvelope]) -> int:
        routed = 0
        for event in events:
            outcome = self.runner.invoke(
                self.domain,
                self.pack_id,
                self.flow_id,
                encode_payload(build_event_flow_input(event, ctx)),
                ctx.with_correlation(event.correlation_id or ctx.correlation_id),
            )
            if not outcome.success:
                raise ProviderError(
                    f"route event {event.event_type} -> {self.flow_id} failed: {outcome.error}"
                ).with_context(provider=self.pack_id, op=self.flow_id)
            routed += 1
        logger.info("events.routed", pack=self.pack_id, flow=self.flow_id, count=routed)
        return routed
