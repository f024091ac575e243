"""HTTP ingress bridge.

The listener that accepts webhook requests lives outside this package;
all it needs from the operator is a way to hand a request to the
provider's ``ingest_http`` operation and get back the HTTP response plus
any channel messages the provider decoded.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError

from operator_plane.core.errors import ProviderError
from operator_plane.core.logging import get_logger
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.invoker import ProviderRunner, encode_payload
from operator_plane.execution.models import Domain
from operator_plane.messaging.dto import HttpInV1, HttpOutV1, MessageEnvelope

logger = get_logger(__name__)


@dataclass
class IngressResult:
    response: HttpOutV1
    messages: list[MessageEnvelope] = field(default_factory=list)


def build_ingress_request(
    provider: str,
    method: str,
    path: str,
    body: bytes = b"",
    *,
    route: str | None = None,
    headers: list[tuple[str, str]] | None = None,
    query: list[tuple[str, str]] | None = None,
    binding_id: str | None = None,
    tenant_hint: str | None = None,
    team_hint: str | None = None,
) -> HttpInV1:
    return HttpInV1(
        provider=provider,
        route=route,
        binding_id=binding_id,
        tenant_hint=tenant_hint,
        team_hint=team_hint,
        method=method.upper(),
        path=path,
        query=query or [],
        headers=headers or [],
        body_b64=base64.b64encode(body).decode("ascii"),
    )


def run_ingress(runner: ProviderRunner, request: HttpInV1, ctx: OperatorContext) -> IngressResult:
    """Invoke ``ingest_http`` and decode its response.

    Raises:
        ProviderError: the operation failed or returned an unreadable response
    """
    outcome = runner.invoke(
        Domain.MESSAGING, request.provider, "ingest_http", encode_payload(request.to_payload()), ctx
    )
    if not outcome.success:
        raise ProviderError(
            f"{request.provider}.ingest_http failed: {outcome.error or 'unknown error'}"
        ).with_context(provider=request.provider, op="ingest_http")

    try:
        response = HttpOutV1.model_validate(outcome.output or {})
        messages = [MessageEnvelope.model_validate(event) for event in response.events]
    except PydanticValidationError as exc:
        raise ProviderError(
            f"{request.provider}.ingest_http returned an invalid response", cause=exc
        ).with_context(provider=request.provider, op="ingest_http") from exc

    logger.info("ingress.handled", provider=request.provider, status=response.status, messages=len(messages))
    return IngressResult(response=response, messages=messages)
