"""Versioned request/response shapes exchanged with messaging providers.

Every ``*V1`` model serializes to the exact JSON the provider operations
expect; optional fields are dropped when unset (``to_payload``).
"""

from __future__ import annotations

import base64
import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for provider DTOs."""

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class MessageEnvelope(BaseModel):
    """Outbound channel message. Unknown fields are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    channel: str | None = None
    session_id: str | None = None
    text: str | None = None
    attachments: list[Any] = Field(default_factory=list)
    correlation_id: str | None = None

    def summary(self) -> dict[str, Any]:
        """Compact view recorded in dead-letter entries."""
        return {
            "id": self.id,
            "channel": self.channel,
            "session_id": self.session_id,
            "text": self.text,
            "attachments_count": len(self.attachments),
            "correlation_id": self.correlation_id,
        }


# ── Egress ───────────────────────────────────────────────────────────────


class RenderPlanInV1(WireModel):
    v: int = 1
    message: dict[str, Any]


class EncodeInV1(WireModel):
    v: int = 1
    message: dict[str, Any]
    plan: Any


class ProviderPayloadV1(WireModel):
    content_type: str
    body_b64: str
    metadata_json: str | None = None

    @classmethod
    def fallback_for(cls, message: dict[str, Any]) -> ProviderPayloadV1:
        """Generic JSON payload used when a provider's encode step fails."""
        body = json.dumps(message, separators=(",", ":"), default=str)
        return cls(
            content_type="application/json",
            body_b64=base64.b64encode(body.encode("utf-8")).decode("ascii"),
            metadata_json=body,
        )


class TenantHint(WireModel):
    tenant: str
    team: str | None = None
    user: str | None = None
    correlation_id: str | None = None


class SendPayloadInV1(WireModel):
    v: int = 1
    provider_type: str | None = None
    payload: ProviderPayloadV1
    tenant: TenantHint
    reply_scope: dict[str, Any] | None = None


class SendPayloadOutV1(WireModel):
    ok: bool
    message: str | None = None
    retryable: bool = False


class NodeErrorDetails(WireModel):
    """Structured failure reported by a provider node."""

    code: str = "node-error"
    message: str = ""
    retryable: bool = False
    backoff_ms: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("backoff-ms", "backoff_ms")
    )
    details: Any = None

    def to_record(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "backoff_ms": self.backoff_ms,
            "details": self.details,
        }


# ── Ingress ──────────────────────────────────────────────────────────────


class HttpInV1(WireModel):
    v: int = 1
    provider: str
    route: str | None = None
    binding_id: str | None = None
    tenant_hint: str | None = None
    team_hint: str | None = None
    method: str
    path: str
    query: list[tuple[str, str]] = Field(default_factory=list)
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body_b64: str = ""


class HttpOutV1(WireModel):
    v: int = 1
    status: int = 200
    headers: list[tuple[str, str]] = Field(default_factory=list)
    body_b64: str | None = None
    events: list[dict[str, Any]] = Field(default_factory=list)

    def body(self) -> bytes:
        return base64.b64decode(self.body_b64) if self.body_b64 else b""
