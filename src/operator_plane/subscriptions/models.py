"""Subscription data model and provider DTOs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuthUserRef(BaseModel):
    """User on whose behalf a provider-side subscription is held."""

    user_id: str
    token_key: str
    tenant_id: str | None = None
    email: str | None = None
    display_name: str | None = None


class SubscriptionState(BaseModel):
    """
    Persisted state of one binding.

    Identity is ``(provider, tenant, team, binding_id)``; the store derives
    the file path from exactly these fields.
    """

    binding_id: str
    provider: str
    tenant: str
    team: str | None = None
    resource: str | None = None
    change_types: list[str] = Field(default_factory=list)
    notification_url: str | None = None
    client_state: str | None = None
    user: AuthUserRef | None = None
    subscription_id: str | None = None
    expiration_unix_ms: int | None = None
    last_error: str | None = None

    @classmethod
    def from_provider_result(
        cls,
        provider: str,
        tenant: str,
        team: str | None,
        binding_id: str,
        *,
        resource: str | None,
        change_types: list[str],
        notification_url: str | None,
        client_state: str | None,
        user: AuthUserRef | None,
        output: Any,
    ) -> SubscriptionState:
        """Merge a provider's ensure/renew output into a fresh state.

        The provider may answer with ``{"subscription": {...}}`` or with
        the subscription fields at the top level.
        """
        body: dict[str, Any] = {}
        if isinstance(output, dict):
            nested = output.get("subscription")
            body = nested if isinstance(nested, dict) else output
        expiration = body.get("expiration_unix_ms")
        return cls(
            binding_id=binding_id,
            provider=provider,
            tenant=tenant,
            team=team,
            resource=resource,
            change_types=list(change_types),
            notification_url=notification_url,
            client_state=client_state,
            user=user,
            subscription_id=_str_or_none(body.get("subscription_id")),
            expiration_unix_ms=int(expiration) if isinstance(expiration, (int, float)) else None,
            last_error=_str_or_none(body.get("last_error")),
        )


class SubscriptionEnsureRequest(BaseModel):
    binding_id: str
    resource: str | None = None
    change_types: list[str] = Field(default_factory=list)
    notification_url: str | None = None
    client_state: str | None = None
    user: AuthUserRef | None = None
    expiration_target_unix_ms: int | None = None


class DesiredSubscription(BaseModel):
    """A subscription the operator should hold, as declared in configuration."""

    model_config = ConfigDict(extra="ignore")

    provider: str
    binding_id: str | None = None
    resource: str | None = None
    change_types: list[str] = Field(default_factory=list)
    notification_url: str | None = None
    client_state: str | None = None
    user: AuthUserRef | None = None

    def to_request(self, binding_id: str) -> SubscriptionEnsureRequest:
        return SubscriptionEnsureRequest(
            binding_id=binding_id,
            resource=self.resource,
            change_types=self.change_types,
            notification_url=self.notification_url,
            client_state=self.client_state,
            user=self.user,
        )


# ── Provider DTOs ────────────────────────────────────────────────────────


class SubscriptionEnsureInV1(BaseModel):
    v: int = 1
    provider: str
    tenant_hint: str | None = None
    team_hint: str | None = None
    binding_id: str | None = None
    resource: str
    change_types: list[str]
    notification_url: str
    expiration_minutes: int | None = None
    expiration_target_unix_ms: int | None = None
    client_state: str | None = None
    metadata: dict[str, Any] | None = None
    user: AuthUserRef


class SubscriptionRenewInV1(BaseModel):
    v: int = 1
    provider: str
    subscription_id: str
    expiration_minutes: int | None = None
    expiration_target_unix_ms: int | None = None
    metadata: dict[str, Any] | None = None
    user: AuthUserRef


class SubscriptionDeleteInV1(BaseModel):
    v: int = 1
    provider: str
    subscription_id: str
    user: AuthUserRef


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
