"""Subscription protocol logic.

Builds the versioned ensure/renew/delete requests, invokes the provider
and turns its answer into a :class:`SubscriptionState`.  Nothing here
touches the filesystem; persisting the result is the caller's decision.

Errors:
    SubscriptionValidationError   raised before any provider call
    SubscriptionOperationError    provider answered with success=False
"""

from __future__ import annotations

import json

from pydantic import BaseModel

from operator_plane.core.errors import SubscriptionOperationError, SubscriptionValidationError
from operator_plane.core.logging import get_logger
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.invoker import ProviderRunner
from operator_plane.execution.models import Domain, OperationOutcome
from operator_plane.subscriptions.models import (
    AuthUserRef,
    SubscriptionDeleteInV1,
    SubscriptionEnsureInV1,
    SubscriptionEnsureRequest,
    SubscriptionRenewInV1,
    SubscriptionState,
)

logger = get_logger(__name__)

DEFAULT_CHANGE_TYPES = ["created"]


class SubscriptionService:
    def __init__(self, runner: ProviderRunner, ctx: OperatorContext, *, domain: Domain = Domain.MESSAGING):
        self.runner = runner
        self.ctx = ctx
        self.domain = domain

    def default_user(self) -> AuthUserRef:
        team = self.ctx.team_or_default
        return AuthUserRef(
            user_id=f"{self.ctx.tenant}-{team}",
            token_key=f"operator-{team}",
            tenant_id=self.ctx.tenant,
        )

    def ensure_once(self, provider: str, request: SubscriptionEnsureRequest) -> SubscriptionState:
        dto = self.build_ensure_payload(provider, request)
        outcome = self._call(provider, "subscription_ensure", dto, request.binding_id)
        return SubscriptionState.from_provider_result(
            provider,
            self.ctx.tenant,
            self.ctx.team,
            request.binding_id,
            resource=dto.resource,
            change_types=dto.change_types,
            notification_url=dto.notification_url,
            client_state=request.client_state,
            user=dto.user,
            output=outcome.output,
        )

    def renew_once(
        self, state: SubscriptionState, expiration_target_unix_ms: int | None = None
    ) -> SubscriptionState:
        dto = self.build_renew_payload(state, expiration_target_unix_ms)
        outcome = self._call(state.provider, "subscription_renew", dto, state.binding_id)
        renewed = SubscriptionState.from_provider_result(
            state.provider,
            state.tenant,
            state.team,
            state.binding_id,
            resource=state.resource,
            change_types=state.change_types,
            notification_url=state.notification_url,
            client_state=state.client_state,
            user=dto.user,
            output=outcome.output,
        )
        # Providers may answer a renew without echoing the id.
        if renewed.subscription_id is None:
            renewed.subscription_id = state.subscription_id
        return renewed

    def delete_once(self, state: SubscriptionState) -> None:
        dto = self.build_delete_payload(state)
        self._call(state.provider, "subscription_delete", dto, state.binding_id)

    # ------------------------------------------------------------------
    # Request builders
    # ------------------------------------------------------------------

    def build_ensure_payload(self, provider: str, request: SubscriptionEnsureRequest) -> SubscriptionEnsureInV1:
        if not request.resource:
            raise SubscriptionValidationError(
                "resource is required for subscription ensure", field="resource"
            ).with_context(provider=provider, binding_id=request.binding_id)
        if not request.notification_url:
            raise SubscriptionValidationError(
                "notification_url is required for subscription ensure", field="notification_url"
            ).with_context(provider=provider, binding_id=request.binding_id)
        return SubscriptionEnsureInV1(
            provider=provider,
            tenant_hint=self.ctx.tenant,
            team_hint=self.ctx.team,
            binding_id=request.binding_id,
            resource=request.resource,
            change_types=request.change_types or list(DEFAULT_CHANGE_TYPES),
            notification_url=request.notification_url,
            expiration_target_unix_ms=request.expiration_target_unix_ms,
            client_state=request.client_state,
            user=request.user or self.default_user(),
        )

    def build_renew_payload(
        self, state: SubscriptionState, expiration_target_unix_ms: int | None
    ) -> SubscriptionRenewInV1:
        if not state.subscription_id:
            raise SubscriptionValidationError(
                "subscription_id is required to renew a binding", field="subscription_id"
            ).with_context(provider=state.provider, binding_id=state.binding_id)
        return SubscriptionRenewInV1(
            provider=state.provider,
            subscription_id=state.subscription_id,
            expiration_target_unix_ms=expiration_target_unix_ms,
            user=state.user or self.default_user(),
        )

    def build_delete_payload(self, state: SubscriptionState) -> SubscriptionDeleteInV1:
        if not state.subscription_id:
            raise SubscriptionValidationError(
                "subscription_id is required to delete a binding", field="subscription_id"
            ).with_context(provider=state.provider, binding_id=state.binding_id)
        return SubscriptionDeleteInV1(
            provider=state.provider,
            subscription_id=state.subscription_id,
            user=state.user or self.default_user(),
        )

    # ------------------------------------------------------------------

    def _call(self, provider: str, op: str, dto: BaseModel, binding_id: str) -> OperationOutcome:
        payload = json.dumps(dto.model_dump(mode="json")).encode("utf-8")
        outcome = self.runner.invoke(self.domain, provider, op, payload, self.ctx)
        if not outcome.success:
            raise SubscriptionOperationError(
                f"{provider}.{op} failed: {outcome.error or 'unknown error'}"
            ).with_context(
                provider=provider,
                op=op,
                binding_id=binding_id,
                tenant=self.ctx.tenant,
                team=self.ctx.team,
            )
        logger.debug("subscriptions.provider_call", provider=provider, op=op, binding_id=binding_id)
        return outcome
