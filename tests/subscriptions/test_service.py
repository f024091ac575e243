"""Tests for the subscription protocol service."""

import pytest

from operator_plane.core.errors import SubscriptionOperationError, SubscriptionValidationError
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.models import Domain
from operator_plane.subscriptions.models import AuthUserRef, SubscriptionEnsureRequest, SubscriptionState
from operator_plane.subscriptions.service import SubscriptionService
from tests._support.runner import failed, ok


def _request(**kwargs):
    fields = {
        "binding_id": "b-1",
        "resource": "/me/messages",
        "notification_url": "https://hooks.test/graph",
    }
    fields.update(kwargs)
    return SubscriptionEnsureRequest(**fields)


def _state(**kwargs):
    fields = {
        "binding_id": "b-1",
        "provider": "graph",
        "tenant": "acme",
        "team": "ops",
        "subscription_id": "sub-1",
        "expiration_unix_ms": 1_000,
    }
    fields.update(kwargs)
    return SubscriptionState(**fields)


class TestEnsure:
    """Subscription ensure."""

    def test_builds_request_and_state(self, fake_runner, ctx):
        fake_runner.script(
            "subscription_ensure",
            ok({"subscription": {"subscription_id": "sub-9", "expiration_unix_ms": 5_000}}),
        )
        state = SubscriptionService(fake_runner, ctx).ensure_once("graph", _request(client_state="cs"))
        call = fake_runner.calls[0]
        assert call.domain == Domain.MESSAGING
        assert call.op == "subscription_ensure"
        assert call.payload["v"] == 1
        assert call.payload["change_types"] == ["created"]
        assert call.payload["tenant_hint"] == "acme"
        assert call.payload["user"]["user_id"] == "acme-ops"
        assert state.subscription_id == "sub-9"
        assert state.expiration_unix_ms == 5_000
        assert state.client_state == "cs"
        assert state.team == "ops"

    def test_top_level_output(self, fake_runner, ctx):
        fake_runner.script("subscription_ensure", ok({"subscription_id": "sub-2"}))
        state = SubscriptionService(fake_runner, ctx).ensure_once("graph", _request())
        assert state.subscription_id == "sub-2"

    def test_explicit_user(self, fake_runner, ctx):
        user = AuthUserRef(user_id="u-7", token_key="k")
        SubscriptionService(fake_runner, ctx).ensure_once("graph", _request(user=user))
        assert fake_runner.calls[0].payload["user"]["user_id"] == "u-7"

    @pytest.mark.parametrize("missing", ["resource", "notification_url"])
    def test_validation_before_any_call(self, fake_runner, ctx, missing):
        with pytest.raises(SubscriptionValidationError) as exc_info:
            SubscriptionService(fake_runner, ctx).ensure_once("graph", _request(**{missing: None}))
        assert exc_info.value.field == missing
        assert fake_runner.calls == []

    def test_provider_failure(self, fake_runner, ctx):
        fake_runner.script("subscription_ensure", failed("consent required"))
        with pytest.raises(SubscriptionOperationError, match="consent required") as exc_info:
            SubscriptionService(fake_runner, ctx).ensure_once("graph", _request())
        assert exc_info.value.context.binding_id == "b-1"

    def test_domain_is_configurable(self, fake_runner, ctx):
        SubscriptionService(fake_runner, ctx, domain=Domain.EVENTS).ensure_once("graph", _request())
        assert fake_runner.calls[0].domain == Domain.EVENTS


class TestRenewAndDelete:
    """Subscription renew and delete."""

    def test_renew_keeps_id_when_provider_omits_it(self, fake_runner, ctx):
        fake_runner.script("subscription_renew", ok({"expiration_unix_ms": 9_000}))
        renewed = SubscriptionService(fake_runner, ctx).renew_once(_state(), 9_000)
        assert renewed.subscription_id == "sub-1"
        assert renewed.expiration_unix_ms == 9_000
        assert fake_runner.calls[0].payload["expiration_target_unix_ms"] == 9_000

    def test_renew_requires_subscription_id(self, fake_runner, ctx):
        with pytest.raises(SubscriptionValidationError):
            SubscriptionService(fake_runner, ctx).renew_once(_state(subscription_id=None))
        assert fake_runner.calls == []

    def test_delete(self, fake_runner, ctx):
        SubscriptionService(fake_runner, ctx).delete_once(_state())
        assert fake_runner.calls[0].payload == {
            "v": 1,
            "provider": "graph",
            "subscription_id": "sub-1",
            "user": {
                "user_id": "acme-ops",
                "token_key": "operator-ops",
                "tenant_id": "acme",
                "email": None,
                "display_name": None,
            },
        }

    def test_default_user_without_team(self, fake_runner):
        user = SubscriptionService(fake_runner, OperatorContext("acme")).default_user()
        assert user.user_id == "acme-default"
