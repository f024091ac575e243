"""End-to-end wiring over real pack archives in direct mode."""

import textwrap

import pytest

from operator_plane.bootstrap import OperatorRuntime
from operator_plane.core.config import OperatorSettings
from operator_plane.core.errors import MissingConfigError, PlanExecutionError
from operator_plane.core.secrets import DictSecretsLookup
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.models import Domain
from operator_plane.execution.plan import DomainAction, plan_runs
from operator_plane.messaging.egress import EgressState
from operator_plane.subscriptions.models import SubscriptionEnsureRequest

MESSAGING_COMPONENT = textwrap.dedent(
    """
    import json

    def render_plan(payload, ctx):
        return {"text": payload["message"]["text"].upper()}

    def encode(payload, ctx):
        return {"content_type": "text/plain", "body_b64": "SEk="}

    def send_payload(payload, ctx):
        if payload["payload"]["content_type"] != "text/plain":
            raise ValueError("unexpected payload")
        if payload["tenant"]["tenant"] == "broken":
            raise RuntimeError(json.dumps({"code": "upstream", "message": "5xx", "retryable": True}))
        return {"ok": True}

    def setup_default(payload, ctx):
        return {"configured": payload["tenant"]}

    def subscription_ensure(payload, ctx):
        return {"subscription": {"subscription_id": "sub-" + payload["binding_id"],
                                 "expiration_unix_ms": 1}}

    def subscription_renew(payload, ctx):
        return {"expiration_unix_ms": payload["expiration_target_unix_ms"]}
    """
)

EVENTS_COMPONENT = textwrap.dedent(
    """
    def poll(payload, ctx):
        return {"events": [{
            "event_id": "e-1",
            "event_type": "tick",
            "occurred_at": payload["occurred_at"],
            "source": {"domain": "events", "provider": payload["provider"], "handler_id": payload["handler_id"]},
            "scope": {"tenant": payload["tenant"]},
        }]}
    """
)


@pytest.fixture
def runtime(bundle_root, make_pack, tmp_path):
    make_pack(
        Domain.MESSAGING,
        "messaging-echo",
        {"pack_id": "echo", "meta": {"entry_flows": ["setup_default"]}},
        files={"provider.py": MESSAGING_COMPONENT},
    )
    make_pack(
        Domain.EVENTS,
        "events-clock",
        {
            "pack_id": "clock",
            "extensions": {
                "greentic.provider-extension.v1": {
                    "inline": {"timer_handlers": [{"op_id": "poll", "interval_seconds": 10}]}
                }
            },
        },
        files={"provider.py": EVENTS_COMPONENT},
        cbor=True,
    )
    settings = OperatorSettings(
        _env_file=None,
        bundle_root=bundle_root,
        state_dir=tmp_path / "state",
        retry_max_attempts=2,
        retry_base_delay_ms=0,
        retry_jitter_ms=0,
    )
    return OperatorRuntime.build(settings, secrets=DictSecretsLookup(), configure_logs=False)


class TestOperatorRuntime:
    """Runtime wiring from settings down to pack components."""

    def test_catalog(self, runtime):
        assert len(runtime.catalog) == 2
        assert runtime.invoker.kind.value == "direct"

    def test_egress_delivers(self, runtime):
        ctx = OperatorContext("acme", "ops")
        result = runtime.egress_pipeline(ctx).submit("echo", {"text": "hi"}, ctx)
        assert result.state == EgressState.SUCCESS
        assert result.job.plan_cache == {"text": "HI"}

    def test_egress_dead_letters_to_tenant_log(self, runtime):
        ctx = OperatorContext("broken", "ops")
        pipeline = runtime.egress_pipeline(ctx)
        result = pipeline.submit("echo", {"text": "hi", "session_id": "s-9"}, ctx)
        assert result.state == EgressState.DEAD_LETTERED
        (entry,) = pipeline.dead_letters.entries()
        assert entry["attempt"] == 2
        assert entry["node_error"]["code"] == "upstream"
        assert pipeline.dead_letters.path == runtime.paths(ctx).dlq_log_path()

    def test_setup_plan(self, runtime):
        ctx = OperatorContext("acme")
        plan = plan_runs(Domain.MESSAGING, DomainAction.SETUP, runtime.catalog.packs(Domain.MESSAGING))
        report = runtime.plan_executor().execute(plan, ctx)
        assert [r.pack.pack_id for r in report.completed] == ["echo"]

    def test_events_pack_without_setup_fails_plan(self, runtime):
        with pytest.raises(MissingConfigError):
            plan_runs(Domain.EVENTS, DomainAction.SETUP, runtime.catalog.packs(Domain.EVENTS))

    def test_subscription_lifecycle(self, runtime):
        ctx = OperatorContext("acme", "ops")
        scheduler = runtime.subscription_scheduler(ctx)
        scheduler.ensure_once(
            "echo",
            SubscriptionEnsureRequest(binding_id="b-1", resource="/r", notification_url="https://h"),
        )
        report = scheduler.renew_due(skew_ms=runtime.renew_skew_ms)
        assert len(report.renewed) == 1
        assert report.renewed[0].subscription_id == "sub-b-1"
        assert report.renewed[0].expiration_unix_ms == 1 + 24 * 60 * 60 * 1000

    def test_timer_tick_routes_events(self, runtime):
        routed = []

        class Collector:
            def dispatch(self, ctx, events):
                routed.extend(events)
                return len(events)

        ctx = OperatorContext("acme")
        timers = runtime.timer_scheduler(ctx, Collector())
        assert [t.config.op_id for t in timers.timers] == ["poll"]
        timers.run_timer(timers.timers[0])
        assert [e.source.provider for e in routed] == ["clock"]


FLAKY_COMPONENT = textwrap.dedent(
    """
    def setup_default(payload, ctx):
        raise RuntimeError("setup endpoint down")
    """
)


def _rebuild(runtime, **overrides):
    settings = runtime.settings.model_copy(update=overrides)
    return OperatorRuntime.build(settings, secrets=DictSecretsLookup(), configure_logs=False)


class TestRunPlan:
    """Domain plans driven by the plan settings."""

    @pytest.fixture
    def flaky(self, make_pack):
        make_pack(
            Domain.MESSAGING,
            "messaging-flaky",
            {"pack_id": "flaky", "meta": {"entry_flows": ["setup_default"]}},
            files={"provider.py": FLAKY_COMPONENT},
        )

    def test_setup_runs_every_pack(self, runtime):
        report = runtime.run_plan(Domain.MESSAGING, DomainAction.SETUP, OperatorContext("acme"))
        assert [r.pack.pack_id for r in report.completed] == ["echo"]

    def test_missing_setup_fails_by_default(self, runtime):
        with pytest.raises(MissingConfigError):
            runtime.run_plan(Domain.EVENTS, DomainAction.SETUP, OperatorContext("acme"))

    def test_allow_missing_setup(self, runtime):
        runtime = _rebuild(runtime, plan_allow_missing_setup=True)
        report = runtime.run_plan(Domain.EVENTS, DomainAction.SETUP, OperatorContext("acme"))
        assert report.completed == []
        assert report.failed == 0

    def test_failure_raises_without_best_effort(self, runtime, flaky):
        runtime = _rebuild(runtime)
        with pytest.raises(PlanExecutionError):
            runtime.run_plan(Domain.MESSAGING, DomainAction.SETUP, OperatorContext("acme"))

    def test_best_effort_in_parallel(self, runtime, flaky):
        runtime = _rebuild(runtime, plan_parallel=2, plan_best_effort=True)
        report = runtime.run_plan(Domain.MESSAGING, DomainAction.SETUP, OperatorContext("acme"))
        assert [r.pack.pack_id for r in report.completed] == ["echo"]
        assert report.failed == 1
        assert "setup endpoint down" in report.failures[0]

    def test_provider_filter(self, runtime, flaky):
        runtime = _rebuild(runtime)
        report = runtime.run_plan(Domain.MESSAGING, DomainAction.SETUP, OperatorContext("acme"), "echo")
        assert [r.pack.pack_id for r in report.completed] == ["echo"]
