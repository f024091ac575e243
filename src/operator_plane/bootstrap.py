"""Wiring: build the operator's components from settings.

    runtime = OperatorRuntime.build()
    ctx = OperatorContext("acme", "ops")
    runtime.egress_pipeline(ctx).submit("slack", envelope, ctx)
    runtime.subscription_scheduler(ctx).renew_due(skew_ms=runtime.renew_skew_ms)
    runtime.run_plan(Domain.MESSAGING, DomainAction.SETUP, ctx)
"""

from __future__ import annotations

from dataclasses import dataclass

from operator_plane.core.config import OperatorSettings, RuntimePaths, get_settings
from operator_plane.core.logging import configure_logging, get_logger
from operator_plane.core.secrets import EnvSecretsLookup, SecretsLookup
from operator_plane.events.router import EventDispatcher
from operator_plane.events.scheduler import TimerScheduler
from operator_plane.events.timers import discover_timer_handlers
from operator_plane.execution.catalog import ProviderCatalog
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.dlq import DeadLetterSink
from operator_plane.execution.invoker import OperationInvoker
from operator_plane.execution.models import Domain
from operator_plane.execution.plan import DomainAction, PlanExecutor, PlanReport, plan_runs
from operator_plane.execution.retry import RetryPolicy
from operator_plane.messaging.egress import EgressPipeline
from operator_plane.subscriptions.scheduler import SubscriptionScheduler
from operator_plane.subscriptions.service import SubscriptionService
from operator_plane.subscriptions.store import SubscriptionStore

logger = get_logger(__name__)


@dataclass
class OperatorRuntime:
    settings: OperatorSettings
    catalog: ProviderCatalog
    invoker: OperationInvoker

    @classmethod
    def build(
        cls,
        settings: OperatorSettings | None = None,
        *,
        secrets: SecretsLookup | None = None,
        configure_logs: bool = True,
    ) -> OperatorRuntime:
        settings = settings or get_settings()
        if configure_logs:
            configure_logging(level=settings.log_level, json_format=settings.json_logs)
        catalog = ProviderCatalog.discover(settings.bundle_root)
        invoker = OperationInvoker.from_settings(
            settings, catalog, secrets=secrets if secrets is not None else EnvSecretsLookup()
        )
        logger.info(
            "operator.ready",
            bundle=str(settings.bundle_root),
            packs=len(catalog),
            mode=invoker.kind.value,
        )
        return cls(settings=settings, catalog=catalog, invoker=invoker)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(self.settings)

    @property
    def renew_skew_ms(self) -> int:
        return self.settings.subscription_renew_skew_seconds * 1000

    def paths(self, ctx: OperatorContext) -> RuntimePaths:
        return RuntimePaths.from_settings(self.settings, ctx.tenant, ctx.team)

    def egress_pipeline(self, ctx: OperatorContext) -> EgressPipeline:
        sink = DeadLetterSink(self.paths(ctx).dlq_log_path())
        return EgressPipeline(
            self.invoker, self.retry_policy, sink, send=not self.settings.egress_dry_run
        )

    def subscription_scheduler(self, ctx: OperatorContext) -> SubscriptionScheduler:
        service = SubscriptionService(self.invoker, ctx)
        return SubscriptionScheduler(service, SubscriptionStore(self.settings.resolved_subscription_dir))

    def timer_scheduler(self, ctx: OperatorContext, dispatcher: EventDispatcher | None = None) -> TimerScheduler:
        handlers = discover_timer_handlers(
            self.catalog.packs(Domain.EVENTS), self.settings.timer_default_interval_seconds
        )
        return TimerScheduler(handlers, self.invoker, ctx, dispatcher)

    def plan_executor(self) -> PlanExecutor:
        return PlanExecutor(self.invoker)

    def run_plan(
        self,
        domain: Domain,
        action: DomainAction,
        ctx: OperatorContext,
        provider_filter: str | None = None,
    ) -> PlanReport:
        """Plan and execute one lifecycle action with the configured plan options."""
        plan = plan_runs(
            domain,
            action,
            self.catalog.packs(domain),
            provider_filter,
            allow_missing_setup=self.settings.plan_allow_missing_setup,
        )
        return self.plan_executor().execute(
            plan,
            ctx,
            parallel=self.settings.plan_parallel,
            best_effort=self.settings.plan_best_effort,
        )
