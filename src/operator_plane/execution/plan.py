"""Domain-wide plan execution.

Runs one lifecycle flow (setup, diagnostics, verify) across every pack of
a domain::

    plan = plan_runs(Domain.MESSAGING, DomainAction.SETUP, catalog.packs(Domain.MESSAGING))
    report = PlanExecutor(invoker).execute(plan, ctx, parallel=4, best_effort=True)

Execution model:
    parallel <= 1   sequential; the first failure raises unless best_effort
    parallel  > 1   ``parallel`` worker threads pop items from one list
                    guarded by a single lock; every failure is collected

After the run, failures raise :class:`PlanExecutionError` ("N flow(s)
failed") unless ``best_effort`` is set, in which case the report carries
the count and the call returns normally.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from operator_plane.core.errors import MissingConfigError, PlanExecutionError
from operator_plane.core.logging import get_logger
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.discovery import ProviderPack
from operator_plane.execution.invoker import ProviderRunner, encode_payload
from operator_plane.execution.models import Domain
from operator_plane.execution.retry import RetryPolicy

logger = get_logger(__name__)


class DomainAction(str, Enum):
    SETUP = "setup"
    DIAGNOSTICS = "diagnostics"
    VERIFY = "verify"


@dataclass(frozen=True)
class DomainFlows:
    setup_flow: str
    diagnostics_flow: str
    verify_flows: tuple[str, ...]


DOMAIN_FLOWS: dict[Domain, DomainFlows] = {
    Domain.MESSAGING: DomainFlows("setup_default", "diagnostics", ("verify_webhooks",)),
    Domain.EVENTS: DomainFlows("setup_default", "diagnostics", ("verify_subscriptions",)),
    Domain.SECRETS: DomainFlows("setup_default", "diagnostics", ()),
}


@dataclass(frozen=True)
class PlannedRun:
    pack: ProviderPack
    flow_id: str


@dataclass
class PlanReport:
    completed: list[PlannedRun] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def flows_for(domain: Domain, action: DomainAction) -> tuple[str, ...]:
    flows = DOMAIN_FLOWS[domain]
    if action == DomainAction.SETUP:
        return (flows.setup_flow,)
    if action == DomainAction.DIAGNOSTICS:
        return (flows.diagnostics_flow,)
    return flows.verify_flows


def matches_filter(pack: ProviderPack, provider_filter: str) -> bool:
    """Exact or substring match on pack id, file name or file stem."""
    candidates = (pack.pack_id, pack.file_name, pack.stem)
    return any(provider_filter == value or provider_filter in value for value in candidates)


def plan_runs(
    domain: Domain,
    action: DomainAction,
    packs: Iterable[ProviderPack],
    provider_filter: str | None = None,
    allow_missing_setup: bool = False,
) -> list[PlannedRun]:
    """Expand (domain, action) into one run per pack and declared flow.

    Raises:
        MissingConfigError: a pack lacks its setup flow and
            ``allow_missing_setup`` is False
    """
    plan = []
    for pack in packs:
        if provider_filter and not matches_filter(pack, provider_filter):
            continue
        for flow in flows_for(domain, action):
            if not pack.declares_flow(flow):
                if action == DomainAction.SETUP and not allow_missing_setup:
                    raise MissingConfigError(
                        flow, f"Missing required flow '{flow}' in provider pack {pack.file_name}"
                    )
                logger.warning("plan.flow_missing", pack=pack.file_name, flow=flow)
                continue
            plan.append(PlannedRun(pack=pack, flow_id=flow))
    return plan


def build_input_payload(
    domain: Domain, ctx: OperatorContext, public_base_url: str | None = None
) -> dict[str, Any]:
    payload: dict[str, Any] = {"tenant": ctx.tenant}
    if ctx.team is not None:
        payload["team"] = ctx.team
    if domain == Domain.SECRETS:
        return payload
    config: dict[str, Any] = {}
    if public_base_url:
        payload["public_base_url"] = public_base_url
        config["public_base_url"] = public_base_url
    payload["config"] = config
    return payload


class PlanExecutor:
    """Runs planned flows through a provider runner with a bounded worker pool."""

    def __init__(
        self,
        runner: ProviderRunner,
        *,
        item_policy: RetryPolicy | None = None,
        public_base_url: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.item_policy = item_policy or RetryPolicy(max_attempts=1)
        self.public_base_url = public_base_url
        self._sleep = sleep

    def execute(
        self,
        plan: Iterable[PlannedRun],
        ctx: OperatorContext,
        *,
        parallel: int = 1,
        best_effort: bool = False,
    ) -> PlanReport:
        items = list(plan)
        report = PlanReport()
        logger.info("plan.started", items=len(items), parallel=parallel, best_effort=best_effort)

        if parallel <= 1:
            for item in items:
                error = self.run_item(item, ctx)
                if error is None:
                    report.completed.append(item)
                    continue
                if not best_effort:
                    raise PlanExecutionError([error])
                report.failures.append(error)
        else:
            self._run_pool(items, ctx, parallel, report)

        if report.failures:
            if best_effort:
                logger.warning("plan.best_effort_failures", failed=report.failed)
                return report
            raise PlanExecutionError(report.failures)
        logger.info("plan.completed", items=len(report.completed))
        return report

    def _run_pool(self, items: list[PlannedRun], ctx: OperatorContext, parallel: int, report: PlanReport) -> None:
        queue = list(items)
        lock = threading.Lock()

        def worker() -> None:
            while True:
                with lock:
                    if not queue:
                        return
                    item = queue.pop()
                error = self.run_item(item, ctx)
                with lock:
                    if error is None:
                        report.completed.append(item)
                    else:
                        report.failures.append(error)

        workers = [
            threading.Thread(target=worker, name=f"operator-plan-{index}", daemon=True)
            for index in range(min(parallel, max(len(queue), 1)))
        ]
        for thread in workers:
            thread.start()
        for thread in workers:
            thread.join()

    def run_item(self, item: PlannedRun, ctx: OperatorContext) -> str | None:
        """Run one item with its own retries; returns an error message or None."""
        payload = encode_payload(build_input_payload(item.pack.domain, ctx, self.public_base_url))
        attempt = 0
        while True:
            attempt += 1
            outcome = self.runner.invoke(item.pack.domain, item.pack.pack_id, item.flow_id, payload, ctx)
            if outcome.success:
                return None
            error = f"{item.pack.file_name}:{item.flow_id} failed: {outcome.error or 'unknown error'}"
            if not self.item_policy.should_retry(attempt):
                logger.error("plan.item_failed", pack=item.pack.pack_id, flow=item.flow_id, attempt=attempt)
                return error
            delay_ms = self.item_policy.backoff_ms(attempt)
            logger.info("plan.item_retrying", pack=item.pack.pack_id, flow=item.flow_id, delay_ms=delay_ms)
            self._sleep(delay_ms / 1000)
