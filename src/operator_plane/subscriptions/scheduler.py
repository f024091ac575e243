"""Subscription renewal scheduler.

Couples the service (protocol) and the store (persistence):

    ensure_once      service.ensure_once → store.write_state
    renew_due(skew)  every stored state with now >= expiration - skew
                     → renew_binding; a failing binding is logged and the scan goes on;
                     errors listing the store propagate
    renew_binding    target = (old expiration or now) + 24h
    delete_binding   service.delete_once → store.delete_state (success only)

Synchronous and single-threaded; call it from cron, a timer tick or a
loop of your own.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from operator_plane.core.errors import OperatorError
from operator_plane.core.logging import get_logger
from operator_plane.core.timestamps import now_unix_ms
from operator_plane.subscriptions.models import (
    DesiredSubscription,
    SubscriptionEnsureRequest,
    SubscriptionState,
)
from operator_plane.subscriptions.service import SubscriptionService
from operator_plane.subscriptions.store import SubscriptionStore

logger = get_logger(__name__)

RENEWAL_EXTENSION_MS = 24 * 60 * 60 * 1000


@dataclass
class RenewalReport:
    renewed: list[SubscriptionState] = field(default_factory=list)
    failed: list[tuple[SubscriptionState, str]] = field(default_factory=list)
    skipped: int = 0


class SubscriptionScheduler:
    def __init__(
        self,
        service: SubscriptionService,
        store: SubscriptionStore,
        *,
        clock_ms: Callable[[], int] = now_unix_ms,
    ):
        self.service = service
        self.store = store
        self._clock_ms = clock_ms

    def ensure_once(self, provider: str, request: SubscriptionEnsureRequest) -> SubscriptionState:
        state = self.service.ensure_once(provider, request)
        self.store.write_state(state)
        logger.info(
            "subscriptions.ensured",
            provider=provider,
            binding_id=state.binding_id,
            subscription_id=state.subscription_id,
            expiration_unix_ms=state.expiration_unix_ms,
        )
        return state

    def ensure_desired(self, desired: Iterable[DesiredSubscription]) -> list[SubscriptionState]:
        """Ensure every configured subscription; binding ids default to a new uuid4."""
        states = []
        for entry in desired:
            binding_id = entry.binding_id or str(uuid.uuid4())
            states.append(self.ensure_once(entry.provider, entry.to_request(binding_id)))
        return states

    def renew_due(self, skew_ms: int = 0) -> RenewalReport:
        now = self._clock_ms()
        report = RenewalReport()
        for state in self.store.list_states():
            if state.expiration_unix_ms is None:
                report.skipped += 1
                continue
            if now < state.expiration_unix_ms - skew_ms:
                report.skipped += 1
                continue
            try:
                report.renewed.append(self.renew_binding(state))
            except OperatorError as exc:
                logger.warning(
                    "subscriptions.renew_failed",
                    provider=state.provider,
                    binding_id=state.binding_id,
                    error=str(exc),
                )
                report.failed.append((state, str(exc)))
        logger.info(
            "subscriptions.renew_scan",
            renewed=len(report.renewed),
            failed=len(report.failed),
            skipped=report.skipped,
        )
        return report

    def renew_binding(self, state: SubscriptionState) -> SubscriptionState:
        anchor = state.expiration_unix_ms or 0
        if anchor <= 0:
            anchor = self._clock_ms()
        target = anchor + RENEWAL_EXTENSION_MS
        renewed = self.service.renew_once(state, expiration_target_unix_ms=target)
        self.store.write_state(renewed)
        logger.info(
            "subscriptions.renewed",
            provider=state.provider,
            binding_id=state.binding_id,
            expiration_unix_ms=renewed.expiration_unix_ms,
        )
        return renewed

    def delete_binding(self, state: SubscriptionState) -> None:
        self.service.delete_once(state)
        self.store.delete_state(state.provider, state.tenant, state.team, state.binding_id)
        logger.info("subscriptions.deleted", provider=state.provider, binding_id=state.binding_id)
