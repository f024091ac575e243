"""Timer-driven polling scheduler.

One background thread per scheduler.  Every configured handler owns its
own next-tick time; the loop runs whatever is due, reschedules it at
``now + interval`` and sleeps until the soonest upcoming tick::

    ┌──────────────────────── operator-timers thread ────────────────────────┐
    │  while not stop_event:                                                 │
    │      for timer due at now:                                             │
    │          invoke <op_id> (events domain, canonical CBOR tick payload)   │
    │          route output["events"] → dispatcher                           │
    │          next_tick = now + interval   (also after a failure)           │
    │      stop_event.wait(max(soonest - now, 50ms))   (200ms with no timers)│
    └────────────────────────────────────────────────────────────────────────┘

``stop()`` sets the event and joins the thread.  An in-flight handler is
never interrupted; a slow handler only delays its own next tick.

``run_pending(now)`` is the loop body on its own, so tests drive the
schedule with a fake clock instead of sleeping.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import cbor2
from pydantic import ValidationError as PydanticValidationError

from operator_plane.core.errors import OperatorError, ProviderError, TimerTickError
from operator_plane.core.logging import get_logger
from operator_plane.core.timestamps import to_rfc3339, utc_now
from operator_plane.events.router import EventDispatcher, EventEnvelope
from operator_plane.events.timers import TimerHandlerConfig
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.invoker import ProviderRunner
from operator_plane.execution.models import Domain

logger = get_logger(__name__)

MIN_SLEEP_SECONDS = 0.05
IDLE_SLEEP_SECONDS = 0.2


@dataclass
class ScheduledTimer:
    config: TimerHandlerConfig
    next_tick: float
    last_run: str | None = None
    runs: int = 0
    failures: int = 0


class TimerScheduler:
    """Runs per-handler timer ticks on a background thread.

    Example:
        >>> scheduler = TimerScheduler(handlers, invoker, ctx, router)
        >>> scheduler.start()
        >>> # ... later ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        handlers: Iterable[TimerHandlerConfig],
        runner: ProviderRunner,
        ctx: OperatorContext,
        dispatcher: EventDispatcher | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utc_now,
        name: str = "operator-timers",
    ):
        self.runner = runner
        self.ctx = ctx
        self.dispatcher = dispatcher
        self.name = name
        self._clock = clock
        self._wall_clock = wall_clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        start = clock()
        self.timers = [
            ScheduledTimer(config=handler, next_tick=start + handler.interval_seconds)
            for handler in handlers
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("timers.already_started", name=self.name)
            return
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Signal shutdown and wait for the loop to finish its current handler."""
        self._stop_event.set()
        if self._thread is None:
            return
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("timers.stop_timed_out", name=self.name)
        else:
            logger.info("timers.stopped", name=self.name)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "handlers": len(self.timers),
            "runs": sum(timer.runs for timer in self.timers),
            "failures": sum(timer.failures for timer in self.timers),
        }

    def _loop(self) -> None:
        logger.info(
            "timers.started",
            name=self.name,
            handlers=len(self.timers),
            tenant=self.ctx.tenant,
            team=self.ctx.team_or_default,
        )
        while not self._stop_event.is_set():
            timeout = self.run_pending()
            if self._stop_event.wait(timeout):
                break

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def run_pending(self, now: float | None = None) -> float:
        """Run every due timer; returns how long to sleep before the next one."""
        if now is None:
            now = self._clock()
        for timer in self.timers:
            if self._stop_event.is_set():
                break
            if timer.next_tick > now:
                continue
            try:
                self.run_timer(timer)
            except OperatorError as exc:
                timer.failures += 1
                logger.warning(
                    "timers.handler_failed",
                    provider=timer.config.provider,
                    handler_id=timer.config.handler_id,
                    op=timer.config.op_id,
                    error=str(exc),
                )
            except Exception:
                timer.failures += 1
                logger.exception(
                    "timers.handler_crashed",
                    provider=timer.config.provider,
                    handler_id=timer.config.handler_id,
                )
            timer.next_tick = now + timer.config.interval_seconds
        return self.sleep_seconds(now)

    def sleep_seconds(self, now: float) -> float:
        if not self.timers:
            return IDLE_SLEEP_SECONDS
        soonest = min(timer.next_tick for timer in self.timers)
        return max(soonest - now, MIN_SLEEP_SECONDS)

    def run_timer(self, timer: ScheduledTimer) -> int:
        """Invoke one handler and route its events; returns the number routed."""
        config = timer.config
        occurred_at = to_rfc3339(self._wall_clock())
        payload = build_tick_payload(config, self.ctx, occurred_at, timer.last_run)
        outcome = self.runner.invoke(
            Domain.EVENTS,
            config.provider,
            config.op_id,
            cbor2.dumps(payload, canonical=True),
            self.ctx,
        )
        timer.runs += 1
        if not outcome.success:
            raise TimerTickError(
                f"timer {config.provider}.{config.op_id} failed: {outcome.error or 'unknown error'}"
            ).with_context(provider=config.provider, op=config.op_id, handler_id=config.handler_id)
        timer.last_run = occurred_at

        events = parse_events(outcome.output)
        if not events or self.dispatcher is None:
            return 0
        return self.dispatcher.dispatch(self.ctx, events)


def build_tick_payload(
    config: TimerHandlerConfig,
    ctx: OperatorContext,
    occurred_at: str,
    last_run: str | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "v": 1,
        "domain": Domain.EVENTS.value,
        "provider": config.provider,
        "handler_id": config.handler_id,
        "tenant": ctx.tenant,
        "occurred_at": occurred_at,
        "interval_seconds": config.interval_seconds,
    }
    if ctx.team is not None:
        payload["team"] = ctx.team
    if last_run is not None:
        payload["last_run"] = last_run
    return payload


def parse_events(output: Any) -> list[EventEnvelope]:
    if not isinstance(output, dict):
        return []
    raw_events = output.get("events")
    if not isinstance(raw_events, list):
        return []
    try:
        return [EventEnvelope.model_validate(event) for event in raw_events]
    except PydanticValidationError as exc:
        raise ProviderError("timer output carries malformed events", cause=exc) from exc
