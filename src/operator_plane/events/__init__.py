"""Event sources: timer discovery, the polling scheduler and event routing."""

from operator_plane.events.router import EventDispatcher, EventEnvelope, FlowEventRouter
from operator_plane.events.scheduler import ScheduledTimer, TimerScheduler
from operator_plane.events.timers import TimerHandlerConfig, discover_timer_handlers, parse_timer_op

__all__ = [
    "EventDispatcher",
    "EventEnvelope",
    "FlowEventRouter",
    "ScheduledTimer",
    "TimerHandlerConfig",
    "TimerScheduler",
    "discover_timer_handlers",
    "parse_timer_op",
]
