"""Timer handler discovery.

Event packs declare their polling handlers in the provider extension of
their manifest::

    extensions:
      greentic.provider-extension.v1:
        inline:
          timer_handlers:                 # or "timers"
            - "poll_inbox"                # op id, handler "default"
            - {op_id: poll, handler_id: inbox, interval_seconds: 30}
          providers:
            - provider_type: graph
              ops: [timer_reminder_10]
              timer_handlers: [...]       # used when the top level has none

Packs that declare nothing fall back to inferring handlers from the names
of their provider ops.  That inference is a legacy shim and is not
extended::

    timer_tick | ingest_timer   → ("default", default interval)
    timer_<handler>_<seconds>   → (handler, seconds)
    timer_<handler>             → (handler, default interval)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from operator_plane.core.logging import get_logger
from operator_plane.execution.discovery import ProviderPack
from operator_plane.execution.models import Domain

logger = get_logger(__name__)

PROVIDER_EXTENSION = "greentic.provider-extension.v1"
TIMER_KEYS = ("timer_handlers", "timers")
DEFAULT_HANDLER = "default"


@dataclass(frozen=True)
class TimerHandlerConfig:
    provider: str
    op_id: str
    handler_id: str = DEFAULT_HANDLER
    interval_seconds: int = 60

    def __post_init__(self) -> None:
        object.__setattr__(self, "interval_seconds", max(1, int(self.interval_seconds)))


def discover_timer_handlers(
    packs: Iterable[ProviderPack], default_interval_seconds: int = 60
) -> list[TimerHandlerConfig]:
    """Timer handlers of every events pack in ``packs``."""
    handlers: list[TimerHandlerConfig] = []
    for pack in packs:
        if pack.domain != Domain.EVENTS:
            continue
        handlers.extend(handlers_for_pack(pack, default_interval_seconds))
    return handlers


def handlers_for_pack(pack: ProviderPack, default_interval_seconds: int = 60) -> list[TimerHandlerConfig]:
    default_interval = max(1, default_interval_seconds)
    inline = provider_extension_inline(pack.manifest)
    if inline is None:
        logger.debug("timers.no_provider_extension", pack=pack.pack_id)
        return []

    explicit = parse_explicit_handlers(inline, pack.pack_id, default_interval)
    if explicit:
        return explicit

    handlers = []
    for op in provider_ops(inline, pack.pack_id):
        inferred = parse_timer_op(op, default_interval)
        if inferred is not None:
            handler_id, interval = inferred
            handlers.append(TimerHandlerConfig(pack.pack_id, op, handler_id, interval))
    if handlers:
        logger.info("timers.inferred_from_op_names", pack=pack.pack_id, count=len(handlers))
    return handlers


def provider_extension_inline(manifest: dict[str, Any]) -> dict[str, Any] | None:
    extensions = manifest.get("extensions")
    if not isinstance(extensions, dict):
        return None
    extension = extensions.get(PROVIDER_EXTENSION)
    if not isinstance(extension, dict):
        return None
    inline = extension.get("inline")
    return inline if isinstance(inline, dict) else None


def parse_explicit_handlers(
    inline: dict[str, Any], default_provider: str, default_interval: int
) -> list[TimerHandlerConfig]:
    handlers = []
    for key in TIMER_KEYS:
        for entry in _as_list(inline.get(key)):
            handler = parse_handler_entry(entry, default_provider, default_interval)
            if handler is not None:
                handlers.append(handler)
    if handlers:
        return handlers

    for provider in _as_list(inline.get("providers")):
        if not isinstance(provider, dict):
            continue
        provider_type = provider.get("provider_type")
        if not isinstance(provider_type, str):
            provider_type = default_provider
        for key in TIMER_KEYS:
            for entry in _as_list(provider.get(key)):
                handler = parse_handler_entry(entry, default_provider, default_interval)
                if handler is None:
                    continue
                if handler.provider == default_provider:
                    handler = TimerHandlerConfig(
                        provider_type, handler.op_id, handler.handler_id, handler.interval_seconds
                    )
                handlers.append(handler)
    return handlers


def parse_handler_entry(
    entry: Any, default_provider: str, default_interval: int
) -> TimerHandlerConfig | None:
    if isinstance(entry, str):
        return TimerHandlerConfig(default_provider, entry, DEFAULT_HANDLER, default_interval)
    if not isinstance(entry, dict):
        return None
    op_id = _first_str(entry, "op_id", "op")
    if op_id is None:
        return None
    interval = _first_int(entry, "interval_seconds", "interval")
    return TimerHandlerConfig(
        provider=_first_str(entry, "provider_type", "provider") or default_provider,
        op_id=op_id,
        handler_id=_first_str(entry, "handler_id", "handler") or DEFAULT_HANDLER,
        interval_seconds=interval if interval is not None else default_interval,
    )


def provider_ops(inline: dict[str, Any], provider_id: str) -> list[str]:
    ops: list[str] = []
    for provider in _as_list(inline.get("providers")):
        if not isinstance(provider, dict) or provider.get("provider_type") != provider_id:
            continue
        ops.extend(op for op in _as_list(provider.get("ops")) if isinstance(op, str))
    return ops


def parse_timer_op(op: str, default_interval: int) -> tuple[str, int] | None:
    """Legacy name inference: ``(handler_id, interval_seconds)`` or None."""
    if op.lower() in ("timer_tick", "ingest_timer"):
        return DEFAULT_HANDLER, default_interval
    prefix = "timer_"
    if not op.startswith(prefix):
        return None
    tail = op[len(prefix):]
    if not tail:
        return DEFAULT_HANDLER, default_interval
    rest, _, last = tail.rpartition("_")
    if last.isascii() and last.isdigit():
        return rest or DEFAULT_HANDLER, max(1, int(last))
    return tail, default_interval


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _first_str(entry: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str):
            return value
    return None


def _first_int(entry: dict[str, Any], *keys: str) -> int | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
    return None
