"""Tests for timer handler discovery."""

from pathlib import Path

import pytest

from operator_plane.events.timers import (
    PROVIDER_EXTENSION,
    TimerHandlerConfig,
    discover_timer_handlers,
    handlers_for_pack,
    parse_timer_op,
)
from operator_plane.execution.catalog import ProviderCatalog
from operator_plane.execution.discovery import ProviderPack
from operator_plane.execution.models import Domain


def _pack(inline, pack_id="graph", domain=Domain.EVENTS):
    manifest = {"pack_id": pack_id}
    if inline is not None:
        manifest["extensions"] = {PROVIDER_EXTENSION: {"inline": inline}}
    return ProviderPack(
        pack_id=pack_id,
        domain=domain,
        path=Path(f"/bundle/{pack_id}.gtpack"),
        manifest=manifest,
    )


class TestParseTimerOp:
    """Legacy op-name inference."""

    @pytest.mark.parametrize(
        "op, expected",
        [
            ("timer_tick", ("default", 60)),
            ("ingest_timer", ("default", 60)),
            ("timer_reminder_10", ("reminder", 10)),
            ("timer_inbox", ("inbox", 60)),
            ("timer_10", ("default", 10)),
            ("timer_", ("default", 60)),
            ("timer_0", ("default", 1)),
            ("timer_digest_\u00b2", ("digest_\u00b2", 60)),
            ("send_payload", None),
        ],
    )
    def test_inference(self, op, expected):
        assert parse_timer_op(op, 60) == expected


class TestHandlerConfig:
    """TimerHandlerConfig normalisation."""

    def test_interval_at_least_one(self):
        assert TimerHandlerConfig("graph", "poll", interval_seconds=0).interval_seconds == 1


class TestHandlersForPack:
    """Handler declarations in the provider extension."""

    def test_string_entries(self):
        handlers = handlers_for_pack(_pack({"timer_handlers": ["poll_inbox"]}), 30)
        assert handlers == [TimerHandlerConfig("graph", "poll_inbox", "default", 30)]

    def test_object_entries(self):
        inline = {"timers": [{"op_id": "poll", "handler_id": "inbox", "interval_seconds": 15}]}
        assert handlers_for_pack(_pack(inline)) == [TimerHandlerConfig("graph", "poll", "inbox", 15)]

    def test_entries_without_op_are_ignored(self):
        assert handlers_for_pack(_pack({"timer_handlers": [{"handler_id": "x"}, 42]})) == []

    def test_per_provider_entries(self):
        inline = {
            "providers": [
                {"provider_type": "graph-mail", "timer_handlers": [{"op": "poll", "interval": 5}]},
            ]
        }
        assert handlers_for_pack(_pack(inline)) == [TimerHandlerConfig("graph-mail", "poll", "default", 5)]

    def test_inferred_from_op_names(self):
        inline = {"providers": [{"provider_type": "graph", "ops": ["timer_reminder_10", "send", "timer_tick"]}]}
        assert handlers_for_pack(_pack(inline)) == [
            TimerHandlerConfig("graph", "timer_reminder_10", "reminder", 10),
            TimerHandlerConfig("graph", "timer_tick", "default", 60),
        ]

    def test_inference_only_for_own_provider(self):
        inline = {"providers": [{"provider_type": "other", "ops": ["timer_tick"]}]}
        assert handlers_for_pack(_pack(inline)) == []

    def test_explicit_beats_inference(self):
        inline = {
            "timer_handlers": ["poll"],
            "providers": [{"provider_type": "graph", "ops": ["timer_tick"]}],
        }
        assert [h.op_id for h in handlers_for_pack(_pack(inline))] == ["poll"]

    def test_no_extension(self):
        assert handlers_for_pack(_pack(None)) == []


class TestDiscoverTimerHandlers:
    """Discovery across packs."""

    def test_only_events_packs(self):
        packs = [
            _pack({"timer_handlers": ["poll"]}),
            _pack({"timer_handlers": ["poll"]}, pack_id="slack", domain=Domain.MESSAGING),
        ]
        assert [h.provider for h in discover_timer_handlers(packs)] == ["graph"]

    def test_from_cbor_manifest(self, bundle_root, make_pack):
        make_pack(
            Domain.EVENTS,
            "events-graph",
            {
                "meta": {"pack_id": "graph"},
                "extensions": {PROVIDER_EXTENSION: {"inline": {"timer_handlers": [{"op_id": "poll", "interval_seconds": 20}]}}},
            },
            cbor=True,
        )
        catalog = ProviderCatalog.discover(bundle_root)
        handlers = discover_timer_handlers(catalog.packs(Domain.EVENTS))
        assert handlers == [TimerHandlerConfig("graph", "poll", "default", 20)]
