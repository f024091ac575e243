"""Filesystem layout of the operator's state directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from operator_plane.core.config.settings import OperatorSettings


@dataclass(frozen=True)
class RuntimePaths:
    """
    Derives every state path from one root.

    Layout::

        <state_dir>/
            runs/<domain>/<pack_id>/<flow>/     per-invocation artifacts
            runtime/<tenant>.<team>/dlq.log     dead-letter JSON Lines
            subscriptions/...                   see SubscriptionStore
    """

    state_dir: Path
    tenant: str
    team: str = "default"

    @classmethod
    def from_settings(cls, settings: OperatorSettings, tenant: str, team: str | None = None) -> RuntimePaths:
        return cls(settings.resolved_state_dir, tenant, team or "default")

    @property
    def runtime_root(self) -> Path:
        return self.state_dir / "runtime" / f"{self.tenant}.{self.team}"

    def dlq_log_path(self) -> Path:
        return self.runtime_root / "dlq.log"

    def run_dir(self, domain: str, pack_id: str, flow: str) -> Path:
        return run_dir(self.state_dir, domain, pack_id, flow)


def run_dir(state_dir: Path, domain: str, pack_id: str, flow: str) -> Path:
    """Deterministic artifact directory for one (domain, pack, flow)."""
    return state_dir / "runs" / _segment(domain) / _segment(pack_id) / _segment(flow)


def _segment(value: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in value)
    return cleaned.strip(".") or "_"
