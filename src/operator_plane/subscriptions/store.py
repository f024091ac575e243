"""File-per-binding subscription state.

Layout::

    <root>/<provider>/<tenant>/<team or "default">/<binding_id>.json

Writes go to a temporary sibling and are moved into place with
``os.replace``, so readers never see a half-written file.  There is no
cross-binding locking; concurrent writers to the *same* binding are last
writer wins.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from operator_plane.core.errors import StateStoreError
from operator_plane.core.logging import get_logger
from operator_plane.subscriptions.models import SubscriptionState

logger = get_logger(__name__)

DEFAULT_TEAM = "default"


class SubscriptionStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def state_path(self, provider: str, tenant: str, team: str | None, binding_id: str) -> Path:
        return self.root / provider / tenant / (team or DEFAULT_TEAM) / f"{binding_id}.json"

    def path_for(self, state: SubscriptionState) -> Path:
        return self.state_path(state.provider, state.tenant, state.team, state.binding_id)

    def write_state(self, state: SubscriptionState) -> Path:
        path = self.path_for(state)
        data = state.model_dump_json(indent=2)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{state.binding_id}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(data)
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StateStoreError(f"failed to write {path}: {exc}", cause=exc).with_context(
                provider=state.provider, binding_id=state.binding_id, path=str(path)
            ) from exc
        logger.debug("subscriptions.state_written", path=str(path))
        return path

    def read_state(
        self, provider: str, tenant: str, team: str | None, binding_id: str
    ) -> SubscriptionState | None:
        return self._load(self.state_path(provider, tenant, team, binding_id))

    def list_states(self) -> list[SubscriptionState]:
        if not self.root.exists():
            return []
        states = []
        for path in sorted(self.root.rglob("*.json")):
            state = self._load(path)
            if state is not None:
                states.append(state)
        return states

    def delete_state(self, provider: str, tenant: str, team: str | None, binding_id: str) -> None:
        path = self.state_path(provider, tenant, team, binding_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StateStoreError(f"failed to delete {path}: {exc}", cause=exc).with_context(
                provider=provider, binding_id=binding_id, path=str(path)
            ) from exc

    def _load(self, path: Path) -> SubscriptionState | None:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StateStoreError(f"failed to read {path}: {exc}", cause=exc).with_context(
                path=str(path)
            ) from exc
        try:
            return SubscriptionState.model_validate_json(text)
        except PydanticValidationError as exc:
            raise StateStoreError(f"corrupt subscription state {path}", cause=exc).with_context(
                path=str(path)
            ) from exc
