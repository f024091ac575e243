"""
Shared pytest fixtures for operator_plane tests.

This module provides:
- ``fake_runner``: a scripted ProviderRunner (see tests/_support/runner.py)
- ``make_pack``: builds ``.gtpack`` zip archives under a temp bundle
- An ``OperatorContext`` and a settings-cache reset for isolation

Usage:
    def test_send(fake_runner, ctx):
        fake_runner.script("send_payload", ok({"ok": True}))
        ...
"""

import json
import zipfile
from pathlib import Path
from typing import Any, Callable

import cbor2
import pytest

from operator_plane.core.config import clear_settings_cache
from operator_plane.execution.context import OperatorContext
from operator_plane.execution.models import Domain
from tests._support.runner import FakeRunner


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Each test sees freshly loaded settings."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Runner and context
# =============================================================================


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def ctx() -> OperatorContext:
    return OperatorContext(tenant="acme", team="ops", correlation_id="corr-1")


# =============================================================================
# Pack archives
# =============================================================================


@pytest.fixture
def bundle_root(tmp_path: Path) -> Path:
    root = tmp_path / "bundle"
    root.mkdir()
    return root


@pytest.fixture
def make_pack(bundle_root: Path) -> Callable[..., Path]:
    """Factory writing ``providers/<domain>/<name>.gtpack``.

    ``manifest`` goes to pack.manifest.json, or manifest.cbor with
    ``cbor=True``; ``files`` maps extra archive names to text content.
    """

    def _make(
        domain: Domain,
        name: str,
        manifest: dict[str, Any] | None = None,
        *,
        files: dict[str, str] | None = None,
        cbor: bool = False,
    ) -> Path:
        directory = bundle_root / domain.providers_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{name}.gtpack"
        with zipfile.ZipFile(path, "w") as archive:
            if manifest is not None:
                if cbor:
                    archive.writestr("manifest.cbor", cbor2.dumps(manifest))
                else:
                    archive.writestr("pack.manifest.json", json.dumps(manifest))
            for file_name, content in (files or {}).items():
                archive.writestr(file_name, content)
        return path

    return _make
