"""In-process component runtime.

A provider pack may ship its component as a Python module inside the
``.gtpack`` archive.  The runtime imports it straight from the zip with
``zipimport`` without registering it in ``sys.modules``, resolves the
requested operation and calls it with ``(payload, exec_ctx)``.

Operation resolution:
    1. ``OPERATIONS[op]`` when the module exports an ``OPERATIONS`` mapping
    2. module attribute named ``op`` (``-`` and ``.`` mapped to ``_``)

Coroutine operations are driven to completion with ``asyncio.run`` so the
call stays synchronous for the invoker.  Anything the component raises
becomes the outcome's ``error``.

Manifest keys::

    {"component": {"module": "provider"}}   # or "component": "provider"
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import threading
import zipimport
from collections.abc import Callable
from pathlib import Path
from types import ModuleType
from typing import Any

from operator_plane.core.logging import get_logger
from operator_plane.execution.context import ExecutionContext
from operator_plane.execution.discovery import ProviderPack
from operator_plane.execution.models import ExecutionKind, OperationOutcome

logger = get_logger(__name__)

DEFAULT_COMPONENT_MODULE = "provider"


class ComponentLoadError(Exception):
    """The pack's component module could not be imported."""


class DirectRuntime:
    """Runs operations of in-pack Python components in this process."""

    def __init__(self) -> None:
        self._modules: dict[tuple[str, float], ModuleType] = {}
        self._lock = threading.Lock()

    def run(
        self,
        pack: ProviderPack,
        op: str,
        payload: Any,
        exec_ctx: ExecutionContext,
    ) -> OperationOutcome:
        try:
            module = self.load_component(pack)
        except ComponentLoadError as exc:
            return OperationOutcome.failed(ExecutionKind.DIRECT, str(exc))

        operation = resolve_operation(module, op)
        if operation is None:
            return OperationOutcome.failed(
                ExecutionKind.DIRECT,
                f"operation {op} is not exported by {pack.pack_id}",
            )

        try:
            result = operation(payload, exec_ctx)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
        except Exception as exc:
            logger.debug("direct.component_error", pack=pack.pack_id, op=op, error=str(exc))
            return OperationOutcome.failed(ExecutionKind.DIRECT, str(exc) or type(exc).__name__)
        return OperationOutcome.ok(ExecutionKind.DIRECT, output=result)

    def load_component(self, pack: ProviderPack) -> ModuleType:
        """Import (or reuse) the component module of ``pack``."""
        try:
            mtime = pack.path.stat().st_mtime
        except OSError as exc:
            raise ComponentLoadError(f"pack {pack.path} is not readable: {exc}") from exc
        key = (str(pack.path), mtime)
        with self._lock:
            module = self._modules.get(key)
            if module is None:
                module = _import_from_pack(pack.path, component_module_name(pack), pack.pack_id)
                self._modules[key] = module
        return module


def component_module_name(pack: ProviderPack) -> str:
    component = pack.manifest.get("component")
    if isinstance(component, str) and component:
        return component
    if isinstance(component, dict) and component.get("module"):
        return str(component["module"])
    return DEFAULT_COMPONENT_MODULE


def resolve_operation(module: ModuleType, op: str) -> Callable[..., Any] | None:
    table = getattr(module, "OPERATIONS", None)
    if isinstance(table, dict) and callable(table.get(op)):
        return table[op]
    candidate = getattr(module, op.replace("-", "_").replace(".", "_"), None)
    return candidate if callable(candidate) else None


def _import_from_pack(path: Path, module_name: str, pack_id: str) -> ModuleType:
    try:
        importer = zipimport.zipimporter(str(path))
        spec = importer.find_spec(module_name)
    except zipimport.ZipImportError as exc:
        raise ComponentLoadError(f"pack {path} is not a valid archive: {exc}") from exc
    if spec is None or spec.loader is None:
        raise ComponentLoadError(f"pack {pack_id} has no component module {module_name!r}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise ComponentLoadError(f"component {module_name} of {pack_id} failed to import: {exc}") from exc
    logger.debug("direct.component_loaded", pack=pack_id, module=module_name)
    return module


async def _await(awaitable: Any) -> Any:
    return await awaitable
