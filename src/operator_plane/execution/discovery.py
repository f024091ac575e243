"""
Pack discovery.

Walks ``<bundle_root>/providers/<domain>/*.gtpack`` and reads each pack's
manifest.  A ``.gtpack`` is a zip archive carrying either
``manifest.cbor`` (preferred) or ``pack.manifest.json``.

Pack id resolution order:
    1. top-level ``pack_id``
    2. ``meta.pack_id``
    3. the archive's file stem

Integer pack ids in CBOR manifests index into ``symbols.pack_ids``.
"""

from __future__ import annotations

import json
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import cbor2

from operator_plane.core.errors import PackManifestError
from operator_plane.core.logging import get_logger
from operator_plane.execution.models import Domain

logger = get_logger(__name__)

PACK_SUFFIX = ".gtpack"
CBOR_MANIFEST = "manifest.cbor"
JSON_MANIFEST = "pack.manifest.json"


class PackIdSource(str, Enum):
    MANIFEST = "manifest"
    FILENAME = "filename"


@dataclass(frozen=True)
class ProviderPack:
    """One discovered provider pack."""

    pack_id: str
    domain: Domain
    path: Path
    entry_flows: tuple[str, ...] = ()
    id_source: PackIdSource = PackIdSource.MANIFEST
    manifest: dict[str, Any] = field(default_factory=dict, repr=False, compare=False, hash=False)

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return self.path.stem

    def declares_flow(self, flow: str) -> bool:
        return flow in self.entry_flows


def discover_packs(
    bundle_root: Path,
    domains: tuple[Domain, ...] = (Domain.MESSAGING, Domain.EVENTS, Domain.SECRETS),
    *,
    cbor_only: bool = False,
) -> list[ProviderPack]:
    """Discover every provider pack under ``bundle_root``, sorted by path."""
    packs: list[ProviderPack] = []
    for domain in domains:
        providers_dir = bundle_root / domain.providers_dir
        if not providers_dir.is_dir():
            continue
        for path in sorted(providers_dir.iterdir()):
            if not path.is_file() or path.suffix != PACK_SUFFIX:
                continue
            packs.append(load_pack(path, domain, cbor_only=cbor_only))
    packs.sort(key=lambda pack: str(pack.path))
    logger.debug("discovery.completed", root=str(bundle_root), packs=len(packs))
    return packs


def load_pack(path: Path, domain: Domain, *, cbor_only: bool = False) -> ProviderPack:
    """Read one pack archive into a :class:`ProviderPack`."""
    manifest = read_manifest(path, cbor_only=cbor_only) or {}
    pack_id = extract_pack_id(manifest)
    id_source = PackIdSource.MANIFEST
    if pack_id is None:
        pack_id = path.stem
        id_source = PackIdSource.FILENAME
    return ProviderPack(
        pack_id=pack_id,
        domain=domain,
        path=path,
        entry_flows=tuple(extract_entry_flows(manifest)),
        id_source=id_source,
        manifest=manifest,
    )


def read_manifest(path: Path, *, cbor_only: bool = False) -> dict[str, Any] | None:
    """Decode a pack manifest, or None if the archive carries none."""
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            if CBOR_MANIFEST in names:
                value = cbor2.loads(archive.read(CBOR_MANIFEST))
                return value if isinstance(value, dict) else {}
            if cbor_only:
                raise PackManifestError(
                    f"pack {path} must contain {CBOR_MANIFEST}"
                ).with_context(path=str(path))
            if JSON_MANIFEST in names:
                return json.loads(archive.read(JSON_MANIFEST).decode("utf-8"))
    except (zipfile.BadZipFile, cbor2.CBORDecodeError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PackManifestError(
            f"failed to decode manifest in {path}: {exc}", cause=exc
        ).with_context(path=str(path)) from exc
    return None


def extract_pack_id(manifest: dict[str, Any]) -> str | None:
    symbols = manifest.get("symbols") if isinstance(manifest.get("symbols"), dict) else None
    if "pack_id" in manifest:
        resolved = _resolve_symbol(manifest["pack_id"], symbols, "pack_ids")
        if resolved is not None:
            return resolved
    meta = manifest.get("meta")
    if isinstance(meta, dict) and "pack_id" in meta:
        return _resolve_symbol(meta["pack_id"], symbols, "pack_ids")
    return None


def extract_entry_flows(manifest: dict[str, Any]) -> list[str]:
    """Entry flows from ``meta.entry_flows``, ``entry_flows``, ``flows`` or ``entrypoints``."""
    meta = manifest.get("meta")
    if isinstance(meta, dict) and isinstance(meta.get("entry_flows"), list):
        return [str(flow) for flow in meta["entry_flows"]]
    if isinstance(manifest.get("entry_flows"), list):
        return [str(flow) for flow in manifest["entry_flows"]]

    flows: list[str] = []
    for flow in manifest.get("flows") or []:
        if isinstance(flow, dict) and flow.get("id"):
            flows.append(str(flow["id"]))
        elif isinstance(flow, str):
            flows.append(flow)
    entrypoints = manifest.get("entrypoints")
    if isinstance(entrypoints, dict):
        entrypoints = list(entrypoints.keys())
    for entry in entrypoints or []:
        if isinstance(entry, str) and entry not in flows:
            flows.append(entry)
    return flows


def _resolve_symbol(value: Any, symbols: dict[str, Any] | None, key: str) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if symbols is None:
        return str(value)
    table = symbols.get(key)
    if table is None:
        table = symbols.get(key.removesuffix("s"))
    if isinstance(table, list) and 0 <= value < len(table) and isinstance(table[value], str):
        return table[value]
    return str(value)
