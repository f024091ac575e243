"""
Provider catalog.

An immutable ``(domain, provider_id) -> ProviderPack`` map built once at
startup from discovery and handed to the invoker.  Nothing mutates it
afterwards, so concurrent readers need no locking.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from operator_plane.core.errors import ProviderNotFoundError
from operator_plane.execution.discovery import ProviderPack, discover_packs
from operator_plane.execution.models import Domain


class ProviderCatalog(Mapping[tuple[Domain, str], ProviderPack]):
    """Read-only lookup of provider packs."""

    def __init__(self, packs: Iterable[ProviderPack]):
        entries: dict[tuple[Domain, str], ProviderPack] = {}
        for pack in packs:
            entries.setdefault((pack.domain, pack.pack_id), pack)
        self._entries = MappingProxyType(entries)

    @classmethod
    def discover(cls, bundle_root: Path, *, cbor_only: bool = False) -> ProviderCatalog:
        return cls(discover_packs(bundle_root, cbor_only=cbor_only))

    def __getitem__(self, key: tuple[Domain, str]) -> ProviderPack:
        return self._entries[key]

    def __iter__(self) -> Iterator[tuple[Domain, str]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, domain: Domain, provider: str) -> ProviderPack:
        """Return the pack for ``provider`` or raise :class:`ProviderNotFoundError`."""
        pack = self._entries.get((domain, provider))
        if pack is None:
            raise ProviderNotFoundError(domain.value, provider)
        return pack

    def packs(self, domain: Domain | None = None) -> list[ProviderPack]:
        return sorted(
            (pack for (d, _), pack in self._entries.items() if domain is None or d == domain),
            key=lambda pack: str(pack.path),
        )
