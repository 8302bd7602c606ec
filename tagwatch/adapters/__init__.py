"""Registry adapters, one strategy per registry kind."""

from __future__ import annotations

from typing import Any, Mapping

from tagwatch.adapters.base import BaseAdapter, UnsupportedRegistryError
from tagwatch.adapters.hub import HubAdapter
from tagwatch.adapters.oci import OciAdapter
from tagwatch.models import RegistryKind

#: Adapter class used for each registry kind.
ADAPTERS: dict[RegistryKind, type[BaseAdapter]] = {
    RegistryKind.HUB: HubAdapter,
    RegistryKind.GHCR: OciAdapter,
    RegistryKind.MIRROR: OciAdapter,
    RegistryKind.CUSTOM: OciAdapter,
}


def build_adapters(
    adapters: Mapping[RegistryKind, type[BaseAdapter]] | None = None,
    **options: Any,
) -> dict[RegistryKind, BaseAdapter]:
    """Instantiate one adapter per kind, sharing instances between kinds
    served by the same class.
    """
    instances: dict[type[BaseAdapter], BaseAdapter] = {}
    built: dict[RegistryKind, BaseAdapter] = {}
    for kind, cls in (adapters if adapters is not None else ADAPTERS).items():
        if cls not in instances:
            instances[cls] = cls(**options)
        built[kind] = instances[cls]
    return built


__all__ = [
    "ADAPTERS",
    "BaseAdapter",
    "HubAdapter",
    "OciAdapter",
    "UnsupportedRegistryError",
    "build_adapters",
]
