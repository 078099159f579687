"""
activeseries.tier3_platform.provider
───────────────────────────────────────
Read-only access to the current per-tenant overrides for the ingestion hot
path. The provider wraps a supplier (``getter``) wired in by the runtime
config subsystem; "no provider", "no getter" and "getter returned None" all
mean the same thing to callers: no overrides, use the flag-configured
trackers.

Usage (per sample):
    trackers = trackers_for_tenant(tenant_id, fallback=flag_trackers)
    for name in trackers.matches(labels):
        ...
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from activeseries.tier1_runtime.overrides import OverrideResolver
from activeseries.tier1_runtime.trackers import TrackerSet
from activeseries.tier2_reliability.snapshot import OverridesSnapshot

OverridesGetter = Callable[[], Optional[OverrideResolver]]


@dataclass(frozen=True)
class OverrideSnapshotProvider:
    getter: OverridesGetter | None = None

    def get(self) -> OverrideResolver | None:
        """Current overrides, or None. Never raises, never blocks."""
        if self.getter is None:
            return None
        return self.getter()


def get_overrides(provider: OverrideSnapshotProvider | None) -> OverrideResolver | None:
    """Like ``provider.get()`` but also accepts a missing provider."""
    if provider is None:
        return None
    return provider.get()


def provider_from_snapshot(snapshot: OverridesSnapshot) -> OverrideSnapshotProvider:
    return OverrideSnapshotProvider(getter=snapshot.get)


# ── Process-wide provider ──────────────────────────────────────────────────

_provider: OverrideSnapshotProvider | None = None


def set_provider(provider: OverrideSnapshotProvider | None) -> None:
    """Install the process-wide provider (None removes it)."""
    global _provider
    _provider = provider


def get_provider() -> OverrideSnapshotProvider | None:
    return _provider


def current_overrides() -> OverrideResolver | None:
    return get_overrides(_provider)


def trackers_for_tenant(
    tenant_id: str,
    fallback: TrackerSet,
    provider: OverrideSnapshotProvider | None = None,
) -> TrackerSet:
    """
    Effective trackers for *tenant_id*: the override resolution when
    overrides are available, otherwise *fallback*.
    """
    overrides = get_overrides(provider if provider is not None else _provider)
    if overrides is None:
        return fallback
    return overrides.resolve(tenant_id)


__all__ = [
    "OverridesGetter",
    "OverrideSnapshotProvider",
    "get_overrides",
    "provider_from_snapshot",
    "set_provider",
    "get_provider",
    "current_overrides",
    "trackers_for_tenant",
]
