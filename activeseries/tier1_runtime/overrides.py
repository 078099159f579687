"""
activeseries.tier1_runtime.overrides
───────────────────────────────────────
Per-tenant tracker overrides from the runtime configuration document:

    default:
      integrations/caddy: "{job='integrations/caddy'}"
    tenant_specific:
      "1":
        team_A: "{grafanacloud_team='team_a'}"

A tenant listed under ``tenant_specific`` uses exactly its own trackers;
every other tenant uses ``default``. There is no merging between the two.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from activeseries.tier0_core.errors import TrackerError
from activeseries.tier0_core.matchers import MatcherCompiler
from activeseries.tier1_runtime.trackers import TrackerSet
from activeseries.tier1_runtime.validate import stringify_keys, validate_document


class OverridesDocument(BaseModel):
    """Document shape; unknown top-level keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    default: Optional[Dict[str, str]] = None
    tenant_specific: Optional[Dict[str, Optional[Dict[str, str]]]] = None

    @field_validator("default", mode="before")
    @classmethod
    def _default_keys(cls, v: Any) -> Any:
        return stringify_keys(v)

    @field_validator("tenant_specific", mode="before")
    @classmethod
    def _tenant_keys(cls, v: Any) -> Any:
        v = stringify_keys(v)
        if isinstance(v, dict):
            return {tenant: stringify_keys(trackers) for tenant, trackers in v.items()}
        return v


@dataclass(frozen=True, eq=True)
class OverrideResolver:
    """
    Immutable default + tenant-specific tracker sets. A reload builds a new
    resolver; an existing one is never modified.
    """

    default: TrackerSet = field(default_factory=TrackerSet)
    tenant_specific: Mapping[str, TrackerSet] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "tenant_specific", MappingProxyType(dict(self.tenant_specific))
        )

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def from_document(
        cls, document: Any, compiler: MatcherCompiler | None = None
    ) -> "OverrideResolver":
        """
        Build from a decoded runtime-config document. Tracker errors are
        re-raised attributed to ``default`` or ``tenant_specific["<id>"]``.
        """
        if document is None:
            return cls()
        doc = validate_document(OverridesDocument, document, what="overrides document")

        try:
            default = _tracker_set(doc.default, compiler)
        except TrackerError as exc:
            raise exc.attributed("default") from exc

        tenant_specific: dict[str, TrackerSet] = {}
        for tenant_id, trackers in (doc.tenant_specific or {}).items():
            if trackers is None:
                # A null entry is treated as absent: the tenant uses default.
                continue
            try:
                tenant_specific[tenant_id] = _tracker_set(trackers, compiler)
            except TrackerError as exc:
                raise exc.attributed(f'tenant_specific["{tenant_id}"]') from exc
        return cls(default=default, tenant_specific=tenant_specific)

    def resolve(self, tenant_id: str) -> TrackerSet:
        """The tenant's own trackers if it has any configured, else default."""
        return self.tenant_specific.get(tenant_id, self.default)

    @property
    def tenants(self) -> tuple[str, ...]:
        return tuple(sorted(self.tenant_specific))

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if len(self.default):
            doc["default"] = self.default.to_document()
        if self.tenant_specific:
            doc["tenant_specific"] = {
                tenant: self.tenant_specific[tenant].to_document()
                for tenant in self.tenants
            }
        return doc


def _tracker_set(
    mapping: Mapping[str, str] | None, compiler: MatcherCompiler | None
) -> TrackerSet:
    if mapping is None:
        return TrackerSet()
    return TrackerSet.from_mapping(mapping, compiler)


__all__ = ["OverridesDocument", "OverrideResolver"]
