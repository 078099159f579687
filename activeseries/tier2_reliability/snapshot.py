"""
activeseries.tier2_reliability.snapshot
──────────────────────────────────────────
Holder of the active OverrideResolver. The reload subsystem builds a new
resolver from a freshly read runtime-config document and publishes it here;
ingestion threads read it on every sample.

Guarantees:
  - readers never lock and see either the old or the new resolver, never a
    partially built one (publishing is a single reference assignment)
  - a document that fails validation is rejected as a whole and the last
    known-good resolver stays active (fail closed)

Watching the runtime-config file for changes is left to the caller: call
``load_file`` whenever it changes.

Usage:
    snapshot = get_snapshot()
    snapshot.load_file("/etc/activeseries/runtime.yaml")
    resolver = snapshot.get()
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from activeseries.tier0_core.errors import ConfigurationError, PlatformError
from activeseries.tier0_core.logging import get_logger
from activeseries.tier0_core.matchers import MatcherCompiler
from activeseries.tier1_runtime.overrides import OverrideResolver
from activeseries.tier1_runtime.serialize import load_document

logger = get_logger(__name__)


class OverridesSnapshot:
    def __init__(
        self,
        initial: OverrideResolver | None = None,
        compiler: MatcherCompiler | None = None,
    ) -> None:
        self._current: OverrideResolver | None = initial
        self._compiler = compiler
        self._write_lock = threading.Lock()
        self._version = 0

    def get(self) -> OverrideResolver | None:
        """The active resolver, or None if nothing was published yet."""
        return self._current

    @property
    def version(self) -> int:
        """Number of successful publishes."""
        return self._version

    def publish(self, resolver: OverrideResolver | None) -> None:
        """Atomically replace the active resolver (None withdraws overrides)."""
        with self._write_lock:
            self._current = resolver
            self._version += 1
            version = self._version
        logger.info(
            "overrides.published",
            version=version,
            default_trackers=len(resolver.default) if resolver else 0,
            tenants=len(resolver.tenant_specific) if resolver else 0,
        )

    def load_document(self, document: Any, source: str = "document") -> OverrideResolver:
        """Build a resolver from a decoded document and publish it."""
        try:
            resolver = OverrideResolver.from_document(document, self._compiler)
        except PlatformError as exc:
            self._rejected(source, exc)
            raise
        self.publish(resolver)
        return resolver

    def load_text(
        self, text: str | bytes, format: str | None = None, source: str = "text"
    ) -> OverrideResolver:
        try:
            document = load_document(text, format)
        except PlatformError as exc:
            self._rejected(source, exc)
            raise
        return self.load_document(document, source)

    def load_file(self, path: str | Path) -> OverrideResolver:
        """Read a YAML (or ``.json``) runtime-config file and publish it."""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            err = ConfigurationError(
                user_message=f"cannot read runtime config {path}: {exc.strerror or exc}",
                path=str(path),
            )
            self._rejected(str(path), err)
            raise err from exc
        fmt = "json" if path.suffix.lower() == ".json" else None
        return self.load_text(text, fmt, source=str(path))

    def _rejected(self, source: str, exc: PlatformError) -> None:
        logger.warning(
            "overrides.reload_rejected",
            source=source,
            error_code=exc.code,
            error=exc.user_message,
            keeping_version=self._version,
        )


# ── Process-wide snapshot ──────────────────────────────────────────────────

_snapshot: OverridesSnapshot | None = None


def get_snapshot() -> OverridesSnapshot:
    global _snapshot
    if _snapshot is None:
        _snapshot = OverridesSnapshot()
    return _snapshot


def _reset_snapshot() -> None:
    global _snapshot
    _snapshot = None


def load_runtime_config() -> OverrideResolver | None:
    """
    Load ACTIVESERIES_RUNTIME_CONFIG into the process-wide snapshot, if set.
    Returns the published resolver, or None when no file is configured.
    """
    from activeseries.tier0_core.config import get_config

    path = get_config().runtime_config_file
    if not path:
        return None
    return get_snapshot().load_file(path)


__all__ = ["OverridesSnapshot", "get_snapshot", "load_runtime_config"]
