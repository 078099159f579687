"""
activeseries
────────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from activeseries.tier0_core.logging import get_logger
from activeseries.tier0_core.errors import (
    PlatformError,
    ConfigurationError,
    TrackerError,
    InvalidTracker,
    MalformedEntry,
    InvalidMatcher,
    DuplicateTracker,
    SchemaError,
)
from activeseries.tier0_core.config import get_config, ActiveSeriesConfig
from activeseries.tier0_core.matchers import (
    CompiledMatcher,
    MatcherCompiler,
    MatcherSyntaxError,
    SelectorCompiler,
    get_compiler,
    set_compiler,
)

from activeseries.tier1_runtime.trackers import (
    Tracker,
    TrackerSet,
    TrackerSetBuilder,
    parse_flag_value,
    default_tracker_set,
)
from activeseries.tier1_runtime.overrides import OverrideResolver
from activeseries.tier1_runtime.flags import add_trackers_flag, TrackersFlagAction
from activeseries.tier1_runtime.serialize import load_document, dump_document

from activeseries.tier2_reliability.snapshot import (
    OverridesSnapshot,
    get_snapshot,
    load_runtime_config,
)

from activeseries.tier3_platform.provider import (
    OverrideSnapshotProvider,
    get_overrides,
    provider_from_snapshot,
    set_provider,
    get_provider,
    current_overrides,
    trackers_for_tenant,
)

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "PlatformError", "ConfigurationError", "TrackerError", "InvalidTracker",
    "MalformedEntry", "InvalidMatcher", "DuplicateTracker", "SchemaError",
    # config
    "get_config", "ActiveSeriesConfig",
    # matchers
    "CompiledMatcher", "MatcherCompiler", "MatcherSyntaxError",
    "SelectorCompiler", "get_compiler", "set_compiler",
    # trackers
    "Tracker", "TrackerSet", "TrackerSetBuilder",
    "parse_flag_value", "default_tracker_set",
    # overrides
    "OverrideResolver",
    # flags
    "add_trackers_flag", "TrackersFlagAction",
    # serialize
    "load_document", "dump_document",
    # snapshot
    "OverridesSnapshot", "get_snapshot", "load_runtime_config",
    # provider
    "OverrideSnapshotProvider", "get_overrides", "provider_from_snapshot",
    "set_provider", "get_provider", "current_overrides", "trackers_for_tenant",
]
