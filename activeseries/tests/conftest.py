"""
activeseries test configuration.

All tests run with the built-in selector compiler and without a runtime
config file. Override by setting environment variables before running pytest.
"""
from __future__ import annotations

import os

import pytest

# ── Force defaults for all tests ───────────────────────────────────────────
# These must be set before any activeseries modules are imported.

os.environ.setdefault("ACTIVESERIES_MATCHER_BACKEND", "selector")
os.environ.setdefault("ACTIVESERIES_LOG_LEVEL", "WARNING")
os.environ.setdefault("ACTIVESERIES_LOG_FORMAT", "console")
os.environ.pop("ACTIVESERIES_RUNTIME_CONFIG", None)
os.environ.pop("ACTIVE_SERIES_CUSTOM_TRACKERS", None)


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_module_singletons():
    """
    Reset all cached singletons between tests.
    This ensures each test gets a fresh compiler, snapshot and provider.
    """
    import activeseries.tier0_core.config as _config
    import activeseries.tier0_core.matchers as _matchers
    import activeseries.tier2_reliability.snapshot as _snapshot
    import activeseries.tier3_platform.provider as _provider

    orig_compiler = _matchers._compiler
    orig_snapshot = _snapshot._snapshot
    orig_provider = _provider._provider
    _config._reset_config()

    yield

    _matchers._compiler = orig_compiler
    _snapshot._snapshot = orig_snapshot
    _provider._provider = orig_provider
    _config._reset_config()


@pytest.fixture
def mock_compiler():
    """Return a fresh MockMatcherCompiler that accepts everything."""
    from activeseries.tier0_core.matchers import MockMatcherCompiler
    return MockMatcherCompiler()


@pytest.fixture
def runtime_yaml():
    """Runtime overrides document with a default and one tenant."""
    return """
default:
  integrations/apolloserver: "{job='integrations/apollo-server'}"
  integrations/caddy: "{job='integrations/caddy'}"
tenant_specific:
  1:
    team_A: "{grafanacloud_team='team_a'}"
    team_B: "{grafanacloud_team='team_b'}"
"""
