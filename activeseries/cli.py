"""activeseries command line: check tracker flags and runtime overrides.

    activeseries -ingester.active-series-custom-trackers='foo:{job="a"}' \\
        --runtime-config runtime.yaml --tenant 1 --labels job=a,env=prod

Prints the canonical flag value, the trackers effective for the tenant and,
when labels are given, which trackers match them.
"""
from __future__ import annotations

import argparse
import sys
from typing import Sequence

from pydantic import ValidationError as PydanticValidationError

from activeseries.tier0_core.config import ActiveSeriesConfig, get_config
from activeseries.tier0_core.errors import PlatformError
from activeseries.tier0_core.logging import bind_context, clear_context, get_logger
from activeseries.tier0_core.matchers import get_compiler
from activeseries.tier1_runtime.flags import add_trackers_flag
from activeseries.tier1_runtime.serialize import dump_document
from activeseries.tier1_runtime.trackers import TrackerSet, parse_flag_value
from activeseries.tier2_reliability.snapshot import get_snapshot
from activeseries.tier3_platform.provider import (
    provider_from_snapshot,
    set_provider,
    trackers_for_tenant,
)

logger = get_logger("activeseries.cli")


def _parse_labels(value: str) -> dict[str, str]:
    labels: dict[str, str] = {}
    for pair in value.split(","):
        if not pair.strip():
            continue
        name, sep, label_value = pair.partition("=")
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"expected name=value, got {pair!r}")
        labels[name.strip()] = label_value.strip()
    return labels


def _render(trackers: TrackerSet) -> str:
    return str(trackers) if len(trackers) else "(none)"


def build_parser(default_trackers: TrackerSet) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="activeseries",
        description="Validate custom active-series trackers and per-tenant overrides.",
    )
    add_trackers_flag(parser)
    parser.set_defaults(active_series_custom_trackers=default_trackers)
    parser.add_argument(
        "--runtime-config",
        default=None,
        help="Runtime overrides file (YAML, or JSON with a .json suffix).",
    )
    parser.add_argument("--tenant", default=None, help="Tenant ID to resolve trackers for.")
    parser.add_argument(
        "--labels",
        type=_parse_labels,
        default=None,
        help="Comma-separated name=value labels to evaluate, e.g. job=api,env=prod.",
    )
    parser.add_argument(
        "--dump",
        choices=("yaml", "json"),
        default=None,
        help="Print the loaded runtime overrides as a document.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    try:
        config = get_config()
        get_compiler()
        default_trackers = parse_flag_value(config.custom_trackers)
    except PydanticValidationError as exc:
        print(f"invalid environment configuration: {exc}", file=sys.stderr)
        return 1
    except PlatformError as exc:
        logger.error("cli.environment_invalid", error_code=exc.code)
        print(f"invalid environment configuration: {exc.user_message}", file=sys.stderr)
        return 1

    args = build_parser(default_trackers).parse_args(argv)
    try:
        return _run(args, config)
    finally:
        clear_context()


def _run(args: argparse.Namespace, config: ActiveSeriesConfig) -> int:
    trackers: TrackerSet = args.active_series_custom_trackers
    print(f"trackers: {_render(trackers)}")

    runtime_config = args.runtime_config or config.runtime_config_file
    snapshot = get_snapshot()
    if runtime_config:
        bind_context(runtime_config=str(runtime_config))
        try:
            snapshot.load_file(runtime_config)
        except PlatformError as exc:
            logger.error("cli.runtime_config_invalid", error_code=exc.code)
            print(f"invalid runtime config {runtime_config}: {exc.user_message}", file=sys.stderr)
            return 1
        set_provider(provider_from_snapshot(snapshot))

    if args.dump:
        resolver = snapshot.get()
        sys.stdout.write(dump_document(resolver.to_document() if resolver else {}, args.dump))

    effective = trackers
    if args.tenant is not None:
        effective = trackers_for_tenant(args.tenant, fallback=trackers)
        print(f"tenant {args.tenant}: {_render(effective)}")

    if args.labels is not None:
        matched = effective.matches(args.labels)
        print(f"matches: {', '.join(matched) if matched else '(none)'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
