"""
activeseries.tier1_runtime.flags
───────────────────────────────────
Command-line flag for custom trackers. The flag can be given once with
several ``;``-separated trackers, or repeated; repetitions accumulate:

    -ingester.active-series-custom-trackers='foo:{job="a"}' \\
    -ingester.active-series-custom-trackers='bar:{env="prod"}'

Giving a tracker name twice is an error, never an overwrite. An empty value
clears the trackers accumulated so far.
"""
from __future__ import annotations

import argparse
import json
from typing import Any, Sequence

from activeseries.tier0_core.errors import TrackerError
from activeseries.tier0_core.matchers import MatcherCompiler
from activeseries.tier1_runtime.trackers import TrackerSet, TrackerSetBuilder

FLAG_NAME = "ingester.active-series-custom-trackers"

FLAG_HELP = (
    "Additional active series metrics, matching the provided matchers. "
    "Matchers should be in form <name>:<matcher>, like "
    "'foobar:{foo=\"bar\"}'. Multiple matchers can be provided either "
    "by repeating the flag or by separating them with ';'."
)


class TrackersFlagAction(argparse.Action):
    """
    argparse action that parses each occurrence into a shared builder and
    stores the frozen TrackerSet in ``dest`` after every occurrence.
    """

    def __init__(
        self,
        option_strings: Sequence[str],
        dest: str,
        compiler: MatcherCompiler | None = None,
        default: Any = None,
        **kwargs: Any,
    ) -> None:
        if kwargs.get("nargs") is not None:
            raise ValueError("nargs is not supported for the trackers flag")
        super().__init__(
            option_strings,
            dest,
            default=TrackerSet() if default is None else default,
            **kwargs,
        )
        self._compiler = compiler

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: str | None = None,
    ) -> None:
        key = f"_{self.dest}_builder"
        builder = getattr(namespace, key, None)
        if builder is None:
            builder = TrackerSetBuilder(self._compiler)
            setattr(namespace, key, builder)
        try:
            builder.set(values)
        except TrackerError as exc:
            flag = option_string or self.option_strings[0]
            raise argparse.ArgumentError(
                self,
                f"invalid value {json.dumps(values, ensure_ascii=False)} "
                f"for flag {flag}: {exc.user_message}",
            ) from exc
        setattr(namespace, self.dest, builder.freeze())


def add_trackers_flag(
    parser: argparse.ArgumentParser,
    compiler: MatcherCompiler | None = None,
    dest: str = "active_series_custom_trackers",
) -> argparse.Action:
    """Register the repeatable trackers flag on *parser*."""
    return parser.add_argument(
        f"-{FLAG_NAME}",
        "--active-series-custom-trackers",
        dest=dest,
        action=TrackersFlagAction,
        compiler=compiler,
        metavar="NAME:MATCHER[;NAME:MATCHER...]",
        help=FLAG_HELP,
    )


__all__ = ["FLAG_NAME", "TrackersFlagAction", "add_trackers_flag"]
