"""
activeseries.tier1_runtime.trackers
──────────────────────────────────────
Custom active-series trackers: a named set of series selectors, each
counting the active series it matches.

One value, three ways in:
  - flag text      ``foo:{job="a"};bar:{env="prod"}``  (repeatable flag)
  - a mapping      ``{"foo": '{job="a"}', "bar": '{env="prod"}'}``
  - a document     YAML / JSON mapping of name → selector

All three go through the same validation routine, so they can never
disagree about what is accepted. Equality is by canonical text (trackers
sorted by name, ``name:source`` joined with ``;``), so a set built from
flags equals the same set built from a config file.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Mapping

from pydantic import RootModel, field_validator

from activeseries.tier0_core.errors import (
    DuplicateTracker,
    InvalidMatcher,
    InvalidTracker,
    MalformedEntry,
)
from activeseries.tier0_core.logging import get_logger
from activeseries.tier0_core.matchers import (
    CompiledMatcher,
    MatcherCompiler,
    MatcherSyntaxError,
    get_compiler,
)
from activeseries.tier1_runtime.validate import stringify_keys, validate_document

logger = get_logger(__name__)

ENTRY_SEPARATOR = ";"
NAME_SEPARATOR = ":"


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class Tracker:
    """A named matcher source, e.g. ``Tracker("prod", '{namespace=~"prod-.*"}')``."""

    name: str
    source: str

    def __str__(self) -> str:
        return f"{self.name}{NAME_SEPARATOR}{self.source}"


# ── Shared validation ──────────────────────────────────────────────────────

def _build_tracker(
    name: str, source: str, compiler: MatcherCompiler
) -> tuple[Tracker, CompiledMatcher]:
    """Validate one trimmed entry and compile its matcher."""
    if not name or not source:
        raise InvalidTracker(
            user_message=(
                f"tracker name and matcher must not be empty, "
                f"got name {_quote(name)} with matcher {_quote(source)}"
            ),
            name=name,
            source=source,
        )
    if NAME_SEPARATOR in name or ENTRY_SEPARATOR in name:
        raise InvalidTracker(
            user_message=(
                f"tracker name {_quote(name)} must not contain "
                f"{_quote(NAME_SEPARATOR)} or {_quote(ENTRY_SEPARATOR)}"
            ),
            name=name,
        )
    if ENTRY_SEPARATOR in source:
        raise InvalidTracker(
            user_message=(
                f"matcher {_quote(source)} for tracker {_quote(name)} "
                f"must not contain {_quote(ENTRY_SEPARATOR)}"
            ),
            name=name,
            source=source,
        )
    try:
        compiled = compiler.compile(source)
    except MatcherSyntaxError as exc:
        raise InvalidMatcher(
            user_message=f"failed to parse matcher {_quote(source)} for tracker {_quote(name)}: {exc}",
            name=name,
            source=source,
        ) from exc
    return Tracker(name=name, source=source), compiled


def _build_from_pairs(
    pairs: Iterable[tuple[str, str]], compiler: MatcherCompiler | None
) -> "TrackerSet":
    compiler = compiler or get_compiler()
    entries: dict[str, tuple[Tracker, CompiledMatcher]] = {}
    for raw_name, raw_source in pairs:
        name, source = raw_name.strip(), raw_source.strip()
        tracker, compiled = _build_tracker(name, source, compiler)
        if name in entries:
            raise DuplicateTracker(
                user_message=f"matcher {_quote(name)} for active series custom trackers is provided twice",
                name=name,
            )
        entries[name] = (tracker, compiled)
    return TrackerSet(entries.values())


# ── Document schema ────────────────────────────────────────────────────────

class TrackerSetDocument(RootModel[Dict[str, str]]):
    """Document shape for a tracker set: tracker name → matcher source."""

    @field_validator("root", mode="before")
    @classmethod
    def _keys_as_strings(cls, v: Any) -> Any:
        return stringify_keys(v)


# ── TrackerSet ─────────────────────────────────────────────────────────────

class TrackerSet:
    """
    Immutable set of uniquely named trackers with their compiled matchers.

    Build with ``from_mapping``, ``from_document`` or ``parse_flag_value``;
    the constructor takes already-validated ``(Tracker, CompiledMatcher)``
    pairs, is used by those paths and by ``TrackerSetBuilder.freeze``, and
    still rejects two pairs with the same name.
    """

    __slots__ = ("_trackers", "_compiled", "_canonical")

    def __init__(
        self, entries: Iterable[tuple[Tracker, CompiledMatcher]] = ()
    ) -> None:
        ordered = sorted(entries, key=lambda entry: entry[0].name)
        for (previous, _), (current, _) in zip(ordered, ordered[1:]):
            if previous.name == current.name:
                raise DuplicateTracker(
                    user_message=f"matcher {_quote(current.name)} for active series custom trackers is provided twice",
                    name=current.name,
                )
        self._trackers: tuple[Tracker, ...] = tuple(t for t, _ in ordered)
        self._compiled: tuple[tuple[str, CompiledMatcher], ...] = tuple(
            (t.name, c) for t, c in ordered
        )
        self._canonical = ENTRY_SEPARATOR.join(str(t) for t in self._trackers)

    # ── Construction ──────────────────────────────────────────────────────

    @classmethod
    def empty(cls) -> "TrackerSet":
        return cls()

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, str], compiler: MatcherCompiler | None = None
    ) -> "TrackerSet":
        """
        Build from name → matcher source. Names and sources are trimmed;
        any invalid entry rejects the whole mapping.
        """
        return _build_from_pairs(mapping.items(), compiler)

    @classmethod
    def from_document(
        cls, document: Any, compiler: MatcherCompiler | None = None
    ) -> "TrackerSet":
        """
        Build from a decoded document (YAML / JSON mapping). A null document
        is an empty set; anything other than a string → string mapping
        raises SchemaError.
        """
        if document is None:
            return cls()
        doc = validate_document(TrackerSetDocument, document, what="trackers document")
        return _build_from_pairs(doc.root.items(), compiler)

    # ── Rendering ─────────────────────────────────────────────────────────

    @property
    def canonical(self) -> str:
        """Flag text for this set: trackers sorted by name, ``;``-joined."""
        return self._canonical

    def to_document(self) -> dict[str, str]:
        return {t.name: t.source for t in self._trackers}

    def __str__(self) -> str:
        return self._canonical

    def __repr__(self) -> str:
        return f"TrackerSet({self._canonical!r})"

    # ── Collection protocol ───────────────────────────────────────────────

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self._trackers)

    def get(self, name: str) -> Tracker | None:
        for t in self._trackers:
            if t.name == name:
                return t
        return None

    def __len__(self) -> int:
        return len(self._trackers)

    def __iter__(self) -> Iterator[Tracker]:
        return iter(self._trackers)

    def __contains__(self, name: object) -> bool:
        return any(t.name == name for t in self._trackers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrackerSet):
            return NotImplemented
        return self._canonical == other._canonical

    def __hash__(self) -> int:
        return hash(self._canonical)

    # ── Evaluation ────────────────────────────────────────────────────────

    def matches(self, labels: Mapping[str, str]) -> list[str]:
        """Names of the trackers whose matcher accepts *labels*, in name order."""
        return [name for name, matcher in self._compiled if matcher.matches(labels)]


# ── Flag parsing ───────────────────────────────────────────────────────────

class TrackerSetBuilder:
    """
    Accumulates repeated flag values into a TrackerSet.

    Each ``set()`` call parses one flag occurrence. A call either adds all
    of its trackers or none of them. Empty input clears what was
    accumulated so far.
    """

    def __init__(self, compiler: MatcherCompiler | None = None) -> None:
        self._compiler = compiler
        self._entries: dict[str, tuple[Tracker, CompiledMatcher]] = {}
        self._segments = 0

    def set(self, value: str) -> None:
        if not value.strip():
            self.reset()
            return

        compiler = self._compiler or get_compiler()
        staged: dict[str, tuple[Tracker, CompiledMatcher]] = {}
        segments = value.split(ENTRY_SEPARATOR)
        for offset, segment in enumerate(segments):
            position = self._segments + offset
            if not segment:
                continue
            raw_name, sep, raw_source = segment.partition(NAME_SEPARATOR)
            if not sep:
                raise MalformedEntry(
                    user_message=(
                        f"value should be <name>:<matcher>, but colon was not found "
                        f"in the value {position}: {_quote(segment)}"
                    ),
                    segment=segment,
                    position=position,
                )
            name, source = raw_name.strip(), raw_source.strip()
            if not name or not source:
                raise MalformedEntry(
                    user_message=(
                        f"semicolon-separated values should be <name>:<matcher>, but one "
                        f"of the sides was empty in the value {position}: {_quote(segment)}"
                    ),
                    segment=segment,
                    position=position,
                )
            entry = _build_tracker(name, source, compiler)
            if name in staged:
                raise DuplicateTracker(
                    user_message=f"matcher {_quote(name)} for active series custom trackers is provided twice",
                    name=name,
                    position=position,
                )
            if name in self._entries:
                raise DuplicateTracker(
                    user_message=f"matcher {_quote(name)} for active series custom trackers is provided more than once",
                    name=name,
                    position=position,
                )
            staged[name] = entry

        self._entries.update(staged)
        self._segments += len(segments)
        logger.debug("trackers.flag_parsed", added=len(staged), total=len(self._entries))

    def reset(self) -> None:
        self._entries = {}
        self._segments = 0

    def freeze(self) -> TrackerSet:
        return TrackerSet(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


def parse_flag_value(value: str, compiler: MatcherCompiler | None = None) -> TrackerSet:
    """
    Parse one flag value into a TrackerSet.

    Usage:
        trackers = parse_flag_value('foo:{job="a"};bar:{env="prod"}')
        assert parse_flag_value(str(trackers)) == trackers
    """
    builder = TrackerSetBuilder(compiler)
    builder.set(value)
    return builder.freeze()


def default_tracker_set() -> TrackerSet:
    """The tracker set configured through ACTIVE_SERIES_CUSTOM_TRACKERS."""
    from activeseries.tier0_core.config import get_config

    return parse_flag_value(get_config().custom_trackers)


__all__ = [
    "Tracker",
    "TrackerSet",
    "TrackerSetBuilder",
    "TrackerSetDocument",
    "parse_flag_value",
    "default_tracker_set",
]
