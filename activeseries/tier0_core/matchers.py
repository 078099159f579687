"""
activeseries.tier0_core.matchers
──────────────────────────────────
Matcher compilation: turns a series-selector source string such as
``{job=~"integrations/.*", env!="dev"}`` into a predicate over label sets.
TrackerSets compile every source exactly once, at construction.

Backed by: built-in series-selector compiler, or a mock for tests.
Select via: ACTIVESERIES_MATCHER_BACKEND=selector|mock
"""
from __future__ import annotations

import enum
import json
import os
import re
import string
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, runtime_checkable

from activeseries.tier0_core.errors import ConfigurationError


class MatcherSyntaxError(ValueError):
    """The matcher source is not a valid series selector."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        if position is not None:
            message = f"parse error at char {position + 1}: {message}"
        super().__init__(message)


# ── Protocol ───────────────────────────────────────────────────────────────

@runtime_checkable
class CompiledMatcher(Protocol):
    """An evaluable predicate over a label set."""

    def matches(self, labels: Mapping[str, str]) -> bool: ...


@runtime_checkable
class MatcherCompiler(Protocol):
    """Compile matcher source text; raise MatcherSyntaxError when invalid."""

    def compile(self, source: str) -> CompiledMatcher: ...


# ── Label matchers ─────────────────────────────────────────────────────────

class MatchType(str, enum.Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    REGEX = "=~"
    NOT_REGEX = "!~"


@dataclass(frozen=True)
class LabelMatcher:
    """A single ``name op "value"`` condition."""

    name: str
    type: MatchType
    value: str
    pattern: re.Pattern | None = field(default=None, compare=False, repr=False)

    @classmethod
    def new(cls, name: str, type: MatchType, value: str) -> "LabelMatcher":
        pattern = None
        if type in (MatchType.REGEX, MatchType.NOT_REGEX):
            # Regexes are fully anchored and '.' also matches newlines.
            pattern = re.compile(value, re.DOTALL)
        return cls(name=name, type=type, value=value, pattern=pattern)

    def matches(self, value: str) -> bool:
        if self.type is MatchType.EQUAL:
            return value == self.value
        if self.type is MatchType.NOT_EQUAL:
            return value != self.value
        hit = self.pattern.fullmatch(value) is not None
        return hit if self.type is MatchType.REGEX else not hit

    def __str__(self) -> str:
        return f"{self.name}{self.type.value}{json.dumps(self.value, ensure_ascii=False)}"


@dataclass(frozen=True)
class Selector:
    """Compiled series selector: every label matcher must accept."""

    source: str
    matchers: tuple[LabelMatcher, ...]

    def matches(self, labels: Mapping[str, str]) -> bool:
        # A missing label is treated as the empty string.
        for m in self.matchers:
            if not m.matches(labels.get(m.name, "")):
                return False
        return True

    def __str__(self) -> str:
        return "{" + ", ".join(str(m) for m in self.matchers) + "}"


# ── Selector parser ────────────────────────────────────────────────────────

_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_OPERATOR = re.compile(r"=~|!~|!=|=")
_WHITESPACE = re.compile(r"\s*")

_SIMPLE_ESCAPES = {
    "a": "\a", "b": "\b", "f": "\f", "n": "\n", "r": "\r",
    "t": "\t", "v": "\v", "\\": "\\", "'": "'", '"': '"',
}
_HEX_WIDTHS = {"x": 2, "u": 4, "U": 8}


class _SelectorParser:
    """Recursive-descent parser for ``[metric]{label op "value", ...}``."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def parse(self) -> tuple[LabelMatcher, ...]:
        matchers: list[LabelMatcher] = []
        self._skip_ws()
        metric = self._match(_METRIC_NAME)
        if metric is not None:
            matchers.append(LabelMatcher.new("__name__", MatchType.EQUAL, metric))
            self._skip_ws()
        if self._peek() == "{":
            self._pos += 1
            matchers.extend(self._label_matchers())
        elif metric is None:
            self._fail(f"unexpected {self._describe()}, expected metric name or '{{'")
        self._skip_ws()
        if self._pos != len(self._text):
            self._fail(f"unexpected {self._describe()} after selector")
        return tuple(matchers)

    def _label_matchers(self) -> list[LabelMatcher]:
        out: list[LabelMatcher] = []
        while True:
            self._skip_ws()
            if self._peek() == "}":
                self._pos += 1
                return out
            start = self._pos
            label = self._match(_LABEL_NAME)
            if label is None:
                self._fail(f"unexpected {self._describe()}, expected label name or '}}'")
            self._skip_ws()
            op = self._match(_OPERATOR)
            if op is None:
                self._fail(f"unexpected {self._describe()}, expected label matching operator")
            self._skip_ws()
            value = self._string()
            try:
                out.append(LabelMatcher.new(label, MatchType(op), value))
            except re.error as exc:
                raise MatcherSyntaxError(
                    f"invalid regular expression {value!r} for label {label!r}: {exc}",
                    start,
                ) from exc
            self._skip_ws()
            ch = self._peek()
            if ch == ",":
                self._pos += 1
            elif ch == "}":
                self._pos += 1
                return out
            else:
                self._fail(f"unexpected {self._describe()}, expected ',' or '}}'")

    def _string(self) -> str:
        quote = self._peek()
        if quote not in ('"', "'", "`"):
            self._fail(f"unexpected {self._describe()}, expected quoted string")
        start = self._pos
        self._pos += 1
        if quote == "`":
            end = self._text.find("`", self._pos)
            if end < 0:
                raise MatcherSyntaxError("unterminated raw string", start)
            value = self._text[self._pos:end]
            self._pos = end + 1
            return value

        chars: list[str] = []
        while True:
            if self._pos >= len(self._text):
                raise MatcherSyntaxError("unterminated quoted string", start)
            ch = self._text[self._pos]
            if ch == quote:
                self._pos += 1
                return "".join(chars)
            if ch == "\n":
                raise MatcherSyntaxError("unterminated quoted string", start)
            if ch == "\\":
                chars.append(self._escape())
                continue
            chars.append(ch)
            self._pos += 1

    def _escape(self) -> str:
        backslash = self._pos
        self._pos += 1
        if self._pos >= len(self._text):
            raise MatcherSyntaxError("escape sequence not terminated", backslash)
        ch = self._text[self._pos]
        if ch in _SIMPLE_ESCAPES:
            self._pos += 1
            return _SIMPLE_ESCAPES[ch]
        if ch in _HEX_WIDTHS:
            width = _HEX_WIDTHS[ch]
            digits = self._text[self._pos + 1:self._pos + 1 + width]
            if len(digits) != width or not all(c in string.hexdigits for c in digits):
                raise MatcherSyntaxError(f"invalid \\{ch} escape sequence", backslash)
            codepoint = int(digits, 16)
            if codepoint > 0x10FFFF:
                raise MatcherSyntaxError("escape sequence is an invalid Unicode code point", backslash)
            self._pos += 1 + width
            return chr(codepoint)
        if ch in string.octdigits:
            digits = self._text[self._pos:self._pos + 3]
            if len(digits) != 3 or not all(c in string.octdigits for c in digits):
                raise MatcherSyntaxError("invalid octal escape sequence", backslash)
            value = int(digits, 8)
            if value > 255:
                raise MatcherSyntaxError("octal escape value > 255", backslash)
            self._pos += 3
            return chr(value)
        raise MatcherSyntaxError(f"unknown escape sequence \\{ch}", backslash)

    def _match(self, pattern: re.Pattern) -> str | None:
        m = pattern.match(self._text, self._pos)
        if m is None or not m.group(0):
            return None
        self._pos = m.end()
        return m.group(0)

    def _skip_ws(self) -> None:
        self._pos = _WHITESPACE.match(self._text, self._pos).end()

    def _peek(self) -> str:
        return self._text[self._pos] if self._pos < len(self._text) else ""

    def _describe(self) -> str:
        if self._pos >= len(self._text):
            return "end of input"
        return repr(self._text[self._pos])

    def _fail(self, message: str) -> None:
        raise MatcherSyntaxError(message, self._pos)


# ── Compilers ──────────────────────────────────────────────────────────────

class SelectorCompiler:
    """Compile series selectors: ``metric{label="v", other=~"re.*"}``."""

    def compile(self, source: str) -> Selector:
        matchers = _SelectorParser(source).parse()
        names = [m for m in matchers if m.name == "__name__"]
        if len(names) > 1 and _METRIC_NAME.match(source.lstrip()):
            raise MatcherSyntaxError("metric name must not be set twice")
        if all(m.matches("") for m in matchers):
            raise MatcherSyntaxError(
                "vector selector must contain at least one non-empty matcher"
            )
        return Selector(source=source, matchers=matchers)


@dataclass(frozen=True)
class _ConstantMatcher:
    source: str
    result: bool

    def matches(self, labels: Mapping[str, str]) -> bool:
        return self.result


class MockMatcherCompiler:
    """Accepts any source, records compile calls. For tests."""

    def __init__(self, result: bool = True, reject: Iterable[str] = ()) -> None:
        self.result = result
        self._reject = set(reject)
        self.calls: list[str] = []

    def compile(self, source: str) -> CompiledMatcher:
        self.calls.append(source)
        if source in self._reject:
            raise MatcherSyntaxError(f"rejected by mock compiler: {source!r}")
        return _ConstantMatcher(source=source, result=self.result)


# ── Compiler factory ───────────────────────────────────────────────────────

_compiler: MatcherCompiler | None = None


def get_compiler() -> MatcherCompiler:
    global _compiler
    if _compiler is not None:
        return _compiler

    backend = os.environ.get("ACTIVESERIES_MATCHER_BACKEND", "selector").lower()

    if backend == "selector":
        _compiler = SelectorCompiler()
    elif backend == "mock":
        _compiler = MockMatcherCompiler()
    else:
        raise ConfigurationError(
            user_message=(
                f"Unknown ACTIVESERIES_MATCHER_BACKEND: {backend!r}. "
                "Supported: selector, mock"
            )
        )
    return _compiler


def set_compiler(compiler: MatcherCompiler | None) -> None:
    """Install a compiler process-wide; None restores env-based selection."""
    global _compiler
    _compiler = compiler


__all__ = [
    "MatcherSyntaxError",
    "CompiledMatcher",
    "MatcherCompiler",
    "MatchType",
    "LabelMatcher",
    "Selector",
    "SelectorCompiler",
    "MockMatcherCompiler",
    "get_compiler",
    "set_compiler",
]
