"""Tests for tier1_runtime modules."""
from __future__ import annotations

import argparse

import pytest

from activeseries.tier0_core.errors import (
    DuplicateTracker,
    InvalidMatcher,
    InvalidTracker,
    MalformedEntry,
    SchemaError,
)
from activeseries.tier0_core.matchers import MockMatcherCompiler
from activeseries.tier1_runtime.flags import FLAG_NAME, add_trackers_flag
from activeseries.tier1_runtime.overrides import OverrideResolver
from activeseries.tier1_runtime.serialize import dump_document, load_document
from activeseries.tier1_runtime.trackers import (
    Tracker,
    TrackerSet,
    TrackerSetBuilder,
    parse_flag_value,
)
from activeseries.tier1_runtime.validate import stringify_keys


def from_map(mapping: dict[str, str]) -> TrackerSet:
    return TrackerSet.from_mapping(mapping)


def from_yaml(text: str) -> TrackerSet:
    return TrackerSet.from_document(load_document(text, "yaml"))


# ── trackers: flag text ────────────────────────────────────────────────────

class TestTrackerFlagParsing:
    def test_empty_value_produces_empty_set(self):
        ts = parse_flag_value("")
        assert ts == from_map({})
        assert len(ts) == 0
        assert str(ts) == ""

    @pytest.mark.parametrize("value", ["foo:", "foo: ", ":{}", " :{}"])
    def test_empty_side_fails(self, value):
        with pytest.raises(MalformedEntry) as excinfo:
            parse_flag_value(value)
        assert str(excinfo.value) == (
            "semicolon-separated values should be <name>:<matcher>, but one of the "
            f'sides was empty in the value 0: "{value}"'
        )
        assert excinfo.value.metadata["segment"] == value
        assert excinfo.value.metadata["position"] == 0

    def test_second_entry_not_reached_when_first_is_empty(self):
        with pytest.raises(MalformedEntry, match='in the value 0: "foo: "'):
            parse_flag_value("foo: ;bar:{}")

    def test_position_of_later_segment(self):
        with pytest.raises(MalformedEntry, match='in the value 1: "bar:"'):
            parse_flag_value('foo:{foo="bar"};bar:')

    def test_missing_colon_fails(self):
        with pytest.raises(MalformedEntry, match='colon was not found in the value 0: "foo"'):
            parse_flag_value("foo")

    def test_one_matcher(self):
        assert parse_flag_value('foo:{foo="bar"}') == from_map({"foo": '{foo="bar"}'})

    def test_whitespace_is_trimmed(self):
        expected = from_map({"foo": '{foo="bar"}'})
        assert parse_flag_value(' foo :\t{foo="bar"}\n ') == expected
        assert parse_flag_value(' foo : {foo="bar"} ') == expected

    def test_two_matchers_in_one_value(self):
        ts = parse_flag_value('foo:{foo="bar"};baz:{baz="bar"}')
        assert ts == from_map({"foo": '{foo="bar"}', "baz": '{baz="bar"}'})
        assert ts.names == ("baz", "foo")

    def test_source_may_contain_colons(self):
        ts = parse_flag_value('foo:{url="http://x:9090"}')
        assert ts.get("foo") == Tracker("foo", '{url="http://x:9090"}')

    def test_trailing_separator_is_ignored(self):
        assert parse_flag_value('foo:{foo="bar"};') == from_map({"foo": '{foo="bar"}'})

    def test_duplicate_in_same_value(self):
        with pytest.raises(DuplicateTracker) as excinfo:
            parse_flag_value('foo:{foo="bar"};foo:{boo="bam"}')
        assert str(excinfo.value) == (
            'matcher "foo" for active series custom trackers is provided twice'
        )

    def test_invalid_matcher(self):
        with pytest.raises(InvalidMatcher, match='failed to parse matcher "123" for tracker "foo"'):
            parse_flag_value("foo:123")


class TestTrackerSetBuilder:
    def test_two_values_accumulate(self):
        builder = TrackerSetBuilder()
        builder.set('foo:{foo="bar"}')
        builder.set('baz:{baz="bar"}')
        assert builder.freeze() == from_map({"foo": '{foo="bar"}', "baz": '{baz="bar"}'})
        assert len(builder) == 2

    def test_duplicate_across_values(self):
        builder = TrackerSetBuilder()
        builder.set('foo:{foo="bar"}')
        with pytest.raises(DuplicateTracker) as excinfo:
            builder.set('foo:{boo="bam"}')
        assert str(excinfo.value) == (
            'matcher "foo" for active series custom trackers is provided more than once'
        )

    def test_position_counts_segments_of_earlier_values(self):
        builder = TrackerSetBuilder()
        builder.set('a:{a="1"};b:{b="1"}')
        with pytest.raises(MalformedEntry, match='in the value 2: "c:"'):
            builder.set("c:")

    def test_failed_value_changes_nothing(self):
        builder = TrackerSetBuilder()
        builder.set('a:{a="1"}')
        with pytest.raises(MalformedEntry):
            builder.set('b:{b="1"};c:')
        assert builder.freeze() == parse_flag_value('a:{a="1"}')
        # b was never committed, and positions did not advance
        builder.set('b:{b="1"}')
        with pytest.raises(MalformedEntry, match="in the value 2"):
            builder.set("c:")
        assert builder.freeze() == parse_flag_value('a:{a="1"};b:{b="1"}')

    def test_empty_value_clears(self):
        builder = TrackerSetBuilder()
        builder.set('foo:{foo="bar"}')
        builder.set("")
        assert builder.freeze() == TrackerSet.empty()
        builder.set('foo:{foo="baz"}')
        assert builder.freeze() == from_map({"foo": '{foo="baz"}'})

    def test_frozen_value_is_independent_of_builder(self):
        builder = TrackerSetBuilder()
        builder.set('foo:{foo="bar"}')
        frozen = builder.freeze()
        builder.set('baz:{baz="bar"}')
        assert len(frozen) == 1


# ── trackers: value semantics ──────────────────────────────────────────────

class TestTrackerSet:
    def test_canonical_text(self):
        ts = from_map({"foo": "{foo='bar'}", "baz": "{baz='bar'}"})
        assert ts.canonical == "baz:{baz='bar'};foo:{foo='bar'}"
        assert str(ts) == ts.canonical
        assert repr(ts) == "TrackerSet(\"baz:{baz='bar'};foo:{foo='bar'}\")"

    def test_constructor_rejects_duplicate_names(self, mock_compiler):
        matcher = mock_compiler.compile("{a='b'}")
        entries = [
            (Tracker("foo", "{a='b'}"), matcher),
            (Tracker("bar", "{a='b'}"), matcher),
            (Tracker("foo", "{c='d'}"), matcher),
        ]
        with pytest.raises(DuplicateTracker, match="provided twice"):
            TrackerSet(entries)

    @pytest.mark.parametrize(
        "mapping",
        [
            {},
            {"foo": '{foo="bar"}'},
            {"foo": "{foo='bar'}", "baz": "{baz='bar'}", "extra": '{e=~"x.*"}'},
            {"integrations/caddy": "{job='integrations/caddy'}"},
        ],
    )
    def test_round_trip(self, mapping):
        ts = from_map(mapping)
        assert parse_flag_value(str(ts)) == ts
        assert TrackerSet.from_document(ts.to_document()) == ts

    def test_order_independence(self):
        a = from_map({"foo": '{a="1"}', "baz": '{b="1"}'})
        b = from_map({"baz": '{b="1"}', "foo": '{a="1"}'})
        c = parse_flag_value('foo:{a="1"};baz:{b="1"}')
        d = parse_flag_value('baz:{b="1"};foo:{a="1"}')
        assert a == b == c == d
        assert len({a, b, c, d}) == 1

    def test_cross_schema_equality(self):
        sets = [
            [
                parse_flag_value("foo:{foo='bar'};baz:{baz='bar'}"),
                from_map({"baz": "{baz='bar'}", "foo": "{foo='bar'}"}),
                from_yaml("""
                baz: "{baz='bar'}"
                foo: "{foo='bar'}"
                """),
            ],
            [
                parse_flag_value("test:{test='true'}"),
                from_map({"test": "{test='true'}"}),
                from_yaml("test: \"{test='true'}\""),
            ],
            [
                from_yaml("""
                baz: "{baz='bar'}"
                foo: "{foo='bar'}"
                extra: "{extra='extra'}"
                """),
            ],
        ]
        for group in sets:
            for other in group[1:]:
                assert group[0] == other
        firsts = [group[0] for group in sets]
        for i, left in enumerate(firsts):
            for right in firsts[i + 1:]:
                assert left != right

    def test_not_equal_to_other_types(self):
        assert from_map({}) != ""
        assert from_map({"foo": '{a="b"}'}) != {"foo": '{a="b"}'}

    def test_mapping_is_trimmed(self):
        assert from_map({" foo ": ' {foo="bar"} '}) == from_map({"foo": '{foo="bar"}'})

    @pytest.mark.parametrize(
        "mapping",
        [
            {"": '{foo="bar"}'},
            {"foo": ""},
            {"foo": "   "},
            {"fo:o": '{foo="bar"}'},
            {"fo;o": '{foo="bar"}'},
            {"foo": '{foo="a;b"}'},
        ],
    )
    def test_invalid_mapping_entries(self, mapping):
        with pytest.raises(InvalidTracker):
            from_map(mapping)

    def test_invalid_matcher_in_mapping(self):
        with pytest.raises(InvalidMatcher) as excinfo:
            from_map({"baz": "123", "foo": "{foo='bar'}"})
        assert excinfo.value.metadata == {"name": "baz", "source": "123"}

    def test_duplicate_after_trimming(self):
        with pytest.raises(DuplicateTracker):
            from_map({"foo": '{a="b"}', " foo": '{c="d"}'})

    def test_collection_protocol(self):
        ts = from_map({"foo": '{a="b"}', "bar": '{c="d"}'})
        assert "foo" in ts
        assert "nope" not in ts
        assert [t.name for t in ts] == ["bar", "foo"]
        assert ts.get("nope") is None
        assert ts.to_document() == {"bar": '{c="d"}', "foo": '{a="b"}'}
        assert list(ts.to_document()) == ["bar", "foo"]

    def test_matches(self):
        ts = from_map({
            "prod": '{namespace=~"prod-.*"}',
            "api": '{job="api"}',
            "other": '{job="worker"}',
        })
        assert ts.matches({"namespace": "prod-eu", "job": "api"}) == ["api", "prod"]
        assert ts.matches({"namespace": "dev", "job": "worker"}) == ["other"]
        assert ts.matches({}) == []

    def test_matchers_compiled_once(self):
        compiler = MockMatcherCompiler()
        ts = TrackerSet.from_mapping({"a": "x", "b": "y"}, compiler)
        for _ in range(5):
            assert ts.matches({"any": "thing"}) == ["a", "b"]
        assert sorted(compiler.calls) == ["x", "y"]

    def test_builder_uses_given_compiler(self):
        compiler = MockMatcherCompiler(reject={"bad"})
        builder = TrackerSetBuilder(compiler)
        builder.set("a:anything")
        with pytest.raises(InvalidMatcher):
            builder.set("b:bad")
        assert compiler.calls == ["anything", "bad"]


class TestTrackerSetDocument:
    def test_deserialize_correct_input(self):
        ts = from_yaml("""
        baz: "{baz='bar'}"
        foo: "{foo='bar'}"
        """)
        assert ts == from_map({"baz": "{baz='bar'}", "foo": "{foo='bar'}"})

    def test_error_on_malformed_matcher(self):
        with pytest.raises(InvalidTracker):
            from_yaml("""
            baz: "123"
            foo: "{foo='bar'}"
            """)

    def test_null_document_is_empty(self):
        assert TrackerSet.from_document(None) == TrackerSet.empty()

    @pytest.mark.parametrize("document", ["foo", ["foo:{a='b'}"], {"foo": 123}, {"foo": None}])
    def test_wrong_shape_is_schema_error(self, document):
        with pytest.raises(SchemaError):
            TrackerSet.from_document(document)

    def test_numeric_names_are_strings(self):
        ts = TrackerSet.from_document({1: "{a='b'}"})
        assert ts.names == ("1",)

    @pytest.mark.parametrize("name", ["on", "off", "yes", "no", "true", "null", "010", "1.0"])
    def test_yaml_names_keep_their_text(self, name):
        ts = from_yaml(f"{name}: \"{{a='b'}}\"")
        assert ts.names == (name,)

    def test_bool_keys_are_schema_error(self):
        with pytest.raises(SchemaError):
            TrackerSet.from_document({True: "{a='b'}"})


# ── overrides ──────────────────────────────────────────────────────────────

class TestOverrideResolver:
    def test_unmarshal(self, runtime_yaml):
        r = OverrideResolver.from_document(load_document(runtime_yaml))
        assert r.default == from_map({
            "integrations/apolloserver": "{job='integrations/apollo-server'}",
            "integrations/caddy": "{job='integrations/caddy'}",
        })
        assert r.tenant_specific["1"] == from_map({
            "team_A": "{grafanacloud_team='team_a'}",
            "team_B": "{grafanacloud_team='team_b'}",
        })
        assert r.tenants == ("1",)

    def test_tenant_ids_keep_their_text(self):
        r = OverrideResolver.from_document(load_document(
            "tenant_specific:\n  010:\n    a: \"{a='b'}\"\n  0x1F:\n    b: \"{b='c'}\"\n"
        ))
        assert r.tenants == ("010", "0x1F")
        assert r.resolve("010").names == ("a",)
        assert r.resolve("8") == TrackerSet.empty()

    def test_resolve(self):
        default = from_map({"foo": '{foo="bar"}', "bar": '{baz="bar"}'})
        tenant = from_map({"team_a": '{team="team_a"}', "team_b": '{team="team_b"}'})
        r = OverrideResolver(default=default, tenant_specific={"1": tenant})
        assert r.resolve("1") is tenant
        assert r.resolve("5") is default

    def test_no_merging_with_default(self):
        r = OverrideResolver.from_document({
            "default": {"foo": '{foo="bar"}'},
            "tenant_specific": {"1": {"baz": '{baz="bar"}'}},
        })
        assert r.resolve("1").names == ("baz",)

    def test_empty_and_missing_sections(self):
        r = OverrideResolver.from_document({})
        assert r.default == TrackerSet.empty()
        assert r.resolve("anyone") == TrackerSet.empty()
        assert OverrideResolver.from_document(None) == r

    def test_null_tenant_entry_uses_default(self):
        r = OverrideResolver.from_document({
            "default": {"foo": '{foo="bar"}'},
            "tenant_specific": {"1": None, "2": {}},
        })
        assert "1" not in r.tenant_specific
        assert r.resolve("1") == r.default
        # An explicitly empty mapping means "track nothing" for that tenant.
        assert r.resolve("2") == TrackerSet.empty()

    def test_unknown_top_level_key(self):
        with pytest.raises(SchemaError, match="tenant_overrides"):
            OverrideResolver.from_document({"tenant_overrides": {}})

    def test_wrong_shape(self):
        with pytest.raises(SchemaError):
            OverrideResolver.from_document({"default": "foo:{a='b'}"})
        with pytest.raises(SchemaError):
            OverrideResolver.from_document(["default"])

    def test_error_attributed_to_tenant(self):
        with pytest.raises(InvalidMatcher) as excinfo:
            OverrideResolver.from_document({"tenant_specific": {7: {"foo": "123"}}})
        assert str(excinfo.value).startswith('tenant_specific["7"]: failed to parse matcher')
        assert excinfo.value.metadata["path"] == 'tenant_specific["7"]'

    def test_error_attributed_to_default(self):
        with pytest.raises(InvalidTracker, match="^default: "):
            OverrideResolver.from_document({"default": {"foo": ""}})

    def test_immutable_tenant_mapping(self):
        r = OverrideResolver(tenant_specific={"1": TrackerSet.empty()})
        with pytest.raises(TypeError):
            r.tenant_specific["2"] = TrackerSet.empty()  # type: ignore[index]

    def test_document_round_trip(self, runtime_yaml):
        r = OverrideResolver.from_document(load_document(runtime_yaml))
        again = OverrideResolver.from_document(load_document(dump_document(r.to_document())))
        assert again == r


# ── flags ──────────────────────────────────────────────────────────────────

def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="test", exit_on_error=False)
    add_trackers_flag(parser)
    return parser


class TestTrackersFlag:
    def test_absent_flag_is_empty(self):
        args = _parser().parse_args([])
        assert args.active_series_custom_trackers == TrackerSet.empty()

    def test_single_dash_flag_with_equals(self):
        args = _parser().parse_args([f'-{FLAG_NAME}=foo:{{foo="bar"}}'])
        assert args.active_series_custom_trackers == from_map({"foo": '{foo="bar"}'})

    def test_repeated_flags_accumulate(self):
        args = _parser().parse_args([
            "--active-series-custom-trackers", 'foo:{foo="bar"}',
            "--active-series-custom-trackers", 'baz:{baz="bar"}',
        ])
        assert args.active_series_custom_trackers == from_map(
            {"foo": '{foo="bar"}', "baz": '{baz="bar"}'}
        )

    def test_string_value_is_valid_flag_value(self):
        args = _parser().parse_args([
            "--active-series-custom-trackers", 'foo:{foo="bar"};baz:{baz="bar"}',
        ])
        again = _parser().parse_args([
            "--active-series-custom-trackers", str(args.active_series_custom_trackers),
        ])
        assert again.active_series_custom_trackers == args.active_series_custom_trackers

    def test_empty_side_error(self):
        with pytest.raises(argparse.ArgumentError) as excinfo:
            _parser().parse_args(["--active-series-custom-trackers", "foo:"])
        assert (
            'invalid value "foo:" for flag --active-series-custom-trackers: '
            "semicolon-separated values should be <name>:<matcher>, but one of the "
            'sides was empty in the value 0: "foo:"'
        ) in str(excinfo.value)

    def test_duplicate_in_same_flag(self):
        with pytest.raises(argparse.ArgumentError, match="is provided twice"):
            _parser().parse_args([
                "--active-series-custom-trackers", 'foo:{foo="bar"};foo:{boo="bam"}',
            ])

    def test_duplicate_in_separate_flags(self):
        with pytest.raises(argparse.ArgumentError) as excinfo:
            _parser().parse_args([
                "--active-series-custom-trackers", 'foo:{foo="bar"}',
                "--active-series-custom-trackers", 'foo:{boo="bam"}',
            ])
        message = str(excinfo.value)
        assert 'invalid value "foo:{boo=\\"bam\\"}"' in message
        assert "is provided more than once" in message

    def test_empty_flag_clears_earlier_values(self):
        args = _parser().parse_args([
            "--active-series-custom-trackers", 'foo:{foo="bar"}',
            "--active-series-custom-trackers", "",
        ])
        assert args.active_series_custom_trackers == TrackerSet.empty()


# ── serialize / validate ───────────────────────────────────────────────────

class TestSerialize:
    def test_yaml_dump_is_sorted(self):
        text = dump_document({"foo": "{a='b'}", "bar": "{c='d'}"}, "yaml")
        assert text.index("bar") < text.index("foo")
        assert load_document(text, "yaml") == {"bar": "{c='d'}", "foo": "{a='b'}"}

    def test_json(self):
        text = dump_document({"default": {"foo": "{a='b'}"}}, "json")
        assert load_document(text.encode(), "json") == {"default": {"foo": "{a='b'}"}}
        assert load_document("", "json") is None

    def test_yaml_keys_keep_their_text(self):
        doc = load_document("010: a\non: b\n\"1\": c\nnested:\n  off: [1, 2]\n", "yaml")
        assert doc == {"010": "a", "on": "b", "1": "c", "nested": {"off": [1, 2]}}

    def test_yaml_values_still_typed(self):
        assert load_document("a: 010\nb: on\n", "yaml") == {"a": 8, "b": True}

    def test_unhashable_yaml_key(self):
        with pytest.raises(SchemaError, match="invalid YAML document"):
            load_document("? [a, b]\n: c\n", "yaml")

    def test_invalid_yaml(self):
        with pytest.raises(SchemaError, match="invalid YAML document"):
            load_document("default: [unclosed", "yaml")

    def test_invalid_json(self):
        with pytest.raises(SchemaError, match="invalid JSON document"):
            load_document("{", "json")

    def test_unsupported_format(self):
        with pytest.raises(ValueError, match="Unsupported document format"):
            load_document("a: b", "toml")

    def test_stringify_keys(self):
        assert stringify_keys({1: "a", "b": 2}) == {"1": "a", "b": 2}
        assert stringify_keys({True: "a"}) == {True: "a"}
        assert stringify_keys("x") == "x"
