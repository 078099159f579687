"""
activeseries.tier1_runtime.serialize
───────────────────────────────────────
Load and dump structured configuration documents.
Formats: yaml (default, PyYAML safe loader, keys kept as text) | json

Configure via: ACTIVESERIES_DOCUMENT_FORMAT=yaml|json
"""
from __future__ import annotations

import json
import os
from typing import Any

import yaml

from activeseries.tier0_core.errors import SchemaError

_FORMAT = os.getenv("ACTIVESERIES_DOCUMENT_FORMAT", "yaml").lower()


class _DocumentLoader(yaml.SafeLoader):
    """
    Safe loader that keeps scalar mapping keys as written. Tenant IDs and
    tracker names are strings, so `010:` stays "010" and `on:` stays "on"
    instead of going through YAML 1.1 int and bool resolution.
    """


def _construct_mapping(loader: _DocumentLoader, node: yaml.MappingNode) -> dict:
    loader.flatten_mapping(node)
    mapping: dict = {}
    for key_node, value_node in node.value:
        if isinstance(key_node, yaml.ScalarNode):
            key = key_node.value
        else:
            key = loader.construct_object(key_node)
            try:
                hash(key)
            except TypeError as exc:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    "found unhashable key", key_node.start_mark,
                ) from exc
        mapping[key] = loader.construct_object(value_node)
    return mapping


_DocumentLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def load_document(data: bytes | str, format: str | None = None) -> Any:
    """
    Decode a document into plain Python values (dicts, lists, scalars).
    Syntax errors raise SchemaError.

    Usage:
        doc = load_document(path.read_text())
        doc = load_document(raw_bytes, "json")
    """
    fmt = (format or _FORMAT).lower()
    if isinstance(data, bytes):
        data = data.decode()
    if fmt == "yaml":
        try:
            return yaml.load(data, Loader=_DocumentLoader)
        except yaml.YAMLError as exc:
            raise SchemaError(user_message=f"invalid YAML document: {exc}") from exc
    if fmt == "json":
        try:
            return json.loads(data) if data.strip() else None
        except json.JSONDecodeError as exc:
            raise SchemaError(user_message=f"invalid JSON document: {exc}") from exc
    raise ValueError(f"Unsupported document format: {fmt!r}. Supported: yaml, json")


def dump_document(obj: dict | list, format: str | None = None) -> str:
    """
    Encode plain values as a document with sorted keys, so the same value
    always produces the same text.
    """
    fmt = (format or _FORMAT).lower()
    if fmt == "yaml":
        return yaml.safe_dump(obj, sort_keys=True, default_flow_style=False, allow_unicode=True)
    if fmt == "json":
        return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False) + "\n"
    raise ValueError(f"Unsupported document format: {fmt!r}. Supported: yaml, json")


__all__ = ["load_document", "dump_document"]
