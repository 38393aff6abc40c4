"""Helpers for schema-less patch documents (nested maps, lists and scalars)."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from datetime import date, datetime

import yaml

from .errors import PatchConfigurationError

type Document = dict[str, object]


def load_document(content: str, *, source: str = "patch") -> object:
    """Parse YAML or JSON content into plain Python structures.

    Parser messages are surfaced verbatim inside a ``PatchConfigurationError``.
    """

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise PatchConfigurationError(f"Malformed {source} content: {exc}") from exc
    return _normalize(loaded)


def _normalize(value: object) -> object:
    # YAML resolves timestamps and non-string keys; the store only speaks JSON.
    if isinstance(value, Mapping):
        return {str(key): _normalize(child) for key, child in value.items()}
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    if isinstance(value, datetime | date):
        return value.isoformat()
    return value


def deep_merge(base: Mapping[str, object], overlay: Mapping[str, object]) -> Document:
    """Return ``overlay`` merged onto a copy of ``base``.

    Maps recurse, any other value replaces whatever it lands on (lists included).
    Neither input is mutated.
    """

    merged: Document = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def canonical_json(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def canonical_string(value: object) -> str:
    """Stringify a document value for projections and selector rendering."""

    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return canonical_json(value)


