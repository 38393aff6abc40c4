"""Canonical field paths.

Two sources produce paths:

- literal patch documents, where array elements are addressed by position
  (``spec.args[0]``)
- server-side-apply ownership trees (``fieldsV1``), where array elements are addressed
  by merge key (``spec.containers[name=web].image``), by set value
  (``metadata.finalizers[=example.com/guard]``) or, rarely, by position

Paths are kept as ``FieldPath`` segment tuples so values can be resolved without
re-parsing strings; ``str(path)`` is the canonical rendering used as a map key.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from .documents import canonical_string

if TYPE_CHECKING:
    from .documents import Document

SELF_MARKER: Final[str] = "."


class FieldsV1FormatError(ValueError):
    """Raised when an ownership tree does not follow the fieldsV1 encoding."""


@dataclass(slots=True, frozen=True)
class KeySelector:
    """Array element selected by its merge-key fields."""

    keys: tuple[tuple[str, object], ...]

    def render(self) -> str:
        return "[" + ",".join(f"{key}={canonical_string(value)}" for key, value in self.keys) + "]"

    def matches(self, item: object, position: int) -> bool:
        # The store may omit defaulted key fields on the live item; compare what is present.
        _ = position
        if not isinstance(item, Mapping):
            return False
        verified = False
        for key, expected in self.keys:
            if key not in item:
                continue
            if canonical_string(item[key]) != canonical_string(expected):
                return False
            verified = True
        return verified

    def template(self) -> object:
        return dict(self.keys)


@dataclass(slots=True, frozen=True)
class ValueSelector:
    """Set-like array element selected by its own value."""

    value: object

    def render(self) -> str:
        return f"[={canonical_string(self.value)}]"

    def matches(self, item: object, position: int) -> bool:
        _ = position
        return canonical_string(item) == canonical_string(self.value)

    def template(self) -> object:
        return copy.deepcopy(self.value)


@dataclass(slots=True, frozen=True)
class IndexSelector:
    index: int

    def render(self) -> str:
        return f"[{self.index}]"

    def matches(self, item: object, position: int) -> bool:
        _ = item
        return position == self.index

    def template(self) -> object:
        return {}


type Selector = KeySelector | ValueSelector | IndexSelector
type Segment = str | Selector

SELECTOR_TYPES: Final = (KeySelector, ValueSelector, IndexSelector)


@dataclass(slots=True, frozen=True)
class FieldPath:
    segments: tuple[Segment, ...] = ()

    def child(self, segment: Segment) -> FieldPath:
        return FieldPath((*self.segments, segment))

    @property
    def root(self) -> Segment | None:
        return self.segments[0] if self.segments else None

    def startswith(self, other: FieldPath) -> bool:
        size = len(other.segments)
        return len(self.segments) >= size and self.segments[:size] == other.segments

    def overlaps(self, other: FieldPath) -> bool:
        """Whether one path addresses the other or something nested inside it."""

        return self.startswith(other) or other.startswith(self)

    def __str__(self) -> str:
        parts: list[str] = []
        for segment in self.segments:
            if isinstance(segment, str):
                parts.append(f".{segment}" if parts else segment)
            else:
                parts.append(segment.render())
        return "".join(parts)


@dataclass(slots=True, frozen=True)
class LeafOwned:
    """The node is owned as a whole; nothing below it is tracked."""


@dataclass(slots=True, frozen=True)
class ObjectNode:
    fields: tuple[tuple[str, OwnershipNode], ...] = ()
    owns_self: bool = False


@dataclass(slots=True, frozen=True)
class ArrayNode:
    items: tuple[tuple[Selector, OwnershipNode], ...] = ()
    owns_self: bool = False


type OwnershipNode = LeafOwned | ObjectNode | ArrayNode


def parse_fields_v1(raw: object) -> ObjectNode:
    """Decode a raw ``fieldsV1`` tree into the ownership AST."""

    if raw is None:
        return ObjectNode()
    node = _parse_node(raw, where="fieldsV1")
    if isinstance(node, LeafOwned):
        return ObjectNode()
    if isinstance(node, ArrayNode):
        raise FieldsV1FormatError("fieldsV1: the root must hold object fields")
    return node


def _parse_node(raw: object, *, where: str) -> OwnershipNode:
    if not isinstance(raw, Mapping):
        raise FieldsV1FormatError(f"{where}: expected a mapping, got {type(raw).__name__}")

    keys = [str(key) for key in raw if key != SELF_MARKER]
    if not keys:
        return LeafOwned()

    fields: list[tuple[str, OwnershipNode]] = []
    items: list[tuple[Selector, OwnershipNode]] = []
    for key in keys:
        tag, separator, body = key.partition(":")
        if not separator:
            raise FieldsV1FormatError(f"{where}: untagged key {key!r}")
        child = _parse_node(raw[key], where=f"{where}/{key}")
        if tag == "f":
            fields.append((body, child))
        elif tag == "k":
            items.append((_parse_key_selector(body, where=where), child))
        elif tag == "v":
            items.append((ValueSelector(_parse_json(body, where=where)), child))
        elif tag == "i":
            try:
                items.append((IndexSelector(int(body)), child))
            except ValueError as exc:
                raise FieldsV1FormatError(f"{where}: invalid index {body!r}") from exc
        else:
            raise FieldsV1FormatError(f"{where}: unknown key tag {tag!r}")

    if fields and items:
        raise FieldsV1FormatError(f"{where}: mixes object fields and array selectors")
    owns_self = SELF_MARKER in raw
    if items:
        return ArrayNode(items=tuple(items), owns_self=owns_self)
    return ObjectNode(fields=tuple(fields), owns_self=owns_self)


def _parse_json(body: str, *, where: str) -> object:
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise FieldsV1FormatError(f"{where}: invalid selector {body!r}: {exc}") from exc


def _parse_key_selector(body: str, *, where: str) -> KeySelector:
    decoded = _parse_json(body, where=where)
    if not isinstance(decoded, Mapping) or not decoded:
        raise FieldsV1FormatError(f"{where}: key selector must be a non-empty object: {body!r}")
    return KeySelector(tuple(sorted((str(key), value) for key, value in decoded.items())))


def owned_paths(
    node: OwnershipNode,
    prefix: FieldPath | None = None,
    *,
    leaves_only: bool = False,
) -> list[FieldPath]:
    """Flatten an ownership tree into paths.

    Leaves are always emitted. Internal nodes carrying the self marker are emitted too
    unless ``leaves_only`` is set; the marker itself never becomes a segment.
    """

    collected: list[FieldPath] = []
    _collect(node, prefix or FieldPath(), collected, leaves_only=leaves_only)
    return collected


def _collect(
    node: OwnershipNode,
    path: FieldPath,
    collected: list[FieldPath],
    *,
    leaves_only: bool,
) -> None:
    if isinstance(node, LeafOwned):
        if path.segments:
            collected.append(path)
        return
    if node.owns_self and not leaves_only and path.segments:
        collected.append(path)
    children: tuple[tuple[Segment, OwnershipNode], ...] = (
        node.fields if isinstance(node, ObjectNode) else node.items
    )
    for segment, child in children:
        _collect(child, path.child(segment), collected, leaves_only=leaves_only)


def document_paths(document: Mapping[str, object]) -> list[FieldPath]:
    """Return one path per leaf of a literal document, addressing arrays by index."""

    collected: list[FieldPath] = []
    _walk_document(document, FieldPath(), collected)
    return collected


def _walk_document(value: object, path: FieldPath, collected: list[FieldPath]) -> None:
    if isinstance(value, Mapping) and value:
        for key, child in value.items():
            _walk_document(child, path.child(str(key)), collected)
    elif isinstance(value, list) and value:
        for index, item in enumerate(value):
            _walk_document(item, path.child(IndexSelector(index)), collected)
    elif path.segments:
        collected.append(path)


def document_overlaps(document: object, touched: FieldPath, owned: FieldPath) -> bool:
    """Like ``FieldPath.overlaps``, for a path taken from ``document`` by index.

    An index step of ``touched`` meets a key or value selector of ``owned`` when the
    element of ``document`` at that index matches the selector.
    """

    current = document
    for mine, theirs in zip(touched.segments, owned.segments, strict=False):
        if isinstance(mine, IndexSelector) and isinstance(theirs, KeySelector | ValueSelector):
            in_range = isinstance(current, list) and mine.index < len(current)
            item = current[mine.index] if in_range else MISSING
            if not theirs.matches(item, mine.index):
                return False
            current = item
            continue
        if mine != theirs:
            return False
        current = resolve_path(current, FieldPath((mine,)))
    return True


def pointer_path(pointer: str, document: object = None) -> FieldPath:
    """Translate an RFC 6901 JSON pointer into a field path.

    A token of ASCII digits addresses a list position unless ``document`` holds a map at
    that point, where it is a plain key. The append token ``-`` addresses the array itself.
    """

    if not pointer:
        return FieldPath()
    if not pointer.startswith("/"):
        raise ValueError(f"JSON pointer must start with '/': {pointer!r}")
    path = FieldPath()
    current = document
    for token in pointer[1:].split("/"):
        decoded = token.replace("~1", "/").replace("~0", "~")
        in_map = isinstance(current, Mapping)
        if decoded == "-" and not in_map:
            break
        segment: Segment = decoded
        if not in_map and decoded.isascii() and decoded.isdigit():
            segment = IndexSelector(int(decoded))
        path = path.child(segment)
        if current is not None:
            current = resolve_path(current, FieldPath((segment,)))
            if current is MISSING:
                current = None
    return path


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Final = _Missing()


def resolve_path(document: object, path: FieldPath) -> object:
    """Return the value at ``path`` or ``MISSING``."""

    current = document
    for segment in path.segments:
        if isinstance(segment, str):
            if not isinstance(current, Mapping) or segment not in current:
                return MISSING
            current = current[segment]
            continue
        if not isinstance(current, list):
            return MISSING
        for position, item in enumerate(current):
            if segment.matches(item, position):
                current = item
                break
        else:
            return MISSING
    return current


def assign_path(document: Document, path: FieldPath, value: object) -> None:
    """Set ``value`` at ``path``, creating maps and keyed list elements on the way."""

    if not path.segments:
        raise ValueError("Cannot assign to the document root")

    current: object = document
    last_index = len(path.segments) - 1
    for index, segment in enumerate(path.segments):
        last = index == last_index
        wants_list = not last and isinstance(path.segments[index + 1], SELECTOR_TYPES)

        if isinstance(segment, str):
            if not isinstance(current, dict):
                raise ValueError(f"Cannot assign {path}: {segment!r} is not inside a map")
            if last:
                current[segment] = copy.deepcopy(value)
                return
            child = current.get(segment)
            if wants_list and not isinstance(child, list):
                child = []
                current[segment] = child
            elif not wants_list and not isinstance(child, dict):
                child = {}
                current[segment] = child
            current = child
            continue

        if not isinstance(current, list):
            raise ValueError(f"Cannot assign {path}: {segment.render()} is not inside a list")
        position = next(
            (pos for pos, item in enumerate(current) if segment.matches(item, pos)),
            None,
        )
        if last:
            if position is None:
                current.append(copy.deepcopy(value))
            else:
                current[position] = copy.deepcopy(value)
            return
        if isinstance(segment, ValueSelector):
            raise ValueError(f"Cannot assign {path}: set values have no children")
        if position is None:
            current.append(segment.template())
            position = len(current) - 1
        current = current[position]
