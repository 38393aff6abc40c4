"""In-memory resource store that tracks field ownership like server-side apply."""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from fieldpatch.domain.errors import ApplyConflictError, ObjectNotFoundError, StoreError
from fieldpatch.domain.objects import StoreObject, TargetRef
from fieldpatch.domain.patches import JSON_PATCH_CONTENT_TYPE, MERGE_PATCH_CONTENT_TYPE

if TYPE_CHECKING:
    from fieldpatch.domain.documents import Document

type FieldKey = tuple[str, ...]
type ObjectKey = tuple[str, str, str | None, str]
type OwnerKey = tuple[str, str]


def field_keys(value: object, prefix: FieldKey = ()) -> set[FieldKey]:
    """fieldsV1 key tuples for every leaf of ``value``.

    Lists of maps with a ``name`` are keyed by name; every other list is atomic.
    """

    if isinstance(value, Mapping) and value:
        keys: set[FieldKey] = set()
        for name, child in value.items():
            keys |= field_keys(child, (*prefix, f"f:{name}"))
        return keys
    if _is_keyed(value):
        keys = set()
        for item in cast("list[Mapping[str, object]]", value):
            selector = json.dumps({"name": item["name"]}, separators=(",", ":"))
            element = (*prefix, f"k:{selector}")
            keys.add((*element, "."))
            keys |= field_keys(item, element)
        return keys
    return {prefix} if prefix else set()


def _is_keyed(value: object) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(item, Mapping) and "name" in item for item in value)
    )


def merge_object(base: object, overlay: object) -> object:
    """Merge like server-side apply: maps recurse, named list items merge by name."""

    if isinstance(base, Mapping) and isinstance(overlay, Mapping):
        merged = copy.deepcopy(dict(base))
        for key, value in overlay.items():
            if key in merged:
                merged[key] = merge_object(merged[key], value)
            else:
                merged[key] = copy.deepcopy(value)
        return merged
    if _is_keyed(base) and _is_keyed(overlay):
        items = [copy.deepcopy(item) for item in cast("list[Mapping[str, object]]", base)]
        for item in cast("list[Mapping[str, object]]", overlay):
            position = next(
                (index for index, existing in enumerate(items) if existing["name"] == item["name"]),
                None,
            )
            if position is None:
                items.append(copy.deepcopy(item))
            else:
                items[position] = cast("Mapping[str, object]", merge_object(items[position], item))
        return items
    return copy.deepcopy(overlay)


def fields_v1(keys: set[FieldKey]) -> dict[str, object]:
    tree: dict[str, object] = {}
    for key in sorted(keys):
        node = tree
        for part in key:
            node = cast("dict[str, object]", node.setdefault(part, {}))
    return tree


def without_identity(obj: Mapping[str, object]) -> Document:
    body = cast("Document", copy.deepcopy(dict(obj)))
    body.pop("apiVersion", None)
    body.pop("kind", None)
    metadata = body.get("metadata")
    if isinstance(metadata, dict):
        metadata = cast("dict[str, object]", metadata)
        metadata.pop("name", None)
        metadata.pop("namespace", None)
        if not metadata:
            body.pop("metadata")
    return body


def _remove(body: Document, key: FieldKey) -> None:
    current: object = body
    for part in key[:-1]:
        current = _step(current, part)
        if current is None:
            return
    last = key[-1]
    if last.startswith("f:") and isinstance(current, dict):
        cast("dict[str, object]", current).pop(last[2:], None)


def _step(current: object, part: str) -> object:
    if part.startswith("f:") and isinstance(current, dict):
        return cast("dict[str, object]", current).get(part[2:])
    if part.startswith("k:") and isinstance(current, list):
        wanted = json.loads(part[2:])
        for item in cast("list[object]", current):
            if isinstance(item, Mapping) and all(item.get(k) == v for k, v in wanted.items()):
                return item
    return None


@dataclass
class _Record:
    body: Document
    owners: dict[OwnerKey, set[FieldKey]] = field(default_factory=dict)


@dataclass
class FakeStore:
    """Stores objects by identity; every call is recorded in ``calls``.

    ``errors`` maps an operation name (``get``, ``dry_run_apply``, ``apply``, ``patch``)
    to an exception raised on the next call of that operation; ``emit_warnings`` maps
    one to warnings the next call leaves behind.
    """

    objects: dict[ObjectKey, _Record] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    errors: dict[str, StoreError] = field(default_factory=dict)
    pending_warnings: list[str] = field(default_factory=list)
    emit_warnings: dict[str, list[str]] = field(default_factory=dict)

    def seed(
        self,
        body: Mapping[str, object],
        *,
        manager: str = "kubectl",
        operation: str = "Update",
    ) -> TargetRef:
        document = cast("Document", copy.deepcopy(dict(body)))
        record = _Record(body=document)
        keys = field_keys(without_identity(document))
        if keys:
            record.owners[(manager, operation)] = keys
        ref = StoreObject(body=document).ref()
        self.objects[_key_of(ref)] = record
        return ref

    def external_write(
        self,
        target: TargetRef,
        overlay: Mapping[str, object],
        *,
        manager: str,
        operation: str = "Update",
        take_ownership: bool = True,
    ) -> None:
        """Change values as another writer; without ``take_ownership`` owners stay as they were."""

        record = self._record(target)
        record.body = cast("Document", merge_object(record.body, overlay))
        if not take_ownership:
            return
        keys = field_keys(overlay)
        self._take(record, (manager, operation), keys)

    def body(self, target: TargetRef) -> Document:
        return copy.deepcopy(self._record(target).body)

    def owners_of(self, target: TargetRef, key: FieldKey) -> list[str]:
        record = self._record(target)
        return [manager for (manager, _), keys in record.owners.items() if key in keys]

    def get(self, target: TargetRef) -> StoreObject:
        self._enter("get", "")
        return self._to_object(self._record(target))

    def dry_run_apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject:
        self._enter("dry_run_apply", manager)
        return self._apply(obj, manager=manager, force=force, dry_run=True)

    def apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool = True,
    ) -> StoreObject:
        self._enter("apply", manager)
        return self._apply(obj, manager=manager, force=force, dry_run=False)

    def patch(
        self,
        target: TargetRef,
        *,
        body: str,
        content_type: str,
        manager: str,
        dry_run: bool = False,
    ) -> StoreObject:
        self._enter("patch", manager)
        record = self._record(target)
        updated = copy.deepcopy(record.body)
        touched: set[FieldKey] = set()
        if content_type == MERGE_PATCH_CONTENT_TYPE:
            document = json.loads(body)
            updated = _merge_patch(updated, document)
            touched = field_keys(document)
        elif content_type == JSON_PATCH_CONTENT_TYPE:
            for operation in json.loads(body):
                touched.add(_apply_operation(updated, operation))
        else:
            raise StoreError(f"unsupported content type {content_type}", status_code=415)
        result = _Record(body=updated, owners=copy.deepcopy(record.owners))
        self._take(result, (manager, "Update"), touched)
        if not dry_run:
            self.objects[_key_of(target)] = result
        return self._to_object(result)

    def drain_warnings(self) -> list[str]:
        warnings = list(self.pending_warnings)
        self.pending_warnings.clear()
        return warnings

    def _enter(self, operation: str, manager: str) -> None:
        self.calls.append((operation, manager))
        self.pending_warnings.extend(self.emit_warnings.pop(operation, []))
        error = self.errors.pop(operation, None)
        if error is not None:
            raise error

    def _record(self, target: TargetRef) -> _Record:
        record = self.objects.get(_key_of(target))
        if record is None:
            raise ObjectNotFoundError(f"{target.kind} {target.name!r} not found", status_code=404)
        return record

    def _apply(
        self,
        obj: Mapping[str, object],
        *,
        manager: str,
        force: bool,
        dry_run: bool,
    ) -> StoreObject:
        target = StoreObject(body=cast("Document", dict(obj))).ref()
        record = self._record(target)
        applied = field_keys(without_identity(obj))
        owner = (manager, "Apply")

        if not force:
            conflicts = [
                (other_manager, "." + ".".join(part[2:] for part in key))
                for (other_manager, _), keys in record.owners.items()
                if other_manager != manager
                for key in keys & applied
            ]
            if conflicts:
                raise ApplyConflictError("Apply failed with conflicts", conflicts=conflicts)

        body = copy.deepcopy(record.body)
        previous = record.owners.get(owner, set())
        others = {
            key for other, keys in record.owners.items() if other != owner for key in keys
        }
        for stale in sorted(previous - applied - others, key=len, reverse=True):
            _remove(body, stale)
        body = cast("Document", merge_object(body, obj))

        result = _Record(body=body, owners=copy.deepcopy(record.owners))
        self._take(result, owner, applied, replace=True)
        if not dry_run:
            self.objects[_key_of(target)] = result
        return self._to_object(result)

    @staticmethod
    def _take(
        record: _Record,
        owner: OwnerKey,
        keys: set[FieldKey],
        *,
        replace: bool = False,
    ) -> None:
        for other in list(record.owners):
            if other == owner:
                continue
            record.owners[other] -= keys
            if not record.owners[other]:
                del record.owners[other]
        current = set() if replace else record.owners.get(owner, set())
        merged = current | keys
        if merged:
            record.owners[owner] = merged
        else:
            record.owners.pop(owner, None)

    @staticmethod
    def _to_object(record: _Record) -> StoreObject:
        body = copy.deepcopy(record.body)
        metadata = cast("dict[str, object]", body.setdefault("metadata", {}))
        metadata["managedFields"] = [
            {
                "manager": manager,
                "operation": operation,
                "apiVersion": body.get("apiVersion"),
                "fieldsType": "FieldsV1",
                "fieldsV1": fields_v1(keys),
            }
            for (manager, operation), keys in record.owners.items()
        ]
        return StoreObject.from_body(body)


def _key_of(target: TargetRef) -> ObjectKey:
    return (target.api_version, target.kind, target.namespace, target.name)


def _merge_patch(base: object, patch: object) -> Document:
    if not isinstance(patch, Mapping):
        return cast("Document", patch)
    result = cast("Document", copy.deepcopy(base)) if isinstance(base, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


def _apply_operation(body: Document, operation: Mapping[str, object]) -> FieldKey:
    tokens = [
        token.replace("~1", "/").replace("~0", "~")
        for token in str(operation["path"]).split("/")[1:]
    ]
    parent: dict[str, object] = body
    for token in tokens[:-1]:
        parent = cast("dict[str, object]", parent.setdefault(token, {}))
    if operation["op"] == "remove":
        parent.pop(tokens[-1], None)
    else:
        parent[tokens[-1]] = copy.deepcopy(operation["value"])
    return tuple(f"f:{token}" for token in tokens)
