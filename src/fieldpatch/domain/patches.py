"""Patch specifications.

A binding carries exactly one of three payload kinds. Only the merge document is sent
through server-side apply, so only it can be projected at plan time; the other two are
sent as plain patches and report ``supports_projection=False``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final, Literal, TypeGuard, cast

from .documents import canonical_json, load_document
from .errors import PatchConfigurationError
from .identity import RESERVED_ANNOTATION_PREFIX
from .paths import FieldPath, document_paths, pointer_path

if TYPE_CHECKING:
    from .documents import Document

APPLY_CONTENT_TYPE: Final[str] = "application/apply-patch+yaml"
JSON_PATCH_CONTENT_TYPE: Final[str] = "application/json-patch+json"
MERGE_PATCH_CONTENT_TYPE: Final[str] = "application/merge-patch+json"

SERVER_MANAGED_METADATA: Final[tuple[str, ...]] = (
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
    "managedFields",
    "selfLink",
)
SERVER_MANAGED_POINTERS: Final[tuple[str, ...]] = (
    *(f"/metadata/{name}" for name in SERVER_MANAGED_METADATA),
    "/status",
)
JSON_PATCH_OPERATIONS: Final[frozenset[str]] = frozenset(
    {"add", "remove", "replace", "move", "copy", "test"}
)
_VALUE_OPERATIONS: Final[frozenset[str]] = frozenset({"add", "replace", "test"})
_FROM_OPERATIONS: Final[frozenset[str]] = frozenset({"move", "copy"})


class PatchKind(StrEnum):
    MERGE = "patch"
    JSON_PATCH = "json_patch"
    MERGE_PATCH = "merge_patch"


@dataclass(slots=True, frozen=True)
class PatchCapabilities:
    supports_projection: bool
    content_type: str


@dataclass(slots=True, frozen=True, kw_only=True)
class MergeDocument:
    """Deep-merge document sent through server-side apply."""

    content: str
    document: Document
    digest: str
    warnings: tuple[str, ...] = ()
    kind: Literal[PatchKind.MERGE] = PatchKind.MERGE

    def capabilities(self) -> PatchCapabilities:
        return PatchCapabilities(supports_projection=True, content_type=APPLY_CONTENT_TYPE)

    def touched_paths(self, live: Mapping[str, object] | None = None) -> list[FieldPath]:
        _ = live
        return document_paths(self.document)

    def source_document(self) -> Document | None:
        return self.document

    def wire_body(self) -> str:
        return canonical_json(self.document)


@dataclass(slots=True, frozen=True, kw_only=True)
class JsonPatch:
    """RFC 6902 operation list."""

    content: str
    operations: tuple[Mapping[str, object], ...]
    digest: str
    warnings: tuple[str, ...] = ()
    kind: Literal[PatchKind.JSON_PATCH] = PatchKind.JSON_PATCH

    def capabilities(self) -> PatchCapabilities:
        return PatchCapabilities(supports_projection=False, content_type=JSON_PATCH_CONTENT_TYPE)

    def touched_paths(self, live: Mapping[str, object] | None = None) -> list[FieldPath]:
        """Paths the operations write; numeric tokens are read against ``live`` when given."""

        paths: list[FieldPath] = []
        for operation in self.operations:
            paths.append(pointer_path(str(operation["path"]), live))
            if operation["op"] == "move":
                paths.append(pointer_path(str(operation["from"]), live))
        return [path for path in paths if path.segments]

    def source_document(self) -> Document | None:
        """Operations address positions, not documents."""
        return None

    def wire_body(self) -> str:
        return json.dumps([dict(operation) for operation in self.operations])


@dataclass(slots=True, frozen=True, kw_only=True)
class MergePatch:
    """RFC 7386 merge patch; ``null`` removes a key, arrays are replaced."""

    content: str
    document: Document
    digest: str
    warnings: tuple[str, ...] = ()
    kind: Literal[PatchKind.MERGE_PATCH] = PatchKind.MERGE_PATCH

    def capabilities(self) -> PatchCapabilities:
        return PatchCapabilities(supports_projection=False, content_type=MERGE_PATCH_CONTENT_TYPE)

    def touched_paths(self, live: Mapping[str, object] | None = None) -> list[FieldPath]:
        _ = live
        return document_paths(self.document)

    def source_document(self) -> Document | None:
        return self.document

    def wire_body(self) -> str:
        return canonical_json(self.document)


type PatchSpec = MergeDocument | JsonPatch | MergePatch


def parse_patch(
    *,
    patch: str | None = None,
    json_patch: str | None = None,
    merge_patch: str | None = None,
) -> PatchSpec:
    """Validate and decode the single patch payload of a binding."""

    provided = {
        kind: content
        for kind, content in (
            (PatchKind.MERGE, patch),
            (PatchKind.JSON_PATCH, json_patch),
            (PatchKind.MERGE_PATCH, merge_patch),
        )
        if content is not None and content.strip()
    }
    if not provided:
        raise PatchConfigurationError(
            "Exactly one of patch, json_patch or merge_patch must be set; none was given"
        )
    if len(provided) > 1:
        raise PatchConfigurationError(
            "Exactly one of patch, json_patch or merge_patch must be set; got "
            + ", ".join(kind.value for kind in provided)
        )

    kind, content = next(iter(provided.items()))
    if kind is PatchKind.JSON_PATCH:
        operations, warnings = _parse_operations(content)
        return JsonPatch(
            content=content,
            operations=operations,
            digest=_digest(kind, [dict(operation) for operation in operations]),
            warnings=warnings,
        )

    document = _parse_document(content, source=kind.value)
    if kind is PatchKind.MERGE:
        return MergeDocument(content=content, document=document, digest=_digest(kind, document))
    return MergePatch(content=content, document=document, digest=_digest(kind, document))


def _digest(kind: PatchKind, payload: object) -> str:
    canonical = canonical_json({"kind": kind.value, "payload": payload})
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_document(content: str, *, source: str) -> Document:
    loaded = load_document(content, source=source)
    if not isinstance(loaded, Mapping):
        raise PatchConfigurationError(f"{source} must be a YAML or JSON object")
    document = cast("Document", loaded)
    if not document:
        raise PatchConfigurationError(f"{source} is empty")

    if "status" in document:
        raise PatchConfigurationError(
            f"{source} cannot set status: the status subtree is written by controllers"
        )
    metadata = document.get("metadata")
    if isinstance(metadata, Mapping):
        managed = [name for name in SERVER_MANAGED_METADATA if name in metadata]
        if managed:
            raise PatchConfigurationError(
                f"{source} cannot set server-managed metadata: {', '.join(managed)}"
            )
        annotations = metadata.get("annotations")
        if isinstance(annotations, Mapping):
            reserved = sorted(
                str(key) for key in annotations if str(key).startswith(RESERVED_ANNOTATION_PREFIX)
            )
            if reserved:
                raise PatchConfigurationError(
                    f"{source} cannot set reserved annotations: {', '.join(reserved)}"
                )
    return document


def _parse_operations(content: str) -> tuple[tuple[Mapping[str, object], ...], tuple[str, ...]]:
    loaded = load_document(content, source="json_patch")
    if not isinstance(loaded, list) or not loaded:
        raise PatchConfigurationError("json_patch must be a non-empty array of operations")

    operations: list[Mapping[str, object]] = []
    warnings: list[str] = []
    reserved_pointer = "/metadata/annotations/" + RESERVED_ANNOTATION_PREFIX.replace("/", "~1")
    for index, raw in enumerate(cast("list[object]", loaded)):
        if not isinstance(raw, Mapping):
            raise PatchConfigurationError(f"json_patch operation {index} must be an object")
        operation = cast("Mapping[str, object]", raw)
        op = operation.get("op")
        if op not in JSON_PATCH_OPERATIONS:
            raise PatchConfigurationError(
                f"json_patch operation {index} has invalid op {op!r}; expected one of "
                + ", ".join(sorted(JSON_PATCH_OPERATIONS))
            )
        path = operation.get("path")
        if not _is_pointer(path):
            raise PatchConfigurationError(
                f"json_patch operation {index} ({op}) needs a JSON pointer path"
            )
        if op in _VALUE_OPERATIONS and "value" not in operation:
            raise PatchConfigurationError(f"json_patch operation {index} ({op}) needs a value")
        if op in _FROM_OPERATIONS and not _is_pointer(operation.get("from")):
            raise PatchConfigurationError(
                f"json_patch operation {index} ({op}) needs a JSON pointer from path"
            )
        if path.startswith(reserved_pointer):
            raise PatchConfigurationError(
                f"json_patch operation {index} ({op}) targets a reserved annotation: {path}"
            )
        if any(
            path == pointer or path.startswith(f"{pointer}/") for pointer in SERVER_MANAGED_POINTERS
        ):
            warnings.append(
                f"json_patch operation {index} ({op}) targets server-managed field {path}; "
                "the store may ignore or reject it"
            )
        operations.append(operation)
    return tuple(operations), tuple(warnings)


def _is_pointer(value: object) -> TypeGuard[str]:
    return isinstance(value, str) and (not value or value.startswith("/"))
