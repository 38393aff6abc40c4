"""Store objects as seen by the engine."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from .errors import PatchConfigurationError
from .paths import ObjectNode, parse_fields_v1

if TYPE_CHECKING:
    from .documents import Document


@dataclass(slots=True, frozen=True)
class TargetRef:
    """Identifies one object in the store.

    ``namespace`` is ``None`` for cluster-scoped objects; the store adapter ignores a
    namespace supplied for a cluster-scoped kind.
    """

    api_version: str
    kind: str
    name: str
    namespace: str | None = None

    def __post_init__(self) -> None:
        missing = [
            label
            for label, value in (
                ("apiVersion", self.api_version),
                ("kind", self.kind),
                ("name", self.name),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise PatchConfigurationError(f"Target is missing {', '.join(missing)}")

    @property
    def group(self) -> str:
        group, _, _ = self.api_version.rpartition("/")
        return group

    @property
    def version(self) -> str:
        return self.api_version.rpartition("/")[2]

    def __str__(self) -> str:
        text = f"{self.api_version} {self.kind}/{self.name}"
        if self.namespace:
            text += f" (namespace: {self.namespace})"
        return text


@dataclass(slots=True, frozen=True)
class ManagedFieldsEntry:
    """One manager's ownership record on an object."""

    manager: str
    fields: ObjectNode
    operation: str = "Apply"
    api_version: str | None = None
    subresource: str | None = None


@dataclass(slots=True)
class StoreObject:
    body: Document
    managed_fields: tuple[ManagedFieldsEntry, ...] = ()

    @classmethod
    def from_body(cls, body: Mapping[str, object]) -> StoreObject:
        """Build an object from its raw wire form, decoding ``metadata.managedFields``."""

        document = cast("Document", copy.deepcopy(dict(body)))
        metadata = document.get("metadata")
        raw_entries = metadata.get("managedFields") if isinstance(metadata, Mapping) else None
        entries: list[ManagedFieldsEntry] = []
        for raw in raw_entries if isinstance(raw_entries, list) else []:
            if not isinstance(raw, Mapping):
                continue
            entries.append(
                ManagedFieldsEntry(
                    manager=str(raw.get("manager") or ""),
                    fields=parse_fields_v1(raw.get("fieldsV1")),
                    operation=str(raw.get("operation") or "Apply"),
                    api_version=_optional_str(raw.get("apiVersion")),
                    subresource=_optional_str(raw.get("subresource")),
                )
            )
        return cls(body=document, managed_fields=tuple(entries))

    @property
    def api_version(self) -> str:
        return str(self.body.get("apiVersion") or "")

    @property
    def kind(self) -> str:
        return str(self.body.get("kind") or "")

    @property
    def metadata(self) -> Mapping[str, object]:
        metadata = self.body.get("metadata")
        return cast("Mapping[str, object]", metadata) if isinstance(metadata, Mapping) else {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def namespace(self) -> str | None:
        return _optional_str(self.metadata.get("namespace"))

    @property
    def annotations(self) -> dict[str, str]:
        annotations = self.metadata.get("annotations")
        if not isinstance(annotations, Mapping):
            return {}
        return {str(key): str(value) for key, value in annotations.items()}

    def ref(self) -> TargetRef:
        return TargetRef(
            api_version=self.api_version,
            kind=self.kind,
            name=self.name,
            namespace=self.namespace,
        )


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
