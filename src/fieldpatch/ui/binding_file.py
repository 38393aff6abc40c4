"""Binding files: one patch, one target, optionally the id of an applied binding."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fieldpatch.domain.documents import load_document
from fieldpatch.domain.errors import PatchConfigurationError
from fieldpatch.domain.identity import ManagerIdentity
from fieldpatch.domain.objects import TargetRef
from fieldpatch.domain.patches import parse_patch
from fieldpatch.domain.state import PatchBinding

if TYPE_CHECKING:
    from pathlib import Path


class TargetModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    namespace: str | None = None


class BindingFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str | None = None
    target: TargetModel
    patch: str | dict[str, object] | None = None
    json_patch: str | list[object] | None = Field(default=None, alias="jsonPatch")
    merge_patch: str | dict[str, object] | None = Field(default=None, alias="mergePatch")

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("id must not be blank")
        return value.strip() if value is not None else None


def _content(value: str | Mapping[str, object] | list[object] | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    # Inline documents are re-serialised so every kind is parsed by the same path.
    return json.dumps(value)


def binding_from_mapping(raw: object, *, source: str = "binding") -> PatchBinding:
    if not isinstance(raw, Mapping):
        raise PatchConfigurationError(f"{source} must be a YAML mapping")
    try:
        model = BindingFileModel.model_validate(raw)
    except ValidationError as exc:
        raise PatchConfigurationError(f"Invalid {source}: {exc}") from exc

    target = TargetRef(
        api_version=model.target.api_version,
        kind=model.target.kind,
        name=model.target.name,
        namespace=model.target.namespace,
    )
    patch = parse_patch(
        patch=_content(model.patch),
        json_patch=_content(model.json_patch),
        merge_patch=_content(model.merge_patch),
    )
    return PatchBinding(target=target, patch=patch, identity=ManagerIdentity(binding_id=model.id))


def load_binding(path: Path) -> PatchBinding:
    """Read and validate a binding file."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PatchConfigurationError(f"Cannot read binding file {path}: {exc}") from exc
    return binding_from_mapping(load_document(text, source=str(path)), source=str(path))
