"""Translate Kubernetes API payloads into store objects."""

from __future__ import annotations

from logging import getLogger

from pydantic import ValidationError

from fieldpatch.domain.errors import StoreError
from fieldpatch.domain.objects import StoreObject
from fieldpatch.domain.paths import FieldsV1FormatError

from .schema import KubernetesObjectModel

log = getLogger(__name__)


def to_store_object(payload: object) -> StoreObject:
    if not isinstance(payload, dict):
        raise StoreError("Unexpected Kubernetes response payload")
    try:
        model = KubernetesObjectModel.model_validate(payload)
    except ValidationError as exc:
        raise StoreError(f"Malformed Kubernetes object in response: {exc}") from exc

    for entry in model.metadata.managed_fields:
        if entry.fields_type not in {None, "FieldsV1"}:
            log.debug(
                "%s/%s: manager %s uses unsupported fields type %s",
                model.kind,
                model.metadata.name,
                entry.manager,
                entry.fields_type,
            )

    try:
        return StoreObject.from_body(payload)
    except FieldsV1FormatError as exc:
        raise StoreError(
            f"Malformed managed fields on {model.kind}/{model.metadata.name}: {exc}"
        ) from exc
