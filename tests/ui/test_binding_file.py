from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from fieldpatch.domain.errors import PatchConfigurationError
from fieldpatch.domain.patches import JsonPatch, MergeDocument, MergePatch
from fieldpatch.ui.binding_file import binding_from_mapping, load_binding

if TYPE_CHECKING:
    from pathlib import Path

TARGET = {"apiVersion": "v1", "kind": "ConfigMap", "name": "settings", "namespace": "apps"}


def test_load_binding_with_inline_patch(tmp_path: Path) -> None:
    path = tmp_path / "binding.yaml"
    path.write_text(
        "id: web-settings\n"
        "target:\n"
        "  apiVersion: v1\n"
        "  kind: ConfigMap\n"
        "  name: settings\n"
        "  namespace: apps\n"
        "patch:\n"
        "  data:\n"
        "    a: '2'\n",
        encoding="utf-8",
    )

    binding = load_binding(path)

    assert binding.manager == "fieldpatch-patch-web-settings"
    assert binding.target.namespace == "apps"
    assert isinstance(binding.patch, MergeDocument)
    assert binding.patch.document == {"data": {"a": "2"}}


def test_binding_without_id_uses_placeholder() -> None:
    binding = binding_from_mapping({"target": TARGET, "mergePatch": {"data": {"a": None}}})

    assert binding.identity.is_placeholder
    assert isinstance(binding.patch, MergePatch)


def test_json_patch_accepts_inline_list_and_string() -> None:
    inline = binding_from_mapping(
        {"target": TARGET, "jsonPatch": [{"op": "remove", "path": "/data/a"}]}
    )
    text = binding_from_mapping(
        {"target": TARGET, "jsonPatch": '[{"op": "remove", "path": "/data/a"}]'}
    )

    assert isinstance(inline.patch, JsonPatch)
    assert inline.patch.digest == text.patch.digest


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        (["not", "a", "mapping"], "must be a YAML mapping"),
        ({"target": TARGET, "patch": {"data": {}}, "extra": 1}, "Invalid binding"),
        ({"target": {"kind": "ConfigMap", "name": "x"}, "patch": {"a": 1}}, "Invalid binding"),
        ({"id": "  ", "target": TARGET, "patch": {"a": 1}}, "Invalid binding"),
        ({"target": TARGET}, "none was given"),
        ({"target": TARGET, "patch": {"a": 1}, "mergePatch": {"a": 1}}, "Exactly one"),
        ({"target": {**TARGET, "name": " "}, "patch": {"a": 1}}, "missing name"),
    ],
)
def test_invalid_bindings(raw: object, message: str) -> None:
    with pytest.raises(PatchConfigurationError, match=message):
        binding_from_mapping(raw)


def test_unreadable_file(tmp_path: Path) -> None:
    with pytest.raises(PatchConfigurationError, match="Cannot read binding file"):
        load_binding(tmp_path / "missing.yaml")
