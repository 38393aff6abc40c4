from __future__ import annotations

from fieldpatch.domain.identity import ManagerIdentity
from fieldpatch.domain.objects import StoreObject
from fieldpatch.domain.projection import (
    KnownProjection,
    ProjectionStatus,
    flatten_projection,
    project,
    projection_paths,
)
from tests.helpers.bindings import config_map

OURS = ManagerIdentity(binding_id="b1")


def _result() -> StoreObject:
    body = config_map({"a": "1", "b": "2", "n": 5})
    body["spec"] = {"flags": [True, False]}
    body["status"] = {"phase": "Ready"}
    body["metadata"]["managedFields"] = [  # type: ignore[index]
        {
            "manager": OURS.name,
            "operation": "Apply",
            "fieldsV1": {
                "f:data": {".": {}, "f:a": {}, "f:n": {}, "f:missing": {}},
                "f:spec": {"f:flags": {}},
                "f:status": {"f:phase": {}},
            },
        },
        {"manager": "kubectl", "operation": "Update", "fieldsV1": {"f:data": {"f:b": {}}}},
    ]
    return StoreObject.from_body(body)


def test_project_flattens_owned_leaves_only() -> None:
    projection = project(_result(), OURS.equivalence())

    assert projection.status is ProjectionStatus.KNOWN
    assert projection.values == {"data.a": "1", "data.n": "5", "spec.flags": "[true,false]"}


def test_projection_paths_skip_noise_and_other_managers() -> None:
    paths = [str(path) for path in projection_paths(_result(), OURS.equivalence())]

    assert paths == ["data.a", "data.n", "data.missing", "spec.flags"]


def test_flatten_projection_skips_paths_without_value() -> None:
    result = _result()

    values = flatten_projection(result, projection_paths(result, OURS.equivalence()))

    assert "data.missing" not in values


def test_differing_paths_compare_both_sides() -> None:
    planned = KnownProjection(values={"data.a": "1", "data.b": "2"})
    applied = KnownProjection(values={"data.a": "1", "data.b": "3", "data.c": "4"})

    assert planned.differing_paths(applied) == ["data.b", "data.c"]
    assert planned.differing_paths(planned) == []
