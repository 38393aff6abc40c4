from __future__ import annotations

from fieldpatch.domain.identity import ManagerIdentity
from fieldpatch.domain.objects import ManagedFieldsEntry
from fieldpatch.domain.ownership import build_ownership_index, is_noise
from fieldpatch.domain.paths import FieldPath, parse_fields_v1


def _entry(manager: str, fields: dict[str, object]) -> ManagedFieldsEntry:
    return ManagedFieldsEntry(manager=manager, fields=parse_fields_v1(fields))


def test_index_drops_status_and_system_annotations() -> None:
    entry = _entry(
        "kube-controller-manager",
        {
            "f:status": {"f:replicas": {}},
            "f:metadata": {
                "f:annotations": {
                    "f:deployment.kubernetes.io/revision": {},
                    "f:kubectl.kubernetes.io/last-applied-configuration": {},
                    "f:team": {},
                }
            },
        },
    )

    index = build_ownership_index([entry])

    assert list(index.managers_by_path) == ["metadata.annotations.team"]


def test_noise_helpers_only_match_known_locations() -> None:
    assert is_noise(FieldPath(("status", "conditions")))
    assert not is_noise(FieldPath(("spec", "status")))
    assert not is_noise(FieldPath(("metadata", "labels", "deployment.kubernetes.io/revision")))


def test_index_keeps_every_manager_in_listing_order() -> None:
    index = build_ownership_index(
        [
            _entry("kubectl", {"f:data": {"f:a": {}}}),
            _entry("helm", {"f:data": {"f:a": {}, "f:b": {}}}),
            _entry("", {"f:data": {"f:c": {}}}),
        ]
    )

    assert index.managers("data.a") == ["kubectl", "helm"]
    assert index.managers("data.b") == ["helm"]
    assert "data.c" not in index
    assert len(index) == 2


def test_resolve_prefers_this_binding_on_shared_paths() -> None:
    ours = ManagerIdentity(binding_id="b1")
    index = build_ownership_index(
        [
            _entry("kubectl", {"f:data": {"f:a": {}}}),
            _entry(ours.name, {"f:data": {"f:a": {}}}),
        ]
    )

    assert index.resolve() == {"data.a": "kubectl"}
    assert index.resolve(prefer=ours.equivalence()) == {"data.a": ours.name}


def test_paths_owned_by_accepts_placeholder_and_real_name() -> None:
    identity = ManagerIdentity(binding_id="b1")
    index = build_ownership_index(
        [
            _entry(identity.placeholder, {"f:data": {"f:a": {}}}),
            _entry(identity.name, {"f:data": {"f:b": {}}}),
            _entry("kubectl", {"f:data": {"f:c": {}}}),
        ]
    )

    owned = [str(path) for path in index.paths_owned_by(identity.equivalence())]

    assert owned == ["data.a", "data.b"]
