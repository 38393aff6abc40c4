"""Merge simulator: predicts (or performs) a forced server-side apply of a patch."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .documents import deep_merge

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .documents import Document
    from .objects import StoreObject
    from .ports.store import ResourceStore

log = getLogger(__name__)


def identity_skeleton(live: StoreObject) -> Document:
    metadata: Document = {"name": live.name}
    if live.namespace:
        metadata["namespace"] = live.namespace
    return {"apiVersion": live.api_version, "kind": live.kind, "metadata": metadata}


def build_apply_object(live: StoreObject, document: Mapping[str, object]) -> Document:
    """Identity fields of ``live`` with ``document`` deep-merged in.

    Identity always comes from the live object, even if the document restates it.
    """

    skeleton = identity_skeleton(live)
    return deep_merge(deep_merge(skeleton, document), skeleton)


@dataclass(slots=True)
class MergeSimulator:
    store: ResourceStore

    def predict(
        self,
        live: StoreObject,
        document: Mapping[str, object],
        *,
        manager: str,
    ) -> StoreObject:
        """Dry-run a forced apply; nothing is persisted."""

        log.debug("Dry-run apply to %s/%s as %s", live.kind, live.name, manager)
        return self.store.dry_run_apply(
            build_apply_object(live, document),
            manager=manager,
            force=True,
        )

    def enforce(
        self,
        live: StoreObject,
        document: Mapping[str, object],
        *,
        manager: str,
    ) -> StoreObject:
        """Perform the forced apply for real."""

        log.info("Applying patch to %s/%s as %s", live.kind, live.name, manager)
        return self.store.apply(build_apply_object(live, document), manager=manager, force=True)
