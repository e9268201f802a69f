"""Dependency index — route changes on dependency objects back to LiveUpdates.

A LiveUpdate references FileWatches, a KubernetesDiscovery, a
KubernetesApply and an ImageMap by name. When any of those changes, every
LiveUpdate that references it has to be reconciled again.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

from livesync.api.models import Kind, LiveUpdate, NamespacedName


@dataclass(frozen=True)
class Key:
    """A dependency, identified by kind and namespaced name."""

    kind: Kind
    name: NamespacedName


def index_live_update(lu: LiveUpdate) -> list[Key]:
    """Return keys of the objects referenced by a LiveUpdate.

    Pure function of the spec. Dependencies share the LiveUpdate's namespace.
    """
    namespace = lu.metadata.namespace
    keys = [
        Key(Kind.FILE_WATCH, NamespacedName(name=fwn, namespace=namespace))
        for fwn in lu.spec.file_watch_names
    ]

    selector = lu.spec.selector.kubernetes
    if selector is not None:
        if selector.discovery_name:
            keys.append(
                Key(
                    Kind.KUBERNETES_DISCOVERY,
                    NamespacedName(name=selector.discovery_name, namespace=namespace),
                )
            )
        if selector.apply_name:
            keys.append(
                Key(
                    Kind.KUBERNETES_APPLY,
                    NamespacedName(name=selector.apply_name, namespace=namespace),
                )
            )
        if selector.image_map_name:
            keys.append(
                Key(
                    Kind.IMAGE_MAP,
                    NamespacedName(name=selector.image_map_name, namespace=namespace),
                )
            )

    return keys


class Indexer:
    """Reverse map from dependency keys to the objects that reference them.

    `on_reconcile` must be called on every fetch of an owner object, with
    None when the object no longer exists, so stale entries get dropped.
    """

    def __init__(self, index_fn: Callable[[LiveUpdate], list[Key]] = index_live_update):
        self._index_fn = index_fn
        self._lock = threading.Lock()
        self._keys_by_owner: dict[NamespacedName, list[Key]] = {}
        self._owners_by_key: dict[Key, set[NamespacedName]] = {}

    def on_reconcile(self, owner: NamespacedName, obj: LiveUpdate | None) -> None:
        keys = self._index_fn(obj) if obj is not None else []
        with self._lock:
            for key in self._keys_by_owner.pop(owner, []):
                owners = self._owners_by_key.get(key)
                if owners is None:
                    continue
                owners.discard(owner)
                if not owners:
                    del self._owners_by_key[key]

            if keys:
                self._keys_by_owner[owner] = keys
                for key in keys:
                    self._owners_by_key.setdefault(key, set()).add(owner)

    def enqueue(self, kind: Kind, name: NamespacedName) -> list[NamespacedName]:
        """Return the owners to reconcile after `name` of `kind` changed."""
        with self._lock:
            owners = self._owners_by_key.get(Key(kind, name), set())
            return sorted(owners, key=lambda nn: (nn.namespace, nn.name))

    def keys_for(self, owner: NamespacedName) -> list[Key]:
        with self._lock:
            return list(self._keys_by_owner.get(owner, []))
