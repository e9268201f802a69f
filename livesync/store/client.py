"""Object store client interface and a local file-based implementation."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from livesync.api.models import Kind, NamespacedName
from livesync.api.serialize import object_from_dict, object_to_dict

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for object store failures."""


class NotFoundError(StoreError):
    """The requested object does not exist (yet)."""

    def __init__(self, kind: Kind, nn: NamespacedName):
        super().__init__(f"{kind.value} {nn} not found")
        self.kind = kind
        self.nn = nn


class TransportError(StoreError):
    """The store could not be read or written."""


class ObjectClient:
    """Minimal get/status-update interface over the object store.

    Subclasses must return objects the caller is free to mutate; the
    reconciler never assumes a fetched object is fresh on the next pass.
    """

    def get(self, kind: Kind, nn: NamespacedName) -> Any:
        """Fetch an object. Raises NotFoundError or TransportError."""
        raise NotImplementedError

    def update_status(self, obj: Any) -> None:
        """Replace the stored status subresource of `obj`."""
        raise NotImplementedError


class LocalStore(ObjectClient):
    """Directory-backed store: one YAML file per object.

    Layout: ``<root>/<Kind>/[<namespace>/]<name>.yaml``
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, kind: Kind, nn: NamespacedName) -> Path:
        kind_dir = self.root / kind.value
        if nn.namespace:
            kind_dir = kind_dir / nn.namespace
        return kind_dir / f"{nn.name}.yaml"

    def get(self, kind: Kind, nn: NamespacedName) -> Any:
        path = self.path_for(kind, nn)
        if not path.exists():
            raise NotFoundError(kind, nn)

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise TransportError(f"reading {path}: {e}") from e

        try:
            return object_from_dict(kind, data)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"decoding {path}: {e}") from e

    def put(self, obj: Any) -> None:
        """Create or replace an object, status included."""
        path = self.path_for(obj.kind, obj.metadata.namespaced_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "w") as f:
                yaml.safe_dump(object_to_dict(obj), f, sort_keys=False)
        except OSError as e:
            raise TransportError(f"writing {path}: {e}") from e

    def update_status(self, obj: Any) -> None:
        current = self.get(obj.kind, obj.metadata.namespaced_name)
        current.status = copy.deepcopy(obj.status)
        self.put(current)
        logger.debug("Updated status of %s %s", obj.kind.value, obj.metadata.namespaced_name)

    def delete(self, kind: Kind, nn: NamespacedName) -> bool:
        path = self.path_for(kind, nn)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_names(self, kind: Kind) -> list[NamespacedName]:
        kind_dir = self.root / kind.value
        if not kind_dir.exists():
            return []

        names = []
        for path in sorted(kind_dir.rglob("*.yaml")):
            rel = path.relative_to(kind_dir)
            namespace = rel.parent.as_posix() if rel.parent != Path(".") else ""
            names.append(NamespacedName(name=path.stem, namespace=namespace))
        return names
