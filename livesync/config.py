"""Reconciler configuration, loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from livesync.sync.updater import DEFAULT_DOCKER_CLUSTER_CONTEXTS, UpdateMode


@dataclass
class ReconcilerConfig:
    update_mode: UpdateMode = UpdateMode.AUTO
    kube_context: str = ""
    docker_cluster_contexts: list[str] = field(
        default_factory=lambda: list(DEFAULT_DOCKER_CLUSTER_CONTEXTS)
    )


def load_config(path: str | Path) -> ReconcilerConfig:
    """Load a reconciler config from a YAML file.

    Example::

        update_mode: exec
        kube_context: kind-dev
        docker_cluster_contexts: [docker-desktop]
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(data).__name__}")

    return config_from_dict(data)


def config_from_dict(data: dict) -> ReconcilerConfig:
    mode = data.get("update_mode", UpdateMode.AUTO.value)
    try:
        update_mode = UpdateMode(mode)
    except ValueError:
        valid = ", ".join(m.value for m in UpdateMode)
        raise ValueError(f"Unknown update_mode {mode!r} (expected one of: {valid})")

    contexts = data.get("docker_cluster_contexts")
    return ReconcilerConfig(
        update_mode=update_mode,
        kube_context=data.get("kube_context", ""),
        docker_cluster_contexts=(
            list(contexts) if contexts is not None else list(DEFAULT_DOCKER_CLUSTER_CONTEXTS)
        ),
    )
