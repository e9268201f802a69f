"""Tests for reconciler configuration loading."""

import tempfile
from pathlib import Path

import pytest
import yaml

from livesync.config import ReconcilerConfig, config_from_dict, load_config
from livesync.sync.updater import DEFAULT_DOCKER_CLUSTER_CONTEXTS, UpdateMode


def test_defaults():
    config = ReconcilerConfig()
    assert config.update_mode == UpdateMode.AUTO
    assert config.kube_context == ""
    assert config.docker_cluster_contexts == list(DEFAULT_DOCKER_CLUSTER_CONTEXTS)


def test_load_config_from_yaml():
    data = {
        "update_mode": "exec",
        "kube_context": "kind-dev",
        "docker_cluster_contexts": ["kind-dev"],
    }
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "livesync.yaml"
        with open(path, "w") as f:
            yaml.dump(data, f)
        config = load_config(path)

    assert config.update_mode == UpdateMode.EXEC
    assert config.kube_context == "kind-dev"
    assert config.docker_cluster_contexts == ["kind-dev"]


def test_load_empty_config_uses_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "empty.yaml"
        path.write_text("")
        assert load_config(path) == ReconcilerConfig()


def test_unknown_update_mode_rejected():
    with pytest.raises(ValueError, match="update_mode"):
        config_from_dict({"update_mode": "teleport"})


def test_non_mapping_config_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "list.yaml"
        path.write_text("- exec\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_config(path)
