"""Tests for the local object store, serialization and the action log."""

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest
import yaml
from fakes import at

from livesync.api.models import (
    FailureReason,
    FileEvent,
    FileWatch,
    FileWatchStatus,
    Kind,
    LiveUpdate,
    LiveUpdateContainerStatus,
    LiveUpdateExec,
    LiveUpdateKubernetesSelector,
    LiveUpdateSelector,
    LiveUpdateSpec,
    LiveUpdateStateFailed,
    LiveUpdateStatus,
    LiveUpdateSync,
    NamespacedName,
    ObjectMeta,
)
from livesync.api.serialize import object_from_dict, object_to_dict, parse_time
from livesync.store.actions import (
    ActionLog,
    LiveUpdateDeleteAction,
    new_delete_action,
    new_upsert_action,
)
from livesync.store.client import LocalStore, NotFoundError, TransportError


def _live_update(namespace: str = "") -> LiveUpdate:
    return LiveUpdate(
        metadata=ObjectMeta(name="web", namespace=namespace, annotations={"team": "frontend"}),
        spec=LiveUpdateSpec(
            base_path="/src",
            file_watch_names=["web-fw"],
            selector=LiveUpdateSelector(
                kubernetes=LiveUpdateKubernetesSelector(discovery_name="web-kd", image_map_name="web-im")
            ),
            syncs=[LiveUpdateSync(local_path="/src", container_path="/app")],
            execs=[LiveUpdateExec(args=["make"], trigger_paths=["Makefile"])],
        ),
    )


# --- Serialization ---


def test_live_update_survives_dict_conversion():
    lu = _live_update()
    lu.status = LiveUpdateStatus(
        containers=[
            LiveUpdateContainerStatus(
                container_id="c1", pod_name="p1", last_file_time_synced=at(3), last_exec_error="boom"
            )
        ]
    )
    data = object_to_dict(lu)
    assert data["status"]["containers"][0]["last_file_time_synced"] == at(3).isoformat()
    assert object_from_dict(Kind.LIVE_UPDATE, data) == lu


def test_parse_minimal_live_update():
    lu = object_from_dict(Kind.LIVE_UPDATE, {"metadata": {"name": "bare"}})
    assert lu.name == "bare"
    assert lu.spec == LiveUpdateSpec()
    assert lu.status == LiveUpdateStatus()


def test_parse_time_assumes_utc():
    assert parse_time("2024-01-01T12:00:00") == at(0)
    assert parse_time("") is None
    assert parse_time(None) is None


def test_parse_time_zulu_suffix():
    assert parse_time("2024-01-01T12:00:00Z") == at(0)
    assert parse_time("2024-01-01T12:00:05.250000Z") == at(5) + timedelta(milliseconds=250)


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        object_from_dict("Pod", {})


# --- LocalStore ---


def test_local_store_put_get():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        store.put(_live_update())

        assert (Path(tmpdir) / "LiveUpdate" / "web.yaml").exists()
        assert store.get(Kind.LIVE_UPDATE, NamespacedName("web")) == _live_update()


def test_local_store_namespaced_layout():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        store.put(_live_update(namespace="team-a"))

        assert (Path(tmpdir) / "LiveUpdate" / "team-a" / "web.yaml").exists()
        assert store.list_names(Kind.LIVE_UPDATE) == [NamespacedName("web", "team-a")]
        with pytest.raises(NotFoundError):
            store.get(Kind.LIVE_UPDATE, NamespacedName("web"))


def test_local_store_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        with pytest.raises(NotFoundError) as exc_info:
            store.get(Kind.FILE_WATCH, NamespacedName("missing"))
        assert exc_info.value.kind == Kind.FILE_WATCH
        assert store.list_names(Kind.FILE_WATCH) == []
        assert not store.delete(Kind.FILE_WATCH, NamespacedName("missing"))


def test_local_store_corrupt_file_is_transport_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        path = store.path_for(Kind.FILE_WATCH, NamespacedName("fw"))
        path.parent.mkdir(parents=True)
        path.write_text("metadata: {name: fw\n  - [unbalanced")

        with pytest.raises(TransportError):
            store.get(Kind.FILE_WATCH, NamespacedName("fw"))


def test_local_store_hand_written_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        path = store.path_for(Kind.FILE_WATCH, NamespacedName("fw"))
        path.parent.mkdir(parents=True)
        with open(path, "w") as f:
            yaml.dump(
                {
                    "metadata": {"name": "fw"},
                    "status": {"file_events": [{"time": "2024-01-01T12:00:05+00:00", "seen_files": ["/src/a"]}]},
                },
                f,
            )

        fw = store.get(Kind.FILE_WATCH, NamespacedName("fw"))
        assert fw == FileWatch(
            metadata=ObjectMeta(name="fw"),
            status=FileWatchStatus(file_events=[FileEvent(time=at(5), seen_files=["/src/a"])]),
        )


def test_local_store_update_status_keeps_spec():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LocalStore(tmpdir)
        store.put(_live_update())

        update = store.get(Kind.LIVE_UPDATE, NamespacedName("web"))
        update.spec = LiveUpdateSpec()
        update.status = LiveUpdateStatus(
            failed=LiveUpdateStateFailed(reason=FailureReason.INVALID, message="bad", last_transition_time=at(1))
        )
        store.update_status(update)

        stored = store.get(Kind.LIVE_UPDATE, NamespacedName("web"))
        assert stored.spec == _live_update().spec
        assert stored.status.failed.reason == FailureReason.INVALID
        assert stored.status.failed.last_transition_time == at(1)


# --- Actions ---


def test_action_log_tracks_live_updates():
    log = ActionLog()
    seen = []
    log.subscribe(seen.append)

    lu = _live_update()
    log.dispatch(new_upsert_action(lu))
    assert log.live_updates["web"] == lu

    log.dispatch(new_delete_action("web"))
    assert "web" not in log.live_updates
    assert len(log.actions) == 2
    assert seen[-1] == LiveUpdateDeleteAction(name="web")


def test_upsert_action_is_a_snapshot():
    lu = _live_update()
    action = new_upsert_action(lu)
    lu.spec.file_watch_names.append("other")
    assert action.live_update.spec.file_watch_names == ["web-fw"]
