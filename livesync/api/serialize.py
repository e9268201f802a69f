"""Conversion between API objects and plain dicts (for YAML/JSON storage)."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from livesync.api.models import (
    DiscoveredContainer,
    DiscoveredPod,
    FileEvent,
    FileWatch,
    FileWatchStatus,
    ImageMap,
    ImageMapStatus,
    Kind,
    KubernetesApply,
    KubernetesApplyStatus,
    KubernetesDiscovery,
    KubernetesDiscoveryStatus,
    LiveUpdate,
    LiveUpdateContainerStatus,
    LiveUpdateExec,
    LiveUpdateKubernetesSelector,
    LiveUpdateSelector,
    LiveUpdateSpec,
    LiveUpdateStateFailed,
    LiveUpdateStatus,
    LiveUpdateSync,
    ObjectMeta,
)


def object_to_dict(obj: Any) -> dict[str, Any]:
    """Serialize any API object to a dict of plain values."""
    return _plain(asdict(obj))


def object_from_dict(kind: Kind, data: dict[str, Any]) -> Any:
    """Parse a dict into the API object for the given kind."""
    parser = _PARSERS.get(kind)
    if parser is None:
        raise ValueError(f"Unknown object kind: {kind}")
    return parser(data or {})


def parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith("Z"):
            # fromisoformat only accepts the Zulu suffix from 3.11 on.
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


# --- Parsers ---


def _meta(data: dict) -> ObjectMeta:
    meta = data.get("metadata") or {}
    return ObjectMeta(
        name=meta["name"],
        namespace=meta.get("namespace", ""),
        annotations=dict(meta.get("annotations") or {}),
        deletion_timestamp=parse_time(meta.get("deletion_timestamp")),
    )


def _live_update_spec(data: dict) -> LiveUpdateSpec:
    selector_data = data.get("selector") or {}
    k8s_data = selector_data.get("kubernetes")
    kubernetes = None
    if k8s_data is not None:
        kubernetes = LiveUpdateKubernetesSelector(
            discovery_name=k8s_data.get("discovery_name", ""),
            apply_name=k8s_data.get("apply_name", ""),
            image_map_name=k8s_data.get("image_map_name", ""),
            container_name=k8s_data.get("container_name", ""),
        )

    return LiveUpdateSpec(
        base_path=data.get("base_path", ""),
        file_watch_names=list(data.get("file_watch_names") or []),
        selector=LiveUpdateSelector(kubernetes=kubernetes),
        syncs=[
            LiveUpdateSync(local_path=s["local_path"], container_path=s["container_path"])
            for s in data.get("syncs") or []
        ],
        execs=[
            LiveUpdateExec(
                args=list(e.get("args") or []),
                trigger_paths=list(e.get("trigger_paths") or []),
            )
            for e in data.get("execs") or []
        ],
        restart=data.get("restart", "auto"),
    )


def _live_update_status(data: dict) -> LiveUpdateStatus:
    failed_data = data.get("failed")
    failed = None
    if failed_data:
        failed = LiveUpdateStateFailed(
            reason=failed_data["reason"],
            message=failed_data.get("message", ""),
            last_transition_time=parse_time(failed_data.get("last_transition_time")),
        )

    return LiveUpdateStatus(
        failed=failed,
        containers=[
            LiveUpdateContainerStatus(
                container_name=c.get("container_name", ""),
                container_id=c.get("container_id", ""),
                pod_name=c.get("pod_name", ""),
                namespace=c.get("namespace", ""),
                last_file_time_synced=parse_time(c.get("last_file_time_synced")),
                last_exec_error=c.get("last_exec_error", ""),
            )
            for c in data.get("containers") or []
        ],
    )


def _live_update(data: dict) -> LiveUpdate:
    return LiveUpdate(
        metadata=_meta(data),
        spec=_live_update_spec(data.get("spec") or {}),
        status=_live_update_status(data.get("status") or {}),
    )


def _file_watch(data: dict) -> FileWatch:
    status = data.get("status") or {}
    return FileWatch(
        metadata=_meta(data),
        status=FileWatchStatus(
            file_events=[
                FileEvent(time=parse_time(e["time"]), seen_files=list(e.get("seen_files") or []))
                for e in status.get("file_events") or []
            ],
            error=status.get("error", ""),
        ),
    )


def _kubernetes_discovery(data: dict) -> KubernetesDiscovery:
    status = data.get("status") or {}
    return KubernetesDiscovery(
        metadata=_meta(data),
        status=KubernetesDiscoveryStatus(
            pods=[
                DiscoveredPod(
                    name=p["name"],
                    namespace=p.get("namespace", ""),
                    containers=[
                        DiscoveredContainer(
                            name=c["name"],
                            id=c.get("id", ""),
                            image=c.get("image", ""),
                            ready=c.get("ready", False),
                        )
                        for c in p.get("containers") or []
                    ],
                )
                for p in status.get("pods") or []
            ]
        ),
    )


def _kubernetes_apply(data: dict) -> KubernetesApply:
    status = data.get("status") or {}
    return KubernetesApply(
        metadata=_meta(data),
        status=KubernetesApplyStatus(
            result_yaml=status.get("result_yaml", ""),
            error=status.get("error", ""),
            last_apply_time=parse_time(status.get("last_apply_time")),
        ),
    )


def _image_map(data: dict) -> ImageMap:
    status = data.get("status") or {}
    return ImageMap(
        metadata=_meta(data),
        status=ImageMapStatus(
            image=status.get("image", ""),
            image_from_cluster=status.get("image_from_cluster", ""),
        ),
    )


_PARSERS = {
    Kind.LIVE_UPDATE: _live_update,
    Kind.FILE_WATCH: _file_watch,
    Kind.KUBERNETES_DISCOVERY: _kubernetes_discovery,
    Kind.KUBERNETES_APPLY: _kubernetes_apply,
    Kind.IMAGE_MAP: _image_map,
}
