"""Monitor — per-LiveUpdate bookkeeping of what has already been observed.

The monitor lets each reconciliation pass tell new information apart from
information that was already consumed: the last file event seen on each
FileWatch, the merged modification time of every changed path, and the
last status seen on each Kubernetes-shaped dependency.

A monitor is only valid for the spec it was built for. When the spec
changes the whole monitor is replaced, never partially cleared.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from livesync.api.models import (
    FileEvent,
    ImageMapStatus,
    Kind,
    KubernetesApplyStatus,
    KubernetesDiscoveryStatus,
    LiveUpdateSpec,
    NamespacedName,
)
from livesync.store.client import NotFoundError, ObjectClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerKey:
    container_id: str
    pod_name: str
    namespace: str


@dataclass
class ContainerSyncStatus:
    last_file_time_synced: datetime | None = None
    unrecoverable: bool = False


@dataclass
class Monitor:
    spec: LiveUpdateSpec
    namespace: str = ""
    last_file_events: dict[str, FileEvent] = field(default_factory=dict)
    mod_time_by_path: dict[str, datetime] = field(default_factory=dict)
    last_apply_status: KubernetesApplyStatus | None = None
    last_discovery_status: KubernetesDiscoveryStatus | None = None
    last_image_map_status: ImageMapStatus | None = None
    has_changes_to_sync: bool = False
    containers: dict[ContainerKey, ContainerSyncStatus] = field(default_factory=dict)

    def merge_file_event(self, event: FileEvent) -> None:
        """Fold an event into mod_time_by_path, keeping the later time per path."""
        for f in event.seen_files:
            existing = self.mod_time_by_path.get(f)
            if existing is None or existing < event.time:
                self.mod_time_by_path[f] = event.time

    def dependency_name(self, name: str) -> NamespacedName:
        return NamespacedName(name=name, namespace=self.namespace)


class MonitorTable:
    """Monitors keyed by LiveUpdate name. Not thread-safe; callers hold the lock."""

    def __init__(self) -> None:
        self._monitors: dict[str, Monitor] = {}

    def ensure(self, name: str, spec: LiveUpdateSpec, namespace: str = "") -> Monitor:
        """Return the monitor for `name`, replacing it if the spec changed."""
        m = self._monitors.get(name)
        if m is not None and m.spec == spec:
            return m

        if m is not None:
            logger.debug("Spec of LiveUpdate %s changed, resetting monitor", name)
        m = Monitor(spec=copy.deepcopy(spec), namespace=namespace)
        self._monitors[name] = m
        return m

    def get(self, name: str) -> Monitor | None:
        return self._monitors.get(name)

    def discard(self, name: str) -> None:
        self._monitors.pop(name, None)


def detect_file_watch_changes(client: ObjectClient, monitor: Monitor) -> bool:
    """Consume new file events off every FileWatch in the spec.

    Returns True if any FileWatch reported an event we haven't seen.
    FileWatches that don't exist yet are skipped; other fetch errors raise.
    """
    changed = False
    for fwn in monitor.spec.file_watch_names:
        if _detect_one_file_watch(client, monitor, fwn):
            changed = True
    return changed


def _detect_one_file_watch(client: ObjectClient, monitor: Monitor, fwn: str) -> bool:
    try:
        fw = client.get(Kind.FILE_WATCH, monitor.dependency_name(fwn))
    except NotFoundError:
        return False

    events = fw.status.file_events
    if not events:
        return False

    newest = events[-1]
    if monitor.last_file_events.get(fwn) == newest:
        return False
    monitor.last_file_events[fwn] = copy.deepcopy(newest)

    # The FileWatch only keeps a bounded window of events, so fold in all of
    # them, not just the newest.
    for event in events:
        monitor.merge_file_event(event)
    return True


def detect_kubernetes_changes(client: ObjectClient, monitor: Monitor) -> bool:
    """Compare the Kubernetes-shaped dependencies against their last-seen status.

    A dependency with no baseline counts as changed as soon as it exists.
    Baselines are replaced on every call.
    """
    selector = monitor.spec.selector.kubernetes
    if selector is None:
        return False

    changed = False

    apply_status = _fetch_status(client, monitor, Kind.KUBERNETES_APPLY, selector.apply_name)
    if apply_status is not None and apply_status != monitor.last_apply_status:
        changed = True
    monitor.last_apply_status = apply_status

    discovery_status = _fetch_status(
        client, monitor, Kind.KUBERNETES_DISCOVERY, selector.discovery_name
    )
    if discovery_status is not None and discovery_status != monitor.last_discovery_status:
        changed = True
    monitor.last_discovery_status = discovery_status

    image_status = _fetch_status(client, monitor, Kind.IMAGE_MAP, selector.image_map_name)
    if image_status is not None and image_status != monitor.last_image_map_status:
        changed = True
    monitor.last_image_map_status = image_status

    return changed


def _fetch_status(client: ObjectClient, monitor: Monitor, kind: Kind, name: str) -> Any:
    if not name:
        return None
    try:
        obj = client.get(kind, monitor.dependency_name(name))
    except NotFoundError:
        logger.debug("%s %s not found yet", kind.value, name)
        return None
    return copy.deepcopy(obj.status)
