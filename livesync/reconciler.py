"""Reconciler — drives LiveUpdate objects toward their synced state.

Each pass fetches the LiveUpdate, consumes new information from its
dependencies into the monitor, and, if anything changed, applies the
accumulated file changes to the target containers and writes the result
back as status.

`force_apply` is a second, synchronous way into the same apply logic for
callers that decide on their own when a live update should happen (and
fall back to a full rebuild when it fails). Both paths share one lock.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Callable, Protocol

from livesync.api.models import (
    ANNOTATION_MANAGED_BY,
    ContainerInfo,
    FailureReason,
    Kind,
    LiveUpdate,
    LiveUpdateSpec,
    LiveUpdateStateFailed,
    LiveUpdateStatus,
    NamespacedName,
)
from livesync.config import ReconcilerConfig
from livesync.indexer import Indexer, index_live_update
from livesync.monitor import (
    ContainerKey,
    ContainerSyncStatus,
    Monitor,
    MonitorTable,
    detect_file_watch_changes,
    detect_kubernetes_changes,
)
from livesync.store.actions import ActionLog, new_delete_action, new_upsert_action
from livesync.store.client import NotFoundError, ObjectClient, StoreError
from livesync.sync.engine import Input, apply_changes, utc_now
from livesync.sync.paths import PathMappingError, files_to_path_mappings
from livesync.sync.updater import (
    ContainerUpdater,
    DockerUpdater,
    ExecUpdater,
    UpdaterKind,
    select_updater,
)

logger = logging.getLogger(__name__)

# Failures after which the containers can't be trusted to match each other.
UNRECOVERABLE_REASONS = (FailureReason.UPDATE_FAILED, FailureReason.PODS_INCONSISTENT)


class ReconcileError(Exception):
    """A pass couldn't complete. The scheduler should retry with backoff."""


class Dispatcher(Protocol):
    def dispatch(self, action) -> None: ...


TargetResolver = Callable[[LiveUpdate, Monitor], list[ContainerInfo]]


def containers_from_discovery(lu: LiveUpdate, monitor: Monitor) -> list[ContainerInfo]:
    """Select running containers from the last-seen discovery status.

    With an ImageMap, only containers running the built image are targets.
    Containers marked unrecoverable are left out until they are replaced.
    """
    selector = monitor.spec.selector.kubernetes
    discovery = monitor.last_discovery_status
    if selector is None or discovery is None:
        return []

    image = monitor.last_image_map_status.target_image if monitor.last_image_map_status else ""

    result = []
    for pod in discovery.pods:
        for c in pod.containers:
            if not c.id:
                continue
            if image and c.image != image:
                continue
            if selector.container_name and c.name != selector.container_name:
                continue

            key = ContainerKey(container_id=c.id, pod_name=pod.name, namespace=pod.namespace)
            known = monitor.containers.get(key)
            if known is not None and known.unrecoverable:
                continue

            result.append(
                ContainerInfo(
                    pod_name=pod.name,
                    container_id=c.id,
                    container_name=c.name,
                    namespace=pod.namespace,
                )
            )
    return result


class Reconciler:
    """Manages LiveUpdate objects."""

    def __init__(
        self,
        client: ObjectClient,
        dispatcher: Dispatcher | None = None,
        docker_updater: ContainerUpdater | None = None,
        exec_updater: ContainerUpdater | None = None,
        config: ReconcilerConfig | None = None,
        resolve_targets: TargetResolver = containers_from_discovery,
        now: Callable[[], datetime] = utc_now,
    ):
        self.config = config or ReconcilerConfig()
        self.client = client
        self.dispatcher = dispatcher or ActionLog()
        self.docker_updater = docker_updater or DockerUpdater(
            cluster_contexts=self.config.docker_cluster_contexts
        )
        self.exec_updater = exec_updater or ExecUpdater()
        self.indexer = Indexer(index_live_update)
        self.monitors = MonitorTable()
        self.resolve_targets = resolve_targets
        self.now = now

        # TODO: split into per-name locks once force_apply callers are gone;
        # only per-LiveUpdate serialization is required.
        self._lock = threading.Lock()

    def reconcile(self, nn: NamespacedName) -> None:
        """Run one reconciliation pass for a LiveUpdate.

        Raises:
            ReconcileError: A store read or status write failed.
        """
        with self._lock:
            try:
                lu = self.client.get(Kind.LIVE_UPDATE, nn)
            except NotFoundError:
                lu = None
            except StoreError as e:
                raise ReconcileError(f"liveupdate reconcile: {e}") from e

            self.indexer.on_reconcile(nn, lu)

            if lu is None or lu.metadata.deletion_timestamp is not None:
                self.dispatcher.dispatch(new_delete_action(nn.name))
                self.monitors.discard(nn.name)
                return

            # The store is the source of truth; publish what we observed.
            self.dispatcher.dispatch(new_upsert_action(lu))

            if lu.metadata.annotations.get(ANNOTATION_MANAGED_BY):
                # Another controller is staging this object and will drive
                # it with force_apply() until it hands it over.
                logger.debug("LiveUpdate %s is managed externally, skipping", nn)
                return

            monitor = self.monitors.ensure(lu.name, lu.spec, namespace=nn.namespace)
            try:
                has_file_changes = detect_file_watch_changes(self.client, monitor)
                has_kubernetes_changes = detect_kubernetes_changes(self.client, monitor)
            except StoreError as e:
                raise ReconcileError(f"liveupdate {nn}: {e}") from e

            if has_file_changes or has_kubernetes_changes:
                monitor.has_changes_to_sync = True

            if monitor.has_changes_to_sync:
                try:
                    self._maybe_sync(lu, monitor)
                except StoreError as e:
                    # The changes stay pending so the retried pass syncs
                    # and writes them again.
                    raise ReconcileError(f"liveupdate {nn}: writing status: {e}") from e

            monitor.has_changes_to_sync = False

    def requests_for(self, kind: Kind, nn: NamespacedName) -> list[NamespacedName]:
        """LiveUpdates to reconcile after a dependency changed."""
        return self.indexer.enqueue(kind, nn)

    def force_apply(
        self,
        nn: NamespacedName,
        spec: LiveUpdateSpec,
        sync_input: Input,
        monitor: Monitor | None = None,
    ) -> LiveUpdateStatus:
        """Live-update containers now, and write the resulting status.

        Raises StoreError if the LiveUpdate can't be fetched or its status
        can't be written. Sync failures are returned in the status.
        """
        obj = self.client.get(Kind.LIVE_UPDATE, nn)
        with self._lock:
            return self._apply(obj, spec, sync_input, monitor)

    def _maybe_sync(self, lu: LiveUpdate, monitor: Monitor) -> None:
        """Turn the monitor's accumulated state into at most one apply call."""
        containers = self.resolve_targets(lu, monitor)
        if not containers:
            logger.debug("LiveUpdate %s has no running containers to sync", lu.name)
            return

        paths = _changed_paths(monitor, containers)
        if not paths:
            return

        try:
            mappings = files_to_path_mappings(paths, monitor.spec.syncs)
        except PathMappingError as e:
            status = LiveUpdateStatus(
                failed=LiveUpdateStateFailed(
                    reason=FailureReason.INVALID, message=f"Mapping paths: {e}"
                )
            )
            self._write_status(lu, status)
            # The failure is recorded; later batches are judged without these paths.
            for p in e.paths:
                monitor.mod_time_by_path.pop(p, None)
            return

        logger.info("Syncing %d file(s) for LiveUpdate %s", len(paths), lu.name)
        sync_input = Input(
            containers=containers,
            changed_files=mappings,
            last_file_time_synced=max(monitor.mod_time_by_path[p] for p in paths),
        )
        self._apply(lu, monitor.spec, sync_input, monitor)

    # Assumes the lock is held.
    def _apply(
        self,
        obj: LiveUpdate,
        spec: LiveUpdateSpec,
        sync_input: Input,
        monitor: Monitor | None,
    ) -> LiveUpdateStatus:
        status = apply_changes(spec, sync_input, self._container_updater(sync_input), now=self.now)
        status = self._write_status(obj, status)

        # Only bookkeep once the result is persisted, so a failed write
        # leaves the batch pending for the retried pass.
        if monitor is not None:
            for c in status.containers:
                key = ContainerKey(c.container_id, c.pod_name, c.namespace)
                monitor.containers[key] = ContainerSyncStatus(
                    last_file_time_synced=c.last_file_time_synced
                )
            if status.failed is not None and status.failed.reason in UNRECOVERABLE_REASONS:
                for c in sync_input.containers:
                    key = ContainerKey(c.container_id, c.pod_name, c.namespace)
                    previous = monitor.containers.get(key, ContainerSyncStatus())
                    monitor.containers[key] = ContainerSyncStatus(
                        last_file_time_synced=previous.last_file_time_synced,
                        unrecoverable=True,
                    )

        return status

    def _write_status(self, obj: LiveUpdate, status: LiveUpdateStatus) -> LiveUpdateStatus:
        if status.failed is not None:
            transition_time = self.now()
            previous = obj.status.failed
            if previous is not None and previous.reason == status.failed.reason:
                # Same root cause; keep the original transition time.
                transition_time = previous.last_transition_time
            status.failed.last_transition_time = transition_time

        if status != obj.status:
            update = copy.deepcopy(obj)
            update.status = status
            self.client.update_status(update)
            logger.info("Updated status of LiveUpdate %s", obj.name)

        return status

    def _container_updater(self, sync_input: Input) -> ContainerUpdater:
        kind = select_updater(
            self.config.update_mode,
            sync_input.is_dc,
            self.docker_updater.will_build_to_kube_context(self.config.kube_context),
        )
        if kind == UpdaterKind.DOCKER:
            return self.docker_updater
        return self.exec_updater


def _changed_paths(monitor: Monitor, containers: list[ContainerInfo]) -> list[str]:
    """Paths modified since the least-recently-synced target container."""
    synced = []
    for c in containers:
        known = monitor.containers.get(ContainerKey(c.container_id, c.pod_name, c.namespace))
        synced.append(known.last_file_time_synced if known else None)

    if any(t is None for t in synced):
        return sorted(monitor.mod_time_by_path)

    cutoff = min(synced)
    return sorted(p for p, t in monitor.mod_time_by_path.items() if t > cutoff)
