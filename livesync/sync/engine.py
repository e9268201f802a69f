"""Sync engine — apply one batch of changed files to every target container.

Outcomes are classified rather than raised:
- Invalid: the spec can't be resolved against the changes. No container is touched.
- Run-step failure: recorded on the container's status, the batch continues.
- UpdateFailed: infrastructure failure. The batch stops immediately.
- PodsInconsistent: some containers ran the steps cleanly, others failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from livesync.api.models import (
    ContainerInfo,
    FailureReason,
    LiveUpdateContainerStatus,
    LiveUpdateSpec,
    LiveUpdateStateFailed,
    LiveUpdateStatus,
)
from livesync.sync.paths import (
    PathMapping,
    boil_runs,
    missing_local_paths,
    path_mappings_to_container_paths,
    tar_archive_for_paths,
)
from livesync.sync.updater import ContainerUpdater, RunStepFailure

logger = logging.getLogger(__name__)


@dataclass
class Input:
    """Everything the engine needs for one apply call."""

    containers: list[ContainerInfo] = field(default_factory=list)
    changed_files: list[PathMapping] = field(default_factory=list)
    # When the newest changed file was modified. Defaults to now.
    last_file_time_synced: datetime | None = None
    # True for compose-style targets, False for cluster workloads.
    is_dc: bool = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def apply_changes(
    spec: LiveUpdateSpec,
    sync_input: Input,
    updater: ContainerUpdater,
    now: Callable[[], datetime] = utc_now,
) -> LiveUpdateStatus:
    """Sync the changed files into every target container.

    Never raises for sync-domain failures; they are returned as
    `status.failed`. The caller sets the failure's transition time.
    """
    containers = sync_input.containers
    cid_str = ", ".join(c.short_id for c in containers)
    suffix = "" if len(containers) == 1 else "(s)"
    hot_reload = not spec.should_restart

    try:
        cmds = boil_runs(spec.run_steps, sync_input.changed_files, spec.base_path)
    except ValueError as e:
        return _failed(FailureReason.INVALID, f"Building exec: {e}")

    try:
        to_remove, to_archive = missing_local_paths(sync_input.changed_files)
    except OSError as e:
        return _failed(FailureReason.INVALID, f"Mapping paths: {e}")

    if to_remove:
        logger.info("Will delete %d file(s) from container%s: %s", len(to_remove), suffix, cid_str)
        for m in to_remove:
            logger.info("- '%s' (matched local path: '%s')", m.container_path, m.local_path)

    if to_archive:
        logger.info("Will copy %d file(s) to container%s: %s", len(to_archive), suffix, cid_str)
        for m in to_archive:
            logger.info("- %s", m.pretty_str())

    last_file_time_synced = sync_input.last_file_time_synced or now()
    removals = path_mappings_to_container_paths(to_remove)

    result = LiveUpdateStatus()
    last_clean: LiveUpdateContainerStatus | None = None
    last_exec_error: LiveUpdateContainerStatus | None = None

    for c in containers:
        c_status = LiveUpdateContainerStatus(
            container_name=c.container_name,
            container_id=c.container_id,
            pod_name=c.pod_name,
            namespace=c.namespace,
            last_file_time_synced=last_file_time_synced,
        )

        try:
            archive = tar_archive_for_paths(to_archive) if to_archive else b""
            updater.update_container(c, archive, removals, cmds, hot_reload)
        except RunStepFailure as e:
            # Keep going so every container ends up with the same files,
            # even though the run step didn't succeed on this one.
            logger.info(
                "  → Failed to update container %s: run step %r failed with exit code: %d",
                c.short_id, str(e.cmd), e.exit_code,
            )
            c_status.last_exec_error = str(e)
            last_exec_error = c_status
        except Exception as e:
            # Not the user's fault; files may now differ between containers.
            logger.info("  → Failed to update container %s: %s", c.short_id, e)
            return _failed(
                FailureReason.UPDATE_FAILED, f"Updating pod {c_status.pod_name}: {e}"
            )
        else:
            logger.info("  → Container %s updated!", c.short_id)
            last_clean = c_status

        result.containers.append(c_status)

    if last_exec_error is not None and last_clean is not None:
        return _failed(
            FailureReason.PODS_INCONSISTENT,
            f"Pods in inconsistent state. Success: pod {last_clean.pod_name}. "
            f"Failure: pod {last_exec_error.pod_name}. Error: {last_exec_error.last_exec_error}",
        )

    return result


def _failed(reason: str, message: str) -> LiveUpdateStatus:
    return LiveUpdateStatus(failed=LiveUpdateStateFailed(reason=reason, message=message))
