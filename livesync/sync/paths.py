"""Path mapping and run-step resolution for a live update."""

from __future__ import annotations

import fnmatch
import io
import os
import posixpath
import shlex
import tarfile
from dataclasses import dataclass, field

from livesync.api.models import LiveUpdateExec, LiveUpdateSync


class PathMappingError(ValueError):
    """Changed files that don't fall under any sync."""

    def __init__(self, paths: list[str]):
        if len(paths) == 1:
            msg = f"file {paths[0]!r} doesn't match any sync"
        else:
            msg = f"files {', '.join(repr(p) for p in paths)} don't match any sync"
        super().__init__(msg)
        self.paths = paths


@dataclass(frozen=True)
class PathMapping:
    local_path: str
    container_path: str

    def pretty_str(self) -> str:
        return f"'{self.local_path}' --> '{self.container_path}'"


@dataclass
class Cmd:
    """A literal command to execute in a container."""

    argv: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return " ".join(shlex.quote(a) for a in self.argv)


def files_to_path_mappings(
    files: list[str], syncs: list[LiveUpdateSync]
) -> list[PathMapping]:
    """Map each local file to its destination in the container.

    When syncs overlap, the one with the longest local_path wins.
    """
    mappings = []
    unmatched = []
    for f in files:
        best: LiveUpdateSync | None = None
        for sync in syncs:
            if not _is_child(sync.local_path, f):
                continue
            if best is None or len(sync.local_path) > len(best.local_path):
                best = sync

        if best is None:
            unmatched.append(f)
            continue

        rel = os.path.relpath(f, best.local_path)
        if rel == ".":
            container_path = best.container_path
        else:
            container_path = posixpath.join(best.container_path, *rel.split(os.sep))
        mappings.append(PathMapping(local_path=f, container_path=container_path))

    if unmatched:
        raise PathMappingError(unmatched)
    return mappings


def boil_runs(
    runs: list[LiveUpdateExec],
    mappings: list[PathMapping],
    base_path: str = "",
) -> list[Cmd]:
    """Resolve run steps into the commands to execute for these changes.

    A run without trigger paths always runs; otherwise it runs only if a
    changed local file matches one of its triggers.
    """
    local_paths = [m.local_path for m in mappings]
    cmds = []
    for run in runs:
        if not run.args:
            raise ValueError("run step has an empty command")

        if run.trigger_paths:
            triggers = [_resolve(base_path, t) for t in run.trigger_paths]
            if not any(_matches(t, p) for t in triggers for p in local_paths):
                continue

        cmds.append(Cmd(argv=list(run.args)))
    return cmds


def missing_local_paths(
    mappings: list[PathMapping],
) -> tuple[list[PathMapping], list[PathMapping]]:
    """Split mappings into (to_remove, to_archive).

    Files that no longer exist locally get deleted from the container.
    """
    to_remove = []
    to_archive = []
    for m in mappings:
        try:
            os.stat(m.local_path)
        except FileNotFoundError:
            to_remove.append(m)
            continue
        to_archive.append(m)
    return to_remove, to_archive


def path_mappings_to_container_paths(mappings: list[PathMapping]) -> list[str]:
    return [m.container_path for m in mappings]


def tar_archive_for_paths(mappings: list[PathMapping]) -> bytes:
    """Build an in-memory tar of the local files, named by container path.

    Directories are added recursively.
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for m in mappings:
            tar.add(m.local_path, arcname=m.container_path.lstrip("/"))
    return buf.getvalue()


def _is_child(parent: str, path: str) -> bool:
    parent = os.path.normpath(parent)
    path = os.path.normpath(path)
    return path == parent or path.startswith(parent.rstrip(os.sep) + os.sep)


def _resolve(base_path: str, trigger: str) -> str:
    if base_path and not os.path.isabs(trigger):
        return os.path.join(base_path, trigger)
    return trigger


def _matches(trigger: str, path: str) -> bool:
    return _is_child(trigger, path) or fnmatch.fnmatch(path, trigger)
