"""Container updaters — the mechanisms that mutate a running container.

Two implementations are provided:
- DockerUpdater talks to the container runtime directly (docker exec/cp).
  Used for compose targets, and for clusters that share the local docker
  daemon (docker-desktop, minikube).
- ExecUpdater goes through the cluster API (kubectl exec).

Both shell out through an injectable runner so they can be exercised
without a container runtime.
"""

from __future__ import annotations

import logging
import subprocess
from enum import Enum
from typing import Callable, Optional

from livesync.api.models import ContainerInfo
from livesync.sync.paths import Cmd

logger = logging.getLogger(__name__)

Runner = Callable[[list[str], Optional[bytes]], subprocess.CompletedProcess]

DEFAULT_TIMEOUT_SECONDS = 120

DEFAULT_DOCKER_CLUSTER_CONTEXTS = ("docker-desktop", "docker-for-desktop", "minikube")


class UpdateMode(Enum):
    """Which updater the reconciler should use."""

    AUTO = "auto"  # Pick based on the target and kube context
    CONTAINER = "container"  # Always use the docker updater
    EXEC = "exec"  # Always use kubectl exec


class UpdaterKind(Enum):
    DOCKER = "docker"
    EXEC = "exec"


class ContainerUpdateError(Exception):
    """Infrastructure failure while updating a container."""


class RunStepFailure(ContainerUpdateError):
    """A run step exited non-zero. The files were copied successfully."""

    def __init__(self, cmd: Cmd, exit_code: int):
        super().__init__(f"command {str(cmd)!r} failed with exit code: {exit_code}")
        self.cmd = cmd
        self.exit_code = exit_code


def subprocess_runner(argv: list[str], stdin: bytes | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        argv,
        input=stdin,
        capture_output=True,
        timeout=DEFAULT_TIMEOUT_SECONDS,
    )


def select_updater(mode: UpdateMode, is_dc: bool, docker_builds_to_cluster: bool) -> UpdaterKind:
    """Pick the mutation mechanism for one apply call."""
    if is_dc or mode == UpdateMode.CONTAINER:
        return UpdaterKind.DOCKER

    if mode == UpdateMode.EXEC:
        return UpdaterKind.EXEC

    if docker_builds_to_cluster:
        return UpdaterKind.DOCKER

    return UpdaterKind.EXEC


class ContainerUpdater:
    """Copy files into, delete files from, and run commands in a container."""

    kind: UpdaterKind

    def __init__(self, runner: Runner | None = None):
        self.runner = runner or subprocess_runner

    def will_build_to_kube_context(self, kube_context: str) -> bool:
        """True if this updater can reach containers in the given cluster."""
        return False

    def update_container(
        self,
        container: ContainerInfo,
        archive: bytes,
        to_delete: list[str],
        cmds: list[Cmd],
        hot_reload: bool,
    ) -> None:
        """Apply one sync to one container.

        Raises:
            RunStepFailure: A run step exited non-zero.
            ContainerUpdateError: Anything else went wrong.
        """
        raise NotImplementedError

    def _run(self, argv: list[str], stdin: bytes | None = None) -> subprocess.CompletedProcess:
        try:
            return self.runner(argv, stdin)
        except (OSError, subprocess.SubprocessError) as e:
            raise ContainerUpdateError(f"running {argv[0]}: {e}") from e

    def _check(self, argv: list[str], stdin: bytes | None = None) -> None:
        proc = self._run(argv, stdin)
        if proc.returncode != 0:
            raise ContainerUpdateError(
                f"{' '.join(argv[:3])} exited {proc.returncode}: {_stderr(proc)}"
            )


class DockerUpdater(ContainerUpdater):
    kind = UpdaterKind.DOCKER

    def __init__(
        self,
        runner: Runner | None = None,
        cluster_contexts: tuple[str, ...] | list[str] = DEFAULT_DOCKER_CLUSTER_CONTEXTS,
    ):
        super().__init__(runner)
        self.cluster_contexts = tuple(cluster_contexts)

    def will_build_to_kube_context(self, kube_context: str) -> bool:
        """True if the cluster runs containers on the local docker daemon."""
        return bool(kube_context) and kube_context in self.cluster_contexts

    def update_container(self, container, archive, to_delete, cmds, hot_reload):
        cid = container.container_id

        if to_delete:
            self._check(["docker", "exec", cid, "rm", "-rf", *to_delete])

        if archive:
            self._check(["docker", "cp", "-", f"{cid}:/"], archive)

        for cmd in cmds:
            proc = self._run(["docker", "exec", cid, *cmd.argv])
            if proc.returncode != 0:
                raise RunStepFailure(cmd, proc.returncode)

        if not hot_reload:
            self._check(["docker", "restart", cid])


class ExecUpdater(ContainerUpdater):
    kind = UpdaterKind.EXEC

    def update_container(self, container, archive, to_delete, cmds, hot_reload):
        if not hot_reload:
            raise ContainerUpdateError(
                "ExecUpdater does not support restarting the container; "
                "use the docker updater or restart the pod instead"
            )

        if to_delete:
            self._check(self._exec_argv(container, ["rm", "-rf", *to_delete]))

        if archive:
            self._check(
                self._exec_argv(container, ["tar", "-C", "/", "-x", "-f", "-"], stdin=True),
                archive,
            )

        for cmd in cmds:
            proc = self._run(self._exec_argv(container, cmd.argv))
            if proc.returncode != 0:
                raise RunStepFailure(cmd, proc.returncode)

    @staticmethod
    def _exec_argv(container: ContainerInfo, argv: list[str], stdin: bool = False) -> list[str]:
        result = ["kubectl", "exec"]
        if container.namespace:
            result += ["-n", container.namespace]
        if stdin:
            result.append("-i")
        result.append(container.pod_name)
        if container.container_name:
            result += ["-c", container.container_name]
        return result + ["--", *argv]


def _stderr(proc: subprocess.CompletedProcess) -> str:
    err = proc.stderr or b""
    if isinstance(err, bytes):
        err = err.decode("utf-8", errors="replace")
    return err.strip()[:2000]
