"""Tests for container updaters and updater selection."""

import subprocess

import pytest

from livesync.api.models import ContainerInfo
from livesync.sync.paths import Cmd
from livesync.sync.updater import (
    ContainerUpdateError,
    DockerUpdater,
    ExecUpdater,
    RunStepFailure,
    UpdateMode,
    UpdaterKind,
    select_updater,
)

CONTAINER = ContainerInfo(
    pod_name="web-1", container_id="abc123def456", container_name="web", namespace="dev"
)


class RecordingRunner:
    """Stands in for subprocess.run; returns configured exit codes by argv prefix."""

    def __init__(self, exit_codes=None):
        self.calls = []
        self.exit_codes = exit_codes or {}

    def __call__(self, argv, stdin=None):
        self.calls.append((argv, stdin))
        code = 0
        for prefix, c in self.exit_codes.items():
            if tuple(argv[: len(prefix)]) == prefix or prefix[-1] in argv:
                code = c
        return subprocess.CompletedProcess(argv, code, stdout=b"", stderr=b"boom")


# --- Selection ---


def test_select_updater_compose_target_uses_docker():
    assert select_updater(UpdateMode.EXEC, True, False) == UpdaterKind.DOCKER


def test_select_updater_forced_modes():
    assert select_updater(UpdateMode.CONTAINER, False, False) == UpdaterKind.DOCKER
    assert select_updater(UpdateMode.EXEC, False, True) == UpdaterKind.EXEC


def test_select_updater_auto_depends_on_cluster():
    assert select_updater(UpdateMode.AUTO, False, True) == UpdaterKind.DOCKER
    assert select_updater(UpdateMode.AUTO, False, False) == UpdaterKind.EXEC


def test_docker_updater_kube_context():
    updater = DockerUpdater(runner=RecordingRunner())
    assert updater.will_build_to_kube_context("docker-desktop")
    assert not updater.will_build_to_kube_context("gke_prod")
    assert not updater.will_build_to_kube_context("")
    assert not ExecUpdater(runner=RecordingRunner()).will_build_to_kube_context("docker-desktop")


# --- DockerUpdater ---


def test_docker_updater_commands():
    runner = RecordingRunner()
    updater = DockerUpdater(runner=runner)
    updater.update_container(
        CONTAINER, b"tar-bytes", ["/app/old.py"], [Cmd(["make", "reload"])], hot_reload=False
    )

    argvs = [argv for argv, _ in runner.calls]
    assert argvs == [
        ["docker", "exec", "abc123def456", "rm", "-rf", "/app/old.py"],
        ["docker", "cp", "-", "abc123def456:/"],
        ["docker", "exec", "abc123def456", "make", "reload"],
        ["docker", "restart", "abc123def456"],
    ]
    assert runner.calls[1][1] == b"tar-bytes"


def test_docker_updater_run_step_failure():
    runner = RecordingRunner(exit_codes={("make",): 2})
    updater = DockerUpdater(runner=runner)
    with pytest.raises(RunStepFailure) as exc_info:
        updater.update_container(CONTAINER, b"", [], [Cmd(["make", "test"])], hot_reload=True)

    assert exc_info.value.exit_code == 2
    assert "make test" in str(exc_info.value)


def test_docker_updater_copy_failure_is_not_run_step_failure():
    runner = RecordingRunner(exit_codes={("docker", "cp"): 1})
    updater = DockerUpdater(runner=runner)
    with pytest.raises(ContainerUpdateError) as exc_info:
        updater.update_container(CONTAINER, b"tar", [], [], hot_reload=True)
    assert not isinstance(exc_info.value, RunStepFailure)


def test_updater_wraps_os_errors():
    def broken_runner(argv, stdin=None):
        raise FileNotFoundError("docker: not found")

    updater = DockerUpdater(runner=broken_runner)
    with pytest.raises(ContainerUpdateError, match="running docker"):
        updater.update_container(CONTAINER, b"tar", [], [], hot_reload=True)


# --- ExecUpdater ---


def test_exec_updater_commands():
    runner = RecordingRunner()
    updater = ExecUpdater(runner=runner)
    updater.update_container(
        CONTAINER, b"tar-bytes", ["/app/old.py"], [Cmd(["make", "reload"])], hot_reload=True
    )

    argvs = [argv for argv, _ in runner.calls]
    assert argvs == [
        ["kubectl", "exec", "-n", "dev", "web-1", "-c", "web", "--", "rm", "-rf", "/app/old.py"],
        ["kubectl", "exec", "-n", "dev", "-i", "web-1", "-c", "web", "--", "tar", "-C", "/", "-x", "-f", "-"],
        ["kubectl", "exec", "-n", "dev", "web-1", "-c", "web", "--", "make", "reload"],
    ]


def test_exec_updater_refuses_restart():
    runner = RecordingRunner()
    updater = ExecUpdater(runner=runner)
    with pytest.raises(ContainerUpdateError, match="does not support restarting"):
        updater.update_container(CONTAINER, b"", [], [], hot_reload=False)
    assert runner.calls == []
