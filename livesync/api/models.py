"""Data models for LiveUpdate and the objects it depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Any non-empty value marks a LiveUpdate as staged by another controller.
ANNOTATION_MANAGED_BY = "livesync.dev/managed-by"


class Kind(Enum):
    """Object kinds known to the store."""

    LIVE_UPDATE = "LiveUpdate"
    FILE_WATCH = "FileWatch"
    KUBERNETES_DISCOVERY = "KubernetesDiscovery"
    KUBERNETES_APPLY = "KubernetesApply"
    IMAGE_MAP = "ImageMap"


class FailureReason:
    INVALID = "Invalid"  # Spec can't be resolved against the changed files
    UPDATE_FAILED = "UpdateFailed"  # Infrastructure error copying into a container
    PODS_INCONSISTENT = "PodsInconsistent"  # Replicas ended the batch in different states


class RestartStrategy:
    AUTO = "auto"
    ALWAYS = "always"


@dataclass(frozen=True)
class NamespacedName:
    name: str
    namespace: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass
class ObjectMeta:
    name: str
    namespace: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    deletion_timestamp: datetime | None = None

    @property
    def namespaced_name(self) -> NamespacedName:
        return NamespacedName(name=self.name, namespace=self.namespace)


# --- LiveUpdate ---


@dataclass
class LiveUpdateKubernetesSelector:
    """Names the Kubernetes-shaped objects that locate the target containers."""

    discovery_name: str = ""
    apply_name: str = ""
    image_map_name: str = ""
    container_name: str = ""


@dataclass
class LiveUpdateSelector:
    kubernetes: LiveUpdateKubernetesSelector | None = None


@dataclass
class LiveUpdateSync:
    """Copy files under local_path to container_path."""

    local_path: str
    container_path: str


@dataclass
class LiveUpdateExec:
    """A command to run in the container after files are copied.

    If trigger_paths is non-empty, the command only runs when one of the
    changed files matches a trigger.
    """

    args: list[str] = field(default_factory=list)
    trigger_paths: list[str] = field(default_factory=list)


@dataclass
class LiveUpdateSpec:
    base_path: str = ""
    file_watch_names: list[str] = field(default_factory=list)
    selector: LiveUpdateSelector = field(default_factory=LiveUpdateSelector)
    syncs: list[LiveUpdateSync] = field(default_factory=list)
    execs: list[LiveUpdateExec] = field(default_factory=list)
    restart: str = RestartStrategy.AUTO

    @property
    def run_steps(self) -> list[LiveUpdateExec]:
        return list(self.execs)

    @property
    def should_restart(self) -> bool:
        return self.restart == RestartStrategy.ALWAYS


@dataclass
class LiveUpdateStateFailed:
    reason: str
    message: str = ""
    last_transition_time: datetime | None = None


@dataclass
class LiveUpdateContainerStatus:
    container_name: str = ""
    container_id: str = ""
    pod_name: str = ""
    namespace: str = ""
    last_file_time_synced: datetime | None = None
    last_exec_error: str = ""


@dataclass
class LiveUpdateStatus:
    """Either empty, a failure, or a list of per-container results.

    `failed` and `containers` are never both set.
    """

    failed: LiveUpdateStateFailed | None = None
    containers: list[LiveUpdateContainerStatus] = field(default_factory=list)


@dataclass
class LiveUpdate:
    metadata: ObjectMeta
    spec: LiveUpdateSpec = field(default_factory=LiveUpdateSpec)
    status: LiveUpdateStatus = field(default_factory=LiveUpdateStatus)

    kind = Kind.LIVE_UPDATE

    @property
    def name(self) -> str:
        return self.metadata.name


# --- FileWatch ---


@dataclass
class FileEvent:
    time: datetime
    seen_files: list[str] = field(default_factory=list)


@dataclass
class FileWatchStatus:
    file_events: list[FileEvent] = field(default_factory=list)
    error: str = ""


@dataclass
class FileWatch:
    metadata: ObjectMeta
    status: FileWatchStatus = field(default_factory=FileWatchStatus)

    kind = Kind.FILE_WATCH


# --- KubernetesDiscovery ---


@dataclass
class DiscoveredContainer:
    name: str
    id: str = ""
    image: str = ""
    ready: bool = False


@dataclass
class DiscoveredPod:
    name: str
    namespace: str = ""
    containers: list[DiscoveredContainer] = field(default_factory=list)


@dataclass
class KubernetesDiscoveryStatus:
    pods: list[DiscoveredPod] = field(default_factory=list)


@dataclass
class KubernetesDiscovery:
    metadata: ObjectMeta
    status: KubernetesDiscoveryStatus = field(default_factory=KubernetesDiscoveryStatus)

    kind = Kind.KUBERNETES_DISCOVERY


# --- KubernetesApply ---


@dataclass
class KubernetesApplyStatus:
    result_yaml: str = ""
    error: str = ""
    last_apply_time: datetime | None = None


@dataclass
class KubernetesApply:
    metadata: ObjectMeta
    status: KubernetesApplyStatus = field(default_factory=KubernetesApplyStatus)

    kind = Kind.KUBERNETES_APPLY


# --- ImageMap ---


@dataclass
class ImageMapStatus:
    image: str = ""
    image_from_cluster: str = ""

    @property
    def target_image(self) -> str:
        """The reference that running containers will report."""
        return self.image_from_cluster or self.image


@dataclass
class ImageMap:
    metadata: ObjectMeta
    status: ImageMapStatus = field(default_factory=ImageMapStatus)

    kind = Kind.IMAGE_MAP


# --- Container targets ---


@dataclass(frozen=True)
class ContainerInfo:
    """A running container that a sync should be applied to."""

    pod_name: str
    container_id: str
    container_name: str = ""
    namespace: str = ""

    @property
    def short_id(self) -> str:
        return self.container_id[:10]
