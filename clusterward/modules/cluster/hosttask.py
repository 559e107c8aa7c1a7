"""Host task execution.

A host task is a pod pinned to one node by hostname, tolerating the
control-plane taints, with host paths mounted so it can act on the node's
filesystem. The executor creates the pod, polls it until it finishes and
logs its output, classifying each line by prefix.
"""
import logging
import threading
from typing import List, Optional, Sequence, Tuple

from kubernetes import client

from ...errors import (
    ClusterwardError,
    GatewayError,
    HostTaskBatchError,
    HostTaskCancelled,
    HostTaskFailed,
)
from ...gateway import KubeGateway
from .constants import CONTROL_PLANE_ROLE_LABEL, HOSTNAME_LABEL, MASTER_ROLE_LABEL, TASK_LABEL
from .models import HostTask

logger = logging.getLogger("clusterward.hosttask")

# Output lines from host task pods are matched against these prefixes in order.
# Anything else is logged at debug.
LOG_PREFIX_LEVELS = (
    ("Error", logging.ERROR),
    ("Rotated", logging.INFO),
    ("Restarting", logging.INFO),
)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_NODE_DELAY = 5.0


def classify_line(line: str) -> int:
    """Return the log level for one line of host task output."""
    for prefix, level in LOG_PREFIX_LEVELS:
        if line.startswith(prefix):
            return level
    return logging.DEBUG


def build_pod(node_name: str, task: HostTask) -> client.V1Pod:
    """Build the pod spec for running ``task`` on ``node_name``."""
    mounts = [client.V1VolumeMount(name=m.name, mount_path=m.mount_path) for m in task.mounts]
    volumes = [
        client.V1Volume(name=m.name, host_path=client.V1HostPathVolumeSource(path=m.host_path))
        for m in task.mounts
    ]
    security_context = client.V1SecurityContext(privileged=True) if task.privileged else None

    container = client.V1Container(
        name=task.container_name or task.kind,
        image=task.image,
        image_pull_policy="IfNotPresent",
        command=list(task.command),
        env=[
            client.V1EnvVar(
                name="HOSTNAME",
                value_from=client.V1EnvVarSource(
                    field_ref=client.V1ObjectFieldSelector(field_path="spec.nodeName")
                ),
            )
        ],
        volume_mounts=mounts or None,
        working_dir=task.working_dir,
        security_context=security_context,
    )

    init_containers = None
    if task.init_command:
        init_containers = [
            client.V1Container(
                name=f"{task.kind}-init",
                image=task.image,
                image_pull_policy="IfNotPresent",
                command=list(task.init_command),
                volume_mounts=mounts or None,
                security_context=security_context,
            )
        ]

    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            generate_name=task.generate_name,
            namespace=task.namespace,
            labels={TASK_LABEL: task.kind},
        ),
        spec=client.V1PodSpec(
            node_selector={HOSTNAME_LABEL: node_name},
            tolerations=[
                client.V1Toleration(key=MASTER_ROLE_LABEL, effect="NoSchedule", operator="Exists"),
                client.V1Toleration(key=CONTROL_PLANE_ROLE_LABEL, effect="NoSchedule", operator="Exists"),
            ],
            init_containers=init_containers,
            containers=[container],
            restart_policy="Never",
            volumes=volumes or None,
        ),
    )


class HostTaskExecutor:
    """Runs host tasks one node at a time."""

    def __init__(self, gateway: KubeGateway, poll_interval: float = DEFAULT_POLL_INTERVAL,
                 node_delay: float = DEFAULT_NODE_DELAY):
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.node_delay = node_delay

    def sweep(self, task: HostTask) -> None:
        """Delete every pod of this task kind."""
        try:
            self.gateway.delete_pods(task.namespace, task.selector)
        except GatewayError as e:
            logger.warning("Failed to delete %s pods: %s", task.kind, e)

    def run_on_node(self, node_name: str, task: HostTask,
                    cancel: Optional[threading.Event] = None) -> None:
        """Run a task on one node. A failed pod is left in place for inspection.

        Raises:
            HostTaskFailed: If the pod reaches the Failed phase
            HostTaskCancelled: If ``cancel`` is set while polling
        """
        self.sweep(task)
        self._run(node_name, task, cancel or threading.Event())

    def run_on_nodes(self, node_names: Sequence[str], task: HostTask,
                     cancel: Optional[threading.Event] = None,
                     continue_on_error: bool = False) -> None:
        """Run a task on each node in turn, sweeping pods before and after.

        The first failure stops the batch unless ``continue_on_error`` is
        set, in which case every node is attempted and the failures are
        raised together as :class:`HostTaskBatchError`.
        """
        self.run_tasks([(name, task) for name in node_names], cancel, continue_on_error)

    def run_tasks(self, tasks: Sequence[Tuple[str, HostTask]],
                  cancel: Optional[threading.Event] = None,
                  continue_on_error: bool = False) -> None:
        """Batch form of :meth:`run_on_node` for per-node variants of one task kind."""
        if not tasks:
            return
        task = tasks[0][1]
        cancel = cancel or threading.Event()
        errors: List[Exception] = []
        self.sweep(task)
        try:
            for i, (node_name, node_task) in enumerate(tasks):
                if i > 0 and cancel.wait(self.node_delay):
                    raise HostTaskCancelled(f"{task.kind}: cancelled before node {node_name}")
                try:
                    self._run(node_name, node_task, cancel)
                except HostTaskCancelled:
                    raise
                except ClusterwardError as e:
                    if not continue_on_error:
                        raise
                    logger.error("%s failed on node %s: %s", task.kind, node_name, e)
                    errors.append(e)
        finally:
            self.sweep(task)

        if errors:
            raise HostTaskBatchError(task.kind, errors)

    def _run(self, node_name: str, task: HostTask, cancel: threading.Event) -> None:
        logger.debug("Running %s task on node %s", task.kind, node_name)
        pod = self.gateway.create_pod(task.namespace, build_pod(node_name, task))
        pod_name = pod.metadata.name

        phase = self._wait_for_completion(node_name, task, pod_name, cancel)
        error_lines = self._log_results(task, pod_name)
        if phase == "Failed":
            raise HostTaskFailed(task.kind, node_name, pod_name, error_lines)
        logger.debug("%s task pod %s succeeded on node %s", task.kind, pod_name, node_name)

    def _wait_for_completion(self, node_name: str, task: HostTask, pod_name: str,
                             cancel: threading.Event) -> str:
        # The API server may restart while certificates rotate, so lookup errors are not fatal
        while True:
            if cancel.wait(self.poll_interval):
                raise HostTaskCancelled(f"{task.kind}: cancelled waiting for pod {pod_name}")
            try:
                pod = self.gateway.get_pod(task.namespace, pod_name)
            except GatewayError as e:
                logger.debug("Poll for pod completed: get pod %s: %s", pod_name, e)
                continue
            if pod is None:
                raise HostTaskFailed(task.kind, node_name, pod_name, ["pod was deleted before completing"])
            phase = pod.status.phase if pod.status else None
            if phase in ("Succeeded", "Failed"):
                return phase

    def _log_results(self, task: HostTask, pod_name: str) -> List[str]:
        containers = [task.container_name or task.kind]
        if task.init_command:
            containers.insert(0, f"{task.kind}-init")

        error_lines = []
        for container in containers:
            try:
                output = self.gateway.read_pod_log(task.namespace, pod_name, container=container)
            except GatewayError as e:
                logger.warning("Failed to get pod %s logs: %s", pod_name, e)
                continue
            for line in (output or "").splitlines():
                level = classify_line(line)
                logger.log(level, line)
                if level == logging.ERROR:
                    error_lines.append(line)
        return error_lines
