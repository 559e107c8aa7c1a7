"""In-memory stand-ins for the Kubernetes gateway and etcd used by the tests."""
import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client

from clusterward.errors import GatewayError
from clusterward.modules.cluster.constants import (
    CONTROL_PLANE_ROLE_LABEL,
    HOSTNAME_LABEL,
    NOT_READY_TAINT,
    UNREACHABLE_TAINT,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

_ip_counter = itertools.count(10)


def make_node(name: str, master: bool = False, ready: bool = True,
              unreachable_since: Optional[datetime] = None, ip: Optional[str] = None,
              labels: Optional[Dict[str, str]] = None) -> client.V1Node:
    node_labels = {HOSTNAME_LABEL: name}
    if master:
        node_labels[CONTROL_PLANE_ROLE_LABEL] = ""
    node_labels.update(labels or {})

    taints = []
    if unreachable_since is not None:
        taints.append(client.V1Taint(key=UNREACHABLE_TAINT, effect="NoExecute", time_added=unreachable_since))
    elif not ready:
        taints.append(client.V1Taint(key=NOT_READY_TAINT, effect="NoSchedule"))

    if ip is None:
        ip = f"10.0.0.{next(_ip_counter)}"
    addresses = [client.V1NodeAddress(address=ip, type="InternalIP")] if ip else []

    return client.V1Node(
        metadata=client.V1ObjectMeta(name=name, labels=node_labels),
        spec=client.V1NodeSpec(taints=taints or None),
        status=client.V1NodeStatus(addresses=addresses),
    )


def dead_node(name: str, master: bool = False, hours: int = 2, ip: Optional[str] = None) -> client.V1Node:
    return make_node(name, master=master, unreachable_since=NOW - timedelta(hours=hours), ip=ip)


def make_pod(name: str, namespace: str, node_name: Optional[str] = None,
             labels: Optional[Dict[str, str]] = None, annotations: Optional[Dict[str, str]] = None,
             deletion_timestamp: Optional[datetime] = None, phase: str = "Running") -> client.V1Pod:
    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=labels,
            annotations=annotations,
            deletion_timestamp=deletion_timestamp,
        ),
        spec=client.V1PodSpec(node_name=node_name, containers=[client.V1Container(name="main")]),
        status=client.V1PodStatus(phase=phase),
    )


def _template(node_selector: Optional[Dict[str, str]]) -> client.V1PodTemplateSpec:
    return client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(labels={"app": "test"}),
        spec=client.V1PodSpec(
            node_selector=dict(node_selector) if node_selector else None,
            containers=[client.V1Container(name="main")],
        ),
    )


def make_deployment(name: str, namespace: str, node_selector: Optional[Dict[str, str]] = None,
                    labels: Optional[Dict[str, str]] = None) -> client.V1Deployment:
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            template=_template(node_selector),
        ),
    )


def make_stateful_set(name: str, namespace: str,
                      node_selector: Optional[Dict[str, str]] = None) -> client.V1StatefulSet:
    return client.V1StatefulSet(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        spec=client.V1StatefulSetSpec(
            selector=client.V1LabelSelector(match_labels={"app": "test"}),
            service_name=name,
            template=_template(node_selector),
        ),
    )


def make_csr(name: str, username: str, signer: str = "kubernetes.io/kubelet-serving",
             conditions: Optional[List[client.V1CertificateSigningRequestCondition]] = None
             ) -> client.V1CertificateSigningRequest:
    return client.V1CertificateSigningRequest(
        metadata=client.V1ObjectMeta(name=name),
        spec=client.V1CertificateSigningRequestSpec(request="cmVx", signer_name=signer, username=username),
        status=client.V1CertificateSigningRequestStatus(conditions=conditions),
    )


def _matches(labels: Optional[Dict[str, str]], selector: Optional[str]) -> bool:
    if not selector:
        return True
    labels = labels or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key) != value:
            return False
    return True


class FakeGateway:
    """Records every call in ``calls`` and keeps objects in dicts.

    Host task pods finish immediately with the phase in ``pod_phases``
    for their node (default Succeeded) and print ``pod_logs`` for it.
    ``exec_results`` maps a command tuple to ``(code, stdout, stderr)``.
    ``fail`` maps a method name to an exception it raises.
    """

    def __init__(self, nodes: Optional[List[client.V1Node]] = None):
        self.calls: List[Tuple[Any, ...]] = []
        self.nodes: Dict[str, client.V1Node] = {n.metadata.name: n for n in nodes or []}
        self.config_maps: Dict[Tuple[str, str], client.V1ConfigMap] = {}
        self.secrets: Dict[Tuple[str, str], client.V1Secret] = {}
        self.pods: Dict[Tuple[str, str], client.V1Pod] = {}
        self.deployments: List[client.V1Deployment] = []
        self.stateful_sets: List[client.V1StatefulSet] = []
        self.daemon_sets: Dict[Tuple[str, str], client.V1DaemonSet] = {}
        self.custom_objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.csrs: List[client.V1CertificateSigningRequest] = []
        self.pod_phases: Dict[str, str] = {}
        self.pod_logs: Dict[str, str] = {}
        self.exec_results: Dict[Tuple[str, ...], Tuple[int, str, str]] = {}
        self.fail: Dict[str, Exception] = {}
        self._names = itertools.count(1)

    def _call(self, method: str, *args: Any) -> None:
        self.calls.append((method,) + args)
        if method in self.fail:
            raise self.fail[method]

    def called(self, method: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]

    # Nodes

    def list_nodes(self, label_selector: Optional[str] = None) -> List[client.V1Node]:
        self._call("list_nodes", label_selector)
        return [n for n in self.nodes.values() if _matches(n.metadata.labels, label_selector)]

    def get_node(self, name: str) -> Optional[client.V1Node]:
        self._call("get_node", name)
        return self.nodes.get(name)

    def delete_node(self, name: str) -> bool:
        self._call("delete_node", name)
        return self.nodes.pop(name, None) is not None

    # ConfigMaps and Secrets

    def get_config_map(self, namespace: str, name: str) -> Optional[client.V1ConfigMap]:
        self._call("get_config_map", namespace, name)
        cm = self.config_maps.get((namespace, name))
        return copy.deepcopy(cm)

    def create_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> client.V1ConfigMap:
        self._call("create_config_map", namespace, name, dict(data))
        if (namespace, name) in self.config_maps:
            raise GatewayError(f"create configmap {namespace}/{name}: 409 Conflict", status=409)
        cm = client.V1ConfigMap(metadata=client.V1ObjectMeta(name=name, namespace=namespace), data=dict(data))
        self.config_maps[(namespace, name)] = cm
        return cm

    def update_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        key = (config_map.metadata.namespace, config_map.metadata.name)
        self._call("update_config_map", key[0], key[1], dict(config_map.data or {}))
        self.config_maps[key] = copy.deepcopy(config_map)
        return config_map

    def get_secret(self, namespace: str, name: str) -> Optional[client.V1Secret]:
        self._call("get_secret", namespace, name)
        return copy.deepcopy(self.secrets.get((namespace, name)))

    def update_secret(self, secret: client.V1Secret) -> client.V1Secret:
        key = (secret.metadata.namespace, secret.metadata.name)
        self._call("update_secret", key[0], key[1])
        self.secrets[key] = copy.deepcopy(secret)
        return secret

    # Pods

    def add_pod(self, pod: client.V1Pod) -> None:
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = pod

    def list_pods(self, namespace: Optional[str] = None, label_selector: Optional[str] = None,
                  field_selector: Optional[str] = None) -> List[client.V1Pod]:
        self._call("list_pods", namespace, label_selector, field_selector)
        node_name = None
        if field_selector and field_selector.startswith("spec.nodeName="):
            node_name = field_selector.split("=", 1)[1]
        return [
            pod for (ns, _), pod in self.pods.items()
            if (namespace is None or ns == namespace)
            and _matches(pod.metadata.labels, label_selector)
            and (node_name is None or pod.spec.node_name == node_name)
        ]

    def create_pod(self, namespace: str, pod: client.V1Pod) -> client.V1Pod:
        node_name = (pod.spec.node_selector or {}).get(HOSTNAME_LABEL)
        self._call("create_pod", namespace, node_name)
        pod = copy.deepcopy(pod)
        pod.metadata.name = f"{pod.metadata.generate_name}{next(self._names)}"
        pod.metadata.namespace = namespace
        pod.spec.node_name = node_name
        pod.status = client.V1PodStatus(phase=self.pod_phases.get(node_name, "Succeeded"))
        self.pods[(namespace, pod.metadata.name)] = pod
        return pod

    def get_pod(self, namespace: str, name: str) -> Optional[client.V1Pod]:
        self._call("get_pod", namespace, name)
        return self.pods.get((namespace, name))

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: Optional[int] = None) -> bool:
        self._call("delete_pod", namespace, name, grace_period_seconds)
        return self.pods.pop((namespace, name), None) is not None

    def delete_pods(self, namespace: str, label_selector: str) -> None:
        self._call("delete_pods", namespace, label_selector)
        for key, pod in list(self.pods.items()):
            if key[0] == namespace and _matches(pod.metadata.labels, label_selector):
                del self.pods[key]

    def read_pod_log(self, namespace: str, name: str, container: Optional[str] = None) -> str:
        self._call("read_pod_log", namespace, name, container)
        pod = self.pods.get((namespace, name))
        if pod is None or (container or "").endswith("-init"):
            return ""
        return self.pod_logs.get(pod.spec.node_name, "")

    def exec_in_pod(self, namespace: str, name: str, container: str, command: List[str]) -> Tuple[int, str, str]:
        self._call("exec_in_pod", namespace, name, container, tuple(command))
        return self.exec_results.get(tuple(command), (0, "", ""))

    # Workloads

    def list_deployments(self, namespace: Optional[str] = None,
                         label_selector: Optional[str] = None) -> List[client.V1Deployment]:
        self._call("list_deployments", namespace, label_selector)
        return [
            d for d in self.deployments
            if (namespace is None or d.metadata.namespace == namespace)
            and _matches(d.metadata.labels, label_selector)
        ]

    def replace_deployment(self, deployment: client.V1Deployment) -> client.V1Deployment:
        self._call("replace_deployment", deployment.metadata.namespace, deployment.metadata.name)
        return deployment

    def delete_deployment(self, namespace: str, name: str) -> None:
        self._call("delete_deployment", namespace, name)
        self.deployments = [
            d for d in self.deployments
            if (d.metadata.namespace, d.metadata.name) != (namespace, name)
        ]

    def list_stateful_sets(self, namespace: Optional[str] = None) -> List[client.V1StatefulSet]:
        self._call("list_stateful_sets", namespace)
        return [s for s in self.stateful_sets if namespace is None or s.metadata.namespace == namespace]

    def replace_stateful_set(self, stateful_set: client.V1StatefulSet) -> client.V1StatefulSet:
        self._call("replace_stateful_set", stateful_set.metadata.namespace, stateful_set.metadata.name)
        return stateful_set

    def get_daemon_set(self, namespace: str, name: str) -> Optional[client.V1DaemonSet]:
        self._call("get_daemon_set", namespace, name)
        return self.daemon_sets.get((namespace, name))

    def replace_daemon_set(self, daemon_set: client.V1DaemonSet) -> client.V1DaemonSet:
        self._call("replace_daemon_set", daemon_set.metadata.namespace, daemon_set.metadata.name)
        self.daemon_sets[(daemon_set.metadata.namespace, daemon_set.metadata.name)] = daemon_set
        return daemon_set

    # Custom objects

    def get_custom_object(self, plural: str, namespace: str, name: str,
                          group: str = "ceph.rook.io", version: str = "v1") -> Optional[Dict[str, Any]]:
        self._call("get_custom_object", plural, namespace, name)
        return copy.deepcopy(self.custom_objects.get((plural, namespace, name)))

    def replace_custom_object(self, plural: str, namespace: str, name: str, body: Dict[str, Any],
                              group: str = "ceph.rook.io", version: str = "v1") -> Dict[str, Any]:
        self._call("replace_custom_object", plural, namespace, name)
        self.custom_objects[(plural, namespace, name)] = copy.deepcopy(body)
        return body

    # Certificate signing requests

    def list_csrs(self) -> List[client.V1CertificateSigningRequest]:
        self._call("list_csrs")
        return list(self.csrs)

    def approve_csr(self, csr: client.V1CertificateSigningRequest) -> client.V1CertificateSigningRequest:
        self._call("approve_csr", csr.metadata.name)
        return csr


def add_ceph_tools(gateway: FakeGateway, namespace: str = "rook-ceph") -> None:
    gateway.add_pod(make_pod("rook-ceph-tools-abc", namespace, labels={"app": "rook-ceph-tools"}))


def ceph_osd_status(*hosts: str) -> str:
    """Render ``ceph osd status`` table output with one OSD per host."""
    lines = [
        "ID  HOST      USED  AVAIL  WR OPS  WR DATA  RD OPS  RD DATA  STATE",
    ]
    for i, host in enumerate(hosts):
        lines.append(f" {i}  {host}  1027M  98.9G      0        0       0        0   exists,up")
    return "\n".join(lines) + "\n"


class FakeEtcd:
    """Records remove_peer calls in the gateway's call log."""

    def __init__(self, gateway: FakeGateway, members: Optional[List[str]] = None):
        self.gateway = gateway
        self.members = list(members or [])

    def remove_peer(self, ip: str, remaining_ips: List[str]) -> bool:
        self.gateway.calls.append(("etcd_remove_peer", ip, tuple(remaining_ips)))
        if ip in self.members:
            self.members.remove(ip)
            return True
        return False
