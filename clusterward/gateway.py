"""Kubernetes API access for the operator.

Every read and write the reconcile loop performs goes through
:class:`KubeGateway`. Lookups of single objects return ``None`` on 404;
any other API failure, including a connection error while the API server
is unreachable, is raised as :class:`~clusterward.errors.GatewayError`
naming the operation.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from urllib3.exceptions import HTTPError

from .errors import GatewayError
from .utils import is_not_found

logger = logging.getLogger("clusterward.gateway")

CEPH_GROUP = "ceph.rook.io"
CEPH_VERSION = "v1"


# Raised by the client for API responses and for transport failures
API_ERRORS = (ApiException, HTTPError, OSError)


def _wrap(action: str, err: Exception) -> GatewayError:
    if isinstance(err, ApiException):
        return GatewayError(f"{action}: {err.status} {err.reason}", status=err.status)
    return GatewayError(f"{action}: {err}")


class KubeGateway:
    """Thin wrapper over the typed Kubernetes API clients."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)
        self.certificates = client.CertificatesV1Api(api_client)

    # Nodes

    def list_nodes(self, label_selector: Optional[str] = None) -> List[client.V1Node]:
        try:
            if label_selector:
                return self.core.list_node(label_selector=label_selector).items
            return self.core.list_node().items
        except API_ERRORS as e:
            raise _wrap("list nodes", e) from e

    def get_node(self, name: str) -> Optional[client.V1Node]:
        try:
            return self.core.read_node(name)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get node {name}", e) from e

    def delete_node(self, name: str) -> bool:
        """Delete a node. Returns False if it was already gone."""
        try:
            self.core.delete_node(name)
            return True
        except API_ERRORS as e:
            if is_not_found(e):
                return False
            raise _wrap(f"delete node {name}", e) from e

    # ConfigMaps and Secrets

    def get_config_map(self, namespace: str, name: str) -> Optional[client.V1ConfigMap]:
        try:
            return self.core.read_namespaced_config_map(name, namespace)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get configmap {namespace}/{name}", e) from e

    def create_config_map(self, namespace: str, name: str, data: Dict[str, str]) -> client.V1ConfigMap:
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=dict(data),
        )
        try:
            return self.core.create_namespaced_config_map(namespace, body)
        except API_ERRORS as e:
            raise _wrap(f"create configmap {namespace}/{name}", e) from e

    def update_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        namespace = config_map.metadata.namespace
        name = config_map.metadata.name
        try:
            return self.core.replace_namespaced_config_map(name, namespace, config_map)
        except API_ERRORS as e:
            raise _wrap(f"update configmap {namespace}/{name}", e) from e

    def get_secret(self, namespace: str, name: str) -> Optional[client.V1Secret]:
        try:
            return self.core.read_namespaced_secret(name, namespace)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get secret {namespace}/{name}", e) from e

    def update_secret(self, secret: client.V1Secret) -> client.V1Secret:
        namespace = secret.metadata.namespace
        name = secret.metadata.name
        try:
            return self.core.replace_namespaced_secret(name, namespace, secret)
        except API_ERRORS as e:
            raise _wrap(f"update secret {namespace}/{name}", e) from e

    # Pods

    def list_pods(
        self,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> List[client.V1Pod]:
        """List pods in a namespace, or across all namespaces when namespace is None."""
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        try:
            if namespace is None:
                return self.core.list_pod_for_all_namespaces(**kwargs).items
            return self.core.list_namespaced_pod(namespace, **kwargs).items
        except API_ERRORS as e:
            raise _wrap(f"list pods in {namespace or 'all namespaces'}", e) from e

    def create_pod(self, namespace: str, pod: client.V1Pod) -> client.V1Pod:
        try:
            return self.core.create_namespaced_pod(namespace, pod)
        except API_ERRORS as e:
            raise _wrap(f"create pod in {namespace}", e) from e

    def get_pod(self, namespace: str, name: str) -> Optional[client.V1Pod]:
        try:
            return self.core.read_namespaced_pod(name, namespace)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get pod {namespace}/{name}", e) from e

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: Optional[int] = None) -> bool:
        kwargs = {}
        if grace_period_seconds is not None:
            kwargs["grace_period_seconds"] = grace_period_seconds
        try:
            self.core.delete_namespaced_pod(name, namespace, **kwargs)
            return True
        except API_ERRORS as e:
            if is_not_found(e):
                return False
            raise _wrap(f"delete pod {namespace}/{name}", e) from e

    def delete_pods(self, namespace: str, label_selector: str) -> None:
        """Delete every pod in the namespace matching the label selector."""
        try:
            self.core.delete_collection_namespaced_pod(namespace, label_selector=label_selector)
        except API_ERRORS as e:
            raise _wrap(f"delete pods {label_selector} in {namespace}", e) from e

    def read_pod_log(self, namespace: str, name: str, container: Optional[str] = None) -> str:
        kwargs = {}
        if container:
            kwargs["container"] = container
        try:
            return self.core.read_namespaced_pod_log(name, namespace, **kwargs)
        except API_ERRORS as e:
            raise _wrap(f"get logs of pod {namespace}/{name}", e) from e

    def exec_in_pod(self, namespace: str, name: str, container: str, command: List[str]) -> Tuple[int, str, str]:
        """Run a command in a pod container and wait for it to exit.

        Returns:
            Tuple of (exit code, stdout, stderr)
        """
        try:
            resp = stream(
                self.core.connect_get_namespaced_pod_exec,
                name,
                namespace,
                container=container,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        except API_ERRORS as e:
            raise _wrap(f"exec in pod {namespace}/{name}", e) from e

        stdout: List[str] = []
        stderr: List[str] = []
        try:
            while resp.is_open():
                resp.update(timeout=1)
                if resp.peek_stdout():
                    stdout.append(resp.read_stdout())
                if resp.peek_stderr():
                    stderr.append(resp.read_stderr())
        except API_ERRORS as e:
            raise _wrap(f"exec in pod {namespace}/{name}", e) from e
        finally:
            resp.close()

        code = resp.returncode
        return (code if code is not None else 0), "".join(stdout), "".join(stderr)

    # Workloads

    def list_deployments(self, namespace: Optional[str] = None,
                         label_selector: Optional[str] = None) -> List[client.V1Deployment]:
        kwargs = {"label_selector": label_selector} if label_selector else {}
        try:
            if namespace is None:
                return self.apps.list_deployment_for_all_namespaces(**kwargs).items
            return self.apps.list_namespaced_deployment(namespace, **kwargs).items
        except API_ERRORS as e:
            raise _wrap("list deployments", e) from e

    def replace_deployment(self, deployment: client.V1Deployment) -> client.V1Deployment:
        namespace = deployment.metadata.namespace
        name = deployment.metadata.name
        try:
            return self.apps.replace_namespaced_deployment(name, namespace, deployment)
        except API_ERRORS as e:
            raise _wrap(f"update deployment {namespace}/{name}", e) from e

    def delete_deployment(self, namespace: str, name: str) -> None:
        body = client.V1DeleteOptions(propagation_policy="Background")
        try:
            self.apps.delete_namespaced_deployment(name, namespace, body=body)
        except API_ERRORS as e:
            if is_not_found(e):
                return
            raise _wrap(f"delete deployment {namespace}/{name}", e) from e

    def list_stateful_sets(self, namespace: Optional[str] = None) -> List[client.V1StatefulSet]:
        try:
            if namespace is None:
                return self.apps.list_stateful_set_for_all_namespaces().items
            return self.apps.list_namespaced_stateful_set(namespace).items
        except API_ERRORS as e:
            raise _wrap("list statefulsets", e) from e

    def replace_stateful_set(self, stateful_set: client.V1StatefulSet) -> client.V1StatefulSet:
        namespace = stateful_set.metadata.namespace
        name = stateful_set.metadata.name
        try:
            return self.apps.replace_namespaced_stateful_set(name, namespace, stateful_set)
        except API_ERRORS as e:
            raise _wrap(f"update statefulset {namespace}/{name}", e) from e

    def get_daemon_set(self, namespace: str, name: str) -> Optional[client.V1DaemonSet]:
        try:
            return self.apps.read_namespaced_daemon_set(name, namespace)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get daemonset {namespace}/{name}", e) from e

    def replace_daemon_set(self, daemon_set: client.V1DaemonSet) -> client.V1DaemonSet:
        namespace = daemon_set.metadata.namespace
        name = daemon_set.metadata.name
        try:
            return self.apps.replace_namespaced_daemon_set(name, namespace, daemon_set)
        except API_ERRORS as e:
            raise _wrap(f"update daemonset {namespace}/{name}", e) from e

    # Rook/Ceph custom resources

    def get_custom_object(self, plural: str, namespace: str, name: str,
                          group: str = CEPH_GROUP, version: str = CEPH_VERSION) -> Optional[Dict[str, Any]]:
        try:
            return self.custom.get_namespaced_custom_object(group, version, namespace, plural, name)
        except API_ERRORS as e:
            if is_not_found(e):
                return None
            raise _wrap(f"get {plural} {namespace}/{name}", e) from e

    def replace_custom_object(self, plural: str, namespace: str, name: str, body: Dict[str, Any],
                              group: str = CEPH_GROUP, version: str = CEPH_VERSION) -> Dict[str, Any]:
        try:
            return self.custom.replace_namespaced_custom_object(group, version, namespace, plural, name, body)
        except API_ERRORS as e:
            raise _wrap(f"update {plural} {namespace}/{name}", e) from e

    # Certificate signing requests

    def list_csrs(self) -> List[client.V1CertificateSigningRequest]:
        try:
            return self.certificates.list_certificate_signing_request().items
        except API_ERRORS as e:
            raise _wrap("list certificate signing requests", e) from e

    def approve_csr(self, csr: client.V1CertificateSigningRequest) -> client.V1CertificateSigningRequest:
        name = csr.metadata.name
        try:
            return self.certificates.replace_certificate_signing_request_approval(name, csr)
        except API_ERRORS as e:
            raise _wrap(f"approve certificate signing request {name}", e) from e
