import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ProtocolError

from clusterward.errors import GatewayError
from clusterward.gateway import KubeGateway
from clusterward.modules.cluster.hosttask import HostTaskExecutor
from clusterward.modules.cluster.models import HostTask
from clusterward.modules.operator.poller import Poller


class UnreachableCore:
    """CoreV1Api stand-in for an API server that refuses connections."""

    def __init__(self, error):
        self.error = error

    def __getattr__(self, name):
        def call(*args, **kwargs):
            raise self.error
        return call


def _gateway(error):
    gateway = KubeGateway(client.ApiClient())
    gateway.core = UnreachableCore(error)
    return gateway


def test_connection_errors_are_wrapped():
    gateway = _gateway(MaxRetryError(None, "/api/v1/nodes"))

    with pytest.raises(GatewayError) as exc:
        gateway.list_nodes()

    assert str(exc.value).startswith("list nodes: ")
    assert exc.value.status is None
    assert isinstance(exc.value.__cause__, MaxRetryError)


def test_dropped_connections_are_wrapped():
    gateway = _gateway(ProtocolError("Connection aborted."))

    with pytest.raises(GatewayError):
        gateway.get_pod("kurl", "rotate-certs-1")
    with pytest.raises(GatewayError):
        gateway.get_node("node-1")


def test_api_errors_keep_their_status():
    gateway = _gateway(ApiException(status=503, reason="Service Unavailable"))

    with pytest.raises(GatewayError) as exc:
        gateway.list_nodes()

    assert exc.value.status == 503
    assert str(exc.value) == "list nodes: 503 Service Unavailable"


def test_not_found_is_none():
    gateway = _gateway(ApiException(status=404, reason="Not Found"))

    assert gateway.get_node("node-1") is None
    assert not gateway.delete_node("node-1")


def test_tick_survives_unreachable_api_server():
    class Reconciler:
        runs = 0

        def reconcile(self, nodes, full_reconcile=False):
            self.runs += 1

    reconciler = Reconciler()
    poller = Poller(reconciler, _gateway(MaxRetryError(None, "/api/v1/nodes")), interval=0)

    assert not poller.tick(0)
    assert reconciler.runs == 0
    assert poller.status.last_errors[0].startswith("list nodes: ")


def test_host_task_keeps_polling_through_api_restart():
    gateway = KubeGateway(client.ApiClient())
    pod = client.V1Pod(metadata=client.V1ObjectMeta(name="rotate-certs-1"))
    done = client.V1Pod(metadata=pod.metadata, status=client.V1PodStatus(phase="Succeeded"))
    responses = [MaxRetryError(None, "/api/v1/namespaces/kurl/pods/rotate-certs-1"), done]

    class RestartingCore:
        def create_namespaced_pod(self, namespace, body):
            return pod

        def read_namespaced_pod(self, name, namespace):
            response = responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        def read_namespaced_pod_log(self, name, namespace, **kwargs):
            return "Rotated apiserver on host node-1\n"

        def delete_collection_namespaced_pod(self, namespace, **kwargs):
            return None

    gateway.core = RestartingCore()
    task = HostTask(kind="rotate-certs", image="clusterward:test", namespace="kurl", command=["true"])

    HostTaskExecutor(gateway, poll_interval=0, node_delay=0).run_on_node("node-1", task)

    assert responses == []
