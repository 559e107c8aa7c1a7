from datetime import timedelta

from kubernetes import client

from clusterward.modules.cluster.nodes import (
    internal_ip,
    is_dead,
    is_master,
    is_ready,
    ready_counts,
    storage_eligible,
)
from clusterward.tests.fakes import NOW, make_node


def test_ready_node_without_taints():
    assert is_ready(make_node("a"))


def test_not_ready_taints_match_exact_keys():
    node = make_node("a")
    node.spec.taints = [client.V1Taint(key="node.kubernetes.io/unschedulable", effect="NoSchedule")]
    assert not is_ready(node)

    node.spec.taints = [client.V1Taint(key="node.kubernetes.io/not-ready-soon", effect="NoSchedule")]
    assert is_ready(node)


def test_master_by_either_role_label():
    assert is_master(make_node("a", master=True))
    assert is_master(make_node("b", labels={"node-role.kubernetes.io/master": ""}))
    assert not is_master(make_node("c"))


def test_ready_counts_by_role():
    nodes = [
        make_node("m1", master=True),
        make_node("m2", master=True, ready=False),
        make_node("w1"),
        make_node("w2"),
        make_node("w3", unreachable_since=NOW),
    ]
    assert ready_counts(nodes) == (1, 2)


def test_dead_only_after_toleration():
    toleration = 3600
    assert not is_dead(make_node("a", unreachable_since=NOW - timedelta(seconds=toleration)), toleration, NOW)
    assert is_dead(make_node("b", unreachable_since=NOW - timedelta(seconds=toleration + 1)), toleration, NOW)
    assert not is_dead(make_node("c", ready=False), toleration, NOW)
    assert not is_dead(make_node("d"), toleration, NOW)


def test_unreachable_without_time_added_is_not_dead():
    node = make_node("a")
    node.spec.taints = [client.V1Taint(key="node.kubernetes.io/unreachable", effect="NoExecute")]
    assert not is_dead(node, 0, NOW)


def test_internal_ip():
    assert internal_ip(make_node("a", ip="10.1.2.3")) == "10.1.2.3"
    assert internal_ip(make_node("b", ip="")) == ""


def test_storage_eligible_label():
    labelled = make_node("a", labels={"storage": "ceph"})
    other = make_node("b", labels={"storage": "local"})
    assert storage_eligible(labelled, "storage=ceph")
    assert not storage_eligible(other, "storage=ceph")
    assert storage_eligible(other, "storage")
    assert storage_eligible(make_node("c"), "")
    assert not storage_eligible(make_node("d", ready=False), "")
