"""Names shared by the cluster maintenance modules."""

# Taints
NOT_READY_TAINT = "node.kubernetes.io/not-ready"
UNREACHABLE_TAINT = "node.kubernetes.io/unreachable"
NETWORK_UNAVAILABLE_TAINT = "node.kubernetes.io/network-unavailable"
UNSCHEDULABLE_TAINT = "node.kubernetes.io/unschedulable"

NOT_READY_TAINTS = frozenset([
    NOT_READY_TAINT,
    UNREACHABLE_TAINT,
    NETWORK_UNAVAILABLE_TAINT,
    UNSCHEDULABLE_TAINT,
])

# Labels
MASTER_ROLE_LABEL = "node-role.kubernetes.io/master"
CONTROL_PLANE_ROLE_LABEL = "node-role.kubernetes.io/control-plane"
HOSTNAME_LABEL = "kubernetes.io/hostname"
TASK_LABEL = "kurl.sh/task"

# Host task kinds
ROTATE_CERTS = "rotate-certs"
UPDATE_INTERNAL_LB = "update-internal-lb"
SET_KUBECONFIG_SERVER = "set-kubeconfig-server"

ROTATE_CERTS_LAST_ATTEMPTED = "last-attempted"

# Rook/Ceph
ROOK_CEPH_NS = "rook-ceph"
CEPH_CLUSTER_NAME = "rook-ceph"
CEPH_TOOLS_SELECTOR = "app=rook-ceph-tools"
CEPH_TOOLS_CONTAINER = "rook-ceph-tools"
CEPH_OSD_SELECTOR = "app=rook-ceph-osd"
CEPH_OSD_ID_LABEL = "ceph-osd-id"
CEPH_DEVICE_HEALTH_METRICS_POOL = "device_health_metrics"
CEPH_ENOENT_EXIT_CODE = 2
ROOK_AGENT_DAEMON_SET = "rook-ceph-agent"
# Ceph daemon deployments that get the Rook priority class, in order
ROOK_PRIORITY_SELECTORS = (
    "app=rook-ceph-osd",
    "app=rook-ceph-mds",
    "app=rook-ceph-mgr",
    "app=rook-ceph-mon",
)

OBJECT_STORE_ROOT_POOL = ".rgw.root"
OBJECT_STORE_METADATA_POOLS = (
    "rgw.control",
    "rgw.meta",
    "rgw.log",
    "rgw.buckets.index",
    "rgw.buckets.non-ec",
)
OBJECT_STORE_DATA_POOLS = ("rgw.buckets.data",)

# kubeadm
KUBE_SYSTEM_NS = "kube-system"
KUBEADM_CONFIG_MAP = "kubeadm-config"
CLUSTER_STATUS_KEY = "ClusterStatus"
KUBE_APISERVER_SELECTOR = "component=kube-apiserver,tier=control-plane"
KUBE_APISERVER_ENDPOINT_ANNOTATION = "kubeadm.kubernetes.io/kube-apiserver.advertise-address.endpoint"

# etcd
ETCD_PEER_PORT = 2380
ETCD_CLIENT_PORT = 2379

# Internal load balancer
HAPROXY_SELECTOR = "app=kurl-haproxy"
HAPROXY_CONTAINER = "haproxy"
HAPROXY_SIGHUP = ["/bin/kill", "-HUP", "1"]

# Pods stuck terminating this long past their deletion timestamp are force deleted
TERMINATING_POD_GRACE_SECONDS = 30

KUBELET_SERVING_SIGNER = "kubernetes.io/kubelet-serving"
NODE_USER_PREFIX = "system:node:"
