"""haproxy config and static pod manifest for the internal load balancer.

Every node runs haproxy as a static pod listening on localhost:6444 and
forwarding to the API servers of all control-plane nodes.
"""
import hashlib
import os
from typing import Any, Dict, Sequence

import yaml

from .constants import HAPROXY_CONTAINER, KUBE_SYSTEM_NS

LISTEN_PORT = 6444
API_SERVER_PORT = 6443
DEFAULT_HAPROXY_IMAGE = "haproxy:2.8"
CONFIG_HASH_ANNOTATION = "kurl.sh/haproxy-config-hash"

HAPROXY_CFG_HEADER = """global
  log stdout format raw local0
  maxconn 4000

defaults
  log global
  mode tcp
  option tcplog
  timeout connect 10s
  timeout client 1m
  timeout server 1m

frontend kubernetes-api
  bind 127.0.0.1:{listen_port}
  default_backend kubernetes-api

backend kubernetes-api
  option httpchk GET /healthz
  http-check expect status 200
  default-server inter 5s fall 3 rise 2 check check-ssl verify none
"""


def generate_config(primaries: Sequence[str]) -> str:
    """Render haproxy.cfg balancing across the given control-plane addresses."""
    lines = [HAPROXY_CFG_HEADER.format(listen_port=LISTEN_PORT)]
    for i, host in enumerate(primaries):
        lines.append(f"  server primary{i} {host}:{API_SERVER_PORT}\n")
    return "".join(lines)


def config_hash(config: str) -> str:
    return hashlib.sha256(config.encode()).hexdigest()[:7]


def manifest(image: str, config_digest: str) -> Dict[str, Any]:
    """Static pod manifest for haproxy, annotated with the config hash."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": "haproxy",
            "namespace": KUBE_SYSTEM_NS,
            "labels": {"app": "kurl-haproxy"},
            "annotations": {CONFIG_HASH_ANNOTATION: config_digest},
        },
        "spec": {
            "hostNetwork": True,
            "priorityClassName": "system-node-critical",
            "containers": [
                {
                    "name": HAPROXY_CONTAINER,
                    "image": image,
                    "imagePullPolicy": "IfNotPresent",
                    "volumeMounts": [
                        {"name": "haproxy-config", "mountPath": "/usr/local/etc/haproxy", "readOnly": True},
                    ],
                },
            ],
            "volumes": [
                {"name": "haproxy-config", "hostPath": {"path": "/etc/haproxy", "type": "DirectoryOrCreate"}},
            ],
        },
    }


def write_manifest(filename: str, primaries: Sequence[str], image: str = DEFAULT_HAPROXY_IMAGE) -> bool:
    """Write the manifest unless the file already carries the current config hash.

    Rewriting an unchanged manifest restarts haproxy for nothing.

    Returns:
        bool: True if the file was written
    """
    digest = config_hash(generate_config(primaries))
    if os.path.exists(filename):
        with open(filename) as f:
            if digest in f.read():
                return False

    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, mode=0o755, exist_ok=True)
    with open(filename, "w") as f:
        yaml.safe_dump(manifest(image, digest), f, default_flow_style=False, sort_keys=False)
    return True
