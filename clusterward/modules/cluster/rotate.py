"""Host side of control-plane certificate rotation.

Runs inside the rotate-certs host task pod on a control-plane node. Output
lines starting with ``Rotated``, ``Restarting`` or ``Error`` are picked up by
the operator and logged at info or error level.
"""
import json
import os
import subprocess
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ...errors import ClusterwardError
from ...utils import format_duration, parse_rfc3339, utcnow

ETC_KUBERNETES = "/etc/kubernetes"

# Certificates whose renewal is only picked up after the static pod restarts.
# etcd reloads its certificates from disk and the API server reloads its
# serving certificate.
RESTART_MANIFESTS = {
    "controller-manager.conf": "kube-controller-manager.yaml",
    "scheduler.conf": "kube-scheduler.yaml",
    "apiserver-etcd-client": "kube-apiserver.yaml",
    "apiserver-kubelet-client": "kube-apiserver.yaml",
    "front-proxy-client": "kube-apiserver.yaml",
}


class KubeadmCerts:
    """Thin wrapper over ``kubeadm certs``."""

    def __init__(self, kubeadm: str = "kubeadm", conf_dir: str = ETC_KUBERNETES,
                 run: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.kubeadm = kubeadm
        self.conf_dir = conf_dir
        self.run = run

    @property
    def cert_dir(self) -> str:
        return os.path.join(self.conf_dir, "pki")

    def _kubeadm(self, *args: str) -> str:
        cmd = [self.kubeadm, "certs", *args, f"--cert-dir={self.cert_dir}"]
        result = self.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise ClusterwardError(f"{' '.join(cmd[:3])} failed: {result.stderr.strip()}")
        return result.stdout

    def check_expiration(self) -> List[Dict]:
        """Return kubeadm's certificate list with name, expirationDate, missing and externallyManaged."""
        output = self._kubeadm("check-expiration", "-o", "json")
        try:
            data = json.loads(output)
        except ValueError as e:
            raise ClusterwardError(f"parse kubeadm certs check-expiration output: {e}") from e
        return data.get("certificates") or []

    def renew(self, name: str) -> None:
        self._kubeadm("renew", name)


def restart_static_pod(filename: str, hostname: str, echo: Callable[[str], None] = print,
                       conf_dir: str = ETC_KUBERNETES) -> None:
    """Move a static pod manifest out and back so the kubelet recreates the pod."""
    manifest = os.path.join(conf_dir, "manifests", filename)
    tmp = os.path.join(conf_dir, filename)
    echo(f"Restarting static pod {manifest} on host {hostname}")
    os.rename(manifest, tmp)
    os.rename(tmp, manifest)


def rotate_certs(ttl: float, hostname: str, kubeadm: Optional[KubeadmCerts] = None,
                 echo: Callable[[str], None] = print, now: Optional[datetime] = None) -> List[str]:
    """Renew every kubeadm certificate expiring within ``ttl`` seconds.

    Returns:
        Names of the rotated certificates

    Raises:
        ClusterwardError: If a certificate is missing, externally managed or fails to renew
    """
    kubeadm = kubeadm or KubeadmCerts()
    now = now or utcnow()
    rotated = []
    restarts = []

    for cert in kubeadm.check_expiration():
        name = cert.get("name", "")
        if cert.get("missing"):
            raise ClusterwardError(f"Missing certificate {name} on {hostname}")

        residual = (parse_rfc3339(cert["expirationDate"]) - now).total_seconds()
        if residual > ttl:
            echo(f"{name} has {format_duration(residual)} until expiration on host {hostname}, skipping renewal")
            continue
        if cert.get("externallyManaged"):
            raise ClusterwardError(f"{name} has external CA on host {hostname}")

        kubeadm.renew(name)
        echo(f"Rotated {name} on host {hostname}")
        rotated.append(name)

        manifest = RESTART_MANIFESTS.get(name)
        if manifest and manifest not in restarts:
            restarts.append(manifest)

    for manifest in restarts:
        restart_static_pod(manifest, hostname, echo, kubeadm.conf_dir)

    return rotated
