import json
import subprocess

import pytest

from clusterward.errors import ClusterwardError
from clusterward.modules.cluster.rotate import KubeadmCerts, rotate_certs
from clusterward.tests.fakes import NOW

DAY = 86400


class FakeKubeadm:
    """Answers kubeadm certs commands like the real binary would."""

    def __init__(self, certificates):
        self.certificates = certificates
        self.commands = []

    def __call__(self, cmd, capture_output=True, text=True):
        self.commands.append(cmd)
        if cmd[2] == "check-expiration":
            return subprocess.CompletedProcess(cmd, 0, json.dumps({"certificates": self.certificates}), "")
        return subprocess.CompletedProcess(cmd, 0, "", "")


def _cert(name, expires, **kwargs):
    cert = {"name": name, "expirationDate": expires, "missing": False, "externallyManaged": False}
    cert.update(kwargs)
    return cert


@pytest.fixture
def conf_dir(tmp_path):
    manifests = tmp_path / "manifests"
    manifests.mkdir()
    for name in ("kube-apiserver.yaml", "kube-controller-manager.yaml", "kube-scheduler.yaml"):
        (manifests / name).write_text("kind: Pod\n")
    return tmp_path


def test_rotates_expiring_certs_and_restarts_static_pods(conf_dir):
    run = FakeKubeadm([
        _cert("apiserver", "2024-05-10T00:00:00Z"),
        _cert("apiserver-kubelet-client", "2024-05-10T00:00:00Z"),
        _cert("scheduler.conf", "2025-05-01T00:00:00Z"),
    ])
    lines = []

    rotated = rotate_certs(30 * DAY, "m1", KubeadmCerts(conf_dir=str(conf_dir), run=run), echo=lines.append, now=NOW)

    assert rotated == ["apiserver", "apiserver-kubelet-client"]
    assert [cmd[2:4] for cmd in run.commands[1:]] == [["renew", "apiserver"], ["renew", "apiserver-kubelet-client"]]
    assert "Rotated apiserver on host m1" in lines
    restarts = [line for line in lines if line.startswith("Restarting")]
    assert restarts == [f"Restarting static pod {conf_dir / 'manifests' / 'kube-apiserver.yaml'} on host m1"]
    assert (conf_dir / "manifests" / "kube-apiserver.yaml").exists()
    assert any(line.startswith("scheduler.conf has") for line in lines)


def test_missing_certificate_is_an_error(conf_dir):
    run = FakeKubeadm([_cert("apiserver", "2024-05-10T00:00:00Z", missing=True)])
    with pytest.raises(ClusterwardError):
        rotate_certs(30 * DAY, "m1", KubeadmCerts(conf_dir=str(conf_dir), run=run), echo=lambda line: None, now=NOW)


def test_kubeadm_failure_is_an_error(conf_dir):
    def run(cmd, capture_output=True, text=True):
        return subprocess.CompletedProcess(cmd, 1, "", "unknown flag")

    with pytest.raises(ClusterwardError):
        KubeadmCerts(conf_dir=str(conf_dir), run=run).check_expiration()
