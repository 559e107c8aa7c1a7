"""Certificate rotation.

Control-plane certificates are rotated in place by a host task on each
control-plane node. Certificates kept in Secrets are renewed through a
CertificateAuthority and the pods serving them are restarted.
"""
import base64
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ...gateway import KubeGateway
from ...utils import format_duration
from .constants import CONTROL_PLANE_ROLE_LABEL, MASTER_ROLE_LABEL, ROTATE_CERTS
from .hosttask import HostTaskExecutor
from .markers import MarkerStore
from .models import HostMount, HostTask, SecretCertificate

logger = logging.getLogger("clusterward.certs")

ETC_KUBERNETES = "/etc/kubernetes"
KUBEADM_BINARY = "/usr/bin/kubeadm"


class CertificateAuthority(ABC):
    """Renews certificates. Key generation and signing live outside the operator."""

    @abstractmethod
    def expires_in(self, cert_pem: bytes) -> float:
        """Seconds until the certificate expires."""

    @abstractmethod
    def renew(self, cert_pem: bytes, key_pem: bytes) -> Tuple[bytes, bytes]:
        """Return a new certificate and key with the same subject and names."""


class CertRotator:
    def __init__(
        self,
        gateway: KubeGateway,
        executor: HostTaskExecutor,
        markers: MarkerStore,
        image: str,
        namespace: str,
        ttl: float,
        check_interval: float,
        binary: str = "clusterward",
        authority: Optional[CertificateAuthority] = None,
        secret_certificates: Sequence[SecretCertificate] = (),
    ):
        self.gateway = gateway
        self.executor = executor
        self.markers = markers
        self.image = image
        self.namespace = namespace
        self.ttl = ttl
        self.check_interval = check_interval
        self.binary = binary
        self.authority = authority
        self.secret_certificates = list(secret_certificates)

    def task(self) -> HostTask:
        return HostTask(
            kind=ROTATE_CERTS,
            image=self.image,
            namespace=self.namespace,
            command=[self.binary, "rotate-certs", f"--ttl={format_duration(self.ttl)}"],
            mounts=[
                HostMount(name="etc-kubernetes", host_path=ETC_KUBERNETES, mount_path=ETC_KUBERNETES),
                HostMount(name="kubeadm", host_path=KUBEADM_BINARY, mount_path=KUBEADM_BINARY),
            ],
            working_dir=ETC_KUBERNETES,
            container_name="rotate-certs",
        )

    def rotate_if_due(self, cancel: Optional[threading.Event] = None, force: bool = False) -> bool:
        """Rotate all certificates if the last attempt is older than the check interval.

        Returns:
            bool: True if a rotation sweep ran
        """
        if not self.markers.is_due(ROTATE_CERTS, self.check_interval, force):
            logger.debug("Certificate rotation not due")
            return False
        self.rotate_all(cancel)
        return True

    def rotate_all(self, cancel: Optional[threading.Event] = None) -> None:
        self.rotate_control_plane_certs(cancel)
        self.rotate_secret_certs()

    def control_plane_nodes(self) -> List[str]:
        nodes = self.gateway.list_nodes(label_selector=f"{MASTER_ROLE_LABEL}=")
        if not nodes:
            nodes = self.gateway.list_nodes(label_selector=f"{CONTROL_PLANE_ROLE_LABEL}=")
        return [node.metadata.name for node in nodes]

    def rotate_control_plane_certs(self, cancel: Optional[threading.Event] = None) -> None:
        names = self.control_plane_nodes()
        if not names:
            logger.warning("No control-plane nodes found for certificate rotation")
            return
        logger.info("Rotating control-plane certificates on %d node(s)", len(names))
        self.executor.run_on_nodes(names, self.task(), cancel)

    def rotate_secret_certs(self) -> None:
        if self.authority is None:
            logger.debug("No certificate authority configured, skipping secret certificate renewal")
            return
        for cert in self.secret_certificates:
            self.rotate_secret_cert(cert)

    def rotate_secret_cert(self, cert: SecretCertificate) -> bool:
        """Renew one Secret certificate if it expires within the TTL.

        Returns:
            bool: True if the certificate was renewed
        """
        secret = self.gateway.get_secret(cert.namespace, cert.secret)
        if secret is None or not secret.data or cert.cert_key not in secret.data:
            logger.debug("Certificate %s/%s not found", cert.namespace, cert.secret)
            return False

        cert_pem = base64.b64decode(secret.data[cert.cert_key])
        key_pem = base64.b64decode(secret.data.get(cert.key_key, ""))
        remaining = self.authority.expires_in(cert_pem)
        if remaining > self.ttl:
            logger.debug("Certificate %s/%s has %s until expiration, skipping renewal",
                         cert.namespace, cert.secret, format_duration(remaining))
            return False

        new_cert, new_key = self.authority.renew(cert_pem, key_pem)
        secret.data[cert.cert_key] = base64.b64encode(new_cert).decode()
        secret.data[cert.key_key] = base64.b64encode(new_key).decode()
        self.gateway.update_secret(secret)
        logger.info("Renewed certificate %s/%s", cert.namespace, cert.secret)

        if cert.restart_selector:
            self.gateway.delete_pods(cert.namespace, cert.restart_selector)
            logger.info("Restarted pods %s in %s", cert.restart_selector, cert.namespace)
        return True
