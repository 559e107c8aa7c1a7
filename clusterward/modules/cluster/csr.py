import logging
from typing import List

from kubernetes import client

from ...gateway import KubeGateway
from ...utils import utcnow
from .constants import KUBELET_SERVING_SIGNER, NODE_USER_PREFIX

logger = logging.getLogger("clusterward.csr")


def is_pending_kubelet_serving(csr: client.V1CertificateSigningRequest) -> bool:
    """A kubelet-serving CSR from a node that nobody has approved or denied yet."""
    if csr.spec.signer_name != KUBELET_SERVING_SIGNER:
        return False
    if not (csr.spec.username or "").startswith(NODE_USER_PREFIX):
        return False
    return not (csr.status and csr.status.conditions)


def approve_kubelet_csrs(gateway: KubeGateway) -> List[str]:
    """Approve pending kubelet-serving certificate signing requests.

    Returns:
        Names of the approved CSRs
    """
    approved = []
    for csr in gateway.list_csrs():
        if not is_pending_kubelet_serving(csr):
            continue
        if csr.status is None:
            csr.status = client.V1CertificateSigningRequestStatus()
        csr.status.conditions = [
            client.V1CertificateSigningRequestCondition(
                type="Approved",
                status="True",
                reason="AutoApproved",
                message="Auto approving kubelet serving certificate after SubjectAccessReview.",
                last_update_time=utcnow(),
            )
        ]
        gateway.approve_csr(csr)
        logger.info("Approved kubelet serving certificate signing request %s", csr.metadata.name)
        approved.append(csr.metadata.name)
    return approved
