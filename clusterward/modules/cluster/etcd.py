"""etcd membership through the v3 JSON gateway."""
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import requests

from ...errors import EtcdError
from .constants import ETCD_CLIENT_PORT, ETCD_PEER_PORT
from .kubeadm import join_host_port

logger = logging.getLogger("clusterward.etcd")


def peer_url(ip: str) -> str:
    return "https://" + join_host_port(ip, ETCD_PEER_PORT)


def client_url(ip: str) -> str:
    return "https://" + join_host_port(ip, ETCD_CLIENT_PORT)


class EtcdMembership:
    """Lists and removes etcd members using the healthcheck client certificate."""

    def __init__(self, certificates_dir: str = "/etc/kubernetes/pki",
                 session: Optional[requests.Session] = None, timeout: float = 60.0):
        self.certificates_dir = certificates_dir
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            session.verify = os.path.join(certificates_dir, "etcd/ca.crt")
            session.cert = (
                os.path.join(certificates_dir, "etcd/healthcheck-client.crt"),
                os.path.join(certificates_dir, "etcd/healthcheck-client.key"),
            )
        self.session = session

    def _post(self, endpoints: Sequence[str], path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        last_error: Optional[Exception] = None
        for endpoint in endpoints:
            try:
                response = self.session.post(f"{endpoint}{path}", json=body, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as e:
                logger.debug("etcd %s via %s failed: %s", path, endpoint, e)
                last_error = e
        raise EtcdError(f"{path}: no etcd endpoint succeeded: {last_error}")

    def list_members(self, endpoints: Sequence[str]) -> List[Dict[str, Any]]:
        return self._post(endpoints, "/v3/cluster/member/list", {}).get("members", []) or []

    def remove_peer(self, ip: str, remaining_ips: Sequence[str]) -> bool:
        """Remove the member whose peer URL matches ``ip``.

        Args:
            ip: Address of the departed member
            remaining_ips: Addresses of the members to send requests to

        Returns:
            bool: True if a member was removed, False if none matched
        """
        removed_peer_url = peer_url(ip)
        endpoints = [client_url(addr) for addr in remaining_ips]
        if not endpoints:
            raise EtcdError(f"remove etcd member {removed_peer_url}: no remaining etcd endpoints")

        member_id = None
        for member in self.list_members(endpoints):
            urls = member.get("peerURLs") or []
            if urls and urls[0] == removed_peer_url:
                member_id = member.get("ID")
                break

        if member_id is None:
            logger.info("Etcd cluster does not have member %s", removed_peer_url)
            return False

        self._post(endpoints, "/v3/cluster/member/remove", {"ID": member_id})
        logger.info("Removed etcd member %s", member_id)
        return True
