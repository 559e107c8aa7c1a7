"""
Data models for cluster maintenance.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import TASK_LABEL


@dataclass
class HostMount:
    """A host path mounted into a host task pod."""
    name: str
    host_path: str
    mount_path: str


@dataclass
class HostTask:
    """A privileged command run in a pod pinned to one node."""
    kind: str
    image: str
    namespace: str
    command: List[str]
    mounts: List[HostMount] = field(default_factory=list)
    privileged: bool = False
    init_command: Optional[List[str]] = None
    working_dir: Optional[str] = None
    container_name: Optional[str] = None

    @property
    def selector(self) -> str:
        return f"{TASK_LABEL}={self.kind}"

    @property
    def generate_name(self) -> str:
        return f"{self.kind}-"


@dataclass
class SecretCertificate:
    """A certificate and key stored in a Secret, and the pods that serve it."""
    namespace: str
    secret: str
    cert_key: str = "tls.crt"
    key_key: str = "tls.key"
    restart_selector: Optional[str] = None


@dataclass
class PurgeTask:
    """Per-call state of one node purge."""
    node_name: str
    storage: bool
    node: Optional[Any] = None
    maybe_master: bool = True
    ip: str = ""
    remaining_ips: Optional[List[str]] = None
    steps: List[str] = field(default_factory=list)

    def complete(self, step: str) -> None:
        self.steps.append(step)


@dataclass(frozen=True)
class ReplicationTarget:
    """Replication factor derived from the number of ready storage nodes."""
    factor: int

    @classmethod
    def from_ready_count(cls, ready: int, minimum: int, maximum: int) -> "ReplicationTarget":
        return cls(factor=max(minimum, min(ready, maximum)))

    @property
    def min_size(self) -> int:
        # Never allow writes with a single copy unless that is all there is
        return 1 if self.factor == 1 else 2


@dataclass
class OperatorStatus:
    """Tracks reconcile progress for the status API."""
    ticks: int = 0
    running: bool = False
    nodes: int = 0
    last_reconcile: Optional[datetime] = None
    last_duration: Optional[float] = None
    last_full_reconcile: bool = False
    last_errors: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_tick(self, when: datetime, duration: float, full_reconcile: bool,
                    nodes: int, errors: List[str]) -> None:
        """Record the outcome of one reconcile tick."""
        with self._lock:
            self.ticks += 1
            self.last_reconcile = when
            self.last_duration = duration
            self.last_full_reconcile = full_reconcile
            self.nodes = nodes
            self.last_errors = list(errors)

    def record_skip(self, error: str) -> None:
        with self._lock:
            self.ticks += 1
            self.last_errors = [error]

    def as_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "ticks": self.ticks,
                "running": self.running,
                "nodes": self.nodes,
                "last_reconcile": self.last_reconcile.isoformat() if self.last_reconcile else None,
                "last_duration": self.last_duration,
                "last_full_reconcile": self.last_full_reconcile,
                "last_errors": list(self.last_errors),
            }
