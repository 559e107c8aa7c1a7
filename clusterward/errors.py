"""Exception hierarchy for clusterward.

Remote failures are wrapped in one of these with enough context to tell
which operation failed, and chained to the original exception with
``raise ... from``.
"""
from typing import List, Optional, Sequence


class ClusterwardError(Exception):
    """Base class for all operator errors."""


class GatewayError(ClusterwardError):
    """A call against the Kubernetes API failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class HostTaskFailed(ClusterwardError):
    """A host task pod reached the Failed phase."""

    def __init__(self, kind: str, node: str, pod: str, error_lines: Optional[List[str]] = None):
        self.kind = kind
        self.node = node
        self.pod = pod
        self.error_lines = list(error_lines or [])
        message = f"{kind} task pod {pod} failed on node {node}"
        if self.error_lines:
            message += ": " + "; ".join(self.error_lines)
        super().__init__(message)


class HostTaskCancelled(ClusterwardError):
    """Polling for a host task was cancelled before it finished."""


class HostTaskBatchError(ClusterwardError):
    """One or more nodes failed in a batch run with errors collected."""

    def __init__(self, kind: str, errors: Sequence[Exception]):
        self.kind = kind
        self.errors = list(errors)
        super().__init__(f"{kind}: {len(self.errors)} node(s) failed: " + "; ".join(str(e) for e in self.errors))


class StorageError(ClusterwardError):
    """A Rook/Ceph operation failed."""


class CephENOENT(StorageError):
    """A ceph command exited with code 2 (no such entity)."""


class EtcdError(ClusterwardError):
    """An etcd membership call failed."""


class PurgeError(ClusterwardError):
    """A step of the node purge protocol failed."""

    def __init__(self, node: str, step: str, cause: Exception):
        self.node = node
        self.step = step
        self.cause = cause
        super().__init__(f"purge node {node}: {step}: {cause}")


class ReconcileErrors(ClusterwardError):
    """Errors collected from independent sub-flows of one reconcile tick."""

    def __init__(self, errors: Sequence[Exception]):
        self.errors = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))
