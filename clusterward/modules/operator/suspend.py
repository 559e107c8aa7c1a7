"""Suspension registry shared by the reconciler and the API."""
import logging
import threading
from typing import Dict, Iterable

logger = logging.getLogger("clusterward.suspend")

PURGE = "purge"
CLEAR = "clear"
STORAGE = "storage"
CERTS = "certs"
INTERNAL_LB = "internal-lb"
CSR = "csr"
PROMETHEUS = "prometheus"
ROOK_PRIORITY = "rook-priority"

SUBSYSTEMS = (PURGE, CLEAR, STORAGE, CERTS, INTERNAL_LB, CSR, PROMETHEUS, ROOK_PRIORITY)


class SuspensionRegistry:
    """Named on/off switches for reconcile sub-flows, guarded by one lock."""

    def __init__(self, subsystems: Iterable[str] = SUBSYSTEMS):
        self._lock = threading.Lock()
        self._suspended: Dict[str, bool] = {name: False for name in subsystems}

    def _check(self, name: str) -> None:
        if name not in self._suspended:
            raise KeyError(f"unknown subsystem {name!r}, expected one of {', '.join(self._suspended)}")

    def suspend(self, name: str) -> None:
        with self._lock:
            self._check(name)
            self._suspended[name] = True
        logger.info("Suspended %s", name)

    def resume(self, name: str) -> None:
        with self._lock:
            self._check(name)
            self._suspended[name] = False
        logger.info("Resumed %s", name)

    def is_suspended(self, name: str) -> bool:
        with self._lock:
            self._check(name)
            return self._suspended[name]

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._suspended)
