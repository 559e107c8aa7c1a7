"""Drives the reconciler on a fixed interval."""
import logging
import threading
import time
from typing import Optional

from ...errors import GatewayError, ReconcileErrors
from ...gateway import KubeGateway
from ...utils import utcnow
from ..cluster.models import OperatorStatus
from .reconciler import Reconciler

logger = logging.getLogger("clusterward.poller")

DEFAULT_FULL_RECONCILE_EVERY = 60


class Poller:
    def __init__(self, reconciler: Reconciler, gateway: KubeGateway, interval: float,
                 full_reconcile_every: int = DEFAULT_FULL_RECONCILE_EVERY,
                 status: Optional[OperatorStatus] = None):
        self.reconciler = reconciler
        self.gateway = gateway
        self.interval = interval
        self.full_reconcile_every = full_reconcile_every
        self.status = status or OperatorStatus()

    def tick(self, index: int) -> bool:
        """Run one reconcile. Every Nth tick, starting with the first, is a full reconcile.

        Returns:
            bool: True if the reconcile completed without errors
        """
        full_reconcile = index % self.full_reconcile_every == 0
        try:
            nodes = self.gateway.list_nodes()
        except GatewayError as e:
            logger.info("Skipping reconcile: failed to list nodes: %s", e)
            self.status.record_skip(f"list nodes: {e}")
            return False

        started = time.monotonic()
        errors = []
        try:
            self.reconciler.reconcile(nodes, full_reconcile)
        except ReconcileErrors as e:
            logger.info("Reconcile failed: %s", e)
            errors = [str(err) for err in e.errors]
        except Exception as e:
            logger.exception("Reconcile failed: %s", e)
            errors = [str(e)]

        duration = time.monotonic() - started
        self.status.record_tick(utcnow(), duration, full_reconcile, len(nodes), errors)
        logger.debug("Reconcile %d finished in %.1fs (full=%s)", index, duration, full_reconcile)
        return not errors

    def run(self, cancel: threading.Event, max_ticks: Optional[int] = None) -> int:
        """Tick until ``cancel`` is set or ``max_ticks`` reconciles have run.

        Returns:
            int: Number of ticks run
        """
        logger.info("Starting reconcile loop every %.0fs", self.interval)
        self.status.running = True
        index = 0
        try:
            while not cancel.is_set():
                self.tick(index)
                index += 1
                if max_ticks is not None and index >= max_ticks:
                    break
                if cancel.wait(self.interval):
                    break
        finally:
            self.status.running = False
        logger.info("Reconcile loop stopped after %d tick(s)", index)
        return index
