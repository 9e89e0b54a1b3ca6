"""Cross-replica reconciliation: longest valid chain wins, ties keep the incumbent."""

from order_ledger.reconcile.peers import PeerClient
from order_ledger.reconcile.reconciler import ReconcileResult, Reconciler, should_adopt

__all__ = ["PeerClient", "ReconcileResult", "Reconciler", "should_adopt"]
