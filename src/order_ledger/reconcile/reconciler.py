"""Replica reconciliation: adopt the longest valid peer chain.

Adoption rule
-------------
A peer chain replaces the local chain wholesale if and only if

1. it passes full validation, and
2. its head height is strictly greater than the local head height.

Equal heights keep the incumbent, which stops two replicas from swapping
back and forth.  There is no partial merge: blocks are only meaningfully
ordered inside one chain's hash links.

Pass sequence (``reconcile_once``)
----------------------------------
For each configured peer, in order:

1. Fetch ``(height, head_hash)``.  Skip the peer unless it is strictly
   longer than the *current* local chain (which may already have been
   replaced earlier in this pass, so later equal-height peers lose).
2. Fetch the full block list.
3. Validate once, then swap via :meth:`Chain.replace_blocks` with that
   report; it re-checks the height against the head at swap time under the
   chain lock.

Failures (unreachable peer, HTTP error, malformed payload, invalid chain)
are logged and recorded in the result.  They are never raised; the local
chain stays authoritative and the peer is retried on the next cycle.

Scheduling
----------
:meth:`Reconciler.start` runs passes on a daemon thread every
``interval_seconds``; :meth:`Reconciler.stop` signals the thread and joins.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from order_ledger.ledger.block import Block
from order_ledger.ledger.chain import Chain, ValidationReport, validate_sequence
from order_ledger.ledger.errors import LedgerPersistenceError, PeerError
from order_ledger.reconcile.peers import PeerClient

logger = logging.getLogger(__name__)


def should_adopt(
    local_height: int,
    candidate: Sequence[Block],
    report: ValidationReport | None = None,
) -> bool:
    """Return ``True`` iff ``candidate`` is valid and strictly longer.

    ``report`` is an already computed :func:`validate_sequence` result for
    ``candidate``; it is computed here when omitted.
    """
    if not candidate or candidate[-1].height <= local_height:
        return False
    if report is None:
        report = validate_sequence(candidate)
    return report.valid


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass.

    Attributes:
        local_height: Local head height when the pass started.
        final_height: Local head height when the pass finished.
        adopted_from: Peer whose chain was adopted last, if any.
        skipped: Peers that were not longer than the local chain.
        rejected: Peers whose longer chain failed validation.
        failures: Peer URL → error message for unreachable/malformed peers.
    """

    local_height: int
    final_height: int = 0
    adopted_from: str | None = None
    skipped: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def adopted(self) -> bool:
        return self.adopted_from is not None


class Reconciler:
    """Periodically compare the local chain with peers and adopt a longer one.

    Args:
        chain: The local chain handle.
        peers: Base URLs of peer ledger instances.
        interval_seconds: Delay between scheduled passes.
        client: Peer client; a default :class:`PeerClient` if omitted.
        on_adopt: Called with the chain after a successful adoption
            (typically :meth:`ChainStore.save`).
    """

    def __init__(
        self,
        chain: Chain,
        peers: Sequence[str],
        *,
        interval_seconds: float = 30.0,
        client: PeerClient | None = None,
        on_adopt: Callable[[Chain], None] | None = None,
    ) -> None:
        self._chain = chain
        self._peers = list(peers)
        self._interval = interval_seconds
        self._client = client or PeerClient()
        self._on_adopt = on_adopt
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def peers(self) -> list[str]:
        return list(self._peers)

    # ------------------------------------------------------------------
    # One pass
    # ------------------------------------------------------------------

    def reconcile_once(self) -> ReconcileResult:
        """Run a single reconciliation pass over every peer."""
        result = ReconcileResult(local_height=self._chain.height)

        for peer in self._peers:
            try:
                summary = self._client.fetch_summary(peer)
                if summary.height <= self._chain.height:
                    result.skipped.append(peer)
                    continue
                blocks = self._client.fetch_blocks(peer)
            except PeerError as exc:
                logger.warning("Reconcile: peer %s unavailable: %s", peer, exc)
                result.failures[peer] = str(exc)
                continue

            report = validate_sequence(blocks)
            if not should_adopt(self._chain.height, blocks, report):
                logger.warning(
                    "Reconcile: rejected chain from %s (advertised height %d)",
                    peer,
                    summary.height,
                )
                result.rejected.append(peer)
                continue

            if self._chain.replace_blocks(blocks, report=report):
                result.adopted_from = peer
                self._persist_adoption()
            else:
                # A local append overtook the peer between check and swap.
                result.skipped.append(peer)

        result.final_height = self._chain.height
        if result.adopted:
            logger.info(
                "Reconcile: adopted chain from %s (height %d -> %d)",
                result.adopted_from,
                result.local_height,
                result.final_height,
            )
        return result

    def _persist_adoption(self) -> None:
        if self._on_adopt is None:
            return
        try:
            self._on_adopt(self._chain)
        except LedgerPersistenceError:
            logger.error("Reconcile: failed to persist adopted chain", exc_info=True)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background reconciliation thread (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="ledger-reconciler", daemon=True
        )
        self._thread.start()
        logger.info(
            "Reconciler started: %d peer(s), every %.1fs", len(self._peers), self._interval
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the background thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.reconcile_once()
            except Exception:
                logger.exception("Reconcile pass failed; retrying next cycle")
