"""Typed exceptions for the ledger package.

Design intent:
    - Construction-time rejections (bad kind, missing order id) raise so a
      malformed fact never enters the chain.
    - Tampering found by validation is reported as data
      (:class:`~order_ledger.ledger.chain.ValidationReport`), not raised.
      Only loaders turn a failed validation into :exc:`LedgerIntegrityError`,
      because a process must not resume appending onto a corrupt chain.
    - Peer failures are non-fatal; the reconciler catches :exc:`PeerError`,
      logs it, and retries on the next cycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from order_ledger.ledger.chain import ValidationReport


class LedgerError(RuntimeError):
    """Base exception for ledger failures."""


class InvalidTransactionKind(LedgerError, ValueError):
    """A transaction was built with an unknown kind, a missing required field,
    or text that cannot be encoded as UTF-8."""


class EmptyChain(LedgerError):
    """The chain has no blocks.  Signals a construction bug; never expected."""


class LedgerIntegrityError(LedgerError):
    """A rehydrated chain failed validation.

    Args:
        message: Human-readable summary.
        report: The full validation report listing every violation.
    """

    def __init__(self, message: str, *, report: ValidationReport) -> None:
        super().__init__(message)
        self.report = report


class LedgerPersistenceError(LedgerError):
    """Reading or writing the chain snapshot failed."""


class PeerError(LedgerError):
    """Base exception for peer exchange failures.

    Attributes:
        peer_url: Base URL of the peer that failed.
    """

    def __init__(self, peer_url: str, message: str) -> None:
        super().__init__(f"{peer_url}: {message}")
        self.peer_url = peer_url


class PeerUnavailable(PeerError):
    """The peer could not be reached or answered with an HTTP error."""


class PeerProtocolError(PeerError):
    """The peer answered with a payload that does not decode into a chain."""
