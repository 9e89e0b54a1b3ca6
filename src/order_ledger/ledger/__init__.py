"""Ledger package: hash-chained, append-only audit record of order facts.

Public surface
--------------
- :func:`new_transaction` / :class:`Transaction` / :class:`TransactionKind`
- :func:`seal_block`, :func:`recompute_hash`, :func:`mine`,
  :func:`is_acceptable` / :class:`Block`
- :class:`Chain` / :func:`new_chain`: append, validation, order history
- :class:`ChainStore`: JSON snapshot persistence
- Exceptions from :mod:`order_ledger.ledger.errors`

Usage example
-------------
::

    from order_ledger.ledger import Chain, TransactionKind, new_transaction

    chain = Chain(difficulty=0)
    chain.append([new_transaction("order-42", TransactionKind.ORDER_CREATED, "user-7")])
    chain.append([new_transaction("order-42", "OrderPaid", "user-7", "merchant-3")])

    assert chain.is_valid()
    history = chain.transactions_for_order("order-42")
"""

from order_ledger.ledger.block import (
    GENESIS_PREVIOUS_HASH,
    Block,
    is_acceptable,
    mine,
    recompute_hash,
    seal_block,
)
from order_ledger.ledger.chain import (
    Chain,
    ChainSummary,
    ValidationIssue,
    ValidationReport,
    is_valid_sequence,
    new_chain,
    validate_sequence,
)
from order_ledger.ledger.errors import (
    EmptyChain,
    InvalidTransactionKind,
    LedgerError,
    LedgerIntegrityError,
    LedgerPersistenceError,
    PeerError,
    PeerProtocolError,
    PeerUnavailable,
)
from order_ledger.ledger.store import ChainStore
from order_ledger.ledger.transaction import Transaction, TransactionKind, new_transaction

__all__ = [
    "GENESIS_PREVIOUS_HASH",
    "Block",
    "Chain",
    "ChainStore",
    "ChainSummary",
    "EmptyChain",
    "InvalidTransactionKind",
    "LedgerError",
    "LedgerIntegrityError",
    "LedgerPersistenceError",
    "PeerError",
    "PeerProtocolError",
    "PeerUnavailable",
    "Transaction",
    "TransactionKind",
    "ValidationIssue",
    "ValidationReport",
    "is_acceptable",
    "is_valid_sequence",
    "mine",
    "new_chain",
    "new_transaction",
    "recompute_hash",
    "seal_block",
    "validate_sequence",
]
