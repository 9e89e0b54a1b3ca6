"""Blocks: ordered, hash-sealed batches of transactions.

Hashing
-------
A block's digest is SHA-256 over the compact JSON array::

    [height, previous_hash, timestamp, [tx.canonical(), ...], nonce]

:func:`recompute_hash` is the only place that encoding is built, and it is
used both when sealing and when verifying, so the two can never drift.
The JSON is ASCII-escaped, so every Python string encodes, including
strings carrying lone surrogates.

Work
----
:func:`is_acceptable` is the pluggable work predicate.  Difficulty ``0``
accepts every digest, which makes :func:`mine` return immediately with
``nonce = 0``.  That is the normal operating mode; the search exists for
deployments that want to slow down bulk rewriting of a stolen snapshot.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from order_ledger.ledger.transaction import Transaction

logger = logging.getLogger(__name__)

#: ``previous_hash`` of the genesis block.
GENESIS_PREVIOUS_HASH = "0" * 64


@dataclass(frozen=True)
class Block:
    """One link in the chain.  Immutable; sealing and mining return copies.

    Attributes:
        height: 0 for genesis, else the parent's height + 1.
        previous_hash: Parent digest, or :data:`GENESIS_PREVIOUS_HASH`.
        timestamp: Creation time, Unix seconds.
        transactions: Ordered batch; empty only for genesis.
        nonce: Work counter; 0 unless mined with non-zero difficulty.
        hash: Digest of the fields above at sealing time.
    """

    height: int
    previous_hash: str
    timestamp: float
    transactions: tuple[Transaction, ...]
    nonce: int = 0
    hash: str = ""

    @property
    def is_genesis(self) -> bool:
        return self.height == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "height": self.height,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "nonce": self.nonce,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        """Rebuild a block, keeping the stored ``hash`` verbatim.

        The hash is not recomputed, so a tampered snapshot still fails
        validation after loading.
        """
        return cls(
            height=int(data["height"]),
            previous_hash=str(data["previous_hash"]),
            timestamp=float(data["timestamp"]),
            transactions=tuple(Transaction.from_dict(tx) for tx in data["transactions"]),
            nonce=int(data.get("nonce", 0)),
            hash=str(data["hash"]),
        )


def recompute_hash(block: Block) -> str:
    """Return the SHA-256 hex digest of the block's current contents.

    Pure and deterministic; uses the block's stored ``nonce``.
    """
    canonical = json.dumps(
        [
            block.height,
            block.previous_hash,
            block.timestamp,
            [tx.canonical() for tx in block.transactions],
            block.nonce,
        ],
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def is_acceptable(digest: str, difficulty: int) -> bool:
    """Work predicate: the first ``difficulty`` hex characters are all ``0``."""
    return digest.startswith("0" * difficulty)


def seal_block(
    height: int,
    previous_hash: str,
    transactions: Sequence[Transaction],
    timestamp: float | None = None,
    nonce: int = 0,
) -> Block:
    """Build a block and compute its digest.

    Args:
        height: Block height.
        previous_hash: Digest of the parent block.
        transactions: Ordered batch.  May be empty only when ``height == 0``.
        timestamp: Creation time; defaults to now.
        nonce: Starting nonce.

    Raises:
        ValueError: Empty batch for a non-genesis block, or negative height.
    """
    if height < 0:
        raise ValueError(f"Block height must be >= 0, got {height}.")
    if not transactions and height != 0:
        raise ValueError("Only the genesis block may have no transactions.")

    block = Block(
        height=height,
        previous_hash=previous_hash,
        timestamp=time.time() if timestamp is None else timestamp,
        transactions=tuple(transactions),
        nonce=nonce,
    )
    return replace(block, hash=recompute_hash(block))


def mine(block: Block, difficulty: int) -> Block:
    """Return a sealed copy of ``block`` whose hash satisfies ``difficulty``.

    With ``difficulty == 0`` the nonce is reset to 0 and the hash accepted
    as is.  Otherwise the nonce is incremented from its current value until
    :func:`is_acceptable` holds.  There is no iteration cap; cost grows as
    ``16 ** difficulty``.

    Raises:
        ValueError: ``difficulty`` is negative.
    """
    if difficulty < 0:
        raise ValueError(f"Difficulty must be >= 0, got {difficulty}.")
    if difficulty == 0:
        candidate = replace(block, nonce=0)
        return replace(candidate, hash=recompute_hash(candidate))

    candidate = block
    digest = recompute_hash(candidate)
    while not is_acceptable(digest, difficulty):
        candidate = replace(candidate, nonce=candidate.nonce + 1)
        digest = recompute_hash(candidate)
    candidate = replace(candidate, hash=digest)
    logger.debug(
        "Mined block height=%d nonce=%d difficulty=%d", candidate.height, candidate.nonce, difficulty
    )
    return candidate


def genesis_block(timestamp: float | None = None) -> Block:
    """Seal the genesis block.  Genesis is never mined."""
    return seal_block(0, GENESIS_PREVIOUS_HASH, (), timestamp=timestamp)
