"""The chain: an append-only, hash-linked sequence of blocks.

Ownership
---------
One :class:`Chain` is created per service process and passed explicitly to
every component that needs it (the HTTP routes, the reconciler, the store).
There is no module-level chain.

Locking strategy
----------------
The block sequence is held as an immutable tuple and only ever replaced by
assignment while ``_lock`` is held.  Writers (:meth:`Chain.append`,
:meth:`Chain.replace_blocks`) hold the lock for their whole
read-head/seal/assign sequence, so two concurrent appends can never both
build on the same head.  Readers take the current tuple under the lock and
then work on it lock-free; a reader therefore sees either the chain before
an append or after it, never a mix of old and new blocks.

Validation
----------
:func:`validate_sequence` walks a block list and reports every violation;
:func:`is_valid_sequence` stops at the first one.  Both share
:func:`_iter_issues`, so the boolean and the report always agree.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from order_ledger.ledger.block import (
    GENESIS_PREVIOUS_HASH,
    Block,
    genesis_block,
    mine,
    recompute_hash,
    seal_block,
)
from order_ledger.ledger.errors import EmptyChain
from order_ledger.ledger.transaction import Transaction

logger = logging.getLogger(__name__)

# Validation issue kinds.
HASH_MISMATCH = "HashMismatch"
LINK_MISMATCH = "LinkMismatch"
HEIGHT_MISMATCH = "HeightMismatch"
GENESIS_MISMATCH = "GenesisMismatch"
EMPTY_BLOCK = "EmptyBlock"
EMPTY_CHAIN = "EmptyChain"


# =============================================================================
# VALIDATION RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class ValidationIssue:
    """One integrity violation found in a block sequence.

    Attributes:
        height: Index of the offending block, or ``None`` for chain-level
            issues (an empty sequence).
        kind: One of ``HashMismatch``, ``LinkMismatch``, ``HeightMismatch``,
            ``GenesisMismatch``, ``EmptyBlock``, ``EmptyChain``.
        detail: Human-readable description.
    """

    height: int | None
    kind: str
    detail: str


@dataclass
class ValidationReport:
    """Every violation found by :func:`validate_sequence`."""

    block_count: int
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues

    @property
    def violating_heights(self) -> list[int]:
        """Sorted, de-duplicated indices of blocks with at least one issue."""
        return sorted({i.height for i in self.issues if i.height is not None})

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "block_count": self.block_count,
            "violating_heights": self.violating_heights,
            "issues": [
                {"height": i.height, "kind": i.kind, "detail": i.detail} for i in self.issues
            ],
        }


@dataclass(frozen=True)
class ChainSummary:
    """The ``(height, head_hash)`` pair exchanged with peers."""

    height: int
    head_hash: str


# =============================================================================
# SEQUENCE VALIDATION
# =============================================================================


def _iter_issues(blocks: Sequence[Block]) -> Iterator[ValidationIssue]:
    """Yield integrity violations in chain order."""
    if not blocks:
        yield ValidationIssue(None, EMPTY_CHAIN, "Chain contains no blocks.")
        return

    for index, block in enumerate(blocks):
        if block.height != index:
            yield ValidationIssue(
                index, HEIGHT_MISMATCH, f"Block at index {index} claims height {block.height}."
            )

        expected = recompute_hash(block)
        if block.hash != expected:
            yield ValidationIssue(
                index,
                HASH_MISMATCH,
                f"Stored hash {block.hash!r} does not match recomputed {expected!r}.",
            )

        if index == 0:
            if block.previous_hash != GENESIS_PREVIOUS_HASH:
                yield ValidationIssue(
                    0, GENESIS_MISMATCH, "Genesis block does not use the sentinel previous hash."
                )
            if block.transactions:
                yield ValidationIssue(0, GENESIS_MISMATCH, "Genesis block carries transactions.")
            continue

        if not block.transactions:
            yield ValidationIssue(index, EMPTY_BLOCK, "Non-genesis block has no transactions.")

        parent_hash = blocks[index - 1].hash
        if block.previous_hash != parent_hash:
            yield ValidationIssue(
                index,
                LINK_MISMATCH,
                f"previous_hash {block.previous_hash!r} does not match parent hash "
                f"{parent_hash!r}.",
            )


def validate_sequence(blocks: Sequence[Block]) -> ValidationReport:
    """Check every block and collect all violations."""
    return ValidationReport(block_count=len(blocks), issues=list(_iter_issues(blocks)))


def is_valid_sequence(blocks: Sequence[Block]) -> bool:
    """Return ``False`` on the first violation found, else ``True``."""
    return next(_iter_issues(blocks), None) is None


# =============================================================================
# CHAIN
# =============================================================================


class Chain:
    """The ledger's single shared, append-only block sequence.

    Args:
        difficulty: Leading zero hex characters required of appended block
            hashes.  ``0`` disables mining.

    Raises:
        ValueError: ``difficulty`` is negative.
    """

    def __init__(self, difficulty: int = 0) -> None:
        if difficulty < 0:
            raise ValueError(f"Difficulty must be >= 0, got {difficulty}.")
        self._difficulty = difficulty
        self._lock = threading.RLock()
        self._blocks: tuple[Block, ...] = (genesis_block(),)

    @classmethod
    def from_blocks(cls, blocks: Iterable[Block], difficulty: int = 0) -> Chain:
        """Rehydrate a chain from stored blocks without validating them.

        Callers must run :meth:`is_valid` before resuming appends.

        Raises:
            EmptyChain: ``blocks`` is empty.
        """
        sequence = tuple(blocks)
        if not sequence:
            raise EmptyChain("Cannot rehydrate a chain from an empty block list.")
        chain = cls(difficulty)
        chain._blocks = sequence
        return chain

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def difficulty(self) -> int:
        return self._difficulty

    def snapshot(self) -> tuple[Block, ...]:
        """Return a consistent, immutable view of the current blocks."""
        with self._lock:
            return self._blocks

    def __len__(self) -> int:
        return len(self.snapshot())

    def latest(self) -> Block:
        """Return the head block.

        Raises:
            EmptyChain: The sequence is empty (a construction bug).
        """
        blocks = self.snapshot()
        if not blocks:
            raise EmptyChain("Chain has no blocks; genesis invariant violated.")
        return blocks[-1]

    @property
    def height(self) -> int:
        return self.latest().height

    @property
    def head_hash(self) -> str:
        return self.latest().hash

    def summary(self) -> ChainSummary:
        head = self.latest()
        return ChainSummary(height=head.height, head_hash=head.hash)

    def is_valid(self) -> bool:
        """Re-derive every hash and link; ``False`` on the first violation."""
        return is_valid_sequence(self.snapshot())

    def validate(self) -> ValidationReport:
        """Full-report variant of :meth:`is_valid`."""
        return validate_sequence(self.snapshot())

    def transactions_for_order(self, order_id: str) -> list[Transaction]:
        """Return the audit trail of one order in chain, then intra-block, order."""
        return [
            tx for block in self.snapshot() for tx in block.transactions if tx.order_id == order_id
        ]

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def append(self, transactions: Iterable[Transaction]) -> Block:
        """Seal ``transactions`` into a new block on top of the head.

        The head read, sealing, optional mining and the append all happen
        under the chain lock.

        Returns:
            The appended block.

        Raises:
            ValueError: The batch is empty.
            TypeError: An item is not a :class:`Transaction`.
        """
        batch = tuple(transactions)
        if not batch:
            raise ValueError("Cannot append an empty transaction batch.")
        for tx in batch:
            if not isinstance(tx, Transaction):
                raise TypeError(f"Expected Transaction, got {type(tx).__name__}.")

        with self._lock:
            head = self.latest()
            block = seal_block(head.height + 1, head.hash, batch)
            if self._difficulty > 0:
                block = mine(block, self._difficulty)
            self._blocks = self._blocks + (block,)

        logger.info(
            "Appended block height=%d txs=%d hash=%s", block.height, len(batch), block.hash[:16]
        )
        return block

    def replace_blocks(
        self, blocks: Iterable[Block], *, report: ValidationReport | None = None
    ) -> bool:
        """Adopt ``blocks`` wholesale if valid and strictly longer than ours.

        Validation runs outside the lock; the length comparison and the swap
        happen together under it, against whatever the head is at that
        moment.  Ties keep the incumbent.

        Args:
            blocks: Candidate block sequence.
            report: Result of :func:`validate_sequence` for exactly these
                blocks, when the caller has already run it.

        Returns:
            ``True`` if the chain was replaced.
        """
        candidate = tuple(blocks)
        if report is None:
            report = validate_sequence(candidate)
        if not report.valid:
            logger.warning(
                "Rejected replacement chain: %d issue(s), first: %s",
                len(report.issues),
                report.issues[0].detail,
            )
            return False

        with self._lock:
            local_height = self.latest().height
            if candidate[-1].height <= local_height:
                logger.debug(
                    "Replacement chain height %d not longer than local %d",
                    candidate[-1].height,
                    local_height,
                )
                return False
            self._blocks = candidate

        logger.info(
            "Replaced local chain (height %d) with chain of height %d",
            local_height,
            candidate[-1].height,
        )
        return True


def new_chain(difficulty: int = 0) -> Chain:
    """Create a chain seeded with a genesis block."""
    return Chain(difficulty)
