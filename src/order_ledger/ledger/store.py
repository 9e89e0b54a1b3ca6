"""JSON snapshot persistence for the chain.

Storage
-------
The whole block sequence is written as a single JSON document::

    {
      "schema_version": "1.0",
      "difficulty": 0,
      "blocks": [ { "height": 0, "previous_hash": "000...", ... }, ... ]
    }

Each block carries its stored ``hash`` verbatim.  Loading never recomputes
hashes; it rebuilds the blocks and then runs full validation, so a snapshot
edited on disk is refused instead of silently re-sealed.

Concurrency
-----------
A per-store :class:`threading.Lock` serialises saves within the process and
``fcntl.flock(LOCK_EX)`` on a sibling ``.lock`` file serialises them across
processes on the same host.  The chain snapshot is taken only once both
locks are held, so a later save always writes a chain at least as new as
any earlier one.  The document is written to a temporary file and moved
into place with :func:`os.replace`, so a reader never sees a half-written
snapshot.

**Platform note:** ``fcntl`` is POSIX-only (Darwin + Linux).
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
from pathlib import Path

from order_ledger.ledger.block import Block
from order_ledger.ledger.chain import Chain
from order_ledger.ledger.errors import (
    EmptyChain,
    LedgerIntegrityError,
    LedgerPersistenceError,
)

logger = logging.getLogger(__name__)

# Increment when the snapshot format changes in a backwards-incompatible way.
_SCHEMA_VERSION = "1.0"


class ChainStore:
    """Load and save a chain snapshot at ``path``.

    Args:
        path: Snapshot file.  Parent directories are created on first save.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._save_lock = threading.Lock()

    @property
    def _lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def save(self, chain: Chain) -> None:
        """Write a consistent snapshot of ``chain``.

        Raises:
            LedgerPersistenceError: The directory, lock, or file write failed.
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with self._save_lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self._lock_path.open("a", encoding="utf-8") as lock_fh:
                    fcntl.flock(lock_fh, fcntl.LOCK_EX)
                    try:
                        blocks = chain.snapshot()
                        document = {
                            "schema_version": _SCHEMA_VERSION,
                            "difficulty": chain.difficulty,
                            "blocks": [block.to_dict() for block in blocks],
                        }
                        with tmp_path.open("w", encoding="utf-8") as fh:
                            json.dump(document, fh)
                            fh.flush()
                            os.fsync(fh.fileno())
                        os.replace(tmp_path, self.path)
                    finally:
                        fcntl.flock(lock_fh, fcntl.LOCK_UN)
        except (OSError, TypeError, ValueError) as exc:
            raise LedgerPersistenceError(
                f"Failed to write chain snapshot to {self.path}: {exc}"
            ) from exc

        logger.debug("Saved chain snapshot: %d blocks -> %s", len(blocks), self.path)

    def load(self, difficulty: int = 0) -> Chain | None:
        """Rehydrate and validate the stored chain.

        Args:
            difficulty: Difficulty for blocks appended after loading.

        Returns:
            The loaded chain, or ``None`` if no snapshot exists yet.

        Raises:
            LedgerPersistenceError: The file is unreadable or malformed.
            LedgerIntegrityError: The loaded chain fails validation.
        """
        if not self.path.exists():
            return None

        try:
            with self.path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise LedgerPersistenceError(
                f"Failed to read chain snapshot {self.path}: {exc}"
            ) from exc

        if not isinstance(document, dict):
            raise LedgerPersistenceError(f"Chain snapshot {self.path} is not a JSON object.")
        version = document.get("schema_version")
        if version != _SCHEMA_VERSION:
            raise LedgerPersistenceError(
                f"Unsupported snapshot schema_version {version!r} in {self.path}."
            )

        try:
            blocks = [Block.from_dict(raw) for raw in document["blocks"]]
            chain = Chain.from_blocks(blocks, difficulty=difficulty)
        except (KeyError, TypeError, ValueError, EmptyChain) as exc:
            raise LedgerPersistenceError(
                f"Chain snapshot {self.path} contains a malformed block: {exc}"
            ) from exc

        report = chain.validate()
        if not report.valid:
            logger.critical(
                "Chain snapshot %s failed validation at heights %s",
                self.path,
                report.violating_heights,
            )
            raise LedgerIntegrityError(
                f"Chain snapshot {self.path} failed validation.", report=report
            )

        logger.info("Loaded chain snapshot: height=%d from %s", chain.height, self.path)
        return chain

    def load_or_create(self, difficulty: int = 0) -> Chain:
        """Load the stored chain, or start a fresh one if none exists."""
        chain = self.load(difficulty)
        if chain is None:
            logger.info("No chain snapshot at %s; starting from genesis", self.path)
            chain = Chain(difficulty)
        return chain
