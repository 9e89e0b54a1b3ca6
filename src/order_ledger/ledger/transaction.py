"""Transactions: single immutable facts about one business order.

A :class:`Transaction` records one state transition of an order (created,
paid, accepted by the merchant or courier, delivered, refunded).  The ledger
never interprets ``payload``; it only hashes it.  ``off_chain_digest`` is the
caller's own digest of any bulk data (an image, a document) kept outside the
ledger and is stored verbatim.

Canonical encoding
------------------
:meth:`Transaction.canonical` returns a fixed-order list of every field.
Blocks embed that list inside a JSON array before hashing, so JSON string
quoting keeps field boundaries unambiguous: two transactions whose field
values are swapped always encode differently.
"""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass
from typing import Any

from order_ledger.ledger.errors import InvalidTransactionKind


class TransactionKind(enum.Enum):
    """Closed set of order state transitions the ledger records."""

    ORDER_CREATED = "OrderCreated"
    ORDER_PAID = "OrderPaid"
    MERCHANT_ACCEPTED = "MerchantAccepted"
    COURIER_ACCEPTED = "CourierAccepted"
    ORDER_DELIVERED = "OrderDelivered"
    ORDER_REFUNDED = "OrderRefunded"

    @classmethod
    def parse(cls, value: TransactionKind | str) -> TransactionKind:
        """Coerce a wire value to a member; raise on anything outside the set."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidTransactionKind(f"Unknown transaction kind: {value!r}.")


@dataclass(frozen=True)
class Transaction:
    """A single recorded fact about one order.

    Attributes:
        id: UUID4 hex assigned at construction.  Never reused.
        order_id: External business order this fact belongs to.
        kind: The state transition recorded.
        timestamp: Capture time, Unix seconds.  Recorded as submitted; not
            required to be monotonic across transactions.
        actor: Originating party (user, merchant, courier).
        counterparty: Receiving party, if any.
        payload: Opaque string (typically serialized JSON).
        off_chain_digest: Digest of off-chain data this fact attests to.
    """

    id: str
    order_id: str
    kind: TransactionKind
    timestamp: float
    actor: str
    counterparty: str | None = None
    payload: str = ""
    off_chain_digest: str = ""

    def canonical(self) -> list[Any]:
        """Return the fixed-order field list used for hashing."""
        return [
            self.id,
            self.order_id,
            self.kind.value,
            self.timestamp,
            self.actor,
            self.counterparty,
            self.payload,
            self.off_chain_digest,
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "actor": self.actor,
            "counterparty": self.counterparty,
            "payload": self.payload,
            "off_chain_digest": self.off_chain_digest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Rebuild a recorded transaction, keeping its id and timestamp.

        Raises:
            InvalidTransactionKind: Unknown kind or blank order id.
            KeyError: A required field is missing.
        """
        order_id = _require_order_id(data["order_id"])
        return cls(
            id=str(data["id"]),
            order_id=order_id,
            kind=TransactionKind.parse(data["kind"]),
            timestamp=float(data["timestamp"]),
            actor=str(data["actor"]),
            counterparty=data.get("counterparty"),
            payload=data.get("payload", ""),
            off_chain_digest=data.get("off_chain_digest", ""),
        )


def new_transaction(
    order_id: str,
    kind: TransactionKind | str,
    actor: str,
    counterparty: str | None = None,
    payload: str = "",
    off_chain_digest: str = "",
) -> Transaction:
    """Build a fresh transaction with a new id and the current time.

    Args:
        order_id: Business order identifier.  Must be non-blank.
        kind: A :class:`TransactionKind` or its wire name (``"OrderPaid"``).
        actor: Originating party.
        counterparty: Receiving party, if any.
        payload: Opaque string hashed into the block.
        off_chain_digest: Precomputed digest of bulk off-chain data.

    Returns:
        The new immutable :class:`Transaction`.

    Raises:
        InvalidTransactionKind: ``kind`` is not a member of the enumeration,
            ``order_id`` is missing or blank, or a text field cannot be
            encoded as UTF-8 (a lone surrogate).
    """
    order_id = _require_order_id(order_id)
    for name, value in (
        ("order_id", order_id),
        ("actor", actor),
        ("counterparty", counterparty),
        ("payload", payload),
        ("off_chain_digest", off_chain_digest),
    ):
        _require_utf8(name, value)
    return Transaction(
        id=uuid.uuid4().hex,
        order_id=order_id,
        kind=TransactionKind.parse(kind),
        timestamp=time.time(),
        actor=actor,
        counterparty=counterparty,
        payload=payload,
        off_chain_digest=off_chain_digest,
    )


def _require_order_id(order_id: Any) -> str:
    if not isinstance(order_id, str) or not order_id.strip():
        raise InvalidTransactionKind("Transaction order_id must be a non-empty string.")
    return order_id


def _require_utf8(name: str, value: Any) -> None:
    if not isinstance(value, str):
        return
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidTransactionKind(f"Transaction {name} is not valid UTF-8 text.") from exc
