"""
Pydantic models for API requests and responses.

Request models carry transaction fields exactly as the owning business
service submits them.  ``kind`` is accepted as a string and coerced to
:class:`~order_ledger.ledger.transaction.TransactionKind` in the route, so an
unknown value surfaces as the ledger's own ``InvalidTransactionKind`` error
rather than a generic schema failure.

Response models mirror :meth:`Transaction.to_dict` and :meth:`Block.to_dict`,
which are also the peer exchange wire format.
"""

from typing import Any

from pydantic import BaseModel, Field

# ============================================================================
# REQUEST MODELS
# ============================================================================


class TransactionRequest(BaseModel):
    """
    One fact to record about an order.

    Attributes:
        order_id: External business order identifier (non-blank)
        kind: One of OrderCreated, OrderPaid, MerchantAccepted,
            CourierAccepted, OrderDelivered, OrderRefunded
        actor: Originating party
        counterparty: Receiving party, if any
        payload: Opaque string, typically serialized JSON
        off_chain_digest: Caller-computed digest of off-chain data
    """

    order_id: str
    kind: str
    actor: str
    counterparty: str | None = None
    payload: str = ""
    off_chain_digest: str = ""


class AppendRequest(BaseModel):
    """A batch of transactions sealed into a single block."""

    transactions: list[TransactionRequest] = Field(min_length=1)


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class TransactionResponse(BaseModel):
    id: str
    order_id: str
    kind: str
    timestamp: float
    actor: str
    counterparty: str | None = None
    payload: str = ""
    off_chain_digest: str = ""


class BlockResponse(BaseModel):
    height: int
    previous_hash: str
    timestamp: float
    transactions: list[TransactionResponse]
    nonce: int
    hash: str


class OrderHistoryResponse(BaseModel):
    order_id: str
    transactions: list[TransactionResponse]


class ChainSummaryResponse(BaseModel):
    height: int
    head_hash: str


class ChainBlocksResponse(BaseModel):
    blocks: list[BlockResponse]


class ValidationIssueResponse(BaseModel):
    height: int | None
    kind: str
    detail: str


class ValidationResponse(BaseModel):
    valid: bool
    block_count: int
    violating_heights: list[int]
    issues: list[ValidationIssueResponse]


class HealthResponse(BaseModel):
    status: str
    height: int
    head_hash: str
    valid: bool
    details: dict[str, Any] = Field(default_factory=dict)
