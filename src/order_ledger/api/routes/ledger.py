"""Append and audit-query endpoints.

``POST /transactions`` is the inbound caller contract: the owning business
service submits a batch after committing the matching state change in its
own store.  The handler is a plain ``def`` so FastAPI runs it on the thread
pool; :meth:`Chain.append` may block briefly on the chain lock.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, HTTPException

from order_ledger.api.models import (
    AppendRequest,
    BlockResponse,
    OrderHistoryResponse,
    ValidationResponse,
)
from order_ledger.ledger.chain import Chain
from order_ledger.ledger.errors import InvalidTransactionKind, LedgerPersistenceError
from order_ledger.ledger.transaction import new_transaction

logger = logging.getLogger(__name__)


def router(chain: Chain, on_append: Callable[[Chain], None] | None = None) -> APIRouter:
    """Build the ledger router bound to ``chain``.

    Args:
        chain: The process's chain handle.
        on_append: Called after each successful append (snapshot save).
    """
    api = APIRouter()

    @api.post("/transactions", response_model=BlockResponse, status_code=201)
    def append_transactions(request: AppendRequest):
        """Seal a batch of transactions into a new block."""
        try:
            batch = [
                new_transaction(
                    order_id=item.order_id,
                    kind=item.kind,
                    actor=item.actor,
                    counterparty=item.counterparty,
                    payload=item.payload,
                    off_chain_digest=item.off_chain_digest,
                )
                for item in request.transactions
            ]
        except InvalidTransactionKind as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        block = chain.append(batch)

        if on_append is not None:
            try:
                on_append(chain)
            except LedgerPersistenceError:
                # The block is in the in-memory chain; the next save retries.
                logger.error("Snapshot save failed after block %d", block.height, exc_info=True)

        return block.to_dict()

    @api.get("/orders/{order_id}/history", response_model=OrderHistoryResponse)
    def order_history(order_id: str):
        """Full, ordered audit trail for one order."""
        return {
            "order_id": order_id,
            "transactions": [tx.to_dict() for tx in chain.transactions_for_order(order_id)],
        }

    @api.get("/chain/validate", response_model=ValidationResponse)
    def validate_chain():
        """Re-derive every hash and link and report all violations."""
        return chain.validate().to_dict()

    return api
