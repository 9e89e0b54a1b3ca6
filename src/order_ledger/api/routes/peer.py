"""Peer exchange endpoints consumed by :class:`~order_ledger.reconcile.peers.PeerClient`."""

from fastapi import APIRouter

from order_ledger.api.models import ChainBlocksResponse, ChainSummaryResponse
from order_ledger.ledger.chain import Chain


def router(chain: Chain) -> APIRouter:
    """Build the peer router bound to ``chain``."""
    api = APIRouter(prefix="/chain")

    @api.get("/summary", response_model=ChainSummaryResponse)
    def chain_summary():
        """Head height and hash; peers compare these before pulling blocks."""
        summary = chain.summary()
        return {"height": summary.height, "head_hash": summary.head_hash}

    @api.get("/blocks", response_model=ChainBlocksResponse)
    def chain_blocks():
        """Every block from genesis to head, from one consistent snapshot."""
        return {"blocks": [block.to_dict() for block in chain.snapshot()]}

    return api
