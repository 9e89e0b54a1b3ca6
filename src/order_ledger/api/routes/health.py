"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (head height, head hash and a fresh validity check).
"""

from fastapi import APIRouter

from order_ledger import __version__
from order_ledger.api.models import HealthResponse
from order_ledger.ledger.chain import Chain, is_valid_sequence


def router(chain: Chain) -> APIRouter:
    """Build the health router bound to ``chain``."""
    api = APIRouter()

    @api.get("/")
    async def root():
        """API identity and the installed package version."""
        return {"message": "Order Ledger API", "version": __version__}

    @api.get("/health", response_model=HealthResponse)
    def health_check():
        """Liveness plus chain integrity, all read from one snapshot."""
        blocks = chain.snapshot()
        head = blocks[-1]
        valid = is_valid_sequence(blocks)
        return {
            "status": "ok" if valid else "degraded",
            "height": head.height,
            "head_hash": head.hash,
            "valid": valid,
            "details": {"difficulty": chain.difficulty, "block_count": len(blocks)},
        }

    return api
