"""API route registration."""

from collections.abc import Callable

from fastapi import FastAPI

from order_ledger.api.routes import health, ledger, peer
from order_ledger.ledger.chain import Chain


def register_routes(
    app: FastAPI, chain: Chain, on_append: Callable[[Chain], None] | None = None
) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router(chain))
    app.include_router(ledger.router(chain, on_append))
    app.include_router(peer.router(chain))
