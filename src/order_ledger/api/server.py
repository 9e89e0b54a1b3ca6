"""
FastAPI server for the order audit ledger.

This module wires the process's single :class:`Chain` handle into the HTTP
routes and, when peers are configured, into a background
:class:`Reconciler`.  It sets up:

- the chain, rehydrated from the snapshot store and re-validated before any
  append is accepted
- snapshot saving after every append (``storage.save_every_append``) and
  after every adoption
- the reconciler lifecycle, tied to the application lifespan
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI

from order_ledger import __version__
from order_ledger.api.routes import register_routes
from order_ledger.config import LedgerConfig, config
from order_ledger.ledger.chain import Chain
from order_ledger.ledger.store import ChainStore
from order_ledger.reconcile.peers import PeerClient
from order_ledger.reconcile.reconciler import Reconciler

logger = logging.getLogger(__name__)


def create_app(
    chain: Chain,
    *,
    on_append: Callable[[Chain], None] | None = None,
    on_shutdown: Callable[[Chain], None] | None = None,
    reconciler: Reconciler | None = None,
) -> FastAPI:
    """
    Build the FastAPI application around an existing chain.

    Args:
        chain: The chain handle every route reads and appends to.
        on_append: Called after each append (typically a snapshot save).
        on_shutdown: Called once after the reconciler stops (final save).
        reconciler: Started on application startup and stopped on shutdown.

    Returns:
        The configured FastAPI app.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if reconciler is not None:
            reconciler.start()
        try:
            yield
        finally:
            if reconciler is not None:
                reconciler.stop()
            if on_shutdown is not None:
                on_shutdown(chain)

    app = FastAPI(title="Order Ledger", version=__version__, lifespan=lifespan)
    app.state.chain = chain
    app.state.reconciler = reconciler
    register_routes(app, chain, on_append)
    return app


def build_app_from_config(cfg: LedgerConfig | None = None) -> FastAPI:
    """
    Build the application from configuration.

    Loads the chain snapshot (raising ``LedgerIntegrityError`` if it fails
    validation), wires snapshot saving, and creates a reconciler when peers
    are configured.
    """
    cfg = cfg or config
    store = ChainStore(cfg.storage.absolute_path)
    chain = store.load_or_create(cfg.ledger.difficulty)

    reconciler = None
    if cfg.reconcile_enabled:
        reconciler = Reconciler(
            chain,
            cfg.reconcile.peers,
            interval_seconds=cfg.reconcile.interval_seconds,
            client=PeerClient(timeout_seconds=cfg.reconcile.timeout_seconds),
            on_adopt=store.save,
        )

    on_append = store.save if cfg.storage.save_every_append else None
    return create_app(
        chain, on_append=on_append, on_shutdown=store.save, reconciler=reconciler
    )


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Run the ledger API with uvicorn, using config for unset arguments."""
    import uvicorn

    app = build_app_from_config()
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)
