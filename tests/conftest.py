"""
Shared pytest fixtures for the order ledger test suite.

This module provides fixtures that are automatically available to all test files:
- Fresh and pre-populated chains
- A transaction factory with sensible defaults
- A chain snapshot store under ``tmp_path``
- FastAPI TestClient instances bound to a chain
"""

from collections.abc import Callable
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from order_ledger.api.server import create_app
from order_ledger.ledger import Chain, ChainStore, Transaction, TransactionKind, new_transaction
from tests.constants import CUSTOMER, MERCHANT, ORDER_A

# ============================================================================
# TRANSACTION AND CHAIN FIXTURES
# ============================================================================

TxFactory = Callable[..., Transaction]


@pytest.fixture
def make_tx() -> TxFactory:
    """
    Factory for transactions with defaults for every field.

    Usage:
        def test_something(make_tx):
            tx = make_tx(order_id="order-B", kind=TransactionKind.ORDER_PAID)
    """

    def _make(
        order_id: str = ORDER_A,
        kind: TransactionKind | str = TransactionKind.ORDER_CREATED,
        actor: str = CUSTOMER,
        counterparty: str | None = MERCHANT,
        payload: str = '{"amount": "12.50"}',
        off_chain_digest: str = "",
    ) -> Transaction:
        return new_transaction(order_id, kind, actor, counterparty, payload, off_chain_digest)

    return _make


@pytest.fixture
def chain() -> Chain:
    """A fresh chain holding only the genesis block."""
    return Chain()


@pytest.fixture
def populated_chain(make_tx: TxFactory) -> Chain:
    """
    A chain with three blocks on top of genesis.

    Blocks (by height):
        1: order-A OrderCreated
        2: order-B OrderCreated
        3: order-A OrderPaid
    """
    chain = Chain()
    chain.append([make_tx(order_id=ORDER_A, kind=TransactionKind.ORDER_CREATED)])
    chain.append([make_tx(order_id="order-B", kind=TransactionKind.ORDER_CREATED)])
    chain.append([make_tx(order_id=ORDER_A, kind=TransactionKind.ORDER_PAID)])
    return chain


# ============================================================================
# STORE FIXTURES
# ============================================================================


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    """Snapshot path inside a not-yet-existing subdirectory of ``tmp_path``."""
    return tmp_path / "ledger" / "chain.json"


@pytest.fixture
def store(store_path: Path) -> ChainStore:
    return ChainStore(store_path)


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture
def test_client(chain: Chain) -> TestClient:
    """
    FastAPI TestClient bound to the ``chain`` fixture.

    Usage:
        def test_append(test_client, chain):
            response = test_client.post("/transactions", json={...})
            assert chain.height == 1
    """
    return TestClient(create_app(chain))
