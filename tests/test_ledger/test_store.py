"""Tests for order_ledger.ledger.store (JSON snapshot persistence)."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from order_ledger.ledger import (
    Chain,
    ChainStore,
    LedgerIntegrityError,
    LedgerPersistenceError,
    Transaction,
    TransactionKind,
)
from tests.constants import ORDER_A


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def _write(path: Path, document) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document), encoding="utf-8")


class TestSave:
    @pytest.mark.unit
    def test_creates_parent_directories(self, store: ChainStore, populated_chain: Chain) -> None:
        assert not store.path.parent.exists()

        store.save(populated_chain)

        assert store.path.exists()

    @pytest.mark.unit
    def test_leaves_no_temporary_file(self, store: ChainStore, populated_chain: Chain) -> None:
        store.save(populated_chain)

        leftovers = [p.name for p in store.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    @pytest.mark.unit
    def test_document_layout(self, store: ChainStore, populated_chain: Chain) -> None:
        store.save(populated_chain)

        document = _read(store.path)

        assert document["schema_version"] == "1.0"
        assert document["difficulty"] == 0
        assert len(document["blocks"]) == 4
        assert document["blocks"][-1]["hash"] == populated_chain.head_hash

    @pytest.mark.unit
    def test_overwrites_previous_snapshot(
        self, store: ChainStore, populated_chain: Chain, make_tx
    ) -> None:
        store.save(populated_chain)
        populated_chain.append([make_tx()])
        store.save(populated_chain)

        assert len(_read(store.path)["blocks"]) == 5

    @pytest.mark.unit
    def test_unwritable_location_raises(self, tmp_path: Path, chain: Chain) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        store = ChainStore(blocker / "chain.json")

        with pytest.raises(LedgerPersistenceError):
            store.save(chain)


class TestLoad:
    @pytest.mark.unit
    def test_missing_file_returns_none(self, store: ChainStore) -> None:
        assert store.load() is None

    @pytest.mark.unit
    def test_round_trip(self, store: ChainStore, populated_chain: Chain) -> None:
        store.save(populated_chain)

        loaded = store.load()

        assert loaded is not None
        assert loaded.snapshot() == populated_chain.snapshot()
        assert loaded.is_valid()
        assert [tx.kind for tx in loaded.transactions_for_order(ORDER_A)] == [
            TransactionKind.ORDER_CREATED,
            TransactionKind.ORDER_PAID,
        ]

    @pytest.mark.unit
    def test_loaded_chain_accepts_appends(
        self, store: ChainStore, populated_chain: Chain, make_tx
    ) -> None:
        store.save(populated_chain)
        loaded = store.load()

        loaded.append([make_tx()])

        assert loaded.height == 4
        assert loaded.is_valid()

    @pytest.mark.unit
    def test_tampered_snapshot_raises_integrity_error(
        self, store: ChainStore, populated_chain: Chain
    ) -> None:
        store.save(populated_chain)
        document = _read(store.path)
        document["blocks"][2]["transactions"][0]["payload"] = '{"amount": "99.99"}'
        _write(store.path, document)

        with pytest.raises(LedgerIntegrityError) as excinfo:
            store.load()

        assert excinfo.value.report.violating_heights == [2]

    @pytest.mark.unit
    def test_invalid_json_raises_persistence_error(self, store: ChainStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(LedgerPersistenceError):
            store.load()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "document",
        [
            [],
            {"schema_version": "0.9", "blocks": []},
            {"blocks": []},
        ],
    )
    def test_unsupported_document_raises(self, store: ChainStore, document) -> None:
        _write(store.path, document)

        with pytest.raises(LedgerPersistenceError):
            store.load()

    @pytest.mark.unit
    def test_empty_block_list_raises_persistence_error(self, store: ChainStore) -> None:
        _write(store.path, {"schema_version": "1.0", "blocks": []})

        with pytest.raises(LedgerPersistenceError):
            store.load()

    @pytest.mark.unit
    def test_unknown_transaction_kind_raises_persistence_error(
        self, store: ChainStore, populated_chain: Chain
    ) -> None:
        store.save(populated_chain)
        document = _read(store.path)
        document["blocks"][1]["transactions"][0]["kind"] = "OrderTeleported"
        _write(store.path, document)

        with pytest.raises(LedgerPersistenceError):
            store.load()

    @pytest.mark.unit
    def test_missing_block_field_raises_persistence_error(
        self, store: ChainStore, populated_chain: Chain
    ) -> None:
        store.save(populated_chain)
        document = _read(store.path)
        del document["blocks"][1]["previous_hash"]
        _write(store.path, document)

        with pytest.raises(LedgerPersistenceError):
            store.load()


class TestLoadOrCreate:
    @pytest.mark.unit
    def test_fresh_chain_when_missing(self, store: ChainStore) -> None:
        chain = store.load_or_create(difficulty=1)

        assert chain.height == 0
        assert chain.difficulty == 1

    @pytest.mark.unit
    def test_loads_existing_snapshot(self, store: ChainStore, populated_chain: Chain) -> None:
        store.save(populated_chain)

        assert store.load_or_create().head_hash == populated_chain.head_hash


class _PausingStore(ChainStore):
    """Store whose first save stalls after entering ``save`` until released."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.entered = threading.Event()
        self.release = threading.Event()
        self._paused = False

    @property
    def _lock_path(self) -> Path:
        if not self._paused:
            self._paused = True
            self.entered.set()
            self.release.wait(timeout=5)
        return super()._lock_path


class TestConcurrentSaves:
    @pytest.mark.unit
    def test_slow_earlier_save_cannot_overwrite_newer_one(
        self, tmp_path: Path, populated_chain: Chain, make_tx
    ) -> None:
        path = tmp_path / "data" / "chain.json"
        store = _PausingStore(path)

        first = threading.Thread(target=store.save, args=(populated_chain,))
        first.start()
        assert store.entered.wait(timeout=5)

        populated_chain.append([make_tx()])
        second = threading.Thread(target=store.save, args=(populated_chain,))
        second.start()
        store.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        loaded = ChainStore(path).load()
        assert loaded is not None
        assert loaded.height == populated_chain.height == 4
        assert loaded.head_hash == populated_chain.head_hash

    @pytest.mark.slow
    def test_many_concurrent_saves_keep_latest_chain(
        self, store: ChainStore, chain: Chain, make_tx
    ) -> None:
        errors: list[BaseException] = []

        def append_and_save(n: int) -> None:
            try:
                chain.append([make_tx(order_id=f"order-{n}")])
                store.save(chain)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=append_and_save, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        loaded = store.load()
        assert loaded is not None
        assert loaded.snapshot() == chain.snapshot()


class TestTextWithoutUtf8Form:
    @pytest.mark.unit
    def test_lone_surrogate_payload_round_trips(self, store: ChainStore, chain: Chain) -> None:
        tx = Transaction(
            id="b" * 32,
            order_id=ORDER_A,
            kind=TransactionKind.ORDER_PAID,
            timestamp=1700000000.25,
            actor="user-\ud800",
            payload='{"note": "\udfff"}',
        )
        chain.append([tx])

        store.save(chain)
        loaded = store.load()

        assert loaded is not None
        assert loaded.is_valid()
        assert loaded.transactions_for_order(ORDER_A) == [tx]
