"""Tests for the replica reconciler.

Peers are simulated with :class:`FakePeerClient`, which serves chains (or
raises errors) per peer URL without any network traffic.
"""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from order_ledger.ledger import Chain, LedgerPersistenceError, PeerUnavailable
from order_ledger.ledger.chain import ChainSummary, _iter_issues, validate_sequence
from order_ledger.reconcile import Reconciler, should_adopt
from tests.chains import build_chain, tamper_payload
from tests.constants import PEER_A, PEER_B, PEER_C


class FakePeerClient:
    """Serve a fixed chain or error per peer URL."""

    def __init__(self, peers: dict) -> None:
        self.peers = peers
        self.block_requests: list[str] = []

    def _lookup(self, peer_url: str):
        entry = self.peers[peer_url]
        if isinstance(entry, Exception):
            raise entry
        return entry

    def fetch_summary(self, peer_url: str) -> ChainSummary:
        return self._lookup(peer_url).summary()

    def fetch_blocks(self, peer_url: str):
        self.block_requests.append(peer_url)
        return list(self._lookup(peer_url).snapshot())


def _reconciler(local: Chain, peers: dict, **kwargs) -> Reconciler:
    return Reconciler(local, list(peers), client=FakePeerClient(peers), **kwargs)


class TestShouldAdopt:
    @pytest.mark.unit
    def test_longer_valid_candidate(self):
        assert should_adopt(3, build_chain(5).snapshot())

    @pytest.mark.unit
    def test_equal_height_keeps_incumbent(self):
        assert not should_adopt(3, build_chain(3).snapshot())

    @pytest.mark.unit
    def test_invalid_candidate(self):
        candidate = build_chain(5)
        tamper_payload(candidate, 2)
        assert not should_adopt(3, candidate.snapshot())

    @pytest.mark.unit
    def test_empty_candidate(self):
        assert not should_adopt(0, [])

    @pytest.mark.unit
    def test_uses_supplied_report(self):
        tampered = build_chain(5)
        tamper_payload(tampered, 2)
        report = validate_sequence(tampered.snapshot())

        with patch("order_ledger.ledger.chain._iter_issues") as iter_issues:
            assert not should_adopt(3, build_chain(5).snapshot(), report)

        iter_issues.assert_not_called()


class TestReconcileOnce:
    @pytest.mark.unit
    def test_adopts_longer_valid_peer_chain(self):
        local = build_chain(3)
        peer = build_chain(5, order_prefix="peer")

        result = _reconciler(local, {PEER_A: peer}).reconcile_once()

        assert result.adopted
        assert result.adopted_from == PEER_A
        assert (result.local_height, result.final_height) == (3, 5)
        assert local.snapshot() == peer.snapshot()

    @pytest.mark.unit
    def test_invalid_longer_peer_chain_leaves_local_unchanged(self):
        local = build_chain(3)
        before = local.snapshot()
        peer = build_chain(5, order_prefix="peer")
        tamper_payload(peer, 4)

        result = _reconciler(local, {PEER_A: peer}).reconcile_once()

        assert not result.adopted
        assert result.rejected == [PEER_A]
        assert local.snapshot() == before

    @pytest.mark.unit
    def test_equal_height_peer_leaves_local_unchanged(self):
        local = build_chain(3)
        before = local.snapshot()
        client = FakePeerClient({PEER_A: build_chain(3, order_prefix="peer")})

        result = Reconciler(local, [PEER_A], client=client).reconcile_once()

        assert result.skipped == [PEER_A]
        assert client.block_requests == []
        assert local.snapshot() == before

    @pytest.mark.unit
    def test_unreachable_peer_recorded_as_failure(self):
        local = build_chain(2)

        result = _reconciler(
            local, {PEER_A: PeerUnavailable(PEER_A, "connection failed")}
        ).reconcile_once()

        assert PEER_A in result.failures
        assert "connection failed" in result.failures[PEER_A]
        assert local.height == 2

    @pytest.mark.unit
    def test_failure_does_not_stop_pass(self):
        local = build_chain(1)
        peers = {
            PEER_A: PeerUnavailable(PEER_A, "timed out after 5.0s"),
            PEER_B: build_chain(3, order_prefix="b"),
        }

        result = _reconciler(local, peers).reconcile_once()

        assert list(result.failures) == [PEER_A]
        assert result.adopted_from == PEER_B
        assert local.height == 3

    @pytest.mark.unit
    def test_longest_peer_wins(self):
        local = build_chain(1)
        longest = build_chain(6, order_prefix="c")
        peers = {
            PEER_A: build_chain(3, order_prefix="a"),
            PEER_B: build_chain(4, order_prefix="b"),
            PEER_C: longest,
        }

        result = _reconciler(local, peers).reconcile_once()

        assert result.adopted_from == PEER_C
        assert local.head_hash == longest.head_hash

    @pytest.mark.unit
    def test_equal_height_later_peer_does_not_replace_earlier_adoption(self):
        local = build_chain(1)
        first = build_chain(4, order_prefix="a")
        peers = {PEER_A: first, PEER_B: build_chain(4, order_prefix="b")}

        result = _reconciler(local, peers).reconcile_once()

        assert result.adopted_from == PEER_A
        assert result.skipped == [PEER_B]
        assert local.head_hash == first.head_hash

    @pytest.mark.unit
    def test_summary_lying_about_height_is_rejected(self):
        local = build_chain(3)
        short = build_chain(2, order_prefix="peer")
        client = FakePeerClient({PEER_A: short})
        client.fetch_summary = MagicMock(return_value=ChainSummary(9, "f" * 64))

        result = Reconciler(local, [PEER_A], client=client).reconcile_once()

        assert result.rejected == [PEER_A]
        assert local.height == 3

    @pytest.mark.unit
    def test_no_peers_is_a_no_op(self):
        local = build_chain(2)

        result = Reconciler(local, [], client=FakePeerClient({})).reconcile_once()

        assert not result.adopted
        assert result.final_height == 2


    @pytest.mark.unit
    def test_adoption_validates_peer_chain_once(self):
        local = build_chain(2)
        peer = build_chain(4, order_prefix="peer")
        reconciler = _reconciler(local, {PEER_A: peer})

        with patch(
            "order_ledger.ledger.chain._iter_issues", side_effect=_iter_issues
        ) as iter_issues:
            result = reconciler.reconcile_once()

        assert result.adopted
        assert iter_issues.call_count == 1


class TestAdoptionHook:
    @pytest.mark.unit
    def test_on_adopt_called_with_chain(self):
        local = build_chain(1)
        on_adopt = MagicMock()

        _reconciler(
            local, {PEER_A: build_chain(2, order_prefix="peer")}, on_adopt=on_adopt
        ).reconcile_once()

        on_adopt.assert_called_once_with(local)

    @pytest.mark.unit
    def test_on_adopt_not_called_without_adoption(self):
        local = build_chain(3)
        on_adopt = MagicMock()

        _reconciler(local, {PEER_A: build_chain(3)}, on_adopt=on_adopt).reconcile_once()

        on_adopt.assert_not_called()

    @pytest.mark.unit
    def test_persistence_failure_is_logged_not_raised(self, caplog):
        local = build_chain(1)
        on_adopt = MagicMock(side_effect=LedgerPersistenceError("disk full"))

        result = _reconciler(
            local, {PEER_A: build_chain(2, order_prefix="peer")}, on_adopt=on_adopt
        ).reconcile_once()

        assert result.adopted
        assert local.height == 2
        assert "failed to persist" in caplog.text


class TestScheduling:
    @pytest.mark.slow
    def test_background_thread_adopts_and_stops(self):
        local = build_chain(1)
        peer = build_chain(3, order_prefix="peer")
        adopted = threading.Event()
        reconciler = _reconciler(
            local,
            {PEER_A: peer},
            interval_seconds=0.01,
            on_adopt=lambda _chain: adopted.set(),
        )

        reconciler.start()
        try:
            assert reconciler.running
            assert adopted.wait(timeout=5.0)
        finally:
            reconciler.stop(timeout=5.0)

        assert not reconciler.running
        assert local.head_hash == peer.head_hash

    @pytest.mark.slow
    def test_start_is_idempotent(self):
        reconciler = Reconciler(build_chain(0), [], interval_seconds=10.0, client=FakePeerClient({}))

        reconciler.start()
        try:
            first = reconciler._thread
            reconciler.start()
            assert reconciler._thread is first
        finally:
            reconciler.stop(timeout=5.0)

    @pytest.mark.slow
    def test_unexpected_error_does_not_kill_thread(self):
        calls: list[float] = []

        class ExplodingClient(FakePeerClient):
            def fetch_summary(self, peer_url):
                calls.append(time.monotonic())
                raise RuntimeError("unexpected")

        reconciler = Reconciler(
            build_chain(0), [PEER_A], interval_seconds=0.01, client=ExplodingClient({})
        )
        reconciler.start()
        try:
            deadline = time.monotonic() + 5.0
            while len(calls) < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            reconciler.stop(timeout=5.0)

        assert len(calls) >= 3

    @pytest.mark.unit
    def test_stop_without_start(self):
        reconciler = Reconciler(build_chain(0), [PEER_A], client=FakePeerClient({}))
        reconciler.stop()
        assert not reconciler.running
