"""HTTP client for the peer exchange protocol.

Two calls, mirroring the endpoints in :mod:`order_ledger.api.routes.peer`:

- ``GET {peer}/chain/summary`` → ``{"height": int, "head_hash": str}``
- ``GET {peer}/chain/blocks``  → ``{"blocks": [block, ...]}``

The client uses the synchronous ``requests`` library.  The reconciler runs
on its own thread, so a blocking call here never stalls the API server.
Every failure is converted to a :exc:`~order_ledger.ledger.errors.PeerError`
subclass so the caller has exactly one thing to catch.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from order_ledger.ledger.block import Block
from order_ledger.ledger.chain import ChainSummary
from order_ledger.ledger.errors import PeerProtocolError, PeerUnavailable

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 5.0


class PeerClient:
    """Fetch chain summaries and block lists from peer ledger instances.

    Args:
        timeout_seconds: Per-request timeout.
    """

    def __init__(self, timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds

    def fetch_summary(self, peer_url: str) -> ChainSummary:
        """Return the peer's ``(height, head_hash)``.

        Raises:
            PeerUnavailable: Transport failure or HTTP error status.
            PeerProtocolError: Payload is missing or mistyped fields.
        """
        data = self._get_json(peer_url, "/chain/summary")
        try:
            return ChainSummary(height=int(data["height"]), head_hash=str(data["head_hash"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise PeerProtocolError(peer_url, f"malformed summary: {exc}") from exc

    def fetch_blocks(self, peer_url: str) -> list[Block]:
        """Return the peer's full block list, hashes kept as received.

        Raises:
            PeerUnavailable: Transport failure or HTTP error status.
            PeerProtocolError: Payload does not decode into blocks.
        """
        data = self._get_json(peer_url, "/chain/blocks")
        try:
            return [Block.from_dict(raw) for raw in data["blocks"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise PeerProtocolError(peer_url, f"malformed block list: {exc}") from exc

    def _get_json(self, peer_url: str, path: str) -> dict[str, Any]:
        url = f"{peer_url.rstrip('/')}{path}"
        try:
            response = requests.get(url, timeout=self.timeout_seconds)
            response.raise_for_status()
        except requests.exceptions.Timeout as exc:
            raise PeerUnavailable(peer_url, f"timed out after {self.timeout_seconds}s") from exc
        except requests.exceptions.ConnectionError as exc:
            raise PeerUnavailable(peer_url, "connection failed") from exc
        except requests.exceptions.RequestException as exc:
            raise PeerUnavailable(peer_url, f"request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise PeerProtocolError(peer_url, f"non-JSON response from {path}") from exc
        if not isinstance(data, dict):
            raise PeerProtocolError(peer_url, f"{path} did not return a JSON object")
        return data
