"""Order Audit Ledger.

An append-only, tamper-evident, hash-chained record of the security-relevant
state transitions of business orders (created, paid, accepted, delivered,
refunded).  The ledger runs beside the order database as a side-channel: the
database holds the mutable business data, the ledger holds the immutable
facts about it.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("order-ledger")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
