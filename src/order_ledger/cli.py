"""
Command-line interface for the order audit ledger.

Provides CLI commands for ledger operation:
- run: Start the ledger API (and the reconciler when peers are configured)
- verify: Validate the stored chain snapshot and report every violation
- history: Print the audit trail of one order from the stored snapshot
- config: Print the effective configuration

Usage:
    order-ledger run [--host HOST] [--port PORT]
    order-ledger verify [--store PATH]
    order-ledger history ORDER_ID [--store PATH]
    order-ledger config

Environment Variables:
    LEDGER_HOST, LEDGER_PORT, LEDGER_DIFFICULTY, LEDGER_STORE_PATH,
    LEDGER_PEERS, LEDGER_RECONCILE_INTERVAL, LEDGER_LOG_LEVEL
    (see order_ledger.config for the full mapping)
"""

import argparse
import json
import sys
from pathlib import Path

from order_ledger.config import config, configure_logging, print_config_summary
from order_ledger.ledger.errors import LedgerIntegrityError, LedgerPersistenceError
from order_ledger.ledger.store import ChainStore


def _store_from_args(args: argparse.Namespace) -> ChainStore:
    store_path = getattr(args, "store", None)
    return ChainStore(Path(store_path) if store_path else config.storage.absolute_path)


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the ledger API server.

    The stored chain is loaded and validated before the server accepts any
    append.  A snapshot that fails validation aborts startup.

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error
    """
    from order_ledger.api.server import start_server

    host = getattr(args, "host", None)
    port = getattr(args, "port", None)

    try:
        start_server(host=host, port=port)
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except LedgerIntegrityError as e:
        print(f"Refusing to start: {e}", file=sys.stderr)
        for issue in e.report.issues:
            print(f"  - height {issue.height}: {issue.kind}: {issue.detail}", file=sys.stderr)
        return 1
    except LedgerPersistenceError as e:
        print(f"Error loading chain snapshot: {e}", file=sys.stderr)
        return 1


def cmd_verify(args: argparse.Namespace) -> int:
    """
    Validate the stored chain snapshot.

    Returns:
        0 if the chain is valid or absent, 1 if it is invalid or unreadable
    """
    store = _store_from_args(args)

    try:
        chain = store.load(config.ledger.difficulty)
    except LedgerIntegrityError as e:
        report = e.report
        print(f"INVALID: {report.block_count} blocks, {len(report.issues)} issue(s)")
        for issue in report.issues:
            print(f"  - height {issue.height}: {issue.kind}: {issue.detail}")
        return 1
    except LedgerPersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if chain is None:
        print(f"No chain snapshot at {store.path}.")
        return 0

    print(f"OK: {len(chain)} blocks, head height {chain.height}, head {chain.head_hash}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """
    Print the audit trail of one order as JSON lines.

    Returns:
        0 on success, 1 if the snapshot cannot be loaded
    """
    store = _store_from_args(args)

    try:
        chain = store.load(config.ledger.difficulty)
    except (LedgerIntegrityError, LedgerPersistenceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if chain is None:
        print(f"No chain snapshot at {store.path}.", file=sys.stderr)
        return 1

    for tx in chain.transactions_for_order(args.order_id):
        print(json.dumps(tx.to_dict(), ensure_ascii=False))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    print_config_summary()
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="order-ledger",
        description="Order audit ledger - tamper-evident record of order state changes",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Start the ledger API server",
        description="Load and validate the chain, then serve the ledger API.",
    )
    run_parser.add_argument("--host", type=str, default=None, help="Host to bind")
    run_parser.add_argument("--port", type=int, default=None, help="Port to bind")
    run_parser.set_defaults(func=cmd_run)

    verify_parser = subparsers.add_parser(
        "verify",
        help="Validate the stored chain snapshot",
        description="Re-derive every block hash and link and report all violations.",
    )
    verify_parser.add_argument("--store", type=str, default=None, help="Snapshot file path")
    verify_parser.set_defaults(func=cmd_verify)

    history_parser = subparsers.add_parser(
        "history",
        help="Print one order's audit trail",
        description="Print every transaction for ORDER_ID in chain order, one JSON per line.",
    )
    history_parser.add_argument("order_id", help="Business order identifier")
    history_parser.add_argument("--store", type=str, default=None, help="Snapshot file path")
    history_parser.set_defaults(func=cmd_history)

    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
