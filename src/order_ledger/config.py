"""
Ledger service configuration management.

This module handles loading and accessing configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/ledger.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
LedgerConfig dataclass provides typed access to all settings.

Usage:
    from order_ledger.config import config

    print(config.server.port)
    print(config.ledger.difficulty)
    print(config.reconcile.peers)

Environment Variable Mapping:
    LEDGER_HOST                 -> server.host
    LEDGER_PORT                 -> server.port
    LEDGER_DIFFICULTY           -> ledger.difficulty
    LEDGER_STORE_PATH           -> storage.path
    LEDGER_SAVE_EVERY_APPEND    -> storage.save_every_append
    LEDGER_PEERS                -> reconcile.peers
    LEDGER_RECONCILE_INTERVAL   -> reconcile.interval_seconds
    LEDGER_PEER_TIMEOUT         -> reconcile.timeout_seconds
    LEDGER_LOG_LEVEL            -> logging.level
"""

import configparser
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "ledger.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "ledger.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8100


@dataclass
class LedgerSettings:
    """Chain construction settings."""

    # 0 disables the proof-of-work search entirely (normal operating mode).
    difficulty: int = 0


@dataclass
class StorageSettings:
    """Chain snapshot persistence."""

    path: str = "data/ledger/chain.json"
    save_every_append: bool = True

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to the chain snapshot file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class ReconcileSettings:
    """Peer reconciliation schedule."""

    peers: list[str] = field(default_factory=list)
    interval_seconds: float = 30.0
    timeout_seconds: float = 5.0


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed"] = "detailed"


@dataclass
class LedgerConfig:
    """
    Complete service configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    reconcile: ReconcileSettings = field(default_factory=ReconcileSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def reconcile_enabled(self) -> bool:
        """Reconciliation only runs when at least one peer is configured."""
        return bool(self.reconcile.peers)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_difficulty(value: str | int) -> int:
    """Parse a work difficulty; it must be a non-negative integer."""
    difficulty = int(value)
    if difficulty < 0:
        raise ValueError(f"Ledger difficulty must be >= 0, got {difficulty}.")
    return difficulty


def _load_from_ini(parser: configparser.ConfigParser, cfg: LedgerConfig) -> None:
    """Load configuration from parsed INI file into LedgerConfig."""
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    if parser.has_section("ledger"):
        if parser.has_option("ledger", "difficulty"):
            cfg.ledger.difficulty = _parse_difficulty(parser.get("ledger", "difficulty"))

    if parser.has_section("storage"):
        if parser.has_option("storage", "path"):
            cfg.storage.path = parser.get("storage", "path")
        if parser.has_option("storage", "save_every_append"):
            cfg.storage.save_every_append = _parse_bool(
                parser.get("storage", "save_every_append")
            )

    if parser.has_section("reconcile"):
        if parser.has_option("reconcile", "peers"):
            cfg.reconcile.peers = _parse_list(parser.get("reconcile", "peers"))
        if parser.has_option("reconcile", "interval_seconds"):
            cfg.reconcile.interval_seconds = parser.getfloat("reconcile", "interval_seconds")
        if parser.has_option("reconcile", "timeout_seconds"):
            cfg.reconcile.timeout_seconds = parser.getfloat("reconcile", "timeout_seconds")

    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: LedgerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_host := os.getenv("LEDGER_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("LEDGER_PORT"):
        cfg.server.port = int(env_port)

    if env_difficulty := os.getenv("LEDGER_DIFFICULTY"):
        cfg.ledger.difficulty = _parse_difficulty(env_difficulty)

    if env_store := os.getenv("LEDGER_STORE_PATH"):
        cfg.storage.path = env_store
    if env_save := os.getenv("LEDGER_SAVE_EVERY_APPEND"):
        cfg.storage.save_every_append = _parse_bool(env_save)

    if (env_peers := os.getenv("LEDGER_PEERS")) is not None:
        cfg.reconcile.peers = _parse_list(env_peers)
    if env_interval := os.getenv("LEDGER_RECONCILE_INTERVAL"):
        cfg.reconcile.interval_seconds = float(env_interval)
    if env_timeout := os.getenv("LEDGER_PEER_TIMEOUT"):
        cfg.reconcile.timeout_seconds = float(env_timeout)

    if env_log := os.getenv("LEDGER_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config() -> LedgerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/ledger.ini
        3. config/ledger.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        LedgerConfig: Fully populated configuration object.
    """
    cfg = LedgerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "LedgerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Already-running
    reconcilers keep the settings they were built with.

    Returns:
        LedgerConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_LOG_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}


def configure_logging(cfg: LedgerConfig | None = None) -> None:
    """Configure the root logger from the ``[logging]`` section."""
    cfg = cfg or config
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level, logging.INFO),
        format=_LOG_FORMATS[cfg.logging.format],
        force=True,
    )


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "difficulty": config.ledger.difficulty,
        "store_path": str(config.storage.absolute_path),
        "peer_count": len(config.reconcile.peers),
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("LEDGER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to ledger.ini for production)")
    print("-" * 60)
    print(f"Server:      {config.server.host}:{config.server.port}")
    print(f"Difficulty:  {config.ledger.difficulty}")
    print(f"Store:       {status['store_path']}")
    print(f"Peers:       {config.reconcile.peers}")
    print(f"Reconcile:   every {config.reconcile.interval_seconds}s")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_store:
    """
    Context manager for using a temporary chain snapshot file.

    Usage:
        from order_ledger.config import use_test_store

        def test_something(tmp_path):
            with use_test_store(tmp_path / "chain.json"):
                ...

    Args:
        store_path: Path to the test snapshot file
    """

    def __init__(self, store_path: Path | str):
        self.store_path = Path(store_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Point storage at the test path."""
        self.original_path = config.storage.path
        config.storage.path = str(self.store_path)
        return self.store_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original storage path."""
        if self.original_path is not None:
            config.storage.path = self.original_path
        return None
