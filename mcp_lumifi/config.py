"""
Configuration Management for the LumiFi Ledger Server

This module loads and validates all configuration for the ledger services. Settings
come from environment variables (optionally through a .env file) with defaults
suitable for local development.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module

Security Considerations:
- CONTRACT_SEED controls the custody account that holds all sale proceeds and
  must be managed securely in production
- CORS origins should be restricted in production

Environment Variables:
    CONTRACT_SEED: Comma-separated seed bytes for the contract custody keypair
    STORAGE_BACKEND: "memory" or "json"
    LEDGER_STATE_DIR: Directory used by the JSON storage backend
    ICO_ID_STRATEGY: "zero", "random" or "derived"
    GENESIS_BALANCES: "asset:account:amount;..." initial asset balances
    ACTIONS_PORT: Port for the HTTP API server
    CORS_ALLOWED_ORIGINS: Comma-separated allowed CORS origins
"""
import os
import logging
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from mcp_lumifi.errors import ConfigurationError

logger = logging.getLogger(__name__)

load_dotenv()

STORAGE_BACKENDS = ("memory", "json")
ICO_ID_STRATEGY_NAMES = ("zero", "random", "derived")


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_choice(key: str, default: str, choices: Tuple[str, ...]) -> str:
    value = _get_env_str(key, default).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"Environment variable {key} must be one of {', '.join(choices)}, got '{value}'")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _load_contract_keypair() -> Keypair:
    """Load the contract custody keypair from CONTRACT_SEED."""
    seed_str = os.getenv("CONTRACT_SEED", ",".join(["2"] * 32))

    try:
        seed_parts = [x.strip() for x in seed_str.split(",")]
        if len(seed_parts) != 32:
            raise ValueError(f"CONTRACT_SEED must contain exactly 32 comma-separated integers, got {len(seed_parts)}")
        seed_bytes = bytes([int(x) for x in seed_parts])
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Error loading CONTRACT_SEED: {e}")

    keypair = Keypair.from_seed(seed_bytes)
    logger.info(f"Loaded contract custody account: {keypair.pubkey()}")
    return keypair


def parse_genesis_balances(entries: str) -> List[Tuple[Pubkey, Pubkey, int]]:
    """
    Parses "asset:account:amount;asset:account:amount" into balance triples.

    Blank entries are ignored.
    """
    balances = []
    for entry in entries.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        try:
            asset, account, amount = (part.strip() for part in entry.split(":"))
            balances.append((Pubkey.from_string(asset), Pubkey.from_string(account), int(amount)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid GENESIS_BALANCES entry '{entry}': {e}")
        if balances[-1][2] < 0:
            raise ConfigurationError(f"Genesis balance must be non-negative in entry '{entry}'")
    return balances


try:
    # --- Contract ---
    CONTRACT_KEYPAIR = _load_contract_keypair()
    CONTRACT_ADDRESS = CONTRACT_KEYPAIR.pubkey()

    # --- Storage ---
    STORAGE_BACKEND = _get_env_choice("STORAGE_BACKEND", "memory", STORAGE_BACKENDS)
    LEDGER_STATE_DIR = _get_env_str("LEDGER_STATE_DIR", "ledger_state", required=True)

    # --- ICO ---
    ICO_ID_STRATEGY = _get_env_choice("ICO_ID_STRATEGY", "zero", ICO_ID_STRATEGY_NAMES)

    # --- Assets ---
    GENESIS_BALANCES = parse_genesis_balances(_get_env_str("GENESIS_BALANCES", ""))

    # --- HTTP API ---
    ACTIONS_PORT = _get_env_int("ACTIONS_PORT", 5000, min_val=1024, max_val=65535)
    CORS_ALLOWED_ORIGINS = [o.strip() for o in _get_env_str("CORS_ALLOWED_ORIGINS", "*").split(",") if o.strip()]

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
