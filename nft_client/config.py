# Environment keys for the ERC-721 client. Values are read once at startup.
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .abi import load_contract_abi
from .constants import (
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_IPFS_GATEWAY,
    DEFAULT_START_BLOCK,
    SEPOLIA_CHAIN_ID,
    SEPOLIA_EXPLORER_URL,
)
from .errors import ConfigError
from .validation import is_valid_address

CONTRACT_ADDRESS_ENV = "NFT_CONTRACT_ADDRESS"
RPC_URL_ENV = "NFT_RPC_URL"
CHAIN_ID_ENV = "NFT_CHAIN_ID"
START_BLOCK_ENV = "NFT_START_BLOCK"
CONTRACT_ABI_PATH_ENV = "NFT_CONTRACT_ABI_PATH"
EXPLORER_URL_ENV = "NFT_EXPLORER_URL"
IPFS_GATEWAY_ENV = "IPFS_GATEWAY_URL"
PRIVATE_KEY_ENV = "PRIVATE_KEY"
CONFIRMATION_TIMEOUT_ENV = "NFT_CONFIRMATION_TIMEOUT"

DEFAULT_ENV_FILE = Path.cwd() / ".env"


@dataclass(frozen=True)
class ClientConfig:
    contract_address: str
    rpc_url: str
    chain_id: int = SEPOLIA_CHAIN_ID
    start_block: int = DEFAULT_START_BLOCK
    abi: List[Dict[str, Any]] = field(default_factory=lambda: load_contract_abi(None), repr=False)
    explorer_url: str = SEPOLIA_EXPLORER_URL
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    private_key: Optional[str] = field(default=None, repr=False)
    confirmation_timeout: int = DEFAULT_CONFIRMATION_TIMEOUT

    def tx_explorer_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a decimal or 0x-prefixed integer, got {raw!r}.", name) from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative.", name)
    return value


def _require(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigError(f"Environment variable `{name}` is not set.", name)
    return value


def load_config(
    env: Optional[Mapping[str, str]] = None,
    env_file: Optional[Path] = None,
) -> ClientConfig:
    """Build a :class:`ClientConfig` from ``env`` (defaults to ``os.environ``).

    When reading the process environment, a ``.env`` file is loaded first
    without overriding variables that are already set.
    """
    if env is None:
        load_dotenv(env_file or DEFAULT_ENV_FILE, override=False)
        env = os.environ

    contract_address = _require(env, CONTRACT_ADDRESS_ENV)
    if not is_valid_address(contract_address):
        raise ConfigError(
            f"`{CONTRACT_ADDRESS_ENV}` is not a valid address: {contract_address}",
            CONTRACT_ADDRESS_ENV,
        )

    private_key = (env.get(PRIVATE_KEY_ENV) or "").strip() or None

    return ClientConfig(
        contract_address=contract_address,
        rpc_url=_require(env, RPC_URL_ENV),
        chain_id=_parse_int(env, CHAIN_ID_ENV, SEPOLIA_CHAIN_ID),
        start_block=_parse_int(env, START_BLOCK_ENV, DEFAULT_START_BLOCK),
        abi=load_contract_abi(env.get(CONTRACT_ABI_PATH_ENV)),
        explorer_url=(env.get(EXPLORER_URL_ENV) or "").strip() or SEPOLIA_EXPLORER_URL,
        ipfs_gateway=(env.get(IPFS_GATEWAY_ENV) or "").strip() or DEFAULT_IPFS_GATEWAY,
        private_key=private_key,
        confirmation_timeout=_parse_int(env, CONFIRMATION_TIMEOUT_ENV, DEFAULT_CONFIRMATION_TIMEOUT),
    )
