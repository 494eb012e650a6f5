"""Minimal ERC-721 + minter allow-list ABI and ABI file loading."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError


def _view(name: str, inputs: List[Dict[str, str]], output_type: str) -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": inputs,
        "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
    }


CONTRACT_ABI: List[Dict[str, Any]] = [
    _view("name", [], "string"),
    _view("symbol", [], "string"),
    _view("tokenURI", [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}], "string"),
    _view("ownerOf", [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}], "address"),
    _view("balanceOf", [{"internalType": "address", "name": "owner", "type": "address"}], "uint256"),
    _view("owner", [], "address"),
    _view("isAuthorizedMinter", [{"internalType": "address", "name": "minter", "type": "address"}], "bool"),
    {
        "name": "setMinter",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"internalType": "address", "name": "minter", "type": "address"},
            {"internalType": "bool", "name": "status", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "name": "mint",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "string", "name": "uri", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "anonymous": False,
        "name": "Transfer",
        "type": "event",
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
            {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"},
        ],
    },
    {
        "anonymous": False,
        "name": "OwnershipTransferred",
        "type": "event",
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "previousOwner", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "newOwner", "type": "address"},
        ],
    },
]


def load_contract_abi(abi_path: Optional[str]) -> List[Dict[str, Any]]:
    """Load a contract ABI JSON from disk, falling back to ``CONTRACT_ABI``.

    Accepts a plain ABI list or a build artifact that wraps the ABI under an
    ``"abi"`` key.
    """
    if not abi_path:
        return CONTRACT_ABI

    p = Path(abi_path).expanduser().resolve()
    if not p.is_file():
        raise ConfigError(f"ABI file not found: {p}", variable="NFT_CONTRACT_ABI_PATH")

    text = p.read_text(encoding="utf-8")
    if not text.strip():
        raise ConfigError(f"ABI file is empty: {p}", variable="NFT_CONTRACT_ABI_PATH")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"ABI file is not valid JSON: {p} - {exc}", variable="NFT_CONTRACT_ABI_PATH"
        ) from exc

    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return data["abi"]
    if isinstance(data, list):
        return data
    raise ConfigError(
        f"ABI file does not contain a valid ABI (expected dict with 'abi' key or list): {p}",
        variable="NFT_CONTRACT_ABI_PATH",
    )
