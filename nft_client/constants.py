from __future__ import annotations

import re


SEPOLIA_CHAIN_ID = 11155111
SEPOLIA_CHAIN_NAME = "Sepolia Test Network"
SEPOLIA_CURRENCY_NAME = "SepoliaETH"
SEPOLIA_CURRENCY_SYMBOL = "SEP"
SEPOLIA_EXPLORER_URL = "https://sepolia.etherscan.io/"
NATIVE_DECIMALS = 18

DEFAULT_START_BLOCK = 0
DEFAULT_CONFIRMATION_TIMEOUT = 120
DEFAULT_METADATA_TIMEOUT = 10.0

IPFS_SCHEME = "ipfs://"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs/"
ACCEPTED_URI_SCHEMES = ("http://", "https://", "ipfs://")

# Stored in place of a token URI whose read failed.
FAILED_TOKEN_URI = "Failed to load"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

# EIP-1193 provider error codes
USER_REJECTED_REQUEST = 4001
UNRECOGNIZED_CHAIN = 4902


__all__ = [
    "SEPOLIA_CHAIN_ID",
    "SEPOLIA_CHAIN_NAME",
    "SEPOLIA_CURRENCY_NAME",
    "SEPOLIA_CURRENCY_SYMBOL",
    "SEPOLIA_EXPLORER_URL",
    "NATIVE_DECIMALS",
    "DEFAULT_START_BLOCK",
    "DEFAULT_CONFIRMATION_TIMEOUT",
    "DEFAULT_METADATA_TIMEOUT",
    "IPFS_SCHEME",
    "DEFAULT_IPFS_GATEWAY",
    "ACCEPTED_URI_SCHEMES",
    "FAILED_TOKEN_URI",
    "ZERO_ADDRESS",
    "ADDRESS_PATTERN",
    "USER_REJECTED_REQUEST",
    "UNRECOGNIZED_CHAIN",
]
