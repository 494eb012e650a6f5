"""Wallet provider boundary.

``WalletProvider`` captures the only wallet operations the client consumes
(account access, network switch/registration, transaction submission). The
session manager is written against it so a browser bridge, a local key or a
test double can stand behind it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import Web3Exception

from .chain import ChainGateway, Web3Gateway
from .constants import (
    NATIVE_DECIMALS,
    SEPOLIA_CHAIN_ID,
    SEPOLIA_CHAIN_NAME,
    SEPOLIA_CURRENCY_NAME,
    SEPOLIA_CURRENCY_SYMBOL,
    SEPOLIA_EXPLORER_URL,
    UNRECOGNIZED_CHAIN,
)
from .errors import WalletRequestError
from .logging_utils import get_logger

logger = get_logger("wallet")


@dataclass(frozen=True)
class NetworkParams:
    """Everything a wallet needs to register a network it does not know."""

    chain_id: int
    chain_name: str
    currency_name: str
    currency_symbol: str
    rpc_urls: Tuple[str, ...]
    explorer_urls: Tuple[str, ...] = ()
    decimals: int = NATIVE_DECIMALS

    @property
    def hex_chain_id(self) -> str:
        return hex(self.chain_id)

    def to_add_chain_payload(self) -> Dict[str, Any]:
        """Parameters for ``wallet_addEthereumChain``."""
        return {
            "chainId": self.hex_chain_id,
            "chainName": self.chain_name,
            "nativeCurrency": {
                "name": self.currency_name,
                "symbol": self.currency_symbol,
                "decimals": self.decimals,
            },
            "rpcUrls": list(self.rpc_urls),
            "blockExplorerUrls": list(self.explorer_urls),
        }


def sepolia_network(rpc_url: str, explorer_url: str = SEPOLIA_EXPLORER_URL) -> NetworkParams:
    return NetworkParams(
        chain_id=SEPOLIA_CHAIN_ID,
        chain_name=SEPOLIA_CHAIN_NAME,
        currency_name=SEPOLIA_CURRENCY_NAME,
        currency_symbol=SEPOLIA_CURRENCY_SYMBOL,
        rpc_urls=(rpc_url,),
        explorer_urls=(explorer_url,),
    )


class WalletProvider(ABC):
    """Abstract wallet. All requests may prompt the user and never time out."""

    @abstractmethod
    async def request_permissions(self) -> None:
        """Ask the wallet to re-prompt for account selection."""
        pass

    @abstractmethod
    async def request_accounts(self) -> List[str]:
        pass

    @abstractmethod
    async def chain_id(self) -> int:
        pass

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        """Raise ``WalletRequestError(code=4902)`` when the chain is unknown."""
        pass

    @abstractmethod
    async def add_chain(self, network: NetworkParams) -> None:
        pass

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast ``tx``; return the transaction hash."""
        pass

    @abstractmethod
    def reader(self) -> ChainGateway:
        """A gateway on the wallet's currently selected network."""
        pass


async def supports_eip1559(gateway: Web3Gateway) -> bool:
    try:
        latest = await gateway.w3.eth.get_block("latest")
        return latest.get("baseFeePerGas") is not None
    except Web3Exception:
        return False


async def fee_params(gateway: Web3Gateway, priority_fee_gwei: int = 1) -> Dict[str, int]:
    """Return EIP-1559 fee fields when supported; otherwise a legacy gasPrice."""
    if await supports_eip1559(gateway):
        latest = await gateway.w3.eth.get_block("latest")
        base = int(latest["baseFeePerGas"])
        prio = Web3.to_wei(priority_fee_gwei, "gwei")
        return {"maxFeePerGas": base * 2 + prio, "maxPriorityFeePerGas": prio}
    return {"gasPrice": int(await gateway.w3.eth.gas_price)}


class LocalAccountWallet(WalletProvider):
    """A wallet backed by a private key and a registry of JSON-RPC networks."""

    def __init__(
        self,
        private_key: str,
        networks: Mapping[int, str],
        chain_id: int,
        priority_fee_gwei: int = 1,
    ):
        if chain_id not in networks:
            raise ValueError(f"No RPC URL registered for chain {chain_id}")
        try:
            self._account = Account.from_key(private_key)
        except ValueError as exc:
            raise WalletRequestError("Private key could not be parsed.") from exc
        self._networks: Dict[int, str] = dict(networks)
        self._gateways: Dict[int, Web3Gateway] = {}
        self._active = chain_id
        self._priority_fee_gwei = priority_fee_gwei
        self._last_nonce: Dict[Tuple[int, str], int] = {}

    @property
    def address(self) -> str:
        return self._account.address

    def _gateway(self, chain_id: int) -> Web3Gateway:
        if chain_id not in self._gateways:
            self._gateways[chain_id] = Web3Gateway.from_rpc(self._networks[chain_id])
        return self._gateways[chain_id]

    def reader(self) -> Web3Gateway:
        return self._gateway(self._active)

    async def request_permissions(self) -> None:
        # A local key exposes exactly one account; there is nothing to re-prompt.
        return None

    async def request_accounts(self) -> List[str]:
        return [self._account.address]

    async def chain_id(self) -> int:
        return self._active

    async def switch_chain(self, chain_id: int) -> None:
        if chain_id not in self._networks:
            raise WalletRequestError(
                f"Unrecognized chain ID {hex(chain_id)}. Try adding the chain first.",
                code=UNRECOGNIZED_CHAIN,
            )
        self._active = chain_id
        logger.info("Local wallet switched to chain %s", chain_id)

    async def add_chain(self, network: NetworkParams) -> None:
        if not network.rpc_urls:
            raise WalletRequestError("Network registration requires an RPC URL.")
        candidate = Web3Gateway.from_rpc(network.rpc_urls[0])
        try:
            reported = await candidate.chain_id()
        except Web3Exception as exc:
            raise WalletRequestError(f"Unable to reach {network.chain_name} RPC: {exc}") from exc
        if reported != network.chain_id:
            raise WalletRequestError(
                f"RPC for {network.chain_name} reports chain {reported}, expected {network.chain_id}."
            )
        self._networks[network.chain_id] = network.rpc_urls[0]
        self._gateways[network.chain_id] = candidate
        logger.info("Registered network %s (%s)", network.chain_name, network.chain_id)

    async def _next_nonce(self, gateway: Web3Gateway) -> int:
        """Pending nonce plus a monotonic bump so fast resubmits never collide."""
        pending = await gateway.w3.eth.get_transaction_count(self._account.address, "pending")
        key = (self._active, self._account.address.lower())
        last = self._last_nonce.get(key)
        if last is not None and pending <= last:
            pending = last + 1
        self._last_nonce[key] = pending
        return pending

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        gateway = self.reader()
        prepared = dict(tx)
        prepared["from"] = self._account.address
        prepared["chainId"] = self._active
        prepared.setdefault("value", 0)
        if "nonce" not in prepared:
            prepared["nonce"] = await self._next_nonce(gateway)
        if "gasPrice" not in prepared and "maxFeePerGas" not in prepared:
            prepared.update(await fee_params(gateway, self._priority_fee_gwei))
        if "gas" not in prepared:
            prepared["gas"] = int(await gateway.w3.eth.estimate_gas(prepared) * 12 // 10)

        signed = self._account.sign_transaction(prepared)
        raw_tx = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
        if raw_tx is None:
            raise WalletRequestError("Signed transaction missing raw_transaction")
        local_hash = Web3.to_hex(Web3.keccak(raw_tx))
        try:
            tx_hash = await gateway.w3.eth.send_raw_transaction(raw_tx)
        except Web3Exception as exc:
            if "already known" in str(exc):
                return local_hash
            raise WalletRequestError(f"Broadcast failed: {exc}") from exc
        return Web3.to_hex(tx_hash)
