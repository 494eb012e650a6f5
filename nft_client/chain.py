"""Chain read/write boundary.

Every piece of chain I/O the client performs goes through :class:`ChainGateway`
so that the session, reconstruction and mutation layers can run against any
JSON-RPC endpoint (``Web3Gateway``) or an in-memory chain in tests.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import Web3Exception

# Failures a JSON-RPC round trip can raise: node-side errors, HTTP transport
# errors and timeouts.
RPC_ERRORS = (Web3Exception, aiohttp.ClientError, OSError, asyncio.TimeoutError)


class ChainGateway(ABC):
    """Abstract read/write access to one chain."""

    @abstractmethod
    async def chain_id(self) -> int:
        pass

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        """Deployed bytecode at ``address`` (empty for plain accounts)."""
        pass

    @abstractmethod
    async def block_number(self) -> int:
        pass

    @abstractmethod
    async def call(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        fn_name: str,
        *args: Any,
        block_identifier: Any = None,
    ) -> Any:
        """Execute a read-only contract call and return the decoded result."""
        pass

    @abstractmethod
    async def get_logs(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        event_name: str,
        argument_filters: Optional[Mapping[str, Any]],
        from_block: int,
        to_block: int,
    ) -> List[Mapping[str, Any]]:
        """Decoded event entries with ``args``, ``blockNumber`` and ``logIndex``."""
        pass

    @abstractmethod
    async def build_transaction(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        fn_name: str,
        args: Sequence[Any],
        sender: str,
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> Mapping[str, Any]:
        pass

    @abstractmethod
    async def replay_call(self, tx: Mapping[str, Any], block_number: int) -> Any:
        """Re-execute ``tx`` as a call at ``block_number`` (used to recover revert data)."""
        pass


class Web3Gateway(ChainGateway):
    """:class:`ChainGateway` over ``web3.AsyncWeb3``."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    @classmethod
    def from_rpc(cls, rpc_url: str) -> "Web3Gateway":
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)))

    def _contract(self, address: str, abi: Sequence[Dict[str, Any]]) -> AsyncContract:
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))

    async def chain_id(self) -> int:
        return int(await self.w3.eth.chain_id)

    async def get_code(self, address: str) -> bytes:
        code = await self.w3.eth.get_code(Web3.to_checksum_address(address))
        return bytes(code)

    async def block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def call(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        fn_name: str,
        *args: Any,
        block_identifier: Any = None,
    ) -> Any:
        fn = getattr(self._contract(address, abi).functions, fn_name)(*args)
        if block_identifier is None:
            return await fn.call()
        return await fn.call(block_identifier=block_identifier)

    async def get_logs(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        event_name: str,
        argument_filters: Optional[Mapping[str, Any]],
        from_block: int,
        to_block: int,
    ) -> List[Mapping[str, Any]]:
        event = getattr(self._contract(address, abi).events, event_name)
        filters = {
            key: Web3.to_checksum_address(value) if isinstance(value, str) else value
            for key, value in (argument_filters or {}).items()
        }
        entries = await event.get_logs(
            argument_filters=filters or None,
            from_block=from_block,
            to_block=to_block,
        )
        return list(entries)

    async def build_transaction(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        fn_name: str,
        args: Sequence[Any],
        sender: str,
    ) -> Dict[str, Any]:
        fn = getattr(self._contract(address, abi).functions, fn_name)(*args)
        tx = await fn.build_transaction({"from": Web3.to_checksum_address(sender)})
        return dict(tx)

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> Mapping[str, Any]:
        return await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    async def replay_call(self, tx: Mapping[str, Any], block_number: int) -> Any:
        call_tx = dict(tx)
        for key in ("nonce", "gas", "gasPrice", "maxFeePerGas", "maxPriorityFeePerGas", "type"):
            call_tx.pop(key, None)
        return await self.w3.eth.call(call_tx, block_identifier=block_number)
