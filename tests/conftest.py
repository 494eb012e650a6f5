"""
Shared fixtures: an in-memory ERC-721 chain and a scriptable wallet.

``FakeChain`` implements ``ChainGateway`` over plain dictionaries so the
session, reconstruction and mutation layers run without a node.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

import pytest
from eth_abi import encode
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from nft_client.abi import CONTRACT_ABI
from nft_client.chain import ChainGateway
from nft_client.constants import SEPOLIA_CHAIN_ID, UNRECOGNIZED_CHAIN, ZERO_ADDRESS
from nft_client.errors import WalletRequestError
from nft_client.session import SessionManager
from nft_client.wallet import NetworkParams, WalletProvider, sepolia_network

CONTRACT = "0x" + "c0" * 20
OWNER = "0x" + "11" * 20
MINTER = "0x" + "22" * 20
ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
WALLET_ONLY = "0x" + "ee" * 20
OTHER_CHAIN_ID = 1


def _same(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


def _error_string(message: str) -> str:
    return "0x08c379a0" + encode(["string"], [message]).hex()


def _unauthorized_account(account: str) -> str:
    return "0x118cdaa7" + encode(["address"], [Web3.to_checksum_address(account)]).hex()


class FakeChain(ChainGateway):
    """In-memory ERC-721 with an owner and a minter allow-list."""

    def __init__(
        self,
        chain_id: int = SEPOLIA_CHAIN_ID,
        contract: Optional[str] = CONTRACT,
        owner: str = OWNER,
        minters: Iterable[str] = (MINTER,),
    ):
        self._chain_id = chain_id
        self.contract = contract
        self.code: Dict[str, bytes] = {}
        if contract:
            self.code[contract.lower()] = b"\x60\x80\x60\x40"
        self.owner = owner
        self.minters: Set[str] = {m.lower() for m in minters}
        self.tokens: Dict[int, Dict[str, str]] = {}
        self.logs: List[Dict[str, Any]] = []
        self.head = 100
        self.next_token_id = 1
        self.failing_uris: Set[int] = set()
        self.fail_logs: Optional[Exception] = None
        self.fail_code: Optional[Exception] = None
        self.name_error: Optional[Exception] = None
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.revert_data: Dict[str, str] = {}
        self.dropped: Set[str] = set()
        self.drop_next = False
        self.calls: List[tuple] = []
        self.yield_io = False
        self._tx_counter = 0

    # ---- test helpers ----
    def emit_transfer(self, sender: str, recipient: str, token_id: int, block: Optional[int] = None, log_index: int = 0) -> None:
        if block is None:
            self.head += 1
            block = self.head
        self.head = max(self.head, block)
        self.logs.append(
            {
                "event": "Transfer",
                "args": {"from": sender, "to": recipient, "tokenId": token_id},
                "blockNumber": block,
                "logIndex": log_index,
            }
        )
        if recipient.lower() == ZERO_ADDRESS:
            self.tokens.pop(token_id, None)
        else:
            entry = self.tokens.setdefault(token_id, {"uri": f"https://meta.example/{token_id}.json"})
            entry["owner"] = recipient

    def mint_direct(self, recipient: str, uri: Optional[str] = None) -> int:
        token_id = self.next_token_id
        self.next_token_id += 1
        self.emit_transfer(ZERO_ADDRESS, recipient, token_id)
        if uri is not None:
            self.tokens[token_id]["uri"] = uri
        return token_id

    def execute(self, tx: Mapping[str, Any]) -> str:
        """Apply a transaction built by ``build_transaction`` and return its hash."""
        self._tx_counter += 1
        tx_hash = "0x" + f"{self._tx_counter:064x}"
        sender = tx["from"]
        fn_name, args = tx["fn"], tx["args"]
        status = 1
        if fn_name == "mint":
            if sender.lower() not in self.minters:
                status = 0
                self.revert_data[tx_hash] = _error_string("Not authorized to mint")
            else:
                self.mint_direct(args[0], args[1])
        elif fn_name == "setMinter":
            if not _same(sender, self.owner):
                status = 0
                self.revert_data[tx_hash] = _unauthorized_account(sender)
            elif args[1]:
                self.minters.add(args[0].lower())
            else:
                self.minters.discard(args[0].lower())
        else:
            raise ValueError(f"unsupported function {fn_name}")
        if status == 0:
            self.head += 1
        if self.drop_next:
            self.drop_next = False
            self.dropped.add(tx_hash)
        self.receipts[tx_hash] = {
            "transactionHash": bytes.fromhex(tx_hash[2:]),
            "status": status,
            "blockNumber": self.head,
            "gasUsed": 50000,
            "cumulativeGasUsed": 50000,
            "to": tx["to"],
        }
        return tx_hash

    async def _io(self) -> None:
        if self.yield_io:
            await asyncio.sleep(0)

    # ---- ChainGateway ----
    async def chain_id(self) -> int:
        return self._chain_id

    async def get_code(self, address: str) -> bytes:
        self.calls.append(("get_code", address))
        if self.fail_code is not None:
            raise self.fail_code
        return self.code.get(address.lower(), b"")

    async def block_number(self) -> int:
        self.calls.append(("block_number",))
        await self._io()
        return self.head

    async def call(self, address: str, abi: Sequence[Dict[str, Any]], fn_name: str, *args: Any, block_identifier: Any = None) -> Any:
        self.calls.append(("call", fn_name) + tuple(args))
        await self._io()
        if fn_name == "name":
            if self.name_error is not None:
                raise self.name_error
            return "Test Collection"
        if fn_name == "tokenURI":
            token_id = args[0]
            if token_id in self.failing_uris or token_id not in self.tokens:
                raise ContractLogicError(message="execution reverted")
            return self.tokens[token_id]["uri"]
        if fn_name == "ownerOf":
            token_id = args[0]
            if token_id not in self.tokens:
                raise ContractLogicError(message="execution reverted")
            return self.tokens[token_id]["owner"]
        if fn_name == "balanceOf":
            return sum(1 for t in self.tokens.values() if _same(t["owner"], args[0]))
        if fn_name == "owner":
            return self.owner
        if fn_name == "isAuthorizedMinter":
            return args[0].lower() in self.minters
        raise ContractLogicError(message=f"unknown function {fn_name}")

    async def get_logs(
        self,
        address: str,
        abi: Sequence[Dict[str, Any]],
        event_name: str,
        argument_filters: Optional[Mapping[str, Any]],
        from_block: int,
        to_block: int,
    ) -> List[Mapping[str, Any]]:
        self.calls.append(("get_logs", event_name, dict(argument_filters or {}), from_block, to_block))
        await self._io()
        if self.fail_logs is not None:
            raise self.fail_logs
        matched = []
        for entry in self.logs:
            if entry["event"] != event_name or not from_block <= entry["blockNumber"] <= to_block:
                continue
            if all(_same(entry["args"].get(k), v) for k, v in (argument_filters or {}).items()):
                matched.append(entry)
        return matched

    async def build_transaction(self, address: str, abi: Sequence[Dict[str, Any]], fn_name: str, args: Sequence[Any], sender: str) -> Dict[str, Any]:
        self.calls.append(("build_transaction", fn_name, tuple(args)))
        return {"to": address, "from": sender, "fn": fn_name, "args": tuple(args)}

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> Mapping[str, Any]:
        if tx_hash in self.dropped:
            raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
        return self.receipts[tx_hash]

    async def replay_call(self, tx: Mapping[str, Any], block_number: int) -> Any:
        for tx_hash, receipt in self.receipts.items():
            if receipt["blockNumber"] == block_number and tx_hash in self.revert_data:
                raise ContractLogicError(message="execution reverted", data=self.revert_data[tx_hash])
        return b""


class FakeWallet(WalletProvider):
    """Scriptable wallet; each toggle makes the matching request fail."""

    def __init__(
        self,
        chains: Dict[int, FakeChain],
        accounts: Sequence[str] = (ALICE,),
        chain_id: int = SEPOLIA_CHAIN_ID,
        known_chains: Optional[Iterable[int]] = None,
    ):
        self.chains = chains
        self.accounts = list(accounts)
        self.active = chain_id
        self.known_chains: Set[int] = set(known_chains if known_chains is not None else chains)
        self.permissions_error: Optional[Exception] = None
        self.accounts_error: Optional[Exception] = None
        self.switch_error: Optional[Exception] = None
        self.add_chain_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.requests: List[str] = []
        self.added_networks: List[NetworkParams] = []

    async def request_permissions(self) -> None:
        self.requests.append("wallet_requestPermissions")
        if self.permissions_error is not None:
            raise self.permissions_error

    async def request_accounts(self) -> List[str]:
        self.requests.append("eth_requestAccounts")
        if self.accounts_error is not None:
            raise self.accounts_error
        return list(self.accounts)

    async def chain_id(self) -> int:
        return self.active

    async def switch_chain(self, chain_id: int) -> None:
        self.requests.append("wallet_switchEthereumChain")
        if self.switch_error is not None:
            raise self.switch_error
        if chain_id not in self.known_chains:
            raise WalletRequestError("Unrecognized chain ID", code=UNRECOGNIZED_CHAIN)
        self.active = chain_id

    async def add_chain(self, network: NetworkParams) -> None:
        self.requests.append("wallet_addEthereumChain")
        if self.add_chain_error is not None:
            raise self.add_chain_error
        self.added_networks.append(network)
        self.known_chains.add(network.chain_id)

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        self.requests.append("eth_sendTransaction")
        if self.send_error is not None:
            raise self.send_error
        return self.reader().execute(tx)

    def reader(self) -> FakeChain:
        return self.chains[self.active]


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def other_chain() -> FakeChain:
    return FakeChain(chain_id=OTHER_CHAIN_ID, contract=None)


@pytest.fixture
def wallet(chain: FakeChain, other_chain: FakeChain) -> FakeWallet:
    return FakeWallet({SEPOLIA_CHAIN_ID: chain, OTHER_CHAIN_ID: other_chain})


@pytest.fixture
def make_session():
    def factory(wallet: Optional[WalletProvider]) -> SessionManager:
        return SessionManager(
            wallet,
            CONTRACT,
            abi=CONTRACT_ABI,
            expected_chain_id=SEPOLIA_CHAIN_ID,
            network=sepolia_network("https://rpc.sepolia.example"),
        )

    return factory


@pytest.fixture
def session(wallet: FakeWallet, make_session) -> SessionManager:
    return make_session(wallet)
