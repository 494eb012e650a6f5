from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from web3 import Web3

from .chain import ChainGateway
from .models import OwnershipTransfer, TransferEvent
from .validation import same_address

if TYPE_CHECKING:
    from .wallet import WalletProvider


@dataclass(frozen=True, eq=False)
class ContractHandle:
    """A contract address bound to an ABI, a reader and (optionally) a signer.

    Handles without a signer are read-only; the mutation dispatcher refuses
    them.
    """

    address: str
    abi: Sequence[Dict[str, Any]] = field(repr=False)
    reader: ChainGateway = field(repr=False)
    signer: Optional["WalletProvider"] = field(default=None, repr=False)
    account: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", Web3.to_checksum_address(self.address))

    @property
    def read_only(self) -> bool:
        return self.signer is None or self.account is None

    def with_account(self, account: Optional[str]) -> "ContractHandle":
        return replace(self, account=account)

    async def _call(self, fn_name: str, *args: Any) -> Any:
        return await self.reader.call(self.address, self.abi, fn_name, *args)

    async def name(self) -> str:
        return await self._call("name")

    async def token_uri(self, token_id: int) -> str:
        return await self._call("tokenURI", token_id)

    async def owner_of(self, token_id: int) -> str:
        return await self._call("ownerOf", token_id)

    async def balance_of(self, address: str) -> int:
        return int(await self._call("balanceOf", Web3.to_checksum_address(address)))

    async def owner(self) -> str:
        return await self._call("owner")

    async def is_authorized_minter(self, address: str) -> bool:
        return bool(await self._call("isAuthorizedMinter", Web3.to_checksum_address(address)))

    async def is_owner(self, account: Optional[str]) -> bool:
        """Read-only pre-check used to decide whether to offer minter management."""
        if not account:
            return False
        return same_address(await self.owner(), account)

    async def can_mint(self, account: Optional[str]) -> bool:
        if not account:
            return False
        return await self.is_authorized_minter(account)

    async def transfer_events(
        self,
        *,
        from_block: int,
        to_block: int,
        sender: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> List[TransferEvent]:
        filters: Dict[str, Any] = {}
        if sender is not None:
            filters["from"] = sender
        if recipient is not None:
            filters["to"] = recipient
        entries = await self.reader.get_logs(
            self.address, self.abi, "Transfer", filters, from_block, to_block
        )
        return [TransferEvent.from_log(entry) for entry in entries]

    async def ownership_transfers(self, *, from_block: int, to_block: int) -> List[OwnershipTransfer]:
        entries = await self.reader.get_logs(
            self.address, self.abi, "OwnershipTransferred", None, from_block, to_block
        )
        transfers = [OwnershipTransfer.from_log(entry) for entry in entries]
        return sorted(transfers, key=lambda t: (t.block_number, t.log_index))
