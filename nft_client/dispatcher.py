"""
State-changing contract calls: ``mint`` and ``setMinter``.

Inputs are validated before any network activity. ``submit`` returns as soon
as the wallet hands back a transaction hash; confirmation runs in a task that
callers await through :meth:`SubmittedTransaction.wait`.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import TimeExhausted

from .chain import ChainGateway
from .constants import DEFAULT_CONFIRMATION_TIMEOUT, USER_REJECTED_REQUEST
from .contract import ContractHandle
from .errors import (
    MutationError,
    SignerUnavailableError,
    SubmissionError,
    TransactionFailedError,
    WalletRequestError,
)
from .logging_utils import get_logger
from .validation import truncate_address, validate_address, validate_token_uri

logger = get_logger("dispatcher")

_ERROR_STRING_SELECTOR = "08c379a0"

_CUSTOM_ERROR_MAP: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "118cdaa7": ("OwnableUnauthorizedAccount", ("address",)),
    "1e4fbdf7": ("OwnableInvalidOwner", ("address",)),
    "7e273289": ("ERC721NonexistentToken", ("uint256",)),
    "64a0ae92": ("ERC721InvalidReceiver", ("address",)),
}


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class MintCall:
    to: str
    token_uri: str

    fn_name: ClassVar[str] = "mint"

    def validated(self) -> "MintCall":
        return replace(
            self,
            to=validate_address(self.to, "to"),
            token_uri=validate_token_uri(self.token_uri, "token_uri"),
        )

    def args(self) -> Tuple[Any, ...]:
        return (Web3.to_checksum_address(self.to), self.token_uri)


@dataclass(frozen=True)
class SetMinterCall:
    minter: str
    authorized: bool = True

    fn_name: ClassVar[str] = "setMinter"

    def validated(self) -> "SetMinterCall":
        return replace(self, minter=validate_address(self.minter, "minter"), authorized=bool(self.authorized))

    def args(self) -> Tuple[Any, ...]:
        return (Web3.to_checksum_address(self.minter), self.authorized)


def _hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


def format_receipt(receipt: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if receipt is None:
        return {"status": "pending"}
    return {
        "transactionHash": _hex(receipt.get("transactionHash")),
        "status": receipt.get("status"),
        "blockNumber": receipt.get("blockNumber"),
        "gasUsed": receipt.get("gasUsed"),
        "cumulativeGasUsed": receipt.get("cumulativeGasUsed"),
    }


def decode_revert_data(data_hex: Optional[str]) -> Optional[str]:
    """Human-readable form of ``Error(string)`` or a known custom error."""
    if not data_hex or not data_hex.startswith("0x"):
        return None
    try:
        data = bytes.fromhex(data_hex[2:])
    except ValueError:
        return None
    if len(data) < 4:
        return None
    selector = data[:4].hex()
    if selector == _ERROR_STRING_SELECTOR:
        try:
            return decode(["string"], data[4:])[0]
        except DecodingError:
            return None
    meta = _CUSTOM_ERROR_MAP.get(selector)
    if not meta:
        return None
    name, types = meta
    try:
        values = decode(list(types), data[4:])
    except DecodingError:
        return f"{name}(malformed)"
    rendered = ", ".join(f"{typ}={value}" for typ, value in zip(types, values))
    return f"{name}({rendered})"


async def extract_revert_reason(
    reader: ChainGateway, tx: Mapping[str, Any], receipt: Mapping[str, Any]
) -> Optional[str]:
    """Replay ``tx`` at the receipt's block to recover the revert reason."""
    block_number = receipt.get("blockNumber")
    if block_number is None:
        return None
    call_tx = dict(tx)
    call_tx.setdefault("to", receipt.get("to"))
    try:
        await reader.replay_call(call_tx, block_number)
    except Exception as exc:
        data_hex = getattr(exc, "data", None)
        if not isinstance(data_hex, str) and exc.args and isinstance(exc.args[0], dict):
            data_hex = exc.args[0].get("data")
        decoded = decode_revert_data(data_hex if isinstance(data_hex, str) else None)
        if decoded:
            return decoded
        message = str(exc)
        if message in {"execution reverted", "execution reverted: no data", "('execution reverted', 'no data')"}:
            return None
        if "execution reverted:" in message:
            return message.split("execution reverted:", 1)[1].strip()
        return message or None
    return None


class SubmittedTransaction:
    """A broadcast transaction whose confirmation may still be outstanding."""

    def __init__(self, tx_hash: str, call: Any, task: "asyncio.Task[Dict[str, Any]]"):
        self.hash = tx_hash
        self.call = call
        self._task = task
        task.add_done_callback(_consume_result)

    @property
    def status(self) -> TxStatus:
        if not self._task.done():
            return TxStatus.PENDING
        if self._task.cancelled() or self._task.exception() is not None:
            return TxStatus.FAILED
        return TxStatus.CONFIRMED

    @property
    def error(self) -> Optional[BaseException]:
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    async def wait(self) -> Dict[str, Any]:
        """Formatted receipt once confirmed; raises ``TransactionFailedError`` otherwise."""
        return await self._task


def _consume_result(task: "asyncio.Task[Any]") -> None:
    if not task.cancelled():
        task.exception()


class MutationDispatcher:
    def __init__(self, confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT):
        self.confirmation_timeout = confirmation_timeout

    async def submit(self, handle: ContractHandle, call: Any) -> SubmittedTransaction:
        call = call.validated()
        signer, account = handle.signer, handle.account
        if signer is None or account is None:
            raise SignerUnavailableError("Connect a wallet before sending transactions.")

        try:
            tx = await handle.reader.build_transaction(
                handle.address, handle.abi, call.fn_name, call.args(), account
            )
            tx_hash = await signer.send_transaction(tx)
        except MutationError:
            raise
        except WalletRequestError as exc:
            if exc.code == USER_REJECTED_REQUEST:
                raise SubmissionError("Transaction rejected in wallet.") from exc
            raise SubmissionError(f"{call.fn_name} submission failed: {exc}") from exc
        except Exception as exc:
            raise SubmissionError(f"{call.fn_name} submission failed: {exc}") from exc

        logger.info("%s submitted by %s: %s", call.fn_name, truncate_address(account), tx_hash)
        task = asyncio.ensure_future(self._confirm(handle, tx, tx_hash))
        return SubmittedTransaction(tx_hash, call, task)

    async def _confirm(self, handle: ContractHandle, tx: Dict[str, Any], tx_hash: str) -> Dict[str, Any]:
        try:
            receipt = await handle.reader.wait_for_receipt(tx_hash, self.confirmation_timeout)
        except TimeExhausted as exc:
            logger.warning("Transaction %s not confirmed within %ss", tx_hash, self.confirmation_timeout)
            raise TransactionFailedError(
                f"Transaction {tx_hash} was not confirmed in time.", tx_hash, dropped=True
            ) from exc
        except Exception as exc:
            raise TransactionFailedError(
                f"Could not confirm transaction {tx_hash}: {exc}", tx_hash, reason=str(exc)
            ) from exc

        formatted = format_receipt(receipt)
        if formatted.get("status") in (1, True):
            logger.info("Transaction %s confirmed in block %s", tx_hash, formatted.get("blockNumber"))
            return formatted
        reason = await extract_revert_reason(handle.reader, tx, receipt)
        logger.error("Transaction %s reverted: %s", tx_hash, reason or "no reason")
        raise TransactionFailedError("Transaction reverted", tx_hash, reason=reason)

    async def mint(self, handle: ContractHandle, to: str, token_uri: str) -> SubmittedTransaction:
        return await self.submit(handle, MintCall(to, token_uri))

    async def authorize_minter(self, handle: ContractHandle, minter: str) -> SubmittedTransaction:
        return await self.submit(handle, SetMinterCall(minter, True))

    async def revoke_minter(self, handle: ContractHandle, minter: str) -> SubmittedTransaction:
        return await self.submit(handle, SetMinterCall(minter, False))
