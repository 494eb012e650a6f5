"""
Rebuilds the token set an address currently holds from the Transfer log.

The contract is not enumerable, so holdings are derived from events: every
Transfer that moved a token to or from the owner is merged into an index keyed
by token id, the latest event per token wins, and the owner holds exactly the
tokens whose latest recipient is the owner.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .constants import DEFAULT_START_BLOCK, FAILED_TOKEN_URI
from .contract import ContractHandle
from .errors import ReconstructionError
from .logging_utils import get_logger
from .models import Token, TransferEvent
from .validation import same_address, truncate_address, validate_address

logger = get_logger("ownership")

OwnershipIndex = Dict[int, TransferEvent]


def build_ownership_index(events: Iterable[TransferEvent]) -> OwnershipIndex:
    """Latest transfer per token id, ordered by ``(block_number, log_index)``."""
    index: OwnershipIndex = {}
    for event in events:
        current = index.get(event.token_id)
        if current is None or event.position >= current.position:
            index[event.token_id] = event
    return index


def owned_token_ids(index: OwnershipIndex, owner: str) -> List[int]:
    return sorted(
        token_id for token_id, event in index.items() if same_address(event.recipient, owner)
    )


class OwnershipReconstructor:
    def __init__(self, start_block: int = DEFAULT_START_BLOCK, verify_ownership: bool = False):
        self.start_block = start_block
        self.verify_ownership = verify_ownership

    async def reconstruct(
        self,
        handle: ContractHandle,
        owner: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[Token]:
        """Tokens ``owner`` holds, ascending by id, each with its token URI.

        A failed log query raises :class:`ReconstructionError`; a failed URI
        read only marks that token with ``FAILED_TOKEN_URI``.
        """
        owner = validate_address(owner, "owner")
        start = self.start_block if from_block is None else from_block
        try:
            end = await handle.reader.block_number() if to_block is None else to_block
            incoming = await handle.transfer_events(from_block=start, to_block=end, recipient=owner)
            outgoing = await handle.transfer_events(from_block=start, to_block=end, sender=owner)
        except Exception as exc:
            logger.error("Transfer log query for %s failed: %s", truncate_address(owner), exc)
            raise ReconstructionError(f"Failed to query Transfer events: {exc}") from exc

        index = build_ownership_index(incoming + outgoing)
        token_ids = owned_token_ids(index, owner)
        logger.info(
            "Blocks %s-%s: %d incoming, %d outgoing transfers, %d tokens held by %s",
            start,
            end,
            len(incoming),
            len(outgoing),
            len(token_ids),
            truncate_address(owner),
        )

        if self.verify_ownership:
            token_ids = await self._verified(handle, owner, token_ids)

        tokens: List[Token] = []
        for token_id in token_ids:
            try:
                uri = await handle.token_uri(token_id)
            except Exception as exc:
                logger.warning("tokenURI(%s) failed: %s", token_id, exc)
                uri = FAILED_TOKEN_URI
            tokens.append(Token(token_id=token_id, token_uri=uri))
        return tokens

    async def _verified(self, handle: ContractHandle, owner: str, token_ids: List[int]) -> List[int]:
        kept: List[int] = []
        for token_id in token_ids:
            try:
                current = await handle.owner_of(token_id)
            except Exception as exc:
                logger.warning("ownerOf(%s) failed, keeping log result: %s", token_id, exc)
                kept.append(token_id)
                continue
            if same_address(current, owner):
                kept.append(token_id)
            else:
                logger.info("Token %s now owned by %s; dropping", token_id, truncate_address(current))
        return kept
