"""
Data models shared across the client.

Events are immutable once read from the chain log; tokens and metadata are
rebuilt on every reconstruction pass.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from .constants import FAILED_TOKEN_URI

AttributeValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class TransferEvent:
    """One ``Transfer(from, to, tokenId)`` log entry."""

    sender: str
    recipient: str
    token_id: int
    block_number: int
    log_index: int = 0

    @property
    def position(self) -> Tuple[int, int]:
        """Ordering key: block first, then emission order within the block."""
        return (self.block_number, self.log_index)

    @classmethod
    def from_log(cls, entry: Mapping[str, Any]) -> "TransferEvent":
        args = entry["args"]
        return cls(
            sender=str(args["from"]),
            recipient=str(args["to"]),
            token_id=int(args["tokenId"]),
            block_number=int(entry["blockNumber"]),
            log_index=int(entry.get("logIndex") or 0),
        )


@dataclass(frozen=True)
class OwnershipTransfer:
    """One ``OwnershipTransferred(previousOwner, newOwner)`` log entry."""

    previous_owner: str
    new_owner: str
    block_number: int
    log_index: int = 0

    @classmethod
    def from_log(cls, entry: Mapping[str, Any]) -> "OwnershipTransfer":
        args = entry["args"]
        return cls(
            previous_owner=str(args["previousOwner"]),
            new_owner=str(args["newOwner"]),
            block_number=int(entry["blockNumber"]),
            log_index=int(entry.get("logIndex") or 0),
        )


@dataclass(frozen=True)
class Attribute:
    trait_type: Optional[str]
    value: AttributeValue


@dataclass(frozen=True)
class Metadata:
    """Token metadata document. Every field is optional; the source is untrusted."""

    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    external_url: Optional[str] = None
    attributes: Tuple[Attribute, ...] = ()


@dataclass(frozen=True)
class Token:
    token_id: int
    token_uri: str
    metadata: Optional[Metadata] = None

    @property
    def uri_failed(self) -> bool:
        return self.token_uri == FAILED_TOKEN_URI

    def display_name(self) -> str:
        if self.metadata is not None and self.metadata.name:
            return self.metadata.name
        return f"Token #{self.token_id}"
