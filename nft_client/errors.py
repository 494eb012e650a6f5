"""Exception hierarchy shared by the session, reconstruction and mutation layers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .validator import ValidationResult


class NftClientError(Exception):
    """Base class for every error raised by ``nft_client``."""


class ConfigError(NftClientError):
    """Raised when a required setting is missing or malformed."""

    def __init__(self, message: str, variable: Optional[str] = None):
        super().__init__(message)
        self.variable = variable


class WalletError(NftClientError):
    """Connectivity failure between the client and the wallet."""


class WalletUnavailableError(WalletError):
    """No wallet provider is available (e.g. no signing key configured)."""


class WalletRequestError(WalletError):
    """A wallet request failed; ``code`` follows EIP-1193 where known."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ContractValidationError(NftClientError):
    """The configured address does not host a compatible contract."""

    def __init__(self, result: "ValidationResult"):
        super().__init__(result.describe())
        self.result = result

    @property
    def reason(self) -> Optional[str]:
        return self.result.reason


class ChainMismatchError(NftClientError):
    """An operation needs the expected chain but the session is elsewhere."""

    def __init__(self, chain_id: Optional[int], expected_chain_id: int):
        super().__init__(
            f"Wallet is on chain {chain_id}, expected chain {expected_chain_id}."
        )
        self.chain_id = chain_id
        self.expected_chain_id = expected_chain_id


class ReconstructionError(NftClientError):
    """Transfer log query failed; the whole reconstruction pass is void."""


class MutationError(NftClientError):
    """Base class for failures of state-changing calls."""


class InvalidInputError(MutationError):
    """Rejected before any network call; ``field`` names the offending input."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class SignerUnavailableError(MutationError):
    """The session has no authenticated signer to submit with."""


class SubmissionError(MutationError):
    """The transaction could not be built, signed or broadcast."""


class TransactionFailedError(MutationError):
    """The transaction was sent but reverted or never confirmed."""

    def __init__(
        self,
        message: str,
        tx_hash: str,
        reason: Optional[str] = None,
        dropped: bool = False,
    ):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.reason = reason
        self.dropped = dropped
