"""Chain identity check run before a contract handle is ever bound."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from eth_abi.exceptions import DecodingError
from web3.exceptions import (
    ABIFunctionNotFound,
    BadFunctionCallOutput,
    ContractLogicError,
    MismatchedABI,
)

from .chain import ChainGateway
from .logging_utils import get_logger

logger = get_logger("validator")

REASON_NO_CODE = "no code"
REASON_ABI_MISMATCH = "abi mismatch"
REASON_IO_ERROR = "io error"

_ABI_MISMATCH_ERRORS = (
    ContractLogicError,
    BadFunctionCallOutput,
    MismatchedABI,
    ABIFunctionNotFound,
    DecodingError,
)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    detail: Optional[str] = None

    def describe(self) -> str:
        if self.valid:
            return "Contract validated."
        return self.detail or f"Contract validation failed: {self.reason}"


async def validate_contract(
    reader: ChainGateway,
    address: str,
    abi: Sequence[Dict[str, Any]],
) -> ValidationResult:
    """Confirm ``address`` hosts bytecode that answers ``name()``."""
    try:
        code = await reader.get_code(address)
    except Exception as exc:
        logger.warning("Could not read code at %s: %s", address, exc)
        return ValidationResult(
            False, REASON_IO_ERROR, f"Failed to validate contract at {address}: {exc}"
        )

    if not code:
        return ValidationResult(
            False,
            REASON_NO_CODE,
            f"No contract found at address {address}. "
            "This appears to be a wallet address, not a deployed contract.",
        )

    try:
        name = await reader.call(address, abi, "name")
    except _ABI_MISMATCH_ERRORS as exc:
        logger.warning("name() at %s did not answer as expected: %s", address, exc)
        return ValidationResult(
            False,
            REASON_ABI_MISMATCH,
            f"Contract exists but ABI mismatch. The contract at {address} may not be "
            "an ERC721 or may have different function signatures.",
        )
    except Exception as exc:
        logger.warning("name() call to %s failed: %s", address, exc)
        return ValidationResult(
            False, REASON_IO_ERROR, f"Failed to validate contract at {address}: {exc}"
        )

    logger.info("Contract at %s validated (name=%r)", address, name)
    return ValidationResult(True)
