from __future__ import annotations

from typing import Optional

from .constants import ACCEPTED_URI_SCHEMES, ADDRESS_PATTERN
from .errors import InvalidInputError


def is_valid_address(address: object) -> bool:
    """Strict ``0x`` + 40 hex digit check; hex case is not significant."""
    return isinstance(address, str) and ADDRESS_PATTERN.fullmatch(address) is not None


def validate_address(value: object, field: str = "address") -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(field, f"{field} is required.")
    candidate = value.strip()
    if not is_valid_address(candidate):
        raise InvalidInputError(
            field, f"{field} must be 0x followed by 40 hexadecimal characters."
        )
    return candidate


def validate_token_uri(value: object, field: str = "token_uri") -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(field, f"{field} must not be empty.")
    candidate = value.strip()
    if not candidate.startswith(ACCEPTED_URI_SCHEMES):
        schemes = ", ".join(ACCEPTED_URI_SCHEMES)
        raise InvalidInputError(field, f"{field} should start with one of: {schemes}")
    return candidate


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def truncate_address(address: Optional[str]) -> str:
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"
