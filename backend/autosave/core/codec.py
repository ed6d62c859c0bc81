"""Decoding helpers for chain log topics and hex-encoded amounts."""

import re
from typing import Optional

from autosave.core.errors import ParseError, ValidationError


ADDRESS_PATTERN = re.compile(r"^0x[a-f0-9]{40}$")
_HEX_DIGITS = re.compile(r"^[0-9a-fA-F]*$")


def decode_address(topic: str) -> str:
    """
    Extract the address from a 32-byte log topic.

    Indexed address arguments are left-padded to 32 bytes, so the address is
    the rightmost 20 bytes (40 hex characters).
    """
    return "0x" + topic[-40:].lower()


def hex_to_int(data: Optional[str]) -> int:
    """
    Parse a hex string (with or without 0x prefix) into a non-negative integer.

    Empty or missing data decodes to zero.

    Raises:
        ParseError: If the string contains non-hex characters
    """
    if not data:
        return 0
    digits = data[2:] if data[:2].lower() == "0x" else data
    if not digits:
        return 0
    if not _HEX_DIGITS.match(digits):
        raise ParseError(f"Malformed hex value: {data!r}")
    return int(digits, 16)


def normalize_address(value: object) -> str:
    """
    Lower-case and validate a 20-byte hex wallet address.

    Raises:
        ValidationError: If the value is not a 0x-prefixed 40 hex character string
    """
    if not isinstance(value, str):
        raise ValidationError("walletAddress must be a string")
    address = value.strip().lower()
    if not ADDRESS_PATTERN.match(address):
        raise ValidationError("walletAddress must be a valid 20-byte hex string")
    return address
