"""Field extraction from beacon node API payloads."""

from __future__ import annotations

import binascii
import logging
from typing import Any, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ETH1_CREDENTIALS_PREFIX = "0x0100"
WITHDRAWAL_CREDENTIALS_LENGTH = 66  # "0x" + 32 bytes of hex


def decode_graffiti(hex_str: Optional[str]) -> str:
    """Decode a 0x-prefixed graffiti field into text without trailing NULs."""
    if not hex_str or not hex_str.startswith("0x"):
        return ""
    try:
        raw = binascii.unhexlify(hex_str[2:])
    except (binascii.Error, ValueError):
        logger.debug("Undecodable graffiti %r", hex_str)
        return ""
    return raw.decode("ascii", errors="replace").rstrip("\x00")


def extract_block_fields(block: Optional[Mapping[str, Any]]) -> Tuple[Optional[int], str]:
    """Return ``(proposer_index, graffiti)`` from a v2 block ``data`` object.

    Malformed payloads give ``(None, "")``.
    """
    if not block:
        return None, ""
    try:
        message = block["message"]
        proposer_index = int(message["proposer_index"])
        graffiti = decode_graffiti(message["body"]["graffiti"])
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Malformed block payload: %s", exc)
        return None, ""
    return proposer_index, graffiti


def parse_withdrawal_address(withdrawal_credentials: Optional[str]) -> str:
    """Extract the execution-layer address from 0x01 withdrawal credentials.

    BLS (0x00) credentials and anything malformed give ``""``.
    """
    if (
        withdrawal_credentials
        and withdrawal_credentials.startswith(ETH1_CREDENTIALS_PREFIX)
        and len(withdrawal_credentials) == WITHDRAWAL_CREDENTIALS_LENGTH
    ):
        # Last 20 bytes are the address
        return ("0x" + withdrawal_credentials[-40:]).lower()
    return ""
