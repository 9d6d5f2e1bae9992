"""Beacon node access and payload parsing."""

from .client import BeaconClient
from .parsing import decode_graffiti, extract_block_fields, parse_withdrawal_address

__all__ = ["BeaconClient", "decode_graffiti", "extract_block_fields", "parse_withdrawal_address"]
