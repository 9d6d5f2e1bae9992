import pytest

from src.functions.beacon_ingestion.core.beacon.parsing import (
    decode_graffiti,
    extract_block_fields,
    parse_withdrawal_address,
)
from tests.fakes import make_block


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        ("", ""),
        ("6461707076", ""),
        ("0x", ""),
        ("0x" + b"DAppNode".hex() + "00" * 24, "DAppNode"),
        ("0x" + b"lighthouse/v4".hex(), "lighthouse/v4"),
        ("0xzz", ""),
        ("0xabc", ""),
    ],
)
def test_decode_graffiti(value, expected):
    assert decode_graffiti(value) == expected


def test_decode_graffiti_replaces_non_ascii_bytes():
    decoded = decode_graffiti("0x41ff42")
    assert decoded.startswith("A")
    assert decoded.endswith("B")
    assert len(decoded) == 3


def test_extract_block_fields():
    proposer, graffiti = extract_block_fields(make_block(4242, "dappnode-geth"))

    assert proposer == 4242
    assert graffiti == "dappnode-geth"


@pytest.mark.parametrize(
    "block",
    [
        None,
        {},
        {"message": {}},
        {"message": {"proposer_index": "x", "body": {"graffiti": "0x00"}}},
        {"message": {"proposer_index": "1"}},
        {"message": "oops"},
    ],
)
def test_extract_block_fields_malformed(block):
    assert extract_block_fields(block) == (None, "")


def test_parse_withdrawal_address_for_eth1_credentials():
    address = "AbCdEf0123456789abcdef0123456789ABCDEF01"
    credentials = "0x010000000000000000000000" + address

    assert parse_withdrawal_address(credentials) == "0x" + address.lower()


@pytest.mark.parametrize(
    "credentials",
    [
        None,
        "",
        "0x00" + "ab" * 31,
        "0x0100",
        "0x010000000000000000000000" + "ab" * 21,
        "0x020000000000000000000000" + "ab" * 20,
    ],
)
def test_parse_withdrawal_address_rejects_other_credentials(credentials):
    assert parse_withdrawal_address(credentials) == ""
