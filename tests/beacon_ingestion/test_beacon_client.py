import asyncio

import httpx
import pytest

from src.functions.beacon_ingestion.core.beacon.client import BeaconClient
from src.functions.beacon_ingestion.core.errors import HeadSlotError
from src.shared.batch import TransientFetchError
from tests.fakes import make_block

ENDPOINT = "http://beacon.local"


def _client(handler, **kwargs):
    return BeaconClient(ENDPOINT, transport=httpx.MockTransport(handler), **kwargs)


def _call(handler, method, *args, **kwargs):
    async def scenario():
        async with _client(handler, **kwargs) as client:
            return await getattr(client, method)(*args)

    return asyncio.run(scenario())


def test_get_block_returns_data():
    block = make_block(7, "dappnode")

    def handler(request):
        assert request.url.path == "/eth/v2/beacon/blocks/123"
        return httpx.Response(200, json={"version": "deneb", "data": block})

    assert _call(handler, "get_block", 123) == block


def test_get_block_404_is_none():
    def handler(request):
        return httpx.Response(404, json={"code": 404, "message": "NOT_FOUND: beacon block"})

    assert _call(handler, "get_block", 5) is None


@pytest.mark.parametrize("status", [400, 429, 500, 503])
def test_get_block_other_errors_are_transient(status):
    def handler(request):
        return httpx.Response(status)

    with pytest.raises(TransientFetchError) as excinfo:
        _call(handler, "get_block", 5)

    assert excinfo.value.status_code == status


def test_transport_error_is_transient():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(TransientFetchError):
        _call(handler, "get_block", 5)


def test_invalid_json_is_transient():
    def handler(request):
        return httpx.Response(200, content=b"<html>gateway</html>")

    with pytest.raises(TransientFetchError):
        _call(handler, "get_block", 5)


def test_api_key_sent_as_query_param():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(404)

    _call(handler, "get_block", 1, api_key="secret")

    assert seen["params"] == {"dkey": "secret"}


def test_get_validator_parses_record():
    credentials = "0x010000000000000000000000" + "ab" * 20

    def handler(request):
        assert request.url.path == "/eth/v1/beacon/states/head/validators/42"
        return httpx.Response(
            200,
            json={
                "data": {
                    "index": "42",
                    "status": "active_ongoing",
                    "validator": {"withdrawal_credentials": credentials},
                }
            },
        )

    record = _call(handler, "get_validator", 42)

    assert record.validator_index == 42
    assert record.status == "active_ongoing"
    assert record.is_active is True
    assert record.withdrawal_credentials == credentials
    assert record.withdrawal_address == "0x" + "ab" * 20


def test_get_validator_missing_validator_object_is_none():
    def handler(request):
        return httpx.Response(200, json={"data": {"status": "pending_initialized"}})

    assert _call(handler, "get_validator", 1) is None


def test_get_validator_404_is_none():
    def handler(request):
        return httpx.Response(404)

    assert _call(handler, "get_validator", 1) is None


def test_get_head_slot_uses_head_endpoint():
    def handler(request):
        assert request.url.host == "head.local"
        assert request.url.path == "/eth/v1/beacon/headers"
        return httpx.Response(200, json={"data": [{"header": {"message": {"slot": "8123456"}}}]})

    assert _call(handler, "get_head_slot", head_endpoint="http://head.local/") == 8123456


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={}),
        httpx.Response(200, json={"data": [{"header": {}}]}),
        httpx.Response(200, content=b"not json"),
    ],
)
def test_get_head_slot_failures_raise(response):
    def handler(request):
        return response

    with pytest.raises(HeadSlotError):
        _call(handler, "get_head_slot")


def test_get_head_slot_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(HeadSlotError):
        _call(handler, "get_head_slot")
