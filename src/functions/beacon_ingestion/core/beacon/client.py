"""Async HTTP client for the beacon node REST API.

Maps HTTP outcomes onto what the batch engine needs:
- 404 -> ``None`` (slot or validator legitimately absent, never retried)
- any other non-2xx or transport failure -> ``TransientFetchError``
- 2xx -> parsed payload
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from src.shared.batch.retry import TransientFetchError

from ..contracts import ValidatorRecord
from ..errors import HeadSlotError
from .parsing import parse_withdrawal_address

logger = logging.getLogger(__name__)

API_KEY_PARAM = "dkey"


class BeaconClient:
    """Thin async wrapper around the beacon node endpoints we read.

    One instance (and one ``httpx.AsyncClient``) is shared by every worker;
    the connection pool is sized to the largest concurrency ceiling.

    Example:
        async with BeaconClient(settings.endpoint, max_connections=250) as beacon:
            head = await beacon.get_head_slot()
            block = await beacon.get_block(head)
    """

    def __init__(
        self,
        endpoint: str,
        *,
        head_endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_connections: int = 250,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.head_endpoint = (head_endpoint or endpoint).rstrip("/")
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "BeaconClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _params(self) -> Dict[str, str]:
        return {API_KEY_PARAM: self.api_key} if self.api_key else {}

    async def _get(self, url: str, what: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self._client.get(url, params=self._params())
        except httpx.TransportError as exc:
            raise TransientFetchError(f"{what}: {type(exc).__name__}: {exc}") from exc

        if response.status_code == 404:
            logger.debug("%s: not found", what)
            return None
        if response.is_error:
            raise TransientFetchError(
                f"HTTP status {response.status_code} at {what}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TransientFetchError(f"{what}: invalid JSON body") from exc

    async def get_block(self, slot: int) -> Optional[Dict[str, Any]]:
        """Fetch the signed block at *slot*; ``None`` when the slot is empty."""
        payload = await self._get(f"{self.endpoint}/eth/v2/beacon/blocks/{slot}", f"slot={slot}")
        if payload is None:
            return None
        return payload.get("data")

    async def get_validator(self, validator_index: int) -> Optional[ValidatorRecord]:
        """Fetch the head-state view of a validator; ``None`` if unknown."""
        payload = await self._get(
            f"{self.endpoint}/eth/v1/beacon/states/head/validators/{validator_index}",
            f"validator={validator_index}",
        )
        data = (payload or {}).get("data") or {}
        validator = data.get("validator")
        if not validator:
            return None

        credentials = validator.get("withdrawal_credentials") or ""
        return ValidatorRecord(
            validator_index=validator_index,
            status=data.get("status") or "",
            withdrawal_credentials=credentials,
            withdrawal_address=parse_withdrawal_address(credentials),
        )

    async def get_head_slot(self) -> int:
        """Return the slot of the current chain head.

        Raises:
            HeadSlotError: On any HTTP failure or an unusable response
        """
        url = f"{self.head_endpoint}/eth/v1/beacon/headers"
        try:
            response = await self._client.get(url, params=self._params())
        except httpx.TransportError as exc:
            raise HeadSlotError(f"get_head_slot: {exc}") from exc
        if response.is_error:
            raise HeadSlotError(f"get_head_slot: HTTP error {response.status_code}")

        try:
            headers = response.json().get("data") or []
            return int(headers[0]["header"]["message"]["slot"])
        except (ValueError, LookupError, TypeError, AttributeError) as exc:
            raise HeadSlotError("No data from /eth/v1/beacon/headers") from exc
