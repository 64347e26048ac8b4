"""
HTTP Acknowledgement Client

Sends one ``POST`` per Batch to the messages service:

    POST {base_url}/messages/mark-as-read
    {"messageIds": ["m-1", "m-2", ...]}

Any 2xx response is success. Transport errors, timeouts and non-2xx
responses are returned as Err(DispatchError) so the dispatcher's
retry loop can decide what to do.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from receiptflow.core.types import Result, Ok, Err, MessageId
from receiptflow.core.errors import DispatchError
from receiptflow.core.config import EndpointConfig

logger = logging.getLogger(__name__)


class MessagesClient:
    """
    httpx-backed implementation of AcknowledgementEndpoint.

    Usage:
        async with MessagesClient(EndpointConfig(base_url="https://api.example.com")) as client:
            result = await client.mark_as_read([MessageId("m-1")])
    """

    __slots__ = ("_config", "_client", "_owns_client")

    def __init__(
        self,
        config: Optional[EndpointConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            config: Endpoint location and timeout
            client: Optional shared client; the caller keeps ownership
        """
        self._config = config or EndpointConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/"),
            timeout=self._config.timeout_s,
        )

    @property
    def endpoint(self) -> str:
        return self._config.mark_as_read_path

    async def mark_as_read(
        self,
        message_ids: Sequence[MessageId],
    ) -> Result[None, DispatchError]:
        if not message_ids:
            return Err(DispatchError.invalid_batch("no message ids"))

        payload = {"messageIds": [mid.value for mid in message_ids]}

        try:
            response = await self._client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as e:
            return Err(DispatchError.timeout(self.endpoint, self._config.timeout_s, cause=e))
        except httpx.HTTPError as e:
            return Err(DispatchError.request_failed(self.endpoint, cause=e))

        if not response.is_success:
            return Err(DispatchError.rejected(
                self.endpoint,
                status_code=response.status_code,
                body=response.text,
            ))

        logger.debug(f"Acknowledged {len(message_ids)} messages ({response.status_code})")
        return Ok(None)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance owns it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> MessagesClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
