"""HTTP delivery of encoded batches to the collector."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from ..config import UploadConfig
from ..errors import ServerError, TransportError


logger = logging.getLogger(__name__)


class UploadTransport(ABC):
    """Sends one encoded batch body as one request."""

    @abstractmethod
    async def send(self, body: str, config: UploadConfig) -> None:
        """
        Deliver a batch.

        Raises:
            TransportError: Request never got a response (offline, DNS, TLS, timeout)
            ServerError: Collector answered with a non-2xx status
        """
        ...

    async def aclose(self) -> None:
        pass


def build_headers(config: UploadConfig) -> dict[str, str]:
    """Request headers for an upload; bearer auth only when a key is set."""
    headers = {"Content-Type": "application/json"}
    if config.api_key:
        headers["Authorization"] = f"Bearer {config.api_key}"
    return headers


class HttpTransport(UploadTransport):
    """
    httpx-based transport: POST {server_url} with the batch as JSON body.

    Any 2xx response means the whole batch was accepted.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def send(self, body: str, config: UploadConfig) -> None:
        try:
            response = await self.client.post(
                config.server_url,
                content=body.encode("utf-8"),
                headers=build_headers(config),
                timeout=config.request_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Upload to {config.server_url} timed out after {config.request_timeout_seconds}s"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Upload to {config.server_url} failed: {e}") from e

        if not response.is_success:
            raise ServerError(response.status_code)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
