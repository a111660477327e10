"""Connectivity probes consulted before an upload run."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from ..config import UploadConfig


logger = logging.getLogger(__name__)


class ConnectivityProbe(ABC):
    """Answers whether the collector is worth trying right now."""

    @abstractmethod
    async def is_online(self) -> bool:
        ...


class AlwaysOnline(ConnectivityProbe):
    """Probe for hosts without a connectivity signal; the upload itself decides."""

    async def is_online(self) -> bool:
        return True


class HttpConnectivityProbe(ConnectivityProbe):
    """
    Quick GET against a health URL.

    Any 2xx means online; errors and other statuses mean offline.
    """

    def __init__(self, url: str, client: httpx.AsyncClient | None = None, timeout: float = 2.0):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def is_online(self) -> bool:
        try:
            if self._client is not None:
                response = await self._client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.url)
            return response.is_success
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"Connectivity probe {self.url} failed: {e}")
            return False


def probe_for(config: UploadConfig) -> ConnectivityProbe:
    """Probe matching the upload config (HTTP when connectivity_url is set)."""
    if config.connectivity_url:
        return HttpConnectivityProbe(config.connectivity_url, timeout=min(2.0, config.request_timeout_seconds))
    return AlwaysOnline()
