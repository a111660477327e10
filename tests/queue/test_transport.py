"""Tests for HTTP delivery and connectivity probes."""

import json

import httpx
import pytest

from pulse_sdk.config import UploadConfig
from pulse_sdk.errors import ServerError, TransportError
from pulse_sdk.queue.connectivity import AlwaysOnline, HttpConnectivityProbe, probe_for
from pulse_sdk.queue.transport import HttpTransport, build_headers

from tests.mocks.queue_fakes import COLLECTOR_URL


BODY = json.dumps({"events": [{"id": "e1"}], "timestamp": 1})


class TestBuildHeaders:
    def test_bearer_when_key_set(self, upload_config):
        assert build_headers(upload_config) == {
            "Content-Type": "application/json",
            "Authorization": "Bearer test-key",
        }

    def test_no_auth_without_key(self):
        headers = build_headers(UploadConfig(server_url=COLLECTOR_URL, api_key=None))
        assert "Authorization" not in headers


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_posts_body_with_headers(self, respx_mock, upload_config):
        route = respx_mock.post(COLLECTOR_URL).mock(return_value=httpx.Response(200))
        transport = HttpTransport()

        await transport.send(BODY, upload_config)
        await transport.aclose()

        request = route.calls.last.request
        assert json.loads(request.content) == json.loads(BODY)
        assert request.headers["authorization"] == "Bearer test-key"
        assert request.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_any_2xx_is_success(self, respx_mock, upload_config):
        respx_mock.post(COLLECTOR_URL).mock(return_value=httpx.Response(204))
        async with httpx.AsyncClient() as client:
            await HttpTransport(client).send(BODY, upload_config)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 500, 503])
    async def test_non_2xx_raises_server_error(self, respx_mock, upload_config, status):
        respx_mock.post(COLLECTOR_URL).mock(return_value=httpx.Response(status))
        transport = HttpTransport()

        with pytest.raises(ServerError) as exc_info:
            await transport.send(BODY, upload_config)
        await transport.aclose()

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
        ],
    )
    async def test_network_failures_raise_transport_error(self, respx_mock, upload_config, error):
        respx_mock.post(COLLECTOR_URL).mock(side_effect=error)
        transport = HttpTransport()

        with pytest.raises(TransportError):
            await transport.send(BODY, upload_config)
        await transport.aclose()

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, respx_mock):
        client = httpx.AsyncClient()
        await HttpTransport(client).aclose()

        assert not client.is_closed
        await client.aclose()


class TestConnectivity:
    @pytest.mark.asyncio
    async def test_http_probe_online_on_2xx(self, respx_mock):
        respx_mock.get("https://collector.example.com/health").mock(return_value=httpx.Response(200))
        probe = HttpConnectivityProbe("https://collector.example.com/health")

        assert await probe.is_online()

    @pytest.mark.asyncio
    async def test_http_probe_offline_on_error(self, respx_mock):
        respx_mock.get("https://collector.example.com/health").mock(side_effect=httpx.ConnectError("down"))
        probe = HttpConnectivityProbe("https://collector.example.com/health")

        assert not await probe.is_online()

    @pytest.mark.asyncio
    async def test_http_probe_offline_on_5xx(self, respx_mock):
        respx_mock.get("https://collector.example.com/health").mock(return_value=httpx.Response(502))
        probe = HttpConnectivityProbe("https://collector.example.com/health")

        assert not await probe.is_online()

    def test_probe_for_config(self):
        assert isinstance(probe_for(UploadConfig()), AlwaysOnline)
        probe = probe_for(UploadConfig(connectivity_url="https://collector.example.com/health"))
        assert isinstance(probe, HttpConnectivityProbe)
        assert probe.url == "https://collector.example.com/health"
