"""
Tests for the viewer page HTTP server.
"""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from http_server import ViewerHTTPServer


@pytest.fixture
def http_server(relay):
    return ViewerHTTPServer(relay, signaling_port=9123)


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/", "/viewer.html"])
async def test_viewer_page(http_server, path):
    async with TestClient(TestServer(http_server.app)) as client:
        resp = await client.get(path)
        text = await resp.text()

    assert resp.status == 200
    assert resp.content_type == 'text/html'
    assert "':9123'" in text
    assert "stun:stun.l.google.com:19302" in text
    assert "role: 'viewer'" in text
    assert "__SIGNALING_PORT__" not in text


@pytest.mark.asyncio
async def test_health(http_server):
    async with TestClient(TestServer(http_server.app)) as client:
        resp = await client.get('/health')
        data = await resp.json()

    assert resp.status == 200
    assert data == {'status': 'healthy'}


@pytest.mark.asyncio
async def test_stats_reflect_relay(http_server, open_client):
    await open_client("p1", "phone")
    await open_client("v1", "viewer")

    async with TestClient(TestServer(http_server.app)) as client:
        resp = await client.get('/stats')
        data = await resp.json()

    assert resp.status == 200
    assert data['active_connections'] == 2
    assert data['phones'] == 1
    assert data['viewers'] == 1
    assert data['messages_sent'] == 1


@pytest.mark.asyncio
async def test_unknown_path_is_404(http_server):
    async with TestClient(TestServer(http_server.app)) as client:
        resp = await client.get('/offer')

    assert resp.status == 404


@pytest.mark.asyncio
async def test_start_and_shutdown(http_server, unused_tcp_port):
    await http_server.start(host='127.0.0.1', port=unused_tcp_port)
    assert http_server.runner is not None

    await http_server.shutdown()
    assert http_server.runner is None

    # Shutting down twice is harmless
    await http_server.shutdown()
