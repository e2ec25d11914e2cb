"""
Tests for the server entry point wiring.
"""

import ipaddress
from unittest.mock import patch

import pytest

import main


def test_get_local_ip_returns_ipv4():
    ip = main.get_local_ip()

    assert ipaddress.ip_address(ip).version == 4


def test_get_local_ip_falls_back_to_loopback():
    with patch("main.socket.socket", side_effect=OSError("no network")):
        assert main.get_local_ip() == "127.0.0.1"


def test_server_shares_one_registry():
    server = main.SignalingServer(port=9000, http_port=9001)

    assert server.relay.registry is server.registry
    assert server.http_server.relay is server.relay
    assert server.http_server.signaling_port == 9000


def test_server_without_http():
    server = main.SignalingServer(enable_http=False)

    assert server.http_server is None


@pytest.mark.asyncio
async def test_shutdown_before_start_is_safe():
    server = main.SignalingServer()

    await server.shutdown()

    assert len(server.registry) == 0
