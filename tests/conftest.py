"""
Shared fixtures for the signaling server tests.
"""

import asyncio
import json

import pytest

from connection_registry import ConnectionRegistry
from signaling_relay import SignalingRelay


class FakeChannel:
    """Stands in for a client WebSocket and records what the relay sends."""

    def __init__(self, fail_with: Exception = None, stall: bool = False):
        self.sent = []
        self.closed = False
        self.fail_with = fail_with
        self.stall = stall

    async def send(self, text: str):
        if self.stall:
            await asyncio.Event().wait()  # never drains, like a stuck TCP buffer
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    def types(self):
        return [message['type'] for message in self.sent]


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay(registry):
    return SignalingRelay(registry)


@pytest.fixture
def open_client(relay):
    """Factory that connects a fake client, optionally registering a role."""

    async def _open(connection_id, role=None, channel=None):
        channel = channel or FakeChannel()
        await relay.connect(connection_id, channel, "127.0.0.1:50000")
        if role is not None:
            await relay.handle_message(connection_id, json.dumps({'type': 'register', 'role': role}))
        return channel

    return _open
