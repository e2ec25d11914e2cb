"""
WebSocket signaling relay between phone (camera) and viewer clients.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Union

import websockets

from config import (
    SIGNALING_HOST,
    SIGNALING_PORT,
    PING_INTERVAL,
    PING_TIMEOUT,
    MAX_MESSAGE_SIZE,
    SEND_TIMEOUT,
    ROLE_PHONE,
    ROLE_VIEWER,
    ROLES,
    MSG_TYPE_REGISTER,
    MSG_TYPE_PHONE_READY,
    MSG_TYPE_VIEWER_READY,
    MSG_TYPE_OFFER,
    MSG_TYPE_ANSWER,
    MSG_TYPE_ICE_CANDIDATE,
    MSG_TYPE_PEER_DISCONNECTED,
)
from connection_registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


class SignalingRelay:
    """
    Relays WebRTC signaling messages between phones and viewers.

    Message Protocol (UTF-8 JSON, mandatory "type"):
    - register {role}             sets the sender's role, notifies the other role
    - offer {sdp}                 phone -> matched viewer
    - answer {sdp}                viewer -> matched phone
    - ice-candidate {candidate}   either side -> current peer

    Forwarded messages gain a "from" field carrying the sender's id. The
    sdp/candidate payloads are never inspected.
    """

    def __init__(self, registry: Optional[ConnectionRegistry] = None, send_timeout: float = SEND_TIMEOUT):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.send_timeout = send_timeout

        self._handlers = {
            MSG_TYPE_REGISTER: self._handle_register,
            MSG_TYPE_OFFER: self._handle_offer,
            MSG_TYPE_ANSWER: self._handle_answer,
            MSG_TYPE_ICE_CANDIDATE: self._handle_ice_candidate,
        }

        # Statistics
        self.stats = {
            'total_connections': 0,
            'messages_received': 0,
            'messages_sent': 0,
            'messages_dropped': 0,
            'malformed_messages': 0,
            'send_failures': 0,
        }

    async def start(self, host: str = SIGNALING_HOST, port: int = SIGNALING_PORT):
        """Start the WebSocket signaling server."""
        logger.info(f"Starting signaling relay on ws://{host}:{port}")

        async with websockets.serve(
            self.handle_connection,
            host,
            port,
            max_size=MAX_MESSAGE_SIZE,
            ping_interval=PING_INTERVAL,
            ping_timeout=PING_TIMEOUT,
            compression=None,  # Lower latency
        ):
            logger.info(f"Signaling relay listening on ws://{host}:{port}")
            await asyncio.Future()  # Run forever

    async def handle_connection(self, websocket):
        """Handle one client connection for its whole lifetime."""
        connection_id = uuid.uuid4().hex
        remote = websocket.remote_address
        client_info = f"{remote[0]}:{remote[1]}" if remote else "unknown"

        await self.connect(connection_id, websocket, client_info)

        try:
            async for message in websocket:
                await self.handle_message(connection_id, message)
        except websockets.ConnectionClosed as e:
            logger.info(f"Connection {connection_id} closed: {e}")
        except Exception as e:
            logger.error(f"Error handling connection {connection_id}: {e}")
        finally:
            await self.disconnect(connection_id)

    async def connect(self, connection_id: str, channel: Any,
                      remote_address: Optional[str] = None) -> Connection:
        """Register a freshly accepted channel."""
        async with self.registry.lock:
            connection = self.registry.create(connection_id, channel, remote_address)
            self.stats['total_connections'] += 1
            active = len(self.registry)

        logger.info(f"Client connected: {connection_id} from {remote_address} (active: {active})")
        return connection

    async def disconnect(self, connection_id: str) -> None:
        """
        Tear down a closed connection.

        The matched peer, if still open, is unlinked and told about it with a
        peer-disconnected message. Unknown ids are ignored.
        """
        async with self.registry.lock:
            connection = self.registry.remove(connection_id)
            if connection is None:
                return

            peer = self.registry.get(connection.peer_id)
            if peer is not None and peer.peer_id == connection_id:
                self.registry.set_peer(peer.id, None)
            active = len(self.registry)

        logger.info(f"Client disconnected: {connection_id} (active: {active})")

        if peer is not None:
            await self._send(peer, {'type': MSG_TYPE_PEER_DISCONNECTED})

    async def handle_message(self, connection_id: str, raw: Union[str, bytes]) -> None:
        """Decode one inbound message and dispatch it to its handler."""
        self.stats['messages_received'] += 1

        message = self._decode(connection_id, raw)
        if message is None:
            return

        msg_type = message['type']
        handler = self._handlers.get(msg_type)
        if handler is None:
            logger.debug(f"Ignoring unknown message type from {connection_id}: {msg_type!r}")
            self.stats['messages_dropped'] += 1
            return

        logger.debug(f"Message from {connection_id}: {msg_type}")
        await handler(connection_id, message)

    def _decode(self, connection_id: str, raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """Parse a raw frame, returning None (and logging) if it is malformed."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode('utf-8')
            message = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logger.warning(f"Invalid message from {connection_id}: {e}")
            self.stats['malformed_messages'] += 1
            return None

        if not isinstance(message, dict) or not isinstance(message.get('type'), str):
            logger.warning(f"Message without a type from {connection_id}: {str(raw)[:100]}")
            self.stats['malformed_messages'] += 1
            return None

        return message

    async def _handle_register(self, connection_id: str, message: Dict[str, Any]):
        """Set the sender's role and tell the other side it is ready."""
        role = message.get('role')
        if role not in ROLES:
            logger.warning(f"Ignoring register from {connection_id} with invalid role: {role!r}")
            self.stats['messages_dropped'] += 1
            return

        if role == ROLE_PHONE:
            notify_role, notice = ROLE_VIEWER, MSG_TYPE_PHONE_READY
        else:
            notify_role, notice = ROLE_PHONE, MSG_TYPE_VIEWER_READY

        async with self.registry.lock:
            connection = self.registry.get(connection_id)
            if connection is None:
                return

            # Switching roles dissolves whatever pairing the old role had
            if connection.role not in (None, role) and connection.peer_id is not None:
                self._unlink(connection)

            self.registry.set_role(connection_id, role)
            recipients = list(self.registry.scan_by_role(notify_role, exclude_id=connection_id))

        logger.info(f"{connection_id} registered as {role}, notifying {len(recipients)} {notify_role}(s)")
        await self._send_all(recipients, {'type': notice})

    async def _handle_offer(self, connection_id: str, message: Dict[str, Any]):
        """Match a phone with a viewer and forward its offer."""
        async with self.registry.lock:
            phone = self.registry.get(connection_id)
            if phone is None or phone.role != ROLE_PHONE:
                return self._drop(connection_id, MSG_TYPE_OFFER, "sender is not a phone")

            viewer = self._select_viewer(phone)
            if viewer is None:
                return self._drop(connection_id, MSG_TYPE_OFFER, "no viewer available")

            if phone.peer_id != viewer.id:
                self._unlink(phone)
                self.registry.set_peer(phone.id, viewer.id)
                self.registry.set_peer(viewer.id, phone.id)
                logger.info(f"Matched phone {phone.id} with viewer {viewer.id}")

        await self._send(viewer, {
            'type': MSG_TYPE_OFFER,
            'sdp': message.get('sdp'),
            'from': connection_id,
        })

    async def _handle_answer(self, connection_id: str, message: Dict[str, Any]):
        """Forward a viewer's answer to the phone it is matched with."""
        async with self.registry.lock:
            viewer = self.registry.get(connection_id)
            if viewer is None or viewer.role != ROLE_VIEWER:
                return self._drop(connection_id, MSG_TYPE_ANSWER, "sender is not a viewer")

            phone = self.registry.get(viewer.peer_id)
            if phone is None:
                return self._drop(connection_id, MSG_TYPE_ANSWER, "no matched phone")

        await self._send(phone, {
            'type': MSG_TYPE_ANSWER,
            'sdp': message.get('sdp'),
            'from': connection_id,
        })

    async def _handle_ice_candidate(self, connection_id: str, message: Dict[str, Any]):
        """Forward an ICE candidate to the sender's current peer."""
        async with self.registry.lock:
            connection = self.registry.get(connection_id)
            peer = self.registry.get(connection.peer_id) if connection is not None else None
            if peer is None:
                return self._drop(connection_id, MSG_TYPE_ICE_CANDIDATE, "no matched peer")

        await self._send(peer, {
            'type': MSG_TYPE_ICE_CANDIDATE,
            'candidate': message.get('candidate'),
            'from': connection_id,
        })

    def _select_viewer(self, phone: Connection) -> Optional[Connection]:
        """
        Pick the viewer that should receive this phone's offer.

        A phone that is already paired keeps its viewer (renegotiation).
        Otherwise the earliest registered viewer that is not paired with an
        open connection wins. Must be called with the registry lock held.
        """
        current = self.registry.get(phone.peer_id)
        if current is not None and current.role == ROLE_VIEWER and current.peer_id == phone.id:
            return current

        for viewer in self.registry.scan_by_role(ROLE_VIEWER, exclude_id=phone.id):
            if self.registry.get(viewer.peer_id) is None:
                return viewer
        return None

    def _unlink(self, connection: Connection) -> None:
        """Clear both sides of a connection's pairing. Lock must be held."""
        peer = self.registry.get(connection.peer_id)
        if peer is not None and peer.peer_id == connection.id:
            self.registry.set_peer(peer.id, None)
        self.registry.set_peer(connection.id, None)

    def _drop(self, connection_id: str, msg_type: str, reason: str) -> None:
        logger.debug(f"Dropping {msg_type} from {connection_id}: {reason}")
        self.stats['messages_dropped'] += 1

    async def _send_all(self, targets: Iterable[Connection], payload: Dict[str, Any]):
        await asyncio.gather(*(self._send(target, payload) for target in targets), return_exceptions=True)

    async def _send(self, target: Connection, payload: Dict[str, Any]) -> bool:
        """
        Send a message to one connection. Never called with the lock held.

        A send that has not completed within ``send_timeout`` is abandoned so
        a stalled client cannot hold up the sender's message loop.
        """
        try:
            await asyncio.wait_for(target.channel.send(json.dumps(payload)), self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out sending {payload['type']} to {target.id}")
            self.stats['send_failures'] += 1
            return False
        except (websockets.ConnectionClosed, OSError) as e:
            logger.warning(f"Failed to send {payload['type']} to {target.id}: {e}")
            self.stats['send_failures'] += 1
            return False

        self.stats['messages_sent'] += 1
        logger.debug(f"Sent {payload['type']} to {target.id}")
        return True

    async def shutdown(self):
        """Close every open connection."""
        async with self.registry.lock:
            channels = [connection.channel for connection in self.registry.all()]

        logger.info(f"Closing {len(channels)} signaling connection(s)")
        await asyncio.gather(*(channel.close() for channel in channels), return_exceptions=True)

    def get_stats(self) -> dict:
        """Get relay statistics."""
        return {
            **self.stats,
            **self.registry.get_stats(),
        }
