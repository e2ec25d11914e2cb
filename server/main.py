#!/usr/bin/env python3
"""
Phone/Viewer WebRTC Signaling Server

Brokers the WebRTC handshake between a phone streaming its camera and a
browser (or app) viewer. Only signaling passes through this server; the
media flows peer-to-peer once the handshake is done.

Usage:
    python main.py [--host HOST] [--port PORT] [--http-port PORT] [--no-http] [--debug]

Options:
    --host          Interface to listen on (default: 0.0.0.0)
    --port          WebSocket signaling port (default: 8080)
    --http-port     Viewer page port (default: 8082)
    --no-http       Do not serve the viewer page
    --debug         Enable debug logging
"""

import argparse
import asyncio
import logging
import signal
import socket
import sys

from config import SIGNALING_HOST, SIGNALING_PORT, HTTP_PORT
from connection_registry import ConnectionRegistry
from http_server import ViewerHTTPServer
from signaling_relay import SignalingRelay

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def get_local_ip() -> str:
    """Best guess at this machine's LAN address, for the startup banner."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packets are sent; this only selects the outbound interface
            s.connect(("10.255.255.255", 1))
            ip = s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    return ip if not ip.startswith("127.") else "127.0.0.1"


class SignalingServer:
    """
    Main server class that coordinates the signaling relay and viewer page.
    """

    def __init__(self, host: str = SIGNALING_HOST, port: int = SIGNALING_PORT,
                 http_port: int = HTTP_PORT, enable_http: bool = True):
        self.host = host
        self.port = port
        self.http_port = http_port
        self.enable_http = enable_http

        # Components
        self.registry = ConnectionRegistry()
        self.relay = SignalingRelay(self.registry)
        self.http_server = ViewerHTTPServer(self.relay, signaling_port=port) if enable_http else None

    def _log_banner(self):
        ip = get_local_ip()

        logger.info("=" * 60)
        logger.info("WebRTC Signaling Server")
        logger.info("=" * 60)
        logger.info(f"Signaling:  ws://{ip}:{self.port}")
        if self.http_server:
            logger.info(f"Viewer:     http://{ip}:{self.http_port}")
        else:
            logger.info("Viewer:     Disabled")
        logger.info("")
        logger.info(f"Point the phone app's WebRTC server at ws://{ip}:{self.port}")
        logger.info("=" * 60)

    async def start(self):
        """Start all server components."""
        self._log_banner()

        if self.http_server:
            await self.http_server.start(host=self.host, port=self.http_port)

        await self.relay.start(host=self.host, port=self.port)

    async def shutdown(self):
        """Shutdown all server components."""
        logger.info("Shutting down...")
        if self.http_server:
            await self.http_server.shutdown()
        await self.relay.shutdown()


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Phone/Viewer WebRTC Signaling Server')
    parser.add_argument('--host', type=str, default=SIGNALING_HOST, help=f'Interface to listen on (default: {SIGNALING_HOST})')
    parser.add_argument('--port', type=int, default=SIGNALING_PORT, help=f'WebSocket signaling port (default: {SIGNALING_PORT})')
    parser.add_argument('--http-port', type=int, default=HTTP_PORT, help=f'Viewer page port (default: {HTTP_PORT})')
    parser.add_argument('--no-http', action='store_true', help='Do not serve the viewer page')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    server = SignalingServer(
        host=args.host,
        port=args.port,
        http_port=args.http_port,
        enable_http=not args.no_http,
    )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    def signal_handler():
        logger.info("Received shutdown signal")
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await server.start()
    except asyncio.CancelledError:
        pass
    except OSError as e:
        logger.error(f"Could not start server: {e}")
        sys.exit(1)
    finally:
        await server.shutdown()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)


if __name__ == '__main__':
    run()
