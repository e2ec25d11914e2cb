"""
HTTP server for the browser viewer page, health check and relay stats.
"""

import json
import logging
from typing import Optional

from aiohttp import web

from config import HTTP_HOST, HTTP_PORT, SIGNALING_PORT, ICE_SERVERS
from signaling_relay import SignalingRelay

logger = logging.getLogger(__name__)


class ViewerHTTPServer:
    """
    Read-only HTTP front for the signaling relay.

    Serves a viewer page that registers as a viewer over the signaling
    WebSocket and plays the phone's stream. Nothing here takes part in
    signaling itself.
    """

    def __init__(self, relay: SignalingRelay, signaling_port: int = SIGNALING_PORT):
        self.relay = relay
        self.signaling_port = signaling_port
        self.runner: Optional[web.AppRunner] = None

        # HTTP app
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self):
        """Set up HTTP routes."""
        self.app.router.add_get('/', self.handle_index)
        self.app.router.add_get('/viewer.html', self.handle_index)
        self.app.router.add_get('/health', self.handle_health)
        self.app.router.add_get('/stats', self.handle_stats)

    async def handle_index(self, request: web.Request) -> web.Response:
        """Serve the viewer page."""
        return web.Response(content_type='text/html', text=self._get_viewer_html())

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({'status': 'healthy'})

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Return relay statistics."""
        return web.json_response(self.relay.get_stats())

    async def start(self, host: str = HTTP_HOST, port: int = HTTP_PORT):
        """Start the HTTP server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, host, port)
        await site.start()
        logger.info(f"Viewer page available on http://{host}:{port}")

    async def shutdown(self):
        """Stop serving HTTP."""
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Viewer HTTP server stopped")

    def _get_viewer_html(self) -> str:
        """Return inline HTML for the viewer page."""
        return _VIEWER_HTML.replace(
            '__SIGNALING_PORT__', str(self.signaling_port)
        ).replace(
            '__ICE_SERVERS__', json.dumps(ICE_SERVERS)
        )


_VIEWER_HTML = '''<!DOCTYPE html>
<html>
<head>
    <title>WebRTC Stream Viewer</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body { margin: 0; padding: 20px; background: #000; color: #fff; font-family: Arial, sans-serif; }
        video { width: 100%; max-width: 1280px; height: auto; background: #111; }
        .status { margin: 10px 0; padding: 10px; background: #222; border-radius: 5px; }
        .connected { color: #0f0; }
        .connecting { color: #ff0; }
        .error { color: #f00; }
    </style>
</head>
<body>
    <h1>WebRTC Stream Viewer</h1>
    <div id="status" class="status connecting">Connecting to signaling server...</div>
    <video id="remoteVideo" autoplay playsinline muted></video>
    <script>
        const video = document.getElementById('remoteVideo');
        const status = document.getElementById('status');
        const ws = new WebSocket('ws://' + location.hostname + ':__SIGNALING_PORT__');
        const configuration = { iceServers: __ICE_SERVERS__ };
        let pc = null;

        function setStatus(text, cls) {
            status.textContent = text;
            status.className = 'status ' + cls;
        }

        ws.onopen = () => {
            setStatus('Connected. Waiting for stream...', 'connecting');
            ws.send(JSON.stringify({ type: 'register', role: 'viewer' }));
        };

        ws.onmessage = async (event) => {
            const data = JSON.parse(event.data);

            if (data.type === 'phone-ready') {
                setStatus('Phone connected. Waiting for offer...', 'connecting');
            } else if (data.type === 'offer') {
                setStatus('Received offer. Creating answer...', 'connecting');
                await handleOffer(data);
            } else if (data.type === 'ice-candidate') {
                if (pc) {
                    await pc.addIceCandidate(new RTCIceCandidate(data.candidate));
                }
            } else if (data.type === 'peer-disconnected') {
                setStatus('Phone disconnected.', 'error');
                if (pc) {
                    pc.close();
                    pc = null;
                }
            }
        };

        async function handleOffer(data) {
            if (pc) {
                pc.close();
            }
            pc = new RTCPeerConnection(configuration);

            pc.ontrack = (event) => {
                video.srcObject = event.streams[0];
                setStatus('Streaming!', 'connected');
            };

            pc.onicecandidate = (event) => {
                if (event.candidate) {
                    ws.send(JSON.stringify({ type: 'ice-candidate', candidate: event.candidate }));
                }
            };

            pc.onconnectionstatechange = () => {
                if (pc.connectionState === 'connected') {
                    setStatus('Connected and streaming!', 'connected');
                } else if (pc.connectionState === 'failed' || pc.connectionState === 'disconnected') {
                    setStatus('Connection lost.', 'error');
                }
            };

            await pc.setRemoteDescription(new RTCSessionDescription(data.sdp));
            const answer = await pc.createAnswer();
            await pc.setLocalDescription(answer);
            ws.send(JSON.stringify({ type: 'answer', sdp: answer }));
        }

        ws.onerror = () => setStatus('WebSocket error.', 'error');
        ws.onclose = () => setStatus('Disconnected from signaling server.', 'error');
    </script>
</body>
</html>'''
