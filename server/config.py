"""
Configuration settings for the phone/viewer WebRTC signaling server
"""

# WebSocket signaling settings (phone <-> viewer)
# Use 0.0.0.0 to listen on all interfaces (required for physical devices)
SIGNALING_HOST = "0.0.0.0"
SIGNALING_PORT = 8080

# HTTP viewer page settings
# 8082 rather than 8081 to avoid clashing with the Metro bundler
HTTP_HOST = "0.0.0.0"
HTTP_PORT = 8082

# ICE servers handed to the browser viewer page
ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
    {"urls": "stun:stun1.l.google.com:19302"},
]

# Connection settings
PING_INTERVAL = 20  # seconds
PING_TIMEOUT = 10  # seconds
MAX_MESSAGE_SIZE = 256 * 1024  # SDP blobs are a few KB, candidates far less
SEND_TIMEOUT = 5  # seconds; a stalled client must not hold up its sender

# Connection roles (must match the mobile app)
ROLE_PHONE = "phone"
ROLE_VIEWER = "viewer"
ROLES = (ROLE_PHONE, ROLE_VIEWER)

# Message types (must match the mobile app and viewer page)
MSG_TYPE_REGISTER = "register"
MSG_TYPE_PHONE_READY = "phone-ready"
MSG_TYPE_VIEWER_READY = "viewer-ready"
MSG_TYPE_OFFER = "offer"
MSG_TYPE_ANSWER = "answer"
MSG_TYPE_ICE_CANDIDATE = "ice-candidate"
MSG_TYPE_PEER_DISCONNECTED = "peer-disconnected"
