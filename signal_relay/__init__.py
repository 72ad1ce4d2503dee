"""WebRTC signaling relay: room membership and peer-to-peer message routing."""

__version__ = "0.1.0"
