"""Real-time delivery channel over WebSocket connections."""

from cronpush.delivery.channel import Connection, ConnectionRegistry, make_frame

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "make_frame",
]
