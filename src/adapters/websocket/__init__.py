"""WebSocket adapters - Live connection transport."""

from .transport import WebSocketTransport

__all__ = ["WebSocketTransport"]
