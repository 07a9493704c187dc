"""
WebSocket transport adapter - Implements Transport protocol.

Pushes JSON frames over FastAPI WebSocket connections. Handles are the
WebSocket objects themselves, as registered in the ConnectionRegistry by
the relay endpoint.
"""

from typing import Any

from fastapi.websockets import WebSocket, WebSocketState

from src.domain.exceptions import DeliveryFailed


class WebSocketTransport:
    """
    Implements Transport protocol over FastAPI WebSockets.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    async def send_to(self, handle: WebSocket, payload: dict[str, Any]) -> None:
        """
        Send one JSON frame to a connected socket.

        Raises:
            DeliveryFailed: If the socket is closed or the send errors
        """
        if handle.application_state is not WebSocketState.CONNECTED:
            raise DeliveryFailed("Connection is closed")
        try:
            await handle.send_json(payload)
        except Exception as exc:  # noqa: BLE001
            raise DeliveryFailed(str(exc)) from exc
