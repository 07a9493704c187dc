"""
Connection registry - Live mapping of user identity to a connection handle.

At most one handle per user; the last registration wins. Handles are
opaque hashable objects owned by the transport (for the WebSocket relay,
the socket itself). Not persisted.
"""

import logging
import threading
from collections.abc import Hashable

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Lock-guarded user -> handle map with a reverse index for disconnects."""

    def __init__(self) -> None:
        self._by_user: dict[str, Hashable] = {}
        self._by_handle: dict[Hashable, str] = {}
        self._lock = threading.Lock()

    def register(self, user_id: str, handle: Hashable) -> None:
        """Bind a user to a handle, replacing any previous handle for that user."""
        with self._lock:
            previous = self._by_user.get(user_id)
            if previous is not None and previous is not handle:
                self._by_handle.pop(previous, None)
            # A handle re-registered under another user leaves its old binding
            prior_user = self._by_handle.get(handle)
            if prior_user is not None and prior_user != user_id:
                self._by_user.pop(prior_user, None)
            self._by_user[user_id] = handle
            self._by_handle[handle] = user_id
        logger.info("User %s registered a live connection", user_id)

    def unregister(self, handle: Hashable) -> str | None:
        """
        Drop the mapping owned by a handle.

        A stale handle (already replaced by a newer registration) is a
        no-op, so a late disconnect never removes the newer connection.

        Returns:
            The user id that was unbound, or None
        """
        with self._lock:
            user_id = self._by_handle.pop(handle, None)
            if user_id is None:
                return None
            if self._by_user.get(user_id) is handle:
                del self._by_user[user_id]
        logger.info("User %s connection closed", user_id)
        return user_id

    def lookup(self, user_id: str) -> Hashable | None:
        with self._lock:
            return self._by_user.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_user)
