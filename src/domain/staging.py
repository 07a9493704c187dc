"""
Staging cache - Time-bounded holding area for unconfirmed registrations.

Entries are keyed by normalized email and live only in process memory;
a restart drops them. An entry is overwritten on repeat registration or
resend, removed on successful promotion, and evicted by a periodic sweep
once its code has expired.

The map is shared between request handlers and the sweep task, so every
access goes through a single lock. Promotion pops the entry before the
account is persisted (the code is single-use) and puts it back if
persistence fails, so the user can retry with the same code. A duplicate
email is the exception: the entry is dropped, since it can never promote.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .exceptions import AlreadyExists, NotFound
from .models import Account, PendingRegistration, Role
from .otp import OtpEngine

logger = logging.getLogger(__name__)


@dataclass
class StagingCache:
    """
    In-memory staging area for pending registrations.

    Owns its expiry sweep: start_sweeper() at service init,
    stop_sweeper() at shutdown.
    """

    otp: OtpEngine
    sweep_interval_seconds: float = 300
    _entries: dict[str, PendingRegistration] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _sweeper: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stage(
        self, email: str, name: str, password_hash: str, role: Role
    ) -> tuple[PendingRegistration, bool]:
        """
        Stage registration data and issue a fresh code.

        Staging an email that is already pending overwrites the entry;
        the previous code stops validating.

        Returns:
            Tuple of (entry, replaced) where replaced is True when an
            existing entry was overwritten
        """
        with self._lock:
            replaced = email in self._entries
            entry = PendingRegistration(
                email=email,
                name=name,
                password_hash=password_hash,
                role=role,
                otp=self.otp.generate(email),
                created_at=self.otp.clock(),
            )
            self._entries[email] = entry
        return entry, replaced

    def reissue(self, email: str) -> PendingRegistration:
        """
        Replace the code on a pending entry, keeping its profile data.

        Raises:
            NotFound: If no entry is staged for the email
        """
        with self._lock:
            current = self._entries.get(email)
            if current is None:
                raise NotFound("No pending registration for this email")
            entry = PendingRegistration(
                email=current.email,
                name=current.name,
                password_hash=current.password_hash,
                role=current.role,
                otp=self.otp.generate(email),
                created_at=current.created_at,
            )
            self._entries[email] = entry
        return entry

    def get(self, email: str) -> PendingRegistration | None:
        with self._lock:
            return self._entries.get(email)

    def discard(self, email: str, expected: PendingRegistration | None = None) -> bool:
        """
        Remove an entry.

        When expected is given, the entry is removed only if it is still
        that exact entry, so a newer staging is never dropped.
        """
        with self._lock:
            current = self._entries.get(email)
            if current is None or (expected is not None and current is not expected):
                return False
            del self._entries[email]
            return True

    async def promote(
        self,
        email: str,
        code: str,
        create_account: Callable[[PendingRegistration], Awaitable[Account]],
    ) -> Account:
        """
        Validate a code and persist the staged registration as an account.

        Args:
            email: Normalized email address
            code: Code provided by the user
            create_account: Coroutine persisting the account from the entry

        Returns:
            The persisted account

        Raises:
            NotFound: If no entry is staged for the email
            CodeExpired: If the entry's code has expired
            CodeMismatch: If the code does not match
            AlreadyExists: If the email was taken meanwhile; the entry is dropped
            Exception: Whatever else create_account raises; the entry is restored
        """
        with self._lock:
            entry = self._entries.get(email)
            if entry is None:
                raise NotFound("No registration found for this email. Please register first.")
            self.otp.validate(entry.otp.code, code, entry.otp.expires_at)
            del self._entries[email]

        try:
            account = await create_account(entry)
        except AlreadyExists:
            # The email now belongs to an account; the entry can never promote
            logger.info("Dropped pending registration for existing account: %s", email)
            raise
        except Exception:
            with self._lock:
                # A re-registration made while persisting wins over the restored entry
                self._entries.setdefault(email, entry)
            raise

        logger.info("Promoted pending registration to account: %s", email)
        return account

    def evict_expired(self) -> int:
        """Remove every entry whose code has expired. Returns the number evicted."""
        with self._lock:
            expired = [
                email
                for email, entry in self._entries.items()
                if self.otp.is_expired(entry.otp.expires_at)
            ]
            for email in expired:
                del self._entries[email]

        for email in expired:
            logger.info("Evicted expired pending registration: %s", email)
        return len(expired)

    def start_sweeper(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_forever(), name="staging-sweep")
        logger.info("Staging sweep started (interval=%ss)", self.sweep_interval_seconds)

    async def stop_sweeper(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
        logger.info("Staging sweep stopped")

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.evict_expired()
