"""
One-time code engine - Generation and validation independent of storage.

Validation Order
================

1. Absence:  no stored code           -> ABSENT
2. Expiry:   now is past the expiry   -> EXPIRED
3. Equality: provided != stored       -> MISMATCH

Expiry is checked strictly before equality, so an expired code that
matches is still rejected as EXPIRED.
"""

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from .exceptions import CodeAbsent, CodeExpired, CodeMismatch
from .models import OneTimeCode


def utcnow() -> datetime:
    """Current wall-clock time, timezone-aware."""
    return datetime.now(timezone.utc)


class VerifyResult(Enum):
    """Result of a code validation."""

    SUCCESS = "success"
    ABSENT = "absent"
    EXPIRED = "expired"
    MISMATCH = "mismatch"


_FAILURES = {
    VerifyResult.ABSENT: CodeAbsent,
    VerifyResult.EXPIRED: CodeExpired,
    VerifyResult.MISMATCH: CodeMismatch,
}

_MESSAGES = {
    VerifyResult.ABSENT: "No code found. Please request a new one.",
    VerifyResult.EXPIRED: "Code has expired. Please request a new one.",
    VerifyResult.MISMATCH: "Invalid code. Please try again.",
}


@dataclass
class OtpEngine:
    """Issues uniformly random numeric codes and checks them against wall-clock expiry."""

    ttl_seconds: int = 600
    length: int = 6
    clock: Callable[[], datetime] = field(default=utcnow)

    def generate(self, subject: str) -> OneTimeCode:
        """
        Generate a fresh code bound to a subject.

        Uses secrets for cryptographic randomness; returns a string so
        leading zeros are preserved.
        """
        code = "".join(secrets.choice("0123456789") for _ in range(self.length))
        expires_at = self.clock() + timedelta(seconds=self.ttl_seconds)
        return OneTimeCode(code=code, expires_at=expires_at, subject=subject)

    def check(
        self, stored: str | None, provided: str, expires_at: datetime | None
    ) -> VerifyResult:
        """Classify a provided code against the stored one without raising."""
        if not stored or expires_at is None:
            return VerifyResult.ABSENT

        if self.clock() > expires_at:
            return VerifyResult.EXPIRED

        # Constant-time comparison
        if not secrets.compare_digest(stored.encode(), provided.encode()):
            return VerifyResult.MISMATCH

        return VerifyResult.SUCCESS

    def validate(self, stored: str | None, provided: str, expires_at: datetime | None) -> None:
        """
        Validate a provided code.

        Raises:
            CodeAbsent: No stored code
            CodeExpired: Expiry instant has passed (checked before equality)
            CodeMismatch: Codes differ
        """
        result = self.check(stored, provided, expires_at)
        if result is not VerifyResult.SUCCESS:
            raise _FAILURES[result](_MESSAGES[result])

    def is_expired(self, expires_at: datetime) -> bool:
        return self.clock() > expires_at
