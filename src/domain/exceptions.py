"""
Domain exceptions - Semantic error types for the workflow core.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Every exception carries a stable ``reason`` the HTTP layer exposes
so callers can branch on it.
"""


class DomainError(Exception):
    """Base class for workflow domain errors."""

    reason = "domain_error"


class NotFound(DomainError):
    """Entity is absent."""

    reason = "not_found"


class Forbidden(DomainError):
    """Caller lacks authorization for the entity."""

    reason = "forbidden"


class InvalidState(DomainError):
    """Requested transition is not legal from the current state."""

    reason = "invalid_state"


class AlreadyExists(DomainError):
    """Duplicate registration, email, or proposal."""

    reason = "already_exists"


class InvalidEmail(DomainError):
    """Email address is not accepted by the registration policy."""

    reason = "invalid_email"


class AuthenticationFailed(DomainError):
    """Credentials do not match a verified account."""

    reason = "unauthenticated"


class CodeError(DomainError):
    """Base class for one-time code failures."""

    reason = "code_error"


class CodeAbsent(CodeError):
    """No code has been issued for the subject."""

    reason = "code_absent"


class CodeExpired(CodeError):
    """Code validity window has passed."""

    reason = "code_expired"


class CodeMismatch(CodeError):
    """Provided code does not match the issued one."""

    reason = "code_mismatch"


class MailDeliveryFailed(DomainError):
    """Mail transport could not deliver the one-time code."""

    reason = "mail_failed"


class DeliveryFailed(DomainError):
    """Live push to a connection failed. Never surfaced to the triggering request."""

    reason = "delivery_failed"


class StatsUpdateFailed(DomainError):
    """Aggregate counters could not be updated while completing a contract."""

    reason = "stats_update_failed"
