"""
Domain layer - Pure business logic with zero framework imports.

This package contains the transactional workflow core of the marketplace:
the OTP-gated staging cache for account creation, the job -> proposal ->
contract lifecycle, and the notification fanout over live connections.
It defines its own port interfaces for infrastructure abstraction.
"""

from .connections import ConnectionRegistry
from .exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    CodeAbsent,
    CodeError,
    CodeExpired,
    CodeMismatch,
    DeliveryFailed,
    DomainError,
    Forbidden,
    InvalidEmail,
    InvalidState,
    MailDeliveryFailed,
    NotFound,
    StatsUpdateFailed,
)
from .notifications import NotificationService
from .otp import OtpEngine, VerifyResult
from .ports import (
    AccountRepository,
    EmailSender,
    NotificationRepository,
    Transport,
    WorkflowRepository,
)
from .registration import RegistrationService
from .staging import StagingCache
from .workflow import WorkflowService

__all__ = [
    "AccountRepository",
    "AlreadyExists",
    "AuthenticationFailed",
    "CodeAbsent",
    "CodeError",
    "CodeExpired",
    "CodeMismatch",
    "ConnectionRegistry",
    "DeliveryFailed",
    "DomainError",
    "EmailSender",
    "Forbidden",
    "InvalidEmail",
    "InvalidState",
    "MailDeliveryFailed",
    "NotFound",
    "NotificationRepository",
    "NotificationService",
    "OtpEngine",
    "RegistrationService",
    "StagingCache",
    "StatsUpdateFailed",
    "Transport",
    "VerifyResult",
    "WorkflowRepository",
    "WorkflowService",
]
