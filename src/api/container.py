"""
Service container - Long-lived domain services shared by all handlers.

The staging cache and the connection registry are process-wide mutable
state; the container owns them (one instance per application) and the
request dependencies hand them out. The staging sweep is started and
stopped through the container by the application lifespan.
"""

from dataclasses import dataclass

from psycopg_pool import AsyncConnectionPool

from src.adapters.repository import (
    PostgresAccountRepository,
    PostgresNotificationRepository,
    PostgresWorkflowRepository,
)
from src.adapters.smtp.console import ConsoleEmailSender
from src.adapters.websocket import WebSocketTransport
from src.config.settings import Settings
from src.domain.connections import ConnectionRegistry
from src.domain.notifications import NotificationService
from src.domain.otp import OtpEngine
from src.domain.registration import RegistrationService
from src.domain.staging import StagingCache
from src.domain.workflow import WorkflowService


@dataclass
class ServiceContainer:
    """Wired domain services for one application instance."""

    staging: StagingCache
    registry: ConnectionRegistry
    registration: RegistrationService
    workflow: WorkflowService
    notifications: NotificationService

    def start(self) -> None:
        self.staging.start_sweeper()

    async def stop(self) -> None:
        await self.staging.stop_sweeper()


def build_container(pool: AsyncConnectionPool, settings: Settings) -> ServiceContainer:
    """Wire repositories, adapters, and domain services around a connection pool."""
    accounts = PostgresAccountRepository(pool)
    otp = OtpEngine(ttl_seconds=settings.otp_ttl_seconds, length=settings.otp_length)
    staging = StagingCache(otp=otp, sweep_interval_seconds=settings.staging_sweep_interval_seconds)
    registry = ConnectionRegistry()

    notifications = NotificationService(
        repository=PostgresNotificationRepository(pool),
        registry=registry,
        transport=WebSocketTransport(),
    )
    registration = RegistrationService(
        accounts=accounts,
        email_sender=ConsoleEmailSender(),
        staging=staging,
        otp=otp,
        allowed_email_tlds=tuple(settings.allowed_email_tlds),
        bcrypt_cost=settings.bcrypt_cost,
    )
    workflow = WorkflowService(
        repository=PostgresWorkflowRepository(pool),
        accounts=accounts,
        notifier=notifications,
        require_deliverable_for_completion=settings.require_deliverable_for_completion,
    )

    return ServiceContainer(
        staging=staging,
        registry=registry,
        registration=registration,
        workflow=workflow,
        notifications=notifications,
    )
