"""
Shared fixtures for adversarial tests.

Wires the real domain services over PostgreSQL so concurrent attacks hit
the same compare-and-set updates and unique indexes as production.
"""

import pytest
from psycopg_pool import AsyncConnectionPool

from src.adapters.repository import (
    PostgresAccountRepository,
    PostgresNotificationRepository,
    PostgresWorkflowRepository,
)
from src.domain.connections import ConnectionRegistry
from src.domain.notifications import NotificationService
from src.domain.otp import OtpEngine
from src.domain.registration import RegistrationService
from src.domain.staging import StagingCache
from src.domain.workflow import WorkflowService
from tests.fakes import RecordingEmailSender, RecordingTransport

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture
def accounts(pg_pool: AsyncConnectionPool) -> PostgresAccountRepository:
    return PostgresAccountRepository(pg_pool)


@pytest.fixture
def workflow_repository(pg_pool: AsyncConnectionPool) -> PostgresWorkflowRepository:
    return PostgresWorkflowRepository(pg_pool)


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def registration(
    accounts: PostgresAccountRepository, mailer: RecordingEmailSender
) -> RegistrationService:
    otp = OtpEngine()
    return RegistrationService(
        accounts=accounts,
        email_sender=mailer,
        staging=StagingCache(otp=otp),
        otp=otp,
        bcrypt_cost=4,
    )


@pytest.fixture
def workflow(
    pg_pool: AsyncConnectionPool,
    accounts: PostgresAccountRepository,
    workflow_repository: PostgresWorkflowRepository,
) -> WorkflowService:
    notifier = NotificationService(
        repository=PostgresNotificationRepository(pg_pool),
        registry=ConnectionRegistry(),
        transport=RecordingTransport(),
    )
    return WorkflowService(repository=workflow_repository, accounts=accounts, notifier=notifier)

