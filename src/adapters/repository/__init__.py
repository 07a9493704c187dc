"""Repository adapters - Database implementations."""

from .postgres import PostgresAccountRepository, run_migrations
from .postgres_notifications import PostgresNotificationRepository
from .postgres_workflow import PostgresWorkflowRepository

__all__ = [
    "PostgresAccountRepository",
    "PostgresNotificationRepository",
    "PostgresWorkflowRepository",
    "run_migrations",
]
