"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting the long-lived
domain services (owned by the ServiceContainer in app state) and the
authenticated account into routes.
"""

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from src.api.container import ServiceContainer
from src.domain.connections import ConnectionRegistry
from src.domain.models import Account
from src.domain.notifications import NotificationService
from src.domain.registration import RegistrationService
from src.domain.workflow import WorkflowService


def get_container(connection: HTTPConnection) -> ServiceContainer:
    """
    Get the service container from app state.

    The container is created during app lifespan startup and stored in
    app.state. HTTPConnection covers both HTTP requests and WebSockets.
    """
    return connection.app.state.services


def get_registration_service(
    container: ServiceContainer = Depends(get_container),
) -> RegistrationService:
    return container.registration


def get_workflow_service(container: ServiceContainer = Depends(get_container)) -> WorkflowService:
    return container.workflow


def get_notification_service(
    container: ServiceContainer = Depends(get_container),
) -> NotificationService:
    return container.notifications


def get_connection_registry(
    container: ServiceContainer = Depends(get_container),
) -> ConnectionRegistry:
    return container.registry


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


async def get_current_account(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    service: RegistrationService = Depends(get_registration_service),
) -> Account:
    """
    Authenticate the caller from the HTTP BASIC AUTH header.

    FastAPI's HTTPBasic returns 401 for a missing or malformed header;
    bad credentials or an unverified email raise AuthenticationFailed,
    rendered as 401 by the domain error handler.

    Returns:
        The verified account acting on the request
    """
    return await service.authenticate(credentials.username, credentials.password)
