"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.

Every port method is a coroutine: store round-trips and pushes to live
connections are suspension points. Stores offer per-document atomicity;
conditional transitions return False instead of raising when the stored
state no longer matches the expected one (compare-and-set).
"""

from collections.abc import Hashable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from .models import (
    Account,
    Contract,
    Deliverable,
    Job,
    JobStatus,
    Milestone,
    NewAccount,
    Notification,
    NotificationType,
    Proposal,
    ProposalStatus,
)


class AccountRepository(Protocol):
    """Port interface for account persistence."""

    async def get(self, account_id: str) -> Account | None: ...

    async def get_by_email(self, email: str) -> Account | None: ...

    async def get_by_external_id(self, external_id: str) -> Account | None: ...

    async def create(self, account: NewAccount) -> Account:
        """
        Persist a new account.

        Raises:
            AlreadyExists: If the email (unique index) is already taken
        """
        ...

    async def link_external_id(self, account_id: str, external_id: str) -> None: ...

    async def set_verification_code(
        self, account_id: str, code: str, expires_at: datetime
    ) -> None:
        """Store a re-verification code on an existing account."""
        ...

    async def mark_verified(self, account_id: str) -> None:
        """Set is_email_verified and clear any stored code."""
        ...

    async def apply_completion_stats(
        self, worker_id: str, client_id: str, amount: Decimal
    ) -> None:
        """
        Record a completed contract on both parties in one unit.

        Increments worker completed_jobs by 1 and total_earnings by amount,
        and client total_spent by amount. Either all four counters change
        or none do.
        """
        ...


class WorkflowRepository(Protocol):
    """Port interface for job, proposal, and contract persistence."""

    async def create_job(
        self, client_id: str, title: str, description: str, budget: Decimal
    ) -> Job: ...

    async def get_job(self, job_id: str) -> Job | None: ...

    async def hire(self, job_id: str, worker_id: str) -> bool:
        """Move an open job to in-progress with the hired worker. False if not open."""
        ...

    async def set_job_status(
        self, job_id: str, status: JobStatus, from_statuses: Sequence[JobStatus]
    ) -> bool: ...

    async def create_proposal(
        self,
        job_id: str,
        worker_id: str,
        cover_letter: str,
        bid_amount: Decimal,
        delivery_days: int,
    ) -> Proposal:
        """
        Persist a new pending proposal.

        Raises:
            AlreadyExists: If the worker already bid on this job (unique on job, worker)
        """
        ...

    async def get_proposal(self, proposal_id: str) -> Proposal | None: ...

    async def list_proposals_for_job(self, job_id: str) -> list[Proposal]:
        """Every proposal on the job, newest first."""
        ...

    async def list_proposals_for_worker(self, worker_id: str) -> list[Proposal]:
        """Every proposal the worker submitted, newest first."""
        ...

    async def transition_proposal(
        self, proposal_id: str, from_status: ProposalStatus, to_status: ProposalStatus
    ) -> bool: ...

    async def reject_pending_siblings(self, job_id: str, accepted_id: str) -> int:
        """Reject every other pending proposal on the job. Returns the count."""
        ...

    async def create_contract(
        self,
        job_id: str,
        client_id: str,
        worker_id: str,
        proposal_id: str,
        total_amount: Decimal,
    ) -> Contract: ...

    async def get_contract(self, contract_id: str) -> Contract | None:
        """Load a contract with its deliverables and milestones in order."""
        ...

    async def list_contracts_for(self, party_id: str, as_client: bool) -> list[Contract]:
        """
        Contracts where the party is the client (as_client) or the worker,
        newest first, each with its deliverables and milestones.
        """
        ...

    async def add_deliverable(self, contract_id: str, name: str, url: str) -> Deliverable: ...

    async def add_milestone(
        self,
        contract_id: str,
        title: str,
        amount: Decimal,
        description: str | None,
        due_date: datetime | None,
    ) -> Milestone: ...

    async def complete_contract(self, contract_id: str, completed_at: datetime) -> bool:
        """Set completed + released together. False if the contract is not active."""
        ...

    async def cancel_contract(self, contract_id: str) -> bool:
        """Set cancelled. False if the contract is not active."""
        ...


class NotificationRepository(Protocol):
    """Port interface for durable notification records."""

    async def create(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        link: str | None,
        related_id: str | None,
    ) -> Notification: ...

    async def list_for_recipient(self, recipient_id: str, limit: int) -> list[Notification]:
        """Newest first."""
        ...

    async def count_unread(self, recipient_id: str) -> int: ...

    async def mark_read(self, notification_id: str) -> bool: ...

    async def get(self, notification_id: str) -> Notification | None: ...

    async def mark_all_read(self, recipient_id: str) -> int: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    async def send_otp_email(self, email: str, name: str, code: str) -> None:
        """
        Send a one-time code to an email address.

        Args:
            email: Recipient email address
            name: Recipient display name
            code: Numeric one-time code

        Raises:
            Exception: Any transport failure; the caller decides rollback
        """
        ...


class Transport(Protocol):
    """Port interface for pushing a frame over a live connection handle."""

    async def send_to(self, handle: Hashable, payload: dict[str, Any]) -> None:
        """
        Push a payload to one connection.

        Raises:
            DeliveryFailed: If the handle is stale or closed
        """
        ...
