"""
Workflow domain service - Job, proposal, and contract lifecycle.

Every operation follows the same shape: load, authorize, check state,
transition, emit. Authorization and state checks run before any write,
so a failed check never leaves a partial update behind.

Acceptance Write Order
======================

The store only guarantees per-document atomicity, so acceptance is a
fixed sequence of single-document writes:

1. proposal  pending -> accepted      (compare-and-set)
2. job       open    -> in-progress   (compare-and-set, records hired worker)
3. sibling pending proposals -> rejected
4. contract created
5. ProposalAccepted emitted to the worker

A job that already left ``open`` rejects further acceptance with
InvalidState. If step 2 loses a race against a concurrent acceptance,
the proposal accepted in step 1 is moved on to ``rejected`` so a job
never shows two accepted proposals.

Completion updates the contract (completed + released together), the
job, and then both parties' counters in one store unit. A counter
failure is fatal to the request and is not retried.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from .exceptions import Forbidden, InvalidState, NotFound, StatsUpdateFailed
from .models import (
    AcceptedProposal,
    Account,
    Contract,
    ContractStatus,
    Deliverable,
    Job,
    JobStatus,
    Milestone,
    PaymentStatus,
    Proposal,
    ProposalStatus,
    Role,
)
from .notifications import NotificationService
from .otp import utcnow
from .ports import AccountRepository, WorkflowRepository

logger = logging.getLogger(__name__)


@dataclass
class WorkflowService:
    """Enforces lifecycle transitions and emits the resulting domain events."""

    repository: WorkflowRepository
    accounts: AccountRepository
    notifier: NotificationService
    require_deliverable_for_completion: bool = True
    clock: Callable[[], datetime] = field(default=utcnow)

    async def create_job(
        self, acting_user_id: str, title: str, description: str, budget: Decimal
    ) -> Job:
        """
        Post an open job owned by the acting client.

        Raises:
            Forbidden: If the acting account is not a client
        """
        account = await self._load_account(acting_user_id)
        if account.role is not Role.CLIENT:
            raise Forbidden("Only clients can post jobs")
        job = await self.repository.create_job(acting_user_id, title, description, budget)
        logger.info("Job %s posted by client %s", job.id, acting_user_id)
        return job

    async def get_job(self, job_id: str) -> Job:
        return await self._load_job(job_id)

    async def list_job_proposals(self, job_id: str, acting_user_id: str) -> list[Proposal]:
        """
        List every proposal on a job, newest first. Only the job's client may look.

        Raises:
            NotFound: If the job does not exist
            Forbidden: If the acting user is not the job's client
        """
        job = await self._load_job(job_id)
        if job.client_id != acting_user_id:
            raise Forbidden("Not authorized")
        return await self.repository.list_proposals_for_job(job.id)

    async def list_my_proposals(self, acting_user_id: str) -> list[Proposal]:
        """
        List the acting freelancer's own proposals, newest first.

        Raises:
            Forbidden: If the acting account is a client
        """
        account = await self._load_account(acting_user_id)
        if account.role is Role.CLIENT:
            raise Forbidden("Only freelancers have proposals")
        return await self.repository.list_proposals_for_worker(account.id)

    async def submit_proposal(
        self,
        job_id: str,
        acting_user_id: str,
        cover_letter: str,
        bid_amount: Decimal,
        delivery_days: int,
    ) -> Proposal:
        """
        Submit a bid on an open job.

        One proposal per worker per job is a store invariant (unique index),
        not a pre-check, so concurrent submissions cannot both land.

        Raises:
            NotFound: If the job does not exist
            Forbidden: If the acting account is not a freelancer
            InvalidState: If the job no longer accepts proposals
            AlreadyExists: If the worker already bid on the job
        """
        job = await self._load_job(job_id)
        worker = await self._load_account(acting_user_id)
        if worker.role is not Role.FREELANCER:
            raise Forbidden("Only freelancers can submit proposals")
        if job.status is not JobStatus.OPEN:
            raise InvalidState("Job is no longer accepting proposals")

        proposal = await self.repository.create_proposal(
            job_id=job.id,
            worker_id=worker.id,
            cover_letter=cover_letter,
            bid_amount=bid_amount,
            delivery_days=delivery_days,
        )
        logger.info("Proposal %s submitted on job %s by %s", proposal.id, job.id, worker.id)

        await self.notifier.notify_new_proposal(
            client_id=job.client_id,
            freelancer_name=worker.name,
            job_title=job.title,
            job_id=job.id,
            proposal_id=proposal.id,
        )
        return proposal

    async def accept_proposal(self, proposal_id: str, acting_user_id: str) -> AcceptedProposal:
        """
        Accept one proposal, hire its worker, reject the rest, open a contract.

        Raises:
            NotFound: If the proposal or its job does not exist
            Forbidden: If the acting user is not the job's client
            InvalidState: If the job is not open or the proposal not pending
        """
        proposal = await self._load_proposal(proposal_id)
        job = await self._load_job(proposal.job_id)

        if job.client_id != acting_user_id:
            raise Forbidden("Not authorized")
        if job.status is not JobStatus.OPEN:
            raise InvalidState("Job is no longer open")
        if proposal.status is not ProposalStatus.PENDING:
            raise InvalidState(f"Proposal is {proposal.status.value}")

        accepted = await self.repository.transition_proposal(
            proposal.id, ProposalStatus.PENDING, ProposalStatus.ACCEPTED
        )
        if not accepted:
            raise InvalidState("Proposal is no longer pending")

        hired = await self.repository.hire(job.id, proposal.worker_id)
        if not hired:
            # Lost the race to another acceptance on the same job
            await self.repository.transition_proposal(
                proposal.id, ProposalStatus.ACCEPTED, ProposalStatus.REJECTED
            )
            raise InvalidState("Job is no longer open")

        rejected_count = await self.repository.reject_pending_siblings(job.id, proposal.id)

        contract = await self.repository.create_contract(
            job_id=job.id,
            client_id=job.client_id,
            worker_id=proposal.worker_id,
            proposal_id=proposal.id,
            total_amount=proposal.bid_amount,
        )
        logger.info(
            "Proposal %s accepted on job %s: contract %s, %d sibling(s) rejected",
            proposal.id,
            job.id,
            contract.id,
            rejected_count,
        )

        client = await self._load_account(acting_user_id)
        await self.notifier.notify_proposal_accepted(
            freelancer_id=proposal.worker_id,
            client_name=client.name,
            job_title=job.title,
            contract_id=contract.id,
        )

        return AcceptedProposal(
            proposal=replace(proposal, status=ProposalStatus.ACCEPTED),
            job=replace(job, status=JobStatus.IN_PROGRESS, hired_worker_id=proposal.worker_id),
            contract=contract,
            rejected_count=rejected_count,
        )

    async def reject_proposal(self, proposal_id: str, acting_user_id: str) -> Proposal:
        """
        Reject a pending proposal on the acting client's job.

        Raises:
            NotFound, Forbidden, InvalidState
        """
        proposal = await self._load_proposal(proposal_id)
        job = await self._load_job(proposal.job_id)

        if job.client_id != acting_user_id:
            raise Forbidden("Not authorized")
        if proposal.status is not ProposalStatus.PENDING:
            raise InvalidState(f"Proposal is {proposal.status.value}")

        await self._transition(proposal, ProposalStatus.REJECTED)
        logger.info("Proposal %s rejected by client %s", proposal.id, acting_user_id)
        return replace(proposal, status=ProposalStatus.REJECTED)

    async def withdraw_proposal(self, proposal_id: str, acting_user_id: str) -> Proposal:
        """
        Withdraw the acting worker's own proposal while it is pending.

        Raises:
            NotFound, Forbidden, InvalidState
        """
        proposal = await self._load_proposal(proposal_id)

        if proposal.worker_id != acting_user_id:
            raise Forbidden("Not authorized")
        if proposal.status is not ProposalStatus.PENDING:
            raise InvalidState("Cannot withdraw this proposal")

        await self._transition(proposal, ProposalStatus.WITHDRAWN)
        logger.info("Proposal %s withdrawn by %s", proposal.id, acting_user_id)
        return replace(proposal, status=ProposalStatus.WITHDRAWN)

    async def get_contract(self, contract_id: str, acting_user_id: str) -> Contract:
        """Either party may read a contract."""
        contract = await self._load_contract(contract_id)
        if acting_user_id not in (contract.client_id, contract.worker_id):
            raise Forbidden("Not authorized")
        return contract

    async def list_my_contracts(self, acting_user_id: str) -> list[Contract]:
        """Contracts where a client pays or a freelancer works, newest first."""
        account = await self._load_account(acting_user_id)
        return await self.repository.list_contracts_for(
            account.id, as_client=account.role is Role.CLIENT
        )

    async def add_milestone(
        self,
        contract_id: str,
        acting_user_id: str,
        title: str,
        amount: Decimal,
        description: str | None = None,
        due_date: datetime | None = None,
    ) -> Milestone:
        """
        Append a milestone to an active contract. Client only.

        Raises:
            NotFound, Forbidden, InvalidState
        """
        contract = await self._load_contract(contract_id)
        if contract.client_id != acting_user_id:
            raise Forbidden("Not authorized")
        self._require_active(contract)

        milestone = await self.repository.add_milestone(
            contract.id, title, amount, description, due_date
        )
        logger.info("Milestone %s added to contract %s", milestone.id, contract.id)
        return milestone

    async def submit_deliverable(
        self, contract_id: str, acting_user_id: str, name: str, url: str
    ) -> Deliverable:
        """
        Record a deliverable on an active contract and notify the client.

        Raises:
            NotFound, Forbidden, InvalidState
        """
        contract = await self._load_contract(contract_id)
        if contract.worker_id != acting_user_id:
            raise Forbidden("Not authorized")
        self._require_active(contract)

        deliverable = await self.repository.add_deliverable(contract.id, name, url)
        logger.info("Deliverable %s submitted on contract %s", deliverable.id, contract.id)

        worker = await self._load_account(acting_user_id)
        job = await self._load_job(contract.job_id)
        await self.notifier.notify_deliverable_submitted(
            client_id=contract.client_id,
            freelancer_name=worker.name,
            job_title=job.title,
            contract_id=contract.id,
            deliverable_id=deliverable.id,
        )
        return deliverable

    async def complete_contract(self, contract_id: str, acting_user_id: str) -> Contract:
        """
        Complete an active contract, release payment, and credit both parties.

        Not idempotent: callers must not retry automatically. A second call
        on a completed contract fails with InvalidState and changes nothing.

        Raises:
            NotFound: If the contract does not exist
            Forbidden: If the acting user is not the contract's client
            InvalidState: If the contract is not active or has no deliverable
            StatsUpdateFailed: If the aggregate counters could not be updated
        """
        contract = await self._load_contract(contract_id)
        if contract.client_id != acting_user_id:
            raise Forbidden("Not authorized")
        self._require_active(contract)
        if self.require_deliverable_for_completion and not contract.deliverables:
            raise InvalidState("At least one deliverable is required to complete a contract")

        completed_at = self.clock()
        if not await self.repository.complete_contract(contract.id, completed_at):
            raise InvalidState("Contract is no longer active")

        await self.repository.set_job_status(
            contract.job_id, JobStatus.COMPLETED, (JobStatus.IN_PROGRESS,)
        )

        try:
            await self.accounts.apply_completion_stats(
                worker_id=contract.worker_id,
                client_id=contract.client_id,
                amount=contract.total_amount,
            )
        except Exception as exc:
            logger.error(
                "Counter update failed for completed contract %s: %s",
                contract.id,
                exc,
                exc_info=True,
            )
            raise StatsUpdateFailed("Failed to update account statistics") from exc

        logger.info("Contract %s completed, %s released", contract.id, contract.total_amount)

        job = await self._load_job(contract.job_id)
        await self.notifier.notify_contract_completed(
            freelancer_id=contract.worker_id,
            job_title=job.title,
            contract_id=contract.id,
        )

        return replace(
            contract,
            status=ContractStatus.COMPLETED,
            payment_status=PaymentStatus.RELEASED,
            completed_at=completed_at,
        )

    async def cancel_contract(self, contract_id: str, acting_user_id: str) -> Contract:
        """
        Cancel an active contract. Either party may cancel.

        Escrowed payment is refunded; the job moves to cancelled.

        Raises:
            NotFound, Forbidden, InvalidState
        """
        contract = await self._load_contract(contract_id)
        if acting_user_id not in (contract.client_id, contract.worker_id):
            raise Forbidden("Not authorized")
        self._require_active(contract)

        if not await self.repository.cancel_contract(contract.id):
            raise InvalidState("Contract is no longer active")

        await self.repository.set_job_status(
            contract.job_id, JobStatus.CANCELLED, (JobStatus.OPEN, JobStatus.IN_PROGRESS)
        )
        logger.info("Contract %s cancelled by %s", contract.id, acting_user_id)

        payment_status = contract.payment_status
        if payment_status is PaymentStatus.ESCROWED:
            payment_status = PaymentStatus.REFUNDED
        return replace(contract, status=ContractStatus.CANCELLED, payment_status=payment_status)

    async def _transition(self, proposal: Proposal, to_status: ProposalStatus) -> None:
        moved = await self.repository.transition_proposal(proposal.id, proposal.status, to_status)
        if not moved:
            raise InvalidState("Proposal changed concurrently")

    def _require_active(self, contract: Contract) -> None:
        if contract.status is not ContractStatus.ACTIVE:
            raise InvalidState(f"Contract is {contract.status.value}")

    async def _load_account(self, account_id: str) -> Account:
        account = await self.accounts.get(account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    async def _load_job(self, job_id: str) -> Job:
        job = await self.repository.get_job(job_id)
        if job is None:
            raise NotFound("Job not found")
        return job

    async def _load_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.repository.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound("Proposal not found")
        return proposal

    async def _load_contract(self, contract_id: str) -> Contract:
        contract = await self.repository.get_contract(contract_id)
        if contract is None:
            raise NotFound("Contract not found")
        return contract
