"""
PostgreSQL repository adapter - Implements WorkflowRepository protocol.

Jobs, proposals, contracts, deliverables, and milestones over psycopg3.

Every state transition is a conditional UPDATE (``WHERE status = ...``)
whose rowcount tells the domain whether it won; two concurrent
transitions from the same state can never both succeed. The partial
unique index ``proposals_one_accepted_per_job`` backs the single-winner
rule at the store level as well: a second acceptance on the same job
fails the compare-and-set instead of raising.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from psycopg import AsyncCursor, errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from src.adapters.repository.postgres import as_uuid, id_str
from src.domain.exceptions import AlreadyExists
from src.domain.models import (
    Contract,
    ContractStatus,
    Deliverable,
    Job,
    JobStatus,
    Milestone,
    PaymentStatus,
    Proposal,
    ProposalStatus,
)

logger = logging.getLogger(__name__)

_JOB_COLUMNS = "id, client_id, title, description, budget, status, hired_worker_id, created_at"
_PROPOSAL_COLUMNS = (
    "id, job_id, worker_id, cover_letter, bid_amount, delivery_days, status, created_at"
)
_CONTRACT_COLUMNS = """
    id, job_id, client_id, worker_id, proposal_id, total_amount, status,
    payment_status, started_at, completed_at
"""


def _row_to_job(row: dict[str, Any]) -> Job:
    return Job(
        id=str(row["id"]),
        client_id=str(row["client_id"]),
        title=row["title"],
        description=row["description"],
        budget=Decimal(row["budget"]),
        status=JobStatus(row["status"]),
        hired_worker_id=id_str(row["hired_worker_id"]),
        created_at=row["created_at"],
    )


def _row_to_proposal(row: dict[str, Any]) -> Proposal:
    return Proposal(
        id=str(row["id"]),
        job_id=str(row["job_id"]),
        worker_id=str(row["worker_id"]),
        cover_letter=row["cover_letter"],
        bid_amount=Decimal(row["bid_amount"]),
        delivery_days=row["delivery_days"],
        status=ProposalStatus(row["status"]),
        created_at=row["created_at"],
    )


def _row_to_deliverable(row: dict[str, Any]) -> Deliverable:
    return Deliverable(
        id=str(row["id"]),
        contract_id=str(row["contract_id"]),
        name=row["name"],
        url=row["url"],
        uploaded_at=row["uploaded_at"],
    )


def _row_to_milestone(row: dict[str, Any]) -> Milestone:
    return Milestone(
        id=str(row["id"]),
        contract_id=str(row["contract_id"]),
        title=row["title"],
        amount=Decimal(row["amount"]),
        description=row["description"],
        due_date=row["due_date"],
        status=row["status"],
    )


def _row_to_contract(
    row: dict[str, Any],
    deliverables: Sequence[Deliverable] = (),
    milestones: Sequence[Milestone] = (),
) -> Contract:
    return Contract(
        id=str(row["id"]),
        job_id=str(row["job_id"]),
        client_id=str(row["client_id"]),
        worker_id=str(row["worker_id"]),
        proposal_id=str(row["proposal_id"]),
        total_amount=Decimal(row["total_amount"]),
        status=ContractStatus(row["status"]),
        payment_status=PaymentStatus(row["payment_status"]),
        deliverables=tuple(deliverables),
        milestones=tuple(milestones),
        started_at=row["started_at"],
        completed_at=row["completed_at"],
    )


class PostgresWorkflowRepository:
    """
    Implements WorkflowRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    # Jobs

    async def create_job(
        self, client_id: str, title: str, description: str, budget: Decimal
    ) -> Job:
        sql = f"""
            INSERT INTO jobs (id, client_id, title, description, budget)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {_JOB_COLUMNS}
        """
        row = await self._insert(sql, (uuid.uuid4(), as_uuid(client_id), title, description, budget))
        return _row_to_job(row)

    async def get_job(self, job_id: str) -> Job | None:
        row = await self._fetch_by_id(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = %s", job_id)
        return None if row is None else _row_to_job(row)

    async def hire(self, job_id: str, worker_id: str) -> bool:
        sql = """
            UPDATE jobs
            SET status = %s, hired_worker_id = %s
            WHERE id = %s AND status = %s
        """
        params = (
            JobStatus.IN_PROGRESS.value,
            as_uuid(worker_id),
            as_uuid(job_id),
            JobStatus.OPEN.value,
        )
        return await self._update(sql, params) == 1

    async def set_job_status(
        self, job_id: str, status: JobStatus, from_statuses: Sequence[JobStatus]
    ) -> bool:
        sql = "UPDATE jobs SET status = %s WHERE id = %s AND status = ANY(%s)"
        params = (status.value, as_uuid(job_id), [s.value for s in from_statuses])
        return await self._update(sql, params) == 1

    # Proposals

    async def create_proposal(
        self,
        job_id: str,
        worker_id: str,
        cover_letter: str,
        bid_amount: Decimal,
        delivery_days: int,
    ) -> Proposal:
        """
        Insert a pending proposal.

        Raises:
            AlreadyExists: If (job_id, worker_id) is already taken
        """
        sql = f"""
            INSERT INTO proposals (id, job_id, worker_id, cover_letter, bid_amount, delivery_days)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_PROPOSAL_COLUMNS}
        """
        params = (
            uuid.uuid4(),
            as_uuid(job_id),
            as_uuid(worker_id),
            cover_letter,
            bid_amount,
            delivery_days,
        )
        try:
            row = await self._insert(sql, params)
        except errors.UniqueViolation:
            raise AlreadyExists("You have already submitted a proposal for this job") from None
        return _row_to_proposal(row)

    async def get_proposal(self, proposal_id: str) -> Proposal | None:
        row = await self._fetch_by_id(
            f"SELECT {_PROPOSAL_COLUMNS} FROM proposals WHERE id = %s", proposal_id
        )
        return None if row is None else _row_to_proposal(row)

    async def list_proposals_for_job(self, job_id: str) -> list[Proposal]:
        sql = f"""
            SELECT {_PROPOSAL_COLUMNS} FROM proposals
            WHERE job_id = %s ORDER BY created_at DESC, id
        """
        return [_row_to_proposal(row) for row in await self._fetch_all_by_id(sql, job_id)]

    async def list_proposals_for_worker(self, worker_id: str) -> list[Proposal]:
        sql = f"""
            SELECT {_PROPOSAL_COLUMNS} FROM proposals
            WHERE worker_id = %s ORDER BY created_at DESC, id
        """
        return [_row_to_proposal(row) for row in await self._fetch_all_by_id(sql, worker_id)]

    async def transition_proposal(
        self, proposal_id: str, from_status: ProposalStatus, to_status: ProposalStatus
    ) -> bool:
        sql = "UPDATE proposals SET status = %s WHERE id = %s AND status = %s"
        params = (to_status.value, as_uuid(proposal_id), from_status.value)
        try:
            return await self._update(sql, params) == 1
        except errors.UniqueViolation:
            # Another proposal on the job is already accepted
            return False

    async def reject_pending_siblings(self, job_id: str, accepted_id: str) -> int:
        sql = """
            UPDATE proposals
            SET status = %s
            WHERE job_id = %s AND id <> %s AND status = %s
        """
        params = (
            ProposalStatus.REJECTED.value,
            as_uuid(job_id),
            as_uuid(accepted_id),
            ProposalStatus.PENDING.value,
        )
        return await self._update(sql, params)

    # Contracts

    async def create_contract(
        self,
        job_id: str,
        client_id: str,
        worker_id: str,
        proposal_id: str,
        total_amount: Decimal,
    ) -> Contract:
        sql = f"""
            INSERT INTO contracts (id, job_id, client_id, worker_id, proposal_id, total_amount)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_CONTRACT_COLUMNS}
        """
        params = (
            uuid.uuid4(),
            as_uuid(job_id),
            as_uuid(client_id),
            as_uuid(worker_id),
            as_uuid(proposal_id),
            total_amount,
        )
        try:
            row = await self._insert(sql, params)
        except errors.UniqueViolation:
            raise AlreadyExists("A contract already exists for this proposal") from None
        return _row_to_contract(row)

    async def get_contract(self, contract_id: str) -> Contract | None:
        key = as_uuid(contract_id)
        if key is None:
            return None

        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(f"SELECT {_CONTRACT_COLUMNS} FROM contracts WHERE id = %s", (key,))
            row = await cursor.fetchone()
            if row is None:
                return None

            deliverables, milestones = await self._fetch_children(cursor, [key])

        return _row_to_contract(row, deliverables.get(key, ()), milestones.get(key, ()))

    async def list_contracts_for(self, party_id: str, as_client: bool) -> list[Contract]:
        key = as_uuid(party_id)
        if key is None:
            return []
        column = "client_id" if as_client else "worker_id"

        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(
                f"""
                SELECT {_CONTRACT_COLUMNS} FROM contracts
                WHERE {column} = %s ORDER BY started_at DESC, id
                """,
                (key,),
            )
            rows = await cursor.fetchall()
            deliverables, milestones = await self._fetch_children(
                cursor, [row["id"] for row in rows]
            )

        return [
            _row_to_contract(row, deliverables.get(row["id"], ()), milestones.get(row["id"], ()))
            for row in rows
        ]

    async def add_deliverable(self, contract_id: str, name: str, url: str) -> Deliverable:
        sql = """
            INSERT INTO deliverables (id, contract_id, name, url)
            VALUES (%s, %s, %s, %s)
            RETURNING id, contract_id, name, url, uploaded_at
        """
        row = await self._insert(sql, (uuid.uuid4(), as_uuid(contract_id), name, url))
        return _row_to_deliverable(row)

    async def add_milestone(
        self,
        contract_id: str,
        title: str,
        amount: Decimal,
        description: str | None,
        due_date: datetime | None,
    ) -> Milestone:
        sql = """
            INSERT INTO milestones (id, contract_id, title, description, amount, due_date)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id, contract_id, title, description, amount, due_date, status
        """
        params = (uuid.uuid4(), as_uuid(contract_id), title, description, amount, due_date)
        row = await self._insert(sql, params)
        return _row_to_milestone(row)

    async def complete_contract(self, contract_id: str, completed_at: datetime) -> bool:
        sql = """
            UPDATE contracts
            SET status = %s, payment_status = %s, completed_at = %s
            WHERE id = %s AND status = %s
        """
        params = (
            ContractStatus.COMPLETED.value,
            PaymentStatus.RELEASED.value,
            completed_at,
            as_uuid(contract_id),
            ContractStatus.ACTIVE.value,
        )
        return await self._update(sql, params) == 1

    async def cancel_contract(self, contract_id: str) -> bool:
        sql = """
            UPDATE contracts
            SET status = %s,
                payment_status = CASE WHEN payment_status = %s THEN %s ELSE payment_status END
            WHERE id = %s AND status = %s
        """
        params = (
            ContractStatus.CANCELLED.value,
            PaymentStatus.ESCROWED.value,
            PaymentStatus.REFUNDED.value,
            as_uuid(contract_id),
            ContractStatus.ACTIVE.value,
        )
        return await self._update(sql, params) == 1

    async def _fetch_by_id(self, sql: str, entity_id: str) -> dict[str, Any] | None:
        key = as_uuid(entity_id)
        if key is None:
            return None
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, (key,))
            return await cursor.fetchone()

    async def _fetch_all_by_id(self, sql: str, entity_id: str) -> list[dict[str, Any]]:
        key = as_uuid(entity_id)
        if key is None:
            return []
        async with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, (key,))
            return await cursor.fetchall()

    async def _fetch_children(
        self, cursor: AsyncCursor[dict[str, Any]], contract_ids: list[uuid.UUID]
    ) -> tuple[dict[uuid.UUID, list[Deliverable]], dict[uuid.UUID, list[Milestone]]]:
        """Deliverables and milestones of the given contracts, grouped by contract, in order."""
        deliverables: dict[uuid.UUID, list[Deliverable]] = {}
        milestones: dict[uuid.UUID, list[Milestone]] = {}
        if not contract_ids:
            return deliverables, milestones

        await cursor.execute(
            """
            SELECT id, contract_id, name, url, uploaded_at
            FROM deliverables WHERE contract_id = ANY(%s) ORDER BY position
            """,
            (contract_ids,),
        )
        for row in await cursor.fetchall():
            deliverables.setdefault(row["contract_id"], []).append(_row_to_deliverable(row))

        await cursor.execute(
            """
            SELECT id, contract_id, title, description, amount, due_date, status
            FROM milestones WHERE contract_id = ANY(%s) ORDER BY position
            """,
            (contract_ids,),
        )
        for row in await cursor.fetchall():
            milestones.setdefault(row["contract_id"], []).append(_row_to_milestone(row))

        return deliverables, milestones

    async def _insert(self, sql: str, params: tuple) -> dict[str, Any]:
        async with self._pool.connection() as conn:
            try:
                async with conn.cursor(row_factory=dict_row) as cursor:
                    await cursor.execute(sql, params)
                    row = await cursor.fetchone()
                await conn.commit()
            except errors.IntegrityError:
                await conn.rollback()
                raise
        return row

    async def _update(self, sql: str, params: tuple) -> int:
        async with self._pool.connection() as conn:
            try:
                async with conn.cursor() as cursor:
                    await cursor.execute(sql, params)
                    rowcount = cursor.rowcount
                await conn.commit()
            except errors.IntegrityError:
                await conn.rollback()
                raise
        return rowcount
