"""
Domain entities - Accounts, jobs, proposals, contracts, and notifications.

Plain dataclasses with no persistence concerns. Adapters build them from
store rows; services derive updated copies with dataclasses.replace().

Lifecycle States
================

Job:        open -> in-progress -> completed
            open | in-progress -> cancelled
Proposal:   pending -> accepted | rejected | withdrawn
Contract:   active -> completed | cancelled

For a given job at most one proposal is ever accepted, and it is accepted
exactly when the job leaves the open state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class Role(str, Enum):
    """Account roles."""

    FREELANCER = "freelancer"
    CLIENT = "client"
    ADMIN = "admin"


class JobStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ContractStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    ESCROWED = "escrowed"
    RELEASED = "released"
    REFUNDED = "refunded"


class NotificationType(str, Enum):
    """Type tags carried by notifications."""

    PROPOSAL = "proposal"
    MESSAGE = "message"
    CONTRACT = "contract"
    PAYMENT = "payment"
    REVIEW = "review"


class VerificationStatus(str, Enum):
    """Where an email stands in the verification flow."""

    PENDING = "pending"  # staged, no account yet
    UNVERIFIED = "unverified"  # account exists, code outstanding
    VERIFIED = "verified"


@dataclass(frozen=True)
class OneTimeCode:
    """A numeric code bound to a subject (email) with an expiry instant."""

    code: str
    expires_at: datetime
    subject: str


@dataclass(frozen=True)
class PendingRegistration:
    """
    Unconfirmed registration held in the staging cache.

    Holds the bcrypt hash, never the plaintext password.
    """

    email: str
    name: str
    password_hash: str
    role: Role
    otp: OneTimeCode
    created_at: datetime


@dataclass(frozen=True)
class NewAccount:
    """Fields required to persist an account."""

    name: str
    email: str
    role: Role
    password_hash: str | None = None
    external_id: str | None = None
    is_email_verified: bool = False


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    email: str
    role: Role
    password_hash: str | None
    is_email_verified: bool
    external_id: str | None = None
    email_otp: str | None = None
    email_otp_expires_at: datetime | None = None
    completed_jobs: int = 0
    total_earnings: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    created_at: datetime | None = None


@dataclass(frozen=True)
class Job:
    id: str
    client_id: str
    title: str
    description: str
    budget: Decimal
    status: JobStatus = JobStatus.OPEN
    hired_worker_id: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Proposal:
    id: str
    job_id: str
    worker_id: str
    cover_letter: str
    bid_amount: Decimal
    delivery_days: int
    status: ProposalStatus = ProposalStatus.PENDING
    created_at: datetime | None = None


@dataclass(frozen=True)
class Deliverable:
    id: str
    contract_id: str
    name: str
    url: str
    uploaded_at: datetime


@dataclass(frozen=True)
class Milestone:
    id: str
    contract_id: str
    title: str
    amount: Decimal
    description: str | None = None
    due_date: datetime | None = None
    status: str = "pending"


@dataclass(frozen=True)
class Contract:
    id: str
    job_id: str
    client_id: str
    worker_id: str
    proposal_id: str
    total_amount: Decimal
    status: ContractStatus = ContractStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PENDING
    deliverables: tuple[Deliverable, ...] = field(default_factory=tuple)
    milestones: tuple[Milestone, ...] = field(default_factory=tuple)
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class Notification:
    """Durable notification record. Only ``read`` ever changes, and only to True."""

    id: str
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    link: str | None = None
    related_id: str | None = None
    read: bool = False

    def to_payload(self) -> dict[str, object]:
        """Serialize for a live push frame."""
        return {
            "id": self.id,
            "recipientId": self.recipient_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "relatedId": self.related_id,
            "read": self.read,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AcceptedProposal:
    """Result of accepting a proposal: the winning proposal, hired job, new contract."""

    proposal: Proposal
    job: Job
    contract: Contract
    rejected_count: int
