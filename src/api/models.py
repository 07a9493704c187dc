"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Response models read domain dataclasses via from_attributes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from src.domain.models import (
    ContractStatus,
    JobStatus,
    NotificationType,
    PaymentStatus,
    ProposalStatus,
    Role,
    VerificationStatus,
)


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    reason: str


# Registration


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, description="User password (min 6 characters)")
    role: Literal["freelancer", "client"]


class RegisterResponse(BaseModel):
    """Response model for a staged registration."""

    message: str
    email: str
    expires_in_seconds: int


class ResendRequest(BaseModel):
    email: EmailStr


class VerifyRequest(BaseModel):
    """Request model for email verification."""

    email: EmailStr
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^\d{6}$",
        description="6-digit one-time code",
    )


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: Role
    is_email_verified: bool
    completed_jobs: int
    total_earnings: float
    total_spent: float


class VerifyResponse(BaseModel):
    message: str
    account: AccountResponse


class VerificationStatusResponse(BaseModel):
    email: str
    status: VerificationStatus


# Jobs and proposals


class JobCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    budget: Decimal = Field(..., gt=0)


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    title: str
    description: str
    budget: float
    status: JobStatus
    hired_worker_id: str | None = None


class ProposalCreateRequest(BaseModel):
    cover_letter: str = Field(..., min_length=1)
    bid_amount: Decimal = Field(..., gt=0)
    delivery_days: int = Field(..., gt=0, description="Estimated delivery time in days")


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    worker_id: str
    cover_letter: str
    bid_amount: float
    delivery_days: int
    status: ProposalStatus


# Contracts


class DeliverableRequest(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class DeliverableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    url: str
    uploaded_at: datetime


class MilestoneRequest(BaseModel):
    title: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: str | None = None
    due_date: datetime | None = None


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: float
    description: str | None = None
    due_date: datetime | None = None
    status: str


class ContractResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    client_id: str
    worker_id: str
    proposal_id: str
    total_amount: float
    status: ContractStatus
    payment_status: PaymentStatus
    deliverables: list[DeliverableResponse] = []
    milestones: list[MilestoneResponse] = []
    completed_at: datetime | None = None


class AcceptProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proposal: ProposalResponse
    contract: ContractResponse
    rejected_count: int


# Notifications


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: NotificationType
    title: str
    message: str
    link: str | None = None
    related_id: str | None = None
    read: bool
    created_at: datetime


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int
