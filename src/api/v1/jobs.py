"""
API v1 job and proposal routes.

- POST /v1/jobs - Post a job (client)
- GET  /v1/jobs/{job_id} - Read a job
- GET  /v1/jobs/{job_id}/proposals - List proposals on a job (job's client)
- POST /v1/jobs/{job_id}/proposals - Submit a proposal (freelancer)
- GET  /v1/proposals/my-proposals - List own proposals (freelancer)
- PUT  /v1/proposals/{proposal_id}/accept - Accept (job's client)
- PUT  /v1/proposals/{proposal_id}/reject - Reject (job's client)
- PUT  /v1/proposals/{proposal_id}/withdraw - Withdraw (proposal's freelancer)
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_current_account, get_workflow_service
from src.api.models import (
    AcceptProposalResponse,
    ErrorResponse,
    JobCreateRequest,
    JobResponse,
    ProposalCreateRequest,
    ProposalResponse,
)
from src.domain.models import Account
from src.domain.workflow import WorkflowService

router = APIRouter(tags=["v1"])

_TRANSITION_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Not authorized"},
    404: {"model": ErrorResponse, "description": "Proposal not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed in current state"},
}


@router.post(
    "/jobs",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse, "description": "Only clients can post jobs"}},
    summary="Post a job",
)
async def create_job(
    request_data: JobCreateRequest,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> JobResponse:
    job = await service.create_job(
        account.id, request_data.title, request_data.description, request_data.budget
    )
    return JobResponse.model_validate(job)


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
    summary="Get a job",
)
async def get_job(
    job_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> JobResponse:
    return JobResponse.model_validate(await service.get_job(job_id))


@router.get(
    "/jobs/{job_id}/proposals",
    response_model=list[ProposalResponse],
    responses={
        403: {"model": ErrorResponse, "description": "Not the job's client"},
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
    summary="List proposals on a job",
)
async def list_job_proposals(
    job_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> list[ProposalResponse]:
    proposals = await service.list_job_proposals(job_id, account.id)
    return [ProposalResponse.model_validate(p) for p in proposals]


@router.get(
    "/proposals/my-proposals",
    response_model=list[ProposalResponse],
    responses={403: {"model": ErrorResponse, "description": "Only freelancers have proposals"}},
    summary="List my proposals",
)
async def list_my_proposals(
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> list[ProposalResponse]:
    proposals = await service.list_my_proposals(account.id)
    return [ProposalResponse.model_validate(p) for p in proposals]


@router.post(
    "/jobs/{job_id}/proposals",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse, "description": "Only freelancers can submit proposals"},
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job closed or proposal already submitted"},
    },
    summary="Submit a proposal",
)
async def submit_proposal(
    job_id: str,
    request_data: ProposalCreateRequest,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ProposalResponse:
    """
    Bid on an open job. One proposal per freelancer per job.

    The job's client is notified.
    """
    proposal = await service.submit_proposal(
        job_id=job_id,
        acting_user_id=account.id,
        cover_letter=request_data.cover_letter,
        bid_amount=request_data.bid_amount,
        delivery_days=request_data.delivery_days,
    )
    return ProposalResponse.model_validate(proposal)


@router.put(
    "/proposals/{proposal_id}/accept",
    response_model=AcceptProposalResponse,
    responses=_TRANSITION_RESPONSES,
    summary="Accept a proposal",
    description="Accept one proposal on an open job: the job moves to in-progress, "
    "every other pending proposal is rejected, and a contract is created.",
)
async def accept_proposal(
    proposal_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> AcceptProposalResponse:
    accepted = await service.accept_proposal(proposal_id, account.id)
    return AcceptProposalResponse.model_validate(accepted)


@router.put(
    "/proposals/{proposal_id}/reject",
    response_model=ProposalResponse,
    responses=_TRANSITION_RESPONSES,
    summary="Reject a proposal",
)
async def reject_proposal(
    proposal_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ProposalResponse:
    return ProposalResponse.model_validate(await service.reject_proposal(proposal_id, account.id))


@router.put(
    "/proposals/{proposal_id}/withdraw",
    response_model=ProposalResponse,
    responses=_TRANSITION_RESPONSES,
    summary="Withdraw a proposal",
)
async def withdraw_proposal(
    proposal_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ProposalResponse:
    return ProposalResponse.model_validate(
        await service.withdraw_proposal(proposal_id, account.id)
    )
