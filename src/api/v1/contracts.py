"""
API v1 contract routes.

- GET /v1/contracts - List own contracts (client or freelancer side)
- GET /v1/contracts/{contract_id} - Read (either party)
- POST /v1/contracts/{contract_id}/milestones - Add a milestone (client)
- POST /v1/contracts/{contract_id}/deliverables - Submit a deliverable (freelancer)
- PUT /v1/contracts/{contract_id}/complete - Complete and release payment (client)
- PUT /v1/contracts/{contract_id}/cancel - Cancel (either party)
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_current_account, get_workflow_service
from src.api.models import (
    ContractResponse,
    DeliverableRequest,
    DeliverableResponse,
    ErrorResponse,
    MilestoneRequest,
    MilestoneResponse,
)
from src.domain.models import Account
from src.domain.workflow import WorkflowService

router = APIRouter(prefix="/contracts", tags=["v1"])

_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Not authorized"},
    404: {"model": ErrorResponse, "description": "Contract not found"},
    409: {"model": ErrorResponse, "description": "Contract is not active"},
}


@router.get(
    "",
    response_model=list[ContractResponse],
    summary="List my contracts",
)
async def list_my_contracts(
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> list[ContractResponse]:
    contracts = await service.list_my_contracts(account.id)
    return [ContractResponse.model_validate(c) for c in contracts]


@router.get(
    "/{contract_id}",
    response_model=ContractResponse,
    responses=_RESPONSES,
    summary="Get a contract",
)
async def get_contract(
    contract_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ContractResponse:
    return ContractResponse.model_validate(await service.get_contract(contract_id, account.id))


@router.post(
    "/{contract_id}/milestones",
    response_model=MilestoneResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_RESPONSES,
    summary="Add a milestone",
)
async def add_milestone(
    contract_id: str,
    request_data: MilestoneRequest,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> MilestoneResponse:
    milestone = await service.add_milestone(
        contract_id,
        account.id,
        title=request_data.title,
        amount=request_data.amount,
        description=request_data.description,
        due_date=request_data.due_date,
    )
    return MilestoneResponse.model_validate(milestone)


@router.post(
    "/{contract_id}/deliverables",
    response_model=DeliverableResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_RESPONSES,
    summary="Submit a deliverable",
)
async def submit_deliverable(
    contract_id: str,
    request_data: DeliverableRequest,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> DeliverableResponse:
    deliverable = await service.submit_deliverable(
        contract_id, account.id, name=request_data.name, url=request_data.url
    )
    return DeliverableResponse.model_validate(deliverable)


@router.put(
    "/{contract_id}/complete",
    response_model=ContractResponse,
    responses={
        **_RESPONSES,
        500: {"model": ErrorResponse, "description": "Account statistics update failed"},
    },
    summary="Complete a contract",
    description="Mark the contract completed and release payment. "
    "Not idempotent: do not retry automatically.",
)
async def complete_contract(
    contract_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ContractResponse:
    return ContractResponse.model_validate(
        await service.complete_contract(contract_id, account.id)
    )


@router.put(
    "/{contract_id}/cancel",
    response_model=ContractResponse,
    responses=_RESPONSES,
    summary="Cancel a contract",
)
async def cancel_contract(
    contract_id: str,
    account: Account = Depends(get_current_account),
    service: WorkflowService = Depends(get_workflow_service),
) -> ContractResponse:
    return ContractResponse.model_validate(await service.cancel_contract(contract_id, account.id))
