"""
API v1 registration routes.

- POST /v1/auth/register - Stage a registration and mail a code
- POST /v1/auth/resend - Issue a fresh code
- POST /v1/auth/verify - Verify a code and create/confirm the account
- GET  /v1/auth/verification-status/{email} - Where an email stands
- GET  /v1/auth/me - The authenticated account
"""

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_current_account, get_registration_service
from src.api.models import (
    AccountResponse,
    ErrorResponse,
    RegisterRequest,
    RegisterResponse,
    ResendRequest,
    VerificationStatusResponse,
    VerifyRequest,
    VerifyResponse,
)
from src.domain.models import Account, OneTimeCode, Role
from src.domain.otp import utcnow
from src.domain.registration import RegistrationService

router = APIRouter(prefix="/auth", tags=["v1"])


def _expires_in(otp: OneTimeCode) -> int:
    return max(0, int((otp.expires_at - utcnow()).total_seconds()))


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Email not accepted"},
        409: {"model": ErrorResponse, "description": "Account already exists"},
        502: {"model": ErrorResponse, "description": "Verification email could not be sent"},
    },
    summary="Register a new user",
    description="Submit profile data to begin registration. "
    "A 6-digit verification code will be sent to the provided email. "
    "Nothing is persisted until the code is verified.",
)
async def register(
    request_data: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse:
    """
    Stage a registration and send a verification code.

    - **name**: Display name
    - **email**: Valid email address to register
    - **password**: Password (minimum 6 characters)
    - **role**: `freelancer` or `client`
    """
    otp = await service.register(
        name=request_data.name,
        email=request_data.email,
        password=request_data.password,
        role=Role(request_data.role),
    )
    return RegisterResponse(
        message="Verification code sent",
        email=otp.subject,
        expires_in_seconds=_expires_in(otp),
    )


@router.post(
    "/resend",
    response_model=RegisterResponse,
    responses={
        404: {"model": ErrorResponse, "description": "No registration for this email"},
        409: {"model": ErrorResponse, "description": "Email already verified"},
        502: {"model": ErrorResponse, "description": "Verification email could not be sent"},
    },
    summary="Resend the verification code",
)
async def resend(
    request_data: ResendRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegisterResponse:
    otp = await service.resend(request_data.email)
    return RegisterResponse(
        message="Verification code resent",
        email=otp.subject,
        expires_in_seconds=_expires_in(otp),
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Code absent, expired, or mismatched"},
        404: {"model": ErrorResponse, "description": "No registration for this email"},
        409: {"model": ErrorResponse, "description": "Email already verified"},
    },
    summary="Verify email with a one-time code",
)
async def verify(
    request_data: VerifyRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> VerifyResponse:
    """
    Verify the code received by email.

    On a pending registration this creates the account. Failure reasons
    (`code_expired`, `code_mismatch`, `code_absent`) are returned in the
    `reason` field.
    """
    account = await service.verify(request_data.email, request_data.code)
    return VerifyResponse(
        message="Email verified successfully",
        account=AccountResponse.model_validate(account),
    )


@router.get(
    "/verification-status/{email}",
    response_model=VerificationStatusResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown email"}},
    summary="Check verification status",
)
async def verification_status(
    email: str,
    service: RegistrationService = Depends(get_registration_service),
) -> VerificationStatusResponse:
    result = await service.verification_status(email)
    return VerificationStatusResponse(email=email.strip().lower(), status=result)


@router.get(
    "/me",
    response_model=AccountResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
    summary="Get the authenticated account",
)
async def me(account: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse.model_validate(account)
