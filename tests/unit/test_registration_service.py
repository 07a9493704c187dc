"""
Unit tests for RegistrationService.

Tests verify staging, code mailing, promotion, the unverified-account
fallback, credential checks, and external identity linking against
in-memory ports.
"""

import asyncio
import time
from collections.abc import Awaitable
from datetime import timedelta

import bcrypt
import pytest

from src.domain.exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    CodeAbsent,
    CodeExpired,
    CodeMismatch,
    Forbidden,
    InvalidEmail,
    InvalidState,
    MailDeliveryFailed,
    NotFound,
)
from src.domain.models import Role, VerificationStatus
from src.domain.otp import OtpEngine
from src.domain.registration import RegistrationService
from src.domain.staging import StagingCache
from tests.fakes import FakeClock, InMemoryAccountRepository, RecordingEmailSender


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def accounts() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def mailer() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def staging(clock: FakeClock) -> StagingCache:
    return StagingCache(otp=OtpEngine(clock=clock))


@pytest.fixture
def service(
    accounts: InMemoryAccountRepository,
    mailer: RecordingEmailSender,
    staging: StagingCache,
    clock: FakeClock,
) -> RegistrationService:
    return RegistrationService(
        accounts=accounts,
        email_sender=mailer,
        staging=staging,
        otp=OtpEngine(clock=clock),
        bcrypt_cost=4,
    )


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


async def _max_loop_stall(work: Awaitable[object]) -> float:
    """Run work while a 5 ms ticker measures the longest gap between ticks."""
    gaps: list[float] = []
    done = asyncio.Event()

    async def ticker() -> None:
        last = time.perf_counter()
        while not done.is_set():
            await asyncio.sleep(0.005)
            now = time.perf_counter()
            gaps.append(now - last)
            last = now

    task = asyncio.create_task(ticker())
    try:
        await work
    finally:
        done.set()
        await task
    return max(gaps)


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_stages_and_mails_code(
        self,
        service: RegistrationService,
        staging: StagingCache,
        mailer: RecordingEmailSender,
        accounts: InMemoryAccountRepository,
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.FREELANCER)

        assert mailer.sent == [("asha@example.com", "Asha", otp.code)]
        assert staging.get("asha@example.com") is not None
        assert accounts.accounts == {}

    @pytest.mark.asyncio
    async def test_email_is_normalized(
        self, service: RegistrationService, staging: StagingCache
    ) -> None:
        await service.register("Asha", "  Asha@Example.COM ", "secret1", Role.CLIENT)
        assert staging.get("asha@example.com") is not None

    @pytest.mark.asyncio
    async def test_password_is_hashed_with_bcrypt(
        self, service: RegistrationService, staging: StagingCache
    ) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        entry = staging.get("asha@example.com")

        assert entry is not None
        assert entry.password_hash != "secret1"
        assert entry.password_hash.startswith("$2b$")
        assert bcrypt.checkpw(b"secret1", entry.password_hash.encode())

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email",
        ["asha@example.net", "asha@example", "not-an-email", "a b@example.com"],
    )
    async def test_rejects_emails_outside_policy(
        self, service: RegistrationService, mailer: RecordingEmailSender, email: str
    ) -> None:
        with pytest.raises(InvalidEmail):
            await service.register("Asha", email, "secret1", Role.CLIENT)
        assert mailer.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email", ["a@example.com", "a@example.in", "a@example.org"])
    async def test_accepts_allowed_tlds(self, service: RegistrationService, email: str) -> None:
        await service.register("Asha", email, "secret1", Role.CLIENT)

    @pytest.mark.asyncio
    async def test_admin_cannot_self_register(self, service: RegistrationService) -> None:
        with pytest.raises(Forbidden):
            await service.register("Root", "root@example.com", "secret1", Role.ADMIN)

    @pytest.mark.asyncio
    async def test_existing_account_leaves_cache_untouched(
        self,
        service: RegistrationService,
        accounts: InMemoryAccountRepository,
        staging: StagingCache,
        mailer: RecordingEmailSender,
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT)

        with pytest.raises(AlreadyExists):
            await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)

        assert len(staging) == 0
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_repeat_registration_replaces_code(
        self, service: RegistrationService, staging: StagingCache
    ) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        second = await service.register("Asha", "asha@example.com", "secret2", Role.CLIENT)

        entry = staging.get("asha@example.com")
        assert entry is not None
        assert entry.otp is second
        assert len(staging) == 1

    @pytest.mark.asyncio
    async def test_first_mail_failure_rolls_back_entry(
        self,
        service: RegistrationService,
        mailer: RecordingEmailSender,
        staging: StagingCache,
    ) -> None:
        mailer.fail = ConnectionError("smtp down")

        with pytest.raises(MailDeliveryFailed):
            await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        assert staging.get("asha@example.com") is None

    @pytest.mark.asyncio
    async def test_mail_failure_on_restage_keeps_new_entry(
        self,
        service: RegistrationService,
        mailer: RecordingEmailSender,
        staging: StagingCache,
    ) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        mailer.fail = ConnectionError("smtp down")

        with pytest.raises(MailDeliveryFailed):
            await service.register("Asha", "asha@example.com", "secret2", Role.CLIENT)
        assert staging.get("asha@example.com") is not None


class TestVerify:
    @pytest.mark.asyncio
    async def test_verify_creates_verified_account(
        self,
        service: RegistrationService,
        accounts: InMemoryAccountRepository,
        staging: StagingCache,
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.FREELANCER)

        account = await service.verify("asha@example.com", otp.code)

        assert account.is_email_verified is True
        assert account.role is Role.FREELANCER
        assert account.email == "asha@example.com"
        assert list(accounts.accounts) == [account.id]
        assert staging.get("asha@example.com") is None

    @pytest.mark.asyncio
    async def test_second_verify_with_same_code_fails(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        await service.verify("asha@example.com", otp.code)

        with pytest.raises(InvalidState):
            await service.verify("asha@example.com", otp.code)
        assert len(accounts.accounts) == 1

    @pytest.mark.asyncio
    async def test_concurrent_verifies_create_one_account(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)

        await asyncio.gather(
            *(service.verify("asha@example.com", otp.code) for _ in range(5)),
            return_exceptions=True,
        )
        assert len(accounts.accounts) == 1

    @pytest.mark.asyncio
    async def test_wrong_code_is_mismatch(self, service: RegistrationService) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        with pytest.raises(CodeMismatch):
            await service.verify("asha@example.com", _wrong(otp.code))

    @pytest.mark.asyncio
    async def test_expired_code(self, service: RegistrationService, clock: FakeClock) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        clock.advance(601)
        with pytest.raises(CodeExpired):
            await service.verify("asha@example.com", otp.code)

    @pytest.mark.asyncio
    async def test_unknown_email(self, service: RegistrationService) -> None:
        with pytest.raises(NotFound):
            await service.verify("nobody@example.com", "123456")

    @pytest.mark.asyncio
    async def test_account_created_meanwhile_drops_entry(
        self, service: RegistrationService, staging: StagingCache
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        # A federated sign-in claims the email before the code is entered
        await service.link_external_identity("google-1", "asha@example.com", "Asha")

        with pytest.raises(AlreadyExists):
            await service.verify("asha@example.com", otp.code)
        assert staging.get("asha@example.com") is None

        with pytest.raises(InvalidState):
            await service.verify("asha@example.com", otp.code)

    @pytest.mark.asyncio
    async def test_transient_store_failure_restores_entry(
        self,
        service: RegistrationService,
        accounts: InMemoryAccountRepository,
        staging: StagingCache,
    ) -> None:
        otp = await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        accounts.fail_create = RuntimeError("connection reset")

        with pytest.raises(RuntimeError):
            await service.verify("asha@example.com", otp.code)
        assert staging.get("asha@example.com") is not None

        accounts.fail_create = None
        account = await service.verify("asha@example.com", otp.code)
        assert account.is_email_verified

    @pytest.mark.asyncio
    async def test_unverified_account_uses_stored_code(
        self, service: RegistrationService, accounts: InMemoryAccountRepository, clock: FakeClock
    ) -> None:
        account = accounts.seed("Asha", "asha@example.com", Role.CLIENT, verified=False)
        await accounts.set_verification_code(account.id, "424242", clock() + timedelta(minutes=10))

        verified = await service.verify("asha@example.com", "424242")

        assert verified.is_email_verified is True
        assert verified.email_otp is None

    @pytest.mark.asyncio
    async def test_unverified_account_without_code_is_absent(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT, verified=False)
        with pytest.raises(CodeAbsent):
            await service.verify("asha@example.com", "424242")


class TestResend:
    @pytest.mark.asyncio
    async def test_resend_pending_issues_new_code(
        self,
        service: RegistrationService,
        mailer: RecordingEmailSender,
        staging: StagingCache,
    ) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)

        otp = await service.resend("asha@example.com")

        assert len(mailer.sent) == 2
        assert mailer.last_code == otp.code
        entry = staging.get("asha@example.com")
        assert entry is not None
        assert entry.otp is otp

    @pytest.mark.asyncio
    async def test_resend_unverified_account_stores_code(
        self,
        service: RegistrationService,
        accounts: InMemoryAccountRepository,
        mailer: RecordingEmailSender,
    ) -> None:
        account = accounts.seed("Asha", "asha@example.com", Role.CLIENT, verified=False)

        otp = await service.resend("asha@example.com")

        assert accounts.accounts[account.id].email_otp == otp.code
        assert mailer.last_code == otp.code
        verified = await service.verify("asha@example.com", otp.code)
        assert verified.is_email_verified is True

    @pytest.mark.asyncio
    async def test_resend_verified_account(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT)
        with pytest.raises(InvalidState):
            await service.resend("asha@example.com")

    @pytest.mark.asyncio
    async def test_resend_unknown(self, service: RegistrationService) -> None:
        with pytest.raises(NotFound):
            await service.resend("nobody@example.com")

    @pytest.mark.asyncio
    async def test_resend_mail_failure(
        self, service: RegistrationService, mailer: RecordingEmailSender
    ) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        mailer.fail = ConnectionError("smtp down")
        with pytest.raises(MailDeliveryFailed):
            await service.resend("asha@example.com")


class TestVerificationStatus:
    @pytest.mark.asyncio
    async def test_pending(self, service: RegistrationService) -> None:
        await service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        status = await service.verification_status("asha@example.com")
        assert status is VerificationStatus.PENDING

    @pytest.mark.asyncio
    async def test_unverified_and_verified(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("A", "a@example.com", Role.CLIENT, verified=False)
        accounts.seed("B", "b@example.com", Role.CLIENT, verified=True)

        assert await service.verification_status("a@example.com") is VerificationStatus.UNVERIFIED
        assert await service.verification_status("B@example.com") is VerificationStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_unknown(self, service: RegistrationService) -> None:
        with pytest.raises(NotFound):
            await service.verification_status("nobody@example.com")


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_valid_credentials(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        seeded = accounts.seed("Asha", "asha@example.com", Role.CLIENT, password="secret1")
        account = await service.authenticate("ASHA@example.com", "secret1")
        assert account.id == seeded.id

    @pytest.mark.asyncio
    async def test_wrong_password(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT, password="secret1")
        with pytest.raises(AuthenticationFailed):
            await service.authenticate("asha@example.com", "wrong")

    @pytest.mark.asyncio
    async def test_unknown_email(self, service: RegistrationService) -> None:
        with pytest.raises(AuthenticationFailed):
            await service.authenticate("nobody@example.com", "secret1")

    @pytest.mark.asyncio
    async def test_unverified_account(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT, password="secret1", verified=False)
        with pytest.raises(AuthenticationFailed, match="verify"):
            await service.authenticate("asha@example.com", "secret1")

    @pytest.mark.asyncio
    async def test_account_without_password(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        accounts.seed("Asha", "asha@example.com", Role.CLIENT)
        with pytest.raises(AuthenticationFailed):
            await service.authenticate("asha@example.com", "anything")


class TestLinkExternalIdentity:
    @pytest.mark.asyncio
    async def test_creates_verified_account(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        account = await service.link_external_identity("ext-1", "Asha@Example.com", "Asha")

        assert account.email == "asha@example.com"
        assert account.external_id == "ext-1"
        assert account.is_email_verified is True
        assert account.role is Role.FREELANCER
        assert account.password_hash is None

    @pytest.mark.asyncio
    async def test_links_existing_account_by_email(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        seeded = accounts.seed("Asha", "asha@example.com", Role.CLIENT)

        account = await service.link_external_identity("ext-1", "asha@example.com", "Asha")

        assert account.id == seeded.id
        assert account.external_id == "ext-1"
        assert len(accounts.accounts) == 1

    @pytest.mark.asyncio
    async def test_finds_by_external_id(
        self, service: RegistrationService, accounts: InMemoryAccountRepository
    ) -> None:
        seeded = accounts.seed("Asha", "old@example.com", Role.CLIENT, external_id="ext-1")

        account = await service.link_external_identity("ext-1", "new@example.com", "Asha")

        assert account.id == seeded.id
        assert len(accounts.accounts) == 1


class TestEventLoopResponsiveness:
    """bcrypt at a production cost must not stall other coroutines."""

    @pytest.fixture
    def slow_service(
        self,
        accounts: InMemoryAccountRepository,
        mailer: RecordingEmailSender,
        staging: StagingCache,
        clock: FakeClock,
    ) -> RegistrationService:
        return RegistrationService(
            accounts=accounts,
            email_sender=mailer,
            staging=staging,
            otp=OtpEngine(clock=clock),
            bcrypt_cost=12,
        )

    @pytest.mark.asyncio
    async def test_register_hashes_off_the_event_loop(
        self, slow_service: RegistrationService
    ) -> None:
        stall = await _max_loop_stall(
            asyncio.gather(
                *(
                    slow_service.register("User", f"user{i}@example.com", "secret1", Role.CLIENT)
                    for i in range(3)
                )
            )
        )
        assert stall < 0.1

    @pytest.mark.asyncio
    async def test_authenticate_checks_off_the_event_loop(
        self, slow_service: RegistrationService
    ) -> None:
        otp = await slow_service.register("Asha", "asha@example.com", "secret1", Role.CLIENT)
        await slow_service.verify("asha@example.com", otp.code)

        stall = await _max_loop_stall(
            asyncio.gather(
                *(slow_service.authenticate("asha@example.com", "secret1") for _ in range(3))
            )
        )
        assert stall < 0.1
