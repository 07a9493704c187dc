"""
Registration domain service - OTP-gated account creation.

This module contains the business logic for creating accounts behind
email verification, plus the re-verification path for accounts that
already exist but have not confirmed their email.

Registration Flow
=================

register(email, ...)
    Account exists             -> AlreadyExists (cache untouched)
    Otherwise                  -> stage entry, mail code
                                  first send fails -> entry rolled back

resend(email)
    Pending entry              -> new code on the same entry, mail it
    Unverified account         -> new code stored on the account, mail it
    Verified account           -> InvalidState
    Neither                    -> NotFound

verify(email, code)
    Pending entry              -> validate, persist account (verified)
    Unverified account         -> validate stored code, mark verified
    Verified account           -> InvalidState
    Neither                    -> NotFound

Staged entries are never durable: a restart drops unconfirmed
registrations.
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import bcrypt

from .exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    Forbidden,
    InvalidEmail,
    InvalidState,
    MailDeliveryFailed,
    NotFound,
)
from .models import Account, NewAccount, OneTimeCode, PendingRegistration, Role, VerificationStatus
from .otp import OtpEngine
from .ports import AccountRepository, EmailSender
from .staging import StagingCache

logger = logging.getLogger(__name__)

# Pre-computed bcrypt hash so authentication runs bcrypt even for unknown emails.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


@dataclass
class RegistrationService:
    """
    Domain service for account registration and verification.

    Orchestrates email normalization, password hashing, staging, code
    mailing, and promotion of staged entries to persisted accounts.
    """

    accounts: AccountRepository
    email_sender: EmailSender
    staging: StagingCache
    otp: OtpEngine
    allowed_email_tlds: Sequence[str] = ("com", "in", "org")
    bcrypt_cost: int = 10
    _email_pattern: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        tlds = "|".join(re.escape(tld) for tld in self.allowed_email_tlds)
        self._email_pattern = re.compile(rf"^[^\s@]+@[^\s@]+\.({tlds})$")

    async def register(self, name: str, email: str, password: str, role: Role) -> OneTimeCode:
        """
        Stage a registration and mail a verification code.

        Args:
            name: Display name
            email: Email address (will be normalized)
            password: Plaintext password (hashed before staging)
            role: Client or freelancer

        Returns:
            The issued code (callers expose only its expiry)

        Raises:
            InvalidEmail: If the email fails the registration policy
            AlreadyExists: If an account already uses the email
            MailDeliveryFailed: If the code could not be mailed
        """
        normalized_email = self._normalize_email(email)
        if not self._email_pattern.match(normalized_email):
            allowed = ", ".join(f".{tld}" for tld in self.allowed_email_tlds)
            raise InvalidEmail(f"Please provide a valid email address ({allowed})")

        if role is Role.ADMIN:
            raise Forbidden("Admin accounts cannot self-register")

        if await self.accounts.get_by_email(normalized_email) is not None:
            raise AlreadyExists(normalized_email)

        password_hash = await self._hash_password(password)
        entry, replaced = self.staging.stage(normalized_email, name, password_hash, role)
        logger.info(
            "Staged registration for %s (replaced=%s, expires_at=%s)",
            normalized_email,
            replaced,
            entry.otp.expires_at.isoformat(),
        )

        try:
            await self.email_sender.send_otp_email(normalized_email, name, entry.otp.code)
        except Exception as exc:  # noqa: BLE001
            logger.error("Verification email failed for %s: %s", normalized_email, exc)
            if not replaced:
                self.staging.discard(normalized_email, expected=entry)
            raise MailDeliveryFailed("Failed to send verification email. Please try again.") from exc

        return entry.otp

    async def resend(self, email: str) -> OneTimeCode:
        """
        Issue a new code for a pending registration or unverified account.

        Raises:
            NotFound: If nothing is registered under the email
            InvalidState: If the account is already verified
            MailDeliveryFailed: If the code could not be mailed
        """
        normalized_email = self._normalize_email(email)

        if self.staging.get(normalized_email) is not None:
            entry = self.staging.reissue(normalized_email)
            await self._send(normalized_email, entry.name, entry.otp.code)
            logger.info("Resent code to pending registration: %s", normalized_email)
            return entry.otp

        account = await self.accounts.get_by_email(normalized_email)
        if account is None:
            raise NotFound("No registration found for this email. Please register first.")
        if account.is_email_verified:
            raise InvalidState("Email is already verified")

        otp = self.otp.generate(normalized_email)
        await self.accounts.set_verification_code(account.id, otp.code, otp.expires_at)
        await self._send(normalized_email, account.name, otp.code)
        logger.info("Resent code to unverified account: %s", normalized_email)
        return otp

    async def verify(self, email: str, code: str) -> Account:
        """
        Verify a code and return the now-verified account.

        Raises:
            NotFound: If nothing is registered under the email
            InvalidState: If the account is already verified
            CodeAbsent, CodeExpired, CodeMismatch: On code failure
            AlreadyExists: If the account could not be created due to a duplicate email
        """
        normalized_email = self._normalize_email(email)

        if self.staging.get(normalized_email) is not None:
            return await self.staging.promote(normalized_email, code, self._persist_pending)

        account = await self.accounts.get_by_email(normalized_email)
        if account is None:
            raise NotFound("No registration found for this email. Please register first.")
        if account.is_email_verified:
            raise InvalidState("Email is already verified")

        self.otp.validate(account.email_otp, code, account.email_otp_expires_at)
        await self.accounts.mark_verified(account.id)
        logger.info("Account re-verified: %s", normalized_email)
        return await self._reload(account.id)

    async def verification_status(self, email: str) -> VerificationStatus:
        """
        Report where an email stands in the verification flow.

        Raises:
            NotFound: If the email is neither staged nor registered
        """
        normalized_email = self._normalize_email(email)
        account = await self.accounts.get_by_email(normalized_email)
        if account is not None:
            if account.is_email_verified:
                return VerificationStatus.VERIFIED
            return VerificationStatus.UNVERIFIED
        if self.staging.get(normalized_email) is not None:
            return VerificationStatus.PENDING
        raise NotFound("User not found")

    async def authenticate(self, email: str, password: str) -> Account:
        """
        Check credentials against a verified account.

        bcrypt always runs, against a dummy hash when the account is
        missing or has no password, so response time does not reveal
        whether the email exists. It runs in a worker thread so other
        requests keep being served meanwhile.

        Raises:
            AuthenticationFailed: On unknown email, wrong password, or unverified email
        """
        account = await self.accounts.get_by_email(self._normalize_email(email))
        stored_hash = _DUMMY_BCRYPT_HASH
        if account is not None and account.password_hash:
            stored_hash = account.password_hash

        password_valid = await asyncio.to_thread(
            bcrypt.checkpw, password.encode(), stored_hash.encode()
        )

        if account is None or not account.password_hash or not password_valid:
            raise AuthenticationFailed("Invalid credentials")
        if not account.is_email_verified:
            raise AuthenticationFailed("Please verify your email before logging in")
        return account

    async def link_external_identity(
        self, external_id: str, email: str, name: str, role: Role = Role.FREELANCER
    ) -> Account:
        """
        Resolve a federated profile to an account.

        Matches by email first (linking the external id when missing),
        then by external id; otherwise creates a verified account.
        """
        normalized_email = self._normalize_email(email)

        account = await self.accounts.get_by_email(normalized_email)
        if account is not None:
            if account.external_id is None:
                await self.accounts.link_external_id(account.id, external_id)
                account = await self._reload(account.id)
            return account

        account = await self.accounts.get_by_external_id(external_id)
        if account is not None:
            return account

        account = await self.accounts.create(
            NewAccount(
                name=name,
                email=normalized_email,
                role=role,
                external_id=external_id,
                is_email_verified=True,
            )
        )
        logger.info("Created account from external identity: %s", normalized_email)
        return account

    async def _persist_pending(self, entry: PendingRegistration) -> Account:
        return await self.accounts.create(
            NewAccount(
                name=entry.name,
                email=entry.email,
                role=entry.role,
                password_hash=entry.password_hash,
                is_email_verified=True,
            )
        )

    async def _reload(self, account_id: str) -> Account:
        account = await self.accounts.get(account_id)
        if account is None:
            raise NotFound("Account not found")
        return account

    async def _send(self, email: str, name: str, code: str) -> None:
        try:
            await self.email_sender.send_otp_email(email, name, code)
        except Exception as exc:  # noqa: BLE001
            logger.error("Verification email failed for %s: %s", email, exc)
            raise MailDeliveryFailed("Failed to send OTP email. Please try again.") from exc

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    async def _hash_password(self, password: str) -> str:
        """Hash password using bcrypt with the configured cost factor, off the event loop."""
        salt = bcrypt.gensalt(rounds=self.bcrypt_cost)
        hashed = await asyncio.to_thread(bcrypt.hashpw, password.encode(), salt)
        return hashed.decode()
