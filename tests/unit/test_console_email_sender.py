"""
Unit tests for ConsoleEmailSender adapter.

Tests verify the console email sender implements EmailSender protocol
and logs one-time codes in the expected format.
"""

import asyncio
import logging

import pytest

from src.adapters.smtp.console import ConsoleEmailSender


class TestConsoleEmailSenderProtocol:
    """Tests for EmailSender protocol compliance."""

    def test_implements_email_sender_protocol(self) -> None:
        """ConsoleEmailSender implements EmailSender protocol."""
        from src.domain.ports import EmailSender

        sender = ConsoleEmailSender()
        assert hasattr(sender, "send_otp_email")
        assert asyncio.iscoroutinefunction(sender.send_otp_email)

        def accepts_email_sender(s: EmailSender) -> None:
            pass

        accepts_email_sender(sender)

    def test_no_explicit_inheritance(self) -> None:
        """ConsoleEmailSender uses structural subtyping, not inheritance."""
        bases = ConsoleEmailSender.__bases__
        assert bases == (object,), f"Expected only object as base, got {bases}"


class TestSendOtpEmail:
    """Tests for send_otp_email method."""

    @pytest.mark.asyncio
    async def test_logs_one_info_record(self, caplog: pytest.LogCaptureFixture) -> None:
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO, logger="src.adapters.smtp.console"):
            await sender.send_otp_email("test@example.com", "Test", "123456")

        records = [r for r in caplog.records if r.name == "src.adapters.smtp.console"]
        assert len(records) == 1
        assert records[0].levelno == logging.INFO

    @pytest.mark.asyncio
    async def test_log_format(self, caplog: pytest.LogCaptureFixture) -> None:
        """Log format: [VERIFICATION] Email: ... Name: ... Code: ..."""
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO):
            await sender.send_otp_email("user@example.com", "Asha", "056789")

        assert "[VERIFICATION]" in caplog.text
        assert "Email: user@example.com" in caplog.text
        assert "Name: Asha" in caplog.text
        assert "Code: 056789" in caplog.text

    @pytest.mark.asyncio
    async def test_returns_none(self) -> None:
        sender = ConsoleEmailSender()
        assert await sender.send_otp_email("test@example.com", "Test", "123456") is None

    @pytest.mark.asyncio
    async def test_concurrent_sends_all_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Concurrent sends each produce one complete record."""
        sender = ConsoleEmailSender()

        with caplog.at_level(logging.INFO, logger="src.adapters.smtp.console"):
            await asyncio.gather(
                *(
                    sender.send_otp_email(f"user{i}@example.com", f"User {i}", f"{i:06d}")
                    for i in range(10)
                )
            )

        records = [r for r in caplog.records if r.name == "src.adapters.smtp.console"]
        assert len(records) == 10
        for record in records:
            assert "[VERIFICATION]" in record.getMessage()
            assert "Code:" in record.getMessage()
