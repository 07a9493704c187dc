"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging one-time codes for demo purposes.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints one-time codes to the log.
    """

    async def send_otp_email(self, email: str, name: str, code: str) -> None:
        """
        Log the one-time code (simulates email delivery).

        In production, this would be replaced with an SMTP adapter.
        The code is logged at INFO level to be visible in container logs.

        Args:
            email: Recipient email address (normalized by domain layer)
            name: Recipient display name
            code: Numeric one-time code
        """
        logger.info("[VERIFICATION] Email: %s Name: %s Code: %s", email, name, code)
