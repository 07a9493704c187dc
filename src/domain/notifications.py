"""
Notification fanout - Durable record first, best-effort live push second.

notify() persists the notification and only then looks up the
recipient's live connection. Persistence failures propagate to the
caller; push failures are logged and swallowed, since the stored record
is what the recipient sees on next fetch or reconnect.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal

from .connections import ConnectionRegistry
from .exceptions import DeliveryFailed, Forbidden, NotFound
from .models import Notification, NotificationType
from .ports import NotificationRepository, Transport

logger = logging.getLogger(__name__)


@dataclass
class NotificationService:
    """Creates notifications and relays them to connected recipients."""

    repository: NotificationRepository
    registry: ConnectionRegistry
    transport: Transport

    async def notify(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        link: str | None = None,
        related_id: str | None = None,
    ) -> Notification:
        """
        Persist a notification and attempt live delivery.

        Returns:
            The persisted notification, whether or not the push succeeded
        """
        notification = await self.repository.create(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            link=link,
            related_id=related_id,
        )
        await self._push(notification)
        return notification

    async def _push(self, notification: Notification) -> None:
        handle = self.registry.lookup(notification.recipient_id)
        if handle is None:
            return

        frame = {"type": "notification", "data": notification.to_payload()}
        try:
            await self.transport.send_to(handle, frame)
        except DeliveryFailed as exc:
            logger.warning(
                "Live delivery failed recipient=%s notification=%s: %s",
                notification.recipient_id,
                notification.id,
                exc,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Live delivery failed recipient=%s notification=%s: %s",
                notification.recipient_id,
                notification.id,
                exc,
                exc_info=True,
            )

    async def notify_new_proposal(
        self, client_id: str, freelancer_name: str, job_title: str, job_id: str, proposal_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=client_id,
            type=NotificationType.PROPOSAL,
            title="New Proposal Received",
            message=f'{freelancer_name} submitted a proposal for "{job_title}"',
            link=f"/jobs/{job_id}/proposals",
            related_id=proposal_id,
        )

    async def notify_new_message(
        self, receiver_id: str, sender_name: str, conversation_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=receiver_id,
            type=NotificationType.MESSAGE,
            title="New Message",
            message=f"{sender_name} sent you a message",
            link=f"/messages?conversation={conversation_id}",
            related_id=conversation_id,
        )

    async def notify_deliverable_submitted(
        self,
        client_id: str,
        freelancer_name: str,
        job_title: str,
        contract_id: str,
        deliverable_id: str,
    ) -> Notification:
        return await self.notify(
            recipient_id=client_id,
            type=NotificationType.CONTRACT,
            title="Deliverable Submitted",
            message=f'{freelancer_name} submitted a deliverable for "{job_title}"',
            link=f"/contracts/{contract_id}",
            related_id=deliverable_id,
        )

    async def notify_proposal_accepted(
        self, freelancer_id: str, client_name: str, job_title: str, contract_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=freelancer_id,
            type=NotificationType.CONTRACT,
            title="Proposal Accepted!",
            message=f'{client_name} accepted your proposal for "{job_title}"',
            link=f"/contracts/{contract_id}",
            related_id=contract_id,
        )

    async def notify_contract_completed(
        self, freelancer_id: str, job_title: str, contract_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=freelancer_id,
            type=NotificationType.CONTRACT,
            title="Contract Completed",
            message=f'Contract "{job_title}" has been marked as completed',
            link=f"/contracts/{contract_id}",
            related_id=contract_id,
        )

    async def notify_payment_received(
        self, user_id: str, amount: Decimal, job_title: str, contract_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=user_id,
            type=NotificationType.PAYMENT,
            title="Payment Received",
            message=f'You received ${amount} for "{job_title}"',
            link=f"/contracts/{contract_id}",
            related_id=contract_id,
        )

    async def notify_new_review(
        self, user_id: str, reviewer_name: str, rating: int, contract_id: str
    ) -> Notification:
        return await self.notify(
            recipient_id=user_id,
            type=NotificationType.REVIEW,
            title="New Review",
            message=f"{reviewer_name} left you a {rating}-star review",
            link="/dashboard",
            related_id=contract_id,
        )

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        return await self.repository.list_for_recipient(user_id, limit)

    async def unread_count(self, user_id: str) -> int:
        return await self.repository.count_unread(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        """
        Flag a notification as read. The flag never reverts.

        Raises:
            NotFound: If the notification does not exist
            Forbidden: If it belongs to another user
        """
        notification = await self.repository.get(notification_id)
        if notification is None:
            raise NotFound("Notification not found")
        if notification.recipient_id != user_id:
            raise Forbidden("Not authorized")
        if not notification.read:
            await self.repository.mark_read(notification_id)
        return replace(notification, read=True)

    async def mark_all_read(self, user_id: str) -> int:
        return await self.repository.mark_all_read(user_id)
