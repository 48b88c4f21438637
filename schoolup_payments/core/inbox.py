"""Portal inbox: listing, sending and read-state for messages."""
import uuid
from typing import List

import structlog

from schoolup_payments.core.clock import Clock
from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import Message
from schoolup_payments.exceptions import InboxAccessError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class Inbox:
    def __init__(self, store: LedgerStore, clock: Clock):
        self.store = store
        self.clock = clock

    async def get_messages(self, user_id: str) -> List[Message]:
        """Messages sent or received by the user, oldest first."""
        return await self.store.list_messages(user_id)

    async def unread_count(self, user_id: str) -> int:
        messages = await self.store.list_messages(user_id)
        return sum(1 for m in messages if m.receiver_id == user_id and not m.is_read)

    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")

        sender = await self.store.get_user(sender_id)
        if sender is None:
            raise NotFoundError(f"User not found: {sender_id}", user_id=sender_id)
        if await self.store.get_user(receiver_id) is None:
            raise NotFoundError(f"User not found: {receiver_id}", user_id=receiver_id)

        message = Message(
            id=f"msg-{uuid.uuid4().hex}",
            sender_id=sender.id,
            sender_name=sender.name,
            receiver_id=receiver_id,
            content=content,
            timestamp=self.clock.now(),
        )
        async with self.store.unit_of_work() as uow:
            uow.save_message(message)

        logger.info("message_sent", message_id=message.id, sender_id=sender.id, receiver_id=receiver_id)
        return message

    async def mark_read(self, message_id: str, reader_id: str) -> Message:
        """
        Mark a message read. Only the receiver may do this.

        Raises:
            NotFoundError: If the message does not exist
            InboxAccessError: If the reader is not the receiver
        """
        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}", message_id=message_id)
        if message.receiver_id != reader_id:
            logger.warning(
                "inbox_mark_read_denied", message_id=message_id, reader_id=reader_id
            )
            raise InboxAccessError(
                "Only the receiver can change a message's read state",
                message_id=message_id,
                reader_id=reader_id,
            )
        if message.is_read:
            return message

        updated = message.mark_read()
        async with self.store.unit_of_work() as uow:
            uow.save_message(updated)
        return updated
