"""
Notification relay (transactional outbox consumer).

Settlement writes PaymentSettled events to the outbox in the same unit of
work as the Payment. The relay drains the outbox and delivers each event's
message to the payer's inbox. Delivery and "mark published" are committed
together, and the message id is derived from the event id, so an event
is delivered to the inbox exactly once even if the relay runs twice.
"""
import asyncio
from typing import Awaitable, Callable, Dict

import structlog

from schoolup_payments.core.store import LedgerStore, UnitOfWork
from schoolup_payments.domain.events import OutboxEvent
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EventHandler = Callable[[UnitOfWork, OutboxEvent], Awaitable[None]]


class NotificationRelay:
    """
    Delivers outbox events to portal inboxes.

    Handlers are registered per event type and stage their writes on the
    unit of work they are given.
    """

    def __init__(
        self,
        store: LedgerStore,
        batch_size: int = 100,
        poll_interval_seconds: float = 1.0,
    ):
        self.store = store
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self.event_handlers: Dict[str, EventHandler] = {}
        self._running = False

        self.register_handler("PaymentSettled", self.deliver_receipt)

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        self.event_handlers[event_type] = handler
        logger.debug("relay_handler_registered", event_type=event_type)

    async def deliver_receipt(self, uow: UnitOfWork, outbox_event: OutboxEvent) -> None:
        message = outbox_event.event.message
        if await self.store.get_message(message.id) is not None:
            logger.info("relay_message_already_delivered", message_id=message.id)
            return
        uow.save_message(message)

    async def _dispatch(self, outbox_event: OutboxEvent) -> bool:
        """
        Deliver one event.

        Returns:
            bool: True if delivered (or already delivered), False otherwise
        """
        handler = self.event_handlers.get(outbox_event.event_type)
        if handler is None:
            logger.warning(
                "relay_no_handler",
                event_id=outbox_event.id,
                event_type=outbox_event.event_type,
            )
            return False

        try:
            async with self.store.unit_of_work() as uow:
                await handler(uow, outbox_event)
                uow.mark_published(outbox_event.id)
        except Exception as e:
            logger.error(
                "relay_delivery_failed",
                event_id=outbox_event.id,
                event_type=outbox_event.event_type,
                error=str(e),
            )
            return False

        metrics.record_notification_delivered(outbox_event.event_type)
        logger.info(
            "relay_event_delivered",
            event_id=outbox_event.id,
            event_type=outbox_event.event_type,
            aggregate_id=outbox_event.event.metadata.aggregate_id,
        )
        return True

    async def dispatch_pending(self) -> int:
        """
        Deliver a batch of undelivered events.

        Returns:
            int: Number of events delivered
        """
        events = await self.store.list_unpublished_events(limit=self.batch_size)
        if not events:
            metrics.set_outbox_queue_depth(0)
            return 0

        delivered = 0
        for outbox_event in events:
            if await self._dispatch(outbox_event):
                delivered += 1

        remaining = await self.store.list_unpublished_events(limit=self.batch_size)
        metrics.set_outbox_queue_depth(len(remaining))

        logger.info(
            "relay_batch_processed",
            total=len(events),
            delivered=delivered,
            failed=len(events) - delivered,
        )
        return delivered

    async def start(self) -> None:
        """Poll the outbox until stop() is called."""
        self._running = True
        logger.info("notification_relay_started")

        try:
            while self._running:
                try:
                    delivered = await self.dispatch_pending()
                    await asyncio.sleep(0.1 if delivered else self.poll_interval_seconds)
                except Exception as e:
                    logger.error("notification_relay_error", error=str(e))
                    await asyncio.sleep(self.poll_interval_seconds)
        finally:
            logger.info("notification_relay_stopped")

    def stop(self) -> None:
        self._running = False
        logger.info("notification_relay_stop_requested")
