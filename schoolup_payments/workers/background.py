"""
Background workers for the payment service.

The timeout sweeper and the notification relay share the service's
in-memory ledger, so they run as tasks inside the serving process rather
than as separate worker processes.
"""
import asyncio
from typing import List, Optional

import structlog

from schoolup_payments.core.service import PaymentService

logger = structlog.get_logger(__name__)


class BackgroundWorkers:
    """Runs the timeout sweeper and notification relay loops for one service."""

    def __init__(self, service: PaymentService):
        self.service = service
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self.service.sweeper.start(), name="timeout-sweeper"),
            loop.create_task(self.service.relay.start(), name="notification-relay"),
        ]
        logger.info("background_workers_started", workers=[t.get_name() for t in self._tasks])

    async def stop(self, timeout_seconds: Optional[float] = 5.0) -> None:
        """Ask both loops to stop, then cancel whatever is still sleeping."""
        self.service.sweeper.stop()
        self.service.relay.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.wait(self._tasks, timeout=timeout_seconds)

        self._tasks = []
        logger.info("background_workers_stopped")
