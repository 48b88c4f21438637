"""
Mobile-money network simulator.

Stands in for the aggregator (MTN MoMo / Airtel Money collections API)
during development and demos. For each initiated collection it waits for
the simulated USSD push + PIN entry, then confirms the transaction the way
a real network webhook would: SUCCESS with the initiated amount, or FAILED.

In production this port would POST to the aggregator's collect endpoint
and the outcome would arrive later on /webhooks/momo instead.
"""
import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, Set

import structlog

from schoolup_payments.domain.models import Transaction
from schoolup_payments.exceptions import PaymentError

logger = structlog.get_logger(__name__)

ConfirmCallback = Callable[[str, str, Any], Awaitable[Any]]


class MoMoNetworkSimulator:
    """Confirmation port that confirms collections after a delay."""

    def __init__(
        self,
        confirm: ConfirmCallback,
        latency_seconds: float = 5.0,
        success_rate: float = 1.0,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            confirm: Coroutine taking (transaction_id, outcome, amount)
            latency_seconds: Delay before the simulated network answers
            success_rate: Probability that the payer authorizes the collection
            rng: Random source for the outcome
        """
        self.confirm = confirm
        self.latency_seconds = latency_seconds
        self.success_rate = success_rate
        self.rng = rng or random.Random()
        self._tasks: Set[asyncio.Task] = set()

    def request_confirmation(self, transaction: Transaction) -> None:
        """Schedule the simulated network response. Returns immediately."""
        logger.info(
            "momo_ussd_push_simulated",
            transaction_id=transaction.id,
            network=transaction.network.value,
            payer_phone=transaction.payer_phone,
            merchant_account=transaction.merchant_account,
        )
        task = asyncio.get_running_loop().create_task(self._respond(transaction))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _respond(self, transaction: Transaction) -> None:
        await asyncio.sleep(self.latency_seconds)
        outcome = "SUCCESS" if self.rng.random() < self.success_rate else "FAILED"

        try:
            await self.confirm(transaction.id, outcome, transaction.amount)
        except PaymentError as e:
            logger.error(
                "momo_simulated_confirmation_rejected",
                transaction_id=transaction.id,
                outcome=outcome,
                error=str(e),
                error_code=e.error_code,
            )
            return

        logger.info(
            "momo_simulated_confirmation_sent",
            transaction_id=transaction.id,
            outcome=outcome,
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled confirmation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding confirmations (shutdown)."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
