"""
Confirmation timeout sweeper.

A payer may never answer the USSD prompt, and a network may never call
back. Transactions still PENDING after the confirmation window are failed
with reason "confirmation_timeout". Each expiry takes the transaction's
lock, so a confirmation racing the sweep either settles first (and the
sweep skips it) or arrives after and is dropped as a duplicate.
"""
import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from schoolup_payments.core.clock import Clock
from schoolup_payments.core.locking import KeyedLock
from schoolup_payments.core.settlement import SettlementApplier
from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import Transaction, TransactionStatus
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

TIMEOUT_REASON = "confirmation_timeout"


class TimeoutSweeper:
    def __init__(
        self,
        store: LedgerStore,
        applier: SettlementApplier,
        locks: KeyedLock,
        clock: Clock,
        timeout_seconds: int,
        interval_seconds: float = 30.0,
    ):
        self.store = store
        self.applier = applier
        self.locks = locks
        self.clock = clock
        self.timeout = timedelta(seconds=timeout_seconds)
        self.interval_seconds = interval_seconds
        self._running = False

    async def expire_stale(self, now: Optional[datetime] = None) -> List[Transaction]:
        """
        Fail every PENDING transaction older than the confirmation window.

        Returns:
            List[Transaction]: The transactions that were failed
        """
        now = now or self.clock.now()
        cutoff = now - self.timeout
        expired: List[Transaction] = []

        for candidate in await self.store.list_transactions(status=TransactionStatus.PENDING):
            if candidate.created_at > cutoff:
                continue

            async with self.locks.hold(candidate.id):
                current = await self.store.get_transaction(candidate.id)
                if current is None or current.status.is_terminal:
                    continue
                expired.append(await self.applier.fail(current, reason=TIMEOUT_REASON))

        metrics.record_expired(len(expired))
        if expired:
            logger.info(
                "pending_transactions_expired",
                count=len(expired),
                transaction_ids=[t.id for t in expired],
                cutoff=cutoff.isoformat(),
            )
        return expired

    async def start(self) -> None:
        """Sweep every interval until stop() is called."""
        self._running = True
        logger.info("timeout_sweeper_started", interval_seconds=self.interval_seconds)

        try:
            while self._running:
                try:
                    await self.expire_stale()
                except Exception as e:
                    logger.error("timeout_sweeper_error", error=str(e))
                await asyncio.sleep(self.interval_seconds)
        finally:
            logger.info("timeout_sweeper_stopped")

    def stop(self) -> None:
        self._running = False
        logger.info("timeout_sweeper_stop_requested")
