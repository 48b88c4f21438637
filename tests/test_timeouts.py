"""
Tests for the confirmation timeout sweeper.
"""
import asyncio

import pytest

from schoolup_payments.core.confirmation import ConfirmationStatus
from schoolup_payments.core.timeouts import TIMEOUT_REASON
from schoolup_payments.domain.models import TransactionStatus


class TestTimeoutSweeper:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stale_pending_transactions_fail(self, service, store, clock) -> None:
        stale = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        clock.advance(200)
        fresh = await service.initiate("std-1", "500", "+260971000003", "MTN")
        clock.advance(100)

        expired = await service.expire_stale()

        assert [t.id for t in expired] == [stale.id]
        assert expired[0].status is TransactionStatus.FAILED
        assert expired[0].failure_reason == TIMEOUT_REASON
        assert (await store.get_transaction(fresh.id)).status is TransactionStatus.PENDING
        assert await store.list_payments() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_terminal_transactions_untouched(self, service, store, clock) -> None:
        settled = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        await service.confirm(settled.id, "SUCCESS", "1000")
        declined = await service.initiate("std-1", "1000", "+260971000003", "AIRTEL")
        await service.confirm(declined.id, "FAILED", "1000")
        clock.advance(3600)

        assert await service.expire_stale() == []
        assert (await store.get_transaction(settled.id)).status is TransactionStatus.SUCCESS
        assert (await store.get_transaction(declined.id)).failure_reason == "declined_by_network"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_late_success_after_timeout_is_duplicate(self, service, store, clock) -> None:
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        clock.advance(301)
        await service.expire_stale()

        result = await service.confirm(transaction.id, "SUCCESS", "1000")

        assert result.status is ConfirmationStatus.DUPLICATE
        assert result.transaction.status is TransactionStatus.FAILED
        assert await store.list_payments() == []
        assert await service.get_messages("parent-1") == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sweeper_loop_runs_until_stopped(self, make_service, store, clock) -> None:
        service = make_service(sweep_interval_seconds=0.01)
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        clock.advance(301)

        task = asyncio.create_task(service.sweeper.start())
        for _ in range(100):
            if (await store.get_transaction(transaction.id)).status is TransactionStatus.FAILED:
                break
            await asyncio.sleep(0.01)
        service.sweeper.stop()
        await asyncio.wait_for(task, timeout=1)

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.FAILED
