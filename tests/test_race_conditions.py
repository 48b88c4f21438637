"""
Race condition tests for concurrent confirmations.

The network delivers confirmations at least once and may deliver them in
parallel; the ledger must still credit each transaction exactly once.
"""
import asyncio
from decimal import Decimal

import pytest

from schoolup_payments.core.confirmation import ConfirmationStatus
from schoolup_payments.domain.models import TransactionStatus


class TestRaceConditions:
    """Test suite for race condition scenarios."""

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_confirmations_settle_once(self, service, store) -> None:
        """
        Ten concurrent SUCCESS deliveries for one transaction.

        Exactly one settles; the rest observe the terminal state.
        """
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        results = await asyncio.gather(
            *[service.confirm(transaction.id, "SUCCESS", "1000") for _ in range(10)]
        )

        statuses = [r.status for r in results]
        assert statuses.count(ConfirmationStatus.SETTLED) == 1
        assert statuses.count(ConfirmationStatus.DUPLICATE) == 9

        payments = await store.list_payments(student_id="std-1")
        assert len(payments) == 1
        assert {r.payment.id for r in results} == {payments[0].id}
        assert len(await service.get_messages("parent-1")) == 1
        assert (await service.outstanding_balance("std-1")).balance == Decimal("1500.00")
        assert len(service.locks) == 0

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_success_and_failure(self, service, store) -> None:
        """First outcome through the lock wins; the other is a duplicate."""
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        results = await asyncio.gather(
            service.confirm(transaction.id, "SUCCESS", "1000"),
            service.confirm(transaction.id, "FAILED", "1000"),
        )

        assert results[0].status is ConfirmationStatus.SETTLED
        assert results[1].status is ConfirmationStatus.DUPLICATE
        stored = await store.get_transaction(transaction.id)
        assert stored.status is TransactionStatus.SUCCESS
        assert len(await store.list_payments()) == 1

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_independent_transactions_all_settle(self, service, store) -> None:
        """Different transactions do not block or affect each other."""
        transactions = [
            await service.initiate("std-1", "100", "+260971000003", "MTN") for _ in range(5)
        ] + [await service.initiate("std-2", "200", "+260971000003", "AIRTEL") for _ in range(5)]

        results = await asyncio.gather(
            *[service.confirm(t.id, "SUCCESS", t.amount) for t in transactions]
        )

        assert all(r.status is ConfirmationStatus.SETTLED for r in results)
        payments = await store.list_payments()
        assert len(payments) == 10
        assert len({p.receipt_number for p in payments}) == 10
        assert (await service.outstanding_balance("std-1")).balance == Decimal("2000.00")
        assert (await service.outstanding_balance("std-2")).balance == Decimal("800.00")

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_timeout_racing_late_confirmation(self, service, store, clock) -> None:
        """Sweep and confirmation serialize on the lock; exactly one terminal outcome."""
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        clock.advance(301)

        expired, result = await asyncio.gather(
            service.expire_stale(),
            service.confirm(transaction.id, "SUCCESS", "1000"),
        )

        stored = await store.get_transaction(transaction.id)
        payments = await store.list_payments()
        if stored.status is TransactionStatus.SUCCESS:
            assert expired == []
            assert result.status is ConfirmationStatus.SETTLED
            assert len(payments) == 1
        else:
            assert [t.id for t in expired] == [transaction.id]
            assert result.status is ConfirmationStatus.DUPLICATE
            assert payments == []
