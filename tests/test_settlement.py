"""
Tests for settlement atomicity and receipt number uniqueness.
"""
import re
from datetime import date
from decimal import Decimal

import pytest

from schoolup_payments.core.confirmation import ConfirmationStatus
from schoolup_payments.core.receipts import ReceiptNumberGenerator
from schoolup_payments.domain.models import Payment, PaymentMethod, TransactionStatus
from schoolup_payments.exceptions import (
    DuplicateReceiptError,
    LedgerIntegrityError,
    ReceiptGenerationError,
)


async def book_existing_receipt(store, receipt_number: str) -> None:
    async with store.unit_of_work() as uow:
        uow.add_payment(
            Payment(
                id="PAY-EXISTING",
                student_id="std-2",
                amount=Decimal("10"),
                method=PaymentMethod.CASH,
                date=date(2026, 1, 5),
                receipt_number=receipt_number,
            )
        )


class TestSettlementAtomicity:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failure_mid_settlement_leaves_no_partial_state(
        self, service, store, monkeypatch
    ) -> None:
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        original_stage = service.applier._stage_payment

        def stage_then_crash(uow, **kwargs):
            original_stage(uow, **kwargs)
            raise RuntimeError("process died before commit")

        monkeypatch.setattr(service.applier, "_stage_payment", stage_then_crash)

        with pytest.raises(RuntimeError):
            await service.confirm(transaction.id, "SUCCESS", "1000")

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.PENDING
        assert await store.list_payments() == []
        assert await store.list_unpublished_events() == []
        assert await service.get_messages("parent-1") == []
        assert len(service.locks) == 0

        # The network retries; this time the commit goes through
        monkeypatch.setattr(service.applier, "_stage_payment", original_stage)
        result = await service.confirm(transaction.id, "SUCCESS", "1000")

        assert result.status is ConfirmationStatus.SETTLED
        assert len(await store.list_payments()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_payment_for_transaction_rejected(self, service, store) -> None:
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        result = await service.confirm(transaction.id, "SUCCESS", "1000")

        with pytest.raises(LedgerIntegrityError):
            async with store.unit_of_work() as uow:
                uow.add_payment(
                    result.payment.model_copy(update={"id": "PAY-2", "receipt_number": "MTN-000001"})
                )

        assert len(await store.list_payments()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_settlement_writes_outbox_event_with_payment(self, service, store) -> None:
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        # Bypass the service so the relay does not run
        async with service.locks.hold(transaction.id):
            settled, payment = await service.applier.settle(transaction)

        events = await store.list_unpublished_events()
        assert len(events) == 1
        event = events[0].event
        assert events[0].event_type == "PaymentSettled"
        assert event.payment_id == payment.id
        assert event.transaction_id == transaction.id
        assert event.payer_id == "parent-1"
        assert event.receipt_number == settled.receipt_number
        assert event.message.id == f"msg-{events[0].id}"
        # Not yet in the inbox until the relay delivers it
        assert await service.get_messages("parent-1") == []


class TestReceiptNumbers:
    @pytest.mark.unit
    def test_candidate_format(self, rng) -> None:
        generator = ReceiptNumberGenerator(rng=rng)

        for prefix in ("MTN", "AIR", "RCP"):
            receipt = generator.candidate(prefix)
            assert re.match(rf"^{prefix}-\d{{6}}$", receipt)
            assert 100000 <= int(receipt.split("-")[1]) <= 999999

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_receipt_is_skipped(self, store, sequence_random) -> None:
        await book_existing_receipt(store, "MTN-111111")
        generator = ReceiptNumberGenerator(rng=sequence_random([111111, 222222]))

        assert await generator.generate("MTN", store) == "MTN-222222"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_suffix_different_prefix_is_unique(self, store, sequence_random) -> None:
        await book_existing_receipt(store, "MTN-111111")
        generator = ReceiptNumberGenerator(rng=sequence_random([111111]))

        assert await generator.generate("AIR", store) == "AIR-111111"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, store, sequence_random) -> None:
        await book_existing_receipt(store, "RCP-111111")
        generator = ReceiptNumberGenerator(rng=sequence_random([111111] * 3), max_attempts=3)

        with pytest.raises(ReceiptGenerationError):
            await generator.generate("RCP", store)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_receipt_rejected_at_commit(self, store) -> None:
        await book_existing_receipt(store, "MTN-111111")

        with pytest.raises(DuplicateReceiptError):
            await book_existing_receipt(store, "MTN-111111")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_settlement_retries_when_receipt_claimed_before_commit(
        self, make_service, store, sequence_random, monkeypatch
    ) -> None:
        """Another writer takes the receipt between the existence check and the commit."""
        await book_existing_receipt(store, "MTN-111111")
        service = make_service(rng=sequence_random([111111, 333333]))
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        async def never_exists(receipt_number):
            return False

        monkeypatch.setattr(store, "receipt_exists", never_exists)

        result = await service.confirm(transaction.id, "SUCCESS", "1000")

        assert result.status is ConfirmationStatus.SETTLED
        assert result.payment.receipt_number == "MTN-333333"
        assert result.transaction.receipt_number == "MTN-333333"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_exhausted_receipts_leave_transaction_pending(
        self, make_service, store, sequence_random
    ) -> None:
        await book_existing_receipt(store, "MTN-111111")
        service = make_service(rng=sequence_random([111111] * 2), receipt_max_attempts=2)
        transaction = await service.initiate("std-1", "1000", "+260971000003", "MTN")

        with pytest.raises(ReceiptGenerationError):
            await service.confirm(transaction.id, "SUCCESS", "1000")

        assert (await store.get_transaction(transaction.id)).status is TransactionStatus.PENDING
        assert len(await store.list_payments()) == 1
