"""
Settlement applier.

Turns a confirmed transaction into a permanent ledger entry. One unit of
work covers:
1. Transaction PENDING → SUCCESS
2. Receipt number with the provider prefix
3. Payment record
4. PaymentSettled event (carrying the payer's receipt message) in the outbox

Either all four are committed or none is. A crash before commit leaves the
transaction PENDING, so the network's retry (or the timeout sweeper)
resolves it later. There is never a SUCCESS transaction without its Payment.

Callers must hold the transaction's lock (see ConfirmationReceiver).
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

import structlog

from schoolup_payments.config import Settings
from schoolup_payments.core.clock import Clock
from schoolup_payments.core.receipts import ReceiptNumberGenerator
from schoolup_payments.core.store import LedgerStore, UnitOfWork
from schoolup_payments.domain.events import OutboxEvent, PaymentSettled, create_event_metadata
from schoolup_payments.domain.models import (
    Message,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Transaction,
    TransactionStatus,
)
from schoolup_payments.exceptions import DuplicateReceiptError, ReceiptGenerationError
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

METHOD_NAMES = {
    PaymentMethod.MTN_MOMO: "MTN MoMo",
    PaymentMethod.AIRTEL_MONEY: "Airtel Money",
    PaymentMethod.CASH: "Cash",
    PaymentMethod.BANK: "Bank Deposit",
}


def compose_receipt_message(
    amount: Decimal, currency: str, student_id: str, method: PaymentMethod, receipt_number: str
) -> str:
    return (
        f"CONFIRMED: We have received {amount} {currency} for student ID: {student_id} "
        f"via {METHOD_NAMES[method]}. Your Receipt Number is {receipt_number}. "
        f"Your balance has been updated."
    )


class SettlementApplier:
    """Applies terminal outcomes to transactions."""

    def __init__(
        self,
        store: LedgerStore,
        receipts: ReceiptNumberGenerator,
        clock: Clock,
        settings: Settings,
    ):
        self.store = store
        self.receipts = receipts
        self.clock = clock
        self.settings = settings

    def _stage_payment(
        self,
        uow: UnitOfWork,
        *,
        student_id: str,
        payer_id: str,
        amount: Decimal,
        method: PaymentMethod,
        receipt_number: str,
        at: datetime,
        transaction_id: Optional[str] = None,
    ) -> Payment:
        """Stage a Payment plus its PaymentSettled outbox event."""
        payment = Payment(
            id=f"PAY-{uuid.uuid4().hex[:16].upper()}",
            transaction_id=transaction_id,
            student_id=student_id,
            amount=amount,
            currency=self.settings.currency,
            method=method,
            status=PaymentStatus.PAID,
            date=at.date(),
            receipt_number=receipt_number,
        )
        uow.add_payment(payment)

        metadata = create_event_metadata(
            event_type="PaymentSettled",
            aggregate_id=transaction_id or payment.id,
            correlation_id=transaction_id,
        )
        message = Message(
            # Message id follows the event id so redelivery is detectable
            id=f"msg-{metadata.event_id}",
            sender_id=self.settings.accounts_office_user_id,
            sender_name=self.settings.accounts_office_name,
            receiver_id=payer_id,
            content=compose_receipt_message(
                payment.amount, payment.currency, student_id, method, receipt_number
            ),
            timestamp=at,
        )
        event = PaymentSettled(
            metadata=metadata,
            payment_id=payment.id,
            transaction_id=transaction_id,
            student_id=student_id,
            payer_id=payer_id,
            amount=payment.amount,
            method=method,
            receipt_number=receipt_number,
            message=message,
        )
        uow.add_outbox_event(OutboxEvent(event=event, created_at=at))
        return payment

    async def settle(self, transaction: Transaction) -> Tuple[Transaction, Payment]:
        """
        Settle a PENDING transaction.

        Retries with a fresh receipt number if another settlement claimed
        the same one between generation and commit.

        Returns:
            Tuple[Transaction, Payment]: The SUCCESS transaction and its payment

        Raises:
            ReceiptGenerationError: If no unique receipt number could be committed
        """
        for attempt in range(1, self.settings.receipt_max_attempts + 1):
            now = self.clock.now()
            receipt_number = await self.receipts.generate(
                transaction.network.receipt_prefix, self.store
            )
            settled = transaction.transition(
                TransactionStatus.SUCCESS, at=now, receipt_number=receipt_number
            )
            try:
                async with self.store.unit_of_work() as uow:
                    uow.save_transaction(settled)
                    payment = self._stage_payment(
                        uow,
                        student_id=transaction.student_id,
                        payer_id=transaction.payer_id,
                        amount=transaction.amount,
                        method=transaction.network.payment_method,
                        receipt_number=receipt_number,
                        at=now,
                        transaction_id=transaction.id,
                    )
            except DuplicateReceiptError:
                logger.warning(
                    "settlement_receipt_conflict",
                    transaction_id=transaction.id,
                    receipt_number=receipt_number,
                    attempt=attempt,
                )
                continue

            metrics.record_settlement(float(payment.amount))
            logger.info(
                "transaction_settled",
                transaction_id=transaction.id,
                payment_id=payment.id,
                receipt_number=receipt_number,
                amount=str(payment.amount),
                student_id=transaction.student_id,
            )
            return settled, payment

        raise ReceiptGenerationError(
            f"Could not commit a unique receipt for {transaction.id}",
            transaction_id=transaction.id,
        )

    async def fail(self, transaction: Transaction, reason: str) -> Transaction:
        """Move a PENDING transaction to FAILED. No payment, no notification."""
        failed = transaction.transition(
            TransactionStatus.FAILED, at=self.clock.now(), failure_reason=reason
        )
        async with self.store.unit_of_work() as uow:
            uow.save_transaction(failed)

        logger.info(
            "transaction_failed",
            transaction_id=transaction.id,
            reason=reason,
            student_id=transaction.student_id,
        )
        return failed

    async def book_manual(
        self,
        student_id: str,
        payer_id: str,
        amount: Decimal,
        method: PaymentMethod,
        receipt_prefix: str,
    ) -> Payment:
        """Book a cash/bank payment entered by the accounts office."""
        for attempt in range(1, self.settings.receipt_max_attempts + 1):
            now = self.clock.now()
            receipt_number = await self.receipts.generate(receipt_prefix, self.store)
            try:
                async with self.store.unit_of_work() as uow:
                    payment = self._stage_payment(
                        uow,
                        student_id=student_id,
                        payer_id=payer_id,
                        amount=amount,
                        method=method,
                        receipt_number=receipt_number,
                        at=now,
                    )
            except DuplicateReceiptError:
                logger.warning(
                    "manual_payment_receipt_conflict",
                    receipt_number=receipt_number,
                    attempt=attempt,
                )
                continue

            metrics.record_manual_payment(method.value, float(payment.amount))
            logger.info(
                "manual_payment_booked",
                payment_id=payment.id,
                receipt_number=receipt_number,
                method=method.value,
                student_id=student_id,
            )
            return payment

        raise ReceiptGenerationError(
            f"Could not commit a unique {receipt_prefix} receipt", student_id=student_id
        )
