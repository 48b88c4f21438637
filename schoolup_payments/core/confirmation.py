"""
Confirmation receiver.

The mobile network reports the outcome of a collection asynchronously and
at-least-once. confirm() is therefore idempotent per transaction id:

- the first terminal outcome wins
- every later confirmation for the same id is a no-op (DUPLICATE)
- concurrent confirmations serialize on the transaction's lock, and the
  loser observes the terminal state left by the winner
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

import structlog

from schoolup_payments.core.locking import KeyedLock
from schoolup_payments.core.settlement import SettlementApplier
from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import Payment, Transaction
from schoolup_payments.exceptions import (
    AmountMismatchError,
    UnknownTransactionError,
    ValidationError,
)
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class ConfirmationOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: Union[str, "ConfirmationOutcome"]) -> "ConfirmationOutcome":
        """Accept aggregator spellings (SUCCESSFUL, success, failed...)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().upper()
        if normalized in ("SUCCESS", "SUCCESSFUL", "SUCCEEDED"):
            return cls.SUCCESS
        if normalized in ("FAILED", "FAILURE", "DECLINED", "REJECTED"):
            return cls.FAILED
        raise ValidationError(f"Unknown confirmation status: {value!r}")


class ConfirmationStatus(str, Enum):
    SETTLED = "settled"
    FAILED = "failed"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class ConfirmationResult:
    transaction_id: str
    status: ConfirmationStatus
    transaction: Transaction
    payment: Optional[Payment] = None


class ConfirmationReceiver:
    """Applies network confirmations to PENDING transactions exactly once."""

    def __init__(self, store: LedgerStore, applier: SettlementApplier, locks: KeyedLock):
        self.store = store
        self.applier = applier
        self.locks = locks

    async def confirm(
        self,
        transaction_id: str,
        outcome: Union[str, ConfirmationOutcome],
        amount: Union[Decimal, int, float, str],
    ) -> ConfirmationResult:
        """
        Apply a confirmation.

        Args:
            transaction_id: Id returned by initiate()
            outcome: SUCCESS or FAILED
            amount: Amount the network collected

        Returns:
            ConfirmationResult: settled, failed, or duplicate

        Raises:
            UnknownTransactionError: If the id was never issued
            AmountMismatchError: If a SUCCESS amount differs from the initiated
                amount (the transaction is FAILED before raising)
        """
        outcome = ConfirmationOutcome.parse(outcome)
        try:
            confirmed_amount = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid confirmation amount: {amount!r}")
        if not confirmed_amount.is_finite():
            raise ValidationError(f"Invalid confirmation amount: {amount!r}")

        async with self.locks.hold(transaction_id):
            transaction = await self.store.get_transaction(transaction_id)

            if transaction is None:
                metrics.record_confirmation("unknown_transaction")
                logger.warning(
                    "confirmation_unknown_transaction",
                    transaction_id=transaction_id,
                    outcome=outcome.value,
                )
                raise UnknownTransactionError(transaction_id)

            if transaction.status.is_terminal:
                metrics.record_confirmation("duplicate")
                logger.info(
                    "confirmation_duplicate_dropped",
                    transaction_id=transaction_id,
                    outcome=outcome.value,
                    current_status=transaction.status.value,
                )
                payment = await self.store.get_payment_for_transaction(transaction_id)
                return ConfirmationResult(
                    transaction_id, ConfirmationStatus.DUPLICATE, transaction, payment
                )

            if outcome is ConfirmationOutcome.FAILED:
                failed = await self.applier.fail(transaction, reason="declined_by_network")
                metrics.record_confirmation("failed")
                return ConfirmationResult(transaction_id, ConfirmationStatus.FAILED, failed)

            # Exact comparison: sub-ngwee precision never rounds into a match
            if confirmed_amount != transaction.amount:
                await self.applier.fail(transaction, reason="amount_mismatch")
                metrics.record_confirmation("amount_mismatch")
                logger.error(
                    "confirmation_amount_mismatch",
                    transaction_id=transaction_id,
                    expected=str(transaction.amount),
                    received=str(confirmed_amount),
                )
                raise AmountMismatchError(transaction_id, transaction.amount, confirmed_amount)

            settled, payment = await self.applier.settle(transaction)
            metrics.record_confirmation("settled")
            return ConfirmationResult(transaction_id, ConfirmationStatus.SETTLED, settled, payment)
