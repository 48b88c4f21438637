"""
Transaction initiator.

Initiation is a local commit of intent: the PENDING transaction is
recorded before the network is asked to push a USSD prompt to the payer.
Nothing is booked into the ledger until a confirmation arrives.
"""
import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import structlog

from schoolup_payments.config import Settings
from schoolup_payments.core.clock import Clock
from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import Network, Transaction, quantize_amount
from schoolup_payments.exceptions import NotFoundError, ValidationError
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Loose MSISDN check: optional +, 9-15 digits (0971234567, +260971234567)
PHONE_PATTERN = re.compile(r"^\+?\d{9,15}$")
PHONE_SEPARATORS = re.compile(r"[\s\-().]")


class TransactionInitiator:
    """Validates collection requests and records PENDING transactions."""

    def __init__(self, store: LedgerStore, clock: Clock, settings: Settings):
        self.store = store
        self.clock = clock
        self.settings = settings

    @staticmethod
    def normalize_phone(payer_phone: str) -> str:
        """
        Strip separators and validate the payer's number.

        Raises:
            ValidationError: If the number does not look like a mobile number
        """
        phone = PHONE_SEPARATORS.sub("", payer_phone or "")
        if not PHONE_PATTERN.match(phone):
            raise ValidationError(f"Invalid payer phone number: {payer_phone!r}")
        return phone

    @staticmethod
    def parse_network(network: Union[str, Network]) -> Network:
        if isinstance(network, Network):
            return network
        try:
            return Network(str(network).strip().upper())
        except ValueError:
            raise ValidationError(
                f"Unsupported network {network!r}. Must be one of: "
                f"{[n.value for n in Network]}"
            )

    def validate_amount(self, amount: Union[Decimal, int, float, str]) -> Decimal:
        try:
            value = quantize_amount(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"Invalid amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be positive")
        if value > self.settings.max_payment_amount:
            raise ValidationError(
                f"Amount exceeds limit of {self.settings.max_payment_amount} {self.settings.currency}"
            )
        return value

    async def initiate(
        self,
        student_id: str,
        amount: Union[Decimal, int, float, str],
        payer_phone: str,
        network: Union[str, Network],
        payer_id: Optional[str] = None,
    ) -> Transaction:
        """
        Create a PENDING collection for a student's fees.

        Args:
            student_id: Student the payment is for
            amount: Amount in ZMW
            payer_phone: Mobile-money number that will receive the USSD push
            network: MTN or AIRTEL
            payer_id: User who receives the receipt (defaults to the student's parent)

        Returns:
            Transaction: The new PENDING transaction

        Raises:
            ValidationError: If any input is invalid
            NotFoundError: If the student or the named payer does not exist
        """
        value = self.validate_amount(amount)
        phone = self.normalize_phone(payer_phone)
        net = self.parse_network(network)

        student = await self.store.get_student(student_id)
        if student is None:
            raise NotFoundError(f"Student not found: {student_id}", student_id=student_id)
        if payer_id is not None and await self.store.get_user(payer_id) is None:
            raise NotFoundError(f"Payer not found: {payer_id}", payer_id=payer_id)

        school = await self.store.get_school_settings()
        merchant = school.merchant_account_for(net)

        transaction = Transaction(
            id=f"TXN-{uuid.uuid4().hex[:16].upper()}",
            student_id=student.id,
            payer_id=payer_id or student.parent_id,
            amount=value,
            payer_phone=phone,
            network=net,
            created_at=self.clock.now(),
            external_reference=uuid.uuid4().hex[:10].upper(),
            merchant_account=merchant.account_number if merchant else None,
        )

        async with self.store.unit_of_work() as uow:
            uow.save_transaction(transaction)

        metrics.record_initiation(net.value)
        logger.info(
            "momo_transaction_initiated",
            transaction_id=transaction.id,
            student_id=student.id,
            amount=str(value),
            network=net.value,
            merchant_account=transaction.merchant_account,
        )

        return transaction
