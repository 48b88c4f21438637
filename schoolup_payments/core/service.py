"""
Payment service - the entry point the portal and the API call into.

Wires the lifecycle components around one injected ledger store:

    initiate() ──► PENDING ──► confirmation port (network / simulator)
                                   │
    webhook ──► confirm() ◄────────┘
                   │
                   ├─ SUCCESS ─► SettlementApplier ─► outbox ─► NotificationRelay ─► inbox
                   └─ FAILED  ─► SettlementApplier.fail
    TimeoutSweeper ─► FAILED (confirmation_timeout)
"""
import random
from decimal import Decimal
from typing import List, Optional, Protocol, Union

import structlog

from schoolup_payments.config import Settings, get_settings
from schoolup_payments.core.balance import BalanceCalculator, BalanceSummary
from schoolup_payments.core.clock import Clock, SystemClock
from schoolup_payments.core.confirmation import (
    ConfirmationOutcome,
    ConfirmationReceiver,
    ConfirmationResult,
    ConfirmationStatus,
)
from schoolup_payments.core.inbox import Inbox
from schoolup_payments.core.initiator import TransactionInitiator
from schoolup_payments.core.locking import KeyedLock
from schoolup_payments.core.receipts import ReceiptNumberGenerator
from schoolup_payments.core.relay import NotificationRelay
from schoolup_payments.core.settlement import SettlementApplier
from schoolup_payments.core.store import LedgerStore
from schoolup_payments.core.timeouts import TimeoutSweeper
from schoolup_payments.domain.models import (
    MANUAL_RECEIPT_PREFIX,
    Message,
    Network,
    Payment,
    PaymentMethod,
    Transaction,
)
from schoolup_payments.exceptions import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

MANUAL_METHODS = (PaymentMethod.CASH, PaymentMethod.BANK)


class ConfirmationPort(Protocol):
    """Outbound seam to the mobile network: ask for the payer's authorization."""

    def request_confirmation(self, transaction: Transaction) -> None:
        ...


class PaymentService:
    """Facade over the payment lifecycle for one school ledger."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        confirmation_port: Optional[ConfirmationPort] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.confirmation_port = confirmation_port

        self.locks = KeyedLock()
        self.receipts = ReceiptNumberGenerator(
            rng=rng, max_attempts=self.settings.receipt_max_attempts
        )
        self.initiator = TransactionInitiator(store, self.clock, self.settings)
        self.applier = SettlementApplier(store, self.receipts, self.clock, self.settings)
        self.receiver = ConfirmationReceiver(store, self.applier, self.locks)
        self.relay = NotificationRelay(
            store, poll_interval_seconds=self.settings.relay_poll_interval_seconds
        )
        self.inbox = Inbox(store, self.clock)
        self.balances = BalanceCalculator(store)
        self.sweeper = TimeoutSweeper(
            store,
            self.applier,
            self.locks,
            self.clock,
            timeout_seconds=self.settings.confirmation_timeout_seconds,
            interval_seconds=self.settings.sweep_interval_seconds,
        )

    def attach_confirmation_port(self, port: ConfirmationPort) -> None:
        self.confirmation_port = port

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initiate(
        self,
        student_id: str,
        amount: Union[Decimal, int, float, str],
        payer_phone: str,
        network: Union[str, Network],
        payer_id: Optional[str] = None,
    ) -> Transaction:
        """Record a PENDING collection and trigger the USSD push."""
        transaction = await self.initiator.initiate(
            student_id, amount, payer_phone, network, payer_id=payer_id
        )
        if self.confirmation_port is not None:
            self.confirmation_port.request_confirmation(transaction)
        return transaction

    async def confirm(
        self,
        transaction_id: str,
        outcome: Union[str, ConfirmationOutcome],
        amount: Union[Decimal, int, float, str],
    ) -> ConfirmationResult:
        """Apply a network confirmation, then deliver any receipt it produced."""
        result = await self.receiver.confirm(transaction_id, outcome, amount)
        if result.status is ConfirmationStatus.SETTLED:
            await self.relay.dispatch_pending()
        return result

    async def record_manual_payment(
        self,
        student_id: str,
        amount: Union[Decimal, int, float, str],
        method: Union[str, PaymentMethod],
    ) -> Payment:
        """Book a cash or bank payment taken by the accounts office."""
        try:
            method = PaymentMethod(str(getattr(method, "value", method)).upper())
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method!r}")
        if method not in MANUAL_METHODS:
            raise ValidationError(
                f"Manual payments must be one of {[m.value for m in MANUAL_METHODS]}; "
                "mobile money goes through initiate()"
            )

        value = self.initiator.validate_amount(amount)
        student = await self.store.get_student(student_id)
        if student is None:
            raise NotFoundError(f"Student not found: {student_id}", student_id=student_id)

        payment = await self.applier.book_manual(
            student_id=student.id,
            payer_id=student.parent_id,
            amount=value,
            method=method,
            receipt_prefix=MANUAL_RECEIPT_PREFIX,
        )
        await self.relay.dispatch_pending()
        return payment

    async def expire_stale(self) -> List[Transaction]:
        return await self.sweeper.expire_stale()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> Transaction:
        transaction = await self.store.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction not found: {transaction_id}", transaction_id=transaction_id
            )
        return transaction

    async def list_payments(self, student_id: Optional[str] = None) -> List[Payment]:
        if student_id is not None and await self.store.get_student(student_id) is None:
            raise NotFoundError(f"Student not found: {student_id}", student_id=student_id)
        return await self.store.list_payments(student_id=student_id)

    async def outstanding_balance(
        self, student_id: str, term: Optional[int] = None
    ) -> BalanceSummary:
        return await self.balances.outstanding_balance(student_id, term=term)

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def get_messages(self, user_id: str) -> List[Message]:
        return await self.inbox.get_messages(user_id)

    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        return await self.inbox.send_message(sender_id, receiver_id, content)

    async def mark_read(self, message_id: str, reader_id: str) -> Message:
        return await self.inbox.mark_read(message_id, reader_id)


def create_payment_service(
    settings: Optional[Settings] = None,
    store: Optional[LedgerStore] = None,
    clock: Optional[Clock] = None,
    rng: Optional[random.Random] = None,
) -> PaymentService:
    """
    Build a service over the demo ledger, wired to the network simulator
    when it is enabled in settings.
    """
    from schoolup_payments.integrations.momo_simulator import MoMoNetworkSimulator
    from schoolup_payments.seed import build_demo_store

    settings = settings or get_settings()
    service = PaymentService(
        store or build_demo_store(), settings=settings, clock=clock, rng=rng
    )

    if settings.simulator_enabled:
        service.attach_confirmation_port(
            MoMoNetworkSimulator(
                confirm=service.confirm,
                latency_seconds=settings.simulator_latency_seconds,
                success_rate=settings.simulator_success_rate,
                rng=rng,
            )
        )
        logger.info(
            "momo_simulator_attached",
            latency_seconds=settings.simulator_latency_seconds,
            success_rate=settings.simulator_success_rate,
        )

    return service
