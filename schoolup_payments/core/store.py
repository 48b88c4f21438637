"""
Ledger store - the data access boundary.

The store holds no business logic. Callers read through the async
repository methods and write through a unit of work:

    async with store.unit_of_work() as uow:
        uow.save_transaction(settled)
        uow.add_payment(payment)
        uow.add_outbox_event(event)

Writes are staged on the unit of work and applied together when the
block exits cleanly. If the block raises, nothing is applied. The apply
step checks every uniqueness rule first and performs no awaits, so no
reader can observe half of a settlement.

Store instances are injected, never module-level singletons, so each test
(and each API app) gets its own isolated ledger.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncContextManager, AsyncIterator, Iterable, Protocol

import structlog

from schoolup_payments.domain.events import OutboxEvent
from schoolup_payments.domain.models import (
    FeeStructure,
    Message,
    Payment,
    SchoolSettings,
    Student,
    Transaction,
    TransactionStatus,
    User,
)
from schoolup_payments.exceptions import DuplicateReceiptError, LedgerIntegrityError

logger = structlog.get_logger(__name__)


class LedgerStore(Protocol):
    """Interface for ledger storage (in-memory today, a database later)."""

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        ...

    async def list_transactions(
        self, status: TransactionStatus | None = None
    ) -> list[Transaction]:
        ...

    async def list_payments(self, student_id: str | None = None) -> list[Payment]:
        ...

    async def get_payment_for_transaction(self, transaction_id: str) -> Payment | None:
        ...

    async def receipt_exists(self, receipt_number: str) -> bool:
        ...

    async def get_message(self, message_id: str) -> Message | None:
        ...

    async def list_messages(self, user_id: str) -> list[Message]:
        ...

    async def list_unpublished_events(self, limit: int = 100) -> list[OutboxEvent]:
        ...

    async def get_student(self, student_id: str) -> Student | None:
        ...

    async def get_user(self, user_id: str) -> User | None:
        ...

    async def list_fee_structures(
        self, grade: str | None = None, term: int | None = None
    ) -> list[FeeStructure]:
        ...

    async def get_school_settings(self) -> SchoolSettings:
        ...

    def unit_of_work(self) -> AsyncContextManager[UnitOfWork]:
        ...


class UnitOfWork:
    """Staged writes for one atomic commit."""

    def __init__(self) -> None:
        self.transactions: dict[str, Transaction] = {}
        self.payments: list[Payment] = []
        self.messages: dict[str, Message] = {}
        self.outbox_events: list[OutboxEvent] = []
        self.published_event_ids: list[str] = []

    def save_transaction(self, transaction: Transaction) -> None:
        self.transactions[transaction.id] = transaction

    def add_payment(self, payment: Payment) -> None:
        self.payments.append(payment)

    def save_message(self, message: Message) -> None:
        self.messages[message.id] = message

    def add_outbox_event(self, event: OutboxEvent) -> None:
        self.outbox_events.append(event)

    def mark_published(self, event_id: str) -> None:
        self.published_event_ids.append(event_id)

    @property
    def is_empty(self) -> bool:
        return not (
            self.transactions
            or self.payments
            or self.messages
            or self.outbox_events
            or self.published_event_ids
        )


class InMemoryLedgerStore:
    """
    In-memory ledger for tests, local development and the demo portal.

    Production would back the same interface with a database whose
    unique indexes enforce what _check() enforces here.
    """

    def __init__(
        self,
        school_settings: SchoolSettings,
        students: Iterable[Student] = (),
        users: Iterable[User] = (),
        fee_structures: Iterable[FeeStructure] = (),
    ):
        self._school_settings = school_settings
        self._students: dict[str, Student] = {s.id: s for s in students}
        self._users: dict[str, User] = {u.id: u for u in users}
        self._fee_structures: dict[str, FeeStructure] = {f.id: f for f in fee_structures}

        self._transactions: dict[str, Transaction] = {}
        self._payments: list[Payment] = []
        self._payments_by_transaction: dict[str, Payment] = {}
        self._receipts: set[str] = set()
        self._messages: dict[str, Message] = {}
        self._outbox: dict[str, OutboxEvent] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        return self._transactions.get(transaction_id)

    async def list_transactions(
        self, status: TransactionStatus | None = None
    ) -> list[Transaction]:
        transactions = list(self._transactions.values())
        if status is not None:
            transactions = [t for t in transactions if t.status == status]
        return sorted(transactions, key=lambda t: t.created_at)

    async def list_payments(self, student_id: str | None = None) -> list[Payment]:
        if student_id is None:
            return list(self._payments)
        return [p for p in self._payments if p.student_id == student_id]

    async def get_payment_for_transaction(self, transaction_id: str) -> Payment | None:
        return self._payments_by_transaction.get(transaction_id)

    async def receipt_exists(self, receipt_number: str) -> bool:
        return receipt_number in self._receipts

    async def get_message(self, message_id: str) -> Message | None:
        return self._messages.get(message_id)

    async def list_messages(self, user_id: str) -> list[Message]:
        messages = [
            m for m in self._messages.values() if user_id in (m.sender_id, m.receiver_id)
        ]
        return sorted(messages, key=lambda m: m.timestamp)

    async def list_unpublished_events(self, limit: int = 100) -> list[OutboxEvent]:
        pending = [e for e in self._outbox.values() if not e.published]
        pending.sort(key=lambda e: e.created_at)
        return pending[:limit]

    async def get_student(self, student_id: str) -> Student | None:
        return self._students.get(student_id)

    async def list_students(self) -> list[Student]:
        return list(self._students.values())

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def list_fee_structures(
        self, grade: str | None = None, term: int | None = None
    ) -> list[FeeStructure]:
        return [
            f
            for f in self._fee_structures.values()
            if (grade is None or f.grade == grade) and (term is None or f.term == term)
        ]

    async def get_school_settings(self) -> SchoolSettings:
        return self._school_settings

    # ------------------------------------------------------------------
    # Reference data (owned by the portal's admin screens)
    # ------------------------------------------------------------------

    async def add_student(self, student: Student) -> Student:
        self._students[student.id] = student
        return student

    async def add_user(self, user: User) -> User:
        self._users[user.id] = user
        return user

    async def add_fee_structure(self, fee: FeeStructure) -> FeeStructure:
        self._fee_structures[fee.id] = fee
        return fee

    async def update_school_settings(self, settings: SchoolSettings) -> SchoolSettings:
        self._school_settings = settings
        return settings

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        uow = UnitOfWork()
        try:
            yield uow
        except Exception as e:
            logger.warning(
                "ledger_unit_of_work_discarded",
                error=str(e),
                error_type=type(e).__name__,
                staged_transactions=list(uow.transactions),
                staged_payments=len(uow.payments),
            )
            raise
        if uow.is_empty:
            return
        self._check(uow)
        self._apply(uow)

    def _check(self, uow: UnitOfWork) -> None:
        """Reject the whole unit if any write breaks a uniqueness rule."""
        staged_receipts: set[str] = set()
        staged_transactions: set[str] = set()
        for payment in uow.payments:
            receipt = payment.receipt_number
            if receipt in self._receipts or receipt in staged_receipts:
                raise DuplicateReceiptError(receipt)
            staged_receipts.add(receipt)

            txn_id = payment.transaction_id
            if txn_id is not None:
                if txn_id in self._payments_by_transaction or txn_id in staged_transactions:
                    raise LedgerIntegrityError(
                        f"Transaction {txn_id} already has a payment", transaction_id=txn_id
                    )
                staged_transactions.add(txn_id)

        for event_id in uow.published_event_ids:
            if event_id not in self._outbox:
                raise LedgerIntegrityError(
                    f"Unknown outbox event: {event_id}", event_id=event_id
                )

    def _apply(self, uow: UnitOfWork) -> None:
        now = datetime.now(timezone.utc)

        self._transactions.update(uow.transactions)
        for payment in uow.payments:
            self._payments.append(payment)
            self._receipts.add(payment.receipt_number)
            if payment.transaction_id is not None:
                self._payments_by_transaction[payment.transaction_id] = payment
        self._messages.update(uow.messages)
        for event in uow.outbox_events:
            self._outbox[event.id] = event
        for event_id in uow.published_event_ids:
            self._outbox[event_id] = self._outbox[event_id].mark_published(now)

        logger.debug(
            "ledger_unit_of_work_committed",
            transactions=len(uow.transactions),
            payments=len(uow.payments),
            messages=len(uow.messages),
            outbox_events=len(uow.outbox_events),
            published=len(uow.published_event_ids),
        )
