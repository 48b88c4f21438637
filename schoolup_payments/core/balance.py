"""
Outstanding balance.

balance = sum(fee structures for the student's grade and the current term)
          - sum(payments booked for the student)

Always derived from the FeeStructure table. The raw value can be negative
(overpayment); the displayed balance is clamped at zero.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from schoolup_payments.core.store import LedgerStore
from schoolup_payments.domain.models import FeeStructure, Payment, Student
from schoolup_payments.exceptions import NotFoundError, ValidationError

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BalanceSummary:
    student_id: str
    grade: str
    term: int
    total_fees: Decimal
    total_paid: Decimal

    @property
    def raw_balance(self) -> Decimal:
        return self.total_fees - self.total_paid

    @property
    def balance(self) -> Decimal:
        return max(self.raw_balance, ZERO)

    @property
    def overpaid(self) -> Decimal:
        return max(-self.raw_balance, ZERO)

    @property
    def is_settled(self) -> bool:
        return self.raw_balance <= ZERO


def compute_balance(
    student: Student,
    term: int,
    fee_structures: Iterable[FeeStructure],
    payments: Iterable[Payment],
) -> BalanceSummary:
    """Pure balance computation. Ignores fees and payments of other grades/students."""
    total_fees = sum(
        (f.amount for f in fee_structures if f.grade == student.grade and f.term == term),
        ZERO,
    )
    total_paid = sum((p.amount for p in payments if p.student_id == student.id), ZERO)
    return BalanceSummary(
        student_id=student.id,
        grade=student.grade,
        term=term,
        total_fees=total_fees,
        total_paid=total_paid,
    )


class BalanceCalculator:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def outstanding_balance(
        self, student_id: str, term: Optional[int] = None
    ) -> BalanceSummary:
        """
        Balance for a student, for the school's current term unless given.

        Raises:
            NotFoundError: If the student does not exist
        """
        student = await self.store.get_student(student_id)
        if student is None:
            raise NotFoundError(f"Student not found: {student_id}", student_id=student_id)

        if term is None:
            term = (await self.store.get_school_settings()).current_term
        elif term not in (1, 2, 3):
            raise ValidationError(f"Term must be 1, 2 or 3, got {term}")

        fees = await self.store.list_fee_structures(grade=student.grade, term=term)
        payments = await self.store.list_payments(student_id=student.id)
        return compute_balance(student, term, fees, payments)
