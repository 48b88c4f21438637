"""
Domain models for fee collection.

Transaction state machine:
    PENDING → SUCCESS   (network confirmed, settled into a Payment)
    PENDING → FAILED    (network declined, amount mismatch, or timeout)

SUCCESS and FAILED are terminal. Models are immutable; a state change
produces a new instance (see Transaction.transition).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schoolup_payments.exceptions import InvalidTransitionError

CURRENCY = "ZMW"
TWO_PLACES = Decimal("0.01")


def quantize_amount(value: Any) -> Decimal:
    """Kwacha amounts always carry 2 decimal places."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class Network(str, Enum):
    """Mobile network operators we collect from."""

    MTN = "MTN"
    AIRTEL = "AIRTEL"

    @property
    def receipt_prefix(self) -> str:
        return _RECEIPT_PREFIXES[self]

    @property
    def payment_method(self) -> PaymentMethod:
        return _NETWORK_METHODS[self]

    @property
    def display_name(self) -> str:
        return _NETWORK_NAMES[self]


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class PaymentMethod(str, Enum):
    MTN_MOMO = "MTN_MOMO"
    AIRTEL_MONEY = "AIRTEL_MONEY"
    CASH = "CASH"
    BANK = "BANK"


class PaymentStatus(str, Enum):
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    OVERDUE = "OVERDUE"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    PARENT = "PARENT"


_RECEIPT_PREFIXES = {Network.MTN: "MTN", Network.AIRTEL: "AIR"}
_NETWORK_METHODS = {Network.MTN: PaymentMethod.MTN_MOMO, Network.AIRTEL: PaymentMethod.AIRTEL_MONEY}
_NETWORK_NAMES = {Network.MTN: "MTN MoMo", Network.AIRTEL: "Airtel Money"}

# Receipts for payments booked by the accounts office
MANUAL_RECEIPT_PREFIX = "RCP"


class Transaction(BaseModel):
    """A mobile-money collection request and its lifecycle state."""

    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str
    payer_id: str
    amount: Decimal
    currency: str = CURRENCY
    payer_phone: str
    network: Network
    status: TransactionStatus = TransactionStatus.PENDING
    created_at: datetime
    external_reference: str
    merchant_account: str | None = None
    completed_at: datetime | None = None
    failure_reason: str | None = None
    receipt_number: str | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"Transaction amount must be positive, got {v}")
        return quantize_amount(v)

    def transition(
        self,
        status: TransactionStatus,
        at: datetime,
        failure_reason: str | None = None,
        receipt_number: str | None = None,
    ) -> Transaction:
        """Move out of PENDING. Terminal states never change."""
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Transaction {self.id} is already {self.status.value}",
                transaction_id=self.id,
                status=self.status.value,
            )
        if not status.is_terminal:
            raise InvalidTransitionError(
                f"Cannot transition {self.id} to {status.value}", transaction_id=self.id
            )
        return self.model_copy(
            update={
                "status": status,
                "completed_at": at,
                "failure_reason": failure_reason,
                "receipt_number": receipt_number,
            }
        )


class Payment(BaseModel):
    """A ledger entry. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    transaction_id: str | None = None
    student_id: str
    amount: Decimal
    currency: str = CURRENCY
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PAID
    date: date
    receipt_number: str

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"Payment amount must be positive, got {v}")
        return quantize_amount(v)


class Message(BaseModel):
    """A portal message in the receiver's inbox."""

    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    content: str
    timestamp: datetime
    is_read: bool = False

    def mark_read(self) -> Message:
        return self.model_copy(update={"is_read": True})


class FeeStructure(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    grade: str
    term: int = Field(ge=1, le=3)
    amount: Decimal
    description: str = ""

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return quantize_amount(v)


class Student(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    grade: str
    parent_id: str
    teacher_id: str | None = None
    gender: Literal["Male", "Female"] | None = None
    dob: date | None = None


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: UserRole
    phone_number: str = ""


class PaymentAccount(BaseModel):
    """A school collection account (MoMo merchant code or bank account)."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    account_name: str
    account_number: str
    type: Literal["MOBILE_MONEY", "BANK"]


class SchoolSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    current_term: int = Field(default=1, ge=1, le=3)
    contact_phone: str = ""
    payment_accounts: list[PaymentAccount] = Field(default_factory=list)

    def merchant_account_for(self, network: Network) -> PaymentAccount | None:
        """Collection account registered for a network, matched by provider name."""
        for account in self.payment_accounts:
            if account.type == "MOBILE_MONEY" and account.provider == network.display_name:
                return account
        return None
