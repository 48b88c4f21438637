"""
Pydantic schemas for API request/response models.

Amounts are Decimals and serialize as strings ("1000.00") so kwacha values
never pass through a float.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schoolup_payments.core.confirmation import ConfirmationOutcome
from schoolup_payments.domain.models import (
    Network,
    PaymentMethod,
    PaymentStatus,
    TransactionStatus,
)
from schoolup_payments.exceptions import ValidationError


class InitiatePaymentRequest(BaseModel):
    """Request schema for starting a mobile-money collection."""

    student_id: str = Field(..., min_length=1, description="Student the fee is paid for")
    amount: Decimal = Field(..., gt=0, description="Amount in ZMW")
    payer_phone: str = Field(..., min_length=1, description="Phone that receives the USSD push")
    network: str = Field(..., description="MTN or AIRTEL")
    payer_id: Optional[str] = Field(
        default=None, description="Portal user to notify (defaults to the student's parent)"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "student_id": "std-1",
                    "amount": "1000.00",
                    "payer_phone": "+260971000003",
                    "network": "MTN",
                }
            ]
        }
    }


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    payer_id: str
    amount: Decimal
    currency: str
    payer_phone: str
    network: Network
    status: TransactionStatus
    created_at: datetime
    external_reference: str
    merchant_account: Optional[str] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    receipt_number: Optional[str] = None


class ManualPaymentRequest(BaseModel):
    """Request schema for a cash or bank payment taken by the accounts office."""

    student_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, description="Amount in ZMW")
    method: str = Field(..., description="CASH or BANK")


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: Optional[str] = None
    student_id: str
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    date: date
    receipt_number: str


class BalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: str
    grade: str
    term: int
    total_fees: Decimal
    total_paid: Decimal
    balance: Decimal = Field(..., description="Outstanding amount, never negative")
    overpaid: Decimal
    is_settled: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    sender_name: str
    receiver_id: str
    content: str
    timestamp: datetime
    is_read: bool


class SendMessageRequest(BaseModel):
    sender_id: str = Field(..., min_length=1)
    receiver_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=2000)


class MarkReadRequest(BaseModel):
    reader_id: str = Field(..., min_length=1, description="Must be the message's receiver")


class WebhookDelivery(BaseModel):
    """Confirmation payload posted by the mobile network."""

    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId", min_length=1)
    status: ConfirmationOutcome
    amount: Decimal
    external_ref: Optional[str] = Field(default=None, alias="externalRef")

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> ConfirmationOutcome:
        """Accept SUCCESS/SUCCESSFUL/FAILED in any case."""
        try:
            return ConfirmationOutcome.parse(v)
        except ValidationError as e:
            raise ValueError(e.message)


class WebhookAck(BaseModel):
    status: str = Field(..., description="Always 'acknowledged'")
    result: str = Field(
        ...,
        description="settled, failed, duplicate, unknown_transaction or amount_mismatch",
    )
    transaction_id: str


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual checks")
    message: Optional[str] = Field(default=None, description="Status message")
