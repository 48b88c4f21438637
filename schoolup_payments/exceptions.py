"""
Exception classes for the payment lifecycle.

Every exception carries:
- an error code (stable, for client handling)
- an HTTP status (for API responses)
- structured context (logged alongside the error)

Business-logic failures raised while processing a network webhook
(unknown transaction, amount mismatch) are acknowledged to the sender,
not surfaced as non-2xx responses. See integrations/webhook_handler.py.
"""

from decimal import Decimal
from typing import Any, Dict


class PaymentError(Exception):
    """Base exception for all payment lifecycle errors."""

    error_code = "payment_error"
    http_status = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "type": self.__class__.__name__,
            }
        }


class ValidationError(PaymentError):
    """Bad input. Recoverable by the caller correcting it."""

    error_code = "validation_error"
    http_status = 400


class NotFoundError(PaymentError):
    """Unknown student, transaction, message or user."""

    error_code = "not_found"
    http_status = 404


class UnknownTransactionError(NotFoundError):
    """A confirmation arrived for a transaction id this service never issued."""

    error_code = "unknown_transaction"

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Unknown transaction: {transaction_id}", transaction_id=transaction_id
        )
        self.transaction_id = transaction_id


class AmountMismatchError(PaymentError):
    """
    Confirmed amount differs from the initiated amount.

    Integrity violation: the transaction is forced to FAILED before this is raised.
    """

    error_code = "amount_mismatch"
    http_status = 409

    def __init__(self, transaction_id: str, expected: Decimal, received: Decimal):
        super().__init__(
            f"Amount mismatch for {transaction_id}: expected {expected}, received {received}",
            transaction_id=transaction_id,
            expected=str(expected),
            received=str(received),
        )
        self.transaction_id = transaction_id
        self.expected = expected
        self.received = received


class InvalidTransitionError(PaymentError):
    """Attempted to move a transaction out of a terminal state."""

    error_code = "invalid_transition"
    http_status = 409


class LedgerIntegrityError(PaymentError):
    """A unit of work would break a ledger uniqueness rule. Nothing was written."""

    error_code = "ledger_integrity"
    http_status = 409


class DuplicateReceiptError(LedgerIntegrityError):
    """Receipt number already used by another payment."""

    error_code = "duplicate_receipt"

    def __init__(self, receipt_number: str):
        super().__init__(
            f"Receipt number already issued: {receipt_number}", receipt_number=receipt_number
        )
        self.receipt_number = receipt_number


class ReceiptGenerationError(PaymentError):
    """Could not find a free receipt number within the attempt budget."""

    error_code = "receipt_generation_failed"
    http_status = 500


class InboxAccessError(PaymentError):
    """Only the receiving party may change a message's read state."""

    error_code = "inbox_access_denied"
    http_status = 403


class WebhookError(PaymentError):
    """Webhook delivery could not be authenticated."""

    error_code = "webhook_rejected"
    http_status = 400
