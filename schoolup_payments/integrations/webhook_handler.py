"""
Mobile-money webhook handler with signature verification.

Implements:
- HMAC-SHA256 signature verification (X-MoMo-Signature)
- Outcome routing into the confirmation receiver
- Acknowledgement of every well-formed delivery

Networks retry any delivery that does not get a 2xx, so business outcomes
(duplicate, unknown transaction, amount mismatch) are acknowledged rather
than surfaced as errors. Only an unauthenticated delivery is rejected.
"""
import hashlib
import hmac
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Union

import structlog

from schoolup_payments.core.confirmation import ConfirmationOutcome
from schoolup_payments.core.service import PaymentService
from schoolup_payments.exceptions import (
    AmountMismatchError,
    UnknownTransactionError,
    WebhookError,
)
from schoolup_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-MoMo-Signature"


def compute_signature(payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body, as the network sends it."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class MoMoWebhookHandler:
    """
    Handles confirmation deliveries from MTN MoMo / Airtel Money.

    Deduplication is not done here: the confirmation receiver is idempotent
    per transaction id, so a redelivery is simply acknowledged as duplicate.
    """

    def __init__(self, service: PaymentService, secret: Optional[str] = None):
        """
        Args:
            service: Payment service that owns the ledger
            secret: Shared webhook secret (uses settings if not provided;
                verification is skipped when neither is set)
        """
        self.service = service
        self.secret = secret if secret is not None else service.settings.webhook_secret

    @property
    def verification_enabled(self) -> bool:
        return bool(self.secret)

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Verify the delivery signature.

        Args:
            payload: Raw request body as bytes
            signature: X-MoMo-Signature header value

        Raises:
            WebhookError: If a secret is configured and the signature does not match
        """
        if not self.verification_enabled:
            return

        if not signature:
            logger.error("webhook_signature_missing")
            raise WebhookError(f"Missing {SIGNATURE_HEADER} header")

        expected = compute_signature(payload, self.secret)
        if not hmac.compare_digest(expected, signature.strip().lower()):
            logger.error("webhook_signature_verification_failed")
            raise WebhookError("Invalid webhook signature")

        logger.debug("webhook_signature_verified")

    async def process_delivery(
        self,
        transaction_id: str,
        status: Union[str, ConfirmationOutcome],
        amount: Union[Decimal, int, float, str],
        external_ref: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply one delivery and build its acknowledgement.

        Returns:
            Dict[str, Any]: {"status": "acknowledged", "result": ..., "transaction_id": ...}
        """
        start_time = time.time()

        logger.info(
            "processing_webhook_delivery",
            transaction_id=transaction_id,
            status=str(getattr(status, "value", status)),
            external_ref=external_ref,
        )

        try:
            result = await self.service.confirm(transaction_id, status, amount)
            outcome = result.status.value
        except UnknownTransactionError:
            outcome = "unknown_transaction"
        except AmountMismatchError as e:
            outcome = "amount_mismatch"
            logger.warning(
                "webhook_amount_mismatch_acknowledged",
                transaction_id=transaction_id,
                expected=str(e.expected),
                received=str(e.received),
            )

        duration = time.time() - start_time
        metrics.record_webhook_delivery(outcome, duration)

        logger.info(
            "webhook_delivery_acknowledged",
            transaction_id=transaction_id,
            result=outcome,
            duration_seconds=duration,
        )

        return {
            "status": "acknowledged",
            "result": outcome,
            "transaction_id": transaction_id,
        }
