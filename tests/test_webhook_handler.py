"""
Tests for mobile-money webhook processing.
"""
import json

import pytest

from schoolup_payments.integrations.webhook_handler import MoMoWebhookHandler, compute_signature
from schoolup_payments.exceptions import WebhookError


class TestSignatureVerification:
    @pytest.mark.unit
    def test_valid_signature_accepted(self, service) -> None:
        handler = MoMoWebhookHandler(service, secret="s3cret")
        payload = json.dumps({"transactionId": "TXN-1", "status": "SUCCESS", "amount": "10"}).encode()

        handler.verify_signature(payload, compute_signature(payload, "s3cret"))

    @pytest.mark.unit
    def test_signature_is_case_insensitive_hex(self, service) -> None:
        handler = MoMoWebhookHandler(service, secret="s3cret")
        payload = b'{"transactionId": "TXN-1"}'

        handler.verify_signature(payload, compute_signature(payload, "s3cret").upper())

    @pytest.mark.unit
    @pytest.mark.parametrize("signature", [None, "", "deadbeef"])
    def test_bad_signature_rejected(self, service, signature) -> None:
        handler = MoMoWebhookHandler(service, secret="s3cret")

        with pytest.raises(WebhookError):
            handler.verify_signature(b'{"transactionId": "TXN-1"}', signature)

    @pytest.mark.unit
    def test_tampered_body_rejected(self, service) -> None:
        handler = MoMoWebhookHandler(service, secret="s3cret")
        signature = compute_signature(b'{"amount": "10"}', "s3cret")

        with pytest.raises(WebhookError):
            handler.verify_signature(b'{"amount": "10000"}', signature)

    @pytest.mark.unit
    def test_verification_disabled_without_secret(self, service) -> None:
        handler = MoMoWebhookHandler(service)

        assert not handler.verification_enabled
        handler.verify_signature(b"{}", None)


class TestDeliveryProcessing:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_every_outcome_is_acknowledged(self, service) -> None:
        handler = MoMoWebhookHandler(service)
        settled = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        mismatched = await service.initiate("std-1", "1000", "+260971000003", "MTN")
        declined = await service.initiate("std-1", "1000", "+260971000003", "AIRTEL")

        acks = [
            await handler.process_delivery(settled.id, "SUCCESS", "1000", external_ref="MP1"),
            await handler.process_delivery(settled.id, "SUCCESS", "1000", external_ref="MP1"),
            await handler.process_delivery(mismatched.id, "SUCCESS", "10"),
            await handler.process_delivery(declined.id, "FAILED", "1000"),
            await handler.process_delivery("TXN-UNKNOWN", "SUCCESS", "1000"),
        ]

        assert all(ack["status"] == "acknowledged" for ack in acks)
        assert [ack["result"] for ack in acks] == [
            "settled",
            "duplicate",
            "amount_mismatch",
            "failed",
            "unknown_transaction",
        ]
        assert acks[-1]["transaction_id"] == "TXN-UNKNOWN"
