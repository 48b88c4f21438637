"""
Tests for the structured logging processors.
"""
from decimal import Decimal

import pytest

from schoolup_payments.monitoring.logging import (
    mask_payer_phones,
    mask_phone,
    render_amounts,
    service_context,
)


class TestLogProcessors:
    @pytest.mark.unit
    def test_payer_phone_masked(self) -> None:
        event = mask_payer_phones(None, "info", {"event": "x", "payer_phone": "+260971000003"})

        assert event["payer_phone"] == "+260******003"
        assert mask_phone("12345") == "*****"

    @pytest.mark.unit
    def test_decimal_amounts_render_as_strings(self) -> None:
        event = render_amounts(None, "info", {"amount": Decimal("1000.00"), "network": "MTN"})

        assert event == {"amount": "1000.00", "network": "MTN"}

    @pytest.mark.unit
    def test_service_context_does_not_override_bound_values(self, test_settings) -> None:
        add_context = service_context(test_settings)

        event = add_context(None, "info", {"app_env": "staging"})

        assert event["app_env"] == "staging"
        assert event["app_name"] == test_settings.app_name
        assert event["currency"] == "ZMW"
