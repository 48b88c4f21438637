"""
Tests for the command-line interface.
"""
import pytest
from typer.testing import CliRunner

from schoolup_payments.cli import app

runner = CliRunner()


class TestSimulateCommand:
    @pytest.mark.integration
    def test_successful_payment(self) -> None:
        result = runner.invoke(app, ["simulate", "--amount", "1000", "--latency", "0"])

        assert result.exit_code == 0, result.output
        assert "SUCCESS" in result.output
        assert "MTN-" in result.output
        assert "1500.00 ZMW" in result.output

    @pytest.mark.integration
    def test_declined_payment(self) -> None:
        result = runner.invoke(
            app, ["simulate", "--network", "AIRTEL", "--latency", "0", "--fail"]
        )

        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "not completed" in result.output

    @pytest.mark.unit
    def test_unknown_student(self) -> None:
        result = runner.invoke(app, ["simulate", "--student", "std-404", "--latency", "0"])

        assert result.exit_code == 1
        assert "not_found" in result.output
