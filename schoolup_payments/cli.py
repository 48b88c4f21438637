"""CLI for SchoolUp Payments.

Runs the API server, or walks one mobile-money payment through the demo
school ledger end to end.
"""

import asyncio
import logging
from typing import List, Tuple

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from schoolup_payments.config import get_settings
from schoolup_payments.core.balance import BalanceSummary
from schoolup_payments.core.service import create_payment_service
from schoolup_payments.domain.models import Message, Transaction, TransactionStatus
from schoolup_payments.exceptions import PaymentError
from schoolup_payments.monitoring.logging import setup_logging

app = typer.Typer(
    name="schoolup-payments",
    help="SchoolUp Payments - school fee collection over MTN MoMo and Airtel Money",
    add_completion=False,
)

console = Console()


def configure_cli_logging(verbose: bool) -> None:
    """JSON logs with --verbose, warnings only otherwise."""
    if verbose:
        setup_logging()
    else:
        structlog.configure(
            wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING)
        )


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (defaults to settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (defaults to settings)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the payments API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "schoolup_payments.api.main:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


async def _run_simulation(
    student_id: str,
    amount: str,
    phone: str,
    network: str,
    latency: float,
    fail: bool,
) -> Tuple[BalanceSummary, Transaction, BalanceSummary, List[Message]]:
    settings = get_settings().model_copy(
        update={
            "simulator_enabled": True,
            "simulator_latency_seconds": latency,
            "simulator_success_rate": 0.0 if fail else 1.0,
        }
    )
    service = create_payment_service(settings=settings)

    before = await service.outstanding_balance(student_id)
    transaction = await service.initiate(student_id, amount, phone, network)
    console.print(
        f"[blue]USSD prompt sent to[/blue] {transaction.payer_phone} "
        f"([dim]{transaction.id}[/dim]), waiting for the network..."
    )

    await service.confirmation_port.drain()

    transaction = await service.get_transaction(transaction.id)
    after = await service.outstanding_balance(student_id)
    messages = await service.get_messages(transaction.payer_id)
    return before, transaction, after, messages


@app.command()
def simulate(
    student_id: str = typer.Option("std-1", "--student", "-s", help="Student to pay for"),
    amount: str = typer.Option("1000", "--amount", "-a", help="Amount in ZMW"),
    network: str = typer.Option("MTN", "--network", "-n", help="MTN or AIRTEL"),
    phone: str = typer.Option("+260971000003", "--phone", help="Payer phone number"),
    latency: float = typer.Option(1.0, "--latency", help="Simulated confirmation delay (seconds)"),
    fail: bool = typer.Option(False, "--fail", help="Simulate the payer declining"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Emit JSON logs"),
) -> None:
    """Pay a fee against the demo school and show the receipt and balance."""
    configure_cli_logging(verbose)

    try:
        before, transaction, after, messages = asyncio.run(
            _run_simulation(student_id, amount, phone, network, latency, fail)
        )
    except PaymentError as e:
        console.print(f"\n[red]Error ({e.error_code}):[/red] {e.message}")
        raise typer.Exit(1)

    table = Table(title=f"Transaction {transaction.id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", transaction.status.value)
    table.add_row("Network", transaction.network.display_name)
    table.add_row("Amount", f"{transaction.amount} {transaction.currency}")
    table.add_row("Merchant account", transaction.merchant_account or "-")
    table.add_row("Receipt", transaction.receipt_number or "-")
    if transaction.failure_reason:
        table.add_row("Failure reason", transaction.failure_reason)
    table.add_row("Balance before", f"{before.balance} ZMW")
    table.add_row("Balance after", f"{after.balance} ZMW")
    console.print()
    console.print(table)

    if transaction.status is TransactionStatus.SUCCESS:
        receipt = next(
            (m for m in messages if transaction.receipt_number in m.content), None
        )
        if receipt is not None:
            console.print(
                Panel(receipt.content, title=f"From {receipt.sender_name}", border_style="green")
            )
    else:
        console.print("\n[yellow]Payment was not completed.[/yellow]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
