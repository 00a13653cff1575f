"""Output helpers for the loan ledger.

This module renders payment plans, plan summaries and ledger entries in a
tabular text format for the terminal. It relies on ``click.echo`` so output
can be captured by the CLI test runner.
"""

from __future__ import annotations

from typing import Dict, Iterable

import click

from .data_models import Installment, LedgerEntryRequest


def print_summary(summary: Dict[str, object]) -> None:
    """Print a plan summary in a human-readable format."""
    click.echo("Summary")
    click.echo("-" * 72)
    click.echo(f"Installments       : {summary['installments']}")
    click.echo(f"Paid / pending     : {summary['paid']} / {summary['pending']}")
    click.echo(f"Outstanding balance: {summary['outstanding_balance']:.2f}")
    click.echo(f"Scheduled interest : {summary['total_interest']:.2f}")
    if summary.get("total_insurance"):
        click.echo(f"Scheduled insurance: {summary['total_insurance']:.2f}")
    click.echo(f"Total paid         : {summary['total_paid']:.2f}")
    click.echo(f"Progress           : {summary['progress'] * 100:.1f}%")
    if summary.get("next_payment_number") is not None:
        click.echo(
            f"Next installment   : #{summary['next_payment_number']} due "
            f"{summary['next_due_date'].isoformat()} ({summary['next_payment']:.2f})"
        )
    elif summary.get("is_settled"):
        click.echo("Next installment   : none, loan settled")
    click.echo("-" * 72)


def print_schedule(schedule: Iterable[Installment], show_generation: bool = False) -> None:
    """Print the installments of a plan as a simple table.

    Parameters
    ----------
    schedule: Iterable[Installment]
        The installments to print.
    show_generation: bool
        Whether to include the ``Gen`` column. Only refinanced plans have
        more than one generation, so it is hidden by default.
    """
    headers = [
        "No",
        "Due",
        "Principal",
        "Interest",
        "Insurance",
        "Total",
        "Balance",
        "Status",
        "Paid",
    ]
    if show_generation:
        headers.append("Gen")
    click.echo("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.payment_number),
            entry.due_date.isoformat(),
            f"{entry.principal:.2f}",
            f"{entry.interest:.2f}",
            f"{entry.insurance:.2f}",
            f"{entry.total_payment:.2f}",
            f"{entry.remaining_balance:.2f}",
            entry.status.value,
            f"{entry.paid_amount:.2f}" if entry.paid_amount is not None else "",
        ]
        if show_generation:
            row.append(str(entry.generation))
        click.echo("\t".join(row))


def print_ledger_entries(entries: Iterable[LedgerEntryRequest]) -> None:
    """Print the ledger entries produced by a payment."""
    click.echo("Ledger entries")
    click.echo("=" * 72)
    for entry in entries:
        number = f"#{entry.related_payment_number}" if entry.related_payment_number is not None else "-"
        click.echo(
            f"{entry.date.isoformat()}  {entry.kind.value:24s} {entry.amount:>12.2f}  {number:>5s}  {entry.description}"
        )
    click.echo("=" * 72)
