"""Command-line interface for the loan ledger.

This module uses the ``click`` library to implement a multi-command
interface around the engine. Users can generate a payment plan, record
payments against it, refinance it and inspect its state. A plan lives in a
JSON file holding the loan terms and the full installment list; every
command that changes the plan rewrites the file as a whole.
"""

from __future__ import annotations

import csv
import json
from dataclasses import replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click

from .config import NUMBERING_MODES, SETTLEMENT_MODES, LedgerConfig
from .data_models import Loan, PaymentPlan, PaymentRequest
from .engine import generate_schedule
from .exceptions import LoanLedgerError
from .formatter import print_ledger_entries, print_schedule, print_summary
from .logging_config import setup_logging
from .payments import apply_payment
from .refinance import refinance as refinance_plan, suggest_refinance_params
from .serialization import loan_from_dict, plan_from_list, plan_to_list, to_dict
from .utils import decimal_from_str, parse_date


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000). Returns a Decimal.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_date_option(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def read_plan_file(path: Path) -> Tuple[Loan, PaymentPlan]:
    """Load the loan and its plan from a plan file."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return loan_from_dict(data["loan"]), plan_from_list(data.get("plan", []))
    except (OSError, ValueError, KeyError, ArithmeticError, LoanLedgerError) as exc:
        raise click.ClickException(f"Cannot read plan file {path}: {exc}")


def write_plan_file(path: Path, loan: Loan, plan: PaymentPlan) -> None:
    """Write the loan and its plan to a plan file, replacing its content."""
    data = {"loan": to_dict(loan), "plan": plan_to_list(plan)}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, plan: PaymentPlan) -> None:
    """Export the installments of a plan to a CSV file."""
    header = [
        "Payment_Number",
        "Due_Date",
        "Principal",
        "Interest",
        "Insurance",
        "Total_Payment",
        "Remaining_Balance",
        "Status",
        "Paid_Amount",
        "Paid_Date",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in plan:
            writer.writerow(
                [
                    e.payment_number,
                    e.due_date.isoformat(),
                    str(e.principal),
                    str(e.interest),
                    str(e.insurance),
                    str(e.total_payment),
                    str(e.remaining_balance),
                    e.status.value,
                    "" if e.paid_amount is None else str(e.paid_amount),
                    "" if e.paid_date is None else e.paid_date.isoformat(),
                ]
            )


def _config(ctx: click.Context) -> LedgerConfig:
    return ctx.obj["config"]


@click.group()
@click.option("--log-level", "log_level", default=None, help="Logging level (DEBUG, INFO, WARNING, ...)")
@click.option(
    "--settlement-mode",
    "settlement_mode",
    type=click.Choice(SETTLEMENT_MODES),
    default=None,
    help="How payments on a later installment treat earlier pending ones",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], settlement_mode: Optional[str]) -> None:
    """Loan amortization and payment ledger."""
    try:
        config = LedgerConfig.from_env()
        if settlement_mode:
            config = replace(config, settlement_mode=settlement_mode)
    except LoanLedgerError as exc:
        raise click.ClickException(str(exc))
    setup_logging(log_level or config.log_level)
    ctx.obj = {"config": config}


@cli.command()
@click.option("--principal", "-p", "principal", required=True, help="Amount financed")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)")
@click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months")
@click.option("--start-date", "-s", "start_date", required=True, help="Loan date (YYYY-MM-DD); first installment is due a month later")
@click.option("--insurance", "-i", "insurance", default="0", help="Monthly insurance")
@click.option("--loan-id", "loan_id", default="loan-1", help="Identifier stored in the plan file")
@click.option("--lender", "lender", default="", help="Lender name used in ledger descriptions")
@click.option("--output", "output", type=str, help="Output file path (.json plan file or .csv)")
@click.pass_context
def schedule(
    ctx: click.Context,
    principal: str,
    rate: str,
    term: int,
    start_date: str,
    insurance: str,
    loan_id: str,
    lender: str,
    output: Optional[str],
) -> None:
    """Generate and print a payment plan."""
    try:
        loan = Loan(
            id=loan_id,
            principal=parse_amount(principal),
            annual_rate_percent=parse_amount(rate),
            term_months=term,
            start_date=parse_date_option(start_date),
            monthly_insurance=parse_amount(insurance),
            lender_name=lender,
        )
        plan = generate_schedule(
            loan.principal,
            loan.annual_rate_percent,
            loan.term_months,
            loan.start_date,
            loan.monthly_insurance,
            config=_config(ctx),
        )
    except LoanLedgerError as exc:
        raise click.ClickException(str(exc))

    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            write_plan_file(path, loan, plan)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, plan)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Plan exported to {path}")
    else:
        print_summary(plan.summary())
        print_schedule(plan)


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--amount", "-a", "amount", default=None, help="Amount paid (defaults to the installment total)")
@click.option("--extra", "-e", "extra", default="0", help="Extra principal paid on top")
@click.option("--date", "-d", "paid_on", required=True, help="Payment date (YYYY-MM-DD)")
@click.option("--installment", "-n", "installment", type=int, default=None, help="Installment number (defaults to the next pending one)")
@click.option("--unscheduled", is_flag=True, default=False, help="Record the payment without settling an installment")
@click.pass_context
def pay(
    ctx: click.Context,
    plan_file: Path,
    amount: Optional[str],
    extra: str,
    paid_on: str,
    installment: Optional[int],
    unscheduled: bool,
) -> None:
    """Record a payment against the plan in PLAN_FILE."""
    loan, plan = read_plan_file(plan_file)
    target = None
    if not unscheduled:
        if installment is None:
            nxt = plan.next_pending()
            if nxt is None:
                raise click.ClickException("The loan is already settled")
            installment = nxt.payment_number
        target = installment

    if amount is None:
        found = plan.find(target) if target is not None else None
        if found is None:
            raise click.BadParameter("--amount is required for this payment")
        paid_amount = found.total_payment
    else:
        paid_amount = parse_amount(amount)

    request = PaymentRequest(
        loan=loan,
        total_amount_paid=paid_amount,
        payment_date=parse_date_option(paid_on),
        extra_principal=parse_amount(extra),
        target_payment_number=target,
    )
    try:
        result = apply_payment(plan, request, config=_config(ctx))
    except LoanLedgerError as exc:
        raise click.ClickException(str(exc))

    write_plan_file(plan_file, loan, result.plan)
    print_ledger_entries(result.ledger_entries)
    print_summary(result.plan.summary())


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--start-date", "-s", "start_date", required=True, help="Start date of the new schedule (YYYY-MM-DD)")
@click.option("--amount", "-a", "amount", default=None, help="Amount to finance (defaults to the outstanding balance)")
@click.option("--rate", "-r", "rate", default=None, help="New annual rate (percent)")
@click.option("--term", "-t", "term", type=int, default=None, help="New term in months")
@click.option("--insurance", "-i", "insurance", default=None, help="New monthly insurance")
@click.option("--numbering", type=click.Choice(NUMBERING_MODES), default=None, help="Continue or restart installment numbers")
@click.pass_context
def refinance(
    ctx: click.Context,
    plan_file: Path,
    start_date: str,
    amount: Optional[str],
    rate: Optional[str],
    term: Optional[int],
    insurance: Optional[str],
    numbering: Optional[str],
) -> None:
    """Rebuild the unpaid part of the plan in PLAN_FILE."""
    loan, plan = read_plan_file(plan_file)
    suggested = suggest_refinance_params(loan, plan, parse_date_option(start_date))
    overrides: Dict[str, Any] = {"start_date": parse_date_option(start_date)}
    if amount is not None:
        overrides["amount"] = parse_amount(amount)
    if rate is not None:
        overrides["annual_rate_percent"] = parse_amount(rate)
    if term is not None:
        overrides["term_months"] = term
    if insurance is not None:
        overrides["monthly_insurance"] = parse_amount(insurance)
    params = replace(suggested, **overrides)

    try:
        new_plan = refinance_plan(loan, plan, params, numbering=numbering, config=_config(ctx))
        refinanced_loan = loan.with_terms(params)
    except LoanLedgerError as exc:
        raise click.ClickException(str(exc))

    write_plan_file(plan_file, refinanced_loan, new_plan)
    click.echo(f"Refinanced {params.amount:.2f} over {params.term_months} months")
    print_summary(new_plan.summary())


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--show-schedule", is_flag=True, default=False, help="Print every installment")
def status(plan_file: Path, show_schedule: bool) -> None:
    """Show the state of the plan in PLAN_FILE."""
    _, plan = read_plan_file(plan_file)
    print_summary(plan.summary())
    if show_schedule:
        print_schedule(plan, show_generation=plan.current_generation > 0)


if __name__ == "__main__":
    cli()
