"""Pytest configuration and fixtures."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from loan_ledger.data_models import Loan, PaymentPlan, PaymentRequest
from loan_ledger.engine import generate_schedule
from loan_ledger.payments import apply_payment


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo any ``setup_logging`` call made by a test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def loan() -> Loan:
    """12 000 at 12 % over 12 months, no insurance."""
    return Loan(
        id="loan-test-001",
        principal=Decimal("12000"),
        annual_rate_percent=Decimal("12"),
        term_months=12,
        start_date=date(2024, 1, 1),
        lender_name="Test Bank",
    )


@pytest.fixture
def plan(loan: Loan) -> PaymentPlan:
    return generate_schedule(
        loan.principal,
        loan.annual_rate_percent,
        loan.term_months,
        loan.start_date,
        loan.monthly_insurance,
    )


@pytest.fixture
def insured_loan() -> Loan:
    return Loan(
        id="loan-test-002",
        principal=Decimal("50000"),
        annual_rate_percent=Decimal("9.5"),
        term_months=60,
        start_date=date(2023, 5, 15),
        monthly_insurance=Decimal("25.50"),
    )


@pytest.fixture
def insured_plan(insured_loan: Loan) -> PaymentPlan:
    return generate_schedule(
        insured_loan.principal,
        insured_loan.annual_rate_percent,
        insured_loan.term_months,
        insured_loan.start_date,
        insured_loan.monthly_insurance,
    )


def pay_in_order(plan: PaymentPlan, loan: Loan, count: int) -> PaymentPlan:
    """Pay the next ``count`` pending installments at their scheduled amount."""
    for _ in range(count):
        nxt = plan.next_pending()
        request = PaymentRequest(
            loan=loan,
            total_amount_paid=nxt.total_payment,
            payment_date=nxt.due_date,
            target_payment_number=nxt.payment_number,
        )
        plan = apply_payment(plan, request).plan
    return plan


@pytest.fixture
def pay():
    return pay_in_order
