"""Tests for refinancing."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from loan_ledger.config import LedgerConfig
from loan_ledger.data_models import Loan, PaymentPlan, PaymentRequest, RefinanceParams
from loan_ledger.engine import generate_schedule
from loan_ledger.exceptions import (
    ConfigurationError,
    RefinanceWithoutBasisError,
)
from loan_ledger.payments import apply_payment
from loan_ledger.refinance import refinance, suggest_refinance_params
from loan_ledger.utils import to_money

ZERO = Decimal("0")


def test_without_history_matches_fresh_schedule(loan: Loan, plan: PaymentPlan) -> None:
    params = RefinanceParams(
        amount=Decimal("12000"),
        annual_rate_percent=Decimal("9"),
        term_months=24,
        start_date=date(2024, 3, 1),
    )
    result = refinance(loan, plan, params)
    expected = generate_schedule(Decimal("12000"), Decimal("9"), 24, date(2024, 3, 1))
    assert result == expected
    assert result.current_generation == 0


def test_keeps_history_and_continues_numbering(loan: Loan, plan: PaymentPlan, pay) -> None:
    plan = pay(plan, loan, 3)
    balance = plan[2].remaining_balance
    params = RefinanceParams(
        amount=balance,
        annual_rate_percent=Decimal("8"),
        term_months=12,
        start_date=date(2024, 4, 1),
    )
    result = refinance(loan, plan, params)

    assert result.installments[:3] == plan.installments[:3]
    fresh = result.installments[3:]
    assert len(fresh) == 12
    assert [inst.payment_number for inst in fresh] == list(range(4, 16))
    assert {inst.generation for inst in fresh} == {1}
    assert all(not inst.is_paid for inst in fresh)
    assert sum((inst.principal for inst in fresh), ZERO) == balance
    assert fresh[0].due_date == date(2024, 5, 1)
    assert result.outstanding_balance == balance
    result.validate()


def test_restart_numbering(loan: Loan, plan: PaymentPlan, pay) -> None:
    plan = pay(plan, loan, 2)
    params = suggest_refinance_params(loan, plan, date(2024, 3, 1))
    result = refinance(loan, plan, params, numbering="restart")

    fresh = result.installments[2:]
    assert fresh[0].payment_number == 1
    # The latest generation wins when numbers repeat
    assert result.find(1).generation == 1
    assert not result.find(1).is_paid
    result.validate()


def test_numbering_from_config(loan: Loan, plan: PaymentPlan, pay) -> None:
    plan = pay(plan, loan, 2)
    params = suggest_refinance_params(loan, plan, date(2024, 3, 1))
    result = refinance(loan, plan, params, config=LedgerConfig(refinance_numbering="restart"))
    assert result[2].payment_number == 1


def test_unknown_numbering(loan: Loan, plan: PaymentPlan) -> None:
    params = suggest_refinance_params(loan, plan, date(2024, 3, 1))
    with pytest.raises(ConfigurationError):
        refinance(loan, plan, params, numbering="sideways")


@pytest.mark.parametrize("amount", ["0", "-10"])
def test_requires_positive_amount(loan: Loan, plan: PaymentPlan, amount: str) -> None:
    params = RefinanceParams(
        amount=Decimal(amount),
        annual_rate_percent=Decimal("12"),
        term_months=12,
        start_date=date(2024, 1, 1),
    )
    with pytest.raises(RefinanceWithoutBasisError):
        refinance(loan, plan, params)


def test_skipped_installments_are_superseded(loan: Loan, plan: PaymentPlan) -> None:
    request = PaymentRequest(
        loan=loan,
        total_amount_paid=Decimal("1066.19"),
        payment_date=date(2024, 4, 1),
        target_payment_number=3,
    )
    plan = apply_payment(plan, request).plan
    params = suggest_refinance_params(loan, plan, date(2024, 4, 1))
    result = refinance(loan, plan, params)

    assert result[0] == plan[2]
    assert [inst.payment_number for inst in result.installments[:2]] == [3, 4]
    assert result[1].generation == 1
    assert not any(inst.generation == 0 and not inst.is_paid for inst in result)
    assert result.outstanding_balance == plan[2].remaining_balance
    result.validate()


def test_twice_increments_generation(loan: Loan, plan: PaymentPlan, pay) -> None:
    plan = pay(plan, loan, 2)
    plan = refinance(loan, plan, suggest_refinance_params(loan, plan, date(2024, 3, 1)))
    plan = pay(plan, loan, 1)
    plan = refinance(loan, plan, suggest_refinance_params(loan, plan, date(2024, 4, 1)))
    assert plan.current_generation == 2
    assert [inst.generation for inst in plan.paid()] == [0, 0, 1]
    plan.validate()


class TestSuggestParams:
    def test_without_history(self, loan: Loan, plan: PaymentPlan) -> None:
        params = suggest_refinance_params(loan, plan, date(2024, 6, 1))
        assert params.amount == loan.principal
        assert params.start_date == loan.start_date
        assert params.annual_rate_percent == loan.annual_rate_percent
        assert params.term_months == loan.term_months

    def test_with_history(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 4)
        params = suggest_refinance_params(loan, plan, date(2024, 5, 1))
        assert params.amount == plan[3].remaining_balance
        assert params.start_date == date(2024, 5, 1)

    def test_reflects_extra_principal(self, loan: Loan, plan: PaymentPlan) -> None:
        request = PaymentRequest(
            loan=loan,
            total_amount_paid=Decimal("1066.19"),
            payment_date=date(2024, 2, 1),
            extra_principal=Decimal("2000"),
            target_payment_number=1,
        )
        plan = apply_payment(plan, request).plan
        params = suggest_refinance_params(loan, plan, date(2024, 2, 1))
        assert params.amount == Decimal("9053.81")


def test_payment_after_refinance_uses_new_terms(loan: Loan, plan: PaymentPlan, pay) -> None:
    plan = pay(plan, loan, 3)
    params = replace(
        suggest_refinance_params(loan, plan, date(2024, 4, 1)),
        annual_rate_percent=Decimal("6"),
        term_months=24,
    )
    plan = refinance(loan, plan, params)
    refinanced_loan = loan.with_terms(params)
    assert refinanced_loan.annual_rate_percent == Decimal("6")
    assert refinanced_loan.term_months == 24

    target = plan.next_pending()
    request = PaymentRequest(
        loan=refinanced_loan,
        total_amount_paid=target.total_payment,
        payment_date=target.due_date,
        extra_principal=Decimal("1000"),
        target_payment_number=target.payment_number,
    )
    result = apply_payment(plan, request)
    tail = [inst for inst in result.plan if not inst.is_paid]
    assert tail[0].interest == to_money(tail[0].opening_balance * Decimal("0.005"))
    assert all(inst.generation == 1 for inst in tail)
    assert len(result.plan) < len(plan)
    result.plan.validate()
