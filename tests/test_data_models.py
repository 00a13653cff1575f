"""Tests for plan queries and invariant checks."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from loan_ledger.data_models import (
    Installment,
    InstallmentStatus,
    Loan,
    PaymentPlan,
    PaymentRequest,
    RefinanceParams,
)
from loan_ledger.exceptions import InvalidScheduleParametersError, PlanInvariantError

ZERO = Decimal("0")


class TestPlanQueries:
    def test_fresh_plan(self, plan: PaymentPlan) -> None:
        assert plan.outstanding_balance == Decimal("12000.00")
        assert plan.progress == ZERO
        assert not plan.is_settled
        assert plan.next_pending().payment_number == 1

    def test_after_payments(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 3)
        assert plan.outstanding_balance == plan[2].remaining_balance
        assert plan.progress == Decimal("0.25")
        assert len(plan.paid()) == 3
        assert len(plan.pending()) == 9

    def test_fully_paid(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 12)
        assert plan.is_settled
        assert plan.outstanding_balance == ZERO
        assert plan.next_pending() is None
        assert plan.progress == Decimal("1")

    def test_empty_plan(self) -> None:
        plan = PaymentPlan()
        assert len(plan) == 0
        assert not plan.is_settled
        assert plan.outstanding_balance == ZERO
        assert plan.progress == ZERO
        assert plan.current_generation == 0
        plan.validate()

    def test_find(self, plan: PaymentPlan) -> None:
        assert plan.find(5).due_date == date(2024, 6, 1)
        assert plan.find(13) is None
        assert plan.index_of(1) == 0

    def test_summary(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 2)
        summary = plan.summary()
        assert summary["installments"] == 12
        assert summary["paid"] == 2
        assert summary["pending"] == 10
        assert summary["next_payment_number"] == 3
        assert summary["next_due_date"] == date(2024, 4, 1)
        assert summary["next_payment"] == Decimal("1066.19")
        assert summary["total_paid"] == Decimal("2132.38")
        assert summary["outstanding_balance"] == Decimal("10098.16")
        assert summary["is_settled"] is False

    def test_opening_balance(self, plan: PaymentPlan) -> None:
        assert plan[1].opening_balance == plan[0].remaining_balance


class TestConversions:
    def test_loan_coerces_numbers(self) -> None:
        loan = Loan(id="x", principal=1000, annual_rate_percent="7.5", term_months=12, start_date=date(2024, 1, 1))
        assert loan.principal == Decimal("1000")
        assert loan.annual_rate_percent == Decimal("7.5")
        assert loan.monthly_insurance == ZERO

    def test_with_terms(self, loan: Loan) -> None:
        params = RefinanceParams(
            amount="5000",
            annual_rate_percent="4",
            term_months=36,
            start_date=date(2024, 6, 1),
            monthly_insurance="12",
        )
        updated = loan.with_terms(params)
        assert updated.principal == loan.principal
        assert updated.start_date == date(2024, 6, 1)
        assert (updated.annual_rate_percent, updated.term_months, updated.monthly_insurance) == (
            Decimal("4"),
            36,
            Decimal("12"),
        )

    @pytest.mark.parametrize(
        "field, value",
        [
            ("principal", "0"),
            ("principal", "-100"),
            ("annual_rate_percent", "-1"),
            ("term_months", 0),
            ("term_months", "12"),
            ("monthly_insurance", "-5"),
        ],
    )
    def test_loan_rejects_invalid_terms(self, field: str, value) -> None:
        terms = {
            "id": "x",
            "principal": "1000",
            "annual_rate_percent": "5",
            "term_months": 12,
            "start_date": date(2024, 1, 1),
        }
        terms[field] = value
        with pytest.raises(InvalidScheduleParametersError):
            Loan(**terms)

    def test_zero_rate_loan_is_valid(self) -> None:
        loan = Loan(id="x", principal="1000", annual_rate_percent="0", term_months=1, start_date=date(2024, 1, 1))
        assert loan.annual_rate_percent == ZERO

    def test_payment_request_total(self, loan: Loan) -> None:
        request = PaymentRequest(loan=loan, total_amount_paid="100", payment_date=date(2024, 1, 1), extra_principal="25.5")
        assert request.total_received == Decimal("125.5")


class TestValidate:
    def test_generated_plan_is_valid(self, plan: PaymentPlan) -> None:
        plan.validate()

    def test_negative_balance(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan((replace(plan[0], remaining_balance=Decimal("-1")),) + plan.installments[1:])
        with pytest.raises(PlanInvariantError, match="negative"):
            broken.validate()

    def test_total_mismatch(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan((replace(plan[0], total_payment=Decimal("1.00")),) + plan.installments[1:])
        with pytest.raises(PlanInvariantError, match="does not match"):
            broken.validate()

    def test_paid_without_data(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan((replace(plan[0], status=InstallmentStatus.PAID),) + plan.installments[1:])
        with pytest.raises(PlanInvariantError, match="without payment data"):
            broken.validate()

    def test_pending_with_data(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan((replace(plan[0], paid_amount=Decimal("1")),) + plan.installments[1:])
        with pytest.raises(PlanInvariantError, match="PENDING"):
            broken.validate()

    def test_numbering_gap(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan(plan.installments[:3] + plan.installments[4:])
        with pytest.raises(PlanInvariantError, match="does not follow"):
            broken.validate()

    def test_numbering_must_start_at_one(self, plan: PaymentPlan) -> None:
        with pytest.raises(PlanInvariantError, match="start at 1"):
            PaymentPlan(plan.installments[1:]).validate()

    def test_balance_increase(self, plan: PaymentPlan) -> None:
        broken = PaymentPlan(
            plan.installments[:1] + (replace(plan[1], remaining_balance=Decimal("20000")),) + plan.installments[2:]
        )
        with pytest.raises(PlanInvariantError, match="increases"):
            broken.validate()

    def test_open_final_balance(self, plan: PaymentPlan) -> None:
        with pytest.raises(PlanInvariantError, match="closes"):
            PaymentPlan(plan.installments[:6]).validate()

    def test_generation_order(self, plan: PaymentPlan) -> None:
        later = tuple(replace(inst, generation=1) for inst in plan.installments[:6])
        earlier = plan.installments[6:]
        with pytest.raises(PlanInvariantError, match="out of order"):
            PaymentPlan(later + earlier).validate()

    def test_new_generation_number(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 6)
        refinanced = tuple(
            replace(inst, generation=1, payment_number=inst.payment_number + 3) for inst in plan.installments[6:]
        )
        with pytest.raises(PlanInvariantError, match="expected 1 or 7"):
            PaymentPlan(plan.installments[:6] + refinanced).validate()

    def test_superseded_history_may_skip_numbers(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 6)
        history = (plan[0], plan[2], plan[5])
        refinanced = tuple(replace(inst, generation=1) for inst in plan.installments[6:])
        PaymentPlan(history + refinanced).validate()

    def test_superseded_history_must_ascend(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 6)
        history = (plan[0], plan[5], plan[2])
        refinanced = tuple(replace(inst, generation=1) for inst in plan.installments[6:])
        with pytest.raises(PlanInvariantError, match="does not follow"):
            PaymentPlan(history + refinanced).validate()

    def test_superseded_pending_installment(self, loan: Loan, plan: PaymentPlan, pay) -> None:
        plan = pay(plan, loan, 5)
        refinanced = tuple(replace(inst, generation=1) for inst in plan.installments[6:])
        with pytest.raises(PlanInvariantError, match="still PENDING"):
            PaymentPlan(plan.installments[:6] + refinanced).validate()

    def test_installment_defaults(self) -> None:
        inst = Installment(
            payment_number=1,
            due_date=date(2024, 2, 1),
            principal=Decimal("10"),
            interest=ZERO,
            insurance=ZERO,
            total_payment=Decimal("10"),
            remaining_balance=ZERO,
        )
        assert inst.status == InstallmentStatus.PENDING
        assert inst.generation == 0
        assert not inst.is_paid
