"""Data models for the loan ledger.

This module defines the dataclasses exchanged with the engine: the loan and
its static terms, the installments of a payment plan, the plan itself, the
payment and refinance requests received from callers and the ledger-entry
requests handed back to them. Installments and plans are frozen; every
engine operation returns a new plan instead of editing one in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from .exceptions import InvalidScheduleParametersError, PlanInvariantError
from .utils import CENT, ZERO


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def check_loan_terms(
    principal: Decimal,
    annual_rate_percent: Decimal,
    term_months: int,
    monthly_insurance: Decimal,
) -> None:
    """Raise ``InvalidScheduleParametersError`` for out-of-range loan terms."""
    if isinstance(term_months, bool) or not isinstance(term_months, int) or term_months <= 0:
        raise InvalidScheduleParametersError(f"Term must be a positive number of months; got {term_months}")
    if principal <= 0:
        raise InvalidScheduleParametersError(f"Principal must be positive; got {principal}")
    if annual_rate_percent < 0:
        raise InvalidScheduleParametersError(f"Interest rate cannot be negative; got {annual_rate_percent}")
    if monthly_insurance < 0:
        raise InvalidScheduleParametersError(f"Insurance cannot be negative; got {monthly_insurance}")


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class LedgerEntryKind(str, Enum):
    INTEREST_AND_INSURANCE = "INTEREST_AND_INSURANCE"
    PRINCIPAL = "PRINCIPAL"
    UNSPLIT = "UNSPLIT"


@dataclass(frozen=True)
class RefinanceParams:
    """Terms of a rebuilt schedule.

    ``amount`` is the outstanding balance to finance; the caller computes it
    (see :func:`loan_ledger.refinance.suggest_refinance_params`).
    """

    amount: Decimal
    annual_rate_percent: Decimal
    term_months: int
    start_date: date
    monthly_insurance: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _as_decimal(self.amount))
        object.__setattr__(self, "annual_rate_percent", _as_decimal(self.annual_rate_percent))
        object.__setattr__(self, "monthly_insurance", _as_decimal(self.monthly_insurance))


@dataclass(frozen=True)
class Loan:
    """Identity and static terms of a debt obligation.

    Attributes
    ----------
    id: str
        Caller-assigned identifier.
    principal: Decimal
        Original financed amount.
    annual_rate_percent: Decimal
        Nominal annual rate in percent; zero means interest-free.
    term_months: int
        Number of monthly installments.
    start_date: date
        Due dates of the current schedule are computed relative to this
        date (first due date is one month later). A refinance moves it to
        the start date of the new schedule.
    monthly_insurance: Decimal
        Constant insurance charged with every installment.

    Raises
    ------
    InvalidScheduleParametersError
        If principal, rate, term or insurance is out of range.
    """

    id: str
    principal: Decimal
    annual_rate_percent: Decimal
    term_months: int
    start_date: date
    monthly_insurance: Decimal = ZERO
    lender_name: str = ""
    currency: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "principal", _as_decimal(self.principal))
        object.__setattr__(self, "annual_rate_percent", _as_decimal(self.annual_rate_percent))
        object.__setattr__(self, "monthly_insurance", _as_decimal(self.monthly_insurance))
        check_loan_terms(self.principal, self.annual_rate_percent, self.term_months, self.monthly_insurance)

    def with_terms(self, params: RefinanceParams) -> "Loan":
        """Return a copy of the loan carrying refinanced rate, term, insurance and start date."""
        return replace(
            self,
            annual_rate_percent=params.annual_rate_percent,
            term_months=params.term_months,
            start_date=params.start_date,
            monthly_insurance=params.monthly_insurance,
        )


@dataclass(frozen=True)
class Installment:
    """One scheduled cash-flow event of a payment plan.

    ``remaining_balance`` is the balance immediately after the installment.
    The payment fields (``paid_amount``, ``paid_date`` and
    ``extra_principal_paid``) are only set once the status is PAID.
    ``generation`` counts the refinances the installment's schedule went
    through.
    """

    payment_number: int
    due_date: date
    principal: Decimal
    interest: Decimal
    insurance: Decimal
    total_payment: Decimal
    remaining_balance: Decimal
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[date] = None
    extra_principal_paid: Optional[Decimal] = None
    generation: int = 0

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @property
    def financial_cost(self) -> Decimal:
        """Interest plus insurance due for this installment."""
        return self.interest + self.insurance

    @property
    def opening_balance(self) -> Decimal:
        return self.remaining_balance + self.principal

    def mark_paid(
        self,
        amount: Decimal,
        paid_on: date,
        extra_principal: Optional[Decimal] = None,
    ) -> "Installment":
        return replace(
            self,
            status=InstallmentStatus.PAID,
            paid_amount=amount,
            paid_date=paid_on,
            extra_principal_paid=extra_principal,
        )


@dataclass(frozen=True)
class PaymentPlan:
    """Ordered, immutable sequence of installments owned by one loan."""

    installments: Tuple[Installment, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "installments", tuple(self.installments))

    def __iter__(self) -> Iterator[Installment]:
        return iter(self.installments)

    def __len__(self) -> int:
        return len(self.installments)

    def __getitem__(self, index: int) -> Installment:
        return self.installments[index]

    def index_of(self, payment_number: int) -> Optional[int]:
        """Return the position of ``payment_number``.

        When numbering restarted after a refinance the number may appear in
        several generations; the most recent generation wins.
        """
        for idx in range(len(self.installments) - 1, -1, -1):
            if self.installments[idx].payment_number == payment_number:
                return idx
        return None

    def find(self, payment_number: int) -> Optional[Installment]:
        idx = self.index_of(payment_number)
        return None if idx is None else self.installments[idx]

    def paid(self) -> List[Installment]:
        return [i for i in self.installments if i.is_paid]

    def pending(self) -> List[Installment]:
        return [i for i in self.installments if not i.is_paid]

    def next_pending(self) -> Optional[Installment]:
        for inst in self.installments:
            if not inst.is_paid:
                return inst
        return None

    @property
    def current_generation(self) -> int:
        return self.installments[-1].generation if self.installments else 0

    @property
    def outstanding_balance(self) -> Decimal:
        """Balance still owed before the next pending installment."""
        nxt = self.next_pending()
        if nxt is None:
            return ZERO
        return nxt.opening_balance

    @property
    def is_settled(self) -> bool:
        return bool(self.installments) and self.next_pending() is None

    @property
    def progress(self) -> Decimal:
        """Share of installments already paid, between 0 and 1."""
        if not self.installments:
            return ZERO
        return Decimal(len(self.paid())) / Decimal(len(self.installments))

    def summary(self) -> Dict[str, object]:
        nxt = self.next_pending()
        return {
            "installments": len(self.installments),
            "paid": len(self.paid()),
            "pending": len(self.pending()),
            "outstanding_balance": self.outstanding_balance,
            "total_interest": sum((i.interest for i in self.installments), ZERO),
            "total_insurance": sum((i.insurance for i in self.installments), ZERO),
            "total_paid": sum(
                ((i.paid_amount or ZERO) + (i.extra_principal_paid or ZERO) for i in self.paid()),
                ZERO,
            ),
            "next_payment_number": nxt.payment_number if nxt else None,
            "next_due_date": nxt.due_date if nxt else None,
            "next_payment": nxt.total_payment if nxt else None,
            "progress": self.progress,
            "is_settled": self.is_settled,
        }

    def validate(self, tolerance: Decimal = CENT) -> None:
        """Check ordering, balance and status invariants.

        Installments of earlier generations are the paid history kept by a
        refinance. Installments that were skipped in relaxed settlement are
        dropped from that history, so inside a superseded generation numbers
        only have to ascend; the current generation must be contiguous.

        Raises
        ------
        PlanInvariantError
            Describing the first violation found.
        """
        current = self.current_generation
        previous: Optional[Installment] = None
        for inst in self.installments:
            superseded = inst.generation < current
            if inst.remaining_balance < 0:
                raise PlanInvariantError(f"Installment #{inst.payment_number} has a negative balance")
            parts = inst.principal + inst.interest + inst.insurance
            if (parts - inst.total_payment).copy_abs() >= tolerance:
                raise PlanInvariantError(
                    f"Installment #{inst.payment_number} total {inst.total_payment} does not match its parts {parts}"
                )
            if inst.is_paid and (inst.paid_amount is None or inst.paid_date is None):
                raise PlanInvariantError(f"Installment #{inst.payment_number} is PAID without payment data")
            if not inst.is_paid and (inst.paid_amount is not None or inst.paid_date is not None):
                raise PlanInvariantError(f"Installment #{inst.payment_number} is PENDING but carries payment data")

            if previous is None:
                if superseded:
                    if inst.payment_number < 1:
                        raise PlanInvariantError("Payment numbers must be positive")
                elif inst.payment_number != 1:
                    raise PlanInvariantError("Payment numbers must start at 1")
            elif inst.generation == previous.generation:
                if superseded:
                    if inst.payment_number <= previous.payment_number:
                        raise PlanInvariantError(
                            f"Payment number {inst.payment_number} does not follow {previous.payment_number}"
                        )
                elif inst.payment_number != previous.payment_number + 1:
                    raise PlanInvariantError(
                        f"Payment number {inst.payment_number} does not follow {previous.payment_number}"
                    )
                if inst.remaining_balance > previous.remaining_balance:
                    raise PlanInvariantError(
                        f"Balance increases at installment #{inst.payment_number}"
                    )
            elif inst.generation < previous.generation:
                raise PlanInvariantError("Installment generations are out of order")
            elif inst.payment_number not in (1, previous.payment_number + 1):
                raise PlanInvariantError(
                    f"Refinanced schedule starts at {inst.payment_number}; "
                    f"expected 1 or {previous.payment_number + 1}"
                )
            if superseded and not inst.is_paid:
                raise PlanInvariantError(
                    f"Installment #{inst.payment_number} of a refinanced schedule is still PENDING"
                )
            previous = inst

        if previous is not None and previous.remaining_balance >= tolerance:
            raise PlanInvariantError(
                f"Plan closes with a balance of {previous.remaining_balance}"
            )


@dataclass(frozen=True)
class PaymentRequest:
    """Cash received for a loan.

    ``extra_principal`` is paid on top of ``total_amount_paid``. Without
    ``target_payment_number`` the payment is treated as unscheduled.
    """

    loan: Loan
    total_amount_paid: Decimal
    payment_date: date
    extra_principal: Decimal = ZERO
    target_payment_number: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_amount_paid", _as_decimal(self.total_amount_paid))
        object.__setattr__(self, "extra_principal", _as_decimal(self.extra_principal))

    @property
    def total_received(self) -> Decimal:
        return self.total_amount_paid + self.extra_principal


@dataclass(frozen=True)
class LedgerEntryRequest:
    """A money movement the caller's bookkeeping should record."""

    amount: Decimal
    kind: LedgerEntryKind
    date: date
    description: str
    related_payment_number: Optional[int] = None


class PaymentResult(NamedTuple):
    plan: PaymentPlan
    ledger_entries: List[LedgerEntryRequest]
