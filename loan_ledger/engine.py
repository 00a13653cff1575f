"""Core calculation engine for the loan ledger.

This module implements the schedule arithmetic shared by the payment and
refinance operations: the level (annuity) payment, the generation of a
fresh amortization schedule and the regeneration of a schedule tail after
extra principal has been paid. All amounts are ``Decimal``; every value
stored on an installment is rounded to cents and the balance is carried in
cents, so a schedule always closes at exactly zero.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from .config import DEFAULT_CONFIG, LedgerConfig
from .data_models import Installment, PaymentPlan, check_loan_terms
from .exceptions import AmortizationDivergenceError, InvalidScheduleParametersError
from .logging_config import get_logger
from .utils import ZERO, add_months, monthly_rate, months_between, to_money

logger = get_logger(__name__)


def calculate_level_payment(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    """Return the level monthly payment (principal + interest) for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``. Insurance is not part of the level
    payment.
    """
    if term <= 0:
        raise InvalidScheduleParametersError("Term must be positive")
    if rate_per_month == 0:
        return principal / Decimal(term)
    factor = (1 + rate_per_month) ** term
    return principal * (rate_per_month * factor) / (factor - 1)


def generate_schedule(
    principal: Decimal,
    annual_rate_percent: Decimal,
    term_months: int,
    start_date: date,
    monthly_insurance: Decimal = ZERO,
    *,
    first_payment_number: int = 1,
    generation: int = 0,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> PaymentPlan:
    """Build the amortization schedule of a loan.

    Parameters
    ----------
    principal: Decimal
        Amount financed.
    annual_rate_percent: Decimal
        Nominal annual rate in percent.
    term_months: int
        Number of monthly installments.
    start_date: date
        The first installment is due one calendar month after this date.
    monthly_insurance: Decimal
        Added unchanged to every installment, never amortized.
    first_payment_number: int
        Number of the first installment (refinanced schedules may continue
        the numbering of the paid history).
    generation: int
        Generation stamped on every installment.

    Returns
    -------
    PaymentPlan
        All installments PENDING. The last one absorbs the rounding residual
        so its remaining balance is exactly zero.
    """
    principal = Decimal(principal)
    annual_rate_percent = Decimal(annual_rate_percent)
    monthly_insurance = Decimal(monthly_insurance)
    check_loan_terms(principal, annual_rate_percent, term_months, monthly_insurance)

    rate_per_month = monthly_rate(annual_rate_percent)
    level_payment = to_money(calculate_level_payment(principal, rate_per_month, term_months))
    insurance = to_money(monthly_insurance)

    balance = to_money(principal)
    installments: List[Installment] = []
    for i in range(1, term_months + 1):
        interest = to_money(balance * rate_per_month)
        principal_payment = level_payment - interest
        # Final installment, or a level payment that overshoots: retire the rest
        if i == term_months or principal_payment > balance:
            principal_payment = balance
        balance -= principal_payment
        if balance < config.money_tolerance:
            balance = ZERO

        installments.append(
            Installment(
                payment_number=first_payment_number + i - 1,
                due_date=add_months(start_date, i),
                principal=principal_payment,
                interest=interest,
                insurance=insurance,
                total_payment=principal_payment + interest + insurance,
                remaining_balance=balance,
                generation=generation,
            )
        )
        if balance == ZERO:
            break

    logger.debug(
        "Generated %d installments for principal %s at %s%% (level payment %s)",
        len(installments),
        principal,
        annual_rate_percent,
        level_payment,
    )
    return PaymentPlan(installments)


def reamortize_tail(
    after: Installment,
    balance: Decimal,
    annual_rate_percent: Decimal,
    fixed_total_payment: Decimal,
    monthly_insurance: Decimal,
    *,
    anchor_date: Optional[date] = None,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> List[Installment]:
    """Regenerate the installments following ``after`` for a reduced balance.

    The monthly rate and the fixed total payment of the existing schedule
    are kept, so extra principal shortens the term instead of lowering the
    installment. Numbering continues from ``after.payment_number``. Due
    dates are whole months after ``anchor_date`` (the start date of the
    schedule ``after`` belongs to), so a month-end day clamped on ``after``
    is restored on later installments. Without an anchor they follow
    ``after.due_date``.

    Raises
    ------
    AmortizationDivergenceError
        If the payment does not cover the accruing interest, or the balance
        is still open after ``config.max_reamortization_months`` installments.
    """
    rate_per_month = monthly_rate(annual_rate_percent)
    insurance = to_money(monthly_insurance)
    balance = to_money(balance)
    payment_towards_loan = to_money(fixed_total_payment) - insurance
    anchor = anchor_date or after.due_date
    offset = months_between(anchor, after.due_date)

    tail: List[Installment] = []
    months = 0
    while balance >= config.money_tolerance:
        if months >= config.max_reamortization_months:
            raise AmortizationDivergenceError(
                f"Balance {balance} still open after {months} re-amortized installments"
            )
        months += 1
        interest = to_money(balance * rate_per_month)
        principal_payment = payment_towards_loan - interest
        if principal_payment <= 0:
            raise AmortizationDivergenceError(
                f"Payment of {fixed_total_payment} does not cover interest of {interest} "
                f"on a balance of {balance}"
            )
        if principal_payment > balance:
            principal_payment = balance
        balance -= principal_payment
        if balance < config.money_tolerance:
            balance = ZERO

        tail.append(
            Installment(
                payment_number=after.payment_number + months,
                due_date=add_months(anchor, offset + months),
                principal=principal_payment,
                interest=interest,
                insurance=insurance,
                total_payment=principal_payment + interest + insurance,
                remaining_balance=balance,
                generation=after.generation,
            )
        )

    logger.debug(
        "Re-amortized tail after installment #%d: %d installments",
        after.payment_number,
        len(tail),
    )
    return tail
