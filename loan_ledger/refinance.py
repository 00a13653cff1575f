"""Refinancing of partially paid loans.

A refinance replaces the unpaid remainder of a plan with a fresh schedule
for the outstanding balance, possibly under a different rate, term or
insurance. Paid installments are history and are carried over verbatim.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from .config import DEFAULT_CONFIG, NUMBERING_CONTINUE, NUMBERING_MODES, LedgerConfig
from .data_models import Installment, Loan, PaymentPlan, RefinanceParams
from .engine import generate_schedule
from .exceptions import ConfigurationError, RefinanceWithoutBasisError
from .logging_config import get_logger

logger = get_logger(__name__)


def _paid_history(plan: PaymentPlan) -> List[Installment]:
    # Plan order is generation then payment number
    return [inst for inst in plan if inst.is_paid]


def refinance(
    loan: Loan,
    existing_plan: PaymentPlan,
    params: RefinanceParams,
    *,
    numbering: Optional[str] = None,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> PaymentPlan:
    """Rebuild a loan's plan for the balance in ``params.amount``.

    Without paid history this is a plain schedule generation over
    ``params``. Otherwise the paid installments are kept and a fresh
    schedule is appended as a new generation. Pending installments skipped
    by a relaxed-mode payment on a later one are superseded by the fresh
    schedule and dropped. ``numbering`` (defaulting to
    ``config.refinance_numbering``) decides whether the fresh schedule
    continues after the last paid number or restarts at 1.

    The coordinator does not look up the balance itself: the caller passes
    it as ``params.amount``, normally the remaining balance of the last paid
    installment (see :func:`suggest_refinance_params`).

    Raises
    ------
    RefinanceWithoutBasisError
        If ``params.amount`` is not positive.
    """
    if params.amount <= 0:
        raise RefinanceWithoutBasisError(
            f"Refinance of loan {loan.id} needs a positive amount to finance; got {params.amount}"
        )
    numbering = numbering or config.refinance_numbering
    if numbering not in NUMBERING_MODES:
        raise ConfigurationError(f"Unknown refinance numbering {numbering!r}")

    history = _paid_history(existing_plan)
    if not history:
        logger.info("Loan %s has no payment history; generating a first schedule", loan.id)
        return generate_schedule(
            params.amount,
            params.annual_rate_percent,
            params.term_months,
            params.start_date,
            params.monthly_insurance,
            config=config,
        )

    last_paid = history[-1]
    skipped = [
        inst
        for inst in existing_plan.pending()
        if inst.generation == last_paid.generation and inst.payment_number < last_paid.payment_number
    ]
    if skipped:
        logger.info(
            "Loan %s: %d skipped pending installments superseded by the refinance",
            loan.id,
            len(skipped),
        )
    first_number = last_paid.payment_number + 1 if numbering == NUMBERING_CONTINUE else 1
    fresh = generate_schedule(
        params.amount,
        params.annual_rate_percent,
        params.term_months,
        params.start_date,
        params.monthly_insurance,
        first_payment_number=first_number,
        generation=last_paid.generation + 1,
        config=config,
    )
    logger.info(
        "Refinanced loan %s: kept %d paid installments, %d new installments for %s",
        loan.id,
        len(history),
        len(fresh),
        params.amount,
    )
    return PaymentPlan(tuple(history) + fresh.installments)


def suggest_refinance_params(loan: Loan, plan: PaymentPlan, start_date: date) -> RefinanceParams:
    """Propose refinance terms for a loan.

    The amount is the balance left after the last paid installment, or the
    loan principal when nothing has been paid yet; rate, term and insurance
    default to the loan's current terms.
    """
    paid = sorted(plan.paid(), key=lambda inst: (inst.generation, inst.payment_number))
    amount = paid[-1].remaining_balance if paid else loan.principal
    return RefinanceParams(
        amount=amount,
        annual_rate_percent=loan.annual_rate_percent,
        term_months=loan.term_months,
        start_date=start_date if paid else loan.start_date,
        monthly_insurance=loan.monthly_insurance,
    )
