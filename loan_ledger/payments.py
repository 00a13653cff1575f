"""Payment application for the loan ledger.

A payment settles one installment of a plan. The cash received is split
interest-first: the interest and insurance scheduled on the installment are
covered before anything counts as principal, and a shortfall below that
financial cost is tolerated (the principal part floors at zero). Extra
principal paid on top of an installment re-amortizes the remainder of the
plan, keeping the installment amount and shortening the term.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Tuple

from .config import DEFAULT_CONFIG, SETTLEMENT_STRICT, LedgerConfig
from .data_models import (
    Installment,
    LedgerEntryKind,
    LedgerEntryRequest,
    PaymentPlan,
    PaymentRequest,
    PaymentResult,
)
from .engine import reamortize_tail
from .exceptions import (
    InstallmentAlreadyPaidError,
    InvalidPaymentRequestError,
    OutOfOrderSettlementError,
    UnresolvableInstallmentError,
)
from .logging_config import get_logger
from .utils import ZERO, is_negligible, to_money

logger = get_logger(__name__)


def split_payment(installment: Installment, total_received: Decimal) -> Tuple[Decimal, Decimal]:
    """Return ``(financial_cost, capital_part)`` for cash paid on an installment."""
    financial_cost = installment.financial_cost
    capital_part = max(ZERO, total_received - financial_cost)
    return financial_cost, capital_part


def _describe(request: PaymentRequest) -> str:
    name = request.loan.lender_name or request.loan.id
    text = f"Loan payment {name}"
    if request.target_payment_number is not None:
        text += f" (installment #{request.target_payment_number})"
    if request.extra_principal > 0:
        text += " + extra principal"
    return text


def build_ledger_entries(
    request: PaymentRequest,
    installment: Optional[Installment],
    *,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> List[LedgerEntryRequest]:
    """Turn a payment into ledger-entry requests.

    One entry for interest and insurance, one for principal, skipping
    negligible amounts. When nothing can be split (no installment, or both
    parts negligible) a single UNSPLIT entry carries the whole amount so the
    payment is never dropped.
    """
    total_received = to_money(request.total_received)
    description = _describe(request)
    number = request.target_payment_number

    entries: List[LedgerEntryRequest] = []
    if installment is not None:
        financial_cost, capital_part = split_payment(installment, total_received)
        if not is_negligible(financial_cost, config.money_tolerance):
            entries.append(
                LedgerEntryRequest(
                    amount=financial_cost,
                    kind=LedgerEntryKind.INTEREST_AND_INSURANCE,
                    date=request.payment_date,
                    description=f"{description} - interest and insurance",
                    related_payment_number=number,
                )
            )
        if not is_negligible(capital_part, config.money_tolerance):
            entries.append(
                LedgerEntryRequest(
                    amount=capital_part,
                    kind=LedgerEntryKind.PRINCIPAL,
                    date=request.payment_date,
                    description=f"{description} - principal",
                    related_payment_number=number,
                )
            )
    if not entries:
        entries.append(
            LedgerEntryRequest(
                amount=total_received,
                kind=LedgerEntryKind.UNSPLIT,
                date=request.payment_date,
                description=description,
                related_payment_number=number,
            )
        )
    return entries


def _check_request(request: PaymentRequest) -> None:
    if request.total_amount_paid < 0:
        raise InvalidPaymentRequestError(f"Amount paid cannot be negative; got {request.total_amount_paid}")
    if request.extra_principal < 0:
        raise InvalidPaymentRequestError(f"Extra principal cannot be negative; got {request.extra_principal}")


def apply_payment(
    plan: PaymentPlan,
    request: PaymentRequest,
    *,
    config: LedgerConfig = DEFAULT_CONFIG,
) -> PaymentResult:
    """Apply a payment to a plan.

    ``request.loan`` must carry the terms of the plan's current schedule
    (after a refinance, the loan returned by ``Loan.with_terms``): its rate
    and start date drive the re-amortized tail.

    Returns
    -------
    PaymentResult
        The new plan (the input plan is never modified) and the ledger
        entries describing the cash received.

    Raises
    ------
    InvalidPaymentRequestError
        For negative amounts, for an installment that is already PAID and,
        in strict settlement mode, when an earlier installment is pending.
    UnresolvableInstallmentError
        If ``target_payment_number`` is not part of the plan.
    AmortizationDivergenceError
        If extra principal leaves a balance the fixed payment never retires.
    """
    _check_request(request)

    if request.target_payment_number is None:
        logger.info("Unscheduled payment of %s on loan %s", request.total_received, request.loan.id)
        return PaymentResult(plan, build_ledger_entries(request, None, config=config))

    index = plan.index_of(request.target_payment_number)
    if index is None:
        raise UnresolvableInstallmentError(
            f"Installment #{request.target_payment_number} not found in the plan of loan {request.loan.id}"
        )
    target = plan[index]
    if target.is_paid:
        raise InstallmentAlreadyPaidError(f"Installment #{target.payment_number} is already paid")

    earlier_pending = [inst for inst in plan.installments[:index] if not inst.is_paid]
    if earlier_pending and config.settlement_mode == SETTLEMENT_STRICT:
        raise OutOfOrderSettlementError(
            f"Installment #{earlier_pending[0].payment_number} must be paid before #{target.payment_number}"
        )

    entries = build_ledger_entries(request, target, config=config)
    if request.extra_principal > 0:
        new_plan = _reamortize(plan, index, request, config)
    else:
        paid = target.mark_paid(request.total_amount_paid, request.payment_date)
        new_plan = PaymentPlan(plan.installments[:index] + (paid,) + plan.installments[index + 1 :])

    logger.info(
        "Applied payment of %s (extra principal %s) to installment #%d of loan %s",
        request.total_amount_paid,
        request.extra_principal,
        target.payment_number,
        request.loan.id,
    )
    return PaymentResult(new_plan, entries)


def _reamortize(
    plan: PaymentPlan,
    index: int,
    request: PaymentRequest,
    config: LedgerConfig,
) -> PaymentPlan:
    """Settle the plan up to ``index`` and regenerate everything after it."""
    settled: List[Installment] = []
    for inst in plan.installments[:index]:
        if inst.is_paid:
            settled.append(inst)
        else:
            # Sequential settlement: earlier installments count as paid in full
            settled.append(inst.mark_paid(inst.total_payment, request.payment_date))

    target = plan[index]
    new_balance = target.remaining_balance - request.extra_principal
    if new_balance <= config.money_tolerance:
        paid_target = target.mark_paid(
            request.total_amount_paid, request.payment_date, request.extra_principal
        )
        settled.append(_with_balance(paid_target, ZERO))
        logger.info("Loan %s fully settled by installment #%d", request.loan.id, target.payment_number)
        return PaymentPlan(settled)

    paid_target = _with_balance(
        target.mark_paid(request.total_amount_paid, request.payment_date, request.extra_principal),
        to_money(new_balance),
    )
    settled.append(paid_target)
    tail = reamortize_tail(
        paid_target,
        new_balance,
        request.loan.annual_rate_percent,
        target.total_payment,
        target.insurance,
        anchor_date=request.loan.start_date,
        config=config,
    )
    return PaymentPlan(settled + tail)


def _with_balance(installment: Installment, balance: Decimal) -> Installment:
    return replace(installment, remaining_balance=balance)
