"""Coordination between the loan store and the engine.

Every operation reads the current plan with its version, runs the engine
and writes the new plan back with a version check. When another writer got
there first the whole read-apply-write cycle is repeated, up to
``config.max_retries`` extra attempts.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, TypeVar

from loan_ledger.config import LedgerConfig
from loan_ledger.data_models import Loan, PaymentRequest, PaymentResult
from loan_ledger.engine import generate_schedule
from loan_ledger.exceptions import StalePlanError
from loan_ledger.logging_config import get_logger
from loan_ledger.payments import apply_payment
from loan_ledger.refinance import refinance, suggest_refinance_params

from .loan_store import LoanStore, StoredLoan

logger = get_logger(__name__)

T = TypeVar("T")


class LoanLedgerService:
    def __init__(self, store: LoanStore, config: LedgerConfig) -> None:
        self._store = store
        self._config = config

    @property
    def store(self) -> LoanStore:
        return self._store

    def create(self, loan: Loan) -> StoredLoan:
        plan = generate_schedule(
            loan.principal,
            loan.annual_rate_percent,
            loan.term_months,
            loan.start_date,
            loan.monthly_insurance,
            config=self._config,
        )
        return self._store.create_loan(loan, plan)

    def record_payment(
        self,
        loan_id: str,
        total_amount_paid: Decimal,
        payment_date: date,
        extra_principal: Decimal = Decimal("0"),
        target_payment_number: Optional[int] = None,
    ) -> PaymentResult:
        def attempt() -> PaymentResult:
            stored = self._store.get_loan(loan_id)
            request = PaymentRequest(
                loan=stored.loan,
                total_amount_paid=total_amount_paid,
                payment_date=payment_date,
                extra_principal=extra_principal,
                target_payment_number=target_payment_number,
            )
            result = apply_payment(stored.plan, request, config=self._config)
            self._store.save_plan(loan_id, stored.version, result.plan, result.ledger_entries)
            return result

        return self._with_retry(loan_id, attempt)

    def refinance(
        self,
        loan_id: str,
        start_date: date,
        numbering: Optional[str] = None,
        **overrides,
    ) -> StoredLoan:
        """Refinance a loan.

        ``overrides`` may set ``amount``, ``annual_rate_percent``,
        ``term_months`` and ``monthly_insurance``; anything left out comes
        from :func:`suggest_refinance_params`.
        """

        def attempt() -> StoredLoan:
            stored = self._store.get_loan(loan_id)
            params = replace(
                suggest_refinance_params(stored.loan, stored.plan, start_date),
                start_date=start_date,
                **overrides,
            )
            plan = refinance(stored.loan, stored.plan, params, numbering=numbering, config=self._config)
            loan = stored.loan.with_terms(params)
            version = self._store.save_plan(loan_id, stored.version, plan, loan=loan)
            return StoredLoan(loan, plan, version)

        return self._with_retry(loan_id, attempt)

    def _with_retry(self, loan_id: str, operation: Callable[[], T]) -> T:
        attempts = 0
        while True:
            try:
                return operation()
            except StalePlanError:
                attempts += 1
                if attempts > self._config.max_retries:
                    raise
                logger.warning("Concurrent update on loan %s; retrying (%d)", loan_id, attempts)
