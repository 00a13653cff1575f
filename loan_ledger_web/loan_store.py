"""Persistence layer for loans, their payment plans and ledger entries.

The plan of a loan is stored as one JSON array column and replaced as a
whole on every change. Each loan row carries a ``version`` counter: a plan
is only written if the version read alongside it is still current, so two
writers working on the same loan cannot silently overwrite each other. The
ledger entries produced by a payment are written in the same transaction as
the plan. Any SQLAlchemy-compatible URL works; SQLite is the default.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, create_engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from loan_ledger.data_models import LedgerEntryKind, LedgerEntryRequest, Loan, PaymentPlan
from loan_ledger.exceptions import DuplicateLoanError, LoanNotFoundError, StalePlanError
from loan_ledger.logging_config import get_logger
from loan_ledger.serialization import plan_from_json, plan_to_json

logger = get_logger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    lender_name = Column(String(255), nullable=False, default="")
    currency = Column(String(8), nullable=False, default="")
    principal = Column(String(32), nullable=False)
    annual_rate_percent = Column(String(32), nullable=False)
    term_months = Column(Integer, nullable=False)
    monthly_insurance = Column(String(32), nullable=False, default="0")
    start_date = Column(Date, nullable=False)
    plan_json = Column(Text, nullable=False, default="[]")
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


class LedgerEntryModel(Base):
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    amount = Column(String(32), nullable=False)
    kind = Column(String(32), nullable=False)
    entry_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False, default="")
    related_payment_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


@dataclass(frozen=True)
class StoredLoan:
    """A loan as read from the store, with the version its plan was read at."""

    loan: Loan
    plan: PaymentPlan
    version: int


class LoanStore:
    """Database-backed loan repository and ledger sink."""

    def __init__(self, url: str) -> None:
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            self._engine = create_engine(
                url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def create_loan(self, loan: Loan, plan: PaymentPlan) -> StoredLoan:
        row = LoanModel(
            id=loan.id,
            plan_json=plan_to_json(plan),
            version=1,
            **self._terms(loan),
        )
        with self._session_factory() as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                raise DuplicateLoanError(f"Loan {loan.id} already exists") from exc
        logger.info("Stored loan %s with %d installments", loan.id, len(plan))
        return StoredLoan(loan, plan, 1)

    def get_loan(self, loan_id: str) -> StoredLoan:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            return self._to_stored(row)

    def list_loans(self) -> List[StoredLoan]:
        with self._session_factory() as session:
            rows: Iterable[LoanModel] = session.execute(
                select(LoanModel).order_by(LoanModel.start_date.desc(), LoanModel.id.asc())
            ).scalars()
            return [self._to_stored(row) for row in rows]

    def save_plan(
        self,
        loan_id: str,
        expected_version: int,
        plan: PaymentPlan,
        ledger_entries: Iterable[LedgerEntryRequest] = (),
        loan: Optional[Loan] = None,
    ) -> int:
        """Replace the plan of a loan if nobody changed it since ``expected_version``.

        ``loan`` optionally replaces the stored terms (after a refinance).

        Returns
        -------
        int
            The new version.

        Raises
        ------
        StalePlanError
            If the stored version moved on.
        LoanNotFoundError
            If the loan does not exist.
        """
        values = {
            "plan_json": plan_to_json(plan),
            "version": expected_version + 1,
            "updated_at": _utcnow(),
        }
        if loan is not None:
            values.update(self._terms(loan))

        with self._session_factory() as session:
            result = session.execute(
                update(LoanModel)
                .where(LoanModel.id == loan_id, LoanModel.version == expected_version)
                .values(**values)
            )
            if result.rowcount == 0:
                session.rollback()
                if session.get(LoanModel, loan_id) is None:
                    raise LoanNotFoundError(f"Loan {loan_id} not found")
                raise StalePlanError(
                    f"Plan of loan {loan_id} changed since version {expected_version}"
                )
            for entry in ledger_entries:
                session.add(
                    LedgerEntryModel(
                        loan_id=loan_id,
                        amount=str(entry.amount),
                        kind=entry.kind.value,
                        entry_date=entry.date,
                        description=entry.description,
                        related_payment_number=entry.related_payment_number,
                    )
                )
            session.commit()
        logger.debug("Saved plan of loan %s at version %d", loan_id, expected_version + 1)
        return expected_version + 1

    def list_ledger_entries(self, loan_id: str) -> List[LedgerEntryRequest]:
        with self._session_factory() as session:
            rows = session.execute(
                select(LedgerEntryModel)
                .where(LedgerEntryModel.loan_id == loan_id)
                .order_by(LedgerEntryModel.id.asc())
            ).scalars()
            return [
                LedgerEntryRequest(
                    amount=Decimal(row.amount),
                    kind=LedgerEntryKind(row.kind),
                    date=row.entry_date,
                    description=row.description,
                    related_payment_number=row.related_payment_number,
                )
                for row in rows
            ]

    def delete_loan(self, loan_id: str) -> None:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            session.execute(
                LedgerEntryModel.__table__.delete().where(LedgerEntryModel.loan_id == loan_id)
            )
            session.delete(row)
            session.commit()

    @staticmethod
    def _terms(loan: Loan) -> dict:
        return {
            "lender_name": loan.lender_name,
            "currency": loan.currency,
            "principal": str(loan.principal),
            "annual_rate_percent": str(loan.annual_rate_percent),
            "term_months": loan.term_months,
            "monthly_insurance": str(loan.monthly_insurance),
            "start_date": loan.start_date,
        }

    @staticmethod
    def _to_stored(row: LoanModel) -> StoredLoan:
        loan = Loan(
            id=row.id,
            principal=Decimal(row.principal),
            annual_rate_percent=Decimal(row.annual_rate_percent),
            term_months=row.term_months,
            start_date=row.start_date,
            monthly_insurance=Decimal(row.monthly_insurance),
            lender_name=row.lender_name,
            currency=row.currency,
        )
        return StoredLoan(loan, plan_from_json(row.plan_json), row.version)

