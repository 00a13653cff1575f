"""Configuration management for the loan ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal

from .exceptions import ConfigurationError
from .utils import decimal_from_str

SETTLEMENT_RELAXED = "relaxed"
SETTLEMENT_STRICT = "strict"
NUMBERING_CONTINUE = "continue"
NUMBERING_RESTART = "restart"

SETTLEMENT_MODES = (SETTLEMENT_RELAXED, SETTLEMENT_STRICT)
NUMBERING_MODES = (NUMBERING_CONTINUE, NUMBERING_RESTART)


@dataclass(frozen=True)
class LedgerConfig:
    """Engine policies and integration settings.

    Attributes
    ----------
    money_tolerance: Decimal
        Amounts below this value are treated as zero.
    max_reamortization_months: int
        Upper bound on the number of installments a re-amortized tail may
        contain before the balance is declared divergent.
    settlement_mode: str
        ``"relaxed"`` backfills earlier pending installments as PAID when a
        later one is paid with extra principal; ``"strict"`` rejects any
        payment while an earlier installment is still pending.
    refinance_numbering: str
        ``"continue"`` numbers a refinanced schedule after the paid history;
        ``"restart"`` starts it again at 1.
    """

    money_tolerance: Decimal = Decimal("0.01")
    max_reamortization_months: int = 360
    settlement_mode: str = SETTLEMENT_RELAXED
    refinance_numbering: str = NUMBERING_CONTINUE
    log_level: str = "INFO"
    database_url: str = "sqlite:///loan_ledger.sqlite3"
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.money_tolerance <= 0:
            raise ConfigurationError("money_tolerance must be positive")
        if self.max_reamortization_months < 1:
            raise ConfigurationError("max_reamortization_months must be at least 1")
        if self.settlement_mode not in SETTLEMENT_MODES:
            raise ConfigurationError(
                f"settlement_mode must be one of {SETTLEMENT_MODES}; got {self.settlement_mode!r}"
            )
        if self.refinance_numbering not in NUMBERING_MODES:
            raise ConfigurationError(
                f"refinance_numbering must be one of {NUMBERING_MODES}; got {self.refinance_numbering!r}"
            )
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        try:
            tolerance = decimal_from_str(os.getenv("LOAN_LEDGER_TOLERANCE", "0.01"))
            max_months = int(os.getenv("LOAN_LEDGER_MAX_REAMORTIZATION_MONTHS", "360"))
            max_retries = int(os.getenv("LOAN_LEDGER_MAX_RETRIES", "3"))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        return cls(
            money_tolerance=tolerance,
            max_reamortization_months=max_months,
            settlement_mode=os.getenv("LOAN_LEDGER_SETTLEMENT_MODE", SETTLEMENT_RELAXED).lower(),
            refinance_numbering=os.getenv("LOAN_LEDGER_REFINANCE_NUMBERING", NUMBERING_CONTINUE).lower(),
            log_level=os.getenv("LOAN_LEDGER_LOG_LEVEL", "INFO"),
            database_url=os.getenv("LOAN_LEDGER_DATABASE_URL", "sqlite:///loan_ledger.sqlite3"),
            max_retries=max_retries,
        )


DEFAULT_CONFIG = LedgerConfig()
