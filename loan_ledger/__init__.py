"""Installment-loan amortization and payment-ledger engine."""

from .data_models import (
    Installment,
    InstallmentStatus,
    LedgerEntryKind,
    LedgerEntryRequest,
    Loan,
    PaymentPlan,
    PaymentRequest,
    PaymentResult,
    RefinanceParams,
)
from .engine import calculate_level_payment, generate_schedule
from .payments import apply_payment, split_payment
from .refinance import refinance, suggest_refinance_params

__all__ = [
    "Installment",
    "InstallmentStatus",
    "LedgerEntryKind",
    "LedgerEntryRequest",
    "Loan",
    "PaymentPlan",
    "PaymentRequest",
    "PaymentResult",
    "RefinanceParams",
    "apply_payment",
    "calculate_level_payment",
    "generate_schedule",
    "refinance",
    "split_payment",
    "suggest_refinance_params",
]
