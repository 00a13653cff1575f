"""JSON serialization of loans, plans and ledger entries.

A plan is stored as one JSON array (a single column in the loan store, a
single file for the CLI). Decimals travel as strings so no precision is
lost, dates as ISO strings and enums as their values.
"""

from __future__ import annotations

import json
from dataclasses import fields
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List

from .data_models import (
    Installment,
    InstallmentStatus,
    Loan,
    PaymentPlan,
)
from .utils import parse_date


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output."""
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def to_dict(obj: Any) -> Dict[str, Any]:
    """Convert a flat dataclass to a JSON-ready dictionary."""
    return {f.name: serialize_value(getattr(obj, f.name)) for f in fields(obj)}


def _optional_decimal(value: Any):
    return None if value is None else Decimal(str(value))


def installment_from_dict(data: Dict[str, Any]) -> Installment:
    return Installment(
        payment_number=int(data["payment_number"]),
        due_date=parse_date(data["due_date"]),
        principal=Decimal(str(data["principal"])),
        interest=Decimal(str(data["interest"])),
        insurance=Decimal(str(data["insurance"])),
        total_payment=Decimal(str(data["total_payment"])),
        remaining_balance=Decimal(str(data["remaining_balance"])),
        status=InstallmentStatus(data.get("status", InstallmentStatus.PENDING.value)),
        paid_amount=_optional_decimal(data.get("paid_amount")),
        paid_date=parse_date(data["paid_date"]) if data.get("paid_date") else None,
        extra_principal_paid=_optional_decimal(data.get("extra_principal_paid")),
        generation=int(data.get("generation", 0)),
    )


def plan_to_list(plan: PaymentPlan) -> List[Dict[str, Any]]:
    return [to_dict(inst) for inst in plan]


def plan_from_list(items: List[Dict[str, Any]]) -> PaymentPlan:
    return PaymentPlan(installment_from_dict(item) for item in items)


def plan_to_json(plan: PaymentPlan, indent: int | None = None) -> str:
    return json.dumps(plan_to_list(plan), indent=indent)


def plan_from_json(text: str) -> PaymentPlan:
    return plan_from_list(json.loads(text) if text else [])


def loan_from_dict(data: Dict[str, Any]) -> Loan:
    return Loan(
        id=str(data["id"]),
        principal=Decimal(str(data["principal"])),
        annual_rate_percent=Decimal(str(data["annual_rate_percent"])),
        term_months=int(data["term_months"]),
        start_date=parse_date(data["start_date"]),
        monthly_insurance=Decimal(str(data.get("monthly_insurance", "0"))),
        lender_name=data.get("lender_name", ""),
        currency=data.get("currency", ""),
    )

