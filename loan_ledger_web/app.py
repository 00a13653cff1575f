import os
from decimal import Decimal
from uuid import uuid4

from flask import Flask, jsonify, request

from loan_ledger.config import LedgerConfig
from loan_ledger.data_models import Loan
from loan_ledger.exceptions import (
    AmortizationDivergenceError,
    DuplicateLoanError,
    InvalidPaymentRequestError,
    InvalidScheduleParametersError,
    LoanLedgerError,
    LoanNotFoundError,
    RefinanceWithoutBasisError,
    StalePlanError,
    UnresolvableInstallmentError,
)
from loan_ledger.logging_config import get_logger, setup_logging
from loan_ledger.serialization import plan_to_list, serialize_value, to_dict
from loan_ledger.utils import decimal_from_str, parse_date
from loan_ledger_web.loan_store import LoanStore, StoredLoan
from loan_ledger_web.service import LoanLedgerService

logger = get_logger(__name__)

ERROR_STATUS = {
    LoanNotFoundError: 404,
    UnresolvableInstallmentError: 404,
    StalePlanError: 409,
    DuplicateLoanError: 409,
    AmortizationDivergenceError: 422,
    RefinanceWithoutBasisError: 422,
    InvalidScheduleParametersError: 400,
    InvalidPaymentRequestError: 400,
}


class BadRequest(ValueError):
    pass


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def _decimal_field(payload: dict, name: str, default=None) -> Decimal:
    value = payload.get(name, default)
    if value is None:
        raise BadRequest(f"Missing field: {name}")
    try:
        return decimal_from_str(str(value))
    except ValueError as exc:
        raise BadRequest(str(exc)) from exc


def _date_field(payload: dict, name: str):
    value = payload.get(name)
    if not value:
        raise BadRequest(f"Missing field: {name}")
    try:
        return parse_date(value)
    except ValueError as exc:
        raise BadRequest(str(exc)) from exc


def _int_field(payload: dict, name: str, required: bool = True):
    value = payload.get(name)
    if value is None:
        if required:
            raise BadRequest(f"Missing field: {name}")
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f"Invalid integer for {name}: {value}") from exc


def _serialize_loan(stored: StoredLoan) -> dict:
    return {
        "loan": to_dict(stored.loan),
        "version": stored.version,
        "summary": serialize_value(stored.plan.summary()),
        "plan": plan_to_list(stored.plan),
    }


def create_app(config: LedgerConfig = None, store: LoanStore = None) -> Flask:
    config = config or LedgerConfig.from_env()
    store = store or LoanStore(config.database_url)
    service = LoanLedgerService(store, config)

    app = Flask(__name__)
    app.config["LEDGER_CONFIG"] = config
    app.extensions["loan_ledger"] = service

    @app.errorhandler(BadRequest)
    def handle_bad_request(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(LoanLedgerError)
    def handle_ledger_error(exc):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
        if status >= 409:
            logger.warning("%s: %s", type(exc).__name__, exc)
        return jsonify({"error": str(exc), "type": type(exc).__name__}), status

    @app.get("/loans")
    def list_loans():
        loans = service.store.list_loans()
        return jsonify(
            [
                {"loan": to_dict(s.loan), "version": s.version, "summary": serialize_value(s.plan.summary())}
                for s in loans
            ]
        )

    @app.post("/loans")
    def create_loan():
        payload = _json_payload()
        loan = Loan(
            id=str(payload.get("id") or uuid4().hex),
            principal=_decimal_field(payload, "principal"),
            annual_rate_percent=_decimal_field(payload, "annual_rate_percent", "0"),
            term_months=_int_field(payload, "term_months"),
            start_date=_date_field(payload, "start_date"),
            monthly_insurance=_decimal_field(payload, "monthly_insurance", "0"),
            lender_name=payload.get("lender_name", ""),
            currency=payload.get("currency", ""),
        )
        stored = service.create(loan)
        return jsonify(_serialize_loan(stored)), 201

    @app.get("/loans/<loan_id>")
    def get_loan(loan_id):
        return jsonify(_serialize_loan(service.store.get_loan(loan_id)))

    @app.delete("/loans/<loan_id>")
    def delete_loan(loan_id):
        service.store.delete_loan(loan_id)
        return "", 204

    @app.post("/loans/<loan_id>/payments")
    def record_payment(loan_id):
        payload = _json_payload()
        result = service.record_payment(
            loan_id,
            total_amount_paid=_decimal_field(payload, "total_amount_paid"),
            payment_date=_date_field(payload, "payment_date"),
            extra_principal=_decimal_field(payload, "extra_principal", "0"),
            target_payment_number=_int_field(payload, "target_payment_number", required=False),
        )
        return jsonify(
            {
                "ledger_entries": [to_dict(e) for e in result.ledger_entries],
                "summary": serialize_value(result.plan.summary()),
                "plan": plan_to_list(result.plan),
            }
        )

    @app.post("/loans/<loan_id>/refinance")
    def refinance_loan(loan_id):
        payload = _json_payload()
        overrides = {}
        for name in ("amount", "annual_rate_percent", "monthly_insurance"):
            if payload.get(name) is not None:
                overrides[name] = _decimal_field(payload, name)
        if payload.get("term_months") is not None:
            overrides["term_months"] = _int_field(payload, "term_months")
        stored = service.refinance(
            loan_id,
            start_date=_date_field(payload, "start_date"),
            numbering=payload.get("numbering"),
            **overrides,
        )
        return jsonify(_serialize_loan(stored))

    @app.get("/loans/<loan_id>/ledger")
    def list_ledger(loan_id):
        service.store.get_loan(loan_id)
        return jsonify([to_dict(e) for e in service.store.list_ledger_entries(loan_id)])

    return app


if __name__ == "__main__":
    ledger_config = LedgerConfig.from_env()
    setup_logging(ledger_config.log_level)
    print("Starting Loan Ledger API...")
    create_app(ledger_config).run(host="0.0.0.0", port=int(os.environ.get("PORT", "8710")), debug=True)
