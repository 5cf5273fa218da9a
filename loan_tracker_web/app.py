import os
from datetime import date
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from loan_tracker.data_models import Closure, ClosureStatus, Loan, LoanUpdate, PortfolioSummary
from loan_tracker.engine import paid_principal, portfolio_summary, progress_percent, transactions_with_remaining
from loan_tracker.errors import LoanNotFoundError, StoreFormatError, ValidationError
from loan_tracker.ledger import (
    append_transaction,
    create_loan,
    delete_loan,
    delete_transaction,
    find_loan,
    pay_extra_installment,
    pay_installment,
    replace_loan,
    summarize,
)
from loan_tracker.store import create_store_from_env
from loan_tracker.utils import parse_date

app = Flask(__name__)
loan_store = create_store_from_env(os.environ.get("LOAN_TRACKER_DATABASE_URL"))


def _closure_for_view(closure: Closure) -> Dict[str, Any]:
    if isinstance(closure, ClosureStatus):
        return {"status": closure.value, "date": None}
    return {"status": "open", "date": closure.isoformat()}


def _serialize_loan(update: LoanUpdate) -> Dict[str, Any]:
    loan = update.loan
    return {
        "id": loan.id,
        "name": loan.name,
        "principal": float(loan.principal),
        "rate": float(loan.annual_rate_percent),
        "tenure": loan.tenure_months,
        "emi": float(loan.installment_amount),
        "paid_months": loan.paid_months,
        "outstanding": float(update.outstanding),
        "paid_principal": float(paid_principal(loan)),
        "progress": float(progress_percent(loan)),
        "remaining": update.remaining_installments,
        "closure": _closure_for_view(update.closure),
    }


def _serialize_transactions(loan: Loan) -> list[dict]:
    """Convert the audit trail into JSON-serialisable dictionaries."""
    serialized = []
    for row in transactions_with_remaining(loan):
        serialized.append(
            {
                "index": row.index,
                "date": row.date.isoformat(),
                "type": row.kind.value,
                "amount": float(row.amount),
                "principal_after": float(row.principal_after),
                "remaining": row.remaining_installments,
            }
        )
    return serialized


def _serialize_summary(summary: PortfolioSummary) -> Dict[str, Any]:
    return {
        "total_loans": summary.total_loans,
        "total_outstanding": float(summary.total_outstanding),
        "total_monthly_emi": float(summary.total_monthly_installment),
        "overall_closure": summary.overall_closure.isoformat() if summary.overall_closure else None,
    }


def _loan_detail(update: LoanUpdate) -> Dict[str, Any]:
    payload = _serialize_loan(update)
    payload["transactions"] = _serialize_transactions(update.loan)
    return payload


def _optional_date(value: Optional[str]) -> Optional[date]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Date must be a YYYY-MM-DD string; got {value!r}")
    return parse_date(value)


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@app.errorhandler(ValidationError)
def handle_validation_error(exc: ValidationError):
    status = 404 if isinstance(exc, LoanNotFoundError) else 400
    return jsonify({"error": str(exc)}), status


@app.errorhandler(StoreFormatError)
def handle_store_error(exc: StoreFormatError):
    app.logger.error("Stored loans cannot be read: %s", exc)
    return jsonify({"error": "Stored loans cannot be read"}), 500


@app.get("/api/loans")
def list_loans():
    loans = loan_store.load()
    return jsonify(
        {
            "loans": [_serialize_loan(summarize(loan)) for loan in loans],
            "summary": _serialize_summary(portfolio_summary(loans)),
        }
    )


@app.post("/api/loans")
def add_loan():
    form = _json_body()
    tenure = form.get("tenure")
    if isinstance(tenure, str) and tenure.strip().isdigit():
        tenure = int(tenure)
    loan = create_loan(form.get("name", ""), form.get("principal", ""), form.get("rate", ""), tenure)
    loans = loan_store.load()
    loan_store.save([*loans, loan])
    return jsonify(_loan_detail(summarize(loan))), 201


@app.get("/api/loans/<loan_id>")
def get_loan(loan_id: str):
    loan = find_loan(loan_store.load(), loan_id)
    return jsonify(_loan_detail(summarize(loan)))


@app.delete("/api/loans/<loan_id>")
def remove_loan(loan_id: str):
    loan_store.save(delete_loan(loan_store.load(), loan_id))
    return "", 204


@app.post("/api/loans/<loan_id>/transactions")
def add_transaction(loan_id: str):
    form = _json_body()
    loans = loan_store.load()
    loan = find_loan(loans, loan_id)
    kind = str(form.get("kind", "regular")).lower()
    when = _optional_date(form.get("date"))
    amount = form.get("amount")
    if kind == "regular":
        update = pay_installment(loan, when) if amount is None else append_transaction(loan, "regular", amount, when)
    elif kind == "extra":
        update = pay_extra_installment(loan, when, amount)
    elif kind == "other":
        if amount is None:
            raise ValidationError("Amount is required for other payments")
        update = append_transaction(loan, "other", amount, when)
    else:
        raise ValidationError(f"Unknown transaction kind: {kind}")
    loan_store.save(replace_loan(loans, update.loan))
    return jsonify(_loan_detail(update)), 201


@app.delete("/api/loans/<loan_id>/transactions/<int:index>")
def remove_transaction(loan_id: str, index: int):
    loans = loan_store.load()
    update = delete_transaction(find_loan(loans, loan_id), index)
    loan_store.save(replace_loan(loans, update.loan))
    return jsonify(_loan_detail(update))


@app.get("/api/summary")
def summary():
    return jsonify(_serialize_summary(portfolio_summary(loan_store.load())))


if __name__ == "__main__":
    print("Starting Loan Tracker API...")
    app.run(host="0.0.0.0", port=8710, debug=True)
