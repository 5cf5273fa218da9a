"""Conversion between loans and their persisted JSON layout.

The whole loan collection is stored as one JSON document::

    {"schema_version": 1, "loans": [...]}

Money values are written as strings so that reading a blob back yields the
exact same ``Decimal`` values. A bare JSON array is read as the layout used
by the original browser widget (schema version 0); those loans are given
fresh ids and their ``paidMonths`` counter is discarded.
"""

from __future__ import annotations

import json
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List
from uuid import uuid4

from .data_models import Loan, Transaction, TransactionKind
from .errors import StoreFormatError
from .utils import decimal_from_str, parse_date, quantize_money

SCHEMA_VERSION = 1


def transaction_to_dict(transaction: Transaction) -> Dict[str, Any]:
    return {
        "date": transaction.date.isoformat(),
        "kind": transaction.kind.value,
        "amount": str(transaction.amount),
    }


def loan_to_dict(loan: Loan) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "name": loan.name,
        "principal": str(loan.principal),
        "annual_rate_percent": str(loan.annual_rate_percent),
        "tenure_months": loan.tenure_months,
        "installment_amount": str(loan.installment_amount),
        "transactions": [transaction_to_dict(t) for t in loan.transactions],
    }


def to_payload(loans: List[Loan]) -> Dict[str, Any]:
    return {"schema_version": SCHEMA_VERSION, "loans": [loan_to_dict(loan) for loan in loans]}


def dumps(loans: List[Loan]) -> str:
    return json.dumps(to_payload(loans))


def _transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    return Transaction(
        date=parse_date(data["date"]),
        kind=TransactionKind(data["kind"]),
        amount=decimal_from_str(data["amount"]),
    )


def _loan_from_dict(data: Dict[str, Any]) -> Loan:
    return Loan(
        id=data["id"],
        name=data["name"],
        principal=decimal_from_str(data["principal"]),
        annual_rate_percent=decimal_from_str(data["annual_rate_percent"]),
        tenure_months=int(data["tenure_months"]),
        installment_amount=decimal_from_str(data["installment_amount"]),
        transactions=[_transaction_from_dict(t) for t in data.get("transactions", [])],
    )


def _legacy_kind(label: str) -> TransactionKind:
    if label == TransactionKind.REGULAR.value:
        return TransactionKind.REGULAR
    if label == TransactionKind.EXTRA.value:
        return TransactionKind.EXTRA
    return TransactionKind.OTHER


def _legacy_money(value: Any) -> Decimal:
    return quantize_money(decimal_from_str(str(value)))


def _legacy_loan_from_dict(data: Dict[str, Any]) -> Loan:
    transactions = [
        Transaction(
            date=parse_date(str(t["date"])),
            kind=_legacy_kind(t.get("type", "")),
            amount=_legacy_money(t["amount"]),
        )
        for t in data.get("transactions") or []
    ]
    return Loan(
        id=uuid4().hex,
        name=data["name"],
        principal=_legacy_money(data["amount"]),
        annual_rate_percent=_legacy_money(data["rate"]),
        tenure_months=int(data["tenure"]),
        installment_amount=_legacy_money(data["emi"]),
        # stable sort, as the widget did before every render
        transactions=sorted(transactions, key=lambda t: t.date),
    )


def from_payload(payload: Any) -> List[Loan]:
    """Build loans from a decoded JSON document.

    Raises
    ------
    StoreFormatError
        If the document has an unknown schema version or malformed records.
    """
    try:
        if isinstance(payload, list):
            return [_legacy_loan_from_dict(item) for item in payload]
        if not isinstance(payload, dict):
            raise StoreFormatError(f"Unexpected loan document of type {type(payload).__name__}")
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            raise StoreFormatError(f"Unsupported schema version: {version!r}")
        return [_loan_from_dict(item) for item in payload.get("loans", [])]
    except StoreFormatError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise StoreFormatError(f"Malformed loan document: {exc}") from exc


def import_payload(payload: Any) -> List[Loan]:
    """Read loans from an exported document as new loans with fresh ids.

    Importing the same document twice yields two independent copies.
    """
    return [replace(loan, id=uuid4().hex) for loan in from_payload(payload)]


def loads(text: str) -> List[Loan]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StoreFormatError(f"Loan document is not valid JSON: {exc}") from exc
    return from_payload(payload)
