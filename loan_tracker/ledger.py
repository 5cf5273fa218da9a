"""Mutation entry points for the loan tracker.

The functions in this module validate user input and return new ``Loan``
objects (or a new list of loans) instead of changing the ones they are
given. The caller owns the loan collection and decides when to persist it.
Validation always happens before anything is built, so a rejected call
leaves no trace.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Union
from uuid import uuid4

from .data_models import Loan, LoanUpdate, Transaction, TransactionKind
from .engine import (
    calculate_installment,
    closure_date,
    compute_outstanding,
    remaining_installments,
    sorted_transactions,
)
from .errors import LoanNotFoundError, ValidationError
from .utils import decimal_from_str, quantize_money

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]


def _to_decimal(value: Number, label: str) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = decimal_from_str(str(value))
        except ValidationError as exc:
            raise ValidationError(f"{label}: {exc}") from exc
    if not result.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return result


def _to_kind(kind: Union[TransactionKind, str]) -> TransactionKind:
    if isinstance(kind, TransactionKind):
        return kind
    try:
        return TransactionKind(kind)
    except ValueError:
        pass
    try:
        return TransactionKind[str(kind).upper()]
    except KeyError as exc:
        raise ValidationError(f"Unknown transaction kind: {kind}") from exc


def create_loan(name: str, principal: Number, rate_percent: Number, tenure_months: int) -> Loan:
    """Create a loan with no transactions.

    The installment amount is computed here, once, from the rounded
    principal and rate.

    Raises
    ------
    ValidationError
        If the name is empty, the principal rounds to zero or less, the rate
        is negative, the tenure is not a positive whole number of months, or
        the installment rounds to zero.
    """
    if name is not None and not isinstance(name, str):
        raise ValidationError(f"Loan name must be text; got {name!r}")
    name = (name or "").strip()
    if not name:
        raise ValidationError("Loan name is required")
    principal_value = _to_decimal(principal, "Principal")
    rate_value = _to_decimal(rate_percent, "Interest rate")
    if isinstance(tenure_months, bool) or not isinstance(tenure_months, int):
        raise ValidationError(f"Tenure must be a whole number of months; got {tenure_months!r}")
    if rate_value < 0:
        raise ValidationError("Interest rate cannot be negative")
    principal_value = quantize_money(principal_value)
    rate_value = quantize_money(rate_value)
    if principal_value <= 0:
        raise ValidationError("Principal must be positive")
    if tenure_months <= 0:
        raise ValidationError("Tenure must be positive")

    installment = quantize_money(calculate_installment(principal_value, rate_value, tenure_months))
    if installment <= 0:
        raise ValidationError(f"Tenure of {tenure_months} months is too long for a principal of {principal_value}")
    loan = Loan(
        id=uuid4().hex,
        name=name,
        principal=principal_value,
        annual_rate_percent=rate_value,
        tenure_months=tenure_months,
        installment_amount=installment,
        transactions=[],
    )
    logger.info("Created loan %s (%s): installment %s over %d months", loan.id, name, installment, tenure_months)
    return loan


def summarize(loan: Loan, today: Optional[date] = None) -> LoanUpdate:
    """Recompute the derived values for ``loan``."""
    outstanding = compute_outstanding(loan)
    return LoanUpdate(
        loan=loan,
        outstanding=outstanding,
        remaining_installments=remaining_installments(outstanding, loan),
        closure=closure_date(loan, today),
    )


def append_transaction(
    loan: Loan,
    kind: Union[TransactionKind, str],
    amount: Number,
    when: Optional[date] = None,
) -> LoanUpdate:
    """Record a payment and return the updated loan with its derived values.

    The transaction is placed in date order, after any transaction already
    recorded on the same day. ``when`` defaults to today.
    """
    transaction_kind = _to_kind(kind)
    value = _to_decimal(amount, "Amount")
    if value <= 0:
        raise ValidationError("Transaction amount must be positive")
    if when is not None and not isinstance(when, date):
        raise ValidationError(f"Invalid transaction date: {when!r}")
    if isinstance(when, datetime):
        when = when.date()
    transaction = Transaction(
        date=when or date.today(),
        kind=transaction_kind,
        amount=quantize_money(value),
    )
    updated = replace(loan, transactions=sorted_transactions([*loan.transactions, transaction]))
    logger.info(
        "Recorded %s of %s on %s for loan %s",
        transaction.kind.value,
        transaction.amount,
        transaction.date.isoformat(),
        loan.id,
    )
    return summarize(updated)


def pay_installment(loan: Loan, when: Optional[date] = None) -> LoanUpdate:
    """Record one regular installment of the loan's fixed amount."""
    return append_transaction(loan, TransactionKind.REGULAR, loan.installment_amount, when)


def pay_extra_installment(loan: Loan, when: Optional[date] = None, amount: Optional[Number] = None) -> LoanUpdate:
    """Record an extra installment.

    Without an explicit ``amount`` the payment is twice the installment.
    """
    if amount is None:
        amount = loan.installment_amount * 2
    return append_transaction(loan, TransactionKind.EXTRA, amount, when)


def delete_transaction(loan: Loan, transaction_index: int) -> LoanUpdate:
    """Remove the transaction at ``transaction_index`` in date order."""
    history = sorted_transactions(loan.transactions)
    if isinstance(transaction_index, bool) or not isinstance(transaction_index, int):
        raise ValidationError(f"Invalid transaction index: {transaction_index!r}")
    if not 0 <= transaction_index < len(history):
        raise ValidationError(f"Transaction index {transaction_index} out of range for loan {loan.id}")
    removed = history.pop(transaction_index)
    logger.info(
        "Deleted %s of %s on %s from loan %s",
        removed.kind.value,
        removed.amount,
        removed.date.isoformat(),
        loan.id,
    )
    return summarize(replace(loan, transactions=history))


def find_loan(loans: Sequence[Loan], loan_id: str) -> Loan:
    for loan in loans:
        if loan.id == loan_id:
            return loan
    raise LoanNotFoundError(loan_id)


def replace_loan(loans: Sequence[Loan], loan: Loan) -> List[Loan]:
    """Return a new list with the loan sharing ``loan.id`` swapped out."""
    find_loan(loans, loan.id)
    return [loan if existing.id == loan.id else existing for existing in loans]


def delete_loan(loans: Sequence[Loan], loan_id: str) -> List[Loan]:
    """Return a new list without the loan (and its transactions)."""
    loan = find_loan(loans, loan_id)
    logger.info("Deleted loan %s (%s) with %d transactions", loan.id, loan.name, len(loan.transactions))
    return [existing for existing in loans if existing.id != loan_id]
