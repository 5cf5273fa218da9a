"""Amortization engine for the loan tracker.

This module turns a loan's payment history into the figures the tracker
shows: outstanding principal, the number of installments still needed, the
projected closure date and a per-transaction audit trail. Every function here
is pure. Nothing is cached on the loan; each call replays the transactions
from the original principal.

Payments are applied in date order with one of three rules:

* a regular installment pays the month's interest first and the rest reduces
  the principal;
* an extra installment is treated as one regular installment (using the
  loan's fixed installment amount) plus a direct principal reduction of
  whatever exceeds that installment;
* any other payment reduces the principal directly.

With a zero interest rate every payment reduces the principal directly.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_CEILING, Decimal, getcontext
from typing import Iterable, Iterator, List, Optional, Tuple

from .data_models import (
    Closure,
    ClosureStatus,
    Loan,
    PortfolioSummary,
    Transaction,
    TransactionKind,
    TransactionSnapshot,
)
from .errors import ValidationError
from .utils import add_months, quantize_money

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Returned by remaining_installments when the installment never catches up
# with the interest.
UNBOUNDED = None


def calculate_installment(principal: Decimal, annual_rate_percent: Decimal, tenure_months: int) -> Decimal:
    """Return the fixed monthly installment for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate and
    ``n`` is the number of payments. When the interest rate is zero, the
    payment simplifies to ``P / n``. The result is not rounded.
    """
    if tenure_months <= 0:
        raise ValidationError("Tenure must be positive")
    rate_per_month = annual_rate_percent / Decimal(12) / Decimal(100)
    if rate_per_month == 0:
        return principal / Decimal(tenure_months)
    factor = (1 + rate_per_month) ** tenure_months
    return principal * (rate_per_month * factor) / (factor - 1)


def sorted_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Return transactions in date order, keeping insertion order on ties."""
    return sorted(transactions, key=lambda t: t.date)


def _checked(principal: Decimal, loan: Loan) -> Decimal:
    if principal.is_nan() or principal < 0:
        logger.error(
            "Computation diverged for loan %s (%s): principal=%s; clamping to zero",
            loan.id,
            loan.name,
            principal,
        )
        return ZERO
    return principal


def _apply_installment(principal: Decimal, payment: Decimal, rate_per_month: Decimal) -> Decimal:
    interest = principal * rate_per_month
    principal_component = max(ZERO, payment - interest)
    return max(ZERO, principal - principal_component)


def apply_transaction(principal: Decimal, transaction: Transaction, loan: Loan) -> Decimal:
    """Return the principal left after applying one transaction."""
    rate_per_month = loan.monthly_rate
    if rate_per_month == 0:
        return max(ZERO, principal - transaction.amount)
    if transaction.kind == TransactionKind.REGULAR:
        return _apply_installment(principal, transaction.amount, rate_per_month)
    if transaction.kind == TransactionKind.EXTRA:
        principal = _apply_installment(principal, loan.installment_amount, rate_per_month)
        extra = transaction.amount - loan.installment_amount
        if extra > 0:
            principal = max(ZERO, principal - extra)
        return principal
    return max(ZERO, principal - transaction.amount)


def _replay(loan: Loan) -> Iterator[Tuple[int, Transaction, Decimal]]:
    """Yield ``(index, transaction, principal_after)`` in date order.

    Once the principal reaches zero the loan is closed: later transactions
    are still yielded, but they no longer change the principal.
    """
    principal = _checked(loan.principal, loan)
    for index, transaction in enumerate(sorted_transactions(loan.transactions)):
        if principal > 0:
            principal = _checked(apply_transaction(principal, transaction, loan), loan)
        yield index, transaction, principal


def compute_outstanding(loan: Loan) -> Decimal:
    """Return the outstanding principal, rounded to cents."""
    principal = _checked(loan.principal, loan)
    for transaction in sorted_transactions(loan.transactions):
        if principal <= 0:
            break
        principal = _checked(apply_transaction(principal, transaction, loan), loan)
    return quantize_money(principal)


def remaining_installments(principal: Decimal, loan: Loan) -> Optional[int]:
    """Return how many installments are needed to clear ``principal``.

    Returns ``0`` for a cleared loan and ``UNBOUNDED`` (``None``) when the
    installment does not cover the interest accruing on ``principal``.
    """
    if principal <= 0:
        return 0
    rate_per_month = loan.monthly_rate
    installment = loan.installment_amount
    if installment <= 0:
        return UNBOUNDED
    if rate_per_month == 0:
        return int((principal / installment).to_integral_value(rounding=ROUND_CEILING))
    interest = principal * rate_per_month
    if installment <= interest:
        return UNBOUNDED
    n = (installment / (installment - interest)).ln() / (1 + rate_per_month).ln()
    return int(n.to_integral_value(rounding=ROUND_CEILING))


def closure_date(loan: Loan, today: Optional[date] = None) -> Closure:
    """Project the date on which the loan will be cleared.

    Counts the remaining installments forward in calendar months from the
    latest transaction, or from ``today`` when nothing has been paid yet.
    """
    remaining = remaining_installments(compute_outstanding(loan), loan)
    if remaining == 0:
        return ClosureStatus.CLOSED
    if remaining is UNBOUNDED:
        return ClosureStatus.INDETERMINATE
    history = sorted_transactions(loan.transactions)
    base = history[-1].date if history else (today or date.today())
    return add_months(base, remaining)


def transactions_with_remaining(loan: Loan) -> List[TransactionSnapshot]:
    """Build the audit trail: one row per transaction, in date order."""
    rows: List[TransactionSnapshot] = []
    for index, transaction, principal in _replay(loan):
        principal_after = quantize_money(principal)
        rows.append(
            TransactionSnapshot(
                index=index,
                date=transaction.date,
                kind=transaction.kind,
                amount=transaction.amount,
                principal_after=principal_after,
                remaining_installments=remaining_installments(principal_after, loan),
            )
        )
    return rows


def paid_principal(loan: Loan) -> Decimal:
    return quantize_money(loan.principal - compute_outstanding(loan))


def progress_percent(loan: Loan) -> Decimal:
    """Share of the original principal already repaid, in percent."""
    if loan.principal <= 0:
        return ZERO
    return quantize_money(paid_principal(loan) / loan.principal * 100)


def portfolio_summary(loans: Iterable[Loan], today: Optional[date] = None) -> PortfolioSummary:
    """Aggregate outstanding principal and installments across loans.

    The overall closure is the latest finite closure date; closed and
    indeterminate loans do not contribute to it.
    """
    loans = list(loans)
    total_outstanding = ZERO
    total_installment = ZERO
    closures: List[date] = []
    for loan in loans:
        total_outstanding += compute_outstanding(loan)
        total_installment += loan.installment_amount
        closure = closure_date(loan, today)
        if isinstance(closure, date):
            closures.append(closure)
    return PortfolioSummary(
        total_loans=len(loans),
        total_outstanding=quantize_money(total_outstanding),
        total_monthly_installment=quantize_money(total_installment),
        overall_closure=max(closures) if closures else None,
    )
