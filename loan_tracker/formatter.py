"""Output helpers for the loan tracker.

This module provides simple functions to render loans, their audit trail and
the portfolio summary in a tabular text format using built-in printing and
string formatting.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from .data_models import ClosureStatus, Closure, LoanUpdate, PortfolioSummary, TransactionSnapshot
from .engine import paid_principal, progress_percent
from .utils import format_remaining


def format_closure(closure: Closure) -> str:
    if closure == ClosureStatus.INDETERMINATE:
        return "N/A"
    if isinstance(closure, ClosureStatus):
        return closure.value
    return closure.isoformat()


def print_loan(update: LoanUpdate) -> None:
    """Print one loan with its derived figures."""
    loan = update.loan
    print(f"{loan.name} [{loan.id}]")
    print("-" * 72)
    print(f"Original principal : {loan.principal:.2f}")
    print(f"Interest rate      : {loan.annual_rate_percent:.2f}%")
    print(f"Original tenure    : {loan.tenure_months} months")
    print(f"Monthly EMI        : {loan.installment_amount:.2f}")
    print(f"Outstanding        : {update.outstanding:.2f}")
    print(f"Principal paid     : {paid_principal(loan):.2f} ({progress_percent(loan):.2f}%)")
    print(f"EMIs paid          : {loan.paid_months}")
    print(f"Remaining EMIs     : {format_remaining(update.remaining_installments)}")
    print(f"Expected closure   : {format_closure(update.closure)}")
    print("-" * 72)


def print_transactions(rows: Iterable[TransactionSnapshot]) -> None:
    """Print the audit trail as a simple table."""
    rows = list(rows)
    if not rows:
        print("No transactions yet")
        return
    headers = ["#", "Date", "Type", "Amount", "Principal", "Remaining"]
    print("\t".join(headers))
    for row in rows:
        print(
            "\t".join(
                [
                    str(row.index),
                    row.date.isoformat(),
                    row.kind.value,
                    f"{row.amount:.2f}",
                    f"{row.principal_after:.2f}",
                    format_remaining(row.remaining_installments),
                ]
            )
        )


def print_loan_list(updates: Iterable[LoanUpdate]) -> None:
    print(f"{'Id':32s} {'Name':20s} {'Outstanding':>12s} {'EMI':>10s} {'Left':>5s} {'Closure':>12s}")
    for update in updates:
        loan = update.loan
        print(
            f"{loan.id:32s} {loan.name[:20]:20s} {update.outstanding:12.2f} "
            f"{loan.installment_amount:10.2f} {format_remaining(update.remaining_installments):>5s} "
            f"{format_closure(update.closure):>12s}"
        )


def print_summary(summary: PortfolioSummary) -> None:
    """Print totals across all loans."""
    overall = summary.overall_closure
    print("Summary")
    print("-" * 72)
    print(f"Total loans        : {summary.total_loans}")
    print(f"Total outstanding  : {summary.total_outstanding:.2f}")
    print(f"Total monthly EMI  : {summary.total_monthly_installment:.2f}")
    print(f"Expected closure   : {overall.isoformat() if isinstance(overall, date) else 'All Loans Closed'}")
    print("-" * 72)
