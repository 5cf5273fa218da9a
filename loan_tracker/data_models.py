"""Data models for the loan tracker.

This module defines dataclasses representing the entities the tracker works
with: loans, the payment transactions recorded against them, and the derived
views (audit rows, mutation results and portfolio totals) produced by the
engine. Derived values are never stored on a loan; they are recomputed from
the transaction history whenever they are needed.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union


class TransactionKind(str, Enum):
    """Kind of a recorded payment.

    The values match the labels stored by earlier versions of the tracker so
    that legacy exports can be read back without translation.
    """

    REGULAR = "Regular EMI"
    EXTRA = "Extra EMI"
    OTHER = "Other"


class ClosureStatus(str, Enum):
    """Terminal classifications returned in place of a closure date."""

    CLOSED = "Closed"
    INDETERMINATE = "indeterminate"


@dataclass
class Transaction:
    """A payment recorded against a loan.

    Attributes
    ----------
    date: date
        The day the payment was made.
    kind: TransactionKind
        How the payment is applied to the principal.
    amount: Decimal
        The amount paid, always positive.
    """

    date: date
    kind: TransactionKind
    amount: Decimal


@dataclass
class Loan:
    """A loan and its payment history.

    ``installment_amount`` is fixed when the loan is created and is not
    affected by later transactions. ``transactions`` is kept in date order.
    """

    id: str
    name: str
    principal: Decimal
    annual_rate_percent: Decimal
    tenure_months: int
    installment_amount: Decimal
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def monthly_rate(self) -> Decimal:
        return self.annual_rate_percent / Decimal(12) / Decimal(100)

    @property
    def paid_months(self) -> int:
        """Number of regular installments recorded so far."""
        return sum(1 for t in self.transactions if t.kind == TransactionKind.REGULAR)


@dataclass
class TransactionSnapshot:
    """One row of a loan's audit trail.

    ``remaining_installments`` is ``None`` when the installment no longer
    covers the interest accruing on ``principal_after``.
    """

    index: int
    date: date
    kind: TransactionKind
    amount: Decimal
    principal_after: Decimal
    remaining_installments: Optional[int]


Closure = Union[date, ClosureStatus]


@dataclass
class LoanUpdate:
    """A loan together with the values derived from its history."""

    loan: Loan
    outstanding: Decimal
    remaining_installments: Optional[int]
    closure: Closure


@dataclass
class PortfolioSummary:
    """Totals across every tracked loan.

    ``overall_closure`` is the latest projected closure date among the loans,
    or ``None`` when no loan has a finite closure date.
    """

    total_loans: int
    total_outstanding: Decimal
    total_monthly_installment: Decimal
    overall_closure: Optional[date]
