import os
from datetime import date
from decimal import Decimal

import pytest

# the web module opens its store at import time
os.environ.setdefault("LOAN_TRACKER_DATABASE_URL", "sqlite://")

from loan_tracker.data_models import Loan
from loan_tracker.ledger import create_loan
from loan_tracker.store import LoanStore


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{(tmp_path / 'loans.sqlite3').as_posix()}"


@pytest.fixture
def store(database_url):
    return LoanStore(database_url)


@pytest.fixture
def interest_free_loan() -> Loan:
    return create_loan("Car", 10000, 0, 10)


@pytest.fixture
def home_loan() -> Loan:
    # EMI 888.49 at 1 % a month
    return create_loan("Home", 10000, 12, 12)


@pytest.fixture
def jan_15() -> date:
    return date(2024, 1, 15)


@pytest.fixture
def make_loan():
    """Build loans directly, bypassing validation."""

    def _make(principal="100000", rate="12", tenure=12, installment="500", transactions=None) -> Loan:
        return Loan(
            id="fixed",
            name="Direct",
            principal=Decimal(principal),
            annual_rate_percent=Decimal(rate),
            tenure_months=tenure,
            installment_amount=Decimal(installment),
            transactions=list(transactions or []),
        )

    return _make
