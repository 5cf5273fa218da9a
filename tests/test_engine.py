import logging
from datetime import date, timedelta
from decimal import Decimal

import pytest

from loan_tracker.data_models import ClosureStatus, Transaction, TransactionKind
from loan_tracker.engine import (
    UNBOUNDED,
    calculate_installment,
    closure_date,
    compute_outstanding,
    paid_principal,
    portfolio_summary,
    progress_percent,
    remaining_installments,
    transactions_with_remaining,
)
from loan_tracker.errors import ValidationError
from loan_tracker.ledger import append_transaction, create_loan, pay_extra_installment, pay_installment
from loan_tracker.utils import add_months, quantize_money


class TestInstallment:
    def test_standard_amortizing_payment(self):
        installment = calculate_installment(Decimal("120000"), Decimal("10"), 12)
        assert quantize_money(installment) == Decimal("10549.91")

    def test_one_percent_a_month(self):
        installment = calculate_installment(Decimal("10000"), Decimal("12"), 12)
        assert quantize_money(installment) == Decimal("888.49")

    def test_zero_rate_splits_principal_evenly(self):
        assert calculate_installment(Decimal("10000"), Decimal("0"), 10) == Decimal("1000")

    def test_rejects_non_positive_tenure(self):
        with pytest.raises(ValidationError):
            calculate_installment(Decimal("10000"), Decimal("12"), 0)


class TestComputeOutstanding:
    def test_no_transactions_returns_principal(self, interest_free_loan, home_loan):
        assert compute_outstanding(interest_free_loan) == Decimal("10000.00")
        assert compute_outstanding(home_loan) == Decimal("10000.00")

    def test_interest_free_regular_installment(self, interest_free_loan, jan_15):
        update = pay_installment(interest_free_loan, jan_15)
        assert compute_outstanding(update.loan) == Decimal("9000.00")
        assert remaining_installments(update.outstanding, update.loan) == 9

    def test_regular_installment_pays_interest_first(self, home_loan, jan_15):
        update = pay_installment(home_loan, jan_15)
        # 100.00 interest, 788.49 principal
        assert update.outstanding == Decimal("9211.51")

    def test_extra_installment_is_installment_plus_principal(self, home_loan, jan_15):
        emi = home_loan.installment_amount
        update = append_transaction(home_loan, TransactionKind.EXTRA, emi * 2, jan_15)
        principal_component = emi - Decimal("100")
        assert update.outstanding == Decimal("10000") - principal_component - emi
        assert update.outstanding == Decimal("8323.02")

    def test_extra_installment_below_emi_adds_nothing_extra(self, home_loan, jan_15):
        update = append_transaction(home_loan, TransactionKind.EXTRA, "100", jan_15)
        assert update.outstanding == Decimal("9211.51")

    def test_interest_free_extra_installment_reduces_by_full_amount(self, interest_free_loan, jan_15):
        update = pay_extra_installment(interest_free_loan, jan_15, "2500")
        assert update.outstanding == Decimal("7500.00")

    def test_other_payment_reduces_principal_directly(self, home_loan, jan_15):
        update = append_transaction(home_loan, TransactionKind.OTHER, "1234.56", jan_15)
        assert update.outstanding == Decimal("8765.44")

    def test_installment_below_interest_leaves_principal(self, make_loan):
        loan = make_loan(transactions=[Transaction(date(2024, 1, 1), TransactionKind.REGULAR, Decimal("500"))])
        assert compute_outstanding(loan) == Decimal("100000.00")

    def test_transactions_after_closure_are_ignored(self, home_loan, jan_15):
        closed = append_transaction(home_loan, TransactionKind.OTHER, "10000", jan_15).loan
        later = pay_installment(closed, jan_15 + timedelta(days=30))
        assert later.outstanding == Decimal("0.00")
        assert remaining_installments(later.outstanding, later.loan) == 0
        assert closure_date(later.loan) == ClosureStatus.CLOSED

    def test_overpayment_floors_at_zero(self, interest_free_loan, jan_15):
        update = append_transaction(interest_free_loan, TransactionKind.OTHER, "25000", jan_15)
        assert update.outstanding == Decimal("0.00")

    def test_processed_in_date_order(self, home_loan):
        in_order = append_transaction(home_loan, TransactionKind.REGULAR, "888.49", date(2024, 1, 1)).loan
        in_order = append_transaction(in_order, TransactionKind.OTHER, "5000", date(2024, 2, 1)).loan
        reversed_ = append_transaction(home_loan, TransactionKind.OTHER, "5000", date(2024, 2, 1)).loan
        reversed_ = append_transaction(reversed_, TransactionKind.REGULAR, "888.49", date(2024, 1, 1)).loan
        assert compute_outstanding(in_order) == compute_outstanding(reversed_)

    def test_is_pure_and_idempotent(self, home_loan, jan_15):
        loan = pay_extra_installment(pay_installment(home_loan, jan_15).loan, jan_15).loan
        history = list(loan.transactions)
        first = compute_outstanding(loan)
        assert compute_outstanding(loan) == first
        assert loan.transactions == history

    def test_monotonically_non_increasing(self, home_loan):
        loan = home_loan
        previous = compute_outstanding(loan)
        payments = [
            (TransactionKind.REGULAR, "888.49"),
            (TransactionKind.EXTRA, "1776.98"),
            (TransactionKind.OTHER, "50"),
            (TransactionKind.REGULAR, "10"),
            (TransactionKind.EXTRA, "3000"),
            (TransactionKind.OTHER, "9999"),
            (TransactionKind.REGULAR, "888.49"),
        ]
        for month, (kind, amount) in enumerate(payments):
            loan = append_transaction(loan, kind, amount, add_months(date(2024, 1, 10), month)).loan
            current = compute_outstanding(loan)
            assert Decimal("0") <= current <= previous
            previous = current
        assert previous == Decimal("0.00")

    @pytest.mark.parametrize("principal", ["-5", "NaN"])
    def test_divergence_is_clamped_and_logged(self, make_loan, principal, caplog):
        loan = make_loan(principal=principal)
        with caplog.at_level(logging.ERROR, logger="loan_tracker.engine"):
            assert compute_outstanding(loan) == Decimal("0")
        assert "diverged" in caplog.text

    @pytest.mark.parametrize("with_history", [False, True])
    def test_divergence_is_logged_once(self, make_loan, with_history, caplog):
        history = [Transaction(date(2024, 1, 1), TransactionKind.OTHER, Decimal("10"))] if with_history else []
        loan = make_loan(principal="-5", transactions=history)
        with caplog.at_level(logging.ERROR, logger="loan_tracker.engine"):
            compute_outstanding(loan)
        assert len([r for r in caplog.records if "diverged" in r.getMessage()]) == 1


class TestRemainingInstallments:
    def test_zero_when_cleared(self, home_loan):
        assert remaining_installments(Decimal("0"), home_loan) == 0

    def test_fresh_loan_needs_full_tenure(self, home_loan):
        assert remaining_installments(home_loan.principal, home_loan) == 12

    def test_interest_free_rounds_up(self, interest_free_loan):
        assert remaining_installments(Decimal("9000.01"), interest_free_loan) == 10

    def test_unbounded_when_installment_does_not_cover_interest(self, make_loan):
        loan = make_loan(installment="1000")
        assert remaining_installments(loan.principal, loan) is UNBOUNDED

    def test_zero_installment_never_amortizes(self, make_loan):
        loan = make_loan(rate="0", installment="0")
        assert remaining_installments(loan.principal, loan) is UNBOUNDED
        assert closure_date(loan) == ClosureStatus.INDETERMINATE


class TestClosureDate:
    def test_closed(self, interest_free_loan, jan_15):
        update = append_transaction(interest_free_loan, TransactionKind.OTHER, "10000", jan_15)
        assert remaining_installments(update.outstanding, update.loan) == 0
        assert closure_date(update.loan) == ClosureStatus.CLOSED

    def test_indeterminate(self, make_loan):
        assert closure_date(make_loan()) == ClosureStatus.INDETERMINATE

    def test_counts_from_latest_transaction(self, interest_free_loan, jan_15):
        update = pay_installment(interest_free_loan, jan_15)
        assert closure_date(update.loan) == date(2024, 10, 15)

    def test_counts_from_today_without_transactions(self, home_loan):
        assert closure_date(home_loan, today=date(2024, 1, 31)) == date(2025, 1, 31)

    def test_month_end_is_clamped(self, interest_free_loan):
        loan = append_transaction(interest_free_loan, TransactionKind.OTHER, "9000", date(2023, 12, 31)).loan
        # one installment left
        assert closure_date(loan) == date(2024, 1, 31)
        loan = append_transaction(interest_free_loan, TransactionKind.OTHER, "9000", date(2024, 1, 31)).loan
        assert closure_date(loan) == date(2024, 2, 29)

    def test_defaults_to_today(self, home_loan):
        assert closure_date(home_loan) == add_months(date.today(), 12)


class TestTransactionsWithRemaining:
    def test_one_row_per_transaction(self, interest_free_loan):
        loan = interest_free_loan
        for day in (1, 2, 3):
            loan = pay_installment(loan, date(2024, 3, day)).loan
        rows = transactions_with_remaining(loan)
        assert [row.remaining_installments for row in rows] == [9, 8, 7]
        assert [row.principal_after for row in rows] == [Decimal("9000.00"), Decimal("8000.00"), Decimal("7000.00")]
        assert [row.index for row in rows] == [0, 1, 2]

    def test_matches_totals_for_every_prefix(self, home_loan):
        loan = home_loan
        payments = [
            (TransactionKind.EXTRA, "2000"),
            (TransactionKind.REGULAR, "888.49"),
            (TransactionKind.OTHER, "300"),
            (TransactionKind.REGULAR, "888.49"),
        ]
        for month, (kind, amount) in enumerate(payments):
            loan = append_transaction(loan, kind, amount, add_months(date(2024, 5, 1), month)).loan
            rows = transactions_with_remaining(loan)
            assert rows[-1].principal_after == compute_outstanding(loan)
            assert rows[-1].remaining_installments == remaining_installments(compute_outstanding(loan), loan)

    def test_rows_after_closure_report_zero(self, home_loan, jan_15):
        loan = append_transaction(home_loan, TransactionKind.OTHER, "10000", jan_15).loan
        loan = pay_installment(loan, jan_15 + timedelta(days=1)).loan
        rows = transactions_with_remaining(loan)
        assert [row.remaining_installments for row in rows] == [0, 0]
        assert rows[-1].principal_after == Decimal("0.00")

    def test_unbounded_rows(self, make_loan):
        loan = make_loan(transactions=[Transaction(date(2024, 1, 1), TransactionKind.REGULAR, Decimal("500"))])
        assert transactions_with_remaining(loan)[0].remaining_installments is None


class TestPortfolio:
    def test_paid_principal_and_progress(self, interest_free_loan, jan_15):
        loan = pay_extra_installment(interest_free_loan, jan_15, "2500").loan
        assert paid_principal(loan) == Decimal("2500.00")
        assert progress_percent(loan) == Decimal("25.00")

    def test_summary_totals(self, interest_free_loan, home_loan, jan_15):
        paid = pay_installment(interest_free_loan, jan_15).loan
        summary = portfolio_summary([paid, home_loan], today=date(2024, 1, 1))
        assert summary.total_loans == 2
        assert summary.total_outstanding == Decimal("19000.00")
        assert summary.total_monthly_installment == Decimal("1888.49")
        assert summary.overall_closure == date(2025, 1, 1)

    def test_closed_loans_do_not_set_closure(self, interest_free_loan, jan_15):
        closed = append_transaction(interest_free_loan, TransactionKind.OTHER, "10000", jan_15).loan
        summary = portfolio_summary([closed])
        assert summary.overall_closure is None
        assert summary.total_outstanding == Decimal("0.00")

    def test_empty_portfolio(self):
        summary = portfolio_summary([])
        assert summary.total_loans == 0
        assert summary.overall_closure is None

    def test_paid_months_counts_regular_installments(self, home_loan, jan_15):
        loan = pay_installment(home_loan, jan_15).loan
        loan = pay_extra_installment(loan, jan_15).loan
        loan = pay_installment(loan, jan_15).loan
        assert loan.paid_months == 2

    def test_rejected_loan_never_reaches_engine(self):
        with pytest.raises(ValidationError):
            create_loan("Bad", 10000, 12, 0)
