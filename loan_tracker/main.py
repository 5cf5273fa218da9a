"""Command-line interface for the loan tracker.

This module uses the ``click`` library to implement a multi-command
interface. Users can record loans and payments, inspect outstanding
principal and projected closure dates, and export a loan's audit trail to
JSON/CSV files. Loans are kept in the database named by ``--database-url``
(or the ``LOAN_TRACKER_DATABASE_URL`` environment variable).
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from .data_models import Loan, LoanUpdate, TransactionKind, TransactionSnapshot
from .engine import portfolio_summary, transactions_with_remaining
from .errors import LoanTrackerError, ValidationError
from .formatter import format_closure, print_loan, print_loan_list, print_summary, print_transactions
from .ledger import (
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
from .serialization import import_payload
from .store import LoanStore, create_store_from_env
from .utils import parse_amount, parse_date

logger = logging.getLogger(__name__)


def _amount_option(value: Optional[str]):
    if value is None:
        return None
    try:
        return parse_amount(value)
    except ValidationError as exc:
        raise click.BadParameter(str(exc))


def _date_option(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValidationError as exc:
        raise click.BadParameter(str(exc))


def _load_loan(store: LoanStore, loan_id: str) -> tuple[List[Loan], Loan]:
    loans = store.load()
    try:
        return loans, find_loan(loans, loan_id)
    except LoanTrackerError as exc:
        raise click.ClickException(str(exc))


def _save_update(store: LoanStore, loans: List[Loan], update: LoanUpdate) -> None:
    store.save(replace_loan(loans, update.loan))
    click.echo(
        f"Outstanding {update.outstanding:.2f}; expected closure {format_closure(update.closure)}"
    )


def snapshot_to_dict(row: TransactionSnapshot) -> Dict[str, Any]:
    return {
        "index": row.index,
        "date": row.date.isoformat(),
        "type": row.kind.value,
        "amount": float(row.amount),
        "principal_after": float(row.principal_after),
        "remaining": row.remaining_installments,
    }


def export_to_json(path: Path, update: LoanUpdate, rows: List[TransactionSnapshot]) -> None:
    """Export a loan summary and its audit trail to a JSON file."""
    loan = update.loan
    data = {
        "loan": {
            "id": loan.id,
            "name": loan.name,
            "principal": float(loan.principal),
            "rate": float(loan.annual_rate_percent),
            "tenure": loan.tenure_months,
            "emi": float(loan.installment_amount),
            "outstanding": float(update.outstanding),
            "remaining": update.remaining_installments,
            "closure": format_closure(update.closure),
        },
        "transactions": [snapshot_to_dict(row) for row in rows],
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, rows: List[TransactionSnapshot]) -> None:
    """Export a loan's audit trail to a CSV file."""
    header = ["Index", "Date", "Type", "Amount", "Principal_After", "Remaining"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in rows:
            writer.writerow(
                [
                    row.index,
                    row.date.isoformat(),
                    row.kind.value,
                    f"{row.amount:.2f}",
                    f"{row.principal_after:.2f}",
                    "N/A" if row.remaining_installments is None else row.remaining_installments,
                ]
            )


@click.group()
@click.option(
    "--database-url",
    "database_url",
    envvar="LOAN_TRACKER_DATABASE_URL",
    help="SQLAlchemy URL of the loan database (default: local SQLite file)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], verbose: bool) -> None:
    """Track loans, payments and projected closure dates."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = create_store_from_env(database_url)


@cli.command("add-loan")
@click.argument("name")
@click.option("--principal", "-p", "principal", required=True, help="Loan amount")
@click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)")
@click.option("--tenure", "-t", "tenure", required=True, type=int, help="Tenure in months")
@click.pass_obj
def add_loan(store: LoanStore, name: str, principal: str, rate: str, tenure: int) -> None:
    """Create a new loan."""
    try:
        loan = create_loan(name, _amount_option(principal), rate.strip().rstrip("%"), tenure)
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
    loans = store.load()
    store.save([*loans, loan])
    click.echo(f"Created loan {loan.id} with monthly EMI {loan.installment_amount:.2f}")


@cli.command()
@click.argument("loan_id")
@click.option("--date", "when", help="Payment date (YYYY-MM-DD); defaults to today")
@click.pass_obj
def pay(store: LoanStore, loan_id: str, when: Optional[str]) -> None:
    """Record a regular EMI."""
    loans, loan = _load_loan(store, loan_id)
    try:
        update = pay_installment(loan, _date_option(when))
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
    _save_update(store, loans, update)


@cli.command("pay-extra")
@click.argument("loan_id")
@click.option("--date", "when", help="Payment date (YYYY-MM-DD); defaults to today")
@click.option("--amount", "amount", help="Amount paid; defaults to twice the EMI")
@click.pass_obj
def pay_extra(store: LoanStore, loan_id: str, when: Optional[str], amount: Optional[str]) -> None:
    """Record an extra EMI (one EMI plus a direct principal payment)."""
    loans, loan = _load_loan(store, loan_id)
    try:
        update = pay_extra_installment(loan, _date_option(when), _amount_option(amount))
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
    _save_update(store, loans, update)


@cli.command("pay-other")
@click.argument("loan_id")
@click.option("--amount", "amount", required=True, help="Amount applied to the principal")
@click.option("--date", "when", help="Payment date (YYYY-MM-DD); defaults to today")
@click.pass_obj
def pay_other(store: LoanStore, loan_id: str, amount: str, when: Optional[str]) -> None:
    """Record a payment that reduces the principal directly."""
    loans, loan = _load_loan(store, loan_id)
    try:
        update = append_transaction(loan, TransactionKind.OTHER, _amount_option(amount), _date_option(when))
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
    _save_update(store, loans, update)


@cli.command("delete-transaction")
@click.argument("loan_id")
@click.argument("index", type=int)
@click.pass_obj
def delete_transaction_command(store: LoanStore, loan_id: str, index: int) -> None:
    """Delete the transaction at INDEX (as listed by ``show``)."""
    loans, loan = _load_loan(store, loan_id)
    try:
        update = delete_transaction(loan, index)
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
    _save_update(store, loans, update)


@cli.command("delete-loan")
@click.argument("loan_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete_loan_command(store: LoanStore, loan_id: str, yes: bool) -> None:
    """Delete a loan together with all its transactions."""
    loans, loan = _load_loan(store, loan_id)
    if not yes:
        click.confirm(f"Delete loan {loan.name} and all its transactions?", abort=True)
    store.save(delete_loan(loans, loan_id))
    click.echo(f"Deleted loan {loan_id}")


@cli.command("list")
@click.pass_obj
def list_loans(store: LoanStore) -> None:
    """List all loans and the portfolio summary."""
    loans = store.load()
    if loans:
        print_loan_list(summarize(loan) for loan in loans)
    print_summary(portfolio_summary(loans))


@cli.command()
@click.argument("loan_id")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_obj
def show(store: LoanStore, loan_id: str, output: Optional[str]) -> None:
    """Show a loan with its transaction history."""
    _, loan = _load_loan(store, loan_id)
    update = summarize(loan)
    rows = transactions_with_remaining(loan)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, update, rows)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, rows)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Loan exported to {path}")
    else:
        print_loan(update)
        print_transactions(rows)


@cli.command("import-legacy")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_legacy(store: LoanStore, source: Path) -> None:
    """Import loans exported from the browser widget's local storage."""
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
        imported = import_payload(payload)
    except (ValueError, LoanTrackerError) as exc:
        raise click.ClickException(f"Cannot import {source}: {exc}")
    store.save([*store.load(), *imported])
    logger.info("Imported %d loans from %s", len(imported), source)
    click.echo(f"Imported {len(imported)} loans")


if __name__ == "__main__":
    cli()
