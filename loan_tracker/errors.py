"""Exceptions raised by the loan tracker."""


class LoanTrackerError(Exception):
    """Base class for loan tracker failures."""


class ValidationError(LoanTrackerError, ValueError):
    """Invalid loan parameters or transaction input.

    Raised before any state is built, so the caller's loans are never left
    half-modified.
    """


class LoanNotFoundError(ValidationError):
    def __init__(self, loan_id: str) -> None:
        super().__init__(f"No loan with id {loan_id}")
        self.loan_id = loan_id


class StoreFormatError(LoanTrackerError, ValueError):
    """The persisted loan blob cannot be read."""
