from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors raised by the attendance ledger and its collaborators."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Bad input: missing required field, check-out before check-in, unknown event id."""

    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class PersistenceError(LedgerError):
    """The backing store could not complete a read or write."""

    status_code = 500
