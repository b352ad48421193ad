"""Exception types raised by ``expense_ingest``.

Parser failures derive from :class:`IngestError` (itself a ``ValueError``) so
callers can report them to the user verbatim and keep every other exception on
the crash path.
"""

from __future__ import annotations


class IngestError(ValueError):
    """A statement could not be turned into a table; message is user-facing."""


class EmptyInputError(IngestError):
    pass


class NoTablesFoundError(IngestError):
    pass


class SpreadsheetFramesetError(NoTablesFoundError):
    """HTML saved from a spreadsheet as a frameset of linked sheet files."""


class NoTransactionsFoundError(IngestError):
    pass


class UnsupportedFormatError(IngestError):
    pass


class TableIndexError(IngestError):
    pass


class InvalidTransitionError(RuntimeError):
    """An import session operation was called from a state that forbids it."""

    def __init__(self, operation: str, state: object) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"cannot {operation} while import session is {state}")


__all__ = [
    "EmptyInputError",
    "IngestError",
    "InvalidTransitionError",
    "NoTablesFoundError",
    "NoTransactionsFoundError",
    "SpreadsheetFramesetError",
    "TableIndexError",
    "UnsupportedFormatError",
]
