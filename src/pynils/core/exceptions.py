"""
Exception hierarchy for pyNILS.

Fatal input errors are raised while descriptor tables and the tract store
are being built, before any accumulation takes place. Problems with single
plot rows are not fatal: they are reported through ``RowSkippedWarning``
and the row is dropped.
"""

from __future__ import annotations


class PyNilsError(Exception):
    """Base class for all pyNILS errors."""


class InvariantViolation(PyNilsError, ValueError):
    """Raised when an input table breaks a structural requirement.

    Examples are an empty descriptor table, too few columns, PSU sizes that
    are not strictly decreasing, or a tract count that does not match the
    population size of the first PSU phase.
    """


class KeyNotFound(PyNilsError, KeyError):
    """Raised when an external identifier cannot be resolved."""

    def __init__(self, key: int, table: str = "lookup"):
        self.key = key
        self.table = table
        super().__init__(f"{table}: key not found: {key}")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return self.args[0]


class DuplicateKey(PyNilsError, ValueError):
    """Raised when an external identifier occurs more than once."""

    def __init__(self, key: int, table: str = "lookup"):
        self.key = key
        self.table = table
        super().__init__(f"{table}: duplicate key provided: {key}")


class RowSkippedWarning(UserWarning):
    """Issued when a plot row is ignored during ingestion."""
