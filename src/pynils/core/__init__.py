"""Core definitions shared across pyNILS."""

from .exceptions import (
    DuplicateKey,
    InvariantViolation,
    KeyNotFound,
    PyNilsError,
    RowSkippedWarning,
)

__all__ = [
    "DuplicateKey",
    "InvariantViolation",
    "KeyNotFound",
    "PyNilsError",
    "RowSkippedWarning",
]
