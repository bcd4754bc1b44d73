"""
pyNILS: estimation for nested multi-phase landscape inventories.

Plot observations are aggregated into tracts, and tracts into PSU phases of
decreasing size. ``nils`` estimates category totals and their covariance
using phase means; ``nils_balanced`` uses local nearest-neighbour means in
an auxiliary balancing space.
"""

from .core.exceptions import (
    DuplicateKey,
    InvariantViolation,
    KeyNotFound,
    PyNilsError,
    RowSkippedWarning,
)
from .display import display_result
from .estimation import NilsResult, nils, nils_balanced

__version__ = "0.3.0"

__all__ = [
    "DuplicateKey",
    "InvariantViolation",
    "KeyNotFound",
    "NilsResult",
    "PyNilsError",
    "RowSkippedWarning",
    "display_result",
    "nils",
    "nils_balanced",
]
