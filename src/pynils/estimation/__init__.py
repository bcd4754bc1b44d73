"""
Estimation for nested multi-phase tract samples.
"""

from .lookup import (
    IndexedLookup,
    build_category_table,
    build_neighbour_table,
    build_psu_table,
)
from .matrix import CovarianceMatrix
from .nils import NilsResult, nils, nils_balanced
from .tracts import Tract, TractStore
from .variance import (
    calculate_balanced_variance,
    calculate_confidence_interval,
    calculate_cv,
    calculate_variance,
    cat_estimates,
)

__all__ = [
    "CovarianceMatrix",
    "IndexedLookup",
    "NilsResult",
    "Tract",
    "TractStore",
    "build_category_table",
    "build_neighbour_table",
    "build_psu_table",
    "calculate_balanced_variance",
    "calculate_confidence_interval",
    "calculate_cv",
    "calculate_variance",
    "cat_estimates",
    "nils",
    "nils_balanced",
]
