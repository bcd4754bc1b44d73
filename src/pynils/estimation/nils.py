"""
NILS estimation entry points.

Both functions take the four descriptor tables as polars DataFrames with
columns in a fixed order:

- ``psus``: PSU id, population size (strictly decreasing)
  [, neighbour count for ``nils_balanced``]
- ``categories``: category id, PSU id the category is drawn from
- ``tracts``: tract id, PSU id (deepest phase of the tract)
- ``plots``: tract id, category id, weight, value
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import polars as pl
from numpy.typing import ArrayLike

from ..core.exceptions import InvariantViolation
from .constants import DEFAULT_LEAF_SIZE, DEFAULT_TRACT_AREA
from .lookup import (
    IndexedLookup,
    as_frame,
    build_category_table,
    build_neighbour_table,
    build_psu_table,
)
from .matrix import CovarianceMatrix
from .tracts import TractStore
from .variance import (
    calculate_balanced_variance,
    calculate_confidence_interval,
    calculate_cv,
    calculate_variance,
    cat_estimates,
    nansum,
)

logger = logging.getLogger(__name__)


@dataclass
class NilsResult:
    """Result of a NILS estimation.

    Attributes
    ----------
    estimate : float
        Total over all categories (NaN category estimates skipped).
    variance : float
        Sum of all covariance cells (NaN cells skipped).
    cat_estimates : np.ndarray
        Estimate per category, in category-table order.
    cat_covmat : np.ndarray
        Symmetric ``(n_cats, n_cats)`` covariance matrix.
    nonnil_tracts : int
        Number of tracts with at least one non-zero value.
    positive_tracts_per_cat : np.ndarray
        Number of tracts with a positive value, per category.
    categories : list[int]
        External category ids, in category-table order.
    """

    estimate: float
    variance: float
    cat_estimates: np.ndarray
    cat_covmat: np.ndarray
    nonnil_tracts: int
    positive_tracts_per_cat: np.ndarray
    categories: list[int]

    @property
    def se(self) -> float:
        return float(np.sqrt(self.variance)) if self.variance >= 0 else float("nan")

    @property
    def cv(self) -> float:
        return calculate_cv(self.estimate, self.se)

    def confidence_interval(self, confidence: float = 0.95) -> tuple[float, float]:
        """Normal-approximation interval around the total estimate."""
        return calculate_confidence_interval(self.estimate, self.se, confidence)

    def to_polars(self) -> pl.DataFrame:
        """One row per category with estimate, variance and standard error."""
        return pl.DataFrame(
            {
                "CATEGORY": self.categories,
                "ESTIMATE": self.cat_estimates,
                "VARIANCE": np.diag(self.cat_covmat),
                "N_POSITIVE_TRACTS": self.positive_tracts_per_cat,
            },
            schema={
                "CATEGORY": pl.Int64,
                "ESTIMATE": pl.Float64,
                "VARIANCE": pl.Float64,
                "N_POSITIVE_TRACTS": pl.Int64,
            },
        ).with_columns(
            pl.when(pl.col("VARIANCE") >= 0)
            .then(pl.col("VARIANCE").sqrt())
            .otherwise(None)
            .alias("SE")
        ).select("CATEGORY", "ESTIMATE", "VARIANCE", "SE", "N_POSITIVE_TRACTS")

    def to_dict(self) -> dict[str, Any]:
        return {
            "estimate": self.estimate,
            "variance": self.variance,
            "cat_estimates": self.cat_estimates,
            "cat_covmat": self.cat_covmat,
            "nonnil_tracts": self.nonnil_tracts,
            "positive_tracts_per_cat": self.positive_tracts_per_cat,
        }


def _prepare(
    psus: IndexedLookup,
    categories: Any,
    tracts: Any,
    plots: Any,
    tract_area: float,
) -> tuple[IndexedLookup, TractStore]:
    category_table = build_category_table(categories, psus)
    store = TractStore.from_frame(tracts, psus, len(category_table))
    accepted = store.fill(plots, category_table, tract_area)
    logger.debug(
        "%d tracts, %d categories, %d plot rows accumulated",
        store.size,
        len(category_table),
        accepted,
    )
    return category_table, store


def _result(
    store: TractStore,
    category_table: IndexedLookup,
    estimates: np.ndarray,
    covs: CovarianceMatrix,
) -> NilsResult:
    return NilsResult(
        estimate=nansum(estimates),
        variance=covs.total(),
        cat_estimates=estimates,
        cat_covmat=covs.to_numpy(),
        nonnil_tracts=store.nonnil_tracts(),
        positive_tracts_per_cat=store.positive_tracts_per_cat(),
        categories=category_table.keys,
    )


def nils(
    psus: Any,
    categories: Any,
    tracts: Any,
    plots: Any,
    area: float,
    tract_area: float = DEFAULT_TRACT_AREA,
) -> NilsResult:
    """
    Estimate category totals and their covariance under a nested PSU design.

    Parameters
    ----------
    psus : pl.DataFrame
        PSU id and population size, strictly decreasing in size.
    categories : pl.DataFrame
        Category id and the PSU id it is drawn from.
    tracts : pl.DataFrame
        Tract id and PSU id. The number of tracts must equal the size of
        the first PSU.
    plots : pl.DataFrame
        Tract id, category id, weight and value of every plot observation.
    area : float
        Total area of the estimation region.
    tract_area : float, optional
        Area plot values are divided by when accumulated into tracts.

    Returns
    -------
    NilsResult
        Total and per-category estimates and covariance matrix.

    Raises
    ------
    InvariantViolation
        If a descriptor table is malformed.
    KeyNotFound
        If a PSU or category id cannot be resolved.
    DuplicateKey
        If a tract, category or PSU id is repeated.

    Examples
    --------
    >>> result = nils(psus, categories, tracts, plots, area=1e6)
    >>> result.to_polars()
    """
    psu_table = build_psu_table(psus)
    category_table, store = _prepare(psu_table, categories, tracts, plots, tract_area)

    estimates = cat_estimates(store, psu_table, category_table, area)
    covs = calculate_variance(store, psu_table, category_table, area)

    return _result(store, category_table, estimates, covs)


def nils_balanced(
    psus: Any,
    categories: Any,
    tracts: Any,
    plots: Any,
    area: float,
    xbalance: ArrayLike,
    tract_area: float = DEFAULT_TRACT_AREA,
    neighbours: Any = None,
    leaf_size: int = DEFAULT_LEAF_SIZE,
) -> NilsResult:
    """
    Estimate category totals with spatially balanced covariance.

    Same as :func:`nils`, but the variance uses local means over the
    nearest neighbours of every tract in the balancing space.

    Parameters
    ----------
    psus : pl.DataFrame
        PSU id, population size and (when ``neighbours`` is None) the
        neighbour count per PSU.
    categories, tracts, plots, area, tract_area
        As for :func:`nils`.
    xbalance : array-like
        Balancing variables, shape ``(n_tracts, p)``, rows in the order of
        ``tracts``.
    neighbours : pl.DataFrame, optional
        PSU id and neighbour count. Defaults to the third column of
        ``psus``.
    leaf_size : int, default 30
        Leaf size of the neighbour search tree.

    Returns
    -------
    NilsResult
        Total and per-category estimates and covariance matrix.
    """
    psus = as_frame(psus)
    if neighbours is None and psus.width < 3:
        raise InvariantViolation(
            "(nils_balanced) ncol < 3 and no neighbour table given"
        )

    psu_table = build_psu_table(psus)
    neighbour_table = build_neighbour_table(
        psus if neighbours is None else neighbours, psu_table
    )
    category_table, store = _prepare(psu_table, categories, tracts, plots, tract_area)

    estimates = cat_estimates(store, psu_table, category_table, area)
    covs = calculate_balanced_variance(
        store,
        psu_table,
        category_table,
        area,
        xbalance,
        neighbour_table,
        leaf_size=leaf_size,
    )

    return _result(store, category_table, estimates, covs)
