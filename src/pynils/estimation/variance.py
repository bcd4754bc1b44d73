"""
Point and variance estimation for nested multi-phase tract samples.

Sampling design
---------------

Tracts are sampled in PSU phases of strictly decreasing size. Phase 0 is
the full (largest) sample; every later phase is a sub-sample of the one
before it. A tract is assigned to the deepest phase it belongs to and is
a member of every shallower phase. Each category is observed in the
tracts of one phase, its *reach*.

Point estimate
--------------

For category k drawn from a phase of size n_k:

    Y_k = (A / n_k) × Σ_t y_tk

Covariance
----------

Phases are traversed from the deepest (smallest) to phase 0. When the
traversal reaches phase p the set of tracts S_p (all tracts in phase p or
deeper) has size n_p, and the categories whose reach is p become active.
For an active category k and any category l whose reach is p or
shallower:

    C_kl = (A / n_k) × (A / n_l) × n_p / (n_p - 1)
           × Σ_{t in S_p} (y_tk - m_k) (y_tl - m_l)

The plain estimator uses the phase means m_k = Σ_{S_p} y_tk / n_p. The
balanced estimator uses a local mean over the nearest neighbours of t in
an auxiliary balancing space and replaces n_p / (n_p - 1) with
nb / (nb - 1), nb being the neighbour count configured for the phase.

A phase with n_p <= 1 cannot support a variance estimate: the diagonal
of every category active at that phase, and its covariance with every
category still to be processed, is NaN.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike

from ..core.exceptions import InvariantViolation
from ..spatial.neighbors import KDTreeNeighborIndex, NeighborIndex
from .constants import DEFAULT_LEAF_SIZE, Z_SCORE_90, Z_SCORE_95, Z_SCORE_99
from .lookup import IndexedLookup
from .matrix import CovarianceMatrix
from .tracts import TractStore

logger = logging.getLogger(__name__)

_Z_SCORES = {0.90: Z_SCORE_90, 0.95: Z_SCORE_95, 0.99: Z_SCORE_99}


@dataclass
class _Phase:
    """State of the deepest-first phase traversal at one phase.

    ``ids``, ``sums`` and ``all_nils`` accumulate over the traversal;
    ``order[first:last]`` are the categories whose reach is this phase.
    """

    psu: int
    size: float
    ids: np.ndarray
    sums: np.ndarray
    all_nils: np.ndarray
    first: int
    last: int


def _sort_categories(categories: IndexedLookup) -> np.ndarray:
    """Internal category indices ordered by descending reach."""
    return np.array(
        sorted(range(len(categories)), key=categories.value, reverse=True),
        dtype=np.intp,
    )


def _iter_phases(
    store: TractStore,
    psus: IndexedLookup,
    order: np.ndarray,
    categories: IndexedLookup,
) -> Iterator[_Phase]:
    values = store.values_matrix()
    tract_psus = store.internal_psus()
    n_cats = len(order)
    reach = [categories.value(cat) for cat in order]

    ids = np.empty(0, dtype=np.intp)
    sums = np.zeros(store.n_cats, dtype=np.float64)
    all_nils = np.ones(store.n_cats, dtype=bool)
    last = 0

    for psu in reversed(range(len(psus))):
        # Deeper tracts are already in ids
        new_ids = np.flatnonzero(tract_psus == psu)
        ids = np.concatenate([ids, new_ids])
        new_values = values[new_ids]
        sums += new_values.sum(axis=0)
        all_nils &= ~np.any(new_values != 0.0, axis=0)

        first = last
        while last < n_cats and reach[last] >= psu:
            last += 1

        yield _Phase(
            psu=psu,
            size=float(psus.value(psu)),
            ids=ids,
            sums=sums,
            all_nils=all_nils,
            first=first,
            last=last,
        )


def _mark_degenerate(covs: CovarianceMatrix, order: np.ndarray, phase: _Phase) -> None:
    for ki in range(phase.first, phase.last):
        cat_k = order[ki]
        covs.set_nan(cat_k, cat_k)
        for li in range(ki + 1, len(order)):
            covs.set_nan(cat_k, order[li])


def _store_scaled(
    covs: CovarianceMatrix,
    cross: np.ndarray,
    order: np.ndarray,
    phase: _Phase,
    psus: IndexedLookup,
    categories: IndexedLookup,
    area: float,
    correction: float,
) -> None:
    """Scale the cross products of one phase and write them to ``covs``.

    ``cross[a, b]`` holds the summed cross product of ``order[first + a]``
    and ``order[first + b]``.
    """
    for ki in range(phase.first, phase.last):
        cat_k = order[ki]
        if phase.all_nils[cat_k]:
            continue

        for li in range(ki, len(order)):
            cat_l = order[li]
            if phase.all_nils[cat_l]:
                continue

            size_l = float(psus.value(categories.value(cat_l)))
            factor = (area / phase.size) * (area / size_l) * correction
            covs.set_symmetric(
                cat_k, cat_l, cross[ki - phase.first, li - phase.first] * factor
            )


def cat_estimates(
    store: TractStore,
    psus: IndexedLookup,
    categories: IndexedLookup,
    area: float,
) -> np.ndarray:
    """Estimate the total of each category.

    Parameters
    ----------
    store : TractStore
        Filled tract store.
    psus : IndexedLookup
        PSU table (population size per phase).
    categories : IndexedLookup
        Category table (phase per category).
    area : float
        Total area of the estimation region.

    Returns
    -------
    np.ndarray
        One estimate per category in category-table order. NaN where the
        category's phase has population size zero.
    """
    values = store.values_matrix()
    nonnil = np.array([tract.nonnil for tract in store.tracts], dtype=bool)
    sums = values[nonnil].sum(axis=0)

    estimates = np.empty(len(categories), dtype=np.float64)
    for cat in range(len(categories)):
        psu_n = psus.value(categories.value(cat))
        if psu_n > 0:
            estimates[cat] = sums[cat] * area / float(psu_n)
        else:
            estimates[cat] = np.nan

    return estimates


def calculate_variance(
    store: TractStore,
    psus: IndexedLookup,
    categories: IndexedLookup,
    area: float,
) -> CovarianceMatrix:
    """Covariance matrix of the category estimates using phase means.

    Parameters
    ----------
    store : TractStore
        Filled tract store.
    psus : IndexedLookup
        PSU table, strictly decreasing in size.
    categories : IndexedLookup
        Category table.
    area : float
        Total area of the estimation region.

    Returns
    -------
    CovarianceMatrix
        ``n_cats x n_cats`` symmetric matrix in category-table order.
    """
    order = _sort_categories(categories)
    values = store.values_matrix()
    covs = CovarianceMatrix(len(categories))

    for phase in _iter_phases(store, psus, order, categories):
        if phase.first == phase.last:
            continue

        if phase.size <= 1.0:
            logger.debug(
                "PSU phase %d has size %g; variance undefined", phase.psu, phase.size
            )
            _mark_degenerate(covs, order, phase)
            continue

        later = order[phase.first :]
        means = phase.sums[later] / phase.size
        centered = values[np.ix_(phase.ids, later)] - means
        cross = centered[:, : phase.last - phase.first].T @ centered

        logger.debug(
            "PSU phase %d: %d tracts, %d active categories",
            phase.psu,
            phase.ids.size,
            phase.last - phase.first,
        )
        _store_scaled(
            covs,
            cross,
            order,
            phase,
            psus,
            categories,
            area,
            phase.size / (phase.size - 1.0),
        )

    return covs


def calculate_balanced_variance(
    store: TractStore,
    psus: IndexedLookup,
    categories: IndexedLookup,
    area: float,
    xbalance: ArrayLike,
    neighbours: IndexedLookup,
    index_factory: type[NeighborIndex] = KDTreeNeighborIndex,
    leaf_size: int = DEFAULT_LEAF_SIZE,
) -> CovarianceMatrix:
    """Covariance matrix of the category estimates using local means.

    For every tract of the current phase the mean of each category is
    taken over its ``neighbours[phase]`` nearest tracts (the tract itself
    included) among the tracts of that phase, measured in the balancing
    space. A fresh neighbour index is built for every phase.

    Parameters
    ----------
    store : TractStore
        Filled tract store.
    psus : IndexedLookup
        PSU table, strictly decreasing in size.
    categories : IndexedLookup
        Category table.
    area : float
        Total area of the estimation region.
    xbalance : array-like
        Balancing variables, shape ``(n_tracts, p)``; row ``i`` belongs to
        the tract with internal id ``i``.
    neighbours : IndexedLookup
        Neighbour count per PSU phase, keyed like ``psus``.
    index_factory : type, default KDTreeNeighborIndex
        Class implementing ``NeighborIndex``.
    leaf_size : int, default 30
        Leaf size passed to the neighbour index.

    Returns
    -------
    CovarianceMatrix
        ``n_cats x n_cats`` symmetric matrix in category-table order.

    Raises
    ------
    InvariantViolation
        If ``xbalance`` is not two-dimensional with one row per tract, or
        ``neighbours`` does not cover every PSU phase.
    """
    xbalance = np.asarray(xbalance, dtype=np.float64)
    if xbalance.ndim != 2 or xbalance.shape[0] != store.size:
        raise InvariantViolation(
            f"(calculate_balanced_variance) xbalance shape {xbalance.shape} "
            f"does not match {store.size} tracts"
        )
    if len(neighbours) != len(psus):
        raise InvariantViolation(
            "(calculate_balanced_variance) neighbour table does not match psu table"
        )

    order = _sort_categories(categories)
    values = store.values_matrix()
    covs = CovarianceMatrix(len(categories))

    for phase in _iter_phases(store, psus, order, categories):
        if phase.first == phase.last:
            continue

        if phase.size <= 1.0:
            logger.debug(
                "PSU phase %d has size %g; variance undefined", phase.psu, phase.size
            )
            _mark_degenerate(covs, order, phase)
            continue

        if phase.ids.size == 0:
            continue

        n_neighbours = neighbours.value(phase.psu)
        index = index_factory.build(xbalance, phase.ids, leaf_size)
        neighbour_ids = index.query_nearest(xbalance[phase.ids], n_neighbours)

        later = order[phase.first :]
        later_values = values[:, later]
        local_means = later_values[neighbour_ids].mean(axis=1)
        centered = later_values[phase.ids] - local_means
        cross = centered[:, : phase.last - phase.first].T @ centered

        logger.debug(
            "PSU phase %d: %d tracts, %d neighbours, %d active categories",
            phase.psu,
            phase.ids.size,
            neighbour_ids.shape[1],
            phase.last - phase.first,
        )
        _store_scaled(
            covs,
            cross,
            order,
            phase,
            psus,
            categories,
            area,
            n_neighbours / (n_neighbours - 1.0),
        )

    return covs


# =============================================================================
# Summaries of estimate vectors and covariance matrices
# =============================================================================


def nansum(values: ArrayLike) -> float:
    """Sum of all elements, skipping NaN."""
    return float(np.nansum(np.asarray(values, dtype=np.float64)))


def calculate_confidence_interval(
    estimate: float, se: float, confidence: float = 0.95
) -> tuple[float, float]:
    """
    Interval ``estimate +- z * se`` under the normal approximation.

    Parameters
    ----------
    estimate : float
        Total or category estimate.
    se : float
        Its standard error. A NaN standard error gives NaN bounds.
    confidence : float, default 0.95
        Coverage level, one of 0.90, 0.95 and 0.99.

    Returns
    -------
    tuple[float, float]
        Lower and upper bound.

    Raises
    ------
    ValueError
        For any other coverage level.
    """
    try:
        z = _Z_SCORES[confidence]
    except KeyError:
        raise ValueError(f"Unsupported confidence level: {confidence}") from None

    half_width = z * se
    return estimate - half_width, estimate + half_width


def calculate_cv(estimate: float, se: float) -> float:
    """
    Calculate coefficient of variation as percentage.

    Returns 0.0 for a zero estimate and NaN when the standard error is NaN.
    """
    if np.isnan(se):
        return float("nan")
    if estimate != 0:
        return 100 * se / abs(estimate)
    return 0.0
