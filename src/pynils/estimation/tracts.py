"""
Tract-level aggregation of plot observations.

A tract collects per-category totals from the sample plots it contains.
Every tract is assigned to the deepest PSU phase it belongs to; a tract in
internal phase ``p`` is also a member of every phase ``q <= p``.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from typing import Any

import numpy as np
import polars as pl

from ..core.exceptions import DuplicateKey, InvariantViolation, RowSkippedWarning
from .lookup import IndexedLookup, as_frame

logger = logging.getLogger(__name__)


class Tract:
    """A spatial aggregation unit with one accumulator per category."""

    __slots__ = ("values", "external_id", "internal_psu", "recorded", "nonnil")

    def __init__(self, n_cats: int, external_id: int, internal_psu: int):
        self.values = np.zeros(n_cats, dtype=np.float64)
        self.external_id = external_id
        self.internal_psu = internal_psu
        self.recorded = False
        self.nonnil = False

    def add(self, cat: int, value: float) -> None:
        self.values[cat] += value
        self.recorded = True
        if value != 0.0:
            self.nonnil = True

    def get(self, cat: int) -> float:
        return float(self.values[cat])

    def sum(self) -> float:
        if not self.nonnil:
            return 0.0
        return float(self.values.sum())

    def __repr__(self) -> str:
        return (
            f"Tract(id={self.external_id}, psu={self.internal_psu}, "
            f"nonnil={self.nonnil})"
        )


class TractStore:
    """Dense store of tracts with an external-id index.

    Parameters
    ----------
    tract_ids : Sequence[int]
        External tract ids, one per tract.
    tract_psus : Sequence[int]
        External PSU id of each tract (the deepest phase it belongs to).
    psus : IndexedLookup
        PSU table. The number of tracts must equal the population size of
        its first (largest) phase.
    n_cats : int
        Number of categories.

    Raises
    ------
    InvariantViolation
        If ``tract_ids`` and ``tract_psus`` differ in length, or the tract
        count does not match the largest PSU.
    DuplicateKey
        If a tract id is repeated.
    KeyNotFound
        If a tract refers to an unknown PSU.
    """

    def __init__(
        self,
        tract_ids: Sequence[int],
        tract_psus: Sequence[int],
        psus: IndexedLookup,
        n_cats: int,
    ):
        n_tracts = len(tract_ids)
        if len(tract_psus) != n_tracts:
            raise InvariantViolation(
                f"(TractStore) {n_tracts} tract ids but {len(tract_psus)} tract psus"
            )
        if n_tracts != psus.value(0):
            raise InvariantViolation(
                f"(TractStore) n_tracts != largest psu: {n_tracts} != {psus.value(0)}"
            )

        self.n_cats = n_cats
        self.tracts: list[Tract] = []
        self._internal_ids: dict[int, int] = {}

        for i, (tract_id, psu) in enumerate(zip(tract_ids, tract_psus)):
            tract_id = int(tract_id)
            if tract_id in self._internal_ids:
                raise DuplicateKey(tract_id, "TractStore")
            self.tracts.append(Tract(n_cats, tract_id, psus.internal_key(int(psu))))
            self._internal_ids[tract_id] = i

    @classmethod
    def from_frame(cls, frame: Any, psus: IndexedLookup, n_cats: int) -> TractStore:
        """Create a store from a ``(tract_id, psu_id)`` descriptor table."""
        frame = as_frame(frame)
        if frame.width < 2:
            raise InvariantViolation("(TractStore) ncol < 2")
        for column in frame.columns[:2]:
            if frame[column].null_count() > 0:
                raise InvariantViolation(f"(TractStore) null in column {column!r}")
        return cls(
            frame.to_series(0).to_list(),
            frame.to_series(1).to_list(),
            psus,
            n_cats,
        )

    @property
    def size(self) -> int:
        return len(self.tracts)

    def __len__(self) -> int:
        return len(self.tracts)

    def find_internal(self, internal_id: int) -> Tract:
        return self.tracts[internal_id]

    def find_external(self, external_id: int) -> Tract | None:
        """Return the tract with ``external_id``, or None if there is none."""
        internal_id = self._internal_ids.get(external_id)
        if internal_id is None:
            return None
        return self.tracts[internal_id]

    def fill(
        self, plots: Any, categories: IndexedLookup, tract_area: float
    ) -> int:
        """Accumulate plot observations into the tracts.

        Parameters
        ----------
        plots : pl.DataFrame
            Plot rows. Columns (by position): tract id, category id,
            weight, value.
        categories : IndexedLookup
            Category table; payload is the internal PSU phase the category
            is drawn from.
        tract_area : float
            Each accepted row adds ``weight * value / tract_area``.

        Returns
        -------
        int
            Number of rows accumulated.

        Notes
        -----
        Rows with a zero or missing weight or value are skipped. Rows
        referring to an unknown tract, or to a category drawn from a deeper
        phase than the tract belongs to, are skipped with a
        ``RowSkippedWarning``. An unknown category id raises ``KeyNotFound``.
        """
        plots = as_frame(plots)
        if plots.width < 4:
            raise InvariantViolation("(TractStore.fill) ncol < 4")

        columns = plots.columns[:4]
        rows = plots.select(
            pl.col(columns[0]).cast(pl.Int64),
            pl.col(columns[1]).cast(pl.Int64),
            pl.col(columns[2]).cast(pl.Float64),
            pl.col(columns[3]).cast(pl.Float64),
        ).iter_rows()

        accepted = 0
        for i, (tract_id, external_cat, weight, value) in enumerate(rows):
            if not weight or not value:
                continue

            tract = self.find_external(tract_id)
            if tract is None:
                message = (
                    f"Tract of plot {i + 1} ({tract_id}) does not exist; "
                    "plot is ignored"
                )
                logger.debug(message)
                warnings.warn(message, RowSkippedWarning, stacklevel=2)
                continue

            internal_cat = categories.internal_key(external_cat)
            plot_psu = categories.value(internal_cat)

            if tract.internal_psu < plot_psu:
                message = (
                    f"Category of plot {i + 1} does not match PSU of tract "
                    f"{tract_id}; plot is ignored"
                )
                logger.debug(message)
                warnings.warn(message, RowSkippedWarning, stacklevel=2)
                continue

            tract.add(internal_cat, weight * value / tract_area)
            accepted += 1

        logger.debug(
            "Filled %d of %d plot rows into %d tracts",
            accepted,
            plots.height,
            self.size,
        )
        return accepted

    def nonnil_tracts(self) -> int:
        """Number of tracts with at least one non-zero accumulated value."""
        return sum(1 for tract in self.tracts if tract.nonnil)

    def positive_tracts_per_cat(self) -> np.ndarray:
        """Number of tracts with a strictly positive value, per category."""
        return (self.values_matrix() > 0.0).sum(axis=0).astype(np.int64)

    def values_matrix(self) -> np.ndarray:
        """Tract values as an ``(n_tracts, n_cats)`` array, row = internal id."""
        if not self.tracts:
            return np.zeros((0, self.n_cats), dtype=np.float64)
        return np.vstack([tract.values for tract in self.tracts])

    def internal_psus(self) -> np.ndarray:
        """Internal PSU phase of every tract, indexed by internal id."""
        return np.array([tract.internal_psu for tract in self.tracts], dtype=np.int64)
