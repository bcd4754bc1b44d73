"""
Nearest-neighbour search in the auxiliary balancing space.

Balanced variance estimation replaces phase means with local means over
each tract's nearest neighbours among the tracts of the current phase. The
estimator only depends on the ``NeighborIndex`` protocol; the default
implementation wraps ``scipy.spatial.KDTree``, whose sliding-midpoint
splitting rule is used for the tree.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
from numpy.typing import ArrayLike
from scipy.spatial import KDTree

from ..core.exceptions import InvariantViolation
from ..estimation.constants import DEFAULT_LEAF_SIZE


class NeighborIndex(Protocol):
    """k-nearest-neighbour search over a subset of tracts."""

    @classmethod
    def build(
        cls, data: np.ndarray, candidate_ids: ArrayLike, leaf_size: int
    ) -> NeighborIndex:
        """Index the rows ``data[candidate_ids]``."""
        ...

    def query_nearest(self, points: ArrayLike, k: int) -> np.ndarray:
        """Return ``(len(points), k')`` internal ids of the nearest candidates.

        ``k'`` is ``k`` clamped to the number of candidates.
        """
        ...


class KDTreeNeighborIndex:
    """``NeighborIndex`` backed by ``scipy.spatial.KDTree``.

    Parameters
    ----------
    data : np.ndarray
        Balancing matrix, one row per tract (row = internal tract id).
    candidate_ids : array-like of int
        Internal ids of the tracts that may be returned as neighbours.
    leaf_size : int, default 30
        Number of points at which the tree switches to brute force.
    """

    def __init__(
        self,
        data: np.ndarray,
        candidate_ids: ArrayLike,
        leaf_size: int = DEFAULT_LEAF_SIZE,
    ):
        self.candidate_ids = np.asarray(candidate_ids, dtype=np.intp)
        if self.candidate_ids.size == 0:
            raise InvariantViolation("(KDTreeNeighborIndex) no candidate tracts")
        self._tree = KDTree(np.asarray(data)[self.candidate_ids], leafsize=leaf_size)

    @classmethod
    def build(
        cls,
        data: np.ndarray,
        candidate_ids: ArrayLike,
        leaf_size: int = DEFAULT_LEAF_SIZE,
    ) -> KDTreeNeighborIndex:
        return cls(data, candidate_ids, leaf_size)

    def __len__(self) -> int:
        return self.candidate_ids.size

    def query_nearest(self, points: ArrayLike, k: int) -> np.ndarray:
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        k = min(int(k), self.candidate_ids.size)
        _, positions = self._tree.query(points, k=k)
        # KDTree drops the neighbour axis when k == 1
        positions = np.asarray(positions).reshape(points.shape[0], k)
        return self.candidate_ids[positions]
