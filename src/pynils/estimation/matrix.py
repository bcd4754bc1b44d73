"""
Symmetric covariance matrix with pairwise write helpers.
"""

from __future__ import annotations

import numpy as np


class CovarianceMatrix:
    """Square ``n x n`` matrix that is only written through symmetric helpers.

    Every write to ``(i, j)`` also writes ``(j, i)``, so the matrix is
    exactly symmetric at all times.
    """

    def __init__(self, n: int):
        self._data = np.zeros((n, n), dtype=np.float64)

    @property
    def n(self) -> int:
        return self._data.shape[0]

    def get(self, i: int, j: int) -> float:
        return float(self._data[i, j])

    def set_symmetric(self, i: int, j: int, value: float) -> None:
        self._data[i, j] = value
        self._data[j, i] = value

    def set_nan(self, i: int, j: int) -> None:
        self.set_symmetric(i, j, np.nan)

    def total(self) -> float:
        """Sum of all cells, skipping NaN."""
        return float(np.nansum(self._data))

    def to_numpy(self) -> np.ndarray:
        return self._data.copy()

    def __repr__(self) -> str:
        return f"CovarianceMatrix({self._data!r})"
