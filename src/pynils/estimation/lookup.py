"""
Bidirectional lookup tables between external identifiers and dense indices.

Descriptor tables (PSU phases, categories, neighbour counts) arrive as
polars DataFrames whose columns are read positionally. Each is turned into
an ``IndexedLookup`` where the internal index of an entry is its row
position and every entry carries one integer payload:

- PSU table: population size of the phase
- Category table: internal index of the PSU phase the category is drawn from
- Neighbour table: number of neighbours used for balanced variance
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

import polars as pl

from ..core.exceptions import DuplicateKey, InvariantViolation, KeyNotFound


class IndexedLookup:
    """Ordered table of ``(external_key, value)`` pairs.

    Forward lookups (internal index to external key or value) are list
    accesses, reverse lookups (external key to internal index) go through a
    dict. Keys are copied on construction.

    Parameters
    ----------
    keys : Iterable[int]
        External keys in internal-index order. Must be unique.
    values : Iterable[int]
        Payload per key, same length as ``keys``.
    name : str, default 'lookup'
        Table name used in error messages.
    """

    def __init__(
        self, keys: Iterable[int], values: Iterable[int], name: str = "lookup"
    ):
        self.name = name
        keys = list(keys)
        values = list(values)
        if any(k is None for k in keys) or any(v is None for v in values):
            raise InvariantViolation(f"({name}) null key or value")
        self._keys = [int(k) for k in keys]
        self._values = [int(v) for v in values]

        if len(self._keys) == 0:
            raise InvariantViolation(f"({name}) n = 0")
        if len(self._keys) != len(self._values):
            raise InvariantViolation(
                f"({name}) {len(self._keys)} keys but {len(self._values)} values"
            )

        self._index: dict[int, int] = {}
        for i, key in enumerate(self._keys):
            if key in self._index:
                raise DuplicateKey(key, name)
            self._index[key] = i

    def external_key(self, internal_key: int) -> int:
        """Return the external key stored at ``internal_key``."""
        self._check_bounds(internal_key)
        return self._keys[internal_key]

    def internal_key(self, external_key: int) -> int:
        """Return the internal index of ``external_key``."""
        try:
            return self._index[external_key]
        except KeyError:
            raise KeyNotFound(external_key, self.name) from None

    def value(self, internal_key: int) -> int:
        """Return the payload stored at ``internal_key``."""
        self._check_bounds(internal_key)
        return self._values[internal_key]

    @property
    def keys(self) -> list[int]:
        return list(self._keys)

    @property
    def values(self) -> list[int]:
        return list(self._values)

    def _check_bounds(self, internal_key: int) -> None:
        if not 0 <= internal_key < len(self._keys):
            raise IndexError(f"({self.name}) oob: {internal_key}")

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(zip(self._keys, self._values))

    def __contains__(self, external_key: object) -> bool:
        return external_key in self._index

    def __repr__(self) -> str:
        pairs = ", ".join(f"{k}: {v}" for k, v in self)
        return f"IndexedLookup({self.name}, {{{pairs}}})"


def as_frame(data: Any) -> pl.DataFrame:
    """Coerce a descriptor table to a polars DataFrame."""
    if isinstance(data, pl.DataFrame):
        return data
    if isinstance(data, pl.LazyFrame):
        return data.collect()
    return pl.DataFrame(data)


def _int_column(frame: pl.DataFrame, index: int, name: str) -> list[int]:
    series = frame.to_series(index)
    if series.null_count() > 0:
        raise InvariantViolation(f"({name}) null in column {series.name!r}")
    return series.cast(pl.Int64).to_list()


def _check_shape(frame: pl.DataFrame, min_cols: int, name: str) -> None:
    if frame.height == 0:
        raise InvariantViolation(f"({name}) nrow = 0")
    if frame.width < min_cols:
        raise InvariantViolation(f"({name}) ncol < {min_cols}")


def build_psu_table(frame: Any) -> IndexedLookup:
    """Build the PSU phase table.

    Parameters
    ----------
    frame : pl.DataFrame
        Columns (by position): PSU id, population size. Further columns are
        ignored. Rows must be ordered by strictly decreasing size.

    Returns
    -------
    IndexedLookup
        PSU ids mapped to their population size. Internal index 0 is the
        largest phase.

    Raises
    ------
    InvariantViolation
        If the table is empty, has fewer than two columns or nulls, the
        smallest phase is not strictly positive, or sizes are not strictly
        decreasing.
    """
    frame = as_frame(frame)
    _check_shape(frame, 2, "psu table")

    psu_ids = _int_column(frame, 0, "psu table")
    sizes = _int_column(frame, 1, "psu table")
    n = len(sizes)

    if sizes[-1] <= 0:
        raise InvariantViolation(
            "PSUs must have strictly positive size:"
            f" PSU {psu_ids[-1]} is {sizes[-1]}"
        )

    for i in range(1, n):
        if sizes[i] >= sizes[i - 1]:
            raise InvariantViolation(
                "PSUs must be strictly decreasing in size:"
                f" PSU {psu_ids[i - 1]} is {sizes[i - 1]}"
                f" PSU {psu_ids[i]} is {sizes[i]}"
            )

    return IndexedLookup(psu_ids, sizes, name="psu table")


def build_category_table(frame: Any, psus: IndexedLookup) -> IndexedLookup:
    """Build the category table.

    Parameters
    ----------
    frame : pl.DataFrame
        Columns (by position): category id, PSU id the category is drawn
        from.
    psus : IndexedLookup
        PSU table used to translate PSU ids to internal phase indices.

    Returns
    -------
    IndexedLookup
        Category ids mapped to the internal index of their PSU phase.
    """
    frame = as_frame(frame)
    _check_shape(frame, 2, "category table")

    cat_ids = _int_column(frame, 0, "category table")
    phases = [
        psus.internal_key(psu) for psu in _int_column(frame, 1, "category table")
    ]

    return IndexedLookup(cat_ids, phases, name="category table")


def build_neighbour_table(frame: Any, psus: IndexedLookup) -> IndexedLookup:
    """Build the neighbour-count table for balanced variance estimation.

    The first column holds PSU ids. The neighbour count is the second
    column of a two-column ``(psu, neighbours)`` descriptor and the third
    column otherwise, so a ``(psu, size, neighbours, ...)`` PSU table is
    accepted as is. Every PSU must be listed exactly once.

    Returns
    -------
    IndexedLookup
        Keyed and ordered like ``psus``; payload is the neighbour count.

    Raises
    ------
    InvariantViolation
        If the row count differs from the number of PSUs, a column holds
        nulls or a neighbour count is not greater than one.
    DuplicateKey
        If a PSU is listed twice.
    """
    frame = as_frame(frame)
    _check_shape(frame, 2, "neighbour table")

    if frame.height != len(psus):
        raise InvariantViolation(
            f"(neighbour table) nrow != psu.size: {frame.height} != {len(psus)}"
        )

    psu_ids = _int_column(frame, 0, "neighbour table")
    nb_counts = _int_column(frame, 1 if frame.width == 2 else 2, "neighbour table")
    counts: list[int | None] = [None] * len(psus)
    for psu, count in zip(psu_ids, nb_counts):
        if count <= 1:
            raise InvariantViolation(
                f"Neighbours must be larger than 1: PSU {psu} is {count}"
            )
        phase = psus.internal_key(psu)
        if counts[phase] is not None:
            raise DuplicateKey(psu, "neighbour table")
        counts[phase] = count

    return IndexedLookup(psus.keys, counts, name="neighbour table")

