"""
Configuration for unit tests.

Unit tests are fast, isolated tests on small synthetic designs whose
estimates and covariances can be checked by hand.
"""

from pathlib import Path

import polars as pl
import pytest

from pynils.estimation.lookup import build_category_table, build_psu_table
from pynils.estimation.tracts import TractStore


def pytest_collection_modifyitems(items):
    """Mark tests in this directory as unit tests."""
    unit_dir = Path(__file__).parent
    for item in items:
        if unit_dir in item.path.parents:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def two_phase_frames():
    """
    Two nested phases with one category each.

    PSU 1 (phase 0): 4 tracts, PSU 2 (phase 1): tracts 1 and 2.
    Category 100 is drawn from PSU 1, category 200 from PSU 2.

    Tract values (tract_area = 1, weight = 1):
    - category 100: [1, 3, 5, 7]
    - category 200: [2, 4, -, -]
    """
    psus = pl.DataFrame({"PSU": [1, 2], "SIZE": [4, 2]})
    categories = pl.DataFrame({"CAT": [100, 200], "PSU": [1, 2]})
    tracts = pl.DataFrame({"TRACT": [1, 2, 3, 4], "PSU": [2, 2, 1, 1]})
    plots = pl.DataFrame(
        {
            "TRACT": [1, 2, 3, 4, 1, 2],
            "CAT": [100, 100, 100, 100, 200, 200],
            "WEIGHT": [1.0] * 6,
            "VALUE": [1.0, 3.0, 5.0, 7.0, 2.0, 4.0],
        }
    )
    return psus, categories, tracts, plots


@pytest.fixture
def two_phase_design(two_phase_frames):
    """Filled store and lookups for ``two_phase_frames``."""
    psus, categories, tracts, plots = two_phase_frames
    psu_table = build_psu_table(psus)
    category_table = build_category_table(categories, psu_table)
    store = TractStore.from_frame(tracts, psu_table, len(category_table))
    store.fill(plots, category_table, tract_area=1.0)
    return store, psu_table, category_table
