"""
Configuration for integration tests.

Integration tests run complete estimations through the public entry
points, from descriptor tables to the reported result.
"""

from pathlib import Path

import numpy as np
import polars as pl
import pytest


def pytest_collection_modifyitems(items):
    """Mark tests in this directory as integration tests."""
    integration_dir = Path(__file__).parent
    for item in items:
        if integration_dir in item.path.parents:
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def single_phase_frames():
    """One phase of four tracts, value 2.0 observed on two of them."""
    psus = pl.DataFrame({"PSU": [10], "SIZE": [4]})
    categories = pl.DataFrame({"CAT": [100], "PSU": [10]})
    tracts = pl.DataFrame({"TRACT": [1, 2, 3, 4], "PSU": [10, 10, 10, 10]})
    plots = pl.DataFrame(
        {
            "TRACT": [1, 2],
            "CAT": [100, 100],
            "WEIGHT": [1.0, 1.0],
            "VALUE": [2.0, 2.0],
        }
    )
    return psus, categories, tracts, plots


@pytest.fixture
def nested_frames():
    """
    Three nested phases (8, 4, 2 tracts) with one category per phase.

    Tracts 1-2 are in all phases, 3-4 in the first two, 5-8 only in the
    first. The PSU frame carries neighbour counts in its third column and
    ``xbalance`` places the tracts in two clusters.
    """
    psus = pl.DataFrame({"PSU": [1, 2, 3], "SIZE": [8, 4, 2], "NB": [4, 3, 2]})
    categories = pl.DataFrame({"CAT": [11, 22, 33], "PSU": [1, 2, 3]})
    tracts = pl.DataFrame(
        {"TRACT": list(range(1, 9)), "PSU": [3, 3, 2, 2, 1, 1, 1, 1]}
    )
    rows = [
        # category 11 on every tract
        (1, 11, 1.0, 0.2),
        (2, 11, 1.0, 0.4),
        (3, 11, 1.0, 0.0),
        (4, 11, 1.0, 0.8),
        (5, 11, 1.0, 0.1),
        (6, 11, 1.0, 0.5),
        (7, 11, 1.0, 0.3),
        (8, 11, 1.0, 0.9),
        # category 22 on tracts 1-4, two plots on tract 1
        (1, 22, 1.0, 0.7),
        (2, 22, 1.0, 0.1),
        (3, 22, 1.0, 0.6),
        (4, 22, 1.0, 0.2),
        (1, 22, 0.5, 0.4),
        # category 33 on tracts 1-2
        (1, 33, 1.0, 0.3),
        (2, 33, 1.0, 0.5),
    ]
    plots = pl.DataFrame(
        rows,
        schema={
            "TRACT": pl.Int64,
            "CAT": pl.Int64,
            "WEIGHT": pl.Float64,
            "VALUE": pl.Float64,
        },
        orient="row",
    )
    xbalance = np.array(
        [
            [0.0, 0.0],
            [0.0, 1.0],
            [1.0, 0.0],
            [1.0, 1.0],
            [5.0, 5.0],
            [5.0, 6.0],
            [6.0, 5.0],
            [6.0, 6.0],
        ]
    )
    return psus, categories, tracts, plots, xbalance
