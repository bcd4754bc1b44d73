"""
Tests for the point estimate and the plain (phase-mean) covariance estimator.

Expected values are hand-calculated from the nested two-phase design in
``two_phase_frames`` (see conftest.py):

Phase 1 (PSU 2, n = 2): tracts 1, 2
- category 200: y = [2, 4], mean 3
- category 100: y = [1, 3], mean 2
- C(200, 200) = (A/2)(A/2)(2/1) × 2
- C(200, 100) = (A/2)(A/4)(2/1) × 2

Phase 0 (PSU 1, n = 4): tracts 1-4
- category 100: y = [1, 3, 5, 7], mean 4
- C(100, 100) = (A/4)(A/4)(4/3) × 20
"""

import numpy as np
import polars as pl
import pytest

from pynils.estimation.lookup import build_category_table, build_psu_table
from pynils.estimation.matrix import CovarianceMatrix
from pynils.estimation.tracts import TractStore
from pynils.estimation.variance import (
    calculate_confidence_interval,
    calculate_cv,
    calculate_variance,
    cat_estimates,
    nansum,
)

AREA = 10.0


def build_design(psus, categories, tracts, plots, tract_area=1.0):
    psu_table = build_psu_table(psus)
    category_table = build_category_table(categories, psu_table)
    store = TractStore.from_frame(tracts, psu_table, len(category_table))
    store.fill(plots, category_table, tract_area)
    return store, psu_table, category_table


class TestCatEstimates:
    def test_two_phase_estimates(self, two_phase_design):
        store, psus, categories = two_phase_design
        estimates = cat_estimates(store, psus, categories, AREA)

        # (A / n_k) * sum of tract values
        np.testing.assert_allclose(estimates, [AREA * 16 / 4, AREA * 6 / 2])

    def test_single_phase_example(self):
        store, psus, categories = build_design(
            pl.DataFrame({"PSU": [10], "SIZE": [4]}),
            pl.DataFrame({"CAT": [100], "PSU": [10]}),
            pl.DataFrame({"TRACT": [1, 2, 3, 4], "PSU": [10, 10, 10, 10]}),
            pl.DataFrame(
                {
                    "TRACT": [1, 3],
                    "CAT": [100, 100],
                    "WEIGHT": [1.0, 1.0],
                    "VALUE": [2.0, 2.0],
                }
            ),
        )
        estimates = cat_estimates(store, psus, categories, AREA)

        assert estimates[0] == pytest.approx(AREA * (2.0 + 2.0) / 4)
        assert store.nonnil_tracts() == 2
        assert store.positive_tracts_per_cat().tolist() == [2]

    def test_all_zero_plots_give_zero(self, two_phase_frames):
        psus, categories, tracts, plots = two_phase_frames
        plots = plots.with_columns(pl.lit(0.0).alias("VALUE"))
        store, psu_table, category_table = build_design(psus, categories, tracts, plots)

        estimates = cat_estimates(store, psu_table, category_table, AREA)
        np.testing.assert_array_equal(estimates, [0.0, 0.0])


class TestCalculateVariance:
    def test_two_phase_hand_calculated(self, two_phase_design):
        store, psus, categories = two_phase_design
        covs = calculate_variance(store, psus, categories, AREA)

        assert isinstance(covs, CovarianceMatrix)
        expected = np.array(
            [
                [(AREA / 4) ** 2 * (4 / 3) * 20, (AREA / 2) * (AREA / 4) * 2 * 2],
                [(AREA / 2) * (AREA / 4) * 2 * 2, (AREA / 2) ** 2 * 2 * 2],
            ]
        )
        np.testing.assert_allclose(covs.to_numpy(), expected)

    def test_matrix_is_symmetric(self, two_phase_design):
        store, psus, categories = two_phase_design
        matrix = calculate_variance(store, psus, categories, AREA).to_numpy()

        np.testing.assert_array_equal(matrix, matrix.T)

    def test_single_phase_matches_sample_variance(self):
        values = [2.0, 2.0, 0.0, 0.0]
        store, psus, categories = build_design(
            pl.DataFrame({"PSU": [10], "SIZE": [4]}),
            pl.DataFrame({"CAT": [100], "PSU": [10]}),
            pl.DataFrame({"TRACT": [1, 2, 3, 4], "PSU": [10] * 4}),
            pl.DataFrame(
                {
                    "TRACT": [1, 2, 3, 4],
                    "CAT": [100] * 4,
                    "WEIGHT": [1.0] * 4,
                    "VALUE": values,
                }
            ),
        )
        covs = calculate_variance(store, psus, categories, AREA)

        # (A/n)^2 * n * s^2 with s^2 the ddof=1 sample variance
        expected = (AREA / 4) ** 2 * 4 * np.var(values, ddof=1)
        assert covs.get(0, 0) == pytest.approx(expected)

    def test_category_without_values_has_zero_covariance(self, two_phase_frames):
        psus, categories, tracts, plots = two_phase_frames
        plots = plots.filter(pl.col("CAT") == 100)
        store, psu_table, category_table = build_design(psus, categories, tracts, plots)

        matrix = calculate_variance(store, psu_table, category_table, AREA).to_numpy()

        assert matrix[1, 1] == 0.0
        assert matrix[0, 1] == 0.0
        assert matrix[1, 0] == 0.0
        assert matrix[0, 0] > 0.0

    def test_all_zero_plots_give_zero_matrix(self, two_phase_frames):
        psus, categories, tracts, plots = two_phase_frames
        plots = plots.with_columns(pl.lit(0.0).alias("WEIGHT"))
        store, psu_table, category_table = build_design(psus, categories, tracts, plots)

        matrix = calculate_variance(store, psu_table, category_table, AREA).to_numpy()
        np.testing.assert_array_equal(matrix, np.zeros((2, 2)))

    def test_degenerate_phase_is_nan(self):
        store, psus, categories = build_design(
            pl.DataFrame({"PSU": [1, 2], "SIZE": [3, 1]}),
            pl.DataFrame({"CAT": [100, 200], "PSU": [1, 2]}),
            pl.DataFrame({"TRACT": [1, 2, 3], "PSU": [2, 1, 1]}),
            pl.DataFrame(
                {
                    "TRACT": [1, 2, 3, 1],
                    "CAT": [100, 100, 100, 200],
                    "WEIGHT": [1.0] * 4,
                    "VALUE": [1.0, 2.0, 3.0, 5.0],
                }
            ),
        )
        matrix = calculate_variance(store, psus, categories, 3.0).to_numpy()

        assert np.isnan(matrix[1, 1])
        assert np.isnan(matrix[0, 1])
        assert np.isnan(matrix[1, 0])
        # (3/3)^2 * (3/2) * sum((y - 2)^2) = 1.5 * 2
        assert matrix[0, 0] == pytest.approx(3.0)

    def test_single_tract_population_is_nan_regardless_of_values(self):
        store, psus, categories = build_design(
            pl.DataFrame({"PSU": [1], "SIZE": [1]}),
            pl.DataFrame({"CAT": [100, 200], "PSU": [1, 1]}),
            pl.DataFrame({"TRACT": [1], "PSU": [1]}),
            pl.DataFrame({"TRACT": [1], "CAT": [100], "WEIGHT": [1.0], "VALUE": [4.0]}),
        )
        matrix = calculate_variance(store, psus, categories, AREA).to_numpy()

        assert np.isnan(matrix).all()

    def test_categories_of_shallow_phase_unaffected_by_extra_phases(self):
        # Both categories in the first phase; the deeper phase has no category
        store, psus, categories = build_design(
            pl.DataFrame({"PSU": [1, 2], "SIZE": [4, 2]}),
            pl.DataFrame({"CAT": [100, 200], "PSU": [1, 1]}),
            pl.DataFrame({"TRACT": [1, 2, 3, 4], "PSU": [2, 2, 1, 1]}),
            pl.DataFrame(
                {
                    "TRACT": [1, 2, 3, 4, 1, 4],
                    "CAT": [100, 100, 100, 100, 200, 200],
                    "WEIGHT": [1.0] * 6,
                    "VALUE": [1.0, 3.0, 5.0, 7.0, 2.0, 2.0],
                }
            ),
        )
        covs = calculate_variance(store, psus, categories, 4.0)

        y100 = np.array([1.0, 3.0, 5.0, 7.0])
        y200 = np.array([2.0, 0.0, 0.0, 2.0])
        expected_cov = np.sum((y100 - y100.mean()) * (y200 - y200.mean())) * 4 / 3
        assert covs.get(0, 0) == pytest.approx(np.var(y100, ddof=1) * 4)
        assert covs.get(1, 1) == pytest.approx(np.var(y200, ddof=1) * 4)
        assert covs.get(0, 1) == pytest.approx(expected_cov)

    def test_category_order_does_not_change_entries(self, two_phase_frames):
        psus, categories, tracts, plots = two_phase_frames
        store, psu_table, category_table = build_design(psus, categories, tracts, plots)
        forward = calculate_variance(store, psu_table, category_table, AREA).to_numpy()

        reversed_categories = categories.reverse()
        store, psu_table, category_table = build_design(
            psus, reversed_categories, tracts, plots
        )
        backward = calculate_variance(store, psu_table, category_table, AREA).to_numpy()

        np.testing.assert_allclose(backward, forward[::-1, ::-1])


class TestCovarianceMatrix:
    def test_symmetric_writes(self):
        covs = CovarianceMatrix(3)
        covs.set_symmetric(0, 2, 4.0)
        covs.set_symmetric(1, 1, 2.0)
        covs.set_nan(1, 2)

        matrix = covs.to_numpy()
        assert matrix[0, 2] == matrix[2, 0] == 4.0
        assert np.isnan(matrix[1, 2])
        assert np.isnan(matrix[2, 1])
        assert covs.n == 3

    def test_total_skips_nan_cells(self):
        covs = CovarianceMatrix(2)
        covs.set_symmetric(0, 1, 1.5)
        covs.set_symmetric(1, 1, 3.0)
        covs.set_nan(0, 0)

        assert covs.total() == pytest.approx(6.0)

    def test_to_numpy_is_a_copy(self):
        covs = CovarianceMatrix(2)
        matrix = covs.to_numpy()
        matrix[0, 0] = 1.0

        assert covs.get(0, 0) == 0.0


class TestSummaries:
    def test_nansum_skips_nan(self):
        assert nansum([1.0, np.nan, 2.5]) == 3.5

    def test_confidence_interval(self):
        lower, upper = calculate_confidence_interval(100.0, 10.0)

        assert lower == pytest.approx(100.0 - 1.96 * 10.0)
        assert upper == pytest.approx(100.0 + 1.96 * 10.0)

    def test_unsupported_confidence_rejected(self):
        with pytest.raises(ValueError):
            calculate_confidence_interval(100.0, 10.0, confidence=0.8)

    def test_cv(self):
        assert calculate_cv(200.0, 10.0) == pytest.approx(5.0)
        assert calculate_cv(0.0, 10.0) == 0.0
        assert np.isnan(calculate_cv(200.0, float("nan")))

    def test_confidence_interval_levels(self):
        narrow = calculate_confidence_interval(100.0, 10.0, confidence=0.90)
        wide = calculate_confidence_interval(100.0, 10.0, confidence=0.99)

        assert narrow == pytest.approx((100.0 - 16.45, 100.0 + 16.45))
        assert wide == pytest.approx((100.0 - 25.76, 100.0 + 25.76))
