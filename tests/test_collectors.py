import io
import unittest

import numpy as np

from mtxspectral.matrix.collectors import (
    ColCounterOnValidRows,
    ColStatCollector,
    RowStatCollector,
    axis_sd,
    axis_variance,
    rank_by_score_descending,
)
from mtxspectral.matrix.scanner import visit_triplet_stream


def collect(visitor, text):
    visit_triplet_stream(io.StringIO(text), visitor)
    return visitor


class TestCollectors(unittest.TestCase):
    def test_row_and_column_sums(self):
        text = "2 2 3\n1 1 5\n1 2 3\n2 2 1\n"
        rows = collect(RowStatCollector(), text)
        cols = collect(ColStatCollector(), text)

        np.testing.assert_array_equal(rows.n, [2, 1])
        np.testing.assert_allclose(rows.s1, [8.0, 1.0])
        np.testing.assert_allclose(rows.s2, [34.0, 1.0])

        np.testing.assert_array_equal(cols.n, [1, 2])
        np.testing.assert_allclose(cols.s1, [5.0, 4.0])
        np.testing.assert_allclose(cols.s2, [25.0, 10.0])
        self.assertEqual((cols.max_row, cols.max_col, cols.max_elem), (2, 2, 3))

    def test_variance_counts_implicit_zeros(self):
        values = [2, 4, 4, 4, 5, 5, 7, 9]
        text = "1 8 8\n" + "".join(f"1 {j + 1} {v}\n" for j, v in enumerate(values))
        rows = collect(RowStatCollector(), text)

        self.assertEqual(rows.n_obs, 8)
        np.testing.assert_allclose(rows.variance(ddof=0), [4.0])
        np.testing.assert_allclose(rows.sd(ddof=0), [2.0])
        np.testing.assert_allclose(rows.variance(ddof=1), [32.0 / 7.0])

    def test_sparse_row_sd_matches_dense(self):
        text = "2 5 3\n1 5 10\n2 1 1\n2 2 2\n"
        rows = collect(RowStatCollector(), text)
        dense = np.array([[0, 0, 0, 0, 10], [1, 2, 0, 0, 0]], dtype=float)
        np.testing.assert_allclose(rows.sd(ddof=1), dense.std(axis=1, ddof=1))

    def test_tiny_values_are_not_counted(self):
        rows = collect(RowStatCollector(), "1 3 3\n1 1 1e-9\n1 2 -1e-12\n1 3 2\n")
        np.testing.assert_array_equal(rows.n, [1])
        np.testing.assert_array_equal(rows.stored, [3])
        np.testing.assert_allclose(rows.s1, [2.0])

    def test_duplicates_accumulate(self):
        cols = collect(ColStatCollector(), "1 1 2\n1 1 2\n1 1 3\n")
        np.testing.assert_array_equal(cols.n, [2])
        np.testing.assert_allclose(cols.s1, [5.0])

    def test_col_counter_on_valid_rows(self):
        counter = ColCounterOnValidRows({0: 0, 2: 1})
        collect(counter, "3 2 4\n1 1 1\n2 1 5\n3 2 0\n3 1 2\n")
        np.testing.assert_array_equal(counter.col_n, [2, 0])
        np.testing.assert_array_equal(counter.col_stored, [2, 1])

    def test_constant_row_variance_is_not_negative(self):
        var = axis_variance(np.array([3.0 * 0.1]), np.array([3.0 * 0.01]), 3)
        self.assertGreaterEqual(var[0], 0.0)
        np.testing.assert_allclose(axis_sd(np.array([0.0]), np.array([0.0]), 4), [0.0])

    def test_rank_by_score_is_stable_for_ties(self):
        order = rank_by_score_descending(np.array([1.0, 3.0, 3.0, 0.0]))
        self.assertEqual(order.tolist(), [1, 2, 0, 3])


if __name__ == "__main__":
    unittest.main()
