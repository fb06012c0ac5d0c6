import io
import unittest

import numpy as np

from mtxspectral.errors import EmptyIndexMapError
from mtxspectral.matrix.copiers import (
    MATRIX_MARKET_BANNER,
    RemappedColumnsReader,
    RowRemappedCopier,
    TripletCopier,
    TripletReader,
    write_header,
)
from mtxspectral.matrix.scanner import visit_triplet_stream


def read_back(text):
    reader = TripletReader()
    visit_triplet_stream(io.StringIO(text), reader)
    return reader


class TestCopiers(unittest.TestCase):
    def test_identity_copy_round_trip(self):
        text = "3 3 4\n1 1 1.5\n2 3 1e-10\n3 2 -2\n1 3 0.123456789012345\n"
        identity = {0: 0, 1: 1, 2: 2}

        sink = io.StringIO()
        write_header(sink, 3, 3, 4)
        copier = TripletCopier(sink, identity, identity)
        visit_triplet_stream(io.StringIO(text), copier)

        self.assertEqual(copier.n_written, 4)
        self.assertTrue(sink.getvalue().startswith(MATRIX_MARKET_BANNER + "\n3 3 4\n"))
        self.assertTrue(sink.getvalue().endswith("1 3 0.123456789012345\n"))
        self.assertEqual(read_back(sink.getvalue()).triplets(), read_back(text).triplets())

    def test_unmapped_triplets_are_dropped_in_order(self):
        sink = io.StringIO()
        copier = TripletCopier(sink, {0: 0, 2: 1}, {0: 0, 1: 1, 2: 2})
        visit_triplet_stream(io.StringIO("3 3 3\n1 1 1.5\n2 3 4\n3 2 -2\n"), copier)
        self.assertEqual(sink.getvalue(), "1 1 1.5\n2 2 -2\n")

    def test_empty_index_map_is_rejected(self):
        with self.assertRaises(EmptyIndexMapError):
            TripletCopier(io.StringIO(), {}, {0: 0})
        with self.assertRaises(EmptyIndexMapError):
            TripletCopier(io.StringIO(), {0: 0}, {})
        with self.assertRaises(EmptyIndexMapError):
            RowRemappedCopier(io.StringIO(), {}, 0)
        with self.assertRaises(EmptyIndexMapError):
            RemappedColumnsReader({})

    def test_row_remapped_copier_writes_header(self):
        sink = io.StringIO()
        copier = RowRemappedCopier(sink, {2: 0, 0: 1}, nnz=2)
        visit_triplet_stream(io.StringIO("3 2 3\n1 1 1\n2 2 2\n3 1 3\n"), copier)
        self.assertEqual(
            sink.getvalue(),
            MATRIX_MARKET_BANNER + "\n2 2 2\n2 1 1\n1 1 3\n",
        )

    def test_reader_sums_duplicates(self):
        reader = read_back("2 2 3\n1 1 1\n1 1 2\n2 2 4\n")
        mat = reader.to_sparse()
        self.assertEqual(mat.shape, (2, 2))
        np.testing.assert_allclose(mat.toarray(), [[3.0, 0.0], [0.0, 4.0]])

    def test_remapped_columns_reader(self):
        reader = RemappedColumnsReader({2: 0, 0: 1})
        visit_triplet_stream(io.StringIO("2 3 3\n1 1 1\n1 2 2\n2 3 3\n"), reader)
        mat = reader.to_sparse()
        self.assertEqual(mat.shape, (2, 2))
        np.testing.assert_allclose(mat.toarray(), [[0.0, 1.0], [3.0, 0.0]])


if __name__ == "__main__":
    unittest.main()
