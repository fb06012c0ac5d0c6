import gzip
import tempfile
import unittest
from pathlib import Path

import numpy as np
from scipy import sparse

from mtxspectral import cli
from mtxspectral.filtering.merge import merge_columns
from mtxspectral.filtering.rows import filter_rows_by_sd
from mtxspectral.matching.columns import match_columns, sanitize_knn_params, search_knn
from mtxspectral.matrix.copiers import TripletReader
from mtxspectral.matrix.scanner import visit_triplet_file


def write_mtx(path: Path, n_rows: int, n_cols: int, entries: list[tuple[int, int, float]]) -> Path:
    lines = [f"{n_rows} {n_cols} {len(entries)}"] + [f"{i} {j} {v}" for i, j, v in entries]
    path.write_text("%%MatrixMarket matrix coordinate real general\n" + "\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_names(path: Path, names: list[str]) -> Path:
    path.write_text("\n".join(names) + "\n", encoding="utf-8")
    return path


def read_gz_lines(path: Path) -> list[str]:
    with gzip.open(path, "rt", encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f]


def read_dense(path: Path) -> np.ndarray:
    reader = TripletReader()
    visit_triplet_file(path, reader)
    return reader.to_sparse().toarray()


class TestFilterRows(unittest.TestCase):
    def make_inputs(self, root: Path):
        entries = [(1, j, 1) for j in range(1, 6)]
        entries += [(2, 5, 10)]
        entries += [(3, j, j) for j in range(1, 6)]
        mtx = write_mtx(root / "x.mtx", 4, 5, entries)
        rows = write_names(root / "rows.txt", ["g1", "g2", "g3", "g4"])
        return mtx, rows

    def test_keeps_rows_with_largest_sd(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            mtx, rows = self.make_inputs(root)
            result = filter_rows_by_sd(ntop=2, mtx_file=mtx, row_file=rows, output=str(root / "out" / "top"))

            self.assertEqual(result["n_rows_out"], 2)
            self.assertEqual(result["nnz_out"], 6)
            self.assertEqual(read_gz_lines(result["outputs"]["rows"]), ["g2", "g3"])

            header = read_gz_lines(result["outputs"]["mtx"])[1]
            self.assertEqual(header, "2 5 6")
            np.testing.assert_allclose(read_dense(result["outputs"]["mtx"]), [[0, 0, 0, 0, 10], [1, 2, 3, 4, 5]])

            scores = [float(x) for x in read_gz_lines(result["outputs"]["scores"])]
            np.testing.assert_allclose(scores, [np.sqrt(20.0), np.sqrt(2.5)])
            full_scores = [float(x) for x in read_gz_lines(result["outputs"]["full_scores"])]
            self.assertEqual(len(full_scores), 4)
            self.assertEqual(full_scores[-2:], [0.0, 0.0])

    def test_ntop_larger_than_rows(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            mtx, rows = self.make_inputs(root)
            result = filter_rows_by_sd(ntop=10, mtx_file=mtx, row_file=rows, output=str(root / "all"))
            self.assertEqual(result["n_rows_out"], 4)
            self.assertEqual(read_gz_lines(result["outputs"]["rows"]), ["g2", "g3", "g1", "g4"])

    def test_invalid_arguments(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            mtx, rows = self.make_inputs(root)
            with self.assertRaises(ValueError):
                filter_rows_by_sd(ntop=0, mtx_file=mtx, row_file=rows, output=str(root / "o"))
            with self.assertRaises(FileNotFoundError):
                filter_rows_by_sd(ntop=1, mtx_file=root / "missing.mtx", row_file=rows, output=str(root / "o"))


class TestMergeColumns(unittest.TestCase):
    def make_inputs(self, root: Path):
        glob_rows = write_names(root / "glob.txt", ["a", "b", "c"])
        mtx1 = write_mtx(root / "b1.mtx", 3, 2, [(1, 1, 1), (2, 1, 5), (3, 2, 2), (2, 2, 7)])
        rows1 = write_names(root / "b1.rows", ["b", "x", "a"])
        cols1 = write_names(root / "b1.cols", ["c1", "c2"])
        mtx2 = write_mtx(root / "b2.mtx", 2, 3, [(1, 1, 4), (2, 1, 1), (1, 3, 0.5)])
        rows2 = write_names(root / "b2.rows", ["c", "a"])
        cols2 = write_names(root / "b2.cols", ["d1", "d2", "d3"])
        return glob_rows, [mtx1, mtx2], [rows1, rows2], [cols1, cols2]

    def test_merge_on_global_rows(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            glob_rows, mtx_files, row_files, col_files = self.make_inputs(root)
            result = merge_columns(
                glob_row_file=glob_rows,
                column_threshold=1,
                output=str(root / "merged"),
                mtx_files=mtx_files,
                row_files=row_files,
                col_files=col_files,
            )

            self.assertEqual((result["n_rows"], result["n_cols"], result["nnz"]), (3, 4, 5))
            self.assertEqual(read_gz_lines(result["outputs"]["columns"]), ["c1 1", "c2 1", "d1 2", "d3 2"])
            self.assertEqual(read_gz_lines(result["outputs"]["rows"]), ["a", "b", "c"])
            self.assertEqual(read_gz_lines(result["outputs"]["mtx"])[1], "3 4 5")
            np.testing.assert_allclose(
                read_dense(result["outputs"]["mtx"]),
                [[0, 2, 1, 0], [1, 0, 0, 0], [0, 0, 4, 0.5]],
            )

    def test_missing_file_and_length_mismatch(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            glob_rows, mtx_files, row_files, col_files = self.make_inputs(root)
            with self.assertRaises(FileNotFoundError):
                merge_columns(
                    glob_row_file=glob_rows,
                    column_threshold=0,
                    output=str(root / "m"),
                    mtx_files=[mtx_files[0], root / "missing.mtx"],
                    row_files=row_files,
                    col_files=col_files,
                )
            with self.assertRaises(ValueError):
                merge_columns(
                    glob_row_file=glob_rows,
                    column_threshold=0,
                    output=str(root / "m"),
                    mtx_files=mtx_files,
                    row_files=row_files[:1],
                    col_files=col_files,
                )

    def test_merge_through_cli(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            glob_rows, mtx_files, row_files, col_files = self.make_inputs(root)
            code = cli.main(
                [
                    "--log-level",
                    "WARNING",
                    "merge",
                    "cols",
                    "--glob-rows",
                    str(glob_rows),
                    "--output",
                    str(root / "out" / "merged"),
                    "--mtx",
                    *map(str, mtx_files),
                    "--rows",
                    *map(str, row_files),
                    "--cols",
                    *map(str, col_files),
                ]
            )
            self.assertEqual(code, 0)
            # threshold 0 keeps the empty column d2
            self.assertEqual(len(read_gz_lines(root / "out" / "merged.columns.gz")), 5)


class TestMatchColumns(unittest.TestCase):
    def test_knn_parameters_are_clamped(self):
        params, warnings = sanitize_knn_params(knn=3, bilink=10, nlist=2, vecdim=5)
        self.assertEqual((params.knn, params.bilink, params.nlist), (3, 4, 4))
        self.assertEqual(len(warnings), 2)

        params, warnings = sanitize_knn_params(knn=1, bilink=1, nlist=50, vecdim=5)
        self.assertEqual(params.bilink, 2)
        self.assertEqual(len(warnings), 1)

    def test_search_knn_scales_rows(self):
        src = sparse.csr_matrix(np.array([[2.0, 0.0], [0.0, 0.5]]))
        tgt = sparse.csr_matrix(np.array([[1.0, 0.0], [0.0, 1.0]]))
        out, _ = search_knn(src, tgt, knn=1, bilink=2, nlist=5)

        self.assertEqual([(i, j) for i, j, _ in out], [(0, 0), (1, 1)])
        # [2, 0] scales to [1, 0]; [0, 0.5] is below unit norm and stays as is
        self.assertAlmostEqual(out[0][2], 0.0, places=8)
        self.assertAlmostEqual(out[1][2], 0.25, places=8)

    def test_search_knn_dimension_mismatch(self):
        with self.assertRaises(ValueError):
            search_knn(sparse.csr_matrix(np.ones((1, 2))), sparse.csr_matrix(np.ones((1, 3))), 1, 2, 5)

    def test_match_columns_drops_empty_columns(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = write_mtx(root / "src.mtx", 3, 2, [(1, 1, 1), (2, 2, 1)])
            tgt = write_mtx(root / "tgt.mtx", 3, 3, [(1, 1, 1), (2, 2, 1)])
            src_cols = write_names(root / "src.cols", ["s1", "s2"])
            tgt_cols = write_names(root / "tgt.cols", ["t1", "t2", "t3"])
            output = root / "match.txt.gz"

            result = match_columns(
                src_mtx=src,
                src_cols=src_cols,
                tgt_mtx=tgt,
                tgt_cols=tgt_cols,
                knn=2,
                bilink=2,
                nlist=10,
                output=output,
            )

            self.assertEqual(result["n_pairs"], 2)
            lines = [line.split() for line in read_gz_lines(output)]
            self.assertEqual([(a, b) for a, b, _ in lines], [("s1", "t1"), ("s2", "t2")])
            for _, _, d in lines:
                self.assertAlmostEqual(float(d), 0.0, places=8)


if __name__ == "__main__":
    unittest.main()
