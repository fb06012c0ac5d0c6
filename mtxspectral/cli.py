from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from .errors import EmptyIndexMapError, MalformedTripletError, RankError, SingularSpectrumError
from .filtering.merge import merge_columns
from .filtering.rows import filter_rows_by_sd
from .matching.columns import match_columns
from .spectral.pipeline import run_spectral_pipeline


logger = logging.getLogger(__name__)

USER_ERRORS = (
    FileNotFoundError,
    MalformedTripletError,
    EmptyIndexMapError,
    RankError,
    SingularSpectrumError,
)


def _execution_root() -> Path:
    return Path.cwd().resolve()


def _is_filesystem_root(path: Path) -> bool:
    return path == path.parent


def _resolve_output_root(output_root: Path, caller: str) -> Path:
    root = _execution_root()
    candidate = output_root.expanduser()
    resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
    if resolved == root or _is_filesystem_root(resolved):
        # Never write caller artifacts directly at execution root or filesystem root.
        return (root / "runs" / caller).resolve()
    return resolved


def _resolve_output_prefix(output: str, caller: str) -> str:
    root = _execution_root()
    candidate = Path(output).expanduser()
    resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
    if resolved.parent == root or _is_filesystem_root(resolved.parent):
        # Never write output files directly at execution root or filesystem root.
        return str((root / "runs" / caller / resolved.name).resolve())
    return str(resolved)


def _cmd_run_spectral(args: argparse.Namespace) -> int:
    output_root = _resolve_output_root(args.output_root, "run_spectral")
    result = run_spectral_pipeline(
        mtx_file=args.mtx,
        output_root=output_root,
        run_id=args.run_id,
        rank=args.rank,
        n_iter=args.iter,
        tau_scale=args.tau,
        col_norm=args.col_norm,
        log_scale=args.log_scale,
        row_weight_file=args.row_weight,
        nystrom_sample=args.nystrom_sample,
        nystrom_batch=args.nystrom_batch,
        full=args.full,
        seed=args.seed,
    )

    print("Run complete")
    print(f"Run dir: {result['run_dir']}")
    print(f"Report: {result['report']}")
    print(f"Embedding: {result['embedding']}")
    return 0


def _cmd_filter_rows(args: argparse.Namespace) -> int:
    result = filter_rows_by_sd(
        ntop=args.ntop,
        mtx_file=args.mtx,
        row_file=args.rows,
        output=_resolve_output_prefix(args.output, "filter_rows"),
    )
    print(f"Kept {result['n_rows_out']} of {result['n_rows_in']} rows")
    for key, path in result["outputs"].items():
        print(f"{key}: {path}")
    return 0


def _cmd_merge_cols(args: argparse.Namespace) -> int:
    result = merge_columns(
        glob_row_file=args.glob_rows,
        column_threshold=args.column_threshold,
        output=_resolve_output_prefix(args.output, "merge_cols"),
        mtx_files=args.mtx,
        row_files=args.rows,
        col_files=args.cols,
    )
    for message in result["warnings"]:
        print(f"Warning: {message}")
    print(f"Merged [{result['n_rows']} x {result['n_cols']}] with {result['nnz']} nonzeros")
    for key, path in result["outputs"].items():
        print(f"{key}: {path}")
    return 0


def _cmd_match_cols(args: argparse.Namespace) -> int:
    result = match_columns(
        src_mtx=args.src_mtx,
        src_cols=args.src_cols,
        tgt_mtx=args.tgt_mtx,
        tgt_cols=args.tgt_cols,
        knn=args.knn,
        bilink=args.bilink,
        nlist=args.nlist,
        output=Path(_resolve_output_prefix(str(args.output), "match_cols")),
    )
    print(f"Matched {result['n_pairs']} column pairs")
    print(f"Saved: {result['output']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="mtxspectral unified CLI")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging verbosity",
    )
    sub = parser.add_subparsers(dest="command_group", required=True)

    run_parser = sub.add_parser("run", help="Run end-to-end pipelines")
    run_sub = run_parser.add_subparsers(dest="run_command", required=True)

    spectral = run_sub.add_parser("spectral", help="Spectral embedding of matrix columns")
    spectral.add_argument("--mtx", type=Path, required=True, help="Matrix Market file (.mtx or .mtx.gz)")
    spectral.add_argument("--output-root", type=Path, default=Path("runs"), help="Output root for run artifacts")
    spectral.add_argument("--run-id", type=str, default=None, help="Optional fixed run id")
    spectral.add_argument("--rank", type=int, default=50)
    spectral.add_argument("--iter", type=int, default=5, help="Power iterations of the randomized SVD")
    spectral.add_argument("--tau", type=float, default=1.0, help="Regularization scale on the mean column degree")
    spectral.add_argument("--col-norm", type=float, default=10000.0, help="Column total target; <= 0 uses the median")
    spectral.add_argument("--log-scale", dest="log_scale", action="store_true", default=True)
    spectral.add_argument("--raw-scale", dest="log_scale", action="store_false")
    spectral.add_argument("--row-weight", type=Path, default=None, help="One weight per matrix row")
    spectral.add_argument("--nystrom-sample", type=int, default=10000)
    spectral.add_argument("--nystrom-batch", type=int, default=10000)
    spectral.add_argument("--full", action="store_true", help="Decompose all columns instead of a Nystrom sample")
    spectral.add_argument("--seed", type=int, default=None)
    spectral.set_defaults(func=_cmd_run_spectral)

    filter_parser = sub.add_parser("filter", help="Matrix filtering commands")
    filter_sub = filter_parser.add_subparsers(dest="filter_command", required=True)

    rows = filter_sub.add_parser("rows", help="Keep the rows with the largest standard deviation")
    rows.add_argument("--ntop", type=int, required=True)
    rows.add_argument("--mtx", type=Path, required=True)
    rows.add_argument("--rows", type=Path, required=True, help="Row name file")
    rows.add_argument("--output", type=str, required=True, help="Output prefix")
    rows.set_defaults(func=_cmd_filter_rows)

    merge_parser = sub.add_parser("merge", help="Matrix merging commands")
    merge_sub = merge_parser.add_subparsers(dest="merge_command", required=True)

    cols = merge_sub.add_parser("cols", help="Merge the columns of several matrices on a global row set")
    cols.add_argument("--glob-rows", type=Path, required=True, help="Global row name file")
    cols.add_argument("--column-threshold", type=int, default=0)
    cols.add_argument("--output", type=str, required=True, help="Output prefix")
    cols.add_argument("--mtx", type=Path, nargs="+", required=True)
    cols.add_argument("--rows", type=Path, nargs="+", required=True)
    cols.add_argument("--cols", type=Path, nargs="+", required=True)
    cols.set_defaults(func=_cmd_merge_cols)

    match_parser = sub.add_parser("match", help="Column matching commands")
    match_sub = match_parser.add_subparsers(dest="match_command", required=True)

    match = match_sub.add_parser("cols", help="Nearest target columns for every source column")
    match.add_argument("--src-mtx", type=Path, required=True)
    match.add_argument("--src-cols", type=Path, required=True)
    match.add_argument("--tgt-mtx", type=Path, required=True)
    match.add_argument("--tgt-cols", type=Path, required=True)
    match.add_argument("--knn", type=int, default=10)
    match.add_argument("--bilink", type=int, default=10)
    match.add_argument("--nlist", type=int, default=50)
    match.add_argument("--output", type=Path, required=True)
    match.set_defaults(func=_cmd_match_cols)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except USER_ERRORS as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
