from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .distribution import build_distribution
from .histogram import detect_orientation, load_histogram
from .models import LibraryOrientation
from .pipeline import estimate_distances
from .plotting import plot_fragment_size_hist
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _alignments_path(p: str) -> str:
    if p == "-":
        return p
    return _path_exists(p)


def _positive_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {s}") from None
    if v <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer: {s}")
    return v


def _non_negative_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {s}") from None
    if v < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {s}")
    return v


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="contigdist",
        description=(
            "contigdist: estimate distances between contigs using paired-end alignments "
            "and the library's fragment-size distribution."
        ),
    )
    p.add_argument("--version", action="version", version=f"contigdist {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # estimate
    # -----------------
    e = sub.add_parser(
        "estimate",
        help="Estimate gaps/overlaps between contigs linked by read pairs.",
    )
    e.add_argument("hist", type=_path_exists, help="Fragment-size histogram ('size count' per line).")
    e.add_argument(
        "alignments",
        nargs="?",
        default="-",
        type=_alignments_path,
        help="SAM/BAM sorted by anchor contig, with @SQ header lines (default: stdin).",
    )
    e.add_argument("-k", "--kmer", required=True, type=_positive_int, help="k-mer size.")
    e.add_argument("-n", "--npairs", required=True, type=_positive_int, help="Minimum number of pairs.")
    e.add_argument(
        "-s",
        "--seed-length",
        required=True,
        type=_positive_int,
        help="Minimum length of the seed contigs.",
    )
    e.add_argument(
        "-q",
        "--min-mapq",
        type=_non_negative_int,
        default=1,
        help="Ignore alignments with mapping quality less than this threshold.",
    )
    e.add_argument("-o", "--out", default=None, help="Write estimates to this file (default: stdout).")
    e.add_argument("--dot", action="store_true", help="Write estimates as graph edges in dot format.")
    e.add_argument("-j", "--threads", type=_positive_int, default=1, help="Number of worker threads.")
    e.add_argument(
        "--report-dir",
        default=None,
        help="Also write summary.json, a fragment-size plot, report.html and a log here.",
    )
    e.add_argument("--progress", action="store_true", help="Show a progress bar on stderr.")
    e.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # hist-stats
    # -----------------
    h = sub.add_parser(
        "hist-stats",
        help="Report library orientation and fragment-size statistics of a histogram.",
    )
    h.add_argument("hist", type=_path_exists, help="Fragment-size histogram.")
    h.add_argument("--plot", default=None, help="Write a PNG plot of the trimmed distribution.")
    h.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny histogram and SAM for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--rf", action="store_true", help="Simulate a reverse-forward (mate-pair) library.")
    t.add_argument("--gap", type=int, default=40, help="Distance between the two toy contigs.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


# -----------------
# Command handlers
# -----------------

def _write_report(report_dir: Path, run: Dict[str, Any], out_label: str) -> Path:
    report_dir = ensure_outdir(report_dir)
    write_json(report_dir / "summary.json", run)

    plot_png = report_dir / "plots" / "fragment_sizes.png"
    plot_fragment_size_hist(
        sizes=run["fragment_size_hist"]["sizes"],
        counts=run["fragment_size_hist"]["counts"],
        out_png=plot_png,
        mean=run["distribution"]["mean"],
    )
    return render_report(
        outdir=report_dir,
        version=__version__,
        run=run,
        out_path=out_label,
        plot=str(Path("plots") / plot_png.name),
    )


def cmd_estimate(args: argparse.Namespace) -> int:
    report_dir = Path(args.report_dir).expanduser().resolve() if args.report_dir else None
    log_path = _log_path(report_dir, "estimate.log") if report_dir is not None else None
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("contigdist")
    logger.info("contigdist %s", __version__)

    try:
        out_fh = open(args.out, "wt", encoding="utf-8") if args.out else sys.stdout
        try:
            run = estimate_distances(
                hist_path=args.hist,
                alignments_path=args.alignments,
                out=out_fh,
                k=int(args.kmer),
                min_pairs=int(args.npairs),
                seed_length=int(args.seed_length),
                min_mapq=int(args.min_mapq),
                dot=bool(args.dot),
                threads=int(args.threads),
                verbose=int(args.verbose),
                progress=bool(args.progress),
            )
        finally:
            if args.out:
                out_fh.close()

        if report_dir is not None:
            report_path = _write_report(report_dir, run, args.out or "<stdout>")
            logger.info("Report written: %s", report_path)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_hist_stats(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    try:
        call = detect_orientation(load_histogram(args.hist))
        distribution = build_distribution(call.histogram)
        trimmed = distribution.histogram
        stats = trimmed.stats()

        print(f"orientation: {call.orientation.value} (FR {call.num_fr}, RF {call.num_rf})")
        print(
            f"mean: {stats['mean']:.4g} median: {stats['median']} sd: {stats['sd']:.4g} "
            f"n: {stats['n']} min: {stats['min']} max: {stats['max']}"
        )
        print(trimmed.barplot())

        if args.plot:
            plot_fragment_size_hist(
                sizes=trimmed.keys_array.tolist(),
                counts=trimmed.counts_array.tolist(),
                out_png=args.plot,
                mean=stats["mean"],
            )
            print(str(Path(args.plot)))
        return 0
    except Exception as e:
        return _handle_error(e)


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    orientation = LibraryOrientation.RF if args.rf else LibraryOrientation.FR
    summary = make_toy_data(outdir=outdir, orientation=orientation, gap=int(args.gap))
    print(json.dumps(summary, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "estimate":
        return cmd_estimate(args)
    if args.cmd == "hist-stats":
        return cmd_hist_stats(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
