import json
import subprocess
import sys
from pathlib import Path

from contigdist.toy_data import make_toy_data


def _run_cli(args: list[str], stdin=None) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "contigdist"] + args,
        check=False,
        capture_output=True,
        text=True,
        input=stdin,
    )


def test_make_toy_data_dry_run_does_not_write(tmp_path: Path) -> None:
    outdir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(outdir), "--dry-run"])
    assert cp.returncode == 0
    assert "Would write" in cp.stdout
    assert not outdir.exists()


def test_make_toy_data_and_estimate(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0
    assert json.loads(cp.stdout)["gap"] == 40

    cp = _run_cli(
        [
            "estimate",
            str(toy_dir / "fragments.hist"),
            str(toy_dir / "pairs.sam"),
            "-k",
            "20",
            "-n",
            "10",
            "-s",
            "200",
        ]
    )
    assert cp.returncode == 0
    names = sorted(line.split(" ", 1)[0] for line in cp.stdout.splitlines())
    assert names == ["ctgA", "ctgB"]


def test_estimate_reads_stdin_and_writes_report(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    out = tmp_path / "dist.dot"
    report_dir = tmp_path / "report"
    cp = _run_cli(
        [
            "estimate",
            toy["hist"],
            "-k",
            "20",
            "-n",
            "10",
            "-s",
            "200",
            "--dot",
            "-o",
            str(out),
            "--report-dir",
            str(report_dir),
        ],
        stdin=Path(toy["sam"]).read_text(encoding="utf-8"),
    )
    assert cp.returncode == 0, cp.stderr
    assert out.read_text(encoding="utf-8").startswith("digraph dist {\n")
    assert (report_dir / "report.html").exists()
    assert (report_dir / "plots" / "fragment_sizes.png").exists()
    summary = json.loads((report_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["format"] == "dot"
    assert summary["counts"]["links_written"] == 2


def test_missing_kmer_is_a_usage_error(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(["estimate", toy["hist"], toy["sam"], "-n", "10", "-s", "200"])
    assert cp.returncode != 0
    assert "-k/--kmer" in cp.stderr


def test_short_seed_length_warns(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(["estimate", toy["hist"], toy["sam"], "-k", "20", "-n", "10", "-s", "30"])
    assert cp.returncode == 0
    assert "the seed-length should be at least twice k" in cp.stderr


def test_unsorted_input_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    lines = Path(toy["sam"]).read_text(encoding="utf-8").splitlines(keepends=True)
    header = [line for line in lines if line.startswith("@")]
    body = [line for line in lines if not line.startswith("@")]
    # move one spanning ctgA record behind the ctgB records
    moved = next(line for line in body if line.startswith("p") and "\tctgA\t" in line)
    body.remove(moved)
    unsorted = tmp_path / "unsorted.sam"
    unsorted.write_text("".join(header + body + [moved]), encoding="utf-8")

    cp = _run_cli(["estimate", toy["hist"], str(unsorted), "-k", "20", "-n", "10", "-s", "200"])
    assert cp.returncode != 0
    assert "input must be sorted: 'ctgA'" in cp.stderr


def test_empty_histogram_is_fatal(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    hist = tmp_path / "empty.hist"
    hist.write_text("# nothing here\n", encoding="utf-8")
    cp = _run_cli(["estimate", str(hist), toy["sam"], "-k", "20", "-n", "10", "-s", "200"])
    assert cp.returncode == 2
    assert "HistogramError" in cp.stderr
    assert "is empty" in cp.stderr


def test_hist_stats(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    plot = tmp_path / "hist.png"
    cp = _run_cli(["hist-stats", toy["hist"], "--plot", str(plot)])
    assert cp.returncode == 0
    assert cp.stdout.startswith("orientation: FR")
    assert "mean:" in cp.stdout
    assert plot.exists()
