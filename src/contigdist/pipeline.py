from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, TextIO

from tqdm import tqdm

from .alignments import BatchDispenser, iter_batches, iter_filtered_records, new_filter_counts, open_alignments
from .contigs import ContigRegistry
from .distribution import FragmentSizeDistribution, build_distribution
from .estimator import estimate_batch
from .histogram import detect_orientation, load_histogram
from .models import EstimationConfig
from .output import EstimateWriter, make_writer
from .validation import check_options, warn_seed_length

logger = logging.getLogger(__name__)


def _new_tally() -> Dict[str, int]:
    return {
        "batches_total": 0,
        "batches_skipped_short": 0,
        "links_written": 0,
        "links_weak": 0,
    }


def _worker(
    dispenser: BatchDispenser,
    registry: ContigRegistry,
    distribution: FragmentSizeDistribution,
    config: EstimationConfig,
    writer: EstimateWriter,
    bar: tqdm,
    bar_lock: threading.Lock,
) -> Dict[str, int]:
    """Take batches until the dispenser runs dry; estimation runs unlocked."""
    tally = _new_tally()
    while True:
        batch = dispenser.next_batch()
        if batch is None:
            return tally
        tally["batches_total"] += 1

        try:
            result = estimate_batch(batch, registry, distribution, config)
            if result is None:
                tally["batches_skipped_short"] += 1
            else:
                written, weak = writer.write_batch(result)
                tally["links_written"] += written
                tally["links_weak"] += weak
        except Exception:
            dispenser.close()
            raise

        with bar_lock:
            bar.update(1)


def estimate_distances(
    *,
    hist_path: str | Path,
    alignments_path: str,
    out: TextIO,
    k: int,
    min_pairs: int,
    seed_length: int,
    min_mapq: int = 1,
    dot: bool = False,
    threads: int = 1,
    verbose: int = 0,
    progress: bool = False,
) -> Dict[str, object]:
    """Main workhorse: estimate contig distances and write them to ``out``.

    The histogram is read and the library orientation fixed before any worker
    starts. Workers then share the alignment stream through a
    ``BatchDispenser``; the first error raised by any worker aborts the run.

    Returns a summary dict.
    """
    t0 = time.time()
    check_options(k=k, min_pairs=min_pairs, seed_length=seed_length, min_mapq=min_mapq, threads=threads)
    warn_seed_length(k, seed_length)

    call = detect_orientation(load_histogram(hist_path))
    distribution = build_distribution(call.histogram)

    config = EstimationConfig(
        k=int(k),
        min_pairs=int(min_pairs),
        seed_length=int(seed_length),
        min_mapq=int(min_mapq),
        orientation=call.orientation,
        dot=bool(dot),
        report_weak_links=verbose > 1,
    )

    alignment_file, registry = open_alignments(alignments_path)
    counts = new_filter_counts()
    tally = _new_tally()
    writer = make_writer(out, registry, config)
    try:
        writer.begin()
        records = iter_filtered_records(alignment_file.fetch(until_eof=True), min_mapq=config.min_mapq, counts=counts)
        dispenser = BatchDispenser(iter_batches(records, registry))

        bar_lock = threading.Lock()
        with tqdm(unit="contig", desc="Estimating distances", disable=not progress) as bar:
            with ThreadPoolExecutor(max_workers=threads, thread_name_prefix="contigdist") as pool:
                futures = [
                    pool.submit(_worker, dispenser, registry, distribution, config, writer, bar, bar_lock)
                    for _ in range(threads)
                ]
                for fut in futures:
                    for key, value in fut.result().items():
                        tally[key] += value
        writer.end()
    finally:
        alignment_file.close()

    dt = time.time() - t0
    logger.info(
        "Processed %d contigs; wrote %d links (%d below %d pairs) in %.1fs",
        tally["batches_total"],
        tally["links_written"],
        tally["links_weak"],
        config.min_pairs,
        dt,
    )

    trimmed = distribution.histogram
    return {
        "hist_path": str(hist_path),
        "alignments_path": str(alignments_path),
        "k": config.k,
        "min_pairs": config.min_pairs,
        "seed_length": config.seed_length,
        "min_mapq": config.min_mapq,
        "format": "dot" if config.dot else "adj",
        "threads": int(threads),
        "orientation": config.orientation.value,
        "num_fr": call.num_fr,
        "num_rf": call.num_rf,
        "num_contigs": len(registry),
        "distribution": trimmed.stats(),
        "fragment_size_hist": {
            "sizes": trimmed.keys_array.tolist(),
            "counts": trimmed.counts_array.tolist(),
        },
        "counts": {**counts, **tally},
        "runtime_seconds": float(dt),
    }
