from __future__ import annotations

import logging
import re
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pysam

from .contigs import ContigRegistry
from .models import AlignmentRecord, ContigBatch

logger = logging.getLogger(__name__)

_CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=X])")
_CIGAR_OPS = {op: i for i, op in enumerate("MIDNSHP=X")}
_REF_CONSUMING = (0, 2, 3, 7, 8)  # M, D, N, =, X
_CLIPS = (4, 5)  # S, H


class UnsortedInputError(ValueError):
    pass


def parse_cigar(cigar: str) -> List[Tuple[int, int]]:
    """Parse a CIGAR string (e.g. from the MC tag) into pysam-style tuples."""
    tuples = [(_CIGAR_OPS[op], int(n)) for n, op in _CIGAR_RE.findall(cigar)]
    if "".join(f"{n}{'MIDNSHP=X'[op]}" for op, n in tuples) != cigar:
        raise ValueError(f"malformed CIGAR string: {cigar!r}")
    return tuples


def _clip(ops: Iterable[Tuple[int, int]]) -> int:
    n = 0
    for op, length in ops:
        if op not in _CLIPS:
            break
        n += length
    return n


def query_start_on_target(start: int, cigartuples: Sequence[Tuple[int, int]], is_reverse: bool) -> int:
    """Target position of the first base of the query, extrapolated over clips.

    For a reverse-strand alignment the query starts at the alignment end.
    """
    if is_reverse:
        span = sum(length for op, length in cigartuples if op in _REF_CONSUMING)
        return start + span + _clip(reversed(cigartuples))
    return start - _clip(cigartuples)


def to_record(read: pysam.AlignedSegment) -> AlignmentRecord:
    """Keep only what distance estimation needs from a mapped, paired read."""
    cigar = read.cigartuples or []
    a0 = query_start_on_target(int(read.reference_start), cigar, bool(read.is_reverse))

    if read.has_tag("MC"):
        mate_cigar = parse_cigar(str(read.get_tag("MC")))
    else:
        # Without the mate CIGAR assume the mate aligned as long as this read.
        mate_cigar = [(0, int(read.infer_read_length() or read.query_length or 0))]
    a1 = query_start_on_target(int(read.next_reference_start), mate_cigar, bool(read.mate_is_reverse))

    return AlignmentRecord(
        anchor_id=int(read.reference_id),
        mate_id=int(read.next_reference_id),
        mapq=int(read.mapping_quality),
        is_reverse=bool(read.is_reverse),
        is_mate_reverse=bool(read.mate_is_reverse),
        target_at_query_start=a0,
        mate_target_at_query_start=a1,
    )


def new_filter_counts() -> Dict[str, int]:
    return {
        "records_total": 0,
        "records_used": 0,
        "records_unmapped": 0,
        "records_unpaired": 0,
        "records_mate_unmapped": 0,
        "records_same_contig": 0,
        "records_low_mapq": 0,
    }


def iter_filtered_records(
    reads: Iterable[pysam.AlignedSegment],
    *,
    min_mapq: int,
    counts: Optional[Dict[str, int]] = None,
) -> Iterator[AlignmentRecord]:
    """Yield records of reads whose mate maps to another contig.

    Dropped reads are only tallied in ``counts``; they are not evidence.
    """
    if counts is None:
        counts = new_filter_counts()
    for read in reads:
        counts["records_total"] += 1
        if read.is_unmapped:
            counts["records_unmapped"] += 1
            continue
        if not read.is_paired:
            counts["records_unpaired"] += 1
            continue
        if read.mate_is_unmapped or read.next_reference_id < 0:
            counts["records_mate_unmapped"] += 1
            continue
        if read.reference_id == read.next_reference_id:
            counts["records_same_contig"] += 1
            continue
        if read.mapping_quality < min_mapq:
            counts["records_low_mapq"] += 1
            continue
        counts["records_used"] += 1
        yield to_record(read)


def iter_batches(records: Iterable[AlignmentRecord], registry: ContigRegistry) -> Iterator[ContigBatch]:
    """Group consecutive records by anchor contig.

    The stream must be sorted by anchor contig: once the batch of a contig has
    been closed, seeing that contig again raises ``UnsortedInputError``.
    """
    seen = [False] * len(registry)
    current: List[AlignmentRecord] = []
    for rec in records:
        if current and rec.anchor_id == current[0].anchor_id:
            current.append(rec)
            continue
        if seen[rec.anchor_id]:
            raise UnsortedInputError(f"input must be sorted: '{registry.name(rec.anchor_id)}'")
        seen[rec.anchor_id] = True
        if current:
            yield ContigBatch(current[0].anchor_id, tuple(current))
        current = [rec]
    if current:
        yield ContigBatch(current[0].anchor_id, tuple(current))


class BatchDispenser:
    """Hands out whole contig batches to worker threads in stream order.

    Reading and grouping happen inside the lock, one caller at a time. At end
    of stream, or after any caller has hit an error, every call returns None.
    """

    def __init__(self, batches: Iterator[ContigBatch]) -> None:
        self._batches = batches
        self._lock = threading.Lock()
        self._done = False

    def next_batch(self) -> Optional[ContigBatch]:
        with self._lock:
            if self._done:
                return None
            try:
                return next(self._batches)
            except StopIteration:
                self._done = True
                return None
            except Exception:
                self._done = True
                raise

    def close(self) -> None:
        """Stop handing out batches, e.g. after a worker failed."""
        with self._lock:
            self._done = True


def open_alignments(path: str) -> Tuple[pysam.AlignmentFile, ContigRegistry]:
    """Open a SAM/BAM file (``-`` for stdin) and lock its contig registry."""
    alignment_file = pysam.AlignmentFile(str(path), "r", check_sq=False)
    try:
        registry = ContigRegistry.from_header(alignment_file.header)
    except Exception:
        alignment_file.close()
        raise
    logger.info("Read %d contig lengths from %s", len(registry), path)
    return alignment_file, registry
