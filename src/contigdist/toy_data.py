from __future__ import annotations

import random
from collections import Counter
from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .models import LibraryOrientation
from .utils import ensure_outdir, write_json

READ_LEN = 50

_PAIRED = 0x1
_REVERSE = 0x10
_MATE_REVERSE = 0x20
_READ1 = 0x40
_READ2 = 0x80


def _make_read(
    name: str,
    ref_id: int,
    start0: int,
    flag: int,
    mate_ref_id: int,
    mate_start0: int,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = ("ACGT" * READ_LEN)[:READ_LEN]
    a.flag = flag
    a.reference_id = ref_id
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = [(0, READ_LEN)]
    a.next_reference_id = mate_ref_id
    a.next_reference_start = mate_start0
    a.query_qualities = pysam.qualitystring_to_array("I" * READ_LEN)
    a.set_tag("MC", f"{READ_LEN}M")
    return a


def _place_pair(
    tail_a: int,
    head_b: int,
    len_a: int,
    orientation: LibraryOrientation,
) -> Tuple[int, int, int, int]:
    """Start positions and flags of a read on ctgA and its mate on ctgB.

    ``tail_a`` bases of ctgA lie between the ctgA read's 5' end and the end of
    ctgA; ``head_b`` bases of ctgB lie before the ctgB read's 5' end.
    """
    if orientation is LibraryOrientation.FR:
        start_a = len_a - tail_a
        start_b = head_b - READ_LEN
        flag_a = _PAIRED | _MATE_REVERSE | _READ1
        flag_b = _PAIRED | _REVERSE | _READ2
    else:
        start_a = len_a - tail_a - READ_LEN
        start_b = head_b
        flag_a = _PAIRED | _REVERSE | _READ1
        flag_b = _PAIRED | _MATE_REVERSE | _READ2
    return start_a, flag_a, start_b, flag_b


def make_toy_data(
    *,
    outdir: str | Path,
    orientation: LibraryOrientation = LibraryOrientation.FR,
    gap: int = 40,
    num_pairs: int = 30,
    seed: int = 7,
) -> Dict[str, object]:
    """Create a tiny fragment-size histogram and SAM for quick demos/tests.

    Two 1000 bp contigs, ctgA and ctgB, lie ``gap`` bp apart with read pairs
    spanning the gap; a third contig, ctgC (150 bp), has no reads. ctgA also
    carries one read whose mate is on ctgA and one read with MAPQ 0.

    The outputs include:
    - fragments.hist (``size count`` per line; negative sizes for RF)
    - pairs.sam (sorted by anchor contig)

    Returns
    -------
    dict
        Paths to the generated files and the simulated gap.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)
    mean, sd = 500, 30
    len_a = len_b = 1000
    sign = 1 if orientation is LibraryOrientation.FR else -1

    hist = Counter(sign * int(round(rng.gauss(mean, sd))) for _ in range(20000))
    hist_path = outdir_p / "fragments.hist"
    hist_path.write_text(
        "".join(f"{size}\t{count}\n" for size, count in sorted(hist.items())),
        encoding="utf-8",
    )

    # Bases of the two contigs a read pair must cover, excluding the gap.
    lo = READ_LEN if orientation is LibraryOrientation.FR else 0
    reads_a: List[pysam.AlignedSegment] = []
    reads_b: List[pysam.AlignedSegment] = []
    for i in range(num_pairs):
        covered = int(round(rng.gauss(mean, sd))) - gap
        tail_a = rng.randint(lo, covered - lo)
        head_b = covered - tail_a
        start_a, flag_a, start_b, flag_b = _place_pair(tail_a, head_b, len_a, orientation)
        reads_a.append(_make_read(f"p{i}", 0, start_a, flag_a, 1, start_b))
        reads_b.append(_make_read(f"p{i}", 1, start_b, flag_b, 0, start_a))

    reads_a.append(_make_read("same", 0, 100, _PAIRED | _MATE_REVERSE | _READ1, 0, 400))
    reads_a.append(_make_read("lowq", 0, 700, _PAIRED | _MATE_REVERSE | _READ1, 1, 100, mapq=0))
    reads_a.sort(key=lambda r: r.reference_start)
    reads_b.sort(key=lambda r: r.reference_start)

    header = {
        "HD": {"VN": "1.6", "SO": "unsorted"},
        "SQ": [
            {"SN": "ctgA", "LN": len_a},
            {"SN": "ctgB", "LN": len_b},
            {"SN": "ctgC", "LN": 150},
        ],
    }
    sam_path = outdir_p / "pairs.sam"
    with pysam.AlignmentFile(str(sam_path), "w", header=header) as sam:
        for r in reads_a + reads_b:
            sam.write(r)

    summary: Dict[str, object] = {
        "hist": str(hist_path),
        "sam": str(sam_path),
        "orientation": orientation.value,
        "gap": gap,
        "num_pairs": num_pairs,
        "outdir": str(outdir_p),
    }
    write_json(outdir_p / "toy_summary.json", summary)
    return summary
