import threading
from pathlib import Path

import pysam
import pytest

from contigdist.alignments import (
    BatchDispenser,
    UnsortedInputError,
    iter_batches,
    iter_filtered_records,
    new_filter_counts,
    open_alignments,
    parse_cigar,
    query_start_on_target,
    to_record,
)
from contigdist.contigs import ContigRegistryBuilder
from contigdist.models import AlignmentRecord, ContigNode


def make_read(
    flag: int,
    *,
    ref_id: int = 0,
    start: int = 100,
    mate_ref_id: int = 1,
    mate_start: int = 200,
    mapq: int = 60,
    cigar=None,
    mate_cigar: str = "50M",
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = "r1"
    a.query_sequence = "A" * 50
    a.flag = flag
    a.reference_id = ref_id
    a.reference_start = start
    a.mapping_quality = mapq
    a.cigartuples = cigar or [(0, 50)]
    a.next_reference_id = mate_ref_id
    a.next_reference_start = mate_start
    a.query_qualities = pysam.qualitystring_to_array("I" * 50)
    if mate_cigar:
        a.set_tag("MC", mate_cigar)
    return a


def make_registry(*contigs):
    builder = ContigRegistryBuilder()
    for name, length in contigs:
        builder.add(name, length)
    return builder.freeze()


def rec(anchor_id: int, mate_id: int = 1) -> AlignmentRecord:
    return AlignmentRecord(anchor_id, mate_id, 60, False, True, 10, 20)


def test_parse_cigar():
    assert parse_cigar("5S40M2I3D") == [(4, 5), (0, 40), (1, 2), (2, 3)]
    with pytest.raises(ValueError):
        parse_cigar("40Q")
    with pytest.raises(ValueError):
        parse_cigar("M40")


def test_query_start_on_target_extrapolates_clips():
    assert query_start_on_target(100, [(4, 5), (0, 45)], False) == 95
    assert query_start_on_target(100, [(0, 45), (4, 5)], True) == 150
    assert query_start_on_target(100, [(5, 3), (0, 40), (2, 2), (4, 4)], True) == 146


def test_to_record_uses_mate_cigar():
    read = make_read(0x1 | 0x20, start=100, mate_start=200, mate_cigar="10S40M")
    r = to_record(read)
    assert (r.anchor_id, r.mate_id) == (0, 1)
    assert (r.is_reverse, r.is_mate_reverse) == (False, True)
    assert r.target_at_query_start == 100
    assert r.mate_target_at_query_start == 240

    read = make_read(0x1 | 0x10, start=100, mate_start=200, mate_cigar="10S40M")
    r = to_record(read)
    assert r.target_at_query_start == 150
    assert r.mate_target_at_query_start == 190


def test_to_record_without_mate_cigar_assumes_read_length():
    read = make_read(0x1 | 0x20, mate_start=200, mate_cigar="")
    assert to_record(read).mate_target_at_query_start == 250


def test_filters_are_counted():
    reads = [
        make_read(0x1 | 0x20),
        make_read(0x4),
        make_read(0x0),
        make_read(0x1 | 0x8),
        make_read(0x1, mate_ref_id=0),
        make_read(0x1, mapq=0),
        make_read(0x1, mapq=5),
    ]
    counts = new_filter_counts()
    kept = list(iter_filtered_records(reads, min_mapq=10, counts=counts))
    assert len(kept) == 1
    assert counts == {
        "records_total": 7,
        "records_used": 1,
        "records_unmapped": 1,
        "records_unpaired": 1,
        "records_mate_unmapped": 1,
        "records_same_contig": 1,
        "records_low_mapq": 2,
    }


def test_registry_is_locked_after_freeze():
    builder = ContigRegistryBuilder()
    assert builder.add("a", 10) == 0
    assert builder.add("b", 20) == 1
    with pytest.raises(ValueError):
        builder.add("a", 5)
    with pytest.raises(ValueError):
        builder.add("c", -1)
    registry = builder.freeze()
    with pytest.raises(RuntimeError):
        builder.add("c", 1)
    assert len(registry) == 2
    assert registry.id_of("b") == 1
    assert registry.length(1) == 20
    assert registry.node_name(ContigNode(1, True)) == "b-"
    with pytest.raises(KeyError):
        registry.id_of("zzz")


def test_iter_batches_groups_consecutive_records():
    registry = make_registry(("a", 10), ("b", 10), ("c", 10))
    batches = list(iter_batches([rec(0), rec(0, 2), rec(2, 0), rec(1)], registry))
    assert [b.contig_id for b in batches] == [0, 2, 1]
    assert [len(b.records) for b in batches] == [2, 1, 1]


def test_iter_batches_rejects_reopened_contig():
    registry = make_registry(("A", 10), ("B", 10))
    batches = iter_batches([rec(0), rec(0), rec(1, 0), rec(0)], registry)
    assert next(batches).contig_id == 0
    with pytest.raises(UnsortedInputError, match="input must be sorted: 'A'"):
        list(batches)


def test_dispenser_hands_out_each_batch_once():
    registry = make_registry(*[(f"c{i}", 10) for i in range(50)])
    records = [rec(i, (i + 1) % 50) for i in range(50) for _ in range(3)]
    dispenser = BatchDispenser(iter_batches(records, registry))
    taken = []
    lock = threading.Lock()

    def drain():
        while True:
            batch = dispenser.next_batch()
            if batch is None:
                return
            with lock:
                taken.append(batch.contig_id)

    threads = [threading.Thread(target=drain) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(taken) == list(range(50))
    assert dispenser.next_batch() is None


def test_dispenser_stops_after_error_and_close():
    registry = make_registry(("A", 10), ("B", 10))
    dispenser = BatchDispenser(iter_batches([rec(0), rec(1, 0), rec(0)], registry))
    assert dispenser.next_batch().contig_id == 0
    with pytest.raises(UnsortedInputError):
        dispenser.next_batch()
    assert dispenser.next_batch() is None

    dispenser = BatchDispenser(iter_batches([rec(0), rec(1, 0)], registry))
    dispenser.close()
    assert dispenser.next_batch() is None


def test_open_alignments_requires_sq_lines(tmp_path: Path):
    sam = tmp_path / "nosq.sam"
    sam.write_text("@HD\tVN:1.6\n", encoding="utf-8")
    with pytest.raises(ValueError, match="no @SQ records"):
        open_alignments(str(sam))
