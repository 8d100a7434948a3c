import io
import logging

import pytest

from contigdist.contigs import ContigRegistryBuilder
from contigdist.estimator import BatchResult
from contigdist.models import ContigNode, DistanceEstimate, EstimationConfig
from contigdist.output import AdjacencyWriter, GraphWriter, format_edge, format_link, make_writer, parse_link


def make_registry():
    builder = ContigRegistryBuilder()
    for name in ("ctg1", "ctg2", "ctg3"):
        builder.add(name, 1000)
    return builder.freeze()


def est(node: ContigNode, distance=-5, num_pairs=12, std_dev=8.66) -> DistanceEstimate:
    return DistanceEstimate(contig=node, distance=distance, num_pairs=num_pairs, std_dev=std_dev, num_candidates=14)


def test_format_and_parse_link():
    registry = make_registry()
    token = format_link(registry, est(ContigNode(1, True)))
    assert token == "ctg2-,-5,12,8.7"
    parsed = parse_link(token)
    assert (parsed.name, parsed.sense, parsed.distance, parsed.num_pairs) == ("ctg2", True, -5, 12)
    assert parsed.std_dev == pytest.approx(8.7)
    with pytest.raises(ValueError):
        parse_link("ctg2,5,12")


def test_edge_is_flipped_for_reverse_anchor():
    registry = make_registry()
    e = est(ContigNode(1, False), distance=40)
    assert format_edge(registry, ContigNode(0, False), e) == '"ctg1+" -> "ctg2+" [d=40 e=8.7 n=12]'
    assert format_edge(registry, ContigNode(0, True), e) == '"ctg1-" -> "ctg2-" [d=40 e=8.7 n=12]'


def test_adjacency_line_layout():
    registry = make_registry()
    config = EstimationConfig(k=20, min_pairs=5, seed_length=100)
    out = io.StringIO()
    writer = make_writer(out, registry, config)
    assert isinstance(writer, AdjacencyWriter)

    result = BatchResult(
        anchor_id=0,
        forward=(est(ContigNode(1, False), distance=40), est(ContigNode(2, True), distance=-3)),
        reverse=(),
    )
    assert writer.write_batch(result) == (2, 0)
    writer.write_batch(BatchResult(anchor_id=2, forward=(), reverse=()))
    assert out.getvalue() == "ctg1 ctg2+,40,12,8.7 ctg3-,-3,12,8.7 ;\nctg3 ;\n"


def test_graph_output_framing():
    registry = make_registry()
    config = EstimationConfig(k=20, min_pairs=5, seed_length=100, dot=True)
    out = io.StringIO()
    writer = make_writer(out, registry, config)
    assert isinstance(writer, GraphWriter)

    writer.begin()
    writer.write_batch(BatchResult(anchor_id=0, forward=(), reverse=(est(ContigNode(1, False), distance=7),)))
    writer.end()
    assert out.getvalue() == (
        "digraph dist {\n"
        "graph [k=20 s=100 n=5]\n"
        '"ctg1-" -> "ctg2-" [d=7 e=8.7 n=12]\n'
        "}\n"
    )


def test_weak_links_are_dropped_and_logged_when_asked(caplog):
    registry = make_registry()
    weak = est(ContigNode(1, False), distance=None, num_pairs=3, std_dev=20.0)
    result = BatchResult(anchor_id=0, forward=(weak,), reverse=())

    quiet = AdjacencyWriter(io.StringIO(), registry, EstimationConfig(k=20, min_pairs=5, seed_length=100))
    with caplog.at_level(logging.WARNING, logger="contigdist"):
        assert quiet.write_batch(result) == (0, 1)
    assert caplog.records == []

    out = io.StringIO()
    config = EstimationConfig(k=20, min_pairs=5, seed_length=100, report_weak_links=True)
    loud = AdjacencyWriter(out, registry, config)
    with caplog.at_level(logging.WARNING, logger="contigdist"):
        loud.write_batch(result)
    assert "ctg1+,ctg2+ 3 of 14 pairs fit the expected distribution" in caplog.text
    assert out.getvalue() == "ctg1 ;\n"
