from __future__ import annotations

import logging
import threading
from typing import List, NamedTuple, TextIO, Tuple

from .contigs import ContigRegistry
from .estimator import BatchResult
from .models import ContigNode, DistanceEstimate, EstimationConfig

logger = logging.getLogger(__name__)


class ParsedLink(NamedTuple):
    name: str
    sense: bool
    distance: int
    num_pairs: int
    std_dev: float


def format_link(registry: ContigRegistry, est: DistanceEstimate) -> str:
    """Adjacency token: ``<contig><+|->,<distance>,<pairs>,<std-dev>``."""
    return f"{registry.node_name(est.contig)},{est.distance},{est.num_pairs},{est.std_dev:.1f}"


def parse_link(token: str) -> ParsedLink:
    """Inverse of ``format_link``."""
    try:
        node, distance, num_pairs, std_dev = token.rsplit(",", 3)
    except ValueError:
        raise ValueError(f"malformed link: {token!r}") from None
    if len(node) < 2 or node[-1] not in "+-":
        raise ValueError(f"malformed contig node in link: {token!r}")
    return ParsedLink(node[:-1], node[-1] == "-", int(distance), int(num_pairs), float(std_dev))


def format_edge(registry: ContigRegistry, anchor: ContigNode, est: DistanceEstimate) -> str:
    """Graph edge from ``anchor``; the link is flipped for a reverse anchor."""
    if anchor.sense:
        est = est.flipped()
    return (
        f'"{registry.node_name(anchor)}" -> "{registry.node_name(est.contig)}" '
        f"[d={est.distance} e={est.std_dev:.1f} n={est.num_pairs}]"
    )


class EstimateWriter:
    """Serialises batch results to one output stream from many threads.

    Each batch is rendered first and then written with a single locked write,
    so its lines stay contiguous; the order of batches is not preserved.
    """

    def __init__(self, out: TextIO, registry: ContigRegistry, config: EstimationConfig) -> None:
        self.out = out
        self.registry = registry
        self.config = config
        self._lock = threading.Lock()

    def begin(self) -> None:
        pass

    def end(self) -> None:
        self.out.flush()

    def render(self, result: BatchResult) -> Tuple[str, int, int]:
        raise NotImplementedError

    def write_batch(self, result: BatchResult) -> Tuple[int, int]:
        """Write one batch; returns (links written, weak links dropped)."""
        text, written, weak = self.render(result)
        if text:
            with self._lock:
                self.out.write(text)
        return written, weak

    def _keep(self, anchor: ContigNode, est: DistanceEstimate) -> bool:
        if est.valid:
            return True
        if self.config.report_weak_links:
            logger.warning(
                "%s,%s %d of %d pairs fit the expected distribution",
                self.registry.node_name(anchor),
                self.registry.node_name(est.contig),
                est.num_pairs,
                est.num_candidates,
            )
        return False


class AdjacencyWriter(EstimateWriter):
    """One line per anchor contig: forward-sense links, ``;``, reverse-sense links."""

    def render(self, result: BatchResult) -> Tuple[str, int, int]:
        parts: List[str] = [self.registry.name(result.anchor_id)]
        written = weak = 0
        for i, (anchor, estimates) in enumerate(result.sections()):
            if i > 0:
                parts.append(";")
            for est in estimates:
                if self._keep(anchor, est):
                    parts.append(format_link(self.registry, est))
                    written += 1
                else:
                    weak += 1
        return " ".join(parts) + "\n", written, weak


class GraphWriter(EstimateWriter):
    """Directed edges in Graphviz dot syntax."""

    def begin(self) -> None:
        with self._lock:
            self.out.write(
                "digraph dist {\n"
                f"graph [k={self.config.k} s={self.config.seed_length} n={self.config.min_pairs}]\n"
            )

    def end(self) -> None:
        with self._lock:
            self.out.write("}\n")
        super().end()

    def render(self, result: BatchResult) -> Tuple[str, int, int]:
        lines: List[str] = []
        weak = 0
        for anchor, estimates in result.sections():
            for est in estimates:
                if self._keep(anchor, est):
                    lines.append(format_edge(self.registry, anchor, est) + "\n")
                else:
                    weak += 1
        return "".join(lines), len(lines), weak


def make_writer(out: TextIO, registry: ContigRegistry, config: EstimationConfig) -> EstimateWriter:
    if config.dot:
        return GraphWriter(out, registry, config)
    return AdjacencyWriter(out, registry, config)
