from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .contigs import ContigRegistry
from .distribution import FragmentSizeDistribution
from .fragments import deduplicate, provisional_fragment
from .mle import maximum_likelihood_estimate
from .models import (
    AlignmentRecord,
    ContigBatch,
    ContigNode,
    DistanceEstimate,
    EstimationConfig,
    LibraryOrientation,
)

logger = logging.getLogger(__name__)

RecordGroups = Dict[ContigNode, List[AlignmentRecord]]


@dataclass(frozen=True)
class BatchResult:
    """Estimates for one anchor contig, split by the anchor's own sense."""

    anchor_id: int
    forward: Tuple[DistanceEstimate, ...]
    reverse: Tuple[DistanceEstimate, ...]

    def sections(self) -> Tuple[Tuple[ContigNode, Tuple[DistanceEstimate, ...]], ...]:
        return (
            (ContigNode(self.anchor_id, False), self.forward),
            (ContigNode(self.anchor_id, True), self.reverse),
        )


def partition_batch(
    batch: ContigBatch,
    orientation: LibraryOrientation,
) -> Tuple[RecordGroups, RecordGroups]:
    """Split a batch by anchor sense, then by (mate contig, relative sense).

    The mate node is reverse when both reads align to the same strand. Returns
    the groups for the anchor read forward and reverse; for reverse-forward
    libraries the two anchor senses trade places.
    """
    by_strand: Tuple[RecordGroups, RecordGroups] = ({}, {})
    for rec in batch.records:
        node = ContigNode(rec.mate_id, rec.is_reverse == rec.is_mate_reverse)
        by_strand[int(rec.is_reverse)].setdefault(node, []).append(rec)
    if orientation is LibraryOrientation.RF:
        return by_strand[1], by_strand[0]
    return by_strand


def estimate_distance(
    contig: ContigNode,
    len0: int,
    len1: int,
    records: Sequence[AlignmentRecord],
    distribution: FragmentSizeDistribution,
    config: EstimationConfig,
) -> DistanceEstimate:
    """Estimate the distance from the anchor contig to ``contig``.

    Duplicate fragments are collapsed first. With fewer distinct fragments than
    ``config.min_pairs`` the estimate is invalid and the likelihood search is
    not run; ``num_pairs`` then holds the distinct count.
    """
    fragments = deduplicate(
        provisional_fragment(len0, len1, rec, config.orientation) for rec in records
    )
    num_pairs = len(fragments)
    distance: Optional[int] = None

    if num_pairs >= config.min_pairs:
        result = maximum_likelihood_estimate(
            -(config.k - 1),
            distribution.max_idx,
            [f.size for f in fragments],
            distribution,
            len0,
            len1,
            config.k,
        )
        if result is None:
            num_pairs = 0
        else:
            best, num_pairs = result
            if num_pairs >= config.min_pairs:
                distance = best

    return DistanceEstimate(
        contig=contig,
        distance=distance,
        num_pairs=num_pairs,
        std_dev=distribution.sample_std_dev(num_pairs),
        num_candidates=len(records),
    )


def estimate_batch(
    batch: ContigBatch,
    registry: ContigRegistry,
    distribution: FragmentSizeDistribution,
    config: EstimationConfig,
) -> Optional[BatchResult]:
    """Estimate every link of one anchor contig; None for non-seed anchors."""
    len0 = registry.length(batch.contig_id)
    if len0 < config.seed_length:
        return None

    sections: List[Tuple[DistanceEstimate, ...]] = []
    for groups in partition_batch(batch, config.orientation):
        estimates = []
        for node in sorted(groups):
            records = groups[node]
            if len(records) < config.min_pairs:
                continue
            estimates.append(
                estimate_distance(node, len0, registry.length(node.id), records, distribution, config)
            )
        sections.append(tuple(estimates))

    return BatchResult(anchor_id=batch.contig_id, forward=sections[0], reverse=sections[1])
