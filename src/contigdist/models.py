from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple


class LibraryOrientation(enum.Enum):
    """Relative orientation of the two mates of a read pair."""

    FR = "FR"  # forward-reverse: mates point toward each other
    RF = "RF"  # reverse-forward: mates point away from each other


@dataclass(frozen=True)
class EstimationConfig:
    """Run-wide estimation parameters.

    Built once before any worker starts and shared read-only by all of them.

    Attributes
    ----------
    k:
        k-mer size of the assembly. Bounds the largest overlap searched (k-1).
    min_pairs:
        Minimum number of distinct agreeing read pairs for a valid estimate.
    seed_length:
        Anchor contigs shorter than this are skipped.
    min_mapq:
        Alignments with mapping quality below this are ignored.
    orientation:
        Library orientation detected from the fragment-size histogram.
    dot:
        Write graph edges instead of adjacency lines.
    report_weak_links:
        Log links that fail the minimum-pairs threshold.
    """

    k: int
    min_pairs: int
    seed_length: int
    min_mapq: int = 1
    orientation: LibraryOrientation = LibraryOrientation.FR
    dot: bool = False
    report_weak_links: bool = False


@dataclass(frozen=True)
class AlignmentRecord:
    """One mapped read whose mate is mapped to a different contig.

    Coordinates are 0-based target positions of the first base of each query,
    extrapolated past any clipping.
    """

    anchor_id: int
    mate_id: int
    mapq: int
    is_reverse: bool
    is_mate_reverse: bool
    target_at_query_start: int
    mate_target_at_query_start: int


class ContigNode(NamedTuple):
    """A contig id with an orientation; ``sense=True`` means reverse complement."""

    id: int
    sense: bool = False

    def flip(self) -> "ContigNode":
        return ContigNode(self.id, not self.sense)


class FragmentObservation(NamedTuple):
    """Provisional span of one read pair with the two contigs abutting."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ContigBatch:
    """All filtered records anchored on one contig, in stream order."""

    contig_id: int
    records: Tuple[AlignmentRecord, ...]


@dataclass(frozen=True)
class DistanceEstimate:
    """Estimated distance from an anchor contig to a linked contig."""

    contig: ContigNode
    distance: Optional[int]  # None when no valid estimate exists
    num_pairs: int
    std_dev: float
    num_candidates: int  # size of the record group before deduplication

    @property
    def valid(self) -> bool:
        return self.distance is not None

    def flipped(self) -> "DistanceEstimate":
        return DistanceEstimate(
            contig=self.contig.flip(),
            distance=self.distance,
            num_pairs=self.num_pairs,
            std_dev=self.std_dev,
            num_candidates=self.num_candidates,
        )
