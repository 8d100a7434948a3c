from __future__ import annotations

from typing import Iterable, List

from .models import AlignmentRecord, FragmentObservation, LibraryOrientation


def provisional_fragment(
    len0: int,
    len1: int,
    record: AlignmentRecord,
    orientation: LibraryOrientation,
) -> FragmentObservation:
    """Span of one read pair as if the two contigs were joined with no gap.

    ``len0`` is the anchor contig length and ``len1`` the mate contig length.
    The estimated distance is what has to be added to this span's size to
    make it fit the library's fragment-size distribution.
    """
    a0 = record.target_at_query_start
    a1 = record.mate_target_at_query_start
    if record.is_reverse:
        a0 = len0 - a0
    if not record.is_mate_reverse:
        a1 = len1 - a1
    if orientation is LibraryOrientation.RF:
        return FragmentObservation(a1, len1 + a0)
    return FragmentObservation(a0, len0 + a1)


def deduplicate(observations: Iterable[FragmentObservation]) -> List[FragmentObservation]:
    """Sorted observations with exact (start, end) duplicates collapsed."""
    return sorted(set(observations))
