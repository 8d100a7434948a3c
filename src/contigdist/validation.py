from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def check_options(
    *,
    k: int,
    min_pairs: int,
    seed_length: int,
    min_mapq: int,
    threads: int,
) -> None:
    """Reject unusable parameters; raise ValueError naming the option."""
    for name, value in (
        ("k (-k/--kmer)", k),
        ("npairs (-n/--npairs)", min_pairs),
        ("seed length (-s/--seed-length)", seed_length),
        ("threads (-j/--threads)", threads),
    ):
        if value is None or int(value) <= 0:
            raise ValueError(f"{name} must be a positive integer, got {value!r}")
    if min_mapq is None or int(min_mapq) < 0:
        raise ValueError(f"min-mapq (-q/--min-mapq) must be >= 0, got {min_mapq!r}")


def warn_seed_length(k: int, seed_length: int) -> bool:
    """Warn when seeds are too short to carry two k-mers; returns True if warned."""
    if seed_length < 2 * k:
        logger.warning(
            "the seed-length should be at least twice k: k=%d, s=%d",
            k,
            seed_length,
        )
        return True
    return False
