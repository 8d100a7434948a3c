"""Maximum-likelihood estimate of the distance between two contigs.

Given the provisional fragment sizes ``s_i`` of the read pairs joining two
contigs (sizes computed as if the contigs abutted), the distance ``d`` is the
shift that makes ``s_i + d`` most likely under the library's empirical
fragment-size distribution.

The likelihood of each candidate is normalised by a window function: a read
pair can only be observed if both of its ends fall on the contigs, so long
fragments are less likely to be seen spanning a short contig.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from .distribution import FragmentSizeDistribution

logger = logging.getLogger(__name__)

# Candidate distances evaluated per vectorised block.
_CHUNK = 256


def window_weights(y: np.ndarray, len0: int, len1: int) -> np.ndarray:
    """Relative number of placements of a fragment covering ``y`` contig bases.

    A trapezoid rising to ``min(len0, len1)``, flat up to ``max(len0, len1)``
    and falling to zero at ``len0 + len1``. A fragment that covers no contig
    bases, or more than both contigs hold, cannot join them.
    """
    x1 = min(len0, len1)
    x2 = max(len0, len1)
    x3 = len0 + len1
    y = np.asarray(y, dtype=np.float64)
    w = np.where(
        y <= 0,
        0.0,
        np.where(y < x1, y, np.where(y < x2, x1, np.where(y < x3, x3 - y, 0.0))),
    )
    return w / float(x1)


def maximum_likelihood_estimate(
    first: int,
    last: int,
    sizes: Sequence[int],
    distribution: FragmentSizeDistribution,
    len0: int,
    len1: int,
    k: int,
) -> Optional[Tuple[int, int]]:
    """Search ``[first, last]`` for the most likely distance.

    The range is narrowed to distances at which at least one fragment lands
    inside the observed size range.

    Returns
    -------
    (distance, num_agreeing) or None
        ``num_agreeing`` counts the fragments whose shifted size was observed
        in the library. ``None`` means there is no valid maximum: an empty
        range, no fragments, or no fragment agreeing at the best distance.
        Ties go to the smallest distance.
    """
    if len(sizes) == 0:
        return None

    samples = np.sort(np.asarray(sizes, dtype=np.int64))
    n = len(samples)

    obs_x = distribution.observed_sizes
    obs_p = distribution.observed_probabilities
    first = max(first, int(obs_x[0]) - int(samples[-1]))
    last = min(last, int(obs_x[-1]) - int(samples[0]))
    if first > last:
        return None

    # Reads cannot be aligned within the last k-1 bases of a contig.
    eff0 = max(1, int(len0) - (k - 1))
    eff1 = max(1, int(len1) - (k - 1))

    best_ll = -math.inf
    best_d: Optional[int] = None
    best_n = 0
    for lo in range(first, last + 1, _CHUNK):
        thetas = np.arange(lo, min(lo + _CHUNK, last + 1), dtype=np.int64)

        p = distribution.probabilities(samples[None, :] + thetas[:, None])
        ll = np.log(p).sum(axis=1)
        agreeing = (p > distribution.min_probability).sum(axis=1)

        norm = (obs_p[None, :] * window_weights(obs_x[None, :] - thetas[:, None], eff0, eff1)).sum(axis=1)
        with np.errstate(divide="ignore"):
            ll = np.where(norm > 0.0, ll - n * np.log(norm), -math.inf)

        i = int(np.argmax(ll))
        if ll[i] > best_ll:
            best_ll = float(ll[i])
            best_d = int(thetas[i])
            best_n = int(agreeing[i])

    if best_d is None or best_n == 0:
        logger.debug("No valid maximum for %d fragments in [%d, %d]", n, first, last)
        return None
    return best_d, best_n
