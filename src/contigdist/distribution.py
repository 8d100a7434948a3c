from __future__ import annotations

import logging
import math

import numpy as np

from .histogram import Histogram, HistogramError

logger = logging.getLogger(__name__)

DEFAULT_TRIM_FRACTION = 0.0001


class FragmentSizeDistribution:
    """Empirical fragment-size probability model.

    Sizes that were never observed (including anything outside
    ``[0, max_idx]``) get ``min_probability``, one pseudo-observation out of
    ``total + 1``, which is strictly below the probability of any observed size.
    """

    def __init__(self, histogram: Histogram) -> None:
        if len(histogram) == 0:
            raise HistogramError("cannot build a fragment-size distribution from an empty histogram")
        if histogram.minimum < 0:
            raise HistogramError("fragment-size distribution requires non-negative sizes")

        self.histogram = histogram
        self.total = histogram.size
        self.max_idx = histogram.maximum
        self.mean = histogram.mean
        self.std_dev = histogram.sd
        self.min_probability = 1.0 / (self.total + 1)

        self._pmf = np.zeros(self.max_idx + 1, dtype=np.float64)
        self._pmf[histogram.keys_array] = histogram.counts_array / float(self.total)

    @property
    def observed_sizes(self) -> np.ndarray:
        return self.histogram.keys_array

    @property
    def observed_probabilities(self) -> np.ndarray:
        return self._pmf[self.histogram.keys_array]

    def probabilities(self, sizes: np.ndarray) -> np.ndarray:
        """Vectorised probability lookup; any array shape."""
        sizes = np.asarray(sizes, dtype=np.int64)
        out = np.full(sizes.shape, self.min_probability, dtype=np.float64)
        in_range = (sizes >= 0) & (sizes <= self.max_idx)
        p = self._pmf[sizes[in_range]]
        out[in_range] = np.where(p > 0.0, p, self.min_probability)
        return out

    def probability(self, size: int) -> float:
        return float(self.probabilities(np.array([size]))[0])

    def agrees(self, sizes: np.ndarray) -> np.ndarray:
        """True where a size was observed in the library."""
        return self.probabilities(sizes) > self.min_probability

    def sample_std_dev(self, n: int) -> float:
        """Standard deviation of the mean of ``n`` samples."""
        if n <= 0:
            return math.inf
        return self.std_dev / math.sqrt(n)


def build_distribution(
    histogram: Histogram,
    *,
    trim_fraction: float = DEFAULT_TRIM_FRACTION,
) -> FragmentSizeDistribution:
    """Drop negative sizes and extreme outliers, then build the model.

    ``histogram`` must already be normalised for library orientation.
    """
    positive = histogram.erase_negative()
    if len(positive) == 0:
        raise HistogramError("the histogram has no non-negative fragment sizes")
    trimmed = positive.trim_fraction(trim_fraction)

    stats = trimmed.stats()
    logger.info(
        "Stats mean: %.4g median: %d sd: %.4g n: %d min: %d max: %d\n%s",
        stats["mean"],
        stats["median"],
        stats["sd"],
        stats["n"],
        stats["min"],
        stats["max"],
        trimmed.barplot(),
    )
    return FragmentSizeDistribution(trimmed)
