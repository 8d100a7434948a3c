from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional

import numpy as np

from .models import LibraryOrientation
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

# Minority orientation share at or above which the call is reported as ambiguous.
_AMBIGUOUS_FRACTION = 0.25

_BAR_LEVELS = " .:-=+*#%@"


class HistogramError(ValueError):
    pass


class Histogram(Mapping[int, int]):
    """Immutable integer histogram: key -> positive count.

    Keys are fragment sizes; a negative key encodes a pair whose mates were
    found in the opposite orientation to the one assumed by the aligner.
    """

    def __init__(self, counts: Optional[Mapping[int, int]] = None) -> None:
        items = sorted((int(k), int(v)) for k, v in (counts or {}).items() if int(v) > 0)
        self._keys = np.array([k for k, _ in items], dtype=np.int64)
        self._counts = np.array([v for _, v in items], dtype=np.int64)
        self._lookup: Dict[int, int] = dict(items)

    # Mapping protocol
    def __getitem__(self, key: int) -> int:
        return self._lookup[key]

    def __iter__(self) -> Iterator[int]:
        return iter(self._lookup)

    def __len__(self) -> int:
        return len(self._lookup)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Histogram):
            return self._lookup == other._lookup
        return NotImplemented

    def __repr__(self) -> str:
        return f"Histogram({self._lookup!r})"

    @property
    def keys_array(self) -> np.ndarray:
        return self._keys

    @property
    def counts_array(self) -> np.ndarray:
        return self._counts

    @property
    def size(self) -> int:
        """Total number of samples."""
        return int(self._counts.sum())

    def count(self, lo: Optional[int] = None, hi: Optional[int] = None) -> int:
        """Number of samples with lo <= key <= hi; a missing bound is open."""
        mask = np.ones(len(self._keys), dtype=bool)
        if lo is not None:
            mask &= self._keys >= lo
        if hi is not None:
            mask &= self._keys <= hi
        return int(self._counts[mask].sum())

    def negate(self) -> "Histogram":
        return Histogram({-k: v for k, v in self._lookup.items()})

    def erase_negative(self) -> "Histogram":
        return Histogram({k: v for k, v in self._lookup.items() if k >= 0})

    def percentile(self, p: float) -> int:
        """Smallest key whose cumulative count reaches ``p`` of the total."""
        if len(self._keys) == 0:
            raise HistogramError("percentile of an empty histogram")
        target = math.ceil(p * self.size)
        cum = np.cumsum(self._counts)
        idx = int(np.searchsorted(cum, target, side="left"))
        return int(self._keys[min(idx, len(self._keys) - 1)])

    def trim_fraction(self, fraction: float) -> "Histogram":
        """Drop ``fraction`` of the samples, half from each tail."""
        if len(self._keys) == 0:
            return Histogram()
        low = self.percentile(fraction / 2.0)
        high = self.percentile(1.0 - fraction / 2.0)
        return Histogram({k: v for k, v in self._lookup.items() if low <= k <= high})

    @property
    def minimum(self) -> int:
        return int(self._keys[0])

    @property
    def maximum(self) -> int:
        return int(self._keys[-1])

    @property
    def mean(self) -> float:
        return float(np.average(self._keys, weights=self._counts))

    @property
    def median(self) -> int:
        return self.percentile(0.5)

    @property
    def sd(self) -> float:
        mean = self.mean
        var = np.average((self._keys - mean) ** 2, weights=self._counts)
        return float(math.sqrt(var))

    def barplot(self, width: int = 80) -> str:
        """One-line text bar plot of the histogram, at most ``width`` columns."""
        if len(self._keys) == 0:
            return ""
        span = self.maximum - self.minimum + 1
        nbins = max(1, min(width, span))
        edges = np.linspace(self.minimum, self.maximum + 1, nbins + 1)
        binned, _ = np.histogram(self._keys, bins=edges, weights=self._counts)
        top = binned.max()
        levels = len(_BAR_LEVELS) - 1
        chars = []
        for c in binned:
            level = 0 if c <= 0 else max(1, int(math.ceil(c / top * levels)))
            chars.append(_BAR_LEVELS[level])
        return "".join(chars)

    def stats(self) -> Dict[str, float]:
        return {
            "mean": self.mean,
            "median": self.median,
            "sd": self.sd,
            "n": self.size,
            "min": self.minimum,
            "max": self.maximum,
        }


def parse_histogram(lines: Iterable[str], *, source: str = "<histogram>") -> Histogram:
    """Parse ``key count`` lines; blank lines and ``#`` comments are skipped."""
    counts: Dict[int, int] = {}
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) != 2:
            raise HistogramError(f"{source}:{lineno}: expected 'key count', got: {line!r}")
        try:
            key, value = int(fields[0]), int(fields[1])
        except ValueError:
            raise HistogramError(f"{source}:{lineno}: non-integer field in: {line!r}") from None
        if value < 0:
            raise HistogramError(f"{source}:{lineno}: negative count: {line!r}")
        counts[key] = counts.get(key, 0) + value
    return Histogram(counts)


def load_histogram(path: str | Path) -> Histogram:
    """Load a fragment-size histogram; an empty histogram is an error."""
    with open_textmaybe_gzip(path, "rt") as fh:
        hist = parse_histogram(fh, source=str(path))
    if len(hist) == 0:
        raise HistogramError(f"the histogram '{path}' is empty")
    return hist


@dataclass(frozen=True)
class OrientationCall:
    orientation: LibraryOrientation
    num_fr: int
    num_rf: int
    histogram: Histogram  # normalised so that positive keys are the expected orientation


def detect_orientation(hist: Histogram) -> OrientationCall:
    """Decide FR vs RF from where the mass of the raw histogram lies.

    Keys <= 0 count towards RF, keys >= 1 towards FR. An RF library gets its
    histogram negated so that downstream code only sees positive sizes.
    """
    num_rf = hist.count(None, 0)
    num_fr = hist.count(1, None)
    total = hist.size
    if total > 0:
        logger.info(
            "Mate orientation FR: %d (%.3g%%) RF: %d (%.3g%%)",
            num_fr,
            100.0 * num_fr / total,
            num_rf,
            100.0 * num_rf / total,
        )
        if min(num_fr, num_rf) >= _AMBIGUOUS_FRACTION * total:
            logger.warning(
                "Library orientation is ambiguous: FR=%d RF=%d. Mixed libraries give unreliable distances.",
                num_fr,
                num_rf,
            )

    if num_fr < num_rf:
        logger.warning("The mate pairs of this library are oriented reverse-forward (RF).")
        return OrientationCall(LibraryOrientation.RF, num_fr, num_rf, hist.negate())
    return OrientationCall(LibraryOrientation.FR, num_fr, num_rf, hist)
