from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def plot_fragment_size_hist(
    *,
    sizes: Sequence[int],
    counts: Sequence[int],
    out_png: str | Path,
    title: str = "Fragment-size distribution",
    mean: Optional[float] = None,
) -> None:
    """Bar plot of the trimmed fragment-size histogram, with an optional mean line."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    plt.bar(list(sizes), list(counts), width=1.0, align="center")
    if mean is not None:
        plt.axvline(mean, color="black", linestyle="--", linewidth=1, label=f"mean {mean:.1f}")
        plt.legend()
    plt.xlabel("Fragment size (bp)")
    plt.ylabel("Read pairs")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
    logger.debug("Wrote %s", out_png)
