"""contigdist: maximum-likelihood distances between assembled contigs.

Public API is intentionally small; most users should use the CLI:

    contigdist estimate -k 31 -n 10 -s 200 fragments.hist pairs.sam

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
