from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

import pysam

from .models import ContigNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContigRegistry:
    """Immutable contig id <-> name/length lookup.

    Ids are assigned in header order and never change for the rest of the run.
    """

    names: Tuple[str, ...]
    lengths: Tuple[int, ...]
    _ids: Mapping[str, int] = field(repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.names)

    def name(self, contig_id: int) -> str:
        return self.names[contig_id]

    def length(self, contig_id: int) -> int:
        return self.lengths[contig_id]

    def id_of(self, name: str) -> int:
        try:
            return self._ids[name]
        except KeyError:
            raise KeyError(f"unknown contig: {name}") from None

    def node_name(self, node: ContigNode) -> str:
        return self.names[node.id] + ("-" if node.sense else "+")

    @classmethod
    def from_header(cls, header: pysam.AlignmentHeader) -> "ContigRegistry":
        """Register every ``@SQ`` record of an alignment header and lock."""
        builder = ContigRegistryBuilder()
        for name, length in zip(header.references, header.lengths):
            builder.add(str(name), int(length))
        if len(builder) == 0:
            raise ValueError("no @SQ records in the SAM header")
        return builder.freeze()


class ContigRegistryBuilder:
    """Assigns contig ids in first-seen order until ``freeze()`` is called."""

    def __init__(self) -> None:
        self._names: List[str] = []
        self._lengths: List[int] = []
        self._ids: Dict[str, int] = {}
        self._frozen = False

    def __len__(self) -> int:
        return len(self._names)

    def add(self, name: str, length: int) -> int:
        if self._frozen:
            raise RuntimeError(f"contig registry is locked; cannot add '{name}'")
        if name in self._ids:
            raise ValueError(f"duplicate contig name in header: '{name}'")
        if length < 0:
            raise ValueError(f"negative length for contig '{name}': {length}")
        contig_id = len(self._names)
        self._names.append(name)
        self._lengths.append(int(length))
        self._ids[name] = contig_id
        return contig_id

    def freeze(self) -> ContigRegistry:
        self._frozen = True
        logger.debug("Registered %d contigs", len(self._names))
        return ContigRegistry(
            names=tuple(self._names),
            lengths=tuple(self._lengths),
            _ids=MappingProxyType(dict(self._ids)),
        )
