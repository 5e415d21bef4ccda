from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple


@dataclass(frozen=True)
class CoordinateRecord:
    """One query position read from the coordinates file.

    Coordinates are 0-based half-open, as in BED.

    Attributes
    ----------
    chrom:
        Reference sequence name, as used by the alignment.
    start:
        0-based start of the interval. The allele is resolved at this base.
    end:
        Exclusive end of the interval (carried through to the output only).
    index:
        Position of the record in the input, counting accepted lines only.
        Output rows are emitted in this order.
    """

    chrom: str
    start: int
    end: int
    index: int


@dataclass(frozen=True)
class Ancestor:
    name: str
    index: int  # 0 = primary


@dataclass(frozen=True)
class AncestorChain:
    """Priority-ordered ancestor genomes tried for each position."""

    ancestors: Tuple[Ancestor, ...]

    @classmethod
    def from_names(cls, names: Sequence[str]) -> "AncestorChain":
        return cls(tuple(Ancestor(name=n, index=i) for i, n in enumerate(names)))

    def __len__(self) -> int:
        return len(self.ancestors)

    def __iter__(self) -> Iterator[Ancestor]:
        return iter(self.ancestors)

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.ancestors]

    @property
    def primary(self) -> Optional[Ancestor]:
        return self.ancestors[0] if self.ancestors else None

    @property
    def is_multi(self) -> bool:
        return len(self.ancestors) > 1


@dataclass(frozen=True)
class AlignedBase:
    """A base observed in an alignment column.

    ``pos`` is the 0-based forward-strand coordinate of the base in its own
    sequence, or None when the row has a gap in this column.
    """

    genome: str
    chrom: str
    pos: Optional[int]
    base: str


@dataclass(frozen=True)
class BaseVote:
    """Result of the voting rule over a base multiset."""

    kind: str  # 'single', 'majority' or 'tie'
    allele: str
    counts: Tuple[Tuple[str, int], ...]

    def breakdown(self) -> str:
        return ",".join(f"{base}={n}" for base, n in self.counts)


@dataclass(frozen=True)
class ResolutionOutcome:
    """How the ancestral allele of one position was decided.

    ``method`` is one of 'direct', 'ancestral_paralog', 'within_species',
    'exhausted' or 'no_reference'. ``ancestor_index`` is the chain index that
    produced the call for tier-1 methods and None otherwise.
    """

    allele: str
    ancestor: str
    method: str
    vote: Optional[BaseVote] = None
    ancestor_index: Optional[int] = None
    ancestors_tried: int = 0


@dataclass(frozen=True)
class OutputRow:
    chrom: str
    start: int
    end: int
    ref_base: str
    ancestor: str
    allele: str
    evidence: str

    def to_tsv(self) -> str:
        return (
            f"{self.chrom}\t{self.start}\t{self.end}\t{self.ref_base}\t"
            f"{self.ancestor}\t{self.allele}\t{self.evidence}"
        )
