from __future__ import annotations

import functools
import logging
from collections import Counter
from typing import Callable, Iterable, List, Optional, Tuple

from .alignment import AlignmentQueryError, AlignmentSource
from .models import AlignedBase, Ancestor, AncestorChain, BaseVote, CoordinateRecord, ResolutionOutcome

logger = logging.getLogger(__name__)

IGNORED_BASES = frozenset({"N", "-", "\x00"})
COUNTED_BASES = frozenset({"A", "C", "G", "T"})

WITHIN_SPECIES = "WithinSpecies"
UNKNOWN_ANCESTOR = "Unknown"

Attempt = Callable[[], Optional[ResolutionOutcome]]


def count_bases(bases: Iterable[str]) -> Counter:
    """Build the base multiset used for voting.

    Bases are uppercased; N, gaps and NUL are ignored, as is anything outside
    A/C/G/T (IUPAC ambiguity codes, MAF ``.`` placeholders).
    """
    counts: Counter = Counter()
    for b in bases:
        if not b:
            continue
        b = b.upper()
        if b in IGNORED_BASES or b not in COUNTED_BASES:
            continue
        counts[b] += 1
    return counts


def vote(counts: Counter) -> Optional[BaseVote]:
    """Apply the voting rule to a base multiset.

    Returns None when the multiset is empty. A single observation is a direct
    call; otherwise the base with the strictly highest count wins, and a shared
    maximum is a tie resolved to ``N``. Counts are ordered alphabetically so
    the result only depends on the multiset.
    """
    ordered = tuple(sorted((b, int(n)) for b, n in counts.items() if n > 0))
    total = sum(n for _, n in ordered)
    if total == 0:
        return None
    if total == 1:
        return BaseVote(kind="single", allele=ordered[0][0], counts=ordered)

    best = max(n for _, n in ordered)
    winners = [b for b, n in ordered if n == best]
    if len(winners) > 1:
        return BaseVote(kind="tie", allele="N", counts=ordered)
    return BaseVote(kind="majority", allele=winners[0], counts=ordered)


class AlleleResolver:
    """Tiered ancestral allele search at single reference positions.

    For every position the attempts below run in order and the first one that
    yields at least one usable base decides the call:

    1. each ancestor of the chain in priority order: the 1:1 aligned base(s),
       or, if there are none, the paralogous copies in that ancestor;
    2. paralogous copies in the reference genome itself, excluding the queried
       position;

    and when all of them come back empty the position is reported as missing.
    Alignment faults during a query count as "no data" for that attempt.
    """

    def __init__(self, alignment: AlignmentSource, ref_genome: str, chain: AncestorChain) -> None:
        self.alignment = alignment
        self.ref_genome = ref_genome
        self.chain = chain

    def _query(self, chrom: str, pos: int, target: str, duplicates: bool) -> List[AlignedBase]:
        try:
            return self.alignment.column(self.ref_genome, chrom, pos, (target,), duplicates)
        except AlignmentQueryError as e:
            logger.debug(
                "Column query failed at %s:%d (target=%s, duplicates=%s): %s",
                chrom,
                pos,
                target,
                duplicates,
                e,
            )
            return []

    def _ancestor_attempt(self, chrom: str, pos: int, ancestor: Ancestor) -> Optional[ResolutionOutcome]:
        counts = count_bases(b.base for b in self._query(chrom, pos, ancestor.name, False))
        method = "direct"
        if not counts:
            counts.update(count_bases(b.base for b in self._query(chrom, pos, ancestor.name, True)))
            method = "ancestral_paralog"

        v = vote(counts)
        if v is None:
            return None
        return ResolutionOutcome(
            allele=v.allele,
            ancestor=ancestor.name,
            method=method,
            vote=v,
            ancestor_index=ancestor.index,
            ancestors_tried=ancestor.index + 1,
        )

    def _within_species_attempt(self, chrom: str, pos: int) -> Optional[ResolutionOutcome]:
        hits = self._query(chrom, pos, self.ref_genome, True)
        # The query position aligns to itself; only other loci may vote.
        bases = [
            b.base
            for b in hits
            if not (b.genome == self.ref_genome and b.chrom == chrom and b.pos == pos)
        ]
        v = vote(count_bases(bases))
        if v is None:
            return None
        return ResolutionOutcome(
            allele=v.allele,
            ancestor=WITHIN_SPECIES,
            method="within_species",
            vote=v,
            ancestors_tried=len(self.chain),
        )

    def attempts(self, chrom: str, pos: int) -> List[Attempt]:
        out: List[Attempt] = [
            functools.partial(self._ancestor_attempt, chrom, pos, a) for a in self.chain
        ]
        out.append(functools.partial(self._within_species_attempt, chrom, pos))
        return out

    def _first_ancestor_name(self) -> str:
        primary = self.chain.primary
        return primary.name if primary is not None else UNKNOWN_ANCESTOR

    def resolve(self, chrom: str, pos: int) -> ResolutionOutcome:
        """Resolve the ancestral allele at ``chrom:pos`` (0-based) of the reference."""
        for attempt in self.attempts(chrom, pos):
            outcome = attempt()
            if outcome is not None:
                return outcome
        return ResolutionOutcome(
            allele="N",
            ancestor=self._first_ancestor_name(),
            method="exhausted",
            ancestors_tried=len(self.chain),
        )

    def resolve_record(self, record: CoordinateRecord) -> Tuple[str, ResolutionOutcome]:
        """Return ``(reference_base, outcome)`` for one coordinate record.

        A record whose reference base cannot be read is not resolved at all.
        """
        try:
            ref_base = self.alignment.reference_base(self.ref_genome, record.chrom, record.start)
        except AlignmentQueryError as e:
            logger.debug("No reference sequence for %s:%d: %s", record.chrom, record.start, e)
            return "N", ResolutionOutcome(
                allele="N",
                ancestor=self._first_ancestor_name(),
                method="no_reference",
            )
        return ref_base, self.resolve(record.chrom, record.start)
