"""Alignment column access.

The resolver only needs one capability from a whole-genome alignment: given a
reference coordinate, which bases of some target genome(s) sit in the same
alignment column, with or without paralogous (duplicated) copies. This module
defines that capability (:class:`AlignmentSource`) and two backends:

- :class:`InMemoryAlignment`, columns registered explicitly (tests, embedding).
- :class:`MafAlignment`, a reference-anchored MAF file parsed with Biopython.

A MAF export that keeps paralogous copies cannot tell an ancestor's ortholog
from its paralogs when both sit in one block. :class:`OrthologSplitAlignment`
pairs it with an orthologs-only export (``hal2maf --noDupes``) and answers 1:1
queries from the latter.

HAL files are served by :mod:`ancestralcall.hal`, which exports both MAFs with
the HAL tools.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Protocol, Set, Tuple

import numpy as np
import pysam
from Bio import AlignIO

from .models import AlignedBase
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

_COMPLEMENT = str.maketrans("ACGTNacgtn-", "TGCANtgcan-")


class AlignmentQueryError(RuntimeError):
    """Raised when an alignment query cannot be answered."""


class GenomeNotFoundError(AlignmentQueryError):
    """Raised when a genome name is not present in the alignment."""


class SequenceNotFoundError(AlignmentQueryError):
    """Raised when a sequence (or a coordinate on it) is not present for a genome."""


class AlignmentSource(Protocol):
    def genomes(self) -> Set[str]:
        ...

    def has_genome(self, name: str) -> bool:
        ...

    def reference_base(self, genome: str, chrom: str, pos: int) -> str:
        ...

    def column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        targets: Collection[str],
        duplicates: bool,
    ) -> List[AlignedBase]:
        ...


def split_maf_name(name: str) -> Tuple[str, str]:
    """Split a MAF source name ``genome.chrom`` on its first dot."""
    genome, sep, chrom = name.partition(".")
    if not sep:
        return name, name
    return genome, chrom


# -----------------
# In-memory backend
# -----------------


class InMemoryAlignment:
    """Alignment backed by Python dictionaries.

    ``sequences`` maps genome -> chrom -> sequence string. Columns are
    registered with :meth:`add_column`; bases registered with
    ``duplicate=True`` are only returned when duplicates are requested. The
    query position itself is always part of its own column, as in a real
    alignment, so a query with the reference genome among the targets returns
    it too.
    """

    def __init__(self, sequences: Mapping[str, Mapping[str, str]]) -> None:
        self._sequences: Dict[str, Dict[str, str]] = {
            g: dict(seqs) for g, seqs in sequences.items()
        }
        self._columns: Dict[Tuple[str, str, int], List[Tuple[AlignedBase, bool]]] = {}
        self._faults: Set[Tuple[str, str, int]] = set()

    def add_column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        bases: Iterable[AlignedBase],
        *,
        duplicate: bool = False,
    ) -> None:
        entries = self._columns.setdefault((genome, chrom, pos), [])
        for b in bases:
            if b.genome not in self._sequences:
                self._sequences[b.genome] = {}
            entries.append((b, duplicate))

    def add_fault(self, genome: str, chrom: str, pos: int) -> None:
        """Make every column query at this coordinate fail."""
        self._faults.add((genome, chrom, pos))

    def genomes(self) -> Set[str]:
        return set(self._sequences)

    def has_genome(self, name: str) -> bool:
        return name in self._sequences

    def reference_base(self, genome: str, chrom: str, pos: int) -> str:
        seq = self._sequence(genome, chrom)
        if pos < 0 or pos >= len(seq):
            raise SequenceNotFoundError(f"{genome}.{chrom}:{pos} is outside the sequence")
        return seq[pos].upper()

    def column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        targets: Collection[str],
        duplicates: bool,
    ) -> List[AlignedBase]:
        for t in targets:
            if t not in self._sequences:
                raise GenomeNotFoundError(f"Genome {t} not found")
        if (genome, chrom, pos) in self._faults:
            raise AlignmentQueryError(f"Injected fault at {genome}.{chrom}:{pos}")

        out: List[AlignedBase] = []
        if genome in targets:
            out.append(AlignedBase(genome, chrom, pos, self.reference_base(genome, chrom, pos)))
        for b, is_dup in self._columns.get((genome, chrom, pos), []):
            if b.genome in targets and (duplicates or not is_dup):
                out.append(b)
        return out

    def _sequence(self, genome: str, chrom: str) -> str:
        if genome not in self._sequences:
            raise GenomeNotFoundError(f"Genome {genome} not found")
        seqs = self._sequences[genome]
        if chrom not in seqs:
            raise SequenceNotFoundError(f"Sequence {chrom} not found in genome {genome}")
        return seqs[chrom]


# -----------------
# MAF backend
# -----------------


@dataclass
class _MafRow:
    """One ``s`` line of a MAF block, with forward-strand coordinates."""

    genome: str
    chrom: str
    start: int  # forward-strand, 0-based
    end: int  # forward-strand, exclusive
    strand: int
    text: str
    block: int
    _offsets: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def offsets(self) -> np.ndarray:
        # offsets[c] = number of bases (non-gap characters) in text[: c + 1]
        if self._offsets is None:
            raw = np.frombuffer(self.text.encode("ascii"), dtype=np.uint8)
            self._offsets = np.cumsum(raw != ord("-"))
        return self._offsets

    def column_of(self, pos: int) -> int:
        k = pos - self.start if self.strand == 1 else self.end - 1 - pos
        return int(np.searchsorted(self.offsets, k + 1))

    def position_at(self, col: int) -> Optional[int]:
        if self.text[col] == "-":
            return None
        k = int(self.offsets[col]) - 1
        return self.start + k if self.strand == 1 else self.end - 1 - k


class MafAlignment:
    """Reference-anchored MAF alignment held in memory.

    Source names must follow the UCSC ``genome.chrom`` convention. A genome
    with more than one row in a block is treated as duplicated there: its rows
    are paralogous copies and are only reported when duplicates are requested.

    Parameters
    ----------
    maf_path:
        MAF file, plain or gzip-compressed.
    reference_fasta:
        Optional indexed FASTA of the reference genome. When given, reference
        bases and sequence bounds come from it; otherwise from the MAF rows
        (positions inside a sequence but outside every block read as ``N``).
    """

    def __init__(
        self,
        maf_path: str | Path,
        *,
        reference_fasta: Optional[str | Path] = None,
    ) -> None:
        self.maf_path = str(maf_path)
        self._blocks: List[List[_MafRow]] = []
        self._rows: Dict[Tuple[str, str], List[_MafRow]] = {}
        self._starts: Dict[Tuple[str, str], List[int]] = {}
        self._max_span: Dict[Tuple[str, str], int] = {}
        self._src_sizes: Dict[Tuple[str, str], int] = {}
        self._genomes: Set[str] = set()
        self._fasta: Optional[pysam.FastaFile] = None

        self._load()
        if reference_fasta is not None:
            self._fasta = pysam.FastaFile(str(reference_fasta))

    def _load(self) -> None:
        with open_textmaybe_gzip(self.maf_path, "rt") as fh:
            for block_idx, msa in enumerate(AlignIO.parse(fh, "maf")):
                rows: List[_MafRow] = []
                for rec in msa:
                    genome, chrom = split_maf_name(rec.id)
                    ann = rec.annotations
                    start = int(ann["start"])
                    size = int(ann["size"])
                    strand = int(ann["strand"])
                    src_size = int(ann["srcSize"])
                    if strand == -1:
                        fwd_start = src_size - (start + size)
                    else:
                        fwd_start = start
                    row = _MafRow(
                        genome=genome,
                        chrom=chrom,
                        start=fwd_start,
                        end=fwd_start + size,
                        strand=strand,
                        text=str(rec.seq),
                        block=block_idx,
                    )
                    rows.append(row)
                    key = (genome, chrom)
                    self._rows.setdefault(key, []).append(row)
                    self._src_sizes[key] = src_size
                    self._max_span[key] = max(self._max_span.get(key, 0), size)
                    self._genomes.add(genome)
                self._blocks.append(rows)

        for key, rows in self._rows.items():
            rows.sort(key=lambda r: r.start)
            self._starts[key] = [r.start for r in rows]

        logger.info(
            "Loaded %d MAF blocks over %d genomes from %s",
            len(self._blocks),
            len(self._genomes),
            self.maf_path,
        )

    def genomes(self) -> Set[str]:
        return set(self._genomes)

    def has_genome(self, name: str) -> bool:
        return name in self._genomes

    def _rows_covering(self, genome: str, chrom: str, pos: int) -> List[_MafRow]:
        key = (genome, chrom)
        rows = self._rows.get(key)
        if not rows:
            return []
        starts = self._starts[key]
        lo = bisect.bisect_left(starts, pos - self._max_span[key] + 1)
        hi = bisect.bisect_right(starts, pos)
        return [r for r in rows[lo:hi] if r.start <= pos < r.end]

    def reference_base(self, genome: str, chrom: str, pos: int) -> str:
        if self._fasta is not None:
            if chrom not in self._fasta.references:
                raise SequenceNotFoundError(f"Sequence {chrom} not found in reference FASTA")
            if pos < 0 or pos >= self._fasta.get_reference_length(chrom):
                raise SequenceNotFoundError(f"{chrom}:{pos} is outside the reference sequence")
            return self._fasta.fetch(chrom, pos, pos + 1).upper()

        if genome not in self._genomes:
            raise GenomeNotFoundError(f"Genome {genome} not found")
        size = self._src_sizes.get((genome, chrom))
        if size is None:
            raise SequenceNotFoundError(f"Sequence {chrom} not found in genome {genome}")
        if pos < 0 or pos >= size:
            raise SequenceNotFoundError(f"{genome}.{chrom}:{pos} is outside the sequence")
        for row in self._rows_covering(genome, chrom, pos):
            base = row.text[row.column_of(pos)]
            if row.strand == -1:
                base = base.translate(_COMPLEMENT)
            return base.upper()
        return "N"

    def column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        targets: Collection[str],
        duplicates: bool,
    ) -> List[AlignedBase]:
        for name in [genome, *targets]:
            if name not in self._genomes:
                raise GenomeNotFoundError(f"Genome {name} not found")

        out: List[AlignedBase] = []
        for query_row in self._rows_covering(genome, chrom, pos):
            col = query_row.column_of(pos)
            block = self._blocks[query_row.block]

            rows_per_genome: Dict[str, int] = {}
            for row in block:
                rows_per_genome[row.genome] = rows_per_genome.get(row.genome, 0) + 1

            for row in block:
                if row.genome not in targets:
                    continue
                if not duplicates and rows_per_genome[row.genome] > 1:
                    continue
                base = row.text[col]
                # Bases are reported on the query's forward strand.
                if query_row.strand == -1:
                    base = base.translate(_COMPLEMENT)
                out.append(
                    AlignedBase(
                        genome=row.genome,
                        chrom=row.chrom,
                        pos=row.position_at(col),
                        base=base,
                    )
                )
        return out


class OrthologSplitAlignment:
    """Two MAF exports of the same alignment.

    ``orthologs`` holds at most one row per genome and block (``hal2maf
    --noDupes``) and answers queries without duplicates. ``paralogs`` keeps
    every duplicated copy and answers queries with duplicates. Genomes that
    have no block in the export consulted are reported as empty columns.
    """

    def __init__(self, orthologs: MafAlignment, paralogs: MafAlignment) -> None:
        self.orthologs = orthologs
        self.paralogs = paralogs

    def genomes(self) -> Set[str]:
        return self.orthologs.genomes() | self.paralogs.genomes()

    def has_genome(self, name: str) -> bool:
        return self.orthologs.has_genome(name) or self.paralogs.has_genome(name)

    def reference_base(self, genome: str, chrom: str, pos: int) -> str:
        return self.paralogs.reference_base(genome, chrom, pos)

    def column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        targets: Collection[str],
        duplicates: bool,
    ) -> List[AlignedBase]:
        source = self.paralogs if duplicates else self.orthologs
        present = [t for t in targets if source.has_genome(t)]
        if not present or not source.has_genome(genome):
            return []
        return source.column(genome, chrom, pos, present, duplicates)


def open_alignment(
    path: str | Path,
    *,
    ref_genome: str,
    targets: Collection[str],
    reference_fasta: Optional[str | Path] = None,
    cache_dir: Optional[str | Path] = None,
    orthologs_maf: Optional[str | Path] = None,
) -> AlignmentSource:
    """Open an alignment file, choosing the backend from its suffix.

    For MAF input, ``orthologs_maf`` is an orthologs-only export of the same
    alignment; when given, 1:1 queries are answered from it.
    """
    p = Path(path)
    name = p.name.lower()
    if name.endswith(".maf") or name.endswith(".maf.gz"):
        maf = MafAlignment(p, reference_fasta=reference_fasta)
        if orthologs_maf is None:
            return maf
        orthologs = MafAlignment(orthologs_maf, reference_fasta=reference_fasta)
        return OrthologSplitAlignment(orthologs, maf)
    if name.endswith(".hal"):
        from .hal import HalAlignment

        return HalAlignment(
            p,
            ref_genome=ref_genome,
            targets=targets,
            reference_fasta=reference_fasta,
            cache_dir=cache_dir,
        )
    raise ValueError(f"Unsupported alignment format (expected .hal, .maf or .maf.gz): {p}")
