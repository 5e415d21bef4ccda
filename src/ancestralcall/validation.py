from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Sequence

from .alignment import AlignmentSource, GenomeNotFoundError, SequenceNotFoundError
from .models import AncestorChain, CoordinateRecord

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def split_ancestors(value: str) -> List[str]:
    """Split a comma-separated ancestor list; names are trimmed and empty entries dropped."""
    return [name.strip() for name in value.split(",") if name.strip()]


def parse_ancestor_chain(value: str | Sequence[str]) -> AncestorChain:
    """Build the ancestor chain from ``"Anc1"`` or ``"Anc1, Anc2,Anc3"`` (or a list of names)."""
    if isinstance(value, str):
        names = split_ancestors(value)
    else:
        names = [n.strip() for n in value if n and n.strip()]
    if not names:
        raise ValueError(f"No valid genome names provided in: {value!r}")
    return AncestorChain.from_names(names)


def check_genomes(alignment: AlignmentSource, ref_genome: str, chain: AncestorChain) -> None:
    """Raise GenomeNotFoundError unless the reference and every ancestor are in the alignment."""
    if not alignment.has_genome(ref_genome):
        raise GenomeNotFoundError(f"Reference genome {ref_genome} not found")
    for ancestor in chain:
        if not alignment.has_genome(ancestor.name):
            raise GenomeNotFoundError(f"Target genome {ancestor.name} not found")


def check_output_writable(path: str | Path) -> None:
    """Raise PermissionError/FileNotFoundError if ``path`` cannot be created or overwritten."""
    p = Path(path)
    parent = p.parent if str(p.parent) else Path(".")
    if not parent.exists():
        raise FileNotFoundError(f"Output directory does not exist: {parent}")
    if p.exists() and not os.access(p, os.W_OK):
        raise PermissionError(f"Unable to open output file: {p}")
    if not p.exists() and not os.access(parent, os.W_OK):
        raise PermissionError(f"Unable to open output file: {p}")


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def warn_on_unknown_chromosomes(
    alignment: AlignmentSource,
    ref_genome: str,
    records: Sequence[CoordinateRecord],
) -> List[str]:
    """Log a warning for chromosomes without a reference sequence; return them.

    Such positions still produce rows (reference ``N``, evidence ``Missing``).
    A whole-batch miss usually means chr1-vs-1 naming, which is called out.
    """
    chroms = sorted({r.chrom for r in records})
    unknown: List[str] = []
    for chrom in chroms:
        try:
            alignment.reference_base(ref_genome, chrom, 0)
        except SequenceNotFoundError:
            unknown.append(chrom)

    if unknown and len(unknown) == len(chroms):
        logger.warning(
            "None of the %d input chromosomes were found in reference genome %s "
            "(input naming looks %s). Check chromosome naming (e.g., chr1 vs 1).",
            len(chroms),
            ref_genome,
            detect_contig_style(chroms),
        )
    elif unknown:
        logger.warning(
            "%d chromosome(s) not found in reference genome %s; their positions will be "
            "reported as Missing: %s",
            len(unknown),
            ref_genome,
            ", ".join(unknown[:10]) + (" ..." if len(unknown) > 10 else ""),
        )
    return unknown
