from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import pysam

from .models import OutputRow
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)


class ResultSink:
    """Pre-sized, write-once buffer of output rows indexed by input order."""

    def __init__(self, size: int) -> None:
        self._slots: List[Optional[OutputRow]] = [None] * size

    def __len__(self) -> int:
        return len(self._slots)

    def put(self, index: int, row: OutputRow) -> None:
        if index < 0 or index >= len(self._slots):
            raise RuntimeError(f"Result slot {index} is out of range (size {len(self._slots)})")
        if self._slots[index] is not None:
            raise RuntimeError(f"Result slot {index} was already written")
        self._slots[index] = row

    def rows(self) -> Iterator[OutputRow]:
        for i, row in enumerate(self._slots):
            if row is None:
                raise RuntimeError(f"Result slot {i} was never written")
            yield row


def write_rows(rows: Iterable[OutputRow], path: str | Path) -> int:
    """Write rows as a headerless 7-column TSV (gzip if the path ends in .gz)."""
    n = 0
    with open_textmaybe_gzip(path, "wt") as fh:
        for row in rows:
            fh.write(row.to_tsv() + "\n")
            n += 1
    return n


def read_rows(path: str | Path) -> List[OutputRow]:
    """Read a results TSV written by :func:`write_rows`."""
    rows: List[OutputRow] = []
    with open_textmaybe_gzip(path, "rt") as fh:
        for line in fh:
            line = line.rstrip("\r\n")
            if not line or line.startswith("#"):
                continue
            fields = line.split("\t")
            if len(fields) != 7:
                raise ValueError(f"Expected 7 tab-separated columns, got {len(fields)}: {line!r}")
            chrom, start, end, ref_base, ancestor, allele, evidence = fields
            rows.append(
                OutputRow(
                    chrom=chrom,
                    start=int(start),
                    end=int(end),
                    ref_base=ref_base,
                    ancestor=ancestor,
                    allele=allele,
                    evidence=evidence,
                )
            )
    return rows


def bcftools_annotate_command(annotation_gz: str | Path) -> str:
    return (
        f"bcftools annotate -a {annotation_gz} -c CHROM,POS,AA "
        "-h <(echo '##INFO=<ID=AA,Number=1,Type=String,Description=\"Ancestral allele\">') "
        "-Ob -o output.bcf input.vcf.gz"
    )


def export_bcftools_annotation(results: str | Path, prefix: str | Path) -> Path:
    """Convert a results TSV into a bgzipped, tabix-indexed ``CHROM POS AA`` table.

    Positions with an unknown (``N``) ancestral allele are dropped and start
    coordinates are converted to 1-based, ready for ``bcftools annotate``.

    Returns
    -------
    Path
        The ``<prefix>.tsv.gz`` file (with ``.tbi`` next to it).
    """
    rows = [r for r in read_rows(results) if r.allele != "N"]
    rows.sort(key=lambda r: (r.chrom, r.start))

    prefix = str(prefix)
    plain = Path(prefix + ".tsv")
    gz = Path(prefix + ".tsv.gz")
    plain.parent.mkdir(parents=True, exist_ok=True)

    with open(plain, "wt", encoding="utf-8") as fh:
        for r in rows:
            fh.write(f"{r.chrom}\t{r.start + 1}\t{r.allele}\n")

    pysam.tabix_compress(str(plain), str(gz), force=True)
    pysam.tabix_index(str(gz), seq_col=0, start_col=1, end_col=1, force=True)
    os.remove(plain)

    logger.info("Wrote %d ancestral alleles to %s", len(rows), gz)
    return gz
