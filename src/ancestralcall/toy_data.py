from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .utils import ensure_outdir, write_json

REF_GENOME = "human"
ANCESTORS = ("Anc0", "Anc1")

# Each MAF row: (src, start, size, strand, srcSize, text)
_Row = Tuple[str, int, int, str, int, str]


def _write_fasta(path: Path, records: Dict[str, str]) -> None:
    lines: List[str] = []
    for contig, seq in records.items():
        lines.append(f">{contig}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate(seq: str, changes: Dict[int, str]) -> str:
    out = list(seq)
    for i, b in changes.items():
        out[i] = b
    return "".join(out)


def _write_maf(path: Path, blocks: List[List[_Row]]) -> None:
    lines = ["##maf version=1 scoring=N/A", ""]
    for rows in blocks:
        lines.append("a score=0.0")
        for src, start, size, strand, src_size, text in rows:
            lines.append(f"s {src:<20s} {start:>6d} {size:>4d} {strand} {src_size:>6d} {text}")
        lines.append("")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _ortholog_rows(rows: List[_Row]) -> List[_Row]:
    """Rows of a block as an orthologs-only export keeps them.

    The first (reference) row stays; any other genome with several rows in the
    block only has paralogous copies there and is dropped.
    """
    per_genome: Dict[str, int] = {}
    for src, *_ in rows:
        genome = src.split(".", 1)[0]
        per_genome[genome] = per_genome.get(genome, 0) + 1
    return [rows[0]] + [r for r in rows[1:] if per_genome[r[0].split(".", 1)[0]] == 1]


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny alignment, reference and positions file for demos/tests.

    The alignment covers every way a call can be made with the chain
    ``Anc0,Anc1`` on reference ``human``:

    ==========  =====================================================
    chr1:5      1:1 base in Anc0 (T, reference C)
    chr1:12     1:1 base in Anc0 equal to the reference (A)
    chr1:22     two Anc0 paralogs agreeing on T
    chr1:25     two Anc0 paralogs disagreeing (tie, N)
    chr1:33     no ancestor; paralog on human chr2 carries A
    chr1:42     nothing in Anc0; Anc1 carries A (fallback)
    chr1:47     not aligned at all
    chrUn:5     sequence absent from the reference
    ==========  =====================================================

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    chr1 = ("ACGT" * 13)[:50]
    chr2 = "TTGAATTGCA"
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, {"chr1": chr1, "chr2": chr2})
    pysam.faidx(str(ref_fa))

    anc1_block1 = _mutate(chr1[0:20], {15: "-"})
    blocks: List[List[_Row]] = [
        [
            (f"{REF_GENOME}.chr1", 0, 20, "+", len(chr1), chr1[0:20]),
            ("Anc0.anc0chr", 100, 20, "+", 1000, _mutate(chr1[0:20], {5: "T"})),
            ("Anc1.anc1chr", 300, 19, "-", 800, anc1_block1),
        ],
        [
            (f"{REF_GENOME}.chr1", 20, 10, "+", len(chr1), chr1[20:30]),
            ("Anc0.scaffoldA", 0, 10, "+", 500, _mutate(chr1[20:30], {2: "T", 5: "A"})),
            ("Anc0.scaffoldB", 40, 10, "+", 500, _mutate(chr1[20:30], {2: "T", 5: "C"})),
        ],
        [
            (f"{REF_GENOME}.chr1", 30, 10, "+", len(chr1), chr1[30:40]),
            (f"{REF_GENOME}.chr2", 0, 10, "+", len(chr2), chr2),
        ],
        [
            (f"{REF_GENOME}.chr1", 40, 5, "+", len(chr1), chr1[40:45]),
            ("Anc1.anc1chr", 10, 5, "+", 800, _mutate(chr1[40:45], {2: "A"})),
        ],
    ]
    maf_path = outdir_p / "toy.maf"
    _write_maf(maf_path, blocks)
    orthologs_maf_path = outdir_p / "toy.orthologs.maf"
    _write_maf(orthologs_maf_path, [_ortholog_rows(rows) for rows in blocks])

    positions_path = outdir_p / "positions.bed"
    positions_path.write_text(
        "\n".join(
            [
                "# toy positions (unsorted on purpose)",
                "chr1\t5\t6",
                "chr1\t42\t43",
                "chr1\t12\t13",
                "not a valid line",
                "chr1\t22\t23",
                "",
                "chr1\t25\t26",
                "chr1\t33\t34",
                "chrUn\t5\t6",
                "chr1\t47\t48",
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    summary = {
        "ref_fa": str(ref_fa),
        "maf": str(maf_path),
        "orthologs_maf": str(orthologs_maf_path),
        "positions": str(positions_path),
        "ref_genome": REF_GENOME,
        "ancestors": ",".join(ANCESTORS),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
