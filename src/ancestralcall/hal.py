"""HAL input via the HAL command line tools.

A HAL file is exported once per run into a cache directory:

- ``halStats --genomes`` lists the genomes, so unknown names fail fast.
- ``hal2fasta`` writes the reference genome FASTA (indexed with pysam).
- ``hal2maf`` writes two reference-anchored MAFs restricted to the ancestor
  genomes: one with ``--noDupes`` (orthologs only) and one keeping paralogy,
  where duplicated copies show up as extra rows.

Queries are then answered by
:class:`~ancestralcall.alignment.OrthologSplitAlignment` over the two exports.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from pathlib import Path
from typing import Collection, Dict, List, Optional, Set

import pysam

from .alignment import GenomeNotFoundError, MafAlignment, OrthologSplitAlignment
from .external import HAL_TOOLS_HINT, ensure_executable_in_path, run_command
from .models import AlignedBase
from .utils import ensure_outdir

logger = logging.getLogger(__name__)


def list_hal_genomes(hal_path: str | Path) -> List[str]:
    ensure_executable_in_path("halStats", hint=HAL_TOOLS_HINT)
    cp = run_command(["halStats", "--genomes", str(hal_path)])
    return cp.stdout.split()


def build_export_commands(
    *,
    hal_path: str | Path,
    ref_genome: str,
    targets: Collection[str],
    out_maf: str | Path,
    out_orthologs_maf: str | Path,
    out_fasta: str | Path,
) -> Dict[str, List[str]]:
    """Build the hal2maf/hal2fasta commands used to export a HAL file."""
    hal_path = str(Path(hal_path).expanduser().resolve())
    target_list = ",".join(t for t in targets if t != ref_genome)

    def _hal2maf(out: str | Path) -> List[str]:
        cmd = ["hal2maf", hal_path, str(out), "--refGenome", ref_genome]
        if target_list:
            cmd += ["--targetGenomes", target_list]
        return cmd

    cmd_fasta = [
        "hal2fasta",
        hal_path,
        ref_genome,
        "--outFaPath",
        str(out_fasta),
    ]
    return {
        "cmd_hal2maf": _hal2maf(out_maf),
        "cmd_hal2maf_orthologs": _hal2maf(out_orthologs_maf) + ["--noDupes"],
        "cmd_hal2fasta": cmd_fasta,
    }


def _export(out: Path, cmd: List[str], what: str) -> None:
    if out.exists():
        logger.info("Reusing exported %s: %s", what, out)
        return
    ensure_executable_in_path(cmd[0], hint=HAL_TOOLS_HINT)
    logger.info("Exporting %s: %s", what, out)
    run_command(cmd)


class HalAlignment:
    """Alignment source for ``.hal`` files.

    Parameters
    ----------
    hal_path:
        HAL alignment file.
    ref_genome:
        Genome the positions refer to. Exported as the MAF reference.
    targets:
        Ancestor genomes that will be queried.
    reference_fasta:
        Optional FASTA of the reference genome; skips the hal2fasta export.
    cache_dir:
        Directory for exported files. Defaults to a temporary directory.
        Existing exports in it are reused.
    """

    def __init__(
        self,
        hal_path: str | Path,
        *,
        ref_genome: str,
        targets: Collection[str],
        reference_fasta: Optional[str | Path] = None,
        cache_dir: Optional[str | Path] = None,
    ) -> None:
        self.hal_path = Path(hal_path)
        if not self.hal_path.exists():
            raise FileNotFoundError(f"HAL file not found: {self.hal_path}")

        self._hal_genomes: Set[str] = set(list_hal_genomes(self.hal_path))
        for name in [ref_genome, *targets]:
            if name not in self._hal_genomes:
                raise GenomeNotFoundError(f"Genome {name} not found in {self.hal_path}")

        if cache_dir is None:
            cache_dir = tempfile.mkdtemp(prefix="ancestralcall_")
        cache = ensure_outdir(cache_dir)

        tag = hashlib.sha1(",".join(sorted(targets)).encode("utf-8")).hexdigest()[:8]
        stem = f"{self.hal_path.stem}.{ref_genome}"
        out_maf = cache / f"{stem}.{tag}.maf"
        out_orthologs_maf = cache / f"{stem}.{tag}.orthologs.maf"
        out_fasta = cache / f"{stem}.fa"
        cmds = build_export_commands(
            hal_path=self.hal_path,
            ref_genome=ref_genome,
            targets=targets,
            out_maf=out_maf,
            out_orthologs_maf=out_orthologs_maf,
            out_fasta=out_fasta,
        )

        _export(out_orthologs_maf, cmds["cmd_hal2maf_orthologs"], "orthologs MAF")
        _export(out_maf, cmds["cmd_hal2maf"], "MAF with paralogs")

        if reference_fasta is None:
            _export(out_fasta, cmds["cmd_hal2fasta"], f"{ref_genome} FASTA")
            fai = out_fasta.with_suffix(out_fasta.suffix + ".fai")
            if not fai.exists():
                pysam.faidx(str(out_fasta))
            reference_fasta = out_fasta

        self._maf = OrthologSplitAlignment(
            MafAlignment(out_orthologs_maf, reference_fasta=reference_fasta),
            MafAlignment(out_maf, reference_fasta=reference_fasta),
        )

    def genomes(self) -> Set[str]:
        return set(self._hal_genomes)

    def has_genome(self, name: str) -> bool:
        return name in self._hal_genomes

    def reference_base(self, genome: str, chrom: str, pos: int) -> str:
        return self._maf.reference_base(genome, chrom, pos)

    def column(
        self,
        genome: str,
        chrom: str,
        pos: int,
        targets: Collection[str],
        duplicates: bool,
    ) -> List[AlignedBase]:
        return self._maf.column(genome, chrom, pos, targets, duplicates)
