from pathlib import Path

import pytest

from ancestralcall.alignment import (
    GenomeNotFoundError,
    MafAlignment,
    OrthologSplitAlignment,
    SequenceNotFoundError,
    open_alignment,
    split_maf_name,
)
from ancestralcall.evidence import encode_evidence
from ancestralcall.models import AncestorChain
from ancestralcall.resolver import AlleleResolver
from ancestralcall.toy_data import make_toy_data


@pytest.fixture()
def toy(tmp_path: Path) -> dict:
    return make_toy_data(outdir=tmp_path / "toy")


def test_split_maf_name():
    assert split_maf_name("hg38.chr1") == ("hg38", "chr1")
    assert split_maf_name("Anc0.scaffold.12") == ("Anc0", "scaffold.12")


def test_maf_genomes(toy):
    maf = MafAlignment(toy["maf"])
    assert maf.genomes() == {"human", "Anc0", "Anc1"}
    assert maf.has_genome("Anc1")
    assert not maf.has_genome("Anc9")


def test_maf_reference_base_from_rows(toy):
    maf = MafAlignment(toy["maf"])
    assert maf.reference_base("human", "chr1", 5) == "C"
    assert maf.reference_base("human", "chr2", 3) == "A"
    # inside chr1 but not aligned
    assert maf.reference_base("human", "chr1", 47) == "N"
    with pytest.raises(SequenceNotFoundError):
        maf.reference_base("human", "chr1", 50)
    with pytest.raises(SequenceNotFoundError):
        maf.reference_base("human", "chrUn", 5)


def test_maf_reference_base_from_fasta(toy):
    maf = MafAlignment(toy["maf"], reference_fasta=toy["ref_fa"])
    assert maf.reference_base("human", "chr1", 47) == "T"
    with pytest.raises(SequenceNotFoundError):
        maf.reference_base("human", "chrUn", 5)


def test_maf_column_direct(toy):
    maf = MafAlignment(toy["maf"])
    hits = maf.column("human", "chr1", 5, ["Anc0"], False)
    assert [(h.genome, h.chrom, h.pos, h.base) for h in hits] == [("Anc0", "anc0chr", 105, "T")]


def test_maf_column_duplicates_only_on_request(toy):
    maf = MafAlignment(toy["maf"])
    assert maf.column("human", "chr1", 22, ["Anc0"], False) == []
    hits = maf.column("human", "chr1", 22, ["Anc0"], True)
    assert sorted((h.chrom, h.pos, h.base) for h in hits) == [
        ("scaffoldA", 2, "T"),
        ("scaffoldB", 42, "T"),
    ]


def test_maf_column_minus_strand_and_gap(toy):
    maf = MafAlignment(toy["maf"])
    (first,) = maf.column("human", "chr1", 0, ["Anc1"], False)
    assert (first.chrom, first.pos) == ("anc1chr", 499)
    (gap,) = maf.column("human", "chr1", 15, ["Anc1"], False)
    assert gap.base == "-"
    assert gap.pos is None


def test_maf_column_self_alignment_included(toy):
    maf = MafAlignment(toy["maf"])
    hits = maf.column("human", "chr1", 33, ["human"], True)
    assert sorted((h.chrom, h.pos, h.base) for h in hits) == [("chr1", 33, "C"), ("chr2", 3, "A")]


def test_maf_column_unknown_genome(toy):
    maf = MafAlignment(toy["maf"])
    with pytest.raises(GenomeNotFoundError):
        maf.column("human", "chr1", 5, ["Anc9"], False)


def test_open_alignment_dispatch(toy, tmp_path: Path):
    aln = open_alignment(toy["maf"], ref_genome="human", targets=["Anc0"])
    assert isinstance(aln, MafAlignment)

    bogus = tmp_path / "alignment.txt"
    bogus.write_text("")
    with pytest.raises(ValueError, match="Unsupported alignment format"):
        open_alignment(bogus, ref_genome="human", targets=["Anc0"])


# Anc0 has its ortholog (s2) and a paralog (s1) in the same block.
_MAF_WITH_PARALOGS = """##maf version=1

a score=0.0
s human.chr1 0 5 + 5 ACGTA
s Anc0.s1    0 5 + 5 ACCTA
s Anc0.s2    0 5 + 5 ACGTA

"""

_MAF_ORTHOLOGS = """##maf version=1

a score=0.0
s human.chr1 0 5 + 5 ACGTA
s Anc0.s2    0 5 + 5 ACGTA

"""


def test_orthologs_export_answers_direct_queries(tmp_path: Path) -> None:
    full = tmp_path / "aln.maf"
    full.write_text(_MAF_WITH_PARALOGS)
    orthologs = tmp_path / "aln.orthologs.maf"
    orthologs.write_text(_MAF_ORTHOLOGS)

    # Without the orthologs export the duplicated genome has no 1:1 row.
    assert MafAlignment(full).column("human", "chr1", 2, ["Anc0"], False) == []

    aln = open_alignment(full, ref_genome="human", targets=["Anc0"], orthologs_maf=orthologs)
    assert isinstance(aln, OrthologSplitAlignment)
    (hit,) = aln.column("human", "chr1", 2, ["Anc0"], False)
    assert (hit.chrom, hit.pos, hit.base) == ("s2", 2, "G")
    assert sorted(h.base for h in aln.column("human", "chr1", 2, ["Anc0"], True)) == ["C", "G"]

    outcome = AlleleResolver(aln, "human", AncestorChain.from_names(["Anc0"])).resolve("chr1", 2)
    assert outcome.allele == "G"
    assert encode_evidence(outcome, 1) == "Direct"


def test_orthologs_split_skips_genomes_absent_from_export(toy):
    aln = open_alignment(
        toy["maf"], ref_genome="human", targets=["Anc0"], orthologs_maf=toy["orthologs_maf"]
    )
    # Anc0 only has paralogous copies at chr1:22.
    assert aln.column("human", "chr1", 22, ["Anc0"], False) == []
    assert len(aln.column("human", "chr1", 22, ["Anc0"], True)) == 2
    assert aln.column("human", "chr1", 22, ["Anc9"], False) == []
