import itertools
from collections import Counter

from ancestralcall.alignment import InMemoryAlignment
from ancestralcall.evidence import encode_evidence
from ancestralcall.models import AlignedBase, AncestorChain, CoordinateRecord
from ancestralcall.resolver import (
    UNKNOWN_ANCESTOR,
    WITHIN_SPECIES,
    AlleleResolver,
    count_bases,
    vote,
)

REF = "ref"


def _aln(*ancestors: str) -> InMemoryAlignment:
    seqs = {REF: {"chr1": "ACGTACGTAC", "chr2": "GGGGGGGGGG"}}
    for a in ancestors:
        seqs[a] = {"scaffold": "N" * 100}
    return InMemoryAlignment(seqs)


def _bases(genome: str, bases: str, *, chrom: str = "scaffold", start: int = 0) -> list:
    return [AlignedBase(genome, chrom, start + i, b) for i, b in enumerate(bases)]


def _resolve(aln: InMemoryAlignment, names: list, pos: int = 3):
    chain = AncestorChain.from_names(names)
    outcome = AlleleResolver(aln, REF, chain).resolve("chr1", pos)
    return outcome, encode_evidence(outcome, len(chain))


def test_count_bases_filters_and_uppercases():
    counts = count_bases(["a", "C", "N", "-", "\x00", "R", "c", ""])
    assert counts == Counter({"A": 1, "C": 2})


def test_vote_rules():
    assert vote(Counter()) is None
    single = vote(Counter({"G": 1}))
    assert (single.kind, single.allele) == ("single", "G")
    majority = vote(Counter({"G": 1, "C": 2}))
    assert (majority.kind, majority.allele, majority.breakdown()) == ("majority", "C", "C=2,G=1")
    tie = vote(Counter({"T": 2, "A": 2}))
    assert (tie.kind, tie.allele, tie.breakdown()) == ("tie", "N", "A=2,T=2")


def test_vote_is_invariant_under_reordering():
    results = {vote(count_bases(p)) for p in itertools.permutations("AATGC")}
    assert len(results) == 1
    (v,) = results
    assert v.allele == "A"
    assert v.breakdown() == "A=2,C=1,G=1,T=1"


def test_single_ancestor_majority_vote_end_to_end():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "CCG"))
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.allele == "C"
    assert outcome.ancestor == "Anc1"
    assert tag == "MajorityVote:C=2,G=1"


def test_direct_single_base():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "g"))
    outcome, tag = _resolve(aln, ["Anc1"])
    assert (outcome.allele, tag) == ("G", "Direct")


def test_paralogs_only_used_when_direct_is_empty():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "A"))
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "TT", start=50), duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1"])
    assert (outcome.allele, tag) == ("A", "Direct")


def test_direct_n_falls_through_to_paralogs():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "N"))
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "TTG", start=50), duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.method == "ancestral_paralog"
    assert (outcome.allele, tag) == ("T", "AncestralParalogVote:G=1,T=2")


def test_paralog_tie_gives_n():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "ATAT", start=10), duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.allele == "N"
    assert tag == "AncestralParalogTie:A=2,T=2"


def test_direct_tie_gives_n():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "TATA"))
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.allele == "N"
    assert tag.endswith("Tie:A=2,T=2")


def test_fallback_to_second_ancestor_in_three_element_chain():
    aln = _aln("Anc1", "Anc2", "Anc3")
    aln.add_column(REF, "chr1", 3, _bases("Anc2", "C"))
    aln.add_column(REF, "chr1", 3, _bases("Anc3", "G"))
    outcome, tag = _resolve(aln, ["Anc1", "Anc2", "Anc3"])
    assert (outcome.allele, outcome.ancestor) == ("C", "Anc2")
    assert tag == "Direct@Anc2(fallback:1)"


def test_primary_ancestor_has_no_fallback_suffix():
    aln = _aln("Anc1", "Anc2")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "C"))
    _, tag = _resolve(aln, ["Anc1", "Anc2"])
    assert tag == "Direct@Anc1"


def test_self_alignment_is_not_evidence():
    aln = _aln("Anc1")
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.allele == "N"
    assert outcome.ancestor == "Anc1"
    assert tag == "Missing(+self)"


def test_exhausted_chain_reports_number_tried():
    aln = _aln("Anc1", "Anc2", "Anc3")
    _, tag = _resolve(aln, ["Anc1", "Anc2", "Anc3"])
    assert tag == "Missing(tried:3+self)"


def test_within_species_paralog():
    aln = _aln("Anc1", "Anc2")
    aln.add_column(REF, "chr1", 3, _bases(REF, "G", chrom="chr2", start=7), duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1", "Anc2"])
    assert (outcome.allele, outcome.ancestor) == ("G", WITHIN_SPECIES)
    assert tag == "WithinSpeciesParalog"


def test_query_faults_count_as_no_data():
    aln = _aln("Anc1")
    aln.add_column(REF, "chr1", 3, _bases("Anc1", "C"))
    aln.add_fault(REF, "chr1", 3)
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.method == "exhausted"
    assert tag == "Missing(+self)"


def test_unknown_chromosome_is_missing_without_resolution():
    aln = _aln("Anc1")
    resolver = AlleleResolver(aln, REF, AncestorChain.from_names(["Anc1"]))
    ref_base, outcome = resolver.resolve_record(CoordinateRecord("chrUn", 3, 4, 0))
    assert ref_base == "N"
    assert outcome.method == "no_reference"
    assert outcome.ancestor == "Anc1"
    assert encode_evidence(outcome, 1) == "Missing"


def test_empty_chain_uses_unknown_ancestor_name():
    aln = _aln()
    outcome = AlleleResolver(aln, REF, AncestorChain(())).resolve("chr1", 3)
    assert outcome.ancestor == UNKNOWN_ANCESTOR
    assert outcome.allele == "N"


def test_allele_alphabet():
    aln = _aln("Anc1")
    for pos, bases in enumerate(["A", "CC", "RY", "ATAT", "gg"]):
        aln.add_column(REF, "chr1", pos, _bases("Anc1", bases))
    chain = AncestorChain.from_names(["Anc1"])
    resolver = AlleleResolver(aln, REF, chain)
    for pos in range(10):
        assert resolver.resolve("chr1", pos).allele in {"A", "C", "G", "T", "N"}


def test_within_species_majority_ignores_the_queried_locus():
    aln = _aln("Anc1")
    # The column also holds chr1:3 itself (T); counting it would make a tie.
    paralogs = _bases(REF, "GG", chrom="chr2", start=4) + [AlignedBase(REF, "chr1", 7, "T")]
    aln.add_column(REF, "chr1", 3, paralogs, duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1"])
    assert outcome.method == "within_species"
    assert (outcome.allele, outcome.ancestor) == ("G", WITHIN_SPECIES)
    assert tag == "WithinSpeciesParalogVote:G=2,T=1"


def test_within_species_tie_gives_n():
    aln = _aln("Anc1", "Anc2")
    aln.add_column(REF, "chr1", 3, _bases(REF, "CG", chrom="chr2"), duplicate=True)
    outcome, tag = _resolve(aln, ["Anc1", "Anc2"])
    assert (outcome.allele, outcome.ancestor) == ("N", WITHIN_SPECIES)
    assert tag == "WithinSpeciesParalogTie:C=1,G=1"

