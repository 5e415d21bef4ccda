"""Evidence strings.

Every output row carries a tag recording how its allele was called:

    Direct                          one 1:1 aligned base in the ancestor
    MajorityVote:C=2,G=1            several 1:1 aligned bases, unique majority
    AncestralParalog                one base from paralogous copies in the ancestor
    AncestralParalogVote:...        paralogous copies, unique majority
    AncestralParalogTie:...         tied counts in the ancestor (allele N)
    WithinSpeciesParalog            one base from a paralog in the reference genome
    WithinSpeciesParalogVote:...    reference paralogs, unique majority
    WithinSpeciesParalogTie:...     reference paralogs tied (allele N)
    Missing(+self)                  nothing found, single ancestor configured
    Missing(tried:3+self)           nothing found with 3 ancestors configured
    Missing                         reference sequence not available

With more than one ancestor configured, ancestor-derived tags are suffixed
with ``@Name``, plus ``(fallback:k)`` when chain entry ``k > 0`` was used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from .models import ResolutionOutcome

_LABELS = {
    ("direct", "single"): "Direct",
    ("direct", "majority"): "MajorityVote",
    # Ties share one label regardless of the tier-1 sub-method.
    ("direct", "tie"): "AncestralParalogTie",
    ("ancestral_paralog", "single"): "AncestralParalog",
    ("ancestral_paralog", "majority"): "AncestralParalogVote",
    ("ancestral_paralog", "tie"): "AncestralParalogTie",
    ("within_species", "single"): "WithinSpeciesParalog",
    ("within_species", "majority"): "WithinSpeciesParalogVote",
    ("within_species", "tie"): "WithinSpeciesParalogTie",
}

EVIDENCE_LABELS = tuple(sorted(set(_LABELS.values()) | {"Missing"}))

_TAG_RE = re.compile(
    r"^(?P<label>[A-Za-z]+)"
    r"(?::(?P<counts>[A-Z]=\d+(?:,[A-Z]=\d+)*))?"
    r"(?:@(?P<ancestor>.+?)(?:\(fallback:(?P<fallback>\d+)\))?)?$"
)
_MISSING_RE = re.compile(r"^Missing(?:\((?:tried:(?P<tried>\d+))?\+self\))?$")


def ancestor_suffix(outcome: ResolutionOutcome, chain_size: int) -> str:
    if chain_size <= 1 or outcome.ancestor_index is None:
        return ""
    suffix = f"@{outcome.ancestor}"
    if outcome.ancestor_index > 0:
        suffix += f"(fallback:{outcome.ancestor_index})"
    return suffix


def encode_evidence(outcome: ResolutionOutcome, chain_size: int) -> str:
    """Render a resolution outcome as its evidence tag."""
    if outcome.method == "no_reference":
        return "Missing"
    if outcome.method == "exhausted":
        if chain_size > 1:
            return f"Missing(tried:{outcome.ancestors_tried}+self)"
        return "Missing(+self)"

    if outcome.vote is None:
        raise ValueError(f"Outcome with method {outcome.method!r} has no vote")
    label = _LABELS[(outcome.method, outcome.vote.kind)]
    tag = label
    if outcome.vote.kind != "single":
        tag += ":" + outcome.vote.breakdown()
    return tag + ancestor_suffix(outcome, chain_size)


@dataclass(frozen=True)
class ParsedEvidence:
    label: str
    counts: Dict[str, int] = field(default_factory=dict)
    ancestor: Optional[str] = None
    fallback: int = 0
    tried: Optional[int] = None


def parse_evidence(tag: str) -> ParsedEvidence:
    """Split an evidence tag back into its parts. Raises ValueError on unknown tags."""
    m = _MISSING_RE.match(tag)
    if m is not None:
        tried = m.group("tried")
        if tried is None and tag != "Missing":
            tried = "1"
        return ParsedEvidence(label="Missing", tried=int(tried) if tried is not None else None)

    m = _TAG_RE.match(tag)
    if m is None or m.group("label") not in EVIDENCE_LABELS:
        raise ValueError(f"Unrecognised evidence tag: {tag!r}")
    counts: Dict[str, int] = {}
    if m.group("counts"):
        for pair in m.group("counts").split(","):
            base, n = pair.split("=")
            counts[base] = int(n)
    return ParsedEvidence(
        label=m.group("label"),
        counts=counts,
        ancestor=m.group("ancestor"),
        fallback=int(m.group("fallback") or 0),
    )
