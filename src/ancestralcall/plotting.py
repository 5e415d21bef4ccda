from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def _plot_counts(
    *,
    counts: Dict[str, int],
    out_png: str | Path,
    title: str,
    ylabel: str = "Positions",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = list(counts.keys())
    values = [int(counts[k]) for k in labels]

    plt.figure()
    plt.bar(range(len(labels)), values)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.xticks(range(len(labels)), labels, rotation=30, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_evidence_counts(
    *,
    evidence_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Evidence per position",
) -> None:
    _plot_counts(counts=evidence_counts, out_png=out_png, title=title)


def plot_ancestor_usage(
    *,
    ancestor_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Genome used for the call",
) -> None:
    _plot_counts(counts=ancestor_counts, out_png=out_png, title=title)


def plot_allele_counts(
    *,
    allele_counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Ancestral alleles",
) -> None:
    """Bar chart of called alleles in A, C, G, T, N order."""
    ordered = {b: int(allele_counts.get(b, 0)) for b in ["A", "C", "G", "T", "N"]}
    _plot_counts(counts=ordered, out_png=out_png, title=title)
