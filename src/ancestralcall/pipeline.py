from __future__ import annotations

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, Optional, Sequence

from tqdm import tqdm

from .alignment import AlignmentSource
from .evidence import encode_evidence, parse_evidence
from .models import AncestorChain, CoordinateRecord, OutputRow
from .output import ResultSink, write_rows
from .positions import load_coordinates, processing_order, require_positions
from .resolver import AlleleResolver
from .utils import write_json
from .validation import (
    check_genomes,
    check_output_writable,
    parse_ancestor_chain,
    warn_on_unknown_chromosomes,
)

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Reports how many positions have been resolved.

    Logs ``Processed i/n positions`` every ``interval`` positions (0 disables
    it) and optionally drives a tqdm progress bar.
    """

    def __init__(self, total: int, *, interval: int = 0, bar: bool = False) -> None:
        self.total = int(total)
        self.interval = int(interval)
        self._bar: Optional[tqdm] = None
        if bar:
            self._bar = tqdm(total=self.total, unit="pos", desc="Resolving positions")

    def update(self, done: int) -> None:
        if self._bar is not None:
            self._bar.update(1)
        if self.interval > 0 and done % self.interval == 0:
            logger.info("Processed %d/%d positions", done, self.total)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


def resolve_row(resolver: AlleleResolver, record: CoordinateRecord) -> OutputRow:
    ref_base, outcome = resolver.resolve_record(record)
    return OutputRow(
        chrom=record.chrom,
        start=record.start,
        end=record.end,
        ref_base=ref_base,
        ancestor=outcome.ancestor,
        allele=outcome.allele,
        evidence=encode_evidence(outcome, len(resolver.chain)),
    )


def summarize_rows(rows: Iterable[OutputRow]) -> Dict[str, object]:
    """Count rows per evidence label, used ancestor and allele."""
    evidence: Counter = Counter()
    ancestors: Counter = Counter()
    alleles: Counter = Counter()
    fallbacks: Counter = Counter()
    counts = {
        "positions": 0,
        "resolved": 0,
        "ties": 0,
        "missing": 0,
        "missing_reference": 0,
    }

    for row in rows:
        counts["positions"] += 1
        parsed = parse_evidence(row.evidence)
        evidence[parsed.label] += 1
        ancestors[row.ancestor] += 1
        alleles[row.allele] += 1
        if parsed.ancestor is not None:
            fallbacks[str(parsed.fallback)] += 1

        if row.allele != "N":
            counts["resolved"] += 1
        elif parsed.label.endswith("Tie"):
            counts["ties"] += 1
        elif row.evidence == "Missing":
            counts["missing_reference"] += 1
        else:
            counts["missing"] += 1

    return {
        "counts": counts,
        "evidence_counts": dict(sorted(evidence.items())),
        "ancestor_counts": dict(sorted(ancestors.items())),
        "allele_counts": dict(sorted(alleles.items())),
        "fallback_counts": dict(sorted(fallbacks.items())),
    }


def run_batch(
    *,
    alignment: AlignmentSource,
    ref_genome: str,
    ancestors: str | Sequence[str] | AncestorChain,
    positions: str | Path | Iterable[str],
    output: str | Path,
    sort: bool = True,
    progress_interval: int = 0,
    progress_bar: bool = False,
    summary_json: Optional[str | Path] = None,
) -> Dict[str, object]:
    """Resolve every position of a coordinates file and write the results TSV.

    Rows are written in input order whatever the processing order. Returns a
    summary dict (also written to ``summary_json`` when given).

    Raises
    ------
    GenomeNotFoundError
        If the reference or an ancestor genome is not in the alignment.
    NoValidPositionsError
        If the coordinates contain no usable record; nothing is written.
    """
    t0 = time.time()

    if isinstance(ancestors, AncestorChain):
        chain = ancestors
    else:
        chain = parse_ancestor_chain(ancestors)
    check_genomes(alignment, ref_genome, chain)
    if chain.is_multi:
        logger.info("Using multiple genomes: %s", ", ".join(chain.names))

    records = load_coordinates(positions)
    require_positions(records)
    logger.info("Loaded %d positions", len(records))

    check_output_writable(output)
    warn_on_unknown_chromosomes(alignment, ref_genome, records)

    order = processing_order(records, sort=sort)

    resolver = AlleleResolver(alignment, ref_genome, chain)
    sink = ResultSink(len(records))
    reporter = ProgressReporter(len(records), interval=progress_interval, bar=progress_bar)
    try:
        for done, idx in enumerate(order, start=1):
            record = records[idx]
            sink.put(record.index, resolve_row(resolver, record))
            reporter.update(done)
    finally:
        reporter.close()

    n_written = write_rows(sink.rows(), output)
    logger.info("Wrote %d rows to %s", n_written, output)

    summary: Dict[str, object] = {
        "ref_genome": ref_genome,
        "ancestors": chain.names,
        "positions": str(positions) if isinstance(positions, (str, Path)) else None,
        "output": str(output),
        "sorted": bool(sort),
        "rows_written": n_written,
    }
    summary.update(summarize_rows(sink.rows()))
    summary["runtime_seconds"] = float(time.time() - t0)

    if summary_json is not None:
        write_json(summary_json, summary)
    return summary
