from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import CoordinateRecord
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)


class NoValidPositionsError(ValueError):
    """Raised when a coordinates file yields no usable records."""


def parse_coordinate_line(line: str) -> Optional[Tuple[str, int, int]]:
    """Parse ``chrom start end`` from a BED/GFF-like line.

    Returns None for empty lines, ``#`` comments and anything that does not
    start with a name followed by two integers. Extra columns are ignored.
    """
    if not line or line[0] == "#":
        return None
    fields = line.split()
    if len(fields) < 3:
        return None
    try:
        start = int(fields[1])
        end = int(fields[2])
    except ValueError:
        return None
    return fields[0], start, end


def load_coordinates(source: str | Path | Iterable[str]) -> List[CoordinateRecord]:
    """Read coordinate records from a path (optionally gzipped) or an iterable of lines.

    Malformed lines are skipped silently; accepted records are numbered from 0
    in input order.
    """
    if isinstance(source, (str, Path)):
        with open_textmaybe_gzip(source, "rt") as fh:
            return _records_from_lines(fh)
    return _records_from_lines(source)


def _records_from_lines(lines: Iterable[str]) -> List[CoordinateRecord]:
    records: List[CoordinateRecord] = []
    for line in lines:
        parsed = parse_coordinate_line(line.rstrip("\r\n"))
        if parsed is None:
            continue
        chrom, start, end = parsed
        records.append(CoordinateRecord(chrom=chrom, start=start, end=end, index=len(records)))
    return records


def require_positions(records: Sequence[CoordinateRecord]) -> None:
    if len(records) == 0:
        raise NoValidPositionsError("No valid positions found in input file")


def processing_order(records: Sequence[CoordinateRecord], *, sort: bool = True) -> List[int]:
    """Return the order in which records are resolved.

    With ``sort`` (the default) records are visited by chromosome, then start,
    so consecutive alignment queries hit nearby columns. Python's sort is
    stable, so records sharing ``(chrom, start)`` keep their input order.
    Without ``sort`` the input order is kept.
    """
    order = list(range(len(records)))
    if not sort:
        return order
    order.sort(key=lambda i: (records[i].chrom, records[i].start))
    logger.info("Sorted %d positions for optimal processing", len(order))
    return order
