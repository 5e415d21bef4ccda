"""ancestralcall: ancestral allele inference from multi-genome alignments.

Public API is intentionally small; most users should use the CLI:

    ancestralcall resolve --alignment ... --ref-genome ... --ancestors ... --positions ... --output ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
