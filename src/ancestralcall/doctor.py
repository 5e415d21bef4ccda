"""Environment self-checks.

This module powers the ``ancestralcall doctor`` CLI command.

MAF input needs nothing beyond the Python dependencies. HAL input is exported
with the HAL command line tools (halStats, hal2maf, hal2fasta), which are not
pip-installable, so a missing tool is the most common setup problem.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import Dict, Optional

from .external import HAL_TOOLS_HINT, run_command

logger = logging.getLogger(__name__)

HAL_TOOLS = ["halStats", "hal2maf", "hal2fasta"]


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    howto: Optional[str] = None


def _which(name: str) -> Optional[str]:
    return shutil.which(name)


def check_python() -> CheckResult:
    v = platform.python_version()
    return CheckResult(name="python", ok=True, detail=f"Python {v}")


def check_executable(name: str, *, howto: Optional[str] = None) -> CheckResult:
    p = _which(name)
    if p is None:
        return CheckResult(name=name, ok=False, detail="not found in PATH", howto=howto)
    return CheckResult(name=name, ok=True, detail=p)


def check_hal_stats() -> CheckResult:
    """halStats must be present and runnable (it is the first tool called on a HAL file)."""
    base = check_executable("halStats", howto=HAL_TOOLS_HINT)
    if not base.ok:
        return base
    try:
        run_command(["halStats", "--help"], check=False, capture=True, text=True)
    except OSError as e:
        return CheckResult(
            name="halStats",
            ok=False,
            detail=f"halStats present but not usable: {e}",
            howto=HAL_TOOLS_HINT,
        )
    return base


def collect_checks() -> Dict[str, CheckResult]:
    """Run all checks and return a mapping name->result."""
    checks: Dict[str, CheckResult] = {}

    checks["python"] = check_python()
    checks["halStats"] = check_hal_stats()
    for tool in HAL_TOOLS[1:]:
        checks[tool] = check_executable(tool, howto=HAL_TOOLS_HINT)
    checks["bcftools"] = check_executable(
        "bcftools",
        howto=(
            "Only needed to apply exported AA annotations to a VCF.\n"
            "Ubuntu: sudo apt-get install -y bcftools\n"
            "Conda/mamba: mamba install -c bioconda bcftools"
        ),
    )

    return checks
