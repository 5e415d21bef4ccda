"""Running the HAL command line tools (halStats, hal2maf, hal2fasta).

HAL input is read by exporting it with these tools; the HAL C++ library is not
linked. A missing executable raises FileNotFoundError carrying
:data:`HAL_TOOLS_HINT`, and a failing command raises
:class:`ExternalCommandError` with the tail of its stderr.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import textwrap
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


HAL_TOOLS_HINT = (
    "The HAL tools are distributed with Cactus and on bioconda.\n"
    "Conda/mamba: mamba install -c bioconda hal\n"
    "Alternatively convert the alignment to MAF yourself and pass the .maf file."
)


class ExternalCommandError(RuntimeError):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = int(returncode)
        self.stdout = stdout
        self.stderr = stderr


def cmd_to_str(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


def ensure_executable_in_path(exe: str, *, hint: Optional[str] = None) -> None:
    """Ensure an executable exists in PATH.

    Parameters
    ----------
    exe:
        Name of the executable to find.
    hint:
        Optional message shown if the executable is missing.
    """
    from shutil import which

    if which(exe) is None:
        msg = f"Required executable '{exe}' was not found in your PATH."
        if hint:
            msg += "\n\n" + hint
        raise FileNotFoundError(msg)


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
) -> subprocess.CompletedProcess:
    """Run a command and return the CompletedProcess.

    If ``check`` is True, raise ``ExternalCommandError`` on non-zero exit.
    """
    if cwd is not None:
        cwd = str(Path(cwd))

    env_merged: Optional[Dict[str, str]]
    if env is None:
        env_merged = None
    else:
        env_merged = dict(os.environ)
        env_merged.update({str(k): str(v) for k, v in env.items()})

    logger.debug("Running command: %s", cmd_to_str(cmd))

    cp = subprocess.run(
        list(map(str, cmd)),
        cwd=cwd,
        env=env_merged,
        check=False,
        stdout=subprocess.PIPE if capture else None,
        stderr=subprocess.PIPE if capture else None,
        text=text,
    )

    if check and cp.returncode != 0:
        raise ExternalCommandError(
            message=textwrap.dedent(
                f"""
                External command failed (exit code {cp.returncode}).

                Command:
                  {cmd_to_str(cmd)}

                STDERR (tail):
                  {(_tail(cp.stderr) if isinstance(cp.stderr, str) else str(cp.stderr))}
                """
            ).strip(),
            cmd=cmd,
            returncode=cp.returncode,
            stdout=cp.stdout if isinstance(cp.stdout, str) else None,
            stderr=cp.stderr if isinstance(cp.stderr, str) else None,
        )

    return cp


def _tail(s: Optional[str], n: int = 3000) -> str:
    if not s:
        return "(empty)"
    s = str(s)
    if len(s) <= n:
        return s
    return "..." + s[-n:]
