from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import __version__
from .alignment import open_alignment
from .doctor import HAL_TOOLS, collect_checks
from .external import ExternalCommandError, cmd_to_str
from .hal import build_export_commands
from .output import bcftools_annotate_command, export_bcftools_annotation
from .pipeline import run_batch
from .plotting import plot_allele_counts, plot_ancestor_usage, plot_evidence_counts
from .positions import load_coordinates, require_positions
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir
from .validation import check_output_writable, parse_ancestor_chain


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _non_negative_int(v: str) -> int:
    n = int(v)
    if n < 0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative integer, got {v}")
    return n


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ExternalCommandError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ancestralcall",
        description=(
            "ancestralcall: infer the ancestral allele at reference positions from a "
            "whole-genome alignment (HAL or MAF), falling back through a chain of "
            "ancestor genomes and reference-genome paralogs."
        ),
    )
    p.add_argument("--version", action="version", version=f"ancestralcall {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny MAF, reference FASTA and positions BED for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # resolve
    # -----------------
    r = sub.add_parser(
        "resolve",
        help="Call the ancestral allele at every position of a BED-like coordinates file.",
    )
    r.add_argument(
        "--alignment",
        required=True,
        type=_path_exists,
        help="Whole-genome alignment (.hal, .maf or .maf.gz).",
    )
    r.add_argument("--ref-genome", required=True, help="Genome the coordinates refer to.")
    r.add_argument(
        "--ancestors",
        required=True,
        help="Ancestor genome, or comma-separated chain in priority order (e.g. Anc1,Anc2).",
    )
    r.add_argument(
        "--positions",
        required=True,
        type=_path_exists,
        help="Coordinates file: chrom, 0-based start, end (BED-like, .gz ok).",
    )
    r.add_argument("--output", required=True, help="Output TSV (.gz to compress).")
    r.add_argument(
        "--ref-fasta",
        default=None,
        type=_path_exists,
        help="Indexed FASTA of the reference genome (default: read from the alignment).",
    )
    r.add_argument(
        "--orthologs-maf",
        default=None,
        type=_path_exists,
        help=(
            "Orthologs-only export of the same MAF (e.g. hal2maf --noDupes); "
            "answers 1:1 queries when the main MAF keeps paralogs."
        ),
    )
    r.add_argument(
        "--cache-dir",
        default=None,
        help="Directory for HAL exports; reused across runs (default: temporary).",
    )
    r.add_argument(
        "--no-sort",
        action="store_true",
        help="Process positions in input order instead of sorted by chrom/start.",
    )
    r.add_argument(
        "--progress",
        type=_non_negative_int,
        default=0,
        metavar="N",
        help="Log progress every N positions (0 = off).",
    )
    r.add_argument("--progress-bar", action="store_true", help="Show a progress bar.")
    r.add_argument(
        "--report-dir",
        default=None,
        help="Write summary.json, plots, report.html and logs into this directory.",
    )
    r.add_argument("--summary-json", default=None, help="Write the run summary JSON here.")
    r.add_argument("--dry-run", action="store_true", help="Validate inputs and print the plan.")
    r.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")
    r.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (default also logs run notes).",
    )

    # -----------------
    # export-aa
    # -----------------
    e = sub.add_parser(
        "export-aa",
        help="Convert results into a bgzipped, tabix-indexed AA table for bcftools annotate.",
    )
    e.add_argument("--input", required=True, type=_path_exists, help="Results TSV from resolve.")
    e.add_argument("--prefix", required=True, help="Output prefix (writes <prefix>.tsv.gz + .tbi).")
    e.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # doctor
    # -----------------
    d = sub.add_parser(
        "doctor",
        help="Check your environment for the HAL tools (halStats/hal2maf/hal2fasta).",
    )
    d.add_argument("--dry-run", action="store_true", help="Print checks without exiting nonzero.")
    d.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "ancestralcall quickstart (copy/paste):",
        "",
        "1) HAL alignment, single ancestor:",
        "   ancestralcall resolve \\",
        "     --alignment cactus.hal \\",
        "     --ref-genome hg38 \\",
        "     --ancestors Anc0 \\",
        "     --positions sites.bed \\",
        "     --output ancestral.tsv",
        "",
        "2) MAF alignment, ancestor chain with a report:",
        "   ancestralcall resolve \\",
        "     --alignment alignment.maf.gz \\",
        "     --ref-genome hg38 \\",
        "     --ancestors Anc0,Anc1,Anc2 \\",
        "     --positions sites.bed \\",
        "     --output ancestral.tsv \\",
        "     --report-dir results/",
        "   Outputs: ancestral.tsv, results/report.html, results/summary.json",
        "",
        "3) Annotate a VCF with the calls:",
        "   ancestralcall export-aa --input ancestral.tsv --prefix ancestral_annotation",
        "   " + bcftools_annotate_command("ancestral_annotation.tsv.gz"),
        "",
        "Tip: try it on toy data first: ancestralcall make-toy-data --outdir toy/",
        "Tip: use --dry-run to validate inputs and print the exact external commands.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    try:
        summary = make_toy_data(outdir=outdir)
    except Exception as e:
        return _handle_error(e, log_path=None)
    print(json.dumps(summary, indent=2))
    return 0


def _print_command_list(cmds: Sequence[Sequence[str]]) -> None:
    for cmd in cmds:
        print("  " + cmd_to_str(cmd))


def _resolve_dry_run(args: argparse.Namespace, report_dir: Optional[Path]) -> int:
    chain = parse_ancestor_chain(args.ancestors)
    records = load_coordinates(args.positions)
    require_positions(records)
    check_output_writable(args.output)

    print("Dry-run: inputs look OK.")
    print(f"Positions: {len(records)}")
    print(f"Reference genome: {args.ref_genome}")
    print(f"Ancestor chain: {', '.join(chain.names)}")

    if args.alignment.lower().endswith(".hal"):
        cache = Path(args.cache_dir) if args.cache_dir else Path("<tmpdir>")
        cmds = build_export_commands(
            hal_path=args.alignment,
            ref_genome=args.ref_genome,
            targets=chain.names,
            out_maf=cache / "export.maf",
            out_orthologs_maf=cache / "export.orthologs.maf",
            out_fasta=cache / "reference.fa",
        )
        print("Planned commands:")
        planned = [
            ["halStats", "--genomes", args.alignment],
            cmds["cmd_hal2maf_orthologs"],
            cmds["cmd_hal2maf"],
        ]
        if args.ref_fasta is None:
            planned.append(cmds["cmd_hal2fasta"])
        _print_command_list(planned)
    else:
        print("No external commands required for MAF input.")

    print("Planned outputs:")
    print(f"  results -> {args.output}")
    if args.summary_json:
        print(f"  summary.json -> {args.summary_json}")
    if report_dir is not None:
        print(f"  report.html -> {report_dir / 'report.html'}")
        print(f"  summary.json -> {report_dir / 'summary.json'}")
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    report_dir = Path(args.report_dir).expanduser().resolve() if args.report_dir else None
    log_path = None
    if report_dir is not None and not args.dry_run:
        log_path = _log_path(report_dir, "resolve.log")

    # Run notes (positions loaded, sorting) are shown unless --quiet.
    verbosity = 0 if args.quiet else max(int(args.verbose), 1)
    if args.progress > 0:
        verbosity = max(verbosity, 1)
    _setup_logging(verbosity, logfile=log_path)

    logger = logging.getLogger("ancestralcall")
    logger.info("ancestralcall %s", __version__)

    try:
        if args.dry_run:
            return _resolve_dry_run(args, report_dir)

        chain = parse_ancestor_chain(args.ancestors)
        alignment = open_alignment(
            args.alignment,
            ref_genome=args.ref_genome,
            targets=chain.names,
            reference_fasta=args.ref_fasta,
            cache_dir=args.cache_dir,
            orthologs_maf=args.orthologs_maf,
        )

        summary_json = args.summary_json
        if summary_json is None and report_dir is not None:
            summary_json = ensure_outdir(report_dir) / "summary.json"

        run = run_batch(
            alignment=alignment,
            ref_genome=args.ref_genome,
            ancestors=chain,
            positions=args.positions,
            output=args.output,
            sort=not bool(args.no_sort),
            progress_interval=int(args.progress),
            progress_bar=bool(args.progress_bar),
            summary_json=summary_json,
        )

        if report_dir is not None:
            plots_dir = report_dir / "plots"
            plots_dir.mkdir(parents=True, exist_ok=True)

            evidence_png = plots_dir / "evidence_counts.png"
            ancestors_png = plots_dir / "ancestor_usage.png"
            alleles_png = plots_dir / "allele_counts.png"

            plot_evidence_counts(evidence_counts=run["evidence_counts"], out_png=evidence_png)
            plot_ancestor_usage(ancestor_counts=run["ancestor_counts"], out_png=ancestors_png)
            plot_allele_counts(allele_counts=run["allele_counts"], out_png=alleles_png)

            plots_rel = {
                "evidence_counts": str(Path("plots") / evidence_png.name),
                "ancestor_usage": str(Path("plots") / ancestors_png.name),
                "allele_counts": str(Path("plots") / alleles_png.name),
            }
            report_path = render_report(
                outdir=report_dir,
                version=__version__,
                run=run,
                alignment_path=args.alignment,
                plots=plots_rel,
            )
            logger.info("Report written: %s", report_path)

        print(str(args.output))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_export_aa(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)
    try:
        gz = export_bcftools_annotation(args.input, args.prefix)
    except Exception as e:
        return _handle_error(e, log_path=None)

    print(str(gz))
    print("Annotate a VCF with:")
    print("  " + bcftools_annotate_command(gz))
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    checks = collect_checks()

    # Human-readable output
    names = ["python", *HAL_TOOLS, "bcftools"]
    lines = []
    ok_all = True
    for name in names:
        r = checks[name]
        status = "OK" if r.ok else "MISSING"
        lines.append(f"{name:9s} : {status:7s}  {r.detail}")
        if not r.ok:
            ok_all = False

    print("\n".join(lines))

    # Guidance
    for name in names[1:]:
        r = checks[name]
        if not r.ok and r.howto:
            print("\n---")
            print(f"How to install/fix '{name}':")
            print(r.howto)

    if args.dry_run:
        return 0
    return 0 if ok_all else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "resolve":
        return cmd_resolve(args)
    if args.cmd == "export-aa":
        return cmd_export_aa(args)
    if args.cmd == "doctor":
        return cmd_doctor(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
