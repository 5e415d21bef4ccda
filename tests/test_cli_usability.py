import json
import subprocess
import sys
from pathlib import Path

from ancestralcall.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "ancestralcall"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def _resolve_args(toy: dict, output: Path, *extra: str) -> list[str]:
    return [
        "resolve",
        "--alignment",
        toy["maf"],
        "--ref-genome",
        toy["ref_genome"],
        "--ancestors",
        toy["ancestors"],
        "--positions",
        toy["positions"],
        "--ref-fasta",
        toy["ref_fa"],
        "--output",
        str(output),
        *extra,
    ]


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "ancestralcall resolve" in cp.stdout
    assert "ancestralcall export-aa" in cp.stdout
    assert "bcftools annotate" in cp.stdout


def test_make_toy_data_prints_paths(tmp_path: Path) -> None:
    cp = _run_cli(["make-toy-data", "--outdir", str(tmp_path / "toy")])
    assert cp.returncode == 0
    summary = json.loads(cp.stdout)
    assert Path(summary["maf"]).exists()
    assert Path(summary["ref_fa"] + ".fai").exists()


def test_resolve_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    output = tmp_path / "calls.tsv"
    report_dir = tmp_path / "report"
    cp = _run_cli(_resolve_args(toy, output, "--report-dir", str(report_dir), "--dry-run"))
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert "Positions: 8" in cp.stdout
    assert not output.exists()
    assert not report_dir.exists()


def test_resolve_with_report(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    output = tmp_path / "calls.tsv"
    report_dir = tmp_path / "report"
    cp = _run_cli(_resolve_args(toy, output, "--report-dir", str(report_dir), "--progress", "2"))
    assert cp.returncode == 0, cp.stderr
    assert cp.stdout.strip() == str(output)
    assert "Processed 2/8 positions" in cp.stderr

    rows = output.read_text().splitlines()
    assert len(rows) == 8
    assert rows[0] == "chr1\t5\t6\tC\tAnc0\tT\tDirect@Anc0"

    summary = json.loads((report_dir / "summary.json").read_text())
    assert summary["counts"]["positions"] == 8
    assert (report_dir / "report.html").exists()
    assert (report_dir / "plots" / "evidence_counts.png").exists()
    assert (report_dir / "logs" / "resolve.log").exists()


def test_unknown_ancestor_is_fatal(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    output = tmp_path / "calls.tsv"
    args = _resolve_args(toy, output)
    args[args.index("--ancestors") + 1] = "Anc0,AncX"
    cp = _run_cli(args)
    assert cp.returncode == 2
    assert "GenomeNotFoundError: Target genome AncX not found" in cp.stderr
    assert not output.exists()


def test_empty_positions_is_fatal(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    empty = tmp_path / "empty.bed"
    empty.write_text("# no positions\n")
    output = tmp_path / "calls.tsv"
    args = _resolve_args(toy, output)
    args[args.index("--positions") + 1] = str(empty)
    cp = _run_cli(args)
    assert cp.returncode == 2
    assert "No valid positions found in input file" in cp.stderr
    assert not output.exists()


def test_export_aa(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    output = tmp_path / "calls.tsv"
    assert _run_cli(_resolve_args(toy, output)).returncode == 0

    cp = _run_cli(["export-aa", "--input", str(output), "--prefix", str(tmp_path / "aa")])
    assert cp.returncode == 0, cp.stderr
    assert str(tmp_path / "aa.tsv.gz") in cp.stdout
    assert "bcftools annotate" in cp.stdout
    assert (tmp_path / "aa.tsv.gz.tbi").exists()


def test_doctor_dry_run_exits_zero() -> None:
    cp = _run_cli(["doctor", "--dry-run"])
    assert cp.returncode == 0
    assert "halStats" in cp.stdout


def test_resolve_reports_run_notes_by_default(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    cp = _run_cli(_resolve_args(toy, tmp_path / "calls.tsv"))
    assert cp.returncode == 0, cp.stderr
    assert "Loaded 8 positions" in cp.stderr
    assert "Sorted 8 positions" in cp.stderr

    quiet = _run_cli(_resolve_args(toy, tmp_path / "quiet.tsv", "--quiet"))
    assert quiet.returncode == 0, quiet.stderr
    assert "Loaded 8 positions" not in quiet.stderr
    assert "Sorted" not in quiet.stderr
    assert (tmp_path / "quiet.tsv").read_text() == (tmp_path / "calls.tsv").read_text()


def test_resolve_with_orthologs_maf(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    plain = tmp_path / "plain.tsv"
    split = tmp_path / "split.tsv"
    assert _run_cli(_resolve_args(toy, plain, "-q")).returncode == 0
    cp = _run_cli(_resolve_args(toy, split, "-q", "--orthologs-maf", toy["orthologs_maf"]))
    assert cp.returncode == 0, cp.stderr
    assert split.read_text() == plain.read_text()


def test_resolve_dry_run_lists_hal_exports(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    hal = tmp_path / "aln.hal"
    hal.write_bytes(b"")
    args = _resolve_args(toy, tmp_path / "calls.tsv", "--dry-run")
    args[args.index("--alignment") + 1] = str(hal)
    cp = _run_cli(args)
    assert cp.returncode == 0, cp.stderr
    hal2maf_lines = [line for line in cp.stdout.splitlines() if "hal2maf" in line]
    assert len(hal2maf_lines) == 2
    assert sum("--noDupes" in line for line in hal2maf_lines) == 1
    # --ref-fasta makes the FASTA export unnecessary
    assert "hal2fasta" not in cp.stdout
