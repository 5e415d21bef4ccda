from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

from .output import bcftools_annotate_command

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>ancestralcall Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>ancestralcall Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Alignment</th><td><code>{{ alignment_path }}</code></td></tr>
      <tr><th>Positions</th><td><code>{{ positions }}</code></td></tr>
      <tr><th>Reference genome</th><td><code>{{ ref_genome }}</code></td></tr>
      <tr><th>Ancestor chain</th><td><code>{{ ancestors | join(", ") }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Positions</h3>
    <table>
      <tr><th>Total</th><td>{{ counts.positions }}</td></tr>
      <tr><th>Resolved (A/C/G/T)</th><td>{{ counts.resolved }}</td></tr>
      <tr><th>Ties (N)</th><td>{{ counts.ties }}</td></tr>
      <tr><th>No evidence (N)</th><td>{{ counts.missing }}</td></tr>
      <tr><th>No reference sequence</th><td>{{ counts.missing_reference }}</td></tr>
      <tr><th>Runtime</th><td>{{ runtime }} s</td></tr>
    </table>
  </div>
</div>

<h2>Evidence</h2>
<table>
  <tr><th>Tag</th><th>Positions</th></tr>
  {% for tag, n in evidence_counts.items() %}
  <tr><td><code>{{ tag }}</code></td><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Genome used</h2>
<table>
  <tr><th>Genome</th><th>Positions</th></tr>
  {% for name, n in ancestor_counts.items() %}
  <tr><td><code>{{ name }}</code></td><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Evidence</h3>
    <img src="{{ plots.evidence_counts }}" alt="evidence counts">
  </div>
  <div class="card">
    <h3>Genome used</h3>
    <img src="{{ plots.ancestor_usage }}" alt="ancestor usage">
  </div>
</div>
<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Ancestral alleles</h3>
    <img src="{{ plots.allele_counts }}" alt="allele counts">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ output }}</code> (per-position calls)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Next step</h2>
<p>Polarize a VCF with the calls:</p>
<pre>ancestralcall export-aa --input {{ output }} --prefix ancestral_annotation
{{ bcftools_cmd }}</pre>

<h2>Interpretation notes</h2>
<ul>
  <li><code>Direct</code> and <code>MajorityVote</code> calls come from 1:1 aligned bases in an ancestor.</li>
  <li>Paralog-based calls (<code>AncestralParalog*</code>, <code>WithinSpeciesParalog*</code>) are weaker evidence.</li>
  <li>A <code>(fallback:k)</code> suffix marks calls from a lower-priority ancestor.</li>
</ul>

<hr>
<p class="small">ancestralcall {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    alignment_path: str,
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        alignment_path=alignment_path,
        positions=run.get("positions"),
        ref_genome=run.get("ref_genome"),
        ancestors=run.get("ancestors", []),
        output=run.get("output"),
        counts=run.get("counts", {}),
        evidence_counts=run.get("evidence_counts", {}),
        ancestor_counts=run.get("ancestor_counts", {}),
        runtime=f"{float(run.get('runtime_seconds', 0.0)):.2f}",
        bcftools_cmd=bcftools_annotate_command("ancestral_annotation.tsv.gz"),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
