from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>contigdist report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
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

<h1>contigdist report</h1>
<p class="small">contigdist {{ version }} &middot; generated {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Histogram</th><td><code>{{ run.hist_path }}</code></td></tr>
      <tr><th>Alignments</th><td><code>{{ run.alignments_path }}</code></td></tr>
      <tr><th>Contigs in header</th><td>{{ run.num_contigs }}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Parameters</h3>
    <table>
      <tr><th>k</th><td>{{ run.k }}</td></tr>
      <tr><th>Minimum pairs</th><td>{{ run.min_pairs }}</td></tr>
      <tr><th>Seed length</th><td>{{ run.seed_length }}</td></tr>
      <tr><th>Minimum MAPQ</th><td>{{ run.min_mapq }}</td></tr>
      <tr><th>Output format</th><td>{{ run.format }}</td></tr>
      <tr><th>Threads</th><td>{{ run.threads }}</td></tr>
    </table>
  </div>
</div>

<h2>Library</h2>
<table>
  <tr><th>Orientation</th><td>{{ run.orientation }}</td></tr>
  <tr><th>FR pairs in histogram</th><td>{{ run.num_fr }}</td></tr>
  <tr><th>RF pairs in histogram</th><td>{{ run.num_rf }}</td></tr>
  <tr><th>Mean fragment size</th><td>{{ "%.1f"|format(run.distribution.mean) }}</td></tr>
  <tr><th>Median</th><td>{{ run.distribution.median }}</td></tr>
  <tr><th>Standard deviation</th><td>{{ "%.1f"|format(run.distribution.sd) }}</td></tr>
  <tr><th>Range</th><td>{{ run.distribution.min }} &ndash; {{ run.distribution.max }}</td></tr>
</table>

<h2>Alignments</h2>
<table>
  <tr><th>Records read</th><td>{{ counts.records_total }}</td></tr>
  <tr><th>Records used</th><td>{{ counts.records_used }}</td></tr>
  <tr><th>Unmapped</th><td>{{ counts.records_unmapped }}</td></tr>
  <tr><th>Unpaired</th><td>{{ counts.records_unpaired }}</td></tr>
  <tr><th>Mate unmapped</th><td>{{ counts.records_mate_unmapped }}</td></tr>
  <tr><th>Mate on same contig</th><td>{{ counts.records_same_contig }}</td></tr>
  <tr><th>Below minimum MAPQ</th><td>{{ counts.records_low_mapq }}</td></tr>
</table>

<h2>Estimates</h2>
<table>
  <tr><th>Anchor contigs</th><td>{{ counts.batches_total }}</td></tr>
  <tr><th>Skipped (shorter than seed length)</th><td>{{ counts.batches_skipped_short }}</td></tr>
  <tr><th>Links written</th><td>{{ counts.links_written }}</td></tr>
  <tr><th>Links below minimum pairs</th><td>{{ counts.links_weak }}</td></tr>
  <tr><th>Runtime (s)</th><td>{{ "%.1f"|format(run.runtime_seconds) }}</td></tr>
</table>

{% if plot %}
<h2>Fragment sizes</h2>
<img src="{{ plot }}" alt="fragment-size distribution">
{% endif %}

<h2>Outputs</h2>
<ul>
  <li><code>{{ out_path }}</code> (distance estimates)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

</body>
</html>
"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    out_path: str,
    plot: Optional[str] = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        counts=run.get("counts", {}),
        out_path=out_path,
        plot=plot,
    )

    report_path = outdir / "report.html"
    report_path.write_text(html, encoding="utf-8")
    return report_path
