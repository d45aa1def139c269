"""Reporting utilities for Redaction Bench.

Scores every variant in the collection, plots F1 per variant, and writes
Markdown/HTML reports.
"""

import base64
import html
import os
from collections.abc import Iterable

import pandas as pd
import matplotlib.pyplot as plt
from tabulate import tabulate

from .data import Item
from .grader import VariantScore, dump_metrics, summarize

COLUMNS = [
  'item',
  'variant',
  'label',
  'scored',
  'TP',
  'FN',
  'FP',
  'TN',
  'precision',
  'recall',
  'f1',
  'verified',
]


def _embed_image_base64(path: str) -> str:
  """Read an image file and return a `data:` URL with base64-encoded bytes."""
  with open(path, 'rb') as f:
    b64 = base64.b64encode(f.read()).decode('ascii')
  ext = os.path.splitext(path)[1].lstrip('.') or 'png'
  return f'data:image/{ext};base64,{b64}'


def _variant_name(r: VariantScore) -> str:
  return f'{r.item_index}:{r.label or r.variant_id[:8]}'


def scores_frame(rows: list[VariantScore]) -> pd.DataFrame:
  """Tabular view of variant scores, one row per variant."""
  return pd.DataFrame(
    [
      {
        'item': r.item_index,
        'variant': r.variant_id[:8],
        'label': r.label,
        'scored': f'{r.scored}/{r.questions}',
        'TP': r.tp,
        'FN': r.fn,
        'FP': r.fp,
        'TN': r.tn,
        'precision': r.precision,
        'recall': r.recall,
        'f1': r.f1,
        'verified': r.verified,
      }
      for r in rows
    ],
    columns=COLUMNS,
  )


def scores_table(rows: list[VariantScore], tablefmt: str = 'github') -> str:
  """Render variant scores as a text table."""
  if not rows:
    return '(no redacted variants)'
  df = scores_frame(rows)
  # Unverified items come back as NaN; show them as missing.
  df = df.astype(object).where(df.notna(), None)
  return tabulate(
    df,
    headers='keys',
    tablefmt=tablefmt,
    showindex=False,
    floatfmt='.2f',
    missingval='-',
  )


def render_report(
  items: Iterable[Item],
  out_dir: str,
  threshold: float,
  basename: str = 'report',
) -> list[VariantScore]:
  """Score all variants and write named report + metrics + chart + HTML.

  Files written:
    metrics_{basename}.json
    variant_f1_{basename}.png
    report_{basename}.md
    report_{basename}.html
  """
  rows = summarize(items, threshold)
  os.makedirs(out_dir, exist_ok=True)
  dump_metrics(rows, threshold, os.path.join(out_dir, f'metrics_{basename}.json'))

  # Per-variant chart
  names = [_variant_name(r) for r in rows]
  f1s = [r.f1 for r in rows]
  chart_path = os.path.join(out_dir, f'variant_f1_{basename}.png')
  fig = plt.figure()
  plt.bar(names, f1s)
  plt.ylim(0, 1)
  plt.ylabel('F1')
  plt.title(f'Redaction F1 by Variant (threshold {threshold:.2f})')
  plt.xticks(rotation=30, ha='right')
  plt.tight_layout()
  plt.savefig(chart_path, dpi=160)
  plt.close(fig)

  mean_f1 = sum(f1s) / len(f1s) if f1s else None
  mean_text = f'{mean_f1:.3f}' if mean_f1 is not None else '-'

  # Markdown report
  lines = []
  lines.append('# Redaction Bench Report\n')
  lines.append(f'**Threshold:** {threshold:.2f}  ')
  lines.append(f'**Variants:** {len(rows)}  ')
  lines.append(f'**Mean F1:** {mean_text}\n')
  lines.append('## Scores by Variant\n')
  lines.append(scores_table(rows))
  lines.append(f'\n![Variant F1](variant_f1_{basename}.png)\n')
  with open(os.path.join(out_dir, f'report_{basename}.md'), 'w') as f:
    f.write('\n'.join(lines))

  # HTML report (embed chart)
  img_data = _embed_image_base64(chart_path) if os.path.exists(chart_path) else ''
  table_html = scores_frame(rows).to_html(
    index=False, float_format='{:.2f}'.format, na_rep='-'
  )
  page = f"""
  <!doctype html>
  <html lang=\"en\"><head><meta charset=\"utf-8\"/>
  <title>Redaction Bench Report - {html.escape(basename)}</title>
  <style>
    body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;max-width:900px;margin:40px auto;padding:0 16px;}}
    header h1{{margin:0 0 8px 0;}}
    .grid{{display:grid;grid-template-columns:1fr 1fr;gap:16px;}}
    .metric{{padding:12px;border:1px solid #eee;border-radius:8px;}}
    table{{border-collapse:collapse;width:100%;}}
    th,td{{border:1px solid #ddd;padding:6px 8px;text-align:left;}}
    th{{background:#f7f7f7;}}
  </style></head>
  <body>
    <header>
      <h1>Redaction Bench Report</h1>
      <p><strong>Run:</strong> {html.escape(basename)}</p>
    </header>
    <section class=\"grid\">
      <div class=\"metric\"><h3>Threshold</h3><p>{threshold:.2f}</p></div>
      <div class=\"metric\"><h3>Mean F1</h3><p>{mean_text}</p></div>
    </section>
    <section>
      <h2>Scores by Variant</h2>
      <img alt=\"Variant F1\" src=\"{img_data}\" style=\"max-width:100%;height:auto;border:1px solid #eee;border-radius:8px;\"/>
      {table_html}
    </section>
  </body></html>
  """
  with open(
    os.path.join(out_dir, f'report_{basename}.html'), 'w', encoding='utf-8'
  ) as f:
    f.write(page)
  return rows
