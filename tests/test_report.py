import json

from redaction_bench.data import AnswerRecord, Item, QAEntry, Text
from redaction_bench.grader import summarize
from redaction_bench.report import render_report, scores_table


def _items():
  return [
    Item(
      id='i',
      texts=(Text(id='o'), Text(id='v', label='aggressive')),
      qa=(QAEntry(id='a', q='q', a='A'), QAEntry(id='b', q='q', a='B', redact=True)),
      answers={'v': {'a': AnswerRecord('A', 1.0), 'b': AnswerRecord('B', 0.9)}},
    ),
    Item(id='j', texts=(Text(id='p'),)),
  ]


def test_scores_table_lists_variants():
  table = scores_table(summarize(_items(), 0.8))
  assert 'aggressive' in table
  assert '0.67' in table
  assert scores_table([]) == '(no redacted variants)'


def test_render_report_writes_artifacts(tmp_path):
  out = tmp_path / 'results'
  rows = render_report(_items(), str(out), 0.8, basename='run')
  assert len(rows) == 1
  for name in ('metrics_run.json', 'variant_f1_run.png', 'report_run.md', 'report_run.html'):
    assert (out / name).exists()
  metrics = json.loads((out / 'metrics_run.json').read_text())
  assert metrics['threshold'] == 0.8
  assert round(metrics['mean_f1'], 2) == 0.67
