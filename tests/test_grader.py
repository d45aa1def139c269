import math

from redaction_bench.data import AnswerRecord, Item, QAEntry, Text
from redaction_bench.grader import (
  confusion,
  is_exact_match,
  score,
  summarize,
  verified_share,
)


def _item(b_score=0.0, answers=None):
  qa = (
    QAEntry(id='a', q='Where is he from?', a='Minnesota', redact=False),
    QAEntry(id='b', q='Where does he live?', a='Minnesota', redact=True),
  )
  if answers is None:
    answers = {
      'v': {
        'a': AnswerRecord(value='Minnesota', score=1.0),
        'b': AnswerRecord(value="I don't know", score=b_score),
      }
    }
  return Item(
    id='i', texts=(Text(id='o', text='orig'), Text(id='v', text='red')),
    qa=qa, answers=answers,
  )


def test_exact_match_norm():
  assert is_exact_match('Minnesota', 'minnesota.')
  assert is_exact_match('New York...', 'newyork')
  assert not is_exact_match('Minnesota', 'Tennessee')


def test_perfect_redaction():
  c = confusion(_item(), 'v', 0.8)
  assert (c.tp, c.fn, c.fp, c.tn) == (1, 0, 0, 1)
  assert round(score(_item(), 'v', 0.8), 2) == 1.00


def test_leaked_redacted_fact():
  item = _item(b_score=0.9)
  c = confusion(item, 'v', 0.8)
  assert c.fp == 1
  assert c.precision == 0.5
  assert c.recall == 1.0
  assert round(score(item, 'v', 0.8), 2) == 0.67


def test_all_pending_scores_one():
  item = _item(answers={'v': {'a': AnswerRecord(value='Minnesota')}})
  assert round(score(item, 'v', 0.8), 2) == 1.00
  assert confusion(item, 'v', 0.8).scored == 0
  assert score(_item(answers={}), 'v') == 1.0


def test_no_positive_hits_is_zero():
  item = _item(
    answers={
      'v': {
        'a': AnswerRecord(value='?', score=0.0),
        'b': AnswerRecord(value='Minnesota', score=1.0),
      }
    }
  )
  assert score(item, 'v', 0.8) == 0.0


def test_threshold_sweep_only_moves_correct_to_incorrect():
  item = _item(b_score=0.5)
  prev = None
  for t in [0.0, 0.25, 0.5, 0.75, 1.0, 1.2]:
    c = confusion(item, 'v', t)
    correct = c.tp + c.fp
    if prev is not None:
      assert correct <= prev
    prev = correct
  # Out-of-range thresholds are taken literally.
  c = confusion(item, 'v', 1.2)
  assert c.tp == 0 and c.fp == 0
  c = confusion(item, 'v', math.nan)
  assert c.tp == 0 and c.fp == 0


def test_verified_share_and_summary():
  item = _item()
  assert verified_share(item) is None
  item = _item(
    answers={
      'o': {'a': AnswerRecord(value='x', score=1.0), 'b': AnswerRecord(value='y', score=0.2)},
      'v': {'a': AnswerRecord(value='Minnesota', score=1.0)},
    }
  )
  assert verified_share(item, 0.8) == 0.5
  rows = summarize([item], 0.8)
  assert len(rows) == 1
  assert rows[0].variant_id == 'v'
  assert rows[0].scored == 1
  assert rows[0].verified == 0.5
