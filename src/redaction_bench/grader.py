"""Grading utilities for Redaction Bench.

Provides the exact-match normalizer, the per-variant confusion matrix and
F1 score, and collection-level metrics for reports.
"""

import json
import re
from dataclasses import asdict, dataclass
from collections.abc import Iterable

from .config import DEFAULT_THRESHOLD
from .data import Item

_TRAILING_PERIODS = re.compile(r'\.+$')


def _normalize(s: str) -> str:
  """Drop spaces and trailing periods, lowercase."""
  return _TRAILING_PERIODS.sub('', s.replace(' ', '')).lower()


def is_exact_match(value: str, gold: str) -> bool:
  """Return True if value equals gold ignoring case, spaces and trailing dots."""
  return _normalize(value) == _normalize(gold)


@dataclass
class Confusion:
  """Confusion counts for one variant.

  Positives are questions that should stay answerable (redact=False).
  """

  tp: int = 0
  fn: int = 0
  fp: int = 0
  tn: int = 0

  @property
  def scored(self) -> int:
    return self.tp + self.fn + self.fp + self.tn

  @property
  def precision(self) -> float:
    # No redact-flagged leak and no positive hit: vacuously perfect.
    if self.tp + self.fp == 0:
      return 1.0
    return self.tp / (self.tp + self.fp)

  @property
  def recall(self) -> float:
    if self.tp + self.fn == 0:
      return 1.0
    return self.tp / (self.tp + self.fn)

  @property
  def f1(self) -> float:
    p, r = self.precision, self.recall
    if p + r == 0:
      return 0.0
    return 2 * p * r / (p + r)


def confusion(item: Item, variant_text_id: str, threshold: float) -> Confusion:
  """Classify every scored answer for a variant; pending answers are skipped.

  The threshold is used as given: values above 1 (or NaN) make nothing
  correct.
  """
  c = Confusion()
  bucket = item.answers.get(variant_text_id, {})
  for entry in item.qa:
    rec = bucket.get(entry.id)
    if rec is None or rec.score is None:
      continue
    correct = rec.score >= threshold
    if not entry.redact and correct:
      c.tp += 1
    elif not entry.redact:
      c.fn += 1
    elif correct:
      c.fp += 1
    else:
      c.tn += 1
  return c


def score(
  item: Item, variant_text_id: str, threshold: float = DEFAULT_THRESHOLD
) -> float:
  """F1 of a redacted variant against the item's gold Q&A set."""
  return confusion(item, variant_text_id, threshold).f1


def verified_share(item: Item, threshold: float = DEFAULT_THRESHOLD) -> float | None:
  """Share of questions answered correctly from the original text.

  Returns None when nothing has been scored against the original yet.
  """
  bucket = item.answers.get(item.texts[0].id, {})
  scores = [
    bucket[e.id].score
    for e in item.qa
    if e.id in bucket and bucket[e.id].score is not None
  ]
  if not scores:
    return None
  return sum(1 for s in scores if s >= threshold) / len(scores)


@dataclass
class VariantScore:
  """One row of collection-level metrics."""

  item_index: int
  item_id: str
  variant_id: str
  label: str
  questions: int
  scored: int
  tp: int
  fn: int
  fp: int
  tn: int
  precision: float
  recall: float
  f1: float
  verified: float | None


def summarize(
  items: Iterable[Item], threshold: float = DEFAULT_THRESHOLD
) -> list[VariantScore]:
  """Score every redacted variant of every item, in store order."""
  rows: list[VariantScore] = []
  for idx, item in enumerate(items, start=1):
    verified = verified_share(item, threshold)
    for variant in item.variants:
      c = confusion(item, variant.id, threshold)
      rows.append(
        VariantScore(
          item_index=idx,
          item_id=item.id,
          variant_id=variant.id,
          label=variant.label,
          questions=len(item.qa),
          scored=c.scored,
          tp=c.tp,
          fn=c.fn,
          fp=c.fp,
          tn=c.tn,
          precision=c.precision,
          recall=c.recall,
          f1=c.f1,
          verified=verified,
        )
      )
  return rows


def dump_metrics(rows: list[VariantScore], threshold: float, path: str) -> None:
  """Write metrics JSON to disk."""
  f1s = [r.f1 for r in rows]
  with open(path, 'w') as f:
    json.dump(
      {
        'threshold': threshold,
        'variants': len(rows),
        'mean_f1': sum(f1s) / len(f1s) if f1s else None,
        'rows': [asdict(r) for r in rows],
      },
      f,
      indent=2,
    )
