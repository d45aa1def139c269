"""Line-delimited Item records: validating parse, import/export, storage port.

Each line holds one Item object. Parsing is strict about what identifies a
record (item id, question ids, answer values) and repairs the rest
deterministically so the same file always loads to the same items.
"""

import hashlib
import json
import math
import os
from collections.abc import Iterable
from typing import Any, Protocol

from .data import AnswerRecord, Item, QAEntry, Text


class RecordError(ValueError):
  """Raised when an Item record cannot be parsed into the strict shape."""


def _stable_text_id(item_id: str, index: int) -> str:
  """Deterministic id for a text that was stored without one."""
  raw = f'{item_id}|text|{index}'.encode('utf-8')
  return hashlib.sha1(raw).hexdigest()[:16]


def _require_str(obj: dict, key: str, where: str) -> str:
  val = obj.get(key)
  if not isinstance(val, str):
    raise RecordError(f'{where}: "{key}" must be a string')
  return val


def _parse_texts(item_id: str, raw: Any, where: str) -> tuple[Text, ...]:
  if raw is None:
    raw = []
  if not isinstance(raw, list):
    raise RecordError(f'{where}: "texts" must be a list')
  texts: list[Text] = []
  for i, t in enumerate(raw):
    if not isinstance(t, dict):
      raise RecordError(f'{where}: texts[{i}] must be an object')
    tid = t.get('id') or _stable_text_id(item_id, i)
    texts.append(
      Text(
        id=str(tid),
        text=_require_str(t, 'text', f'{where} texts[{i}]'),
        label=str(t.get('label') or ''),
      )
    )
  if not texts:
    texts.append(Text(id=_stable_text_id(item_id, 0)))
  return tuple(texts)


def _parse_qa(raw: Any, where: str) -> tuple[QAEntry, ...]:
  if raw is None:
    raw = []
  if not isinstance(raw, list):
    raise RecordError(f'{where}: "qa" must be a list')
  entries: list[QAEntry] = []
  for i, e in enumerate(raw):
    if not isinstance(e, dict):
      raise RecordError(f'{where}: qa[{i}] must be an object')
    qid = e.get('id')
    if not qid:
      raise RecordError(f'{where}: qa[{i}] is missing an id')
    redact = e.get('redact', False)
    if not isinstance(redact, bool):
      raise RecordError(f'{where} qa[{i}]: "redact" must be a boolean')
    entries.append(
      QAEntry(
        id=str(qid),
        q=_require_str(e, 'q', f'{where} qa[{i}]'),
        a=_require_str(e, 'a', f'{where} qa[{i}]'),
        redact=redact,
      )
    )
  return tuple(entries)


def _parse_score(raw: Any, where: str) -> float | None:
  if raw is None:
    return None
  if isinstance(raw, bool) or not isinstance(raw, (int, float)):
    raise RecordError(f'{where}: score must be a number')
  score = float(raw)
  if not math.isfinite(score) or not 0.0 <= score <= 1.0:
    raise RecordError(f'{where}: score {raw!r} outside [0, 1]')
  return score


def _parse_answers(
  raw: Any, texts: tuple[Text, ...], qa: tuple[QAEntry, ...], where: str
) -> dict[str, dict[str, AnswerRecord]]:
  if raw is None:
    return {}
  if not isinstance(raw, dict):
    raise RecordError(f'{where}: "answers" must be an object')
  text_ids = {t.id for t in texts}
  qa_ids = {e.id for e in qa}
  answers: dict[str, dict[str, AnswerRecord]] = {}
  for text_id, bucket in raw.items():
    # Orphaned buckets and records are dropped.
    if text_id not in text_ids or not isinstance(bucket, dict):
      continue
    kept: dict[str, AnswerRecord] = {}
    for qa_id, rec in bucket.items():
      if qa_id not in qa_ids or not isinstance(rec, dict):
        continue
      if not isinstance(rec.get('value'), str):
        continue
      kept[qa_id] = AnswerRecord(
        value=rec['value'],
        score=_parse_score(rec.get('score'), f'{where} answers[{text_id}][{qa_id}]'),
      )
    if kept:
      answers[text_id] = kept
  return answers


def parse_item(obj: Any, where: str = 'record') -> Item:
  """Validate one decoded record and return a strict Item.

  Raises:
    RecordError: if the record misses an identifier or has malformed fields.
  """
  if not isinstance(obj, dict):
    raise RecordError(f'{where}: expected an object')
  item_id = obj.get('id')
  if not item_id or not isinstance(item_id, str):
    raise RecordError(f'{where}: missing item id')
  texts = _parse_texts(item_id, obj.get('texts'), where)
  qa = _parse_qa(obj.get('qa'), where)
  if len({t.id for t in texts}) != len(texts):
    raise RecordError(f'{where}: duplicate text ids')
  if len({e.id for e in qa}) != len(qa):
    raise RecordError(f'{where}: duplicate qa ids')
  policy = obj.get('policy') or ''
  if not isinstance(policy, str):
    raise RecordError(f'{where}: "policy" must be a string')
  raw_answers = obj.get('answers')
  raw_texts = obj.get('texts') or []
  if (
    isinstance(raw_answers, dict)
    and 'undefined' in raw_answers
    and not (raw_texts and raw_texts[0].get('id'))
  ):
    # Blank originals are exported without an id; their answers land
    # under the key "undefined".
    raw_answers = dict(raw_answers)
    raw_answers[texts[0].id] = raw_answers.pop('undefined')
  return Item(
    id=item_id,
    texts=texts,
    qa=qa,
    policy=policy,
    answers=_parse_answers(raw_answers, texts, qa, where),
  )


def item_to_dict(item: Item) -> dict[str, Any]:
  """Serialize an Item to its record shape."""
  answers: dict[str, dict[str, dict[str, Any]]] = {}
  for text_id, bucket in item.answers.items():
    answers[text_id] = {}
    for qa_id, rec in bucket.items():
      row: dict[str, Any] = {'value': rec.value}
      if rec.score is not None:
        row['score'] = rec.score
      answers[text_id][qa_id] = row
  return {
    'id': item.id,
    'texts': [{'id': t.id, 'text': t.text, 'label': t.label} for t in item.texts],
    'qa': [
      {'id': e.id, 'q': e.q, 'a': e.a, 'redact': e.redact} for e in item.qa
    ],
    'policy': item.policy,
    'answers': answers,
  }


def parse_lines(lines: Iterable[str], source: str = '<input>') -> list[Item]:
  """Parse line-delimited Item records, skipping blank lines."""
  items: list[Item] = []
  for n, line in enumerate(lines, start=1):
    if not line.strip():
      continue
    where = f'{source}:{n}'
    try:
      obj = json.loads(line)
    except json.JSONDecodeError as e:
      raise RecordError(f'{where}: invalid JSON ({e.msg})') from e
    items.append(parse_item(obj, where))
  return items


def load_items(path: str) -> list[Item]:
  """Load Items from a JSONL file."""
  with open(path, 'r', encoding='utf-8') as f:
    return parse_lines(f, source=path)


def dump_items(items: Iterable[Item], path: str) -> None:
  """Write Items to a JSONL file, one per line, in the given order."""
  tmp = f'{path}.tmp'
  with open(tmp, 'w', encoding='utf-8') as f:
    for item in items:
      f.write(json.dumps(item_to_dict(item), ensure_ascii=False) + '\n')
  os.replace(tmp, path)


# -----------------------
# Persistence port
# -----------------------


class Storage(Protocol):
  """Where a RecordStore loads from and saves to."""

  def load(self) -> list[Item]: ...

  def save(self, items: list[Item]) -> None: ...


class JsonlStorage:
  """Persist the whole collection as one JSONL file."""

  def __init__(self, path: str) -> None:
    self.path = path

  def load(self) -> list[Item]:
    if not os.path.exists(self.path):
      return []
    return load_items(self.path)

  def save(self, items: list[Item]) -> None:
    parent = os.path.dirname(self.path)
    if parent:
      os.makedirs(parent, exist_ok=True)
    dump_items(items, self.path)
