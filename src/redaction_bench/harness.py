"""Answering harness: runs the answer -> judge pipeline against the store.

Handles per-question fan-out, structured per-event logging, and dropping of
results whose target changed while the oracles were running.
"""

import json
import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from .client import BaseClient
from .oracles import AnsweringOracle, EqualityOracle, LLMAnswerer, LLMEquality
from .store import RecordStore


@dataclass
class RunConfig:
  """Configuration for answering runs."""

  client_name: str = 'echo'
  model_name: str | None = None
  max_workers: int = 8
  out_dir: str | None = None
  verbose: bool = True


@dataclass(slots=True)
class RunLogger:
  """Tee logger that writes JSON lines to a file and prints pretty console lines."""

  path: str | None
  enabled: bool = True
  stdout_format: str = 'auto'  # "auto" | "json" | "pretty"
  max_question: int = 96
  _fh: Any | None = field(init=False, default=None)
  _t0: float = field(init=False, default_factory=time.time)
  _line_no: int = field(init=False, default=0)
  _use_color: bool = field(init=False, default=False)
  _use_pretty: bool = field(init=False, default=False)
  _lock: Any = field(init=False, default_factory=threading.Lock)

  def __post_init__(self) -> None:
    """Initialize sinks and console mode."""
    if self.enabled and self.path:
      self._fh = open(self.path, 'a', encoding='utf-8')

    if self.stdout_format == 'pretty':
      self._use_pretty = True
    elif self.stdout_format == 'json':
      self._use_pretty = False
    else:  # auto
      self._use_pretty = sys.stdout.isatty()

    self._use_color = (
      self._use_pretty
      and sys.stdout.isatty()
      and os.environ.get('NO_COLOR') is None
      and os.environ.get('TERM') not in {'dumb', None}
    )

  # ---------- Public API ----------

  def log(self, record: dict[str, Any]) -> None:
    """Emit one record to console (pretty or JSON) and to file as JSONL."""
    if not self.enabled:
      return
    line_json = json.dumps(record, ensure_ascii=False)
    with self._lock:
      if self._fh:
        self._fh.write(line_json + '\n')
        self._fh.flush()
      if self._use_pretty:
        print(self._format_pretty_line(record))
      else:
        print(line_json)
      sys.stdout.flush()

  def close(self) -> None:
    """Close file handle if open."""
    if self._fh:
      self._fh.close()
      self._fh = None

  # ---------- Pretty formatting ----------

  def _format_pretty_line(self, r: dict[str, Any]) -> str:
    self._line_no += 1
    t_rel = self._style(self._since_start(), 'grey')
    n = self._style(f'{self._line_no:04d}', 'grey')
    q = self._clip(r.get('question', ''), self.max_question)
    where = f'{str(r.get("text_id", "-"))[:8]}/{str(r.get("qa_id", "-"))[:8]}'

    event = r.get('event', 'info')
    if event == 'answer':
      latency = r.get('latency_s')
      return '  '.join(
        [
          f'{n} {t_rel} 🤖 {where}',
          f'⏱ {latency:.3f}s' if isinstance(latency, (int, float)) else '⏱ -',
          f'❓ "{q}"',
          f'→ {self._style(str(r.get("value", "")), "cyan", bold=True)}',
        ]
      )
    if event == 'score':
      ok = bool(r.get('correct'))
      mark = self._style('✅' if ok else '❌', 'green' if ok else 'red', bold=True)
      score = '{:.2f}'.format(r.get('score', 0))
      return '  '.join(
        [
          f'{n} {t_rel} ⚖️  {mark} {where}',
          f'score {self._style(score, "magenta")}',
          f'(gold {r.get("gold", "")})',
          '[redact]' if r.get('redact') else '',
        ]
      ).rstrip()
    if event == 'oracle_error':
      return '  '.join(
        [
          f'{n} {t_rel} 💥 {self._style("ERROR", "red", bold=True)} {where}',
          f'{r.get("stage", "")}',
          f'❓ "{q}"',
          f'→ {self._style(str(r.get("error", "unknown error")), "red")}',
        ]
      )
    if event in ('dropped', 'skip'):
      reason = r.get('reason', '')
      return f'{n} {t_rel} ⏭️  {self._style(event, "yellow")} {where}  {reason}'
    return f'{n} {t_rel} ℹ️  {json.dumps(r, ensure_ascii=False)}'

  # ---------- Small helpers ----------

  def _since_start(self) -> str:
    dt = time.time() - self._t0
    if dt < 60:
      return f'+{dt:05.2f}s'
    m, s = divmod(int(dt), 60)
    return f'+{m:02d}m{s:02d}s'

  def _clip(self, text: str, width: int) -> str:
    return text if len(text) <= width else text[: max(0, width - 1)] + '…'

  def _style(self, s: str, color: str, bold: bool = False) -> str:
    """Apply ANSI color/bold if enabled."""
    if not self._use_color:
      return s
    codes = {
      'grey': '90',
      'red': '31',
      'green': '32',
      'yellow': '33',
      'magenta': '35',
      'cyan': '36',
    }
    parts = []
    if bold:
      parts.append('1')
    c = codes.get(color)
    if c:
      parts.append(c)
    if not parts:
      return s
    return f'\033[{";".join(parts)}m{s}\033[0m'


@dataclass
class PipelineOutcome:
  """What happened to one (text, question) pipeline."""

  item_id: str
  text_id: str
  qa_id: str
  value: str | None = None
  score: float | None = None
  answer_written: bool = False
  score_written: bool = False
  error: str | None = None


def _null_logger() -> RunLogger:
  return RunLogger(None, enabled=False)


def oracles_for(
  client: BaseClient, model_name: str | None = None
) -> tuple[LLMAnswerer, LLMEquality]:
  """Answering and equality oracles backed by one client."""
  return LLMAnswerer(client, model_name), LLMEquality(client, model_name)


def answer_question(
  store: RecordStore,
  answerer: AnsweringOracle,
  judge: EqualityOracle,
  item_id: str,
  text_id: str,
  qa_id: str,
  logger: RunLogger | None = None,
  threshold: float | None = None,
) -> PipelineOutcome:
  """Answer one question against one text, then score the answer.

  The answer is written before the judge is called. Either write is dropped
  by the store if its target was deleted or edited in the meantime; oracle
  failures are logged and leave the store as it was.
  """
  logger = logger or _null_logger()
  out = PipelineOutcome(item_id=item_id, text_id=text_id, qa_id=qa_id)
  base = {'item_id': item_id, 'text_id': text_id, 'qa_id': qa_id}
  item = store.get_item(item_id)
  text = item.find_text(text_id) if item else None
  entry = item.find_qa(qa_id) if item else None
  if text is None or entry is None:
    logger.log({**base, 'event': 'skip', 'reason': 'target not found'})
    return out

  t0 = time.time()
  try:
    value = answerer(text.text, entry.q)
  except Exception as e:
    # Log error; nothing is written for this pair
    out.error = str(e)
    logger.log(
      {
        **base,
        'event': 'oracle_error',
        'stage': 'answer',
        'question': entry.q,
        'error': str(e),
      }
    )
    return out
  out.value = value
  logger.log(
    {
      **base,
      'event': 'answer',
      'question': entry.q,
      'value': value,
      'latency_s': round(time.time() - t0, 3),
    }
  )
  if store.record_answer(item_id, text_id, qa_id, value, asked=entry.q) is None:
    logger.log({**base, 'event': 'dropped', 'reason': 'answer target changed'})
    return out
  out.answer_written = True

  try:
    score = judge(value, entry.a)
  except Exception as e:
    out.error = str(e)
    logger.log(
      {
        **base,
        'event': 'oracle_error',
        'stage': 'equality',
        'question': entry.q,
        'error': str(e),
      }
    )
    return out
  out.score = score
  rec = {
    **base,
    'event': 'score',
    'score': score,
    'gold': entry.a,
    'redact': entry.redact,
  }
  if threshold is not None:
    rec['correct'] = score >= threshold
  logger.log(rec)
  written = store.record_score(
    item_id, text_id, qa_id, score, value=value, gold=entry.a
  )
  if written is None:
    logger.log({**base, 'event': 'dropped', 'reason': 'score target changed'})
    return out
  out.score_written = True
  return out


def answer_all(
  store: RecordStore,
  answerer: AnsweringOracle,
  judge: EqualityOracle,
  item_id: str,
  text_id: str,
  max_workers: int = 8,
  logger: RunLogger | None = None,
  threshold: float | None = None,
) -> list[PipelineOutcome]:
  """Run the pipeline for every question of an item against one text.

  Pipelines are independent and run concurrently; results come back in
  question order.
  """
  item = store.get_item(item_id)
  if item is None or item.find_text(text_id) is None or not item.qa:
    return []
  qa_ids = [e.id for e in item.qa]
  with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
    futures = [
      pool.submit(
        answer_question,
        store,
        answerer,
        judge,
        item_id,
        text_id,
        qa_id,
        logger,
        threshold,
      )
      for qa_id in qa_ids
    ]
    return [f.result() for f in futures]
