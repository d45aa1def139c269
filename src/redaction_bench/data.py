"""Core data structures for Redaction Bench.

Defines the schema for items, texts, Q&A probes, and per-(text, question)
answer records. All records are frozen; the store swaps whole items.
"""

import uuid
from dataclasses import dataclass, field

# text_id -> qa_id -> record
Answers = dict[str, dict[str, 'AnswerRecord']]


def new_id() -> str:
  """Fresh opaque identifier."""
  return str(uuid.uuid4())


@dataclass(frozen=True)
class Text:
  """One version of the content; index 0 of an item is the original."""

  id: str
  text: str = ''
  label: str = ''


@dataclass(frozen=True)
class QAEntry:
  """One evaluation probe.

  redact=True means a good variant must make the question unanswerable;
  redact=False means the variant must keep it answerable.
  """

  id: str
  q: str = ''
  a: str = ''
  redact: bool = False


@dataclass(frozen=True)
class AnswerRecord:
  """Oracle answer for one (text, question) pair; score is None while pending."""

  value: str
  score: float | None = None


@dataclass(frozen=True)
class Item:
  """One evaluation unit: original text, redacted variants and shared probes."""

  id: str
  texts: tuple[Text, ...]
  qa: tuple[QAEntry, ...] = ()
  policy: str = ''
  answers: Answers = field(default_factory=dict)

  @property
  def variants(self) -> tuple[Text, ...]:
    return self.texts[1:]

  def find_text(self, text_id: str) -> Text | None:
    for t in self.texts:
      if t.id == text_id:
        return t
    return None

  def find_qa(self, qa_id: str) -> QAEntry | None:
    for entry in self.qa:
      if entry.id == qa_id:
        return entry
    return None

  def answer(self, text_id: str, qa_id: str) -> AnswerRecord | None:
    return self.answers.get(text_id, {}).get(qa_id)


def blank_item(text: str = '') -> Item:
  """Item with a single original text and nothing else."""
  return Item(id=new_id(), texts=(Text(id=new_id(), text=text),))
