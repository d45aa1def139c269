"""In-memory Record Store with cascading invalidation.

Every mutation looks up its target item, builds a replacement item and swaps
it in under a lock, so readers only ever see whole items. Operations whose
item, text or question id does not resolve do nothing: UI edits and
in-flight oracle calls routinely race with deletions.
"""

import dataclasses
import math
import threading
from collections.abc import Callable, Iterable

from .data import (
  AnswerRecord,
  Answers,
  Item,
  QAEntry,
  Text,
  blank_item,
  new_id,
)
from .records import RecordError, Storage


def _drop_qa_answers(answers: Answers, qa_id: str) -> Answers:
  """Copy of answers without any record for qa_id."""
  out: Answers = {}
  for text_id, bucket in answers.items():
    kept = {k: v for k, v in bucket.items() if k != qa_id}
    if kept:
      out[text_id] = kept
  return out


def _with_record(
  answers: Answers, text_id: str, qa_id: str, rec: AnswerRecord
) -> Answers:
  out = dict(answers)
  out[text_id] = {**answers.get(text_id, {}), qa_id: rec}
  return out


class RecordStore:
  """Ordered collection of Items plus the current selection.

  The store is never empty. If a storage port is attached, the full
  collection is saved after each mutation.
  """

  def __init__(
    self, items: Iterable[Item] | None = None, storage: Storage | None = None
  ) -> None:
    self._lock = threading.RLock()
    self._items: list[Item] = list(items or [])
    self._storage = storage
    if not self._items:
      self._items.append(blank_item())
    self.current_item_id: str = self._items[0].id
    self.current_variant_id: str | None = None
    self._select_first_variant(self._items[0])

  @classmethod
  def open(cls, storage: Storage) -> 'RecordStore':
    """Load a store through a persistence port."""
    return cls(storage.load(), storage=storage)

  # ---------- Read side ----------

  @property
  def items(self) -> list[Item]:
    with self._lock:
      return list(self._items)

  def get_item(self, item_id: str) -> Item | None:
    with self._lock:
      for item in self._items:
        if item.id == item_id:
          return item
    return None

  @property
  def current_item(self) -> Item:
    return self.get_item(self.current_item_id) or self._items[0]

  def select_item(self, item_id: str) -> None:
    with self._lock:
      item = self.get_item(item_id)
      if item is None:
        return
      self.current_item_id = item.id
      self._select_first_variant(item)

  def select_variant(self, text_id: str) -> None:
    with self._lock:
      item = self.current_item
      if item.find_text(text_id) is not None and item.texts[0].id != text_id:
        self.current_variant_id = text_id

  def export_items(self) -> list[Item]:
    """Items in store order, for bulk export."""
    return self.items

  # ---------- Internals ----------

  def _select_first_variant(self, item: Item) -> None:
    self.current_variant_id = item.texts[1].id if len(item.texts) > 1 else None

  def _save(self) -> None:
    if self._storage is not None:
      self._storage.save(list(self._items))

  def _mutate(self, item_id: str, fn: Callable[[Item], Item | None]) -> bool:
    """Replace item_id with fn(item); False if unresolved or fn declines."""
    with self._lock:
      for i, item in enumerate(self._items):
        if item.id != item_id:
          continue
        updated = fn(item)
        if updated is None:
          return False
        self._items[i] = updated
        self._save()
        return True
    return False

  def _reset_to_blank(self) -> Item:
    item = blank_item()
    self._items = [item]
    self.current_item_id = item.id
    self.current_variant_id = None
    self._save()
    return item

  # ---------- Items ----------

  def add_item(self, text: str = '') -> Item:
    """Append an Item with one original text; it becomes current."""
    with self._lock:
      item = blank_item(text)
      self._items.append(item)
      self.current_item_id = item.id
      self.current_variant_id = None
      self._save()
      return item

  def import_items(self, items: Iterable[Item]) -> list[Item]:
    """Append parsed Items in order.

    Raises:
      RecordError: if an incoming id collides with an existing or earlier
        incoming item; nothing is appended in that case.
    """
    incoming = list(items)
    with self._lock:
      seen = {item.id for item in self._items}
      for item in incoming:
        if item.id in seen:
          raise RecordError(f'duplicate item id {item.id}')
        seen.add(item.id)
      self._items.extend(incoming)
      self._save()
    return incoming

  def delete_item(self, item_id: str) -> None:
    with self._lock:
      idx = next(
        (i for i, item in enumerate(self._items) if item.id == item_id), None
      )
      if idx is None:
        return
      if len(self._items) == 1:
        self._reset_to_blank()
        return
      del self._items[idx]
      if self.current_item_id == item_id:
        self.current_item_id = self._items[0].id
        self._select_first_variant(self._items[0])
      self._save()

  def delete_all_items(self) -> Item:
    with self._lock:
      return self._reset_to_blank()

  def set_original_text(self, item_id: str, text: str) -> None:
    """Replace the original's content in place.

    The original keeps its id, so answers recorded against it stay.
    """

    def fn(item: Item) -> Item:
      original = dataclasses.replace(item.texts[0], text=text)
      return dataclasses.replace(item, texts=(original, *item.texts[1:]))

    self._mutate(item_id, fn)

  def set_policy(self, item_id: str, policy: str) -> None:
    self._mutate(item_id, lambda item: dataclasses.replace(item, policy=policy))

  # ---------- Texts ----------

  def add_redacted_variant(
    self, item_id: str, text: str = '', label: str = ''
  ) -> Text | None:
    """Append a variant; it becomes the current variant of the current item."""
    variant = Text(id=new_id(), text=text, label=label)

    def fn(item: Item) -> Item:
      return dataclasses.replace(item, texts=(*item.texts, variant))

    with self._lock:
      if not self._mutate(item_id, fn):
        return None
      self.current_item_id = item_id
      self.current_variant_id = variant.id
    return variant

  def _update_text(self, item_id: str, text_id: str, **changes: str) -> None:
    def fn(item: Item) -> Item | None:
      if item.find_text(text_id) is None:
        return None
      texts = tuple(
        dataclasses.replace(t, **changes) if t.id == text_id else t
        for t in item.texts
      )
      return dataclasses.replace(item, texts=texts)

    self._mutate(item_id, fn)

  def set_variant_text(self, item_id: str, text_id: str, text: str) -> None:
    self._update_text(item_id, text_id, text=text)

  def set_variant_label(self, item_id: str, text_id: str, label: str) -> None:
    self._update_text(item_id, text_id, label=label)

  def delete_variant(self, item_id: str, text_id: str) -> None:
    """Remove a text and its answers bucket.

    Removing the original resets the item to one blank original; questions
    and policy are kept.
    """
    with self._lock:
      item = self.get_item(item_id)
      if item is None or item.find_text(text_id) is None:
        return
      if item.texts[0].id == text_id:
        self._mutate(
          item_id,
          lambda it: dataclasses.replace(
            it, texts=(Text(id=new_id()),), answers={}
          ),
        )
        if self.current_item_id == item_id:
          self.current_variant_id = None
        return

      pos = [t.id for t in item.variants].index(text_id)

      def fn(it: Item) -> Item:
        answers = {k: v for k, v in it.answers.items() if k != text_id}
        texts = tuple(t for t in it.texts if t.id != text_id)
        return dataclasses.replace(it, texts=texts, answers=answers)

      self._mutate(item_id, fn)
      if self.current_item_id == item_id and self.current_variant_id == text_id:
        remaining = self.get_item(item_id).variants
        if remaining:
          self.current_variant_id = remaining[min(pos, len(remaining) - 1)].id
        else:
          self.current_variant_id = None

  def delete_all_variants(self, item_id: str) -> None:
    def fn(item: Item) -> Item:
      original = item.texts[0]
      answers = {}
      if original.id in item.answers:
        answers[original.id] = item.answers[original.id]
      return dataclasses.replace(item, texts=(original,), answers=answers)

    with self._lock:
      if self._mutate(item_id, fn) and self.current_item_id == item_id:
        self.current_variant_id = None

  # ---------- Q&A ----------

  def add_qa(
    self, item_id: str, q: str = '', a: str = '', redact: bool = False
  ) -> QAEntry | None:
    entries = self.add_qa_entries(item_id, [(q, a, redact)])
    return entries[0] if entries else None

  def add_qa_entries(
    self, item_id: str, pairs: Iterable[tuple[str, str] | tuple[str, str, bool]]
  ) -> list[QAEntry]:
    """Append several Q&A entries with fresh ids (e.g. generated ones)."""
    entries = []
    for p in pairs:
      redact = bool(p[2]) if len(p) > 2 else False
      entries.append(QAEntry(id=new_id(), q=p[0], a=p[1], redact=redact))

    def fn(item: Item) -> Item:
      return dataclasses.replace(item, qa=(*item.qa, *entries))

    return entries if self._mutate(item_id, fn) else []

  def _update_qa(
    self, item_id: str, qa_id: str, invalidate: bool, **changes
  ) -> None:
    def fn(item: Item) -> Item | None:
      if item.find_qa(qa_id) is None:
        return None
      answers = _drop_qa_answers(item.answers, qa_id) if invalidate else item.answers
      qa = tuple(
        dataclasses.replace(e, **changes) if e.id == qa_id else e
        for e in item.qa
      )
      return dataclasses.replace(item, qa=qa, answers=answers)

    self._mutate(item_id, fn)

  def set_question(self, item_id: str, qa_id: str, q: str) -> None:
    """Change a question; every answer recorded for it is deleted."""
    self._update_qa(item_id, qa_id, True, q=q)

  def set_gold_answer(self, item_id: str, qa_id: str, a: str) -> None:
    """Change a gold answer; every answer recorded for it is deleted."""
    self._update_qa(item_id, qa_id, True, a=a)

  def set_redact_flag(self, item_id: str, qa_id: str, redact: bool) -> None:
    self._update_qa(item_id, qa_id, False, redact=bool(redact))

  def delete_qa(self, item_id: str, qa_id: str) -> None:
    def fn(item: Item) -> Item | None:
      if item.find_qa(qa_id) is None:
        return None
      return dataclasses.replace(
        item,
        qa=tuple(e for e in item.qa if e.id != qa_id),
        answers=_drop_qa_answers(item.answers, qa_id),
      )

    self._mutate(item_id, fn)

  # ---------- Answers ----------

  def record_answer(
    self,
    item_id: str,
    text_id: str,
    qa_id: str,
    value: str,
    asked: str | None = None,
  ) -> AnswerRecord | None:
    """Upsert an answer value with its score cleared.

    Args:
      asked: the question the oracle was given. If the entry's question has
        changed since, the write is dropped.
    """
    rec = AnswerRecord(value=value)

    def fn(item: Item) -> Item | None:
      entry = item.find_qa(qa_id)
      if entry is None or item.find_text(text_id) is None:
        return None
      if asked is not None and entry.q != asked:
        return None
      return dataclasses.replace(
        item, answers=_with_record(item.answers, text_id, qa_id, rec)
      )

    return rec if self._mutate(item_id, fn) else None

  def record_score(
    self,
    item_id: str,
    text_id: str,
    qa_id: str,
    score: float,
    value: str | None = None,
    gold: str | None = None,
  ) -> AnswerRecord | None:
    """Attach a score to an existing answer record.

    Args:
      value: the answer that was judged; dropped if the stored value differs.
      gold: the gold answer it was judged against; dropped if it changed.

    Scores that are not finite or fall outside [0, 1] are dropped.
    """
    out: list[AnswerRecord] = []
    score = float(score)
    if not math.isfinite(score) or not 0.0 <= score <= 1.0:
      return None

    def fn(item: Item) -> Item | None:
      entry = item.find_qa(qa_id)
      current = item.answer(text_id, qa_id)
      if entry is None or current is None:
        return None
      if value is not None and current.value != value:
        return None
      if gold is not None and entry.a != gold:
        return None
      rec = dataclasses.replace(current, score=score)
      out.append(rec)
      return dataclasses.replace(
        item, answers=_with_record(item.answers, text_id, qa_id, rec)
      )

    return out[0] if self._mutate(item_id, fn) else None
