"""Answering and equality oracles.

The harness only depends on the two call shapes below; the LLM-backed
implementations take their client and model explicitly.
"""

import json
import math
from typing import Protocol

from .client import BaseClient, structured_format
from .grader import is_exact_match


class OracleError(RuntimeError):
  """Raised when an oracle reply cannot be interpreted."""


class AnsweringOracle(Protocol):
  def __call__(self, context: str, question: str) -> str: ...


class EqualityOracle(Protocol):
  def __call__(self, value: str, gold: str) -> float: ...


ANSWER_FORMAT = structured_format(
  {'answer': {'type': 'string', 'description': 'The answer to the question.'}}
)

EQUALITY_FORMAT = structured_format(
  {
    'score': {
      'type': 'number',
      'description': 'Score from 0 to 1 indicating how similar the two values are.',
    }
  }
)

EQUALITY_PROMPT = (
  'Do "{value}" and "{gold}" have the same meaning? '
  'score from 0 to 1. 0 means no, 1 means yes.'
)


def _field(text: str, name: str) -> object:
  try:
    return json.loads(text)[name]
  except (json.JSONDecodeError, KeyError, TypeError) as e:
    raise OracleError(f'missing "{name}" in oracle reply: {text[:120]!r}') from e


class LLMAnswerer:
  """Answer a question using only the given context."""

  def __init__(self, client: BaseClient, model: str | None = None) -> None:
    self.client = client
    self.model = model

  def __call__(self, context: str, question: str) -> str:
    resp = self.client.predict(
      question, instruction=context, text_format=ANSWER_FORMAT, model=self.model
    )
    return str(_field(resp.text, 'answer'))


class LLMEquality:
  """Judge whether an answer means the same as the gold answer."""

  def __init__(self, client: BaseClient, model: str | None = None) -> None:
    self.client = client
    self.model = model

  def __call__(self, value: str, gold: str) -> float:
    if is_exact_match(value, gold):
      return 1.0
    resp = self.client.predict(
      EQUALITY_PROMPT.format(value=value, gold=gold),
      text_format=EQUALITY_FORMAT,
      model=self.model,
    )
    raw = _field(resp.text, 'score')
    try:
      score = float(raw)
    except (TypeError, ValueError) as e:
      raise OracleError(f'non-numeric score {raw!r}') from e
    if math.isnan(score):
      raise OracleError('score is NaN')
    return min(1.0, max(0.0, score))
