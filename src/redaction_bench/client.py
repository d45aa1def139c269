"""Client adapters for querying LLMs.

Includes an OpenAI Responses API client with structured outputs and a local
echo stub.
"""

import json
import time
import random
from dataclasses import dataclass
from typing import Any

import requests

# -----------------------
# Types & retry config
# -----------------------


@dataclass
class RetryConfig:
  """Retry/backoff configuration."""

  max_retries: int = 4
  backoff_base: float = 0.8  # exponential base
  backoff_cap: float = 8.0  # seconds max per sleep


def _should_retry(status: int | None) -> bool:
  """Return True if HTTP status suggests a transient failure."""
  if status is None:
    return True
  return status in (408, 409, 425, 429, 500, 502, 503, 504)


def structured_format(properties: dict[str, dict[str, Any]]) -> dict[str, Any]:
  """Build a strict json_schema text format with a leading reasoning field."""
  props = {
    'reasoning': {'type': 'string', 'description': 'Your reasoning.'},
    **properties,
  }
  return {
    'format': {
      'type': 'json_schema',
      'name': 'structured_outputs',
      'schema': {
        'type': 'object',
        'properties': props,
        'required': list(props),
        'additionalProperties': False,
      },
    }
  }


# -----------------------
# Base client
# -----------------------


@dataclass
class LLMResponse:
  """Simple wrapper for LLM outputs."""

  text: str
  raw: dict[str, Any]
  attempts: int = 1
  status_code: int | None = None

  def json(self) -> dict[str, Any]:
    """Decode a structured-output response body."""
    return json.loads(self.text)


class BaseClient:
  """Abstract LLM client."""

  def predict(
    self,
    prompt: str,
    instruction: str = '',
    text_format: dict[str, Any] | None = None,
    model: str | None = None,
  ) -> LLMResponse:
    """Return the model output for a single prompt."""
    raise NotImplementedError


def extract_output_text(data: dict[str, Any]) -> str:
  """Pull the final text block out of a Responses API payload."""
  try:
    return data['output'][-1]['content'][-1]['text'].strip()
  except (KeyError, IndexError, TypeError) as e:
    raise RuntimeError(f'Unexpected response payload: {str(data)[:200]}') from e


# -----------------------
# OpenAI client
# -----------------------


class OpenAIClient(BaseClient):
  """OpenAI Responses API client."""

  def __init__(
    self,
    api_key: str | None,
    model: str,
    base_url: str = 'https://api.openai.com/v1/responses',
    max_output_tokens: int = 4096,
    retry: RetryConfig | None = None,
  ) -> None:
    """Create a client.

    Args:
      api_key: API key; required.
      model: Default model identifier for calls that do not name one.
      base_url: Override the API URL.
    """
    if not api_key:
      raise RuntimeError('OPENAI_API_KEY missing; set it in environment or .env')
    self.api_key = api_key
    self.model = model
    self.base_url = base_url
    self.max_output_tokens = max_output_tokens
    self.retry = retry or RetryConfig()

  def predict(
    self,
    prompt: str,
    instruction: str = '',
    text_format: dict[str, Any] | None = None,
    model: str | None = None,
  ) -> LLMResponse:
    """Send a developer instruction plus user input.

    Returns:
      LLMResponse containing the output text and raw payload.
    """
    headers = {
      'Authorization': f'Bearer {self.api_key}',
      'Content-Type': 'application/json',
    }
    payload: dict[str, Any] = {
      'model': model or self.model,
      'input': [
        {'role': 'developer', 'content': instruction},
        {'role': 'user', 'content': prompt},
      ],
      'max_output_tokens': self.max_output_tokens,
    }
    if text_format is not None:
      payload['text'] = text_format

    retry = self.retry
    for attempt in range(1, retry.max_retries + 2):  # attempts = retries + 1
      status = None
      try:
        resp = requests.post(
          self.base_url, headers=headers, json=payload, timeout=60
        )
        status = resp.status_code
        resp.raise_for_status()  # will raise on 4xx/5xx
        data = resp.json()
        text = extract_output_text(data)
        if not text:
          raise RuntimeError('No text returned from the response')
        return LLMResponse(
          text=text, raw=data, attempts=attempt, status_code=status
        )
      except (requests.RequestException, ValueError, RuntimeError):
        if attempt <= retry.max_retries and _should_retry(status):
          sleep = min(
            retry.backoff_cap,
            (retry.backoff_base**attempt) + random.random() * 0.25,
          )
          time.sleep(sleep)
          continue
        raise  # exhausted


# -----------------------
# Echo stub (offline)
# -----------------------


class EchoClient(BaseClient):
  """Local stub for offline dev; returns deterministic structured outputs."""

  def __init__(self, seed: int = 0) -> None:
    self.seed = seed

  def predict(
    self,
    prompt: str,
    instruction: str = '',
    text_format: dict[str, Any] | None = None,
    model: str | None = None,
  ) -> LLMResponse:
    """Fill every schema field with a placeholder.

    Strings echo the last line of the prompt, numbers are 0 or 1 and arrays
    are empty. Without a schema the prompt itself is returned.
    """
    if text_format is None:
      return LLMResponse(text=prompt, raw={'stub': True, 'seed': self.seed})
    rnd = sum(map(ord, prompt + instruction)) + self.seed
    props = text_format['format']['schema']['properties']
    out: dict[str, Any] = {}
    for name, spec in props.items():
      kind = spec.get('type')
      if kind == 'number':
        out[name] = float(rnd % 2)
      elif kind == 'array':
        out[name] = []
      else:
        lines = prompt.strip().splitlines()
        out[name] = lines[-1] if lines else ''
    return LLMResponse(
      text=json.dumps(out), raw={'stub': True, 'seed': self.seed}
    )


def client_from_name(
  name: str, api_key: str | None, model: str, base_url: str
) -> BaseClient:
  """Instantiate client by name."""
  if name == 'openai':
    return OpenAIClient(api_key=api_key, model=model, base_url=base_url)
  if name == 'echo':
    return EchoClient(seed=0)
  raise ValueError(f'Unknown client: {name}')
