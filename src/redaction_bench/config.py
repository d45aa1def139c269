"""Configuration loader for Redaction Bench.

Reads environment variables (optionally from .env) and exposes a typed config.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

DEFAULT_THRESHOLD = 0.8


class ConfigError(ValueError):
  """An environment variable holds a value of the wrong type."""


@dataclass(frozen=True)
class Config:
  """Holds runtime configuration loaded from environment."""

  openai_api_key: str | None
  openai_base_url: str
  default_model: str
  data_path: str
  threshold: float
  max_workers: int


def _env_number(name: str, default: str, cast: type) -> float | int:
  raw = os.getenv(name, default)
  try:
    return cast(raw)
  except ValueError:
    raise ConfigError(f'{name}={raw!r} is not a valid {cast.__name__}') from None


def load_config() -> Config:
  """Load configuration from environment variables.

  Raises:
    ConfigError: if SCORE_THRESHOLD or MAX_WORKERS does not parse.
  """
  return Config(
    openai_api_key=os.getenv('OPENAI_API_KEY'),
    openai_base_url=os.getenv(
      'OPENAI_BASE_URL', 'https://api.openai.com/v1/responses'
    ),
    default_model=os.getenv('MODEL_NAME', 'gpt-4.1'),
    data_path=os.getenv('REDACTION_DATA', 'data.jsonl'),
    threshold=_env_number('SCORE_THRESHOLD', str(DEFAULT_THRESHOLD), float),
    max_workers=_env_number('MAX_WORKERS', '8', int),
  )
