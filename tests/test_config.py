import sys

import pytest

from redaction_bench import cli
from redaction_bench.config import ConfigError, load_config


def test_defaults(monkeypatch):
  monkeypatch.delenv('SCORE_THRESHOLD', raising=False)
  monkeypatch.delenv('MAX_WORKERS', raising=False)
  cfg = load_config()
  assert cfg.threshold == 0.8
  assert cfg.max_workers == 8


def test_bad_number_names_the_variable(monkeypatch):
  monkeypatch.setenv('SCORE_THRESHOLD', 'high')
  with pytest.raises(ConfigError, match='SCORE_THRESHOLD'):
    load_config()
  monkeypatch.setenv('SCORE_THRESHOLD', '0.5')
  monkeypatch.setenv('MAX_WORKERS', 'eight')
  with pytest.raises(ConfigError, match='MAX_WORKERS'):
    load_config()


def test_cli_exits_cleanly_on_bad_config(monkeypatch, capsys):
  monkeypatch.setenv('MAX_WORKERS', 'eight')
  monkeypatch.setattr(sys, 'argv', ['redaction-bench', 'list'])
  with pytest.raises(SystemExit) as exc:
    cli.main()
  assert exc.value.code == 2
  assert 'MAX_WORKERS' in capsys.readouterr().err
