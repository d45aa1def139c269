import json

import pytest

from redaction_bench.data import AnswerRecord
from redaction_bench.records import (
  JsonlStorage,
  RecordError,
  item_to_dict,
  parse_item,
  parse_lines,
)
from redaction_bench.store import RecordStore


def _record(**overrides):
  rec = {
    'id': 'item-1',
    'texts': [{'text': 'original'}, {'id': 'v', 'text': 'redacted', 'label': 'base'}],
    'qa': [{'id': 'a', 'q': 'Where?', 'a': 'Minnesota', 'redact': True}],
    'policy': 'hide places',
    'answers': {'v': {'a': {'value': 'Minnesota', 'score': 1}}},
  }
  rec.update(overrides)
  return rec


def test_original_without_id_gets_stable_id():
  first = parse_item(_record())
  second = parse_item(_record())
  assert first.texts[0].id == second.texts[0].id
  assert first.texts[0].label == ''
  assert first.texts[1].label == 'base'
  assert first.answer('v', 'a') == AnswerRecord('Minnesota', 1.0)


def test_missing_optional_fields_are_filled():
  item = parse_item({'id': 'x', 'qa': [{'id': 'a', 'q': 'q', 'a': 'a'}]})
  assert len(item.texts) == 1
  assert item.policy == ''
  assert item.qa[0].redact is False
  assert item.answers == {}


def test_orphaned_answers_are_dropped():
  item = parse_item(
    _record(
      answers={
        'gone': {'a': {'value': 'x'}},
        'v': {'zzz': {'value': 'x'}, 'a': {'score': 0.5}},
      }
    )
  )
  assert item.answers == {}


def test_undefined_bucket_moves_to_blank_original():
  item = parse_item(
    _record(
      texts=[{'text': ''}],
      answers={'undefined': {'a': {'value': 'Minnesota', 'score': 1}}},
    )
  )
  assert item.answer(item.texts[0].id, 'a') == AnswerRecord('Minnesota', 1.0)
  assert 'undefined' not in item.answers


def test_undefined_bucket_is_orphaned_when_original_has_id():
  item = parse_item(
    _record(
      texts=[{'id': 'o', 'text': ''}],
      answers={'undefined': {'a': {'value': 'Minnesota'}}},
    )
  )
  assert item.answers == {}


@pytest.mark.parametrize(
  'overrides',
  [
    {'id': ''},
    {'qa': [{'q': 'no id', 'a': 'x'}]},
    {'qa': [{'id': 'a', 'q': 1, 'a': 'x'}]},
    {'answers': {'v': {'a': {'value': 'x', 'score': 1.5}}}},
    {'answers': {'v': {'a': {'value': 'x', 'score': 'high'}}}},
    {'texts': [{'id': 't', 'text': 'a'}, {'id': 't', 'text': 'b'}]},
    {'qa': [{'id': 'a', 'q': 'q', 'a': 'x', 'redact': 'false'}]},
  ],
)
def test_malformed_records_are_rejected(overrides):
  with pytest.raises(RecordError):
    parse_item(_record(**overrides))


def test_parse_lines_reports_position():
  lines = [json.dumps(_record()), '', '{not json']
  with pytest.raises(RecordError, match=':3'):
    parse_lines(lines, source='upload.jsonl')


def test_pending_score_is_omitted_on_export():
  item = parse_item(_record(answers={'v': {'a': {'value': 'x'}}}))
  assert item_to_dict(item)['answers'] == {'v': {'a': {'value': 'x'}}}


def test_jsonl_storage_roundtrip(tmp_path):
  path = str(tmp_path / 'state' / 'data.jsonl')
  storage = JsonlStorage(path)
  assert storage.load() == []
  store = RecordStore([parse_item(_record())], storage=storage)
  store.add_item('second')
  reloaded = RecordStore.open(JsonlStorage(path))
  assert [i.id for i in reloaded.items] == [i.id for i in store.items]
  assert reloaded.items[0] == store.items[0]
