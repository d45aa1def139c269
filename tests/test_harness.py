import threading

from redaction_bench.client import BaseClient
from redaction_bench.data import Item, QAEntry, Text
from redaction_bench.grader import score
from redaction_bench.harness import RunLogger, answer_all, answer_question
from redaction_bench.oracles import LLMEquality
from redaction_bench.store import RecordStore


def _store():
  item = Item(
    id='i',
    texts=(
      Text(id='o', text='He is from Minnesota.'),
      Text(id='v', text='He is from [REDACTED].'),
    ),
    qa=(
      QAEntry(id='a', q='What is his name?', a='Pete'),
      QAEntry(id='b', q='Where is he from?', a='Minnesota', redact=True),
    ),
  )
  return RecordStore([item])


def _answerer(context, question):
  if 'name' in question:
    return 'Pete'
  return 'Minnesota' if 'Minnesota' in context else "I don't know"


def _judge(value, gold):
  return 1.0 if value == gold else 0.0


class _ExplodingClient(BaseClient):
  def predict(self, prompt, instruction='', text_format=None, model=None):
    raise AssertionError('client must not be called')


def test_exact_match_skips_oracle():
  judge = LLMEquality(_ExplodingClient())
  assert judge('Minnesota', 'minnesota.') == 1


def test_answer_all_populates_and_scores():
  store = _store()
  outcomes = answer_all(store, _answerer, _judge, 'i', 'v', max_workers=2)
  assert [o.qa_id for o in outcomes] == ['a', 'b']
  assert all(o.score_written for o in outcomes)
  item = store.get_item('i')
  assert item.answer('v', 'b').value == "I don't know"
  assert round(score(item, 'v', 0.8), 2) == 1.00

  answer_all(store, _answerer, _judge, 'i', 'o')
  item = store.get_item('i')
  assert round(score(item, 'o', 0.8), 2) == 0.67


def test_answer_failure_writes_nothing():
  store = _store()

  def broken(context, question):
    raise RuntimeError('401 Unauthorized')

  out = answer_question(store, broken, _judge, 'i', 'v', 'a')
  assert out.error == '401 Unauthorized'
  assert not out.answer_written
  assert store.get_item('i').answers == {}


def test_equality_failure_leaves_pending_record():
  store = _store()

  def broken(value, gold):
    raise RuntimeError('timeout')

  out = answer_question(store, _answerer, broken, 'i', 'v', 'a')
  assert out.answer_written and not out.score_written
  rec = store.get_item('i').answer('v', 'a')
  assert rec.value == 'Pete' and rec.score is None


def test_question_edit_during_answer_drops_write():
  store = _store()

  def racing(context, question):
    store.set_question('i', 'a', 'What is his full name?')
    return 'Pete'

  out = answer_question(store, racing, _judge, 'i', 'v', 'a')
  assert not out.answer_written
  assert store.get_item('i').answer('v', 'a') is None


def test_delete_during_judge_drops_score():
  store = _store()

  def racing(value, gold):
    store.delete_qa('i', 'b')
    return 1.0

  out = answer_question(store, _answerer, racing, 'i', 'v', 'b')
  assert out.answer_written and not out.score_written
  assert store.get_item('i').answers == {}


def test_missing_target_is_skipped():
  store = _store()
  out = answer_question(store, _answerer, _judge, 'i', 'gone', 'a')
  assert out.value is None
  assert answer_all(store, _answerer, _judge, 'nope', 'v') == []


def test_pipelines_run_concurrently():
  store = _store()
  barrier = threading.Barrier(2, timeout=5)

  def waiting(context, question):
    barrier.wait()
    return _answerer(context, question)

  outcomes = answer_all(store, waiting, _judge, 'i', 'v', max_workers=2)
  assert all(o.error is None for o in outcomes)


def test_run_logger_writes_jsonl(tmp_path):
  path = tmp_path / 'run.log'
  logger = RunLogger(str(path), stdout_format='json')
  store = _store()
  answer_question(store, _answerer, _judge, 'i', 'v', 'a', logger, 0.8)
  logger.close()
  lines = path.read_text().splitlines()
  assert len(lines) == 2
  assert '"event": "answer"' in lines[0]
  assert '"correct": true' in lines[1]
