"""Redaction Bench command-line interface.

Edits the item collection kept in a JSONL state file, runs the answering
oracles, and scores redacted variants.
"""

import argparse
import datetime
import os
import re
import sys

from .client import BaseClient, client_from_name
from .config import Config, ConfigError, load_config
from .data import Item, Text
from .generator import (
  demo_item,
  generate_original_text,
  generate_qa,
  generate_redacted_text,
)
from .grader import confusion, summarize
from .harness import RunConfig, RunLogger, answer_all, answer_question, oracles_for
from .records import JsonlStorage, RecordError, dump_items, load_items
from .report import render_report, scores_table
from .store import RecordStore


def _safe_name(s: str | None) -> str:
  """Make a filesystem-safe name from a model or client string."""
  if s is None:
    return 'unknown'
  return re.sub(r'[^A-Za-z0-9._-]+', '-', s)


def _timestamp() -> str:
  return datetime.datetime.now().strftime('%Y%m%d_%H%M%S')


def _open_store(args: argparse.Namespace) -> RecordStore:
  return RecordStore.open(JsonlStorage(args.data))


def _client(args: argparse.Namespace, cfg: Config) -> BaseClient:
  return client_from_name(
    args.client,
    api_key=cfg.openai_api_key,
    model=args.model or cfg.default_model,
    base_url=cfg.openai_base_url,
  )


def _resolve_item(store: RecordStore, ref: str | None) -> Item:
  """Accept a full item id or a 1-based position; default is the current item."""
  if ref is None:
    return store.current_item
  item = store.get_item(ref)
  if item is not None:
    return item
  items = store.items
  if ref.isdigit() and 1 <= int(ref) <= len(items):
    return items[int(ref) - 1]
  raise SystemExit(f'No item {ref!r}')


def _resolve_text(item: Item, ref: str) -> Text:
  """Accept a text id or a position (0 = original, 1.. = variants)."""
  text = item.find_text(ref)
  if text is not None:
    return text
  if ref.isdigit() and int(ref) < len(item.texts):
    return item.texts[int(ref)]
  raise SystemExit(f'No text {ref!r} in item {item.id}')


def _resolve_qa_id(item: Item, ref: str) -> str:
  entry = item.find_qa(ref)
  if entry is not None:
    return entry.id
  if ref.isdigit() and 1 <= int(ref) <= len(item.qa):
    return item.qa[int(ref) - 1].id
  raise SystemExit(f'No question {ref!r} in item {item.id}')


def _read_text_arg(args: argparse.Namespace) -> str | None:
  if getattr(args, 'file', None):
    with open(args.file, 'r', encoding='utf-8') as f:
      return f.read()
  return getattr(args, 'text', None)


def cmd_init(args: argparse.Namespace) -> None:
  """CLI: create a state file with one blank (or demo) item."""
  if os.path.exists(args.data) and not args.force:
    raise SystemExit(f'{args.data} exists; pass --force to overwrite')
  store = RecordStore([demo_item()] if args.demo else None)
  dump_items(store.items, args.data)
  print(f'Wrote {args.data}')


def cmd_import(args: argparse.Namespace) -> None:
  """CLI: append items from a JSONL file."""
  store = _open_store(args)
  added = store.import_items(load_items(args.infile))
  print(f'Imported {len(added)} item(s) into {args.data}')


def cmd_export(args: argparse.Namespace) -> None:
  """CLI: write the collection to a JSONL file in store order."""
  store = _open_store(args)
  dump_items(store.export_items(), args.out)
  print(f'Wrote {args.out}')


def cmd_list(args: argparse.Namespace) -> None:
  """CLI: show items, their variants and current scores."""
  store = _open_store(args)
  for idx, item in enumerate(store.items, start=1):
    preview = item.texts[0].text.strip().replace('\n', ' ')[:60]
    print(f'[{idx}] {item.id}  texts={len(item.texts)} qa={len(item.qa)}  {preview!r}')
  print()
  print(scores_table(summarize(store.items, args.threshold)))


def cmd_add_item(args: argparse.Namespace) -> None:
  """CLI: add an item, blank, from text, or generated."""
  store = _open_store(args)
  if args.generate:
    cfg = load_config()
    text = generate_original_text(_client(args, cfg), args.model)
  else:
    text = _read_text_arg(args) or ''
  item = store.add_item(text)
  print(item.id)


def cmd_delete_item(args: argparse.Namespace) -> None:
  """CLI: delete one item or all of them."""
  store = _open_store(args)
  if args.all:
    store.delete_all_items()
  else:
    store.delete_item(_resolve_item(store, args.item).id)
  print(f'{len(store.items)} item(s) left')


def cmd_set_original(args: argparse.Namespace) -> None:
  """CLI: replace the original text and/or policy of an item."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  text = _read_text_arg(args)
  if text is not None:
    store.set_original_text(item.id, text)
  if args.policy is not None:
    store.set_policy(item.id, args.policy)


def cmd_add_variant(args: argparse.Namespace) -> None:
  """CLI: add a redacted variant, typed in or generated from the policy."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  if args.generate:
    cfg = load_config()
    text = generate_redacted_text(
      _client(args, cfg), item.texts[0].text, item.policy, args.model
    )
  else:
    text = _read_text_arg(args) or ''
  variant = store.add_redacted_variant(item.id, text, args.label)
  print(variant.id if variant else '')


def cmd_set_variant(args: argparse.Namespace) -> None:
  """CLI: edit a variant's text and/or label."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  text_id = _resolve_text(item, args.text_id).id
  text = _read_text_arg(args)
  if text is not None:
    store.set_variant_text(item.id, text_id, text)
  if args.label is not None:
    store.set_variant_label(item.id, text_id, args.label)


def cmd_delete_variant(args: argparse.Namespace) -> None:
  """CLI: delete one variant or all of them."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  if args.all:
    store.delete_all_variants(item.id)
  elif args.text_id is None:
    raise SystemExit('Pass --text-id or --all')
  else:
    store.delete_variant(item.id, _resolve_text(item, args.text_id).id)


def cmd_add_qa(args: argparse.Namespace) -> None:
  """CLI: append one question."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  entry = store.add_qa(item.id, args.q, args.a, args.redact)
  print(entry.id if entry else '')


def cmd_generate_qa(args: argparse.Namespace) -> None:
  """CLI: append model-generated questions for the original text."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  cfg = load_config()
  pairs = generate_qa(_client(args, cfg), item.texts[0].text, args.model)
  added = store.add_qa_entries(item.id, pairs)
  print(f'Added {len(added)} question(s)')


def cmd_set_qa(args: argparse.Namespace) -> None:
  """CLI: edit a question, its gold answer or its redact flag."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  qa_id = _resolve_qa_id(item, args.qa)
  if args.q is not None:
    store.set_question(item.id, qa_id, args.q)
  if args.a is not None:
    store.set_gold_answer(item.id, qa_id, args.a)
  if args.redact is not None:
    store.set_redact_flag(item.id, qa_id, args.redact)


def cmd_delete_qa(args: argparse.Namespace) -> None:
  """CLI: delete a question and its answers."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  store.delete_qa(item.id, _resolve_qa_id(item, args.qa))


def cmd_answer(args: argparse.Namespace) -> None:
  """CLI: ask (and judge) one or all questions against one text."""
  cfg = load_config()
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  text = _resolve_text(item, args.text_id)
  run = RunConfig(
    client_name=args.client,
    model_name=args.model,
    max_workers=args.workers or cfg.max_workers,
    out_dir=args.out,
    verbose=not args.quiet,
  )
  if run.out_dir:
    os.makedirs(run.out_dir, exist_ok=True)
  logger = RunLogger(
    os.path.join(run.out_dir, 'run.log') if run.out_dir else None,
    enabled=run.verbose,
  )
  answerer, judge = oracles_for(_client(args, cfg), run.model_name)
  try:
    if args.qa:
      outcome = answer_question(
        store,
        answerer,
        judge,
        item.id,
        text.id,
        _resolve_qa_id(item, args.qa),
        logger=logger,
        threshold=args.threshold,
      )
      outcomes = [outcome]
    else:
      outcomes = answer_all(
        store,
        answerer,
        judge,
        item.id,
        text.id,
        max_workers=run.max_workers,
        logger=logger,
        threshold=args.threshold,
      )
  finally:
    logger.close()
  failed = sum(1 for o in outcomes if o.error)
  print(f'Answered {len(outcomes) - failed}/{len(outcomes)} question(s)')
  if failed:
    sys.exit(1)


def cmd_score(args: argparse.Namespace) -> None:
  """CLI: print the confusion counts and F1 of one variant."""
  store = _open_store(args)
  item = _resolve_item(store, args.item)
  variant = _resolve_text(item, args.variant)
  c = confusion(item, variant.id, args.threshold)
  print(
    f'TP={c.tp} FN={c.fn} FP={c.fp} TN={c.tn}  '
    f'precision={c.precision:.2f} recall={c.recall:.2f} f1={c.f1:.2f}'
  )


def cmd_report(args: argparse.Namespace) -> None:
  """CLI: score all variants and render the report."""
  store = _open_store(args)
  basename = f'{_safe_name(os.path.basename(args.data))}-{_timestamp()}'
  render_report(store.items, args.out, args.threshold, basename=basename)
  print(f'Wrote report to {args.out}')


def main() -> None:
  """Entry point for redaction-bench CLI."""
  try:
    cfg = load_config()
  except ConfigError as e:
    print(f'error: {e}', file=sys.stderr)
    sys.exit(2)
  ap = argparse.ArgumentParser(
    prog='redaction-bench', description='Redaction quality evaluation harness'
  )
  ap.add_argument(
    '--data', type=str, default=cfg.data_path, help='State file (JSONL)'
  )
  sub = ap.add_subparsers(dest='cmd', required=True)

  def llm_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
      '--client',
      type=str,
      choices=['echo', 'openai'],
      default='echo',
      help='LLM client to use',
    )
    p.add_argument('--model', type=str, default=None, help='Model name')

  def text_args(p: argparse.ArgumentParser) -> None:
    g = p.add_mutually_exclusive_group()
    g.add_argument('--text', type=str, default=None, help='Text content')
    g.add_argument('--file', type=str, default=None, help='Read text from file')

  def threshold_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
      '--threshold',
      type=float,
      default=cfg.threshold,
      help='Similarity cutoff for a correct answer',
    )

  p = sub.add_parser('init', help='Create a state file')
  p.add_argument('--demo', action='store_true', help='Start with the demo item')
  p.add_argument('--force', action='store_true', help='Overwrite existing file')
  p.set_defaults(func=cmd_init)

  p = sub.add_parser('import', help='Append items from a JSONL file')
  p.add_argument('--in', dest='infile', type=str, required=True)
  p.set_defaults(func=cmd_import)

  p = sub.add_parser('export', help='Write all items to a JSONL file')
  p.add_argument('--out', type=str, required=True)
  p.set_defaults(func=cmd_export)

  p = sub.add_parser('list', help='Show items and variant scores')
  threshold_arg(p)
  p.set_defaults(func=cmd_list)

  p = sub.add_parser('add-item', help='Add an item')
  text_args(p)
  p.add_argument('--generate', action='store_true', help='Generate with LM')
  llm_args(p)
  p.set_defaults(func=cmd_add_item)

  p = sub.add_parser('delete-item', help='Delete an item')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--all', action='store_true', help='Delete every item')
  p.set_defaults(func=cmd_delete_item)

  p = sub.add_parser('set-original', help='Edit original text or policy')
  p.add_argument('--item', type=str, default=None)
  text_args(p)
  p.add_argument('--policy', type=str, default=None)
  p.set_defaults(func=cmd_set_original)

  p = sub.add_parser('add-variant', help='Add a redacted variant')
  p.add_argument('--item', type=str, default=None)
  text_args(p)
  p.add_argument('--label', type=str, default='')
  p.add_argument('--generate', action='store_true', help='Generate with LM')
  llm_args(p)
  p.set_defaults(func=cmd_add_variant)

  p = sub.add_parser('set-variant', help='Edit a variant')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--text-id', type=str, required=True)
  text_args(p)
  p.add_argument('--label', type=str, default=None)
  p.set_defaults(func=cmd_set_variant)

  p = sub.add_parser('delete-variant', help='Delete a variant')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--text-id', type=str, default=None)
  p.add_argument('--all', action='store_true', help='Delete every variant')
  p.set_defaults(func=cmd_delete_variant)

  p = sub.add_parser('add-qa', help='Add a question')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--q', type=str, default='')
  p.add_argument('--a', type=str, default='')
  p.add_argument('--redact', action='store_true', help='Should be redacted')
  p.set_defaults(func=cmd_add_qa)

  p = sub.add_parser('generate-qa', help='Generate questions with LM')
  p.add_argument('--item', type=str, default=None)
  llm_args(p)
  p.set_defaults(func=cmd_generate_qa)

  p = sub.add_parser('set-qa', help='Edit a question')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--qa', type=str, required=True)
  p.add_argument('--q', type=str, default=None)
  p.add_argument('--a', type=str, default=None)
  p.add_argument(
    '--redact', action=argparse.BooleanOptionalAction, default=None
  )
  p.set_defaults(func=cmd_set_qa)

  p = sub.add_parser('delete-qa', help='Delete a question')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--qa', type=str, required=True)
  p.set_defaults(func=cmd_delete_qa)

  p = sub.add_parser('answer', help='Answer questions against a text')
  p.add_argument('--item', type=str, default=None)
  p.add_argument(
    '--text-id', type=str, default='0', help='Text id or position (0 = original)'
  )
  p.add_argument('--qa', type=str, default=None, help='Only this question')
  p.add_argument('--workers', type=int, default=None)
  p.add_argument('--out', type=str, default=None, help='Directory for run.log')
  p.add_argument(
    '--quiet', action='store_true', help='Disable per-call stdout logs'
  )
  llm_args(p)
  threshold_arg(p)
  p.set_defaults(func=cmd_answer)

  p = sub.add_parser('score', help='Score one variant')
  p.add_argument('--item', type=str, default=None)
  p.add_argument('--variant', type=str, required=True)
  threshold_arg(p)
  p.set_defaults(func=cmd_score)

  p = sub.add_parser('report', help='Render a report over all variants')
  p.add_argument('--out', type=str, required=True, help='Output directory')
  threshold_arg(p)
  p.set_defaults(func=cmd_report)

  args = ap.parse_args()
  try:
    args.func(args)
  except (RecordError, ConfigError) as e:
    print(f'error: {e}', file=sys.stderr)
    sys.exit(2)
