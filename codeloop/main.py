from __future__ import annotations
import argparse
import asyncio
import json
import signal
import sys
from dataclasses import replace
from pathlib import Path

import yaml

from codeloop.apply import ApplyManifest, change_summary
from codeloop.codebase import collect_codebase_files
from codeloop.llm import LLM, ProducerError
from codeloop.loop import CHAT_MODES, CodingLoop, ProcessResult
from codeloop.messages import CodebaseFile
from codeloop.operations import ParsedResponse, parse_response
from codeloop.project_config import ProjectConfig, load_project_config
from codeloop.runner import run_checks
from codeloop.tags import has_unclosed_write_tag, remove_non_essential_tags, remove_tags
from codeloop.task_logging import TurnLog, make_turn_log_dir


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
  p = argparse.ArgumentParser(prog="codeloop")
  p.add_argument("--repo", help="Project root; required for run and apply.")
  p.add_argument("--interactive", action="store_true")

  sub = p.add_subparsers(dest="cmd", required=True)

  run = sub.add_parser("run", help="Stream a model answer for a prompt and apply its file operations.")
  run.add_argument("prompt")
  run.add_argument("--mode", choices=CHAT_MODES)
  run.add_argument("--model")
  run.add_argument("--no-apply", action="store_true")

  parse = sub.add_parser("parse", help="Print the operations found in a saved response.")
  parse.add_argument("file")

  apply = sub.add_parser("apply", help="Apply the operations found in a saved response.")
  apply.add_argument("file")

  return p.parse_args(argv)


def prompt_apply(interactive: bool) -> str:
  if not interactive:
    return "apply"
  while True:
    cmd = input("command (apply/skip/abort): ").strip().lower()
    if cmd in ("apply", "skip", "abort"):
      return cmd


def print_operations(parsed: ParsedResponse) -> None:
  for t in parsed.delete_paths:
    print(f"  delete  {t}")
  for t in parsed.rename_tags:
    print(f"  rename  {t.from_path} -> {t.to_path}")
  for t in parsed.write_tags:
    desc = f" ({t.description})" if t.description else ""
    print(f"  write   {t.path}{desc}")
  for t in parsed.search_replace_tags:
    print(f"  patch   {t.path} (not applied)")
  if parsed.add_dependencies:
    print(f"  deps    {' '.join(parsed.add_dependencies)}")
  for c in parsed.commands:
    print(f"  command {c}")
  if parsed.chat_summary:
    print(f"  summary {parsed.chat_summary}")


async def stream_turn(loop: CodingLoop, llm: LLM, prompt: str, files: list[CodebaseFile]) -> ProcessResult:
  abort = asyncio.Event()
  try:
    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, abort.set)
  except (NotImplementedError, RuntimeError):
    pass

  async def _show(document: str, chunk: str) -> str:
    sys.stdout.write(chunk)
    sys.stdout.flush()
    return document

  try:
    return await loop.process(prompt, llm, codebase_files=files, abort_signal=abort, on_chunk=_show)
  finally:
    print()
    try:
      asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
      pass


def apply_and_check(loop: CodingLoop, repo: Path, cfg: ProjectConfig, parsed: ParsedResponse, log: TurnLog) -> int:
  manifest: ApplyManifest = loop.apply_changes(repo, parsed)
  log.write_json("manifest.json", manifest.to_dict())
  summary = change_summary(manifest)
  print(f"[ok] {summary}" if summary else "[ok] no changes")
  if manifest.error:
    print(f"[error] some operations failed: {manifest.error}", file=sys.stderr)

  failed = run_checks(repo, cfg.checks, log)
  if failed:
    print("[stop] checks failed: " + ", ".join(failed), file=sys.stderr)
    return 6
  return 6 if manifest.error else 0


def cmd_run(args: argparse.Namespace, repo: Path, cfg: ProjectConfig) -> int:
  loop_cfg = replace(cfg.loop, chat_mode=args.mode) if args.mode else cfg.loop
  llm_cfg = replace(cfg.llm, model=args.model) if args.model else cfg.llm
  loop = CodingLoop(loop_cfg)
  try:
    llm = LLM(llm_cfg)
  except RuntimeError as e:
    print(f"[error] {e}", file=sys.stderr)
    return 3

  log = make_turn_log_dir(repo, "run")
  files = collect_codebase_files(repo)
  print(f"[ok] codebase: {len(files)} files")
  log.write_text("prompt.txt", args.prompt)
  log.write_json("codebase.json", {"files": [f.path for f in files]})

  try:
    result = asyncio.run(stream_turn(loop, llm, args.prompt, files))
  except ProducerError as e:
    print(f"[error] {e}", file=sys.stderr)
    log.write_text("producer_error.txt", str(e))
    return 1
  log.write_text("response.txt", result.full_response)
  log.write_json("parsed.json", result.parsed_response.to_dict())
  log.write_json("turn.json", {
    "was_truncated": result.was_truncated,
    "was_aborted": result.was_aborted,
    "continuation_attempts": result.continuation_attempts,
    "auto_fix_attempts": result.auto_fix_attempts,
  })

  if result.was_aborted:
    print(f"[stop] aborted. logs at: {log.root}")
    return 130
  if result.was_truncated:
    print(f"[warning] response still truncated after {result.continuation_attempts} continuation(s)")

  if loop_cfg.chat_mode != "build":
    print(remove_tags(remove_non_essential_tags(result.full_response)))
    return 0

  parsed = result.parsed_response
  print("[ok] operations:")
  print_operations(parsed)
  if args.no_apply:
    print(f"[ok] not applied. logs at: {log.root}")
    return 0

  choice = prompt_apply(args.interactive)
  if choice == "skip":
    print("[ok] skipped applying response")
    return 0
  if choice == "abort":
    raise SystemExit(130)

  rc = apply_and_check(loop, repo, cfg, parsed, log)
  print(f"[ok] logs at: {log.root}")
  return rc


def cmd_parse(args: argparse.Namespace) -> int:
  text = Path(args.file).read_text(encoding="utf-8")
  parsed = parse_response(text)
  print(json.dumps({
    "counts": parsed.counts(),
    "truncated": has_unclosed_write_tag(text),
    "chat_summary": parsed.chat_summary,
  }, ensure_ascii=False, indent=2))
  return 0


def cmd_apply(args: argparse.Namespace, repo: Path, cfg: ProjectConfig) -> int:
  text = Path(args.file).read_text(encoding="utf-8")
  if has_unclosed_write_tag(text):
    print("[warning] response ends inside an unclosed write tag; it will be skipped")
  log = make_turn_log_dir(repo, "apply")
  log.write_text("response.txt", text)
  parsed = parse_response(text)
  print_operations(parsed)
  return apply_and_check(CodingLoop(cfg.loop), repo, cfg, parsed, log)


def main(argv: list[str] | None = None) -> int:
  args = parse_args(argv)
  if args.cmd == "parse":
    return cmd_parse(args)

  if not args.repo:
    print(f"[error] --repo is required for {args.cmd}", file=sys.stderr)
    return 2
  repo = Path(args.repo).expanduser().resolve()
  if not repo.is_dir():
    print(f"[error] repo path does not exist: {repo}", file=sys.stderr)
    return 2

  try:
    cfg = load_project_config(repo)
  except (ValueError, TypeError, yaml.YAMLError) as e:
    print(f"[error] invalid project config: {e}", file=sys.stderr)
    return 3

  if args.cmd == "run":
    return cmd_run(args, repo, cfg)
  elif args.cmd == "apply":
    return cmd_apply(args, repo, cfg)
  return 2


if __name__ == "__main__":
  raise SystemExit(main())
