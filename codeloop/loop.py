from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence

from codeloop.apply import ApplyManifest, Diagnostics, UploadedFile, apply_file_changes, change_summary
from codeloop.messages import CodebaseFile, EventCallback, Message, StreamEvent
from codeloop.operations import ParsedResponse, parse_response
from codeloop.prompts import construct_system_prompt, create_codebase_prompt, format_codebase_files
from codeloop.stream import AbortSignal, ChunkObserver, Fragment, TurnState, aborted, stream_into
from codeloop.tags import has_unclosed_write_tag


CHAT_MODES = ("build", "ask", "agent")
READY_REPLY = "OK, got it. I'm ready to help"

Producer = Callable[[list[Message], str, Optional[AbortSignal]], AsyncIterator[Fragment]]


@dataclass(frozen=True)
class LoopConfig:
  chat_mode: str = "build"
  enable_turbo_edits_v2: bool = False
  enable_auto_fix: bool = True
  max_auto_fix_attempts: int = 2
  max_continuation_attempts: int = 2
  ai_rules: str | None = None
  enable_thinking: bool = True
  chat_id: int = 0

  def __post_init__(self):
    if self.chat_mode not in CHAT_MODES:
      raise ValueError(f"chat_mode must be one of {', '.join(CHAT_MODES)}: {self.chat_mode!r}")
    if self.max_continuation_attempts < 0 or self.max_auto_fix_attempts < 0:
      raise ValueError("attempt ceilings must be >= 0")


@dataclass(frozen=True)
class AutoFixRequest:
  full_response: str
  messages: list[Message]
  system_prompt: str
  producer: Producer
  max_attempts: int
  abort_signal: AbortSignal | None = None
  on_chunk: ChunkObserver | None = None


@dataclass(frozen=True)
class AutoFixOutcome:
  full_response: str
  attempts: int = 0


class AutoFixer(Protocol):
  def __call__(self, request: AutoFixRequest) -> Awaitable[AutoFixOutcome]: ...


class NoopAutoFixer:
  """Reports no problems, so the response is returned untouched."""

  async def __call__(self, request: AutoFixRequest) -> AutoFixOutcome:
    return AutoFixOutcome(full_response=request.full_response, attempts=0)


@dataclass(frozen=True)
class ProcessResult:
  full_response: str
  parsed_response: ParsedResponse
  was_truncated: bool
  auto_fix_attempts: int
  was_aborted: bool
  continuation_attempts: int = 0


class CodingLoop:
  def __init__(self, config: LoopConfig, auto_fixer: AutoFixer | None = None):
    self.config = config
    self.auto_fixer = auto_fixer or NoopAutoFixer()

  def build_messages(self, prompt: str, message_history: Sequence[Message] = (),
                     codebase_files: Sequence[CodebaseFile] = ()) -> list[Message]:
    return [
      Message("user", create_codebase_prompt(format_codebase_files(codebase_files))),
      Message("assistant", READY_REPLY),
      *message_history,
      Message("user", prompt),
    ]

  def system_prompt(self) -> str:
    return construct_system_prompt(
      self.config.chat_mode,
      ai_rules=self.config.ai_rules,
      enable_thinking=self.config.enable_thinking,
      enable_turbo_edits_v2=self.config.enable_turbo_edits_v2,
    )

  def _emit(self, on_event: EventCallback | None, type_: str, data=None) -> None:
    if on_event is not None:
      on_event(StreamEvent(type=type_, chat_id=self.config.chat_id, data=data))

  async def _stream(self, state: TurnState, producer: Producer, messages: list[Message], system: str,
                    abort_signal: AbortSignal | None, on_chunk: ChunkObserver | None,
                    on_event: EventCallback | None) -> None:
    # every producer call is a fresh stream, so the reasoning block state restarts
    state.thinking_open = False
    await stream_into(
      state,
      producer(messages, system, abort_signal),
      abort_signal=abort_signal,
      on_chunk=on_chunk,
      on_emit=lambda chunk: self._emit(on_event, "chunk", chunk),
    )

  async def process(
    self,
    prompt: str,
    producer: Producer,
    *,
    message_history: Sequence[Message] = (),
    codebase_files: Sequence[CodebaseFile] = (),
    system_prompt: str | None = None,
    abort_signal: AbortSignal | None = None,
    on_chunk: ChunkObserver | None = None,
    on_event: EventCallback | None = None,
  ) -> ProcessResult:
    """Run one turn: stream, continue while a write tag is left open, auto-fix, parse.

    Nothing is applied to disk here; see `apply_changes`.
    """
    cfg = self.config
    state = TurnState()
    system = system_prompt if system_prompt is not None else self.system_prompt()
    messages = self.build_messages(prompt, message_history, codebase_files)

    self._emit(on_event, "start")
    try:
      await self._stream(state, producer, messages, system, abort_signal, on_chunk, on_event)

      while (
        has_unclosed_write_tag(state.document)
        and state.continuation_rounds < cfg.max_continuation_attempts
        and not aborted(abort_signal)
      ):
        state.continuation_rounds += 1
        continuation = [*messages, Message("assistant", state.document)]
        await self._stream(state, producer, continuation, system, abort_signal, on_chunk, on_event)

      if cfg.enable_auto_fix and cfg.chat_mode == "build" and not aborted(abort_signal):
        outcome = await self.auto_fixer(AutoFixRequest(
          full_response=state.document,
          messages=messages,
          system_prompt=system,
          producer=producer,
          max_attempts=cfg.max_auto_fix_attempts,
          abort_signal=abort_signal,
          on_chunk=on_chunk,
        ))
        state.document = outcome.full_response
        state.auto_fix_rounds = outcome.attempts

      state.aborted = state.aborted or aborted(abort_signal)
      self._emit(on_event, "end", {"aborted": state.aborted})
    except Exception as e:
      if not aborted(abort_signal):
        self._emit(on_event, "error", e)
        raise
      state.aborted = True

    return ProcessResult(
      full_response=state.document,
      parsed_response=parse_response(state.document),
      was_truncated=has_unclosed_write_tag(state.document),
      auto_fix_attempts=state.auto_fix_rounds,
      was_aborted=state.aborted,
      continuation_attempts=state.continuation_rounds,
    )

  def apply_changes(
    self,
    repo: Path,
    parsed: ParsedResponse,
    *,
    diagnostics: Diagnostics | None = None,
    file_uploads: dict[str, UploadedFile] | None = None,
  ) -> ApplyManifest:
    return apply_file_changes(repo, parsed, diagnostics=diagnostics, file_uploads=file_uploads)

  def change_summary(self, manifest: ApplyManifest) -> str:
    return change_summary(manifest)


def create_coding_loop(chat_mode: str, auto_fixer: AutoFixer | None = None, **overrides) -> CodingLoop:
  return CodingLoop(replace(LoopConfig(chat_mode=chat_mode), **overrides), auto_fixer=auto_fixer)
