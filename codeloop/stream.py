from __future__ import annotations
from dataclasses import dataclass
from typing import AsyncIterable, Awaitable, Callable, Protocol

from codeloop.tags import escape_tags


THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

TEXT_DELTA = "text-delta"
REASONING_DELTA = "reasoning-delta"
REASONING_START = "reasoning-start"
REASONING_END = "reasoning-end"
TOOL_CALL = "tool-call"
TOOL_RESULT = "tool-result"

REASONING_TYPES = (REASONING_DELTA, REASONING_START, REASONING_END)


@dataclass(frozen=True)
class Fragment:
  type: str
  text: str = ""


class AbortSignal(Protocol):
  def is_set(self) -> bool: ...


ChunkObserver = Callable[[str, str], Awaitable[str]]


@dataclass
class TurnState:
  document: str = ""
  continuation_rounds: int = 0
  auto_fix_rounds: int = 0
  aborted: bool = False
  thinking_open: bool = False


def multiplex(in_thinking: bool, fragment: Fragment) -> tuple[bool, str]:
  """One step of the answer/reasoning fold: returns (in_thinking, emitted text)."""
  chunk = ""
  if in_thinking and fragment.type not in REASONING_TYPES:
    chunk = THINK_CLOSE
    in_thinking = False

  if fragment.type == TEXT_DELTA and fragment.text:
    chunk += fragment.text
  elif fragment.type == REASONING_DELTA and fragment.text:
    if not in_thinking:
      chunk = THINK_OPEN
      in_thinking = True
    chunk += escape_tags(fragment.text)
  return in_thinking, chunk


def aborted(signal: AbortSignal | None) -> bool:
  return signal is not None and signal.is_set()


async def stream_into(
  state: TurnState,
  fragments: AsyncIterable[Fragment],
  *,
  abort_signal: AbortSignal | None = None,
  on_chunk: ChunkObserver | None = None,
  on_emit: Callable[[str], None] | None = None,
) -> TurnState:
  """Fold a fragment stream into `state.document`.

  The observer may rewrite the accumulated document; whatever it returns is
  the base for the next append.
  """
  async for fragment in fragments:
    if aborted(abort_signal):
      state.aborted = True
      aclose = getattr(fragments, "aclose", None)
      if aclose is not None:
        await aclose()
      break
    state.thinking_open, chunk = multiplex(state.thinking_open, fragment)
    if not chunk:
      continue
    state.document += chunk
    if on_emit is not None:
      on_emit(chunk)
    if on_chunk is not None:
      state.document = await on_chunk(state.document, chunk)
  return state
