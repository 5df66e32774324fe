"""Tests for folding answer/reasoning fragments into one tagged document."""

from __future__ import annotations

import asyncio

import pytest

from codeloop.operations import parse_response
from codeloop.stream import (
  REASONING_DELTA,
  REASONING_END,
  REASONING_START,
  TEXT_DELTA,
  THINK_CLOSE,
  THINK_OPEN,
  TOOL_CALL,
  Fragment,
  TurnState,
  multiplex,
  stream_into,
)


async def _aiter(fragments):
  for f in fragments:
    yield f


async def _fold(fragments, **kwargs) -> TurnState:
  return await stream_into(TurnState(), _aiter(fragments), **kwargs)


class TestMultiplex:
  def test_answer_outside_reasoning_is_verbatim(self):
    assert multiplex(False, Fragment(TEXT_DELTA, "x")) == (False, "x")

  def test_reasoning_opens_block(self):
    assert multiplex(False, Fragment(REASONING_DELTA, "a")) == (True, THINK_OPEN + "a")

  def test_reasoning_inside_block_continues(self):
    assert multiplex(True, Fragment(REASONING_DELTA, "b")) == (True, "b")

  def test_answer_closes_block(self):
    assert multiplex(True, Fragment(TEXT_DELTA, "c")) == (False, THINK_CLOSE + "c")

  def test_other_kinds_close_block(self):
    assert multiplex(True, Fragment(TOOL_CALL, "")) == (False, THINK_CLOSE)

  @pytest.mark.parametrize("kind", [REASONING_START, REASONING_END])
  def test_reasoning_markers_keep_state(self, kind):
    assert multiplex(True, Fragment(kind)) == (True, "")
    assert multiplex(False, Fragment(kind)) == (False, "")

  def test_empty_text_emits_nothing(self):
    assert multiplex(False, Fragment(TEXT_DELTA, "")) == (False, "")
    assert multiplex(False, Fragment(REASONING_DELTA, "")) == (False, "")

  def test_reasoning_text_is_escaped(self):
    _, chunk = multiplex(False, Fragment(REASONING_DELTA, 'maybe <dyad-write path="a">x</dyad-write>'))
    assert "<dyad-write" not in chunk
    assert chunk.startswith(THINK_OPEN)


class TestStreamInto:
  @pytest.mark.asyncio
  async def test_reasoning_then_answer(self):
    state = await _fold([
      Fragment(REASONING_DELTA, "a"),
      Fragment(REASONING_DELTA, "b"),
      Fragment(TEXT_DELTA, "c"),
    ])
    assert state.document == THINK_OPEN + "a" + "b" + THINK_CLOSE + "c"
    assert state.thinking_open is False

  @pytest.mark.asyncio
  async def test_answer_only_has_no_markers(self):
    state = await _fold([Fragment(TEXT_DELTA, "x")])
    assert state.document == "x"

  @pytest.mark.asyncio
  async def test_reasoning_cannot_inject_operations(self):
    state = await _fold([
      Fragment(REASONING_DELTA, 'I could emit <dyad-delete path="src/main.ts"></dyad-delete>'),
      Fragment(TEXT_DELTA, "Done."),
    ])
    assert parse_response(state.document).delete_paths == []

  @pytest.mark.asyncio
  async def test_observer_result_becomes_the_document(self):
    seen: list[tuple[str, str]] = []

    async def observer(document: str, chunk: str) -> str:
      seen.append((document, chunk))
      return document.upper()

    state = await _fold([Fragment(TEXT_DELTA, "ab"), Fragment(TEXT_DELTA, "cd")], on_chunk=observer)
    assert seen == [("ab", "ab"), ("ABcd", "cd")]
    assert state.document == "ABCD"

  @pytest.mark.asyncio
  async def test_observer_skipped_for_empty_emissions(self):
    calls = []

    async def observer(document: str, chunk: str) -> str:
      calls.append(chunk)
      return document

    await _fold([Fragment(REASONING_START), Fragment(TEXT_DELTA, "x"), Fragment(TEXT_DELTA, "")], on_chunk=observer)
    assert calls == ["x"]

  @pytest.mark.asyncio
  async def test_appends_to_existing_document(self):
    state = TurnState(document="prefix:")
    await stream_into(state, _aiter([Fragment(TEXT_DELTA, "more")]))
    assert state.document == "prefix:more"

  @pytest.mark.asyncio
  async def test_abort_checked_before_each_fragment(self):
    abort = asyncio.Event()

    async def observer(document: str, chunk: str) -> str:
      if chunk == "b":
        abort.set()
      return document

    state = await _fold(
      [Fragment(TEXT_DELTA, t) for t in "abcd"],
      abort_signal=abort,
      on_chunk=observer,
    )
    assert state.document == "ab"
    assert state.aborted is True

  @pytest.mark.asyncio
  async def test_abort_closes_the_source(self):
    closed = []

    async def source():
      try:
        yield Fragment(TEXT_DELTA, "a")
        yield Fragment(TEXT_DELTA, "b")
      finally:
        closed.append(True)

    abort = asyncio.Event()
    abort.set()
    state = await stream_into(TurnState(), source(), abort_signal=abort)
    assert state.document == ""
    assert closed == [True]

  @pytest.mark.asyncio
  async def test_on_emit_sees_every_chunk(self):
    emitted = []
    await _fold([Fragment(REASONING_DELTA, "r"), Fragment(TEXT_DELTA, "t")], on_emit=emitted.append)
    assert emitted == [THINK_OPEN + "r", THINK_CLOSE + "t"]
