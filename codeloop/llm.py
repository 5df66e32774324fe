from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from openai import AsyncOpenAI, OpenAIError

from codeloop.messages import Message
from codeloop.stream import (
  REASONING_DELTA, REASONING_END, REASONING_START, TEXT_DELTA, AbortSignal, Fragment, aborted,
)

load_dotenv()


@dataclass(frozen=True)
class LLMConfig:
  model: str = "gpt-5-mini"
  max_output_tokens: int = 16000
  reasoning_effort: str | None = "low"  # None disables reasoning summaries

  def __post_init__(self):
    if not isinstance(self.model, str) or not self.model:
      raise ValueError(f"model must be a non-empty string: {self.model!r}")
    if isinstance(self.max_output_tokens, bool) or not isinstance(self.max_output_tokens, int) \
        or self.max_output_tokens <= 0:
      raise ValueError(f"max_output_tokens must be a positive int: {self.max_output_tokens!r}")
    if self.reasoning_effort is not None and not isinstance(self.reasoning_effort, str):
      raise ValueError(f"reasoning_effort must be a string or null: {self.reasoning_effort!r}")


class ProducerError(RuntimeError):
  pass


# Responses API stream event -> fragment type
EVENT_FRAGMENTS = {
  "response.output_text.delta": TEXT_DELTA,
  "response.reasoning_summary_text.delta": REASONING_DELTA,
  "response.reasoning_text.delta": REASONING_DELTA,
  "response.reasoning_summary_part.added": REASONING_START,
  "response.reasoning_summary_part.done": REASONING_END,
}

FAILURE_EVENTS = ("error", "response.failed")


def event_to_fragment(event: Any) -> Fragment | None:
  kind = EVENT_FRAGMENTS.get(getattr(event, "type", ""))
  if kind is None:
    return None
  return Fragment(type=kind, text=getattr(event, "delta", "") or "")


def _failure_message(event: Any) -> str:
  message = getattr(event, "message", None)
  if message:
    return str(message)
  response = getattr(event, "response", None)
  error = getattr(response, "error", None)
  return str(getattr(error, "message", None) or "LLM stream failed")


class LLM:
  """Streams a Responses API answer as answer/reasoning fragments.

  An instance is a producer for `CodingLoop.process`.
  """

  def __init__(self, cfg: LLMConfig, client: AsyncOpenAI | None = None):
    if client is None:
      api_key = os.environ.get("OPENAI_API_KEY")
      if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not set")
      client = AsyncOpenAI(api_key=api_key)
    self.client = client
    self.cfg = cfg

  def request(self, messages: list[Message], system: str) -> dict[str, Any]:
    input_chain = [{"role": "system", "content": system}] + [
      {"role": m.role, "content": m.content} for m in messages
    ]
    kwargs: dict[str, Any] = {
      "model": self.cfg.model,
      "input": input_chain,
      "max_output_tokens": self.cfg.max_output_tokens,
      "stream": True,
    }
    if self.cfg.reasoning_effort:
      kwargs["reasoning"] = {"effort": self.cfg.reasoning_effort, "summary": "auto"}
    return kwargs

  async def __call__(self, messages: list[Message], system: str,
                     abort_signal: AbortSignal | None = None) -> AsyncIterator[Fragment]:
    try:
      stream = await self.client.responses.create(**self.request(messages, system))
    except OpenAIError as e:
      raise ProducerError(f"LLM request failed: {e}") from e

    emitted = False
    try:
      async for event in stream:
        if aborted(abort_signal):
          break
        if getattr(event, "type", "") in FAILURE_EVENTS:
          raise ProducerError(_failure_message(event))
        fragment = event_to_fragment(event)
        if fragment is None:
          continue
        emitted = emitted or bool(fragment.text)
        yield fragment
    except OpenAIError as e:
      raise ProducerError(f"LLM stream failed: {e}") from e
    finally:
      await stream.close()

    if not emitted and not aborted(abort_signal):
      print("[warning] LLM response is empty")
