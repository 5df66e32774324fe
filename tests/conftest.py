"""Shared fixtures: scripted producers and diagnostics recorders."""

from __future__ import annotations

import pytest

from codeloop.apply import Diagnostics
from codeloop.stream import TEXT_DELTA, Fragment


class ScriptedProducer:
  """Producer that replays one fragment list per call and records its inputs."""

  def __init__(self, *rounds, fail_with: Exception | None = None):
    self.rounds = [list(r) for r in rounds]
    self.calls: list[tuple[list, str]] = []
    self.fail_with = fail_with

  async def __call__(self, messages, system, abort_signal=None):
    self.calls.append((list(messages), system))
    idx = len(self.calls) - 1
    for fragment in self.rounds[idx] if idx < len(self.rounds) else []:
      if isinstance(fragment, str):
        fragment = Fragment(TEXT_DELTA, fragment)
      yield fragment
    if self.fail_with is not None:
      raise self.fail_with


class RecordingDiagnostics:
  def __init__(self):
    self.logs: list[str] = []
    self.warnings: list[str] = []
    self.errors: list[tuple[str, BaseException | None]] = []

  def as_diagnostics(self) -> Diagnostics:
    return Diagnostics(
      log=self.logs.append,
      warn=self.warnings.append,
      error=lambda message, exc=None: self.errors.append((message, exc)),
    )


@pytest.fixture
def scripted_producer():
  return ScriptedProducer


@pytest.fixture
def diag():
  return RecordingDiagnostics()
