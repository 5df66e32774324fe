from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class Message:
  role: str  # "user" | "assistant" | "system"
  content: str


@dataclass(frozen=True)
class CodebaseFile:
  path: str
  content: str
  focused: bool = False
  force: bool = False


@dataclass(frozen=True)
class StreamEvent:
  type: str  # "start" | "chunk" | "end" | "error"
  chat_id: int = 0
  data: Any = None


EventCallback = Callable[[StreamEvent], None]
