from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterator


TAG_NAMESPACE = "dyad"
TAG_PREFIX = TAG_NAMESPACE + "-"

_ATTRS = r"([^>]*)"
_BODY = r"([\s\S]*?)"


@dataclass(frozen=True)
class TagMatch:
  kind: str
  start: int
  end: int
  attrs: str
  body: str
  groups: tuple[str, ...] = ()


@dataclass(frozen=True)
class TagScanner:
  """Finds closed occurrences of one tag kind in free-form text.

  A dangling opening marker without its closing marker produces no match,
  so scanning a half-streamed document is always safe.
  """
  kind: str
  pattern: re.Pattern[str]
  attrs_group: int | None = None
  body_group: int | None = None

  def scan(self, text: str) -> Iterator[TagMatch]:
    for m in self.pattern.finditer(text):
      attrs = m.group(self.attrs_group) if self.attrs_group else ""
      body = m.group(self.body_group) if self.body_group else ""
      yield TagMatch(
        kind=self.kind,
        start=m.start(),
        end=m.end(),
        attrs=attrs or "",
        body=body or "",
        groups=m.groups(),
      )

  def first(self, text: str) -> TagMatch | None:
    return next(self.scan(text), None)


def _tag(name: str) -> str:
  return TAG_PREFIX + name


def _generic(name: str, flags: int = 0) -> TagScanner:
  tag = _tag(name)
  return TagScanner(
    kind=name,
    pattern=re.compile(rf"<{tag}{_ATTRS}>{_BODY}</{tag}>", flags),
    attrs_group=1,
    body_group=2,
  )


SCANNERS: dict[str, TagScanner] = {
  "write": _generic("write", re.IGNORECASE),
  "rename": TagScanner(
    kind="rename",
    pattern=re.compile(rf'<{_tag("rename")} from="([^"]+)" to="([^"]+)"[^>]*>{_BODY}</{_tag("rename")}>'),
    body_group=3,
  ),
  "delete": TagScanner(
    kind="delete",
    pattern=re.compile(rf'<{_tag("delete")} path="([^"]+)"[^>]*>{_BODY}</{_tag("delete")}>'),
    body_group=2,
  ),
  "add-dependency": TagScanner(
    kind="add-dependency",
    pattern=re.compile(rf'<{_tag("add-dependency")} packages="([^"]+)">[^<]*</{_tag("add-dependency")}>'),
  ),
  "search-replace": _generic("search-replace", re.IGNORECASE),
  "execute-sql": _generic("execute-sql"),
  "command": TagScanner(
    kind="command",
    pattern=re.compile(rf'<{_tag("command")} type="([^"]+)"[^>]*></{_tag("command")}>'),
  ),
  "chat-summary": TagScanner(
    kind="chat-summary",
    pattern=re.compile(rf"<{_tag('chat-summary')}>{_BODY}</{_tag('chat-summary')}>"),
    body_group=1,
  ),
}

_ATTR_RES: dict[str, re.Pattern[str]] = {}


def get_attr(attrs: str, name: str) -> str | None:
  """Value of `name="..."` in an attribute string. Empty values count as absent."""
  rx = _ATTR_RES.get(name)
  if rx is None:
    rx = _ATTR_RES[name] = re.compile(rf'{re.escape(name)}="([^"]+)"')
  m = rx.search(attrs)
  return m.group(1) if m else None


def normalize_path(path: str) -> str:
  return path.replace("\\", "/")


def strip_code_fences(content: str) -> str:
  lines = content.split("\n")
  if lines and lines[0].startswith("```"):
    lines.pop(0)
  if lines and lines[-1].startswith("```"):
    lines.pop()
  return "\n".join(lines)


_WRITE_OPEN_RE = re.compile(rf"<{_tag('write')}[^>]*>")
_WRITE_CLOSE = f"</{_tag('write')}>"


def has_unclosed_write_tag(text: str) -> bool:
  last_open = -1
  for m in _WRITE_OPEN_RE.finditer(text):
    last_open = m.start()
  if last_open == -1:
    return False
  return _WRITE_CLOSE not in text[last_open:]


def escape_tags(text: str) -> str:
  # U+FF1C looks like "<" but never opens a tag
  return text.replace(f"<{TAG_NAMESPACE}", f"＜{TAG_NAMESPACE}").replace(f"</{TAG_NAMESPACE}", f"＜/{TAG_NAMESPACE}")


_ANY_TAG_RE = re.compile(rf"<{TAG_PREFIX}[^>]*>[\s\S]*?</{TAG_PREFIX}[^>]*>")
_THINK_RE = re.compile(r"<think>[\s\S]*?</think>")
_PROBLEM_REPORT_RE = re.compile(rf"<{_tag('problem-report')}[^>]*>[\s\S]*?</{_tag('problem-report')}>")


def remove_tags(text: str) -> str:
  return _ANY_TAG_RE.sub("", text).strip()


def remove_thinking_tags(text: str) -> str:
  return _THINK_RE.sub("", text).strip()


def remove_problem_report_tags(text: str) -> str:
  return _PROBLEM_REPORT_RE.sub("", text).strip()


def remove_non_essential_tags(text: str) -> str:
  return remove_problem_report_tags(remove_thinking_tags(text))
