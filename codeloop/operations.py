from __future__ import annotations
from dataclasses import dataclass, field

from codeloop.tags import SCANNERS, get_attr, normalize_path, strip_code_fences


COMMAND_TYPES = ("rebuild", "restart", "refresh")


@dataclass(frozen=True)
class WriteTag:
  path: str
  content: str
  description: str | None = None


@dataclass(frozen=True)
class RenameTag:
  from_path: str
  to_path: str


@dataclass(frozen=True)
class SearchReplaceTag:
  path: str
  content: str
  description: str | None = None


@dataclass(frozen=True)
class SqlQueryTag:
  content: str
  description: str | None = None


@dataclass(frozen=True)
class ParsedResponse:
  write_tags: list[WriteTag] = field(default_factory=list)
  rename_tags: list[RenameTag] = field(default_factory=list)
  delete_paths: list[str] = field(default_factory=list)
  add_dependencies: list[str] = field(default_factory=list)
  search_replace_tags: list[SearchReplaceTag] = field(default_factory=list)
  sql_queries: list[SqlQueryTag] = field(default_factory=list)
  commands: list[str] = field(default_factory=list)
  chat_summary: str | None = None

  @property
  def has_file_operations(self) -> bool:
    return bool(self.write_tags or self.rename_tags or self.delete_paths or self.search_replace_tags)

  def counts(self) -> dict[str, int]:
    return {
      "write": len(self.write_tags),
      "rename": len(self.rename_tags),
      "delete": len(self.delete_paths),
      "add_dependency": len(self.add_dependencies),
      "search_replace": len(self.search_replace_tags),
      "execute_sql": len(self.sql_queries),
      "command": len(self.commands),
      "chat_summary": 1 if self.chat_summary is not None else 0,
    }

  def to_dict(self) -> dict:
    return {
      "write_tags": [{"path": t.path, "description": t.description, "content": t.content} for t in self.write_tags],
      "rename_tags": [{"from": t.from_path, "to": t.to_path} for t in self.rename_tags],
      "delete_paths": list(self.delete_paths),
      "add_dependencies": list(self.add_dependencies),
      "search_replace_tags": [{"path": t.path, "description": t.description, "content": t.content} for t in self.search_replace_tags],
      "sql_queries": [{"description": q.description, "content": q.content} for q in self.sql_queries],
      "commands": list(self.commands),
      "chat_summary": self.chat_summary,
    }


def get_write_tags(full_response: str) -> list[WriteTag]:
  tags: list[WriteTag] = []
  for m in SCANNERS["write"].scan(full_response):
    path = get_attr(m.attrs, "path")
    if not path:
      continue
    tags.append(WriteTag(
      path=normalize_path(path),
      content=strip_code_fences(m.body.strip()),
      description=get_attr(m.attrs, "description"),
    ))
  return tags


def get_rename_tags(full_response: str) -> list[RenameTag]:
  return [
    RenameTag(from_path=normalize_path(m.groups[0]), to_path=normalize_path(m.groups[1]))
    for m in SCANNERS["rename"].scan(full_response)
  ]


def get_delete_paths(full_response: str) -> list[str]:
  return [normalize_path(m.groups[0]) for m in SCANNERS["delete"].scan(full_response)]


def get_add_dependency_packages(full_response: str) -> list[str]:
  packages: list[str] = []
  for m in SCANNERS["add-dependency"].scan(full_response):
    packages.extend(p for p in m.groups[0].split() if p)
  return packages


def get_search_replace_tags(full_response: str) -> list[SearchReplaceTag]:
  tags: list[SearchReplaceTag] = []
  for m in SCANNERS["search-replace"].scan(full_response):
    path = get_attr(m.attrs, "path")
    if not path:
      continue
    tags.append(SearchReplaceTag(
      path=normalize_path(path),
      content=strip_code_fences(m.body.strip()),
      description=get_attr(m.attrs, "description"),
    ))
  return tags


def get_sql_query_tags(full_response: str) -> list[SqlQueryTag]:
  return [
    SqlQueryTag(content=strip_code_fences(m.body.strip()), description=get_attr(m.attrs, "description"))
    for m in SCANNERS["execute-sql"].scan(full_response)
  ]


def get_command_tags(full_response: str) -> list[str]:
  return [m.groups[0] for m in SCANNERS["command"].scan(full_response) if m.groups[0] in COMMAND_TYPES]


def get_chat_summary(full_response: str) -> str | None:
  # first occurrence only
  m = SCANNERS["chat-summary"].first(full_response)
  return m.body.strip() if m else None


def parse_response(full_response: str) -> ParsedResponse:
  return ParsedResponse(
    write_tags=get_write_tags(full_response),
    rename_tags=get_rename_tags(full_response),
    delete_paths=get_delete_paths(full_response),
    add_dependencies=get_add_dependency_packages(full_response),
    search_replace_tags=get_search_replace_tags(full_response),
    sql_queries=get_sql_query_tags(full_response),
    commands=get_command_tags(full_response),
    chat_summary=get_chat_summary(full_response),
  )
