from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from codeloop.llm import LLMConfig
from codeloop.loop import LoopConfig

CONFIG_PATH = Path("docs") / "codeloop.yaml"


@dataclass(frozen=True)
class CheckCmd:
  name: str
  cmd: list[str]


@dataclass(frozen=True)
class ProjectConfig:
  loop: LoopConfig = field(default_factory=LoopConfig)
  llm: LLMConfig = field(default_factory=LLMConfig)
  checks: list[CheckCmd] = field(default_factory=list)


def _section(data: dict, key: str, cls):
  raw = data.get(key, {}) or {}
  if not isinstance(raw, dict):
    raise ValueError(f"{key} must be a dict")
  known = {f.name for f in fields(cls)}
  unknown = sorted(set(raw) - known)
  if unknown:
    raise ValueError(f"{key}: unknown keys: {', '.join(unknown)}")
  return cls(**raw)


def load_project_config(repo: Path) -> ProjectConfig:
  p = repo / CONFIG_PATH
  if not p.exists():
    return ProjectConfig()
  data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
  if not isinstance(data, dict):
    raise ValueError(f"{p} must contain a mapping")
  checks_raw = data.get("checks", []) or []
  checks: list[CheckCmd] = []
  for i, item in enumerate(checks_raw):
    if not isinstance(item, dict):
      raise ValueError(f"checks[{i}] must be a dict")
    name = str(item.get("name", "")).strip()
    cmd = list(item.get("cmd", []) or [])
    if not name or not cmd:
      raise ValueError(f"checks[{i}] must have name and cmd")
    checks.append(CheckCmd(name=name, cmd=[str(x) for x in cmd]))
  return ProjectConfig(
    loop=_section(data, "loop", LoopConfig),
    llm=_section(data, "llm", LLMConfig),
    checks=checks,
  )
