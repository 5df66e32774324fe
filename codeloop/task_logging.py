from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class TurnLog:
  root: Path  # .../project/logs/turn_<label>/<timestamp>/

  def write_text(self, name: str, text: str) -> Path:
    p = self.root / name
    p.write_text(text, encoding="utf-8")
    return p

  def write_json(self, name: str, obj) -> Path:
    p = self.root / name
    p.write_text(json.dumps(obj, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return p


def make_turn_log_dir(project_repo: Path, label: str) -> TurnLog:
  logs_root = project_repo / "logs"
  ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
  turn_root = logs_root / f"turn_{label}" / ts
  turn_root.mkdir(parents=True, exist_ok=True)
  return TurnLog(root=turn_root)
