from __future__ import annotations
import fnmatch
import os
from pathlib import Path

from codeloop.messages import CodebaseFile

EXCLUDED_DIRS = [".git", ".venv", "node_modules", "logs", "__pycache__", "*.egg-info"]
EXCLUDED_FILES = ["*.pyc", ".env", "*.lock"]
MAX_FILE_BYTES = 100_000


def _excluded(name: str, patterns: list[str]) -> bool:
  return any(fnmatch.fnmatch(name, p) for p in patterns)


def _read_text(p: Path, max_bytes: int) -> str | None:
  try:
    if p.stat().st_size > max_bytes:
      return None
    data = p.read_bytes()
  except OSError as e:
    print(f"[warning] Could not read {p}: {e}")
    return None
  if b"\x00" in data:
    return None
  try:
    return data.decode("utf-8")
  except UnicodeDecodeError:
    return None


def collect_codebase_files(repo: Path, max_bytes: int = MAX_FILE_BYTES) -> list[CodebaseFile]:
  """Text files under `repo`, sorted by relative path, skipping build/VCS noise."""
  files: list[CodebaseFile] = []
  for dirpath, dirnames, filenames in os.walk(repo):
    dirnames[:] = sorted(d for d in dirnames if not _excluded(d, EXCLUDED_DIRS))
    for name in sorted(filenames):
      if _excluded(name, EXCLUDED_FILES):
        continue
      p = Path(dirpath) / name
      content = _read_text(p, max_bytes)
      if content is None:
        continue
      files.append(CodebaseFile(path=p.relative_to(repo).as_posix(), content=content))
  files.sort(key=lambda f: f.path)
  return files
