from __future__ import annotations
import os
from pathlib import Path


class PathEscapeError(ValueError):
  def __init__(self, root: str, relative: str):
    super().__init__(f"Path traversal attempt detected: {relative} escapes {root}")
    self.root = root
    self.relative = relative


def _normalize(p: str) -> str:
  # lexical only: symlinks are not followed
  return os.path.normpath(os.path.abspath(p))


def is_within(root: str | Path, path: str | Path) -> bool:
  base = _normalize(str(root))
  target = _normalize(str(path))
  if base == target:
    return True
  prefix = base if base.endswith(os.sep) else base + os.sep
  return target.startswith(prefix)


def safe_join(root: str | Path, relative: str) -> Path:
  base = _normalize(str(root))
  joined = _normalize(os.path.join(base, relative))
  # the root itself is not a valid target
  if joined == base or not is_within(base, joined):
    raise PathEscapeError(str(root), relative)
  return Path(joined)
