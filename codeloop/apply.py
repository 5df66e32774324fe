from __future__ import annotations
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from codeloop.operations import ParsedResponse
from codeloop.paths import safe_join


@dataclass(frozen=True)
class UploadedFile:
  file_path: str
  original_name: str


def _print_log(message: str) -> None:
  print(f"[ok] {message}", file=sys.stderr)


def _print_warn(message: str) -> None:
  print(f"[warning] {message}", file=sys.stderr)


def _print_error(message: str, error: BaseException | None = None) -> None:
  suffix = f": {error}" if error is not None else ""
  print(f"[error] {message}{suffix}", file=sys.stderr)


@dataclass(frozen=True)
class Diagnostics:
  log: Callable[[str], None] = _print_log
  warn: Callable[[str], None] = _print_warn
  error: Callable[[str, BaseException | None], None] = _print_error


@dataclass(frozen=True)
class ApplyManifest:
  written_files: list[str] = field(default_factory=list)
  renamed_files: list[str] = field(default_factory=list)
  deleted_files: list[str] = field(default_factory=list)
  added_packages: list[str] = field(default_factory=list)
  error: str | None = None

  @property
  def has_changes(self) -> bool:
    return bool(self.written_files or self.renamed_files or self.deleted_files)

  def to_dict(self) -> dict:
    return {
      "written_files": list(self.written_files),
      "renamed_files": list(self.renamed_files),
      "deleted_files": list(self.deleted_files),
      "added_packages": list(self.added_packages),
      "has_changes": self.has_changes,
      "error": self.error,
    }


def apply_file_changes(
  repo: Path,
  parsed: ParsedResponse,
  *,
  diagnostics: Diagnostics | None = None,
  file_uploads: dict[str, UploadedFile] | None = None,
) -> ApplyManifest:
  """Apply deletes, then renames, then writes under `repo`.

  Each operation fails on its own: the error is reported through
  `diagnostics` and collected into `ApplyManifest.error`, and the batch
  carries on with the next operation.
  """
  diag = diagnostics or Diagnostics()
  written: list[str] = []
  renamed: list[str] = []
  deleted: list[str] = []
  errors: list[str] = []

  def _fail(message: str, exc: BaseException) -> None:
    diag.error(message, exc)
    errors.append(message)

  for rel in parsed.delete_paths:
    try:
      p = safe_join(repo, rel)
      if p.is_dir() and not p.is_symlink():
        shutil.rmtree(p)
      elif p.exists() or p.is_symlink():
        p.unlink()
      else:
        diag.warn(f"File to delete does not exist: {rel}")
        continue
      diag.log(f"Successfully deleted: {rel}")
      deleted.append(rel)
    except (ValueError, OSError) as e:
      _fail(f"Failed to delete: {rel}", e)

  for tag in parsed.rename_tags:
    try:
      src = safe_join(repo, tag.from_path)
      dst = safe_join(repo, tag.to_path)
      dst.parent.mkdir(parents=True, exist_ok=True)
      if not src.exists():
        diag.warn(f"Source file for rename does not exist: {tag.from_path}")
        continue
      src.rename(dst)
      diag.log(f"Successfully renamed: {tag.from_path} -> {tag.to_path}")
      renamed.append(tag.to_path)
    except (ValueError, OSError) as e:
      _fail(f"Failed to rename: {tag.from_path} -> {tag.to_path}", e)

  for tag in parsed.write_tags:
    try:
      p = safe_join(repo, tag.path)
      content: str | bytes = tag.content
      if file_uploads:
        key = tag.content.strip()
        upload = file_uploads.get(key)
        if upload is not None:
          content = Path(upload.file_path).read_bytes()
          diag.log(f"Replaced file ID {key} with content from {upload.original_name}")
      p.parent.mkdir(parents=True, exist_ok=True)
      if isinstance(content, bytes):
        p.write_bytes(content)
      else:
        p.write_text(content, encoding="utf-8")
      diag.log(f"Successfully wrote: {tag.path}")
      written.append(tag.path)
    except (ValueError, OSError) as e:
      _fail(f"Failed to write: {tag.path}", e)

  return ApplyManifest(
    written_files=written,
    renamed_files=renamed,
    deleted_files=deleted,
    added_packages=list(parsed.add_dependencies),
    error="; ".join(errors) if errors else None,
  )


def change_summary(manifest: ApplyManifest) -> str:
  parts: list[str] = []
  if manifest.written_files:
    parts.append(f"wrote {len(manifest.written_files)} file(s)")
  if manifest.renamed_files:
    parts.append(f"renamed {len(manifest.renamed_files)} file(s)")
  if manifest.deleted_files:
    parts.append(f"deleted {len(manifest.deleted_files)} file(s)")
  if manifest.added_packages:
    parts.append(f"added {', '.join(manifest.added_packages)} package(s)")
  return ", ".join(parts)
