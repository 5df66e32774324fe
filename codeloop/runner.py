from __future__ import annotations
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from codeloop.project_config import CheckCmd
from codeloop.task_logging import TurnLog


@dataclass(frozen=True)
class CmdResult:
  cmd: list[str]
  returncode: int
  stdout: str
  stderr: str


class CmdError(RuntimeError):
  def __init__(self, result: CmdResult):
    super().__init__(f"Command failed: {result.cmd} (rc={result.returncode})")
    self.result = result


def run_cmd(repo: Path, cmd: list[str], timeout: float | None = None) -> CmdResult:
  try:
    p = subprocess.run(cmd, cwd=str(repo), capture_output=True, text=True, timeout=timeout)
  except FileNotFoundError as e:
    raise CmdError(CmdResult(cmd=cmd, returncode=127, stdout="", stderr=str(e))) from e
  res = CmdResult(cmd=cmd, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")
  if res.returncode != 0:
    raise CmdError(res)
  return res


def run_checks(repo: Path, checks: Iterable[CheckCmd], log: TurnLog | None = None) -> list[str]:
  """Run every check, logging its output. Returns the names of the failed ones."""
  failed: list[str] = []
  for c in checks:
    try:
      res = run_cmd(repo, c.cmd)
    except CmdError as e:
      res = e.result
      failed.append(c.name)
    if log is not None:
      log.write_text(f"check_{c.name}_stdout.txt", res.stdout)
      log.write_text(f"check_{c.name}_stderr.txt", res.stderr)
  return failed
