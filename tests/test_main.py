"""Tests for the run, parse and apply CLI commands."""

from __future__ import annotations

import json
import sys

import pytest

from codeloop.llm import ProducerError
from codeloop.main import main
from codeloop.stream import TEXT_DELTA, Fragment


RESPONSE = (
  'Sure.\n<dyad-write path="src/a.ts">export const a = 1;</dyad-write>\n'
  '<dyad-add-dependency packages="zod"></dyad-add-dependency>\n'
  "<dyad-chat-summary>Add a</dyad-chat-summary>\n"
)


def _response_file(tmp_path, text: str = RESPONSE):
  p = tmp_path / "response.txt"
  p.write_text(text, encoding="utf-8")
  return p


def _repo(tmp_path):
  repo = tmp_path / "repo"
  repo.mkdir()
  return repo


def test_parse_prints_counts(tmp_path, capsys):
  rc = main(["--repo", str(tmp_path), "parse", str(_response_file(tmp_path))])
  out = json.loads(capsys.readouterr().out)
  assert rc == 0
  assert out["counts"]["write"] == 1
  assert out["counts"]["add_dependency"] == 1
  assert out["truncated"] is False
  assert out["chat_summary"] == "Add a"


def test_apply_writes_files_and_logs(tmp_path, capsys):
  repo = _repo(tmp_path)
  rc = main(["--repo", str(repo), "apply", str(_response_file(tmp_path))])
  out = capsys.readouterr().out
  assert rc == 0
  assert (repo / "src" / "a.ts").read_text(encoding="utf-8") == "export const a = 1;"
  assert "[ok] wrote 1 file(s), added zod package(s)" in out
  manifests = list((repo / "logs").rglob("manifest.json"))
  assert len(manifests) == 1
  assert json.loads(manifests[0].read_text(encoding="utf-8"))["written_files"] == ["src/a.ts"]


def test_apply_reports_failed_operations(tmp_path, capsys):
  repo = _repo(tmp_path)
  text = '<dyad-write path="../escape.txt">x</dyad-write>'
  rc = main(["--repo", str(repo), "apply", str(_response_file(tmp_path, text))])
  assert rc == 6
  assert "Failed to write: ../escape.txt" in capsys.readouterr().err
  assert not (tmp_path / "escape.txt").exists()


def test_apply_runs_checks(tmp_path, capsys):
  repo = _repo(tmp_path)
  (repo / "docs").mkdir()
  (repo / "docs" / "codeloop.yaml").write_text(json.dumps({
    "checks": [
      {"name": "pass", "cmd": [sys.executable, "-c", "print('fine')"]},
      {"name": "fail", "cmd": [sys.executable, "-c", "import sys; sys.exit(3)"]},
    ],
  }), encoding="utf-8")
  rc = main(["--repo", str(repo), "apply", str(_response_file(tmp_path))])
  assert rc == 6
  assert "[stop] checks failed: fail" in capsys.readouterr().err
  assert list((repo / "logs").rglob("check_pass_stdout.txt"))[0].read_text(encoding="utf-8").strip() == "fine"


def test_missing_repo(tmp_path, capsys):
  assert main(["--repo", str(tmp_path / "nope"), "apply", "x"]) == 2
  assert "repo path does not exist" in capsys.readouterr().err


def test_repo_is_required_for_apply(tmp_path, capsys):
  assert main(["apply", str(_response_file(tmp_path))]) == 2
  assert "--repo is required for apply" in capsys.readouterr().err


def test_parse_does_not_need_a_repo(tmp_path, capsys):
  assert main(["parse", str(_response_file(tmp_path))]) == 0
  assert json.loads(capsys.readouterr().out)["counts"]["write"] == 1


def test_invalid_config(tmp_path, capsys):
  repo = _repo(tmp_path)
  (repo / "docs").mkdir()
  (repo / "docs" / "codeloop.yaml").write_text("loop:\n  chat_mode: yolo\n", encoding="utf-8")
  assert main(["--repo", str(repo), "apply", str(_response_file(tmp_path))]) == 3
  assert "[error] invalid project config" in capsys.readouterr().err


class TestRun:
  @pytest.fixture
  def use_producer(self, monkeypatch):
    configs = []

    def _install(producer):
      def _factory(cfg):
        configs.append(cfg)
        return producer
      monkeypatch.setattr("codeloop.main.LLM", _factory)
      return configs
    return _install

  def test_streams_and_applies(self, tmp_path, capsys, scripted_producer, use_producer):
    repo = _repo(tmp_path)
    configs = use_producer(scripted_producer([RESPONSE]))
    rc = main(["--repo", str(repo), "run", "add a", "--model", "gpt-test"])
    out = capsys.readouterr().out
    assert rc == 0
    assert configs[0].model == "gpt-test"
    assert (repo / "src" / "a.ts").read_text(encoding="utf-8") == "export const a = 1;"
    assert "  write   src/a.ts" in out
    assert len(list((repo / "logs").rglob("manifest.json"))) == 1

  def test_no_apply_leaves_repo_untouched(self, tmp_path, capsys, scripted_producer, use_producer):
    repo = _repo(tmp_path)
    use_producer(scripted_producer([RESPONSE]))
    rc = main(["--repo", str(repo), "run", "add a", "--no-apply"])
    assert rc == 0
    assert "[ok] not applied" in capsys.readouterr().out
    assert not (repo / "src").exists()
    assert list((repo / "logs").rglob("parsed.json"))

  def test_ask_mode_prints_answer_without_tags(self, tmp_path, capsys, scripted_producer, use_producer):
    repo = _repo(tmp_path)
    use_producer(scripted_producer(['Use a map.<dyad-write path="a.ts">x</dyad-write>']))
    rc = main(["--repo", str(repo), "run", "question", "--mode", "ask"])
    out = capsys.readouterr().out
    assert rc == 0
    assert out.splitlines()[-1] == "Use a map."
    assert not (repo / "a.ts").exists()

  def test_abort_mid_stream_applies_nothing(self, tmp_path, capsys, use_producer):
    repo = _repo(tmp_path)

    async def interrupted(messages, system, abort_signal=None):
      yield Fragment(TEXT_DELTA, '<dyad-write path="a.ts">x</dyad-write>')
      abort_signal.set()
      yield Fragment(TEXT_DELTA, '<dyad-write path="b.ts">y</dyad-write>')

    use_producer(interrupted)
    rc = main(["--repo", str(repo), "run", "p"])
    assert rc == 130
    assert "[stop] aborted" in capsys.readouterr().out
    assert not (repo / "a.ts").exists()
    assert not (repo / "b.ts").exists()
    assert not list((repo / "logs").rglob("manifest.json"))
    turn = json.loads(list((repo / "logs").rglob("turn.json"))[0].read_text(encoding="utf-8"))
    assert turn["was_aborted"] is True

  def test_producer_failure_exits_1(self, tmp_path, capsys, scripted_producer, use_producer):
    repo = _repo(tmp_path)
    use_producer(scripted_producer(["partial"], fail_with=ProducerError("LLM request failed: quota")))
    rc = main(["--repo", str(repo), "run", "p"])
    assert rc == 1
    assert "[error] LLM request failed: quota" in capsys.readouterr().err
    assert list((repo / "logs").rglob("producer_error.txt"))

  def test_missing_api_key_is_a_config_error(self, tmp_path, capsys, monkeypatch):
    repo = _repo(tmp_path)

    def _no_key(cfg):
      raise RuntimeError("OPENAI_API_KEY is not set")

    monkeypatch.setattr("codeloop.main.LLM", _no_key)
    assert main(["--repo", str(repo), "run", "p"]) == 3
    assert "OPENAI_API_KEY is not set" in capsys.readouterr().err
