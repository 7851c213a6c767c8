import asyncio

import pytest

from stagebot import review
from stagebot.config import ReviewSettings
from stagebot.errors import ConfigError
from stagebot.review import ReviewPipeline

FOO_SOURCE = "".join(f"line {i}\n" for i in range(1, 60))


class FakeModel:
    """Records each request and answers with a canned reply."""

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        return self.reply


def test_prepare_uses_supplied_sources(foo_diff):
    prepared = ReviewPipeline().prepare(foo_diff, sources={"Foo.cs": FOO_SOURCE})
    assert [p.file_path for p in prepared.patches] == ["Foo.cs"]
    assert prepared.prompt.style == "optimized"
    assert "FULL FILE CONTEXT (for better understanding):" in prepared.prompt.user
    assert "  42: line 42 ←CHANGED" in prepared.prompt.user
    assert "42: +     _log.Info(secret);  ← NEW LINE" in prepared.prompt.user


def test_prepare_reads_working_tree(tmp_path, foo_diff):
    (tmp_path / "Foo.cs").write_text(FOO_SOURCE, encoding="utf-8")
    prepared = ReviewPipeline().prepare(foo_diff, repo_root=tmp_path)
    assert "FULL FILE CONTEXT" in prepared.prompt.user


def test_supplied_sources_take_precedence_over_working_tree(tmp_path, foo_diff):
    (tmp_path / "Foo.cs").write_text(FOO_SOURCE, encoding="utf-8")
    prepared = ReviewPipeline().prepare(foo_diff, repo_root=tmp_path, sources={"Foo.cs": None})
    assert "FILE CONTEXT" not in prepared.prompt.user
    assert "CHANGED LINES" in prepared.prompt.user


def test_missing_source_falls_back_to_diff_lines(foo_diff):
    prepared = ReviewPipeline().prepare(foo_diff)
    assert "FILE CONTEXT" not in prepared.prompt.user
    assert "Starting at line 40:" in prepared.prompt.user


def test_prompt_style_comes_from_settings(foo_diff):
    prepared = ReviewPipeline(ReviewSettings(prompt_style="legacy")).prepare(foo_diff)
    assert prepared.prompt.style == "legacy"


def test_over_budget_prompt_is_compacted(foo_diff):
    prepared = ReviewPipeline(ReviewSettings(max_prompt_tokens=1)).prepare(foo_diff)
    assert prepared.prompt.style == "compact"
    assert "+    _log.Info(secret);" in prepared.prompt.user.splitlines()


def test_finish_attaches_snippets_and_counts(foo_diff, foo_reply):
    pipeline = ReviewPipeline()
    patches = pipeline.prepare(foo_diff).patches
    report = pipeline.finish(foo_reply, patches)
    assert report.total == 1
    assert (report.high, report.medium, report.low) == (1, 0, 0)
    finding = report.findings[0]
    assert finding.file_path == "Foo.cs"
    assert finding.line_number == 42
    assert finding.code_snippet == "    _log.Info(secret);"
    assert finding.rule_source == "AI"


def test_finish_with_unstructured_reply_is_empty(foo_diff):
    pipeline = ReviewPipeline()
    patches = pipeline.prepare(foo_diff).patches
    report = pipeline.finish("Looks good to me!", patches)
    assert report.total == 0
    assert report.findings == []


def test_run_sends_prompt_and_parses_reply(foo_diff, foo_reply):
    model = FakeModel(foo_reply)
    report = asyncio.run(ReviewPipeline().run(foo_diff, model))
    assert len(model.calls) == 1
    system, user = model.calls[0]
    assert "OUTPUT FORMAT" in system
    assert "=== File: Foo.cs ===" in user
    assert report.total == 1
    assert report.findings[0].code_snippet == "    _log.Info(secret);"


def test_run_without_changes_skips_model():
    model = FakeModel("FILE: x\nISSUE: y\n---")
    report = asyncio.run(ReviewPipeline().run("", model))
    assert model.calls == []
    assert report.total == 0


def test_pipeline_instances_do_not_share_state(foo_diff, multi_diff):
    pipeline = ReviewPipeline()
    first = pipeline.prepare(foo_diff)
    second = pipeline.prepare(multi_diff)
    assert [p.file_path for p in first.patches] == ["Foo.cs"]
    assert [p.file_path for p in second.patches] == ["src/app.py", "README.md"]
    assert "src/app.py" not in first.prompt.user


def test_prepare_staged_reads_repository(monkeypatch, tmp_path, foo_diff):
    (tmp_path / "Foo.cs").write_text(FOO_SOURCE, encoding="utf-8")
    requested = {}

    def fake_staged_diff(repo_root, context_lines):
        requested["args"] = (repo_root, context_lines)
        return foo_diff

    monkeypatch.setattr(review, "find_repo_root", lambda start_dir=None: str(tmp_path))
    monkeypatch.setattr(review, "get_staged_diff", fake_staged_diff)

    prepared = ReviewPipeline(ReviewSettings(diff_context_lines=5)).prepare_staged(tmp_path)
    assert requested["args"] == (str(tmp_path), 5)
    assert "FULL FILE CONTEXT" in prepared.prompt.user


def test_prepare_staged_outside_repository(monkeypatch, tmp_path):
    monkeypatch.setattr(review, "find_repo_root", lambda start_dir=None: "")
    with pytest.raises(ConfigError):
        ReviewPipeline().prepare_staged(tmp_path)
