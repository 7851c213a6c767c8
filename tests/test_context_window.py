from stagebot.config import ContextSettings
from stagebot.context_window import (
    CHANGED_MARKER,
    build_context_window,
    cluster_changes,
    is_small_file,
    read_source,
    render_file_context,
    split_source,
)


def make_source(count: int, width: int = 0) -> str:
    return "".join(f"x{i}".ljust(width) + "\n" for i in range(1, count + 1))


def emitted_numbers(block: str) -> list[int]:
    numbers = []
    for line in block.splitlines():
        if not line.strip() or line.startswith("..."):
            continue
        numbers.append(int(line.split(":", 1)[0]))
    return numbers


def omission_markers(block: str) -> list[str]:
    return [line for line in block.splitlines() if line.startswith("...[lines")]


def test_small_file_shows_every_line_with_markers_on_changes():
    source = "".join(f"line {i}\n" for i in range(1, 501))
    block = build_context_window(source, {10, 20})
    lines = block.splitlines()
    assert len(lines) == 500
    assert lines[0] == "   1: line 1"
    assert lines[9] == f"  10: line 10{CHANGED_MARKER}"
    assert lines[19] == f"  20: line 20{CHANGED_MARKER}"
    assert sum(CHANGED_MARKER in line for line in lines) == 2
    assert omission_markers(block) == []


def test_large_file_header_window_and_trailing_marker():
    block = build_context_window(make_source(3000), {500})
    assert omission_markers(block) == [
        "...[lines 201-449 omitted] ...",
        "...[lines 551-3000 omitted] ...",
    ]
    assert emitted_numbers(block) == list(range(1, 201)) + list(range(450, 551))
    assert f" 500: x500{CHANGED_MARKER}" in block.splitlines()


def test_changes_far_apart_get_separate_windows():
    block = build_context_window(make_source(3000), {500, 800})
    assert "...[lines 551-749 omitted] ..." in omission_markers(block)
    assert emitted_numbers(block) == (
        list(range(1, 201)) + list(range(450, 551)) + list(range(750, 851))
    )


def test_cluster_boundary_at_merge_gap():
    assert cluster_changes([500, 600]) == [(500, 600, [500, 600])]
    assert cluster_changes([601, 500]) == [(500, 500, [500]), (601, 601, [601])]
    assert cluster_changes([]) == []


def test_adjacent_windows_have_no_marker_between_them():
    block = build_context_window(make_source(3000), {500, 601})
    assert omission_markers(block) == [
        "...[lines 201-449 omitted] ...",
        "...[lines 652-3000 omitted] ...",
    ]
    assert emitted_numbers(block) == list(range(1, 201)) + list(range(450, 652))


def test_window_overlapping_header_starts_after_it():
    block = build_context_window(make_source(3000), {230})
    assert omission_markers(block)[0] == "...[lines 281-3000 omitted] ..."
    assert emitted_numbers(block) == list(range(1, 281))


def test_changes_only_in_header_leave_single_trailing_marker():
    block = build_context_window(make_source(3000), {5})
    assert omission_markers(block) == ["...[lines 201-3000 omitted] ..."]
    assert f"   5: x5{CHANGED_MARKER}" in block.splitlines()


def test_no_changes_leaves_single_trailing_marker():
    block = build_context_window(make_source(1500), set())
    assert omission_markers(block) == ["...[lines 201-1500 omitted] ..."]
    assert CHANGED_MARKER not in block


def test_large_by_characters_uses_partial_context():
    source = make_source(100, width=500)
    assert not is_small_file(source)
    rendered = render_file_context(source, {50})
    assert rendered.startswith("PARTIAL FILE CONTEXT (file has 100 lines")
    assert omission_markers(rendered) == []


def test_settings_override_policy_constants():
    settings = ContextSettings(
        small_file_max_lines=50, header_lines=10, merge_gap=5, window_padding=2,
    )
    block = build_context_window(make_source(100), {40}, settings)
    assert omission_markers(block) == [
        "...[lines 11-37 omitted] ...",
        "...[lines 43-100 omitted] ...",
    ]
    assert emitted_numbers(block) == list(range(1, 11)) + list(range(38, 43))


def test_crlf_and_trailing_newline_are_not_lines():
    assert split_source("a\r\nb\r\n") == ["a", "b"]
    assert build_context_window("a\r\nb\r\n", {2}) == f"   1: a\n   2: b{CHANGED_MARKER}"


def test_render_full_context_is_fenced():
    rendered = render_file_context("a\nb\n", {1})
    assert rendered.splitlines() == [
        "FULL FILE CONTEXT (for better understanding):",
        "```",
        f"   1: a{CHANGED_MARKER}",
        "   2: b",
        "```",
    ]


def test_read_source_reads_nested_path(tmp_path):
    target = tmp_path / "src" / "pkg" / "mod.py"
    target.parent.mkdir(parents=True)
    target.write_text("print('hi')\n", encoding="utf-8")
    assert read_source(tmp_path, "src/pkg/mod.py") == "print('hi')\n"
    assert read_source(str(tmp_path), "src\\pkg\\mod.py") == "print('hi')\n"


def test_read_source_tolerates_missing_and_undecodable_files(tmp_path):
    assert read_source(tmp_path, "missing.py") is None
    assert read_source(None, "missing.py") is None
    (tmp_path / "bin.dat").write_bytes(b"\xff\xfe\x00\x80")
    assert read_source(tmp_path, "bin.dat") is None
    (tmp_path / "adir").mkdir()
    assert read_source(tmp_path, "adir") is None


def test_read_source_stays_inside_repository(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    (tmp_path / "secret.txt").write_text("token\n", encoding="utf-8")
    assert read_source(repo, "../secret.txt") is None
    assert read_source(repo, "..\\secret.txt") is None
    assert read_source(repo, str(tmp_path / "secret.txt")) is None
    (repo / "ok.txt").write_text("fine\n", encoding="utf-8")
    assert read_source(repo, "sub/../ok.txt") == "fine\n"
