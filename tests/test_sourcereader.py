import pytest

from crashscope.sourcereader import SourceReader, calculate_context_lines

LINES = ["line 1", "line 2", "line 3", "line 4", "line 5"]


@pytest.mark.parametrize(
    "line, context, want_lines, want_index",
    [
        (2, 0, ["line 2"], 0),
        (-2, 0, [], 0),
        (2, -2, ["line 2"], 0),
        (10, 0, [], 0),
        (3, 2, LINES, 2),
        (2, 3, LINES, 1),
        (5, 3, ["line 2", "line 3", "line 4", "line 5"], 3),
        (2, 10, LINES, 1),
    ],
)
def test_calculate_context_lines(line, context, want_lines, want_index):
    got_lines, got_index = calculate_context_lines(LINES, line, context)
    assert got_lines == want_lines
    assert got_index == want_index


def test_calculate_context_lines_none_input():
    assert calculate_context_lines(None, 1, 3) == ([], 0)


def test_read_context_lines_non_existing_input():
    reader = SourceReader()
    assert reader.read_context_lines("non_existing.go", 2, 10) == ([], 0)
    assert "non_existing.go" in reader.cache
    assert reader.cache["non_existing.go"] is None


def test_read_context_lines_from_file(tmp_path):
    path = tmp_path / "sample.txt"
    path.write_text("\n".join(LINES), encoding="utf-8")
    reader = SourceReader()
    lines, index = reader.read_context_lines(str(path), 3, 1)
    assert lines == ["line 2", "line 3", "line 4"]
    assert index == 1


def test_read_context_lines_uses_cache(tmp_path):
    path = tmp_path / "cached.txt"
    path.write_text("a\nb\nc", encoding="utf-8")
    reader = SourceReader()
    first = reader.read_context_lines(str(path), 2, 0)
    path.unlink()
    second = reader.read_context_lines(str(path), 2, 0)
    assert first == (["b"], 0)
    assert second == first
    assert reader.cache[str(path)] == ["a", "b", "c"]