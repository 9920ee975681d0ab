from __future__ import annotations

import pytest

from deepagent_ai.agent_core.backends import StateBackend
from deepagent_ai.agent_core.backends.utils import (
    EMPTY_CONTENT_WARNING,
    MAX_LINE_LENGTH,
    format_content_with_line_numbers,
    glob_match,
    perform_string_replacement,
    validate_path,
)
from deepagent_ai.agent_core.state import AgentState


def _backend() -> StateBackend:
    return StateBackend(AgentState())


@pytest.mark.asyncio
async def test_write_then_read_returns_numbered_lines() -> None:
    be = _backend()
    res = await be.write("/notes.txt", "hello\nworld")
    assert res.success and res.path == "/notes.txt"

    out = await be.read("/notes.txt")
    assert out == "     1\thello\n     2\tworld"
    assert be.state.files["/notes.txt"].content == ["hello", "world"]


@pytest.mark.asyncio
async def test_write_existing_file_is_rejected() -> None:
    be = _backend()
    await be.write("/a.txt", "one")
    res = await be.write("/a.txt", "two")
    assert not res.success
    assert "already exists" in (res.error or "")
    assert be.state.files["/a.txt"].content == ["one"]


@pytest.mark.asyncio
async def test_read_missing_file_and_offsets() -> None:
    be = _backend()
    assert await be.read("/missing.txt") == "Error: File '/missing.txt' not found"

    await be.write("/a.txt", "l1\nl2\nl3")
    assert await be.read("/a.txt", offset=1, limit=1) == "     2\tl2"
    assert await be.read("/a.txt", offset=5) == "Error: Line offset 5 exceeds file length (3 lines)"


@pytest.mark.asyncio
async def test_read_empty_file_returns_reminder() -> None:
    be = _backend()
    await be.write("/empty.txt", "")
    assert await be.read("/empty.txt") == EMPTY_CONTENT_WARNING


@pytest.mark.asyncio
async def test_read_raw_missing_raises() -> None:
    with pytest.raises(FileNotFoundError):
        await _backend().read_raw("/nope")


@pytest.mark.asyncio
async def test_edit_single_ambiguous_and_replace_all() -> None:
    be = _backend()
    await be.write("/a.py", "x = 1\ny = 1\n")

    ambiguous = await be.edit("/a.py", "1", "2")
    assert not ambiguous.success
    assert "appears 2 times" in (ambiguous.error or "")

    res = await be.edit("/a.py", "1", "2", replace_all=True)
    assert res.success and res.occurrences == 2
    assert be.state.files["/a.py"].content == ["x = 2", "y = 2", ""]

    created = be.state.files["/a.py"].created_at
    single = await be.edit("/a.py", "x = 2", "x = 3")
    assert single.occurrences == 1
    assert be.state.files["/a.py"].created_at == created


@pytest.mark.asyncio
async def test_edit_errors() -> None:
    be = _backend()
    missing = await be.edit("/nope", "a", "b")
    assert missing.error == "Error: File '/nope' not found"

    await be.write("/a.txt", "abc")
    not_found = await be.edit("/a.txt", "zzz", "b")
    assert "String not found" in (not_found.error or "")


@pytest.mark.asyncio
async def test_ls_info_lists_direct_children_and_dirs() -> None:
    be = _backend()
    await be.write("/a.txt", "a")
    await be.write("/dir/b.txt", "b")
    await be.write("/dir/sub/c.txt", "c")

    root = await be.ls_info("/")
    assert [(i.path, i.is_dir) for i in root] == [("/a.txt", False), ("/dir/", True)]

    sub = await be.ls_info("/dir")
    assert [i.path for i in sub] == ["/dir/b.txt", "/dir/sub/"]


@pytest.mark.asyncio
async def test_glob_info_supports_recursive_and_brace_patterns() -> None:
    be = _backend()
    await be.write("/src/app.py", "print(1)")
    await be.write("/src/pkg/mod.py", "pass")
    await be.write("/README.md", "# readme")
    await be.write("/notes.txt", "n")

    py = {i.path for i in await be.glob_info("**/*.py")}
    assert py == {"/src/app.py", "/src/pkg/mod.py"}

    top = {i.path for i in await be.glob_info("*.{md,txt}")}
    assert top == {"/README.md", "/notes.txt"}

    scoped = {i.path for i in await be.glob_info("*.py", "/src")}
    assert scoped == {"/src/app.py"}


@pytest.mark.asyncio
async def test_grep_raw_matches_and_errors() -> None:
    be = _backend()
    await be.write("/a.py", "import os\nprint('hi')")
    await be.write("/b.txt", "import nothing")

    matches = await be.grep_raw("import")
    assert isinstance(matches, list)
    assert {(m.path, m.line) for m in matches} == {("/a.py", 1), ("/b.txt", 1)}

    only_py = await be.grep_raw("import", glob="*.py")
    assert isinstance(only_py, list)
    assert [m.path for m in only_py] == ["/a.py"]

    bad = await be.grep_raw("(")
    assert isinstance(bad, str) and bad.startswith("Invalid regex pattern")


def test_long_lines_are_split_into_numbered_chunks() -> None:
    line = "a" * (MAX_LINE_LENGTH + 5)
    out = format_content_with_line_numbers([line, "b"])
    rows = out.split("\n")
    assert rows[0].startswith("     1\t")
    assert rows[1].startswith("   1.1\t") and rows[1].endswith("aaaaa")
    assert rows[2] == "     2\tb"


def test_perform_string_replacement() -> None:
    assert perform_string_replacement("a b a", "b", "c", False) == ("a c a", 1)
    assert isinstance(perform_string_replacement("a b a", "a", "c", False), str)
    assert perform_string_replacement("a b a", "a", "c", True) == ("c b c", 2)
    assert isinstance(perform_string_replacement("abc", "", "x", True), str)


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, "/"),
        ("/", "/"),
        ("dir", "/dir/"),
        ("/dir/sub", "/dir/sub/"),
    ],
)
def test_validate_path(raw, expected) -> None:
    assert validate_path(raw) == expected


def test_validate_path_rejects_blank() -> None:
    with pytest.raises(ValueError):
        validate_path("   ")


@pytest.mark.parametrize(
    "path,pattern,matched",
    [
        ("app.py", "*.py", True),
        ("src/app.py", "*.py", False),
        ("src/app.py", "**/*.py", True),
        ("app.py", "**/*.py", True),
        ("a.ts", "*.{ts,tsx}", True),
        ("a.js", "*.{ts,tsx}", False),
        ("f1.txt", "f?.txt", True),
        ("fa.txt", "f[0-9].txt", False),
    ],
)
def test_glob_match(path, pattern, matched) -> None:
    assert glob_match(path, pattern) is matched
