from __future__ import annotations

import random

import pytest

from fit_repo.budget import BudgetCalculator
from fit_repo.chunking import (
    ContentChunker,
    extract_file_list,
    group_by_module,
    module_name,
    parse_file_blocks,
)
from fit_repo.config import ChunkStrategy, FileBlock
from fit_repo.format_detection import count_fence_lines
from fit_repo.settings import Settings


def assert_well_formed(result, settings: Settings) -> None:
    budget = BudgetCalculator(settings)
    total = len(result.chunks)
    for i, chunk in enumerate(result.chunks):
        assert chunk.metadata.chunk_index == i
        assert chunk.metadata.total_chunks == total
        assert count_fence_lines(chunk.content) % 2 == 0
        if chunk.metadata.strategy != ChunkStrategy.SINGLE:
            assert len(chunk.content) <= budget.chunk_char_limit(i)


@pytest.mark.unit
def test_empty_content_is_a_single_empty_chunk(small_settings: Settings) -> None:
    result = ContentChunker(small_settings).chunk("")

    assert len(result.chunks) == 1
    assert result.chunks[0].content == ""
    assert result.chunks[0].metadata.strategy == ChunkStrategy.SINGLE
    assert result.total_estimated_tokens == 0


@pytest.mark.unit
def test_small_content_fits_single_chunk(small_settings: Settings, make_file) -> None:
    content = make_file("src/a.py", 10) + make_file("src/b.py", 10) + make_file("docs/c.md", 10)

    result = ContentChunker(small_settings).chunk(content)

    assert len(result.chunks) == 1
    meta = result.chunks[0].metadata
    assert meta.strategy == ChunkStrategy.SINGLE
    assert meta.chunk_index == 0
    assert meta.total_chunks == 1
    assert meta.files == ["src/a.py", "src/b.py", "docs/c.md"]
    assert result.chunks[0].content == content


@pytest.mark.unit
def test_header_only_content(small_settings: Settings) -> None:
    result = ContentChunker(small_settings).chunk("## File: test.ts\n\n## File: another.ts\n")

    assert len(result.chunks) == 1
    assert result.chunks[0].metadata.files == ["test.ts", "another.ts"]


@pytest.mark.unit
def test_two_oversized_files_are_split(small_settings: Settings, make_file) -> None:
    content = make_file("src/a.py", 150) + make_file("src/b.py", 150)
    budget = BudgetCalculator(small_settings)
    assert len(make_file("src/a.py", 150)) > budget.first_chunk_chars

    result = ContentChunker(small_settings).chunk(content)

    assert len(result.chunks) >= 2
    assert {c.metadata.strategy for c in result.chunks} <= {ChunkStrategy.MODULE_BASED, ChunkStrategy.FILE_SPLIT}
    assert_well_formed(result, small_settings)
    assert result.files == ["src/a.py", "src/b.py"]


@pytest.mark.unit
def test_file_split_pieces_repeat_header_and_reopen_fence(small_settings: Settings, make_file) -> None:
    content = make_file("src/big.py", 400)

    result = ContentChunker(small_settings).chunk(content)

    assert len(result.chunks) > 2
    for chunk in result.chunks:
        assert chunk.metadata.strategy == ChunkStrategy.FILE_SPLIT
        assert chunk.metadata.files == ["src/big.py"]
        assert chunk.metadata.modules == ["src"]
        assert chunk.content.startswith("## File: src/big.py\n")
    for chunk in result.chunks[1:]:
        assert chunk.content.split("\n")[1] == "```python"
    assert_well_formed(result, small_settings)

    kept = [ln for c in result.chunks for ln in c.content.split("\n") if ln.startswith("// src/big.py")]
    assert kept == [f"// src/big.py line {i}: some code" for i in range(400)]


@pytest.mark.unit
def test_small_modules_are_packed_together(small_settings: Settings, make_file) -> None:
    content = (
        make_file("a/one.py", 40)
        + make_file("b/two.py", 40)
        + make_file("c/three.py", 40)
        + make_file("d/four.py", 40)
    )

    result = ContentChunker(small_settings).chunk(content)

    assert len(result.chunks) >= 2
    assert all(c.metadata.strategy == ChunkStrategy.MODULE_BASED for c in result.chunks)
    assert len(result.chunks[0].metadata.modules or []) >= 2
    modules = [m for c in result.chunks for m in c.metadata.modules or []]
    assert modules == ["a", "b", "c", "d"]
    assert_well_formed(result, small_settings)


@pytest.mark.unit
def test_preamble_is_kept_in_first_chunk(small_settings: Settings, make_file) -> None:
    content = "# Project Export\nfiles=2\n\n" + make_file("src/a.py", 150) + make_file("lib/b.py", 150)

    result = ContentChunker(small_settings).chunk(content)

    assert result.chunks[0].content.startswith("# Project Export\nfiles=2")
    assert result.files == ["src/a.py", "lib/b.py"]


@pytest.mark.unit
def test_content_without_headers_is_not_lost(small_settings: Settings) -> None:
    lines = [f"plain line {i} with no header at all" for i in range(300)]
    content = "\n".join(lines)

    result = ContentChunker(small_settings).chunk(content)

    assert len(result.chunks) > 1
    kept = [ln for c in result.chunks for ln in c.content.split("\n") if ln]
    assert kept == lines
    assert all(c.metadata.files == [] for c in result.chunks)


@pytest.mark.unit
def test_overlong_line_is_kept(small_settings: Settings, caplog: pytest.LogCaptureFixture) -> None:
    long_line = "z" * 5000
    content = "\n".join(["## File: src/min.js", "a", "b", long_line, "c"])

    result = ContentChunker(small_settings).chunk(content)

    assert any(long_line in c.content for c in result.chunks)
    assert "exceeds chunk limit" in caplog.text


@pytest.mark.unit
@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_chunks_cover_every_file_in_order(small_settings: Settings, make_file, seed: int) -> None:
    rng = random.Random(seed)
    sections: list[str] = []
    for m in range(rng.randint(2, 5)):
        for f in range(rng.randint(1, 4)):
            path = f"pkg{m}/mod{f}.py" if m else f"file{f}.py"
            sections.append(make_file(path, rng.randint(1, 220), fence=rng.random() > 0.2))
    content = "".join(sections)

    result = ContentChunker(small_settings).chunk(content)

    assert result.files == extract_file_list(content)
    assert_well_formed(result, small_settings)
    assert result.total_estimated_tokens == sum(c.metadata.estimated_tokens for c in result.chunks)


@pytest.mark.unit
def test_parse_file_blocks_keeps_order_and_preamble() -> None:
    content = "intro\n## File: a.py\nx\n### File: lib/b.py\ny"

    blocks = parse_file_blocks(content)

    assert [b.path for b in blocks] == ["", "a.py", "lib/b.py"]
    assert blocks[0].is_preamble
    assert blocks[1].content == "## File: a.py\nx"
    assert "\n".join(b.content for b in blocks) == content


@pytest.mark.unit
def test_parse_file_blocks_drops_blank_preamble() -> None:
    blocks = parse_file_blocks("\n\n## File: a.py\nx")

    assert [b.path for b in blocks] == ["a.py"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("README.md", "root"),
        ("src/app.py", "src"),
        ("packages/core/src/index.ts", "packages/core/src"),
        ("src\\win\\app.py", "src/win"),
    ],
)
def test_module_name(path: str, expected: str) -> None:
    assert module_name(path) == expected


@pytest.mark.unit
def test_group_by_module_follows_first_appearance() -> None:
    blocks = [
        FileBlock(path="", content="intro"),
        FileBlock(path="src/a.py", content="## File: src/a.py"),
        FileBlock(path="README.md", content="## File: README.md"),
        FileBlock(path="src/b.py", content="## File: src/b.py"),
    ]

    groups = group_by_module(blocks)

    assert [g.name for g in groups] == ["src", "root"]
    assert [b.path for b in groups[0].blocks] == ["", "src/a.py", "src/b.py"]
    assert groups[0].file_paths == ["src/a.py", "src/b.py"]
    assert sum(len(g.blocks) for g in groups) == len(blocks)


@pytest.mark.unit
def test_header_without_path_stays_in_previous_block() -> None:
    content = "## File: a/x.py\nx = 1\n## File:   \nstray body\n## File: a/z.py\nz = 1"

    blocks = parse_file_blocks(content)

    assert [b.path for b in blocks] == ["a/x.py", "a/z.py"]
    assert "stray body" in blocks[0].content
    assert extract_file_list("## File:   \nx") == []


@pytest.mark.unit
def test_header_without_path_keeps_document_order(small_settings: Settings, make_file) -> None:
    content = make_file("a/x.py", 150) + "## File:   \nORPHAN BODY\n" + make_file("a/z.py", 150)

    result = ContentChunker(small_settings).chunk(content)
    joined = "\n".join(c.content for c in result.chunks)

    assert result.files == ["a/x.py", "a/z.py"]
    assert joined.index("ORPHAN BODY") < joined.index("## File: a/z.py")
    assert_well_formed(result, small_settings)


@pytest.mark.unit
def test_indented_header_is_body_text() -> None:
    content = "## File: a.py\n  ## File: b.py\nx"

    assert extract_file_list(content) == ["a.py"]
    assert [b.path for b in parse_file_blocks(content)] == ["a.py"]
