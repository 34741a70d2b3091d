from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fit_repo.config import ChunkResult, ContentChunk


def chunk_banner(chunk: ContentChunk) -> str:
    """One-line description of a chunk, e.g. ``Part 2 of 5 (file-split: src/app.py)``."""
    meta = chunk.metadata
    files = ", ".join(meta.files) if meta.files else "no files"
    return f"Part {meta.chunk_index + 1} of {meta.total_chunks} ({meta.strategy}: {files})"


def build_markdown(result: ChunkResult, *, compact: bool = False) -> str:
    """Render chunks as one markdown document, each chunk under its banner.

    Args:
        result (ChunkResult): the chunks to render
        compact (bool): whether to drop the blank line between chunks

    Returns:
        str: the markdown document
    """
    out = io.StringIO()
    out.write("# Fitted Repository Content\n")
    out.write(f"chunks={len(result.chunks)}\n")
    out.write(f"estimated_tokens={result.total_estimated_tokens}\n\n")

    for chunk in result.chunks:
        out.write(f"<!-- {chunk_banner(chunk)} -->\n")
        if compact:
            out.write(f"{chunk.content}\n")
        else:
            out.write(f"{chunk.content}\n\n")

    return out.getvalue().rstrip() + "\n"


def build_jsonl(result: ChunkResult) -> str:
    """Render chunks as JSON lines: metadata fields plus the chunk ``text``."""
    buf = io.StringIO()
    for chunk in result.chunks:
        item = {**chunk.metadata.model_dump(mode="json"), "text": chunk.content}
        buf.write(json.dumps(item, ensure_ascii=False) + "\n")
    return buf.getvalue()
