"""Split a repository dump into ordered, self-describing chunks.

Content that fits the first-chunk budget comes back as one ``single`` chunk.
Anything larger is parsed into file blocks, grouped by parent directory and
packed module by module; modules too large for one chunk are split between
files, and files too large for one chunk are split between lines, repeating
the file header at the top of every piece.

Every chunk is fence-balanced and ``chunk_index`` runs from 0 without gaps.
``total_chunks`` is filled in once all chunks exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fit_repo.budget import BudgetCalculator
from fit_repo.config import (
    FENCE,
    FILE_HEADER_PATTERN,
    ROOT_MODULE,
    ChunkMetadata,
    ChunkResult,
    ChunkStrategy,
    ContentChunk,
    FileBlock,
    ModuleGroup,
)
from fit_repo.logging import logger
from fit_repo.truncation import ensure_fences_closed, normalize_path

if TYPE_CHECKING:
    from fit_repo.budget import TokenEstimator
    from fit_repo.settings import Settings

BLOCK_SEPARATOR = "\n\n"


def extract_file_list(content: str) -> list[str]:
    """File paths declared by header lines, in order of appearance."""
    files: list[str] = []
    for line in content.split("\n"):
        m = FILE_HEADER_PATTERN.match(line)
        if m:
            files.append(m.group(1).strip())
    return files


def parse_file_blocks(content: str) -> list[FileBlock]:
    """Cut ``content`` into file blocks, each starting at its header line.

    Non-blank text before the first header is returned as a leading block with
    an empty path so that it is not lost.
    """
    blocks: list[FileBlock] = []
    path: str | None = None
    current: list[str] = []

    for line in content.split("\n"):
        m = FILE_HEADER_PATTERN.match(line)
        if m:
            if path is not None:
                blocks.append(FileBlock(path=path, content="\n".join(current)))
            elif "".join(current).strip():
                blocks.append(FileBlock(path="", content="\n".join(current)))
            path = m.group(1).strip()
            current = [line]
        else:
            current.append(line)

    if path is not None:
        blocks.append(FileBlock(path=path, content="\n".join(current)))
    elif "".join(current).strip():
        blocks.append(FileBlock(path="", content="\n".join(current)))
    return blocks


def module_name(file_path: str) -> str:
    """Parent directory of ``file_path``, or ``root`` for top-level files."""
    parts = normalize_path(file_path).split("/")
    if len(parts) <= 1:
        return ROOT_MODULE
    return "/".join(parts[:-1])


def group_by_module(blocks: list[FileBlock]) -> list[ModuleGroup]:
    """Group blocks by parent directory, keeping first-appearance order.

    A preamble block joins the group of the first real file.
    """
    groups: dict[str, ModuleGroup] = {}
    preamble: list[FileBlock] = []

    for block in blocks:
        if block.is_preamble:
            preamble.append(block)
            continue
        name = module_name(block.path)
        if name not in groups:
            groups[name] = ModuleGroup(name=name, blocks=[*preamble])
            preamble = []
        groups[name].blocks.append(block)

    if preamble:
        groups.setdefault(ROOT_MODULE, ModuleGroup(name=ROOT_MODULE)).blocks[:0] = preamble
    return list(groups.values())


@dataclass
class _Pending:
    parts: list[str] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    size: int = 0

    def __bool__(self) -> bool:
        return bool(self.parts)

    def size_with(self, text: str) -> int:
        if not self.parts:
            return len(text)
        return self.size + len(BLOCK_SEPARATOR) + len(text)

    def add(self, text: str, files: list[str], module: str | None = None) -> None:
        self.size = self.size_with(text)
        self.parts.append(text)
        self.files.extend(files)
        if module is not None and module not in self.modules:
            self.modules.append(module)

    def content(self) -> str:
        return BLOCK_SEPARATOR.join(self.parts)


class ContentChunker:
    """Chunk repository dumps against the first and subsequent chunk budgets."""

    def __init__(self, settings: Settings | None = None, estimator: TokenEstimator | None = None) -> None:
        self.budget = BudgetCalculator(settings, estimator)

    def chunk(self, content: str) -> ChunkResult:
        """Split ``content`` into chunks; a single chunk when it already fits.

        Args:
            content (str): the repository dump

        Returns:
            ChunkResult: ordered chunks with backfilled totals
        """
        if len(content) <= self.budget.first_chunk_chars:
            tokens = self.budget.estimate_tokens(content)
            logger.info("Content: %s chars (~%s tokens) - fits in single chunk", len(content), tokens)
            chunk = ContentChunk(
                content=ensure_fences_closed(content),
                metadata=ChunkMetadata(
                    chunk_index=0,
                    total_chunks=1,
                    strategy=ChunkStrategy.SINGLE,
                    files=extract_file_list(content),
                    estimated_tokens=tokens,
                ),
            )
            return ChunkResult(chunks=[chunk], total_estimated_tokens=tokens)

        logger.info("Content too large (%s chars), using module-based chunking", len(content))
        return self._chunk_by_module(content)

    def _chunk_by_module(self, content: str) -> ChunkResult:
        groups = group_by_module(parse_file_blocks(content))
        logger.info("Found %s files in %s modules", sum(len(g.file_paths) for g in groups), len(groups))
        for g in groups:
            logger.debug("Module %s: %s files, %s chars", g.name, len(g.blocks), sum(b.size for b in g.blocks))

        chunks: list[ContentChunk] = []
        pending = _Pending()

        for group in groups:
            module_content = group.joined()
            if pending.size_with(module_content) <= self._limit(chunks):
                pending.add(module_content, group.file_paths, group.name)
                continue

            if pending:
                self._flush(chunks, pending, ChunkStrategy.MODULE_BASED)
                pending = _Pending()

            if len(module_content) <= self._limit(chunks):
                pending.add(module_content, group.file_paths, group.name)
            else:
                self._split_module(group, chunks)

        if pending:
            self._flush(chunks, pending, ChunkStrategy.MODULE_BASED)

        for chunk in chunks:
            chunk.metadata.total_chunks = len(chunks)

        total = sum(c.metadata.estimated_tokens for c in chunks)
        logger.info("Created %s chunks (~%s tokens)", len(chunks), total)
        return ChunkResult(chunks=chunks, total_estimated_tokens=total)

    def _limit(self, chunks: list[ContentChunk]) -> int:
        return self.budget.chunk_char_limit(len(chunks))

    def _flush(self, chunks: list[ContentChunk], pending: _Pending, strategy: ChunkStrategy) -> None:
        text = ensure_fences_closed(pending.content())
        chunks.append(
            ContentChunk(
                content=text,
                metadata=ChunkMetadata(
                    chunk_index=len(chunks),
                    strategy=strategy,
                    modules=list(pending.modules),
                    files=list(pending.files),
                    estimated_tokens=self.budget.estimate_tokens(text),
                ),
            ),
        )

    def _split_module(self, group: ModuleGroup, chunks: list[ContentChunk]) -> None:
        pending = _Pending()
        for block in group.blocks:
            files = [] if block.is_preamble else [block.path]
            if pending and pending.size_with(block.content) > self._limit(chunks):
                self._flush(chunks, pending, ChunkStrategy.MODULE_BASED)
                pending = _Pending()

            if block.size > self._limit(chunks):
                self._split_file(block, group.name, chunks)
            else:
                pending.add(block.content, files, group.name)

        if pending:
            self._flush(chunks, pending, ChunkStrategy.MODULE_BASED)

    def _split_file(self, block: FileBlock, module: str, chunks: list[ContentChunk]) -> None:
        """Split one file between lines; every piece starts with the file header.

        A fence open at a split point is closed at the end of the piece and
        reopened, with its original opening line, after the header of the
        next piece.
        """
        lines = block.content.split("\n")
        head = [] if block.is_preamble else [lines[0]]
        body = lines if block.is_preamble else lines[1:]
        files = [] if block.is_preamble else [block.path]
        reserve = len(FENCE) + 1

        current = list(head)
        size = len("\n".join(current))
        has_body = False
        flushed = False
        open_fence: str | None = None

        for line in body:
            line_size = len(line) + 1
            if has_body and size + line_size + reserve > self._limit(chunks):
                pending = _Pending()
                pending.add("\n".join(current), files, module)
                self._flush(chunks, pending, ChunkStrategy.FILE_SPLIT)
                flushed = True

                current = [*head, open_fence] if open_fence else list(head)
                size = len("\n".join(current))
                has_body = False
                if size + line_size > self._limit(chunks):
                    logger.warning(
                        "Line in %s exceeds chunk limit (%s chars > %s available)",
                        block.path or "preamble",
                        line_size,
                        self._limit(chunks) - size,
                    )

            stripped = line.strip()
            if stripped.startswith(FENCE):
                open_fence = None if open_fence else stripped
            current.append(line)
            size += line_size
            has_body = True

        if has_body or not flushed:
            pending = _Pending()
            pending.add("\n".join(current), files, module)
            self._flush(chunks, pending, ChunkStrategy.FILE_SPLIT)


def chunk_content(content: str, *, settings: Settings | None = None) -> ChunkResult:
    """Chunk ``content`` with a :class:`ContentChunker` built from ``settings``."""
    return ContentChunker(settings).chunk(content)
