from __future__ import annotations

import re
from enum import StrEnum, auto

from pydantic import BaseModel, ConfigDict, Field, computed_field

FENCE = "```"
ROOT_MODULE = "root"

FILE_HEADER_PATTERN = re.compile(r"^#{1,6}[ \t]*File:[ \t]*(\S.*)$")


class ChunkStrategy(StrEnum):
    """How a chunk was produced."""

    SINGLE = "single"
    MODULE_BASED = "module-based"
    FILE_SPLIT = "file-split"


class FitLevel(StrEnum):
    """Graduated truncation levels, chosen by how far content is over budget.

    ``fraction`` is the share of the raw character ceiling used as target limit.
    """

    AGGRESSIVE = auto()
    MODERATE = auto()
    CONSERVATIVE = auto()

    @property
    def fraction(self) -> float:
        return _FIT_FRACTIONS[self]


_FIT_FRACTIONS: dict[FitLevel, float] = {
    FitLevel.AGGRESSIVE: 0.4,
    FitLevel.MODERATE: 0.6,
    FitLevel.CONSERVATIVE: 0.8,
}


class HeaderFormat(BaseModel):
    """A file-header convention the detector knows about."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    pattern: re.Pattern[str] | None = Field(default=None, exclude=True)
    is_supported: bool
    warning_message: str | None = None


class FileBlock(BaseModel):
    """One file of the dump: its header line and everything up to the next header.

    A block with an empty ``path`` holds the preamble, i.e. the text found
    before the first header.
    """

    path: str
    content: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_preamble(self) -> bool:
        return not self.path


class ModuleGroup(BaseModel):
    """File blocks that share a parent directory."""

    name: str
    blocks: list[FileBlock] = Field(default_factory=list)

    @property
    def file_paths(self) -> list[str]:
        return [b.path for b in self.blocks if not b.is_preamble]

    def joined(self) -> str:
        return "\n\n".join(b.content for b in self.blocks)


class ChunkMetadata(BaseModel):
    """Self-describing metadata attached to every chunk."""

    chunk_index: int
    total_chunks: int = 0
    strategy: ChunkStrategy
    modules: list[str] | None = None
    files: list[str] = Field(default_factory=list)
    estimated_tokens: int = 0


class ContentChunk(BaseModel):
    """A bounded-size unit of fitted output."""

    content: str
    metadata: ChunkMetadata


class ChunkResult(BaseModel):
    """Ordered chunks plus the sum of their token estimates."""

    chunks: list[ContentChunk] = Field(default_factory=list)
    total_estimated_tokens: int = 0

    @property
    def files(self) -> list[str]:
        """File paths across all chunks, in chunk order, without repeats."""
        seen: dict[str, None] = {}
        for chunk in self.chunks:
            for path in chunk.metadata.files:
                seen.setdefault(path, None)
        return list(seen)


class SizeValidation(BaseModel):
    """Outcome of checking a prompt against a token limit."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    estimated_tokens: int
    recommendation: str | None = None
