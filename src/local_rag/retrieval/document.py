"""
Document model for the retrieval system.

Single responsibility: Define the structure of chunks stored in vector
stores, plus the paragraph splitter used to produce them from files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np


@dataclass(frozen=True)
class DocumentChunk:
    """
    The unit of ingestion: a piece of text and where it came from.

    Frozen: a chunk is never mutated once it has been embedded.
    """
    content: str
    filepath: str

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"content": self.content, "filepath": self.filepath}


@dataclass(frozen=True, eq=False)
class StoredRecord:
    """A chunk together with the vector it was stored under."""
    chunk: DocumentChunk
    embedding: np.ndarray = field(repr=False)

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def filepath(self) -> str:
        return self.chunk.filepath


def split_text(text: str, max_chars: int = 800) -> list[str]:
    """
    Split text into chunks of at most ``max_chars`` characters.

    Blank lines separate paragraphs. Paragraphs are packed greedily into a
    chunk; a single paragraph longer than ``max_chars`` is cut at the last
    whitespace before the limit (or hard-cut when there is none).
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    paragraphs = [p.strip() for p in text.replace("\r\n", "\n").split("\n\n")]
    chunks: list[str] = []
    current = ""

    for paragraph in filter(None, paragraphs):
        while len(paragraph) > max_chars:
            cut = paragraph.rfind(" ", 0, max_chars)
            if cut <= 0:
                cut = max_chars
            if current:
                chunks.append(current)
                current = ""
            chunks.append(paragraph[:cut].strip())
            paragraph = paragraph[cut:].strip()

        if not paragraph:
            continue
        if current and len(current) + 2 + len(paragraph) > max_chars:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph

    if current:
        chunks.append(current)
    return chunks


def chunks_from_file(path: Path | str, max_chars: int = 800) -> list[DocumentChunk]:
    """Read a UTF-8 text file and split it into DocumentChunks."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    return [DocumentChunk(content=piece, filepath=str(path)) for piece in split_text(text, max_chars)]
