"""Heading-aware chunker for splitting document versions."""

from dataclasses import dataclass
from functools import lru_cache

import tiktoken

from docweave.config import get_settings
from docweave.ingestion.parser import DocumentParser, get_parser
from docweave.models.document import ChunkDraft

HEADING_PATH_SEPARATOR = " > "


@lru_cache(maxsize=1)
def get_tokenizer() -> tiktoken.Encoding:
    return tiktoken.get_encoding("cl100k_base")


@dataclass
class _Piece:
    """A chunk under construction."""

    path: tuple[str, ...]
    text: str
    split: bool = False

    @property
    def heading_path(self) -> str | None:
        return HEADING_PATH_SEPARATOR.join(self.path) if self.path else None


class HeadingChunker:
    """
    Split documents by headings, respecting size limits.

    Strategy:
    1. Split the document into heading-delimited sections
    2. Track the heading stack to build a breadcrumb for each section
    3. Fold a small section into the previous chunk when that chunk is an
       ancestor scope and the result still fits
    4. Split sections over the limit with token overlap

    Text before the first heading always becomes chunk 0 without a path.
    """

    def __init__(
        self,
        min_tokens: int | None = None,
        max_tokens: int | None = None,
        overlap_tokens: int | None = None,
        parser: DocumentParser | None = None,
    ):
        settings = get_settings()
        self.min_tokens = min_tokens if min_tokens is not None else settings.chunk_min_tokens
        self.max_tokens = max_tokens or settings.chunk_max_tokens
        self.overlap_tokens = overlap_tokens if overlap_tokens is not None else settings.chunk_overlap_tokens
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")
        self.parser = parser or get_parser()
        self.tokenizer = get_tokenizer()

    def chunk(self, content: str) -> list[ChunkDraft]:
        """
        Split markdown content into chunks.

        Args:
            content: Raw markdown content of a version

        Returns:
            Ordered ChunkDraft list, identical for identical input
        """
        if not content.strip():
            return []

        pieces: list[_Piece] = []
        heading_stack: list[tuple[int, str]] = []  # (level, text)

        for section in self.parser.parse(content).sections:
            if section.level > 0:
                while heading_stack and heading_stack[-1][0] >= section.level:
                    heading_stack.pop()
                heading_stack.append((section.level, section.heading))
                text = f"{'#' * section.level} {section.heading}"
                if section.content:
                    text = f"{text}\n\n{section.content}"
            else:
                text = section.content

            if not text.strip():
                continue

            path = tuple(h[1] for h in heading_stack)
            self._add_section(pieces, path, text)

        return [
            ChunkDraft(
                chunk_index=index,
                heading_path=piece.heading_path,
                content=piece.text,
                token_count=self._count_tokens(piece.text),
            )
            for index, piece in enumerate(pieces)
        ]

    def _add_section(self, pieces: list[_Piece], path: tuple[str, ...], text: str) -> None:
        token_count = self._count_tokens(text)

        if token_count > self.max_tokens:
            for part in self._split_with_overlap(text):
                pieces.append(_Piece(path=path, text=part, split=True))
            return

        if token_count < self.min_tokens and pieces:
            previous = pieces[-1]
            if self._can_absorb(previous, path):
                merged = f"{previous.text}\n\n{text}"
                if self._count_tokens(merged) <= self.max_tokens:
                    previous.text = merged
                    return

        pieces.append(_Piece(path=path, text=text))

    @staticmethod
    def _can_absorb(previous: _Piece, path: tuple[str, ...]) -> bool:
        """A chunk absorbs a section only from its own heading scope."""
        if previous.split or not previous.path:
            return False
        return path[: len(previous.path)] == previous.path

    def _split_with_overlap(self, text: str) -> list[str]:
        """Split text into chunks with overlap."""
        tokens = self.tokenizer.encode(text)
        chunks = []
        start = 0

        while start < len(tokens):
            end = min(start + self.max_tokens, len(tokens))

            # Prefer ending on a paragraph, then a sentence boundary
            if end < len(tokens):
                chunk_text = self.tokenizer.decode(tokens[start:end])
                for sep in ["\n\n", ". ", ".\n", "\n"]:
                    last_sep = chunk_text.rfind(sep)
                    if last_sep > len(chunk_text) // 2:
                        end = start + len(self.tokenizer.encode(chunk_text[: last_sep + 1]))
                        break

            chunk_text = self.tokenizer.decode(tokens[start:end]).strip()
            if chunk_text:
                chunks.append(chunk_text)

            if end >= len(tokens):
                break
            # Move start with overlap
            start = max(start + 1, end - self.overlap_tokens)

        return chunks

    def _count_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))


# Singleton chunker instance
_chunker = None


def get_chunker() -> HeadingChunker:
    """Get the singleton chunker instance."""
    global _chunker
    if _chunker is None:
        _chunker = HeadingChunker()
    return _chunker
