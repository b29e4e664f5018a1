"""Extract links from markdown and resolve them to repository paths."""

import posixpath
import re
from dataclasses import dataclass

from docweave.models.document import LinkType


@dataclass(frozen=True)
class ExtractedLink:
    """A link as written in a document."""

    link_text: str
    link_target: str
    link_type: LinkType
    line_number: int


class LinkParser:
    """Find wiki links ``[[page|text]]`` and markdown links ``[text](url)``."""

    WIKI_LINK_PATTERN = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]*))?\]\]")
    MARKDOWN_LINK_PATTERN = re.compile(r"(?<!!)\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
    FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
    EXTERNAL_PREFIXES = ("http://", "https://", "mailto:", "ftp://")

    def extract_links(self, content: str) -> list[ExtractedLink]:
        """
        Extract every link outside fenced code blocks.

        Args:
            content: Raw markdown content

        Returns:
            Links in document order with 1-based line numbers
        """
        links: list[ExtractedLink] = []
        in_fence = False

        for line_no, line in enumerate(content.splitlines(), start=1):
            if self.FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue

            for match in self.WIKI_LINK_PATTERN.finditer(line):
                target = match.group(1).strip()
                text = (match.group(2) or target).strip()
                links.append(ExtractedLink(text, target, LinkType.WIKI, line_no))

            for match in self.MARKDOWN_LINK_PATTERN.finditer(line):
                target = match.group(2).strip()
                links.append(
                    ExtractedLink(match.group(1).strip(), target, self.classify(target), line_no)
                )

        return links

    def classify(self, target: str) -> LinkType:
        """Classify a markdown link target."""
        lowered = target.lower()
        if lowered.startswith(self.EXTERNAL_PREFIXES):
            return LinkType.EXTERNAL
        if target.startswith("#"):
            return LinkType.ANCHOR
        return LinkType.INTERNAL

    def candidate_paths(self, source_path: str, target: str, link_type: LinkType) -> list[str]:
        """
        Repository paths a link may point at, most likely first.

        External and anchor links never resolve to a document.
        """
        base_dir = posixpath.dirname(source_path)

        if link_type == LinkType.WIKI:
            page = target.split("#", 1)[0].strip()
            if not page:
                return []
            if page.lower().endswith(".md"):
                return [self._normalize(base_dir, page)]
            return [
                p for p in (
                    self._normalize(base_dir, f"{page}.md"),
                    self._normalize(base_dir, f"{page}/index.md"),
                ) if p
            ]

        if link_type != LinkType.INTERNAL:
            return []

        path = target.split("#", 1)[0].split("?", 1)[0]
        if not path:
            return []

        resolved = self._normalize(base_dir, path)
        if resolved is None:
            return []
        candidates = [resolved]
        if not posixpath.splitext(resolved)[1]:
            candidates.append(f"{resolved}.md")
            candidates.append(f"{resolved}/README.md")
        return candidates

    @staticmethod
    def _normalize(base_dir: str, path: str) -> str | None:
        if path.startswith("/"):
            joined = path.lstrip("/")
        else:
            joined = posixpath.join(base_dir, path) if base_dir else path
        normalized = posixpath.normpath(joined)
        if normalized.startswith("..") or normalized == ".":
            return None
        return normalized


# Singleton link parser instance
_link_parser = None


def get_link_parser() -> LinkParser:
    """Get the singleton link parser instance."""
    global _link_parser
    if _link_parser is None:
        _link_parser = LinkParser()
    return _link_parser
