"""Markdown parser for titles, headings and heading-delimited sections."""

import re

from docweave.models.document import Heading, ParsedDocument, Section

TITLE_MAX_LENGTH = 100
UNTITLED = "Untitled"


class DocumentParser:
    """Parse markdown content into a title, headings and sections."""

    # Regex patterns
    FRONT_MATTER_PATTERN = re.compile(r"^---\s*\n.*?\n---\s*(\n|$)", re.DOTALL)
    HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
    FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")

    def parse(self, content: str) -> ParsedDocument:
        """
        Parse markdown content.

        Args:
            content: Raw markdown content

        Returns:
            ParsedDocument with title, ordered headings and sections
        """
        lines = content.splitlines()
        first_line = self._front_matter_line_count(content)

        headings: list[Heading] = []
        sections: list[Section] = []

        current_heading = ""
        current_level = 0
        current_start = first_line + 1
        buffer: list[str] = []
        in_fence = False

        for index in range(first_line, len(lines)):
            line = lines[index]
            line_no = index + 1

            if self.FENCE_PATTERN.match(line):
                in_fence = not in_fence

            match = None if in_fence else self.HEADING_PATTERN.match(line)
            if match is None:
                buffer.append(line)
                continue

            self._flush(sections, current_heading, current_level, current_start, buffer)
            current_level = len(match.group(1))
            current_heading = match.group(2).strip()
            current_start = line_no
            buffer = []
            headings.append(Heading(level=current_level, text=current_heading, line=line_no))

        self._flush(sections, current_heading, current_level, current_start, buffer)

        return ParsedDocument(
            title=self._extract_title(lines[first_line:], headings),
            headings=headings,
            sections=sections,
        )

    def extract_title(self, content: str) -> str:
        """Title only, without building sections."""
        return self.parse(content).title

    def _flush(
        self,
        sections: list[Section],
        heading: str,
        level: int,
        start_line: int,
        buffer: list[str],
    ) -> None:
        body = "\n".join(buffer).strip()
        # The implicit section before the first heading only exists if it has text
        if level == 0 and not body:
            return
        sections.append(Section(heading=heading, level=level, content=body, start_line=start_line))

    def _extract_title(self, lines: list[str], headings: list[Heading]) -> str:
        for heading in headings:
            if heading.level == 1:
                return heading.text

        for line in lines:
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                if len(stripped) > TITLE_MAX_LENGTH:
                    return stripped[:TITLE_MAX_LENGTH] + "..."
                return stripped

        return UNTITLED

    def _front_matter_line_count(self, content: str) -> int:
        """Number of leading lines taken by YAML front matter."""
        match = self.FRONT_MATTER_PATTERN.match(content)
        if not match:
            return 0
        return match.group(0).rstrip("\n").count("\n") + 1


# Singleton parser instance
_parser = None


def get_parser() -> DocumentParser:
    """Get the singleton parser instance."""
    global _parser
    if _parser is None:
        _parser = DocumentParser()
    return _parser
