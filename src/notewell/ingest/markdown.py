"""Markdown chunker — heading-aware sections with sliding-window fallback."""

from __future__ import annotations

import re

from notewell.db.models import Chunk
from notewell.ingest.base import BaseChunker, normalize_whitespace

# ATX headings, H1 through H6, with optional closing hashes.
_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(BaseChunker):
    """Split Markdown on heading boundaries and window each section.

    Strategy:
    - Walk the lines, tracking a heading stack (``# Trip`` → ``## Day 1``
      gives the path ``Trip > Day 1``). Lines inside fenced code blocks are
      never treated as headings.
    - Each heading plus its body is a *section*; text before the first
      heading is a section with no heading path.
    - Sections are whitespace-normalized and split with
      ``_split_fixed_window()``; every chunk carries its section's path.
    - A document without headings is chunked exactly like plain text.
    """

    def chunk(self, file_id: int | None, content: str, path: str = "") -> list[Chunk]:
        if not content.strip():
            return []

        sections = self._split_on_headings(content)
        if not sections:
            text = normalize_whitespace(content)
            return self._make_chunks(file_id, self._split_fixed_window(text))

        texts: list[str] = []
        headings: list[str | None] = []
        for heading_path, body in sections:
            for segment in self._split_fixed_window(normalize_whitespace(body)):
                texts.append(segment)
                headings.append(heading_path)
        return self._make_chunks(file_id, texts, headings)

    def _split_on_headings(self, content: str) -> list[tuple[str | None, str]]:
        """Return [(heading_path, section_text)].

        Returns an empty list if no headings are found (signals fallback).
        """
        stack: list[tuple[int, str]] = []
        sections: list[tuple[str | None, list[str]]] = [(None, [])]
        in_fence = False
        found = False

        for line in content.splitlines():
            if _FENCE_RE.match(line):
                in_fence = not in_fence
            match = None if in_fence else _HEADING_RE.match(line)
            if match:
                found = True
                level = len(match.group(1))
                while stack and stack[-1][0] >= level:
                    stack.pop()
                stack.append((level, match.group(2).strip()))
                sections.append((" > ".join(title for _, title in stack), [line]))
            else:
                sections[-1][1].append(line)

        if not found:
            return []

        result = []
        for heading_path, lines in sections:
            body = "\n".join(lines)
            if body.strip():
                result.append((heading_path, body))
        return result
