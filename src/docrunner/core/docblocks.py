"""Fenced code block extraction from docstrings.

This is the text half of docstring testing: it finds fenced regions,
classifies them as executable or display-only, and splits executable
blocks into the text shown in documentation and the text that runs.
Nothing here executes code.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from markdown_it import MarkdownIt

from docrunner.errors import MalformedDocBlock

NO_TEST_MARKER = "notest"

_FENCE_OPENING = re.compile(r"^( *)(`{3,}(?=[^`]*$)|~{3,})")

_markdown = MarkdownIt("commonmark")


@dataclass(frozen=True)
class RawBlock:
    """A fenced region of a docstring.

    Line numbers are 0-based offsets into the docstring; ``start_line`` is
    the opening fence and ``end_line`` the closing fence.
    """

    info: str
    executable: bool
    display_text: str
    execute_text: str
    start_line: int
    end_line: int
    start_column: int
    end_column: int


def is_executable(info: str, executable_tags: Iterable[str]) -> bool:
    """Check whether a fence info string marks an executable block."""
    words = info.strip().split()
    if not words:
        return False
    tags = {tag.lower() for tag in executable_tags}
    return words[0].lower() in tags and NO_TEST_MARKER not in (w.lower() for w in words[1:])


def split_hidden_lines(content: str, hidden_prefix: str = "#|") -> tuple[str, str]:
    """Split block content into ``(display_text, execute_text)``.

    Hidden lines keep their indentation in the executed text with the
    marker removed, so line numbers of the executed text match the file.
    """
    display: list[str] = []
    execute: list[str] = []
    for line in content.splitlines():
        stripped = line.lstrip()
        indent = line[: len(line) - len(stripped)]
        if stripped == hidden_prefix:
            execute.append("")
        elif stripped.startswith(hidden_prefix + " "):
            execute.append(indent + stripped[len(hidden_prefix) + 1:])
        else:
            display.append(line)
            execute.append(line)
    return _join(display), _join(execute)


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n" if lines else ""


def _is_closing_fence(line: str, markup: str) -> bool:
    candidate = line.lstrip(" >\t")
    stripped = candidate.rstrip()
    return (
        len(stripped) >= len(markup)
        and set(stripped) == {markup[0]}
    )


def _outdent_fences(lines: list[str]) -> tuple[list[str], list[int]]:
    """Pull fences indented four or more columns back to the margin.

    Docstring sections (``Example:``, ``Examples``) indent their body, which
    Markdown would read as an indented code block. Each such fence, from
    its opening line through its closing line (or the end of the docstring
    when it is never closed), loses up to the opening fence's indentation.
    Returns the new lines and the number of columns removed from each.
    """
    lines = list(lines)
    shifts = [0] * len(lines)
    index = 0
    while index < len(lines):
        opening = _FENCE_OPENING.match(lines[index])
        if opening is None:
            index += 1
            continue

        indent = len(opening.group(1))
        markup = opening.group(2)
        end = index + 1
        while end < len(lines) and not _is_closing_fence(lines[end], markup):
            end += 1

        if indent < 4:
            index = end + 1
            continue

        for line_no in range(index, min(end + 1, len(lines))):
            line = lines[line_no]
            removed = min(indent, len(line) - len(line.lstrip(" ")))
            lines[line_no] = line[removed:]
            shifts[line_no] = removed
        index = end + 1

    return lines, shifts


def extract_blocks(
    docstring: str,
    executable_tags: Iterable[str] = ("python", "py"),
    hidden_prefix: str = "#|",
    symbol: Optional[str] = None,
) -> list[RawBlock]:
    """Extract every fenced region from a cleaned docstring, in document order.

    Fences may sit at any indentation, so examples nested under a section
    header are found too.

    Raises:
        MalformedDocBlock: If a fence is never closed
    """
    tags = list(executable_tags)
    lines, shifts = _outdent_fences(docstring.splitlines())
    blocks = []

    for token in _markdown.parse("\n".join(lines)):
        if token.type != "fence" or token.map is None:
            continue

        start, end = token.map
        last = end - 1
        if last <= start or not _is_closing_fence(lines[last], token.markup):
            raise MalformedDocBlock(
                f"Unterminated code fence opened at docstring line {start + 1}",
                node_id=symbol,
                line=start,
            )

        opening = lines[start]
        closing = lines[last]
        executable = is_executable(token.info, tags)
        if executable:
            display_text, execute_text = split_hidden_lines(token.content, hidden_prefix)
        else:
            display_text, execute_text = token.content, ""

        blocks.append(
            RawBlock(
                info=token.info.strip(),
                executable=executable,
                display_text=display_text,
                execute_text=execute_text,
                start_line=start,
                end_line=last,
                start_column=shifts[start] + len(opening) - len(opening.lstrip()),
                end_column=shifts[last] + len(closing.rstrip()),
            )
        )

    return blocks
