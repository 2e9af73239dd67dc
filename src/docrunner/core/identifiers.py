"""Test identifiers.

Grammar::

    FunctionID  ::= <file-path> "::" <function-name> "()"
    DocBlockID  ::= <file-path> "@" <suite-tag> "::" <ordinal>
    suite-tag   ::= "__doc__" | <qualified-symbol-name> ".__doc__"

Qualified-name segments escape ``\\``, ``:`` and ``@`` with a backslash so
that ``::`` and ``@`` stay unambiguous separators.
"""

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from docrunner.errors import TestIdError

DOC_TAG = "__doc__"
_ESCAPED = ("\\", ":", "@")


def escape_segment(segment: str) -> str:
    """Escape one qualified-name segment."""
    for char in _ESCAPED:
        segment = segment.replace(char, "\\" + char)
    return segment


def unescape_segment(segment: str) -> str:
    """Reverse :func:`escape_segment`."""
    out = []
    chars = iter(segment)
    for char in chars:
        if char == "\\":
            out.append(next(chars, "\\"))
        else:
            out.append(char)
    return "".join(out)


def suite_tag(symbol: Optional[str]) -> str:
    """Tag for the docstring of ``symbol`` (``None`` is the module)."""
    if not symbol:
        return DOC_TAG
    escaped = ".".join(escape_segment(part) for part in symbol.split("."))
    return f"{escaped}.{DOC_TAG}"


def function_test_id(file: str, name: str) -> str:
    return f"{file}::{name}()"


def suite_id(file: str, symbol: Optional[str]) -> str:
    return f"{file}@{suite_tag(symbol)}"


def doc_block_test_id(file: str, symbol: Optional[str], ordinal: int) -> str:
    return f"{suite_id(file, symbol)}::{ordinal}"


def render_path(path: Path | str, base: Path | str | None = None) -> str:
    """Render a file path for use in identifiers.

    Paths below ``base`` (default: the working directory) become relative;
    anything else stays absolute. Always POSIX separators.
    """
    path = Path(os.path.abspath(path))
    base = Path(os.path.abspath(base if base is not None else Path.cwd()))
    try:
        relative = path.relative_to(base)
    except ValueError:
        return path.as_posix()
    rendered = relative.as_posix()
    return rendered if rendered else "."


def directory_chain(file: str, root: str) -> list[str]:
    """Directory grouping keys between ``root`` and ``file``, outermost first.

    >>> directory_chain("tests/unit/test_x.py", "tests")
    ['tests/unit']
    """
    file_path = PurePosixPath(file)
    root_path = PurePosixPath(root)
    chain = []
    for parent in reversed(file_path.parents):
        if parent == root_path or str(parent) == ".":
            continue
        if root != "." and root_path not in parent.parents:
            continue
        chain.append(parent.as_posix())
    return chain


@dataclass(frozen=True)
class ParsedTestId:
    """A test identifier split back into its parts."""

    file: str
    function: Optional[str] = None
    symbol: Optional[str] = None
    ordinal: Optional[int] = None

    @property
    def is_doc_block(self) -> bool:
        return self.ordinal is not None

    def render(self, file: Optional[str] = None) -> str:
        """Rebuild the identifier, optionally with a different file rendering."""
        file = file if file is not None else self.file
        if self.is_doc_block:
            return doc_block_test_id(file, self.symbol, self.ordinal)
        return function_test_id(file, self.function)


def _split_unescaped(text: str, separator: str) -> tuple[str, str]:
    """Split at the last occurrence of ``separator`` not preceded by a backslash escape."""
    index = len(text)
    while True:
        index = text.rfind(separator, 0, index)
        if index < 0:
            raise TestIdError(f"Missing '{separator}' in test identifier: {text}")
        backslashes = 0
        probe = index - 1
        while probe >= 0 and text[probe] == "\\":
            backslashes += 1
            probe -= 1
        if backslashes % 2 == 0:
            return text[:index], text[index + len(separator):]


def parse_test_id(text: str) -> ParsedTestId:
    """Parse a function or doc-block identifier.

    The trailing ``()`` of a function identifier may be omitted.

    Raises:
        TestIdError: If ``text`` does not follow the identifier grammar
    """
    head, sep, tail = text.rpartition("::")
    if not sep or not head:
        raise TestIdError(f"Not a test identifier: {text}")

    if tail.isdigit():
        file, tag = _split_unescaped(head, "@")
        if not file:
            raise TestIdError(f"Missing file path in test identifier: {text}")
        if tag == DOC_TAG:
            symbol = None
        elif tag.endswith("." + DOC_TAG):
            escaped = tag[: -len(DOC_TAG) - 1]
            symbol = ".".join(unescape_segment(part) for part in _split_segments(escaped))
        else:
            raise TestIdError(f"Invalid suite tag '{tag}' in test identifier: {text}")
        return ParsedTestId(file=file, symbol=symbol, ordinal=int(tail))

    name = tail[:-2] if tail.endswith("()") else tail
    if not name.isidentifier():
        raise TestIdError(f"Invalid function name '{tail}' in test identifier: {text}")
    return ParsedTestId(file=head, function=name)


def _split_segments(escaped: str) -> list[str]:
    # Dots are never escaped, so a plain split is exact.
    return escaped.split(".")
