"""Test location within a parsed source unit."""

import ast
import logging
import re
from collections import Counter
from typing import Iterator, Optional

from docrunner.config import DiscoveryConfig
from docrunner.core import identifiers
from docrunner.core.docblocks import extract_blocks
from docrunner.core.models import (
    DocBlockTest,
    FunctionTest,
    LocatedUnit,
    SourceSpan,
    SourceUnit,
    TestSuite,
)
from docrunner.errors import MalformedDocBlock

logger = logging.getLogger(__name__)

_DEFINITIONS = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)
_FUNCTIONS = (ast.FunctionDef, ast.AsyncFunctionDef)
_STRING_PREFIX_CHARS = "rRbBuUfF"


class TestLocator:
    """Finds function tests and docstring suites in a source unit."""

    __test__ = False

    def __init__(self, config: Optional[DiscoveryConfig] = None):
        """Initialize the locator."""
        self.config = config or DiscoveryConfig()
        self._name_pattern = re.compile(self.config.test_function_pattern)

    def locate(self, unit: SourceUnit) -> LocatedUnit:
        """Locate all test nodes in ``unit``.

        A malformed docstring fence is recorded as a discovery error and
        leaves the whole unit without test nodes.
        """
        located = LocatedUnit(file=unit.display_path, path=unit.path)
        located.functions = self.find_function_tests(unit)

        for node, symbol in self._docstring_hosts(unit.tree):
            try:
                suite = self._build_suite(unit, node, symbol)
            except MalformedDocBlock as e:
                logger.warning("Malformed doc block in %s: %s", e.node_id, e.message)
                located.errors.append(e)
                continue
            if suite is not None:
                located.suites.append(suite)

        if located.errors:
            located.functions = []
            located.suites = []
        else:
            logger.debug(
                "Located %d function tests and %d suites in %s",
                len(located.functions),
                len(located.suites),
                unit.display_path,
            )
        return located

    def find_function_tests(self, unit: SourceUnit) -> list[FunctionTest]:
        """Module-level functions whose name matches the test pattern.

        A name defined twice keeps only its last definition.
        """
        found: dict[str, ast.AST] = {}
        for node in unit.tree.body:
            if isinstance(node, _FUNCTIONS) and self._name_pattern.match(node.name):
                found.pop(node.name, None)
                found[node.name] = node

        return [
            FunctionTest(
                file=unit.display_path,
                path=unit.path,
                name=name,
                span=_node_span(node),
            )
            for name, node in found.items()
        ]

    def _docstring_hosts(self, tree: ast.Module) -> Iterator[tuple[ast.AST, Optional[str]]]:
        """Yield ``(node, qualified_name)`` for the module then every definition in source order."""
        yield tree, None

        seen: Counter = Counter()

        def walk(node: ast.AST, prefix: str) -> Iterator[tuple[ast.AST, Optional[str]]]:
            for child in ast.iter_child_nodes(node):
                if isinstance(child, _DEFINITIONS):
                    qualname = prefix + child.name
                    if seen[qualname]:
                        unique = f"{qualname}[{seen[qualname]}]"
                    else:
                        unique = qualname
                    seen[qualname] += 1
                    yield child, unique
                    yield from walk(child, unique + ".")
                elif isinstance(child, (ast.stmt, ast.excepthandler)) or _is_match_case(child):
                    yield from walk(child, prefix)

        yield from walk(tree, "")

    def _build_suite(self, unit: SourceUnit, node: ast.AST, symbol: Optional[str]) -> Optional[TestSuite]:
        docstring = _docstring_expr(node)
        if docstring is None:
            return None

        lines, first_column, margin = _clean_docstring(unit, docstring)
        raw_blocks = extract_blocks(
            "\n".join(lines),
            executable_tags=self.config.executable_tags,
            hidden_prefix=self.config.hidden_line_prefix,
            symbol=identifiers.suite_id(unit.display_path, symbol),
        )

        def column(doc_line: int) -> int:
            return first_column if doc_line == 0 else margin

        suite = TestSuite(file=unit.display_path, path=unit.path, symbol=symbol)
        for raw in raw_blocks:
            if not raw.executable:
                continue
            span = SourceSpan(
                start_line=docstring.lineno + raw.start_line,
                end_line=docstring.lineno + raw.end_line,
                start_column=column(raw.start_line) + raw.start_column + 1,
                end_column=column(raw.end_line) + raw.end_column + 1,
            )
            suite.blocks.append(
                DocBlockTest(
                    file=unit.display_path,
                    path=unit.path,
                    symbol=symbol,
                    ordinal=len(suite.blocks),
                    display_text=raw.display_text,
                    execute_text=raw.execute_text,
                    span=span,
                )
            )

        return suite if suite.blocks else None


def _is_match_case(node: ast.AST) -> bool:
    match_case = getattr(ast, "match_case", None)
    return match_case is not None and isinstance(node, match_case)


def _docstring_expr(node: ast.AST) -> Optional[ast.Expr]:
    body = getattr(node, "body", None)
    if not body:
        return None
    first = body[0]
    if (
        isinstance(first, ast.Expr)
        and isinstance(first.value, ast.Constant)
        and isinstance(first.value.value, str)
    ):
        return first
    return None


def _clean_docstring(unit: SourceUnit, expr: ast.Expr) -> tuple[list[str], int, int]:
    """Dedent a docstring without dropping lines.

    Returns the cleaned lines, the 0-based physical column of the first
    line's text and the margin removed from the remaining lines. Line ``i``
    of the result sits on physical line ``expr.lineno + i``.
    """
    lines = _docstring_text(unit, expr).expandtabs().split("\n")

    margins = [len(line) - len(line.lstrip()) for line in lines[1:] if line.strip()]
    margin = min(margins) if margins else 0

    source_line = unit.lines[expr.lineno - 1] if expr.lineno - 1 < len(unit.lines) else ""
    offset = expr.col_offset
    while offset < len(source_line) and source_line[offset] in _STRING_PREFIX_CHARS:
        offset += 1
    quote = 3 if source_line[offset:offset + 3] in ('"""', "'''") else 1
    first_column = offset + quote + len(lines[0]) - len(lines[0].lstrip())

    cleaned = [lines[0].lstrip()] + [line[margin:] for line in lines[1:]]
    return cleaned, first_column, margin


def _docstring_text(unit: SourceUnit, expr: ast.Expr) -> str:
    """The docstring text, laid out one line per physical source line.

    Escape sequences such as ``\\n`` or a trailing backslash change the
    number of lines in the evaluated string. For those docstrings the
    literal's source text is used instead, so examples read exactly as
    they are written in the file.
    """
    text = expr.value.value
    physical = (expr.end_lineno or expr.lineno) - expr.lineno + 1
    if text.count("\n") + 1 == physical:
        return text

    literal = _literal_body(unit, expr)
    if literal is None:
        logger.warning(
            "Docstring at %s:%d changes line layout through escapes; block locations may be off",
            unit.display_path,
            expr.lineno,
        )
        return text

    logger.debug("Reading docstring at %s:%d from its source text", unit.display_path, expr.lineno)
    return literal


def _literal_body(unit: SourceUnit, expr: ast.Expr) -> Optional[str]:
    segment = ast.get_source_segment("\n".join(unit.lines), expr.value)
    if not segment:
        return None

    offset = 0
    while offset < len(segment) and segment[offset] in _STRING_PREFIX_CHARS:
        offset += 1
    quote = segment[offset:offset + 3]
    if quote not in ('"""', "'''"):
        quote = segment[offset:offset + 1]

    body = segment[offset + len(quote):len(segment) - len(quote)]
    if not segment.endswith(quote) or quote in body.replace("\\" + quote[0], ""):
        # Implicitly concatenated literals.
        return None
    return body


def _node_span(node: ast.AST) -> SourceSpan:
    return SourceSpan(
        start_line=node.lineno,
        end_line=node.end_lineno or node.lineno,
        start_column=node.col_offset + 1,
        end_column=(node.end_col_offset or 0) + 1,
    )
