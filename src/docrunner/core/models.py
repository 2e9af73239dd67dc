"""Data models for discovered tests and their outcomes."""

import ast
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from docrunner.core import identifiers
from docrunner.errors import DiscoveryError


@dataclass(frozen=True)
class SourceSpan:
    """A source range. Lines and columns are 1-based."""

    start_line: int
    end_line: int
    start_column: int
    end_column: int

    def to_dict(self) -> dict:
        """Convert to the JSON ``location`` object."""
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startColumn": self.start_column,
            "endColumn": self.end_column,
        }


@dataclass(frozen=True)
class SourceUnit:
    """A single parsed source file."""

    path: Path
    display_path: str
    lines: tuple[str, ...]
    tree: ast.Module = field(compare=False, repr=False)


@dataclass(frozen=True)
class FunctionTest:
    """A module-level test function."""

    file: str
    path: Path
    name: str
    span: SourceSpan

    @property
    def test_id(self) -> str:
        return identifiers.function_test_id(self.file, self.name)


@dataclass(frozen=True)
class DocBlockTest:
    """One executable fenced code block inside a docstring."""

    file: str
    path: Path
    symbol: Optional[str]
    ordinal: int
    display_text: str
    execute_text: str
    span: SourceSpan

    @property
    def suite_tag(self) -> str:
        return identifiers.suite_tag(self.symbol)

    @property
    def test_id(self) -> str:
        return identifiers.doc_block_test_id(self.file, self.symbol, self.ordinal)

    @property
    def code_start_line(self) -> int:
        """Physical line of the first code line (the line after the opening fence)."""
        return self.span.start_line + 1


TestNode = Union[FunctionTest, DocBlockTest]


@dataclass
class TestSuite:
    """The ordered doc blocks of one docstring, sharing one execution scope."""

    __test__ = False

    file: str
    path: Path
    symbol: Optional[str]
    blocks: list[DocBlockTest] = field(default_factory=list)

    @property
    def suite_id(self) -> str:
        return identifiers.suite_id(self.file, self.symbol)


@dataclass
class LocatedUnit:
    """Everything discovered in one source unit."""

    file: str
    path: Path
    functions: list[FunctionTest] = field(default_factory=list)
    suites: list[TestSuite] = field(default_factory=list)
    errors: list[DiscoveryError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if discovery of the unit was successful."""
        return not self.errors

    def nodes(self) -> list[TestNode]:
        """All test nodes in report order: functions, then suite blocks."""
        result: list[TestNode] = list(self.functions)
        for suite in self.suites:
            result.extend(suite.blocks)
        return result


class TestStatus(str, Enum):
    """Status of a test execution."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutcomeKind(str, Enum):
    """Kind reported in the JSON document."""

    SUCCESS = "success"
    FAILURE = "failure"
    EXECUTION_ERROR = "executionError"
    SKIPPED = "skipped"


PRIOR_BLOCK_FAILED = "prior block failed"


@dataclass
class Outcome:
    """Result of executing one test node."""

    test_id: str
    kind: OutcomeKind
    error: str = ""
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def status(self) -> TestStatus:
        if self.kind == OutcomeKind.SUCCESS:
            return TestStatus.PASSED
        if self.kind == OutcomeKind.SKIPPED:
            return TestStatus.SKIPPED
        return TestStatus.FAILED

    @classmethod
    def passed(cls, test_id: str, stdout: str = "", stderr: str = "", duration_ms: int = 0) -> "Outcome":
        return cls(test_id, OutcomeKind.SUCCESS, "", stdout, stderr, duration_ms)

    @classmethod
    def skipped(cls, test_id: str, reason: str = PRIOR_BLOCK_FAILED) -> "Outcome":
        return cls(test_id, OutcomeKind.SKIPPED, reason)

    def to_dict(self) -> dict:
        """Convert to the outcome fields of a JSON leaf."""
        return {
            "kind": self.kind.value,
            "error": self.error,
            "stdOut": self.stdout,
            "stdErr": self.stderr,
            "duration_ms": self.duration_ms,
        }
