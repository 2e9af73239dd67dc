"""Discovery and execution orchestration."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from docrunner.config import DocRunnerConfig
from docrunner.core.executor import (
    CodeExecutor,
    InProcessCodeExecutor,
    SubprocessCodeExecutor,
    TestExecutor,
)
from docrunner.core.locator import TestLocator
from docrunner.core.models import LocatedUnit, Outcome, OutcomeKind, TestNode
from docrunner.core.scanner import SourceScanner
from docrunner.errors import DiscoveryError, InvalidTestTarget

logger = logging.getLogger(__name__)


@dataclass
class Discovery:
    """Everything discovered for one target."""

    root: str
    root_is_file: bool = False
    units: list[LocatedUnit] = field(default_factory=list)
    errors: list[DiscoveryError] = field(default_factory=list)
    test_filter: Optional[str] = None

    @property
    def success(self) -> bool:
        """Check if discovery was free of errors."""
        return not self.errors

    def nodes(self) -> list[TestNode]:
        """All discovered nodes in discovery order."""
        return [node for unit in self.units for node in unit.nodes()]


@dataclass
class RunResult:
    """Discovery plus the outcome of every executed node."""

    discovery: Discovery
    outcomes: list[Outcome] = field(default_factory=list)

    def outcome_map(self) -> dict[str, Outcome]:
        return {outcome.test_id: outcome for outcome in self.outcomes}

    @property
    def failed(self) -> bool:
        return any(o.kind in (OutcomeKind.FAILURE, OutcomeKind.EXECUTION_ERROR) for o in self.outcomes)


class TestRunner:
    """Orchestrates scanning, location and execution of tests."""

    __test__ = False

    def __init__(
        self,
        config: Optional[DocRunnerConfig] = None,
        base_dir: Optional[Path] = None,
        code_executor: Optional[CodeExecutor] = None,
    ):
        """Initialize the test runner."""
        self.config = config or DocRunnerConfig()
        self.base_dir = base_dir or Path.cwd()

        self.scanner = SourceScanner(self.config.discovery, self.base_dir)
        self.locator = TestLocator(self.config.discovery)
        self.executor = TestExecutor(
            code_executor or self._default_code_executor(),
            jobs=self.config.execution.jobs,
            search_paths=self.config.execution.search_paths,
        )

    def _default_code_executor(self) -> CodeExecutor:
        execution = self.config.execution
        if execution.isolation == "inprocess":
            return InProcessCodeExecutor()
        return SubprocessCodeExecutor(
            working_directory=self.base_dir,
            timeout_seconds=execution.timeout_seconds,
            environment=execution.environment,
        )

    def discover(self, target: str) -> Discovery:
        """Scan and locate tests for ``target``.

        Raises:
            FileNotFoundError: If the target path does not exist
            TestIdError: If a compound target cannot be parsed
        """
        scan = self.scanner.scan(target)
        discovery = Discovery(
            root=scan.root,
            root_is_file=scan.root_is_file,
            errors=list(scan.errors),
            test_filter=scan.filter_id,
        )

        for unit in scan.units:
            located = self.locator.locate(unit)
            discovery.errors.extend(located.errors)
            discovery.units.append(located)

        if discovery.test_filter:
            self._apply_filter(discovery)

        logger.debug(
            "Discovered %d tests under %s (%d errors)",
            len(discovery.nodes()),
            discovery.root,
            len(discovery.errors),
        )
        return discovery

    def _apply_filter(self, discovery: Discovery) -> None:
        wanted = discovery.test_filter
        for unit in discovery.units:
            unit.functions = [f for f in unit.functions if f.test_id == wanted]
            for suite in unit.suites:
                suite.blocks = [b for b in suite.blocks if b.test_id == wanted]
            unit.suites = [s for s in unit.suites if s.blocks]

        if not discovery.nodes() and discovery.success:
            discovery.errors.append(InvalidTestTarget(f"Test not found: {wanted}", node_id=wanted))

    def execute(self, discovery: Discovery) -> RunResult:
        """Execute every discovered node."""
        outcomes = self.executor.execute(discovery.units, discovery.test_filter)
        return RunResult(discovery=discovery, outcomes=outcomes)

    def run(self, target: str) -> RunResult:
        """Discover and execute the tests for ``target``."""
        return self.execute(self.discover(target))
