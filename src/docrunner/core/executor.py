"""Test execution.

Function tests run one per work unit; a docstring suite runs as one work
unit whose blocks share a namespace. Work units are handed to a code
executor (a worker process by default) and may run in parallel, while
outcomes are always returned in discovery order.
"""

import logging
import os
import subprocess
import sys
import tempfile
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from docrunner.core.models import (
    PRIOR_BLOCK_FAILED,
    DocBlockTest,
    FunctionTest,
    LocatedUnit,
    Outcome,
    OutcomeKind,
    TestNode,
)
from docrunner.core.worker import BlockRequest, NodeResult, WorkRequest, run_request

logger = logging.getLogger(__name__)

WORKER_MODULE = "docrunner.core.worker"


class ExecutionError(Exception):
    """Raised when a code executor fails to run a work unit to completion."""

    def __init__(
        self,
        message: str,
        results: Optional[list[NodeResult]] = None,
        stdout: str = "",
        stderr: str = "",
        duration_ms: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.results = results or []
        self.stdout = stdout
        self.stderr = stderr
        self.duration_ms = duration_ms


@dataclass
class WorkUnit:
    """Nodes executed together, in order, by one code-executor call."""

    nodes: list[TestNode]
    request: WorkRequest = field(repr=False)

    @property
    def label(self) -> str:
        return self.nodes[0].test_id


class CodeExecutor(ABC):
    """Runs work requests and reports per-node results."""

    #: Whether several requests may run at the same time.
    concurrent = True

    @abstractmethod
    def run(self, request: WorkRequest) -> list[NodeResult]:
        """Run ``request``.

        Raises:
            ExecutionError: If the unit could not be run to completion
        """
        pass


class SubprocessCodeExecutor(CodeExecutor):
    """Runs each work request in a fresh Python worker process."""

    def __init__(
        self,
        working_directory: Optional[Path] = None,
        timeout_seconds: int = 300,
        environment: Optional[dict[str, str]] = None,
    ):
        """Initialize the executor.

        Args:
            working_directory: Directory to run workers in
            timeout_seconds: Maximum time for one work unit
            environment: Additional environment variables to set
        """
        self.working_directory = working_directory or Path.cwd()
        self.timeout_seconds = timeout_seconds
        self.environment = environment or {}

    def run(self, request: WorkRequest) -> list[NodeResult]:
        env = {**os.environ, **self.environment}

        with tempfile.TemporaryDirectory(prefix="docrunner-") as tmpdir:
            request_path = Path(tmpdir) / "request.json"
            results_path = Path(tmpdir) / "results.jsonl"
            request_path.write_text(request.model_dump_json(), encoding="utf-8")
            results_path.touch()

            command = [sys.executable, "-m", WORKER_MODULE, str(request_path), str(results_path)]
            start_time = time.time()
            try:
                completed = subprocess.run(
                    command,
                    capture_output=True,
                    text=True,
                    cwd=self.working_directory,
                    timeout=self.timeout_seconds,
                    env=env,
                )
            except subprocess.TimeoutExpired as e:
                raise ExecutionError(
                    f"Execution timed out after {self.timeout_seconds} seconds",
                    results=self._read_results(results_path),
                    stdout=_decode(e.stdout),
                    stderr=_decode(e.stderr),
                    duration_ms=self.timeout_seconds * 1000,
                ) from e

            duration_ms = int((time.time() - start_time) * 1000)
            results = self._read_results(results_path)

        if completed.returncode != 0 or len(results) < len(request.node_ids):
            raise ExecutionError(
                f"Worker process exited with code {completed.returncode}",
                results=results,
                stdout=completed.stdout,
                stderr=completed.stderr,
                duration_ms=duration_ms,
            )
        return results

    @staticmethod
    def _read_results(path: Path) -> list[NodeResult]:
        results = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                results.append(NodeResult.model_validate_json(line))
            except ValueError:
                logger.debug("Discarding unreadable worker result line: %r", line)
                break
        return results


class InProcessCodeExecutor(CodeExecutor):
    """Runs work requests in this process.

    Output capture replaces the process-wide standard streams, so requests
    run one at a time. A hard crash of the test code takes the whole run
    down with it.
    """

    concurrent = False

    def run(self, request: WorkRequest) -> list[NodeResult]:
        results: list[NodeResult] = []
        start_time = time.time()
        try:
            run_request(request, results.append)
        except Exception as e:
            raise ExecutionError(
                f"Error executing work unit: {e}",
                results=results,
                duration_ms=int((time.time() - start_time) * 1000),
            ) from e
        return results


class TestExecutor:
    """Executes located tests and produces one outcome per node."""

    __test__ = False

    def __init__(
        self,
        code_executor: Optional[CodeExecutor] = None,
        jobs: int = 1,
        search_paths: Sequence[str] = (),
    ):
        """Initialize the test executor.

        Args:
            code_executor: Collaborator that runs work units
            jobs: Maximum number of work units in flight
            search_paths: Extra module search roots, passed to every work unit
        """
        self.code_executor = code_executor or SubprocessCodeExecutor()
        self.jobs = max(1, jobs)
        self.search_paths = [str(p) for p in search_paths]

    def plan(self, units: Sequence[LocatedUnit], test_filter: Optional[str] = None) -> list[WorkUnit]:
        """Group nodes into work units in discovery order.

        With ``test_filter`` only the node with that identifier is planned.
        """
        work = []
        for unit in units:
            for function in unit.functions:
                if test_filter and function.test_id != test_filter:
                    continue
                work.append(WorkUnit([function], self._function_request(unit, function)))

            for suite in unit.suites:
                blocks = [b for b in suite.blocks if not test_filter or b.test_id == test_filter]
                if blocks:
                    work.append(WorkUnit(list(blocks), self._suite_request(unit, blocks)))
        return work

    def execute(self, units: Sequence[LocatedUnit], test_filter: Optional[str] = None) -> list[Outcome]:
        """Run every planned node and return outcomes in discovery order."""
        work = self.plan(units, test_filter)
        if not work:
            return []

        if self.jobs > 1 and self.code_executor.concurrent and len(work) > 1:
            logger.debug("Dispatching %d work units to %d workers", len(work), self.jobs)
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                batches = list(pool.map(self._run_unit, work))
        else:
            batches = [self._run_unit(item) for item in work]

        return [outcome for batch in batches for outcome in batch]

    def _run_unit(self, item: WorkUnit) -> list[Outcome]:
        logger.debug("Running %s (%d nodes)", item.label, len(item.nodes))
        try:
            results = self.code_executor.run(item.request)
            failure = None
        except ExecutionError as e:
            logger.warning("Execution error in %s: %s", item.label, e.message)
            results = e.results
            failure = e
        return self._outcomes(item, results, failure)

    @staticmethod
    def _outcomes(item: WorkUnit, results: list[NodeResult], failure: Optional[ExecutionError]) -> list[Outcome]:
        by_id = {result.test_id: result for result in results}
        outcomes = []
        stop = False

        for node in item.nodes:
            result = by_id.get(node.test_id)
            if stop:
                outcomes.append(Outcome.skipped(node.test_id, PRIOR_BLOCK_FAILED))
            elif result is not None:
                outcome = Outcome(
                    test_id=node.test_id,
                    kind=OutcomeKind(result.kind),
                    error=result.error,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    duration_ms=result.duration_ms,
                )
                outcomes.append(outcome)
                stop = outcome.kind in (OutcomeKind.FAILURE, OutcomeKind.EXECUTION_ERROR)
            else:
                message = failure.message if failure else "No result reported for test"
                outcomes.append(
                    Outcome(
                        test_id=node.test_id,
                        kind=OutcomeKind.EXECUTION_ERROR,
                        error=message,
                        stdout=failure.stdout if failure else "",
                        stderr=failure.stderr if failure else "",
                        duration_ms=failure.duration_ms if failure else 0,
                    )
                )
                stop = True
        return outcomes

    def _function_request(self, unit: LocatedUnit, function: FunctionTest) -> WorkRequest:
        return WorkRequest(
            path=str(unit.path),
            display_path=unit.file,
            search_paths=self.search_paths,
            function=function.name,
            function_id=function.test_id,
        )

    def _suite_request(self, unit: LocatedUnit, blocks: list[DocBlockTest]) -> WorkRequest:
        return WorkRequest(
            path=str(unit.path),
            display_path=unit.file,
            search_paths=self.search_paths,
            blocks=[
                BlockRequest(test_id=b.test_id, source=b.execute_text, first_line=b.code_start_line)
                for b in blocks
            ],
        )


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
