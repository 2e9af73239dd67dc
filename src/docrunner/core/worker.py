"""Worker that executes one work unit: a function test or a doc-block suite.

Run as ``python -m docrunner.core.worker REQUEST_JSON RESULTS_JSONL``. One
result line is appended to the results file per node as soon as the node
finishes, so the parent can tell how far a crashed worker got.
"""

import ast
import asyncio
import inspect
import io
import sys
import time
import traceback
import types
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import BaseModel, Field

MODULE_NAME_PREFIX = "__docrunner__"


class BlockRequest(BaseModel):
    """One doc block to execute."""

    test_id: str
    source: str
    first_line: int = Field(description="Physical line of the first source line")


class WorkRequest(BaseModel):
    """A unit of work for the worker."""

    path: str
    display_path: str
    search_paths: list[str] = Field(default_factory=list)
    function: Optional[str] = None
    function_id: Optional[str] = None
    blocks: list[BlockRequest] = Field(default_factory=list)

    @property
    def node_ids(self) -> list[str]:
        if self.function_id:
            return [self.function_id]
        return [block.test_id for block in self.blocks]


class NodeResult(BaseModel):
    """Result of one node as reported by the worker."""

    test_id: str
    kind: str
    error: str = ""
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0


def run_request(request: WorkRequest, emit: Callable[[NodeResult], None]) -> None:
    """Execute ``request``, calling ``emit`` once per node in order."""
    with _search_paths(request), _module(request) as module:
        node_ids = request.node_ids
        if not node_ids:
            return

        loaded = _run_node(node_ids[0], request, lambda: _exec_module(request, module))
        if loaded.kind != "success":
            loaded.error = f"Error loading {request.display_path}: {loaded.error}"
            emit(loaded)
            for test_id in node_ids[1:]:
                emit(NodeResult(test_id=test_id, kind="skipped", error="prior block failed"))
            return

        if request.function:
            result = _run_node(request.function_id, request, lambda: _call_function(module, request.function))
            _merge_output(loaded, result)
            emit(result)
            return

        # Doc blocks share the module namespace in order.
        failed = False
        for index, block in enumerate(request.blocks):
            if failed:
                emit(NodeResult(test_id=block.test_id, kind="skipped", error="prior block failed"))
                continue
            result = _run_node(block.test_id, request, lambda b=block: _exec_block(request, module, b))
            if index == 0:
                _merge_output(loaded, result)
            emit(result)
            failed = result.kind != "success"


def _merge_output(loaded: NodeResult, result: NodeResult) -> None:
    result.stdout = loaded.stdout + result.stdout
    result.stderr = loaded.stderr + result.stderr


@contextmanager
def _search_paths(request: WorkRequest) -> Iterator[None]:
    saved = list(sys.path)
    file_dir = str(Path(request.path).parent)
    sys.path[:0] = [*request.search_paths, file_dir]
    try:
        yield
    finally:
        sys.path[:] = saved


@contextmanager
def _module(request: WorkRequest) -> Iterator[types.ModuleType]:
    """A fresh module object, registered in ``sys.modules`` while in use."""
    name = MODULE_NAME_PREFIX + Path(request.path).stem
    module = types.ModuleType(name)
    module.__file__ = request.path
    previous = sys.modules.get(name)
    sys.modules[name] = module
    try:
        yield module
    finally:
        if previous is None:
            sys.modules.pop(name, None)
        else:
            sys.modules[name] = previous


def _exec_module(request: WorkRequest, module: types.ModuleType) -> None:
    source = Path(request.path).read_text(encoding="utf-8")
    exec(compile(source, request.path, "exec"), module.__dict__)


def _call_function(module: types.ModuleType, name: str) -> None:
    function = module.__dict__.get(name)
    if not callable(function):
        raise NameError(f"name '{name}' is not defined")
    result = function()
    if inspect.iscoroutine(result):
        asyncio.run(result)


def _exec_block(request: WorkRequest, module: types.ModuleType, block: BlockRequest) -> None:
    # Pad so tracebacks point at the physical lines of the docstring.
    padded = "\n" * (block.first_line - 1) + block.source
    code = compile(padded, request.path, "exec", flags=ast.PyCF_ALLOW_TOP_LEVEL_AWAIT)
    if code.co_flags & inspect.CO_COROUTINE:
        asyncio.run(types.FunctionType(code, module.__dict__)())
    else:
        exec(code, module.__dict__)


def _run_node(test_id: str, request: WorkRequest, body: Callable[[], None]) -> NodeResult:
    stdout, stderr = io.StringIO(), io.StringIO()
    kind, error = "success", ""
    start_time = time.perf_counter()
    try:
        with redirect_stdout(stdout), redirect_stderr(stderr):
            body()
    except AssertionError as e:
        kind, error = "failure", describe_error(e, request)
    except (Exception, SystemExit) as e:
        kind, error = "executionError", describe_error(e, request)
    duration_ms = int((time.perf_counter() - start_time) * 1000)

    return NodeResult(
        test_id=test_id,
        kind=kind,
        error=error,
        stdout=stdout.getvalue(),
        stderr=stderr.getvalue(),
        duration_ms=duration_ms,
    )


def describe_error(error: BaseException, request: WorkRequest) -> str:
    """``Type: message (file:line)``, located at the deepest frame in the test file."""
    message = str(error)
    text = f"{type(error).__name__}: {message}" if message else type(error).__name__

    line = None
    if isinstance(error, SyntaxError) and error.filename == request.path:
        line = error.lineno
    else:
        for frame in traceback.extract_tb(error.__traceback__):
            if frame.filename == request.path:
                line = frame.lineno
    if line is not None:
        text += f" ({request.display_path}:{line})"
    return text


def main(argv: Optional[list[str]] = None) -> int:
    """Worker entry point."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 2:
        print("usage: python -m docrunner.core.worker REQUEST_JSON RESULTS_JSONL", file=sys.stderr)
        return 2

    request = WorkRequest.model_validate_json(Path(argv[0]).read_text(encoding="utf-8"))
    with open(argv[1], "a", encoding="utf-8") as results:

        def emit(result: NodeResult) -> None:
            results.write(result.model_dump_json() + "\n")
            results.flush()

        run_request(request, emit)
    return 0


if __name__ == "__main__":
    sys.exit(main())
