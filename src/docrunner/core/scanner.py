"""Source scanning: resolve a target into the source units to discover."""

import ast
import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from docrunner.config import DiscoveryConfig
from docrunner.core.identifiers import ParsedTestId, parse_test_id, render_path
from docrunner.core.models import SourceUnit
from docrunner.errors import DiscoveryError, InvalidTestTarget, SourceParseError

logger = logging.getLogger(__name__)

PACKAGE_MARKER = "__init__.py"
SKIPPED_DIRECTORIES = {"__pycache__"}


@dataclass
class ScanResult:
    """Result of scanning a target."""

    root: str
    root_is_file: bool = False
    units: list[SourceUnit] = field(default_factory=list)
    errors: list[DiscoveryError] = field(default_factory=list)
    test_filter: Optional[ParsedTestId] = None

    @property
    def filter_id(self) -> Optional[str]:
        """The single test identifier to run, if the target named one."""
        return self.test_filter.render() if self.test_filter else None


class SourceScanner:
    """Walks a file or directory target and loads test source units."""

    def __init__(self, config: Optional[DiscoveryConfig] = None, base_dir: Optional[Path] = None):
        """Initialize the scanner.

        Args:
            config: Discovery configuration (file naming patterns)
            base_dir: Directory identifiers are rendered relative to
        """
        self.config = config or DiscoveryConfig()
        self.base_dir = base_dir or Path.cwd()

    def scan(self, target: str) -> ScanResult:
        """Resolve ``target`` into source units.

        ``target`` is a file, a directory, or a ``<file>::<test-id>``
        compound naming a single test.

        Raises:
            FileNotFoundError: If the target path does not exist
            TestIdError: If a compound target cannot be parsed
        """
        test_filter = None
        path = Path(target)

        if not path.exists():
            if "::" not in target:
                raise FileNotFoundError(f"Test target not found: {target}")
            test_filter = parse_test_id(target)
            path = Path(test_filter.file)
            if not path.is_file():
                raise FileNotFoundError(f"Test file not found: {test_filter.file}")
            test_filter = ParsedTestId(
                file=self.render(path),
                function=test_filter.function,
                symbol=test_filter.symbol,
                ordinal=test_filter.ordinal,
            )

        result = ScanResult(root=self.render(path), root_is_file=path.is_file(), test_filter=test_filter)

        if path.is_dir():
            candidates = list(self.walk(path))
        else:
            if not self.is_test_file(path):
                error = InvalidTestTarget(
                    f"Not a test file (expected {', '.join(self.config.test_file_patterns)}): {path.name}",
                    node_id=self.render(path),
                )
                logger.warning("%s", error.message)
                result.errors.append(error)
                return result
            candidates = [path]

        for candidate in candidates:
            try:
                result.units.append(self.load(candidate))
            except SourceParseError as e:
                logger.warning("Skipping %s: %s", e.node_id, e.message)
                result.errors.append(e)

        logger.debug("Scanned %s: %d source units", result.root, len(result.units))
        return result

    def walk(self, directory: Path):
        """Yield test files below ``directory`` depth-first in name order.

        Subdirectories holding a package marker are not scanned.
        """
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.warning("Cannot read directory %s: %s", directory, e)
            return

        subdirectories = []
        for entry in entries:
            if entry.is_dir():
                subdirectories.append(Path(entry.path))
            elif entry.is_file() and self.is_test_file(Path(entry.path)):
                yield Path(entry.path)

        for subdirectory in subdirectories:
            if subdirectory.name.startswith(".") or subdirectory.name in SKIPPED_DIRECTORIES:
                continue
            if (subdirectory / PACKAGE_MARKER).exists():
                logger.debug("Skipping package directory %s", subdirectory)
                continue
            yield from self.walk(subdirectory)

    def is_test_file(self, path: Path) -> bool:
        """Check the file name against the test-file naming convention."""
        return any(fnmatch.fnmatchcase(path.name, pattern) for pattern in self.config.test_file_patterns)

    def load(self, path: Path) -> SourceUnit:
        """Read and parse one source file.

        Raises:
            SourceParseError: If the file cannot be read or parsed
        """
        display_path = self.render(path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceParseError(f"Cannot read source file: {e}", node_id=display_path) from e

        try:
            tree = ast.parse(source, filename=str(path))
        except SyntaxError as e:
            raise SourceParseError(f"Invalid Python source (line {e.lineno}): {e.msg}", node_id=display_path) from e

        return SourceUnit(
            path=path.resolve(),
            display_path=display_path,
            lines=tuple(source.splitlines()),
            tree=tree,
        )

    def render(self, path: Path) -> str:
        return render_path(path, self.base_dir)
