"""Report tree: directory -> file -> (function | suite -> block)."""

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

from docrunner.core.identifiers import directory_chain
from docrunner.core.models import Outcome, OutcomeKind, SourceSpan
from docrunner.core.runner import Discovery


@dataclass
class ReportNode:
    """A node of the report tree. Leaves carry a test node's span and outcome."""

    id: str
    kind: str = "group"
    children: list["ReportNode"] = field(default_factory=list)
    location: Optional[SourceSpan] = None
    outcome: Optional[Outcome] = None

    @property
    def is_leaf(self) -> bool:
        return self.location is not None

    def child(self, node_id: str, kind: str) -> "ReportNode":
        """Get or append the group child with ``node_id``."""
        for existing in self.children:
            if existing.id == node_id:
                return existing
        node = ReportNode(id=node_id, kind=kind)
        self.children.append(node)
        return node

    def leaves(self) -> Iterator["ReportNode"]:
        if self.is_leaf:
            yield self
        for child in self.children:
            yield from child.leaves()


@dataclass
class Totals:
    """Aggregate counts over a run."""

    discovered: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    execution_errors: int = 0

    def percentage(self, count: int) -> float:
        if self.discovered == 0:
            return 0.0
        return count / self.discovered * 100

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "discovered": self.discovered,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "executionErrors": self.execution_errors,
        }


def build_tree(discovery: Discovery, outcomes: Optional[Mapping[str, Outcome]] = None) -> ReportNode:
    """Build the report tree in discovery order.

    With ``outcomes`` only executed nodes become leaves; without them (the
    collection case) every discovered node does.
    """
    root = ReportNode(id=discovery.root, kind="file" if discovery.root_is_file else "directory")

    for unit in discovery.units:
        leaves = []
        for function in unit.functions:
            if outcomes is None or function.test_id in outcomes:
                leaves.append((None, function))
        for suite in unit.suites:
            for block in suite.blocks:
                if outcomes is None or block.test_id in outcomes:
                    leaves.append((suite.suite_id, block))
        if not leaves:
            continue

        parent = root
        if unit.file != discovery.root:
            for directory in directory_chain(unit.file, discovery.root):
                parent = parent.child(directory, "directory")
            parent = parent.child(unit.file, "file")

        for suite_id, node in leaves:
            holder = parent.child(suite_id, "suite") if suite_id else parent
            holder.children.append(
                ReportNode(
                    id=node.test_id,
                    kind="test",
                    location=node.span,
                    outcome=outcomes.get(node.test_id) if outcomes is not None else None,
                )
            )

    return root


def compute_totals(root: ReportNode) -> Totals:
    """Count leaves by outcome."""
    totals = Totals()
    for leaf in root.leaves():
        totals.discovered += 1
        if leaf.outcome is None:
            continue
        if leaf.outcome.kind == OutcomeKind.SUCCESS:
            totals.passed += 1
        elif leaf.outcome.kind == OutcomeKind.SKIPPED:
            totals.skipped += 1
        else:
            totals.failed += 1
            if leaf.outcome.kind == OutcomeKind.EXECUTION_ERROR:
                totals.execution_errors += 1
    return totals
