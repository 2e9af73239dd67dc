"""Tests for the report tree and its renderings."""

import json
from pathlib import Path

from rich.console import Console

from docrunner.config import DocRunnerConfig, ReportConfig
from docrunner.core.executor import InProcessCodeExecutor
from docrunner.core.models import Outcome, OutcomeKind
from docrunner.core.runner import TestRunner
from docrunner.report.generator import ReportGenerator
from docrunner.report.render import render_collection, render_json, render_summary
from docrunner.report.tree import build_tree, compute_totals


MODULE = '''\
"""
```python
x = 1
```

```python
assert x == 2
```

```python
y = 3
```
"""


def test_pass():
    pass


def test_fail():
    assert False, "broken"
'''


def make_project(root: Path) -> None:
    (root / "unit").mkdir()
    (root / "unit" / "test_mod.py").write_text(MODULE)
    (root / "unit" / "deep").mkdir()
    (root / "unit" / "deep" / "test_other.py").write_text("def test_deep():\n    pass\n")
    (root / "test_top.py").write_text("def test_top():\n    pass\n")


def runner_for(root: Path) -> TestRunner:
    return TestRunner(DocRunnerConfig(), base_dir=root, code_executor=InProcessCodeExecutor())


def ids(node):
    return [node.id, [ids(child) for child in node.children]] if node.children else node.id


class TestBuildTree:
    """Tests for build_tree."""

    def test_collection_tree(self, tmp_path):
        """Directory -> file -> function | suite -> block, in discovery order."""
        make_project(tmp_path)
        discovery = runner_for(tmp_path).discover(str(tmp_path))
        tree = build_tree(discovery)

        assert ids(tree) == [
            ".",
            [
                ["test_top.py", ["test_top.py::test_top()"]],
                [
                    "unit",
                    [
                        [
                            "unit/test_mod.py",
                            [
                                "unit/test_mod.py::test_pass()",
                                "unit/test_mod.py::test_fail()",
                                [
                                    "unit/test_mod.py@__doc__",
                                    [
                                        "unit/test_mod.py@__doc__::0",
                                        "unit/test_mod.py@__doc__::1",
                                        "unit/test_mod.py@__doc__::2",
                                    ],
                                ],
                            ],
                        ],
                        ["unit/deep", [["unit/deep/test_other.py", ["unit/deep/test_other.py::test_deep()"]]]],
                    ],
                ],
            ],
        ]

    def test_ids_unique(self, tmp_path):
        """Leaf identifiers are pairwise distinct."""
        make_project(tmp_path)
        tree = build_tree(runner_for(tmp_path).discover(str(tmp_path)))
        leaves = [leaf.id for leaf in tree.leaves()]
        assert len(leaves) == len(set(leaves)) == 7

    def test_outcomes_attached(self, tmp_path):
        """Executed leaves carry their outcome."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path / "unit" / "test_mod.py"))
        tree = build_tree(result.discovery, result.outcome_map())

        assert tree.id == "unit/test_mod.py"
        assert tree.kind == "file"
        kinds = {leaf.id: leaf.outcome.kind for leaf in tree.leaves()}
        assert kinds["unit/test_mod.py@__doc__::2"] == OutcomeKind.SKIPPED

    def test_filtered_tree_has_one_leaf(self, tmp_path):
        """A compound target yields a single-leaf report."""
        make_project(tmp_path)
        target = f"{tmp_path / 'unit' / 'test_mod.py'}@__doc__::1"
        result = runner_for(tmp_path).run(target)
        tree = build_tree(result.discovery, result.outcome_map())

        leaves = list(tree.leaves())
        assert [leaf.id for leaf in leaves] == ["unit/test_mod.py@__doc__::1"]
        assert len(result.outcomes) == 1


class TestTotals:
    """Tests for compute_totals."""

    def test_counts(self, tmp_path):
        """Execution errors count as failures too."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path))
        totals = compute_totals(build_tree(result.discovery, result.outcome_map()))

        assert totals.discovered == 7
        assert totals.passed == 4
        assert totals.failed == 2
        assert totals.skipped == 1
        assert totals.execution_errors == 0
        assert round(totals.percentage(totals.passed), 1) == 57.1

    def test_zero(self):
        """Percentages of an empty run are zero."""
        from docrunner.report.tree import Totals

        assert Totals().percentage(0) == 0.0


class TestRenderJson:
    """Tests for JSON rendering."""

    def test_collection_json(self, tmp_path):
        """Collection JSON uses 'id' and leaf locations."""
        make_project(tmp_path)
        tree = build_tree(runner_for(tmp_path).discover(str(tmp_path)))
        document = json.loads(render_json(tree, collect_only=True))

        assert document["id"] == "."
        top_file = document["children"][0]
        leaf = top_file["children"][0]
        assert leaf == {
            "id": "test_top.py::test_top()",
            "location": {"startLine": 1, "endLine": 2, "startColumn": 1, "endColumn": 9},
        }
        assert document["summary"] == {"discovered": 7}
        assert document["errors"] == []

    def test_collection_idempotent(self, tmp_path):
        """Collecting twice gives byte-identical JSON."""
        make_project(tmp_path)
        first = render_json(build_tree(runner_for(tmp_path).discover(str(tmp_path))), collect_only=True)
        second = render_json(build_tree(runner_for(tmp_path).discover(str(tmp_path))), collect_only=True)
        assert first == second

    def test_outcome_json(self, tmp_path):
        """Outcome JSON uses 'testID' and outcome fields on leaves."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path / "unit" / "test_mod.py"))
        document = json.loads(render_json(build_tree(result.discovery, result.outcome_map())))

        assert document["testID"] == "unit/test_mod.py"
        fail = document["children"][1]
        assert fail["testID"] == "unit/test_mod.py::test_fail()"
        assert fail["kind"] == "failure"
        assert "broken" in fail["error"]
        assert set(fail) == {"testID", "kind", "error", "stdOut", "stdErr", "duration_ms"}

        suite = document["children"][2]
        assert [c["kind"] for c in suite["children"]] == ["success", "failure", "skipped"]
        assert document["summary"]["failed"] == 2

    def test_children_in_discovery_order(self, tmp_path):
        """Failures are not moved to the front."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path / "unit" / "test_mod.py"))
        document = json.loads(render_json(build_tree(result.discovery, result.outcome_map())))
        assert [c["testID"] for c in document["children"][:2]] == [
            "unit/test_mod.py::test_pass()",
            "unit/test_mod.py::test_fail()",
        ]

    def test_empty_run(self, tmp_path):
        """An empty directory still renders a well-formed document."""
        result = runner_for(tmp_path).run(str(tmp_path))
        document = json.loads(render_json(build_tree(result.discovery, result.outcome_map())))
        assert document["children"] == []
        assert document["summary"]["discovered"] == 0
        assert document["summary"]["passed"] == 0


class TestRenderText:
    """Tests for text rendering."""

    def test_collection_listing(self, tmp_path):
        """Collection lists every ID, indented by depth."""
        make_project(tmp_path)
        tree = build_tree(runner_for(tmp_path).discover(str(tmp_path)))
        console = Console(record=True, width=200)
        render_collection(console, tree)
        text = console.export_text()

        assert "  test_top.py\n    test_top.py::test_top()" in text
        assert "unit/test_mod.py@__doc__::2" in text
        assert "7 tests collected" in text

    def test_summary(self, tmp_path):
        """The summary shows totals and failed test details."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path / "unit" / "test_mod.py"))
        console = Console(record=True, width=200)
        totals = render_summary(console, build_tree(result.discovery, result.outcome_map()))
        text = console.export_text()

        assert totals.failed == 2
        assert "Discovered" in text
        assert "FAILED unit/test_mod.py::test_fail()" in text
        assert "AssertionError: broken" in text
        assert "Some tests failed!" in text

    def test_summary_all_passed(self, tmp_path):
        """A clean run says so."""
        (tmp_path / "test_ok.py").write_text("def test_ok():\n    pass\n")
        result = runner_for(tmp_path).run(str(tmp_path))
        console = Console(record=True, width=200)
        render_summary(console, build_tree(result.discovery, result.outcome_map()))
        assert "All tests passed!" in console.export_text()


class TestReportGenerator:
    """Tests for HTML report generation."""

    def test_generate(self, tmp_path):
        """The HTML report lists each executed test."""
        make_project(tmp_path)
        result = runner_for(tmp_path).run(str(tmp_path))
        tree = build_tree(result.discovery, result.outcome_map())

        path = ReportGenerator(ReportConfig(title="My Run")).generate(tree, tmp_path / "out" / "report.html")
        html = path.read_text()
        assert "<title>My Run</title>" in html
        assert "unit/test_mod.py::test_fail()" in html
        assert "skipped" in html

    def test_format_duration(self):
        """Durations are humanized."""
        assert ReportGenerator._format_duration(50) == "50ms"
        assert ReportGenerator._format_duration(1500) == "1.50s"
        assert ReportGenerator._format_duration(61000) == "1m 1.0s"
