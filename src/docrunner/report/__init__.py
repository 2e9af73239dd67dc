"""Report rendering."""

from docrunner.report.tree import ReportNode, Totals, build_tree, compute_totals

__all__ = ["ReportNode", "Totals", "build_tree", "compute_totals"]
